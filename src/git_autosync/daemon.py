import atexit
import logging
import os
import queue
import signal
import sys
import time
from collections.abc import Callable
from functools import partial
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType

from rich.console import Console

from .checks import PreconditionFailure, run_checks
from .config import Config
from .constants import APP_NAME, LOG_FILE, PID_FILE
from .coordinator import Coordinator
from .cycles import Workspace
from .git_wrapper import GitRepo
from .stats import collect_stats, write_report
from .watcher import ChangeEvent, start_observer

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

console = Console()
err_console = Console(stderr=True)


class StateFilter(logging.Filter):
    """Stamps every log record with the coordinator's current state.

    Attributes:
        source (Callable[[], str] | None): Returns the state name. Records
            logged before the coordinator exists show '-'.
    """

    def __init__(self, source: Callable[[], str] | None = None):
        super().__init__()
        self.source = source

    def filter(self, record: logging.LogRecord) -> bool:
        record.sync_state = self.source() if self.source else "-"
        return True


def setup_logging(interactive: bool, config: Config) -> StateFilter:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to stderr
                            and a rotating file.
        config (Config): Supplies the log rotation size.

    Returns:
        StateFilter: The filter attached to every handler; point its `source`
        at the coordinator once one exists.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s [%(sync_state)s]: %(message)s",
        "%Y-%m-%d %H:%M:%S",
    )
    state_filter = StateFilter()

    # Always log to a stream (stderr is captured by systemd/launchd).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    handlers: list[logging.Handler] = [stream_handler]

    if not interactive:
        # In daemon mode, rotate logs to file.
        handlers.append(
            RotatingFileHandler(
                LOG_FILE,
                maxBytes=config.limits.max_log_size,
                backupCount=5,
            )
        )

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(state_filter)
        logger.addHandler(handler)

    return state_filter


def drain_queue(events: queue.Queue) -> list[ChangeEvent]:
    """Takes every event currently queued without blocking."""
    drained = []
    while True:
        try:
            drained.append(events.get_nowait())
        except queue.Empty:
            return drained


class EventLoop:
    """The single logical task queue driving the coordinator.

    Change notifications, the debounce deadline, the recurring pull tick and
    the periodic status line are all dispatched from this one thread, so the
    coordinator is never entered concurrently.

    Attributes:
        coordinator (Coordinator): The state machine being driven.
        events (queue.Queue): Filled by the change notifier thread.
    """

    # Upper bound on a single wait so stop requests are noticed promptly.
    MAX_WAIT = 1.0

    def __init__(
        self,
        coordinator: Coordinator,
        events: queue.Queue,
        pull_interval: float,
        status_interval: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.coordinator = coordinator
        self.events = events
        self.pull_interval = pull_interval
        self.status_interval = status_interval
        self._clock = clock
        now = clock()
        self.next_pull = now + pull_interval
        self.next_status = now + status_interval
        self._stopping = False

    def wait_time(self, now: float) -> float:
        deadlines = [self.next_pull, self.next_status]
        if (commit_at := self.coordinator.next_deadline()) is not None:
            deadlines.append(commit_at)
        return max(0.0, min(self.MAX_WAIT, min(deadlines) - now))

    def step(self) -> None:
        """Waits for the next event or deadline and dispatches it."""
        try:
            event = self.events.get(timeout=self.wait_time(self._clock()))
            self.coordinator.submit_change(event)
        except queue.Empty:
            pass
        for event in drain_queue(self.events):
            self.coordinator.submit_change(event)

        self.coordinator.poll()

        now = self._clock()
        if now >= self.next_pull:
            self.next_pull = now + self.pull_interval
            self.coordinator.tick()

        now = self._clock()
        if now >= self.next_status:
            self.next_status = now + self.status_interval
            self.log_status(now)

    def log_status(self, now: float) -> None:
        coordinator = self.coordinator
        commit_at = coordinator.next_deadline()
        next_commit = f"{commit_at - now:.0f}s" if commit_at is not None else "n/a"
        logger.info(
            f"STATUS: {coordinator.current_state.value}; "
            f"{coordinator.pending_events} change(s) batched; "
            f"next commit in {next_commit}; "
            f"next pull in {max(0.0, self.next_pull - now):.0f}s"
        )

    def run(self) -> None:
        while not self._stopping:
            self.step()

    def stop(self) -> None:
        self._stopping = True


def report_failure(failure: PreconditionFailure) -> None:
    """Logs a precondition failure and prints it for humans."""
    logger.error(f"PRECONDITION FAILED ({failure.kind.value}): {failure.message}")
    err_console.print(f"[bold red]FATAL:[/bold red] {failure.message}")
    if failure.hint:
        err_console.print(f"   [yellow]Suggestion:[/yellow] {failure.hint}")


def write_startup_report(root: Path, config: Config) -> Path | None:
    """Writes the statistics report; failures are logged, never fatal."""
    if not config.report.enabled:
        return None
    try:
        repo = GitRepo(root, timeout=config.limits.command_timeout)
        return write_report(collect_stats(repo), root / config.report.filename)
    except (OSError, RuntimeError, ValueError) as e:
        logger.warning(f"Could not write stats report: {e}")
        return None


def run(root: Path, interactive: bool = False) -> int:
    """Checks the repository, then watches and synchronizes it until stopped.

    Args:
        root (Path): The superproject root to watch.
        interactive (bool, optional): Log to stdout instead of stderr + file.

    Returns:
        int: The process exit code: 0 on shutdown, 1 on precondition failure.
    """
    root = root.resolve()
    config = Config.load(root)
    state_filter = setup_logging(interactive, config)

    if failure := run_checks(root, config):
        report_failure(failure)
        return 1

    write_startup_report(root, config)

    workspace = Workspace.discover(root, config)
    events: queue.Queue = queue.Queue()
    coordinator = Coordinator(
        workspace,
        config.daemon.batch_interval,
        collect=partial(drain_queue, events),
    )
    state_filter.source = lambda: coordinator.current_state.value

    if dirty := workspace.dirty_trees():
        coordinator.mark_dirty(
            f"uncommitted changes at startup in {', '.join(dirty)}"
        )

    loop = EventLoop(
        coordinator,
        events,
        pull_interval=config.daemon.pull_interval,
        status_interval=config.daemon.status_interval,
    )

    def stop_handler(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"Received signal {signum}. Shutting down...")
        loop.stop()

    signal.signal(signal.SIGTERM, stop_handler)
    signal.signal(signal.SIGINT, stop_handler)

    # PID File Management.
    try:
        PID_FILE.write_text(str(os.getpid()))
        # Ensure cleanup on exit.
        atexit.register(lambda: PID_FILE.unlink(missing_ok=True))
    except OSError as e:
        logger.warning(f"Could not write PID file: {e}")

    observer = start_observer(root, events.put)
    logger.info("Initialization complete. Watching for changes...")
    try:
        loop.run()
    finally:
        observer.stop()
        observer.join()
    return 0


def main() -> None:
    """Entry point for the `git-autosync-daemon` executable."""
    sys.exit(run(Path.cwd()))


if __name__ == "__main__":
    main()
