"""The synchronization state machine.

The coordinator serializes "local change -> commit -> push" and
"remote poll -> pull" into a single timeline. Commit and pull cycles are
entered only through this class, so they can never overlap.
"""

import logging
import time
from collections.abc import Callable, Iterable
from enum import Enum
from typing import Protocol

from .constants import APP_NAME
from .cycles import CycleReport, PullReport
from .debounce import Debouncer
from .watcher import ChangeEvent

logger = logging.getLogger(APP_NAME)


class SyncState(Enum):
    """The single process-wide synchronization state."""

    IDLE = "idle"
    PENDING = "pending"
    COMMITTING = "committing"
    PULLING = "pulling"
    BLOCKED = "blocked"
    ERROR = "error"


class SyncTarget(Protocol):
    """What the coordinator drives; `cycles.Workspace` in production."""

    def commit_push(self) -> CycleReport: ...

    def pull(self) -> PullReport: ...

    def is_blocked(self) -> bool: ...


class Coordinator:
    """Owns the sync state, the pending commit timer, and the ordering rule.

    Attributes:
        last_commit (CycleReport | None): Outcome of the latest commit cycle.
        last_pull (PullReport | None): Outcome of the latest pull cycle.
    """

    def __init__(
        self,
        target: SyncTarget,
        batch_interval: float,
        clock: Callable[[], float] = time.monotonic,
        collect: Callable[[], Iterable[ChangeEvent]] | None = None,
    ):
        """Initializes the coordinator in the idle state.

        Args:
            target (SyncTarget): Runs the actual cycles.
            batch_interval (float): Debounce window in seconds.
            clock (Callable[[], float], optional): Monotonic time source.
            collect (Callable[[], Iterable[ChangeEvent]] | None, optional):
                Returns change events that arrived while a cycle was running.
                Called once after every cycle, before the next state is chosen.
        """
        self._target = target
        self._debouncer = Debouncer(batch_interval)
        self._clock = clock
        self._collect = collect or (lambda: ())
        self._state = SyncState.IDLE
        # Changes observed while committing, pulling or blocked.
        self._changes_seen = False
        self.last_commit: CycleReport | None = None
        self.last_pull: PullReport | None = None

    @property
    def current_state(self) -> SyncState:
        return self._state

    @property
    def pending_events(self) -> int:
        return self._debouncer.event_count

    def next_deadline(self) -> float | None:
        """The clock reading at which the pending commit fires, if armed."""
        return self._debouncer.deadline()

    def _transition(self, new: SyncState) -> None:
        if new is not self._state:
            logger.debug(f"STATE {self._state.value} -> {new.value}")
        self._state = new

    # --- Change events ---

    def submit_change(self, event: ChangeEvent) -> None:
        """Records a filesystem change and (re)arms the batch timer.

        Errors do not block the commit path: a change in the error state moves
        to pending like it does from idle. While a cycle runs, or while the
        tree is blocked, the change is only remembered.
        """
        logger.info(f"Detected {event.kind.value} on {event.path}")
        self._schedule()

    def mark_dirty(self, reason: str) -> None:
        """Schedules a commit for changes no filesystem event reported.

        Used at startup when the trees already hold uncommitted edits, so the
        first cycle commits them before any pull touches the tree.
        """
        logger.info(f"Scheduling batched commit: {reason}")
        self._schedule()

    def _schedule(self) -> None:
        if self._state in (SyncState.IDLE, SyncState.PENDING, SyncState.ERROR):
            self._debouncer.arm(self._clock())
            self._transition(SyncState.PENDING)
            logger.debug(
                f"Scheduled batched commit in {self._debouncer.interval:g}s"
            )
        else:
            self._changes_seen = True

    def poll(self) -> CycleReport | None:
        """Runs the Commit/Push Cycle if the batch timer has expired.

        Returns:
            CycleReport | None: The cycle outcome, or None if nothing fired.
        """
        if self._state is not SyncState.PENDING:
            return None
        if not self._debouncer.fire(self._clock()):
            return None
        return self._run_commit_cycle()

    def run_commit_now(self) -> CycleReport | None:
        """Manually triggers a Commit/Push Cycle, bypassing the batch window.

        Honors the same gating as the timer: refused while a cycle is running
        or while the tree is blocked.
        """
        if self._state not in (SyncState.IDLE, SyncState.PENDING, SyncState.ERROR):
            logger.info(f"SKIPPED commit: coordinator is {self._state.value}")
            return None
        self._debouncer.cancel()
        return self._run_commit_cycle()

    def _run_commit_cycle(self) -> CycleReport | None:
        self._transition(SyncState.COMMITTING)
        self._changes_seen = False

        report = None
        try:
            report = self._target.commit_push()
        except Exception:
            logger.exception("COMMIT CYCLE ERROR")
        self.last_commit = report

        self._drain()
        if self._changes_seen:
            self._rearm()
        else:
            self._transition(SyncState.IDLE)
        return report

    # --- Pull ticks ---

    def tick(self) -> PullReport | None:
        """Attempts a Pull Cycle; only the idle (or error-retry) state pulls.

        Returns:
            PullReport | None: The cycle outcome, or None if the tick was skipped.
        """
        state = self._state
        if state in (SyncState.PENDING, SyncState.COMMITTING, SyncState.PULLING):
            logger.info(f"SKIPPED pull: coordinator is {state.value}")
            return None

        if self._probe_blocked():
            if state is SyncState.BLOCKED:
                logger.info("SKIPPED pull: superproject still mid-merge or rebase")
            else:
                logger.warning(
                    "BLOCKED: superproject has a merge or rebase in progress. "
                    "Pulls are suspended until it is resolved."
                )
                self._transition(SyncState.BLOCKED)
            return None

        if state is SyncState.BLOCKED:
            logger.info("Superproject is no longer blocked. Resuming.")
            if self._changes_seen:
                self._rearm()
                return None
            self._transition(SyncState.IDLE)
        elif state is SyncState.ERROR:
            logger.info("Retrying pull after previous failure...")

        return self._run_pull_cycle()

    def run_pull_now(self) -> PullReport | None:
        """Manually triggers a Pull Cycle with the same gating as a tick."""
        logger.info("Manual pull requested.")
        return self.tick()

    def _probe_blocked(self) -> bool:
        try:
            return self._target.is_blocked()
        except Exception as e:
            logger.warning(f"Could not inspect repository state: {e}")
            return False

    def _run_pull_cycle(self) -> PullReport | None:
        self._transition(SyncState.PULLING)
        self._changes_seen = False

        report = None
        try:
            report = self._target.pull()
        except Exception:
            logger.exception("PULL CYCLE ERROR")
        self.last_pull = report

        failed = report is None or not report.superproject_ok
        if failed:
            logger.error("Pull cycle failed. Will retry on the next interval.")

        self._drain()
        if self._changes_seen:
            # Local edits win over the error state; the next idle tick retries.
            self._rearm()
        elif failed:
            self._transition(SyncState.ERROR)
        else:
            self._transition(SyncState.IDLE)
        return report

    # --- Helpers ---

    def _drain(self) -> None:
        for event in self._collect():
            self.submit_change(event)

    def _rearm(self) -> None:
        self._changes_seen = False
        self._debouncer.arm(self._clock())
        self._transition(SyncState.PENDING)
        logger.info("Changes arrived mid-cycle. Re-armed batched commit.")
