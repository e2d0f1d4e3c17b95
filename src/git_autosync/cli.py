import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import daemon
from .checks import run_checks
from .config import Config
from .constants import APP_NAME, LOG_FILE, PID_FILE
from .coordinator import Coordinator
from .cycles import Workspace
from .git_wrapper import GitRepo
from .stats import collect_stats, write_report

logger = logging.getLogger(APP_NAME)
console = Console()


def _daemon_pid() -> int | None:
    """Returns the PID of a live daemon, or None if none is running."""
    if not PID_FILE.exists():
        return None
    try:
        pid = int(PID_FILE.read_text().strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, OSError):
        return None


def _load(root: Path) -> Config:
    config = Config.load(root)
    daemon.setup_logging(interactive=True, config=config)
    return config


def check_repo(root: Path) -> int:
    """Runs the startup precondition checks and reports the result."""
    config = _load(root)
    if failure := run_checks(root, config):
        daemon.report_failure(failure)
        return 1
    console.print("[bold green]✔ Repository is ready to synchronize.[/bold green]")
    return 0


def show_stats(root: Path) -> int:
    """Writes the statistics report and renders it as a table."""
    config = _load(root)
    try:
        repo = GitRepo(root, timeout=config.limits.command_timeout)
    except ValueError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        return 1

    stats = collect_stats(repo)
    path = write_report(stats, root / config.report.filename)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Extension", style="cyan")
    table.add_column("Files", justify="right")
    for ext, count in stats.by_extension.most_common():
        table.add_row(ext, str(count))

    age = f"{stats.age_days} days" if stats.age_days is not None else "n/a"
    console.print(
        Panel(
            f"[bold]Total files:[/bold] {stats.total_files}\n"
            f"[bold]Repository age:[/bold] {age}",
            title="Repository Statistics",
            expand=False,
        )
    )
    console.print(table)
    console.print(f"[dim]Report written to {path}[/dim]")
    return 0


def _one_shot(root: Path, action: str) -> int:
    """Runs a single commit or pull cycle outside the daemon."""
    config = _load(root)
    if _daemon_pid():
        console.print(
            "[bold yellow]WARNING:[/bold yellow] The daemon is running. "
            "A manual cycle could overlap with its git operations."
        )
        return 1

    try:
        workspace = Workspace.discover(root, config)
    except (ValueError, RuntimeError) as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        return 1

    coordinator = Coordinator(workspace, config.daemon.batch_interval)
    if action == "commit":
        with console.status(
            "[bold blue]Committing and pushing...[/bold blue]", spinner="dots"
        ):
            report = coordinator.run_commit_now()
    else:
        with console.status("[bold blue]Pulling...[/bold blue]", spinner="dots"):
            report = coordinator.run_pull_now()

    if report is None:
        console.print(f"[bold red]ERROR:[/bold red] {action} cycle did not run.")
        return 1
    if report.failed:
        console.print(
            f"[bold yellow]DONE with failures:[/bold yellow] {report.summary()} "
            f"({', '.join(report.failed)})"
        )
        return 1
    console.print(f"[bold green]SUCCESS:[/bold green] {report.summary()}")
    return 0


def show_status(root: Path) -> int:
    """Displays daemon liveness and the state of every managed tree."""
    pid = _daemon_pid()
    system_content = Text()
    system_content.append("Daemon: ", style="bold")
    if pid:
        system_content.append(f"Active (PID {pid})", style="bold green")
    else:
        system_content.append("Stopped", style="bold red")
    console.print(Panel(system_content, title="System Status", expand=False))

    config = Config.load(root)
    try:
        workspace = Workspace.discover(root, config)
    except (ValueError, RuntimeError) as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        return 1

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Tree", style="cyan")
    table.add_column("Branch")
    table.add_column("Expected", style="dim")
    table.add_column("Pending", justify="right")
    table.add_column("State")

    for node in workspace.nodes:
        if not node.exists:
            table.add_row(
                node.name, "-", node.expected_branch, "-", "[red]Missing[/red]"
            )
            continue
        try:
            branch = node.repo.current_branch()
            pending = len(node.repo.status())
            busy = node.repo.is_busy()
        except RuntimeError as e:
            logger.debug(f"Failed to inspect {node.name}: {e}")
            table.add_row(
                node.name, "?", node.expected_branch, "?", "[bold red]Error[/bold red]"
            )
            continue

        if busy:
            state = "[bold yellow]Blocked[/bold yellow]"
        elif branch is None:
            state = "[yellow]Detached[/yellow]"
        elif not node.is_root and branch != node.expected_branch:
            state = "[yellow]Off-branch[/yellow]"
        else:
            state = "[green]OK[/green]"
        table.add_row(
            node.name, branch or "(detached)", node.expected_branch, str(pending), state
        )

    console.print(table)
    return 0


def tail_log() -> int:
    """Follows the daemon log file in real-time."""
    if not LOG_FILE.exists():
        console.print(f"[red]No log file found yet at {LOG_FILE}.[/red]")
        return 1

    console.print(f"Tailing [bold cyan]{LOG_FILE}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")
    return 0


class AutosyncHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands into logical categories with custom headers."""

    GROUPS = {
        "Daemon": ["run"],
        "One-off Cycles": ["now", "pull"],
        "Inspection": ["status", "check", "stats", "log"],
    }

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []
            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in self.GROUPS.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")
                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        formatter_class=AutosyncHelpFormatter,
        description="Watch a Git superproject and its submodules and keep them "
        "in sync with the remote.",
    )
    parser.add_argument(
        "--path",
        type=Path,
        default=None,
        help="Superproject root to operate on (default: current directory)",
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Watch and synchronize (default)")
    run_parser.add_argument(
        "--foreground",
        "-f",
        action="store_true",
        help="Log to stdout instead of the log file",
    )
    subparsers.add_parser("now", help="Commit and push all trees immediately")
    subparsers.add_parser("pull", help="Pull all trees immediately")
    subparsers.add_parser("status", help="Show daemon and tree status")
    subparsers.add_parser("check", help="Run the startup precondition checks")
    subparsers.add_parser("stats", help="Write the repository statistics report")
    subparsers.add_parser("log", help="Tail the daemon log file")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-autosync CLI."""
    args = build_parser().parse_args(argv)
    root = (args.path or Path.cwd()).resolve()

    if args.command == "now":
        code = _one_shot(root, "commit")
    elif args.command == "pull":
        code = _one_shot(root, "pull")
    elif args.command == "status":
        code = show_status(root)
    elif args.command == "check":
        code = check_repo(root)
    elif args.command == "stats":
        code = show_stats(root)
    elif args.command == "log":
        code = tail_log()
    else:
        # Default Action (no subcommand, or 'run')
        code = daemon.run(root, interactive=getattr(args, "foreground", False))

    sys.exit(code)


if __name__ == "__main__":
    main()
