"""git-autosync: Batched commit/push and periodic pull for Git superprojects.

This package provides the command-line interface, the background daemon, and
the synchronization coordinator that keeps a superproject and its recursively
nested submodules in step with their remote without ever running a commit and
a pull at the same time.
"""

from . import (
    checks,
    cli,
    config,
    constants,
    coordinator,
    cycles,
    daemon,
    debounce,
    git_wrapper,
    repository,
    stats,
    watcher,
)

__all__ = [
    "checks",
    "cli",
    "config",
    "constants",
    "coordinator",
    "cycles",
    "daemon",
    "debounce",
    "git_wrapper",
    "repository",
    "stats",
    "watcher",
]
