import os
from pathlib import Path

"""Global constants and path definitions for git-autosync.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the Git defaults shared by the daemon and the CLI.
"""

# --- Identity ---
APP_NAME = "git-autosync"
"""str: The human-readable application name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-autosync"
"""Path: The directory for runtime state data (logs, pid file)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

PID_FILE = STATE_DIR / "daemon.pid"
"""Path: The file path storing the daemon's process ID."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-autosync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "autosync.toml"
"""str: Per-repository configuration file, looked up in the watched root."""

# --- Git / Logic Constants ---
GIT_DIR_NAME = ".git"
"""str: The version-control metadata directory excluded from watching."""

ROOT_MARKER = "."
"""str: The node name used for the superproject."""

DEFAULT_BRANCH = "main"
"""str: The branch submodules must be on to be pushed or pulled."""

DEFAULT_REMOTE = "origin"

STATS_FILE_NAME = "repo-stats.txt"
"""str: The startup report written to the watched root."""

GIT_LOCK_FILES = [
    "MERGE_HEAD",
    "REBASE_HEAD",
    "CHERRY_PICK_HEAD",
    "BISECT_LOG",
    "rebase-merge",
    "rebase-apply",
]
"""
list[str]: Git internal files indicating an
active state (merge/rebase) that blocks automated commits and pulls.
"""

BATCH_SSH_COMMAND = "ssh -o BatchMode=yes"
"""str: SSH command used for network operations so they never prompt."""
