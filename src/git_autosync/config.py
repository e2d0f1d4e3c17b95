import logging
import re
import socket
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_BRANCH,
    DEFAULT_REMOTE,
    LOCAL_CONFIG_NAME,
    STATS_FILE_NAME,
)

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '1hr', '30s') to seconds."""
    if isinstance(value, (int, float)):
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "ms": 0.001,
        "s": 1,
        "sec": 1,
        "m": 60,
        "min": 60,
        "h": 3600,
        "hr": 3600,
    }
    return num * multiplier[unit]


@dataclass
class CoreConfig:
    """Core synchronization settings.

    Attributes:
        remote_name (str): The git remote to push to and pull from.
        branch (str): The branch submodules must have checked out.
        author (str): Author tag written into commit records. Empty means
            the short hostname.
    """

    remote_name: str = DEFAULT_REMOTE
    branch: str = DEFAULT_BRANCH
    author: str = ""

    @property
    def author_tag(self) -> str:
        return self.author or socket.gethostname().split(".")[0]


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
        command_timeout (float): Seconds before a git command is abandoned.
    """

    max_log_size: int = 5 * 1024 * 1024
    command_timeout: float = 120.0


@dataclass
class DaemonConfig:
    """Daemon operational settings.

    Attributes:
        batch_interval (float): Quiet period in seconds before a commit cycle.
        pull_interval (float): Seconds between pull ticks.
        status_interval (float): Seconds between status log lines.
        preset (str | None): A configuration preset name (e.g. 'eager').
    """

    batch_interval: float = 15.0
    pull_interval: float = 300.0
    status_interval: float = 600.0
    preset: str | None = None

    def apply_preset(self) -> None:
        """Overwrites intervals based on the selected preset."""
        if self.preset == "eager":
            self.batch_interval = 5.0
            self.pull_interval = 60.0  # 1 min
        elif self.preset == "balanced":
            self.batch_interval = 15.0
            self.pull_interval = 300.0  # 5 mins
        elif self.preset == "lazy":
            self.batch_interval = 120.0  # 2 mins
            self.pull_interval = 1800.0  # 30 mins


@dataclass
class ChecksConfig:
    """Startup precondition settings.

    Attributes:
        require_ssh (bool): Reject submodule URLs that are not SSH.
        check_remote (bool): Require the remote to answer `ls-remote`.
        mark_safe_directories (bool): Register trees as git `safe.directory`.
    """

    require_ssh: bool = True
    check_remote: bool = True
    mark_safe_directories: bool = True


@dataclass
class ReportConfig:
    """Startup statistics report settings.

    Attributes:
        enabled (bool): Whether the report is written at startup.
        filename (str): Report file name, relative to the watched root.
    """

    enabled: bool = True
    filename: str = STATS_FILE_NAME


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        limits (LimitsConfig): Resource limits.
        daemon (DaemonConfig): Daemon behavior settings.
        checks (ChecksConfig): Startup precondition settings.
        report (ReportConfig): Statistics report settings.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    checks: ChecksConfig = field(default_factory=ChecksConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The watched root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Sections are copied so local overrides never leak into the cache.
        cached = cls._global_cache
        instance = replace(
            cached,
            core=replace(cached.core),
            limits=replace(cached.limits),
            daemon=replace(cached.daemon),
            checks=replace(cached.checks),
            report=replace(cached.report),
        )

        # 2. Load Local Config (if applicable)
        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section="tool.autosync")

        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.autosync').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            for name in ("core", "limits", "checks", "report"):
                if name in data:
                    setattr(
                        self,
                        name,
                        self._update_dataclass(name, getattr(self, name), data[name]),
                    )
            if "daemon" in data:
                self.daemon = self._update_dataclass(
                    "daemon", self.daemon, data["daemon"]
                )
                self.daemon.apply_preset()

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                # Route specific keys through our parsers
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in [
                    "batch_interval",
                    "pull_interval",
                    "status_interval",
                    "command_timeout",
                ]:
                    filtered_updates[k] = parse_time(v)
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
