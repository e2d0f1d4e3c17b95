"""One-time repository precondition checks run before the daemon starts.

Every check returns a `PreconditionFailure` instead of exiting; the caller
decides whether to terminate the process.
"""

import configparser
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .config import Config
from .constants import APP_NAME
from .git_wrapper import GitRepo
from .repository import parse_submodule_status

logger = logging.getLogger(APP_NAME)

_SCP_LIKE = re.compile(r"^[\w.-]+@[\w.-]+:")


class FailureKind(Enum):
    NOT_A_REPOSITORY = "not_a_repository"
    NON_SSH_URL = "non_ssh_url"
    BROKEN_SUBMODULE = "broken_submodule"
    REMOTE_UNREACHABLE = "remote_unreachable"


@dataclass(frozen=True)
class PreconditionFailure:
    """A fatal startup misconfiguration.

    Attributes:
        kind (FailureKind): Which check failed.
        message (str): What is wrong.
        hint (str | None): A suggested fix, if one is known.
    """

    kind: FailureKind
    message: str
    hint: str | None = None


def is_ssh_url(url: str) -> bool:
    """True for `ssh://` URLs and scp-like `user@host:path` forms."""
    return url.startswith("ssh://") or bool(_SCP_LIKE.match(url))


def read_gitmodules(root: Path) -> dict[str, dict[str, str]]:
    """Parses `.gitmodules` into {submodule name: {key: value}}.

    Returns:
        dict[str, dict[str, str]]: Empty when the file does not exist.
    """
    gitmodules = root / ".gitmodules"
    if not gitmodules.exists():
        return {}

    parser = configparser.ConfigParser(interpolation=None, strict=False)
    parser.read(gitmodules, encoding="utf-8")
    modules = {}
    for section in parser.sections():
        match = re.match(r'^submodule\s+"(.+)"$', section)
        if match:
            modules[match.group(1)] = {
                k.strip(): v.strip() for k, v in parser.items(section)
            }
    return modules


def check_repository(
    root: Path, config: Config
) -> tuple[GitRepo | None, PreconditionFailure | None]:
    logger.info(f"Verifying '{root}' is a Git repository...")
    try:
        repo = GitRepo(root, timeout=config.limits.command_timeout)
    except ValueError:
        return None, PreconditionFailure(
            FailureKind.NOT_A_REPOSITORY,
            f"'{root}' is not a Git repository.",
            "Run the daemon from the root of a Git working tree.",
        )
    logger.info("Git repository confirmed.")
    return repo, None


def report_uncommitted(repo: GitRepo) -> int:
    """Logs (but tolerates) uncommitted changes in the superproject.

    Returns:
        int: The number of modified entries found.
    """
    logger.info("Checking for uncommitted changes in superproject...")
    try:
        entries = repo.status()
    except RuntimeError as e:
        logger.warning(f"Could not read superproject status: {e}")
        return 0

    if entries:
        logger.warning(f"You have {len(entries)} uncommitted changes:")
        for entry in entries:
            logger.warning(f"  - {entry.path}")
    else:
        logger.info("No uncommitted changes detected in superproject.")
    return len(entries)


def check_submodule_urls(root: Path) -> PreconditionFailure | None:
    modules = read_gitmodules(root)
    if not modules:
        logger.info("No .gitmodules file found (no submodules to check URLs).")
        return None

    logger.info("Parsing .gitmodules for URL schemes...")
    for name, settings in modules.items():
        url = settings.get("url", "")
        if not is_ssh_url(url):
            return PreconditionFailure(
                FailureKind.NON_SSH_URL,
                f"Invalid submodule URL detected for '{name}': {url or '<missing>'}",
                "Submodule URLs must use SSH. Fix .gitmodules, then run "
                "`git submodule sync --recursive && git submodule update --init "
                "--recursive`. Also check `git config --local --list` for URL "
                "overrides.",
            )
        logger.info(f"SSH URL OK: {url}")
    return None


def check_submodule_status(repo: GitRepo) -> PreconditionFailure | None:
    logger.info("Retrieving submodule status...")
    try:
        entries = parse_submodule_status(repo.submodule_status())
    except RuntimeError as e:
        return PreconditionFailure(
            FailureKind.BROKEN_SUBMODULE,
            f"Could not read submodule status: {e}",
            "Check .gitmodules for syntax errors.",
        )

    if not entries:
        logger.info("No submodules configured.")
        return None

    for entry in entries:
        if not entry.in_sync:
            return PreconditionFailure(
                FailureKind.BROKEN_SUBMODULE,
                f"Submodule issue detected: {entry.prefix}{entry.sha} {entry.path}",
                "Run `git submodule update --init --recursive` to sync "
                "submodule commits.",
            )
        logger.info(f"Submodule OK: {entry.path} ({entry.sha[:8]})")
    return None


def check_remote(repo: GitRepo, remote: str) -> PreconditionFailure | None:
    logger.info(f"Checking remote connectivity ({repo.remote_url(remote) or remote})...")
    try:
        repo.ls_remote(remote)
    except RuntimeError as e:
        return PreconditionFailure(
            FailureKind.REMOTE_UNREACHABLE,
            f"Unable to reach remote '{remote}': {e}",
            "Check your network or VPN connection and SSH keys.",
        )
    logger.info("Remote repository reachable.")
    return None


def mark_safe_directories(repo: GitRepo, root: Path) -> list[Path]:
    """Registers the superproject and every submodule path as `safe.directory`.

    Avoids git's "dubious ownership" refusal when the daemon runs as a
    different user than the one owning the checkout. Paths already registered
    are not added twice; failures are warnings only.

    Returns:
        list[Path]: The paths newly registered.
    """
    try:
        known = set(
            repo.run(["config", "--global", "--get-all", "safe.directory"]).splitlines()
        )
    except RuntimeError:
        # Exit code 1 simply means the key is not set yet.
        known = set()

    candidates = []
    for settings in read_gitmodules(root).values():
        sub_rel = settings.get("path")
        if not sub_rel:
            continue
        sub_full = root / sub_rel
        if sub_full.exists():
            candidates.append(sub_full)
        else:
            logger.warning(f"Skipping nonexistent submodule path: {sub_rel}")
    candidates.append(root)

    marked = []
    for path in candidates:
        if str(path) in known or "*" in known:
            continue
        try:
            repo.run(["config", "--global", "--add", "safe.directory", str(path)])
            logger.info(f"Marked safe.directory: {path}")
            marked.append(path)
        except RuntimeError as e:
            logger.warning(f"Could not mark {path} safe: {e}")
    return marked


def run_checks(root: Path, config: Config) -> PreconditionFailure | None:
    """Runs every startup check in order, stopping at the first failure.

    Args:
        root (Path): The watched superproject root.
        config (Config): The active configuration.

    Returns:
        PreconditionFailure | None: The first fatal problem, or None if the
        repository is ready to be synchronized.
    """
    repo, failure = check_repository(root, config)
    if failure or repo is None:
        return failure

    report_uncommitted(repo)

    if config.checks.require_ssh and (failure := check_submodule_urls(root)):
        return failure

    if failure := check_submodule_status(repo):
        return failure

    if config.checks.check_remote and (
        failure := check_remote(repo, config.core.remote_name)
    ):
        return failure

    if config.checks.mark_safe_directories:
        mark_safe_directories(repo, root)

    return None
