"""Working trees under management: the superproject and its submodules."""

import logging
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, ROOT_MARKER
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class SubmoduleEntry:
    """One line of `git submodule status --recursive`.

    Attributes:
        prefix (str): ' ' in sync, '-' not initialized, '+' checked-out commit
            differs from the recorded pointer, 'U' merge conflicts.
        sha (str): The commit the submodule is at (or should be at).
        path (str): The submodule path relative to the superproject root.
        describe (str | None): The `git describe` decoration, if any.
    """

    prefix: str
    sha: str
    path: str
    describe: str | None = None

    @property
    def in_sync(self) -> bool:
        return self.prefix == " "


def parse_submodule_status(lines: list[str]) -> list[SubmoduleEntry]:
    """Parses the output of `git submodule status --recursive`.

    Args:
        lines (list[str]): Raw status lines, leading prefix column intact.

    Returns:
        list[SubmoduleEntry]: Entries in the order git listed them (parents
        before their nested submodules).
    """
    entries = []
    for line in lines:
        if not line.strip():
            continue
        prefix, rest = (line[0], line[1:]) if line[0] in " -+U" else (" ", line)
        parts = rest.strip().split(maxsplit=2)
        if len(parts) < 2:
            logger.warning(f"Unparseable submodule status line: {line!r}")
            continue
        describe = parts[2].strip("()") if len(parts) > 2 else None
        entries.append(SubmoduleEntry(prefix, parts[0], parts[1], describe))
    return entries


@dataclass(frozen=True)
class RepositoryNode:
    """One working tree under management.

    Attributes:
        name (str): The submodule path relative to the root, or '.' for the
            superproject.
        path (Path): The absolute filesystem location.
        expected_branch (str): The branch that must be checked out for push/pull.
        repo (GitRepo): The handle used to run git in this tree.
    """

    name: str
    path: Path
    expected_branch: str
    repo: GitRepo

    @property
    def is_root(self) -> bool:
        return self.name == ROOT_MARKER

    @property
    def exists(self) -> bool:
        return self.path.exists()


def discover_nodes(
    root: GitRepo, expected_branch: str
) -> tuple[RepositoryNode, list[RepositoryNode]]:
    """Enumerates the superproject and its recursively nested submodules.

    Runs once at startup; the resulting list is never re-read. Submodules without
    a working tree (not initialized) are left out with a warning.

    Args:
        root (GitRepo): The superproject handle.
        expected_branch (str): Branch required in every submodule.

    Returns:
        tuple[RepositoryNode, list[RepositoryNode]]: The superproject node and
        the submodule nodes in `git submodule status` order.
    """
    superproject = RepositoryNode(
        ROOT_MARKER, root.path, root.current_branch() or expected_branch, root
    )

    submodules = []
    for entry in parse_submodule_status(root.submodule_status()):
        sub_path = root.path / entry.path
        try:
            repo = GitRepo(sub_path, timeout=root.timeout)
        except ValueError:
            logger.warning(f"SKIPPED {entry.path}: submodule has no working tree.")
            continue
        submodules.append(RepositoryNode(entry.path, sub_path, expected_branch, repo))

    logger.info(
        f"Discovered {len(submodules)} submodule(s): "
        f"{', '.join(n.name for n in submodules) or 'none'}"
    )
    return superproject, submodules
