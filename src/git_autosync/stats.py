"""Read-only repository statistics written once at startup."""

import datetime
import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from .constants import APP_NAME, GIT_DIR_NAME
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


@dataclass
class RepoStats:
    """A snapshot of file and commit metadata.

    Attributes:
        total_files (int): Files under the root, metadata directories excluded.
        by_extension (Counter[str]): File count per lowercase extension
            ('no_ext' for files without one).
        last_commit (datetime | None): Committer date of HEAD.
        age_days (int | None): Whole days since the first commit.
        generated (datetime): When the snapshot was taken.
    """

    total_files: int
    by_extension: Counter = field(default_factory=Counter)
    last_commit: datetime.datetime | None = None
    age_days: int | None = None
    generated: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )


def iter_files(root: Path):
    """Yields every file under `root`, skipping `.git` directories and files."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d != GIT_DIR_NAME]
        for name in filenames:
            if name != GIT_DIR_NAME:
                yield Path(dirpath) / name


def collect_stats(repo: GitRepo, root: Path | None = None) -> RepoStats:
    """Summarizes the working tree and its history.

    Args:
        repo (GitRepo): The superproject handle, used for commit dates.
        root (Path | None, optional): Directory to scan. Defaults to the repo root.

    Returns:
        RepoStats: The collected statistics.
    """
    root = root or repo.path
    counts: Counter = Counter()
    for file in iter_files(root):
        counts[file.suffix.lower() or "no_ext"] += 1

    stats = RepoStats(total_files=sum(counts.values()), by_extension=counts)
    stats.last_commit = repo.last_commit_date()
    if first := repo.first_commit_date():
        stats.age_days = (stats.generated - first).days
    return stats


def render_report(stats: RepoStats) -> str:
    def stamp(value: datetime.datetime | None) -> str:
        return value.isoformat(timespec="seconds") if value else "n/a"

    age = f"{stats.age_days} days" if stats.age_days is not None else "n/a"
    lines = [
        "Repository Statistics Report",
        "===========================",
        f"Generated on: {stamp(stats.generated)}",
        "",
        f"Total files: {stats.total_files}",
        f"Last commit date: {stamp(stats.last_commit)}",
        f"Repository age: {age} since first commit",
        "Files by extension:",
    ]
    ranked = sorted(stats.by_extension.items(), key=lambda kv: (-kv[1], kv[0]))
    lines.extend(f"  {ext}: {count}" for ext, count in ranked)
    return "\n".join(lines) + "\n"


def write_report(stats: RepoStats, path: Path) -> Path:
    """Writes (overwriting) the plain-text report."""
    path.write_text(render_report(stats), encoding="utf-8")
    logger.info(f"Stats saved to {path}")
    return path
