"""The Commit/Push and Pull cycles run across every managed working tree."""

import datetime
import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

from .config import Config
from .constants import APP_NAME
from .git_wrapper import GitRepo
from .repository import RepositoryNode, discover_nodes

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class CommitRecord:
    """The structured payload of every automated commit message.

    The same JSON shape is written in the superproject and in submodules so a
    single parser can audit history across all trees.

    Attributes:
        author (str): Synthetic author tag identifying the syncing machine.
        date (str): Local timestamp, 'YYYY-MM-DD HH:MM:SS'.
        num_files (int): Number of changed paths committed in this tree.
        num_submodules (int | None): Submodule pointers advanced (superproject only).
    """

    author: str
    date: str
    num_files: int
    num_submodules: int | None = None

    @classmethod
    def create(
        cls, author: str, num_files: int, num_submodules: int | None = None
    ) -> "CommitRecord":
        timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        return cls(author, timestamp, num_files, num_submodules)

    def to_message(self) -> str:
        payload = {k: v for k, v in asdict(self).items() if v is not None}
        return json.dumps(payload)

    @classmethod
    def parse(cls, message: str) -> "CommitRecord | None":
        """Parses a commit message back into a record.

        Returns:
            CommitRecord | None: The record, or None if the message was not
            written by the synchronizer.
        """
        try:
            data = json.loads(message)
            return cls(
                author=data["author"],
                date=data["date"],
                num_files=int(data["num_files"]),
                num_submodules=data.get("num_submodules"),
            )
        except (ValueError, TypeError, KeyError):
            return None


@dataclass
class CycleReport:
    """Outcome of one Commit/Push Cycle, by tree name."""

    committed: list[str] = field(default_factory=list)
    pushed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{len(self.committed)} committed, {len(self.pushed)} pushed, "
            f"{len(self.skipped)} skipped, {len(self.failed)} failed"
        )


@dataclass
class PullReport:
    """Outcome of one Pull Cycle.

    Attributes:
        superproject_ok (bool): False when the superproject pull failed; the
            only failure that escalates to the coordinator.
    """

    superproject_ok: bool = True
    pulled: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{len(self.pulled)} pulled, {len(self.skipped)} skipped, "
            f"{len(self.failed)} failed"
        )


class Workspace:
    """The superproject plus its submodules, and the cycles run over them.

    Attributes:
        superproject (RepositoryNode): The root working tree.
        submodules (list[RepositoryNode]): Submodules in startup order.
        config (Config): The active configuration.
    """

    def __init__(
        self,
        superproject: RepositoryNode,
        submodules: list[RepositoryNode],
        config: Config,
    ):
        self.superproject = superproject
        self.submodules = list(submodules)
        self.config = config

        # Nested submodules commit before the submodule containing them, so
        # the parent's commit picks up their new pointer.
        self.commit_order = sorted(self.submodules, key=lambda n: -self._nesting(n))

    @classmethod
    def discover(cls, root: Path, config: Config) -> "Workspace":
        repo = GitRepo(root, timeout=config.limits.command_timeout)
        superproject, submodules = discover_nodes(repo, config.core.branch)
        return cls(superproject, submodules, config)

    def _nesting(self, node: RepositoryNode) -> int:
        return sum(
            1 for other in self.submodules if node.name.startswith(other.name + "/")
        )

    @property
    def remote(self) -> str:
        return self.config.core.remote_name

    @property
    def nodes(self) -> list[RepositoryNode]:
        return [self.superproject, *self.submodules]

    def is_blocked(self) -> bool:
        """Whether the superproject is mid-merge/rebase and must not be touched."""
        return self.superproject.repo.is_busy()

    def dirty_trees(self) -> list[str]:
        """Names of the trees that currently hold uncommitted changes.

        Trees whose status cannot be read are left out with a warning.
        """
        dirty = []
        for node in self.nodes:
            if not node.exists:
                continue
            try:
                if node.repo.status():
                    dirty.append(node.name)
            except RuntimeError as e:
                logger.warning(f"Could not read status of {node.name}: {e}")
        return dirty

    # --- Commit / Push ---

    def commit_push(self) -> CycleReport:
        """Runs one Commit/Push Cycle: every submodule, then the superproject.

        Failures are isolated per tree and never abort the cycle.

        Returns:
            CycleReport: What happened to each tree.
        """
        logger.info("Performing batched commit...")
        report = CycleReport()

        for node in self.commit_order:
            try:
                self._commit_submodule(node, report)
            except Exception:
                logger.exception(f"CYCLE ERROR {node.name}")
                report.failed.append(node.name)

        try:
            self._commit_superproject(report)
        except Exception:
            logger.exception("CYCLE ERROR superproject")
            report.failed.append(self.superproject.name)

        logger.info(f"Commit cycle done: {report.summary()}")
        return report

    def _skip_reason(self, node: RepositoryNode) -> str | None:
        if not node.exists:
            return "Path missing"
        if node.repo.is_busy():
            return "Merge or rebase in progress"
        return None

    def _commit_submodule(self, node: RepositoryNode, report: CycleReport) -> None:
        repo = node.repo

        if reason := self._skip_reason(node):
            logger.warning(f"SKIPPED {node.name}: {reason}")
            report.skipped.append(node.name)
            return

        entries = repo.status()
        if not entries:
            logger.info(f"No changes to commit in submodule {node.name}")
            report.skipped.append(node.name)
            return

        repo.add_all()
        message = CommitRecord.create(
            self.config.core.author_tag, num_files=len(entries)
        ).to_message()
        try:
            repo.commit(message)
            logger.info(f"COMMITTED {node.name}: {message}")
            report.committed.append(node.name)
        except RuntimeError as e:
            logger.warning(f"COMMIT ERROR {node.name}: {e}")
            report.failed.append(node.name)
            return

        if repo.current_branch() != node.expected_branch:
            try:
                repo.checkout(node.expected_branch)
                logger.info(f"Checked out '{node.expected_branch}' in {node.name}")
            except RuntimeError as e:
                logger.warning(f"CHECKOUT ERROR {node.name}: {e}. Push skipped.")
                report.failed.append(node.name)
                return

        self._push(node, node.expected_branch, report)

    def _commit_superproject(self, report: CycleReport) -> None:
        node = self.superproject
        repo = node.repo

        if repo.is_busy():
            logger.warning("SKIPPED superproject: Merge or rebase in progress")
            report.skipped.append(node.name)
            return

        entries = repo.status()
        if not entries:
            logger.info("No superproject or submodule pointer changes to commit")
            report.skipped.append(node.name)
            return

        submodule_names = {n.name for n in self.submodules}
        pointers = sum(1 for e in entries if e.path in submodule_names)

        repo.add_all()
        message = CommitRecord.create(
            self.config.core.author_tag,
            num_files=len(entries) - pointers,
            num_submodules=pointers,
        ).to_message()
        try:
            repo.commit(message)
            logger.info(f"COMMITTED superproject: {message}")
            report.committed.append(node.name)
        except RuntimeError as e:
            logger.warning(f"COMMIT ERROR superproject: {e}")
            report.failed.append(node.name)
            return

        branch = repo.current_branch()
        if not branch:
            logger.warning("Superproject is in a detached HEAD; skipping push.")
            report.skipped.append(node.name)
            return

        self._push(node, branch, report)

    def _push(self, node: RepositoryNode, branch: str, report: CycleReport) -> None:
        try:
            node.repo.push(self.remote, branch)
            logger.info(f"PUSHED {node.name} -> {self.remote}/{branch}")
            report.pushed.append(node.name)
        except RuntimeError as e:
            # The local commit stays; the next cycle pushes it along.
            logger.warning(f"PUSH ERROR {node.name}: {e}")
            report.failed.append(node.name)

    # --- Pull ---

    def pull(self) -> PullReport:
        """Runs one Pull Cycle: the superproject, then submodules on their branch.

        Returns:
            PullReport: Per-tree outcome; `superproject_ok` is False if the
            superproject pull failed.
        """
        logger.info("Pulling remote updates...")
        report = PullReport()

        try:
            self._pull_superproject(report)
        except Exception:
            logger.exception("PULL ERROR superproject")
            report.superproject_ok = False
            report.failed.append(self.superproject.name)

        for node in self.submodules:
            try:
                self._pull_submodule(node, report)
            except Exception:
                logger.exception(f"PULL ERROR {node.name}")
                report.failed.append(node.name)

        logger.info(f"Pull cycle done: {report.summary()}")
        return report

    def _pull_superproject(self, report: PullReport) -> None:
        node = self.superproject
        branch = node.repo.current_branch()
        if not branch:
            logger.warning("Superproject is in a detached HEAD; skipping pull.")
            report.skipped.append(node.name)
            return

        try:
            node.repo.pull(self.remote, branch)
            logger.info(f"PULLED superproject <- {self.remote}/{branch}")
            report.pulled.append(node.name)
        except RuntimeError as e:
            logger.warning(f"PULL ERROR superproject: {e}")
            report.superproject_ok = False
            report.failed.append(node.name)

    def _pull_submodule(self, node: RepositoryNode, report: PullReport) -> None:
        if not node.exists:
            logger.warning(f"SKIPPED {node.name}: Path missing")
            report.skipped.append(node.name)
            return

        branch = node.repo.current_branch()
        if branch != node.expected_branch:
            logger.info(
                f"SKIPPED {node.name}: on '{branch or 'detached HEAD'}', "
                f"not '{node.expected_branch}'"
            )
            report.skipped.append(node.name)
            return

        try:
            node.repo.pull(self.remote, node.expected_branch)
            logger.info(f"PULLED {node.name} <- {self.remote}/{node.expected_branch}")
            report.pulled.append(node.name)
        except RuntimeError as e:
            logger.warning(f"PULL ERROR {node.name}: {e}")
            report.failed.append(node.name)
