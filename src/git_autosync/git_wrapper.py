import logging
import os
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .constants import APP_NAME, BATCH_SSH_COMMAND, GIT_DIR_NAME, GIT_LOCK_FILES

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class StatusEntry:
    """A single entry of `git status --porcelain`.

    Attributes:
        code (str): The two-letter XY status code (e.g. ' M', '??').
        path (str): The path relative to the repository root. For renames
            this is the new path.
    """

    code: str
    path: str

    @classmethod
    def parse(cls, line: str) -> "StatusEntry":
        code, path = line[:2], line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        return cls(code, path.strip('"'))


class GitRepo:
    """A wrapper around the Git command-line interface for a specific working tree.

    This class provides methods to execute the Git operations the synchronizer
    needs using `subprocess`, abstracting away the command construction and
    output handling. It works for both the superproject and submodules (whose
    `.git` entry is a file rather than a directory).

    Attributes:
        path (Path): The file system path to the working tree root.
        timeout (float | None): Seconds before a command is abandoned.
    """

    def __init__(self, path: Path, timeout: float | None = None):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the working tree root directory.
            timeout (float | None, optional): Per-command timeout in seconds.

        Raises:
            ValueError: If the specified path does not contain a .git entry.
        """
        self.path = path
        self.timeout = timeout
        if not (self.path / GIT_DIR_NAME).exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(
        self,
        args: list[str],
        capture: bool = True,
        env: dict | None = None,
        strip: bool = True,
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to return stdout.
                                        Defaults to True.
            env (Optional[dict], optional): Environment variables to pass to the
                                            subprocess. Defaults to None.
            strip (bool, optional): Whether to strip leading whitespace too.
                                    Porcelain output needs it kept.
                                    Defaults to True.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            RuntimeError: If the git command fails or times out.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
                check=True,
                env=env,
                timeout=self.timeout,
            )
            if not capture:
                return ""
            return res.stdout.strip() if strip else res.stdout.rstrip()
        except subprocess.CalledProcessError as e:
            reason = (e.stderr or "").strip() or (e.stdout or "").strip() or e
            raise RuntimeError(f"Git error: {reason}") from e
        except subprocess.TimeoutExpired as e:
            raise RuntimeError(f"Git error: '{' '.join(args)}' timed out") from e

    @staticmethod
    def _network_env() -> dict[str, str]:
        env = os.environ.copy()
        env["GIT_SSH_COMMAND"] = BATCH_SSH_COMMAND
        return env

    def run(self, args: list[str]) -> str:
        """Executes an arbitrary git command and returns its output."""
        return self._run(args)

    def current_branch(self) -> str | None:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str | None: The branch name, or None when HEAD is detached.
        """
        return self._run(["branch", "--show-current"]) or None

    def status_porcelain(self) -> list[str]:
        """Returns the porcelain (machine-readable) status of the working tree.

        Submodules with only uncommitted content are left out; a submodule
        entry means its checked-out commit differs from the recorded pointer.

        Returns:
            list[str]: A list of status lines returned by `git status --porcelain`.
        """
        output = self._run(
            ["status", "--porcelain", "--ignore-submodules=dirty"], strip=False
        )
        return output.splitlines() if output else []

    def status(self) -> list[StatusEntry]:
        """Returns the modified-path entries of the working tree."""
        return [StatusEntry.parse(line) for line in self.status_porcelain()]

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working tree.
        """
        self._run(["add", "--all", "."], capture=False)

    def commit(self, message: str) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
        """
        self._run(["commit", "-m", message], capture=False)

    def checkout(self, branch: str) -> None:
        """Checks out the given branch.

        Args:
            branch (str): The target branch name.
        """
        self._run(["checkout", branch], capture=False)

    def push(self, remote: str, branch: str) -> None:
        """Pushes a branch to the remote without ever prompting for credentials.

        Args:
            remote (str): The remote name (e.g. 'origin').
            branch (str): The branch to push.
        """
        self._run(["push", remote, branch], env=self._network_env())

    def pull(self, remote: str, branch: str) -> None:
        """Fetches and merges a branch from the remote.

        Args:
            remote (str): The remote name (e.g. 'origin').
            branch (str): The branch to pull.
        """
        self._run(["pull", "--no-edit", remote, branch], env=self._network_env())

    def submodule_status(self) -> list[str]:
        """Returns the lines of `git submodule status --recursive`."""
        output = self._run(["submodule", "status", "--recursive"], strip=False)
        return output.splitlines() if output else []

    def remote_url(self, remote: str) -> str | None:
        """Returns the configured URL of a remote, or None if it is not set."""
        try:
            return self._run(["remote", "get-url", remote]) or None
        except RuntimeError as e:
            logger.debug(f"remote get-url failed for '{remote}': {e}")
            return None

    def ls_remote(self, remote: str) -> str:
        """Lists the remote's references. Raises if the remote is unreachable."""
        return self._run(["ls-remote", remote], env=self._network_env())

    def git_dir(self) -> Path:
        """Resolves the metadata directory, following `.git` files of submodules."""
        git_entry = self.path / GIT_DIR_NAME
        if git_entry.is_dir():
            return git_entry
        resolved = Path(self._run(["rev-parse", "--git-dir"]))
        return resolved if resolved.is_absolute() else self.path / resolved

    def is_busy(self) -> bool:
        """Determines if the tree is mid-merge, rebase, cherry-pick or bisect.

        Returns:
            bool: True if an operation marker is present, False otherwise.
        """
        try:
            git_dir = self.git_dir()
        except RuntimeError as e:
            logger.warning(f"Could not resolve git dir for {self.path.name}: {e}")
            return False
        return any((git_dir / f).exists() for f in GIT_LOCK_FILES)

    def last_commit_date(self) -> datetime | None:
        """Returns the committer date of HEAD, or None on an empty repository."""
        try:
            ts = self._run(["log", "-1", "--format=%ct"])
        except RuntimeError as e:
            logger.debug(f"No last commit in {self.path.name}: {e}")
            return None
        return datetime.fromtimestamp(int(ts), tz=timezone.utc) if ts else None

    def first_commit_date(self) -> datetime | None:
        """Returns the committer date of the oldest root commit.

        Histories with several roots (e.g. merged unrelated histories) report
        the earliest of them.
        """
        try:
            roots = self._run(["rev-list", "--max-parents=0", "HEAD"]).splitlines()
            stamps = [
                int(self._run(["show", "-s", "--format=%ct", sha])) for sha in roots
            ]
        except RuntimeError as e:
            logger.debug(f"No root commit in {self.path.name}: {e}")
            return None
        if not stamps:
            return None
        return datetime.fromtimestamp(min(stamps), tz=timezone.utc)
