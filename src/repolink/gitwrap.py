# src/repolink/gitwrap.py: Safe subprocess wrappers for Git.
# This module provides the repository query capability used by the rest of
# the application: validating a working tree and deriving its fingerprint,
# classifying reachability, and reading branches, filtered logs, name-status
# diffs and stat summaries. Every call goes through run_git, which applies a
# timeout, disables interactive prompts and maps failures to
# GitCommandFailed. The RepositoryInspector interface keeps the extraction
# engine independent of the 'git' binary.

import os
import subprocess
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import List, NamedTuple, Optional, Tuple

from .models import HealthStatus
from .util.errors import (
    GitCommandFailed,
    NoCommitsYet,
    NotAGitRepository,
    PathNotFound,
    PathUnreachable,
)
from .util.log import get_logger

logger = get_logger(__name__)

# Field and record separators for machine-readable 'git log' output.
_FS = "\x1f"
_RS = "\x1e"
_LOG_FORMAT = f"--format=%H{_FS}%cI{_FS}%P{_FS}%an{_FS}%B{_RS}"

_NOT_A_REPO_MARKERS = ("not a git repository", "must be run in a work tree")


class LogEntry(NamedTuple):
    hash: str
    date: datetime
    message: str
    parent_hashes: List[str]
    author_name: str


class NameStatus(NamedTuple):
    status_code: str
    file_name: str


# --- Core Git Execution ---

def run_git(
    args: List[str],
    cwd: Path,
    timeout: int = 60,
    check: bool = True,
    env: Optional[dict] = None,
) -> subprocess.CompletedProcess:
    """
    Runs a git command in a specified directory with a timeout and error handling.

    Args:
        args: A list of arguments for the git command.
        cwd: The working directory for the command.
        timeout: The command timeout in seconds.
        check: If True, raises GitCommandFailed on a non-zero exit code.
        env: An optional dictionary of environment variables.

    Returns:
        The CompletedProcess object.

    Raises:
        GitCommandFailed: If git is not found, the command fails, or it times out.
    """
    command = ["git"] + args
    if not cwd.is_dir():
        raise GitCommandFailed(f"Git working directory not found: {cwd}", command, str(cwd))

    base_env = os.environ.copy()
    base_env["GIT_TERMINAL_PROMPT"] = "0"
    # Keep output stable regardless of the user's locale.
    base_env["LC_ALL"] = "C"
    if env:
        base_env.update(env)

    try:
        return subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=check,
            env=base_env,
        )
    except FileNotFoundError:
        raise GitCommandFailed(
            "The 'git' command was not found. Is it installed and in your PATH?", command, str(cwd)
        )
    except subprocess.CalledProcessError as e:
        error_message = (e.stderr or "").strip() or (e.stdout or "").strip()
        logger.error("git command failed in %s: %s: %s", cwd, " ".join(command), error_message)
        raise GitCommandFailed(
            f"Git command '{' '.join(args)}' failed: {error_message}", command, str(cwd)
        )
    except subprocess.TimeoutExpired:
        logger.error("git command timed out in %s: %s", cwd, " ".join(command))
        raise GitCommandFailed(
            f"Git command '{' '.join(args)}' timed out after {timeout} seconds.", command, str(cwd)
        )


def format_since(moment: datetime) -> str:
    """Render a watermark in a date format every git version parses."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S +0000")


def parse_log_output(output: str) -> List[LogEntry]:
    entries = []
    for record in output.split(_RS):
        record = record.lstrip("\r\n")
        if not record.strip():
            continue
        fields = record.split(_FS, 4)
        if len(fields) != 5:
            raise ValueError(f"Unexpected git log record: {record[:80]!r}")
        commit_hash, date, parents, author, message = fields
        entries.append(LogEntry(
            hash=commit_hash.strip(),
            date=datetime.fromisoformat(date.strip()),
            message=message.strip(),
            parent_hashes=parents.split(),
            author_name=author,
        ))
    return entries


def parse_name_status(output: str) -> List[NameStatus]:
    result = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        if len(parts) < 2:
            continue
        # Renames and copies list 'old<TAB>new'; the new name is what the commit holds.
        result.append(NameStatus(status_code=parts[0], file_name=parts[-1]))
    return result


# --- Repository Query Capability ---

class RepositoryInspector(ABC):
    """Read-only queries against a local repository."""

    @abstractmethod
    def validate_local_repository(self, path: str) -> str:
        """Return the repository fingerprint or raise a validation error."""

    @abstractmethod
    def check_repository_reachable(self, path: str) -> Tuple[HealthStatus, str]:
        """Classify reachability without raising."""

    @abstractmethod
    def root_commit(self, path: str) -> Optional[str]:
        pass

    @abstractmethod
    def config_user_name(self, path: str) -> str:
        pass

    @abstractmethod
    def list_local_branches(self, path: str) -> List[str]:
        pass

    @abstractmethod
    def log_commits(
        self, path: str, branch: str, author: str, since: Optional[datetime] = None
    ) -> List[LogEntry]:
        pass

    @abstractmethod
    def diff_tree_name_status(self, path: str, commit_hash: str) -> List[NameStatus]:
        pass

    @abstractmethod
    def show_stat_summary(self, path: str, commit_hash: str) -> str:
        pass


class GitCliInspector(RepositoryInspector):
    """
    RepositoryInspector backed by the 'git' executable.
    """

    def __init__(self, timeout: int = 60, stat_width: int = 200):
        self.timeout = timeout
        self.stat_width = stat_width

    def _git(self, path: str, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        return run_git(args, cwd=Path(path), timeout=self.timeout, check=check)

    def validate_local_repository(self, path: str) -> str:
        """
        Validates that a path exists, is the root of a Git working tree and has
        at least one commit.

        Returns:
            The hash of the root commit, which identifies the repository
            across moves and re-clones.

        Raises:
            PathNotFound, PathUnreachable, NotAGitRepository, NoCommitsYet,
            GitCommandFailed.
        """
        if not path or not str(path).strip():
            raise PathNotFound("Validation failed: a repository path is required.")

        try:
            os.stat(path)
        except FileNotFoundError:
            logger.warning("Path validation failed for %s: does not exist", path)
            raise PathNotFound(f"Validation failed: the path '{path}' does not exist.")
        except OSError as e:
            logger.warning("Path validation failed for %s: %s", path, e)
            raise PathUnreachable(f"Validation failed: the path '{path}' is not accessible: {e}")

        if not os.path.isdir(path):
            raise NotAGitRepository(f"Validation failed: '{path}' is not a directory.")
        if not os.access(path, os.R_OK | os.X_OK):
            raise PathUnreachable(f"Validation failed: the path '{path}' is not accessible.")

        toplevel = self._git(path, ["rev-parse", "--show-toplevel"], check=False)
        if toplevel.returncode != 0:
            stderr = toplevel.stderr.lower()
            if any(marker in stderr for marker in _NOT_A_REPO_MARKERS):
                raise NotAGitRepository(
                    f"Validation failed: '{path}' is not a valid Git repository."
                )
            raise GitCommandFailed(
                f"Git command 'rev-parse --show-toplevel' failed: {toplevel.stderr.strip()}",
                ["git", "rev-parse", "--show-toplevel"],
                path,
            )
        if Path(toplevel.stdout.strip()).resolve() != Path(path).resolve():
            raise NotAGitRepository(
                f"Validation failed: '{path}' is inside a Git repository but is not its root "
                f"('{toplevel.stdout.strip()}')."
            )

        fingerprint = self.root_commit(path)
        if not fingerprint:
            raise NoCommitsYet(
                "Validation failed: the repository must have at least one commit before registration."
            )
        return fingerprint

    def check_repository_reachable(self, path: str) -> Tuple[HealthStatus, str]:
        try:
            os.stat(path)
        except FileNotFoundError:
            return HealthStatus.MISSING, "Path does not exist."
        except OSError as e:
            return HealthStatus.MOVED, f"Path is not accessible: {e}"
        if not os.path.isdir(path):
            return HealthStatus.DELETED, "Path is not a directory."

        try:
            result = self._git(path, ["rev-parse", "--show-toplevel"], check=False)
        except GitCommandFailed as e:
            return HealthStatus.MOVED, str(e)

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if any(marker in stderr.lower() for marker in _NOT_A_REPO_MARKERS):
                return HealthStatus.DELETED, "Not a valid Git repository."
            return HealthStatus.MOVED, stderr or "Git could not read the repository."
        # A folder nested inside another working tree is not that repository.
        if Path(result.stdout.strip()).resolve() != Path(path).resolve():
            return HealthStatus.DELETED, "Not the root of a Git repository."
        return HealthStatus.ACTIVE, ""

    def root_commit(self, path: str) -> Optional[str]:
        head = self._git(path, ["rev-parse", "--verify", "--quiet", "HEAD"], check=False)
        if head.returncode != 0:
            return None
        result = self._git(path, ["rev-list", "--max-parents=0", "HEAD"])
        lines = result.stdout.splitlines()
        return lines[0].strip() if lines and lines[0].strip() else None

    def config_user_name(self, path: str) -> str:
        # 'git config' exits with 1 when the key is unset.
        result = self._git(path, ["config", "user.name"], check=False)
        if result.returncode not in (0, 1):
            raise GitCommandFailed(
                f"Git command 'config user.name' failed: {result.stderr.strip()}",
                ["git", "config", "user.name"],
                path,
            )
        return result.stdout.strip()

    def list_local_branches(self, path: str) -> List[str]:
        result = self._git(path, ["for-each-ref", "--format=%(refname:short)", "refs/heads/"])
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def log_commits(
        self, path: str, branch: str, author: str, since: Optional[datetime] = None
    ) -> List[LogEntry]:
        """
        Commits on a branch whose author name equals 'author' exactly.

        '--author' is a substring match in git, so it only narrows the walk;
        the exact comparison happens on the parsed '%an' field.
        """
        args = ["log", f"refs/heads/{branch}", f"--author={author}", "--fixed-strings", _LOG_FORMAT]
        if since is not None:
            args.append(f"--since={format_since(since)}")
        args.append("--")
        result = self._git(path, args)
        try:
            entries = parse_log_output(result.stdout)
        except ValueError as e:
            raise GitCommandFailed(str(e), ["git"] + args, path)
        return [entry for entry in entries if entry.author_name == author]

    def diff_tree_name_status(self, path: str, commit_hash: str) -> List[NameStatus]:
        result = self._git(
            path, ["diff-tree", "--root", "--no-commit-id", "-r", "--name-status", commit_hash]
        )
        return parse_name_status(result.stdout)

    def show_stat_summary(self, path: str, commit_hash: str) -> str:
        result = self._git(path, ["show", f"--stat={self.stat_width}", "--format=", commit_hash])
        return result.stdout
