# src/repolink/util/errors.py: Typed exceptions and exit codes.
# This module defines the hierarchy of exceptions raised by the sync engine.
# Validation errors are user-actionable and carry a specific cause, while
# infrastructure errors (git, storage, network) carry enough context to be
# logged and reported as a generic failure. Every class maps to an exit code
# used by the CLI.

from typing import Optional, Sequence


class RepolinkError(Exception):
    """Base exception for the application."""
    exit_code = 1


class ConfigError(RepolinkError):
    """Configuration-related errors."""
    exit_code = 2


# --- Validation (user-actionable) ---

class RepoValidationError(RepolinkError):
    """A repository or its registration failed a precondition."""
    exit_code = 3


class PathNotFound(RepoValidationError):
    """The path does not exist."""


class PathUnreachable(RepoValidationError):
    """The path exists but cannot be accessed."""


class NotAGitRepository(RepoValidationError):
    """The path is not the root of a Git working tree."""


class NoCommitsYet(RepoValidationError):
    """The repository has no commits, so it has no fingerprint."""


class GitUserNotConfigured(RepoValidationError):
    """The repository has no user.name configured."""


class MissingProjectAssociation(RepoValidationError):
    """The repository record has no project id."""


class RepositoryNotFound(RepoValidationError):
    """No matching repository record in the local store."""


class FingerprintMismatch(RepoValidationError):
    """A local path does not hold the registered repository's history."""


# --- Infrastructure ---

class GitCommandFailed(RepolinkError):
    """A git invocation failed, timed out, or git is missing."""
    exit_code = 4

    def __init__(self, message: str, command: Sequence[str] = (), repo_path: Optional[str] = None):
        super().__init__(message)
        self.command = list(command)
        self.repo_path = repo_path


class StorageError(RepolinkError):
    """The local database rejected an operation."""
    exit_code = 5


class RemoteError(RepolinkError):
    """Base for failures talking to the backend."""
    exit_code = 6


class NetworkUnreachable(RemoteError):
    """The backend could not be reached at all."""


class RemoteAPIError(RemoteError):
    """The backend answered with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedRemoteResponse(RemoteError):
    """The backend answered with a payload that does not match the contract."""


class AuthenticationError(RepolinkError):
    """No usable session is available."""
    exit_code = 7


class ExtractionInProgress(RepolinkError):
    """Another process is extracting commits for the same repository."""
    exit_code = 8
