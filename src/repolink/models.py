# src/repolink/models.py: Pydantic models for the sync domain.
# This module defines the typed records that flow between the git inspector,
# the extraction engine, the local store, the reconciliation engine and the
# backend client. Models that travel over the wire use camelCase aliases so
# that the Python side stays snake_case.

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RepositoryStatus(str, Enum):
    """Filesystem/Git reachability of a registered repository."""
    ACTIVE = "active"
    MISSING = "missing"
    MOVED = "moved"
    DELETED = "deleted"


class HealthStatus(str, Enum):
    """Outcome of a health check; a superset of RepositoryStatus."""
    ACTIVE = "active"
    MISSING = "missing"
    MOVED = "moved"
    DELETED = "deleted"
    FINGERPRINT_MISMATCH = "fingerprint_mismatch"

    def as_repository_status(self) -> RepositoryStatus:
        """The status persisted and reported to the backend."""
        if self is HealthStatus.FINGERPRINT_MISMATCH:
            return RepositoryStatus.MOVED
        return RepositoryStatus(self.value)


class Permission(str, Enum):
    READ = "read"
    READ_WRITE = "read-write"


class SyncStatus(str, Enum):
    """Per-repository annotation in the consolidated view."""
    SYNCED = "synced"
    MISSING_REMOTE = "missing_remote"
    MISSING_LOCAL = "missing_local"
    OFFLINE = "offline"


class ViewStatus(str, Enum):
    SYNCED = "synced"
    REQUIRES_ACTION = "requires_action"
    OFFLINE = "offline"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Local records ---

class Repository(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    local_id: int
    repo_id: str
    name: str
    description: str = ""
    path: str
    status: RepositoryStatus = RepositoryStatus.ACTIVE
    developer_id: Optional[str] = None
    project_id: Optional[str] = None
    permission: Optional[Permission] = None
    repo_fingerprint: str
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FileChange(WireModel):
    file_name: str
    added: int = 0
    removed: int = 0


class CommitStats(BaseModel):
    files_changed: int = 0
    files_added: int = 0
    files_removed: int = 0
    lines_added: int = 0
    lines_removed: int = 0


class CommitRecord(BaseModel):
    """A commit discovered by extraction, as stored locally."""
    model_config = ConfigDict(from_attributes=True)

    repo_id: str
    developer_id: str
    project_id: str
    branch: str
    message: str
    commit_hash: str
    timestamp: datetime
    stats: CommitStats = Field(default_factory=CommitStats)
    changes: List[FileChange] = Field(default_factory=list)
    parent_commit: Optional[str] = None
    synced: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Backend records ---

class RemoteRepository(WireModel):
    repo_id: str = Field(validation_alias=AliasChoices("_id", "repoId", "repo_id"))
    name: str = ""
    description: Optional[str] = None
    path: Optional[str] = None
    developer_id: Optional[str] = None
    project_id: Optional[str] = None
    permission: Optional[Permission] = None
    repo_fingerprint: Optional[str] = None
    status: Optional[str] = None


class RemoteProject(WireModel):
    project_id: str = Field(validation_alias=AliasChoices("_id", "projectId", "project_id"))
    name: str = ""


# --- Reconciliation ---

class ComparisonCounts(BaseModel):
    local: int
    remote: int
    missing_in_remote: int
    missing_in_local: int


class ComparisonResult(BaseModel):
    """Transient diff between the local and remote repository sets."""
    counts: ComparisonCounts
    missing_in_remote: List[Repository]
    missing_in_local: List[RemoteRepository]


class RepositoryView(BaseModel):
    """A repository annotated with its sync status, local or remote-only."""
    repo_id: str
    name: str
    description: Optional[str] = None
    path: Optional[str] = None
    status: Optional[str] = None
    project_id: Optional[str] = None
    repo_fingerprint: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    local_id: Optional[int] = None
    sync_status: SyncStatus

    @classmethod
    def from_local(cls, repo: Repository, sync_status: SyncStatus) -> "RepositoryView":
        return cls(
            repo_id=repo.repo_id,
            name=repo.name,
            description=repo.description,
            path=repo.path,
            status=repo.status.value,
            project_id=repo.project_id,
            repo_fingerprint=repo.repo_fingerprint,
            last_synced_at=repo.last_synced_at,
            local_id=repo.local_id,
            sync_status=sync_status,
        )

    @classmethod
    def from_remote(cls, repo: RemoteRepository, sync_status: SyncStatus) -> "RepositoryView":
        return cls(
            repo_id=repo.repo_id,
            name=repo.name,
            description=repo.description,
            path=repo.path,
            status=repo.status,
            project_id=repo.project_id,
            repo_fingerprint=repo.repo_fingerprint,
            sync_status=sync_status,
        )


class ConsolidatedView(BaseModel):
    status: ViewStatus
    message: str
    repositories: List[RepositoryView]


# --- Health ---

class RepoHealth(BaseModel):
    local_id: int
    repo_id: str
    path: str
    status: HealthStatus
    message: str = ""


class HealthReport(BaseModel):
    repo_id: str
    path: str
    status: str
    message: str = ""
    remote_updated: Optional[bool] = None
    remote_error: Optional[str] = None


class RepositoryDetails(BaseModel):
    repository: Repository
    total_commits: int
    unsynced_commits: int
