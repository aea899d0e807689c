# src/repolink/sync.py: Sync orchestrator.
# This module composes the git inspector, the extraction engine, the local
# store, the reconciliation engine, the backend client and the session
# capability into the operations the CLI exposes: registering repositories,
# extracting and pushing commits, building the consolidated repository view
# (with an offline fallback), health checks and relocation.

from __future__ import annotations

from collections import OrderedDict
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from .extract import CommitExtractor
from .gitwrap import RepositoryInspector
from .models import (
    CommitRecord,
    ConsolidatedView,
    HealthReport,
    HealthStatus,
    Permission,
    RemoteRepository,
    RepoHealth,
    Repository,
    RepositoryDetails,
    RepositoryStatus,
    RepositoryView,
    SyncStatus,
    ViewStatus,
)
from .reconcile import Reconciler
from .remote import BackendClient, CommitPayload, RegisterRepositoryRequest, RepositoryPatch
from .session import Session, SessionProvider
from .store import LocalStore
from .util.errors import (
    FingerprintMismatch,
    GitCommandFailed,
    NetworkUnreachable,
    RemoteError,
    RepositoryNotFound,
    RepoValidationError,
    StorageError,
)
from .util.locking import repo_lock
from .util.log import get_logger, repo_context
from .util.paths import expand_path

logger = get_logger(__name__)


class SyncResult(BaseModel):
    repo_id: str
    uploaded: int
    message: str


class HealthSummary(BaseModel):
    total_checked: int
    reports: List[HealthReport] = Field(default_factory=list)


class ProjectEntry(BaseModel):
    project_id: str
    name: str = ""
    repositories: List[Repository] = Field(default_factory=list)


class ProjectListing(BaseModel):
    status: str
    projects: List[ProjectEntry]


class RepositoryCommits(BaseModel):
    repo_id: str
    repo_name: str
    total_commits: int
    commits: List[CommitRecord]


class SyncService:
    """
    Entry-point operations. Every call resolves the current session first and
    fails with AuthenticationError when there is none.
    """

    def __init__(
        self,
        store: LocalStore,
        inspector: RepositoryInspector,
        backend: BackendClient,
        sessions: SessionProvider,
        extractor: Optional[CommitExtractor] = None,
        reconciler: Optional[Reconciler] = None,
        lock_dir: Optional[Path] = None,
    ):
        self.store = store
        self.inspector = inspector
        self.backend = backend
        self.sessions = sessions
        self.extractor = extractor or CommitExtractor(store, inspector)
        self.reconciler = reconciler or Reconciler(store)
        self.lock_dir = lock_dir

    # --- registration ---

    def register_repository(
        self, name: str, path: str, project_id: Optional[str] = None, description: str = ""
    ) -> Repository:
        """Validate a working tree, register it remotely, then record it locally."""
        session = self.sessions.current()
        fingerprint = self.inspector.validate_local_repository(path)
        local_path = str(expand_path(path))

        request = RegisterRepositoryRequest(
            name=name,
            description=description,
            path=local_path,
            project_id=project_id,
            developer_id=session.user_id,
            repo_fingerprint=fingerprint,
        )
        remote = self.backend.register_repository(session.access_token, request)
        logger.info("Backend registered repository %s as %s", local_path, remote.repo_id)

        return self.store.add_repository(
            repo_id=remote.repo_id,
            name=remote.name or name,
            description=remote.description if remote.description is not None else description,
            path=remote.path or local_path,
            developer_id=remote.developer_id or session.user_id,
            project_id=remote.project_id or project_id,
            permission=remote.permission,
            repo_fingerprint=remote.repo_fingerprint or fingerprint,
        )

    # --- commits ---

    def extract_commits(self, repo_id: str) -> List[CommitRecord]:
        session = self.sessions.current()
        with repo_lock(repo_id, self.lock_dir):
            return self.extractor.extract_new_commits(repo_id, session.user_id)

    def sync_commits(self, repo_id: str) -> SyncResult:
        """Extract the latest commits, upload every unsynced one and mark them synced."""
        session = self.sessions.current()
        token = repo_context.set(repo_id)
        try:
            with repo_lock(repo_id, self.lock_dir):
                self.extractor.extract_new_commits(repo_id, session.user_id)
                unsynced = self.store.get_unsynced_commits(repo_id, session.user_id)
                logger.info("%d unsynced commits for repo %s", len(unsynced), repo_id)
                if not unsynced:
                    return SyncResult(repo_id=repo_id, uploaded=0, message="Repository is already up-to-date.")

                payload = [CommitPayload.from_record(record) for record in unsynced]
                self.backend.upload_commits(session.access_token, payload)
                self.store.mark_commits_synced(repo_id, session.user_id)
                return SyncResult(
                    repo_id=repo_id,
                    uploaded=len(unsynced),
                    message=f"Successfully synced {len(unsynced)} commits.",
                )
        finally:
            repo_context.reset(token)

    def list_commits(self) -> List[RepositoryCommits]:
        session = self.sessions.current()
        result = []
        for repo in self.store.list_repositories(session.user_id):
            commits = self.store.list_commits(repo.repo_id)
            result.append(RepositoryCommits(
                repo_id=repo.repo_id, repo_name=repo.name, total_commits=len(commits), commits=commits
            ))
        return result

    # --- views ---

    def get_repositories_view(self) -> ConsolidatedView:
        """
        Reconcile local registrations with the backend's list.

        When the backend cannot be reached, the local repositories are
        returned annotated 'offline' instead of failing.
        """
        session = self.sessions.current()
        try:
            remote_repos = self.backend.list_repositories(session.access_token)
        except NetworkUnreachable:
            logger.warning("Backend unreachable. Falling back to local data.")
            return self._offline_view(session)

        comparison = self.reconciler.compare_repositories(session.user_id, remote_repos)
        logger.info(
            "Compared repositories: local=%d remote=%d missing_in_remote=%d missing_in_local=%d",
            comparison.counts.local,
            comparison.counts.remote,
            comparison.counts.missing_in_remote,
            comparison.counts.missing_in_local,
        )
        return self.reconciler.get_consolidated_repository_view(session.user_id, comparison)

    def _offline_view(self, session: Session) -> ConsolidatedView:
        repos = self.store.list_repositories(session.user_id)
        return ConsolidatedView(
            status=ViewStatus.OFFLINE,
            message="Backend unreachable; showing locally stored repositories.",
            repositories=[RepositoryView.from_local(repo, SyncStatus.OFFLINE) for repo in repos],
        )

    def get_my_projects(self) -> ProjectListing:
        session = self.sessions.current()
        try:
            projects = self.backend.list_projects(session.access_token)
        except NetworkUnreachable:
            logger.warning("Backend unreachable. Falling back to local projects.")
            return ProjectListing(status="offline", projects=self._local_projects(session.user_id))
        return ProjectListing(
            status="online",
            projects=[ProjectEntry(project_id=p.project_id, name=p.name) for p in projects],
        )

    def _local_projects(self, developer_id: str) -> List[ProjectEntry]:
        grouped: "OrderedDict[str, ProjectEntry]" = OrderedDict()
        for repo in self.store.list_repositories(developer_id):
            if not repo.project_id:
                continue
            entry = grouped.setdefault(repo.project_id, ProjectEntry(project_id=repo.project_id))
            entry.repositories.append(repo)
        return list(grouped.values())

    def get_local_repository_details(self, repo_id: str) -> RepositoryDetails:
        session = self.sessions.current()
        repo = self.store.get_repository(repo_id, session.user_id)
        if repo is None:
            raise RepositoryNotFound("Repository not found.")
        total, unsynced = self.store.commit_counts(repo_id)
        return RepositoryDetails(repository=repo, total_commits=total, unsynced_commits=unsynced)

    # --- health ---

    def check_repository_health(self, repo: Repository, validate_fingerprint: bool = True) -> RepoHealth:
        status, message = self.inspector.check_repository_reachable(repo.path)
        if status is HealthStatus.ACTIVE and validate_fingerprint and repo.repo_fingerprint:
            try:
                current = self.inspector.root_commit(repo.path)
            except GitCommandFailed as e:
                status, message = HealthStatus.MOVED, str(e)
            else:
                if current != repo.repo_fingerprint:
                    status = HealthStatus.FINGERPRINT_MISMATCH
                    message = f"Fingerprint mismatch: expected {repo.repo_fingerprint}, got {current}"
        return RepoHealth(
            local_id=repo.local_id, repo_id=repo.repo_id, path=repo.path, status=status, message=message
        )

    def check_all_repo_health(self, validate_fingerprint: bool = True) -> HealthSummary:
        session = self.sessions.current()
        repos = self.store.list_repositories(session.user_id)
        if not repos:
            logger.info("No local repositories found to check.")
        reports = [self._apply_health(session, repo, validate_fingerprint) for repo in repos]
        return HealthSummary(total_checked=len(repos), reports=reports)

    def sync_repo_status(self, repo_id: str, validate_fingerprint: bool = True) -> HealthReport:
        session = self.sessions.current()
        repo = self.store.get_repository(repo_id, session.user_id)
        if repo is None:
            raise RepositoryNotFound(f"Repository {repo_id} not found locally.")
        return self._apply_health(session, repo, validate_fingerprint)

    def _apply_health(self, session: Session, repo: Repository, validate_fingerprint: bool) -> HealthReport:
        token = repo_context.set(repo.repo_id)
        try:
            health = self.check_repository_health(repo, validate_fingerprint)
            logger.info("Repo %s status: %s (%s)", repo.repo_id, health.status.value, health.message)
            status = health.status.as_repository_status()
            report = HealthReport(repo_id=repo.repo_id, path=repo.path, status=status.value, message=health.message)

            if status is not RepositoryStatus.ACTIVE:
                patch = RepositoryPatch(status=status.value, developer_id=session.user_id)
                try:
                    self.backend.update_repository(session.access_token, repo.repo_id, patch)
                    report.remote_updated = True
                except RemoteError as e:
                    logger.error("Failed to patch remote for repo %s: %s", repo.repo_id, e)
                    report.remote_updated = False
                    report.remote_error = str(e)

            try:
                self.store.update_status(repo.local_id, status)
            except StorageError as e:
                report.status = "error"
                report.message = str(e)
            return report
        finally:
            repo_context.reset(token)

    # --- relocation and edits ---

    def relocate_repository(self, repo_id: str, new_path: str) -> Repository:
        """Point a registration at a new working tree holding the same history."""
        session = self.sessions.current()
        repo = self.store.get_repository(repo_id, session.user_id)
        if repo is None:
            raise RepositoryNotFound(f"Repository {repo_id} not found locally.")

        fingerprint = self.inspector.validate_local_repository(new_path)
        if fingerprint != repo.repo_fingerprint:
            raise FingerprintMismatch("Validation failed: the new path points to a different repository.")

        self.store.update_path(repo_id, str(expand_path(new_path)))
        return self.store.get_repository(repo_id, session.user_id)

    def find_remote_repository(self, repo_id: str) -> RemoteRepository:
        session = self.sessions.current()
        for remote in self.backend.list_repositories(session.access_token):
            if remote.repo_id == repo_id:
                return remote
        raise RepositoryNotFound(f"Repository {repo_id} not found on the backend.")

    def setup_missing_local_repository(self, remote_repo: RemoteRepository, local_path: str) -> Repository:
        """Record a clone of a repository the backend knows about but this machine does not."""
        session = self.sessions.current()
        if not remote_repo.repo_fingerprint:
            raise RepoValidationError("Remote fingerprint is required for setup.")

        fingerprint = self.inspector.validate_local_repository(local_path)
        if fingerprint != remote_repo.repo_fingerprint:
            raise FingerprintMismatch(
                "Validation failed: the selected folder does not match the remote repository's fingerprint."
            )

        return self.store.upsert_repository_location(
            repo_id=remote_repo.repo_id,
            name=remote_repo.name,
            description=remote_repo.description or "",
            path=str(expand_path(local_path)),
            developer_id=session.user_id,
            project_id=remote_repo.project_id,
            permission=remote_repo.permission or Permission.READ,
            repo_fingerprint=remote_repo.repo_fingerprint,
        )

    def update_repository_details(
        self, repo_id: str, name: Optional[str] = None, description: Optional[str] = None
    ) -> int:
        """Update name/description on the backend first, then locally."""
        session = self.sessions.current()
        patch = RepositoryPatch(developer_id=session.user_id, name=name, description=description)
        self.backend.update_repository(session.access_token, repo_id, patch)
        return self.store.update_details(repo_id, session.user_id, name=name, description=description)
