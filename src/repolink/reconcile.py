# src/repolink/reconcile.py: Local/remote repository reconciliation.
# This module compares the repositories registered in the local store with
# the list the backend holds for the same developer, and builds the
# annotated view shown to the user: every repository tagged as synced,
# missing on the remote, or missing locally.

from typing import List, Sequence

from .models import (
    ComparisonCounts,
    ComparisonResult,
    ConsolidatedView,
    RemoteRepository,
    Repository,
    RepositoryView,
    SyncStatus,
    ViewStatus,
)
from .store import LocalStore


def classify(local_repos: Sequence[Repository], remote_repos: Sequence[RemoteRepository]) -> ComparisonResult:
    """Set differences of the two repository lists, keyed by repo id."""
    local_ids = {repo.repo_id for repo in local_repos}
    remote_ids = {repo.repo_id for repo in remote_repos}

    missing_in_remote = [repo for repo in local_repos if repo.repo_id not in remote_ids]
    missing_in_local = [repo for repo in remote_repos if repo.repo_id not in local_ids]

    return ComparisonResult(
        counts=ComparisonCounts(
            local=len(local_repos),
            remote=len(remote_repos),
            missing_in_remote=len(missing_in_remote),
            missing_in_local=len(missing_in_local),
        ),
        missing_in_remote=missing_in_remote,
        missing_in_local=missing_in_local,
    )


class Reconciler:
    """Reconciliation over the repositories stored in a LocalStore."""

    def __init__(self, store: LocalStore):
        self.store = store

    def compare_repositories(self, developer_id: str, remote_repos: Sequence[RemoteRepository]) -> ComparisonResult:
        return classify(self.store.list_repositories(developer_id), remote_repos)

    def get_consolidated_repository_view(self, developer_id: str, comparison: ComparisonResult) -> ConsolidatedView:
        counts = comparison.counts
        if counts.missing_in_local == 0 and counts.missing_in_remote == 0:
            return ConsolidatedView(
                status=ViewStatus.SYNCED,
                message="All repositories are in sync.",
                repositories=[
                    RepositoryView.from_local(repo, SyncStatus.SYNCED)
                    for repo in self.store.list_repositories(developer_id)
                ],
            )

        local_only_ids = [repo.repo_id for repo in comparison.missing_in_remote]
        common = self.store.list_repositories_excluding(developer_id, local_only_ids)

        repositories: List[RepositoryView] = []
        repositories.extend(RepositoryView.from_local(repo, SyncStatus.SYNCED) for repo in common)
        repositories.extend(
            RepositoryView.from_remote(repo, SyncStatus.MISSING_LOCAL) for repo in comparison.missing_in_local
        )
        repositories.extend(
            RepositoryView.from_local(repo, SyncStatus.MISSING_REMOTE) for repo in comparison.missing_in_remote
        )
        return ConsolidatedView(
            status=ViewStatus.REQUIRES_ACTION,
            message="Differences found between local and remote repositories.",
            repositories=repositories,
        )
