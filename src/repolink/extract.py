# src/repolink/extract.py: Commit extraction engine.
# This module walks every local branch of a registered repository, collects
# the commits authored by the repository's configured git user since the
# last extraction watermark, and stores them. A commit reachable from several
# branches is recorded once, under the first branch that reached it.
# Branches and commits are processed sequentially so that rule stays
# well-defined; any git failure aborts the whole run before anything is
# written.

import os
from datetime import datetime
from typing import Callable, List, Optional, Set

from .diffstat import parse_show_stat
from .gitwrap import LogEntry, RepositoryInspector
from .models import CommitRecord, CommitStats, Repository
from .store import LocalStore
from .store.schema import utcnow
from .util.errors import (
    GitUserNotConfigured,
    MissingProjectAssociation,
    PathUnreachable,
    RepositoryNotFound,
)
from .util.log import get_logger, repo_context

logger = get_logger(__name__)


class CommitExtractor:
    """
    Incremental, branch-deduplicating commit extraction for one repository at a time.
    """

    def __init__(
        self,
        store: LocalStore,
        inspector: RepositoryInspector,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.inspector = inspector
        self.clock = clock

    def extract_new_commits(self, repo_id: str, developer_id: str) -> List[CommitRecord]:
        """
        Extract and persist the developer's new commits for a repository.

        Returns every commit discovered in this run, including ones that were
        already stored by an earlier run.

        Raises:
            RepositoryNotFound: no active registration for (repo_id, developer_id).
            MissingProjectAssociation: the registration has no project id.
            PathUnreachable: the working tree cannot be accessed.
            GitUserNotConfigured: the repository has no user.name.
            GitCommandFailed: any git invocation failed.
            StorageError: the batch could not be written.
        """
        token = repo_context.set(repo_id)
        try:
            repo = self._load_repository(repo_id, developer_id)
            started_at = self.clock()

            author = self.inspector.config_user_name(repo.path)
            if not author:
                raise GitUserNotConfigured(f"Git user.name is not configured in {repo.path}.")
            logger.info("Filtering commits for author %r", author)

            records = self._collect(repo, developer_id, author)

            if not records:
                logger.info("No new commits found for repo %s", repo_id)
                self.store.advance_last_synced_at(repo.local_id, started_at)
                return []

            logger.info("Found %d unique new commits to save", len(records))
            inserted = self.store.bulk_insert_commits(records, created_at=started_at)
            logger.info("Saved %d new commits to the local store", inserted)

            self.store.advance_last_synced_at(repo.local_id, started_at)
            logger.info("Repository %s watermark advanced to %s", repo_id, started_at.isoformat())
            return records
        finally:
            repo_context.reset(token)

    def _load_repository(self, repo_id: str, developer_id: str) -> Repository:
        repo = self.store.get_active_repository(repo_id, developer_id)
        if repo is None:
            raise RepositoryNotFound(
                f"Active repository with ID {repo_id} not found for developer {developer_id}."
            )
        if not repo.project_id:
            raise MissingProjectAssociation(f"Repository ID {repo_id} has no projectId.")
        if not os.path.isdir(repo.path) or not os.access(repo.path, os.R_OK | os.X_OK):
            raise PathUnreachable(f"Repository path '{repo.path}' is not accessible.")
        return repo

    def _collect(self, repo: Repository, developer_id: str, author: str) -> List[CommitRecord]:
        processed: Set[str] = set()
        records: List[CommitRecord] = []

        for branch in self.inspector.list_local_branches(repo.path):
            entries = self.inspector.log_commits(repo.path, branch, author, since=repo.last_synced_at)
            for entry in entries:
                # The first branch to reach a commit claims it.
                if entry.hash in processed:
                    continue
                processed.add(entry.hash)
                records.append(self._build_record(repo, developer_id, branch, entry))

        return records

    def _build_record(self, repo: Repository, developer_id: str, branch: str, entry: LogEntry) -> CommitRecord:
        name_status = self.inspector.diff_tree_name_status(repo.path, entry.hash)
        stat = parse_show_stat(self.inspector.show_stat_summary(repo.path, entry.hash))
        parent: Optional[str] = entry.parent_hashes[0] if entry.parent_hashes else None

        return CommitRecord(
            repo_id=repo.repo_id,
            developer_id=developer_id,
            project_id=repo.project_id,
            branch=branch,
            message=entry.message,
            commit_hash=entry.hash,
            timestamp=entry.date,
            parent_commit=parent,
            stats=CommitStats(
                files_changed=len(name_status),
                files_added=sum(1 for item in name_status if item.status_code.startswith("A")),
                files_removed=sum(1 for item in name_status if item.status_code.startswith("D")),
                lines_added=stat.total_insertions,
                lines_removed=stat.total_deletions,
            ),
            changes=stat.changes,
        )
