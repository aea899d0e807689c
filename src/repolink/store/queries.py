# src/repolink/store/queries.py: Local repository store.
# All queries use SQLAlchemy 2.0-style statements executed through a
# session. LocalStore takes an open Database in its constructor and opens
# one transaction per public call.

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from ..models import CommitRecord, Permission, Repository, RepositoryStatus
from ..util.errors import RepositoryNotFound
from ..util.log import get_logger
from .database import Database
from .schema import CommitRow, RepositoryRow, utcnow

logger = get_logger(__name__)

_COMMIT_KEY = ["commit_hash", "project_id", "developer_id"]


def _commit_values(record: CommitRecord, created_at: Optional[datetime] = None) -> dict:
    now = created_at or utcnow()
    return {
        "repo_id": record.repo_id,
        "developer_id": record.developer_id,
        "project_id": record.project_id,
        "branch": record.branch,
        "message": record.message,
        "commit_hash": record.commit_hash,
        "timestamp": record.timestamp,
        "stats": record.stats.model_dump(),
        "changes": [change.model_dump() for change in record.changes],
        "parent_commit": record.parent_commit,
        "synced": False,
        "created_at": now,
        "updated_at": now,
    }


class LocalStore:
    """Repository registrations and extracted commits for one SQLite database."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # --- repositories ---

    def add_repository(
        self,
        *,
        repo_id: str,
        name: str,
        path: str,
        repo_fingerprint: str,
        description: str = "",
        developer_id: Optional[str] = None,
        project_id: Optional[str] = None,
        permission: Optional[Permission] = None,
        status: RepositoryStatus = RepositoryStatus.ACTIVE,
    ) -> Repository:
        row = RepositoryRow(
            repo_id=repo_id,
            name=name,
            description=description or "",
            path=path,
            status=status.value,
            developer_id=developer_id,
            project_id=project_id,
            permission=permission.value if permission else None,
            repo_fingerprint=repo_fingerprint,
        )
        with self._db.transaction() as session:
            session.add(row)
            session.flush()
            return Repository.model_validate(row)

    def upsert_repository_location(
        self,
        *,
        repo_id: str,
        name: str,
        path: str,
        repo_fingerprint: str,
        description: str = "",
        developer_id: Optional[str] = None,
        project_id: Optional[str] = None,
        permission: Optional[Permission] = None,
    ) -> Repository:
        """Insert a registration, or repoint an existing one at 'path'.

        On conflict only the path and status change; the stored fingerprint
        is left untouched.
        """
        now = utcnow()
        stmt = sqlite_insert(RepositoryRow).values(
            repo_id=repo_id,
            name=name,
            description=description or "",
            path=path,
            status=RepositoryStatus.ACTIVE.value,
            developer_id=developer_id,
            project_id=project_id,
            permission=permission.value if permission else None,
            repo_fingerprint=repo_fingerprint,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["repo_id"],
            set_={"path": path, "status": RepositoryStatus.ACTIVE.value, "updated_at": now},
        )
        with self._db.transaction() as session:
            session.execute(stmt)
            row = session.execute(
                select(RepositoryRow).where(RepositoryRow.repo_id == repo_id)
            ).scalar_one()
            return Repository.model_validate(row)

    def get_repository(self, repo_id: str, developer_id: Optional[str] = None) -> Optional[Repository]:
        stmt = select(RepositoryRow).where(RepositoryRow.repo_id == repo_id)
        if developer_id is not None:
            stmt = stmt.where(RepositoryRow.developer_id == developer_id)
        with self._db.transaction() as session:
            row = session.execute(stmt).scalar_one_or_none()
            return Repository.model_validate(row) if row else None

    def get_active_repository(self, repo_id: str, developer_id: str) -> Optional[Repository]:
        stmt = select(RepositoryRow).where(
            RepositoryRow.repo_id == repo_id,
            RepositoryRow.developer_id == developer_id,
            RepositoryRow.status == RepositoryStatus.ACTIVE.value,
        )
        with self._db.transaction() as session:
            row = session.execute(stmt).scalar_one_or_none()
            return Repository.model_validate(row) if row else None

    def list_repositories(self, developer_id: Optional[str] = None) -> List[Repository]:
        stmt = select(RepositoryRow).order_by(RepositoryRow.local_id)
        if developer_id is not None:
            stmt = stmt.where(RepositoryRow.developer_id == developer_id)
        with self._db.transaction() as session:
            return [Repository.model_validate(row) for row in session.execute(stmt).scalars()]

    def list_repositories_excluding(self, developer_id: str, repo_ids: Iterable[str]) -> List[Repository]:
        """All of a developer's repositories except the given ids."""
        excluded = list(repo_ids)
        stmt = (
            select(RepositoryRow)
            .where(RepositoryRow.developer_id == developer_id)
            .order_by(RepositoryRow.local_id)
        )
        if excluded:
            stmt = stmt.where(RepositoryRow.repo_id.not_in(excluded))
        with self._db.transaction() as session:
            return [Repository.model_validate(row) for row in session.execute(stmt).scalars()]

    def update_status(self, local_id: int, status: RepositoryStatus) -> int:
        stmt = (
            update(RepositoryRow)
            .where(RepositoryRow.local_id == local_id)
            .values(status=status.value, updated_at=utcnow())
        )
        with self._db.transaction() as session:
            return session.execute(stmt).rowcount

    def update_details(
        self,
        repo_id: str,
        developer_id: Optional[str],
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> int:
        """
        Update name/description, leaving None fields unchanged.

        Rows whose developer id was never recorded are matched on repo id
        alone when the developer-scoped update touches nothing.
        """
        values = {"updated_at": utcnow()}
        if name is not None:
            values["name"] = name
        if description is not None:
            values["description"] = description

        with self._db.transaction() as session:
            changed = session.execute(
                update(RepositoryRow)
                .where(RepositoryRow.repo_id == repo_id, RepositoryRow.developer_id == developer_id)
                .values(**values)
            ).rowcount
            if changed == 0:
                logger.warning(
                    "No rows updated for repo %s and developer %s; retrying by repo id only",
                    repo_id, developer_id,
                )
                changed = session.execute(
                    update(RepositoryRow).where(RepositoryRow.repo_id == repo_id).values(**values)
                ).rowcount
            if changed == 0:
                raise RepositoryNotFound(f"Repository with ID {repo_id} not found in local database.")
            return changed

    def update_path(self, repo_id: str, path: str) -> int:
        stmt = (
            update(RepositoryRow)
            .where(RepositoryRow.repo_id == repo_id)
            .values(path=path, status=RepositoryStatus.ACTIVE.value, updated_at=utcnow())
        )
        with self._db.transaction() as session:
            return session.execute(stmt).rowcount

    def advance_last_synced_at(self, local_id: int, moment: datetime) -> bool:
        """Move the extraction watermark forward; never backwards."""
        stmt = (
            update(RepositoryRow)
            .where(
                RepositoryRow.local_id == local_id,
                or_(RepositoryRow.last_synced_at.is_(None), RepositoryRow.last_synced_at < moment),
            )
            .values(last_synced_at=moment, updated_at=utcnow())
        )
        with self._db.transaction() as session:
            return session.execute(stmt).rowcount > 0

    # --- commits ---

    def _insert_commit(self, session: Session, record: CommitRecord, created_at: Optional[datetime]) -> bool:
        stmt = (
            sqlite_insert(CommitRow)
            .values(**_commit_values(record, created_at))
            .on_conflict_do_nothing(index_elements=_COMMIT_KEY)
        )
        return session.execute(stmt).rowcount == 1

    def insert_commit_ignore_duplicates(self, record: CommitRecord) -> bool:
        """Insert a commit; returns False if it was already stored."""
        with self._db.transaction() as session:
            return self._insert_commit(session, record, None)

    def bulk_insert_commits(self, records: Sequence[CommitRecord], created_at: Optional[datetime] = None) -> int:
        """
        Insert a batch of commits in one transaction.

        Duplicates are skipped individually; any storage failure rolls back
        the whole batch. Returns the number of rows actually inserted.
        """
        inserted = 0
        with self._db.transaction() as session:
            for record in records:
                if self._insert_commit(session, record, created_at):
                    inserted += 1
        return inserted

    def get_unsynced_commits(self, repo_id: str, developer_id: str) -> List[CommitRecord]:
        stmt = (
            select(CommitRow)
            .where(
                CommitRow.repo_id == repo_id,
                CommitRow.developer_id == developer_id,
                CommitRow.synced.is_(False),
            )
            .order_by(CommitRow.timestamp, CommitRow.id)
        )
        with self._db.transaction() as session:
            return [CommitRecord.model_validate(row) for row in session.execute(stmt).scalars()]

    def mark_commits_synced(self, repo_id: str, developer_id: str) -> int:
        """Flag every unsynced commit of a repository as synced in one statement."""
        stmt = (
            update(CommitRow)
            .where(
                CommitRow.repo_id == repo_id,
                CommitRow.developer_id == developer_id,
                CommitRow.synced.is_(False),
            )
            .values(synced=True, updated_at=utcnow())
        )
        with self._db.transaction() as session:
            changed = session.execute(stmt).rowcount
        logger.info("Marked %d local commits as synced for repo %s", changed, repo_id)
        return changed

    def list_commits(self, repo_id: str) -> List[CommitRecord]:
        stmt = (
            select(CommitRow)
            .where(CommitRow.repo_id == repo_id)
            .order_by(CommitRow.timestamp.desc(), CommitRow.id.desc())
        )
        with self._db.transaction() as session:
            return [CommitRecord.model_validate(row) for row in session.execute(stmt).scalars()]

    def commit_counts(self, repo_id: str) -> Tuple[int, int]:
        """(total, unsynced) commit counts for a repository."""
        stmt = select(
            func.count(CommitRow.id),
            func.coalesce(func.sum(case((CommitRow.synced.is_(False), 1), else_=0)), 0),
        ).where(CommitRow.repo_id == repo_id)
        with self._db.transaction() as session:
            total, unsynced = session.execute(stmt).one()
            return int(total or 0), int(unsynced or 0)
