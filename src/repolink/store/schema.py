# src/repolink/store/schema.py: SQLAlchemy table definitions.
# Two tables back the sync engine: 'repositories' (one row per registered
# repository, unique on the backend-assigned repo id) and 'git_commits'
# (one row per extracted commit, unique on commit hash, project and
# developer so that re-extraction is a no-op).

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC in SQLite and hands back timezone-aware datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class RepositoryRow(Base):
    __tablename__ = "repositories"

    local_id: Mapped[int] = mapped_column("id", Integer, primary_key=True, autoincrement=True)
    repo_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    path: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    developer_id: Mapped[Optional[str]] = mapped_column(String, index=True)
    project_id: Mapped[Optional[str]] = mapped_column(String)
    permission: Mapped[Optional[str]] = mapped_column(String)
    repo_fingerprint: Mapped[str] = mapped_column(String, nullable=False)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=None)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class CommitRow(Base):
    __tablename__ = "git_commits"
    __table_args__ = (
        UniqueConstraint("commit_hash", "project_id", "developer_id", name="uq_commit_project_developer"),
        Index("ix_git_commits_repo_synced", "repo_id", "developer_id", "synced"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    repo_id: Mapped[str] = mapped_column(String, nullable=False)
    developer_id: Mapped[str] = mapped_column(String, nullable=False)
    project_id: Mapped[str] = mapped_column(String, nullable=False)
    branch: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    commit_hash: Mapped[str] = mapped_column(String, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    stats: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    changes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    parent_commit: Mapped[Optional[str]] = mapped_column(String)
    synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
