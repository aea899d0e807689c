# tests/conftest.py: Shared fixtures for the repolink test suite.

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from repolink.gitwrap import LogEntry, NameStatus, RepositoryInspector
from repolink.models import HealthStatus
from repolink.session import Session, StaticSessionProvider
from repolink.store import Database, LocalStore

DEVELOPER = "dev-1"
PROJECT = "proj-1"


@pytest.fixture
def db(tmp_path: Path):
    database = Database(tmp_path / "state" / "repolink.sqlite").open()
    yield database
    database.close()


@pytest.fixture
def store(db: Database) -> LocalStore:
    return LocalStore(db)


@pytest.fixture
def sessions() -> StaticSessionProvider:
    return StaticSessionProvider(Session(user_id=DEVELOPER, access_token="tok-123"))


def make_entry(commit_hash: str, when: str, message: str = "work", parents: Optional[List[str]] = None,
               author: str = "Ada") -> LogEntry:
    return LogEntry(
        hash=commit_hash,
        date=datetime.fromisoformat(when),
        message=message,
        parent_hashes=parents or [],
        author_name=author,
    )


class FakeInspector(RepositoryInspector):
    """In-memory RepositoryInspector driven by dictionaries."""

    def __init__(self, fingerprint: str = "root-sha", user_name: str = "Ada"):
        self.fingerprint = fingerprint
        self.user_name = user_name
        self.branches: Dict[str, List[LogEntry]] = {}
        self.name_status: Dict[str, List[NameStatus]] = {}
        self.stats: Dict[str, str] = {}
        self.health = (HealthStatus.ACTIVE, "")
        self.log_calls = []

    def validate_local_repository(self, path: str) -> str:
        return self.fingerprint

    def check_repository_reachable(self, path: str):
        return self.health

    def root_commit(self, path: str) -> Optional[str]:
        return self.fingerprint

    def config_user_name(self, path: str) -> str:
        return self.user_name

    def list_local_branches(self, path: str) -> List[str]:
        return list(self.branches)

    def log_commits(self, path, branch, author, since=None):
        self.log_calls.append((branch, author, since))
        entries = [e for e in self.branches[branch] if e.author_name == author]
        if since is not None:
            entries = [e for e in entries if e.date >= since]
        return entries

    def diff_tree_name_status(self, path, commit_hash):
        return self.name_status.get(commit_hash, [NameStatus("M", "README.md")])

    def show_stat_summary(self, path, commit_hash):
        return self.stats.get(
            commit_hash,
            " README.md | 2 +-\n 1 file changed, 1 insertion(+), 1 deletion(-)\n",
        )


@pytest.fixture
def inspector() -> FakeInspector:
    return FakeInspector()


@pytest.fixture
def registered_repo(store: LocalStore, tmp_path: Path):
    workdir = tmp_path / "work" / "app"
    workdir.mkdir(parents=True)
    return store.add_repository(
        repo_id="repo-1",
        name="app",
        path=str(workdir),
        repo_fingerprint="root-sha",
        developer_id=DEVELOPER,
        project_id=PROJECT,
    )


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
