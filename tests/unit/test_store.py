# tests/unit/test_store.py: Unit tests for the SQLite-backed local store.

import pytest
from sqlalchemy.exc import OperationalError

from repolink.models import CommitRecord, CommitStats, FileChange, RepositoryStatus
from repolink.store import Database, LocalStore
from repolink.util.errors import RepositoryNotFound, StorageError

from conftest import DEVELOPER, PROJECT, utc


def _commit(commit_hash: str, repo_id: str = "repo-1", **overrides) -> CommitRecord:
    values = dict(
        repo_id=repo_id,
        developer_id=DEVELOPER,
        project_id=PROJECT,
        branch="main",
        message=f"commit {commit_hash}",
        commit_hash=commit_hash,
        timestamp=utc(2024, 1, 1, 12),
        stats=CommitStats(files_changed=1, lines_added=2),
        changes=[FileChange(file_name="a.py", added=2)],
    )
    values.update(overrides)
    return CommitRecord(**values)


def test_database_requires_open(tmp_path):
    database = Database(tmp_path / "x.sqlite")
    with pytest.raises(StorageError, match="not open"):
        with database.transaction():
            pass


def test_add_and_get_repository(store: LocalStore, registered_repo):
    fetched = store.get_repository("repo-1", DEVELOPER)
    assert fetched is not None
    assert fetched.local_id == registered_repo.local_id
    assert fetched.status is RepositoryStatus.ACTIVE
    assert fetched.last_synced_at is None
    assert store.get_repository("repo-1", "someone-else") is None


def test_duplicate_repo_id_is_a_storage_error(store: LocalStore, registered_repo):
    with pytest.raises(StorageError):
        store.add_repository(repo_id="repo-1", name="dup", path="/tmp/dup", repo_fingerprint="x")


def test_insert_commit_is_idempotent(store: LocalStore, registered_repo):
    assert store.insert_commit_ignore_duplicates(_commit("abc")) is True
    assert store.insert_commit_ignore_duplicates(_commit("abc", branch="feature")) is False

    stored = store.list_commits("repo-1")
    assert len(stored) == 1
    assert stored[0].branch == "main"
    assert stored[0].changes[0].file_name == "a.py"
    assert stored[0].stats.lines_added == 2


def test_bulk_insert_skips_duplicates(store: LocalStore, registered_repo):
    store.insert_commit_ignore_duplicates(_commit("abc"))
    inserted = store.bulk_insert_commits([_commit("abc"), _commit("def"), _commit("ghi")])
    assert inserted == 2
    assert store.commit_counts("repo-1") == (3, 3)


def test_bulk_insert_rolls_back_whole_batch(store: LocalStore, registered_repo, mocker):
    original = store._insert_commit
    calls = {"n": 0}

    def flaky(session, record, created_at):
        calls["n"] += 1
        if calls["n"] == 2:
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        return original(session, record, created_at)

    mocker.patch.object(store, "_insert_commit", side_effect=flaky)
    with pytest.raises(StorageError):
        store.bulk_insert_commits([_commit("one"), _commit("two")])

    assert store.commit_counts("repo-1") == (0, 0)


def test_mark_commits_synced(store: LocalStore, registered_repo):
    store.bulk_insert_commits([_commit("a1"), _commit("a2")])
    store.insert_commit_ignore_duplicates(_commit("b1", repo_id="repo-2"))

    assert len(store.get_unsynced_commits("repo-1", DEVELOPER)) == 2
    assert store.mark_commits_synced("repo-1", DEVELOPER) == 2
    assert store.get_unsynced_commits("repo-1", DEVELOPER) == []
    assert store.commit_counts("repo-1") == (2, 0)
    assert len(store.get_unsynced_commits("repo-2", DEVELOPER)) == 1


def test_watermark_only_moves_forward(store: LocalStore, registered_repo):
    later = utc(2024, 6, 1)
    earlier = utc(2024, 5, 1)

    assert store.advance_last_synced_at(registered_repo.local_id, later) is True
    assert store.advance_last_synced_at(registered_repo.local_id, earlier) is False
    assert store.get_repository("repo-1").last_synced_at == later


def test_update_details_falls_back_to_repo_id(store: LocalStore, tmp_path):
    store.add_repository(repo_id="legacy", name="old", path=str(tmp_path), repo_fingerprint="f")

    assert store.update_details("legacy", DEVELOPER, name="new") == 1
    repo = store.get_repository("legacy")
    assert repo.name == "new"
    assert repo.description == ""


def test_update_details_unknown_repo(store: LocalStore):
    with pytest.raises(RepositoryNotFound):
        store.update_details("nope", DEVELOPER, description="x")


def test_upsert_keeps_original_fingerprint(store: LocalStore, registered_repo, tmp_path):
    store.update_status(registered_repo.local_id, RepositoryStatus.MISSING)

    repo = store.upsert_repository_location(
        repo_id="repo-1",
        name="app",
        path=str(tmp_path / "elsewhere"),
        repo_fingerprint="other-sha",
        developer_id=DEVELOPER,
    )
    assert repo.path == str(tmp_path / "elsewhere")
    assert repo.status is RepositoryStatus.ACTIVE
    assert repo.repo_fingerprint == "root-sha"


def test_list_repositories_excluding(store: LocalStore, tmp_path):
    for repo_id in ("a", "b", "c"):
        store.add_repository(
            repo_id=repo_id, name=repo_id, path=str(tmp_path / repo_id), repo_fingerprint=repo_id,
            developer_id=DEVELOPER,
        )
    remaining = store.list_repositories_excluding(DEVELOPER, ["b"])
    assert [r.repo_id for r in remaining] == ["a", "c"]
    assert [r.repo_id for r in store.list_repositories_excluding(DEVELOPER, [])] == ["a", "b", "c"]
