# tests/unit/test_gitwrap.py: Unit tests for the Git wrapper.

import subprocess
from datetime import datetime, timezone
from pathlib import Path

import pytest

from repolink.gitwrap import (
    GitCliInspector,
    format_since,
    parse_log_output,
    parse_name_status,
    run_git,
)
from repolink.models import HealthStatus
from repolink.util.errors import GitCommandFailed, NotAGitRepository, PathNotFound


def _completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=["git"], returncode=returncode, stdout=stdout, stderr=stderr)


def test_run_git_success(monkeypatch, tmp_path: Path):
    """Tests that run_git successfully executes a command."""
    def mock_run(*args, **kwargs):
        assert kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"
        return _completed(stdout="main")

    monkeypatch.setattr(subprocess, "run", mock_run)
    result = run_git(["symbolic-ref", "HEAD"], cwd=tmp_path)
    assert result.stdout == "main"


def test_run_git_failure(monkeypatch, tmp_path: Path):
    """Tests that run_git raises GitCommandFailed on a non-zero exit code."""
    def mock_run(*args, **kwargs):
        raise subprocess.CalledProcessError(128, args, stderr="fatal: bad revision")

    monkeypatch.setattr(subprocess, "run", mock_run)
    with pytest.raises(GitCommandFailed, match="fatal: bad revision") as excinfo:
        run_git(["log", "nope"], cwd=tmp_path)
    assert excinfo.value.command == ["git", "log", "nope"]
    assert excinfo.value.repo_path == str(tmp_path)


def test_run_git_timeout(monkeypatch, tmp_path: Path):
    """Tests that run_git raises GitCommandFailed on a timeout."""
    def mock_run(*args, **kwargs):
        raise subprocess.TimeoutExpired(kwargs.get("args"), kwargs.get("timeout"))

    monkeypatch.setattr(subprocess, "run", mock_run)
    with pytest.raises(GitCommandFailed, match="timed out"):
        run_git(["fetch"], cwd=tmp_path, timeout=5)


def test_run_git_missing_binary(monkeypatch, tmp_path: Path):
    def mock_run(*args, **kwargs):
        raise FileNotFoundError("git")

    monkeypatch.setattr(subprocess, "run", mock_run)
    with pytest.raises(GitCommandFailed, match="not found"):
        run_git(["status"], cwd=tmp_path)


def test_run_git_missing_directory(tmp_path: Path):
    with pytest.raises(GitCommandFailed, match="working directory not found"):
        run_git(["status"], cwd=tmp_path / "gone")


def test_format_since_renders_utc():
    moment = datetime(2024, 3, 1, 12, 30, 5, tzinfo=timezone.utc)
    assert format_since(moment) == "2024-03-01 12:30:05 +0000"


def test_parse_log_output_records():
    output = (
        "aaa\x1f2024-01-02T10:00:00+02:00\x1f\x1fAda\x1fInitial commit\n\x1e\n"
        "bbb\x1f2024-01-03T09:00:00+00:00\x1faaa ccc\x1fAda\x1fMerge\n\nbody line\n\x1e\n"
    )
    entries = parse_log_output(output)

    assert [e.hash for e in entries] == ["aaa", "bbb"]
    assert entries[0].parent_hashes == []
    assert entries[0].date.utcoffset().total_seconds() == 7200
    assert entries[1].parent_hashes == ["aaa", "ccc"]
    assert entries[1].message == "Merge\n\nbody line"


def test_parse_log_output_rejects_garbage():
    with pytest.raises(ValueError):
        parse_log_output("not a record\x1e")


def test_parse_name_status_handles_renames():
    output = "A\tnew.py\nD\told.py\nR100\tsrc/a.py\tsrc/b.py\n\n"
    parsed = parse_name_status(output)
    assert [(p.status_code, p.file_name) for p in parsed] == [
        ("A", "new.py"),
        ("D", "old.py"),
        ("R100", "src/b.py"),
    ]


def test_log_commits_keeps_exact_author_only(monkeypatch, tmp_path: Path):
    output = (
        "aaa\x1f2024-01-02T10:00:00+00:00\x1f\x1fAda\x1fmine\x1e\n"
        "bbb\x1f2024-01-02T11:00:00+00:00\x1f\x1fAda Lovelace\x1fnot mine\x1e\n"
    )
    captured = {}

    def mock_run(command, **kwargs):
        captured["command"] = command
        return _completed(stdout=output)

    monkeypatch.setattr(subprocess, "run", mock_run)
    since = datetime(2024, 1, 1, tzinfo=timezone.utc)
    entries = GitCliInspector().log_commits(str(tmp_path), "main", "Ada", since=since)

    assert [e.hash for e in entries] == ["aaa"]
    assert "--author=Ada" in captured["command"]
    assert "--fixed-strings" in captured["command"]
    assert "--since=2024-01-01 00:00:00 +0000" in captured["command"]
    assert captured["command"][-1] == "--"


def test_validate_rejects_missing_path(tmp_path: Path):
    with pytest.raises(PathNotFound):
        GitCliInspector().validate_local_repository(str(tmp_path / "missing"))


def test_validate_rejects_non_repository(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(
        subprocess, "run",
        lambda *a, **k: _completed(returncode=128, stderr="fatal: not a git repository (or any parent)"),
    )
    with pytest.raises(NotAGitRepository):
        GitCliInspector().validate_local_repository(str(tmp_path))


def test_validate_rejects_subdirectory_of_repository(monkeypatch, tmp_path: Path):
    sub = tmp_path / "sub"
    sub.mkdir()
    monkeypatch.setattr(subprocess, "run", lambda *a, **k: _completed(stdout=f"{tmp_path}\n"))
    with pytest.raises(NotAGitRepository, match="not its root"):
        GitCliInspector().validate_local_repository(str(sub))


def test_reachability_classification(monkeypatch, tmp_path: Path):
    inspector = GitCliInspector()
    assert inspector.check_repository_reachable(str(tmp_path / "gone"))[0] is HealthStatus.MISSING

    a_file = tmp_path / "file.txt"
    a_file.write_text("x")
    assert inspector.check_repository_reachable(str(a_file))[0] is HealthStatus.DELETED

    monkeypatch.setattr(
        subprocess, "run", lambda *a, **k: _completed(returncode=128, stderr="fatal: not a git repository")
    )
    assert inspector.check_repository_reachable(str(tmp_path))[0] is HealthStatus.DELETED

    monkeypatch.setattr(subprocess, "run", lambda *a, **k: _completed(stdout=f"{tmp_path}\n"))
    assert inspector.check_repository_reachable(str(tmp_path)) == (HealthStatus.ACTIVE, "")


def test_reachability_rejects_folder_nested_in_a_repository(monkeypatch, tmp_path: Path):
    child = tmp_path / "src"
    child.mkdir()
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return _completed(stdout=f"{tmp_path}\n")

    monkeypatch.setattr(subprocess, "run", fake_run)
    status, message = GitCliInspector().check_repository_reachable(str(child))

    assert status is HealthStatus.DELETED
    assert message == "Not the root of a Git repository."
    assert calls[0][-2:] == ["rev-parse", "--show-toplevel"]


def test_config_user_name_unset_returns_empty(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(subprocess, "run", lambda *a, **k: _completed(returncode=1))
    assert GitCliInspector().config_user_name(str(tmp_path)) == ""
