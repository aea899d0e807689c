# src/repolink/util/locking.py: Cross-process repository locks.
# Extraction for one repository must run to completion before another run
# for the same repository starts. This module hands out a non-blocking file
# lock per repository id, stored under the XDG state directory.

import re
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from filelock import FileLock, Timeout

from .errors import ExtractionInProgress
from .paths import get_xdg_state_home

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def lock_path_for(repo_id: str, lock_dir: Optional[Path] = None) -> Path:
    directory = lock_dir or (get_xdg_state_home() / "locks")
    return directory / f"{_UNSAFE.sub('_', repo_id)}.lock"


@contextmanager
def repo_lock(repo_id: str, lock_dir: Optional[Path] = None, timeout: float = 0) -> Iterator[None]:
    """Hold the extraction lock for a repository or raise ExtractionInProgress."""
    path = lock_path_for(repo_id, lock_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(str(path))
    try:
        lock.acquire(timeout=timeout)
    except Timeout:
        raise ExtractionInProgress(
            f"Another process is already extracting commits for repository '{repo_id}'."
        )
    try:
        yield
    finally:
        lock.release()
