# src/repolink/remote.py: Client for the repository backend.
# Talks JSON over HTTP(S) to the backend that owns repository registrations,
# commit history and projects. Every response is decoded into a typed model;
# a payload that does not match raises MalformedRemoteResponse instead of
# leaking half-read dictionaries. Transport failures are reported as
# NetworkUnreachable so callers can fall back to local data, while error
# statuses (including auth failures) surface as RemoteAPIError.

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from .models import (
    CommitRecord,
    CommitStats,
    FileChange,
    RemoteProject,
    RemoteRepository,
    WireModel,
)
from .util.errors import MalformedRemoteResponse, NetworkUnreachable, RemoteAPIError
from .util.log import get_logger

logger = get_logger(__name__)


# --- Request payloads ---

class RegisterRepositoryRequest(WireModel):
    name: str
    description: str = ""
    path: str
    project_id: Optional[str] = None
    developer_id: str
    repo_fingerprint: str


class CommitPayload(WireModel):
    repo_id: str
    developer_id: str
    project_id: str
    commit_hash: str
    message: str
    branch: str
    timestamp: datetime
    stats: CommitStats
    changes: List[FileChange]
    parent_commit: Optional[str] = None
    desktop_synced_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: CommitRecord) -> "CommitPayload":
        return cls(
            repo_id=record.repo_id,
            developer_id=record.developer_id,
            project_id=record.project_id,
            commit_hash=record.commit_hash,
            message=record.message,
            branch=record.branch,
            timestamp=record.timestamp,
            stats=record.stats,
            changes=record.changes,
            parent_commit=record.parent_commit,
            desktop_synced_at=record.created_at,
        )


class RepositoryPatch(WireModel):
    developer_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    path: Optional[str] = None
    status: Optional[str] = None


class UploadAck(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: Optional[str] = None


class _RepositoryList(BaseModel):
    repositories: List[RemoteRepository]


_PROJECTS = TypeAdapter(List[RemoteProject])


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or default
    message = body.get("message") if isinstance(body, dict) else None
    if isinstance(message, list):
        return ", ".join(str(item) for item in message)
    return str(message) if message else default


class BackendClient:
    """
    Synchronous backend client. The bearer token is passed per request.
    """

    def __init__(self, base_url: str, timeout: float = 15.0, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "BackendClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _request(self, method: str, path: str, token: str, json: Any = None) -> Any:
        """Send a request and return the 'data' member of the response envelope."""
        try:
            response = self._client.request(
                method, path, json=json, headers={"Authorization": f"Bearer {token}"}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response, f"Backend returned HTTP {e.response.status_code}.")
            logger.error("%s %s failed with %s: %s", method, path, e.response.status_code, message)
            raise RemoteAPIError(message, status_code=e.response.status_code) from e
        except httpx.TransportError as e:
            logger.warning("Backend unreachable for %s %s: %s", method, path, e)
            raise NetworkUnreachable(f"Backend at {self.base_url} is unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedRemoteResponse(f"{method} {path} returned a non-JSON body.") from e
        if not isinstance(body, dict) or "data" not in body:
            raise MalformedRemoteResponse(f"{method} {path} response has no 'data' member.")
        return body["data"]

    def register_repository(self, token: str, request: RegisterRepositoryRequest) -> RemoteRepository:
        data = self._request(
            "POST", "/repositories/register", token, json=request.model_dump(mode="json", by_alias=True)
        )
        try:
            return RemoteRepository.model_validate(data)
        except ValidationError as e:
            raise MalformedRemoteResponse(f"Invalid repository registration response: {e}") from e

    def list_repositories(self, token: str) -> List[RemoteRepository]:
        data = self._request("GET", "/repositories/me/developer", token)
        try:
            return _RepositoryList.model_validate(data).repositories
        except ValidationError as e:
            raise MalformedRemoteResponse(f"Invalid repository list response: {e}") from e

    def upload_commits(self, token: str, commits: Sequence[CommitPayload]) -> UploadAck:
        payload = [commit.model_dump(mode="json", by_alias=True) for commit in commits]
        data = self._request("POST", "/git-data/commits", token, json=payload)
        if not isinstance(data, dict):
            return UploadAck()
        try:
            return UploadAck.model_validate(data)
        except ValidationError as e:
            raise MalformedRemoteResponse(f"Invalid commit upload response: {e}") from e

    def list_projects(self, token: str) -> List[RemoteProject]:
        data = self._request("GET", "/users/developers/me/projects", token)
        try:
            return _PROJECTS.validate_python(data)
        except ValidationError as e:
            raise MalformedRemoteResponse(f"Invalid project list response: {e}") from e

    def update_repository(self, token: str, repo_id: str, patch: RepositoryPatch) -> Any:
        body = patch.model_dump(mode="json", by_alias=True, exclude_none=True)
        return self._request("PATCH", f"/repositories/{repo_id}", token, json=body)
