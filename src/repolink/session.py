# src/repolink/session.py: Authenticated session capability.
# The sync engine only needs the current developer id and a bearer token.
# KeyringSessionProvider keeps both in the OS keyring; obtaining or
# refreshing tokens is left to whoever calls save().

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError
from pydantic import BaseModel, ValidationError

from .util.errors import AuthenticationError
from .util.log import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "repolink"
SESSION_KEY = "session"

# Treat tokens this close to expiry as expired.
EXPIRY_BUFFER = timedelta(seconds=60)


class Session(BaseModel):
    user_id: str
    access_token: str
    expires_at: Optional[datetime] = None
    email: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now + EXPIRY_BUFFER


class SessionProvider(ABC):
    @abstractmethod
    def current(self) -> Session:
        """Return the active session or raise AuthenticationError."""


class StaticSessionProvider(SessionProvider):
    """A fixed session, for embedding callers that manage auth themselves."""

    def __init__(self, session: Session):
        self._session = session

    def current(self) -> Session:
        if self._session.is_expired():
            raise AuthenticationError("Session expired. Please re-authenticate.")
        return self._session


class KeyringSessionProvider(SessionProvider):
    """
    Session persisted as JSON in the OS keyring.
    """

    def __init__(self, service_name: str = SERVICE_NAME):
        self.service_name = service_name

    def current(self) -> Session:
        try:
            raw = keyring.get_password(self.service_name, SESSION_KEY)
        except KeyringError as e:
            logger.error("Keyring unavailable: %s", e)
            raise AuthenticationError(f"Could not read the session from the keyring: {e}")
        if not raw:
            raise AuthenticationError("No active session. Run 'repolink login' first.")
        try:
            session = Session.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise AuthenticationError(f"Stored session is corrupt; please log in again: {e}")
        if session.is_expired():
            raise AuthenticationError("Session expired. Please re-authenticate.")
        return session

    def save(self, session: Session) -> None:
        try:
            keyring.set_password(self.service_name, SESSION_KEY, session.model_dump_json())
        except KeyringError as e:
            raise AuthenticationError(f"Could not store the session in the keyring: {e}")

    def clear(self) -> None:
        try:
            keyring.delete_password(self.service_name, SESSION_KEY)
        except PasswordDeleteError:
            pass
        except KeyringError as e:
            raise AuthenticationError(f"Could not clear the session from the keyring: {e}")
