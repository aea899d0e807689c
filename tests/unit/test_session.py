# tests/unit/test_session.py: Unit tests for keyring-backed sessions.

from datetime import datetime, timedelta, timezone

import pytest
from keyring.errors import KeyringError, PasswordDeleteError
from pytest_mock import MockerFixture

from repolink.session import KeyringSessionProvider, Session
from repolink.util.errors import AuthenticationError


@pytest.fixture
def vault(mocker: MockerFixture):
    """An in-memory stand-in for the OS keyring."""
    store = {}
    mocker.patch("keyring.get_password", side_effect=lambda service, key: store.get((service, key)))
    mocker.patch("keyring.set_password", side_effect=lambda service, key, value: store.__setitem__((service, key), value))

    def delete(service, key):
        if (service, key) not in store:
            raise PasswordDeleteError("not found")
        del store[(service, key)]

    mocker.patch("keyring.delete_password", side_effect=delete)
    return store


def test_save_then_current(vault):
    provider = KeyringSessionProvider()
    provider.save(Session(user_id="d-1", access_token="abc", email="ada@example.test"))

    session = provider.current()
    assert session.user_id == "d-1"
    assert session.access_token == "abc"


def test_no_session(vault):
    with pytest.raises(AuthenticationError, match="repolink login"):
        KeyringSessionProvider().current()


def test_expired_session(vault):
    provider = KeyringSessionProvider()
    provider.save(Session(
        user_id="d-1", access_token="abc", expires_at=datetime.now(timezone.utc) + timedelta(seconds=30)
    ))
    with pytest.raises(AuthenticationError, match="expired"):
        provider.current()


def test_corrupt_session(vault):
    vault[("repolink", "session")] = "{not json"
    with pytest.raises(AuthenticationError, match="corrupt"):
        KeyringSessionProvider().current()


def test_clear_is_idempotent(vault):
    provider = KeyringSessionProvider()
    provider.save(Session(user_id="d-1", access_token="abc"))
    provider.clear()
    provider.clear()
    with pytest.raises(AuthenticationError):
        provider.current()


def test_keyring_backend_failure(mocker: MockerFixture):
    mocker.patch("keyring.get_password", side_effect=KeyringError("locked"))
    with pytest.raises(AuthenticationError, match="locked"):
        KeyringSessionProvider().current()


def test_naive_expiry_is_treated_as_utc():
    session = Session(user_id="d", access_token="t", expires_at=datetime(2000, 1, 1))
    assert session.is_expired() is True
