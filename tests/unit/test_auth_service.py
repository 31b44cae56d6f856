import uuid
from datetime import datetime, timedelta, timezone

import pytest

from core.kv_store import KeyValueStoreError, MemoryKeyValueStore
from services.auth_service import AuthService, generate_refresh_token
from services.credential_verifier import CredentialVerifier
from services.exceptions import (InternalServiceError, InvalidCredentialsError,
    InvalidOrExpiredTokenError, InvalidTokenError, UserNotFoundError)
from services.session_store import SessionStore
from tests.helpers import TEST_PASSWORD

ACCESS_TTL = timedelta(minutes=15)
REFRESH_TTL = timedelta(days=7)


class FlakyStore(MemoryKeyValueStore):
    """
    Memory store that fails selected commands.

    fail_on holds (operation, key fragment) pairs, e.g. ("set", "user_id:")
    fails writes of the token -> user mapping.
    """

    def __init__(self, fail_on=()):
        super().__init__()
        self.fail_on = set(fail_on)

    def _check(self, operation, key):
        for failing_operation, fragment in self.fail_on:
            if operation == failing_operation and fragment in key:
                raise KeyValueStoreError(f"{operation} failed")

    def set(self, key, value, ttl_seconds):
        self._check("set", key)
        super().set(key, value, ttl_seconds)

    def get(self, key):
        self._check("get", key)
        return super().get(key)

    def delete(self, key):
        self._check("delete", key)
        super().delete(key)


class Clock:

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


@pytest.fixture
def make_auth(user_service, codec):
    def factory(kv=None, clock=None):
        return AuthService(
            users=user_service,
            credentials=CredentialVerifier(user_service),
            sessions=SessionStore(kv if kv is not None else MemoryKeyValueStore()),
            codec=codec,
            access_token_ttl=ACCESS_TTL,
            refresh_token_ttl=REFRESH_TTL,
            clock=clock or Clock(),
        )
    return factory


def test_refresh_tokens_are_random_and_url_safe():
    tokens = {generate_refresh_token() for _ in range(50)}

    assert len(tokens) == 50
    assert all(len(t) >= 43 and "=" not in t for t in tokens)


# login

def test_login_issues_pair(auth_service, registered_user):
    pair = auth_service.login(registered_user.email, TEST_PASSWORD)

    assert pair.expires_in == 15 * 60
    assert pair.refresh_token
    assert auth_service.validate_token(pair.access_token) == registered_user.id
    assert auth_service.sessions.get_refresh_for_user(registered_user.id) == pair.refresh_token
    assert auth_service.sessions.get_user_for_refresh(pair.refresh_token) == registered_user.id


def test_login_wrong_password(auth_service, registered_user):
    with pytest.raises(InvalidCredentialsError):
        auth_service.login(registered_user.email, "WrongPassword123!")


def test_login_unknown_email_same_error(auth_service, registered_user):
    with pytest.raises(InvalidCredentialsError) as exc_info:
        auth_service.login("nobody@example.com", TEST_PASSWORD)

    assert exc_info.value.message == InvalidCredentialsError.message


def test_second_login_supersedes_first(auth_service, registered_user):
    first = auth_service.login(registered_user.email, TEST_PASSWORD)
    second = auth_service.login(registered_user.email, TEST_PASSWORD)

    assert first.refresh_token != second.refresh_token
    with pytest.raises(InvalidOrExpiredTokenError):
        auth_service.refresh_token(first.refresh_token)
    assert auth_service.refresh_token(second.refresh_token).refresh_token


def test_login_first_write_failure_is_internal(make_auth, registered_user):
    auth = make_auth(FlakyStore(fail_on={("set", "refresh_token:")}))

    with pytest.raises(InternalServiceError):
        auth.login(registered_user.email, TEST_PASSWORD)


def test_login_second_write_failure_still_returns_pair(make_auth, registered_user):
    kv = FlakyStore(fail_on={("set", "user_id:")})
    auth = make_auth(kv)

    pair = auth.login(registered_user.email, TEST_PASSWORD)

    assert auth.validate_token(pair.access_token) == registered_user.id
    # the refresh token cannot be exchanged without its reverse mapping
    kv.fail_on.clear()
    with pytest.raises(InvalidOrExpiredTokenError):
        auth.refresh_token(pair.refresh_token)


def test_login_survives_unreadable_previous_session(make_auth, registered_user):
    auth = make_auth(FlakyStore(fail_on={("get", "refresh_token:")}))

    assert auth.login(registered_user.email, TEST_PASSWORD).access_token


# refresh

def test_refresh_rotates(auth_service, registered_user):
    pair = auth_service.login(registered_user.email, TEST_PASSWORD)

    rotated = auth_service.refresh_token(pair.refresh_token)

    assert rotated.refresh_token != pair.refresh_token
    assert auth_service.validate_token(rotated.access_token) == registered_user.id
    assert auth_service.sessions.get_refresh_for_user(registered_user.id) == rotated.refresh_token

    # single use
    with pytest.raises(InvalidOrExpiredTokenError):
        auth_service.refresh_token(pair.refresh_token)


def test_refresh_unknown_token(auth_service):
    with pytest.raises(InvalidOrExpiredTokenError):
        auth_service.refresh_token("never-issued")


def test_refresh_for_deleted_user(auth_service, user_service, registered_user):
    pair = auth_service.login(registered_user.email, TEST_PASSWORD)
    user_service.delete(registered_user.id)

    with pytest.raises(InvalidOrExpiredTokenError):
        auth_service.refresh_token(pair.refresh_token)


def test_refresh_lookup_failure_is_internal(make_auth):
    auth = make_auth(FlakyStore(fail_on={("get", "user_id:")}))

    with pytest.raises(InternalServiceError):
        auth.refresh_token("any-token")


def test_refresh_cleanup_failure_is_ignored(make_auth, registered_user):
    kv = FlakyStore()
    auth = make_auth(kv)
    pair = auth.login(registered_user.email, TEST_PASSWORD)

    kv.fail_on.add(("delete", "user_id:"))
    rotated = auth.refresh_token(pair.refresh_token)

    assert auth.validate_token(rotated.access_token) == registered_user.id


# logout

def test_logout_revokes_refresh(auth_service, registered_user):
    pair = auth_service.login(registered_user.email, TEST_PASSWORD)

    auth_service.logout(registered_user.id)

    assert auth_service.sessions.get_refresh_for_user(registered_user.id) is None
    with pytest.raises(InvalidOrExpiredTokenError):
        auth_service.refresh_token(pair.refresh_token)
    # access tokens are stateless and outlive logout
    assert auth_service.validate_token(pair.access_token) == registered_user.id


def test_logout_without_session_is_noop(auth_service):
    auth_service.logout(uuid.uuid4())


def test_logout_delete_failure_is_internal(make_auth, registered_user):
    kv = FlakyStore()
    auth = make_auth(kv)
    auth.login(registered_user.email, TEST_PASSWORD)

    kv.fail_on.add(("delete", "refresh_token:"))
    with pytest.raises(InternalServiceError):
        auth.logout(registered_user.id)

    # account changes only log the failure
    auth.end_sessions_after(registered_user.id, reason="password_change")


# validate

def test_validate_expired_token(make_auth, registered_user):
    clock = Clock()
    auth = make_auth(clock=clock)
    pair = auth.login(registered_user.email, TEST_PASSWORD)

    clock.now += ACCESS_TTL - timedelta(seconds=1)
    assert auth.validate_token(pair.access_token) == registered_user.id

    clock.now += timedelta(seconds=1)
    with pytest.raises(InvalidTokenError):
        auth.validate_token(pair.access_token)


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_validate_rejects_garbage(auth_service, token):
    with pytest.raises(InvalidTokenError):
        auth_service.validate_token(token)


def test_get_user_from_token(auth_service, user_service, registered_user):
    user_id = registered_user.id
    pair = auth_service.login(registered_user.email, TEST_PASSWORD)

    assert auth_service.get_user_from_token(pair.access_token).id == user_id

    with pytest.raises(InvalidTokenError):
        auth_service.get_user_from_token("garbage")

    user_service.delete(user_id)
    with pytest.raises(UserNotFoundError):
        auth_service.get_user_from_token(pair.access_token)
