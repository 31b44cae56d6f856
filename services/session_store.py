"""
Refresh-token session state kept in the key-value store.

A live session is two reciprocal entries sharing one lifetime:
    <prefix>refresh_token:<user_id>  ->  refresh token
    <prefix>user_id:<refresh token>  ->  user id

Each method is a single round trip. Absence is returned as None; store
failures surface as SessionStoreError.
"""

import uuid
from datetime import timedelta
from typing import Optional

from core.kv_store import KeyValueStore, KeyValueStoreError


class SessionStoreError(Exception):
    """The key-value store could not be reached or refused the command."""


class SessionStore:

    def __init__(self, kv: KeyValueStore, key_prefix: str = ""):
        self.kv = kv
        self.key_prefix = key_prefix

    def _user_key(self, user_id: uuid.UUID) -> str:
        return f"{self.key_prefix}refresh_token:{user_id}"

    def _token_key(self, token: str) -> str:
        return f"{self.key_prefix}user_id:{token}"

    @staticmethod
    def _seconds(ttl: timedelta) -> int:
        # Redis rejects a zero or negative expiry
        return max(1, int(ttl.total_seconds()))

    # user -> refresh token

    def put_refresh_for_user(self, user_id: uuid.UUID, token: str, ttl: timedelta) -> None:
        try:
            self.kv.set(self._user_key(user_id), token, self._seconds(ttl))
        except KeyValueStoreError as e:
            raise SessionStoreError("Failed to store refresh token for user") from e

    def get_refresh_for_user(self, user_id: uuid.UUID) -> Optional[str]:
        try:
            return self.kv.get(self._user_key(user_id))
        except KeyValueStoreError as e:
            raise SessionStoreError("Failed to read refresh token for user") from e

    def delete_refresh_for_user(self, user_id: uuid.UUID) -> None:
        try:
            self.kv.delete(self._user_key(user_id))
        except KeyValueStoreError as e:
            raise SessionStoreError("Failed to delete refresh token for user") from e

    # refresh token -> user

    def put_user_for_refresh(self, token: str, user_id: uuid.UUID, ttl: timedelta) -> None:
        try:
            self.kv.set(self._token_key(token), str(user_id), self._seconds(ttl))
        except KeyValueStoreError as e:
            raise SessionStoreError("Failed to store user for refresh token") from e

    def get_user_for_refresh(self, token: str) -> Optional[uuid.UUID]:
        try:
            value = self.kv.get(self._token_key(token))
        except KeyValueStoreError as e:
            raise SessionStoreError("Failed to read user for refresh token") from e

        if value is None:
            return None

        try:
            return uuid.UUID(value)
        except ValueError as e:
            raise SessionStoreError("Stored user id is not a UUID") from e

    def delete_user_for_refresh(self, token: str) -> None:
        try:
            self.kv.delete(self._token_key(token))
        except KeyValueStoreError as e:
            raise SessionStoreError("Failed to delete user for refresh token") from e
