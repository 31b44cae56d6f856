import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from services.credential_verifier import CredentialVerifier
from services.exceptions import (
    InternalServiceError, InvalidOrExpiredTokenError, InvalidTokenError, UserNotFoundError
)
from services.session_store import SessionStore, SessionStoreError
from services.token_codec import TokenCodec, TokenError
from services.user_service import UserService
from utils.logger import get_logger, mask_token

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_refresh_token() -> str:
    # 256 bits from the OS CSPRNG
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds


class AuthService:
    """
    Login, refresh, logout and access-token validation.

    Session state lives only in the SessionStore; this class keeps nothing
    between calls, so one instance per request is fine.

    A refresh token moves through: issued (both mappings written), rotated
    (superseded by the next refresh, its reverse mapping deleted), revoked
    (logout) or expired (store TTL).

    Paired writes are not transactional. If the second mapping cannot be
    written the token pair is still returned and the stranded first entry
    expires on its own TTL. Login and refresh follow the same rule.
    """

    def __init__(
        self,
        users: UserService,
        credentials: CredentialVerifier,
        sessions: SessionStore,
        codec: TokenCodec,
        access_token_ttl: timedelta,
        refresh_token_ttl: timedelta,
        clock: Callable[[], datetime] = utc_now,
        token_factory: Callable[[], str] = generate_refresh_token,
    ):
        self.users = users
        self.credentials = credentials
        self.sessions = sessions
        self.codec = codec
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self.clock = clock
        self.token_factory = token_factory

    def login(self, email: str, password: str) -> TokenPair:
        """
        Exchange credentials for a token pair.

        Raises:
            InvalidCredentialsError: unknown email or wrong password
            InternalServiceError: directory or session store failure
        """
        user_id = self.credentials.verify(email, password)
        previous = self._current_refresh_token(user_id)
        pair = self._start_session(user_id)
        if previous is not None:
            self._retire(previous, user_id)

        logger.info("User logged in successfully", extra={"user_id": str(user_id)})
        return pair

    def refresh_token(self, refresh_token: str) -> TokenPair:
        """
        Rotate a refresh token: issue a new pair and retire the old token.

        Raises:
            InvalidOrExpiredTokenError: token unknown, expired, revoked, or
                its user no longer exists
            InternalServiceError: directory or session store failure
        """
        try:
            user_id = self.sessions.get_user_for_refresh(refresh_token)
        except SessionStoreError as e:
            logger.error("Failed to look up refresh token", exc_info=True)
            raise InternalServiceError("Failed to look up refresh token") from e

        if user_id is None:
            logger.warning(
                "Refresh rejected - unknown or expired token",
                extra={"refresh_token": mask_token(refresh_token)}
            )
            raise InvalidOrExpiredTokenError()

        try:
            self.users.get_by_id(user_id)
        except UserNotFoundError:
            logger.warning("Refresh rejected - user no longer exists", extra={"user_id": str(user_id)})
            raise InvalidOrExpiredTokenError()

        pair = self._start_session(user_id)
        self._retire(refresh_token, user_id)

        logger.info("Access token refreshed", extra={"user_id": str(user_id)})
        return pair

    def logout(self, user_id: uuid.UUID) -> None:
        """
        End the user's session. Calling it with no live session is a no-op.

        Raises:
            InternalServiceError: the user's session entry could not be removed
        """
        try:
            current = self.sessions.get_refresh_for_user(user_id)
        except SessionStoreError as e:
            logger.error("Failed to read session during logout",
                         extra={"user_id": str(user_id)}, exc_info=True)
            raise InternalServiceError("Failed to read session during logout") from e

        if current is not None:
            try:
                self.sessions.delete_user_for_refresh(current)
            except SessionStoreError:
                logger.warning(
                    "Failed to delete refresh token mapping during logout",
                    extra={"user_id": str(user_id)},
                    exc_info=True
                )

        try:
            self.sessions.delete_refresh_for_user(user_id)
        except SessionStoreError as e:
            logger.error("Failed to delete session during logout",
                         extra={"user_id": str(user_id)}, exc_info=True)
            raise InternalServiceError("Failed to delete session during logout") from e

        logger.info("User logged out", extra={"user_id": str(user_id), "had_session": current is not None})

    def end_sessions_after(self, user_id: uuid.UUID, reason: str) -> None:
        """
        Log the user out after an account change that already succeeded.

        The account change is not undone if this fails; a refresh for a
        deleted user is rejected anyway, and the token expires on its TTL.
        """
        try:
            self.logout(user_id)
        except InternalServiceError:
            logger.warning(
                "Failed to end sessions after account change",
                extra={"user_id": str(user_id), "reason": reason}
            )

    def validate_token(self, access_token: str) -> uuid.UUID:
        """
        Return the user id an access token was issued to.

        Stateless: a token stays valid until it expires, even after logout.

        Raises:
            InvalidTokenError: for any verification failure
        """
        try:
            return self.codec.verify(access_token, self.clock())
        except TokenError as e:
            logger.debug(
                "Access token rejected",
                extra={"reason": type(e).__name__, "detail": str(e)}
            )
            raise InvalidTokenError() from e

    def get_user_from_token(self, access_token: str):
        """
        Resolve an access token to the user record it was issued to.

        Raises:
            InvalidTokenError: token fails verification
            UserNotFoundError: token is valid but the user was deleted since
        """
        return self.users.get_by_id(self.validate_token(access_token))

    def _start_session(self, user_id: uuid.UUID) -> TokenPair:
        now = self.clock()
        access_token = self.codec.issue(user_id, now, self.access_token_ttl)
        refresh_token = self.token_factory()

        try:
            self.sessions.put_refresh_for_user(user_id, refresh_token, self.refresh_token_ttl)
        except SessionStoreError as e:
            logger.error("Failed to store refresh token", extra={"user_id": str(user_id)}, exc_info=True)
            raise InternalServiceError("Failed to store refresh token") from e

        try:
            self.sessions.put_user_for_refresh(refresh_token, user_id, self.refresh_token_ttl)
        except SessionStoreError:
            logger.warning(
                "Failed to store refresh token reverse mapping; refresh will fail until next login",
                extra={"user_id": str(user_id)},
                exc_info=True
            )

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.access_token_ttl.total_seconds())
        )

    def _current_refresh_token(self, user_id: uuid.UUID) -> Optional[str]:
        """Best-effort read of the token a new login is about to supersede."""
        try:
            return self.sessions.get_refresh_for_user(user_id)
        except SessionStoreError:
            logger.warning("Failed to read current refresh token before login",
                           extra={"user_id": str(user_id)}, exc_info=True)
            return None

    def _retire(self, old_token: str, user_id: uuid.UUID) -> None:
        """Best-effort delete of a superseded token's reverse mapping."""
        try:
            self.sessions.delete_user_for_refresh(old_token)
        except SessionStoreError:
            logger.warning(
                "Failed to delete superseded refresh token; it will expire on its TTL",
                extra={"user_id": str(user_id)},
                exc_info=True
            )
