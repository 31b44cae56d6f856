import uuid

from services.exceptions import InvalidCredentialsError, UserNotFoundError
from services.user_service import UserService
from utils.hashing import bcrypt_context
from utils.logger import get_logger

logger = get_logger(__name__)


class CredentialVerifier:
    """
    Checks an email/password pair against the user directory.

    A missing user and a wrong password raise the same InvalidCredentialsError,
    so callers cannot probe which emails are registered. Other directory
    failures propagate unchanged.
    """

    def __init__(self, users: UserService):
        self.users = users

    def verify(self, email: str, password: str) -> uuid.UUID:
        try:
            user = self.users.get_by_email(email)
        except UserNotFoundError:
            # spend the same bcrypt time as a real check
            bcrypt_context.dummy_verify()
            logger.warning("Login failed - user not found", extra={"email": email})
            raise InvalidCredentialsError()

        if not user.check_password(password):
            logger.warning(
                "Login failed - invalid password",
                extra={"user_id": str(user.id), "email": email}
            )
            raise InvalidCredentialsError()

        logger.debug("User authenticated successfully", extra={"user_id": str(user.id)})
        return user.id
