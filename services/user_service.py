import uuid
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models.users import User
from services.exceptions import (
    EmailInUseError, IncorrectPasswordError, InternalServiceError,
    UserAlreadyExistsError, UserNotFoundError
)
from utils.hashing import get_password_hash
from utils.logger import get_logger

logger = get_logger(__name__)


class UserService:
    """
    User directory backed by the relational database.

    Lookups raise UserNotFoundError for a missing user and InternalServiceError
    for database failures, so callers can tell the two apart.
    """

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, operation: str):
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Database commit failed during {operation}",
                extra={"operation": operation, "error_type": type(e).__name__},
                exc_info=True
            )
            raise InternalServiceError(f"Failed to {operation}") from e

    def _find_by_email(self, email: str) -> Optional[User]:
        try:
            return self.db.query(User).filter(User.email == email).one_or_none()
        except SQLAlchemyError as e:
            raise InternalServiceError("Failed to query user by email") from e

    def register(self, email: str, password: str, first_name: str, last_name: str) -> User:
        if self._find_by_email(email) is not None:
            logger.warning("Registration attempt with existing email", extra={"email": email})
            raise UserAlreadyExistsError()

        model = User(
            email=email,
            hashed_password=get_password_hash(password),
            first_name=first_name,
            last_name=last_name
        )
        self.db.add(model)

        try:
            self._commit("register user")
        except IntegrityError as e:
            # lost a race with a concurrent registration of the same email
            raise UserAlreadyExistsError() from e

        self.db.refresh(model)
        logger.info("User registered", extra={"user_id": str(model.id), "email": model.email})
        return model

    def get_by_id(self, user_id: uuid.UUID) -> User:
        try:
            model = self.db.get(User, user_id)
        except SQLAlchemyError as e:
            raise InternalServiceError("Failed to query user by id") from e

        if model is None:
            raise UserNotFoundError()
        return model

    def get_by_email(self, email: str) -> User:
        model = self._find_by_email(email)
        if model is None:
            raise UserNotFoundError()
        return model

    def update(self, user_id: uuid.UUID, first_name: Optional[str] = None,
               last_name: Optional[str] = None, email: Optional[str] = None) -> User:
        """Apply only the fields that were provided."""
        model = self.get_by_id(user_id)

        if email is not None and email != model.email:
            if self._find_by_email(email) is not None:
                raise EmailInUseError()
            model.email = email

        if first_name is not None:
            model.first_name = first_name

        if last_name is not None:
            model.last_name = last_name

        try:
            self._commit("update user")
        except IntegrityError as e:
            raise EmailInUseError() from e

        self.db.refresh(model)
        logger.info("User updated", extra={"user_id": str(model.id)})
        return model

    def update_password(self, user_id: uuid.UUID, current_password: str, new_password: str) -> None:
        model = self.get_by_id(user_id)

        if not model.check_password(current_password):
            logger.warning("Password change rejected - incorrect current password",
                           extra={"user_id": str(user_id)})
            raise IncorrectPasswordError()

        model.hashed_password = get_password_hash(new_password)
        self._commit("update password")
        logger.info("Password updated", extra={"user_id": str(user_id)})

    def delete(self, user_id: uuid.UUID) -> None:
        model = self.get_by_id(user_id)
        self.db.delete(model)
        self._commit("delete user")
        logger.info("User deleted", extra={"user_id": str(user_id)})
