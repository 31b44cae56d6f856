import uuid
from fastapi import APIRouter, Query
from starlette import status
from schemas.user_schemas import (ChangePasswordRequest, CreateUserRequest,
    UpdateUserRequest, UserResponse)
from services.exceptions import PermissionDeniedError
from utils.deps import auth_service_dependency, current_user_dependency, user_service_dependency
from utils.logger import get_logger

# Setup logger
logger = get_logger(__name__)


router = APIRouter(
    prefix="/users",
    tags=["users"]
)


def ensure_self(current_user_id: uuid.UUID, user_id: uuid.UUID):
    if current_user_id != user_id:
        logger.warning(
            "Attempt to modify another user",
            extra={"user_id": str(current_user_id), "target_user_id": str(user_id)}
        )
        raise PermissionDeniedError()


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
def register(body: CreateUserRequest, users: user_service_dependency):
    return users.register(body.email, body.password, body.first_name, body.last_name)


@router.get("", response_model=UserResponse)
def get_user_by_email(users: user_service_dependency, email: str = Query(min_length=1)):
    return users.get_by_email(email)


@router.get("/{user_id}", response_model=UserResponse)
def get_user_by_id(user_id: uuid.UUID, users: user_service_dependency):
    return users.get_by_id(user_id)


@router.put("/{user_id}", response_model=UserResponse)
def update_user(user_id: uuid.UUID, body: UpdateUserRequest,
                current_user_id: current_user_dependency, users: user_service_dependency):
    ensure_self(current_user_id, user_id)
    return users.update(user_id, first_name=body.first_name,
                        last_name=body.last_name, email=body.email)


@router.patch("/{user_id}/password", status_code=status.HTTP_200_OK)
def update_password(user_id: uuid.UUID, body: ChangePasswordRequest,
                    current_user_id: current_user_dependency,
                    users: user_service_dependency, auth: auth_service_dependency):
    """
    Change password. The user's refresh token is revoked afterwards.
    """
    ensure_self(current_user_id, user_id)
    users.update_password(user_id, body.current_password, body.new_password)
    auth.end_sessions_after(user_id, reason="password_change")

    return {"message": "Password updated successfully"}


@router.delete("/{user_id}", status_code=status.HTTP_200_OK)
def delete_user(user_id: uuid.UUID, current_user_id: current_user_dependency,
                users: user_service_dependency, auth: auth_service_dependency):
    ensure_self(current_user_id, user_id)
    users.delete(user_id)
    auth.end_sessions_after(user_id, reason="account_deleted")

    return {"message": "User deleted successfully"}
