"""
Service-layer exceptions.

Every exception carries the HTTP status and the RPC status name the transports
map it to, so routers and the RPC dispatcher never inspect messages.
"""

from starlette import status


class ServiceError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    rpc_status: str = "INVALID_ARGUMENT"
    message: str = "Bad request"

    def __init__(self, message: str = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# Authentication

class InvalidCredentialsError(ServiceError):
    """Wrong email or password. Never says which one."""
    status_code = status.HTTP_401_UNAUTHORIZED
    rpc_status = "UNAUTHENTICATED"
    message = "Invalid email or password"


class InvalidOrExpiredTokenError(ServiceError):
    """Refresh token is unknown, expired, revoked or belongs to a deleted user."""
    status_code = status.HTTP_401_UNAUTHORIZED
    rpc_status = "UNAUTHENTICATED"
    message = "Invalid or expired refresh token"


class InvalidTokenError(ServiceError):
    """Access token failed verification for any reason."""
    status_code = status.HTTP_401_UNAUTHORIZED
    rpc_status = "UNAUTHENTICATED"
    message = "Invalid or expired token"


class PermissionDeniedError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    rpc_status = "PERMISSION_DENIED"
    message = "Not allowed to modify another user"


# Users

class UserNotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    rpc_status = "NOT_FOUND"
    message = "User not found"


class UserAlreadyExistsError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    rpc_status = "ALREADY_EXISTS"
    message = "User already exists"


class EmailInUseError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    rpc_status = "ALREADY_EXISTS"
    message = "Email already in use"


class IncorrectPasswordError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    rpc_status = "INVALID_ARGUMENT"
    message = "Incorrect current password"


# Infrastructure

class InternalServiceError(ServiceError):
    """Store or database failure. The message is for logs, clients get a generic one."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    rpc_status = "INTERNAL"
    message = "Internal server error"
