"""
RPC methods for the auth and user services.

Methods that change an account take the caller's access token in the
"access_token" param and may only act on the caller's own account.
"""

import uuid
from typing import Any, Dict

from rpc.server import RPCContext, RPCDispatcher, invalid_argument
from schemas.auth_schemas import LoginRequest
from schemas.user_schemas import (ChangePasswordRequest, CreateUserRequest,
    UpdateUserRequest, UserResponse)
from services.auth_service import TokenPair
from services.exceptions import PermissionDeniedError

dispatcher = RPCDispatcher()


def require_str(params: Dict[str, Any], name: str) -> str:
    value = params.get(name)
    if not isinstance(value, str) or not value.strip():
        raise invalid_argument(f"{name} is required")
    return value


def require_uuid(params: Dict[str, Any], name: str) -> uuid.UUID:
    value = require_str(params, name)
    try:
        return uuid.UUID(value)
    except ValueError:
        raise invalid_argument(f"Invalid {name} format")


def authenticate_self(ctx: RPCContext, params: Dict[str, Any]) -> uuid.UUID:
    """Return the target user id after checking the caller owns it."""
    target = require_uuid(params, "id")
    caller = ctx.auth.validate_token(require_str(params, "access_token"))
    if caller != target:
        raise PermissionDeniedError()
    return target


def token_result(pair: TokenPair) -> Dict[str, Any]:
    return {
        "access_token": pair.access_token,
        "refresh_token": pair.refresh_token,
        "expires_in": pair.expires_in,
    }


def user_result(user) -> Dict[str, Any]:
    return UserResponse.model_validate(user).model_dump(mode="json")


# AuthService

@dispatcher.method("AuthService.Login")
def login(ctx: RPCContext, params: Dict[str, Any]):
    require_str(params, "email")
    require_str(params, "password")
    body = LoginRequest.model_validate(params)
    return token_result(ctx.auth.login(body.email, body.password))


@dispatcher.method("AuthService.RefreshToken")
def refresh_token(ctx: RPCContext, params: Dict[str, Any]):
    return token_result(ctx.auth.refresh_token(require_str(params, "refresh_token")))


@dispatcher.method("AuthService.Logout")
def logout(ctx: RPCContext, params: Dict[str, Any]):
    user_id = ctx.auth.validate_token(require_str(params, "access_token"))
    ctx.auth.logout(user_id)
    return {}


@dispatcher.method("AuthService.ValidateToken")
def validate_token(ctx: RPCContext, params: Dict[str, Any]):
    user_id = ctx.auth.validate_token(require_str(params, "access_token"))
    return {"valid": True, "user_id": str(user_id)}


@dispatcher.method("AuthService.GetUserFromToken")
def get_user_from_token(ctx: RPCContext, params: Dict[str, Any]):
    return user_result(ctx.auth.get_user_from_token(require_str(params, "access_token")))


# UserService

@dispatcher.method("UserService.Register")
def register(ctx: RPCContext, params: Dict[str, Any]):
    body = CreateUserRequest.model_validate(params)
    user = ctx.users.register(body.email, body.password, body.first_name, body.last_name)
    return user_result(user)


@dispatcher.method("UserService.GetUserByID")
def get_user_by_id(ctx: RPCContext, params: Dict[str, Any]):
    return user_result(ctx.users.get_by_id(require_uuid(params, "id")))


@dispatcher.method("UserService.GetUserByEmail")
def get_user_by_email(ctx: RPCContext, params: Dict[str, Any]):
    return user_result(ctx.users.get_by_email(require_str(params, "email")))


@dispatcher.method("UserService.UpdateUser")
def update_user(ctx: RPCContext, params: Dict[str, Any]):
    user_id = authenticate_self(ctx, params)
    body = UpdateUserRequest.model_validate(
        {k: v for k, v in params.items() if k in UpdateUserRequest.model_fields}
    )
    user = ctx.users.update(user_id, first_name=body.first_name,
                            last_name=body.last_name, email=body.email)
    return user_result(user)


@dispatcher.method("UserService.UpdatePassword")
def update_password(ctx: RPCContext, params: Dict[str, Any]):
    user_id = authenticate_self(ctx, params)
    body = ChangePasswordRequest.model_validate(params)
    ctx.users.update_password(user_id, body.current_password, body.new_password)
    ctx.auth.end_sessions_after(user_id, reason="password_change")
    return {}


@dispatcher.method("UserService.DeleteUser")
def delete_user(ctx: RPCContext, params: Dict[str, Any]):
    user_id = authenticate_self(ctx, params)
    ctx.users.delete(user_id)
    ctx.auth.end_sessions_after(user_id, reason="account_deleted")
    return {}
