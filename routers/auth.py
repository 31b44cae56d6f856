from fastapi import APIRouter
from starlette import status
from schemas.auth_schemas import (LoginRequest, RefreshTokenRequest, Token,
    ValidateTokenRequest, ValidateTokenResponse)
from schemas.user_schemas import UserResponse
from services.auth_service import TokenPair
from utils.deps import auth_service_dependency, bearer_credentials_dependency, current_user_dependency

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)


def to_token_response(pair: TokenPair) -> Token:
    return Token(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in
    )


@router.post("/login", response_model=Token)
def login(body: LoginRequest, auth: auth_service_dependency):
    """
    Exchange email and password for an access/refresh token pair.
    """
    pair = auth.login(body.email, body.password)
    return to_token_response(pair)


@router.post("/refresh", response_model=Token)
def refresh_token(body: RefreshTokenRequest, auth: auth_service_dependency):
    """
    Get a new token pair using a refresh token. The presented token is retired.
    """
    pair = auth.refresh_token(body.refresh_token)
    return to_token_response(pair)


@router.post("/logout", status_code=status.HTTP_200_OK)
def logout(user_id: current_user_dependency, auth: auth_service_dependency):
    """
    End the caller's session. Safe to call repeatedly.
    """
    auth.logout(user_id)
    return {"message": "Logged out successfully"}


@router.post("/validate", response_model=ValidateTokenResponse)
def validate_token(body: ValidateTokenRequest, auth: auth_service_dependency):
    """
    Check an access token and return the user it was issued to.
    Rejected tokens get a 401.
    """
    user_id = auth.validate_token(body.access_token)
    return ValidateTokenResponse(valid=True, user_id=user_id)


@router.get("/user", response_model=UserResponse)
def get_user_from_token(auth: auth_service_dependency,
                        credentials: bearer_credentials_dependency):
    """
    The user the bearer access token was issued to.
    404 if the account was deleted after the token was issued.
    """
    return auth.get_user_from_token(credentials.credentials)
