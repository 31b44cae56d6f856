import uuid
from datetime import timedelta
from functools import lru_cache
from typing import Annotated, Optional
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from starlette import status
from core.config import settings
from core.database import SessionLocal
from core.kv_store import KeyValueStore, build_kv_store
from services.auth_service import AuthService
from services.credential_verifier import CredentialVerifier
from services.session_store import SessionStore
from services.token_codec import TokenCodec
from services.user_service import UserService


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

db_dependency = Annotated[Session, Depends(get_db)]


@lru_cache
def get_kv_store() -> KeyValueStore:
    # one client (and connection pool) per process
    return build_kv_store(settings.KV_BACKEND, settings.REDIS_URL, settings.REDIS_SOCKET_TIMEOUT)


@lru_cache
def get_token_codec() -> TokenCodec:
    return TokenCodec(settings.SECRET_KEY, settings.ALGORITHM)


def get_user_service(db: db_dependency) -> UserService:
    return UserService(db)

user_service_dependency = Annotated[UserService, Depends(get_user_service)]


def get_auth_service(
    users: user_service_dependency,
    kv: Annotated[KeyValueStore, Depends(get_kv_store)],
    codec: Annotated[TokenCodec, Depends(get_token_codec)],
) -> AuthService:
    return AuthService(
        users=users,
        credentials=CredentialVerifier(users),
        sessions=SessionStore(kv, key_prefix=settings.REDIS_KEY_PREFIX),
        codec=codec,
        access_token_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_token_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )

auth_service_dependency = Annotated[AuthService, Depends(get_auth_service)]


bearer_scheme = HTTPBearer(auto_error=False)


def get_bearer_credentials(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> HTTPAuthorizationCredentials:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Authorization header required",
                            headers={"WWW-Authenticate": "Bearer"})
    return credentials

bearer_credentials_dependency = Annotated[HTTPAuthorizationCredentials, Depends(get_bearer_credentials)]


def get_current_user_id(auth: auth_service_dependency,
                        credentials: bearer_credentials_dependency) -> uuid.UUID:
    """
    Resolve the bearer access token to a user id.

    Missing header: 401 from get_bearer_credentials. Bad token: InvalidTokenError
    from the service, rendered as 401 by the ServiceError handler.
    """
    return auth.validate_token(credentials.credentials)


current_user_dependency = Annotated[uuid.UUID, Depends(get_current_user_id)]
