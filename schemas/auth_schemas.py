import uuid
from pydantic import BaseModel, EmailStr, field_validator


def _not_blank(value: str) -> str:
    if not value or not value.strip():
        raise ValueError('Token cannot be empty')
    return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, value):
        if not value:
            raise ValueError('Password is required')
        return value


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class RefreshTokenRequest(BaseModel):
    refresh_token: str

    @field_validator('refresh_token')
    @classmethod
    def validate_token(cls, value):
        return _not_blank(value)


class ValidateTokenRequest(BaseModel):
    access_token: str

    @field_validator('access_token')
    @classmethod
    def validate_token(cls, value):
        return _not_blank(value)


class ValidateTokenResponse(BaseModel):
    valid: bool
    user_id: uuid.UUID
