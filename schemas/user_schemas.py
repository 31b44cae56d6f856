import re
import uuid
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator


def validate_password_strength(value: str) -> str:
    """
    Password must be at least 8 characters and contain:
    - At least one letter
    - At least one digit
    """
    if len(value) < 8:
        raise ValueError('Password must be at least 8 characters')

    if not re.search(r'[A-Za-z]', value):
        raise ValueError('Password must contain at least one letter')

    if not re.search(r'\d', value):
        raise ValueError('Password must contain at least one digit')

    return value


class CreateUserRequest(BaseModel):
    email: EmailStr
    password: str
    first_name: str
    last_name: str = ""

    @field_validator('password')
    @classmethod
    def validate_password(cls, value):
        return validate_password_strength(value)

    @field_validator('first_name')
    @classmethod
    def validate_first_name(cls, value):
        if not value.strip():
            raise ValueError('First name is required')
        return value.strip()


class UpdateUserRequest(BaseModel):
    """Partial update: omitted fields are left unchanged."""
    email: Optional[EmailStr] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, value):
        return validate_password_strength(value)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
