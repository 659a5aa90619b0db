"""
Holly Transportation - Authentication Request/Response Schemas

Pydantic models for API request validation and response serialization.
Separates API contracts from database models.
"""

from datetime import datetime
from typing import Optional
import re

from pydantic import BaseModel, Field, field_validator


EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]+$")


def _check_email(v: Optional[str]) -> Optional[str]:
    """Basic email format validation (allows .local for development)."""
    if v is None:
        return v
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Invalid email format")
    return v.lower()


class RegisterRequest(BaseModel):
    """Request body for POST /register."""
    username: str = Field(..., min_length=3, max_length=64)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=6, max_length=256)
    first_name: str = Field(..., min_length=1, max_length=128)
    last_name: str = Field(..., min_length=1, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=32)

    @field_validator("username")
    @classmethod
    def username_format(cls, v):
        if not USERNAME_PATTERN.match(v):
            raise ValueError("Username may contain letters, digits, '.', '_' and '-'")
        return v

    @field_validator("email")
    @classmethod
    def email_format(cls, v):
        return _check_email(v)


class LoginRequest(BaseModel):
    """Request body for POST /login."""
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=256)


class UserResponse(BaseModel):
    """Authenticated user view. is_admin always comes from the stored record."""
    id: str
    username: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    profile_image_url: Optional[str] = None
    is_admin: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProfileUpdateRequest(BaseModel):
    """Request body for PUT /profile. Omitted fields are left unchanged."""
    first_name: Optional[str] = Field(default=None, max_length=128)
    last_name: Optional[str] = Field(default=None, max_length=128)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("email")
    @classmethod
    def email_format(cls, v):
        return _check_email(v)


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
