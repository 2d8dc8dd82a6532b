from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Upper bounds for free-text input
MAX_NAME_LENGTH = 256
MAX_PASSWORD_LENGTH = 1024
MAX_TOKEN_LENGTH = 4096


class CamelModel(BaseModel):
    """JSON uses camelCase keys; Python code uses snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(CamelModel):
    """Success envelope: ``{statusCode, data, message, success: true}``."""

    status_code: int = 200
    data: Optional[Any] = None
    message: str = "Success"
    success: bool = True


class ErrorEnvelope(CamelModel):
    """Error envelope: ``{statusCode, message, success: false}`` plus a stable code."""

    status_code: int
    message: str
    success: bool = False
    code: str
    details: Optional[Any] = None


class RegisterRequest(CamelModel):
    # Presence and blankness are checked by the service so every gap is a 400
    full_name: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)
    email: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)
    username: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)
    password: Optional[str] = Field(None, max_length=MAX_PASSWORD_LENGTH)


class LoginRequest(CamelModel):
    username: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)
    email: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)
    password: Optional[str] = Field(None, max_length=MAX_PASSWORD_LENGTH)


class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = Field(None, max_length=MAX_TOKEN_LENGTH)


class ChangePasswordRequest(CamelModel):
    old_password: Optional[str] = Field(None, max_length=MAX_PASSWORD_LENGTH)
    new_password: Optional[str] = Field(None, max_length=MAX_PASSWORD_LENGTH)


class UpdateAccountRequest(CamelModel):
    full_name: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)
    email: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)


class UserResponse(CamelModel):
    id: str
    username: str
    email: str
    full_name: str
    created_at: datetime
    updated_at: datetime


class LoginResponse(CamelModel):
    user: UserResponse
    access_token: str
    refresh_token: str


class TokenPairResponse(CamelModel):
    access_token: str
    refresh_token: str
