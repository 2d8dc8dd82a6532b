from __future__ import annotations

import os
import re
import secrets
from datetime import timedelta
from typing import Any, List, Optional

from dotenv import dotenv_values
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from userhub.logging import get_logger

logger = get_logger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$", re.IGNORECASE)
_DURATION_UNITS = {
    "": "seconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def parse_duration(value: Any) -> timedelta:
    """Parse a token lifetime such as ``900``, ``"15m"``, ``"1d"`` or ``"2w"``.

    Bare numbers are seconds. Raises ``ValueError`` for anything else or for a
    non-positive duration.
    """
    if isinstance(value, timedelta):
        duration = value
    elif isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    elif isinstance(value, int):
        duration = timedelta(seconds=value)
    elif isinstance(value, str):
        match = _DURATION_RE.match(value)
        if not match:
            raise ValueError(f"invalid duration: {value!r}")
        amount, unit = match.groups()
        duration = timedelta(**{_DURATION_UNITS[unit.lower()]: int(amount)})
    else:
        raise ValueError(f"invalid duration: {value!r}")
    if duration.total_seconds() <= 0:
        raise ValueError(f"duration must be positive: {value!r}")
    return duration


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings, resolved once at process start."""

    database_url: str = env_field(
        "postgresql://localhost:5432/userhub", "DATABASE_URL"
    )
    use_memory_store: bool = env_field(False, "USE_MEMORY_STORE")
    memory_store_path: Optional[str] = env_field(
        None,
        "MEMORY_STORE_PATH",
        description="Optional JSON snapshot file for the in-memory store",
    )
    access_token_secret: Optional[str] = env_field(
        None, "ACCESS_TOKEN_SECRET", validate_default=True
    )
    access_token_expiry: str = env_field(
        "15m",
        "ACCESS_TOKEN_EXPIRY",
        description="Access token lifetime: seconds or a value like 15m, 1h, 1d",
    )
    refresh_token_secret: Optional[str] = env_field(
        None, "REFRESH_TOKEN_SECRET", validate_default=True
    )
    refresh_token_expiry: str = env_field(
        "10d",
        "REFRESH_TOKEN_EXPIRY",
        description="Refresh token lifetime: seconds or a value like 7d, 2w",
    )
    jwt_issuer: str = env_field("userhub", "JWT_ISSUER")
    jwt_audience: str = env_field("userhub-clients", "JWT_AUDIENCE")
    token_leeway_seconds: int = env_field(
        0, "TOKEN_LEEWAY_SECONDS", description="Allowed clock skew when checking exp"
    )
    cookie_secure: bool = env_field(True, "COOKIE_SECURE")
    cookie_samesite: str = env_field("lax", "COOKIE_SAMESITE")
    cookie_domain: Optional[str] = env_field(None, "COOKIE_DOMAIN")
    cors_allow_origins: List[str] = env_field(
        [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ],
        "CORS_ALLOW_ORIGINS",
    )
    cors_allow_credentials: bool = env_field(True, "CORS_ALLOW_CREDENTIALS")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values and env_file_values[env_name] is not None:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("access_token_secret", "refresh_token_secret")
    @classmethod
    def _ensure_secret(cls, value: Optional[str], info: ValidationInfo) -> str:
        if value:
            return value
        # Tokens signed with a generated secret die with the process
        logger.warning(
            "token_secret_generated",
            setting=info.field_name,
            message="secret not configured; using a random per-process value",
        )
        return secrets.token_urlsafe(64)

    @field_validator("access_token_expiry", "refresh_token_expiry")
    @classmethod
    def _validate_expiry(cls, value: Any) -> str:
        parse_duration(value)
        return str(value)

    @field_validator("cookie_samesite")
    @classmethod
    def _validate_samesite(cls, value: str) -> str:
        normalized = (value or "").strip().lower()
        if normalized not in {"lax", "strict", "none"}:
            raise ValueError("cookie_samesite must be lax, strict or none")
        return normalized

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @model_validator(mode="after")
    def _require_distinct_secrets(self) -> "Settings":
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("access and refresh token secrets must differ")
        return self

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.access_token_expiry)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.refresh_token_expiry)
