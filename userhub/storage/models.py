from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    """Stored account record. Holds secrets; never serialize directly."""

    id: str
    username: str
    email: str
    full_name: str
    password_hash: str
    refresh_token: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new(
        cls, *, username: str, email: str, full_name: str, password_hash: str
    ) -> "User":
        now = utcnow()
        return cls(
            id=str(uuid.uuid4()),
            username=username,
            email=email,
            full_name=full_name,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )

    def profile(self) -> "UserProfile":
        return UserProfile(
            id=self.id,
            username=self.username,
            email=self.email,
            full_name=self.full_name,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class UserProfile:
    """User projection without password hash or refresh token."""

    id: str
    username: str
    email: str
    full_name: str
    created_at: datetime
    updated_at: datetime
