from __future__ import annotations

import asyncio
from typing import Optional, Protocol

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from userhub.logging import get_logger
from userhub.service.errors import ConflictError
from userhub.storage.errors import ConstraintViolation
from userhub.storage.models import User, UserProfile

logger = get_logger(__name__)


class UserStore(Protocol):
    async def create_user(
        self, *, username: str, email: str, full_name: str, password_hash: str
    ) -> User: ...

    async def get_user(self, user_id: str) -> Optional[User]: ...

    async def get_user_profile(self, user_id: str) -> Optional[UserProfile]: ...

    async def find_user(
        self, *, username: str | None = None, email: str | None = None
    ) -> Optional[User]: ...

    async def set_refresh_token(self, user_id: str, token: Optional[str]) -> None: ...

    async def set_password_hash(self, user_id: str, password_hash: str) -> None: ...

    async def update_profile(
        self,
        user_id: str,
        *,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[UserProfile]: ...

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def verify_connection(self) -> bool: ...


def normalize_identifier(value: Optional[str]) -> Optional[str]:
    """Trim and lowercase a username or email; blank becomes ``None``."""
    if value is None:
        return None
    cleaned = value.strip().lower()
    return cleaned or None


class CredentialStore:
    """User records plus one-way password hashing (argon2id)."""

    def __init__(self, store: UserStore, *, hasher: Optional[PasswordHasher] = None) -> None:
        self.store = store
        self._pwd_hasher = hasher or PasswordHasher(type=Type.ID)

    def hash_password(self, password: str) -> str:
        return self._pwd_hasher.hash(password)

    async def find_by_identifier(
        self, *, username: Optional[str] = None, email: Optional[str] = None
    ) -> Optional[User]:
        return await self.store.find_user(
            username=normalize_identifier(username),
            email=normalize_identifier(email),
        )

    async def create(
        self, *, full_name: str, email: str, username: str, password: str
    ) -> User:
        normalized_username = normalize_identifier(username)
        normalized_email = normalize_identifier(email)
        existing = await self.store.find_user(
            username=normalized_username, email=normalized_email
        )
        if existing:
            raise ConflictError("User with email or username already exists")
        try:
            return await self.store.create_user(
                username=normalized_username,
                email=normalized_email,
                full_name=full_name,
                password_hash=await asyncio.to_thread(self.hash_password, password),
            )
        except ConstraintViolation as exc:
            # Lost a race with a concurrent registration
            raise ConflictError(
                "User with email or username already exists", detail=exc.detail
            ) from exc

    def verify_password(self, user: User, candidate: str) -> bool:
        if not candidate or not user.password_hash:
            return False
        try:
            return self._pwd_hasher.verify(user.password_hash, candidate)
        except VerifyMismatchError:
            return False
        except (InvalidHash, VerificationError):
            logger.warning("password_hash_unusable", user_id=user.id)
            return False

    async def check_password(self, user: User, candidate: str) -> bool:
        """Run ``verify_password`` in a worker thread; argon2 is CPU bound."""
        return await asyncio.to_thread(self.verify_password, user, candidate)

    async def update_refresh_token(self, user_id: str, token: Optional[str]) -> None:
        await self.store.set_refresh_token(user_id, token)

    async def set_password(self, user_id: str, password: str) -> None:
        password_hash = await asyncio.to_thread(self.hash_password, password)
        await self.store.set_password_hash(user_id, password_hash)

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self.store.get_user(user_id)

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return await self.store.get_user_profile(user_id)

    async def update_profile(
        self,
        user_id: str,
        *,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[UserProfile]:
        try:
            return await self.store.update_profile(
                user_id, full_name=full_name, email=normalize_identifier(email)
            )
        except ConstraintViolation as exc:
            raise ConflictError("Email is already in use", detail=exc.detail) from exc
