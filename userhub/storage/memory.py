from __future__ import annotations

import json
import threading
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from userhub.logging import get_logger
from userhub.storage.errors import ConstraintViolation
from userhub.storage.models import User, UserProfile, utcnow


class MemoryStore:
    """In-process user store for development and tests.

    Reads return snapshots so callers never mutate stored records in place.
    When ``state_path`` is set, every write is mirrored to a JSON file and the
    file is loaded on startup.
    """

    def __init__(self, state_path: str | None = None) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[str, User] = {}
        # RLock for all data operations; one record update is one critical section
        self._data_lock = threading.RLock()
        self.state_path = Path(state_path) if state_path else None
        self._load_state()

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def verify_connection(self) -> bool:
        return True

    def _find_conflict(
        self, *, username: str | None, email: str | None, exclude_id: str | None = None
    ) -> Optional[str]:
        for existing in self.users.values():
            if existing.id == exclude_id:
                continue
            if username is not None and existing.username == username:
                return "username"
            if email is not None and existing.email == email:
                return "email"
        return None

    async def create_user(
        self, *, username: str, email: str, full_name: str, password_hash: str
    ) -> User:
        with self._data_lock:
            field = self._find_conflict(username=username, email=email)
            if field:
                raise ConstraintViolation(f"{field} already exists", {"field": field})
            user = User.new(
                username=username,
                email=email,
                full_name=full_name,
                password_hash=password_hash,
            )
            self._commit(user)
            return replace(user)

    async def get_user(self, user_id: str) -> Optional[User]:
        with self._data_lock:
            user = self.users.get(user_id)
            return replace(user) if user else None

    async def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        with self._data_lock:
            user = self.users.get(user_id)
            return user.profile() if user else None

    async def find_user(
        self, *, username: str | None = None, email: str | None = None
    ) -> Optional[User]:
        if username is None and email is None:
            return None
        with self._data_lock:
            for user in self.users.values():
                if (username is not None and user.username == username) or (
                    email is not None and user.email == email
                ):
                    return replace(user)
            return None

    async def set_refresh_token(self, user_id: str, token: Optional[str]) -> None:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return
            self._commit(replace(user, refresh_token=token, updated_at=utcnow()))

    async def set_password_hash(self, user_id: str, password_hash: str) -> None:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return
            self._commit(replace(user, password_hash=password_hash, updated_at=utcnow()))

    async def update_profile(
        self,
        user_id: str,
        *,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[UserProfile]:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            if email is not None and self._find_conflict(
                username=None, email=email, exclude_id=user_id
            ):
                raise ConstraintViolation("email already exists", {"field": "email"})
            changes = {"updated_at": utcnow()}
            if full_name is not None:
                changes["full_name"] = full_name
            if email is not None:
                changes["email"] = email
            updated = replace(user, **changes)
            self._commit(updated)
            return updated.profile()

    def _commit(self, user: User) -> None:
        """Persist the store with ``user`` applied, then make it visible.

        Caller holds ``_data_lock``. A failed write leaves memory untouched.
        """
        pending = {**self.users, user.id: user}
        self._persist_state(pending)
        self.users = pending

    def _persist_state(self, users: Dict[str, User]) -> None:
        if not self.state_path:
            return
        state = {"users": [self._serialize_user(u) for u in users.values()]}
        tmp_path = self.state_path.with_name(self.state_path.name + ".tmp")
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(state, indent=2))
            tmp_path.replace(self.state_path)
        except OSError as exc:
            raise RuntimeError(f"failed to persist in-memory state: {exc}") from exc

    def _load_state(self) -> bool:
        if not self.state_path:
            return False
        try:
            data = json.loads(self.state_path.read_text())
        except FileNotFoundError:
            return False
        self.users = {u["id"]: self._deserialize_user(u) for u in data.get("users", [])}
        self.logger.info("memory_store_loaded", users=len(self.users))
        return True

    @staticmethod
    def _serialize_user(user: User) -> dict:
        return {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "full_name": user.full_name,
            "password_hash": user.password_hash,
            "refresh_token": user.refresh_token,
            "created_at": user.created_at.isoformat(),
            "updated_at": user.updated_at.isoformat(),
        }

    @staticmethod
    def _deserialize_user(data: dict) -> User:
        return User(
            id=str(data["id"]),
            username=data["username"],
            email=data["email"],
            full_name=data.get("full_name", ""),
            password_hash=data["password_hash"],
            refresh_token=data.get("refresh_token"),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )
