from __future__ import annotations

import uuid
from typing import Any, Optional

from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from userhub.logging import get_logger
from userhub.storage.errors import ConstraintViolation
from userhub.storage.models import User, UserProfile

_PROFILE_COLUMNS = "id, username, email, full_name, created_at, updated_at"
_USER_COLUMNS = f"{_PROFILE_COLUMNS}, password_hash, refresh_token"


class PostgresStore:
    """Postgres-backed user store on an async connection pool.

    Each public method runs in its own pooled connection and commits on exit,
    so every write is a single-row atomic update.
    """

    def __init__(self, dsn: str, *, min_size: int = 2, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = AsyncConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
            open=False,
        )

    def _connect(self):
        return self.pool.connection()

    async def open(self) -> None:
        await self.pool.open()
        await self._ensure_schema()
        self.logger.info("postgres_store_opened")

    async def close(self) -> None:
        await self.pool.close()

    async def verify_connection(self) -> bool:
        async with self._connect() as conn:
            await conn.execute("SELECT 1")
        return True

    async def _ensure_schema(self) -> None:
        """Create the ``app_user`` table if it is missing."""

        async with self._connect() as conn:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS app_user (
                    id TEXT PRIMARY KEY,
                    username TEXT NOT NULL,
                    email TEXT NOT NULL,
                    full_name TEXT NOT NULL,
                    password_hash TEXT NOT NULL,
                    refresh_token TEXT,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    CONSTRAINT app_user_username_key UNIQUE (username),
                    CONSTRAINT app_user_email_key UNIQUE (email)
                )
                """
            )

    @staticmethod
    def _constraint_violation(exc: errors.UniqueViolation) -> ConstraintViolation:
        constraint = getattr(getattr(exc, "diag", None), "constraint_name", None) or ""
        if "username" in constraint:
            field = "username"
        elif "email" in constraint:
            field = "email"
        else:
            field = "unknown"
        return ConstraintViolation(f"{field} already exists", {"field": field})

    @staticmethod
    def _row_to_user(row: dict[str, Any]) -> User:
        return User(
            id=str(row["id"]),
            username=row["username"],
            email=row["email"],
            full_name=row["full_name"],
            password_hash=row["password_hash"],
            refresh_token=row.get("refresh_token"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_profile(row: dict[str, Any]) -> UserProfile:
        return UserProfile(
            id=str(row["id"]),
            username=row["username"],
            email=row["email"],
            full_name=row["full_name"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def create_user(
        self, *, username: str, email: str, full_name: str, password_hash: str
    ) -> User:
        user_id = str(uuid.uuid4())
        try:
            async with self._connect() as conn:
                cur = await conn.execute(
                    f"""
                    INSERT INTO app_user (id, username, email, full_name, password_hash)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING {_USER_COLUMNS}
                    """,
                    (user_id, username, email, full_name, password_hash),
                )
                row = await cur.fetchone()
        except errors.UniqueViolation as exc:
            raise self._constraint_violation(exc) from exc
        return self._row_to_user(row)

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._connect() as conn:
            cur = await conn.execute(
                f"SELECT {_USER_COLUMNS} FROM app_user WHERE id = %s", (user_id,)
            )
            row = await cur.fetchone()
        return self._row_to_user(row) if row else None

    async def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        async with self._connect() as conn:
            cur = await conn.execute(
                f"SELECT {_PROFILE_COLUMNS} FROM app_user WHERE id = %s", (user_id,)
            )
            row = await cur.fetchone()
        return self._row_to_profile(row) if row else None

    async def find_user(
        self, *, username: str | None = None, email: str | None = None
    ) -> Optional[User]:
        clauses: list[str] = []
        params: list[Any] = []
        if username is not None:
            clauses.append("username = %s")
            params.append(username)
        if email is not None:
            clauses.append("email = %s")
            params.append(email)
        if not clauses:
            return None
        async with self._connect() as conn:
            cur = await conn.execute(
                f"SELECT {_USER_COLUMNS} FROM app_user WHERE {' OR '.join(clauses)} LIMIT 1",
                params,
            )
            row = await cur.fetchone()
        return self._row_to_user(row) if row else None

    async def set_refresh_token(self, user_id: str, token: Optional[str]) -> None:
        async with self._connect() as conn:
            await conn.execute(
                "UPDATE app_user SET refresh_token = %s, updated_at = now() WHERE id = %s",
                (token, user_id),
            )

    async def set_password_hash(self, user_id: str, password_hash: str) -> None:
        async with self._connect() as conn:
            await conn.execute(
                "UPDATE app_user SET password_hash = %s, updated_at = now() WHERE id = %s",
                (password_hash, user_id),
            )

    async def update_profile(
        self,
        user_id: str,
        *,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[UserProfile]:
        # Only touch provided fields
        fields: list[tuple[str, Any]] = []
        if full_name is not None:
            fields.append(("full_name", full_name))
        if email is not None:
            fields.append(("email", email))
        if not fields:
            return await self.get_user_profile(user_id)
        sets = ", ".join(f"{name} = %s" for name, _ in fields)
        params = [value for _, value in fields] + [user_id]
        try:
            async with self._connect() as conn:
                cur = await conn.execute(
                    f"""
                    UPDATE app_user SET {sets}, updated_at = now()
                    WHERE id = %s
                    RETURNING {_PROFILE_COLUMNS}
                    """,
                    params,
                )
                row = await cur.fetchone()
        except errors.UniqueViolation as exc:
            raise self._constraint_violation(exc) from exc
        return self._row_to_profile(row) if row else None
