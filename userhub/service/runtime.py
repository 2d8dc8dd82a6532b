from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse, urlunparse

from userhub.config import Settings
from userhub.logging import get_logger
from userhub.service.credentials import CredentialStore, UserStore
from userhub.service.guard import AccessGuard
from userhub.service.sessions import SessionManager
from userhub.service.tokens import TokenIssuer
from userhub.storage.memory import MemoryStore
from userhub.storage.postgres import PostgresStore

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Replace the password component of a DSN with ``***`` for logging."""
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if not parsed.password:
            return url
        netloc = parsed.hostname or ""
        if parsed.port:
            netloc = f"{netloc}:{parsed.port}"
        netloc = f"{parsed.username or ''}:***@{netloc}"
        return urlunparse(parsed._replace(netloc=netloc))
    except ValueError:
        return "***url_parse_error***"


class Runtime:
    """Service instances for one app, built from explicit settings."""

    def __init__(self, settings: Settings, store: UserStore) -> None:
        self.settings = settings
        self.store = store
        self.credentials = CredentialStore(store)
        self.tokens = TokenIssuer(settings)
        self.sessions = SessionManager(self.credentials, self.tokens)
        self.guard = AccessGuard(self.credentials, self.tokens)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Runtime":
        if settings.use_memory_store:
            store: UserStore = MemoryStore(state_path=settings.memory_store_path)
            logger.info("runtime_store_selected", store_type="memory")
        else:
            store = PostgresStore(settings.database_url)
            logger.info(
                "runtime_store_selected",
                store_type="postgres",
                database_url=_mask_url_password(settings.database_url),
            )
        return cls(settings, store)

    async def open(self) -> None:
        try:
            await self.store.open()
        except Exception as exc:
            logger.error(
                "runtime_store_open_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise

    async def close(self) -> None:
        await self.store.close()
