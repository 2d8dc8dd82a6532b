from __future__ import annotations

from typing import Optional

from userhub.logging import get_logger
from userhub.service.credentials import CredentialStore
from userhub.service.errors import AuthenticationError, TokenError
from userhub.service.tokens import TokenIssuer, TokenKind
from userhub.storage.models import UserProfile

logger = get_logger(__name__)


def extract_bearer(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


class AccessGuard:
    """Stateless gate for protected operations.

    Resolves an access token (cookie first, then ``Authorization: Bearer``)
    to the sanitized profile of a user that still exists.
    """

    def __init__(self, credentials: CredentialStore, tokens: TokenIssuer) -> None:
        self.credentials = credentials
        self.tokens = tokens

    async def authenticate(
        self, *, cookie_token: Optional[str], authorization: Optional[str]
    ) -> UserProfile:
        token = (cookie_token or "").strip() or extract_bearer(authorization)
        if not token:
            raise AuthenticationError("Unauthorized request")
        try:
            payload = self.tokens.verify(token, TokenKind.ACCESS)
        except TokenError as exc:
            logger.info("access_token_rejected", reason=type(exc).__name__)
            raise AuthenticationError("Invalid access token") from exc

        profile = await self.credentials.get_profile(payload["sub"])
        if not profile:
            logger.info("access_token_rejected", reason="user_not_found")
            raise AuthenticationError("Invalid access token")
        return profile
