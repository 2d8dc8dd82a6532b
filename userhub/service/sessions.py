from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Optional

from userhub.logging import get_logger
from userhub.service.credentials import CredentialStore
from userhub.service.errors import (
    AuthenticationError,
    BadRequestError,
    NotFoundError,
    ServerError,
    TokenError,
)
from userhub.service.tokens import TokenIssuer, TokenKind, TokenPair
from userhub.storage.models import UserProfile

logger = get_logger(__name__)


@dataclass(frozen=True)
class LoginResult:
    user: UserProfile
    tokens: TokenPair


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _require(message: str, **fields: Optional[str]) -> dict[str, str]:
    """Trim every field and fail with ``BadRequestError`` if any is blank."""
    cleaned = {name: _clean(value) for name, value in fields.items()}
    missing = sorted(name for name, value in cleaned.items() if value is None)
    if missing:
        raise BadRequestError(message, detail={"missing": missing})
    return cleaned  # type: ignore[return-value]


class SessionManager:
    """Registration, login/logout, refresh-token rotation and account updates.

    Exactly one refresh token is live per user: every login and refresh
    overwrites the stored value, and logout clears it.
    """

    def __init__(self, credentials: CredentialStore, tokens: TokenIssuer) -> None:
        self.credentials = credentials
        self.tokens = tokens

    async def register(
        self,
        *,
        full_name: Optional[str],
        email: Optional[str],
        username: Optional[str],
        password: Optional[str],
    ) -> UserProfile:
        fields = _require(
            "All fields are required",
            full_name=full_name,
            email=email,
            username=username,
            password=password,
        )
        user = await self.credentials.create(
            full_name=fields["full_name"],
            email=fields["email"],
            username=fields["username"],
            # Blank check only; the secret itself is hashed as submitted
            password=password,
        )
        created = await self.credentials.get_profile(user.id)
        if not created:
            logger.error("user_missing_after_create", user_id=user.id)
            raise ServerError("Something went wrong while registering the user")
        logger.info("user_registered", user_id=created.id, username=created.username)
        return created

    async def login(
        self,
        *,
        username: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> LoginResult:
        username, email = _clean(username), _clean(email)
        if username is None and email is None:
            raise BadRequestError("username or email is required")
        if not _clean(password):
            raise BadRequestError("password is required")

        user = await self.credentials.find_by_identifier(username=username, email=email)
        if not user:
            logger.info("login_failed", reason="user_not_found")
            raise NotFoundError("User does not exist")
        if not await self.credentials.check_password(user, password):
            logger.info("login_failed", reason="bad_password", user_id=user.id)
            raise AuthenticationError("Invalid user credentials")

        tokens = self.tokens.issue_pair(user)
        await self.credentials.update_refresh_token(user.id, tokens.refresh_token)
        logger.info("user_logged_in", user_id=user.id)
        return LoginResult(user=user.profile(), tokens=tokens)

    async def logout(self, user_id: str) -> None:
        await self.credentials.update_refresh_token(user_id, None)
        logger.info("user_logged_out", user_id=user_id)

    async def refresh(self, incoming_token: Optional[str]) -> TokenPair:
        if not _clean(incoming_token):
            raise AuthenticationError("Unauthorized request")
        try:
            payload = self.tokens.verify(incoming_token, TokenKind.REFRESH)
        except TokenError as exc:
            # Expired and malformed tokens are reported identically
            logger.info("refresh_rejected", reason=type(exc).__name__)
            raise AuthenticationError("Invalid refresh token") from exc

        user = await self.credentials.get_user(payload["sub"])
        if not user:
            logger.info("refresh_rejected", reason="user_not_found")
            raise AuthenticationError("Invalid refresh token")
        if not user.refresh_token or not hmac.compare_digest(
            user.refresh_token.encode(), incoming_token.encode()
        ):
            logger.warning("refresh_token_reused", user_id=user.id)
            raise AuthenticationError("Refresh token is expired or used")

        tokens = self.tokens.issue_pair(user)
        await self.credentials.update_refresh_token(user.id, tokens.refresh_token)
        logger.info("refresh_token_rotated", user_id=user.id)
        return tokens

    async def change_password(
        self,
        user_id: str,
        *,
        old_password: Optional[str],
        new_password: Optional[str],
    ) -> None:
        _require(
            "Old and new passwords are required",
            old_password=old_password,
            new_password=new_password,
        )
        user = await self.credentials.get_user(user_id)
        if not user:
            raise NotFoundError("User does not exist")
        if not await self.credentials.check_password(user, old_password):
            logger.info("password_change_rejected", user_id=user_id)
            raise BadRequestError("Invalid old password")
        # Outstanding refresh tokens stay valid
        await self.credentials.set_password(user_id, new_password)
        logger.info("password_changed", user_id=user_id)

    async def get_current_user(self, user_id: str) -> UserProfile:
        profile = await self.credentials.get_profile(user_id)
        if not profile:
            raise NotFoundError("User does not exist")
        return profile

    async def update_account_details(
        self,
        user_id: str,
        *,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> UserProfile:
        full_name, email = _clean(full_name), _clean(email)
        if full_name is None and email is None:
            raise BadRequestError("At least one of fullName or email is required")
        profile = await self.credentials.update_profile(
            user_id, full_name=full_name, email=email
        )
        if not profile:
            raise NotFoundError("User does not exist")
        logger.info("account_updated", user_id=user_id)
        return profile
