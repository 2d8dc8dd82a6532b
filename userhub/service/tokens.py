from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from userhub.config import Settings
from userhub.logging import get_logger
from userhub.service.errors import ExpiredTokenError, InvalidTokenError
from userhub.storage.models import User

logger = get_logger(__name__)


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_ttl_seconds: int
    refresh_ttl_seconds: int


class TokenIssuer:
    """Signs and verifies HS256 JWTs.

    Access and refresh tokens use separate secrets, so a token of one kind
    never verifies as the other.
    """

    def __init__(
        self, settings: Settings, *, clock: Optional[Callable[[], float]] = None
    ) -> None:
        self.settings = settings
        self._clock = clock or time.time
        self._secrets = {
            TokenKind.ACCESS: settings.access_token_secret.encode(),
            TokenKind.REFRESH: settings.refresh_token_secret.encode(),
        }
        self._ttl_seconds = {
            TokenKind.ACCESS: int(settings.access_token_ttl.total_seconds()),
            TokenKind.REFRESH: int(settings.refresh_token_ttl.total_seconds()),
        }

    def ttl_seconds(self, kind: TokenKind) -> int:
        return self._ttl_seconds[kind]

    def _claims(self, kind: TokenKind, subject: str) -> dict[str, Any]:
        now = int(self._clock())
        return {
            "iss": self.settings.jwt_issuer,
            "aud": self.settings.jwt_audience,
            "sub": subject,
            "token_type": kind.value,
            # Unique per token so back-to-back rotations never repeat a value
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + self._ttl_seconds[kind],
        }

    def issue_access_token(self, user: User) -> str:
        payload = self._claims(TokenKind.ACCESS, user.id)
        # Denormalized profile for identity lookups without a store round trip
        payload.update(
            {
                "username": user.username,
                "email": user.email,
                "full_name": user.full_name,
            }
        )
        return self._encode_jwt(payload, TokenKind.ACCESS)

    def issue_refresh_token(self, user: User) -> str:
        return self._encode_jwt(self._claims(TokenKind.REFRESH, user.id), TokenKind.REFRESH)

    def issue_pair(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(user),
            refresh_token=self.issue_refresh_token(user),
            access_ttl_seconds=self._ttl_seconds[TokenKind.ACCESS],
            refresh_ttl_seconds=self._ttl_seconds[TokenKind.REFRESH],
        )

    def verify(self, token: str, expected_kind: TokenKind) -> dict[str, Any]:
        """Return the decoded payload or raise ``InvalidTokenError``/``ExpiredTokenError``."""
        payload = self._decode_jwt(token, expected_kind)
        if payload.get("iss") != self.settings.jwt_issuer:
            raise InvalidTokenError("token issuer mismatch")
        aud = payload.get("aud")
        if isinstance(aud, str):
            valid_aud = aud == self.settings.jwt_audience
        elif isinstance(aud, list):
            valid_aud = self.settings.jwt_audience in aud
        else:
            valid_aud = False
        if not valid_aud:
            raise InvalidTokenError("token audience mismatch")
        if payload.get("token_type") != expected_kind.value:
            raise InvalidTokenError("unexpected token type")
        if not payload.get("sub"):
            raise InvalidTokenError("token subject missing")
        try:
            exp_ts = float(payload["exp"])
        except (KeyError, TypeError, ValueError):
            raise InvalidTokenError("token expiry missing")
        if exp_ts <= self._clock() - self.settings.token_leeway_seconds:
            raise ExpiredTokenError("token expired")
        return payload

    def _encode_segment(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    def _decode_segment(self, segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)

    def _sign(self, signing_input: str, kind: TokenKind) -> str:
        return self._encode_segment(
            hmac.new(self._secrets[kind], signing_input.encode(), hashlib.sha256).digest()
        )

    def _encode_jwt(self, payload: dict[str, Any], kind: TokenKind) -> str:
        header = {"alg": "HS256", "typ": "JWT"}
        header_enc = self._encode_segment(
            json.dumps(header, separators=(",", ":")).encode()
        )
        payload_enc = self._encode_segment(
            json.dumps(payload, separators=(",", ":")).encode()
        )
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input, kind)}"

    def _decode_jwt(self, token: str, kind: TokenKind) -> dict[str, Any]:
        if not token or not isinstance(token, str):
            raise InvalidTokenError("token missing")
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            raise InvalidTokenError("malformed token")

        # Reject anything but HS256 to prevent algorithm confusion
        try:
            header = json.loads(self._decode_segment(header_b64))
        except Exception:
            logger.warning("jwt_header_decode_failed")
            raise InvalidTokenError("malformed token header")
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            logger.warning(
                "jwt_invalid_algorithm",
                alg=header.get("alg") if isinstance(header, dict) else None,
            )
            raise InvalidTokenError("unsupported token algorithm")

        expected_sig = self._sign(f"{header_b64}.{payload_b64}", kind)
        if not hmac.compare_digest(expected_sig.encode(), sig_b64.encode()):
            raise InvalidTokenError("invalid token signature")
        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except Exception as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            raise InvalidTokenError("malformed token payload")
        if not isinstance(payload, dict):
            raise InvalidTokenError("malformed token payload")
        return payload
