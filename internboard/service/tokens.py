from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

import jwt

from internboard.config import Settings
from internboard.service.errors import InvalidConfigurationError


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenError(Exception):
    """A token failed signature, structure or expiry checks."""

    def __init__(self, message: str, *, kind: Optional[TokenKind] = None) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind


def _require_lifespan(value: Any, label: str) -> int:
    if value is None or isinstance(value, bool):
        raise InvalidConfigurationError(f"{label} lifespan is not configured")
    try:
        minutes = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidConfigurationError(f"{label} lifespan must be an integer") from exc
    if minutes <= 0:
        raise InvalidConfigurationError(f"{label} lifespan must be positive")
    return minutes


@dataclass(frozen=True)
class TokenConfig:
    """Secrets and lifespans for both token families, fixed at startup."""

    access_secret: str
    refresh_secret: str
    access_lifespan_minutes: int
    refresh_lifespan_minutes: int
    algorithm: str = "HS256"

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenConfig":
        if not settings.access_token_secret:
            raise InvalidConfigurationError("Access token secret is not configured")
        if not settings.refresh_token_secret:
            raise InvalidConfigurationError("Refresh token secret is not configured")
        return cls(
            access_secret=settings.access_token_secret,
            refresh_secret=settings.refresh_token_secret,
            access_lifespan_minutes=_require_lifespan(
                settings.access_token_lifespan_minutes, "Access token"
            ),
            refresh_lifespan_minutes=_require_lifespan(
                settings.refresh_token_lifespan_minutes, "Refresh token"
            ),
            algorithm=settings.jwt_algorithm,
        )


class TokenCodec:
    """Sign, verify and decode access and refresh JWTs under separate secrets."""

    def __init__(self, config: TokenConfig) -> None:
        self.config = config

    def _secret(self, kind: TokenKind) -> str:
        if kind is TokenKind.ACCESS:
            return self.config.access_secret
        return self.config.refresh_secret

    def lifespan(self, kind: TokenKind) -> timedelta:
        if kind is TokenKind.ACCESS:
            return timedelta(minutes=self.config.access_lifespan_minutes)
        return timedelta(minutes=self.config.refresh_lifespan_minutes)

    def expires_at(self, kind: TokenKind, now: Optional[datetime] = None) -> datetime:
        issued = now or datetime.now(timezone.utc)
        return issued + self.lifespan(kind)

    def sign(
        self,
        payload: dict[str, Any],
        kind: TokenKind,
        *,
        now: Optional[datetime] = None,
    ) -> str:
        issued = now or datetime.now(timezone.utc)
        claims = dict(payload)
        claims["iat"] = int(issued.timestamp())
        claims["exp"] = int(self.expires_at(kind, issued).timestamp())
        return jwt.encode(claims, self._secret(kind), algorithm=self.config.algorithm)

    def verify(
        self, token: str, kind: TokenKind, *, verify_exp: bool = True
    ) -> dict[str, Any]:
        """Check signature and required claims.

        With ``verify_exp=False`` an expired token still verifies, leaving
        expiry to the caller (the session service checks the stored record).
        """
        if not token:
            raise TokenError("token missing", kind=kind)
        try:
            return jwt.decode(
                token,
                self._secret(kind),
                algorithms=[self.config.algorithm],
                options={"require": ["exp", "iat"], "verify_exp": verify_exp},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenError("token expired", kind=kind) from exc
        except jwt.PyJWTError as exc:
            raise TokenError("token invalid", kind=kind) from exc

    def decode(self, token: str) -> dict[str, Any]:
        """Read claims without checking signature or expiry."""
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            raise TokenError("token malformed") from exc


def claims_expiry(claims: dict[str, Any]) -> Optional[datetime]:
    exp = claims.get("exp")
    if exp is None:
        return None
    try:
        return datetime.fromtimestamp(float(exp), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


__all__ = ["TokenKind", "TokenError", "TokenConfig", "TokenCodec", "claims_expiry"]
