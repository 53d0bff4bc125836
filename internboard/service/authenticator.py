from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from internboard.logging import get_logger
from internboard.service.auth import AuthService
from internboard.service.errors import ServiceError
from internboard.service.roles import Role, parse_role
from internboard.service.tokens import TokenCodec, TokenError, TokenKind, claims_expiry

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Identity:
    """Canonical authenticated principal attached to a request."""

    id: str
    role: Optional[Role] = None
    email: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> Optional["Identity"]:
        raw_id = claims.get("sub") or claims.get("_id") or claims.get("id")
        if raw_id is None or str(raw_id) == "":
            return None
        email = claims.get("email")
        return cls(
            id=str(raw_id),
            role=parse_role(claims.get("role")),
            email=str(email) if email else None,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value if self.role else None,
            "email": self.email,
        }


@dataclass(frozen=True)
class StepResult(Generic[T]):
    value: Optional[T] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None and self.value is not None

    @classmethod
    def success(cls, value: T) -> "StepResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, reason: str) -> "StepResult[T]":
        return cls(reason=reason)


@dataclass(frozen=True)
class AuthOutcome:
    identity: Optional[Identity] = None
    refreshed_access_token: Optional[str] = None
    reason: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.identity is not None


def extract_bearer_token(authorization: Optional[str]) -> StepResult[str]:
    if not authorization:
        return StepResult.failure("authorization_missing")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return StepResult.failure("authorization_malformed")
    return StepResult.success(parts[1])


class InboundAuthenticator:
    """Best-effort request authentication with transparent access-token refresh.

    Never raises: every failure degrades to an anonymous outcome and the
    downstream guards decide whether that is acceptable for the route.
    """

    def __init__(self, auth_service: AuthService, codec: TokenCodec) -> None:
        self.auth_service = auth_service
        self.codec = codec
        self.logger = logger

    async def authenticate(
        self, authorization: Optional[str], refresh_cookie: Optional[str]
    ) -> AuthOutcome:
        try:
            return await self._authenticate(authorization, refresh_cookie)
        except Exception as exc:
            self.logger.error("authenticate_unexpected_error", error=str(exc))
            return AuthOutcome(reason="unexpected_error")

    async def _authenticate(
        self, authorization: Optional[str], refresh_cookie: Optional[str]
    ) -> AuthOutcome:
        bearer = extract_bearer_token(authorization)
        if bearer.ok:
            access = self._identity_from_access(bearer.value)
            if access.ok:
                return AuthOutcome(identity=access.value)
            self.logger.debug("access_token_rejected", reason=access.reason)

        if not refresh_cookie:
            return AuthOutcome(reason=bearer.reason or "refresh_cookie_missing")

        refresh_claims = self._verify_refresh(refresh_cookie)
        if not refresh_claims.ok:
            return AuthOutcome(reason=refresh_claims.reason)

        refreshed = await self._refresh(refresh_cookie)
        if not refreshed.ok:
            return AuthOutcome(reason=refreshed.reason)

        identity = self._identity_from_access(refreshed.value)
        if not identity.ok:
            # header is still emitted so the client can adopt the new token
            return AuthOutcome(refreshed_access_token=refreshed.value, reason=identity.reason)
        self.logger.info("access_token_refreshed", user_id=identity.value.id)
        return AuthOutcome(identity=identity.value, refreshed_access_token=refreshed.value)

    def _identity_from_access(self, token: str) -> StepResult[Identity]:
        try:
            claims = self.codec.verify(token, TokenKind.ACCESS)
        except TokenError as exc:
            return StepResult.failure(f"access_{exc.message.replace(' ', '_')}")
        identity = Identity.from_claims(claims)
        if identity is None:
            return StepResult.failure("access_subject_missing")
        return StepResult.success(identity)

    def _verify_refresh(self, token: str) -> StepResult[dict[str, Any]]:
        try:
            claims = self.codec.verify(token, TokenKind.REFRESH)
        except TokenError as exc:
            return StepResult.failure(f"refresh_{exc.message.replace(' ', '_')}")
        # The record is left alone here; the session service removes it when used.
        expiry = claims_expiry(claims)
        if expiry is None or expiry < datetime.now(timezone.utc):
            return StepResult.failure("refresh_token_expired")
        return StepResult.success(claims)

    async def _refresh(self, token: str) -> StepResult[str]:
        try:
            access = await self.auth_service.refresh_access_token(token)
        except ServiceError as exc:
            return StepResult.failure(f"refresh_rejected: {exc.message}")
        if not access:
            return StepResult.failure("refresh_empty")
        return StepResult.success(access)


__all__ = [
    "Identity",
    "StepResult",
    "AuthOutcome",
    "InboundAuthenticator",
    "extract_bearer_token",
]
