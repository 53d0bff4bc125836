from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Protocol

import bcrypt

from internboard.logging import get_logger
from internboard.service.errors import (
    ForbiddenError,
    InvalidCredentialsError,
    NotFoundError,
    PrincipalNotFoundError,
)
from internboard.service.roles import Role, parse_role
from internboard.service.tokens import TokenCodec, TokenError, TokenKind
from internboard.storage.models import Company, RefreshTokenRecord

logger = get_logger(__name__)

BCRYPT_ROUNDS = 10


class AuthStore(Protocol):
    def get_company(self, company_id: str) -> Optional[Company]: ...

    def get_company_by_email(self, email: str) -> Optional[Company]: ...

    def ban_company(self, company_id: str, reason: str) -> Optional[Company]: ...

    def create_refresh_token(
        self, user_id: str, expires_at: datetime
    ) -> RefreshTokenRecord: ...

    def get_refresh_token(self, token_id: str) -> Optional[RefreshTokenRecord]: ...

    def delete_refresh_token(self, token_id: str) -> bool: ...

    def delete_company(self, company_id: str) -> bool: ...

    def delete_user_refresh_tokens(self, user_id: str) -> int: ...

    def list_user_refresh_tokens(self, user_id: str) -> List[RefreshTokenRecord]: ...


@dataclass(frozen=True)
class TokenPair:
    access: str
    refresh: str


def hash_password(password: str, *, rounds: int = BCRYPT_ROUNDS) -> str:
    digest = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return digest.decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Check a plaintext password against a stored bcrypt hash.

    A missing or malformed hash never verifies.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class AuthService:
    """Dual-token login, refresh and logout backed by persisted refresh records.

    A refresh record is created at login and deleted at logout, ban or expiry;
    deletion is the only way a session is revoked. Refresh tokens are never
    rotated: every access token minted from one points at the same record.
    """

    def __init__(
        self,
        store: AuthStore,
        codec: TokenCodec,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store: AuthStore = store
        self.codec = codec
        self._clock = clock
        self.logger = logger

    def _now(self) -> datetime:
        """Current UTC time truncated to whole seconds, matching JWT claim precision."""
        now = self._clock() if self._clock else datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.replace(microsecond=0)

    def _find_principal_by_email(self, role: Optional[Role], email: str) -> Any:
        # Only company accounts can log in through this service today.
        if role is Role.COMPANY:
            company = self.store.get_company_by_email(email)
            if not company:
                raise PrincipalNotFoundError(f"Company with email {email} not found")
            return company
        self.logger.warning("login_invalid_role", role=str(role) if role else None)
        raise InvalidCredentialsError("Invalid role specified")

    def _resolve_principal(self, role: Optional[Role], user_id: str) -> Any:
        if role is Role.COMPANY:
            return self.store.get_company(user_id)
        return None

    async def login(self, email: str, password: str, role: Any) -> TokenPair:
        parsed_role = parse_role(role)
        principal = self._find_principal_by_email(parsed_role, email)
        if not verify_password(password, principal.password_hash):
            self.logger.warning("login_password_mismatch", user_id=principal.id)
            raise InvalidCredentialsError()
        if principal.is_banned:
            self.logger.warning("login_banned_principal", user_id=principal.id)
            raise ForbiddenError(
                f"Account {principal.email} is banned: {principal.ban_reason}",
                detail={"reason": principal.ban_reason},
            )

        refresh, rti = await self._generate_refresh_token(principal.id, parsed_role)
        access = await self._generate_access_token(
            principal.id, parsed_role, rti, email=principal.email
        )
        self.logger.info(
            "login_succeeded", user_id=principal.id, role=parsed_role.value, rti=rti
        )
        return TokenPair(access=access, refresh=refresh)

    async def refresh_access_token(self, refresh_token: str) -> str:
        # The stored record decides expiry so that stale records get removed.
        try:
            claims = self.codec.verify(
                refresh_token, TokenKind.REFRESH, verify_exp=False
            )
        except TokenError as exc:
            self.logger.info("refresh_token_rejected", reason=exc.message)
            raise InvalidCredentialsError("Invalid refresh token") from exc

        rti = claims.get("_id")
        record = self.store.get_refresh_token(str(rti)) if rti else None
        if not record:
            raise InvalidCredentialsError("Refresh token not found")
        if record.is_expired(self._now()):
            self.store.delete_refresh_token(record.id)
            self.logger.info("refresh_record_expired", rti=record.id)
            raise InvalidCredentialsError("Refresh token has expired")

        claimed_role = parse_role(claims.get("role"))
        principal = self._resolve_principal(claimed_role, str(claims.get("sub", "")))
        if principal is None:
            raise InvalidCredentialsError("Invalid refresh token")
        if parse_role(principal.role) is not claimed_role:
            self.logger.warning(
                "refresh_role_changed",
                user_id=principal.id,
                claimed_role=claimed_role.value if claimed_role else None,
            )
            raise InvalidCredentialsError(
                "User role has changed since refresh token was issued"
            )
        if getattr(principal, "is_banned", False):
            raise InvalidCredentialsError("Invalid refresh token")

        return await self._generate_access_token(
            principal.id, claimed_role, record.id, email=principal.email
        )

    async def logout(self, refresh_token: str) -> None:
        try:
            self.codec.verify(refresh_token, TokenKind.REFRESH)
            claims = self.codec.decode(refresh_token)
        except TokenError as exc:
            raise InvalidCredentialsError("Invalid refresh token") from exc
        rti = claims.get("_id")
        removed = self.store.delete_refresh_token(str(rti)) if rti else False
        self.logger.info("logout", rti=rti, removed=removed)

    async def revoke_user_sessions(self, user_id: str) -> int:
        """Delete every refresh record owned by ``user_id`` and return how many went."""
        count = self.store.delete_user_refresh_tokens(str(user_id))
        self.logger.info("user_sessions_revoked", user_id=user_id, count=count)
        return count

    async def ban_company(self, company_id: str, reason: str) -> Company:
        company = self.store.ban_company(str(company_id), reason)
        if not company:
            raise NotFoundError(f"Company with id {company_id} not found")
        self.logger.info("company_banned", user_id=company.id)
        return company

    async def remove_company(self, company_id: str) -> None:
        if not self.store.delete_company(str(company_id)):
            raise NotFoundError("Company not found or already deleted")
        self.logger.info("company_removed", user_id=company_id)

    async def list_user_sessions(self, user_id: str) -> List[RefreshTokenRecord]:
        """Live refresh records for ``user_id``; expired ones are left for refresh to reap."""
        now = self._now()
        return [
            record
            for record in self.store.list_user_refresh_tokens(str(user_id))
            if not record.is_expired(now)
        ]

    async def _generate_access_token(
        self,
        user_id: str,
        role: Role,
        rti: str,
        email: Optional[str] = None,
    ) -> str:
        record = self.store.get_refresh_token(str(rti))
        if not record:
            raise InvalidCredentialsError("Refresh token not found")
        if str(record.user_id) != str(user_id):
            raise InvalidCredentialsError("Refresh token does not belong to the user")
        if record.is_expired(self._now()):
            self.store.delete_refresh_token(record.id)
            raise InvalidCredentialsError("Refresh token has expired")

        payload: dict[str, Any] = {
            "sub": str(user_id),
            "role": role.value,
            "rti": str(rti),
        }
        if email:
            payload["email"] = email
        return self.codec.sign(payload, TokenKind.ACCESS, now=self._now())

    async def _generate_refresh_token(
        self, user_id: str, role: Role
    ) -> tuple[str, str]:
        now = self._now()
        record = self.store.create_refresh_token(
            str(user_id), self.codec.expires_at(TokenKind.REFRESH, now)
        )
        token = self.codec.sign(
            {"_id": record.id, "sub": str(user_id), "role": role.value},
            TokenKind.REFRESH,
            now=now,
        )
        return token, record.id


__all__ = [
    "AuthStore",
    "AuthService",
    "TokenPair",
    "hash_password",
    "verify_password",
    "BCRYPT_ROUNDS",
]
