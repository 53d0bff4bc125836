from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class RefreshTokenRecord:
    """One persisted refresh token; a user may own many concurrently."""

    id: str
    user_id: str
    expires_at: datetime
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def new(cls, user_id: str, expires_at: datetime) -> "RefreshTokenRecord":
        return cls(id=new_id(), user_id=str(user_id), expires_at=expires_at)

    def is_expired(self, now: datetime) -> bool:
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at < now


@dataclass
class Company:
    id: str
    email: str
    password_hash: str
    name: str
    role: str = "COMPANY"
    ban_reason: Optional[str] = None
    banned_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def is_banned(self) -> bool:
        return self.banned_at is not None


@dataclass
class Post:
    id: str
    company_id: str
    title: str
    created_at: datetime = field(default_factory=_utcnow)
    deleted_at: Optional[datetime] = None
