from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from internboard.logging import get_logger
from internboard.storage.errors import ConstraintViolation
from internboard.storage.models import Company, Post, RefreshTokenRecord, new_id


class MemoryStore:
    """In-process backing store for tests and local development."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.companies: Dict[str, Company] = {}
        self.posts: Dict[str, Post] = {}
        self.refresh_tokens: Dict[str, RefreshTokenRecord] = {}
        # RLock so cascading helpers can call each other under the same lock
        self._data_lock = threading.RLock()

    def verify_connection(self) -> None:
        return None

    # companies
    def create_company(
        self,
        email: str,
        password_hash: str,
        name: str,
    ) -> Company:
        normalized = email.strip().lower()
        with self._data_lock:
            if any(c.email == normalized for c in self.companies.values()):
                raise ConstraintViolation(
                    "email already exists",
                    {"email": normalized},
                    constraint="company_email_unique",
                )
            company = Company(
                id=new_id(),
                email=normalized,
                password_hash=password_hash,
                name=name,
            )
            self.companies[company.id] = company
            return company

    def get_company(self, company_id: str) -> Optional[Company]:
        with self._data_lock:
            return self.companies.get(str(company_id))

    def get_company_by_email(self, email: str) -> Optional[Company]:
        normalized = (email or "").strip().lower()
        with self._data_lock:
            return next(
                (c for c in self.companies.values() if c.email == normalized), None
            )

    def ban_company(self, company_id: str, reason: str) -> Optional[Company]:
        with self._data_lock:
            company = self.companies.get(str(company_id))
            if not company:
                return None
            company.ban_reason = reason
            company.banned_at = datetime.now(timezone.utc)
            self.delete_user_refresh_tokens(company.id)
            return company

    def delete_company(self, company_id: str) -> bool:
        with self._data_lock:
            if self.companies.pop(str(company_id), None) is None:
                return False
            self.delete_user_refresh_tokens(str(company_id))
            for post in self.posts.values():
                if post.company_id == str(company_id) and post.deleted_at is None:
                    post.deleted_at = datetime.now(timezone.utc)
            return True

    # posts
    def create_post(self, company_id: str, title: str) -> Post:
        with self._data_lock:
            if str(company_id) not in self.companies:
                raise ConstraintViolation(
                    "post owner missing",
                    {"company_id": company_id},
                    constraint="post_company_fk",
                )
            post = Post(id=new_id(), company_id=str(company_id), title=title)
            self.posts[post.id] = post
            return post

    def get_post(self, post_id: str, *, include_deleted: bool = False) -> Optional[Post]:
        with self._data_lock:
            post = self.posts.get(str(post_id))
            if post and post.deleted_at is not None and not include_deleted:
                return None
            return post

    def soft_delete_post(self, post_id: str) -> bool:
        with self._data_lock:
            post = self.posts.get(str(post_id))
            if not post or post.deleted_at is not None:
                return False
            post.deleted_at = datetime.now(timezone.utc)
            return True

    # refresh tokens
    def create_refresh_token(
        self, user_id: str, expires_at: datetime
    ) -> RefreshTokenRecord:
        record = RefreshTokenRecord.new(user_id, expires_at)
        with self._data_lock:
            self.refresh_tokens[record.id] = record
        return record

    def get_refresh_token(self, token_id: str) -> Optional[RefreshTokenRecord]:
        with self._data_lock:
            return self.refresh_tokens.get(str(token_id))

    def delete_refresh_token(self, token_id: str) -> bool:
        with self._data_lock:
            return self.refresh_tokens.pop(str(token_id), None) is not None

    def delete_user_refresh_tokens(self, user_id: str) -> int:
        with self._data_lock:
            stale = [
                rid for rid, rec in self.refresh_tokens.items() if rec.user_id == str(user_id)
            ]
            for rid in stale:
                self.refresh_tokens.pop(rid, None)
            return len(stale)

    def list_user_refresh_tokens(self, user_id: str) -> List[RefreshTokenRecord]:
        with self._data_lock:
            return [
                rec for rec in self.refresh_tokens.values() if rec.user_id == str(user_id)
            ]
