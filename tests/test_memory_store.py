"""Unit tests for the in-memory store.

Tests for:
- Company directory lookups
- Ban and delete cascades onto refresh records
- Post lookup and soft delete
- Refresh record CRUD
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from internboard.storage.errors import ConstraintViolation
from internboard.storage.memory import MemoryStore


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def company(memory_store):
    return memory_store.create_company("HR@Acme.test", "hash", "Acme")


def _future(minutes: int = 60) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


class TestCompanies:
    def test_email_is_normalized(self, memory_store, company):
        assert company.email == "hr@acme.test"
        assert memory_store.get_company_by_email("  HR@ACME.test ").id == company.id

    def test_duplicate_email_conflicts(self, memory_store, company):
        with pytest.raises(ConstraintViolation) as excinfo:
            memory_store.create_company("hr@acme.test", "hash", "Acme again")
        assert excinfo.value.constraint == "company_email_unique"

    def test_unknown_company_is_none(self, memory_store):
        assert memory_store.get_company("missing") is None
        assert memory_store.get_company_by_email("nobody@acme.test") is None

    def test_ban_marks_company_and_drops_sessions(self, memory_store, company):
        memory_store.create_refresh_token(company.id, _future())
        memory_store.create_refresh_token(company.id, _future())

        banned = memory_store.ban_company(company.id, "spam")

        assert banned.is_banned
        assert banned.ban_reason == "spam"
        assert memory_store.list_user_refresh_tokens(company.id) == []

    def test_ban_unknown_company_returns_none(self, memory_store):
        assert memory_store.ban_company("missing", "spam") is None

    def test_delete_company_cascades(self, memory_store, company):
        post = memory_store.create_post(company.id, "Backend intern")
        memory_store.create_refresh_token(company.id, _future())

        assert memory_store.delete_company(company.id) is True

        assert memory_store.get_company(company.id) is None
        assert memory_store.list_user_refresh_tokens(company.id) == []
        assert memory_store.get_post(post.id) is None
        assert memory_store.get_post(post.id, include_deleted=True).deleted_at is not None
        assert memory_store.delete_company(company.id) is False


class TestPosts:
    def test_post_requires_existing_company(self, memory_store):
        with pytest.raises(ConstraintViolation):
            memory_store.create_post("missing", "Intern")

    def test_soft_delete_hides_post(self, memory_store, company):
        post = memory_store.create_post(company.id, "Intern")

        assert memory_store.soft_delete_post(post.id) is True
        assert memory_store.soft_delete_post(post.id) is False
        assert memory_store.get_post(post.id) is None
        assert memory_store.get_post(post.id, include_deleted=True) is not None


class TestRefreshTokens:
    def test_create_and_get(self, memory_store, company):
        expires_at = _future()
        record = memory_store.create_refresh_token(company.id, expires_at)

        fetched = memory_store.get_refresh_token(record.id)
        assert fetched.user_id == company.id
        assert fetched.expires_at == expires_at

    def test_delete_is_idempotent(self, memory_store, company):
        record = memory_store.create_refresh_token(company.id, _future())

        assert memory_store.delete_refresh_token(record.id) is True
        assert memory_store.delete_refresh_token(record.id) is False
        assert memory_store.get_refresh_token(record.id) is None

    def test_delete_by_user_only_touches_that_user(self, memory_store, company):
        other = memory_store.create_company("other@acme.test", "hash", "Other")
        memory_store.create_refresh_token(company.id, _future())
        memory_store.create_refresh_token(company.id, _future())
        kept = memory_store.create_refresh_token(other.id, _future())

        assert memory_store.delete_user_refresh_tokens(company.id) == 2
        assert memory_store.list_user_refresh_tokens(other.id) == [kept]

    def test_record_expiry_is_strictly_past(self, memory_store, company):
        now = datetime.now(timezone.utc)
        record = memory_store.create_refresh_token(company.id, now)

        assert not record.is_expired(now)
        assert record.is_expired(now + timedelta(milliseconds=1))

    def test_concurrent_creates_are_all_kept(self, memory_store, company):
        def worker():
            for _ in range(25):
                memory_store.create_refresh_token(company.id, _future())

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(memory_store.list_user_refresh_tokens(company.id)) == 100
