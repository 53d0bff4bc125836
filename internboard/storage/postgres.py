from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from internboard.logging import get_logger
from internboard.storage.errors import ConstraintViolation
from internboard.storage.models import Company, Post, RefreshTokenRecord, new_id

_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS company (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        name TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'COMPANY',
        ban_reason TEXT,
        banned_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS post (
        id TEXT PRIMARY KEY,
        company_id TEXT NOT NULL REFERENCES company(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        deleted_at TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS refresh_token (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        expires_at TIMESTAMPTZ NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS refresh_token_user_id_idx ON refresh_token (user_id)",
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PostgresStore:
    """Postgres-backed store; every method is one independently atomic statement."""

    def __init__(self, dsn: str, *, min_size: int = 2, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
        )
        self._ensure_schema()

    def _connect(self):
        return self.pool.connection()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            for statement in _SCHEMA_STATEMENTS:
                conn.execute(statement)

    def verify_connection(self) -> None:
        with self._connect() as conn:
            conn.execute("SELECT 1").fetchone()

    def close(self) -> None:
        self.pool.close()

    @staticmethod
    def _company_from_row(row: dict[str, Any]) -> Company:
        return Company(
            id=str(row["id"]),
            email=row["email"],
            password_hash=row["password_hash"],
            name=row["name"],
            role=row.get("role") or "COMPANY",
            ban_reason=row.get("ban_reason"),
            banned_at=_aware(row.get("banned_at")),
            created_at=_aware(row.get("created_at")) or datetime.now(timezone.utc),
        )

    @staticmethod
    def _post_from_row(row: dict[str, Any]) -> Post:
        return Post(
            id=str(row["id"]),
            company_id=str(row["company_id"]),
            title=row["title"],
            created_at=_aware(row.get("created_at")) or datetime.now(timezone.utc),
            deleted_at=_aware(row.get("deleted_at")),
        )

    @staticmethod
    def _refresh_from_row(row: dict[str, Any]) -> RefreshTokenRecord:
        return RefreshTokenRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            expires_at=_aware(row["expires_at"]),
            created_at=_aware(row.get("created_at")) or datetime.now(timezone.utc),
        )

    # companies
    def create_company(
        self,
        email: str,
        password_hash: str,
        name: str,
    ) -> Company:
        company = Company(
            id=new_id(),
            email=email.strip().lower(),
            password_hash=password_hash,
            name=name,
        )
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO company (id, email, password_hash, name, role, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (
                        company.id,
                        company.email,
                        company.password_hash,
                        company.name,
                        company.role,
                        company.created_at,
                    ),
                )
        except errors.UniqueViolation:
            raise ConstraintViolation(
                "email already exists",
                {"email": company.email},
                constraint="company_email_unique",
            )
        return company

    def get_company(self, company_id: str) -> Optional[Company]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM company WHERE id = %s", (str(company_id),)
            ).fetchone()
        return self._company_from_row(row) if row else None

    def get_company_by_email(self, email: str) -> Optional[Company]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM company WHERE email = %s",
                ((email or "").strip().lower(),),
            ).fetchone()
        return self._company_from_row(row) if row else None

    def ban_company(self, company_id: str, reason: str) -> Optional[Company]:
        with self._connect() as conn:
            row = conn.execute(
                """
                UPDATE company SET ban_reason = %s, banned_at = now()
                WHERE id = %s RETURNING *
                """,
                (reason, str(company_id)),
            ).fetchone()
        if not row:
            return None
        self.delete_user_refresh_tokens(str(company_id))
        return self._company_from_row(row)

    def delete_company(self, company_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM company WHERE id = %s", (str(company_id),))
            deleted = cur.rowcount > 0
        if deleted:
            self.delete_user_refresh_tokens(str(company_id))
        return deleted

    # posts
    def create_post(self, company_id: str, title: str) -> Post:
        post = Post(id=new_id(), company_id=str(company_id), title=title)
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO post (id, company_id, title, created_at) VALUES (%s, %s, %s, %s)",
                    (post.id, post.company_id, post.title, post.created_at),
                )
        except errors.ForeignKeyViolation:
            raise ConstraintViolation(
                "post owner missing",
                {"company_id": company_id},
                constraint="post_company_fk",
            )
        return post

    def get_post(self, post_id: str, *, include_deleted: bool = False) -> Optional[Post]:
        query = "SELECT * FROM post WHERE id = %s"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        with self._connect() as conn:
            row = conn.execute(query, (str(post_id),)).fetchone()
        return self._post_from_row(row) if row else None

    def soft_delete_post(self, post_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE post SET deleted_at = now() WHERE id = %s AND deleted_at IS NULL",
                (str(post_id),),
            )
            return cur.rowcount > 0

    # refresh tokens
    def create_refresh_token(
        self, user_id: str, expires_at: datetime
    ) -> RefreshTokenRecord:
        record = RefreshTokenRecord.new(user_id, expires_at)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO refresh_token (id, user_id, expires_at, created_at)
                VALUES (%s, %s, %s, %s)
                """,
                (record.id, record.user_id, record.expires_at, record.created_at),
            )
        return record

    def get_refresh_token(self, token_id: str) -> Optional[RefreshTokenRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM refresh_token WHERE id = %s", (str(token_id),)
            ).fetchone()
        return self._refresh_from_row(row) if row else None

    def delete_refresh_token(self, token_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM refresh_token WHERE id = %s", (str(token_id),)
            )
            return cur.rowcount > 0

    def delete_user_refresh_tokens(self, user_id: str) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM refresh_token WHERE user_id = %s", (str(user_id),)
            )
            return cur.rowcount

    def list_user_refresh_tokens(self, user_id: str) -> List[RefreshTokenRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM refresh_token WHERE user_id = %s ORDER BY created_at",
                (str(user_id),),
            ).fetchall()
        return [self._refresh_from_row(row) for row in rows]
