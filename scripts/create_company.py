#!/usr/bin/env python3
"""Create a company account that can log in through /api/auth/login.

Usage:
    # Using environment variables:
    COMPANY_EMAIL=hr@acme.test COMPANY_PASSWORD=SecurePassword123! COMPANY_NAME=Acme \
        python scripts/create_company.py

    # Or with command line args:
    python scripts/create_company.py --email hr@acme.test --password SecurePassword123! --name Acme

Environment Variables:
    COMPANY_EMAIL: Login email for the company
    COMPANY_PASSWORD: Plaintext password, stored as a bcrypt hash
    COMPANY_NAME: Display name
    DATABASE_URL: PostgreSQL connection string (uses memory store if not set)
"""
from __future__ import annotations

import argparse
import asyncio
import os
import secrets
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def validate_password(password: str) -> bool:
    if len(password) < 12:
        return False
    has_upper = any(c.isupper() for c in password)
    has_lower = any(c.islower() for c in password)
    has_digit = any(c.isdigit() for c in password)
    has_special = any(c in "!@#$%^&*()_+-=[]{}|;':\",./<>?" for c in password)
    return sum([has_upper, has_lower, has_digit, has_special]) >= 3


async def create_company(email: str, password: str, name: str, dry_run: bool = False) -> dict:
    # Import here so the env defaults below are in place before settings load
    from internboard.service.auth import hash_password
    from internboard.service.roles import Role
    from internboard.service.runtime import get_runtime

    runtime = get_runtime()
    existing = runtime.store.get_company_by_email(email)
    if existing:
        print(f"Company {email} already exists (id: {existing.id})")
        return {"user_id": existing.id, "email": existing.email, "status": "exists"}

    if dry_run:
        print(f"[DRY RUN] Would create company: {email}")
        return {"user_id": None, "email": email, "status": "dry_run"}

    company = runtime.store.create_company(email, hash_password(password), name)
    tokens = await runtime.auth.login(email, password, Role.COMPANY)
    # Only proves the credentials work; the session itself is not handed out.
    await runtime.auth.logout(tokens.refresh)
    return {
        "user_id": company.id,
        "email": company.email,
        "status": "created",
        "login_verified": bool(tokens.access),
    }


def main():
    parser = argparse.ArgumentParser(
        description="Create a company account for internboard",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--email", default=os.environ.get("COMPANY_EMAIL"))
    parser.add_argument("--password", default=os.environ.get("COMPANY_PASSWORD"))
    parser.add_argument("--name", default=os.environ.get("COMPANY_NAME"))
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )
    args = parser.parse_args()

    if not args.email or not args.password or not args.name:
        print("Error: --email, --password and --name (or COMPANY_* env vars) are required")
        sys.exit(1)
    if not validate_password(args.password):
        print("Error: Password must be at least 12 characters with 3+ character classes")
        sys.exit(1)

    # Throwaway secrets are fine here: the script only proves the login works.
    os.environ.setdefault("ACCESS_TOKEN_SECRET", secrets.token_urlsafe(48))
    os.environ.setdefault("REFRESH_TOKEN_SECRET", secrets.token_urlsafe(48))
    os.environ.setdefault("ACCESS_TOKEN_LIFESPAN_MINUTES", "15")
    os.environ.setdefault("REFRESH_TOKEN_LIFESPAN_MINUTES", "10080")
    if not os.environ.get("DATABASE_URL"):
        os.environ["USE_MEMORY_STORE"] = "true"
        print("Note: Using in-memory store (set DATABASE_URL for persistence)")

    try:
        result = asyncio.run(
            create_company(args.email, args.password, args.name, args.dry_run)
        )
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    if result["status"] == "created":
        print("\nCompany created successfully!")
        print(f"  Email: {result['email']}")
        print(f"  User ID: {result['user_id']}")
        print(f"  Login verified: {result['login_verified']}")


if __name__ == "__main__":
    main()
