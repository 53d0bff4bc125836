"""Tests for the access/refresh token codec and its configuration."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from internboard.config import Settings
from internboard.service.errors import InvalidConfigurationError
from internboard.service.tokens import (
    TokenCodec,
    TokenConfig,
    TokenError,
    TokenKind,
    claims_expiry,
)


@pytest.fixture
def config():
    return TokenConfig(
        access_secret="access-secret-for-unit-tests-0123456789",
        refresh_secret="refresh-secret-for-unit-tests-0123456789",
        access_lifespan_minutes=15,
        refresh_lifespan_minutes=60,
    )


@pytest.fixture
def codec(config):
    return TokenCodec(config)


class TestTokenConfig:
    def _settings(self, **overrides):
        values = dict(
            access_token_secret="a",
            refresh_token_secret="r",
            access_token_lifespan_minutes=5,
            refresh_token_lifespan_minutes=10,
        )
        values.update(overrides)
        return Settings(**values)

    def test_from_settings(self):
        config = TokenConfig.from_settings(self._settings())
        assert config.access_lifespan_minutes == 5
        assert config.refresh_lifespan_minutes == 10
        assert config.algorithm == "HS256"

    def test_missing_access_secret_is_fatal(self):
        with pytest.raises(InvalidConfigurationError, match="Access token secret"):
            TokenConfig.from_settings(self._settings(access_token_secret=None))

    def test_blank_refresh_secret_is_fatal(self):
        with pytest.raises(InvalidConfigurationError, match="Refresh token secret"):
            TokenConfig.from_settings(self._settings(refresh_token_secret="   "))

    def test_missing_lifespan_is_fatal(self):
        with pytest.raises(InvalidConfigurationError, match="Access token lifespan"):
            TokenConfig.from_settings(self._settings(access_token_lifespan_minutes=None))

    def test_non_positive_lifespan_is_fatal(self):
        with pytest.raises(InvalidConfigurationError, match="must be positive"):
            TokenConfig.from_settings(self._settings(refresh_token_lifespan_minutes=0))


class TestTokenCodec:
    def test_sign_and_verify_access(self, codec):
        token = codec.sign({"sub": "company-1", "role": "COMPANY"}, TokenKind.ACCESS)
        claims = codec.verify(token, TokenKind.ACCESS)
        assert claims["sub"] == "company-1"
        assert claims["exp"] - claims["iat"] == 15 * 60

    def test_refresh_lifespan_applies_to_refresh_tokens(self, codec):
        token = codec.sign({"sub": "company-1"}, TokenKind.REFRESH)
        claims = codec.verify(token, TokenKind.REFRESH)
        assert claims["exp"] - claims["iat"] == 60 * 60

    def test_secrets_are_not_interchangeable(self, codec):
        access = codec.sign({"sub": "company-1"}, TokenKind.ACCESS)
        with pytest.raises(TokenError, match="token invalid"):
            codec.verify(access, TokenKind.REFRESH)

    def test_expired_token_is_rejected(self, codec):
        issued = datetime.now(timezone.utc) - timedelta(hours=1)
        token = codec.sign({"sub": "company-1"}, TokenKind.ACCESS, now=issued)
        with pytest.raises(TokenError, match="token expired"):
            codec.verify(token, TokenKind.ACCESS)

    def test_expiry_check_can_be_deferred_to_caller(self, codec):
        issued = datetime.now(timezone.utc) - timedelta(hours=2)
        token = codec.sign({"sub": "company-1"}, TokenKind.REFRESH, now=issued)

        claims = codec.verify(token, TokenKind.REFRESH, verify_exp=False)

        assert claims["sub"] == "company-1"
        with pytest.raises(TokenError, match="token invalid"):
            codec.verify(token, TokenKind.ACCESS, verify_exp=False)

    def test_empty_token_is_rejected(self, codec):
        with pytest.raises(TokenError, match="token missing"):
            codec.verify("", TokenKind.ACCESS)

    def test_token_without_exp_is_rejected(self, codec, config):
        token = jwt.encode({"sub": "company-1"}, config.access_secret, algorithm="HS256")
        with pytest.raises(TokenError):
            codec.verify(token, TokenKind.ACCESS)

    def test_decode_skips_signature_and_expiry(self, codec):
        issued = datetime.now(timezone.utc) - timedelta(days=1)
        token = codec.sign({"sub": "company-1"}, TokenKind.REFRESH, now=issued)
        assert codec.decode(token)["sub"] == "company-1"

    def test_decode_rejects_garbage(self, codec):
        with pytest.raises(TokenError, match="token malformed"):
            codec.decode("not-a-jwt")

    def test_expires_at_matches_signed_exp(self, codec):
        now = datetime.now(timezone.utc).replace(microsecond=0)
        token = codec.sign({"sub": "company-1"}, TokenKind.REFRESH, now=now)
        claims = codec.decode(token)
        assert claims_expiry(claims) == codec.expires_at(TokenKind.REFRESH, now)


def test_claims_expiry_handles_missing_exp():
    assert claims_expiry({}) is None
    assert claims_expiry({"exp": "soon"}) is None
