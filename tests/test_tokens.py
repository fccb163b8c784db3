"""
Tests for the token service and password hashing.
"""
from datetime import UTC, datetime, timedelta

import jwt
import nacl.pwhash
import pytest

from rollcall.security import (
    TokenError,
    TokenService,
    new_session_id,
    hash_password,
    hash_password_async,
    verify_password,
    verify_password_async,
)

from conftest import LONG_SECRET, SHORT_SECRET

OPS = nacl.pwhash.argon2id.OPSLIMIT_MIN
MEM = nacl.pwhash.argon2id.MEMLIMIT_MIN


@pytest.fixture
def service():
    return TokenService(long_secret=LONG_SECRET, short_secret=SHORT_SECRET, issuer="rollcall-test")


# =============================================================================
# Issuance & Verification
# =============================================================================


class TestTokenService:
    """Tests for TokenService."""

    def test_long_token_round_trip(self, service):
        token = service.issue_long_token(user_id="u1", email="a@example.com", role="school_admin", school_id="s1")

        claims = service.verify_long(token)

        assert claims["userId"] == "u1"
        assert claims["sub"] == "u1"
        assert claims["email"] == "a@example.com"
        assert claims["role"] == "school_admin"
        assert claims["schoolId"] == "s1"
        assert claims["type"] == "access"
        assert claims["iss"] == "rollcall-test"
        assert claims["exp"] - claims["iat"] == int(timedelta(days=7).total_seconds())

    def test_school_id_omitted_when_absent(self, service):
        token = service.issue_long_token(user_id="u1", email="a@example.com", role="superadmin")
        assert "schoolId" not in service.verify_long(token)

    def test_short_token_gets_random_device(self, service):
        first = service.verify_short(service.issue_short_token(user_id="u1"))
        second = service.verify_short(service.issue_short_token(user_id="u1"))

        assert first["type"] == "refresh"
        assert first["deviceId"] != second["deviceId"]

    def test_tokens_are_not_interchangeable(self, service):
        long_token = service.issue_long_token(user_id="u1", email="a@example.com", role="student")
        short_token = service.issue_short_token(user_id="u1")

        with pytest.raises(TokenError):
            service.verify_short(long_token)
        with pytest.raises(TokenError):
            service.verify_long(short_token)

    def test_wrong_type_with_shared_secret(self):
        service = TokenService(long_secret=LONG_SECRET, short_secret=LONG_SECRET, issuer="x")
        short_token = service.issue_short_token(user_id="u1")

        with pytest.raises(TokenError) as exc_info:
            service.verify_long(short_token)
        assert exc_info.value.reason == "wrong_type"

    def test_expired_token(self, service):
        past = datetime.now(UTC) - timedelta(hours=2)
        token = jwt.encode(
            {
                "userId": "u1",
                "sub": "u1",
                "type": "access",
                "iss": "rollcall-test",
                "iat": int(past.timestamp()),
                "exp": int((past + timedelta(hours=1)).timestamp()),
            },
            LONG_SECRET,
            algorithm="HS256",
        )

        with pytest.raises(TokenError) as exc_info:
            service.verify_long(token)
        assert exc_info.value.reason == "expired"
        assert exc_info.value.user_message == "Your token has expired. Please log in again."

    def test_bad_signature(self, service):
        other = TokenService(long_secret="another-long-secret-0123456789abcdef", short_secret=SHORT_SECRET, issuer="rollcall-test")
        token = other.issue_long_token(user_id="u1", email="a@example.com", role="student")

        with pytest.raises(TokenError) as exc_info:
            service.verify_long(token)
        assert exc_info.value.reason == "invalid_signature"

    def test_wrong_issuer(self, service):
        other = TokenService(long_secret=LONG_SECRET, short_secret=SHORT_SECRET, issuer="someone-else")
        token = other.issue_long_token(user_id="u1", email="a@example.com", role="student")

        with pytest.raises(TokenError) as exc_info:
            service.verify_long(token)
        assert exc_info.value.reason == "invalid"

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            TokenService(long_secret="", short_secret=SHORT_SECRET, issuer="x")


class TestRevocation:
    """Tests for revoke()."""

    def test_revoked_token_is_rejected(self, service):
        token = service.issue_long_token(user_id="u1", email="a@example.com", role="student")
        claims = service.verify_long(token)

        service.revoke(claims)

        assert service.is_revoked(claims)
        with pytest.raises(TokenError) as exc_info:
            service.verify_long(token)
        assert exc_info.value.reason == "revoked"

    def test_revocation_is_per_token(self, service):
        first = service.issue_long_token(user_id="u1", email="a@example.com", role="student")
        second = service.issue_long_token(user_id="u1", email="a@example.com", role="student")

        service.revoke(service.verify_long(first))

        assert service.verify_long(second)["userId"] == "u1"

    def test_revocation_covers_the_whole_session(self, service):
        session = new_session_id()
        long_token = service.issue_long_token(
            user_id="u1", email="a@example.com", role="student", session_id=session
        )
        short_token = service.issue_short_token(user_id="u1", session_id=session)
        other_short = service.issue_short_token(user_id="u1")

        service.revoke(service.verify_long(long_token))

        with pytest.raises(TokenError) as exc_info:
            service.verify_short(short_token)
        assert exc_info.value.reason == "revoked"
        assert service.verify_short(other_short)["userId"] == "u1"

    def test_revocations_are_bounded(self):
        service = TokenService(
            long_secret=LONG_SECRET, short_secret=SHORT_SECRET, issuer="x", revocation_maxsize=4
        )

        for _ in range(10):
            token = service.issue_long_token(user_id="u1", email="a@example.com", role="student")
            service.revoke(service.verify_long(token))

        assert len(service._revoked) <= 4


# =============================================================================
# Passwords
# =============================================================================


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("correct horse", opslimit=OPS, memlimit=MEM)

        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_malformed_hash_does_not_verify(self):
        assert not verify_password("anything", "not-an-argon2-hash")

    @pytest.mark.asyncio
    async def test_async_variants(self):
        hashed = await hash_password_async("battery staple", opslimit=OPS, memlimit=MEM)

        assert await verify_password_async("battery staple", hashed)
