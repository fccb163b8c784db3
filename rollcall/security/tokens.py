"""
Token Service - JWT issuance and verification.

Token Types:
1. Long token (access): default 7 days. Carries identity and role, sent as
   `Authorization: Bearer <token>` on authenticated calls.
2. Short token (refresh): default 24 hours. Carries user and device id,
   exchanged for a new access token via POST /api/token/refreshToken.

Both are HS256-signed with separate secrets and checked for issuer and
token type on verification. The long and short token handed out by one
login share a session id ("sid"). Logout revokes the session, so neither
token of that login verifies afterwards. Revocations live in a cachetools
TLRUCache until the tokens they cover would have expired anyway.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from cachetools import TLRUCache

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS_TYPE = "access"
REFRESH_TYPE = "refresh"
REVOCATION_MAXSIZE = 10_000


class TokenError(Exception):
    """
    Token could not be verified.

    reason is one of: expired, invalid_signature, not_yet_valid,
    wrong_type, revoked, invalid.
    """

    MESSAGES = {
        "expired": "Your token has expired. Please log in again.",
        "invalid_signature": "Invalid token signature",
        "not_yet_valid": "Token not yet valid",
        "wrong_type": "Invalid token type",
        "revoked": "Token has been revoked. Please log in again.",
        "invalid": "Invalid or expired token",
    }

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(self.user_message)

    @property
    def user_message(self) -> str:
        return self.MESSAGES.get(self.reason, self.MESSAGES["invalid"])


def _until_expiry(_key: Any, expires_at: float, _now: float) -> float:
    return expires_at


class TokenService:
    """
    Issues and verifies access and refresh tokens.

    Example:
        tokens = TokenService(long_secret="...", short_secret="...", issuer="rollcall-api")
        access = tokens.issue_long_token(user_id="u1", email="a@b.c", role="superadmin")
        claims = tokens.verify_long(access)
        claims["userId"]  # "u1"
    """

    def __init__(
        self,
        *,
        long_secret: str,
        short_secret: str,
        issuer: str,
        long_ttl: timedelta = timedelta(days=7),
        short_ttl: timedelta = timedelta(hours=24),
        revocation_maxsize: int = REVOCATION_MAXSIZE,
    ):
        if not long_secret or not short_secret:
            raise ValueError("Token secrets must not be empty")
        self._long_secret = long_secret
        self._short_secret = short_secret
        self.issuer = issuer
        self.long_ttl = long_ttl
        self.short_ttl = short_ttl
        # Values are epoch expiry times, so entries drop out on their own
        self._revoked: TLRUCache = TLRUCache(
            maxsize=revocation_maxsize, ttu=_until_expiry, timer=time.time
        )

    # ==================== Issuance ====================

    def issue_long_token(
        self,
        *,
        user_id: str,
        email: str,
        role: str,
        school_id: str | None = None,
        session_id: str | None = None,
    ) -> str:
        payload: dict[str, Any] = {
            "userId": user_id,
            "email": email,
            "role": role,
            "type": ACCESS_TYPE,
            "sid": session_id or new_session_id(),
        }
        if school_id:
            payload["schoolId"] = school_id
        return self._sign(payload, self._long_secret, self.long_ttl, subject=user_id)

    def issue_short_token(
        self,
        *,
        user_id: str,
        device_id: str | None = None,
        session_id: str | None = None,
    ) -> str:
        payload = {
            "userId": user_id,
            "deviceId": device_id or uuid.uuid4().hex,
            "type": REFRESH_TYPE,
            "sid": session_id or new_session_id(),
        }
        return self._sign(payload, self._short_secret, self.short_ttl, subject=user_id)

    def _sign(
        self,
        payload: dict[str, Any],
        secret: str,
        ttl: timedelta,
        *,
        subject: str,
    ) -> str:
        now = datetime.now(UTC)
        claims = {
            **payload,
            "sub": subject,
            "iss": self.issuer,
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
        }
        return jwt.encode(claims, secret, algorithm=ALGORITHM)

    # ==================== Verification ====================

    def verify_long(self, token: str) -> dict[str, Any]:
        """
        Verify an access token.

        Raises:
            TokenError: Token invalid, expired, revoked or not an access token
        """
        return self._verify(token, self._long_secret, ACCESS_TYPE)

    def verify_short(self, token: str) -> dict[str, Any]:
        """
        Verify a refresh token.

        Raises:
            TokenError: Token invalid, expired, revoked or not a refresh token
        """
        return self._verify(token, self._short_secret, REFRESH_TYPE)

    def _verify(self, token: str, secret: str, expected_type: str) -> dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenError("expired", str(exc)) from exc
        except jwt.ImmatureSignatureError as exc:
            raise TokenError("not_yet_valid", str(exc)) from exc
        except jwt.InvalidSignatureError as exc:
            raise TokenError("invalid_signature", str(exc)) from exc
        except jwt.InvalidTokenError as exc:
            raise TokenError("invalid", str(exc)) from exc

        if claims.get("type") != expected_type:
            logger.warning(
                f"[tokens] Token type mismatch: expected {expected_type}, got {claims.get('type')}"
            )
            raise TokenError("wrong_type")

        if self.is_revoked(claims):
            raise TokenError("revoked")

        return claims

    # ==================== Revocation ====================

    def revoke(self, claims: dict[str, Any]) -> None:
        """
        Revoke a verified token and the login session it belongs to.

        The token id is kept until the token's own expiry. The session id is
        kept until the longest-lived token of that session could expire.
        """
        jti = claims.get("jti")
        if jti:
            self._revoked[("jti", jti)] = float(claims.get("exp", 0))

        sid = claims.get("sid")
        if sid:
            longest = max(self.long_ttl, self.short_ttl).total_seconds()
            self._revoked[("sid", sid)] = time.time() + longest
            logger.info(f"[tokens] Revoked session {sid} for user {claims.get('userId')}")

    def is_revoked(self, claims: dict[str, Any]) -> bool:
        keys = [("jti", claims.get("jti")), ("sid", claims.get("sid"))]
        return any(key[1] and key in self._revoked for key in keys)


def new_session_id() -> str:
    return uuid.uuid4().hex
