"""
Token middleware units.

__token
    Verifies the access token and injects its claims. Looks for the token in,
    by precedence: `Authorization: Bearer <token>`, the `token` header, the
    `token` query parameter.

__shortToken
    Same lookup, verified as a refresh token. Used by token.refreshToken.

Both answer 401 themselves when the token is missing or invalid.
"""

from __future__ import annotations

import logging
from typing import Any

from rollcall.pipeline.context import RequestContext
from rollcall.pipeline.middleware import Middleware, MiddlewareDeps
from rollcall.security.tokens import TokenError, TokenService

logger = logging.getLogger(__name__)

MISSING_TOKEN_MESSAGE = "Authentication required. Please provide a valid token."


def extract_token(ctx: RequestContext) -> str | None:
    request = ctx.request

    auth_header = request.header("authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer ") :].strip()
        if token:
            return token

    token = request.header("token")
    if token:
        return token

    token = request.query.get("token")
    if isinstance(token, str) and token:
        return token

    return None


class _TokenMiddleware(Middleware):
    """Shared lookup and rejection for the token units."""

    def __init__(self, tokens: TokenService):
        self._tokens = tokens

    def _verify(self, token: str) -> dict[str, Any]:
        raise NotImplementedError

    async def run(self, ctx: RequestContext) -> dict[str, Any]:
        token = extract_token(ctx)
        if token is None:
            logger.info(f"[{self.name}] Token required but not found for {ctx.route}")
            self.reject(ctx, code=401, errors=MISSING_TOKEN_MESSAGE)

        try:
            claims = self._verify(token)
        except TokenError as e:
            logger.info(f"[{self.name}] Token rejected for {ctx.route}: {e.reason}")
            self.reject(ctx, code=401, errors=e.user_message)

        logger.debug(f"[{self.name}] Token verified for user: {claims.get('userId')}")
        return claims


class TokenMiddleware(_TokenMiddleware):
    """Access token check, injected as __token."""

    @property
    def name(self) -> str:
        return "__token"

    def _verify(self, token: str) -> dict[str, Any]:
        return self._tokens.verify_long(token)


class ShortTokenMiddleware(_TokenMiddleware):
    """Refresh token check, injected as __shortToken."""

    @property
    def name(self) -> str:
        return "__shortToken"

    def _verify(self, token: str) -> dict[str, Any]:
        return self._tokens.verify_short(token)


def token_middleware(deps: MiddlewareDeps) -> Middleware:
    return TokenMiddleware(deps.tokens)


def short_token_middleware(deps: MiddlewareDeps) -> Middleware:
    return ShortTokenMiddleware(deps.tokens)
