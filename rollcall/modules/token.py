"""Token Module - access token refresh."""

from __future__ import annotations

import logging
from typing import Any

from rollcall.pipeline.introspection import handler
from rollcall.pipeline.results import Success
from rollcall.security.tokens import TokenService
from rollcall.storage.base import DocumentStore

from .base import NOT_DELETED, HandlerModule

logger = logging.getLogger(__name__)


class TokenModule(HandlerModule):
    name = "token"
    http_exposed = ("refreshToken",)

    def __init__(self, store: DocumentStore, tokens: TokenService):
        super().__init__(store)
        self.tokens = tokens

    @handler("refreshToken", params=("__shortToken",), summary="New access token from a refresh token")
    async def refresh_token(self, args: dict[str, Any]):
        claims = args["__shortToken"]
        user = await self.store.find_one("users", {"_id": claims.get("userId"), **NOT_DELETED})
        if user is None or user.get("status") != "active":
            return self.unauthorized("Account is no longer active. Please log in again.")

        long_token = self.tokens.issue_long_token(
            user_id=user["_id"],
            email=user["email"],
            role=user["role"],
            school_id=user.get("schoolId"),
            session_id=claims.get("sid"),
        )
        logger.debug(f"[token] Refreshed access token for user {user['_id']}")
        return Success({"longToken": long_token})
