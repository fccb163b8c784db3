"""__query and __headers: raw request data for handlers that want it."""

from __future__ import annotations

from typing import Any

from rollcall.pipeline.context import RequestContext
from rollcall.pipeline.middleware import Middleware, MiddlewareDeps


class QueryMiddleware(Middleware):
    @property
    def name(self) -> str:
        return "__query"

    async def run(self, ctx: RequestContext) -> dict[str, Any]:
        return dict(ctx.request.query)


class HeadersMiddleware(Middleware):
    @property
    def name(self) -> str:
        return "__headers"

    async def run(self, ctx: RequestContext) -> dict[str, str]:
        return {key.lower(): value for key, value in ctx.request.headers.items()}


def query_middleware(deps: MiddlewareDeps) -> Middleware:
    return QueryMiddleware()


def headers_middleware(deps: MiddlewareDeps) -> Middleware:
    return HeadersMiddleware()
