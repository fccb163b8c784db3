"""__device: client address and user agent."""

from __future__ import annotations

from typing import Any

from rollcall.pipeline.context import RequestContext
from rollcall.pipeline.middleware import Middleware, MiddlewareDeps

UNKNOWN = "N/A"


def client_ip(ctx: RequestContext) -> str:
    forwarded = ctx.request.header("x-forwarded-for")
    if forwarded:
        # Left-most entry is the originating client
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = ctx.request.header("x-real-ip")
    if real_ip:
        return real_ip
    return ctx.request.client_host or UNKNOWN


class DeviceMiddleware(Middleware):
    """Injects {"ip": ..., "agent": ...}. Never rejects."""

    @property
    def name(self) -> str:
        return "__device"

    async def run(self, ctx: RequestContext) -> dict[str, Any]:
        return {
            "ip": client_ip(ctx),
            "agent": ctx.request.header("user-agent") or UNKNOWN,
        }


def device_middleware(deps: MiddlewareDeps) -> Middleware:
    return DeviceMiddleware()
