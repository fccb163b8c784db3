"""
Rollcall Middleware Units

Built-in units and the factory list the composition root loads into the
MiddlewareRegistry.
"""

from rollcall.pipeline.middleware import MiddlewareFactory

from .device import DeviceMiddleware, device_middleware
from .request import HeadersMiddleware, QueryMiddleware, headers_middleware, query_middleware
from .token import (
    MISSING_TOKEN_MESSAGE,
    ShortTokenMiddleware,
    TokenMiddleware,
    extract_token,
    short_token_middleware,
    token_middleware,
)


def default_middleware_factories() -> list[MiddlewareFactory]:
    return [
        token_middleware,
        short_token_middleware,
        device_middleware,
        query_middleware,
        headers_middleware,
    ]


__all__ = [
    "default_middleware_factories",
    "TokenMiddleware",
    "ShortTokenMiddleware",
    "DeviceMiddleware",
    "QueryMiddleware",
    "HeadersMiddleware",
    "MISSING_TOKEN_MESSAGE",
    "extract_token",
]
