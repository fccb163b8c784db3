"""
Rollcall Dispatch Pipeline

The reflective dispatcher and middleware pipeline at the heart of Rollcall.

Core Components:
- introspection: @handler manifests and parameter introspection
- middleware: Middleware units and their registry
- routing: Exposure declarations and the immutable route table
- executor: Bolt, one request's ordered middleware run
- dispatcher: Per-request entry point
- envelope: Response envelope and result normalization
- results: Tagged handler result variants

Wiring (done once by the composition root):
    registry = MiddlewareRegistry.load(factories, deps)
    routes = build_route_table(modules, registry)
    dispatcher = Dispatcher(routes, registry)
"""

from .context import (
    DispatchRequest,
    DispatchResponse,
    RequestContext,
    ResponseAlreadySentError,
)
from .dispatcher import Dispatcher
from .envelope import ResponseEnvelope, build_envelope, normalize, normalize_errors
from .executor import Bolt, BoltState
from .introspection import ConfigurationError, HandlerManifest, handler, introspect
from .middleware import (
    MIDDLEWARE_MARKER,
    Middleware,
    MiddlewareDeps,
    MiddlewareFactory,
    MiddlewareRegistry,
    MiddlewareRegistryError,
    ShortCircuit,
)
from .observability import DispatchLogger, DispatchMetrics, JSONLogger
from .results import (
    BypassReason,
    Failure,
    HandlerResult,
    SelfHandled,
    Success,
    ValidationFailure,
    coerce_result,
)
from .routing import (
    DEFAULT_VERB,
    RouteKey,
    RouteTable,
    RoutingError,
    build_route_table,
    parse_exposure,
)

__all__ = [
    # Context
    "DispatchRequest",
    "DispatchResponse",
    "RequestContext",
    "ResponseAlreadySentError",
    # Introspection
    "ConfigurationError",
    "HandlerManifest",
    "handler",
    "introspect",
    # Middleware
    "MIDDLEWARE_MARKER",
    "Middleware",
    "MiddlewareDeps",
    "MiddlewareFactory",
    "MiddlewareRegistry",
    "MiddlewareRegistryError",
    "ShortCircuit",
    # Routing
    "DEFAULT_VERB",
    "RouteKey",
    "RouteTable",
    "RoutingError",
    "build_route_table",
    "parse_exposure",
    # Execution
    "Bolt",
    "BoltState",
    "Dispatcher",
    # Results & envelope
    "BypassReason",
    "Failure",
    "HandlerResult",
    "SelfHandled",
    "Success",
    "ValidationFailure",
    "coerce_result",
    "ResponseEnvelope",
    "build_envelope",
    "normalize",
    "normalize_errors",
    # Observability
    "DispatchLogger",
    "DispatchMetrics",
    "JSONLogger",
]
