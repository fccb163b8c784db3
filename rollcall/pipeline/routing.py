"""
Route Table for Rollcall.

Scans handler modules once at startup and produces the immutable lookup
tables the dispatcher works from:

- methods:  module -> verb -> frozenset of method names (existence checks)
- stacks:   "module.method" -> ordered middleware names
- handlers: RouteKey -> bound handler callable

Exposure declarations:
    "registerUser"          -> POST  /api/user/registerUser
    "get=getSchoolById"     -> GET   /api/school/getSchoolById
    "post=createSchool"     -> POST  /api/school/createSchool

Any handler parameter starting with "__" names a middleware unit; it is
appended to the route's stack in declaration order.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Protocol, runtime_checkable

from .introspection import ConfigurationError, introspect
from .middleware import MIDDLEWARE_MARKER, MiddlewareRegistry

logger = logging.getLogger(__name__)

DEFAULT_VERB = "post"
HTTP_VERBS = frozenset({"get", "post", "put", "patch", "delete", "head", "options"})

HandlerFn = Callable[[dict[str, Any]], Awaitable[Any]]


# =============================================================================
# Exceptions
# =============================================================================


class RoutingError(Exception):
    """
    Raised when a request does not resolve to a route.

    Recovered per request: the dispatcher answers with a client envelope.
    """

    def __init__(self, message: str, code: int = 404):
        self.code = code
        super().__init__(message)


# =============================================================================
# Contracts
# =============================================================================


@runtime_checkable
class RoutableModule(Protocol):
    """What the route table builder needs from a handler module."""

    name: str
    http_exposed: tuple[str, ...]

    @property
    def methods(self) -> Mapping[str, HandlerFn]: ...


@dataclass(frozen=True, slots=True)
class RouteKey:
    """(module, verb, method) triple identifying one callable route."""

    module_name: str
    verb: str
    method_name: str

    @property
    def stack_key(self) -> str:
        return f"{self.module_name}.{self.method_name}"

    def __str__(self) -> str:
        return f"{self.verb.upper()} /api/{self.module_name}/{self.method_name}"


def parse_exposure(declaration: str) -> tuple[str, str]:
    """
    Split an exposure declaration into (verb, method_name).

    Raises:
        ConfigurationError: Empty parts or unknown verb
    """
    if "=" in declaration:
        verb, _, method_name = declaration.partition("=")
        verb = verb.strip().lower()
    else:
        verb, method_name = DEFAULT_VERB, declaration
    method_name = method_name.strip()

    if not method_name:
        raise ConfigurationError(f"Exposure declaration {declaration!r} has no method name")
    if verb not in HTTP_VERBS:
        raise ConfigurationError(
            f"Exposure declaration {declaration!r} uses unknown verb '{verb}'"
        )
    return verb, method_name


# =============================================================================
# Route Table
# =============================================================================


@dataclass(frozen=True)
class RouteTable:
    """Immutable routing state built once per process."""

    methods: Mapping[str, Mapping[str, frozenset[str]]]
    stacks: Mapping[str, tuple[str, ...]]
    handlers: Mapping[RouteKey, HandlerFn]

    def has_module(self, module_name: str) -> bool:
        return module_name in self.methods

    def resolve(self, module_name: str, verb: str, method_name: str) -> RouteKey:
        """
        Resolve a request triple to a RouteKey.

        Raises:
            RoutingError: Unknown module, verb or method
        """
        module_matrix = self.methods.get(module_name)
        if module_matrix is None:
            raise RoutingError(f"module {module_name} not found", code=404)

        verb = verb.lower()
        if verb not in module_matrix:
            raise RoutingError(f"unsupported method {verb} for {module_name}", code=405)

        if method_name not in module_matrix[verb]:
            raise RoutingError(
                f"unable to find function {method_name} with method {verb}", code=404
            )

        return RouteKey(module_name, verb, method_name)

    def stack_for(self, key: RouteKey) -> tuple[str, ...]:
        return self.stacks.get(key.stack_key, ())

    def handler_for(self, key: RouteKey) -> HandlerFn:
        return self.handlers[key]

    def routes(self) -> list[RouteKey]:
        """All route keys, in registration order."""
        return list(self.handlers.keys())

    def describe(self) -> list[dict[str, Any]]:
        """Route listing for logs and the health endpoint."""
        return [
            {
                "route": str(key),
                "module": key.module_name,
                "verb": key.verb,
                "method": key.method_name,
                "middleware": list(self.stack_for(key)),
            }
            for key in self.handlers
        ]


def build_route_table(
    modules: Iterable[RoutableModule],
    registry: MiddlewareRegistry,
) -> RouteTable:
    """
    Build the route table from handler modules.

    Args:
        modules: Handler modules exposing http_exposed + methods
        registry: Loaded middleware units

    Returns:
        RouteTable (read-only)

    Raises:
        ConfigurationError: Unknown method, unknown middleware, duplicate
            module or route, malformed declaration
    """
    methods: dict[str, dict[str, set[str]]] = {}
    stacks: dict[str, list[str]] = {}
    handlers: dict[RouteKey, HandlerFn] = {}

    for module in modules:
        module_name = module.name
        if module_name in methods:
            raise ConfigurationError(f"Module '{module_name}' registered twice")

        exposed = module.http_exposed or ()
        module_methods = module.methods
        methods[module_name] = {}

        for declaration in exposed:
            verb, method_name = parse_exposure(declaration)

            fn = module_methods.get(method_name)
            if fn is None or not callable(fn):
                raise ConfigurationError(
                    f"Module '{module_name}' exposes '{method_name}' but has no such handler"
                )

            verb_methods = methods[module_name].setdefault(verb, set())
            if method_name in verb_methods:
                raise ConfigurationError(
                    f"Route {verb.upper()} {module_name}.{method_name} declared twice"
                )
            verb_methods.add(method_name)

            key = RouteKey(module_name, verb, method_name)
            handlers[key] = fn

            stack = stacks.setdefault(key.stack_key, [])
            if stack:
                # Same method exposed under another verb: stack already built
                continue

            for param in introspect(fn):
                if not param.startswith(MIDDLEWARE_MARKER):
                    continue
                if param not in registry:
                    raise ConfigurationError(
                        f"Unable to find middleware {param} for {module_name}.{method_name}"
                    )
                stack.append(param)

        logger.info(
            f"[route_table] Module '{module_name}': "
            f"{sum(len(v) for v in methods[module_name].values())} routes"
        )

    table = RouteTable(
        methods=MappingProxyType(
            {
                name: MappingProxyType({verb: frozenset(fns) for verb, fns in matrix.items()})
                for name, matrix in methods.items()
            }
        ),
        stacks=MappingProxyType({key: tuple(stack) for key, stack in stacks.items()}),
        handlers=MappingProxyType(handlers),
    )
    logger.info(f"[route_table] Built {len(handlers)} routes across {len(methods)} modules")
    return table
