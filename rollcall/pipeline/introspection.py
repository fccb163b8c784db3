"""
Handler manifests and parameter introspection.

Handlers accept a single dict argument. The keys they read are declared up
front on the @handler decorator, in order, the same way a destructured
parameter list would name them:

    @handler("createSchool", params=("schoolName", "schoolCode", "__token"))
    async def create_school(self, args):
        ...

Names starting with "__" request middleware enrichment. The route table
builder reads the manifest through introspect(), so which middleware a
route needs is inferred from the declaration, never from imperative code.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

MANIFEST_ATTR = "__rollcall_handler__"


class ConfigurationError(Exception):
    """
    Inconsistent route configuration detected at build time.

    Always fatal: the application must not start serving with it.
    """

    pass


@dataclass(frozen=True)
class HandlerManifest:
    """Declaration attached to a handler function by @handler."""

    route_name: str
    params: tuple[str, ...] = ()
    summary: str = ""


def handler(
    route_name: str,
    *,
    params: Sequence[str] = (),
    summary: str = "",
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Attach a handler manifest to an async method.

    Args:
        route_name: Method name used in exposure declarations and URLs
        params: Ordered parameter names the handler reads
        summary: One-line description for route listings
    """
    if isinstance(params, str):
        raise ConfigurationError(
            f"params for '{route_name}' must be a sequence of names, not a string"
        )

    manifest = HandlerManifest(route_name=route_name, params=tuple(params), summary=summary)

    def decorate(fn: Callable[..., Any]) -> Callable[..., Any]:
        setattr(fn, MANIFEST_ATTR, manifest)
        return fn

    return decorate


def get_manifest(fn: Callable[..., Any]) -> HandlerManifest | None:
    """Return the manifest of a function or bound method, if any."""
    target = getattr(fn, "__func__", fn)
    return getattr(target, MANIFEST_ATTR, None)


def introspect(fn: Callable[..., Any]) -> tuple[str, ...]:
    """
    Ordered parameter names declared by a handler.

    Args:
        fn: Handler function or bound method

    Returns:
        Parameter names in declaration order

    Raises:
        ConfigurationError: No manifest, or malformed parameter names
    """
    manifest = get_manifest(fn)
    if manifest is None:
        name = getattr(fn, "__qualname__", repr(fn))
        raise ConfigurationError(
            f"Cannot introspect parameters of {name}: no @handler declaration"
        )

    seen: set[str] = set()
    for param in manifest.params:
        if not isinstance(param, str) or not param.isidentifier():
            raise ConfigurationError(
                f"Invalid parameter name {param!r} declared by '{manifest.route_name}'"
            )
        if param in seen:
            raise ConfigurationError(
                f"Parameter '{param}' declared twice by '{manifest.route_name}'"
            )
        seen.add(param)

    return manifest.params
