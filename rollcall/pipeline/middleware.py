"""
Middleware abstraction for Rollcall.

A middleware unit is a per-request enrichment or gate-keeping step, resolved
by name (e.g. "__token"). Handlers request a unit by listing its name in
their declared parameters; the unit's return value is injected into the
handler call under that name.

A unit either:
- returns a value (enrichment) and the pipeline continues,
- calls reject() / raises ShortCircuit to answer the request itself, or
- raises any other exception, which fails the pipeline (500).

Units are built once per process by factories that close over shared
dependencies (settings, token service, store).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from .envelope import ResponseEnvelope, build_envelope

if TYPE_CHECKING:
    from rollcall.config.schemas import AppSettings
    from rollcall.security.tokens import TokenService
    from rollcall.storage.base import DocumentStore

    from .context import RequestContext

logger = logging.getLogger(__name__)

MIDDLEWARE_MARKER = "__"


class ShortCircuit(Exception):
    """
    Raised by a middleware unit to terminate the pipeline early.

    The unit normally writes the response itself before raising (see
    Middleware.reject). If it did not, the executor sends the carried
    envelope.
    """

    def __init__(self, envelope: ResponseEnvelope, middleware_name: str = ""):
        self.envelope = envelope
        self.middleware_name = middleware_name
        super().__init__(f"Pipeline short-circuited by {middleware_name or 'middleware'}")


class Middleware(ABC):
    """
    Base class for all middleware units.

    Subclasses must implement:
    - name: Registry key, carrying the "__" marker
    - run(): The per-request step
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name, e.g. "__token"."""
        ...

    @abstractmethod
    async def run(self, ctx: RequestContext) -> Any:
        """
        Execute the step for one request.

        Args:
            ctx: Request context

        Returns:
            Enrichment value injected into the handler under self.name

        Raises:
            ShortCircuit: Request answered, stop the pipeline
            Exception: Pipeline failure
        """
        ...

    def reject(
        self,
        ctx: RequestContext,
        *,
        code: int,
        errors: Any = None,
        message: str | None = None,
    ) -> None:
        """Write a failure envelope and stop the pipeline."""
        envelope = build_envelope(ok=False, code=code, errors=errors, message=message)
        ctx.response.send(envelope)
        raise ShortCircuit(envelope, middleware_name=self.name)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


@dataclass(frozen=True)
class MiddlewareDeps:
    """Shared dependencies handed to every middleware factory."""

    settings: AppSettings
    tokens: TokenService
    store: DocumentStore | None = None


MiddlewareFactory = Callable[[MiddlewareDeps], Middleware]


class MiddlewareRegistryError(Exception):
    """Error in middleware registry operations."""

    pass


class MiddlewareRegistry:
    """
    Name -> middleware unit mapping.

    Populated once at startup (see load()), read-only afterwards.

    Example:
        registry = MiddlewareRegistry.load(default_middleware_factories(), deps)
        unit = registry.get_required("__token")
    """

    def __init__(self, units: Iterable[Middleware] = ()) -> None:
        self._units: dict[str, Middleware] = {}
        for unit in units:
            self.register(unit)

    @classmethod
    def load(
        cls,
        factories: Iterable[MiddlewareFactory],
        deps: MiddlewareDeps,
    ) -> MiddlewareRegistry:
        """Instantiate every factory with the shared dependencies."""
        registry = cls()
        for factory in factories:
            registry.register(factory(deps))
        logger.info(f"[middleware_registry] Loaded middleware: {registry.list_names()}")
        return registry

    def register(self, unit: Middleware) -> None:
        """
        Register a middleware unit.

        Raises:
            MiddlewareRegistryError: Name lacks the marker or is taken
        """
        name = unit.name
        if not name.startswith(MIDDLEWARE_MARKER):
            raise MiddlewareRegistryError(
                f"Middleware name '{name}' must start with '{MIDDLEWARE_MARKER}'"
            )
        if name in self._units:
            raise MiddlewareRegistryError(f"Middleware '{name}' already registered")
        self._units[name] = unit
        logger.debug(f"[middleware_registry] Registered middleware: {name}")

    def get(self, name: str) -> Middleware | None:
        return self._units.get(name)

    def get_required(self, name: str) -> Middleware:
        unit = self._units.get(name)
        if unit is None:
            available = ", ".join(self._units) or "(none)"
            raise MiddlewareRegistryError(
                f"Middleware '{name}' not found. Available: {available}"
            )
        return unit

    def list_names(self) -> list[str]:
        return list(self._units.keys())

    def as_mapping(self) -> Mapping[str, Middleware]:
        return MappingProxyType(self._units)

    def __contains__(self, name: str) -> bool:
        return name in self._units

    def __len__(self) -> int:
        return len(self._units)
