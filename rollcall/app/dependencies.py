"""
Dependency wiring for Rollcall.

build_application() is the composition root: it connects storage, loads
the middleware registry, instantiates the handler modules and builds the
route table once. Any ConfigurationError raised here aborts startup.

The resulting Application is stored on `app.state.rollcall` and reached
from request handlers through get_application().
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache

from fastapi import Request

from rollcall.config.schemas import AppSettings
from rollcall.middlewares import default_middleware_factories
from rollcall.modules import HandlerModule, create_handler_modules
from rollcall.pipeline import (
    Dispatcher,
    DispatchMetrics,
    MiddlewareDeps,
    MiddlewareFactory,
    MiddlewareRegistry,
    RouteTable,
    build_route_table,
)
from rollcall.security.tokens import TokenService
from rollcall.storage import DocumentStore, InMemoryDocumentStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    return AppSettings(
        # Service
        service_name=os.getenv("ROLLCALL_SERVICE_NAME", "rollcall"),
        environment=os.getenv("ROLLCALL_ENVIRONMENT", "development"),
        debug=os.getenv("ROLLCALL_DEBUG", "false").lower() == "true",
        port=int(os.getenv("ROLLCALL_PORT", "5111")),
        # Storage
        storage_backend=os.getenv("ROLLCALL_STORAGE_BACKEND", "memory"),
        mongodb_url=os.getenv("ROLLCALL_MONGODB_URL", "mongodb://localhost:27017"),
        mongodb_database=os.getenv("ROLLCALL_MONGODB_DATABASE", "rollcall"),
        # Tokens
        long_token_secret=os.getenv("ROLLCALL_LONG_TOKEN_SECRET", ""),
        short_token_secret=os.getenv("ROLLCALL_SHORT_TOKEN_SECRET", ""),
        long_token_expiry=os.getenv("ROLLCALL_LONG_TOKEN_EXPIRY", "7d"),
        short_token_expiry=os.getenv("ROLLCALL_SHORT_TOKEN_EXPIRY", "24h"),
        jwt_issuer=os.getenv("ROLLCALL_JWT_ISSUER") or None,
        # HTTP
        cors_origins=_split_csv(os.getenv("ROLLCALL_CORS_ORIGINS")),
    )


def _split_csv(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Application:
    """Everything a running Rollcall instance needs, built once."""

    settings: AppSettings
    store: DocumentStore
    tokens: TokenService
    registry: MiddlewareRegistry
    modules: list[HandlerModule]
    routes: RouteTable
    dispatcher: Dispatcher
    metrics: DispatchMetrics = field(default_factory=DispatchMetrics)


def create_store(settings: AppSettings) -> DocumentStore:
    """Storage backend selected by settings.storage_backend."""
    if settings.storage_backend == "mongo":
        from rollcall.storage.mongo import MongoDocumentStore

        return MongoDocumentStore(
            settings.mongodb_url.get_secret_value(),
            settings.mongodb_database,
        )
    return InMemoryDocumentStore()


def create_token_service(settings: AppSettings) -> TokenService:
    return TokenService(
        long_secret=settings.long_token_secret.get_secret_value(),
        short_secret=settings.short_token_secret.get_secret_value(),
        issuer=settings.issuer,
        long_ttl=settings.long_token_ttl,
        short_ttl=settings.short_token_ttl,
    )


async def build_application(
    settings: AppSettings,
    *,
    store: DocumentStore | None = None,
    modules: list[HandlerModule] | None = None,
    middleware_factories: list[MiddlewareFactory] | None = None,
) -> Application:
    """
    Build the application graph.

    Args:
        settings: Application settings
        store: Storage override (tests); defaults to settings.storage_backend
        modules: Handler module override; defaults to the built-in modules
        middleware_factories: Middleware override; defaults to the built-in units

    Raises:
        ConfigurationError: Route table inconsistent with modules/middleware
    """
    store = store or create_store(settings)
    await store.connect()

    tokens = create_token_service(settings)
    deps = MiddlewareDeps(settings=settings, tokens=tokens, store=store)
    registry = MiddlewareRegistry.load(
        middleware_factories if middleware_factories is not None else default_middleware_factories(),
        deps,
    )

    if modules is None:
        modules = create_handler_modules(store, tokens)
    for module in modules:
        await module.setup()

    routes = build_route_table(modules, registry)
    metrics = DispatchMetrics()
    dispatcher = Dispatcher(routes, registry, metrics=metrics)

    logger.info(
        f"Rollcall ready: {len(routes.routes())} routes, "
        f"middleware={registry.list_names()}, storage={settings.storage_backend}"
    )
    return Application(
        settings=settings,
        store=store,
        tokens=tokens,
        registry=registry,
        modules=modules,
        routes=routes,
        dispatcher=dispatcher,
        metrics=metrics,
    )


async def shutdown_application(application: Application) -> None:
    await application.store.close()


def get_application(request: Request) -> Application:
    """FastAPI dependency: the Application built during lifespan startup."""
    application = getattr(request.app.state, "rollcall", None)
    if application is None:
        raise RuntimeError("Rollcall application not initialized")
    return application
