"""
Observability for the Rollcall dispatcher.

Structured request logging and in-process dispatch metrics.

- JSONLogger: key-value log records rendered as JSON through stdlib logging
- DispatchLogger: request-scoped events (route resolved, short-circuit,
  handler failure, response sent, audit record)
- DispatchMetrics: per-route counters and a duration histogram
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol


class LogLevel(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class StructuredLogger(Protocol):
    """Loggers that take a message plus key-value context."""

    def debug(self, message: str, **context: Any) -> None: ...

    def info(self, message: str, **context: Any) -> None: ...

    def warning(self, message: str, **context: Any) -> None: ...

    def error(self, message: str, **context: Any) -> None: ...


# =============================================================================
# JSON Logger
# =============================================================================


@dataclass
class JSONLogger:
    """
    Structured logger that outputs JSON-formatted records.

    Example output:
        {"timestamp": "2026-01-02T10:30:00+00:00", "level": "info",
         "message": "Route resolved", "request_id": "abc-123",
         "route": "school.createSchool"}
    """

    name: str = "rollcall"
    request_id: str | None = None
    extra_context: dict[str, Any] = field(default_factory=dict)
    _python_logger: logging.Logger | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self._python_logger = logging.getLogger(self.name)

    def _log(self, level: LogLevel, message: str, context: dict[str, Any]) -> None:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "message": message,
            **self.extra_context,
            **context,
        }
        if self.request_id:
            record["request_id"] = self.request_id

        getattr(self._python_logger, level.value)(json.dumps(record, default=str))

    def debug(self, message: str, **context: Any) -> None:
        self._log(LogLevel.DEBUG, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._log(LogLevel.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(LogLevel.WARNING, message, context)

    def error(self, message: str, **context: Any) -> None:
        self._log(LogLevel.ERROR, message, context)


# =============================================================================
# Dispatch Logger
# =============================================================================


@dataclass
class DispatchLogger:
    """
    Request-scoped logger for dispatch events.

    Example:
        log = DispatchLogger(request_id="abc-123")
        log.route_resolved(route="school.createSchool", verb="post", stack=["__token"])
        log.response_sent(code=200, duration_ms=12.5)
    """

    request_id: str
    inner: StructuredLogger = field(default_factory=JSONLogger)

    def __post_init__(self) -> None:
        if isinstance(self.inner, JSONLogger):
            self.inner = JSONLogger(name="rollcall.dispatch", request_id=self.request_id)

    def route_resolved(self, route: str, verb: str, stack: list[str]) -> None:
        self.inner.debug("Route resolved", route=route, verb=verb, middleware=stack)

    def route_rejected(self, module: str, method: str, verb: str, reason: str) -> None:
        self.inner.info(
            "Route rejected", module=module, method=method, verb=verb, reason=reason
        )

    def short_circuited(self, route: str, middleware: str | None, code: int | None) -> None:
        self.inner.info("Pipeline short-circuited", route=route, middleware=middleware, code=code)

    def middleware_failed(self, route: str, middleware: str | None, error: str) -> None:
        self.inner.error("Middleware failed", route=route, middleware=middleware, error=error)

    def handler_failed(self, route: str, error: str, error_type: str) -> None:
        self.inner.error("Handler failed", route=route, error=error, error_type=error_type)

    def response_sent(self, route: str, code: int | None, duration_ms: float) -> None:
        self.inner.info(
            "Response sent", route=route, code=code, duration_ms=round(duration_ms, 2)
        )

    def request_audited(self, record: dict[str, Any]) -> None:
        """Full per-request record: ids, timings per middleware, final code."""
        self.inner.debug("Request audited", **record)


# =============================================================================
# Metrics
# =============================================================================


@dataclass
class RouteStats:
    requests: int = 0
    short_circuits: int = 0
    failures: int = 0
    status_codes: dict[int, int] = field(default_factory=dict)


@dataclass
class DispatchMetrics:
    """
    Dispatch counters, per route and overall.

    One instance per application, owned by the dispatcher.
    """

    requests_total: int = 0
    routing_errors: int = 0
    routes: dict[str, RouteStats] = field(default_factory=dict)
    durations_ms: list[float] = field(default_factory=list)
    max_histogram_entries: int = 1000

    def _route(self, route: str) -> RouteStats:
        if route not in self.routes:
            self.routes[route] = RouteStats()
        return self.routes[route]

    def record_routing_error(self) -> None:
        self.requests_total += 1
        self.routing_errors += 1

    def record_request(
        self,
        route: str,
        status_code: int | None,
        duration_ms: float,
        *,
        short_circuited: bool = False,
        failed: bool = False,
    ) -> None:
        self.requests_total += 1
        stats = self._route(route)
        stats.requests += 1
        if short_circuited:
            stats.short_circuits += 1
        if failed:
            stats.failures += 1
        if status_code is not None:
            stats.status_codes[status_code] = stats.status_codes.get(status_code, 0) + 1

        self.durations_ms.append(duration_ms)
        if len(self.durations_ms) > self.max_histogram_entries:
            del self.durations_ms[: len(self.durations_ms) - self.max_histogram_entries]

    def get_stats(self) -> dict[str, Any]:
        """Summary statistics."""

        def percentile(data: list[float], p: float) -> float | None:
            if not data:
                return None
            sorted_data = sorted(data)
            k = (len(sorted_data) - 1) * p
            f = int(k)
            c = f + 1 if f + 1 < len(sorted_data) else f
            return sorted_data[f] + (k - f) * (sorted_data[c] - sorted_data[f])

        return {
            "requests_total": self.requests_total,
            "routing_errors": self.routing_errors,
            "duration_ms": {
                "p50": percentile(self.durations_ms, 0.5),
                "p95": percentile(self.durations_ms, 0.95),
            },
            "routes": {
                name: {
                    "requests": stats.requests,
                    "short_circuits": stats.short_circuits,
                    "failures": stats.failures,
                    "status_codes": dict(stats.status_codes),
                }
                for name, stats in self.routes.items()
            },
        }
