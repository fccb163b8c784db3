"""
Request Context for Rollcall.

Transport-agnostic request and response objects, plus the request-scoped
context handed to every middleware unit and to the dispatcher's completion
callback.

The HTTP layer (rollcall.app.http) builds a DispatchRequest from the incoming
Starlette request and turns the DispatchResponse back into a Starlette
response once dispatch has finished.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from .envelope import ResponseEnvelope


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ResponseAlreadySentError(RuntimeError):
    """Raised when something tries to answer a request twice."""

    pass


@dataclass(frozen=True)
class DispatchRequest:
    """
    Inbound request, reduced to what the dispatcher needs.

    body holds the parsed request body (JSON or form). For GET and DELETE
    requests the HTTP layer fills it from the query string.
    """

    verb: str
    module_name: str
    method_name: str
    body: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    client_host: str | None = None
    request_id: UUID = field(default_factory=uuid4)

    def header(self, name: str, default: str | None = None) -> str | None:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default


@dataclass
class DispatchResponse:
    """
    Outbound response slot for one request.

    Exactly one of send() / send_raw() may be called. A second call raises
    ResponseAlreadySentError.
    """

    envelope: ResponseEnvelope | None = None
    raw: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    _sent: bool = field(default=False, repr=False)

    @property
    def sent(self) -> bool:
        return self._sent

    @property
    def status_code(self) -> int | None:
        if self.envelope is not None:
            return self.envelope.code
        return getattr(self.raw, "status_code", None)

    def send(self, envelope: ResponseEnvelope) -> None:
        """Finalize the response with an envelope."""
        self._mark_sent()
        self.envelope = envelope

    def send_raw(self, response: Any) -> None:
        """Finalize the response with a transport-native response object."""
        self._mark_sent()
        self.raw = response

    def _mark_sent(self) -> None:
        if self._sent:
            raise ResponseAlreadySentError("Response has already been sent")
        self._sent = True


@dataclass
class RequestContext:
    """
    Request-scoped context passed to middleware and the completion callback.

    Provides:
    - The request and its response slot
    - Execution ID and timing for tracing
    - Per-middleware timings for the audit record
    """

    request: DispatchRequest
    response: DispatchResponse = field(default_factory=DispatchResponse)
    execution_id: UUID = field(default_factory=uuid4)
    started_at: datetime = field(default_factory=_utc_now)
    middleware_timings: dict[str, float] = field(default_factory=dict)

    @property
    def route(self) -> str:
        return f"{self.request.module_name}.{self.request.method_name}"

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the request entered the dispatcher."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def record_timing(self, middleware_name: str, duration_ms: float) -> None:
        self.middleware_timings[middleware_name] = duration_ms

    def to_audit_dict(self) -> dict[str, Any]:
        """Generate audit record for logging."""
        return {
            "execution_id": str(self.execution_id),
            "request_id": str(self.request.request_id),
            "route": self.route,
            "verb": self.request.verb,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.elapsed_ms,
            "middleware_timings": dict(self.middleware_timings),
            "status_code": self.response.status_code,
        }
