"""
Response Envelope for Rollcall.

Every response leaving the dispatcher has the same JSON shape:

    {
        "ok": true,
        "code": 200,
        "data": {...},
        "timestamp": "2026-02-25T12:00:00+00:00",
        "errors": [{"field": "email", "message": "..."}],   # failures only
        "message": "..."                                    # optional
    }

build_envelope() applies the status code defaults and error normalization,
normalize() maps a handler result variant onto an envelope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .results import (
    Failure,
    HandlerResult,
    SelfHandled,
    Success,
    ValidationFailure,
)

DEFAULT_FAILURE_MESSAGE = "Request failed"


def _utc_timestamp() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True, slots=True)
class ResponseEnvelope:
    """Normalized wire response. Constructed once, never mutated."""

    ok: bool
    code: int
    data: Any = field(default_factory=dict)
    errors: tuple[dict[str, Any], ...] = ()
    message: str | None = None
    timestamp: str = field(default_factory=_utc_timestamp)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "ok": self.ok,
            "code": self.code,
            "data": self.data,
            "timestamp": self.timestamp,
        }
        if self.errors:
            body["errors"] = [dict(e) for e in self.errors]
        if self.message is not None:
            body["message"] = self.message
        return body


def normalize_errors(errors: Any) -> list[dict[str, Any]]:
    """
    Normalize any error shape into a list of {field?, message} dicts.

    - "boom"                       -> [{"message": "boom"}]
    - ["a", {"field": "x", ...}]   -> [{"message": "a"}, {"field": "x", ...}]
    - {"field": "x", "message": m} -> [{"field": "x", "message": m}]
    """
    if not errors:
        return []
    if isinstance(errors, str):
        return [{"message": errors}]
    if isinstance(errors, dict):
        return [dict(errors)]
    if isinstance(errors, (list, tuple)):
        normalized = []
        for item in errors:
            if isinstance(item, dict):
                normalized.append(dict(item))
            else:
                normalized.append({"message": str(item)})
        return normalized
    return [{"message": str(errors)}]


def build_envelope(
    *,
    ok: bool,
    code: int | None = None,
    data: Any = None,
    errors: Any = None,
    message: str | None = None,
) -> ResponseEnvelope:
    """
    Build an envelope with default status codes.

    code defaults to 200 for ok responses and 400 otherwise. Failure
    envelopes carrying neither errors nor a message get "Request failed".
    """
    status = code if code else (200 if ok else 400)
    error_list = normalize_errors(errors)
    if message is None and not ok and not error_list:
        message = DEFAULT_FAILURE_MESSAGE
    return ResponseEnvelope(
        ok=ok,
        code=status,
        data=data if data is not None else {},
        errors=tuple(error_list),
        message=message,
    )


def normalize(result: HandlerResult) -> ResponseEnvelope | None:
    """
    Map a handler result variant onto a response envelope.

    Returns:
        ResponseEnvelope, or None for SelfHandled results
    """
    if isinstance(result, SelfHandled):
        return None
    if isinstance(result, ValidationFailure):
        return build_envelope(ok=False, code=result.code or 400, errors=result.errors)
    if isinstance(result, Failure):
        return build_envelope(ok=False, code=result.code or 400, message=result.message or None)
    if isinstance(result, Success):
        return build_envelope(ok=True, code=result.code or 200, data=result.data)
    raise TypeError(f"Unknown handler result variant: {type(result).__name__}")
