"""
Handler Result Variants.

Handlers return one of a small set of tagged variants so the response
normalizer is an exhaustive mapping instead of shape-sniffing:

    Success(data)                 -> {ok: true,  code: 200, data}
    ValidationFailure(errors)     -> {ok: false, code: 400, errors}
    Failure(message, code)        -> {ok: false, code,      message}
    SelfHandled(reason, response) -> no envelope, raw response passes through

Plain dict returns are still accepted and coerced with coerce_result().

Usage:
    @handler("getSchoolById", params=("id", "__token"))
    async def get_school_by_id(self, args):
        school = await self.store.find_one("schools", {"_id": args["id"]})
        if school is None:
            return Failure("School not found", code=404)
        return Success({"school": school})
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class BypassReason(str, Enum):
    """Legitimate reasons for a handler to skip the response envelope."""

    FILE = "file"
    STREAM = "stream"
    REDIRECT = "redirect"


@dataclass(frozen=True, slots=True)
class Success:
    """data is usually a dict; legacy handlers may hand back a list or scalar."""

    data: Any = field(default_factory=dict)
    code: int = 200


@dataclass(frozen=True, slots=True)
class ValidationFailure:
    """
    One or more client errors, usually field-level.

    errors may be a string, a list of strings and/or {field, message} dicts,
    or a single dict. The normalizer turns all of these into a list of
    {field?, message} objects.
    """

    errors: Any
    code: int = 400


@dataclass(frozen=True, slots=True)
class Failure:
    message: str
    code: int = 400


@dataclass(frozen=True, slots=True)
class SelfHandled:
    """
    Handler produced its own transport response (file download, stream).

    The response object is handed to the transport as-is.
    """

    reason: BypassReason
    response: Any = None

    def __post_init__(self):
        # Raises ValueError for anything outside the enumerated reasons
        object.__setattr__(self, "reason", BypassReason(self.reason))


HandlerResult = Union[Success, ValidationFailure, Failure, SelfHandled]

_VARIANTS = (Success, ValidationFailure, Failure, SelfHandled)


def coerce_result(value: Any) -> HandlerResult:
    """
    Turn a handler's raw return value into a result variant.

    Args:
        value: Variant instance, dict, or None

    Returns:
        HandlerResult variant

    Raises:
        TypeError: If the value has no sensible mapping
    """
    if isinstance(value, _VARIANTS):
        return value

    if value is None:
        return Success({})

    if not isinstance(value, dict):
        raise TypeError(
            f"Handler returned {type(value).__name__}; expected a result variant or dict"
        )

    code = value.get("code")

    if value.get("errors"):
        return ValidationFailure(value["errors"], code=code or 400)

    if value.get("error"):
        return Failure(str(value["error"]), code=code or 400)

    if value.get("ok") is False:
        return Failure(value.get("message") or "", code=code or 400)

    # Envelope-shaped dict: {ok, code, data}
    if "data" in value and ("ok" in value or "code" in value):
        data = value["data"]
        if data is None:
            data = {}
        elif isinstance(data, dict):
            data = dict(data)
        return Success(data, code=code or 200)

    data = {k: v for k, v in value.items() if k not in ("code", "ok")}
    return Success(data, code=code or 200)
