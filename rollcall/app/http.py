"""
HTTP surface for the dispatcher.

One catch-all route, `/api/{module_name}/{method_name}`, for every verb the
handler modules may declare. The Starlette request is reduced to a
DispatchRequest; the finished DispatchResponse is turned back into a
JSONResponse (status = envelope code) or, for self-handled results, the
handler's own response object.

Body:
    GET/DELETE  -> query string
    JSON        -> parsed object
    form        -> form fields
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from rollcall.app.dependencies import Application, get_application
from rollcall.pipeline import DispatchRequest, DispatchResponse, build_envelope

logger = logging.getLogger(__name__)

router = APIRouter()

DISPATCH_VERBS = ["GET", "POST", "PUT", "PATCH", "DELETE"]
QUERY_BODY_VERBS = frozenset({"GET", "DELETE"})
FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class MalformedBodyError(ValueError):
    """Request body could not be parsed into an object."""

    pass


async def read_body(request: Request) -> dict[str, Any]:
    """
    Parse the request body into a dict.

    Raises:
        MalformedBodyError: Body is not valid JSON or not an object
    """
    if request.method in QUERY_BODY_VERBS:
        return dict(request.query_params)

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_TYPES):
        form = await request.form()
        return {key: value for key, value in form.items()}

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedBodyError(f"Malformed JSON body: {e}") from e
    if not isinstance(body, dict):
        raise MalformedBodyError("Request body must be a JSON object")
    return body


def to_http_response(response: DispatchResponse) -> Response:
    if response.raw is not None:
        return response.raw
    envelope = response.envelope
    if envelope is None:
        # Dispatcher always answers; this is a last resort
        envelope = build_envelope(ok=False, code=500)
    return JSONResponse(
        content=envelope.to_dict(),
        status_code=envelope.code,
        headers=response.headers or None,
    )


@router.api_route("/api/{module_name}/{method_name}", methods=DISPATCH_VERBS, tags=["dispatch"])
async def dispatch(
    module_name: str,
    method_name: str,
    request: Request,
    application: Application = Depends(get_application),
) -> Response:
    """Route a call to <module>.<method> through its middleware stack."""
    try:
        body = await read_body(request)
    except MalformedBodyError as e:
        logger.info(f"[http] Rejected body for {module_name}.{method_name}: {e}")
        envelope = build_envelope(ok=False, code=400, errors=str(e))
        return JSONResponse(content=envelope.to_dict(), status_code=400)

    dispatch_request = DispatchRequest(
        verb=request.method.lower(),
        module_name=module_name,
        method_name=method_name,
        body=body,
        query=dict(request.query_params),
        headers=dict(request.headers),
        client_host=request.client.host if request.client else None,
    )
    response = await application.dispatcher.handle(dispatch_request)
    return to_http_response(response)
