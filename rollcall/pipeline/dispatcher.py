"""
Request Dispatcher for Rollcall.

The per-request entry point:

1. Resolve (module, verb, method) against the route table. Invalid routes
   are answered here and never reach middleware.
2. Run the route's middleware stack in a Bolt.
3. On completion, call the handler with the body merged with middleware
   results (body keys carrying the middleware marker are dropped).
4. Normalize the handler result into an envelope and send it.

Every request ends in exactly one response write, either by the dispatcher
or by a short-circuiting middleware unit. No exception escapes handle().
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .context import DispatchRequest, DispatchResponse, RequestContext
from .envelope import build_envelope, normalize
from .executor import Bolt, BoltState
from .middleware import MIDDLEWARE_MARKER
from .observability import DispatchLogger, DispatchMetrics
from .results import Failure, HandlerResult, SelfHandled, coerce_result
from .routing import RouteKey, RoutingError

if TYPE_CHECKING:
    from .middleware import MiddlewareRegistry
    from .routing import HandlerFn, RouteTable

logger = logging.getLogger(__name__)

MIDDLEWARE_FAILURE_MESSAGE = "Request could not be processed"


class Dispatcher:
    """
    Routes requests through middleware into handler modules.

    The route table and middleware registry are built once by the
    composition root and injected here; the dispatcher holds no other
    per-request state.

    Example:
        dispatcher = Dispatcher(route_table, registry)
        response = await dispatcher.handle(
            DispatchRequest(verb="post", module_name="school",
                            method_name="createSchool", body={...}, headers={...})
        )
        response.envelope.to_dict()
    """

    def __init__(
        self,
        routes: RouteTable,
        registry: MiddlewareRegistry,
        metrics: DispatchMetrics | None = None,
    ):
        self.routes = routes
        self.registry = registry
        self.metrics = metrics or DispatchMetrics()

    async def handle(
        self,
        request: DispatchRequest,
        response: DispatchResponse | None = None,
    ) -> DispatchResponse:
        """
        Dispatch one request.

        Args:
            request: Transport-agnostic request
            response: Response slot (created if not provided)

        Returns:
            The response slot, finalized
        """
        if response is None:
            response = DispatchResponse()
        ctx = RequestContext(request=request, response=response)
        log = DispatchLogger(request_id=str(request.request_id))

        try:
            key = self.routes.resolve(request.module_name, request.verb, request.method_name)
        except RoutingError as e:
            log.route_rejected(request.module_name, request.method_name, request.verb, str(e))
            response.send(build_envelope(ok=False, code=e.code, message=str(e)))
            self.metrics.record_routing_error()
            return response

        stack = self.routes.stack_for(key)
        log.route_resolved(ctx.route, key.verb, list(stack))

        async def on_done(done_ctx: RequestContext, results: dict[str, Any]) -> None:
            # Clients cannot supply middleware values themselves
            args = {
                k: v
                for k, v in done_ctx.request.body.items()
                if not k.startswith(MIDDLEWARE_MARKER)
            }
            args.update(results)
            result = await self._invoke(key, self.routes.handler_for(key), args, log)
            self._send_result(done_ctx, result)

        bolt = Bolt(stack=stack, registry=self.registry, ctx=ctx, on_done=on_done)

        try:
            state = await bolt.run()
        except Exception as e:
            logger.error(f"[dispatcher] Completion of {ctx.route} failed: {e}", exc_info=True)
            state = BoltState.FAILED

        if state is BoltState.FAILED:
            if bolt.error is not None:
                log.middleware_failed(ctx.route, bolt.failed_middleware, str(bolt.error))
            if not response.sent:
                response.send(
                    build_envelope(ok=False, code=500, message=MIDDLEWARE_FAILURE_MESSAGE)
                )
        elif state is BoltState.SHORT_CIRCUITED:
            log.short_circuited(ctx.route, self._stack_at(bolt), response.status_code)

        log.response_sent(ctx.route, response.status_code, ctx.elapsed_ms)
        log.request_audited(ctx.to_audit_dict())
        self.metrics.record_request(
            ctx.route,
            response.status_code,
            ctx.elapsed_ms,
            short_circuited=state is BoltState.SHORT_CIRCUITED,
            failed=state is BoltState.FAILED,
        )
        return response

    async def _invoke(
        self,
        key: RouteKey,
        fn: HandlerFn,
        args: dict[str, Any],
        log: DispatchLogger,
    ) -> HandlerResult:
        """Call the handler; exceptions become a generic failure."""
        try:
            return coerce_result(await fn(args))
        except Exception as e:
            logger.error(f"[dispatcher] Handler {key.stack_key} raised: {e}", exc_info=True)
            log.handler_failed(key.stack_key, str(e), type(e).__name__)
            return Failure(f"{key.method_name} failed to execute", code=500)

    def _send_result(self, ctx: RequestContext, result: HandlerResult) -> None:
        if isinstance(result, SelfHandled):
            logger.debug(f"[dispatcher] {ctx.route} self-handled ({result.reason.value})")
            ctx.response.send_raw(result.response)
            return
        ctx.response.send(normalize(result))

    @staticmethod
    def _stack_at(bolt: Bolt) -> str | None:
        if bolt.cursor < len(bolt.stack):
            return bolt.stack[bolt.cursor]
        return None
