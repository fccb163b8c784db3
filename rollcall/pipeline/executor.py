"""
Middleware Pipeline Executor for Rollcall.

A Bolt is one request's run through a route's middleware stack. Units run
strictly in stack order; each either enriches, short-circuits, or fails.

State machine:
    PENDING -> RUNNING -> COMPLETED         all units returned a value
                       -> SHORT_CIRCUITED   a unit answered the request
                       -> FAILED            a unit raised

Only COMPLETED invokes the on_done callback, exactly once.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from .middleware import ShortCircuit

if TYPE_CHECKING:
    from .context import RequestContext
    from .middleware import MiddlewareRegistry

logger = logging.getLogger(__name__)

OnDone = Callable[["RequestContext", dict[str, Any]], Awaitable[None]]


class BoltState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SHORT_CIRCUITED = "short_circuited"
    FAILED = "failed"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (BoltState.SHORT_CIRCUITED, BoltState.FAILED, BoltState.COMPLETED)


class Bolt:
    """
    One request's ordered middleware execution run.

    Execution Model:
    - Units run one at a time; a unit starts only after the previous one
      resolved
    - Enrichment values are collected under the unit's name
    - ShortCircuit stops the run; the response is already written
    - Any other exception stops the run and is kept on self.error

    Example:
        bolt = Bolt(
            stack=("__token", "__device"),
            registry=registry,
            ctx=ctx,
            on_done=call_handler,
        )
        state = await bolt.run()
    """

    def __init__(
        self,
        stack: Sequence[str],
        registry: MiddlewareRegistry,
        ctx: RequestContext,
        on_done: OnDone,
    ):
        self.stack = tuple(stack)
        self.registry = registry
        self.ctx = ctx
        self.on_done = on_done
        self.state = BoltState.PENDING
        self.cursor = 0
        self.error: BaseException | None = None
        self.failed_middleware: str | None = None
        self._results: dict[str, Any] = {}

    @property
    def results(self) -> MappingProxyType:
        """Enrichment values collected so far, keyed by middleware name."""
        return MappingProxyType(self._results)

    async def run(self) -> BoltState:
        """
        Run the stack and, on completion, the on_done callback.

        Returns:
            The terminal state

        Raises:
            RuntimeError: If the bolt was already run
        """
        if self.state is not BoltState.PENDING:
            raise RuntimeError(f"Bolt already run (state={self.state.value})")

        self.state = BoltState.RUNNING

        for index, name in enumerate(self.stack):
            self.cursor = index
            unit = self.registry.get_required(name)
            start_time = time.perf_counter()

            try:
                value = await unit.run(self.ctx)
            except ShortCircuit as exit_signal:
                if not self.ctx.response.sent:
                    self.ctx.response.send(exit_signal.envelope)
                self.state = BoltState.SHORT_CIRCUITED
                logger.info(
                    f"[bolt] {self.ctx.route} short-circuited by '{name}' "
                    f"(code={exit_signal.envelope.code})"
                )
                return self.state
            except Exception as e:
                self.state = BoltState.FAILED
                self.error = e
                self.failed_middleware = name
                logger.error(
                    f"[bolt] Middleware '{name}' failed on {self.ctx.route}: {e}",
                    exc_info=True,
                )
                return self.state
            finally:
                duration_ms = (time.perf_counter() - start_time) * 1000
                self.ctx.record_timing(name, duration_ms)

            self._results[name] = value
            logger.debug(f"[bolt] Middleware '{name}' done on {self.ctx.route}")

        self.cursor = len(self.stack)
        self.state = BoltState.COMPLETED
        await self.on_done(self.ctx, dict(self._results))
        return self.state

    def __repr__(self) -> str:
        return f"Bolt(stack={list(self.stack)}, state={self.state.value})"
