"""
Tests for the Bolt middleware executor and the middleware registry.
"""
import pytest
from unittest.mock import AsyncMock

from rollcall.pipeline import (
    Bolt,
    BoltState,
    DispatchRequest,
    Middleware,
    MiddlewareDeps,
    MiddlewareRegistry,
    MiddlewareRegistryError,
    RequestContext,
    ShortCircuit,
    build_envelope,
)


class RecordingMiddleware(Middleware):
    """Appends its name to a shared call log and returns a value."""

    def __init__(self, name, calls, value=None):
        self._name = name
        self.calls = calls
        self.value = value if value is not None else f"{name}-value"

    @property
    def name(self) -> str:
        return self._name

    async def run(self, ctx):
        self.calls.append(self._name)
        return self.value


class RejectingMiddleware(RecordingMiddleware):
    async def run(self, ctx):
        self.calls.append(self._name)
        self.reject(ctx, code=401, errors="nope")


class SilentExitMiddleware(RecordingMiddleware):
    """Raises ShortCircuit without writing the response first."""

    async def run(self, ctx):
        self.calls.append(self._name)
        raise ShortCircuit(build_envelope(ok=False, code=429, message="slow down"), self._name)


class ExplodingMiddleware(RecordingMiddleware):
    async def run(self, ctx):
        self.calls.append(self._name)
        raise RuntimeError("kaboom")


def make_ctx():
    return RequestContext(
        request=DispatchRequest(verb="post", module_name="things", method_name="createThing")
    )


# =============================================================================
# Bolt Tests
# =============================================================================


class TestBolt:
    """Tests for Bolt.run()."""

    @pytest.mark.asyncio
    async def test_runs_units_in_order_and_collects_results(self):
        calls = []
        registry = MiddlewareRegistry(
            [RecordingMiddleware(n, calls) for n in ("__a", "__b", "__c")]
        )
        on_done = AsyncMock()
        ctx = make_ctx()

        bolt = Bolt(stack=["__a", "__b", "__c"], registry=registry, ctx=ctx, on_done=on_done)
        state = await bolt.run()

        assert state is BoltState.COMPLETED
        assert calls == ["__a", "__b", "__c"]
        on_done.assert_awaited_once_with(
            ctx, {"__a": "__a-value", "__b": "__b-value", "__c": "__c-value"}
        )
        assert set(ctx.middleware_timings) == {"__a", "__b", "__c"}

    @pytest.mark.asyncio
    async def test_empty_stack_completes_immediately(self):
        on_done = AsyncMock()
        ctx = make_ctx()

        state = await Bolt(stack=(), registry=MiddlewareRegistry(), ctx=ctx, on_done=on_done).run()

        assert state is BoltState.COMPLETED
        on_done.assert_awaited_once_with(ctx, {})

    @pytest.mark.asyncio
    async def test_short_circuit_stops_the_run(self):
        calls = []
        registry = MiddlewareRegistry(
            [
                RecordingMiddleware("__a", calls),
                RejectingMiddleware("__b", calls),
                RecordingMiddleware("__c", calls),
            ]
        )
        on_done = AsyncMock()
        ctx = make_ctx()

        bolt = Bolt(stack=["__a", "__b", "__c"], registry=registry, ctx=ctx, on_done=on_done)
        state = await bolt.run()

        assert state is BoltState.SHORT_CIRCUITED
        assert calls == ["__a", "__b"]
        on_done.assert_not_awaited()
        assert ctx.response.envelope.code == 401
        assert ctx.response.envelope.errors == ({"message": "nope"},)
        assert dict(bolt.results) == {"__a": "__a-value"}

    @pytest.mark.asyncio
    async def test_short_circuit_envelope_sent_when_unit_did_not_write(self):
        calls = []
        registry = MiddlewareRegistry([SilentExitMiddleware("__limit", calls)])
        ctx = make_ctx()

        state = await Bolt(stack=["__limit"], registry=registry, ctx=ctx, on_done=AsyncMock()).run()

        assert state is BoltState.SHORT_CIRCUITED
        assert ctx.response.sent
        assert ctx.response.envelope.code == 429
        assert ctx.response.envelope.message == "slow down"

    @pytest.mark.asyncio
    async def test_exception_fails_the_run(self):
        calls = []
        registry = MiddlewareRegistry(
            [
                RecordingMiddleware("__a", calls),
                ExplodingMiddleware("__b", calls),
                RecordingMiddleware("__c", calls),
            ]
        )
        on_done = AsyncMock()
        ctx = make_ctx()

        bolt = Bolt(stack=["__a", "__b", "__c"], registry=registry, ctx=ctx, on_done=on_done)
        state = await bolt.run()

        assert state is BoltState.FAILED
        assert calls == ["__a", "__b"]
        assert isinstance(bolt.error, RuntimeError)
        assert bolt.failed_middleware == "__b"
        on_done.assert_not_awaited()
        assert not ctx.response.sent

    @pytest.mark.asyncio
    async def test_bolt_runs_once(self):
        bolt = Bolt(stack=(), registry=MiddlewareRegistry(), ctx=make_ctx(), on_done=AsyncMock())
        await bolt.run()

        with pytest.raises(RuntimeError, match="already run"):
            await bolt.run()

    def test_terminal_states(self):
        assert not BoltState.PENDING.is_terminal
        assert not BoltState.RUNNING.is_terminal
        assert BoltState.COMPLETED.is_terminal
        assert BoltState.SHORT_CIRCUITED.is_terminal
        assert BoltState.FAILED.is_terminal


# =============================================================================
# Registry Tests
# =============================================================================


class TestMiddlewareRegistry:
    """Tests for MiddlewareRegistry."""

    def test_register_and_lookup(self):
        unit = RecordingMiddleware("__a", [])
        registry = MiddlewareRegistry([unit])

        assert "__a" in registry
        assert registry.get("__a") is unit
        assert registry.get_required("__a") is unit
        assert registry.list_names() == ["__a"]
        assert len(registry) == 1

    def test_name_must_carry_marker(self):
        with pytest.raises(MiddlewareRegistryError, match="must start with"):
            MiddlewareRegistry([RecordingMiddleware("auth", [])])

    def test_duplicate_name_rejected(self):
        with pytest.raises(MiddlewareRegistryError, match="already registered"):
            MiddlewareRegistry([RecordingMiddleware("__a", []), RecordingMiddleware("__a", [])])

    def test_get_required_missing(self):
        with pytest.raises(MiddlewareRegistryError, match="not found"):
            MiddlewareRegistry().get_required("__ghost")

    def test_load_calls_factories_with_deps(self, settings, tokens):
        deps = MiddlewareDeps(settings=settings, tokens=tokens)
        seen = []

        def factory(d):
            seen.append(d)
            return RecordingMiddleware("__made", [])

        registry = MiddlewareRegistry.load([factory], deps)

        assert seen == [deps]
        assert registry.list_names() == ["__made"]

    def test_mapping_view_is_read_only(self):
        registry = MiddlewareRegistry([RecordingMiddleware("__a", [])])

        with pytest.raises(TypeError):
            registry.as_mapping()["__b"] = RecordingMiddleware("__b", [])
