"""
Tests for the built-in middleware units.
"""
import pytest

from rollcall.middlewares import (
    MISSING_TOKEN_MESSAGE,
    DeviceMiddleware,
    HeadersMiddleware,
    QueryMiddleware,
    ShortTokenMiddleware,
    TokenMiddleware,
    default_middleware_factories,
    extract_token,
)
from rollcall.pipeline import MiddlewareDeps, MiddlewareRegistry, RequestContext, ShortCircuit

from conftest import make_request


def ctx_for(**kwargs):
    return RequestContext(request=make_request("user", "getUserById", **kwargs))


# =============================================================================
# Token Lookup Tests
# =============================================================================


class TestExtractToken:
    """Token lookup precedence."""

    def test_bearer_header(self):
        ctx = ctx_for(headers={"Authorization": "Bearer abc"})
        assert extract_token(ctx) == "abc"

    def test_token_header(self):
        ctx = ctx_for(headers={"token": "from-header"})
        assert extract_token(ctx) == "from-header"

    def test_query_param(self):
        ctx = ctx_for(query={"token": "from-query"})
        assert extract_token(ctx) == "from-query"

    def test_bearer_wins(self):
        ctx = ctx_for(headers={"authorization": "Bearer first", "token": "second"}, query={"token": "third"})
        assert extract_token(ctx) == "first"

    def test_non_bearer_authorization_ignored(self):
        ctx = ctx_for(headers={"authorization": "Basic dXNlcjpwYXNz"})
        assert extract_token(ctx) is None


# =============================================================================
# __token / __shortToken Tests
# =============================================================================


class TestTokenMiddleware:
    """Tests for __token."""

    @pytest.mark.asyncio
    async def test_valid_token_returns_claims(self, tokens):
        token = tokens.issue_long_token(user_id="u1", email="a@example.com", role="teacher", school_id="s1")
        ctx = ctx_for(token=token)

        claims = await TokenMiddleware(tokens).run(ctx)

        assert claims["userId"] == "u1"
        assert claims["role"] == "teacher"
        assert claims["schoolId"] == "s1"
        assert not ctx.response.sent

    @pytest.mark.asyncio
    async def test_missing_token_rejected(self, tokens):
        ctx = ctx_for()

        with pytest.raises(ShortCircuit):
            await TokenMiddleware(tokens).run(ctx)

        assert ctx.response.envelope.code == 401
        assert ctx.response.envelope.errors == ({"message": MISSING_TOKEN_MESSAGE},)

    @pytest.mark.asyncio
    async def test_garbage_token_rejected(self, tokens):
        ctx = ctx_for(token="not-a-jwt")

        with pytest.raises(ShortCircuit):
            await TokenMiddleware(tokens).run(ctx)

        assert ctx.response.envelope.code == 401

    @pytest.mark.asyncio
    async def test_refresh_token_not_accepted_as_access(self, tokens):
        ctx = ctx_for(token=tokens.issue_short_token(user_id="u1"))

        with pytest.raises(ShortCircuit):
            await TokenMiddleware(tokens).run(ctx)

        assert ctx.response.envelope.code == 401

    @pytest.mark.asyncio
    async def test_short_token_unit(self, tokens):
        ctx = ctx_for(token=tokens.issue_short_token(user_id="u1", device_id="d1"))

        claims = await ShortTokenMiddleware(tokens).run(ctx)

        assert claims["userId"] == "u1"
        assert claims["deviceId"] == "d1"


# =============================================================================
# Request Data Units
# =============================================================================


class TestRequestDataMiddleware:
    """__device, __query and __headers."""

    @pytest.mark.asyncio
    async def test_device_from_forwarded_for(self):
        ctx = ctx_for(headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "User-Agent": "pytest"})

        device = await DeviceMiddleware().run(ctx)

        assert device == {"ip": "203.0.113.7", "agent": "pytest"}

    @pytest.mark.asyncio
    async def test_device_falls_back_to_client_host(self):
        device = await DeviceMiddleware().run(ctx_for())

        assert device == {"ip": "127.0.0.1", "agent": "N/A"}

    @pytest.mark.asyncio
    async def test_query(self):
        assert await QueryMiddleware().run(ctx_for(query={"page": "2"})) == {"page": "2"}

    @pytest.mark.asyncio
    async def test_headers_lowercased(self):
        headers = await HeadersMiddleware().run(ctx_for(headers={"X-Trace": "abc"}))
        assert headers == {"x-trace": "abc"}


class TestDefaultFactories:
    def test_loads_all_units(self, settings, tokens):
        registry = MiddlewareRegistry.load(
            default_middleware_factories(), MiddlewareDeps(settings=settings, tokens=tokens)
        )

        assert registry.list_names() == ["__token", "__shortToken", "__device", "__query", "__headers"]
