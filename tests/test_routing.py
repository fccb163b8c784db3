"""
Tests for exposure parsing and the route table builder.
"""
import pytest

from rollcall.pipeline import (
    ConfigurationError,
    Middleware,
    MiddlewareRegistry,
    RouteKey,
    RoutingError,
    build_route_table,
    handler,
    parse_exposure,
)
from rollcall.pipeline.introspection import get_manifest
from rollcall.pipeline.routing import DEFAULT_VERB


class NamedMiddleware(Middleware):
    def __init__(self, name: str):
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def run(self, ctx):
        return self._name


class Module:
    """Minimal routable module built from plain handlers."""

    def __init__(self, name, http_exposed, handlers):
        self.name = name
        self.http_exposed = tuple(http_exposed)
        self._handlers = {}
        for fn in handlers:
            self._handlers[get_manifest(fn).route_name] = fn

    @property
    def methods(self):
        return self._handlers


@handler("createThing", params=("name", "__auth"))
async def create_thing(args):
    return {"name": args["name"]}


@handler("getThing", params=("id", "__auth", "__device"))
async def get_thing(args):
    return {"id": args["id"]}


@handler("listThings", params=("page",))
async def list_things(args):
    return {"items": []}


@pytest.fixture
def registry():
    return MiddlewareRegistry([NamedMiddleware("__auth"), NamedMiddleware("__device")])


@pytest.fixture
def things():
    return Module(
        "things",
        ["createThing", "get=getThing", "get=listThings", "delete=getThing"],
        [create_thing, get_thing, list_things],
    )


# =============================================================================
# Exposure Parsing Tests
# =============================================================================


class TestParseExposure:
    """Tests for parse_exposure()."""

    def test_bare_name_defaults_to_post(self):
        assert parse_exposure("registerUser") == (DEFAULT_VERB, "registerUser")
        assert DEFAULT_VERB == "post"

    def test_explicit_verb(self):
        assert parse_exposure("get=getSchoolById") == ("get", "getSchoolById")

    def test_verb_is_case_insensitive(self):
        assert parse_exposure("GET=listSchools") == ("get", "listSchools")

    def test_unknown_verb_rejected(self):
        with pytest.raises(ConfigurationError, match="unknown verb"):
            parse_exposure("fetch=listSchools")

    def test_empty_method_rejected(self):
        with pytest.raises(ConfigurationError, match="no method name"):
            parse_exposure("get=")


# =============================================================================
# Route Table Builder Tests
# =============================================================================


class TestBuildRouteTable:
    """Tests for build_route_table()."""

    def test_every_exposed_method_is_routed(self, things, registry):
        table = build_route_table([things], registry)

        assert table.methods["things"]["post"] == frozenset({"createThing"})
        assert table.methods["things"]["get"] == frozenset({"getThing", "listThings"})
        assert table.methods["things"]["delete"] == frozenset({"getThing"})
        assert len(table.routes()) == 4

    def test_stacks_follow_parameter_order(self, things, registry):
        table = build_route_table([things], registry)

        assert table.stacks["things.createThing"] == ("__auth",)
        assert table.stacks["things.getThing"] == ("__auth", "__device")
        assert table.stacks["things.listThings"] == ()

    def test_method_exposed_twice_keeps_single_stack(self, things, registry):
        table = build_route_table([things], registry)

        get_key = RouteKey("things", "get", "getThing")
        delete_key = RouteKey("things", "delete", "getThing")
        assert table.stack_for(get_key) == table.stack_for(delete_key) == ("__auth", "__device")

    def test_handlers_are_resolved_at_build_time(self, things, registry):
        table = build_route_table([things], registry)

        assert table.handler_for(RouteKey("things", "post", "createThing")) is create_thing

    def test_missing_handler_fails_build(self, registry):
        module = Module("things", ["post=nope"], [create_thing])

        with pytest.raises(ConfigurationError, match="exposes 'nope' but has no such handler"):
            build_route_table([module], registry)

    def test_unregistered_middleware_fails_build(self):
        module = Module("things", ["createThing"], [create_thing])

        with pytest.raises(ConfigurationError, match="Unable to find middleware __auth"):
            build_route_table([module], MiddlewareRegistry())

    def test_duplicate_module_fails_build(self, things, registry):
        with pytest.raises(ConfigurationError, match="registered twice"):
            build_route_table([things, things], registry)

    def test_duplicate_route_fails_build(self, registry):
        module = Module("things", ["listThings", "post=listThings"], [list_things])

        with pytest.raises(ConfigurationError, match="declared twice"):
            build_route_table([module], registry)

    def test_build_is_idempotent(self, things, registry):
        first = build_route_table([things], registry)
        second = build_route_table([things], registry)

        assert dict(first.stacks) == dict(second.stacks)
        assert {k: dict(v) for k, v in first.methods.items()} == {
            k: dict(v) for k, v in second.methods.items()
        }
        assert first.routes() == second.routes()

    def test_table_is_read_only(self, things, registry):
        table = build_route_table([things], registry)

        with pytest.raises(TypeError):
            table.stacks["things.createThing"] = ()

    def test_describe_lists_routes(self, things, registry):
        table = build_route_table([things], registry)
        listing = {entry["route"]: entry for entry in table.describe()}

        assert listing["POST /api/things/createThing"]["middleware"] == ["__auth"]
        assert listing["GET /api/things/listThings"]["middleware"] == []


# =============================================================================
# Resolution Tests
# =============================================================================


class TestResolve:
    """Tests for RouteTable.resolve()."""

    def test_resolves_known_route(self, things, registry):
        table = build_route_table([things], registry)

        key = table.resolve("things", "GET", "getThing")
        assert key == RouteKey("things", "get", "getThing")
        assert str(key) == "GET /api/things/getThing"

    def test_unknown_module(self, things, registry):
        table = build_route_table([things], registry)

        with pytest.raises(RoutingError) as exc_info:
            table.resolve("ghost", "post", "anything")
        assert str(exc_info.value) == "module ghost not found"
        assert exc_info.value.code == 404

    def test_unsupported_verb(self, things, registry):
        table = build_route_table([things], registry)

        with pytest.raises(RoutingError) as exc_info:
            table.resolve("things", "put", "createThing")
        assert str(exc_info.value) == "unsupported method put for things"
        assert exc_info.value.code == 405

    def test_unknown_function(self, things, registry):
        table = build_route_table([things], registry)

        with pytest.raises(RoutingError) as exc_info:
            table.resolve("things", "post", "getThing")
        assert str(exc_info.value) == "unable to find function getThing with method post"
        assert exc_info.value.code == 404
