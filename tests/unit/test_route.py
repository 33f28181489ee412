"""Unit tests for routes."""

import re

import pytest

from switchyard.core.errors import ConfigurationError, UrlBuildError
from switchyard.core.middleware import Context, MiddlewareChain, invoke
from switchyard.core.route import Route


async def noop(ctx, next):
    await next()


async def run_route(route: Route, ctx: Context) -> None:
    """Run a route's composed chain against ``ctx`` using its own match."""
    record = route.match(ctx.path)
    assert record is not None
    ctx.params = record.params
    ctx.path = record.path

    async def end():
        return None

    await invoke(route.middleware, ctx, end)


class TestRouteConstruction:
    """Tests for Route construction."""

    def test_methods_are_uppercased_and_deduplicated(self):
        route = Route("/users", ["get", "GET", "post"], [noop])

        assert route.methods == ["GET", "POST"]
        assert route.is_prefix is False

    def test_route_without_methods_is_prefix(self):
        route = Route("/admin", [], [noop])

        assert route.is_prefix is True

    def test_illegal_middleware_names_route_and_type(self):
        with pytest.raises(ConfigurationError, match=re.escape("GET `/users`")) as exc_info:
            Route("/users", ["GET"], [42])

        assert "`int`" in str(exc_info.value)

    def test_illegal_middleware_on_named_mount(self):
        with pytest.raises(ConfigurationError, match=re.escape("MOUNT `admin`")):
            Route("/admin", [], ["not callable"], name="admin")

    def test_malformed_pattern_fails_fast(self):
        with pytest.raises(ConfigurationError):
            Route("/users/:id([)", ["GET"], [noop])

    def test_nested_application_is_accepted(self):
        chain = MiddlewareChain([noop, noop])

        route = Route("/nested", [], [chain])

        assert callable(route.middleware)

    def test_tracer_notified_of_definition(self):
        defined = []

        class Tracer:
            def route_defined(self, route):
                defined.append(route.path)

        Route("/traced", ["GET"], [noop], tracer=Tracer())  # type: ignore[arg-type]

        assert defined == ["/traced"]


class TestRouteMatch:
    """Tests for Route.match."""

    def test_match_returns_params_and_remainder(self):
        route = Route("/users/:id", ["GET"], [noop])

        record = route.match("/users/123")

        assert record is not None
        assert record.route is route
        assert record.params == {"id": "123"}
        assert record.path == "/"

    def test_no_match(self):
        route = Route("/users/:id", ["GET"], [noop])

        assert route.match("/products/123") is None

    def test_params_are_percent_decoded(self):
        route = Route("/:category/:title", ["GET"], [noop])

        record = route.match("/programming/how%20to%20node")

        assert record.params == {"category": "programming", "title": "how to node"}

    def test_malformed_encoding_is_kept_raw(self):
        route = Route("/files/:name", ["GET"], [noop])

        record = route.match("/files/100%")

        assert record is not None
        assert record.params == {"name": "100%"}

    def test_regular_expression_captures(self):
        route = Route(re.compile(r"^/files/(\d+)(?:/(\w+))?$"), ["GET"], [noop])

        assert route.match("/files/7/raw").params == {0: "7", 1: "raw"}
        assert route.match("/files/7").params == {0: "7", 1: None}

    def test_regular_expression_named_groups(self):
        route = Route(re.compile(r"^/users/(?P<user>\w+)$"), ["GET"], [noop])

        assert route.match("/users/alice").params == {"user": "alice"}

    def test_regular_expression_mixed_groups(self):
        route = Route(re.compile(r"^/(?P<user>\w+)/posts/(\d+)$"), ["GET"], [noop])

        assert route.match("/alice/posts/3").params == {"user": "alice", 0: "3"}

    def test_prefix_route_remainder(self):
        route = Route("/first/:id", [], [noop], strict=True)

        record = route.match("/first/second/third")

        assert record.params == {"id": "second"}
        assert record.path == "/third"

    def test_prefix_route_never_cuts_segments(self):
        route = Route("/first", [], [noop], strict=True)

        assert route.match("/firstly") is None
        assert route.match("/first").path == "/"


class TestParamHooks:
    """Tests for per-route parameter hooks."""

    async def test_hooks_run_in_url_order(self, make_context):
        calls = []

        async def handler(ctx, next):
            calls.append("handler")

        route = Route("/:first/users/:user", ["GET"], [handler])

        async def user_hook(ctx, value, next):
            calls.append(("user", value))
            await next()

        async def first_hook(ctx, value, next):
            calls.append(("first", value))
            await next()

        route.param("user", user_hook)
        route.param("first", first_hook)

        await run_route(route, make_context("GET", "/acme/users/alice"))

        assert calls == [("first", "acme"), ("user", "alice"), "handler"]

    async def test_hook_can_short_circuit(self, make_context):
        calls = []

        async def handler(ctx, next):
            calls.append("handler")

        async def deny(ctx, value, next):
            ctx.response.status = 403

        route = Route("/users/:id", ["GET"], [handler]).param("id", deny)
        ctx = make_context("GET", "/users/1")

        await run_route(route, ctx)

        assert calls == []
        assert ctx.response.status == 403

    async def test_hook_for_undeclared_param_never_runs(self, make_context):
        calls = []

        async def handler(ctx, next):
            calls.append("handler")

        def hook(ctx, value, next):
            calls.append("hook")

        route = Route("/users", ["GET"], [handler]).param("id", hook)

        await run_route(route, make_context("GET", "/users"))

        assert calls == ["handler"]

    async def test_replacing_a_hook(self, make_context):
        calls = []

        async def first(ctx, value, next):
            calls.append("first")
            await next()

        async def second(ctx, value, next):
            calls.append("second")
            await next()

        route = Route("/users/:id", ["GET"], [noop])
        route.param("id", first)
        route.param("id", second)

        await run_route(route, make_context("GET", "/users/1"))

        assert calls == ["second"]

    async def test_sync_handlers_are_supported(self, make_context):
        def handler(ctx, next):
            ctx.response.body = f"user {ctx.params['id']}"

        route = Route("/users/:id", ["GET"], [handler])
        ctx = make_context("GET", "/users/42")

        await run_route(route, ctx)

        assert ctx.response.body == "user 42"
        assert ctx.response.status == 200


class TestRouteUrl:
    """Tests for URL generation."""

    def test_url_from_mapping(self):
        route = Route("/:category/:title", ["GET"], [noop], name="books")

        url = route.url({"category": "programming", "title": "how to node"})

        assert url == "/programming/how%20to%20node"

    def test_url_from_positional_args(self):
        route = Route("/:category/:title", ["GET"], [noop])

        assert route.url("programming", "how to node") == "/programming/how%20to%20node"

    def test_url_from_keyword_args(self):
        route = Route("/users/:id", ["GET"], [noop])

        assert route.url(id=123) == "/users/123"

    def test_optional_param_omitted(self):
        route = Route("/:lang?/docs", ["GET"], [noop])

        assert route.url() == "/docs"
        assert route.url(lang="en") == "/en/docs"

    def test_repeated_param_joined(self):
        route = Route("/tags/:tag+", ["GET"], [noop])

        assert route.url(tag=["a", "b"]) == "/tags/a/b"

    def test_missing_required_param_returns_error(self):
        route = Route("/users/:id", ["GET"], [noop])

        result = route.url()

        assert isinstance(result, UrlBuildError)
        assert "id" in str(result)

    def test_regular_expression_route_returns_error(self):
        route = Route(re.compile(r"^/files/(\d+)$"), ["GET"], [noop])

        assert isinstance(route.url(1), UrlBuildError)
