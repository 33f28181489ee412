"""Unit tests for the middleware framework."""

import time

import pytest

from switchyard.core.errors import HTTPError
from switchyard.core.middleware import (
    Context,
    Middleware,
    MiddlewareChain,
    NestedApplication,
    Response,
    compose,
)


class TestContext:
    """Tests for Context class."""

    def test_context_creation(self):
        """Test creating a request context."""
        ctx = Context(
            method="get",
            path="/api/users",
            query_params={"page": "1"},
            headers={"User-Agent": "test"},
            correlation_id="test-123",
        )

        assert ctx.method == "GET"
        assert ctx.path == "/api/users"
        assert ctx.params == {}
        assert ctx.query_params == {"page": "1"}
        assert ctx.correlation_id == "test-123"
        assert ctx.response.status == 404
        assert ctx.request is None

    def test_generated_correlation_id(self):
        ctx = Context(method="GET", path="/")

        assert ctx.correlation_id.startswith("req-")
        assert len(ctx.correlation_id) == 20

    def test_elapsed_time_calculation(self):
        """Test elapsed time calculation."""
        ctx = Context(method="GET", path="/test")

        time.sleep(0.01)

        elapsed = ctx.elapsed_ms()
        assert elapsed >= 10
        assert elapsed < 1000

    def test_throw(self):
        ctx = Context(method="GET", path="/")

        with pytest.raises(HTTPError) as exc_info:
            ctx.throw(404, "missing")

        assert exc_info.value.status == 404
        assert str(exc_info.value) == "404: missing"


class TestResponse:
    """Tests for the response sink."""

    def test_defaults(self):
        response = Response()

        assert response.status == 404
        assert response.body is None
        assert response.explicit_status is False

    def test_setting_status_is_explicit(self):
        response = Response()

        response.status = 201

        assert response.status == 201
        assert response.explicit_status is True

    def test_non_explicit_status(self):
        response = Response()

        response.set_status(405, explicit=False)

        assert response.status == 405
        assert response.explicit_status is False

    def test_body_implies_status(self):
        response = Response()
        response.body = "hello"
        assert response.status == 200

        empty = Response()
        empty.body = None
        assert empty.status == 204

    def test_body_keeps_explicit_status(self):
        response = Response()
        response.status = 201

        response.body = {"id": 1}

        assert response.status == 201

    def test_headers_are_case_insensitive(self):
        response = Response()

        response.set_header("Allow", "GET")

        assert response.get_header("allow") == "GET"
        assert response.get_header("missing", "default") == "default"

    def test_redirect_defaults_to_302(self):
        response = Response()

        response.redirect("/login")

        assert response.status == 302
        assert response.get_header("Location") == "/login"

    def test_redirect_keeps_redirect_status(self):
        response = Response()
        response.status = 301

        response.redirect("/moved")

        assert response.status == 301


class TestCompose:
    """Tests for handler composition."""

    async def test_runs_in_order_around_next(self):
        calls = []

        async def outer(ctx, next):
            calls.append("outer:before")
            await next()
            calls.append("outer:after")

        def inner(ctx, next):
            calls.append("inner")

        await compose([outer, inner])(Context(method="GET", path="/"))

        assert calls == ["outer:before", "inner", "outer:after"]

    async def test_calls_final_next(self):
        calls = []

        async def handler(ctx, next):
            await next()

        async def final():
            calls.append("final")

        await compose([handler])(Context(method="GET", path="/"), final)

        assert calls == ["final"]

    async def test_next_called_twice_raises(self):
        async def greedy(ctx, next):
            await next()
            await next()

        with pytest.raises(RuntimeError, match="multiple times"):
            await compose([greedy])(Context(method="GET", path="/"))

    async def test_empty_chain(self):
        ctx = Context(method="GET", path="/")

        await compose([])(ctx)

        assert ctx.response.status == 404


class TaggingMiddleware(Middleware):
    """Middleware recording its name in the context state."""

    def __init__(self, tag: str):
        self.tag = tag

    async def process(self, ctx, next):
        ctx.state.setdefault("tags", []).append(self.tag)
        await next()


class ShortCircuitMiddleware(Middleware):
    """Middleware that answers without calling the rest of the chain."""

    async def process(self, ctx, next):
        ctx.response.body = {"short_circuit": True}


class TestMiddlewareChain:
    """Tests for MiddlewareChain class."""

    async def test_middleware_chain_execution(self):
        """Test that middleware chain executes in order."""
        chain = MiddlewareChain([TaggingMiddleware("first"), TaggingMiddleware("second")])
        chain.use(TaggingMiddleware("third"))
        ctx = Context(method="GET", path="/")

        await chain.execute(ctx)

        assert ctx.state["tags"] == ["first", "second", "third"]

    async def test_middleware_short_circuit(self):
        """Test that middleware can short-circuit the chain."""
        chain = MiddlewareChain(
            [TaggingMiddleware("first"), ShortCircuitMiddleware(), TaggingMiddleware("third")]
        )
        ctx = Context(method="GET", path="/")

        await chain.execute(ctx)

        assert ctx.state["tags"] == ["first"]
        assert ctx.response.body == {"short_circuit": True}

    def test_chain_is_nested_application(self):
        assert isinstance(MiddlewareChain(), NestedApplication)

    def test_middleware_name(self):
        assert ShortCircuitMiddleware().name == "ShortCircuitMiddleware"
