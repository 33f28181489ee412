"""Shared pytest fixtures and configuration."""

from collections.abc import Callable

import pytest

from switchyard.core.middleware import Context
from switchyard.core.router import Router


@pytest.fixture
def make_context() -> Callable[..., Context]:
    """Factory for request contexts."""

    def factory(method: str = "GET", path: str = "/", **kwargs) -> Context:
        return Context(method=method, path=path, correlation_id="test-123", **kwargs)

    return factory


@pytest.fixture
def router() -> Router:
    """Create an empty router with default options."""
    return Router()


@pytest.fixture
def dispatch(router: Router, make_context: Callable[..., Context]):
    """Run a request through ``router`` and return the context."""

    async def run(method: str, path: str, next=None, target: Router | None = None) -> Context:
        ctx = make_context(method, path)

        async def downstream() -> None:
            if next is not None:
                await next(ctx)

        await (target or router).middleware()(ctx, downstream)
        return ctx

    return run
