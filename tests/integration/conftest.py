"""Shared fixtures for integration tests."""

from collections.abc import AsyncGenerator

import pytest
from aiohttp.test_utils import TestClient, TestServer

from switchyard.core.application import Application, build_application
from switchyard.core.config import AppConfig, RedirectConfig, RouteConfig
from switchyard.core.middleware import Context, Next
from switchyard.core.router import Router
from switchyard.core.server import HTTPServer


@pytest.fixture
def integration_config() -> AppConfig:
    """Create configuration for integration tests."""
    return AppConfig(
        environment="test",
        routes=[
            RouteConfig(name="health", path="/health", body="ok"),
        ],
        redirects=[
            RedirectConfig(source="/status", destination="health"),
        ],
    )


@pytest.fixture
def application(integration_config: AppConfig) -> Application:
    """Create an application with a few handlers registered."""
    app = build_application(integration_config)

    async def show_user(ctx: Context, next: Next) -> None:
        ctx.response.body = {"id": ctx.params["id"], "query": ctx.query_params}

    async def create_user(ctx: Context, next: Next) -> None:
        payload = await ctx.request.json()
        ctx.response.status = 201
        ctx.response.body = {"created": payload["name"]}

    async def show_file(ctx: Context, next: Next) -> None:
        ctx.response.body = {"name": ctx.params["name"]}

    async def delete_session(ctx: Context, next: Next) -> None:
        ctx.response.status = 204

    async def explode(ctx: Context, next: Next) -> None:
        raise RuntimeError("boom")

    async def forbidden(ctx: Context, next: Next) -> None:
        ctx.throw(403, "Forbidden")

    app.get("user", "/users/:id", show_user)
    app.post("/users", create_user)
    app.get("/files/:name", show_file)
    app.delete("/sessions/:id", delete_session)
    app.get("/explode", explode)
    app.get("/forbidden", forbidden)

    admin = Router()

    async def stats(ctx: Context, next: Next) -> None:
        ctx.response.body = {"path": ctx.path, "params": ctx.params}

    admin.get("/stats", stats)
    app.mount("/admin/:tenant", admin)

    return app


@pytest.fixture
async def client(application: Application) -> AsyncGenerator[TestClient, None]:
    """Create a test client serving the application."""
    server = HTTPServer(application)
    async with TestClient(TestServer(server.create_app())) as client:
        yield client
