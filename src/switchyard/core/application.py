"""Application integration module.

This module ties the request pipeline together:
- The host application routers are mounted into
- Router registration forwarded onto the bound application
- Building an application from configuration
"""

import logging
import re
from typing import Any

from switchyard.core.config import AppConfig, RouteConfig
from switchyard.core.errors import ConfigurationError, RouteNotFound, UrlBuildError
from switchyard.core.logging import RouteTracer, RouterLogger
from switchyard.core.middleware import Context, Handler, NestedApplication, Next, compose
from switchyard.core.route import ParamHook, Route
from switchyard.core.router import Router
from switchyard.middleware import AccessLogMiddleware, ErrorHandlingMiddleware

logger = logging.getLogger(__name__)


class Application:
    """Host application: an ordered list of handlers run per request.

    A router bound through ``Router.bind(app)`` exposes its registration
    methods on the application itself::

        app = Application()
        app.use(Router().bind(app))
        app.get("/users/:id", show_user)
    """

    def __init__(self, config: AppConfig | None = None):
        """Initialize the application.

        Args:
            config: Application configuration
        """
        self.config = config or AppConfig()
        self.middlewares: list[Handler] = []
        self.router: Router | None = None

    def use(self, middleware: Any) -> "Application":
        """Append a handler or nested application to the pipeline.

        Raises:
            ConfigurationError: If ``middleware`` is neither
        """
        if isinstance(middleware, NestedApplication):
            middleware = compose(middleware.middlewares)
        elif not callable(middleware):
            raise ConfigurationError(
                f"app.use() requires a function or application, not `{type(middleware).__name__}`"
            )
        self.middlewares.append(middleware)
        return self

    async def handle(self, ctx: Context, next: Next | None = None) -> Context:
        """Run the pipeline for one request.

        Args:
            ctx: Request context
            next: Continuation to run after the last handler

        Returns:
            The context, with its response written
        """
        await compose(self.middlewares)(ctx, next)
        return ctx

    def _bound_router(self) -> Router:
        if self.router is None:
            raise ConfigurationError("No router bound to this application; use Router().bind(app)")
        return self.router

    def get(self, *args: Any, name: str | None = None) -> "Application":
        self._bound_router().get(*args, name=name)
        return self

    def head(self, *args: Any, name: str | None = None) -> "Application":
        self._bound_router().head(*args, name=name)
        return self

    def post(self, *args: Any, name: str | None = None) -> "Application":
        self._bound_router().post(*args, name=name)
        return self

    def put(self, *args: Any, name: str | None = None) -> "Application":
        self._bound_router().put(*args, name=name)
        return self

    def patch(self, *args: Any, name: str | None = None) -> "Application":
        self._bound_router().patch(*args, name=name)
        return self

    def delete(self, *args: Any, name: str | None = None) -> "Application":
        self._bound_router().delete(*args, name=name)
        return self

    def options(self, *args: Any, name: str | None = None) -> "Application":
        self._bound_router().options(*args, name=name)
        return self

    def trace(self, *args: Any, name: str | None = None) -> "Application":
        self._bound_router().trace(*args, name=name)
        return self

    def connect(self, *args: Any, name: str | None = None) -> "Application":
        self._bound_router().connect(*args, name=name)
        return self

    def all(self, *args: Any, name: str | None = None) -> "Application":
        self._bound_router().all(*args, name=name)
        return self

    def mount(self, *args: Any, name: str | None = None) -> "Application":
        self._bound_router().mount(*args, name=name)
        return self

    def register(self, *args: Any, name: str | None = None) -> Route:
        return self._bound_router().register(*args, name=name)

    def redirect(
        self, source: str | re.Pattern[str], destination: str, code: int = 301
    ) -> "Application":
        self._bound_router().redirect(source, destination, code)
        return self

    def param(self, name: str, hook: ParamHook) -> "Application":
        self._bound_router().param(name, hook)
        return self

    def url(self, name: str, *args: Any, **kwargs: Any) -> str | RouteNotFound | UrlBuildError:
        return self._bound_router().url(name, *args, **kwargs)


def static_response(route: RouteConfig) -> Handler:
    """Create a handler answering with the fixed response of ``route``.

    Args:
        route: Declarative route configuration

    Returns:
        Handler writing status, content type and body
    """

    async def respond(ctx: Context, next: Next) -> None:
        ctx.response.status = route.status
        if route.body is not None:
            ctx.response.set_header("Content-Type", route.content_type)
            ctx.response.body = route.body

    respond.__name__ = f"static_{route.name or route.path}"
    return respond


def build_application(
    config: AppConfig,
    structured_logger: RouterLogger | None = None,
) -> Application:
    """Build an application from configuration.

    Pipeline order:
    1. Error handling (wraps everything)
    2. Access logging
    3. Router holding the configured routes and redirects

    Args:
        config: Application configuration
        structured_logger: Logger for access logs and route tracing

    Returns:
        Application with a bound router

    Raises:
        ConfigurationError: If a route or redirect is invalid
    """
    app = Application(config)
    app.use(ErrorHandlingMiddleware())

    tracer: RouteTracer | None = None
    if structured_logger is not None:
        app.use(AccessLogMiddleware(structured_logger))
        tracer = structured_logger.create_tracer()

    router = Router(config.router, tracer=tracer)
    app.use(router.bind(app))

    for route in config.routes:
        router.register(route.path, route.methods, static_response(route), name=route.name)

    for redirect in config.redirects:
        router.redirect(redirect.source, redirect.destination, redirect.code)

    logger.info(
        f"Application built with {len(router.routes)} routes",
        extra={"environment": config.environment, "routes": len(router.routes)},
    )
    return app
