"""HTTP server module.

This module serves an Application over HTTP:
- Asynchronous HTTP server using aiohttp
- Translation between aiohttp requests/responses and the request context
- Connection management and lifecycle hooks
"""

import json
import logging
from http.client import responses

from aiohttp import web
from multidict import CIMultiDict

from switchyard.core.application import Application
from switchyard.core.config import AppConfig
from switchyard.core.middleware import Context

logger = logging.getLogger(__name__)

# Statuses that never carry a body
_EMPTY_BODY_STATUSES = frozenset({204, 304})


def create_context(request: web.Request, correlation_id_header: str = "X-Request-ID") -> Context:
    """Create a request context from an aiohttp request.

    The path is taken undecoded; routers decode captured params themselves.

    Args:
        request: aiohttp Request object
        correlation_id_header: Header carrying an upstream correlation ID

    Returns:
        Request context
    """
    ctx = Context(
        method=request.method,
        path=request.rel_url.raw_path,
        query_params=dict(request.query),
        headers=dict(request.headers),
        request=request,
    )

    if correlation_id := request.headers.get(correlation_id_header):
        ctx.correlation_id = correlation_id

    ctx.state["client_ip"] = request.headers.get("X-Forwarded-For", request.remote)
    return ctx


def to_web_response(ctx: Context) -> web.Response:
    """Convert the context's response into an aiohttp response.

    Strings are sent UTF-8 encoded, bytes as is, and anything else as JSON.

    Args:
        ctx: Request context after the pipeline ran

    Returns:
        web.Response object
    """
    response = ctx.response
    headers = CIMultiDict(response.headers)
    body = response.body

    payload: bytes | None
    if response.status in _EMPTY_BODY_STATUSES or response.status < 200:
        payload = None
    elif body is None:
        # Error statuses without a body answer with their reason phrase
        payload = None
        if response.status >= 400:
            payload = responses.get(response.status, "").encode("utf-8")
            headers.setdefault("Content-Type", "text/plain; charset=utf-8")
    elif isinstance(body, bytes):
        payload = body
        headers.setdefault("Content-Type", "application/octet-stream")
    elif isinstance(body, str):
        payload = body.encode("utf-8")
        headers.setdefault("Content-Type", "text/plain; charset=utf-8")
    else:
        payload = json.dumps(body, default=str).encode("utf-8")
        headers.setdefault("Content-Type", "application/json")

    return web.Response(status=response.status, body=payload, headers=headers)


class RequestHandler:
    """Runs every incoming request through the application pipeline."""

    def __init__(self, application: Application, correlation_id_header: str = "X-Request-ID"):
        """Initialize the request handler.

        Args:
            application: Application to dispatch to
            correlation_id_header: Header carrying the correlation ID
        """
        self.application = application
        self.correlation_id_header = correlation_id_header

    async def handle_request(self, request: web.Request) -> web.Response:
        """Handle an incoming HTTP request.

        Args:
            request: aiohttp Request object

        Returns:
            web.Response object
        """
        ctx = create_context(request, self.correlation_id_header)

        logger.debug(
            f"Handling request: {ctx.method} {ctx.path}",
            extra={"correlation_id": ctx.correlation_id},
        )

        await self.application.handle(ctx)

        response = to_web_response(ctx)
        if self.correlation_id_header not in response.headers:
            response.headers[self.correlation_id_header] = ctx.correlation_id
        return response


class HTTPServer:
    """HTTP server for an Application.

    Handles:
    - TCP connection acceptance and HTTP protocol parsing
    - Connection management and timeouts
    - Handing every request, whatever its method or path, to the pipeline
    """

    def __init__(self, application: Application, config: AppConfig | None = None):
        """Initialize the HTTP server.

        Args:
            application: Application to serve
            config: Application configuration (default: the application's)
        """
        self.application = application
        self.config = config or application.config
        self.app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def create_app(self) -> web.Application:
        """Create and configure the aiohttp application.

        Returns:
            Configured aiohttp Application instance
        """
        app = web.Application(
            client_max_size=self.config.server.client_max_size,
            handler_args={
                "keepalive_timeout": self.config.server.keepalive_timeout,
            },
        )

        handler = RequestHandler(self.application, self.config.logging.correlation_id_header)
        app.router.add_route("*", "/{tail:.*}", handler.handle_request)

        # Setup lifecycle hooks
        app.on_startup.append(self._on_startup)
        app.on_shutdown.append(self._on_shutdown)
        app.on_cleanup.append(self._on_cleanup)

        self.app = app
        return app

    async def start(self) -> None:
        """Start the HTTP server.

        Raises:
            RuntimeError: If server is already running
        """
        if self._runner is not None:
            raise RuntimeError("Server is already running")

        if self.app is None:
            self.create_app()

        # Access logging happens inside the pipeline
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()

        self._site = web.TCPSite(
            self._runner,
            host=self.config.server.host,
            port=self.config.server.port,
        )
        await self._site.start()

        logger.info(
            f"HTTP server started on http://{self.config.server.host}:{self.config.server.port}",
            extra={
                "host": self.config.server.host,
                "port": self.config.server.port,
            },
        )

    async def stop(self) -> None:
        """Stop the HTTP server gracefully."""
        if self._runner is None:
            logger.warning("Server is not running")
            return

        logger.info("Stopping HTTP server...")

        if self._site:
            await self._site.stop()

        await self._runner.cleanup()

        self._site = None
        self._runner = None

        logger.info("HTTP server stopped")

    async def _on_startup(self, app: web.Application) -> None:
        logger.info("Application starting up...")

    async def _on_shutdown(self, app: web.Application) -> None:
        logger.info("Application shutting down...")

    async def _on_cleanup(self, app: web.Application) -> None:
        logger.info("Application cleanup...")
