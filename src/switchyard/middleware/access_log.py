"""Access logging middleware.

Logs request metadata when a request enters the pipeline and response
metadata once the rest of the chain has finished.
"""

from switchyard.core.logging import RouterLogger
from switchyard.core.middleware import Context, Middleware, Next


class AccessLogMiddleware(Middleware):
    """Logs each request and its response through a RouterLogger."""

    def __init__(self, structured_logger: RouterLogger):
        """Initialize the middleware.

        Args:
            structured_logger: Logger the events are written to
        """
        self.structured_logger = structured_logger

    async def process(self, ctx: Context, next: Next) -> None:
        """Process request with access logging.

        Args:
            ctx: Request context
            next: Continuation running the rest of the chain
        """
        # Snapshot before routers rescope the path
        method, path = ctx.method, ctx.path

        self.structured_logger.set_correlation_id(ctx.correlation_id)
        self.structured_logger.log_request(
            method=method,
            path=path,
            client_ip=ctx.state.get("client_ip"),
            headers=ctx.headers,
        )

        try:
            await next()
        finally:
            self.structured_logger.log_response(
                method=method,
                path=path,
                status_code=ctx.response.status,
                latency_ms=ctx.elapsed_ms(),
            )
            self.structured_logger.clear_correlation_id()
