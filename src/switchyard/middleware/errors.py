"""Error handling middleware.

Catches exceptions raised further down the chain and turns them into
responses. Place it first so it wraps everything, routers included.
"""

import logging
from datetime import UTC, datetime

from switchyard.core.errors import HTTPError
from switchyard.core.middleware import Context, Middleware, Next

logger = logging.getLogger(__name__)


class ErrorHandlingMiddleware(Middleware):
    """Converts exceptions to HTTP error responses.

    ``HTTPError`` becomes its own status with a plain text body; anything
    else is logged and answered with a 500 JSON body.
    """

    async def process(self, ctx: Context, next: Next) -> None:
        """Process request with error handling.

        Args:
            ctx: Request context
            next: Continuation running the rest of the chain
        """
        try:
            await next()
        except HTTPError as e:
            ctx.response.status = e.status
            for name, value in e.headers:
                ctx.response.set_header(name, value)
            ctx.response.body = e.detail or None
        except Exception as e:
            logger.exception(
                f"Unhandled exception in middleware chain: {e}",
                extra={
                    "correlation_id": ctx.correlation_id,
                    "path": ctx.path,
                    "method": ctx.method,
                },
            )

            ctx.response.body = {
                "error": "internal_error",
                "message": "An unexpected error occurred",
                "correlation_id": ctx.correlation_id,
                "timestamp": datetime.now(UTC).isoformat(),
            }
            ctx.response.status = 500
