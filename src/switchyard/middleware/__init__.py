"""Built-in middleware for the request pipeline."""

from switchyard.middleware.access_log import AccessLogMiddleware
from switchyard.middleware.errors import ErrorHandlingMiddleware

__all__ = [
    "AccessLogMiddleware",
    "ErrorHandlingMiddleware",
]
