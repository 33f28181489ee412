"""Logging module.

Provides structured logging with JSON format, correlation IDs, sensitive data
redaction, and the route tracer the router reports matching activity to.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from switchyard.core.config import LoggingConfig

if TYPE_CHECKING:
    from switchyard.core.route import Route

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "correlation_id",
        "extra_fields",
    }
)


# Task-local under asyncio, so concurrent requests never see each other's ID
_correlation_id: ContextVar[str | None] = ContextVar("switchyard_correlation_id", default=None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation ID to log records.

    The ID lives in a ContextVar rather than on the filter, so each request
    task logs with its own ID.
    """

    def set_correlation_id(self, correlation_id: str) -> None:
        """Set the correlation ID for the current request.

        Args:
            correlation_id: The correlation ID to use
        """
        _correlation_id.set(correlation_id)

    def clear_correlation_id(self) -> None:
        """Clear the correlation ID."""
        _correlation_id.set(None)

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to the log record.

        Args:
            record: The log record to filter

        Returns:
            True to include the record
        """
        record.correlation_id = _correlation_id.get() or "none"  # type: ignore
        return True


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def __init__(self, redact_patterns: list[str] | None = None):
        """Initialize the JSON formatter.

        Args:
            redact_patterns: List of field names to redact from logs
        """
        super().__init__()
        self.redact_patterns = redact_patterns or []

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: The log record to format

        Returns:
            JSON-formatted log string
        """
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "none"),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            log_data.update(self._redact_sensitive_data(extra))

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)

    def _redact_sensitive_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Redact sensitive data from log fields.

        Args:
            data: Dictionary potentially containing sensitive data

        Returns:
            Dictionary with sensitive fields redacted
        """
        redacted: dict[str, Any] = {}
        for key, value in data.items():
            if any(pattern.lower() in str(key).lower() for pattern in self.redact_patterns):
                redacted[key] = "***REDACTED***"
            elif isinstance(value, dict):
                redacted[key] = self._redact_sensitive_data(value)
            else:
                redacted[key] = value
        return redacted


class TextFormatter(logging.Formatter):
    """Custom text formatter for human-readable logs."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as text.

        Args:
            record: The log record to format

        Returns:
            Formatted log string
        """
        timestamp = datetime.now(UTC).isoformat()
        correlation_id = getattr(record, "correlation_id", "none")

        base = (
            f"{timestamp} [{record.levelname}] "
            f"[{correlation_id}] "
            f"{record.name}: {record.getMessage()}"
        )

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)

        return base


class RouteTracer:
    """Receives trace events from routers.

    Injected into a Router instead of toggling global debug state. Events are
    emitted at ``level`` and skipped entirely when the logger would drop them.
    """

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.DEBUG):
        """Initialize the route tracer.

        Args:
            logger: Logger to emit to (default: "switchyard.router")
            level: Level trace events are logged at
        """
        self.logger = logger or logging.getLogger("switchyard.router")
        self.level = level

    @property
    def enabled(self) -> bool:
        return self.logger.isEnabledFor(self.level)

    def _emit(self, message: str, **fields: Any) -> None:
        if self.enabled:
            self.logger.log(self.level, message, extra={"extra_fields": fields})

    def route_defined(self, route: "Route") -> None:
        self._emit(
            f"defined route {route.methods} {route.path}",
            event_type="route_defined",
            route={"path": route.path, "methods": route.methods, "name": route.name},
        )

    def dispatching(self, method: str, path: str) -> None:
        self._emit(f"routing {method} {path}", event_type="dispatch", method=method, path=path)

    def match_attempt(self, route: "Route", path: str) -> None:
        self._emit(
            f"test {route.path} {route.regexp.pattern}",
            event_type="match_attempt",
            route={"path": route.path, "name": route.name},
            path=path,
        )

    def match_success(self, route: "Route", path: str) -> None:
        self._emit(
            f"match {route.path} {route.regexp.pattern}",
            event_type="match_success",
            route={"path": route.path, "name": route.name},
            path=path,
        )


class RouterLogger:
    """Structured logger with correlation ID support."""

    def __init__(self, config: LoggingConfig):
        """Initialize the logger.

        Args:
            config: Logging configuration
        """
        self.config = config
        self.correlation_filter = CorrelationIdFilter()
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Set up logging configuration."""
        logger = logging.getLogger("switchyard")
        logger.setLevel(getattr(logging, self.config.level))
        logger.handlers.clear()

        handler: logging.Handler
        if self.config.output == "stdout":
            handler = logging.StreamHandler(sys.stdout)
        elif self.config.output == "stderr":
            handler = logging.StreamHandler(sys.stderr)
        else:
            # Assume it's a file path
            handler = logging.FileHandler(self.config.output)

        formatter: logging.Formatter
        if self.config.format.lower() == "json":
            formatter = JsonFormatter(redact_patterns=self.config.redact_headers)
        else:
            formatter = TextFormatter()

        handler.setFormatter(formatter)
        handler.addFilter(self.correlation_filter)
        logger.addHandler(handler)

        # Prevent propagation to root logger
        logger.propagate = False

    def create_tracer(self) -> RouteTracer:
        """Create a route tracer according to ``trace_routes``.

        Traces go to DEBUG when enabled, otherwise to a level below DEBUG
        so they are never emitted.
        """
        level = logging.DEBUG if self.config.trace_routes else logging.NOTSET + 1
        return RouteTracer(self.get_logger("switchyard.router"), level=level)

    def set_correlation_id(self, correlation_id: str | None = None) -> str:
        """Set or generate a correlation ID for the current request.

        Args:
            correlation_id: Optional correlation ID. If None, generates a new one.

        Returns:
            The correlation ID that was set
        """
        if correlation_id is None:
            correlation_id = self.generate_correlation_id()
        self.correlation_filter.set_correlation_id(correlation_id)
        return correlation_id

    def clear_correlation_id(self) -> None:
        """Clear the current correlation ID."""
        self.correlation_filter.clear_correlation_id()

    @staticmethod
    def generate_correlation_id() -> str:
        """Generate a unique correlation ID.

        Returns:
            A unique correlation ID
        """
        return f"req-{uuid.uuid4().hex[:16]}"

    def get_logger(self, name: str = "switchyard") -> logging.Logger:
        """Get a logger instance.

        Args:
            name: Logger name (default: "switchyard")

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    def log_request(
        self,
        method: str,
        path: str,
        client_ip: str | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log an incoming request.

        Args:
            method: HTTP method
            path: Request path
            client_ip: Client IP address
            headers: Request headers (redacted by the JSON formatter)
            **kwargs: Additional fields to log
        """
        logger = self.get_logger()
        extra_fields: dict[str, Any] = {
            "event_type": "request_received",
            "request": {"method": method, "path": path, "client_ip": client_ip},
        }
        if headers:
            extra_fields["headers"] = headers
        extra_fields.update(kwargs)

        logger.info(f"{method} {path}", extra={"extra_fields": extra_fields})

    def log_response(
        self,
        method: str,
        path: str,
        status_code: int,
        latency_ms: float,
        **kwargs: Any,
    ) -> None:
        """Log a response.

        Args:
            method: HTTP method
            path: Request path
            status_code: HTTP status code
            latency_ms: Request latency in milliseconds
            **kwargs: Additional fields to log
        """
        logger = self.get_logger()
        extra_fields: dict[str, Any] = {
            "event_type": "request_completed",
            "request": {"method": method, "path": path},
            "response": {"status_code": status_code, "latency_ms": latency_ms},
        }
        extra_fields.update(kwargs)

        # Determine log level based on status code
        if status_code >= 500:
            log_level = logging.ERROR
        elif status_code >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            f"{method} {path} -> {status_code} ({latency_ms:.2f}ms)",
            extra={"extra_fields": extra_fields},
        )


# Global logger instance (initialized by the application entry point)
_router_logger: RouterLogger | None = None


def initialize_logging(config: LoggingConfig) -> RouterLogger:
    """Initialize the global logger.

    Args:
        config: Logging configuration

    Returns:
        Initialized RouterLogger instance
    """
    global _router_logger
    _router_logger = RouterLogger(config)
    return _router_logger


def get_logger() -> RouterLogger:
    """Get the global logger.

    Returns:
        The global RouterLogger instance

    Raises:
        RuntimeError: If logging has not been initialized
    """
    if _router_logger is None:
        raise RuntimeError("Logging not initialized. Call initialize_logging() first.")
    return _router_logger
