"""Middleware framework.

This module implements the pieces every handler sees:
- Request context and response sink
- Handler composition into a single continuation-passing callable
- Class-based middleware and the middleware chain (a nested application)
"""

import functools
import inspect
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from aiohttp import web
from multidict import CIMultiDict

from switchyard.core.errors import HTTPError

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({300, 301, 302, 303, 305, 307, 308})

# The continuation handed to every handler: "run the rest of the chain"
Next = Callable[[], Awaitable[None]]

# A handler takes the context and a continuation; it may be sync or async
Handler = Callable[["Context", Next], Awaitable[None] | None]


class Response:
    """Response sink written by handlers.

    Tracks whether a terminal status or body has been written explicitly,
    which is what the router checks before synthesizing a fallback.
    """

    def __init__(self) -> None:
        self.headers: CIMultiDict[str] = CIMultiDict()
        self._status = 404
        self._body: Any = None
        self.explicit_status = False

    @property
    def status(self) -> int:
        return self._status

    @status.setter
    def status(self, code: int) -> None:
        self.set_status(code)

    def set_status(self, code: int, *, explicit: bool = True) -> None:
        """Set the status code.

        Args:
            code: HTTP status code
            explicit: Whether this counts as a terminal write. Fallback
                statuses synthesized by the router are not explicit.
        """
        self._status = code
        if explicit:
            self.explicit_status = True

    @property
    def body(self) -> Any:
        return self._body

    @body.setter
    def body(self, value: Any) -> None:
        self._body = value
        if not self.explicit_status:
            self.status = 204 if value is None else 200

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def get_header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name, default)

    def redirect(self, url: str) -> None:
        """Point the client at ``url``.

        Uses 302 unless a redirect status has already been set.
        """
        self.set_header("Location", url)
        if self._status not in REDIRECT_STATUSES:
            self.status = 302
        self._body = f"Redirecting to {url}."


@dataclass
class Context:
    """Request context that flows through the handler chain.

    ``path`` and ``params`` are rescoped by routers while a matched route's
    handlers run, and restored afterwards.
    """

    # HTTP Request Data
    method: str
    path: str
    params: dict[Any, Any] = field(default_factory=dict)
    query_params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)

    # Correlation and Timing
    correlation_id: str = field(default_factory=lambda: f"req-{uuid.uuid4().hex[:16]}")
    start_time: float = field(default_factory=time.time)

    response: Response = field(default_factory=Response)

    # Custom attributes for handlers to share data
    state: dict[str, Any] = field(default_factory=dict)

    # Underlying aiohttp request when served over HTTP
    request: web.Request | None = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()

    def throw(self, status: int, detail: str = "") -> None:
        """Abort the request with an HTTP error."""
        raise HTTPError(status, detail)

    def elapsed_ms(self) -> float:
        """Calculate elapsed time since request start in milliseconds.

        Returns:
            Elapsed time in milliseconds
        """
        return (time.time() - self.start_time) * 1000


@runtime_checkable
class NestedApplication(Protocol):
    """Anything exposing an ordered list of handlers can be mounted."""

    middlewares: Sequence[Handler]


async def invoke(handler: Callable[..., Any], *args: Any) -> Any:
    """Call a handler and await the result if it's a coroutine."""
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def compose(middlewares: Sequence[Handler]) -> Callable[["Context", Next | None], Awaitable[None]]:
    """Compose handlers into one callable.

    Each handler receives a continuation that runs the next handler; the
    continuation of the last one runs ``next`` passed to the composed
    callable.

    Args:
        middlewares: Handlers in execution order

    Returns:
        Composed handler
    """
    handlers = list(middlewares)

    async def composed(ctx: Context, next: Next | None = None) -> None:
        last = -1

        async def dispatch(index: int) -> None:
            nonlocal last
            if index <= last:
                raise RuntimeError("next() called multiple times")
            last = index

            if index == len(handlers):
                if next is not None:
                    await next()
                return

            await invoke(handlers[index], ctx, functools.partial(dispatch, index + 1))

        await dispatch(0)

    return composed


class Middleware(ABC):
    """Abstract base class for middleware components.

    Middleware can:
    - Inspect and modify the request context
    - Short-circuit the chain by not awaiting ``next``
    - Execute logic before and after the rest of the chain
    """

    @abstractmethod
    async def process(self, ctx: Context, next: Next) -> None:
        """Process the request.

        Args:
            ctx: Request context
            next: Continuation running the rest of the chain
        """

    async def __call__(self, ctx: Context, next: Next) -> None:
        await self.process(ctx, next)

    @property
    def name(self) -> str:
        """Get middleware name.

        Returns:
            Middleware class name
        """
        return self.__class__.__name__


class MiddlewareChain:
    """An ordered list of handlers executed as one unit.

    Mountable on a route like any other nested application.
    """

    def __init__(self, middlewares: Sequence[Handler] = ()):
        """Initialize the middleware chain.

        Args:
            middlewares: Handlers in execution order
        """
        self.middlewares: list[Handler] = list(middlewares)
        logger.debug(
            f"Middleware chain initialized with {len(self.middlewares)} middleware",
            extra={"middleware": [_handler_name(m) for m in self.middlewares]},
        )

    def use(self, middleware: Handler) -> "MiddlewareChain":
        self.middlewares.append(middleware)
        return self

    async def execute(self, ctx: Context, next: Next | None = None) -> None:
        """Execute the middleware chain.

        Args:
            ctx: Request context
            next: Continuation to run after the last handler
        """
        await compose(self.middlewares)(ctx, next)


def _handler_name(handler: Any) -> str:
    return getattr(handler, "name", None) or getattr(handler, "__name__", type(handler).__name__)
