"""Route definition and per-request match records."""

import re
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from switchyard.core.config import RouterOptions
from switchyard.core.errors import ConfigurationError, UrlBuildError
from switchyard.core.middleware import (
    Context,
    Handler,
    NestedApplication,
    Next,
    compose,
    invoke,
)
from switchyard.core.patterns import ParamSpec, compile_pattern, safe_unquote

if TYPE_CHECKING:
    from switchyard.core.logging import RouteTracer

# Characters encodeURIComponent leaves alone besides alphanumerics and "-_.~"
_SEGMENT_SAFE = "!*'()"

# Hook run before a route's handlers: hook(ctx, value, next)
ParamHook = Callable[[Context, Any, Next], Awaitable[None] | None]


def _flatten(middleware: Iterable[Any]) -> list[Any]:
    handlers: list[Any] = []
    for fn in middleware:
        if isinstance(fn, (list, tuple)):
            handlers.extend(_flatten(fn))
        else:
            handlers.append(fn)
    return handlers


@dataclass(slots=True)
class MatchRecord:
    """Result of a successful route match.

    ``params`` maps parameter names (or positions, for unnamed groups) to
    decoded values; an optional group that did not participate maps to None.
    ``path`` is the unconsumed remainder, always starting with ``/``.
    """

    route: "Route"
    params: dict[str | int, str | None]
    path: str


class Route:
    """A compiled path pattern bound to HTTP methods and a handler chain.

    A route without methods is a prefix route: it matches any method and
    only a leading portion of the path, handing the remainder to its
    handlers as their path.
    """

    def __init__(
        self,
        path: str | re.Pattern[str],
        methods: Iterable[str] | None,
        middleware: Sequence[Any],
        name: str | None = None,
        options: RouterOptions | None = None,
        *,
        strict: bool | None = None,
        tracer: "RouteTracer | None" = None,
    ):
        """Initialize the route.

        Args:
            path: Path template or regular expression
            methods: HTTP methods; empty means prefix route
            middleware: Handlers or nested applications, in order
            name: Optional name for URL generation
            options: Router options controlling pattern compilation
            strict: Overrides ``options.strict`` when given
            tracer: Route tracer notified of definitions

        Raises:
            ConfigurationError: On an illegal handler or malformed pattern
        """
        self.name = name or None
        self.methods: list[str] = []
        for method in methods or ():
            method = method.upper()
            if method not in self.methods:
                self.methods.append(method)

        self.options = options or RouterOptions()
        if strict is None:
            strict = self.options.strict

        self.compiled = compile_pattern(
            path,
            strict=strict,
            case_sensitive=self.options.case_sensitive,
            end=not self.is_prefix,
        )
        self.path = self.compiled.source
        self.regexp = self.compiled.regex

        self._handlers = [self._normalize(fn, path) for fn in _flatten(middleware)]
        self._param_hooks: dict[str | int, Handler] = {}
        self.middleware = self._compose()

        if tracer is not None:
            tracer.route_defined(self)

    @property
    def is_prefix(self) -> bool:
        return not self.methods

    @property
    def params(self) -> tuple[ParamSpec, ...]:
        return self.compiled.params

    def _normalize(self, fn: Any, path: Any) -> Handler:
        if isinstance(fn, NestedApplication):
            return compose(fn.middlewares)
        if callable(fn):
            return fn

        methods = ",".join(self.methods) or "MOUNT"
        raise ConfigurationError(
            f"{methods} `{self.name or path}`: `middleware` must be a function "
            f"or application, not `{type(fn).__name__}`"
        )

    def _compose(self) -> Handler:
        hooks = [
            self._param_hooks[param.name]
            for param in self.compiled.params
            if param.name in self._param_hooks
        ]
        chain = hooks + self._handlers
        if len(chain) == 1:
            return chain[0]
        return compose(chain)

    def match(self, path: str) -> MatchRecord | None:
        """Match a request path against this route.

        Args:
            path: Request path

        Returns:
            MatchRecord if matched, None otherwise
        """
        result = self.compiled.match(path)
        if result is None:
            return None

        captures, consumed = result
        params: dict[str | int, str | None] = {}
        for spec, capture in zip(self.compiled.params, captures):
            params[spec.name] = safe_unquote(capture) if capture else capture

        remainder = path[consumed:]
        if not remainder.startswith("/"):
            remainder = "/" + remainder

        return MatchRecord(route=self, params=params, path=remainder)

    def param(self, name: str, hook: ParamHook) -> "Route":
        """Register a parameter hook.

        The hook runs as ``hook(ctx, value, next)`` before the route's
        handlers, in the order parameters appear in the URL. Hooks for
        parameters this route does not declare never run.

        Args:
            name: Parameter name
            hook: Hook function

        Returns:
            The route, for chaining
        """

        async def run_hook(ctx: Context, next: Next) -> None:
            await invoke(hook, ctx, ctx.params.get(name), next)

        run_hook.__name__ = f"param_{name}"
        self._param_hooks[name] = run_hook
        self.middleware = self._compose()
        return self

    add_param_hook = param

    def url(self, *args: Any, **kwargs: Any) -> str | UrlBuildError:
        """Generate a URL for this route.

        Example::

            route = Route("/users/:id", ["GET"], [handler])
            route.url({"id": 123})   # "/users/123"
            route.url(123)           # "/users/123"
            route.url(id=123)        # "/users/123"

        Returns:
            The URL, or UrlBuildError when no URL can be built
        """
        tokens = self.compiled.tokens
        if tokens is None:
            return UrlBuildError(f"Cannot generate URL for regular expression route {self.path!r}")

        values: dict[str | int, Any] = {}
        positional: list[Any] = []
        if len(args) == 1 and isinstance(args[0], Mapping):
            values.update(args[0])
        else:
            positional.extend(args)
        values.update(kwargs)
        remaining = iter(positional)

        parts: list[str] = []
        for token in tokens:
            if isinstance(token, str):
                parts.append(token)
                continue

            value = values[token.name] if token.name in values else next(remaining, None)
            if value is None:
                if token.optional:
                    continue
                return UrlBuildError(
                    f"Missing value for parameter {token.name!r} of route {self.path!r}"
                )

            if isinstance(value, (list, tuple)):
                parts.append(token.prefix + token.prefix.join(str(v) for v in value))
            else:
                parts.append(token.prefix + str(value))

        url = "".join(parts)
        return "/".join(quote(segment, safe=_SEGMENT_SAFE) for segment in url.split("/"))

    def __repr__(self) -> str:
        methods = ",".join(self.methods) or "*"
        return f"<Route {methods} {self.path!r} name={self.name!r}>"
