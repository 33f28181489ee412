"""Router for the request pipeline.

This module implements the routing engine including:
- Route registration (per verb, all verbs, prefix mounts, redirects)
- Parameter hooks shared across routes
- Named routes and URL generation
- Dispatch of every matching route in registration order, with the
  request path and params rescoped per route and always restored
- Fallback 405/501/204 responses with an ``Allow`` header
"""

import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from aiohttp import hdrs

from switchyard.core.config import HTTP_METHODS, RouterOptions
from switchyard.core.errors import ConfigurationError, RouteNotFound, UrlBuildError
from switchyard.core.logging import RouteTracer
from switchyard.core.middleware import Context, Handler, Next, invoke
from switchyard.core.route import MatchRecord, ParamHook, Route

if TYPE_CHECKING:
    from switchyard.core.application import Application

logger = logging.getLogger(__name__)


def _is_path(value: Any) -> bool:
    return isinstance(value, (str, re.Pattern))


def _is_methods(value: Any) -> bool:
    if isinstance(value, str):
        return True
    return isinstance(value, (list, tuple)) and all(isinstance(m, str) for m in value)


def _split_name(args: tuple[Any, ...]) -> tuple[str | None, tuple[Any, ...]]:
    """Separate an optional leading route name from the remaining arguments."""
    if len(args) >= 2 and isinstance(args[0], str) and _is_path(args[1]):
        return args[0], args[1:]
    return None, args


class Router:
    """Ordered collection of routes dispatched as one middleware.

    Usage::

        router = Router(strict=True)
        router.get("user", "/users/:id", show_user)
        router.mount("/admin", admin_app)
        app.use(router.middleware())
    """

    def __init__(
        self,
        options: RouterOptions | Mapping[str, Any] | None = None,
        *,
        tracer: RouteTracer | None = None,
        **overrides: Any,
    ):
        """Initialize the router.

        Args:
            options: Router options, as a model or a mapping
            tracer: Receives match trace events (default: "switchyard.router" logger)
            **overrides: Individual options, e.g. ``strict=True``
        """
        if isinstance(options, Mapping):
            options = RouterOptions(**options)
        if overrides:
            base = options.model_dump() if options else {}
            options = RouterOptions(**{**base, **overrides})

        self.config = options or RouterOptions()
        self.tracer = tracer or RouteTracer()
        self.routes: list[Route] = []
        # Every method some route declares; tells 405 apart from 501
        self.accepted_methods: list[str] = [hdrs.METH_OPTIONS]
        self.params: dict[str, ParamHook] = {}

    def register(self, *args: Any, name: str | None = None) -> Route:
        """Create and register a route.

        Accepts ``([name,] path, methods, *middleware)``.

        Returns:
            The created route, so callers can attach per-route hooks

        Raises:
            ConfigurationError: On an illegal handler or malformed pattern
        """
        leading = None
        if len(args) >= 3 and isinstance(args[0], str) and _is_methods(args[2]):
            leading, args = args[0], args[1:]
        if len(args) < 2:
            raise ConfigurationError("register() requires a path and a list of methods")

        path, methods, *middleware = args
        if isinstance(methods, str):
            methods = [methods]
        if not _is_methods(methods):
            raise ConfigurationError(
                f"register() `{path}`: methods must be a string or a list of strings, "
                f"not `{type(methods).__name__}`"
            )

        route = Route(path, methods, middleware, name or leading, self.config, tracer=self.tracer)
        return self._add(route)

    def _add(self, route: Route) -> Route:
        for param, hook in self.params.items():
            route.param(param, hook)

        self.routes.append(route)

        for method in route.methods:
            if method not in self.accepted_methods:
                self.accepted_methods.append(method)

        return route

    def _verb(self, method: str, args: tuple[Any, ...], name: str | None) -> "Router":
        leading, args = _split_name(args)
        if not args:
            raise ConfigurationError(f"{method.lower()}() requires a path")
        path, *middleware = args
        self.register(path, [method], *middleware, name=name or leading)
        return self

    def get(self, *args: Any, name: str | None = None) -> "Router":
        return self._verb(hdrs.METH_GET, args, name)

    def head(self, *args: Any, name: str | None = None) -> "Router":
        return self._verb(hdrs.METH_HEAD, args, name)

    def post(self, *args: Any, name: str | None = None) -> "Router":
        return self._verb(hdrs.METH_POST, args, name)

    def put(self, *args: Any, name: str | None = None) -> "Router":
        return self._verb(hdrs.METH_PUT, args, name)

    def patch(self, *args: Any, name: str | None = None) -> "Router":
        return self._verb(hdrs.METH_PATCH, args, name)

    def delete(self, *args: Any, name: str | None = None) -> "Router":
        return self._verb(hdrs.METH_DELETE, args, name)

    def options(self, *args: Any, name: str | None = None) -> "Router":
        return self._verb(hdrs.METH_OPTIONS, args, name)

    def trace(self, *args: Any, name: str | None = None) -> "Router":
        return self._verb(hdrs.METH_TRACE, args, name)

    def connect(self, *args: Any, name: str | None = None) -> "Router":
        return self._verb(hdrs.METH_CONNECT, args, name)

    def all(self, *args: Any, name: str | None = None) -> "Router":
        """Register a route for every HTTP verb."""
        leading, args = _split_name(args)
        if not args:
            raise ConfigurationError("all() requires a path")
        path, *middleware = args
        self.register(path, list(HTTP_METHODS), *middleware, name=name or leading)
        return self

    def mount(self, *args: Any, name: str | None = None) -> "Router":
        """Register a prefix route.

        Accepts ``([name,] path, *middleware)``. The handlers run for any
        method on paths starting with ``path`` and see the remainder as
        their path. Mount prefixes always treat a trailing slash as
        significant.
        """
        leading, args = _split_name(args)
        if not args:
            raise ConfigurationError("mount() requires a path")
        path, *middleware = args
        route = Route(
            path, [], middleware, name or leading, self.config, strict=True, tracer=self.tracer
        )
        self._add(route)
        return self

    use = mount

    def redirect(
        self, source: str | re.Pattern[str], destination: str, code: int = 301
    ) -> "Router":
        """Redirect ``source`` to ``destination`` with a 3xx status.

        Args:
            source: Path, regular expression or route name
            destination: URL, path or route name
            code: Redirect status code

        Raises:
            ConfigurationError: If a route name cannot be resolved
        """
        source = self._resolve(source)
        target = self._resolve(destination)
        if not isinstance(target, str):
            raise ConfigurationError("Redirect destination must be a URL, path or route name")

        async def redirect(ctx: Context, next: Next) -> None:
            ctx.response.redirect(target)
            ctx.response.status = code

        return self.all(source, redirect)

    def _resolve(self, target: str | re.Pattern[str]) -> str | re.Pattern[str]:
        if isinstance(target, re.Pattern) or target.startswith("/") or "://" in target:
            return target

        url = self.url(target)
        if isinstance(url, (RouteNotFound, UrlBuildError)):
            raise ConfigurationError(f"Cannot resolve redirect target {target!r}: {url}") from url
        return url

    def param(self, name: str, hook: ParamHook) -> "Router":
        """Register a parameter hook on every current and future route.

        Args:
            name: Parameter name
            hook: Called as ``hook(ctx, value, next)``
        """
        self.params[name] = hook
        for route in self.routes:
            route.param(name, hook)
        return self

    add_param_hook = param

    def route(self, name: str) -> Route | None:
        """Lookup a route by name; the first registered wins."""
        for route in self.routes:
            if route.name == name:
                return route
        return None

    lookup_by_name = route

    def url(self, name: str, *args: Any, **kwargs: Any) -> str | RouteNotFound | UrlBuildError:
        """Generate a URL for a named route.

        Returns:
            The URL, or an error value (never raised)
        """
        route = self.route(name)
        if route is None:
            return RouteNotFound(f"No route found for name: {name}")
        return route.url(*args, **kwargs)

    def match(self, path: str) -> list[MatchRecord]:
        """Match a path against every route, in registration order.

        Args:
            path: Request path

        Returns:
            Match records of all matching routes
        """
        matched: list[MatchRecord] = []
        for route in self.routes:
            self.tracer.match_attempt(route, path)
            record = route.match(path)
            if record is not None:
                self.tracer.match_success(route, path)
                matched.append(record)
        return matched

    def middleware(self) -> Handler:
        """Create the dispatch handler for this router."""
        router = self

        async def dispatch(ctx: Context, next: Next) -> None:
            router.tracer.dispatching(ctx.method, ctx.path)
            candidates = router.match(ctx.path)
            if not candidates:
                await next()
                return
            await _Dispatch(router, ctx, candidates, next).advance()

        return dispatch

    @property
    def middlewares(self) -> list[Handler]:
        """Handlers of this router when mounted as a nested application."""
        return [self.middleware()]

    def bind(self, app: "Application") -> Handler:
        """Attach this router to ``app`` and return its dispatch handler.

        Usage::

            app.use(Router().bind(app))
            app.get("/", index)
        """
        app.router = self
        return self.middleware()

    def __repr__(self) -> str:
        return f"<Router routes={len(self.routes)}>"


class _Dispatch:
    """Walks the matched routes of a single request.

    ``advance`` is the continuation every matched route receives: it runs the
    next applicable route, or the downstream pipeline once routes run out.
    """

    def __init__(
        self,
        router: Router,
        ctx: Context,
        candidates: list[MatchRecord],
        downstream: Next,
    ):
        self.router = router
        self.ctx = ctx
        self.candidates = candidates
        self.downstream = downstream
        self.path = ctx.path
        self.params = ctx.params
        self.index = -1
        self.handled = False
        # Ordered set of methods declared by matched but inapplicable routes
        self.available: dict[str, None] = {}

    async def advance(self) -> None:
        ctx = self.ctx
        prev_path, prev_params = ctx.path, ctx.params

        self.index += 1
        if self.index >= len(self.candidates):
            ctx.path, ctx.params = self.path, self.params
            try:
                await self.downstream()
                if not self.handled and not ctx.response.explicit_status:
                    self._fallback()
            finally:
                ctx.path, ctx.params = prev_path, prev_params
            return

        candidate = self.candidates[self.index]
        route = candidate.route
        method = ctx.method
        applicable = (
            route.is_prefix
            or method in route.methods
            or (method == hdrs.METH_HEAD and hdrs.METH_GET in route.methods)
        )

        if not applicable:
            self.available.update(dict.fromkeys(route.methods))
            await self.advance()
            return

        self.handled = True
        ctx.path = candidate.path
        if self.router.config.merge_params:
            ctx.params = {**self.params, **candidate.params}
        else:
            ctx.params = candidate.params

        try:
            await invoke(route.middleware, ctx, self.advance)
        finally:
            ctx.path, ctx.params = prev_path, prev_params

    def _fallback(self) -> None:
        ctx = self.ctx
        if ctx.method == hdrs.METH_OPTIONS:
            status = 204
        elif ctx.method in self.router.accepted_methods:
            status = 405
        else:
            status = 501

        ctx.response.set_status(status, explicit=False)
        if status != 501:
            ctx.response.set_header("Allow", ", ".join(self.available))

        logger.debug(
            f"No route handled {ctx.method} {self.path}, responding {status}",
            extra={"method": ctx.method, "path": self.path, "status": status},
        )
