"""Exception hierarchy for the router.

Construction-time problems raise immediately. Lookup failures during URL
generation are *returned* as values so callers can branch on them without
exception handling.
"""


class SwitchyardError(Exception):
    """Base for all switchyard-specific errors."""


class ConfigurationError(SwitchyardError):
    """Raised when a route or router is misconfigured.

    Covers illegal middleware values and malformed path templates or
    regular expressions. Always raised at registration time.
    """


class RouteNotFound(SwitchyardError, LookupError):  # noqa: N818
    """No route is registered under the requested name.

    Returned (not raised) by ``Router.url()``.
    """


class UrlBuildError(SwitchyardError):
    """A URL could not be generated for a route.

    Returned (not raised) by ``Route.url()`` for regular-expression routes
    and when a required parameter has no value.
    """


class HTTPError(SwitchyardError):
    """An error that maps directly to an HTTP status code.

    Raised by handlers through ``Context.throw()``. The error handling
    middleware turns it into a response.
    """

    def __init__(
        self, status: int, detail: str = "", headers: tuple[tuple[str, str], ...] = ()
    ) -> None:
        super().__init__(status, detail)
        self.status = status
        self.detail = detail
        self.headers = headers

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)
