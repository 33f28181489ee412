"""Path pattern compiler.

This module turns path templates into anchored regular expressions:
- Literal segments: /users
- Named parameters: /users/:id, /files/:name(\\w+\\.txt)
- Unnamed groups captured by position: /blog/(\\d{4})
- Modifiers: /:lang?/docs (optional), /tags/:tag+ (repeat), /assets/:path* (both)
- Wildcard: /static/*
"""

import re
from dataclasses import dataclass
from urllib.parse import unquote

from switchyard.core.errors import ConfigurationError

DEFAULT_PARAM_PATTERN = r"[^/]+?"

_TOKEN_RE = re.compile(
    r"(\\.)"
    r"|([/.])?"
    r"(?::(\w+)(?:\(((?:\\.|[^\\()])+)\))?|\(((?:\\.|[^\\()])+)\)|(\*))"
    r"([+*?])?"
)

_MALFORMED_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass(frozen=True, slots=True)
class ParamSpec:
    """A parameter captured by a compiled pattern.

    ``name`` is the parameter name for ``:name`` placeholders and named
    regex groups. Unnamed groups are numbered from 0 in order of appearance,
    counting only unnamed groups, so in ``(?P<slug>\\w+)/(\\d+)`` the digits
    are parameter ``0``.
    """

    name: str | int
    prefix: str = ""
    pattern: str = DEFAULT_PARAM_PATTERN
    optional: bool = False
    repeat: bool = False


Token = str | ParamSpec


@dataclass(frozen=True, slots=True)
class CompiledPattern:
    """An anchored matcher plus the parameters aligned with its groups."""

    source: str
    regex: re.Pattern[str]
    params: tuple[ParamSpec, ...]
    # None when built from a raw regular expression
    tokens: tuple[Token, ...] | None = None

    def match(self, path: str) -> tuple[list[str | None], int] | None:
        """Match a path against this pattern.

        Args:
            path: Request path

        Returns:
            Tuple of (raw captures, consumed prefix length) if matched, None otherwise
        """
        match = self.regex.match(path)
        if match is None:
            return None
        return list(match.groups()), match.end()


def parse_template(template: str) -> list[Token]:
    """Split a path template into literal strings and parameters.

    Examples::

        "/users"            -> ["/users"]
        "/users/:id"        -> ["/users", ParamSpec("id", prefix="/")]
        "/blog/(\\d+)"      -> ["/blog", ParamSpec(0, prefix="/", pattern="\\d+")]
    """
    tokens: list[Token] = []
    literal = ""
    position = 0
    key = 0

    for match in _TOKEN_RE.finditer(template):
        literal += template[position : match.start()]
        position = match.end()

        escaped, prefix, name, custom, group, asterisk, modifier = match.groups()
        if escaped:
            literal += escaped[1]
            continue

        if literal:
            tokens.append(literal)
            literal = ""

        param_name: str | int
        if name:
            param_name = name
        else:
            param_name = key
            key += 1

        pattern = custom or group or (".*" if asterisk else DEFAULT_PARAM_PATTERN)
        tokens.append(
            ParamSpec(
                name=param_name,
                prefix=prefix or "",
                pattern=pattern,
                optional=modifier in ("?", "*"),
                repeat=modifier in ("+", "*"),
            )
        )

    literal += template[position:]
    if literal:
        tokens.append(literal)

    return tokens


def _param_regex(param: ParamSpec) -> str:
    prefix = re.escape(param.prefix)
    capture = param.pattern
    if param.repeat:
        capture = f"{capture}(?:{prefix}{capture})*"

    if param.optional:
        if prefix:
            return f"(?:{prefix}({capture}))?"
        return f"({capture})?"

    return f"{prefix}({capture})"


def compile_pattern(
    path: str | re.Pattern[str],
    *,
    strict: bool = False,
    case_sensitive: bool = False,
    end: bool = True,
) -> CompiledPattern:
    """Compile a path template or regular expression.

    Args:
        path: Path template, or a pre-compiled regular expression used verbatim
        strict: Whether a trailing slash is significant
        case_sensitive: Whether literal segments are matched case-sensitively
        end: Anchor at the end of the path; False matches a prefix that ends
            on a segment boundary

    Returns:
        CompiledPattern instance

    Raises:
        ConfigurationError: If the template or regular expression is malformed
    """
    if isinstance(path, re.Pattern):
        names = {index: name for name, index in path.groupindex.items()}
        raw_params: list[ParamSpec] = []
        position = 0
        for index in range(1, path.groups + 1):
            if index in names:
                raw_params.append(ParamSpec(name=names[index], pattern=""))
            else:
                raw_params.append(ParamSpec(name=position, pattern=""))
                position += 1
        return CompiledPattern(source=path.pattern, regex=path, params=tuple(raw_params))

    if not isinstance(path, str):
        raise ConfigurationError(
            f"Route path must be a string or compiled regex, not {type(path).__name__}"
        )

    tokens = parse_template(path)
    route = "".join(
        re.escape(token) if isinstance(token, str) else _param_regex(token) for token in tokens
    )

    ends_with_slash = bool(tokens) and isinstance(tokens[-1], str) and tokens[-1].endswith("/")

    if not strict:
        if ends_with_slash:
            route = route[:-1]
        route += r"(?:/(?=$))?"

    if end:
        route += "$"
    elif not (strict and ends_with_slash):
        route += r"(?=/|$)"

    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        regex = re.compile("^" + route, flags)
    except re.error as e:
        raise ConfigurationError(f"Invalid path pattern {path!r}: {e}") from e

    params = tuple(token for token in tokens if isinstance(token, ParamSpec))
    if regex.groups != len(params):
        raise ConfigurationError(
            f"Invalid path pattern {path!r}: capture groups do not line up with parameters"
        )

    return CompiledPattern(source=path, regex=regex, params=params, tokens=tuple(tokens))


def safe_unquote(text: str) -> str:
    """Percent-decode a captured path segment without ever raising.

    Malformed escapes and invalid UTF-8 leave the raw text untouched.
    """
    if "%" not in text:
        return text
    if _MALFORMED_ESCAPE_RE.search(text):
        return text
    try:
        return unquote(text, errors="strict")
    except UnicodeDecodeError:
        return text
