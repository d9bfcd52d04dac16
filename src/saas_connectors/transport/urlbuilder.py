"""
URL builder that exposes query manipulation and keeps the path opaque.

Providers hand back absolute URLs as next-page cursors whose paths must be
echoed verbatim, so the path portion is never normalised or percent-decoded.
Query parameters are kept as a multi-valued mapping and serialised ordered by
name. Some providers refuse strictly escaped characters (``=``, ``@``, ``$``,
``,``); per-provider *encoding exceptions* are applied to the serialised query
string as plain replacements once standard escaping has run.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Set, Tuple
from urllib.parse import parse_qsl, quote_plus, urlsplit, urlunsplit

from ..core.errors import ConnectorError, ErrorTag


class URLParseError(ConnectorError):
    """Raised when a base URL is not a syntactically valid absolute URL."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorTag.PARSE_ERROR, message)


def _clean_trailing_slashes(value: str) -> str:
    return value.rstrip("/")


def _parse_query(raw: str) -> Dict[str, List[str]]:
    values: Dict[str, List[str]] = {}
    try:
        pairs = parse_qsl(raw, keep_blank_values=True, strict_parsing=False)
    except ValueError as exc:
        raise URLParseError(f"invalid query string {raw!r}: {exc}") from exc
    for name, value in pairs:
        values.setdefault(name, []).append(value)
    return values


class URL:
    """
    Absolute URL with mutable query parameters.

    Instances are created through :meth:`build` or :meth:`from_string`. The
    scheme, authority, path and fragment are kept as given; only the query
    mapping changes.
    """

    __slots__ = ("scheme", "netloc", "_path", "fragment", "_query", "_unencoded", "_exceptions")

    def __init__(self, scheme: str, netloc: str, path: str, query: Mapping[str, Sequence[str]], fragment: str = "") -> None:
        self.scheme = scheme
        self.netloc = netloc
        self._path = path
        self.fragment = fragment
        self._query: Dict[str, List[str]] = {name: list(values) for name, values in query.items()}
        self._unencoded: Set[str] = set()
        self._exceptions: Dict[str, str] = {}

    @classmethod
    def from_string(cls, raw: str) -> "URL":
        """Parse ``raw`` without touching its path."""

        try:
            parts = urlsplit(raw)
            parts.port  # noqa: B018 - validates the port component
        except ValueError as exc:
            raise URLParseError(f"URL format is incorrect: {raw!r}: {exc}") from exc
        if not parts.scheme or not parts.netloc:
            raise URLParseError(f"URL format is incorrect: {raw!r}")
        return cls(parts.scheme, parts.netloc, parts.path, _parse_query(parts.query), parts.fragment)

    @classmethod
    def build(cls, base: str, *segments: str) -> "URL":
        """
        Compose ``base`` with path ``segments``.

        Trailing slashes of ``base`` are removed; segments are appended with
        :meth:`add_path`.
        """

        url = cls.from_string(_clean_trailing_slashes(base))
        return url.add_path(*segments)

    def copy(self) -> "URL":
        clone = URL(self.scheme, self.netloc, self._path, self._query, self.fragment)
        clone._unencoded = set(self._unencoded)
        clone._exceptions = dict(self._exceptions)
        return clone

    # -- query ----------------------------------------------------------------

    def with_query(self, name: str, value: str) -> "URL":
        self._query[name] = [value]
        return self

    def with_query_list(self, name: str, values: Iterable[str]) -> "URL":
        self._query[name] = list(values)
        return self

    def with_unencoded_query(self, name: str, value: str) -> "URL":
        """Set a parameter whose name and value are emitted without escaping."""

        self._query[name] = [value]
        self._unencoded.add(name)
        return self

    def get_first_query(self, name: str) -> Tuple[str, bool]:
        values = self._query.get(name)
        if not values:
            return "", False
        return values[0], True

    def has_query(self, name: str) -> bool:
        return name in self._query

    def remove_query(self, name: str) -> "URL":
        self._query.pop(name, None)
        self._unencoded.discard(name)
        return self

    def query_params(self) -> Dict[str, List[str]]:
        return {name: list(values) for name, values in self._query.items()}

    def add_encoding_exceptions(self, exceptions: Mapping[str, str]) -> "URL":
        self._exceptions.update(exceptions)
        return self

    # -- path -----------------------------------------------------------------

    @property
    def path(self) -> str:
        return self._path

    @property
    def origin(self) -> str:
        return f"{self.scheme}://{self.netloc}"

    def add_path(self, *segments: str) -> "URL":
        """
        Append opaque path segments.

        Leading and trailing slashes of each segment are collapsed into a
        single separator, empty and slash-only segments are skipped. The last
        segment keeps one trailing slash when the caller supplied it. A
        ``?query`` suffix on a segment is merged into the query mapping.
        """

        parts: List[str] = []
        trailing = False
        for segment in segments:
            piece, _, query = segment.partition("?")
            if query:
                self._query.update(_parse_query(query))
            stripped = piece.strip("/")
            if stripped:
                parts.append(stripped)
                trailing = piece.endswith("/")
        if parts:
            self._path = _clean_trailing_slashes(self._path) + "/" + "/".join(parts) + ("/" if trailing else "")
        return self

    def raw_add_to_path(self, literal: str) -> "URL":
        """Append ``literal`` to the path with no separator, e.g. ``accounts`` + ``(42)``."""

        self._path += literal
        return self

    # -- serialisation --------------------------------------------------------

    def query_string(self) -> str:
        pairs: List[str] = []
        for name in sorted(self._query):
            raw = name in self._unencoded
            key = name if raw else quote_plus(name)
            for value in self._query[name]:
                pairs.append(f"{key}={value if raw else quote_plus(value)}")
        result = "&".join(pairs)
        for before, after in self._exceptions.items():
            result = result.replace(before, after)
        return result

    def to_string(self) -> str:
        return urlunsplit((self.scheme, self.netloc, self._path, self.query_string(), self.fragment))

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"URL({self.to_string()!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, URL):
            return NotImplemented
        if (
            self.scheme != other.scheme
            or self.netloc.lower() != other.netloc.lower()
            or self._path != other._path
            or self.fragment != other.fragment
        ):
            return False
        if self._query.keys() != other._query.keys():
            return False
        return all(sorted(values) == sorted(other._query[name]) for name, values in self._query.items())

    __hash__ = None  # type: ignore[assignment]


def new_url(base: str, *segments: str, exceptions: Optional[MutableMapping[str, str]] = None) -> URL:
    """Shortcut for :meth:`URL.build` that also installs encoding exceptions."""

    url = URL.build(base, *segments)
    if exceptions:
        url.add_encoding_exceptions(exceptions)
    return url
