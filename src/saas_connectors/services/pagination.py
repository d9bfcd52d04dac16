"""
Next-page strategies.

Each factory returns a pure function ``(body, current_url, headers) -> token``
where an empty token marks the last page. Tokens are opaque to callers: they
are handed back unchanged through ``ReadParams.next_page``.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Mapping, Sequence

from ..core.jsonquery import NotString, Query
from ..transport.urlbuilder import URL

NextPageFunc = Callable[[Any, URL, Mapping[str, str]], str]
RecordsFunc = Callable[[Any], List[Dict[str, Any]]]

_LINK_PART = re.compile(r"<([^>]*)>\s*((?:;\s*[^;,]+)*)")
_LINK_PARAM = re.compile(r";\s*([^=;\s]+)\s*=\s*\"?([^\";]*)\"?")


def _query_at(body: Any, path: Sequence[str]) -> tuple[Query, str]:
    if not path:
        return Query(body), ""
    return Query(body, *path[:-1]), path[-1]


def _string_at(body: Any, path: Sequence[str]) -> str:
    query, key = _query_at(body, path)
    return query.string(key, optional=True) or ""


def terminal(body: Any, url: URL, headers: Mapping[str, str]) -> str:
    """Single-page endpoints."""

    return ""


def json_next_url(*path: str) -> NextPageFunc:
    """Absolute next-page URL stored at ``path`` (e.g. ``@odata.nextLink``)."""

    def _next(body: Any, url: URL, headers: Mapping[str, str]) -> str:
        return _string_at(body, path)

    return _next


def json_relative_next_url(domain: str, *path: str) -> NextPageFunc:
    """Server-relative next-page path at ``path`` prefixed with ``domain``."""

    def _next(body: Any, url: URL, headers: Mapping[str, str]) -> str:
        relative = _string_at(body, path)
        if not relative:
            return ""
        return domain.rstrip("/") + "/" + relative.lstrip("/")

    return _next


def cursor_echo(param: str, *path: str) -> NextPageFunc:
    """Copy of the current URL with ``param`` set to the cursor found at ``path``."""

    def _next(body: Any, url: URL, headers: Mapping[str, str]) -> str:
        cursor = _string_at(body, path)
        if not cursor:
            return ""
        return url.copy().with_query(param, cursor).to_string()

    return _next


def cursor_token(*path: str) -> NextPageFunc:
    """Bare cursor value; the adapter rebuilds the request around it."""

    def _next(body: Any, url: URL, headers: Mapping[str, str]) -> str:
        current: Any = body
        for key in path:
            if not isinstance(current, Mapping):
                return ""
            current = current.get(key)
        if current is None:
            return ""
        if isinstance(current, bool) or not isinstance(current, (str, int)):
            raise NotString(path[-1] if path else "")
        return str(current)

    return _next


def parse_link_header(value: str) -> Dict[str, str]:
    """Parse an RFC 5988 ``Link`` header into ``{rel: url}``."""

    links: Dict[str, str] = {}
    for match in _LINK_PART.finditer(value or ""):
        target, params = match.group(1), match.group(2)
        for name, param_value in _LINK_PARAM.findall(params):
            if name.lower() != "rel":
                continue
            for rel in param_value.split():
                links.setdefault(rel.lower(), target)
    return links


def link_header(rel: str = "next") -> NextPageFunc:
    """URL of the ``Link`` header entry with relation ``rel``."""

    def _next(body: Any, url: URL, headers: Mapping[str, str]) -> str:
        return parse_link_header(headers.get("Link") or headers.get("link") or "").get(rel, "")

    return _next


def link_header_or(fallback: NextPageFunc, rel: str = "next") -> NextPageFunc:
    """Prefer the ``Link`` header, otherwise defer to ``fallback``."""

    from_header = link_header(rel)

    def _next(body: Any, url: URL, headers: Mapping[str, str]) -> str:
        return from_header(body, url, headers) or fallback(body, url, headers)

    return _next


def offset_advance(param: str, more_path: Sequence[str], next_path: Sequence[str]) -> NextPageFunc:
    """
    Offset pagination driven by a ``more items`` flag and the next offset.

    Pipedrive reports ``additional_data.pagination.more_items_in_collection``
    and ``next_start``; the next page is the current URL with ``param`` set to
    that offset.
    """

    def _next(body: Any, url: URL, headers: Mapping[str, str]) -> str:
        more_query, more_key = _query_at(body, more_path)
        if not more_query.boolean(more_key, optional=True):
            return ""
        next_query, next_key = _query_at(body, next_path)
        offset = next_query.integer(next_key, optional=True)
        if offset is None:
            return ""
        return url.copy().with_query(param, str(offset)).to_string()

    return _next


def page_advance(page_param: str, size_param: str, default_size: int, records: RecordsFunc) -> NextPageFunc:
    """
    Page-number pagination: a full page means another page may exist.

    The page size is read back from the current URL so the arithmetic matches
    what was actually requested.
    """

    def _next(body: Any, url: URL, headers: Mapping[str, str]) -> str:
        size_value, present = url.get_first_query(size_param)
        size = int(size_value) if present and size_value.isdigit() else default_size
        if len(records(body)) < size:
            return ""
        page_value, present = url.get_first_query(page_param)
        page = int(page_value) if present and page_value.isdigit() else 1
        return url.copy().with_query(page_param, str(page + 1)).to_string()

    return _next


def json_link_rel(rel: str = "next", links_key: str = "links") -> NextPageFunc:
    """``href`` of the ``{"rel": rel, "href": ...}`` entry of a JSON ``links`` array."""

    def _next(body: Any, url: URL, headers: Mapping[str, str]) -> str:
        for link in Query(body).array(links_key, optional=True) or []:
            if isinstance(link, dict) and link.get("rel") == rel and isinstance(link.get("href"), str):
                return link["href"]
        return ""

    return _next
