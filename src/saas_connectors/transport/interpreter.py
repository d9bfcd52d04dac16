"""
Translation of provider error responses into canonical errors.

Each provider declares the error body shapes it emits as an ordered
:class:`FormatSwitch`. On a non-2xx response the interpreter parses the body
(JSON, XML or HTML by media type), selects the first format whose required
keys are present, renders the provider message and pairs it with the tag
derived from the status code.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import httpx
from bs4 import BeautifulSoup

from ..core.errors import ErrorTag, HTTPError
from .response import JSONHTTPResponse, is_json_media_type, media_type

Renderer = Callable[[Mapping[str, Any]], str]

DEFAULT_STATUS_TAGS: Mapping[int, ErrorTag] = {
    400: ErrorTag.BAD_REQUEST,
    401: ErrorTag.UNAUTHORIZED,
    402: ErrorTag.BAD_REQUEST,
    403: ErrorTag.FORBIDDEN,
    404: ErrorTag.NOT_FOUND,
    406: ErrorTag.BAD_REQUEST,
    409: ErrorTag.BAD_REQUEST,
    415: ErrorTag.BAD_REQUEST,
    422: ErrorTag.BAD_REQUEST,
    429: ErrorTag.RATE_LIMITED,
}


def status_to_tag(code: int, overrides: Optional[Mapping[int, ErrorTag]] = None) -> ErrorTag:
    """Map an HTTP status code to a canonical tag, honouring provider overrides."""

    if overrides and code in overrides:
        return overrides[code]
    if code in DEFAULT_STATUS_TAGS:
        return DEFAULT_STATUS_TAGS[code]
    if 500 <= code <= 599:
        return ErrorTag.SERVER
    return ErrorTag.REQUEST_FAILED


@dataclass(frozen=True, slots=True)
class ErrorFormat:
    """
    One provider error body shape.

    Parameters
    ----------
    must_have:
        Keys that must all be present at the top level of the body.
    render:
        Produces the human message from the matching body.
    """

    must_have: Sequence[str]
    render: Renderer

    def matches(self, body: Mapping[str, Any]) -> bool:
        return all(key in body for key in self.must_have)


class FormatSwitch:
    """Ordered list of :class:`ErrorFormat` entries; the first match wins."""

    def __init__(self, *formats: ErrorFormat) -> None:
        self.formats = tuple(formats)

    def select(self, body: Any) -> Optional[ErrorFormat]:
        if not isinstance(body, Mapping):
            return None
        for candidate in self.formats:
            if candidate.matches(body):
                return candidate
        return None

    def message(self, body: Any) -> Optional[str]:
        target = _first_object(body)
        selected = self.select(target)
        if selected is None:
            return None
        return selected.render(target)


def _first_object(body: Any) -> Any:
    if isinstance(body, list) and body and isinstance(body[0], Mapping):
        return body[0]
    return body


def render_key(*path: str) -> Renderer:
    """Renderer returning the string found at ``path`` (JSON-encoded when it is not a string)."""

    def _render(body: Mapping[str, Any]) -> str:
        current: Any = body
        for key in path:
            if not isinstance(current, Mapping):
                return ""
            current = current.get(key)
        if current is None:
            return ""
        return current if isinstance(current, str) else json.dumps(current, default=str)

    return _render


def render_error_list(list_key: str = "errors", message_key: str = "message") -> Renderer:
    """Renderer joining the messages of an ``{"errors": [{"message": ...}]}`` body."""

    def _render(body: Mapping[str, Any]) -> str:
        items = body.get(list_key)
        if not isinstance(items, list):
            return str(items or "")
        messages = []
        for item in items:
            if isinstance(item, Mapping):
                text = item.get(message_key) or item.get("detail") or item.get("code")
                if text:
                    messages.append(str(text))
            elif item:
                messages.append(str(item))
        return "; ".join(messages)

    return _render


def render_nested_error(body: Mapping[str, Any]) -> str:
    """Renderer for ``{"error": {"message": ..., "code": ...}}`` and ``{"error": "..."}``."""

    error = body.get("error")
    if isinstance(error, Mapping):
        message = error.get("message") or ""
        code = error.get("code")
        return f"{code}: {message}" if code and message else str(message or code or "")
    description = body.get("error_description")
    if description:
        return f"{error}: {description}" if error else str(description)
    return str(error or "")


DEFAULT_FORMATS = FormatSwitch(
    ErrorFormat(("error",), render_nested_error),
    ErrorFormat(("errors",), render_error_list()),
    ErrorFormat(("message",), render_key("message")),
)


def xml_error_message(text: str) -> str:
    """Extract a SOAP ``faultstring`` (or the document text) from an XML error body."""

    soup = BeautifulSoup(text, "html.parser")
    for name in ("faultstring", "sf:exceptionmessage", "message"):
        node = soup.find(name)
        if node is not None and node.get_text(strip=True):
            code = soup.find("faultcode")
            message = node.get_text(strip=True)
            if code is not None and code.get_text(strip=True):
                return f"{code.get_text(strip=True)}: {message}"
            return message
    return soup.get_text(" ", strip=True)


def html_error_message(text: str) -> str:
    """Combine an HTML error page's ``<title>`` with its first paragraph."""

    soup = BeautifulSoup(text, "html.parser")
    parts = []
    if soup.title is not None and soup.title.get_text(strip=True):
        parts.append(soup.title.get_text(strip=True))
    paragraph = soup.find("p")
    if paragraph is not None and paragraph.get_text(strip=True):
        parts.append(paragraph.get_text(" ", strip=True))
    if not parts:
        body = soup.get_text(" ", strip=True)
        if body:
            parts.append(body)
    return " - ".join(parts)


@dataclass(slots=True)
class ErrorInterpreter:
    """
    Build canonical errors from failed responses.

    Parameters
    ----------
    formats:
        JSON body shapes declared by the provider.
    status_overrides:
        Provider-specific status code to tag mapping applied before the default.
    """

    formats: FormatSwitch = field(default_factory=lambda: DEFAULT_FORMATS)
    status_overrides: Dict[int, ErrorTag] = field(default_factory=dict)

    def interpret(self, response: httpx.Response) -> HTTPError:
        tag = status_to_tag(response.status_code, self.status_overrides)
        message = self._message(response)
        if not message:
            message = f"HTTP {response.status_code}"
        return HTTPError(
            tag,
            message,
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )

    def unexpected_status(self, response: JSONHTTPResponse, action: str) -> HTTPError:
        """Error for a 2xx status the caller does not accept; its body is rendered like any failure."""

        error = self.interpret(httpx.Response(response.code, headers=response.headers, content=response.raw))
        return HTTPError(
            error.tag,
            f"unexpected status {response.code} {action}: {error.message}",
            status_code=error.status_code,
            headers=error.headers,
            body=error.body,
        )

    def _message(self, response: httpx.Response) -> str:
        raw = response.content
        if not raw.strip():
            return response.reason_phrase or ""
        declared = media_type(response.headers.get("Content-Type"))
        text = response.text
        if is_json_media_type(declared) or (not declared and text.lstrip()[:1] in ("{", "[")):
            try:
                body = json.loads(raw)
            except ValueError:
                return text.strip()
            rendered = self.formats.message(body)
            if rendered is None:
                rendered = DEFAULT_FORMATS.message(body)
            return rendered if rendered else text.strip()
        if declared in ("text/xml", "application/xml") or declared.endswith("+xml"):
            return xml_error_message(text)
        if declared == "text/html":
            return html_error_message(text)
        return text.strip()
