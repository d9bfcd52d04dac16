"""
Thin envelope over an HTTP response carrying a lazily parsed JSON body.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple

import httpx

from ..core.errors import ConnectorError, ErrorTag

_UNSET = object()


def media_type(content_type: Optional[str]) -> str:
    """Return the lowercase media type of a ``Content-Type`` header value."""

    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_json_media_type(value: str) -> bool:
    return value == "application/json" or value.endswith("+json")


@dataclass(slots=True)
class JSONHTTPResponse:
    """
    Status, headers and raw bytes of a 2xx response.

    Attributes
    ----------
    code:
        HTTP status code.
    headers:
        Response headers (case-insensitive when built from ``httpx``).
    raw:
        Undecoded response body.
    """

    code: int
    headers: Mapping[str, str]
    raw: bytes = b""
    _parsed: Any = field(default=_UNSET, repr=False)

    @classmethod
    def from_response(cls, response: httpx.Response) -> "JSONHTTPResponse":
        """
        Wrap ``response`` after checking it declares a JSON body.

        Raises ``missing-content-type`` when a non-empty body has no
        ``Content-Type`` header and ``not-json`` for other media types.
        """

        raw = response.content
        envelope = cls(code=response.status_code, headers=response.headers, raw=raw)
        if not raw.strip():
            return envelope
        declared = media_type(response.headers.get("Content-Type"))
        if not declared:
            raise ConnectorError(ErrorTag.MISSING_CONTENT_TYPE, f"HTTP {response.status_code} response has a body without Content-Type")
        if not is_json_media_type(declared):
            raise ConnectorError(ErrorTag.NOT_JSON, f"expected application/json, got {declared}")
        return envelope

    @property
    def content_type(self) -> str:
        return media_type(self.headers.get("Content-Type"))

    def body(self) -> Tuple[Any, bool]:
        """Return ``(node, present)``; ``present`` is ``False`` when the body is empty."""

        if not self.raw.strip():
            return None, False
        if self._parsed is _UNSET:
            try:
                self._parsed = json.loads(self.raw)
            except ValueError as exc:
                raise ConnectorError(ErrorTag.PARSE_ERROR, f"failed to decode JSON body: {exc}") from exc
        return self._parsed, True

    def unmarshal(self) -> Any:
        """Return the parsed body, failing with ``empty-json-response`` when there is none."""

        node, present = self.body()
        if not present:
            raise ConnectorError(ErrorTag.EMPTY_JSON_RESPONSE, f"HTTP {self.code} response has no body")
        return node
