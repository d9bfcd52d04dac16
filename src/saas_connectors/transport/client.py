"""
JSON HTTP client layered over an externally owned, authenticated ``httpx.Client``.

The helper keeps calls synchronous, attaches a correlation id to every request,
logs requests at debug level with credentials redacted, and translates every
failure exactly once: transport problems become ``network`` errors and non-2xx
responses go through the provider's :class:`ErrorInterpreter`. Retries are off
unless an adapter opts in with ``retry_attempts``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from logging import LoggerAdapter
from typing import Any, Mapping, MutableMapping, Optional

import httpx
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.context import CallContext
from ..core.errors import ConnectorError, ErrorTag
from ..core.logging import get_logger, redact_headers
from .interpreter import ErrorInterpreter
from .response import JSONHTTPResponse
from .urlbuilder import URL

DEFAULT_TIMEOUT = 30.0
CORRELATION_HEADER = "X-Correlation-Id"


@dataclass(slots=True)
class JSONHTTPClient:
    """
    Synchronous JSON client bound to one provider.

    Parameters
    ----------
    http_client:
        Authenticated transport supplied by the caller. Never closed here.
    provider:
        Provider identifier recorded in log entries.
    error_interpreter:
        Converts non-2xx responses into canonical errors.
    default_headers:
        Headers attached to every request (e.g. API version pins).
    timeout:
        Request timeout in seconds when the call context has no deadline.
    retry_attempts:
        Total attempts for transport failures. ``1`` disables retries.
    """

    http_client: httpx.Client
    provider: str = ""
    error_interpreter: ErrorInterpreter = field(default_factory=ErrorInterpreter)
    default_headers: MutableMapping[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    retry_attempts: int = 1
    logger: LoggerAdapter = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.logger = get_logger(
            f"{self.__class__.__module__}.{self.__class__.__name__}",
            extra={"provider": self.provider or None},
        )

    # -- JSON verbs -------------------------------------------------------------

    def get(self, url: URL | str, *, headers: Optional[Mapping[str, str]] = None, context: Optional[CallContext] = None) -> JSONHTTPResponse:
        return self.send("GET", url, headers=headers, context=context)

    def post(
        self,
        url: URL | str,
        body: Any = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        context: Optional[CallContext] = None,
    ) -> JSONHTTPResponse:
        return self.send("POST", url, body=body, headers=headers, context=context)

    def patch(
        self,
        url: URL | str,
        body: Any = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        context: Optional[CallContext] = None,
    ) -> JSONHTTPResponse:
        return self.send("PATCH", url, body=body, headers=headers, context=context)

    def put(
        self,
        url: URL | str,
        body: Any = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        context: Optional[CallContext] = None,
    ) -> JSONHTTPResponse:
        return self.send("PUT", url, body=body, headers=headers, context=context)

    def delete(self, url: URL | str, *, headers: Optional[Mapping[str, str]] = None, context: Optional[CallContext] = None) -> JSONHTTPResponse:
        return self.send("DELETE", url, headers=headers, context=context)

    # -- CSV / raw --------------------------------------------------------------

    def put_csv(self, url: URL | str, data: bytes, *, context: Optional[CallContext] = None) -> bytes:
        response = self.request("PUT", url, content=data, headers={"Content-Type": "text/csv"}, context=context)
        return response.content

    def get_raw(self, url: URL | str, *, headers: Optional[Mapping[str, str]] = None, context: Optional[CallContext] = None) -> httpx.Response:
        """Return the undecoded 2xx response (CSV downloads)."""

        return self.request("GET", url, headers=headers, context=context)

    # -- plumbing ---------------------------------------------------------------

    def send(
        self,
        method: str,
        url: URL | str,
        *,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        context: Optional[CallContext] = None,
    ) -> JSONHTTPResponse:
        merged: MutableMapping[str, str] = {"Accept": "application/json"}
        if body is not None:
            merged["Content-Type"] = "application/json"
        if headers:
            merged.update(headers)
        response = self.request(method, url, json_body=body, headers=merged, context=context)
        return JSONHTTPResponse.from_response(response)

    def request(
        self,
        method: str,
        url: URL | str,
        *,
        json_body: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        context: Optional[CallContext] = None,
    ) -> httpx.Response:
        """
        Send one request and return the 2xx response.

        Raises
        ------
        ConnectorError
            ``cancelled`` before sending when the context is no longer alive,
            ``network`` on transport failures, or the interpreted
            :class:`HTTPError` for non-2xx statuses.
        """

        location = str(url)
        merged: MutableMapping[str, str] = dict(self.default_headers)
        if headers:
            merged.update(headers)
        correlation_id = str(uuid.uuid4())
        merged.setdefault(CORRELATION_HEADER, correlation_id)
        log_extra = {"method": method, "url": location, "correlation_id": correlation_id}
        self.logger.debug("HTTP request", extra={**log_extra, "headers": redact_headers(merged)})

        timeout = self.timeout
        if context is not None:
            context.check()
            remaining = context.remaining()
            if remaining is not None:
                timeout = min(timeout, remaining)

        @retry(
            retry=retry_if_exception_type(httpx.TransportError),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            stop=stop_after_attempt(max(1, self.retry_attempts)),
            reraise=True,
        )
        def _send() -> httpx.Response:
            if context is not None:
                context.check()
            return self.http_client.request(
                method,
                location,
                json=json_body,
                content=content,
                headers=merged,
                timeout=timeout,
            )

        try:
            response = _send()
        except RetryError as exc:
            self.logger.error("HTTP request failed after retries", extra={**log_extra, "error": str(exc)})
            raise ConnectorError(ErrorTag.NETWORK, f"{method} {location} failed after {self.retry_attempts} attempts: {exc}") from exc
        except httpx.HTTPError as exc:
            self.logger.error("HTTP transport error", extra={**log_extra, "error": str(exc)})
            raise ConnectorError(ErrorTag.NETWORK, f"{method} {location}: {exc}") from exc

        self.logger.debug(
            "HTTP response",
            extra={**log_extra, "status_code": response.status_code, "headers": redact_headers(response.headers)},
        )
        if not response.is_success:
            raise self.error_interpreter.interpret(response)
        return response
