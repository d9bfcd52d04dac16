"""
Logging helpers for the connector library.

Every module logs through :func:`get_logger`, which returns an adapter whose
bound fields (provider, object, job id, ...) end up as attributes on each
record. :class:`StructuredLogFormatter` renders those attributes as a
``key=value`` suffix. The library never installs a handler on its own; hosts
either configure :mod:`logging` themselves or call :func:`configure_logging`.
Credential headers pass through :func:`redact_headers` before being logged.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from logging import Logger, LoggerAdapter
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

PACKAGE_LOGGER = "saas_connectors"
DEFAULT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
DEFAULT_LEVEL = "WARNING"
REDACTED = "<redacted>"
_ENV_LEVEL = "SAAS_CONNECTORS_LOG_LEVEL"

# Fields rendered first, in this order; anything else follows alphabetically.
_FIELD_ORDER: Sequence[str] = (
    "provider",
    "object",
    "operation",
    "method",
    "url",
    "status_code",
    "correlation_id",
    "attempt",
    "job_id",
    "phase",
    "step",
    "status",
)

_SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "x-api-key",
        "x-amz-security-token",
        "cookie",
        "set-cookie",
    }
)

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_handler: Optional[logging.Handler] = None


def _resolve_level(level: Optional[int | str]) -> int:
    if isinstance(level, int):
        return level
    name = (level or os.getenv(_ENV_LEVEL) or DEFAULT_LEVEL).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.WARNING


def _record_fields(record: logging.LogRecord) -> Iterable[tuple[str, Any]]:
    fields = {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_") and value is not None
    }
    for key in _FIELD_ORDER:
        if key in fields:
            yield key, fields.pop(key)
    for key in sorted(fields):
        yield key, fields[key]


def _render(value: Any) -> str:
    if isinstance(value, Mapping):
        return json.dumps(value, ensure_ascii=False, default=str)
    if isinstance(value, (list, tuple, set)):
        return "[" + ",".join(_render(item) for item in value) + "]"
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """Standard formatter plus a ``| key=value ...`` suffix built from record extras."""

    def __init__(self, fmt: str = DEFAULT_FORMAT) -> None:
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        suffix = " ".join(f"{key}={_render(value)}" for key, value in _record_fields(record))
        return f"{line} | {suffix}" if suffix else line


def configure_logging(level: Optional[int | str] = None, *, stream: Any = None) -> logging.Handler:
    """
    Send ``saas_connectors`` records to ``stream`` (stderr by default).

    Calling it again replaces the handler installed by the previous call.

    Parameters
    ----------
    level:
        Level for the package logger. Falls back to ``SAAS_CONNECTORS_LOG_LEVEL``,
        then ``WARNING``.
    stream:
        Target stream of the :class:`logging.StreamHandler`.
    """

    global _handler
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is not None:
        package_logger.removeHandler(_handler)
    handler = logging.StreamHandler(stream=stream or sys.stderr)
    handler.setFormatter(StructuredLogFormatter())
    package_logger.addHandler(handler)
    package_logger.setLevel(_resolve_level(level))
    _handler = handler
    return handler


class _BoundLogger(LoggerAdapter):
    """Adapter merging call-site ``extra`` into the bound fields rather than replacing them."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str, *, extra: Optional[Mapping[str, object]] = None) -> LoggerAdapter:
    """Return an adapter for ``name`` with ``extra`` bound to every record (``None`` values dropped)."""

    bound = {key: value for key, value in (extra or {}).items() if value is not None}
    return _BoundLogger(logging.getLogger(name), bound)


def bind_extra(logger: LoggerAdapter, **extra: object) -> LoggerAdapter:
    """Child adapter with more bound fields; ``logger`` itself is not modified."""

    bound = dict(logger.extra) if isinstance(logger.extra, Mapping) else {}
    bound.update({key: value for key, value in extra.items() if value is not None})
    return _BoundLogger(logger.logger, bound)


def log_progress(
    logger: LoggerAdapter | Logger,
    message: str,
    *,
    phase: Optional[str] = None,
    step: Optional[str] = None,
    status: Optional[str] = None,
    level: int = logging.INFO,
    extra: Optional[Mapping[str, object]] = None,
) -> None:
    """Log one step of a multi-request operation such as a bulk job."""

    payload: Dict[str, object] = dict(extra or {})
    for key, value in (("phase", phase), ("step", step), ("status", status)):
        if value:
            payload[key] = value
    logger.log(level, message, extra=payload)


def redact_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Return a copy of ``headers`` with credential-bearing values replaced."""

    if not headers:
        return {}
    return {key: (REDACTED if key.lower() in _SENSITIVE_HEADERS else value) for key, value in headers.items()}
