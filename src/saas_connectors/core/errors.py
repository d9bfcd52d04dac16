"""
Canonical error taxonomy shared by every connector.

Callers never depend on provider-specific error types. Each failure raised by
the library is a :class:`ConnectorError` carrying exactly one
:class:`ErrorTag` plus a human readable message; HTTP failures additionally
carry the status code, headers and raw body returned by the provider.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping, Optional


class ErrorTag(str, Enum):
    """Distinguishable error tags. Tags are values, not a type hierarchy."""

    # Parameter validation, raised before any I/O.
    MISSING_OBJECTS = "missing-objects"
    MISSING_RECORD_ID = "missing-record-id"
    MISSING_RECORD_DATA = "missing-record-data"
    MISSING_FIELDS = "missing-fields"
    MISSING_CSV_DATA = "missing-csv-data"
    MISSING_EXTERNAL_ID = "missing-external-id"
    MISSING_EXPECTED_VALUES = "missing-expected-values"
    OPERATION_NOT_SUPPORTED = "operation-not-supported-for-object"
    UNKNOWN_WRITE_TYPE = "unknown-write-type"
    RESULTS_LIMIT_EXCEEDED = "results-limit-exceeded"

    # HTTP status derived.
    BAD_REQUEST = "bad-request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not-found"
    CONFLICT = "conflict"
    UNPROCESSABLE = "unprocessable"
    RATE_LIMITED = "rate-limited"
    SERVER = "server"
    REQUEST_FAILED = "request-failed"

    # Transport and decoding.
    NETWORK = "network"
    CANCELLED = "cancelled"
    PARSE_ERROR = "parse-error"
    FAILED_TO_UNMARSHAL_BODY = "failed-to-unmarshal-body"
    MISSING_CONTENT_TYPE = "missing-content-type"
    NOT_JSON = "not-json"
    EMPTY_JSON_RESPONSE = "empty-json-response"
    NOT_IMPLEMENTED = "not-implemented"

    # Metadata and batch outcomes.
    CANNOT_READ_METADATA = "cannot-read-metadata"
    BATCH_UNPROCESSED_RECORD = "batch-unprocessed-record"
    ALL_OR_NONE_ROLLED_BACK = "all-or-none-rolled-back"

    # Bulk jobs.
    INVALID_JOB_STATE = "invalid-job-state"
    CREATE_JOB = "create-job"
    UPDATE_JOB = "update-job"
    UNSUPPORTED_MODE = "unsupported-mode"
    UNSUPPORTED_OPERATION = "unsupported-operation"
    CSV_UPLOAD_FAILURE = "csv-upload-failure"
    KEY_NOT_FOUND = "key-not-found"


class ConnectorError(RuntimeError):
    """
    Base error raised by the library.

    Parameters
    ----------
    tag:
        Canonical tag describing the failure class.
    message:
        Optional human readable detail. Provider messages are kept verbatim.
    """

    def __init__(self, tag: ErrorTag, message: str = "") -> None:
        self.tag = tag
        self.message = message
        super().__init__(f"{tag.value}: {message}" if message else tag.value)


class HTTPError(ConnectorError):
    """Raised when a provider answers with a non-2xx status code."""

    def __init__(
        self,
        tag: ErrorTag,
        message: str = "",
        *,
        status_code: int,
        headers: Optional[Mapping[str, str]] = None,
        body: bytes = b"",
    ) -> None:
        super().__init__(tag, message)
        self.status_code = status_code
        self.headers = dict(headers or {})
        self.body = body


def has_tag(exc: BaseException, tag: ErrorTag) -> bool:
    """Return ``True`` when ``exc`` or any exception it was raised from carries ``tag``."""

    current: Optional[BaseException] = exc
    seen: set[int] = set()
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectorError) and current.tag == tag:
            return True
        current = current.__cause__
    return False
