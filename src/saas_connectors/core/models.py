"""
Value types exchanged between callers and connectors.

Everything here is produced for a single call and owned by the caller
afterwards. Validation helpers raise :class:`ConnectorError` synchronously,
before any network I/O takes place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from .errors import ConnectorError, ErrorTag


class ValueType(str, Enum):
    """Canonical field value kinds."""

    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    SINGLE_SELECT = "singleSelect"
    MULTI_SELECT = "multiSelect"
    OTHER = "other"


def _field_set(fields: Iterable[str]) -> FrozenSet[str]:
    return frozenset(item for item in fields if item)


def as_utc(moment: datetime) -> datetime:
    """Convert ``moment`` to UTC; naive values are taken to be UTC already."""

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def format_rfc3339_utc(moment: datetime) -> str:
    """Render ``moment`` as ``YYYY-MM-DDTHH:MM:SSZ``; naive values are treated as UTC."""

    return as_utc(moment).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(slots=True)
class ReadParams:
    """
    Parameters of a paginated read.

    Attributes
    ----------
    object_name:
        Provider object to read, e.g. ``Account`` or ``contacts``.
    fields:
        Fields projected into each row. Treated as a set.
    next_page:
        Opaque continuation token from a previous page. When set, most other
        parameters may be ignored in favour of the state encoded in it.
    since, until:
        Optional modification window. ``since`` must not be after ``until``.
    deleted:
        Include deleted records where the provider supports it.
    filter:
        Provider specific free-form filter expression.
    associated_objects:
        Related objects to embed with every record.
    page_size:
        Requested page size, ``0`` selects the provider default.
    """

    object_name: str
    fields: Iterable[str] = field(default_factory=frozenset)
    next_page: str = ""
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    deleted: bool = False
    filter: str = ""
    associated_objects: Sequence[str] = field(default_factory=tuple)
    page_size: int = 0

    def __post_init__(self) -> None:
        self.fields = _field_set(self.fields)

    def validate(self, *, require_fields: bool = True) -> None:
        if not self.object_name:
            raise ConnectorError(ErrorTag.MISSING_OBJECTS, "object name is required")
        if require_fields and not self.fields:
            raise ConnectorError(ErrorTag.MISSING_FIELDS, "at least one field must be requested")
        if self.since is not None and self.until is not None and _aware(self.since) > _aware(self.until):
            raise ConnectorError(ErrorTag.BAD_REQUEST, "since must not be after until")


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


@dataclass(slots=True)
class ReadResultRow:
    """A single record: projected fields keyed by lowercase name plus the raw payload."""

    fields: Dict[str, Any]
    raw: Dict[str, Any]
    id: Optional[str] = None
    associations: Optional[Dict[str, List[Dict[str, Any]]]] = None


@dataclass(slots=True)
class ReadResult:
    """One page of records. ``done`` is ``True`` exactly when ``next_page`` is empty."""

    rows: int
    data: List[ReadResultRow]
    next_page: str = ""
    done: bool = True
    errors: List[Exception] = field(default_factory=list)


@dataclass(slots=True)
class WriteParams:
    """Create (empty ``record_id``) or update a record."""

    object_name: str
    record_data: Mapping[str, Any] = field(default_factory=dict)
    record_id: str = ""
    associations: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_update(self) -> bool:
        return bool(self.record_id)

    def validate(self) -> None:
        if not self.object_name:
            raise ConnectorError(ErrorTag.MISSING_OBJECTS, "object name is required")
        if not self.record_data:
            raise ConnectorError(ErrorTag.MISSING_RECORD_DATA, "record data is required")


@dataclass(slots=True)
class WriteResult:
    success: bool
    record_id: str = ""
    errors: List[Any] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DeleteParams:
    object_name: str
    record_id: str = ""

    def validate(self) -> None:
        if not self.object_name:
            raise ConnectorError(ErrorTag.MISSING_OBJECTS, "object name is required")
        if not self.record_id:
            raise ConnectorError(ErrorTag.MISSING_RECORD_ID, "record id is required")


@dataclass(slots=True)
class DeleteResult:
    success: bool


@dataclass(slots=True)
class FieldValue:
    value: str
    display_value: str


@dataclass(slots=True)
class FieldMetadata:
    """
    Canonical description of an object field.

    ``read_only``, ``is_custom`` and ``is_required`` are ``None`` when the
    provider does not expose the information.
    """

    display_name: str
    value_type: ValueType = ValueType.OTHER
    provider_type: str = ""
    read_only: Optional[bool] = None
    is_custom: Optional[bool] = None
    is_required: Optional[bool] = None
    values: Optional[List[FieldValue]] = None


@dataclass(slots=True)
class ObjectMetadata:
    display_name: str
    fields: Dict[str, FieldMetadata] = field(default_factory=dict)

    @property
    def field_names(self) -> FrozenSet[str]:
        return frozenset(self.fields)


@dataclass(slots=True)
class ListObjectMetadataResult:
    """Per-object metadata and per-object failures, both keyed by lowercase object name."""

    result: Dict[str, ObjectMetadata] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)


class BatchWriteType(str, Enum):
    CREATE = "create"
    UPDATE = "update"


class BatchStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"


@dataclass(slots=True)
class BatchWriteParams:
    """
    Write many records of one object in a single request.

    ``all_or_none`` asks the provider to roll back every record if any fails.
    """

    object_name: str
    type: BatchWriteType
    records: Sequence[Mapping[str, Any]] = field(default_factory=tuple)
    all_or_none: bool = False
    headers: Mapping[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        if not self.object_name:
            raise ConnectorError(ErrorTag.MISSING_OBJECTS, "object name is required")
        if not isinstance(self.type, BatchWriteType):
            raise ConnectorError(ErrorTag.UNKNOWN_WRITE_TYPE, f"unknown batch write type {self.type!r}")
        if not self.records:
            raise ConnectorError(ErrorTag.MISSING_RECORD_DATA, "at least one record is required")


@dataclass(slots=True)
class BatchWriteResult:
    status: BatchStatus
    results: List[WriteResult] = field(default_factory=list)
    errors: List[Any] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0

    @classmethod
    def from_results(
        cls,
        results: List[WriteResult],
        errors: Optional[List[Any]] = None,
        *,
        total: Optional[int] = None,
        success_count: Optional[int] = None,
    ) -> "BatchWriteResult":
        """
        Summarise per-record results.

        ``total`` is the number of submitted records; records without a result
        (e.g. reported only through ``errors``) count as failures.
        """

        total = len(results) if total is None else total
        succeeded = sum(1 for item in results if item.success) if success_count is None else success_count
        failed = total - succeeded
        if succeeded == total:
            status = BatchStatus.SUCCESS
        elif failed == total:
            status = BatchStatus.FAILURE
        else:
            status = BatchStatus.PARTIAL
        return cls(status=status, results=results, errors=list(errors or []), success_count=succeeded, failure_count=failed)


@dataclass(slots=True)
class RecordCountParams:
    object_name: str
    since: Optional[datetime] = None
    until: Optional[datetime] = None

    def validate(self) -> None:
        if not self.object_name:
            raise ConnectorError(ErrorTag.MISSING_OBJECTS, "object name is required")


@dataclass(slots=True)
class RecordCountResult:
    count: int


class SubscriptionEventType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    OTHER = "other"


class SubscriptionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    FAILED_TO_ROLLBACK = "failed_to_rollback"


@dataclass(slots=True)
class SubscribeParams:
    """
    Register change events of ``objects`` on an existing event channel.

    ``channel`` is the full name of the channel created during registration
    (with or without the ``__chn`` suffix).
    """

    channel: str
    objects: Sequence[str] = field(default_factory=tuple)

    def validate(self) -> None:
        if not self.channel:
            raise ConnectorError(ErrorTag.MISSING_EXPECTED_VALUES, "event channel from registration is required")
        if not [name for name in self.objects if name]:
            raise ConnectorError(ErrorTag.MISSING_OBJECTS, "at least one object must be subscribed")


@dataclass(slots=True)
class SubscriptionResult:
    status: SubscriptionStatus
    objects: List[str] = field(default_factory=list)
    events: List[SubscriptionEventType] = field(default_factory=list)
    result: Any = None
