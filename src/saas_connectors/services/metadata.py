"""
Object metadata strategies.

Three strategies cover the providers:

* describe: a schema endpoint lists field descriptors, translated with an
  explicit per-provider type map;
* sample record: one record is read and value types are inferred from the
  JSON kinds of its values;
* SQL sample: a ``SELECT * ... MAXRESULTS 1`` query whose columns are the fields.

:func:`list_object_metadata` fans per-object fetches out through the join
barrier and reports failures per object.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Optional

from ..core.context import CallContext
from ..core.errors import ConnectorError, ErrorTag
from ..core.logging import get_logger
from ..core.models import FieldMetadata, FieldValue, ListObjectMetadataResult, ObjectMetadata, ValueType
from ..transport.client import JSONHTTPClient
from ..transport.urlbuilder import URL
from .concurrency import DEFAULT_MAX_CONCURRENCY, run_simultaneously
from .pagination import RecordsFunc

LOGGER = get_logger(__name__)

FetchOne = Callable[[str], ObjectMetadata]


def infer_value_type(value: Any) -> ValueType:
    """Map a JSON value to the closest canonical type."""

    if isinstance(value, bool):
        return ValueType.BOOLEAN
    if isinstance(value, int):
        return ValueType.INT
    if isinstance(value, float):
        return ValueType.FLOAT
    if isinstance(value, str):
        return ValueType.STRING
    return ValueType.OTHER


def translate_type(provider_type: str, type_map: Mapping[str, ValueType]) -> ValueType:
    """Look ``provider_type`` up case-insensitively; unknown types become ``other``."""

    return type_map.get(provider_type.lower(), ValueType.OTHER)


def field_values(options: Optional[Iterable[Any]], value_key: str = "value", label_key: str = "label") -> Optional[list[FieldValue]]:
    """Convert provider pick-list options to :class:`FieldValue` entries."""

    if not options:
        return None
    values = []
    for option in options:
        if isinstance(option, Mapping):
            raw_value = option.get(value_key)
            label = option.get(label_key)
            if raw_value is None:
                continue
            values.append(FieldValue(value=str(raw_value), display_value=str(label if label is not None else raw_value)))
        elif option is not None:
            values.append(FieldValue(value=str(option), display_value=str(option)))
    return values or None


def sample_metadata(object_name: str, record: Mapping[str, Any]) -> ObjectMetadata:
    """Build metadata from one record: display name equals key, type inferred from value."""

    fields = {
        name: FieldMetadata(display_name=name, value_type=infer_value_type(value), provider_type="")
        for name, value in record.items()
    }
    return ObjectMetadata(display_name=object_name, fields=fields)


def fetch_sample_metadata(
    client: JSONHTTPClient,
    url: URL,
    object_name: str,
    records: RecordsFunc,
    *,
    headers: Optional[Mapping[str, str]] = None,
    context: Optional[CallContext] = None,
) -> ObjectMetadata:
    """
    Read one record from ``url`` and derive metadata from it.

    Raises ``cannot-read-metadata`` when the object has no records to sample.
    """

    response = client.get(url, headers=headers, context=context)
    body, present = response.body()
    items = records(body) if present else []
    if not items:
        raise ConnectorError(ErrorTag.CANNOT_READ_METADATA, f"no records available to sample for object '{object_name}'")
    return sample_metadata(object_name, items[0])


def list_object_metadata(
    names: Iterable[str],
    fetch_one: FetchOne,
    *,
    max_concurrent: int = DEFAULT_MAX_CONCURRENCY,
    context: Optional[CallContext] = None,
) -> ListObjectMetadataResult:
    """
    Fetch metadata of every object in ``names`` in parallel.

    Partial failure is a normal return: failed objects land in ``errors``.
    Both maps are keyed by lowercase object name.
    """

    unique = list(dict.fromkeys(name for name in names if name))
    if not unique:
        raise ConnectorError(ErrorTag.MISSING_OBJECTS, "at least one object name is required")

    jobs = {name: _bind(fetch_one, name) for name in unique}
    outcome = run_simultaneously(jobs, max_concurrent=max_concurrent, context=context)

    result = ListObjectMetadataResult()
    for name, metadata in outcome.values.items():
        result.result[name.lower()] = metadata
    for name, error in outcome.errors.items():
        result.errors[name.lower()] = error
        LOGGER.warning("Metadata fetch failed", extra={"object": name, "error": str(error)})
    return result


def _bind(fetch_one: FetchOne, name: str) -> Callable[[], ObjectMetadata]:
    def _job() -> ObjectMetadata:
        return fetch_one(name)

    return _job
