"""
Composite describe: one request describing many Salesforce objects.

Each object becomes a sub-request whose ``referenceId`` is the object name.
Sub-responses are demultiplexed by that reference, so a failure for one
object lands in the error map without affecting the others.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ...core.context import CallContext
from ...core.errors import ConnectorError, ErrorTag
from ...core.jsonquery import Query, array_to_maps
from ...core.models import FieldMetadata, FieldValue, ListObjectMetadataResult, ObjectMetadata, ValueType
from ...transport.client import JSONHTTPClient
from ...transport.urlbuilder import URL

FIELD_TYPES: Mapping[str, ValueType] = {
    "string": ValueType.STRING,
    "textarea": ValueType.STRING,
    "boolean": ValueType.BOOLEAN,
    "int": ValueType.INT,
    "double": ValueType.FLOAT,
    "date": ValueType.DATE,
    "datetime": ValueType.DATETIME,
    "picklist": ValueType.SINGLE_SELECT,
    "combobox": ValueType.SINGLE_SELECT,
    "multipicklist": ValueType.MULTI_SELECT,
}

_SELECT_TYPES = frozenset({ValueType.SINGLE_SELECT, ValueType.MULTI_SELECT})


def composite_request(object_names: Iterable[str], rest_prefix: str) -> Dict[str, Any]:
    return {
        "allOrNone": False,
        "compositeRequest": [
            {
                "referenceId": name,
                "method": "GET",
                "url": f"{rest_prefix}/sobjects/{name}/describe",
            }
            for name in object_names
        ],
    }


def _flag(descriptor: Mapping[str, Any], key: str) -> Optional[bool]:
    value = descriptor.get(key)
    return value if isinstance(value, bool) else None


def is_read_only(descriptor: Mapping[str, Any]) -> bool:
    return bool(
        _flag(descriptor, "autonumber")
        or _flag(descriptor, "calculated")
        or (_flag(descriptor, "createable") is False and _flag(descriptor, "updateable") is False)
    )


def is_required(descriptor: Mapping[str, Any]) -> Optional[bool]:
    """Required on create; unknown when the describe omits one of the deciding flags."""

    if _flag(descriptor, "autonumber") or _flag(descriptor, "calculated"):
        return False
    createable = _flag(descriptor, "createable")
    nillable = _flag(descriptor, "nillable")
    defaulted = _flag(descriptor, "defaultedOnCreate")
    if createable is None or nillable is None or defaulted is None:
        return None
    return createable and not nillable and not defaulted


def field_metadata(descriptor: Mapping[str, Any]) -> FieldMetadata:
    provider_type = str(descriptor.get("type") or "")
    value_type = FIELD_TYPES.get(provider_type, ValueType.OTHER)
    values: Optional[List[FieldValue]] = None
    if value_type in _SELECT_TYPES:
        values = [
            FieldValue(value=str(option.get("value", "")), display_value=str(option.get("label", "")))
            for option in descriptor.get("picklistValues") or []
            if isinstance(option, Mapping)
        ]
    return FieldMetadata(
        display_name=str(descriptor.get("label") or descriptor.get("name") or ""),
        value_type=value_type,
        provider_type=provider_type,
        read_only=is_read_only(descriptor),
        is_custom=_flag(descriptor, "custom"),
        is_required=is_required(descriptor),
        values=values,
    )


def object_metadata(describe: Mapping[str, Any]) -> ObjectMetadata:
    """Translate an sObject describe body; compound components also appear as ``parent.child``."""

    descriptors = array_to_maps(Query(describe).array("fields"))
    fields: Dict[str, FieldMetadata] = {}
    for descriptor in descriptors:
        fields[str(descriptor.get("name", "")).lower()] = field_metadata(descriptor)
    for descriptor in descriptors:
        parent = descriptor.get("compoundFieldName")
        if not parent:
            continue
        fields[f"{str(parent).lower()}.{str(descriptor.get('name', '')).lower()}"] = field_metadata(descriptor)
    return ObjectMetadata(display_name=str(describe.get("label", "")), fields=fields)


def _is_describe(body: Any) -> bool:
    return (
        isinstance(body, Mapping)
        and isinstance(body.get("name"), str)
        and isinstance(body.get("label"), str)
        and isinstance(body.get("fields"), list)
    )


def demultiplex(body: Any) -> ListObjectMetadataResult:
    """Split a composite response into per-object metadata and per-object errors."""

    result = ListObjectMetadataResult()
    for item in array_to_maps(Query(body).array("compositeResponse")):
        reference = str(item.get("referenceId", ""))
        sub_body = item.get("body")
        if _is_describe(sub_body):
            result.result[sub_body["name"].lower()] = object_metadata(sub_body)
        else:
            result.errors[reference.lower()] = ConnectorError(
                ErrorTag.CANNOT_READ_METADATA,
                json.dumps(sub_body, default=str),
            )
    return result


def fetch_composite_metadata(
    client: JSONHTTPClient,
    composite_url: URL,
    object_names: Iterable[str],
    rest_prefix: str,
    *,
    context: Optional[CallContext] = None,
) -> ListObjectMetadataResult:
    names = [name for name in object_names if name]
    if not names:
        raise ConnectorError(ErrorTag.MISSING_OBJECTS, "at least one object name is required")
    response = client.post(composite_url, composite_request(names, rest_prefix), context=context)
    return demultiplex(response.unmarshal())
