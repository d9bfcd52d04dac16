"""
Microsoft Dynamics 365 (Dataverse Web API v9.2) connector.

OData query options keep their literal ``$`` and ``,`` characters, so both
are registered as encoding exceptions. Page size travels in the ``Prefer``
header and continuation in ``@odata.nextLink``.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional

from ...core.context import CallContext
from ...core.errors import ConnectorError, ErrorTag
from ...core.jsonquery import Query, array_to_maps
from ...core.models import (
    DeleteParams,
    DeleteResult,
    FieldMetadata,
    ListObjectMetadataResult,
    ObjectMetadata,
    ReadParams,
    ReadResult,
    ValueType,
    WriteParams,
    WriteResult,
    format_rfc3339_utc,
)
from ...services.metadata import list_object_metadata, translate_type
from ...services.pagination import json_next_url
from ...services.read import ReadPlan, page_url, read_page, records_at
from ...services.write import delete_record, id_at, write_result, write_url
from ...transport.interpreter import ErrorFormat, FormatSwitch, render_nested_error
from ...transport.urlbuilder import URL
from ..base import BaseConnector

ENTITY_ID_HEADER = "OData-EntityId"
LOOKUP_FIELD_FORMAT = "_{}_value"

_ENTITY_ID = re.compile(r"\(([^()]+)\)\s*$")

ATTRIBUTE_TYPES: Mapping[str, ValueType] = {
    "stringtype": ValueType.STRING,
    "memotype": ValueType.STRING,
    "booleantype": ValueType.BOOLEAN,
    "biginttype": ValueType.INT,
    "integertype": ValueType.INT,
    "decimaltype": ValueType.FLOAT,
    "doubletype": ValueType.FLOAT,
    "moneytype": ValueType.FLOAT,
    "picklisttype": ValueType.SINGLE_SELECT,
    "statustype": ValueType.SINGLE_SELECT,
    "statetype": ValueType.SINGLE_SELECT,
    "multiselectpicklisttype": ValueType.MULTI_SELECT,
}

ERROR_FORMATS = FormatSwitch(ErrorFormat(("error",), render_nested_error))


def entity_id(headers: Mapping[str, str]) -> str:
    """Record id from ``OData-EntityId: https://org/api/data/v9.2/accounts(<id>)``."""

    value = headers.get(ENTITY_ID_HEADER) or ""
    match = _ENTITY_ID.search(value)
    return match.group(1) if match else ""


def primary_key(entity_set: str) -> str:
    """Primary key attribute of an entity set, e.g. ``accounts`` -> ``accountid``."""

    name = entity_set.lower()
    if name.endswith("ies"):
        name = name[:-3] + "y"
    elif name.endswith("s"):
        name = name[:-1]
    return name + "id"


def _label(node: Any) -> str:
    if not isinstance(node, Mapping):
        return ""
    localized = node.get("UserLocalizedLabel")
    if isinstance(localized, Mapping) and localized.get("Label"):
        return str(localized["Label"])
    for label in node.get("LocalizedLabels") or []:
        if isinstance(label, Mapping) and label.get("Label"):
            return str(label["Label"])
    return ""


def attribute_value_type(attribute: Mapping[str, Any]) -> ValueType:
    type_name = attribute.get("AttributeTypeName")
    provider_type = str(type_name.get("Value", "")) if isinstance(type_name, Mapping) else str(attribute.get("AttributeType") or "")
    if provider_type.lower() == "datetimetype":
        fmt = str(attribute.get("Format") or "")
        if fmt in ("DateAndTime", "UserLocal"):
            return ValueType.DATETIME
        if fmt == "DateOnly":
            return ValueType.DATE
        return ValueType.OTHER
    return translate_type(provider_type, ATTRIBUTE_TYPES)


def attribute_name(attribute: Mapping[str, Any]) -> str:
    """Lookup attributes are exposed in records as ``_<name>_value``."""

    logical = str(attribute.get("LogicalName") or "")
    if attribute.get("Targets"):
        return LOOKUP_FIELD_FORMAT.format(logical)
    return logical


def attribute_metadata(attribute: Mapping[str, Any]) -> FieldMetadata:
    type_name = attribute.get("AttributeTypeName")
    modifiable = bool(attribute.get("IsValidForCreate")) or bool(attribute.get("IsValidForUpdate"))
    custom = attribute.get("IsCustomAttribute")
    return FieldMetadata(
        display_name=_label(attribute.get("DisplayName")) or str(attribute.get("SchemaName") or attribute.get("LogicalName") or ""),
        value_type=attribute_value_type(attribute),
        provider_type=str(type_name.get("Value", "")) if isinstance(type_name, Mapping) else str(attribute.get("AttributeType") or ""),
        read_only=not modifiable,
        is_custom=custom if isinstance(custom, bool) else None,
    )


def entity_metadata(object_name: str, body: Any) -> ObjectMetadata:
    definitions = array_to_maps(Query(body).array("value"))
    if not definitions:
        raise ConnectorError(ErrorTag.CANNOT_READ_METADATA, f"no entity definition for '{object_name}'")
    definition = definitions[0]
    fields = {
        attribute_name(attribute).lower(): attribute_metadata(attribute)
        for attribute in array_to_maps(Query(definition).array("Attributes", optional=True))
    }
    return ObjectMetadata(display_name=_label(definition.get("DisplayCollectionName")) or object_name, fields=fields)


class DynamicsCRMConnector(BaseConnector):
    error_formats = ERROR_FORMATS
    encoding_exceptions = {"%24": "$", "%2C": ","}
    default_page_size = 5000

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        params.validate()

        def _first_page() -> URL:
            url = self.url(params.object_name).with_query("$select", ",".join(sorted(params.fields)))
            clauses = []
            if params.since is not None:
                clauses.append(f"modifiedon ge {format_rfc3339_utc(params.since)}")
            if params.until is not None:
                clauses.append(f"modifiedon le {format_rfc3339_utc(params.until)}")
            if params.filter:
                clauses.append(params.filter)
            if clauses:
                url.with_query("$filter", " and ".join(clauses))
            return url

        plan = ReadPlan(
            records=records_at("value"),
            next_page=json_next_url("@odata.nextLink"),
            id_field=primary_key(params.object_name),
            headers={"Prefer": f"odata.maxpagesize={self.page_size(params)}"},
        )
        url = page_url(params, _first_page, self.encoding_exceptions)
        return read_page(self.http, url, plan, params, context=context)

    def write(self, params: WriteParams, *, context: Optional[CallContext] = None) -> WriteResult:
        """Create with ``POST /{set}``, update with ``PATCH /{set}(<id>)``; new ids come back in a header."""

        params.validate()
        url = write_url(self.url(params.object_name), params, id_in_brackets=True)
        method = "PATCH" if params.is_update else "POST"
        response = self.http.send(method, url, body=dict(params.record_data), headers=params.headers, context=context)
        result = write_result(response, params, id_at(primary_key(params.object_name)))
        if not result.record_id:
            result.record_id = entity_id(response.headers)
        return result

    def delete(self, params: DeleteParams, *, context: Optional[CallContext] = None) -> DeleteResult:
        params.validate()
        url = self.url(params.object_name).raw_add_to_path(f"({params.record_id})")
        return delete_record(self.http, url, params, context=context)

    def list_object_metadata(self, names: Iterable[str], *, context: Optional[CallContext] = None) -> ListObjectMetadataResult:
        def _fetch(name: str) -> ObjectMetadata:
            url = self.url("EntityDefinitions")
            url.with_query("$filter", f"EntitySetName eq '{name}'")
            url.with_query("$expand", "Attributes")
            return entity_metadata(name, self.http.get(url, context=context).unmarshal())

        return list_object_metadata(names, _fetch, max_concurrent=self.max_concurrency, context=context)
