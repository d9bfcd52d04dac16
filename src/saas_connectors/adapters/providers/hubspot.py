"""
HubSpot CRM v3 connector.

Plain reads list ``/crm/v3/objects/{object}`` and follow ``paging.next.link``.
Reads bounded by ``since``/``until`` switch to the search endpoint, which is
paginated by a bare ``after`` offset and capped by HubSpot at 10k results.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

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
from ...services.metadata import field_values, list_object_metadata, translate_type
from ...services.pagination import cursor_token, json_next_url
from ...services.read import ReadPlan, page_url, read_page, records_at
from ...services.write import WritePlan, delete_record, write_record, write_url
from ...transport.interpreter import DEFAULT_FORMATS, ErrorFormat, FormatSwitch, render_key
from ...transport.urlbuilder import URL
from ..base import BaseConnector

SEARCH_RESULTS_LIMIT = 9000

FIELD_TYPES: Mapping[str, ValueType] = {
    "string": ValueType.STRING,
    "phone_number": ValueType.STRING,
    "number": ValueType.FLOAT,
    "bool": ValueType.BOOLEAN,
    "date": ValueType.DATE,
    "datetime": ValueType.DATETIME,
}

ERROR_FORMATS = FormatSwitch(
    ErrorFormat(("category", "message"), render_key("message")),
    *DEFAULT_FORMATS.formats,
)


def last_modified_property(object_name: str) -> str:
    """Contacts track modification in ``lastmodifieddate``; every other object in ``hs_lastmodifieddate``."""

    return "lastmodifieddate" if object_name.lower() in ("contact", "contacts") else "hs_lastmodifieddate"


def search_body(params: ReadParams, page_size: int) -> Dict[str, Any]:
    field_name = last_modified_property(params.object_name)
    filters: List[Dict[str, Any]] = []
    if params.since is not None:
        filters.append({"propertyName": field_name, "operator": "GTE", "value": format_rfc3339_utc(params.since)})
    if params.until is not None:
        filters.append({"propertyName": field_name, "operator": "LTE", "value": format_rfc3339_utc(params.until)})

    body: Dict[str, Any] = {
        "limit": page_size,
        "properties": sorted(params.fields),
        "sorts": [{"propertyName": field_name, "direction": "ASCENDING"}],
    }
    if filters:
        body["filterGroups"] = [{"filters": filters}]
    if params.next_page:
        body["after"] = params.next_page
    return body


def check_search_offset(next_page: str) -> None:
    if not next_page:
        return
    try:
        offset = int(next_page)
    except ValueError:
        return
    if offset >= SEARCH_RESULTS_LIMIT:
        raise ConnectorError(
            ErrorTag.RESULTS_LIMIT_EXCEEDED,
            f"requested offset {next_page} exceeds limit {SEARCH_RESULTS_LIMIT}",
        )


def property_value_type(descriptor: Mapping[str, Any]) -> ValueType:
    provider_type = str(descriptor.get("type") or "")
    if provider_type == "enumeration":
        field_type = str(descriptor.get("fieldType") or "")
        if field_type == "checkbox":
            return ValueType.MULTI_SELECT
        if field_type in ("select", "radio", "booleancheckbox"):
            return ValueType.SINGLE_SELECT
        return ValueType.OTHER
    return translate_type(provider_type, FIELD_TYPES)


def property_metadata(descriptor: Mapping[str, Any]) -> FieldMetadata:
    value_type = property_value_type(descriptor)
    modification = descriptor.get("modificationMetadata")
    read_only = modification.get("readOnlyValue") if isinstance(modification, Mapping) else None
    defined = descriptor.get("hubspotDefined")
    return FieldMetadata(
        display_name=str(descriptor.get("label") or descriptor.get("name") or ""),
        value_type=value_type,
        provider_type=str(descriptor.get("type") or ""),
        read_only=read_only if isinstance(read_only, bool) else None,
        is_custom=(not defined) if isinstance(defined, bool) else None,
        values=field_values(descriptor.get("options")) if value_type in (ValueType.SINGLE_SELECT, ValueType.MULTI_SELECT) else None,
    )


class HubSpotConnector(BaseConnector):
    error_formats = ERROR_FORMATS
    status_overrides = {409: ErrorTag.CONFLICT}
    default_page_size = 100
    max_page_size = 100

    def objects_url(self, object_name: str, *segments: str) -> URL:
        return self.url("crm/v3/objects", object_name, *segments)

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        params.validate()
        if params.since is not None or params.until is not None:
            return self.search(params, context=context)

        def _first_page() -> URL:
            url = self.objects_url(params.object_name).with_query("limit", str(self.page_size(params)))
            url.with_query("properties", ",".join(sorted(params.fields)))
            if params.deleted:
                url.with_query("archived", "true")
            return url

        plan = ReadPlan(
            records=records_at("results"),
            next_page=json_next_url("paging", "next", "link"),
            flatten_key="properties",
        )
        return read_page(self.http, page_url(params, _first_page), plan, params, context=context)

    def search(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        """Time bounded read through ``POST /crm/v3/objects/{object}/search``."""

        params.validate()
        check_search_offset(params.next_page)
        plan = ReadPlan(
            records=records_at("results"),
            next_page=cursor_token("paging", "next", "after"),
            flatten_key="properties",
            method="POST",
            body=search_body(params, self.page_size(params)),
        )
        return read_page(self.http, self.objects_url(params.object_name, "search"), plan, params, context=context)

    def write(self, params: WriteParams, *, context: Optional[CallContext] = None) -> WriteResult:
        params.validate()
        plan = WritePlan(create_method="POST", update_method="PATCH", wrap=lambda data: {"properties": dict(data)})
        return write_record(self.http, write_url(self.objects_url(params.object_name), params), params, plan, context=context)

    def delete(self, params: DeleteParams, *, context: Optional[CallContext] = None) -> DeleteResult:
        params.validate()
        return delete_record(self.http, self.objects_url(params.object_name, params.record_id), params, context=context)

    def list_object_metadata(self, names: Iterable[str], *, context: Optional[CallContext] = None) -> ListObjectMetadataResult:
        def _fetch(name: str) -> ObjectMetadata:
            body = self.http.get(self.url("crm/v3/properties", name), context=context).unmarshal()
            fields = {
                str(descriptor.get("name", "")).lower(): property_metadata(descriptor)
                for descriptor in array_to_maps(Query(body).array("results"))
            }
            return ObjectMetadata(display_name=name, fields=fields)

        return list_object_metadata(names, _fetch, max_concurrent=self.max_concurrency, context=context)
