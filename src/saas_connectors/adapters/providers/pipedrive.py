"""
Pipedrive v1 connector.

Lists are sorted by ``update_time`` ascending and paged by offset, so a
``since``/``until`` window is applied client side and the first record past
``until`` ends the read.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from ...core.context import CallContext
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
)
from ...services.filtering import Order, TimeFilter
from ...services.metadata import fetch_sample_metadata, field_values, list_object_metadata, translate_type
from ...services.pagination import offset_advance
from ...services.read import ReadPlan, page_url, read_page, records_at
from ...services.write import WritePlan, delete_record, id_at, write_record, write_url
from ...transport.interpreter import DEFAULT_FORMATS
from ...transport.urlbuilder import URL
from ..base import BaseConnector

UPDATE_TIME_FIELD = "update_time"
UPDATE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Objects described by a ``{x}Fields`` endpoint; anything else is sampled.
FIELDS_ENDPOINTS: Mapping[str, str] = {
    "deals": "dealFields",
    "persons": "personFields",
    "organizations": "organizationFields",
    "activities": "activityFields",
    "products": "productFields",
    "leads": "dealFields",
}

FIELD_TYPES: Mapping[str, ValueType] = {
    "varchar": ValueType.STRING,
    "varchar_auto": ValueType.STRING,
    "text": ValueType.STRING,
    "phone": ValueType.STRING,
    "int": ValueType.INT,
    "double": ValueType.FLOAT,
    "monetary": ValueType.FLOAT,
    "date": ValueType.DATE,
    "enum": ValueType.SINGLE_SELECT,
    "set": ValueType.MULTI_SELECT,
}


def field_metadata(descriptor: Mapping[str, Any]) -> FieldMetadata:
    provider_type = str(descriptor.get("field_type") or "")
    value_type = translate_type(provider_type, FIELD_TYPES)
    bulk_edit = descriptor.get("bulk_edit_allowed")
    custom = descriptor.get("edit_flag")
    return FieldMetadata(
        display_name=str(descriptor.get("name") or descriptor.get("key") or ""),
        value_type=value_type,
        provider_type=provider_type,
        read_only=(not bulk_edit) if isinstance(bulk_edit, bool) else None,
        is_custom=custom if isinstance(custom, bool) else None,
        values=field_values(descriptor.get("options"), value_key="id") if value_type in (ValueType.SINGLE_SELECT, ValueType.MULTI_SELECT) else None,
    )


class PipedriveConnector(BaseConnector):
    error_formats = DEFAULT_FORMATS
    default_page_size = 500
    max_page_size = 500

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        params.validate()

        def _first_page() -> URL:
            url = self.url(params.object_name)
            url.with_query("limit", str(self.page_size(params)))
            url.with_query("start", "0")
            url.with_query("sort", f"{UPDATE_TIME_FIELD} ASC")
            return url

        plan = ReadPlan(
            records=records_at("data", optional=True),
            next_page=offset_advance(
                "start",
                ("additional_data", "pagination", "more_items_in_collection"),
                ("additional_data", "pagination", "next_start"),
            ),
            time_filter=TimeFilter(Order.CHRONOLOGICAL, UPDATE_TIME_FIELD, UPDATE_TIME_FORMAT),
        )
        return read_page(self.http, page_url(params, _first_page), plan, params, context=context)

    def write(self, params: WriteParams, *, context: Optional[CallContext] = None) -> WriteResult:
        params.validate()
        plan = WritePlan(create_method="POST", update_method="PUT", record_id=id_at("data", "id"))
        return write_record(self.http, write_url(self.url(params.object_name), params), params, plan, context=context)

    def delete(self, params: DeleteParams, *, context: Optional[CallContext] = None) -> DeleteResult:
        params.validate()
        return delete_record(self.http, self.url(params.object_name, params.record_id), params, context=context)

    def list_object_metadata(self, names: Iterable[str], *, context: Optional[CallContext] = None) -> ListObjectMetadataResult:
        def _fetch(name: str) -> ObjectMetadata:
            endpoint = FIELDS_ENDPOINTS.get(name.lower())
            if endpoint is None:
                url = self.url(name).with_query("limit", "1")
                return fetch_sample_metadata(self.http, url, name, records_at("data", optional=True), context=context)
            body = self.http.get(self.url(endpoint), context=context).unmarshal()
            fields = {
                str(descriptor.get("key", "")): field_metadata(descriptor)
                for descriptor in array_to_maps(Query(body).array("data", optional=True))
            }
            return ObjectMetadata(display_name=name.capitalize(), fields=fields)

        return list_object_metadata(names, _fetch, max_concurrent=self.max_concurrency, context=context)
