"""Intercom REST connector pinned to API version 2.11."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from ...core.context import CallContext
from ...core.models import (
    DeleteParams,
    DeleteResult,
    ListObjectMetadataResult,
    ObjectMetadata,
    ReadParams,
    ReadResult,
    WriteParams,
    WriteResult,
    as_utc,
)
from ...services.filtering import UNIX_SECONDS, Order, TimeFilter
from ...services.metadata import fetch_sample_metadata, list_object_metadata
from ...services.pagination import cursor_echo, cursor_token
from ...services.read import ReadPlan, page_url, read_page, records_at
from ...services.write import WritePlan, delete_record, write_record, write_url
from ...transport.interpreter import ErrorFormat, FormatSwitch, render_error_list, render_key
from ...transport.urlbuilder import URL
from ..base import BaseConnector

API_VERSION = "2.11"
SEARCHABLE_OBJECTS = frozenset({"contacts", "conversations"})

# Objects whose list response does not keep records under ``data``.
RECORDS_KEYS = {
    "conversations": "conversations",
}

ERROR_FORMATS = FormatSwitch(
    ErrorFormat(("errors",), render_error_list()),
    ErrorFormat(("message",), render_key("message")),
)


def records_key(object_name: str) -> str:
    return RECORDS_KEYS.get(object_name.lower(), "data")


def search_body(params: ReadParams, page_size: int) -> Dict[str, Any]:
    """Search for records updated after ``since``; the cursor rides in ``pagination``."""

    pagination: Dict[str, Any] = {"per_page": page_size}
    if params.next_page:
        pagination["starting_after"] = params.next_page
    since = int(as_utc(params.since).timestamp()) if params.since is not None else 0
    return {
        "query": {"field": "updated_at", "operator": ">", "value": since},
        "pagination": pagination,
    }


class IntercomConnector(BaseConnector):
    default_headers = {"Intercom-Version": API_VERSION}
    error_formats = ERROR_FORMATS
    encoding_exceptions = {"%3D": "="}
    default_page_size = 150
    max_page_size = 150

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        params.validate()
        name = params.object_name.lower()
        if params.since is not None and name in SEARCHABLE_OBJECTS:
            return self.search(params, context=context)

        def _first_page() -> URL:
            return self.url(params.object_name).with_query("per_page", str(self.page_size(params)))

        key = records_key(name)
        plan = ReadPlan(
            records=records_at(key, optional=True),
            next_page=cursor_echo("starting_after", "pages", "next", "starting_after"),
            time_filter=TimeFilter(Order.UNORDERED, "updated_at", UNIX_SECONDS),
        )
        url = page_url(params, _first_page, self.encoding_exceptions)
        return read_page(self.http, url, plan, params, context=context)

    def search(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        """``POST /{object}/search`` for records updated after ``since``."""

        params.validate()
        plan = ReadPlan(
            records=records_at(records_key(params.object_name), optional=True),
            next_page=cursor_token("pages", "next", "starting_after"),
            method="POST",
            body=search_body(params, self.page_size(params)),
            time_filter=TimeFilter(Order.UNORDERED, "updated_at", UNIX_SECONDS) if params.until is not None else None,
        )
        return read_page(self.http, self.url(params.object_name, "search"), plan, params, context=context)

    def write(self, params: WriteParams, *, context: Optional[CallContext] = None) -> WriteResult:
        params.validate()
        plan = WritePlan(create_method="POST", update_method="PUT")
        return write_record(self.http, write_url(self.url(params.object_name), params), params, plan, context=context)

    def delete(self, params: DeleteParams, *, context: Optional[CallContext] = None) -> DeleteResult:
        params.validate()
        return delete_record(self.http, self.url(params.object_name, params.record_id), params, context=context)

    def list_object_metadata(self, names: Iterable[str], *, context: Optional[CallContext] = None) -> ListObjectMetadataResult:
        def _fetch(name: str) -> ObjectMetadata:
            url = self.url(name).with_query("per_page", "1")
            return fetch_sample_metadata(self.http, url, name, records_at(records_key(name), optional=True), context=context)

        return list_object_metadata(names, _fetch, max_concurrent=self.max_concurrency, context=context)
