"""
GetResponse v3 connector.

Records are returned as a root array and paged by page number. Some objects
filter ``createdOn`` on the server through ``query[createdOn][from|to]``,
others only expose ``createdOn`` in the payload and are filtered here.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, Mapping, NamedTuple, Optional

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
    format_rfc3339_utc,
)
from ...services.filtering import Order, TimeFilter
from ...services.metadata import fetch_sample_metadata, list_object_metadata
from ...services.pagination import page_advance
from ...services.read import ReadPlan, page_url, read_page, records_at
from ...services.write import IdExtractor, WritePlan, delete_record, write_record, write_url
from ...transport.interpreter import DEFAULT_FORMATS, ErrorFormat, FormatSwitch, render_key
from ...transport.response import JSONHTTPResponse
from ...transport.urlbuilder import URL
from ..base import BaseConnector

PAGE_KEY = "page"
PAGE_SIZE_KEY = "perPage"
MAX_PAGE_SIZE = 1000
SINCE_KEY = "query[createdOn][from]"
UNTIL_KEY = "query[createdOn][to]"
CREATED_ON = "createdOn"


class FilterSide(str, Enum):
    SERVER = "server"
    CLIENT = "client"


class TimeSpec(NamedTuple):
    side: FilterSide
    field: str = ""


_SERVER = TimeSpec(FilterSide.SERVER)
_CLIENT_CREATED = TimeSpec(FilterSide.CLIENT, CREATED_ON)

TIME_FILTERS: Mapping[str, TimeSpec] = {
    "addresses": _SERVER,
    "autoresponders": _SERVER,
    "campaigns": _SERVER,
    "click-tracks": _SERVER,
    "contacts": _SERVER,
    "forms": _SERVER,
    "imports": _SERVER,
    "landing-pages": _SERVER,
    "newsletters": _SERVER,
    "rss-newsletters": _SERVER,
    "search-contacts": _SERVER,
    "splittests": _SERVER,
    "suppressions": _SERVER,
    "custom-events": _CLIENT_CREATED,
    "files": _CLIENT_CREATED,
    "folders": _CLIENT_CREATED,
    "from-fields": _CLIENT_CREATED,
    "gdpr-fields": _CLIENT_CREATED,
    "templates": _CLIENT_CREATED,
    "webinars": _CLIENT_CREATED,
}

# Identifier keys that do not follow the singular-camelCase rule.
ID_FIELDS: Mapping[str, str] = {
    "addresses": "addressId",
    "rss-newsletters": "rssNewsletterId",
    "search-contacts": "searchContactId",
    "splittests": "splittestId",
    "click-tracks": "clickTrackId",
}

ERROR_FORMATS = FormatSwitch(
    ErrorFormat(("httpStatus", "message"), render_key("message")),
    *DEFAULT_FORMATS.formats,
)


def time_spec(object_name: str) -> TimeSpec:
    return TIME_FILTERS.get(object_name.lower(), TimeSpec(FilterSide.CLIENT))


def id_field(object_name: str) -> str:
    """``custom-fields`` -> ``customFieldId``."""

    name = object_name.lower()
    if name in ID_FIELDS:
        return ID_FIELDS[name]
    parts = name.split("-")
    last = parts[-1]
    parts[-1] = last[:-1] if last.endswith("s") else last
    return parts[0] + "".join(part.capitalize() for part in parts[1:]) + "Id"


def parse_filter(expression: str) -> Dict[str, str]:
    """``query[name]=abc&sort[createdOn]=desc`` style expressions become query parameters."""

    params: Dict[str, str] = {}
    for item in expression.split("&"):
        key, sep, value = item.strip().partition("=")
        if sep and key.strip():
            params[key.strip()] = value.strip()
    return params


def _record_id(object_name: str) -> IdExtractor:
    key = id_field(object_name)

    def _extract(body: Dict[str, Any], response: JSONHTTPResponse) -> Optional[str]:
        value = body.get(key) or body.get("id")
        return str(value) if value is not None else None

    return _extract


class GetResponseConnector(BaseConnector):
    error_formats = ERROR_FORMATS
    default_page_size = MAX_PAGE_SIZE
    max_page_size = MAX_PAGE_SIZE

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        params.validate()
        spec_for_object = time_spec(params.object_name)
        windowed = params.since is not None or params.until is not None

        def _first_page() -> URL:
            url = self.url(params.object_name)
            url.with_query(PAGE_SIZE_KEY, str(self.page_size(params)))
            url.with_query(PAGE_KEY, "1")
            url.with_query("fields", ",".join(sorted(params.fields)))
            for key, value in parse_filter(params.filter).items():
                url.with_query(key, value)
            if windowed and spec_for_object.side is FilterSide.SERVER:
                if params.since is not None:
                    url.with_query(SINCE_KEY, format_rfc3339_utc(params.since))
                if params.until is not None:
                    url.with_query(UNTIL_KEY, format_rfc3339_utc(params.until))
            return url

        records = records_at(optional=True)
        client_filter = None
        if spec_for_object.side is FilterSide.CLIENT and spec_for_object.field:
            client_filter = TimeFilter(Order.CHRONOLOGICAL, spec_for_object.field)
        plan = ReadPlan(
            records=records,
            next_page=page_advance(PAGE_KEY, PAGE_SIZE_KEY, MAX_PAGE_SIZE, records),
            id_field=id_field(params.object_name),
            time_filter=client_filter,
        )
        return read_page(self.http, page_url(params, _first_page), plan, params, context=context)

    def write(self, params: WriteParams, *, context: Optional[CallContext] = None) -> WriteResult:
        """Both create and update are ``POST``; updates address ``/{object}/{id}``."""

        params.validate()
        plan = WritePlan(create_method="POST", update_method="POST", record_id=_record_id(params.object_name))
        return write_record(self.http, write_url(self.url(params.object_name), params), params, plan, context=context)

    def delete(self, params: DeleteParams, *, context: Optional[CallContext] = None) -> DeleteResult:
        params.validate()
        return delete_record(self.http, self.url(params.object_name, params.record_id), params, context=context)

    def list_object_metadata(self, names: Iterable[str], *, context: Optional[CallContext] = None) -> ListObjectMetadataResult:
        def _fetch(name: str) -> ObjectMetadata:
            url = self.url(name).with_query(PAGE_SIZE_KEY, "1")
            return fetch_sample_metadata(self.http, url, name, records_at(optional=True), context=context)

        return list_object_metadata(names, _fetch, max_concurrent=self.max_concurrency, context=context)
