"""Account Engagement (Pardot) v5 objects, reached as the ``pardot`` module of Salesforce."""

from __future__ import annotations

from typing import Iterable, Optional

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
from ...services.metadata import fetch_sample_metadata, list_object_metadata
from ...services.pagination import json_next_url
from ...services.read import ReadPlan, page_url, read_page, records_at
from ...services.write import WritePlan, delete_record, write_record, write_url
from ...transport.urlbuilder import URL
from ..base import BaseConnector, ConnectorParams

BUSINESS_UNIT_KEY = "businessUnitId"
BUSINESS_UNIT_HEADER = "Pardot-Business-Unit-Id"
SAMPLE_FIELDS = ("id", "createdAt", "updatedAt")


class PardotConnector(BaseConnector):
    default_page_size = 1000
    max_page_size = 1000

    def __init__(self, params: ConnectorParams) -> None:
        super().__init__(params)
        self.http.default_headers[BUSINESS_UNIT_HEADER] = self.metadata_value(BUSINESS_UNIT_KEY)

    def objects_url(self, object_name: str) -> URL:
        return self.url("api/v5/objects", object_name)

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        params.validate()

        def _first_page() -> URL:
            url = self.objects_url(params.object_name)
            url.with_query("fields", ",".join(sorted(params.fields)))
            url.with_query("limit", str(self.page_size(params)))
            url.with_query("orderBy", "updatedAt ASC")
            if params.since is not None:
                url.with_query("updatedAtAfterOrEqualTo", format_rfc3339_utc(params.since))
            if params.until is not None:
                url.with_query("updatedAtBeforeOrEqualTo", format_rfc3339_utc(params.until))
            if params.deleted:
                url.with_query("deleted", "all")
            return url

        plan = ReadPlan(records=records_at("values"), next_page=json_next_url("nextPageUrl"))
        return read_page(self.http, page_url(params, _first_page), plan, params, context=context)

    def write(self, params: WriteParams, *, context: Optional[CallContext] = None) -> WriteResult:
        params.validate()
        url = write_url(self.objects_url(params.object_name), params).with_query("fields", "id")
        return write_record(self.http, url, params, WritePlan(create_method="POST", update_method="PATCH"), context=context)

    def delete(self, params: DeleteParams, *, context: Optional[CallContext] = None) -> DeleteResult:
        params.validate()
        return delete_record(self.http, self.objects_url(params.object_name).add_path(params.record_id), params, context=context)

    def list_object_metadata(self, names: Iterable[str], *, context: Optional[CallContext] = None) -> ListObjectMetadataResult:
        def _fetch(name: str) -> ObjectMetadata:
            url = self.objects_url(name).with_query("fields", ",".join(SAMPLE_FIELDS)).with_query("limit", "1")
            return fetch_sample_metadata(self.http, url, name, records_at("values", optional=True), context=context)

        return list_object_metadata(names, _fetch, max_concurrent=self.max_concurrency, context=context)
