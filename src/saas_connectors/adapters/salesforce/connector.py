"""
Salesforce REST connector.

Reads run SOQL through ``/query`` (``/queryAll`` for deleted records) and
follow ``nextRecordsUrl``; writes go through ``/sobjects``. Metadata uses the
composite describe, bulk operations delegate to :class:`~.bulk.BulkAPI` and
change event subscriptions to :class:`~.events.ChannelMembers`.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

import httpx

from ...core.context import CallContext
from ...core.errors import ConnectorError, ErrorTag
from ...core.jsonquery import Query
from ...core.models import (
    BatchWriteParams,
    BatchWriteResult,
    DeleteParams,
    DeleteResult,
    ListObjectMetadataResult,
    ReadParams,
    ReadResult,
    RecordCountParams,
    RecordCountResult,
    SubscribeParams,
    SubscriptionResult,
    WriteParams,
    WriteResult,
)
from ...services.pagination import json_relative_next_url
from ...services.read import ReadPlan, page_url, read_page, records_at
from ...services.write import delete_record, write_result, id_at
from ...transport.interpreter import DEFAULT_FORMATS, ErrorFormat, FormatSwitch, render_key
from ...transport.urlbuilder import URL
from ..base import BaseConnector, ConnectorParams
from . import soql
from .batch import batch_write
from .bulk import BulkAPI, BulkOperationResult, JobInfo, JobResults
from .events import ChannelMembers
from .metadata import fetch_composite_metadata

API_VERSION = "59.0"
REST_PREFIX = f"/services/data/v{API_VERSION}"

# Composite requests accept at most 25 subrequests.
COMPOSITE_LIMIT = 25


def _render_error(body: Mapping[str, Any]) -> str:
    code = body.get("errorCode")
    message = body.get("message") or ""
    return f"{code}: {message}" if code else str(message)


ERROR_FORMATS = FormatSwitch(
    ErrorFormat(("errorCode", "message"), _render_error),
    ErrorFormat(("error", "error_description"), render_key("error_description")),
    *DEFAULT_FORMATS.formats,
)


def extract_associations(record: Mapping[str, Any], params: ReadParams) -> Dict[str, List[Dict[str, Any]]]:
    """
    Related records embedded in a SOQL row.

    Parent objects are reached through their lookup field and carry only the
    id. Child relationships come back as nested query results.
    """

    associations: Dict[str, List[Dict[str, Any]]] = {}
    for associated in params.associated_objects:
        lookup = soql.parent_field(params.object_name, associated)
        if lookup:
            found = _child_value(record, lookup)
            entries = [{"object_id": found, "raw": None}] if isinstance(found, str) and found else []
        else:
            entries = _child_records(record, associated)
        if entries:
            associations[associated] = entries
    return associations


def _child_value(record: Mapping[str, Any], name: str) -> Any:
    lowered = name.lower()
    for key, value in record.items():
        if key.lower() == lowered:
            return value
    return None


def _child_records(record: Mapping[str, Any], relationship: str) -> List[Dict[str, Any]]:
    nested = _child_value(record, relationship)
    if not isinstance(nested, Mapping) or not isinstance(nested.get("records"), list):
        return []
    entries = []
    for child in nested["records"]:
        if isinstance(child, Mapping):
            identifier = _child_value(child, "Id")
            entries.append({"object_id": identifier if isinstance(identifier, str) else "", "raw": dict(child)})
    return entries


class SalesforceConnector(BaseConnector):
    """Connector for the Salesforce CRM REST, composite, bulk and tooling APIs."""

    error_formats = ERROR_FORMATS
    default_page_size = soql.DEFAULT_PAGE_SIZE
    max_page_size = soql.DEFAULT_PAGE_SIZE

    def __init__(self, params: ConnectorParams) -> None:
        super().__init__(params)
        self.bulk = BulkAPI(self.http, self.rest_url, self.domain, self.logger)
        self.channels = ChannelMembers(self.http, self.rest_url)

    def domain(self) -> str:
        return URL.from_string(self.base_url).origin

    def rest_url(self, *segments: str) -> URL:
        return self.url(REST_PREFIX, *segments)

    # -- read -----------------------------------------------------------------

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        params.validate()

        def _first_page() -> URL:
            return self.rest_url("queryAll" if params.deleted else "query").with_query("q", str(soql.read_soql(params)))

        url = page_url(params, _first_page)
        plan = ReadPlan(
            records=records_at("records"),
            next_page=json_relative_next_url(self.domain(), "nextRecordsUrl"),
            id_field="Id",
            headers={"Sforce-Query-Options": f"batchSize={self.page_size(params)}"},
            associations=(lambda record: extract_associations(record, params)) if params.associated_objects else None,
        )
        return read_page(self.http, url, plan, params, context=context)

    def get_record_count(self, params: RecordCountParams, *, context: Optional[CallContext] = None) -> RecordCountResult:
        params.validate()
        window = ReadParams(object_name=params.object_name, since=params.since, until=params.until)
        window.validate(require_fields=False)
        url = self.rest_url("query").with_query("q", str(soql.count_soql(params.object_name, window)))
        body = self.http.get(url, context=context).unmarshal()
        return RecordCountResult(count=Query(body).integer("totalSize"))

    # -- write ----------------------------------------------------------------

    def write(self, params: WriteParams, *, context: Optional[CallContext] = None) -> WriteResult:
        """Create with ``POST sobjects/X``; update with ``POST sobjects/X/id?_HttpMethod=PATCH``."""

        params.validate()
        url = self.rest_url("sobjects", params.object_name)
        if params.is_update:
            url.add_path(params.record_id).with_query("_HttpMethod", "PATCH")
        response = self.http.post(url, dict(params.record_data), headers=params.headers, context=context)
        return write_result(response, params, id_at("id"))

    def delete(self, params: DeleteParams, *, context: Optional[CallContext] = None) -> DeleteResult:
        params.validate()
        return delete_record(self.http, self.rest_url("sobjects", params.object_name, params.record_id), params, context=context)

    def batch_write(self, params: BatchWriteParams, *, context: Optional[CallContext] = None) -> BatchWriteResult:
        return batch_write(self.http, self.rest_url("composite/sobjects"), params, context=context)

    # -- metadata -------------------------------------------------------------

    def list_object_metadata(self, names: Iterable[str], *, context: Optional[CallContext] = None) -> ListObjectMetadataResult:
        unique = list(dict.fromkeys(name for name in names if name))
        if not unique:
            raise ConnectorError(ErrorTag.MISSING_OBJECTS, "at least one object name is required")

        merged = ListObjectMetadataResult()
        for start in range(0, len(unique), COMPOSITE_LIMIT):
            chunk = unique[start : start + COMPOSITE_LIMIT]
            partial = fetch_composite_metadata(self.http, self.rest_url("composite"), chunk, REST_PREFIX, context=context)
            merged.result.update(partial.result)
            merged.errors.update(partial.errors)
        return merged

    # -- bulk -----------------------------------------------------------------

    def bulk_write(
        self,
        object_name: str,
        external_id_field: str,
        csv_data: Any,
        mode: str = "upsert",
        *,
        context: Optional[CallContext] = None,
    ) -> BulkOperationResult:
        return self.bulk.bulk_write(object_name, external_id_field, csv_data, mode, context=context)

    def bulk_delete(self, object_name: str, csv_data: Any, *, context: Optional[CallContext] = None) -> BulkOperationResult:
        return self.bulk.bulk_delete(object_name, csv_data, context=context)

    def bulk_query(self, query: str, include_deleted: bool = False, *, context: Optional[CallContext] = None) -> JobInfo:
        return self.bulk.bulk_query(query, include_deleted, context=context)

    def get_job_info(self, job_id: str, *, context: Optional[CallContext] = None) -> JobInfo:
        return self.bulk.get_job_info(job_id, context=context)

    def get_job_results(self, job_id: str, *, context: Optional[CallContext] = None) -> JobResults:
        return self.bulk.get_job_results(job_id, context=context)

    def get_successful_job_results(self, job_id: str, *, context: Optional[CallContext] = None) -> httpx.Response:
        return self.bulk.get_successful_job_results(job_id, context=context)

    def get_bulk_query_info(self, job_id: str, *, context: Optional[CallContext] = None) -> JobInfo:
        return self.bulk.get_bulk_query_info(job_id, context=context)

    def get_bulk_query_results(self, job_id: str, *, context: Optional[CallContext] = None) -> httpx.Response:
        return self.bulk.get_bulk_query_results(job_id, context=context)

    def list_ingest_jobs(self, job_ids: Iterable[str] = (), *, context: Optional[CallContext] = None) -> List[JobInfo]:
        return self.bulk.list_ingest_jobs(job_ids, context=context)

    # -- change events --------------------------------------------------------

    def subscribe(self, params: SubscribeParams, *, context: Optional[CallContext] = None) -> SubscriptionResult:
        return self.channels.subscribe(params, context=context)

    def delete_subscription(self, result: SubscriptionResult, *, context: Optional[CallContext] = None) -> None:
        self.channels.delete_subscription(result, context=context)

    def verify_webhook_message(self, request: Any = None, params: Any = None) -> bool:
        """Salesforce delivers events over an authenticated channel, so every message is accepted."""

        return True
