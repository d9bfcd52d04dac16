"""
QuickBooks Online accounting connector.

Every read goes through the ``/query`` endpoint with a SQL-like statement.
Continuation is the next ``STARTPOSITION`` (1-based) and is only produced
when the previous page came back full.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Iterable, Mapping, Optional

from ...core.context import CallContext
from ...core.models import (
    ListObjectMetadataResult,
    ObjectMetadata,
    ReadParams,
    ReadResult,
    WriteParams,
    WriteResult,
    format_rfc3339_utc,
)
from ...services.metadata import fetch_sample_metadata, list_object_metadata
from ...services.pagination import NextPageFunc
from ...services.read import ReadPlan, read_page, records_at
from ...services.write import IdExtractor, WritePlan, write_record
from ...transport.interpreter import DEFAULT_FORMATS, ErrorFormat, FormatSwitch
from ...transport.response import JSONHTTPResponse
from ...transport.urlbuilder import URL
from ..base import BaseConnector, ensure_supported

REALM_ID_KEY = "realmId"
MAX_RESULTS = 1000
FIRST_POSITION = 1

# Objects whose query response key differs from the capitalised object name.
RESPONSE_KEYS: Mapping[str, str] = {
    "creditcardpayment": "CreditCardPaymentTxn",
}

# Objects (lower case) that expose custom fields when asked with ``include=enhancedAllCustomFields``.
CUSTOM_FIELD_OBJECTS = frozenset(
    {
        "customer",
        "vendor",
        "invoice",
        "salesreceipt",
        "estimate",
        "creditmemo",
        "refundreceipt",
        "purchaseorder",
        "bill",
    }
)

READ_OBJECTS = frozenset(
    {
        "account",
        "attachable",
        "bill",
        "billPayment",
        "budget",
        "class",
        "companyCurrency",
        "creditmemo",
        "creditCardPayment",
        "customer",
        "customerType",
        "department",
        "deposit",
        "employee",
        "estimate",
        "exchangeRate",
        "invoice",
        "item",
        "journalCode",
        "journalEntry",
        "payment",
        "paymentMethod",
        "purchase",
        "purchaseorder",
        "recurringTransaction",
        "refundreceipt",
        "reimburseCharge",
        "salesreceipt",
        "taxCode",
        "taxPayment",
        "taxRate",
        "taxAgency",
        "term",
        "timeActivity",
        "transfer",
        "vendor",
        "vendorCredit",
    }
)


def _capitalize(name: str) -> str:
    return name[:1].upper() + name[1:]


def response_key(object_name: str) -> str:
    return _capitalize(RESPONSE_KEYS.get(object_name.lower(), object_name))


def render_fault(body: Mapping[str, Any]) -> str:
    """Join ``Fault.Error[].Message`` (with ``Detail`` when present)."""

    fault = body.get("Fault")
    if not isinstance(fault, Mapping):
        return str(fault or "")
    messages = []
    for error in fault.get("Error") or []:
        if not isinstance(error, Mapping):
            continue
        message = str(error.get("Message") or "")
        detail = str(error.get("Detail") or "")
        text = f"{message}: {detail}" if message and detail else message or detail
        if text:
            messages.append(text)
    return "; ".join(messages) or str(fault.get("type") or "")


ERROR_FORMATS = FormatSwitch(
    ErrorFormat(("Fault",), render_fault),
    *DEFAULT_FORMATS.formats,
)


def build_query(params: ReadParams, start: int = FIRST_POSITION, max_results: int = MAX_RESULTS) -> str:
    """
    ``SELECT * FROM Account WHERE MetaData.LastUpdatedTime >= '...' STARTPOSITION 1 MAXRESULTS 1000``.
    """

    statement = f"SELECT * FROM {_capitalize(params.object_name)}"
    conditions = []
    if params.since is not None:
        conditions.append(f"MetaData.LastUpdatedTime >= '{format_rfc3339_utc(params.since)}'")
    if params.until is not None:
        conditions.append(f"MetaData.LastUpdatedTime <= '{format_rfc3339_utc(params.until)}'")
    if conditions:
        statement += " WHERE " + " AND ".join(conditions)
    return f"{statement} STARTPOSITION {start} MAXRESULTS {max_results}"


def start_position(token: str) -> int:
    return int(token) if token and token.isdigit() else FIRST_POSITION


def next_position(start: int, max_results: int, records: Any) -> NextPageFunc:
    """The next ``STARTPOSITION`` as a bare token when the page was full."""

    def _next(body: Any, url: URL, headers: Mapping[str, str]) -> str:
        if len(records(body)) < max_results:
            return ""
        return str(start + max_results)

    return _next


def _record_id(object_name: str) -> IdExtractor:
    key = response_key(object_name)

    def _extract(body: Dict[str, Any], response: JSONHTTPResponse) -> Optional[str]:
        node = body.get(key)
        if not isinstance(node, Mapping) or node.get("Id") is None:
            return None
        return str(node["Id"])

    return _extract


class QuickBooksConnector(BaseConnector):
    error_formats = ERROR_FORMATS
    default_page_size = MAX_RESULTS
    max_page_size = MAX_RESULTS

    @property
    def realm_id(self) -> str:
        return self.metadata_value(REALM_ID_KEY)

    def company_url(self, *segments: str) -> URL:
        return self.url(self.realm_id, *segments)

    def query_url(self, statement: str) -> URL:
        return self.company_url("query").with_query("query", statement)

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        params.validate()
        ensure_supported(params.object_name, READ_OBJECTS, "read")
        start = start_position(params.next_page)
        size = self.page_size(params)
        url = self.query_url(build_query(params, start, size))
        if params.object_name.lower() in CUSTOM_FIELD_OBJECTS:
            url.with_query("include", "enhancedAllCustomFields")

        records = records_at("QueryResponse", response_key(params.object_name), optional=True)
        plan = ReadPlan(records=records, next_page=next_position(start, size, records), id_field="Id")
        return read_page(self.http, url, plan, params, context=context)

    def write(self, params: WriteParams, *, context: Optional[CallContext] = None) -> WriteResult:
        """Creates and updates both ``POST /{object}``; updates carry ``Id`` and ``SyncToken`` in the body."""

        params.validate()
        record_data: Dict[str, Any] = dict(params.record_data)
        if params.is_update:
            record_data.setdefault("Id", params.record_id)
            record_data.setdefault("sparse", True)
        request = replace(params, record_data=record_data)
        plan = WritePlan(create_method="POST", update_method="POST", record_id=_record_id(params.object_name))
        result = write_record(self.http, self.company_url(params.object_name.lower()), request, plan, context=context)
        node = result.data.get(response_key(params.object_name)) if result.data else None
        if isinstance(node, dict):
            result.data = node
        return result

    def list_object_metadata(self, names: Iterable[str], *, context: Optional[CallContext] = None) -> ListObjectMetadataResult:
        def _fetch(name: str) -> ObjectMetadata:
            statement = f"SELECT * FROM {_capitalize(name)} STARTPOSITION {FIRST_POSITION} MAXRESULTS 1"
            records = records_at("QueryResponse", response_key(name), optional=True)
            metadata = fetch_sample_metadata(self.http, self.query_url(statement), name, records, context=context)
            metadata.display_name = " ".join(_capitalize(word) for word in name.split())
            return metadata

        return list_object_metadata(names, _fetch, max_concurrent=self.max_concurrency, context=context)

