"""
NetSuite SuiteTalk REST record connector.

A record list only carries link envelopes (``id`` plus ``links``); every
record is fetched through its ``self`` link with at most two requests in
flight. Records that fail to load are reported in ``ReadResult.errors``
while the rest of the page is returned.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ...core.context import CallContext
from ...core.jsonquery import KeyNotFound, Query
from ...core.models import ReadParams, ReadResult, as_utc
from ...services.pagination import json_link_rel
from ...services.read import ReadPlan, build_row, page_result, page_url, records_at, resolve_links
from ...transport.urlbuilder import URL
from ..base import BaseConnector

MAX_RECORDS_PER_PAGE = 1000
MAX_RECORDS_FETCHED_CONCURRENTLY = 2
LAST_MODIFIED_FORMAT = "%m/%d/%Y %I:%M %p"


def self_link(item: Dict[str, Any]) -> str:
    """``href`` of the ``rel == "self"`` entry of a record envelope."""

    for link in Query(item).array("links") or []:
        if isinstance(link, dict) and link.get("rel") == "self":
            return Query(link).string("href") or ""
    raise KeyNotFound("links[rel=self]")


def last_modified_query(params: ReadParams) -> str:
    clauses = []
    if params.since is not None:
        clauses.append(f'lastModifiedDate ON_OR_AFTER "{as_utc(params.since).strftime(LAST_MODIFIED_FORMAT)}"')
    if params.until is not None:
        clauses.append(f'lastModifiedDate ON_OR_BEFORE "{as_utc(params.until).strftime(LAST_MODIFIED_FORMAT)}"')
    return " AND ".join(clauses)


class NetSuiteConnector(BaseConnector):
    default_page_size = MAX_RECORDS_PER_PAGE
    max_page_size = MAX_RECORDS_PER_PAGE

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        params.validate()

        def _first_page() -> URL:
            url = self.url(params.object_name).with_query("limit", str(self.page_size(params)))
            query = last_modified_query(params)
            if query:
                url.with_query("q", query)
            return url

        plan = ReadPlan(records=records_at("items", optional=True), next_page=json_link_rel("next"))
        url = page_url(params, _first_page)
        response = self.http.get(url, context=context)
        body, present = response.body()
        envelopes = plan.records(body) if present else []
        if not envelopes:
            return page_result([], "")

        next_page = plan.next_page(body, url, response.headers)
        records, errors = resolve_links(
            self.http,
            envelopes,
            self_link,
            max_concurrent=min(self.max_concurrency, MAX_RECORDS_FETCHED_CONCURRENTLY),
            context=context,
        )
        if errors:
            self.logger.warning(
                "Some records could not be fetched",
                extra={"object": params.object_name, "failed": len(errors), "fetched": len(records)},
            )
        rows = [build_row(record, params.fields, plan) for record in records]
        return page_result(rows, next_page, errors)
