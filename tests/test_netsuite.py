from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from saas_connectors.adapters.providers.netsuite import last_modified_query, self_link
from saas_connectors.core.errors import ConnectorError, ErrorTag
from saas_connectors.core.jsonquery import KeyNotFound
from saas_connectors.core.models import ReadParams

from .conftest import json_response

BASE = "https://123456.suitetalk.api.netsuite.com/services/rest/record/v1"
PATH = "/services/rest/record/v1"


def _envelope(record_id: str):
    return {"id": record_id, "links": [{"rel": "self", "href": f"{BASE}/customer/{record_id}"}]}


@pytest.fixture()
def netsuite(connector_factory):
    def _build(handler):
        return connector_factory("netsuite", handler, workspace="123456")

    return _build


def test_self_link():
    assert self_link(_envelope("7")) == f"{BASE}/customer/7"
    with pytest.raises(KeyNotFound):
        self_link({"id": "7", "links": [{"rel": "describedby", "href": "x"}]})


def test_last_modified_query():
    params = ReadParams(
        object_name="customer",
        fields={"id"},
        since=datetime(2024, 1, 2, 15, 4, tzinfo=timezone.utc),
        until=datetime(2024, 1, 3, 9, 0, tzinfo=timezone.utc),
    )

    assert last_modified_query(params) == (
        'lastModifiedDate ON_OR_AFTER "01/02/2024 03:04 PM" AND lastModifiedDate ON_OR_BEFORE "01/03/2024 09:00 AM"'
    )


def test_read_resolves_every_envelope(netsuite):
    listing = {
        "links": [{"rel": "next", "href": f"{BASE}/customer?limit=2&offset=2"}],
        "count": 2,
        "hasMore": True,
        "items": [_envelope("1"), _envelope("2")],
    }

    def handler(request):
        if request.url.path == f"{PATH}/customer":
            return json_response(200, listing)
        record_id = request.url.path.rsplit("/", 1)[-1]
        return json_response(200, {"id": record_id, "companyName": f"Company {record_id}"})

    connector, recorder = netsuite(handler)

    result = connector.read(
        ReadParams(
            object_name="customer",
            fields={"companyName"},
            page_size=2,
            since=datetime(2024, 1, 2, 15, 4, tzinfo=timezone.utc),
        )
    )

    listing_request = recorder.requests[0]
    assert listing_request.url.params["limit"] == "2"
    assert listing_request.url.params["q"] == 'lastModifiedDate ON_OR_AFTER "01/02/2024 03:04 PM"'
    assert len(recorder.requests) == 3
    assert [row.id for row in result.data] == ["1", "2"]
    assert result.data[1].fields == {"companyname": "Company 2"}
    assert result.next_page == f"{BASE}/customer?limit=2&offset=2"
    assert result.errors == []


def test_read_reports_records_that_failed_to_load(netsuite):
    listing = {"links": [], "items": [_envelope("1"), _envelope("2")]}

    def handler(request):
        if request.url.path == f"{PATH}/customer":
            return json_response(200, listing)
        if request.url.path.endswith("/2"):
            return json_response(404, {"title": "Record not found", "status": 404})
        return json_response(200, {"id": "1", "companyName": "Company 1"})

    connector, _ = netsuite(handler)

    result = connector.read(ReadParams(object_name="customer", fields={"companyName"}))

    assert [row.id for row in result.data] == ["1"]
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], ConnectorError)
    assert result.errors[0].tag is ErrorTag.NOT_FOUND
    assert result.done is True


def test_empty_listing_is_terminal(netsuite):
    connector, recorder = netsuite(lambda request: json_response(200, {"links": [], "count": 0, "items": []}))

    result = connector.read(ReadParams(object_name="customer", fields={"companyName"}))

    assert result.rows == 0
    assert result.done is True
    assert len(recorder.requests) == 1


def test_workspace_is_required(connector_factory):
    with pytest.raises(ConnectorError) as excinfo:
        connector_factory("netsuite", lambda request: json_response(200, {}))

    assert excinfo.value.tag is ErrorTag.MISSING_EXPECTED_VALUES


def test_envelope_without_self_link_is_reported_per_record(netsuite):
    listing = {"links": [], "items": [_envelope("1"), {"id": "2", "links": [{"rel": "describedby", "href": "x"}]}]}

    def handler(request):
        if request.url.path == f"{PATH}/customer":
            return json_response(200, listing)
        return json_response(200, {"id": "1", "companyName": "Company 1"})

    connector, recorder = netsuite(handler)

    result = connector.read(ReadParams(object_name="customer", fields={"id"}))

    assert [row.id for row in result.data] == ["1"]
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], KeyNotFound)
    assert len(recorder.requests) == 2


def test_last_modified_query_converts_to_utc(new_york_local_time):
    naive = ReadParams(object_name="customer", fields={"id"}, since=datetime(2024, 1, 2, 15, 4))
    offset = ReadParams(
        object_name="customer",
        fields={"id"},
        since=datetime(2024, 1, 2, 10, 4, tzinfo=timezone(timedelta(hours=-5))),
    )

    assert last_modified_query(naive) == 'lastModifiedDate ON_OR_AFTER "01/02/2024 03:04 PM"'
    assert last_modified_query(offset) == 'lastModifiedDate ON_OR_AFTER "01/02/2024 03:04 PM"'
