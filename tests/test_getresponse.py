from __future__ import annotations

from datetime import datetime, timezone

import pytest

from saas_connectors.adapters.providers.getresponse import FilterSide, id_field, parse_filter, time_spec
from saas_connectors.core.models import ReadParams, WriteParams

from .conftest import json_response


@pytest.fixture()
def getresponse(connector_factory):
    def _build(handler):
        return connector_factory("getresponse", handler)

    return _build


def test_id_field_naming():
    assert id_field("contacts") == "contactId"
    assert id_field("custom-fields") == "customFieldId"
    assert id_field("addresses") == "addressId"
    assert id_field("rss-newsletters") == "rssNewsletterId"


def test_time_spec_sides():
    assert time_spec("contacts").side is FilterSide.SERVER
    assert time_spec("templates") == (FilterSide.CLIENT, "createdOn")
    assert time_spec("tags").field == ""


def test_parse_filter():
    assert parse_filter("query[name]=Ada & sort[createdOn]=desc") == {"query[name]": "Ada", "sort[createdOn]": "desc"}
    assert parse_filter("") == {}


def test_server_side_window_and_page_advance(getresponse):
    records = [{"contactId": "a", "email": "a@example.com"}, {"contactId": "b", "email": "b@example.com"}]
    connector, recorder = getresponse(lambda request: json_response(200, records))

    result = connector.read(
        ReadParams(
            object_name="contacts",
            fields={"email"},
            page_size=2,
            since=datetime(2024, 1, 1, tzinfo=timezone.utc),
            filter="query[name]=Ada",
        )
    )

    params = recorder.last.url.params
    assert params["query[createdOn][from]"] == "2024-01-01T00:00:00Z"
    assert params["query[name]"] == "Ada"
    assert params["perPage"] == "2"
    assert params["page"] == "1"
    assert [row.id for row in result.data] == ["a", "b"]
    assert "page=2" in result.next_page


def test_short_page_is_last(getresponse):
    connector, _ = getresponse(lambda request: json_response(200, [{"contactId": "a"}]))

    result = connector.read(ReadParams(object_name="contacts", fields={"contactId"}, page_size=2))

    assert result.done is True


def test_client_side_window_on_created_on(getresponse):
    records = [
        {"templateId": "old", "createdOn": "2023-06-01T00:00:00Z"},
        {"templateId": "new", "createdOn": "2024-02-01T00:00:00Z"},
    ]
    connector, recorder = getresponse(lambda request: json_response(200, records))

    result = connector.read(
        ReadParams(object_name="templates", fields={"templateId"}, since=datetime(2024, 1, 1, tzinfo=timezone.utc))
    )

    assert "query[createdOn][from]" not in recorder.last.url.params
    assert [row.id for row in result.data] == ["new"]


def test_update_posts_to_record_path(getresponse):
    connector, recorder = getresponse(lambda request: json_response(200, {"contactId": "abc", "name": "Ada"}))

    result = connector.write(WriteParams(object_name="contacts", record_data={"name": "Ada"}, record_id="abc"))

    assert recorder.last.method == "POST"
    assert recorder.last.url.path == "/v3/contacts/abc"
    assert result.record_id == "abc"


def test_create_reads_object_specific_id(getresponse):
    connector, _ = getresponse(lambda request: json_response(201, {"customFieldId": "cf1", "name": "age"}))

    result = connector.write(WriteParams(object_name="custom-fields", record_data={"name": "age"}))

    assert result.record_id == "cf1"
