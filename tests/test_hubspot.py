from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from saas_connectors.adapters.providers.hubspot import last_modified_property, search_body
from saas_connectors.core.errors import ConnectorError, ErrorTag
from saas_connectors.core.models import DeleteParams, ReadParams, ValueType, WriteParams

from .conftest import json_response


@pytest.fixture()
def hubspot(connector_factory):
    def _build(handler):
        return connector_factory("hubspot", handler)

    return _build


def test_list_read_flattens_properties_and_follows_paging_link(hubspot):
    payload = {
        "results": [
            {"id": "51", "properties": {"email": "ada@example.com", "firstname": "Ada"}, "archived": False},
        ],
        "paging": {"next": {"after": "52", "link": "https://api.hubapi.com/crm/v3/objects/contacts?after=52&limit=100"}},
    }
    connector, recorder = hubspot(lambda request: json_response(200, payload))

    result = connector.read(ReadParams(object_name="contacts", fields={"email", "firstname"}))

    request = recorder.last
    assert request.method == "GET"
    assert request.url.path == "/crm/v3/objects/contacts"
    assert request.url.params["properties"] == "email,firstname"
    assert request.url.params["limit"] == "100"
    assert result.data[0].id == "51"
    assert result.data[0].fields == {"email": "ada@example.com", "firstname": "Ada"}
    assert result.data[0].raw == payload["results"][0]
    assert result.next_page == "https://api.hubapi.com/crm/v3/objects/contacts?after=52&limit=100"


def test_deleted_read_asks_for_archived(hubspot):
    connector, recorder = hubspot(lambda request: json_response(200, {"results": []}))

    result = connector.read(ReadParams(object_name="deals", fields={"dealname"}, deleted=True))

    assert recorder.last.url.params["archived"] == "true"
    assert result.done is True


def test_windowed_read_switches_to_search(hubspot):
    payload = {
        "total": 2,
        "results": [{"id": "7", "properties": {"email": "x@example.com", "lastmodifieddate": "2024-01-02T00:00:00Z"}}],
        "paging": {"next": {"after": "100"}},
    }
    connector, recorder = hubspot(lambda request: json_response(200, payload))

    result = connector.read(
        ReadParams(object_name="contacts", fields={"email"}, since=datetime(2024, 1, 1, tzinfo=timezone.utc))
    )

    assert recorder.last.method == "POST"
    assert recorder.last.url.path == "/crm/v3/objects/contacts/search"
    body = recorder.json_body()
    assert body["filterGroups"] == [
        {"filters": [{"propertyName": "lastmodifieddate", "operator": "GTE", "value": "2024-01-01T00:00:00Z"}]}
    ]
    assert body["sorts"] == [{"propertyName": "lastmodifieddate", "direction": "ASCENDING"}]
    assert result.next_page == "100"
    assert result.data[0].fields == {"email": "x@example.com"}


def test_search_sends_after_for_next_page():
    params = ReadParams(
        object_name="companies",
        fields={"name"},
        until=datetime(2024, 3, 1, tzinfo=timezone.utc),
        next_page="200",
    )

    body = search_body(params, 50)

    assert body["after"] == "200"
    assert body["limit"] == 50
    assert body["filterGroups"][0]["filters"][0]["propertyName"] == "hs_lastmodifieddate"
    assert body["filterGroups"][0]["filters"][0]["operator"] == "LTE"


def test_search_offset_limit(hubspot):
    connector, recorder = hubspot(lambda request: json_response(200, {"results": []}))
    params = ReadParams(
        object_name="contacts",
        fields={"email"},
        since=datetime(2024, 1, 1, tzinfo=timezone.utc),
        next_page="9000",
    )

    with pytest.raises(ConnectorError) as excinfo:
        connector.read(params)

    assert excinfo.value.tag is ErrorTag.RESULTS_LIMIT_EXCEEDED
    assert recorder.requests == []


def test_last_modified_property():
    assert last_modified_property("Contacts") == "lastmodifieddate"
    assert last_modified_property("deals") == "hs_lastmodifieddate"


def test_write_wraps_properties(hubspot):
    connector, recorder = hubspot(lambda request: json_response(201, {"id": "901", "properties": {"email": "n@example.com"}}))

    result = connector.write(WriteParams(object_name="contacts", record_data={"email": "n@example.com"}))

    assert recorder.json_body() == {"properties": {"email": "n@example.com"}}
    assert result.record_id == "901"
    assert result.success is True


def test_update_patches_record(hubspot):
    connector, recorder = hubspot(lambda request: json_response(200, {"id": "901"}))

    connector.write(WriteParams(object_name="contacts", record_data={"email": "n@example.com"}, record_id="901"))

    assert recorder.last.method == "PATCH"
    assert recorder.last.url.path == "/crm/v3/objects/contacts/901"


def test_conflict_maps_to_conflict_tag(hubspot):
    body = {"status": "error", "message": "Contact already exists", "category": "CONFLICT"}
    connector, _ = hubspot(lambda request: json_response(409, body))

    with pytest.raises(ConnectorError) as excinfo:
        connector.write(WriteParams(object_name="contacts", record_data={"email": "dup@example.com"}))

    assert excinfo.value.tag is ErrorTag.CONFLICT
    assert excinfo.value.message == "Contact already exists"


def test_delete_contact(hubspot):
    connector, recorder = hubspot(lambda request: httpx.Response(204))

    assert connector.delete(DeleteParams(object_name="contacts", record_id="901")).success is True
    assert recorder.last.url.path == "/crm/v3/objects/contacts/901"


def test_metadata_from_properties_endpoint(hubspot):
    payload = {
        "results": [
            {
                "name": "lifecyclestage",
                "label": "Lifecycle Stage",
                "type": "enumeration",
                "fieldType": "radio",
                "hubspotDefined": True,
                "modificationMetadata": {"readOnlyValue": False},
                "options": [{"label": "Lead", "value": "lead"}, {"label": "Customer", "value": "customer"}],
            },
            {"name": "favorite_color", "label": "Favorite color", "type": "string", "hubspotDefined": False},
            {"name": "hs_object_id", "label": "Record ID", "type": "number", "modificationMetadata": {"readOnlyValue": True}},
        ]
    }
    connector, recorder = hubspot(lambda request: json_response(200, payload))

    result = connector.list_object_metadata(["contacts"])

    assert recorder.last.url.path == "/crm/v3/properties/contacts"
    fields = result.result["contacts"].fields
    assert fields["lifecyclestage"].value_type is ValueType.SINGLE_SELECT
    assert [value.value for value in fields["lifecyclestage"].values] == ["lead", "customer"]
    assert fields["lifecyclestage"].is_custom is False
    assert fields["favorite_color"].is_custom is True
    assert fields["hs_object_id"].value_type is ValueType.FLOAT
    assert fields["hs_object_id"].read_only is True
