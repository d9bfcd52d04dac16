from __future__ import annotations

import httpx
import pytest

from saas_connectors.core.errors import ErrorTag, HTTPError, has_tag
from saas_connectors.core.models import DeleteParams, ValueType, WriteParams
from saas_connectors.services.metadata import (
    fetch_sample_metadata,
    field_values,
    infer_value_type,
    list_object_metadata,
    sample_metadata,
    translate_type,
)
from saas_connectors.services.read import records_at
from saas_connectors.services.write import WritePlan, delete_record, id_at, write_record, write_url
from saas_connectors.transport.client import JSONHTTPClient
from saas_connectors.transport.urlbuilder import URL

from .conftest import json_response

BASE = URL.from_string("https://api.example.com/v1/contacts")


def test_write_url_for_create_and_update():
    assert write_url(BASE, WriteParams("contacts", {"a": 1})).to_string() == "https://api.example.com/v1/contacts"
    assert write_url(BASE, WriteParams("contacts", {"a": 1}, record_id="7")).path == "/v1/contacts/7"
    assert write_url(BASE, WriteParams("contacts", {"a": 1}, record_id="7"), id_in_brackets=True).path == "/v1/contacts(7)"


def test_write_record_create_extracts_id(http_client_factory):
    client, recorder = http_client_factory(lambda request: json_response(201, {"data": {"id": 99, "name": "Ada"}}))

    result = write_record(
        JSONHTTPClient(http_client=client),
        BASE,
        WriteParams("contacts", {"name": "Ada"}),
        WritePlan(record_id=id_at("data", "id")),
    )

    assert result.success is True
    assert result.record_id == "99"
    assert result.data == {"data": {"id": 99, "name": "Ada"}}
    assert recorder.last.method == "POST"


def test_write_record_update_with_empty_body_echoes_id(http_client_factory):
    client, recorder = http_client_factory(lambda request: httpx.Response(204))
    params = WriteParams("contacts", {"name": "Ada"}, record_id="5")

    result = write_record(JSONHTTPClient(http_client=client), write_url(BASE, params), params, WritePlan(update_method="PUT"))

    assert result.success is True
    assert result.record_id == "5"
    assert recorder.last.method == "PUT"
    assert recorder.last.url.path == "/v1/contacts/5"


def test_write_record_with_errors_array_is_not_successful(http_client_factory):
    client, _ = http_client_factory(lambda request: json_response(200, {"id": "1", "errors": [{"message": "bad email"}]}))

    result = write_record(JSONHTTPClient(http_client=client), BASE, WriteParams("contacts", {"email": "x"}), WritePlan())

    assert result.success is False
    assert result.errors == [{"message": "bad email"}]


def test_write_record_wraps_payload(http_client_factory):
    client, recorder = http_client_factory(lambda request: json_response(201, {"id": "1"}))
    plan = WritePlan(wrap=lambda data: {"properties": dict(data)})

    write_record(JSONHTTPClient(http_client=client), BASE, WriteParams("contacts", {"email": "x"}), plan)

    assert recorder.json_body() == {"properties": {"email": "x"}}


def test_write_validation_happens_before_io(http_client_factory):
    client, recorder = http_client_factory(lambda request: json_response(200, {}))

    with pytest.raises(Exception) as excinfo:
        write_record(JSONHTTPClient(http_client=client), BASE, WriteParams("contacts"), WritePlan())

    assert has_tag(excinfo.value, ErrorTag.MISSING_RECORD_DATA)
    assert recorder.requests == []


@pytest.mark.parametrize("status", [200, 202, 204])
def test_delete_success_codes(http_client_factory, status):
    client, _ = http_client_factory(lambda request: httpx.Response(status))

    result = delete_record(JSONHTTPClient(http_client=client), BASE.copy().add_path("3"), DeleteParams("contacts", "3"))

    assert result.success is True


def test_delete_requires_record_id(http_client_factory):
    client, _ = http_client_factory(lambda request: httpx.Response(204))

    with pytest.raises(Exception) as excinfo:
        delete_record(JSONHTTPClient(http_client=client), BASE, DeleteParams("contacts"))

    assert has_tag(excinfo.value, ErrorTag.MISSING_RECORD_ID)


def test_delete_unexpected_success_status_renders_body(http_client_factory):
    client, _ = http_client_factory(lambda request: json_response(201, {"message": "record is locked"}))

    with pytest.raises(HTTPError) as excinfo:
        delete_record(JSONHTTPClient(http_client=client), BASE.copy().add_path("3"), DeleteParams("contacts", "3"))

    assert excinfo.value.tag is ErrorTag.REQUEST_FAILED
    assert excinfo.value.status_code == 201
    assert excinfo.value.message == "unexpected status 201 deleting contacts/3: record is locked"


def test_infer_value_type():
    assert infer_value_type(True) is ValueType.BOOLEAN
    assert infer_value_type(3) is ValueType.INT
    assert infer_value_type(3.5) is ValueType.FLOAT
    assert infer_value_type("x") is ValueType.STRING
    assert infer_value_type({"a": 1}) is ValueType.OTHER
    assert infer_value_type(None) is ValueType.OTHER


def test_translate_type_is_case_insensitive_with_other_fallback():
    table = {"string": ValueType.STRING}

    assert translate_type("STRING", table) is ValueType.STRING
    assert translate_type("id", table) is ValueType.OTHER


def test_field_values_from_options():
    values = field_values([{"value": "a", "label": "Alpha"}, {"value": None}, "b"])

    assert [(item.value, item.display_value) for item in values] == [("a", "Alpha"), ("b", "b")]
    assert field_values([]) is None


def test_sample_metadata_uses_keys_as_display_names():
    metadata = sample_metadata("tickets", {"id": 1, "subject": "Help", "open": True})

    assert metadata.display_name == "tickets"
    assert metadata.field_names == frozenset({"id", "subject", "open"})
    assert metadata.fields["open"].value_type is ValueType.BOOLEAN


def test_fetch_sample_metadata_without_records(http_client_factory):
    client, _ = http_client_factory(lambda request: json_response(200, {"data": []}))

    with pytest.raises(Exception) as excinfo:
        fetch_sample_metadata(JSONHTTPClient(http_client=client), BASE, "contacts", records_at("data", optional=True))

    assert has_tag(excinfo.value, ErrorTag.CANNOT_READ_METADATA)


def test_list_object_metadata_partial_failure():
    def _fetch(name):
        if name == "Broken":
            raise RuntimeError("boom")
        return sample_metadata(name, {"id": 1})

    result = list_object_metadata(["Contacts", "Broken", "Contacts"], _fetch)

    assert set(result.result) == {"contacts"}
    assert set(result.errors) == {"broken"}


def test_list_object_metadata_requires_names():
    with pytest.raises(Exception) as excinfo:
        list_object_metadata([], lambda name: sample_metadata(name, {}))

    assert has_tag(excinfo.value, ErrorTag.MISSING_OBJECTS)
