from __future__ import annotations

import logging

import httpx
import pytest

from saas_connectors.core.context import CallContext
from saas_connectors.core.errors import ErrorTag, HTTPError, has_tag
from saas_connectors.transport.client import CORRELATION_HEADER, JSONHTTPClient
from saas_connectors.transport.response import JSONHTTPResponse
from saas_connectors.transport.urlbuilder import URL

from .conftest import json_response


def _client(http_client_factory, handler, **kwargs):
    client, recorder = http_client_factory(handler)
    return JSONHTTPClient(http_client=client, provider="example", **kwargs), recorder


def test_get_parses_json_and_sends_default_headers(http_client_factory):
    client, recorder = _client(
        http_client_factory,
        lambda request: json_response(200, {"ok": True}),
        default_headers={"Intercom-Version": "2.11"},
    )

    response = client.get(URL.from_string("https://api.example.com/items?limit=5"))

    assert response.code == 200
    assert response.unmarshal() == {"ok": True}
    request = recorder.last
    assert request.headers["Accept"] == "application/json"
    assert request.headers["Intercom-Version"] == "2.11"
    assert request.headers[CORRELATION_HEADER]
    assert request.url.params["limit"] == "5"


def test_post_serialises_body(http_client_factory):
    client, recorder = _client(http_client_factory, lambda request: json_response(201, {"id": "1"}))

    client.post("https://api.example.com/items", {"name": "Acme"})

    assert recorder.last.method == "POST"
    assert recorder.last.headers["Content-Type"] == "application/json"
    assert recorder.json_body() == {"name": "Acme"}


def test_empty_body_is_absent_but_successful(http_client_factory):
    client, _ = _client(http_client_factory, lambda request: httpx.Response(204))

    response = client.delete("https://api.example.com/items/1")

    assert response.body() == (None, False)
    with pytest.raises(Exception) as excinfo:
        response.unmarshal()
    assert has_tag(excinfo.value, ErrorTag.EMPTY_JSON_RESPONSE)


def test_non_json_success_body_is_rejected(http_client_factory):
    client, _ = _client(
        http_client_factory,
        lambda request: httpx.Response(200, content=b"<html></html>", headers={"Content-Type": "text/html"}),
    )

    with pytest.raises(Exception) as excinfo:
        client.get("https://api.example.com/items")

    assert has_tag(excinfo.value, ErrorTag.NOT_JSON)


def test_body_without_content_type_is_rejected():
    response = httpx.Response(200, content=b'{"a": 1}')
    response.headers.pop("Content-Type", None)

    with pytest.raises(Exception) as excinfo:
        JSONHTTPResponse.from_response(response)

    assert has_tag(excinfo.value, ErrorTag.MISSING_CONTENT_TYPE)


def test_invalid_json_body_is_a_parse_error():
    response = JSONHTTPResponse(code=200, headers={"Content-Type": "application/json"}, raw=b"{oops")

    with pytest.raises(Exception) as excinfo:
        response.body()

    assert has_tag(excinfo.value, ErrorTag.PARSE_ERROR)


def test_non_2xx_is_interpreted_once(http_client_factory):
    client, _ = _client(
        http_client_factory,
        lambda request: json_response(429, {"message": "Too many requests"}, headers={"Retry-After": "10"}),
    )

    with pytest.raises(HTTPError) as excinfo:
        client.get("https://api.example.com/items")

    error = excinfo.value
    assert error.tag is ErrorTag.RATE_LIMITED
    assert error.message == "Too many requests"
    assert error.headers["retry-after"] == "10"


def test_transport_failure_becomes_network_error(http_client_factory):
    def _fail(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, recorder = _client(http_client_factory, _fail)

    with pytest.raises(Exception) as excinfo:
        client.get("https://api.example.com/items")

    assert has_tag(excinfo.value, ErrorTag.NETWORK)
    assert len(recorder.requests) == 1


def test_cancelled_context_prevents_request(http_client_factory):
    client, recorder = _client(http_client_factory, lambda request: json_response(200, {}))
    context = CallContext()
    context.cancel()

    with pytest.raises(Exception) as excinfo:
        client.get("https://api.example.com/items", context=context)

    assert has_tag(excinfo.value, ErrorTag.CANCELLED)
    assert recorder.requests == []


def test_put_csv_sends_text_csv(http_client_factory):
    client, recorder = _client(http_client_factory, lambda request: httpx.Response(201))

    client.put_csv("https://api.example.com/jobs/1/batches", b"Name\nAcme\n")

    assert recorder.last.headers["Content-Type"] == "text/csv"
    assert recorder.last.content == b"Name\nAcme\n"


def test_authorization_header_is_redacted_in_logs(http_client_factory, caplog):
    client, _ = _client(
        http_client_factory,
        lambda request: json_response(200, {}),
        default_headers={"Authorization": "Bearer secret-token"},
    )

    with caplog.at_level(logging.DEBUG, logger="saas_connectors"):
        client.get("https://api.example.com/items")

    assert "secret-token" not in caplog.text
    requests = [record for record in caplog.records if record.getMessage() == "HTTP request"]
    assert requests and requests[0].headers["Authorization"] == "<redacted>"


def test_put_sends_json_body(http_client_factory):
    client, recorder = _client(http_client_factory, lambda request: json_response(200, {"id": "7"}))

    response = client.put("https://api.example.com/items/7", {"name": "Acme"})

    assert recorder.last.method == "PUT"
    assert recorder.json_body() == {"name": "Acme"}
    assert response.code == 200


def test_expired_deadline_prevents_request(http_client_factory):
    client, recorder = _client(http_client_factory, lambda request: json_response(200, {}))

    with pytest.raises(Exception) as excinfo:
        client.get("https://api.example.com/items", context=CallContext.with_timeout(0))

    assert has_tag(excinfo.value, ErrorTag.CANCELLED)
    assert recorder.requests == []
