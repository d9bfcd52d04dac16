from __future__ import annotations

import httpx
import pytest

from saas_connectors.core.errors import ErrorTag, HTTPError
from saas_connectors.transport.interpreter import (
    DEFAULT_FORMATS,
    ErrorFormat,
    ErrorInterpreter,
    FormatSwitch,
    render_key,
    status_to_tag,
)


@pytest.mark.parametrize(
    ("code", "tag"),
    [
        (400, ErrorTag.BAD_REQUEST),
        (401, ErrorTag.UNAUTHORIZED),
        (403, ErrorTag.FORBIDDEN),
        (404, ErrorTag.NOT_FOUND),
        (429, ErrorTag.RATE_LIMITED),
        (500, ErrorTag.SERVER),
        (503, ErrorTag.SERVER),
        (418, ErrorTag.REQUEST_FAILED),
    ],
)
def test_status_to_tag_defaults(code, tag):
    assert status_to_tag(code) is tag


def test_status_overrides_win():
    assert status_to_tag(409, {409: ErrorTag.CONFLICT}) is ErrorTag.CONFLICT
    assert status_to_tag(409) is ErrorTag.BAD_REQUEST


def test_json_error_message_is_preserved():
    interpreter = ErrorInterpreter()
    response = httpx.Response(400, json={"error": {"code": "InvalidField", "message": "Field 'foo' does not exist"}})

    error = interpreter.interpret(response)

    assert isinstance(error, HTTPError)
    assert error.tag is ErrorTag.BAD_REQUEST
    assert error.status_code == 400
    assert "Field 'foo' does not exist" in str(error)


def test_provider_format_is_selected_before_defaults():
    formats = FormatSwitch(
        ErrorFormat(("category", "message"), render_key("message")),
        *DEFAULT_FORMATS.formats,
    )
    interpreter = ErrorInterpreter(formats=formats, status_overrides={409: ErrorTag.CONFLICT})
    response = httpx.Response(409, json={"status": "error", "category": "CONFLICT", "message": "Contact already exists"})

    error = interpreter.interpret(response)

    assert error.tag is ErrorTag.CONFLICT
    assert error.message == "Contact already exists"


def test_error_list_in_array_body():
    interpreter = ErrorInterpreter()
    response = httpx.Response(400, json=[{"errors": [{"message": "first"}, {"message": "second"}]}])

    assert interpreter.interpret(response).message == "first; second"


def test_xml_fault_message():
    body = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        "<soapenv:Envelope><soapenv:Body><soapenv:Fault>"
        "<faultcode>sf:INVALID_SESSION_ID</faultcode>"
        "<faultstring>Invalid Session ID found in SessionHeader</faultstring>"
        "</soapenv:Fault></soapenv:Body></soapenv:Envelope>"
    )
    response = httpx.Response(500, content=body.encode(), headers={"Content-Type": "text/xml; charset=utf-8"})

    error = ErrorInterpreter().interpret(response)

    assert error.tag is ErrorTag.SERVER
    assert "Invalid Session ID found in SessionHeader" in error.message


def test_html_error_page():
    body = "<html><head><title>502 Bad Gateway</title></head><body><p>The upstream server is unavailable.</p></body></html>"
    response = httpx.Response(502, content=body.encode(), headers={"Content-Type": "text/html"})

    error = ErrorInterpreter().interpret(response)

    assert error.message == "502 Bad Gateway - The upstream server is unavailable."


def test_empty_body_falls_back_to_reason_phrase():
    error = ErrorInterpreter().interpret(httpx.Response(404))

    assert error.tag is ErrorTag.NOT_FOUND
    assert error.message == "Not Found"
    assert error.body == b""


def test_unparsable_json_keeps_raw_text():
    response = httpx.Response(400, content=b"{not json", headers={"Content-Type": "application/json"})

    assert ErrorInterpreter().interpret(response).message == "{not json"
