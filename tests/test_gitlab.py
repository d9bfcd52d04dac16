from __future__ import annotations

from datetime import datetime, timezone

import pytest

from saas_connectors.core.errors import ConnectorError, ErrorTag
from saas_connectors.core.models import ReadParams, WriteParams

from .conftest import json_response


@pytest.fixture()
def gitlab(connector_factory):
    def _build(handler, metadata=None):
        return connector_factory("gitlab", handler, metadata=metadata)

    return _build


def test_read_follows_link_header(gitlab):
    next_link = "https://gitlab.com/api/v4/projects?page=2&per_page=100"
    headers = {
        "Link": f'<{next_link}>; rel="next", <https://gitlab.com/api/v4/projects?page=9&per_page=100>; rel="last"',
    }
    payload = [{"id": 1, "name": "demo", "updated_at": "2024-02-01T00:00:00Z"}]
    connector, recorder = gitlab(lambda request: json_response(200, payload, headers))

    result = connector.read(
        ReadParams(object_name="projects", fields={"name"}, since=datetime(2024, 1, 1, tzinfo=timezone.utc))
    )

    assert recorder.last.url.path == "/api/v4/projects"
    assert recorder.last.url.params["updated_after"] == "2024-01-01T00:00:00Z"
    assert result.next_page == next_link
    assert result.data[0].id == "1"
    assert result.data[0].fields == {"name": "demo"}


def test_read_without_link_is_last_page(gitlab):
    connector, recorder = gitlab(lambda request: json_response(200, [{"id": 2, "title": "Bug"}]))

    result = connector.read(
        ReadParams(object_name="groups", fields={"title"}, until=datetime(2024, 1, 1, tzinfo=timezone.utc))
    )

    assert "updated_before" not in recorder.last.url.params
    assert result.done is True


def test_unprocessable_entity(gitlab):
    connector, _ = gitlab(lambda request: json_response(422, {"message": {"name": ["can't be blank"]}}))

    with pytest.raises(ConnectorError) as excinfo:
        connector.write(WriteParams(object_name="projects", record_data={"name": ""}))

    assert excinfo.value.tag is ErrorTag.UNPROCESSABLE


def test_update_uses_put(gitlab):
    connector, recorder = gitlab(lambda request: json_response(200, {"id": 5, "title": "Renamed"}))

    result = connector.write(WriteParams(object_name="issues", record_data={"title": "Renamed"}, record_id="5"))

    assert recorder.last.method == "PUT"
    assert recorder.last.url.path == "/api/v4/issues/5"
    assert result.record_id == "5"


def test_webhook_token_verification(gitlab):
    connector, _ = gitlab(lambda request: json_response(200, []), metadata={"webhookSecret": "s3cret"})

    assert connector.verify_webhook_message({"X-Gitlab-Token": "s3cret"}) is True
    assert connector.verify_webhook_message({"x-gitlab-token": "s3cret"}) is True
    assert connector.verify_webhook_message({"X-Gitlab-Token": "other"}) is False
    assert connector.verify_webhook_message({}) is False


def test_webhook_verification_requires_secret(gitlab):
    connector, _ = gitlab(lambda request: json_response(200, []))

    with pytest.raises(ConnectorError) as excinfo:
        connector.verify_webhook_message({"X-Gitlab-Token": "s3cret"})

    assert excinfo.value.tag is ErrorTag.MISSING_EXPECTED_VALUES
