from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx
import pytest

from saas_connectors import new_connector
from saas_connectors.config import ProviderSettings


def json_response(status: int, payload: Any, headers: Optional[Mapping[str, str]] = None) -> httpx.Response:
    return httpx.Response(status, json=payload, headers=headers)


class Recorder:
    """Route requests through a handler and keep every request seen."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def json_body(self, index: int = -1) -> Any:
        return json.loads(self.requests[index].content)


class Responder:
    """Return queued responses in order, regardless of the request."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if not self.responses:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        return self.responses.pop(0)


@pytest.fixture()
def http_client_factory():
    clients: List[httpx.Client] = []

    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> tuple[httpx.Client, Recorder]:
        recorder = Recorder(handler)
        client = httpx.Client(transport=httpx.MockTransport(recorder))
        clients.append(client)
        return client, recorder

    yield _build
    for client in clients:
        client.close()


@pytest.fixture()
def connector_factory(http_client_factory):
    def _build(
        provider: str,
        handler: Callable[[httpx.Request], httpx.Response],
        *,
        module: str = "",
        workspace: str = "",
        metadata: Optional[Dict[str, str]] = None,
        settings: Optional[ProviderSettings] = None,
    ):
        client, recorder = http_client_factory(handler)
        connector = new_connector(
            provider,
            client,
            module=module,
            workspace=workspace,
            metadata=metadata,
            settings=settings or ProviderSettings(),
        )
        return connector, recorder

    return _build


@pytest.fixture()
def new_york_local_time(monkeypatch):
    """Run the test with the process local time zone set to America/New_York."""

    monkeypatch.setenv("TZ", "America/New_York")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
