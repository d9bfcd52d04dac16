"""
Create, update and delete pipeline.

Adapters pick the URL and HTTP method; the helpers here send the request and
normalise the provider response into :class:`WriteResult` / :class:`DeleteResult`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from ..core.context import CallContext
from ..core.errors import ConnectorError, ErrorTag
from ..core.models import DeleteParams, DeleteResult, WriteParams, WriteResult
from ..transport.client import JSONHTTPClient
from ..transport.response import JSONHTTPResponse
from ..transport.urlbuilder import URL

IdExtractor = Callable[[Dict[str, Any], JSONHTTPResponse], Optional[str]]

DELETE_SUCCESS_CODES = frozenset({200, 202, 204})


def id_at(*path: str) -> IdExtractor:
    """Identifier extractor reading ``path`` from the response body."""

    def _extract(body: Dict[str, Any], response: JSONHTTPResponse) -> Optional[str]:
        current: Any = body
        for key in path:
            if not isinstance(current, Mapping):
                return None
            current = current.get(key)
        if current is None or isinstance(current, (dict, list)):
            return None
        return str(current)

    return _extract


@dataclass(slots=True)
class WritePlan:
    """
    Provider description of a write.

    Parameters
    ----------
    create_method / update_method:
        HTTP verbs for create and update.
    record_id:
        Extracts the identifier from a non-empty response.
    wrap:
        Builds the request body from the caller's record data.
    """

    create_method: str = "POST"
    update_method: str = "PATCH"
    record_id: IdExtractor = id_at("id")
    wrap: Optional[Callable[[Mapping[str, Any]], Any]] = None


def write_url(base: URL, params: WriteParams, *, id_in_brackets: bool = False) -> URL:
    """Append the record id of an update as a path segment or as ``(id)``."""

    url = base.copy()
    if params.is_update:
        if id_in_brackets:
            url.raw_add_to_path(f"({params.record_id})")
        else:
            url.add_path(params.record_id)
    return url


def write_record(
    client: JSONHTTPClient,
    url: URL,
    params: WriteParams,
    plan: WritePlan,
    *,
    context: Optional[CallContext] = None,
) -> WriteResult:
    """
    Send a create or update and interpret the response.

    An empty 2xx body is a success; an update echoes the input id. A body with
    an ``errors`` array succeeds only when the array is empty.
    """

    params.validate()
    payload = plan.wrap(params.record_data) if plan.wrap is not None else dict(params.record_data)
    method = plan.update_method if params.is_update else plan.create_method
    response = client.send(method, url, body=payload, headers=params.headers, context=context)
    return write_result(response, params, plan.record_id)


def write_result(response: JSONHTTPResponse, params: WriteParams, extract: IdExtractor) -> WriteResult:
    body, present = response.body()
    if not present:
        return WriteResult(success=True, record_id=params.record_id)
    if not isinstance(body, dict):
        raise ConnectorError(ErrorTag.FAILED_TO_UNMARSHAL_BODY, f"expected a JSON object in write response, got {type(body).__name__}")

    errors = body.get("errors")
    success = True
    error_list: list = []
    if isinstance(errors, list):
        error_list = errors
        success = len(errors) == 0
    identifier = extract(body, response) or params.record_id
    return WriteResult(success=success, record_id=identifier, errors=error_list, data=body)


def delete_record(
    client: JSONHTTPClient,
    url: URL,
    params: DeleteParams,
    *,
    context: Optional[CallContext] = None,
) -> DeleteResult:
    """Issue a DELETE; 200, 202 and 204 count as success."""

    params.validate()
    response = client.delete(url, context=context)
    if response.code in DELETE_SUCCESS_CODES:
        return DeleteResult(success=True)
    raise client.error_interpreter.unexpected_status(response, f"deleting {params.object_name}/{params.record_id}")
