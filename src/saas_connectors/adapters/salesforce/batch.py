"""
Batch create/update through the sObject Collections API.

Records are posted to ``composite/sobjects`` with an ``attributes.type``
decoration. Response items are matched to request records by position.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

from ...core.context import CallContext
from ...core.errors import ConnectorError, ErrorTag, HTTPError
from ...core.models import BatchWriteParams, BatchWriteResult, BatchWriteType, WriteResult
from ...transport.client import JSONHTTPClient
from ...transport.urlbuilder import URL


def batch_payload(params: BatchWriteParams) -> Dict[str, Any]:
    return {
        "records": [{**dict(record), "attributes": {"type": params.object_name}} for record in params.records],
        "allOrNone": params.all_or_none,
    }


def item_result(item: Optional[Mapping[str, Any]]) -> WriteResult:
    """
    Convert one response item.

    A missing item means the record was not processed. An item without
    errors that still reports ``success: false`` is a provider level failure
    and raises ``batch-unprocessed-record``.
    """

    if item is None:
        return WriteResult(
            success=False,
            errors=[ConnectorError(ErrorTag.BATCH_UNPROCESSED_RECORD, "record was not processed")],
        )

    errors = item.get("errors") or []
    success = len(errors) == 0
    if success and not item.get("success"):
        code = item.get("errorCode")
        message = item.get("message")
        if code and message:
            detail = f"error {code}: {message}"
        elif message:
            detail = str(message)
        elif code:
            detail = f"error code: {code}"
        else:
            detail = "unexpected response format"
        raise ConnectorError(ErrorTag.BATCH_UNPROCESSED_RECORD, detail)

    return WriteResult(success=success, record_id=str(item.get("id") or ""), errors=list(errors))


def parse_batch_response(items: List[Any], params: BatchWriteParams) -> BatchWriteResult:
    total = len(params.records)
    results: List[WriteResult] = []
    unmatched: List[Any] = []
    for index in range(total):
        item = items[index] if index < len(items) and isinstance(items[index], Mapping) else None
        try:
            results.append(item_result(item))
        except ConnectorError as exc:
            unmatched.append(exc)

    if params.all_or_none and (unmatched or any(not result.success for result in results)):
        rolled_back = ConnectorError(ErrorTag.ALL_OR_NONE_ROLLED_BACK, "batch rolled back because a record failed")
        for result in results:
            if result.success:
                result.success = False
                result.errors = [rolled_back]
        return BatchWriteResult.from_results(results, unmatched, total=total, success_count=0)

    return BatchWriteResult.from_results(
        results,
        unmatched,
        total=total,
        success_count=sum(1 for result in results if result.success),
    )


def batch_write(
    client: JSONHTTPClient,
    url: URL,
    params: BatchWriteParams,
    *,
    context: Optional[CallContext] = None,
) -> BatchWriteResult:
    params.validate()
    payload = batch_payload(params)
    method = "PATCH" if params.type is BatchWriteType.UPDATE else "POST"
    total = len(params.records)

    try:
        response = client.send(method, url, body=payload, headers=params.headers, context=context)
        body, present = response.body()
    except HTTPError as exc:
        # Collections answer 400 with per-record errors when allOrNone rolls back.
        if exc.status_code != 400:
            raise
        if not exc.body.strip():
            return BatchWriteResult.from_results(
                [],
                [ConnectorError(ErrorTag.EMPTY_JSON_RESPONSE, exc.message)],
                total=total,
                success_count=0,
            )
        try:
            body, present = json.loads(exc.body), True
        except ValueError:
            raise exc from None

    if not present or not body:
        return BatchWriteResult.from_results([], total=total, success_count=total)
    if not isinstance(body, list):
        raise ConnectorError(ErrorTag.FAILED_TO_UNMARSHAL_BODY, "expected a JSON array of record results")
    return parse_batch_response(body, params)
