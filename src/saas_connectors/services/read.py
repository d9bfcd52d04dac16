"""
Paginated read pipeline shared by every provider.

An adapter describes *where* records and continuation live in its responses
with a :class:`ReadPlan`; :func:`read_page` performs the request, extracts
records, computes the next page token, projects the requested fields and
returns a :class:`ReadResult`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..core.context import CallContext
from ..core.jsonquery import NotArray, Query, array_to_maps
from ..core.logging import get_logger
from ..core.models import ReadParams, ReadResult, ReadResultRow
from ..transport.client import JSONHTTPClient
from ..transport.urlbuilder import URL
from .concurrency import DEFAULT_MAX_CONCURRENCY, run_simultaneously
from .filtering import TimeFilter
from .pagination import NextPageFunc, RecordsFunc, link_header_or

LOGGER = get_logger(__name__)

AssociationsFunc = Callable[[Dict[str, Any]], Optional[Dict[str, List[Dict[str, Any]]]]]


def records_at(*path: str, optional: bool = False) -> RecordsFunc:
    """
    Extractor for the record array at ``path``.

    An empty path selects a root array. With ``optional`` a missing or null
    array yields no records instead of an error.
    """

    def _records(body: Any) -> List[Dict[str, Any]]:
        if not path:
            if body is None and optional:
                return []
            if not isinstance(body, list):
                raise NotArray()
            return array_to_maps(body)
        items = Query(body, *path[:-1]).array(path[-1], optional=optional)
        return array_to_maps(items)

    return _records


def _lookup_case_insensitive(record: Mapping[str, Any], name: str) -> Tuple[Any, bool]:
    if name in record:
        return record[name], True
    lowered = name.lower()
    for key, value in record.items():
        if key.lower() == lowered:
            return value, True
    return None, False


def _lookup_path(record: Mapping[str, Any], name: str) -> Tuple[Any, bool]:
    value, found = _lookup_case_insensitive(record, name)
    if found or "." not in name:
        return value, found
    current: Any = record
    for segment in name.split("."):
        if not isinstance(current, Mapping):
            return None, False
        current, found = _lookup_case_insensitive(current, segment)
        if not found:
            return None, False
    return current, True


def project(record: Mapping[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """
    Select ``fields`` from ``record`` case-insensitively.

    Keys of the result are the lowercase requested names. Fields absent from
    the record are omitted; dotted names reach into nested objects.
    """

    projected: Dict[str, Any] = {}
    for name in fields:
        value, found = _lookup_path(record, name)
        if found:
            projected[name.lower()] = value
    return projected


def flatten(record: Mapping[str, Any], key: str) -> Dict[str, Any]:
    """Merge the nested object at ``key`` into the root. Root values win on conflict."""

    nested = record.get(key)
    merged: Dict[str, Any] = dict(nested) if isinstance(nested, Mapping) else {}
    merged.update({name: value for name, value in record.items() if name != key})
    return merged


def record_id(record: Mapping[str, Any], id_field: str) -> Optional[str]:
    """Return the record identifier coerced to a string, ``None`` when absent."""

    if not id_field:
        return None
    value, found = _lookup_case_insensitive(record, id_field)
    if not found or value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


@dataclass(slots=True)
class ReadPlan:
    """
    Provider description of one read request.

    Parameters
    ----------
    records:
        Extracts the record list from the parsed body.
    next_page:
        Computes the continuation token; a ``Link: rel="next"`` response header takes precedence.
    id_field:
        Record key holding the identifier.
    flatten_key:
        Nested object merged into the root before projection (HubSpot ``properties``).
    time_filter:
        Client-side window applied after extraction.
    method:
        ``GET`` or ``POST`` (search variant).
    body:
        JSON body sent with ``POST``.
    headers:
        Request specific headers.
    associations:
        Extracts embedded related records from a raw record.
    """

    records: RecordsFunc
    next_page: NextPageFunc
    id_field: str = "id"
    flatten_key: str = ""
    time_filter: Optional[TimeFilter] = None
    method: str = "GET"
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    associations: Optional[AssociationsFunc] = None


def page_url(params: ReadParams, first_page: Callable[[], URL], exceptions: Optional[Mapping[str, str]] = None) -> URL:
    """Reparse the caller's next page token, or build the first page URL."""

    if params.next_page:
        url = URL.from_string(params.next_page)
        if exceptions:
            url.add_encoding_exceptions(exceptions)
        return url
    return first_page()


def build_row(record: Dict[str, Any], fields: Iterable[str], plan: ReadPlan) -> ReadResultRow:
    source = flatten(record, plan.flatten_key) if plan.flatten_key else record
    associations = plan.associations(record) if plan.associations is not None else None
    return ReadResultRow(
        fields=project(source, fields),
        raw=record,
        id=record_id(source, plan.id_field),
        associations=associations or None,
    )


def page_result(rows: List[ReadResultRow], next_page: str, errors: Optional[List[Exception]] = None) -> ReadResult:
    return ReadResult(rows=len(rows), data=rows, next_page=next_page, done=not next_page, errors=list(errors or []))


def read_page(
    client: JSONHTTPClient,
    url: URL,
    plan: ReadPlan,
    params: ReadParams,
    *,
    context: Optional[CallContext] = None,
) -> ReadResult:
    """
    Execute one page of a read.

    The caller has validated ``params`` and built ``url`` (first page or the
    reparsed next page token). A page without records is terminal.
    """

    if plan.method == "POST":
        response = client.post(url, plan.body, headers=plan.headers, context=context)
    else:
        response = client.get(url, headers=plan.headers, context=context)

    body, present = response.body()
    records = plan.records(body) if present else []
    next_page = link_header_or(plan.next_page)(body, url, response.headers) if records else ""
    if plan.time_filter is not None:
        records, next_page = plan.time_filter.apply(records, next_page, since=params.since, until=params.until)

    rows = [build_row(record, params.fields, plan) for record in records]
    LOGGER.debug(
        "Read page",
        extra={"object": params.object_name, "rows": len(rows), "has_next": bool(next_page)},
    )
    return page_result(rows, next_page)


def resolve_links(
    client: JSONHTTPClient,
    items: Sequence[Dict[str, Any]],
    href: Callable[[Dict[str, Any]], str],
    *,
    max_concurrent: int = DEFAULT_MAX_CONCURRENCY,
    context: Optional[CallContext] = None,
) -> Tuple[List[Dict[str, Any]], List[Exception]]:
    """
    Fetch the full record behind each link envelope in parallel.

    Results keep the input order. Items whose link or fetch failed are left out and
    their errors are returned alongside.
    """

    jobs = {str(index): _fetch_job(client, item, href, context) for index, item in enumerate(items)}

    outcome = run_simultaneously(jobs, max_concurrent=max_concurrent, context=context)
    records: List[Dict[str, Any]] = []
    errors: List[Exception] = []
    for index in range(len(items)):
        key = str(index)
        if key in outcome.errors:
            errors.append(outcome.errors[key])
        elif key in outcome.values:
            records.append(outcome.values[key])
    return records, errors


def _fetch_job(
    client: JSONHTTPClient,
    item: Dict[str, Any],
    href: Callable[[Dict[str, Any]], str],
    context: Optional[CallContext],
) -> Callable[[], Dict[str, Any]]:
    def _job() -> Dict[str, Any]:
        node = client.get(href(item), context=context).unmarshal()
        return Query(node).object("")

    return _job
