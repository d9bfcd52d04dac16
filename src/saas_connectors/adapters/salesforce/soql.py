"""SOQL statement builder used by reads, record counts and bulk queries."""

from __future__ import annotations

from typing import Iterable, List, Optional

from ...core.models import ReadParams, format_rfc3339_utc

DEFAULT_PAGE_SIZE = 2000

# Parent objects reachable from a child only through a lookup field; SOQL
# subqueries work for child relationships alone.
PARENT_FIELDS = {
    "opportunity": {"account": "AccountId"},
}


def parent_field(object_name: str, associated_object: str) -> Optional[str]:
    return PARENT_FIELDS.get(object_name.lower(), {}).get(associated_object.lower())


class SOQL:
    """Small fluent builder producing ``SELECT ... FROM ... WHERE ... LIMIT ...``."""

    def __init__(self) -> None:
        self._fields: List[str] = []
        self._object = ""
        self._where: List[str] = []
        self._limit: Optional[int] = None
        self._count = False

    def select(self, fields: Iterable[str]) -> "SOQL":
        self._fields = list(fields)
        return self

    def count(self) -> "SOQL":
        self._count = True
        return self

    def from_(self, object_name: str) -> "SOQL":
        self._object = object_name
        return self

    def where(self, clause: str) -> "SOQL":
        if clause:
            self._where.append(clause)
        return self

    def limit(self, size: int) -> "SOQL":
        self._limit = size
        return self

    def __str__(self) -> str:
        projection = "COUNT()" if self._count else ",".join(self._fields)
        statement = f"SELECT {projection} FROM {self._object}"
        if self._where:
            statement += " WHERE " + " AND ".join(self._where)
        if self._limit is not None:
            statement += f" LIMIT {self._limit}"
        return statement


def _contains_field(fields: Iterable[str], name: str) -> bool:
    lowered = name.lower()
    return any(item.lower() == lowered for item in fields)


def association_fields(params: ReadParams) -> List[str]:
    """Requested fields plus what each associated object needs: a lookup field or a subquery."""

    fields = sorted(params.fields)
    for associated in params.associated_objects:
        lookup = parent_field(params.object_name, associated)
        if lookup:
            if not _contains_field(fields, lookup):
                fields.append(lookup)
        else:
            fields.append(f"(SELECT FIELDS(STANDARD) FROM {associated})")
    return fields


def add_window(soql: SOQL, params: ReadParams) -> SOQL:
    if params.since is not None:
        soql.where(f"SystemModstamp > {format_rfc3339_utc(params.since)}")
    if params.until is not None:
        soql.where(f"SystemModstamp <= {format_rfc3339_utc(params.until)}")
    if params.deleted:
        soql.where("IsDeleted = true")
    if params.filter:
        soql.where(params.filter)
    return soql


def read_soql(params: ReadParams, page_size: int = 0) -> SOQL:
    """SOQL for the first page of a read."""

    soql = SOQL().select(association_fields(params)).from_(params.object_name)
    add_window(soql, params)
    if page_size > 0:
        soql.limit(page_size)
    return soql


def count_soql(object_name: str, params: Optional[ReadParams] = None) -> SOQL:
    soql = SOQL().count().from_(object_name)
    if params is not None:
        add_window(soql, params)
    return soql
