from __future__ import annotations

from datetime import datetime, timezone

import pytest

from saas_connectors.core.errors import ErrorTag, has_tag
from saas_connectors.services.filtering import UNIX_SECONDS, Order, TimeFilter, parse_timestamp, time_filter

SINCE = datetime(2024, 1, 2, tzinfo=timezone.utc)
UNTIL = datetime(2024, 1, 4, tzinfo=timezone.utc)

RECORDS = [
    {"id": 1, "update_time": "2024-01-01 10:00:00"},
    {"id": 2, "update_time": "2024-01-02 10:00:00"},
    {"id": 3, "update_time": "2024-01-03 10:00:00"},
    {"id": 4, "update_time": "2024-01-05 10:00:00"},
    {"id": 5, "update_time": "2024-01-06 10:00:00"},
]


def test_chronological_stops_at_first_record_after_until():
    kept, next_page = time_filter(
        RECORDS,
        "next-token",
        order=Order.CHRONOLOGICAL,
        field="update_time",
        time_format="%Y-%m-%d %H:%M:%S",
        since=SINCE,
        until=UNTIL,
    )

    assert [record["id"] for record in kept] == [2, 3]
    assert next_page == ""


def test_chronological_keeps_token_when_window_not_passed():
    kept, next_page = TimeFilter(Order.CHRONOLOGICAL, "update_time", "%Y-%m-%d %H:%M:%S").apply(
        RECORDS[:3], "next-token", since=SINCE
    )

    assert [record["id"] for record in kept] == [2, 3]
    assert next_page == "next-token"


def test_reverse_order_stops_at_first_record_before_since():
    newest_first = list(reversed(RECORDS))

    kept, next_page = TimeFilter(Order.REVERSE, "update_time", "%Y-%m-%d %H:%M:%S").apply(
        newest_first, "next-token", since=SINCE, until=UNTIL
    )

    assert [record["id"] for record in kept] == [3, 2]
    assert next_page == ""


def test_unordered_keeps_server_token():
    records = [{"updated_at": 1704189600}, {"updated_at": 1704067200}, {"updated_at": 1704276000}]

    kept, next_page = TimeFilter(Order.UNORDERED, "updated_at", UNIX_SECONDS).apply(records, "cursor", since=SINCE, until=UNTIL)

    assert kept == [{"updated_at": 1704189600}, {"updated_at": 1704276000}]
    assert next_page == "cursor"


def test_empty_page_is_terminal():
    assert TimeFilter(Order.UNORDERED, "updated_at").apply([], "cursor", since=SINCE) == ([], "")


def test_no_window_passes_everything_through():
    kept, next_page = TimeFilter(Order.CHRONOLOGICAL, "update_time").apply(RECORDS, "cursor")

    assert kept == RECORDS
    assert next_page == "cursor"


def test_missing_timestamp_is_a_parse_error():
    with pytest.raises(Exception) as excinfo:
        TimeFilter(Order.UNORDERED, "updated_at").apply([{"id": 1}], "", since=SINCE)

    assert has_tag(excinfo.value, ErrorTag.PARSE_ERROR)


def test_parse_timestamp_formats():
    assert parse_timestamp("2024-01-02T03:04:05Z", "rfc3339") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_timestamp(0, UNIX_SECONDS) == datetime(1970, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(Exception):
        parse_timestamp(True, UNIX_SECONDS)
