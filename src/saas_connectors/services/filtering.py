"""
Client-side time window filtering for providers without server-side
"modified since" support.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.errors import ConnectorError, ErrorTag
from ..core.models import as_utc

RFC3339 = "rfc3339"
UNIX_SECONDS = "unix"


class Order(str, Enum):
    """Order in which the provider returns records on the filtered field."""

    CHRONOLOGICAL = "chronological"
    REVERSE = "reverse"
    UNORDERED = "unordered"


def parse_timestamp(value: Any, time_format: str) -> datetime:
    """Parse a record timestamp; naive results are treated as UTC."""

    try:
        if time_format == UNIX_SECONDS:
            if isinstance(value, bool):
                raise TypeError("boolean is not a timestamp")
            moment = datetime.fromtimestamp(float(value), tz=timezone.utc)
        elif time_format == RFC3339:
            moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        else:
            moment = datetime.strptime(str(value), time_format)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ConnectorError(ErrorTag.PARSE_ERROR, f"cannot parse timestamp {value!r}: {exc}") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _aware(moment: Optional[datetime]) -> Optional[datetime]:
    return None if moment is None else as_utc(moment)


@dataclass(frozen=True, slots=True)
class TimeFilter:
    """
    Keep records whose ``field`` lies within ``[since, until]``.

    Parameters
    ----------
    order:
        Provider sort order on ``field``.
    field:
        Record key holding the timestamp. Empty disables filtering.
    time_format:
        ``strftime`` pattern, :data:`RFC3339` or :data:`UNIX_SECONDS`.
    """

    order: Order
    field: str = ""
    time_format: str = RFC3339

    def apply(
        self,
        records: Sequence[Dict[str, Any]],
        next_page: str,
        *,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> Tuple[List[Dict[str, Any]], str]:
        """
        Return the kept records and the next page token.

        For ordered providers the first record past the window in sort
        direction ends the stream and the token becomes empty. Unordered
        providers keep the server's token. An empty page is always terminal.
        """

        if not records:
            return [], ""
        since, until = _aware(since), _aware(until)
        if not self.field or (since is None and until is None):
            return list(records), next_page

        kept: List[Dict[str, Any]] = []
        for record in records:
            if self.field not in record or record[self.field] is None:
                raise ConnectorError(ErrorTag.PARSE_ERROR, f"record has no '{self.field}' timestamp")
            moment = parse_timestamp(record[self.field], self.time_format)
            after_until = until is not None and moment > until
            before_since = since is not None and moment < since
            if self.order is Order.CHRONOLOGICAL:
                if after_until:
                    return kept, ""
                if before_since:
                    continue
            elif self.order is Order.REVERSE:
                if before_since:
                    return kept, ""
                if after_until:
                    continue
            elif after_until or before_since:
                continue
            kept.append(record)
        return kept, next_page


def time_filter(
    records: Sequence[Dict[str, Any]],
    next_page: str,
    *,
    order: Order,
    field: str,
    time_format: str = RFC3339,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> Tuple[List[Dict[str, Any]], str]:
    """Functional shortcut for :meth:`TimeFilter.apply`."""

    return TimeFilter(order=order, field=field, time_format=time_format).apply(records, next_page, since=since, until=until)
