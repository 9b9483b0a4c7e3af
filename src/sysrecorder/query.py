"""
Read path for recorded samples.

Queries either return every record of a kind or the records whose timestamp
falls within a range typed by the operator. Range text is free form: the two
bounds are the timestamps found in it, in the order they appear. The bounds
are not reordered; an inverted range returns nothing.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import TYPE_CHECKING

from sysrecorder.errors import InputError
from sysrecorder.logging import get_logger
from sysrecorder.records import Record, RecordKind

if TYPE_CHECKING:
    from sysrecorder.storage import StorageHandle

logger = get_logger(__name__)

DATETIME_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}")


class QueryMode(str, Enum):
    """Shape of a query."""

    ALL = "all"
    BY_RANGE = "by_range"


class RangeProblem(str, Enum):
    """Why range text could not be used."""

    NO_RANGE = "no_range"
    ONE_DATETIME = "one_datetime"
    TOO_MANY = "too_many"


_RANGE_MESSAGES = {
    RangeProblem.NO_RANGE: "No range given.",
    RangeProblem.ONE_DATETIME: "Only one datetime given.",
    RangeProblem.TOO_MANY: "Too many datetimes given.",
}


def parse_range(text: str) -> tuple[str, str]:
    """
    Extract the (start, end) timestamps from free-form text.

    Args:
        text: Operator input, e.g. "from 2024-01-01 00:00:00 to 2024-01-02 00:00:00".

    Returns:
        The two timestamps in the order they appear.

    Raises:
        InputError: If the text holds zero, one, or more than two timestamps.
            `details["reason"]` is the RangeProblem value.
    """
    matches = DATETIME_PATTERN.findall(text)

    if len(matches) == 2:
        return matches[0], matches[1]

    if not matches:
        problem = RangeProblem.NO_RANGE
    elif len(matches) == 1:
        problem = RangeProblem.ONE_DATETIME
    else:
        problem = RangeProblem.TOO_MANY

    raise InputError(
        _RANGE_MESSAGES[problem],
        details={"reason": problem.value, "matches": matches},
    )


class QueryService:
    """
    Foreground queries over the shared storage handle.

    Example:
        >>> service = QueryService(storage)
        >>> await service.fetch_all(RecordKind.RAM)
        >>> await service.fetch_range(
        ...     RecordKind.DISK, "2024-01-01 00:00:00 - 2024-01-01 12:00:00"
        ... )
    """

    def __init__(self, storage: StorageHandle) -> None:
        self._storage = storage

    async def fetch_all(self, kind: RecordKind) -> list[Record]:
        """Every record of a kind, oldest first."""
        records = await self._storage.fetch_all(kind)
        logger.debug(
            "Query completed",
            extra={"kind": kind.value, "mode": QueryMode.ALL.value, "rows": len(records)},
        )
        return records

    async def fetch_between(self, kind: RecordKind, start: str, end: str) -> list[Record]:
        """Records of a kind with start <= timestamp <= end."""
        records = await self._storage.fetch_range(kind, start, end)
        logger.debug(
            "Query completed",
            extra={
                "kind": kind.value,
                "mode": QueryMode.BY_RANGE.value,
                "start": start,
                "end": end,
                "rows": len(records),
            },
        )
        return records

    async def fetch_range(self, kind: RecordKind, text: str) -> list[Record]:
        """
        Parse range text and query the records in that range.

        Raises:
            InputError: If the text does not hold exactly two timestamps.
        """
        start, end = parse_range(text)
        return await self.fetch_between(kind, start, end)
