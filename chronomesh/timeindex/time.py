"""
Caller-facing time specification for bucket queries.

A FetchEntriesTime names either a whole UTC day or one hour of it. For
ordering, an absent hour counts as 00:00 of that day; for enumeration it
means "the whole day".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional

from chronomesh.core import constants as C
from chronomesh.core.errors import QueryError
from chronomesh.core.types import Result, Ok, Err

_TEXT_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:T(\d{2}))?$")


@dataclass(frozen=True, slots=True)
class FetchEntriesTime:
    """
    Day- or hour-granular UTC instant.

    Raises ValueError on construction if the fields do not name a real
    calendar day or the hour is outside 0-23. Use `create()` for a
    Result-returning constructor.
    """

    year: int
    month: int
    day: int
    hour: Optional[int] = None

    def __post_init__(self) -> None:
        # datetime performs the calendar check (month length, leap years)
        date(self.year, self.month, self.day)
        if self.hour is not None and not (C.FIRST_HOUR <= self.hour <= C.LAST_HOUR):
            raise ValueError(f"hour must be in [0, 23], got {self.hour}")

    @classmethod
    def create(
        cls,
        year: int,
        month: int,
        day: int,
        hour: Optional[int] = None,
    ) -> Result[FetchEntriesTime, QueryError]:
        try:
            return Ok(cls(year, month, day, hour))
        except ValueError as e:
            return Err(QueryError.invalid_time(
                str(e), year=year, month=month, day=day, hour=hour,
            ))

    @classmethod
    def parse(cls, text: str) -> Result[FetchEntriesTime, QueryError]:
        """Parse "YYYY-MM-DD" or "YYYY-MM-DDTHH"."""
        match = _TEXT_PATTERN.match(text.strip())
        if match is None:
            return Err(QueryError.invalid_time(
                "expected YYYY-MM-DD or YYYY-MM-DDTHH", text=text,
            ))
        year, month, day, hour = match.groups()
        return cls.create(
            int(year), int(month), int(day),
            int(hour) if hour is not None else None,
        )

    @classmethod
    def from_datetime(cls, dt: datetime, with_hour: bool = True) -> FetchEntriesTime:
        """Truncate a datetime (naive values are taken as UTC)."""
        if dt.tzinfo is not None:
            dt = dt.astimezone(timezone.utc)
        return cls(dt.year, dt.month, dt.day, dt.hour if with_hour else None)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result[FetchEntriesTime, QueryError]:
        try:
            return cls.create(
                int(data["year"]),
                int(data["month"]),
                int(data["day"]),
                int(data["hour"]) if data.get("hour") is not None else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            return Err(QueryError.invalid_time(f"bad field set: {e}"))

    @property
    def has_hour(self) -> bool:
        return self.hour is not None

    @property
    def date(self) -> date:
        return date(self.year, self.month, self.day)

    def to_datetime(self) -> datetime:
        """Start of the named hour, or midnight when the hour is absent."""
        return datetime(
            self.year, self.month, self.day, self.hour or 0, tzinfo=timezone.utc,
        )

    def is_before(self, other: FetchEntriesTime) -> bool:
        return self.to_datetime() < other.to_datetime()

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "hour": self.hour,
        }

    def __str__(self) -> str:
        text = f"{self.year:04d}-{self.month:02d}-{self.day:02d}"
        if self.hour is not None:
            text += f"T{self.hour:02d}"
        return text


def is_valid_range(
    start: FetchEntriesTime,
    end: FetchEntriesTime,
    allow_equal: bool = False,
) -> bool:
    """start must precede end; equality passes only when allowed."""
    if allow_equal:
        return start.to_datetime() <= end.to_datetime()
    return start.is_before(end)
