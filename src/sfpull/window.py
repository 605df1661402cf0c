from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from .exceptions import ConfigurationError

MAX_WINDOW = timedelta(days=30)


class FetchMode(enum.Enum):
    ALL = "all"
    UPDATED_SINCE = "updated"
    DELETED_SINCE = "deleted"

    @property
    def needs_window(self) -> bool:
        return self is not FetchMode.ALL


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class FetchWindow:
    """Half-open time window [start, end) for updated/deleted fetches.

    Naive datetimes are taken as UTC. The window must be non-empty and may
    span at most 30 days; both rules are checked on construction.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start is None or self.end is None:
            raise ConfigurationError("Start date and end date are both required.")
        start, end = _as_utc(self.start), _as_utc(self.end)
        if start >= end:
            raise ConfigurationError(
                f"Start date {start.isoformat()} must be before end date {end.isoformat()}."
            )
        if end - start > MAX_WINDOW:
            raise ConfigurationError(
                f"Window of {end - start} exceeds the {MAX_WINDOW.days}-day maximum."
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)


def parse_mode(value: Optional[str]) -> FetchMode:
    if value is None:
        return FetchMode.ALL
    try:
        return FetchMode(value.strip().lower())
    except ValueError as e:
        choices = ", ".join(m.value for m in FetchMode)
        raise ConfigurationError(f"Unknown fetch mode {value!r}; expected one of {choices}") from e
