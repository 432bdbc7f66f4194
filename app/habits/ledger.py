"""Append-only log ledger and log input validation."""

import logging
import math
from datetime import date, datetime, timezone, tzinfo
from typing import Iterable, Optional, Union

from ..errors import ValidationError
from .models import HabitKey, HabitLog
from .targets import is_number

logger = logging.getLogger(__name__)


def validate_log_value(value) -> float:
    """
    Check a logged amount.

    Args:
        value: Amount to log (ml, hours, minutes or meals)

    Returns:
        The value, unchanged

    Raises:
        ValidationError: value is not a finite number greater than zero
    """
    if not is_number(value):
        raise ValidationError("value must be a number", "value")
    if value <= 0:
        raise ValidationError("value must be greater than zero", "value")
    return value


def parse_logged_at(
    value: Union[str, datetime, None],
    tz: tzinfo,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Turn a loggedAt input into a timezone-aware datetime.

    Args:
        value: ISO 8601 text, a datetime, or None for "now"
        tz: Zone used for naive values
        now: Current time; defaults to the wall clock

    Returns:
        Aware datetime
    """
    if value is None:
        return now if now is not None else datetime.now(tz)

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(f"loggedAt is not a valid timestamp: {value}", "loggedAt") from e
    else:
        raise ValidationError("loggedAt must be an ISO 8601 timestamp", "loggedAt")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def local_date(moment: datetime, tz: tzinfo) -> date:
    """Calendar day of a moment in the given zone."""
    return moment.astimezone(tz).date()


class LogLedger:
    """In-memory append-only collection of habit logs."""

    def __init__(self, tz: tzinfo = timezone.utc, entries: Iterable[HabitLog] = ()):
        """
        Initialize ledger.

        Args:
            tz: Zone that defines each entry's calendar day
            entries: Existing entries to start from
        """
        self.tz = tz
        self._entries: list[HabitLog] = list(entries)
        self._next_id = 1 + max(
            (entry.id for entry in self._entries if isinstance(entry.id, int)), default=0
        )

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[HabitLog, ...]:
        """All entries, newest first."""
        return tuple(sorted(self._entries, key=lambda entry: entry.logged_at, reverse=True))

    def append(
        self,
        habit_id: HabitKey,
        value,
        notes: Optional[str] = None,
        logged_at: Union[str, datetime, None] = None,
        now: Optional[datetime] = None,
    ) -> HabitLog:
        """
        Validate and append a new entry.

        Args:
            habit_id: Habit the entry belongs to
            value: Amount, must be > 0
            notes: Free text
            logged_at: When it happened; defaults to now
            now: Current time, for deterministic callers

        Returns:
            The created HabitLog
        """
        value = validate_log_value(value)
        moment = parse_logged_at(logged_at, self.tz, now)

        log = HabitLog(
            id=self._next_id,
            habit_id=habit_id,
            value=value,
            notes=notes,
            logged_at=moment,
            entry_date=local_date(moment, self.tz),
        )
        self._next_id += 1
        self._entries.append(log)

        logger.debug(f"Logged {value} for {habit_id} on {log.entry_date}")
        return log

    def logs_for_day(self, habit_id: HabitKey, day: date) -> list[HabitLog]:
        """Entries of one habit on one calendar day, newest first."""
        return [
            entry
            for entry in self.entries
            if entry.habit_id == habit_id and entry.entry_date == day
        ]

    def sum_for_day(self, habit_id: HabitKey, day: date) -> float:
        """Total logged value of one habit on one day (order independent)."""
        return math.fsum(
            entry.value
            for entry in self._entries
            if entry.habit_id == habit_id and entry.entry_date == day
        )
