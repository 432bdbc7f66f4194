import itertools
import math
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from app.errors import ValidationError
from app.habits.ledger import LogLedger, local_date, parse_logged_at, validate_log_value

BOGOTA = ZoneInfo("America/Bogota")
NOW = datetime(2024, 3, 15, 9, 0, tzinfo=BOGOTA)


@pytest.mark.parametrize("value", [0, -250, "250", None, True, math.nan, math.inf])
def test_validate_log_value_rejects(value):
    with pytest.raises(ValidationError) as exc:
        validate_log_value(value)

    assert exc.value.field == "value"


def test_validate_log_value_accepts_fractions():
    assert validate_log_value(0.5) == 0.5


def test_parse_logged_at_defaults_to_now():
    assert parse_logged_at(None, BOGOTA, NOW) == NOW


def test_parse_logged_at_accepts_utc_suffix():
    parsed = parse_logged_at("2024-03-15T03:00:00Z", BOGOTA)

    assert parsed == datetime(2024, 3, 15, 3, 0, tzinfo=timezone.utc)


def test_parse_logged_at_attaches_zone_to_naive_values():
    parsed = parse_logged_at("2024-03-15T21:30:00", BOGOTA)

    assert parsed.tzinfo is BOGOTA
    assert parsed.hour == 21


def test_parse_logged_at_rejects_garbage():
    with pytest.raises(ValidationError) as exc:
        parse_logged_at("yesterday", BOGOTA)

    assert exc.value.field == "loggedAt"


def test_local_date_uses_the_user_zone():
    # 03:00 UTC is still the previous evening in Bogota
    moment = datetime(2024, 3, 15, 3, 0, tzinfo=timezone.utc)

    assert local_date(moment, BOGOTA) == date(2024, 3, 14)
    assert local_date(moment, timezone.utc) == date(2024, 3, 15)


def test_append_assigns_ids_and_entry_date():
    ledger = LogLedger(BOGOTA)

    first = ledger.append("water", 250, now=NOW)
    second = ledger.append("water", 500, logged_at="2024-03-15T03:00:00Z", now=NOW)

    assert (first.id, second.id) == (1, 2)
    assert first.entry_date == date(2024, 3, 15)
    assert second.entry_date == date(2024, 3, 14)
    assert len(ledger) == 2


def test_append_rejects_invalid_value_without_storing():
    ledger = LogLedger(BOGOTA)

    with pytest.raises(ValidationError):
        ledger.append("water", 0, now=NOW)

    assert len(ledger) == 0


def test_entries_are_newest_first():
    ledger = LogLedger(BOGOTA)
    ledger.append("water", 250, logged_at="2024-03-15T08:00:00", now=NOW)
    ledger.append("water", 300, logged_at="2024-03-15T10:00:00", now=NOW)
    ledger.append("water", 350, logged_at="2024-03-15T09:00:00", now=NOW)

    assert [entry.value for entry in ledger.entries] == [300, 350, 250]


def test_logs_for_day_filters_by_habit_and_day():
    ledger = LogLedger(BOGOTA)
    ledger.append("water", 250, now=NOW)
    ledger.append("sleep", 7, now=NOW)
    ledger.append("water", 500, logged_at="2024-03-14T20:00:00", now=NOW)

    logs = ledger.logs_for_day("water", date(2024, 3, 15))

    assert [log.value for log in logs] == [250]


def test_sum_for_day_is_order_independent():
    values = [0.1, 0.2, 0.3, 1e16, 1.0, 2.5]

    totals = set()
    for order in itertools.permutations(values):
        ledger = LogLedger(BOGOTA)
        for value in order:
            ledger.append("water", value, now=NOW)
        totals.add(ledger.sum_for_day("water", date(2024, 3, 15)))

    assert len(totals) == 1


def test_ledger_continues_ids_from_existing_entries():
    ledger = LogLedger(BOGOTA)
    ledger.append("water", 250, now=NOW)

    copy = LogLedger(BOGOTA, ledger.entries)

    assert copy.append("water", 100, now=NOW).id == 2
