from datetime import date, datetime, timezone

from app.habits.achievements import ACHIEVEMENT_TITLE, check_transition
from app.habits.catalog import default_settings
from app.habits.models import HabitLog
from app.habits.progress import summarize

NOW = datetime(2024, 3, 15, 14, 0, tzinfo=timezone.utc)
SETTINGS = default_settings(2000)["water"]


def summary_for(*values):
    logs = [
        HabitLog(index, 3, value, None, NOW, date(2024, 3, 15))
        for index, value in enumerate(values, start=1)
    ]
    return summarize("water", SETTINGS, None, logs, habit_id=3)


def test_fires_on_incomplete_to_complete():
    notification = check_transition(summary_for(1500), summary_for(1500, 500), NOW)

    assert notification is not None
    assert notification.type == "achievement"
    assert notification.title == ACHIEVEMENT_TITLE
    assert notification.message == "Completaste tu hábito de consumo de agua hoy."
    assert notification.habit_id == 3
    assert notification.created_at == NOW
    assert notification.for_date == date(2024, 3, 15)
    assert notification.read is False


def test_silent_when_still_incomplete():
    assert check_transition(summary_for(500), summary_for(500, 1499), NOW) is None


def test_silent_when_already_complete():
    assert check_transition(summary_for(2000), summary_for(2000, 250), NOW) is None


def test_uses_given_habit_and_day():
    notification = check_transition(
        summary_for(), summary_for(2500), NOW, habit_id="water", day=date(2024, 3, 14)
    )

    assert notification.habit_id == "water"
    assert notification.for_date == date(2024, 3, 14)


def test_crossing_target_over_several_logs_fires_once():
    values = [800, 800, 800, 300]
    fired = []

    for count in range(1, len(values) + 1):
        before = summary_for(*values[: count - 1])
        after = summary_for(*values[:count])
        notification = check_transition(before, after, NOW)
        if notification is not None:
            fired.append(count)

    assert fired == [3]
