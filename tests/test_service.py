import sqlite3
from datetime import date, timedelta

import pytest

from app.dashboard.service import WELCOME_TITLE
from app.errors import ConflictError, NotFoundError, ValidationError
from app.habits.achievements import ACHIEVEMENT_TITLE
from app.habits.models import UserBiometrics

TODAY = date(2024, 3, 15)


def summary(dashboard, slug):
    return next(item for item in dashboard.habits if item.slug == slug)


def achievements(service, user):
    return service.list_notifications(user.id, include_read=True, notification_type="achievement")


# Setup and profile


def test_setup_user_creates_defaults(service, user):
    records = {record.slug: record for record in service.list_settings(user.id)}

    assert records["water"].target_value == 2375
    assert records["sleep"].target_value == 8
    assert records["exercise"].target_value == 30
    assert records["nutrition"].target_value == 3

    notifications = service.list_notifications(user.id)
    assert [item.title for item in notifications] == [WELCOME_TITLE]
    assert notifications[0].type == "alert"


def test_setup_user_normalizes_email(service, biometrics):
    profile = service.setup_user("  luis ", " Luis@Example.COM ", biometrics)

    assert profile.username == "luis"
    assert profile.email == "luis@example.com"
    assert profile.timezone == "America/Bogota"


def test_setup_user_rejects_duplicates(service, user, biometrics):
    with pytest.raises(ValidationError):
        service.setup_user("ana", "new@example.com", biometrics)


def test_setup_user_rejects_unknown_timezone(service, biometrics):
    with pytest.raises(ValidationError) as exc:
        service.setup_user("luis", "luis@example.com", biometrics, "Mars/Olympus")

    assert exc.value.field == "timezone"


def test_update_profile_rederives_water_target(service, user):
    profile = service.update_profile(user.id, weight=80, height=180)

    assert profile.biometrics == UserBiometrics(height=180, weight=80, age=30)
    water = next(record for record in service.list_settings(user.id) if record.slug == "water")
    assert water.settings.recommended_target == 2950
    assert water.target_value == 2950


def test_update_profile_keeps_custom_water_target(service, user):
    service.update_settings(user.id, "water", {"use_recommended_target": False, "custom_target": 3000})

    service.update_profile(user.id, weight=80)

    water = next(record for record in service.list_settings(user.id) if record.slug == "water")
    assert water.settings.recommended_target == 2900
    assert water.target_value == 3000


def test_update_profile_rejects_invalid_biometrics(service, user):
    with pytest.raises(ValidationError) as exc:
        service.update_profile(user.id, weight=0)

    assert exc.value.field == "weight"
    assert service.get_profile(user.id).biometrics.weight == 65


def test_get_profile_unknown_user(service):
    with pytest.raises(NotFoundError):
        service.get_profile(404)


# Dashboard


def test_dashboard_for_new_user(service, user):
    dashboard = service.get_dashboard(user.id)

    assert dashboard.snapshot.date == TODAY
    assert dashboard.snapshot.total_habits == 4
    assert dashboard.snapshot.completed_habits == 0
    assert [item.slug for item in dashboard.habits] == ["water", "sleep", "exercise", "nutrition"]
    assert summary(dashboard, "water").progress_text == "0ml de 2375ml"
    assert len(dashboard.reminders) == 6
    assert [item.title for item in dashboard.notifications] == [WELCOME_TITLE]


def test_dashboard_progress_from_logs(service, user, habit_ids):
    service.append_log(user.id, habit_ids["water"], 1000)
    service.append_log(user.id, habit_ids["water"], 500)

    dashboard = service.get_dashboard(user.id)

    water = summary(dashboard, "water")
    assert water.progress_value == 1500
    assert water.progress_text == "1.5L de 2.4L"
    assert water.habit_id == habit_ids["water"]


def test_dashboard_sleep_reminder_time(service, user):
    dashboard = service.get_dashboard(user.id)

    (sleep,) = [item for item in dashboard.reminders if item.slug == "sleep"]
    assert sleep.scheduled_for.hour == 22
    assert sleep.scheduled_for.minute == 0
    assert sleep.scheduled_for.date() == TODAY


def test_dashboard_for_another_day(service, user, habit_ids):
    service.append_log(user.id, habit_ids["sleep"], 7, logged_at="2024-03-14T07:00:00")

    dashboard = service.get_dashboard(user.id, date(2024, 3, 14))

    assert dashboard.snapshot.date == date(2024, 3, 14)
    assert summary(dashboard, "sleep").progress_value == 7
    assert summary(service.get_dashboard(user.id), "sleep").progress_value == 0


def test_dashboard_reminders_keep_read_state(service, user, clock):
    dashboard = service.get_dashboard(user.id)
    (sleep,) = [item for item in dashboard.reminders if item.slug == "sleep"]
    service.mark_read(user.id, sleep.id)

    clock.advance(minutes=10)
    service.update_settings(user.id, "exercise", {"daily_goal_minutes": 45})
    dashboard = service.get_dashboard(user.id)

    (sleep_again,) = [item for item in dashboard.reminders if item.slug == "sleep"]
    assert sleep_again.id == sleep.id
    assert sleep_again.read is True
    assert len(dashboard.reminders) == 6


def test_dashboard_does_not_accumulate_reminders(service, user, clock):
    service.get_dashboard(user.id)
    clock.advance(minutes=30)
    service.get_dashboard(user.id)

    reminders = service.list_notifications(user.id, include_read=True, notification_type="reminder")
    assert len(reminders) == 6


# Settings


def test_update_settings_echoes_target(service, user):
    record = service.update_settings(user.id, "exercise", {"daily_goal_minutes": 45})

    assert record.target_value == 45
    assert record.settings.daily_goal_minutes == 45
    assert record.settings.reminder_time == "18:00"


def test_update_settings_sleep_override(service, user):
    record = service.update_settings(user.id, "sleep", {"target_hours": 7.5})

    assert record.target_value == 7.5
    assert summary(service.get_dashboard(user.id), "sleep").target_value == 7.5


def test_update_settings_nutrition_keeps_target_without_meals(service, user):
    record = service.update_settings(
        user.id,
        "nutrition",
        {"meals": [{"id": "lunch", "label": "Almuerzo", "time": "13:00", "enabled": False}]},
    )

    assert record.target_value == 3


def test_update_settings_rejects_zero_custom_water_target(service, user):
    with pytest.raises(ValidationError) as exc:
        service.update_settings(
            user.id, "water", {"use_recommended_target": False, "custom_target": 0}
        )

    assert exc.value.field == "customTarget"


def test_update_settings_rejects_unknown_type(service, user):
    with pytest.raises(ValidationError) as exc:
        service.update_settings(user.id, "reading", {})

    assert exc.value.field == "type"


def test_update_settings_is_atomic(service, db, user, monkeypatch):
    before = summary(service.get_dashboard(user.id), "exercise").target_value

    def failing_write(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(db, "_write_variant", failing_write)
    with pytest.raises(ConflictError):
        service.update_settings(user.id, "exercise", {"daily_goal_minutes": 60})
    monkeypatch.undo()

    after = service.get_dashboard(user.id)
    assert summary(after, "exercise").target_value == before == 30
    exercise = next(record for record in service.list_settings(user.id) if record.slug == "exercise")
    assert exercise.settings.daily_goal_minutes == 30


# Logs and achievements


def test_append_log_returns_entry(service, user, habit_ids, clock):
    log = service.append_log(user.id, habit_ids["water"], 250, notes="con limón")

    assert log.value == 250
    assert log.notes == "con limón"
    assert log.entry_date == TODAY
    assert log.logged_at == clock.now


def test_append_log_rejects_invalid_value(service, user, habit_ids):
    with pytest.raises(ValidationError):
        service.append_log(user.id, habit_ids["water"], -1)

    assert service.list_logs(user.id, habit_ids["water"]) == []


def test_append_log_to_another_users_habit(service, user, habit_ids, biometrics):
    other = service.setup_user("luis", "luis@example.com", biometrics)

    with pytest.raises(NotFoundError):
        service.append_log(other.id, habit_ids["water"], 250)


def test_achievement_fires_once(service, user, habit_ids):
    service.append_log(user.id, habit_ids["water"], 1500)
    assert achievements(service, user) == []

    service.append_log(user.id, habit_ids["water"], 875)
    service.append_log(user.id, habit_ids["water"], 500)

    (achievement,) = achievements(service, user)
    assert achievement.title == ACHIEVEMENT_TITLE
    assert achievement.habit_id == habit_ids["water"]


def test_achievement_once_per_day_after_settings_change(service, user, habit_ids):
    service.append_log(user.id, habit_ids["exercise"], 30)
    service.update_settings(user.id, "exercise", {"daily_goal_minutes": 60})
    service.append_log(user.id, habit_ids["exercise"], 30)

    assert len(achievements(service, user)) == 1


def test_achievement_on_a_new_day(service, user, habit_ids, clock):
    service.append_log(user.id, habit_ids["exercise"], 30)
    clock.advance(days=1)
    service.append_log(user.id, habit_ids["exercise"], 30)

    assert len(achievements(service, user)) == 2


def test_list_logs_limit(service, user, habit_ids, clock):
    for minutes in range(5):
        clock.advance(minutes=1)
        service.append_log(user.id, habit_ids["water"], 100 + minutes)

    logs = service.list_logs(user.id, habit_ids["water"], limit=3)

    assert [log.value for log in logs] == [104, 103, 102]


@pytest.mark.parametrize("limit", [0, 101])
def test_list_logs_rejects_limit(service, user, habit_ids, limit):
    with pytest.raises(ValidationError) as exc:
        service.list_logs(user.id, habit_ids["water"], limit=limit)

    assert exc.value.field == "limit"


# Notifications


def test_list_notifications_rejects_unknown_type(service, user):
    with pytest.raises(ValidationError):
        service.list_notifications(user.id, notification_type="email")


def test_mark_read(service, user, clock):
    (welcome,) = service.list_notifications(user.id)

    read = service.mark_read(user.id, welcome.id)

    assert read.read_at == clock.now
    assert service.list_notifications(user.id) == []
    assert len(service.list_notifications(user.id, include_read=True)) == 1


def test_mark_read_is_idempotent(service, user, clock):
    (welcome,) = service.list_notifications(user.id)
    first = service.mark_read(user.id, welcome.id)

    clock.advance(hours=1)
    again = service.mark_read(user.id, welcome.id)

    assert again.read_at == first.read_at


def test_mark_read_unknown(service, user):
    with pytest.raises(NotFoundError):
        service.mark_read(user.id, 9999)


def test_service_clock_is_used_for_day_boundaries(service, user, habit_ids, clock):
    # 23:30 in Bogota is already the next day in UTC
    clock.now = clock.now.replace(hour=23, minute=30)
    log = service.append_log(user.id, habit_ids["water"], 250)

    assert log.entry_date == TODAY
    assert service.get_dashboard(user.id).snapshot.date == TODAY
    clock.advance(hours=1)
    assert service.get_dashboard(user.id).snapshot.date == TODAY + timedelta(days=1)
