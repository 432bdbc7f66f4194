"""Reminder scheduling from habit settings."""

import logging
from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Iterable, Mapping, Optional

from .models import (
    ExerciseSettings,
    HabitSettings,
    NutritionSettings,
    Reminder,
    SleepSettings,
    UserBiometrics,
    WaterSettings,
)
from .targets import parse_time, resolve_target, round_half_up

logger = logging.getLogger(__name__)


def _at(day: date, hhmm: str, now: datetime) -> datetime:
    """Datetime of an "HH:MM" time on a day, in the zone of now."""
    hour, minute = parse_time(hhmm)
    return datetime.combine(day, time(hour, minute), tzinfo=now.tzinfo)


def _water_reminders(settings: WaterSettings, now: datetime, biometrics) -> list[Reminder]:
    if settings.reminder_interval_minutes <= 0:
        return []

    target = resolve_target("water", settings, biometrics)
    liters = round_half_up(target / 1000)
    return [
        Reminder(
            slug="water",
            title="💧 Recordatorio de hidratación",
            message=f"Bebe agua para acercarte a tu meta diaria de {liters}L.",
            scheduled_for=now + timedelta(minutes=settings.reminder_interval_minutes),
        )
    ]


def _sleep_reminders(settings: SleepSettings, now: datetime, day: date) -> list[Reminder]:
    if not settings.reminder_enabled:
        return []

    bedtime = _at(day, settings.bed_time, now)
    return [
        Reminder(
            slug="sleep",
            title="🌙 Hora de prepararte para dormir",
            message=f"Ve cerrando tu día para descansar a las {settings.bed_time}.",
            scheduled_for=bedtime - timedelta(minutes=settings.reminder_advance_minutes),
        )
    ]


def _nutrition_reminders(settings: NutritionSettings, now: datetime, day: date) -> list[Reminder]:
    if not settings.reminders_enabled:
        return []

    return [
        Reminder(
            slug="nutrition",
            title=f"🍽️ {meal.label}",
            message=f"Es momento de tu {meal.label.lower()}.",
            scheduled_for=_at(day, meal.time, now),
        )
        for meal in settings.meals
        if meal.enabled
    ]


def _exercise_reminders(settings: ExerciseSettings, now: datetime, day: date) -> list[Reminder]:
    if not settings.reminder_enabled:
        return []

    return [
        Reminder(
            slug="exercise",
            title="🏃 Hora de moverte",
            message=f"Reserva {settings.daily_goal_minutes} minutos para tu ejercicio de hoy.",
            scheduled_for=_at(day, settings.reminder_time, now),
        )
    ]


def schedule(
    all_settings: Mapping[str, HabitSettings],
    now: datetime,
    day: Optional[date] = None,
    biometrics: Optional[UserBiometrics] = None,
    habit_ids: Optional[Mapping[str, int]] = None,
    previous: Iterable[Reminder] = (),
) -> list[Reminder]:
    """
    Compute the reminders of all habits in one pass.

    Args:
        all_settings: Settings keyed by habit slug
        now: Current time; its zone is used for time-of-day reminders
        day: Day the time-of-day reminders fall on; defaults to now's date
        biometrics: User measurements for the hydration target
        habit_ids: Stored habit ids keyed by slug
        previous: Reminders from the last run; a reminder with the same
            (slug, scheduled_for) keeps its id and read state; each earlier
            reminder is carried to at most one new one

    Returns:
        Reminders ordered by scheduled_for, ties in emission order
    """
    day = day or now.date()
    habit_ids = habit_ids or {}

    items: list[Reminder] = []
    if "water" in all_settings:
        items += _water_reminders(all_settings["water"], now, biometrics)
    if "sleep" in all_settings:
        items += _sleep_reminders(all_settings["sleep"], now, day)
    if "nutrition" in all_settings:
        items += _nutrition_reminders(all_settings["nutrition"], now, day)
    if "exercise" in all_settings:
        items += _exercise_reminders(all_settings["exercise"], now, day)

    # each earlier reminder is claimed at most once, in emission order
    known = defaultdict(list)
    for reminder in previous:
        known[reminder.key].append(reminder)

    reminders = []
    for item in items:
        earlier = known[item.key].pop(0) if known.get(item.key) else None
        reminders.append(
            replace(
                item,
                habit_id=habit_ids.get(item.slug),
                id=earlier.id if earlier else None,
                read=earlier.read if earlier else False,
            )
        )

    reminders.sort(key=lambda reminder: reminder.scheduled_for)
    logger.debug(f"Scheduled {len(reminders)} reminders for {day}")
    return reminders
