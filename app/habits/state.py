"""Immutable dashboard state and the pure transitions that update it.

Every transition validates its input first, then rebuilds summaries,
reminders and the day's snapshot from the full log ledger. The old state is
never modified, so a failed transition leaves the caller's state as it was.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, tzinfo
from itertools import count
from typing import Any, Iterable, Mapping, Optional, Union

from ..errors import NotFoundError
from .achievements import check_transition
from .catalog import default_settings
from .ledger import LogLedger, local_date
from .models import (
    HABIT_SLUGS,
    DailySnapshot,
    HabitLog,
    HabitSettings,
    HabitSummary,
    Notification,
    Reminder,
    UserBiometrics,
    WaterSettings,
)
from .progress import build_snapshot, summarize
from .reminders import schedule
from .targets import merge_settings, recommended_water_target, resolve_target, validate_biometrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardState:
    """Everything the dashboard shows for one user."""
    day: date
    tz: tzinfo
    biometrics: UserBiometrics
    settings: Mapping[str, HabitSettings]
    logs: tuple[HabitLog, ...] = ()
    summaries: Mapping[str, HabitSummary] = field(default_factory=dict)
    targets: Mapping[str, float] = field(default_factory=dict)
    reminders: tuple[Reminder, ...] = ()
    notifications: tuple[Notification, ...] = ()
    snapshots: Mapping[date, DailySnapshot] = field(default_factory=dict)

    @property
    def snapshot(self) -> Optional[DailySnapshot]:
        """Snapshot of the current day."""
        return self.snapshots.get(self.day)


def _next_ids(state: DashboardState):
    used = [item.id for item in (*state.reminders, *state.notifications) if item.id is not None]
    return count(max(used, default=0) + 1)


def _has_achievement(state: DashboardState, slug: str, day: date) -> bool:
    return any(
        item.type == "achievement" and item.habit_id == slug and item.for_date == day
        for item in state.notifications
    )


def _summaries_for(
    state: DashboardState, day: date, logs: Iterable[HabitLog]
) -> dict[str, HabitSummary]:
    ledger = LogLedger(state.tz, logs)
    return {
        slug: summarize(
            slug,
            state.settings[slug],
            state.biometrics,
            ledger.logs_for_day(slug, day),
            previous_target=state.targets.get(slug),
        )
        for slug in HABIT_SLUGS
        if slug in state.settings
    }


def _recompute(state: DashboardState, now: datetime) -> DashboardState:
    now = now.astimezone(state.tz)
    day = now.date()
    summaries = _summaries_for(state, day, state.logs)

    ids = _next_ids(state)
    reminders = tuple(
        reminder if reminder.id is not None else replace(reminder, id=next(ids))
        for reminder in schedule(
            state.settings, now, day, state.biometrics, previous=state.reminders
        )
    )

    snapshots = dict(state.snapshots)
    snapshots[day] = build_snapshot(day, summaries.values())

    return replace(
        state,
        day=day,
        summaries=summaries,
        targets={slug: summary.target_value for slug, summary in summaries.items()},
        reminders=reminders,
        snapshots=snapshots,
    )


def initial_state(
    biometrics: UserBiometrics,
    now: datetime,
    tz: tzinfo,
    settings: Optional[Mapping[str, HabitSettings]] = None,
) -> DashboardState:
    """
    Build the state of a freshly signed-in user.

    Args:
        biometrics: User measurements
        now: Current time
        tz: User's zone, defines calendar days
        settings: Stored settings; defaults to the catalog defaults

    Returns:
        DashboardState with summaries, reminders and today's snapshot
    """
    validate_biometrics(biometrics)
    if settings is None:
        settings = default_settings(recommended_water_target(biometrics))

    state = DashboardState(
        day=local_date(now, tz),
        tz=tz,
        biometrics=biometrics,
        settings=dict(settings),
    )
    return _recompute(state, now)


def record_log(
    state: DashboardState,
    slug: str,
    value,
    now: datetime,
    notes: Optional[str] = None,
    logged_at: Union[str, datetime, None] = None,
) -> tuple[DashboardState, HabitLog]:
    """
    Append a log entry and recompute.

    An achievement notification is added when the entry completes the
    habit for its day.

    Returns:
        Tuple of (new_state, created_log)
    """
    if slug not in state.settings:
        raise NotFoundError(f"Unknown habit '{slug}'", "habit")

    ledger = LogLedger(state.tz, state.logs)
    log = ledger.append(slug, value, notes=notes, logged_at=logged_at, now=now)

    before = _summaries_for(state, log.entry_date, state.logs)[slug]
    after = _summaries_for(state, log.entry_date, ledger.entries)[slug]

    notifications = state.notifications
    achievement = check_transition(before, after, now, habit_id=slug, day=log.entry_date)
    if achievement is not None and _has_achievement(state, slug, log.entry_date):
        logger.debug(f"Habit {slug} already has an achievement for {log.entry_date}")
        achievement = None
    if achievement is not None:
        achievement = replace(achievement, id=next(_next_ids(state)))
        notifications = (achievement, *notifications)
        logger.info(f"Habit {slug} completed for {log.entry_date}")

    updated = replace(state, logs=ledger.entries, notifications=notifications)
    return _recompute(updated, now), log


def change_settings(
    state: DashboardState,
    slug: str,
    updates: Mapping[str, Any],
    now: datetime,
) -> DashboardState:
    """Shallow-merge a settings update for one habit and recompute."""
    if slug not in state.settings:
        raise NotFoundError(f"Unknown habit '{slug}'", "habit")

    merged = merge_settings(state.settings[slug], updates)
    resolve_target(slug, merged, state.biometrics, state.targets.get(slug))

    settings = dict(state.settings)
    settings[slug] = merged
    return _recompute(replace(state, settings=settings), now)


def change_biometrics(
    state: DashboardState,
    biometrics: UserBiometrics,
    now: datetime,
) -> DashboardState:
    """Replace biometrics, re-derive the hydration recommendation and recompute."""
    validate_biometrics(biometrics)
    settings = dict(state.settings)

    water = settings.get("water")
    if isinstance(water, WaterSettings):
        settings["water"] = replace(
            water,
            recommended_target=recommended_water_target(biometrics),
            custom_target=None if water.use_recommended_target else water.custom_target,
        )

    return _recompute(replace(state, biometrics=biometrics, settings=settings), now)


def mark_read(state: DashboardState, notification_id: int, now: datetime) -> DashboardState:
    """Mark a reminder or notification as read."""
    found = False

    reminders = []
    for reminder in state.reminders:
        if reminder.id == notification_id:
            found = True
            reminder = replace(reminder, read=True)
        reminders.append(reminder)

    notifications = []
    for notification in state.notifications:
        if notification.id == notification_id:
            found = True
            if notification.read_at is None:
                notification = replace(notification, read_at=now)
        notifications.append(notification)

    if not found:
        raise NotFoundError(f"Notification {notification_id} not found", "notification")

    return replace(state, reminders=tuple(reminders), notifications=tuple(notifications))


def reconcile(state: DashboardState, summaries: Iterable[HabitSummary]) -> DashboardState:
    """
    Adopt the server's summaries in place of locally computed ones.

    Local computation is only an optimistic preview; the server's response
    is authoritative.
    """
    adopted = dict(state.summaries)
    for summary in summaries:
        if summary.slug in adopted:
            adopted[summary.slug] = summary

    snapshots = dict(state.snapshots)
    snapshots[state.day] = build_snapshot(state.day, adopted.values())

    return replace(
        state,
        summaries=adopted,
        targets={slug: summary.target_value for slug, summary in adopted.items()},
        snapshots=snapshots,
    )
