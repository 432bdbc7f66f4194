"""Dashboard service: one method per API operation.

Combines the stored ledger, settings and notifications with the habit
engine. Every read recomputes summaries from the stored entries.
"""

import logging
import sqlite3
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..habits.achievements import check_transition
from ..habits.catalog import CATALOG, default_settings
from ..habits.ledger import local_date, parse_logged_at, validate_log_value
from ..habits.models import (
    HABIT_SLUGS,
    NOTIFICATION_TYPES,
    DailySnapshot,
    HabitLog,
    HabitRecord,
    HabitSummary,
    Notification,
    Reminder,
    UserBiometrics,
    UserProfile,
    WaterSettings,
)
from ..habits.progress import build_snapshot, summarize
from ..habits.reminders import schedule
from ..habits.targets import (
    merge_settings,
    recommended_water_target,
    resolve_target,
    validate_biometrics,
)
from ..storage.database import HabitDatabase

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 255

WELCOME_TITLE = "👋 ¡Bienvenido!"
WELCOME_MESSAGE = "Configura tus hábitos para recibir recordatorios personalizados."


def utc_now() -> datetime:
    """Current time, timezone-aware."""
    return datetime.now(timezone.utc)


@dataclass
class Dashboard:
    """A user's day: snapshot, habit summaries, reminders and notifications."""
    snapshot: DailySnapshot
    habits: list[HabitSummary]
    reminders: list[Reminder]
    notifications: list[Notification]


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone '{name}'", "timezone") from e


class DashboardService:
    """Authoritative habit tracking operations for authenticated users."""

    def __init__(
        self,
        db: HabitDatabase,
        clock: Callable[[], datetime] = utc_now,
        default_timezone: str = "America/Bogota",
        notifications_limit: int = 10,
        logs_default_limit: int = 10,
        logs_max_limit: int = 100,
    ):
        """
        Initialize service.

        Args:
            db: Storage
            clock: Returns the current aware datetime
            default_timezone: Zone for users who do not pick one
            notifications_limit: Notifications included in the dashboard
            logs_default_limit: Log history size when no limit is requested
            logs_max_limit: Largest accepted log history limit
        """
        self.db = db
        self.clock = clock
        self.default_timezone = default_timezone
        self.notifications_limit = notifications_limit
        self.logs_default_limit = logs_default_limit
        self.logs_max_limit = logs_max_limit

    def _require_user(self, user_id: int) -> UserProfile:
        user = self.db.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", "user")
        return user

    def _require_habit(self, user_id: int, habit_id: int) -> HabitRecord:
        habit = self.db.get_habit(user_id, habit_id)
        if habit is None:
            raise NotFoundError(f"Habit {habit_id} not found", "habit")
        return habit

    # Profile

    def setup_user(
        self,
        username: str,
        email: str,
        biometrics: UserBiometrics,
        tz_name: Optional[str] = None,
    ) -> UserProfile:
        """
        Provision a user with the default habits and a welcome alert.

        Returns:
            The new UserProfile
        """
        username = (username or "").strip()
        email = (email or "").strip().lower()
        if not username:
            raise ValidationError("username is required", "username")
        if not email:
            raise ValidationError("email is required", "email")

        validate_biometrics(biometrics)
        tz_name = tz_name or self.default_timezone
        get_zone(tz_name)

        if self.db.user_exists(username, email):
            raise ValidationError("A user with this username or email already exists", "email")

        settings = default_settings(recommended_water_target(biometrics))
        targets = {slug: resolve_target(slug, settings[slug], biometrics) for slug in HABIT_SLUGS}
        now = self.clock()

        try:
            user = self.db.create_user(username, email, biometrics, tz_name, settings, targets, now)
        except sqlite3.IntegrityError as e:
            raise ValidationError("A user with this username or email already exists", "email") from e
        except sqlite3.Error as e:
            logger.error(f"User setup failed for {email}: {e}")
            raise ConflictError("Could not create the user", "user.create") from e

        self.db.add_notification(
            user.id,
            Notification(
                title=WELCOME_TITLE,
                message=WELCOME_MESSAGE,
                type="alert",
                created_at=now,
            ),
        )
        return user

    def get_profile(self, user_id: int) -> UserProfile:
        """Get the caller's profile."""
        return self._require_user(user_id)

    def update_profile(
        self,
        user_id: int,
        username: Optional[str] = None,
        height: Optional[float] = None,
        weight: Optional[float] = None,
        age: Optional[int] = None,
        tz_name: Optional[str] = None,
    ) -> UserProfile:
        """
        Update profile fields.

        A biometrics change re-derives the recommended water target and
        stores it, with the water habit's target, in the same transaction as
        the profile.
        """
        user = self._require_user(user_id)

        if username is not None:
            username = username.strip()
            if not username:
                raise ValidationError("username must not be empty", "username")
        else:
            username = user.username

        biometrics = validate_biometrics(
            UserBiometrics(
                height=user.biometrics.height if height is None else height,
                weight=user.biometrics.weight if weight is None else weight,
                age=user.biometrics.age if age is None else age,
            )
        )

        tz_name = tz_name or user.timezone
        get_zone(tz_name)

        water = None
        if biometrics != user.biometrics:
            habit = next(
                (habit for habit in self.db.get_habits(user_id) if habit.slug == "water"), None
            )
            if habit is not None and isinstance(habit.settings, WaterSettings):
                settings = replace(
                    habit.settings,
                    recommended_target=recommended_water_target(biometrics),
                    custom_target=(
                        None if habit.settings.use_recommended_target else habit.settings.custom_target
                    ),
                )
                target = resolve_target("water", settings, biometrics, habit.target_value)
                water = (habit.id, settings, target)

        try:
            self.db.update_profile(user_id, username, biometrics, tz_name, water, self.clock())
        except sqlite3.IntegrityError as e:
            raise ValidationError("username is already taken", "username") from e
        except sqlite3.Error as e:
            logger.error(f"Profile update failed for user {user_id}: {e}")
            raise ConflictError("Could not update the profile", "profile.update") from e

        logger.info(f"Updated profile of user {user_id}")
        return self._require_user(user_id)

    # Dashboard

    def _refresh_reminders(
        self,
        user: UserProfile,
        habits: list[HabitRecord],
        now: datetime,
        day: date,
    ) -> list[Reminder]:
        """Reschedule a day's reminders and store them, keeping read state."""
        reminders = schedule(
            {habit.slug: habit.settings for habit in habits},
            now,
            day,
            user.biometrics,
            habit_ids={habit.slug: habit.id for habit in habits},
            previous=self.db.get_reminders(user.id, day),
        )
        return self.db.replace_reminders(user.id, day, reminders, now)

    def get_dashboard(self, user_id: int, day: Optional[date] = None) -> Dashboard:
        """
        Build the dashboard of one day.

        Summaries are recomputed from the day's entries and current settings;
        reminders are rescheduled and replace the day's stored reminders,
        keeping read state for reminders whose habit and time did not change.

        Args:
            user_id: Caller
            day: Calendar day; defaults to today in the user's zone

        Returns:
            Dashboard
        """
        user = self._require_user(user_id)
        now = self.clock().astimezone(get_zone(user.timezone))
        day = day or now.date()

        habits = self.db.get_habits(user_id)
        logs_by_habit = defaultdict(list)
        for log in self.db.logs_for_day(user_id, day):
            logs_by_habit[log.habit_id].append(log)

        summaries = [
            summarize(
                habit.slug,
                habit.settings,
                user.biometrics,
                logs_by_habit[habit.id],
                habit_id=habit.id,
                previous_target=habit.target_value,
            )
            for habit in habits
        ]

        reminders = self._refresh_reminders(user, habits, now, day)

        # Reminders are listed on their own
        notifications = self.db.list_notifications(
            user_id,
            include_read=True,
            limit=self.notifications_limit,
            newest_first=True,
            exclude_type="reminder",
        )

        snapshot = build_snapshot(day, summaries)
        logger.info(
            f"Dashboard for user {user_id} on {day}: "
            f"{snapshot.completed_habits}/{snapshot.total_habits} complete"
        )
        return Dashboard(
            snapshot=snapshot,
            habits=summaries,
            reminders=reminders,
            notifications=notifications,
        )

    # Settings

    def list_settings(self, user_id: int) -> list[HabitRecord]:
        """All habits of the caller with their settings."""
        self._require_user(user_id)
        return self.db.get_habits(user_id)

    def update_settings(self, user_id: int, slug: str, updates: Mapping[str, Any]) -> HabitRecord:
        """
        Shallow-merge a settings update into one habit.

        The merged settings are validated and the target resolved before any
        write; the parent target and the type-specific row are then written
        in one transaction.

        Args:
            user_id: Caller
            slug: Habit type being updated
            updates: Changed fields keyed by snake_case name

        Returns:
            The habit with its new settings and target

        Raises:
            ValidationError: bad field value
            NotFoundError: the user has no habit of this type
            ConflictError: the write failed and was rolled back
        """
        if slug not in CATALOG:
            raise ValidationError(f"Unknown habit type '{slug}'", "type")

        user = self._require_user(user_id)
        habit = next((habit for habit in self.db.get_habits(user_id) if habit.slug == slug), None)
        if habit is None:
            raise NotFoundError(f"Habit '{slug}' not found", "habit")

        merged = merge_settings(habit.settings, updates)
        if isinstance(merged, WaterSettings):
            merged = replace(merged, recommended_target=recommended_water_target(user.biometrics))
        target = resolve_target(slug, merged, user.biometrics, habit.target_value)

        try:
            self.db.save_settings(habit.id, merged, target, self.clock())
        except sqlite3.Error as e:
            logger.error(f"Settings update rolled back for habit {habit.id}: {e}")
            raise ConflictError("Could not update the habit settings", "settings.update") from e

        logger.info(f"Updated {slug} settings of user {user_id}, target {target}")
        updated = replace(habit, settings=merged, target_value=target)

        now = self.clock().astimezone(get_zone(user.timezone))
        habits = [updated if other.id == habit.id else other for other in self.db.get_habits(user_id)]
        self._refresh_reminders(user, habits, now, now.date())
        return updated

    # Logs

    def list_logs(
        self,
        user_id: int,
        habit_id: int,
        day: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[HabitLog]:
        """Log history of a habit, newest first."""
        habit = self._require_habit(user_id, habit_id)

        if limit is None:
            limit = self.logs_default_limit
        if limit < 1 or limit > self.logs_max_limit:
            raise ValidationError(f"limit must be between 1 and {self.logs_max_limit}", "limit")

        return self.db.list_logs(habit.id, day, limit)

    def append_log(
        self,
        user_id: int,
        habit_id: int,
        value: Any,
        notes: Optional[str] = None,
        logged_at: Union[str, datetime, None] = None,
    ) -> HabitLog:
        """
        Append a log entry and record an achievement if it completes the habit.

        The caller is expected to refresh the dashboard after a successful
        append.

        Returns:
            The created HabitLog
        """
        user = self._require_user(user_id)
        habit = self._require_habit(user_id, habit_id)
        zone = get_zone(user.timezone)
        now = self.clock()

        value = validate_log_value(value)
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"notes must be at most {MAX_NOTES_LENGTH} characters", "notes")
        moment = parse_logged_at(logged_at, zone, now)
        entry_date = local_date(moment, zone)

        day_logs = [log for log in self.db.logs_for_day(user_id, entry_date) if log.habit_id == habit.id]
        before = summarize(
            habit.slug, habit.settings, user.biometrics, day_logs, habit.id, habit.target_value
        )

        log = self.db.insert_log(habit.id, value, notes, moment, entry_date, now)
        logger.info(f"Logged {value} {habit.target_unit} for habit {habit.id} on {entry_date}")

        after = summarize(
            habit.slug, habit.settings, user.biometrics, [*day_logs, log], habit.id, habit.target_value
        )
        achievement = check_transition(before, after, now, habit_id=habit.id, day=entry_date)
        if achievement is not None:
            if self.db.add_notification(user_id, achievement) is None:
                logger.info(f"Achievement for habit {habit.id} on {entry_date} already recorded")
            else:
                logger.info(f"Habit {habit.id} completed on {entry_date}")

        return log

    # Notifications

    def list_notifications(
        self,
        user_id: int,
        include_read: bool = False,
        notification_type: Optional[str] = None,
    ) -> list[Notification]:
        """Notifications of the caller, oldest first."""
        self._require_user(user_id)
        if notification_type is not None and notification_type not in NOTIFICATION_TYPES:
            raise ValidationError(
                f"type must be one of {', '.join(NOTIFICATION_TYPES)}", "type"
            )
        return self.db.list_notifications(user_id, include_read, notification_type)

    def mark_read(self, user_id: int, notification_id: int) -> Notification:
        """Mark a notification as read; read_at of an already read one is kept."""
        notification = self.db.mark_notification_read(user_id, notification_id, self.clock())
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found", "notification")
        return notification


def demo_dashboard():
    """Demo: Print today's dashboard of a stored user."""
    import os

    from dotenv import load_dotenv

    load_dotenv()

    db_path = os.getenv("DATABASE_PATH", "data/habits.db")
    user_id = os.getenv("DEMO_USER_ID")

    if not user_id:
        print("Error: DEMO_USER_ID must be set in .env file")
        return

    service = DashboardService(HabitDatabase(db_path))
    dashboard = service.get_dashboard(int(user_id))
    snapshot = dashboard.snapshot

    print("\n" + "=" * 60)
    print(f"DASHBOARD {snapshot.date}")
    print("=" * 60 + "\n")

    print(
        f"Completed: {snapshot.completed_habits}/{snapshot.total_habits} "
        f"({snapshot.completion_percentage:.0%})"
    )
    print()

    for summary in dashboard.habits:
        status = "✓" if summary.is_complete else "•"
        print(f"{status} {summary.name}: {summary.progress_text}")

    print("\nReminders:")
    for reminder in dashboard.reminders:
        print(f"  {reminder.scheduled_for.strftime('%H:%M')} {reminder.title}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    demo_dashboard()
