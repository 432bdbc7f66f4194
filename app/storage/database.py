"""SQLite storage for users, habits, settings, logs and notifications."""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterator, Mapping, Optional

from ..errors import UnexpectedError
from ..habits.catalog import get_meta
from ..habits.models import (
    HABIT_SLUGS,
    ExerciseSettings,
    HabitLog,
    HabitRecord,
    HabitSettings,
    Meal,
    Notification,
    NutritionSettings,
    Reminder,
    SleepSettings,
    UserBiometrics,
    UserProfile,
    WaterSettings,
)

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL UNIQUE,
        height_cm REAL NOT NULL,
        weight_kg REAL NOT NULL,
        age INTEGER NOT NULL,
        timezone TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS user_habits (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        slug TEXT NOT NULL,
        target_value REAL NOT NULL,
        target_unit TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (user_id, slug)
    );

    CREATE TABLE IF NOT EXISTS water_settings (
        user_habit_id INTEGER PRIMARY KEY REFERENCES user_habits(id) ON DELETE CASCADE,
        use_recommended_target INTEGER NOT NULL,
        recommended_target_ml INTEGER NOT NULL,
        custom_target_ml INTEGER,
        reminder_interval_minutes INTEGER NOT NULL,
        last_recalculated_at TEXT
    );

    CREATE TABLE IF NOT EXISTS sleep_schedules (
        user_habit_id INTEGER PRIMARY KEY REFERENCES user_habits(id) ON DELETE CASCADE,
        bed_time TEXT NOT NULL,
        wake_time TEXT NOT NULL,
        reminder_enabled INTEGER NOT NULL,
        reminder_advance_minutes INTEGER NOT NULL,
        target_hours REAL
    );

    CREATE TABLE IF NOT EXISTS exercise_preferences (
        user_habit_id INTEGER PRIMARY KEY REFERENCES user_habits(id) ON DELETE CASCADE,
        reminder_enabled INTEGER NOT NULL,
        reminder_time TEXT NOT NULL,
        daily_goal_minutes INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS nutrition_settings (
        user_habit_id INTEGER PRIMARY KEY REFERENCES user_habits(id) ON DELETE CASCADE,
        reminders_enabled INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS nutrition_meals (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_habit_id INTEGER NOT NULL REFERENCES user_habits(id) ON DELETE CASCADE,
        meal_code TEXT NOT NULL,
        label TEXT NOT NULL,
        scheduled_time TEXT NOT NULL,
        enabled INTEGER NOT NULL,
        position INTEGER NOT NULL,
        UNIQUE (user_habit_id, meal_code)
    );

    CREATE TABLE IF NOT EXISTS habit_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_habit_id INTEGER NOT NULL REFERENCES user_habits(id) ON DELETE CASCADE,
        entry_date TEXT NOT NULL,
        logged_at TEXT NOT NULL,
        value REAL NOT NULL CHECK (value > 0),
        notes TEXT,
        created_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_entries_habit_date
        ON habit_entries (user_habit_id, entry_date);

    CREATE TABLE IF NOT EXISTS notifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        user_habit_id INTEGER REFERENCES user_habits(id) ON DELETE SET NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('reminder', 'achievement', 'alert')),
        channel TEXT NOT NULL DEFAULT 'in_app',
        scheduled_for TEXT,
        for_date TEXT,
        read_at TEXT,
        created_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_notifications_user
        ON notifications (user_id, type, for_date);

    CREATE UNIQUE INDEX IF NOT EXISTS uq_achievement_per_day
        ON notifications (user_habit_id, for_date) WHERE type = 'achievement';
"""


def _iso(moment: Optional[datetime]) -> Optional[str]:
    """Store datetimes as UTC ISO text so they sort as strings."""
    if moment is None:
        return None
    return moment.astimezone(timezone.utc).isoformat()


def _parse(text: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(text) if text else None


class HabitDatabase:
    """SQLite database for habit tracking."""

    def __init__(self, db_path: str = "data/habits.db"):
        """Initialize database."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        Open a connection scoped to one transaction.

        Commits when the block finishes, rolls back every write of the block
        when it raises.
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self):
        """Create database tables if they don't exist."""
        with self._connect() as conn:
            conn.executescript(SCHEMA)
        logger.info(f"Database initialized at {self.db_path}")

    # Users

    def create_user(
        self,
        username: str,
        email: str,
        biometrics: UserBiometrics,
        tz_name: str,
        settings: Mapping[str, HabitSettings],
        targets: Mapping[str, float],
        now: datetime,
    ) -> UserProfile:
        """
        Create a user together with one habit per slug and its settings.

        Args:
            username: Unique display name
            email: Unique email
            biometrics: Height, weight and age
            tz_name: IANA zone name
            settings: Initial settings keyed by slug
            targets: Initial resolved targets keyed by slug
            now: Creation time

        Returns:
            The stored UserProfile
        """
        stamp = _iso(now)
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO users (username, email, height_cm, weight_kg, age, timezone,
                                   created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    username,
                    email,
                    biometrics.height,
                    biometrics.weight,
                    biometrics.age,
                    tz_name,
                    stamp,
                    stamp,
                ),
            )
            user_id = cursor.lastrowid

            for slug in HABIT_SLUGS:
                cursor = conn.execute(
                    """
                    INSERT INTO user_habits (user_id, slug, target_value, target_unit,
                                             created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (user_id, slug, targets[slug], get_meta(slug).unit, stamp, stamp),
                )
                self._write_variant(conn, cursor.lastrowid, settings[slug], now)

        logger.info(f"Created user: {username} ({user_id})")
        return self.get_user(user_id)

    def get_user(self, user_id: int) -> Optional[UserProfile]:
        """Get user by id."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()

        if not row:
            return None

        return UserProfile(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            biometrics=UserBiometrics(
                height=row["height_cm"],
                weight=row["weight_kg"],
                age=row["age"],
            ),
            timezone=row["timezone"],
            created_at=_parse(row["created_at"]),
        )

    def user_exists(self, username: str, email: str) -> bool:
        """Check whether the username or email is already taken."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM users WHERE username = ? OR email = ?", (username, email)
            ).fetchone()
        return row is not None

    def update_profile(
        self,
        user_id: int,
        username: str,
        biometrics: UserBiometrics,
        tz_name: str,
        water: Optional[tuple[int, WaterSettings, float]],
        now: datetime,
    ):
        """
        Update profile fields and, atomically, the derived water target.

        Args:
            user_id: User to update
            username: New or unchanged username
            biometrics: New or unchanged biometrics
            tz_name: New or unchanged zone
            water: (habit_id, settings, target) of the water habit, or None
            now: Update time
        """
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE users
                SET username = ?, height_cm = ?, weight_kg = ?, age = ?, timezone = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    username,
                    biometrics.height,
                    biometrics.weight,
                    biometrics.age,
                    tz_name,
                    _iso(now),
                    user_id,
                ),
            )
            if water is not None:
                habit_id, settings, target = water
                self._write_target(conn, habit_id, target, now)
                self._write_variant(conn, habit_id, settings, now)

    # Habits and settings

    def get_habits(self, user_id: int) -> list[HabitRecord]:
        """Get all habits of a user with their settings, in catalog order."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM user_habits WHERE user_id = ?", (user_id,)
            ).fetchall()
            habits = [self._row_to_habit(conn, row) for row in rows]

        return sorted(habits, key=lambda habit: HABIT_SLUGS.index(habit.slug))

    def get_habit(self, user_id: int, habit_id: int) -> Optional[HabitRecord]:
        """Get one habit, only if it belongs to the user."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_habits WHERE id = ? AND user_id = ?", (habit_id, user_id)
            ).fetchone()
            return self._row_to_habit(conn, row) if row else None

    def save_settings(
        self,
        habit_id: int,
        settings: HabitSettings,
        target_value: float,
        now: datetime,
    ):
        """
        Store new settings and the target resolved from them.

        Both writes share one transaction: either both commit or neither does.
        """
        with self._connect() as conn:
            self._write_target(conn, habit_id, target_value, now)
            self._write_variant(conn, habit_id, settings, now)
        logger.info(f"Saved {settings.type} settings for habit {habit_id}")

    def _write_target(self, conn: sqlite3.Connection, habit_id: int, target: float, now: datetime):
        conn.execute(
            "UPDATE user_habits SET target_value = ?, updated_at = ? WHERE id = ?",
            (target, _iso(now), habit_id),
        )

    def _write_variant(
        self,
        conn: sqlite3.Connection,
        habit_id: int,
        settings: HabitSettings,
        now: datetime,
    ):
        """Write the type-specific settings row(s) of a habit."""
        if isinstance(settings, WaterSettings):
            conn.execute(
                """
                INSERT OR REPLACE INTO water_settings (
                    user_habit_id, use_recommended_target, recommended_target_ml,
                    custom_target_ml, reminder_interval_minutes, last_recalculated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    habit_id,
                    int(settings.use_recommended_target),
                    settings.recommended_target,
                    settings.custom_target,
                    settings.reminder_interval_minutes,
                    _iso(now),
                ),
            )
        elif isinstance(settings, SleepSettings):
            conn.execute(
                """
                INSERT OR REPLACE INTO sleep_schedules (
                    user_habit_id, bed_time, wake_time, reminder_enabled,
                    reminder_advance_minutes, target_hours
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    habit_id,
                    settings.bed_time,
                    settings.wake_time,
                    int(settings.reminder_enabled),
                    settings.reminder_advance_minutes,
                    settings.target_hours,
                ),
            )
        elif isinstance(settings, ExerciseSettings):
            conn.execute(
                """
                INSERT OR REPLACE INTO exercise_preferences (
                    user_habit_id, reminder_enabled, reminder_time, daily_goal_minutes
                ) VALUES (?, ?, ?, ?)
                """,
                (
                    habit_id,
                    int(settings.reminder_enabled),
                    settings.reminder_time,
                    settings.daily_goal_minutes,
                ),
            )
        elif isinstance(settings, NutritionSettings):
            conn.execute(
                """
                INSERT OR REPLACE INTO nutrition_settings (user_habit_id, reminders_enabled)
                VALUES (?, ?)
                """,
                (habit_id, int(settings.reminders_enabled)),
            )
            conn.execute("DELETE FROM nutrition_meals WHERE user_habit_id = ?", (habit_id,))
            conn.executemany(
                """
                INSERT INTO nutrition_meals (
                    user_habit_id, meal_code, label, scheduled_time, enabled, position
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (habit_id, meal.id, meal.label, meal.time, int(meal.enabled), position)
                    for position, meal in enumerate(settings.meals)
                ],
            )
        else:
            raise UnexpectedError(f"Unsupported settings: {type(settings).__name__}")

    def _row_to_habit(self, conn: sqlite3.Connection, row: sqlite3.Row) -> HabitRecord:
        return HabitRecord(
            id=row["id"],
            slug=row["slug"],
            target_value=row["target_value"],
            target_unit=row["target_unit"],
            settings=self._read_variant(conn, row["id"], row["slug"]),
        )

    def _settings_row(self, conn: sqlite3.Connection, table: str, habit_id: int) -> sqlite3.Row:
        row = conn.execute(f"SELECT * FROM {table} WHERE user_habit_id = ?", (habit_id,)).fetchone()
        if row is None:
            raise UnexpectedError(f"Habit {habit_id} has no row in {table}")
        return row

    def _read_variant(self, conn: sqlite3.Connection, habit_id: int, slug: str) -> HabitSettings:
        if slug == "water":
            row = self._settings_row(conn, "water_settings", habit_id)
            return WaterSettings(
                reminder_interval_minutes=row["reminder_interval_minutes"],
                use_recommended_target=bool(row["use_recommended_target"]),
                custom_target=row["custom_target_ml"],
                recommended_target=row["recommended_target_ml"],
            )

        if slug == "sleep":
            row = self._settings_row(conn, "sleep_schedules", habit_id)
            return SleepSettings(
                bed_time=row["bed_time"],
                wake_time=row["wake_time"],
                reminder_enabled=bool(row["reminder_enabled"]),
                reminder_advance_minutes=row["reminder_advance_minutes"],
                target_hours=row["target_hours"],
            )

        if slug == "exercise":
            row = self._settings_row(conn, "exercise_preferences", habit_id)
            return ExerciseSettings(
                daily_goal_minutes=row["daily_goal_minutes"],
                reminder_enabled=bool(row["reminder_enabled"]),
                reminder_time=row["reminder_time"],
            )

        if slug == "nutrition":
            row = self._settings_row(conn, "nutrition_settings", habit_id)
            meals = conn.execute(
                "SELECT * FROM nutrition_meals WHERE user_habit_id = ? ORDER BY position",
                (habit_id,),
            ).fetchall()
            return NutritionSettings(
                reminders_enabled=bool(row["reminders_enabled"]),
                meals=tuple(
                    Meal(
                        id=meal["meal_code"],
                        label=meal["label"],
                        time=meal["scheduled_time"],
                        enabled=bool(meal["enabled"]),
                    )
                    for meal in meals
                ),
            )

        raise UnexpectedError(f"Unknown habit slug in storage: {slug}")

    # Logs

    def insert_log(
        self,
        habit_id: int,
        value: float,
        notes: Optional[str],
        logged_at: datetime,
        entry_date: date,
        now: datetime,
    ) -> HabitLog:
        """Insert a log entry. Entries are never updated or deleted."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO habit_entries (user_habit_id, entry_date, logged_at, value, notes,
                                           created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (habit_id, entry_date.isoformat(), _iso(logged_at), value, notes, _iso(now)),
            )
            log_id = cursor.lastrowid

        return HabitLog(
            id=log_id,
            habit_id=habit_id,
            value=value,
            notes=notes,
            logged_at=logged_at.astimezone(timezone.utc),
            entry_date=entry_date,
        )

    def logs_for_day(self, user_id: int, day: date) -> list[HabitLog]:
        """All of a user's entries on one calendar day, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT e.* FROM habit_entries AS e
                INNER JOIN user_habits AS h ON h.id = e.user_habit_id
                WHERE h.user_id = ? AND e.entry_date = ?
                ORDER BY e.logged_at DESC
                """,
                (user_id, day.isoformat()),
            ).fetchall()
        return [self._row_to_log(row) for row in rows]

    def list_logs(self, habit_id: int, day: Optional[date] = None, limit: int = 10) -> list[HabitLog]:
        """Entries of one habit, newest first, optionally for a single day."""
        sql = "SELECT * FROM habit_entries WHERE user_habit_id = ?"
        params: list = [habit_id]

        if day is not None:
            sql += " AND entry_date = ?"
            params.append(day.isoformat())

        sql += " ORDER BY logged_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_log(row) for row in rows]

    def _row_to_log(self, row: sqlite3.Row) -> HabitLog:
        return HabitLog(
            id=row["id"],
            habit_id=row["user_habit_id"],
            value=row["value"],
            notes=row["notes"],
            logged_at=_parse(row["logged_at"]),
            entry_date=date.fromisoformat(row["entry_date"]),
        )

    # Notifications and reminders

    def add_notification(self, user_id: int, notification: Notification) -> Optional[Notification]:
        """
        Store a notification.

        Returns:
            The stored notification, or None when an achievement for the same
            habit and day already exists
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO notifications (
                    user_id, user_habit_id, title, message, type, channel, scheduled_for,
                    for_date, read_at, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    notification.habit_id,
                    notification.title,
                    notification.message,
                    notification.type,
                    notification.channel,
                    _iso(notification.scheduled_for),
                    notification.for_date.isoformat() if notification.for_date else None,
                    _iso(notification.read_at),
                    _iso(notification.created_at),
                ),
            )
            if cursor.rowcount == 0:
                return None
            notification_id = cursor.lastrowid

        return self.get_notification(user_id, notification_id)

    def get_notification(self, user_id: int, notification_id: int) -> Optional[Notification]:
        """Get a notification, only if it belongs to the user."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM notifications WHERE id = ? AND user_id = ?",
                (notification_id, user_id),
            ).fetchone()
        return self._row_to_notification(row) if row else None

    def list_notifications(
        self,
        user_id: int,
        include_read: bool = False,
        notification_type: Optional[str] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
        exclude_type: Optional[str] = None,
    ) -> list[Notification]:
        """
        List a user's notifications.

        Args:
            user_id: Owner
            include_read: Also return notifications already read
            notification_type: Only this type (reminder, achievement, alert)
            limit: Maximum number of rows
            newest_first: Order by schedule/creation time descending
            exclude_type: Leave out this type

        Returns:
            Notifications ordered by scheduled_for, falling back to created_at
        """
        sql = "SELECT * FROM notifications WHERE user_id = ?"
        params: list = [user_id]

        if not include_read:
            sql += " AND read_at IS NULL"

        if notification_type:
            sql += " AND type = ?"
            params.append(notification_type)

        if exclude_type:
            sql += " AND type != ?"
            params.append(exclude_type)

        direction = "DESC" if newest_first else "ASC"
        sql += f" ORDER BY COALESCE(scheduled_for, created_at) {direction}, id {direction}"

        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_notification(row) for row in rows]

    def mark_notification_read(
        self, user_id: int, notification_id: int, read_at: datetime
    ) -> Optional[Notification]:
        """Set read_at if not set yet. Returns None when the notification is not the user's."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE notifications SET read_at = ?
                WHERE id = ? AND user_id = ? AND read_at IS NULL
                """,
                (_iso(read_at), notification_id, user_id),
            )
        return self.get_notification(user_id, notification_id)

    def get_reminders(self, user_id: int, day: date) -> list[Reminder]:
        """Stored reminders of a user's day, as the scheduler's previous run."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT n.*, h.slug FROM notifications AS n
                INNER JOIN user_habits AS h ON h.id = n.user_habit_id
                WHERE n.user_id = ? AND n.type = 'reminder' AND n.for_date = ?
                ORDER BY n.id
                """,
                (user_id, day.isoformat()),
            ).fetchall()

        return [
            Reminder(
                id=row["id"],
                slug=row["slug"],
                habit_id=row["user_habit_id"],
                title=row["title"],
                message=row["message"],
                scheduled_for=_parse(row["scheduled_for"]),
                read=row["read_at"] is not None,
            )
            for row in rows
        ]

    def replace_reminders(
        self,
        user_id: int,
        day: date,
        reminders: list[Reminder],
        now: datetime,
    ) -> list[Reminder]:
        """
        Make the stored reminders of a day equal to a freshly scheduled set.

        Reminders carrying an id keep their row (and read_at); reminders
        without one are inserted; stored rows absent from the set are removed.

        Returns:
            The reminders with their stored ids
        """
        stored = []
        with self._connect() as conn:
            existing = {
                row["id"]
                for row in conn.execute(
                    """
                    SELECT id FROM notifications
                    WHERE user_id = ? AND type = 'reminder' AND for_date = ?
                    """,
                    (user_id, day.isoformat()),
                )
            }

            for reminder in reminders:
                if reminder.id in existing:
                    conn.execute(
                        "UPDATE notifications SET title = ?, message = ? WHERE id = ?",
                        (reminder.title, reminder.message, reminder.id),
                    )
                    existing.discard(reminder.id)
                    stored.append(reminder)
                    continue

                cursor = conn.execute(
                    """
                    INSERT INTO notifications (
                        user_id, user_habit_id, title, message, type, channel,
                        scheduled_for, for_date, created_at
                    ) VALUES (?, ?, ?, ?, 'reminder', 'in_app', ?, ?, ?)
                    """,
                    (
                        user_id,
                        reminder.habit_id,
                        reminder.title,
                        reminder.message,
                        _iso(reminder.scheduled_for),
                        day.isoformat(),
                        _iso(now),
                    ),
                )
                stored.append(replace(reminder, id=cursor.lastrowid, read=False))

            if existing:
                conn.executemany(
                    "DELETE FROM notifications WHERE id = ?", [(stale,) for stale in existing]
                )

        logger.debug(f"Stored {len(stored)} reminders for user {user_id} on {day}")
        return stored

    def _row_to_notification(self, row: sqlite3.Row) -> Notification:
        return Notification(
            id=row["id"],
            habit_id=row["user_habit_id"],
            title=row["title"],
            message=row["message"],
            type=row["type"],
            channel=row["channel"],
            scheduled_for=_parse(row["scheduled_for"]),
            for_date=date.fromisoformat(row["for_date"]) if row["for_date"] else None,
            read_at=_parse(row["read_at"]),
            created_at=_parse(row["created_at"]),
        )
