"""API request and response models."""

from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..habits.models import (
    DailySnapshot,
    HabitLog,
    HabitRecord,
    HabitSummary,
    Notification,
    Reminder,
    UserProfile,
)


class CamelModel(BaseModel):
    """Base model serialized with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StrictCamelModel(CamelModel):
    """Request body that rejects unknown fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# Profile


class SetupRequest(StrictCamelModel):
    """Body of POST /api/setup."""

    username: str
    email: str
    height: float
    weight: float
    age: int
    timezone: Optional[str] = None


class ProfileUpdate(StrictCamelModel):
    """Body of PATCH /api/profile. Absent fields are left unchanged."""

    username: Optional[str] = None
    height: Optional[float] = None
    weight: Optional[float] = None
    age: Optional[int] = None
    timezone: Optional[str] = None


class ProfileResponse(CamelModel):
    """A user's profile."""

    id: int
    username: str
    email: str
    height: float
    weight: float
    age: int
    timezone: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "ProfileResponse":
        return cls(
            id=profile.id,
            username=profile.username,
            email=profile.email,
            height=profile.biometrics.height,
            weight=profile.biometrics.weight,
            age=profile.biometrics.age,
            timezone=profile.timezone,
            created_at=profile.created_at,
        )


class SetupResponse(CamelModel):
    """Response for POST /api/setup."""

    user_id: int
    token: str
    profile: ProfileResponse


# Settings


class MealModel(StrictCamelModel):
    id: str
    label: str
    time: str
    enabled: bool = True


class WaterSettingsUpdate(StrictCamelModel):
    type: Literal["water"]
    reminder_interval_minutes: Optional[int] = None
    use_recommended_target: Optional[bool] = None
    custom_target: Optional[int] = None


class SleepSettingsUpdate(StrictCamelModel):
    type: Literal["sleep"]
    bed_time: Optional[str] = None
    wake_time: Optional[str] = None
    reminder_enabled: Optional[bool] = None
    reminder_advance_minutes: Optional[int] = None
    target_hours: Optional[float] = Field(None, alias="targetValue")


class NutritionSettingsUpdate(StrictCamelModel):
    type: Literal["nutrition"]
    reminders_enabled: Optional[bool] = None
    meals: Optional[list[MealModel]] = None


class ExerciseSettingsUpdate(StrictCamelModel):
    type: Literal["exercise"]
    daily_goal_minutes: Optional[int] = None
    reminder_enabled: Optional[bool] = None
    reminder_time: Optional[str] = None


SettingsUpdate = Annotated[
    Union[WaterSettingsUpdate, SleepSettingsUpdate, NutritionSettingsUpdate, ExerciseSettingsUpdate],
    Field(discriminator="type"),
]


def settings_changes(update: CamelModel) -> dict[str, Any]:
    """Fields the client sent, keyed by snake_case name, without the tag."""
    return update.model_dump(exclude_unset=True, exclude={"type"})


def settings_payload(record: HabitRecord) -> dict[str, Any]:
    """Settings of a habit as camelCase JSON, including its resolved target."""
    settings = record.settings
    if settings.type == "water":
        payload = {
            "reminderIntervalMinutes": settings.reminder_interval_minutes,
            "useRecommendedTarget": settings.use_recommended_target,
            "customTarget": settings.custom_target,
            "recommendedTarget": settings.recommended_target,
        }
    elif settings.type == "sleep":
        payload = {
            "bedTime": settings.bed_time,
            "wakeTime": settings.wake_time,
            "reminderEnabled": settings.reminder_enabled,
            "reminderAdvanceMinutes": settings.reminder_advance_minutes,
        }
    elif settings.type == "nutrition":
        payload = {
            "remindersEnabled": settings.reminders_enabled,
            "meals": [
                {"id": meal.id, "label": meal.label, "time": meal.time, "enabled": meal.enabled}
                for meal in settings.meals
            ],
        }
    else:
        payload = {
            "dailyGoalMinutes": settings.daily_goal_minutes,
            "reminderEnabled": settings.reminder_enabled,
            "reminderTime": settings.reminder_time,
        }

    payload["targetValue"] = record.target_value
    payload["targetUnit"] = record.target_unit
    return payload


class HabitSettingsResponse(CamelModel):
    """One habit's settings."""

    habit_id: int
    type: str
    settings: dict[str, Any]

    @classmethod
    def from_record(cls, record: HabitRecord) -> "HabitSettingsResponse":
        return cls(habit_id=record.id, type=record.slug, settings=settings_payload(record))


# Logs


class LogCreate(StrictCamelModel):
    """Body of POST /api/habits/{id}/logs."""

    value: Any
    notes: Optional[str] = None
    logged_at: Optional[datetime] = None


class LogResponse(CamelModel):
    id: int
    habit_id: int
    value: float
    notes: Optional[str] = None
    logged_at: datetime
    entry_date: date

    @classmethod
    def from_log(cls, log: HabitLog) -> "LogResponse":
        return cls(
            id=log.id,
            habit_id=log.habit_id,
            value=log.value,
            notes=log.notes,
            logged_at=log.logged_at,
            entry_date=log.entry_date,
        )


# Dashboard


class HabitSummaryResponse(CamelModel):
    habit_id: Optional[int] = None
    slug: str
    name: str
    icon: str
    color: str
    target_value: float
    target_unit: str
    progress_value: float
    completion_rate: float
    is_complete: bool
    progress_text: str

    @classmethod
    def from_summary(cls, summary: HabitSummary) -> "HabitSummaryResponse":
        return cls(
            habit_id=summary.habit_id,
            slug=summary.slug,
            name=summary.name,
            icon=summary.icon,
            color=summary.color,
            target_value=summary.target_value,
            target_unit=summary.target_unit,
            progress_value=summary.progress_value,
            completion_rate=summary.completion_rate,
            is_complete=summary.is_complete,
            progress_text=summary.progress_text,
        )


class ReminderResponse(CamelModel):
    id: Optional[int] = None
    habit_id: Optional[int] = None
    type: str = "reminder"
    title: str
    message: str
    scheduled_for: datetime
    read: bool

    @classmethod
    def from_reminder(cls, reminder: Reminder) -> "ReminderResponse":
        return cls(
            id=reminder.id,
            habit_id=reminder.habit_id,
            title=reminder.title,
            message=reminder.message,
            scheduled_for=reminder.scheduled_for,
            read=reminder.read,
        )


class NotificationResponse(CamelModel):
    id: int
    habit_id: Optional[int] = None
    title: str
    message: str
    type: str
    channel: str
    scheduled_for: Optional[datetime] = None
    read_at: Optional[datetime] = None
    created_at: datetime
    read: bool

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            habit_id=notification.habit_id,
            title=notification.title,
            message=notification.message,
            type=notification.type,
            channel=notification.channel,
            scheduled_for=notification.scheduled_for,
            read_at=notification.read_at,
            created_at=notification.created_at,
            read=notification.read,
        )


class ReadResponse(CamelModel):
    """Response for PATCH /api/notifications/{id}/read."""

    id: int
    read_at: datetime


class DashboardResponse(CamelModel):
    """A day's dashboard."""

    date: date
    total_habits: int
    completed_habits: int
    completion_percentage: float
    habits: list[HabitSummaryResponse]
    reminders: list[ReminderResponse]
    notifications: list[NotificationResponse]

    @classmethod
    def build(
        cls,
        snapshot: DailySnapshot,
        habits: list[HabitSummary],
        reminders: list[Reminder],
        notifications: list[Notification],
    ) -> "DashboardResponse":
        return cls(
            date=snapshot.date,
            total_habits=snapshot.total_habits,
            completed_habits=snapshot.completed_habits,
            completion_percentage=snapshot.completion_percentage,
            habits=[HabitSummaryResponse.from_summary(summary) for summary in habits],
            reminders=[ReminderResponse.from_reminder(reminder) for reminder in reminders],
            notifications=[
                NotificationResponse.from_notification(notification)
                for notification in notifications
            ],
        )
