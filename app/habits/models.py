"""Data models for habits, settings, logs and derived dashboard values."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import ClassVar, Literal, Optional, Union

HabitSlug = Literal["water", "sleep", "exercise", "nutrition"]
HABIT_SLUGS: tuple[str, ...] = ("water", "sleep", "exercise", "nutrition")

NotificationType = Literal["reminder", "achievement", "alert"]
NOTIFICATION_TYPES: tuple[str, ...] = ("reminder", "achievement", "alert")

# Server ids are ints, in-memory ledgers key by slug
HabitKey = Union[int, str]


@dataclass(frozen=True)
class UserBiometrics:
    """Body measurements used for the hydration recommendation."""
    height: float  # cm
    weight: float  # kg
    age: int


@dataclass(frozen=True)
class WaterSettings:
    """Hydration settings."""
    type: ClassVar[str] = "water"

    reminder_interval_minutes: int
    use_recommended_target: bool
    custom_target: Optional[int]
    recommended_target: int


@dataclass(frozen=True)
class SleepSettings:
    """Sleep schedule settings."""
    type: ClassVar[str] = "sleep"

    bed_time: str
    wake_time: str
    reminder_enabled: bool
    reminder_advance_minutes: int
    target_hours: Optional[float] = None  # overrides the fixed 8 hours


@dataclass(frozen=True)
class Meal:
    """A scheduled meal of the nutrition plan."""
    id: str
    label: str
    time: str
    enabled: bool = True


@dataclass(frozen=True)
class NutritionSettings:
    """Meal plan settings."""
    type: ClassVar[str] = "nutrition"

    reminders_enabled: bool
    meals: tuple[Meal, ...]


@dataclass(frozen=True)
class ExerciseSettings:
    """Exercise settings."""
    type: ClassVar[str] = "exercise"

    daily_goal_minutes: int
    reminder_enabled: bool
    reminder_time: str


HabitSettings = Union[WaterSettings, SleepSettings, NutritionSettings, ExerciseSettings]

SETTINGS_TYPES: dict[str, type] = {
    "water": WaterSettings,
    "sleep": SleepSettings,
    "nutrition": NutritionSettings,
    "exercise": ExerciseSettings,
}


@dataclass(frozen=True)
class HabitLog:
    """An immutable log entry."""
    id: HabitKey
    habit_id: HabitKey
    value: float
    notes: Optional[str]
    logged_at: datetime
    entry_date: date


@dataclass(frozen=True)
class HabitSummary:
    """Progress of one habit for one day. Derived, never stored."""
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
    habit_id: Optional[int] = None


@dataclass(frozen=True)
class Reminder:
    """A scheduled prompt derived from a habit's settings."""
    slug: str
    title: str
    message: str
    scheduled_for: datetime
    habit_id: Optional[int] = None
    id: Optional[int] = None
    read: bool = False

    @property
    def key(self) -> tuple[str, datetime]:
        """Identity across recomputation."""
        return (self.slug, self.scheduled_for)


@dataclass(frozen=True)
class Notification:
    """A reminder, achievement or alert shown to the user."""
    title: str
    message: str
    type: str
    created_at: datetime
    habit_id: Optional[HabitKey] = None
    id: Optional[int] = None
    channel: str = "in_app"
    scheduled_for: Optional[datetime] = None
    read_at: Optional[datetime] = None
    for_date: Optional[date] = None

    @property
    def read(self) -> bool:
        return self.read_at is not None


@dataclass(frozen=True)
class DailySnapshot:
    """Completion statistics for one calendar day."""
    date: date
    total_habits: int
    completed_habits: int
    completion_percentage: float


@dataclass(frozen=True)
class UserProfile:
    """A stored user with biometrics and calendar zone."""
    id: int
    username: str
    email: str
    biometrics: UserBiometrics
    timezone: str
    created_at: Optional[datetime] = None


@dataclass
class HabitRecord:
    """A user's habit as stored: id, slug, persisted target and settings."""
    id: int
    slug: str
    target_value: float
    target_unit: str
    settings: HabitSettings
