"""Static registry of the four tracked habits."""

from dataclasses import dataclass

from .models import HabitSettings, Meal
from .targets import build_settings


@dataclass(frozen=True)
class HabitMeta:
    """Display metadata for a habit."""
    slug: str
    name: str
    icon: str
    color: str
    unit: str
    settings_type: str


CATALOG: dict[str, HabitMeta] = {
    "water": HabitMeta("water", "Consumo de Agua", "Droplets", "#2563eb", "ml", "water"),
    "sleep": HabitMeta("sleep", "Sueño", "Moon", "#7c3aed", "horas", "sleep"),
    "exercise": HabitMeta("exercise", "Ejercicio", "Dumbbell", "#16a34a", "minutos", "exercise"),
    "nutrition": HabitMeta("nutrition", "Alimentación", "Apple", "#f97316", "comidas", "nutrition"),
}

DEFAULT_MEALS: tuple[Meal, ...] = (
    Meal(id="breakfast", label="Desayuno", time="08:00"),
    Meal(id="lunch", label="Almuerzo", time="13:00"),
    Meal(id="dinner", label="Cena", time="20:00"),
)


def get_meta(slug: str) -> HabitMeta:
    """Look up a habit's metadata. Raises KeyError for unknown slugs."""
    return CATALOG[slug]


def default_settings(recommended_water_target: int) -> dict[str, HabitSettings]:
    """Settings every new user starts with, validated like any update."""
    return {
        "water": build_settings("water", {
            "reminder_interval_minutes": 120,
            "use_recommended_target": True,
            "custom_target": None,
            "recommended_target": recommended_water_target,
        }),
        "sleep": build_settings("sleep", {
            "bed_time": "22:30",
            "wake_time": "06:30",
            "reminder_enabled": True,
            "reminder_advance_minutes": 30,
        }),
        "exercise": build_settings("exercise", {
            "daily_goal_minutes": 30,
            "reminder_enabled": True,
            "reminder_time": "18:00",
        }),
        "nutrition": build_settings("nutrition", {
            "reminders_enabled": True,
            "meals": DEFAULT_MEALS,
        }),
    }
