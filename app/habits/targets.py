"""Daily target resolution and settings validation."""

import logging
import math
import re
from dataclasses import MISSING, fields, replace
from typing import Any, Mapping, Optional

from ..errors import ValidationError
from .models import (
    SETTINGS_TYPES,
    ExerciseSettings,
    HabitSettings,
    Meal,
    NutritionSettings,
    SleepSettings,
    UserBiometrics,
    WaterSettings,
)

logger = logging.getLogger(__name__)

DEFAULT_SLEEP_HOURS = 8
MIN_NUTRITION_TARGET = 3

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def camel(name: str) -> str:
    """Convert a field name to the camelCase name callers send."""
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2332.5 -> 2333)."""
    return int(math.floor(value + 0.5))


def is_number(value: Any) -> bool:
    """True for finite ints/floats, False for bools, text and NaN/inf."""
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def parse_time(value: Any, field: str = "time") -> tuple[int, int]:
    """
    Parse an "HH:MM" string.

    Args:
        value: Time string, 24-hour clock
        field: Name reported in the ValidationError

    Returns:
        Tuple of (hour, minute)
    """
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a time in HH:MM format", field)

    match = _TIME_PATTERN.match(value)
    if not match:
        raise ValidationError(f"{field} must be a time in HH:MM format, got '{value}'", field)

    return int(match.group(1)), int(match.group(2))


def _positive_int(value: Any, field: str) -> int:
    if not is_number(value) or value <= 0 or not float(value).is_integer():
        raise ValidationError(f"{field} must be a positive whole number", field)
    return int(value)


def _non_negative_int(value: Any, field: str) -> int:
    if not is_number(value) or value < 0 or not float(value).is_integer():
        raise ValidationError(f"{field} must be zero or a positive whole number", field)
    return int(value)


def _positive_number(value: Any, field: str) -> float:
    if not is_number(value) or value <= 0:
        raise ValidationError(f"{field} must be a positive number", field)
    return value


def _boolean(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false", field)
    return value


def validate_biometrics(biometrics: UserBiometrics) -> UserBiometrics:
    """Check that height, weight and age are all positive."""
    _positive_number(biometrics.height, "height")
    _positive_number(biometrics.weight, "weight")
    _positive_number(biometrics.age, "age")
    return biometrics


def recommended_water_target(biometrics: UserBiometrics) -> int:
    """
    Recommended daily hydration in milliliters.

    35 ml per kilogram plus 5 ml per centimeter above 150 cm.

    Example:
        height=170, weight=65
        = round(65 * 35 + 20 * 5) = 2375
    """
    height = _positive_number(biometrics.height, "height")
    weight = _positive_number(biometrics.weight, "weight")
    return round_half_up(weight * 35 + max(0, height - 150) * 5)


def _coerce_meals(value: Any) -> tuple[Meal, ...]:
    if not isinstance(value, (list, tuple)):
        raise ValidationError("meals must be a list", "meals")

    meals = []
    for index, item in enumerate(value):
        if isinstance(item, Meal):
            meals.append(item)
            continue
        if not isinstance(item, Mapping):
            raise ValidationError(f"meals[{index}] must be an object", f"meals[{index}]")
        for key in ("id", "label", "time"):
            if item.get(key) is None:
                raise ValidationError(
                    f"meals[{index}].{key} is required", f"meals[{index}].{key}"
                )
        meals.append(
            Meal(
                id=item["id"],
                label=item["label"],
                time=item["time"],
                enabled=item.get("enabled", True),
            )
        )
    return tuple(meals)


def _validate_meals(meals: tuple[Meal, ...]) -> tuple[Meal, ...]:
    seen = set()
    for index, meal in enumerate(meals):
        if not isinstance(meal.id, str) or not meal.id.strip():
            raise ValidationError(f"meals[{index}].id must be a non-empty string", f"meals[{index}].id")
        if meal.id in seen:
            raise ValidationError(f"Duplicate meal id '{meal.id}'", f"meals[{index}].id")
        seen.add(meal.id)
        if not isinstance(meal.label, str) or not meal.label.strip():
            raise ValidationError(
                f"meals[{index}].label must be a non-empty string", f"meals[{index}].label"
            )
        parse_time(meal.time, f"meals[{index}].time")
        _boolean(meal.enabled, f"meals[{index}].enabled")
    return meals


def validate_settings(settings: HabitSettings) -> HabitSettings:
    """
    Validate every field of a settings variant.

    Returns:
        The settings with whole-number fields normalized to int

    Raises:
        ValidationError: naming the first offending field
    """
    if isinstance(settings, WaterSettings):
        custom = settings.custom_target
        return replace(
            settings,
            reminder_interval_minutes=_non_negative_int(
                settings.reminder_interval_minutes, "reminderIntervalMinutes"
            ),
            use_recommended_target=_boolean(settings.use_recommended_target, "useRecommendedTarget"),
            custom_target=None if custom is None else _positive_int(custom, "customTarget"),
            recommended_target=_positive_int(settings.recommended_target, "recommendedTarget"),
        )

    if isinstance(settings, SleepSettings):
        parse_time(settings.bed_time, "bedTime")
        parse_time(settings.wake_time, "wakeTime")
        override = settings.target_hours
        return replace(
            settings,
            reminder_enabled=_boolean(settings.reminder_enabled, "reminderEnabled"),
            reminder_advance_minutes=_non_negative_int(
                settings.reminder_advance_minutes, "reminderAdvanceMinutes"
            ),
            target_hours=None if override is None else _positive_number(override, "targetValue"),
        )

    if isinstance(settings, NutritionSettings):
        return replace(
            settings,
            reminders_enabled=_boolean(settings.reminders_enabled, "remindersEnabled"),
            meals=_validate_meals(_coerce_meals(settings.meals)),
        )

    if isinstance(settings, ExerciseSettings):
        parse_time(settings.reminder_time, "reminderTime")
        return replace(
            settings,
            daily_goal_minutes=_positive_int(settings.daily_goal_minutes, "dailyGoalMinutes"),
            reminder_enabled=_boolean(settings.reminder_enabled, "reminderEnabled"),
        )

    raise ValidationError(f"Unknown settings variant: {type(settings).__name__}", "type")


def build_settings(slug: str, values: Mapping[str, Any]) -> HabitSettings:
    """
    Build and validate a settings variant from plain field values.

    Args:
        slug: Habit slug selecting the variant
        values: Field values keyed by snake_case name

    Returns:
        Validated settings
    """
    settings_type = SETTINGS_TYPES.get(slug)
    if settings_type is None:
        raise ValidationError(f"Unknown habit type '{slug}'", "type")

    kwargs = {}
    for spec in fields(settings_type):
        if spec.name in values:
            kwargs[spec.name] = values[spec.name]
        elif spec.default is not MISSING or spec.default_factory is not MISSING:
            continue
        else:
            raise ValidationError(f"{camel(spec.name)} is required", camel(spec.name))

    if settings_type is NutritionSettings:
        kwargs["meals"] = _coerce_meals(kwargs["meals"])

    return validate_settings(settings_type(**kwargs))


def merge_settings(current: HabitSettings, updates: Mapping[str, Any]) -> HabitSettings:
    """
    Shallow-merge updates into a settings variant.

    Fields absent from updates keep their current value. Fields present are
    validated as given, never replaced by a default.

    Args:
        current: Settings in effect
        updates: Changed fields keyed by snake_case name; may include "type"

    Returns:
        New validated settings (current is left untouched)
    """
    changes = dict(updates)
    update_type = changes.pop("type", current.type)
    if update_type != current.type:
        raise ValidationError(
            f"Settings type '{update_type}' does not match habit '{current.type}'", "type"
        )

    allowed = {spec.name for spec in fields(current)}
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(f"Unknown settings field '{camel(unknown[0])}'", camel(unknown[0]))

    if "meals" in changes:
        changes["meals"] = _coerce_meals(changes["meals"])

    merged = validate_settings(replace(current, **changes))
    logger.debug(f"Merged {current.type} settings: {sorted(changes)}")
    return merged


def resolve_target(
    slug: str,
    settings: HabitSettings,
    biometrics: Optional[UserBiometrics] = None,
    previous_target: Optional[float] = None,
) -> float:
    """
    Resolve the numeric daily target of a habit.

    Args:
        slug: Habit slug
        settings: Current settings of that habit
        biometrics: User measurements; when given, the hydration
            recommendation is re-derived from them
        previous_target: Last resolved target, used by nutrition when no
            meal is enabled

    Returns:
        Target, always > 0

    Raises:
        ValidationError: settings do not match the slug or hold a
            non-positive target
    """
    if settings.type != slug:
        raise ValidationError(f"Settings of type '{settings.type}' given for '{slug}'", "type")

    if isinstance(settings, WaterSettings):
        if biometrics is not None:
            recommended = recommended_water_target(biometrics)
        else:
            recommended = _positive_int(settings.recommended_target, "recommendedTarget")

        if settings.use_recommended_target or settings.custom_target is None:
            return recommended
        return _positive_int(settings.custom_target, "customTarget")

    if isinstance(settings, SleepSettings):
        if settings.target_hours is None:
            return DEFAULT_SLEEP_HOURS
        return _positive_number(settings.target_hours, "targetValue")

    if isinstance(settings, ExerciseSettings):
        return _positive_int(settings.daily_goal_minutes, "dailyGoalMinutes")

    if isinstance(settings, NutritionSettings):
        enabled = sum(1 for meal in settings.meals if meal.enabled)
        if enabled:
            return enabled
        if previous_target is not None and is_number(previous_target) and previous_target > 0:
            return previous_target
        return MIN_NUTRITION_TARGET

    raise ValidationError(f"Unknown habit type '{slug}'", "type")
