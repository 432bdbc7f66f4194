"""Progress aggregation: summaries, progress text and daily snapshots."""

import math
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from .catalog import get_meta
from .models import DailySnapshot, HabitLog, HabitSettings, HabitSummary, UserBiometrics
from .targets import resolve_target


def format_number(value: float) -> str:
    """Render whole numbers without a decimal part (2 not 2.0)."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def format_liters(milliliters: float) -> str:
    """Liters with one decimal, halves of the stored value rounded up (1250 -> "1.3")."""
    return str(Decimal(milliliters / 1000).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def format_progress_text(value: float, target: float, unit: str) -> str:
    """
    Format user-facing progress text.

    Args:
        value: Progress so far
        target: Daily target
        unit: Unit of both values

    Returns:
        Text such as "1.5L de 2.0L", "500ml de 2000ml" or "2 comidas de 3 comidas"
    """
    if unit == "ml":
        if value >= 1000:
            return f"{format_liters(value)}L de {format_liters(target)}L"
        return f"{format_number(value)}ml de {format_number(target)}ml"

    return f"{format_number(value)} {unit} de {format_number(target)} {unit}"


def completion_rate(progress: float, target: float) -> float:
    """Progress over target, capped at 1; 0 when there is no target."""
    if target <= 0:
        return 0.0
    return min(progress / target, 1.0)


def summarize(
    slug: str,
    settings: HabitSettings,
    biometrics: Optional[UserBiometrics],
    logs_for_today: Iterable[HabitLog],
    habit_id: Optional[int] = None,
    previous_target: Optional[float] = None,
) -> HabitSummary:
    """
    Compute the summary of one habit for one day.

    Always a full recompute from the given logs and settings.

    Args:
        slug: Habit slug
        settings: Current settings of the habit
        biometrics: User measurements (used for hydration)
        logs_for_today: All of the day's entries for this habit
        habit_id: Stored habit id, echoed in the summary
        previous_target: Last resolved target (nutrition fallback)

    Returns:
        HabitSummary
    """
    meta = get_meta(slug)
    target = resolve_target(slug, settings, biometrics, previous_target)
    progress = max(0.0, math.fsum(log.value for log in logs_for_today))
    rate = completion_rate(progress, target)

    return HabitSummary(
        slug=slug,
        habit_id=habit_id,
        name=meta.name,
        icon=meta.icon,
        color=meta.color,
        target_value=target,
        target_unit=meta.unit,
        progress_value=progress,
        completion_rate=rate,
        is_complete=rate >= 1,
        progress_text=format_progress_text(progress, target, meta.unit),
    )


def build_snapshot(day: date, summaries: Iterable[HabitSummary]) -> DailySnapshot:
    """Aggregate completion statistics for one day."""
    summaries = list(summaries)
    total = len(summaries)
    completed = sum(1 for summary in summaries if summary.is_complete)

    return DailySnapshot(
        date=day,
        total_habits=total,
        completed_habits=completed,
        completion_percentage=completed / total if total else 0.0,
    )
