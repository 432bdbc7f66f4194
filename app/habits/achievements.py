"""Achievement notifications on goal completion."""

from datetime import date, datetime
from typing import Optional

from .models import HabitKey, HabitSummary, Notification

ACHIEVEMENT_TITLE = "🎉 ¡Objetivo alcanzado!"


def check_transition(
    previous: HabitSummary,
    current: HabitSummary,
    now: datetime,
    habit_id: Optional[HabitKey] = None,
    day: Optional[date] = None,
) -> Optional[Notification]:
    """
    Emit an achievement when a habit goes from incomplete to complete.

    Args:
        previous: Summary before the change
        current: Summary after the change
        now: Creation time of the notification
        habit_id: Habit the notification refers to; defaults to the summary's id
        day: Day the progress belongs to; defaults to now's date

    Returns:
        A new unread achievement Notification, or None when there is no
        incomplete -> complete edge
    """
    if previous.is_complete or not current.is_complete:
        return None

    return Notification(
        habit_id=habit_id if habit_id is not None else current.habit_id,
        title=ACHIEVEMENT_TITLE,
        message=f"Completaste tu hábito de {current.name.lower()} hoy.",
        type="achievement",
        created_at=now,
        for_date=day or now.date(),
    )
