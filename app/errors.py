"""Error types shared by the habit engine and the API layer.

Exception handling flow:
    1. Engine or service raises a typed exception
    2. FastAPI exception handler catches it (see main.py)
    3. Handler converts it to a JSON body with a message and context
"""

from typing import Optional


class HabitError(Exception):
    """Base exception for all habit dashboard errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(HabitError):
    """Raised when input is malformed (bad target, time, log value...)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(HabitError):
    """Raised when a habit, notification or user does not exist for the caller."""

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(message)
        self.resource = resource


class ConflictError(HabitError):
    """Raised when a multi-step write failed and was rolled back."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class UnexpectedError(HabitError):
    """Raised for failures that must not leak internal detail to callers."""
