"""Main FastAPI application."""

import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.auth import AuthenticationError, create_auth_token, require_user
from .api.models import (
    DashboardResponse,
    HabitSettingsResponse,
    LogCreate,
    LogResponse,
    NotificationResponse,
    ProfileResponse,
    ProfileUpdate,
    ReadResponse,
    SettingsUpdate,
    SetupRequest,
    SetupResponse,
    settings_changes,
)
from .config import settings
from .dashboard.service import DashboardService
from .errors import ConflictError, NotFoundError, UnexpectedError, ValidationError
from .habits.models import UserBiometrics
from .storage.database import HabitDatabase

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Habit Dashboard",
    description="Daily habit progress, reminders and achievements",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize components
db = HabitDatabase(settings.database_path)
dashboard_service = DashboardService(
    db,
    default_timezone=settings.default_timezone,
    notifications_limit=settings.notifications_limit,
    logs_default_limit=settings.logs_default_limit,
    logs_max_limit=settings.logs_max_limit,
)


def get_service() -> DashboardService:
    """Service used by the request handlers."""
    return dashboard_service


# Error handlers


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=400, content={"message": exc.message, "field": exc.field})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [part for part in first.get("loc", ()) if isinstance(part, str)]
    field = location[-1] if location and location[-1] not in ("body", "query", "path") else None
    message = first.get("msg", "Invalid request")

    logger.warning(f"Rejected {request.method} {request.url.path}: {field}: {message}")
    return JSONResponse(status_code=400, content={"message": message, "field": field})


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"message": exc.message})


@app.exception_handler(ConflictError)
async def conflict_error_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"message": exc.message})


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    if exc.reason == "configuration":
        logger.error(exc.message)
        return JSONResponse(status_code=500, content={"message": "Error interno del servidor"})

    return JSONResponse(
        status_code=401,
        content={"message": exc.message},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(UnexpectedError)
async def unexpected_error_handler(request: Request, exc: UnexpectedError):
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=500, content={"message": "Error interno del servidor"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Error interno del servidor"})


# Endpoints


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Habit Dashboard",
        "version": "1.0.0",
        "endpoints": {
            "health": "/api/health",
            "setup": "/api/setup",
            "profile": "/api/profile",
            "dashboard": "/api/dashboard",
            "settings": "/api/habits/settings",
            "logs": "/api/habits/{habit_id}/logs",
            "notifications": "/api/notifications",
        },
    }


@app.get("/api/health")
def health():
    """Server status endpoint."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/api/setup", response_model=SetupResponse, status_code=201)
def setup_endpoint(
    body: SetupRequest,
    service: DashboardService = Depends(get_service),
):
    """
    Provision a user with the default habits.

    Returns the user's id, a bearer token and the created profile.
    """
    profile = service.setup_user(
        body.username,
        body.email,
        UserBiometrics(height=body.height, weight=body.weight, age=body.age),
        body.timezone,
    )
    logger.info(f"User provisioned: {profile.id} ({profile.email})")

    return SetupResponse(
        user_id=profile.id,
        token=create_auth_token(profile.id, profile.email),
        profile=ProfileResponse.from_profile(profile),
    )


@app.get("/api/profile", response_model=ProfileResponse)
def get_profile(
    user_id: int = Depends(require_user),
    service: DashboardService = Depends(get_service),
):
    """Current profile."""
    return ProfileResponse.from_profile(service.get_profile(user_id))


@app.patch("/api/profile", response_model=ProfileResponse)
def update_profile(
    body: ProfileUpdate,
    user_id: int = Depends(require_user),
    service: DashboardService = Depends(get_service),
):
    """Update username, biometrics or timezone."""
    profile = service.update_profile(
        user_id,
        username=body.username,
        height=body.height,
        weight=body.weight,
        age=body.age,
        tz_name=body.timezone,
    )
    return ProfileResponse.from_profile(profile)


@app.get("/api/dashboard", response_model=DashboardResponse)
def get_dashboard(
    day: Optional[date] = Query(None, alias="date"),
    user_id: int = Depends(require_user),
    service: DashboardService = Depends(get_service),
):
    """
    Full dashboard of a day.

    Summaries are recomputed from the day's log entries on every request.
    """
    dashboard = service.get_dashboard(user_id, day)
    return DashboardResponse.build(
        dashboard.snapshot,
        dashboard.habits,
        dashboard.reminders,
        dashboard.notifications,
    )


@app.get("/api/habits/settings", response_model=list[HabitSettingsResponse])
def list_settings(
    user_id: int = Depends(require_user),
    service: DashboardService = Depends(get_service),
):
    """Settings of every habit."""
    return [HabitSettingsResponse.from_record(record) for record in service.list_settings(user_id)]


@app.patch("/api/habits/settings", response_model=HabitSettingsResponse)
def update_settings(
    body: SettingsUpdate,
    user_id: int = Depends(require_user),
    service: DashboardService = Depends(get_service),
):
    """Update one habit's settings; the body's type selects the habit."""
    record = service.update_settings(user_id, body.type, settings_changes(body))
    return HabitSettingsResponse.from_record(record)


@app.get("/api/habits/{habit_id}/logs", response_model=list[LogResponse])
def list_logs(
    habit_id: int,
    day: Optional[date] = Query(None, alias="date"),
    limit: Optional[int] = Query(None),
    user_id: int = Depends(require_user),
    service: DashboardService = Depends(get_service),
):
    """Log history of a habit, newest first."""
    return [LogResponse.from_log(log) for log in service.list_logs(user_id, habit_id, day, limit)]


@app.post("/api/habits/{habit_id}/logs", response_model=LogResponse, status_code=201)
def create_log(
    habit_id: int,
    body: LogCreate,
    user_id: int = Depends(require_user),
    service: DashboardService = Depends(get_service),
):
    """
    Append a log entry.

    Clients refresh the dashboard afterwards to see the new progress.
    """
    log = service.append_log(user_id, habit_id, body.value, body.notes, body.logged_at)
    return LogResponse.from_log(log)


@app.get("/api/notifications", response_model=list[NotificationResponse])
def list_notifications(
    include_read: bool = Query(False, alias="includeRead"),
    notification_type: Optional[str] = Query(None, alias="type"),
    user_id: int = Depends(require_user),
    service: DashboardService = Depends(get_service),
):
    """Notifications of the caller, unread only unless includeRead is set."""
    notifications = service.list_notifications(user_id, include_read, notification_type)
    return [NotificationResponse.from_notification(item) for item in notifications]


@app.patch("/api/notifications/{notification_id}/read", response_model=ReadResponse)
def mark_notification_read(
    notification_id: int,
    user_id: int = Depends(require_user),
    service: DashboardService = Depends(get_service),
):
    """Mark a notification as read."""
    notification = service.mark_read(user_id, notification_id)
    return ReadResponse(id=notification.id, read_at=notification.read_at)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )
