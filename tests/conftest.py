"""Shared fixtures: temporary databases, a fixed clock and API clients."""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional
from zoneinfo import ZoneInfo

# The app module builds its settings and database at import time
os.environ["DATABASE_PATH"] = str(Path(tempfile.mkdtemp(prefix="habit-tests-")) / "app.db")
os.environ["AUTH_SECRET"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.dashboard.service import DashboardService
from app.habits.models import UserBiometrics, UserProfile
from app.storage.database import HabitDatabase

BOGOTA = ZoneInfo("America/Bogota")

# 09:00 in Bogota, 14:00 UTC
NOW = datetime(2024, 3, 15, 9, 0, tzinfo=BOGOTA)


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def biometrics() -> UserBiometrics:
    return UserBiometrics(height=170, weight=65, age=30)


@pytest.fixture
def db(tmp_path) -> HabitDatabase:
    return HabitDatabase(str(tmp_path / "habits.db"))


@pytest.fixture
def service(db: HabitDatabase, clock: FixedClock) -> DashboardService:
    return DashboardService(db, clock=clock)


@pytest.fixture
def user(service: DashboardService, biometrics: UserBiometrics) -> UserProfile:
    return service.setup_user("ana", "ana@example.com", biometrics, "America/Bogota")


@pytest.fixture
def habit_ids(service: DashboardService, user: UserProfile) -> dict[str, int]:
    return {record.slug: record.id for record in service.list_settings(user.id)}


@pytest.fixture
def auth_token_secret() -> str:
    return os.environ["AUTH_SECRET"]


@pytest.fixture
def auth_token_factory(auth_token_secret: str) -> Callable[..., str]:
    def _factory(
        user_id: int = 1,
        email: Optional[str] = None,
        expires_delta: timedelta = timedelta(hours=1),
    ) -> str:
        payload = {
            "id": user_id,
            "email": email,
            "exp": datetime.now(timezone.utc) + expires_delta,
        }
        return jwt.encode(payload, auth_token_secret, algorithm="HS256")

    return _factory


@pytest.fixture
def auth_headers(user: UserProfile, auth_token_factory) -> dict[str, str]:
    return {"Authorization": f"Bearer {auth_token_factory(user.id, user.email)}"}


@pytest.fixture
def client(service: DashboardService):
    from app.main import app, get_service

    app.dependency_overrides[get_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
