"""Shared fixtures.

HTTP tests go through FastAPI's TestClient with the repository and settings
dependencies swapped for a mongomock-backed repository and a fixed
allow-list, so no Mongo server or environment is needed.
"""
from datetime import date
from typing import Any, Callable, Dict

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings, get_settings
from database import ensure_indexes
from main import app, get_repository, hash_password
from repository import PayrollRepository
from schemas import Employee, Promotion, User

OWNER_EMAIL = "owner@sparkcode.tech"
FOUNDER_EMAIL = "founder@sparkcode.tech"
PASSWORD = "correct-horse"


@pytest.fixture
def make_employee() -> Callable[..., Employee]:
    def _make(promotions=(), **overrides: Any) -> Employee:
        data: Dict[str, Any] = {
            "employee_id": "EMP-001",
            "name": "Sita Sharma",
            "position": "Developer",
            "basic_salary": 50000,
            "joining_date": date(2024, 1, 15),
        }
        data.update(overrides)
        return Employee(**data, promotions=[Promotion(**p) if isinstance(p, dict) else p for p in promotions])

    return _make


@pytest.fixture
def mongo_db():
    client = mongomock.MongoClient(tz_aware=True)
    database = client["payroll_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def repo(mongo_db) -> PayrollRepository:
    return PayrollRepository(mongo_db)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        allowed_emails=(OWNER_EMAIL, FOUNDER_EMAIL),
        founder_email=FOUNDER_EMAIL,
        jwt_secret="test-secret",
    )


@pytest.fixture
def client(repo, settings):
    app.dependency_overrides[get_repository] = lambda: repo
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def users(repo):
    password_hash = hash_password(PASSWORD)
    repo.create_user(User(email=OWNER_EMAIL, name="Owner", password_hash=password_hash))
    repo.create_user(User(email=FOUNDER_EMAIL, name="Founder", password_hash=password_hash))


def _login(client: TestClient, email: str) -> Dict[str, str]:
    res = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture
def auth_headers(client, users) -> Dict[str, str]:
    return _login(client, OWNER_EMAIL)


@pytest.fixture
def founder_headers(client, users) -> Dict[str, str]:
    return _login(client, FOUNDER_EMAIL)
