"""Shared fixtures: in-memory database, frozen clock, settings and sample users."""

import os

# Must be set before unitrack.database creates its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from unitrack.clock import get_clock
from unitrack.config import Settings, get_settings
from unitrack.database import SessionLocal, create_tables, drop_tables
from unitrack.main import app
from unitrack.models.course import Course
from unitrack.models.user import User
from unitrack.rate_limit import limiter

CAMPUS_RANGE = "10.20.0.0/16"
CAMPUS_IP = "10.20.5.7"
OFF_CAMPUS_IP = "172.16.0.9"


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def make_user(db, role="student", user_id=None, department="Computer Science", **kwargs):
    count = db.query(User).count() + 1
    user = User(
        user_id=user_id or "{}{:04d}".format(role[:3].upper(), count),
        email=kwargs.pop("email", "{}{}@uni.test".format(role, count)),
        first_name=kwargs.pop("first_name", role.capitalize()),
        last_name=kwargs.pop("last_name", str(count)),
        role=role,
        department=department,
        **kwargs
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_course(db, lecturer, students=(), code="CSC301", ranges="[]", **kwargs):
    course = Course(
        course_code=code,
        course_title=kwargs.pop("course_title", "Operating Systems"),
        department=kwargs.pop("department", "Computer Science"),
        semester=kwargs.pop("semester", "First"),
        academic_year=kwargs.pop("academic_year", "2025/2026"),
        credit_units=kwargs.pop("credit_units", 3),
        lecturer_id=lecturer.id,
        campus_ip_ranges=ranges,
        **kwargs
    )
    course.enrolled_students.extend(students)
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


def as_user(user, ip=CAMPUS_IP):
    return {"X-User-ID": user.id, "X-Forwarded-For": ip, "User-Agent": "pytest-browser"}


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def settings():
    return Settings(campus_ip_ranges=[CAMPUS_RANGE], trust_proxy_headers=True)


@pytest.fixture
def policy(settings):
    return settings.for_course(None)


@pytest.fixture
def db():
    create_tables()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        drop_tables()


@pytest.fixture
def client(db, clock, settings):
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_settings] = lambda: settings
    limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin(db):
    return make_user(db, role="admin")


@pytest.fixture
def lecturer(db):
    return make_user(db, role="lecturer")


@pytest.fixture
def students(db):
    return [make_user(db, role="student") for _ in range(3)]


@pytest.fixture
def course(db, lecturer, students):
    return make_course(db, lecturer, students)
