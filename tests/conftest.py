"""
Pytest configuration and fixtures.
Every test gets its own SQLite file, so holds and row locks never leak between tests.
"""

from datetime import date, datetime, timedelta

import pytest

from app import create_app
from config import TestConfig
from models import db, Court, RateRule
from services.settings import ClubSettings


def _future(weekday, weeks_ahead=2):
    """First date with the given weekday (0 = Sunday) at least ``weeks_ahead`` weeks from today."""
    start = date.today() + timedelta(weeks=weeks_ahead)
    offset = (weekday - (start.weekday() + 1) % 7) % 7
    return start + timedelta(days=offset)


def _at(day, hhmm):
    hours, minutes = (int(p) for p in hhmm.split(":"))
    return datetime(day.year, day.month, day.day, hours, minutes)


@pytest.fixture
def app(tmp_path):
    """Create test application with an isolated database file."""
    class Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "courtbook.db")

    app = create_app(Config)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    """App context for service-level tests (no test client inside it)."""
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def settings(app):
    return ClubSettings.from_mapping(app.config)


@pytest.fixture
def seed(app):
    """Three courts and a club-wide 20.00/h rule every day 08:00-22:00."""
    with app.app_context():
        courts = [
            Court(name=f"Court {n}", surface_type="synthetic grass", lighting=True)
            for n in (1, 2, 3)
        ]
        db.session.add_all(courts)
        db.session.flush()
        rule = RateRule(
            court_id=None,
            hourly_rate_cents=2000,
            valid_days="0,1,2,3,4,5,6",
            start_time="08:00",
            end_time="22:00",
            label="standard",
        )
        db.session.add(rule)
        db.session.flush()
        ids = {"courts": [c.id for c in courts], "rule": rule.id}
        db.session.commit()
    return ids


@pytest.fixture
def monday():
    return _future(1)


@pytest.fixture
def at():
    return _at


@pytest.fixture
def future():
    return _future


@pytest.fixture
def now(monday):
    """A fixed clock the day before the booked day."""
    return _at(monday - timedelta(days=1), "12:00")


def _headers(user_id, *roles):
    headers = {"X-User-Id": str(user_id)}
    if roles:
        headers["X-User-Roles"] = ",".join(roles)
    return headers


@pytest.fixture
def player():
    return _headers(10, "PLAYER")


@pytest.fixture
def other_player():
    return _headers(11, "PLAYER")


@pytest.fixture
def staff():
    return _headers(1, "STAFF")


@pytest.fixture
def as_user():
    return _headers
