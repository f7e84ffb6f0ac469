"""
Shared pytest fixtures for the calendar tests.
"""
import pytest
from datetime import date
from zoneinfo import ZoneInfo

from activities import ActivityStore
from app import create_app


@pytest.fixture
def activities_file(tmp_path):
    """
    Path of the server-side JSON file, inside a temp directory.
    The file itself is not created.
    """
    return tmp_path / "db" / "activities.json"


@pytest.fixture
def app(activities_file):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "ACTIVITIES_FILE": str(activities_file),
        "CALENDAR_TIMEZONE": "Asia/Kolkata",
        "CALENDAR_YEARS": [2025, 2026],
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    """The in-memory store owned by the app under test."""
    return app.extensions["activity_store"]


@pytest.fixture
def ist():
    return ZoneInfo("Asia/Kolkata")


@pytest.fixture
def empty_store():
    return ActivityStore()


@pytest.fixture
def sports_day():
    return date(2025, 3, 10)
