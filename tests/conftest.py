"""Shared pytest fixtures for Kindred tests."""
from datetime import datetime, timedelta, timezone

import pytest

from app.schemas.profile import Profile


BASE_TIME = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start=BASE_TIME):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def build_profile(user_id, age=30, gender="female", created_minutes_ago=0, **fields):
    """Profile with sensible defaults; ``fields`` accepts camelCase like stored rows."""
    data = {
        "user_id": user_id,
        "first_name": user_id.title(),
        "age": age,
        "gender": gender,
        "created_at": BASE_TIME - timedelta(minutes=created_minutes_ago),
    }
    data.update(fields)
    return Profile.model_validate(data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_profile():
    return build_profile


@pytest.fixture
def requester():
    return build_profile(
        "alice",
        age=29,
        gender="female",
        location={"city": "New York", "country": "USA"},
        interests=["Travel", "Hiking"],
        lifestyle={"zodiac": "Aries", "languages": ["English", "Spanish"]},
        preferences={"lookingFor": "male", "ageRange": {"min": 25, "max": 35}},
    )
