"""Shared fixtures for wpmcp tests."""

from datetime import datetime, timedelta, timezone

import pytest


class FakeClock:
    """Settable clock returning timezone-aware datetimes."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    from shared.config import ServerSettings, Settings

    return Settings(
        environment="test",
        server=ServerSettings(
            api_key="test-key",
            rate_limit_rpm=0,
            consent_log_path=str(tmp_path / "consent.log"),
        ),
    )


@pytest.fixture
def content_store():
    from content.memory import InMemoryContentStore

    return InMemoryContentStore()


@pytest.fixture
def option_store():
    from wpmcp.state import MemoryOptionStore

    return MemoryOptionStore()


@pytest.fixture
def dispatcher(settings, content_store, option_store):
    from wpmcp.dispatcher import create_dispatcher

    return create_dispatcher(settings, content_store, option_store)


@pytest.fixture
def app(settings, content_store, option_store):
    from wpmcp.main import create_app

    return create_app(settings, content_store, option_store)
