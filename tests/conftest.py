"""Tests configuration and fixtures."""

import pytest

from authstore.config import Settings
from support import FakeDatabase, FakeSession


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with mock values."""
    return Settings(
        env="development",
        debug=False,
    )


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_database(fake_session: FakeSession) -> FakeDatabase:
    return FakeDatabase(fake_session)
