"""Pytest configuration and fixtures."""

import os
import sys
import tempfile
from datetime import datetime, timezone

# Keep test logs and data out of the working tree (read by config at import)
_test_dir = tempfile.mkdtemp(prefix="birthday_bot_tests_")
os.environ.setdefault("LOG_DIR", os.path.join(_test_dir, "logs"))
os.environ.setdefault("BIRTHDAY_BOT_DATA_DIR", _test_dir)

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from unittest.mock import Mock, AsyncMock, patch

from domains.birthdays.store import BirthdayRepository, Database, ReminderStore


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, *args, **kwargs):
        self.now = datetime(*args, tzinfo=kwargs.get("tzinfo", timezone.utc))


class FakeSink:
    """Notification sink that records deliveries and fails on demand."""

    def __init__(self, fail_groups=(), fail_texts=(), raise_groups=()):
        self.sent: list[tuple[str, str]] = []
        self.attempts: list[tuple[str, str]] = []
        self.fail_groups = set(fail_groups)
        self.fail_texts = list(fail_texts)
        self.raise_groups = set(raise_groups)

    async def send(self, group_id: str, text: str) -> bool:
        self.attempts.append((group_id, text))
        if group_id in self.raise_groups:
            raise RuntimeError("transport exploded")
        if group_id in self.fail_groups or any(t in text for t in self.fail_texts):
            return False
        self.sent.append((group_id, text))
        return True


@pytest.fixture
def clock():
    """Clock fixed at 2025-03-14 12:00 UTC."""
    return FixedClock(datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite database per test."""
    database = Database(str(tmp_path / "birthdays_test.db"))
    yield database
    database.close()


@pytest.fixture
def repository(db, clock):
    return BirthdayRepository(db, clock=clock)


@pytest.fixture
def reminder_store(db, clock):
    return ReminderStore(db, clock=clock)


@pytest.fixture
def fake_sink():
    return FakeSink()


@pytest.fixture
def mock_discord_bot():
    """Create a mock Discord bot."""
    bot = Mock()
    bot.get_channel = Mock(return_value=Mock(send=AsyncMock()))
    bot.fetch_channel = AsyncMock(return_value=None)
    bot.user = Mock(name="BirthdayBot#1234")
    return bot


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx client."""
    with patch('httpx.AsyncClient') as mock:
        client = AsyncMock()
        mock.return_value.__aenter__.return_value = client
        yield client


@pytest.fixture
def make_sink():
    """Factory for FakeSink with failure options."""
    return FakeSink
