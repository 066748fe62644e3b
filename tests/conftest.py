"""Pytest configuration and fixtures."""

import os
import tempfile
from datetime import datetime, timezone

import discord
import pytest
from unittest.mock import Mock, AsyncMock

from domains.reminders.events import ScheduledEventEngine
from domains.reminders.executor import ReminderExecutor
from domains.reminders.handler import ReminderService
from domains.reminders.history import MemberHistoryStore
from domains.reminders.scheduler import ReminderScheduler
from domains.reminders.store import ReminderStore

# 2026-03-01 12:00:00 UTC
START_TS = 1772366400


class FakeClock:
    """Settable epoch clock."""

    def __init__(self, now: float = START_TS):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    @property
    def datetime(self) -> datetime:
        return datetime.fromtimestamp(self.now, timezone.utc)


class FakeSender:
    """Records sent reminders; queued errors are raised on the next sends."""

    def __init__(self):
        self.sent = []
        self.errors: list[Exception] = []

    async def send(self, reminder) -> None:
        if self.errors:
            raise self.errors.pop(0)
        self.sent.append(reminder)


@pytest.fixture
def db_path():
    """Unique temp database file per test."""
    fd, temp_path = tempfile.mkstemp(suffix="_reminders_test.db")
    os.close(fd)

    yield temp_path

    for suffix in ["", "-wal", "-shm"]:
        try:
            os.unlink(temp_path + suffix)
        except FileNotFoundError:
            pass


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(db_path, clock):
    s = ReminderStore(db_path, clock=clock)
    yield s
    s.close()


@pytest.fixture
def history(db_path, clock):
    h = MemberHistoryStore(db_path, clock=clock)
    yield h
    h.close()


@pytest.fixture
def engine(db_path, clock):
    e = ScheduledEventEngine(db_path, clock=clock)
    yield e
    e.close()


@pytest.fixture
def bridge(engine, store):
    return ReminderScheduler(engine, store)


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def executor(store, sender, bridge, clock):
    ex = ReminderExecutor(store, sender, bridge, clock=clock)
    bridge.register(ex.check_user)
    return ex


@pytest.fixture
def service(store, bridge, clock, executor):
    return ReminderService(store, bridge, clock=clock)


@pytest.fixture
def mock_discord_bot():
    """Create a mock Discord bot."""
    bot = Mock()
    bot.get_channel = Mock(return_value=Mock(spec=discord.TextChannel, send=AsyncMock()))
    bot.fetch_channel = AsyncMock()
    bot.user = Mock(name="TestBot#1234")
    return bot
