"""
Shared pytest fixtures and configuration.
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tabguard.api.app import create_app
from tabguard.config import config
from tabguard.rules.engine import RuleEngine
from tabguard.store import StoreError

# A Monday (day 1), 09:00 local time
MONDAY_9AM = datetime(2024, 1, 8, 9, 0)


class ManualScheduler:
    """Deterministic Scheduler: time only moves when a test calls advance()."""

    def __init__(self, start: datetime = MONDAY_9AM):
        self._now = start
        self._timers = {}
        self._seq = 0

    def now(self) -> datetime:
        return self._now

    def after(self, delay_seconds, callback):
        self._seq += 1
        due = self._now + timedelta(seconds=max(delay_seconds, 0))
        self._timers[self._seq] = (due, callback)
        return self._seq

    def cancel(self, handle) -> None:
        self._timers.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._timers)

    def jump(self, moment: datetime) -> None:
        """Move the clock without firing anything."""
        self._now = moment

    async def advance(self, minutes: float = 0, seconds: float = 0) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self._now + timedelta(minutes=minutes, seconds=seconds)
        while True:
            due = [(when, handle) for handle, (when, _) in self._timers.items() if when <= target]
            if not due:
                break
            when, handle = min(due)
            _, callback = self._timers.pop(handle)
            self._now = max(self._now, when)
            result = callback()
            if inspect.isawaitable(result):
                await result
        self._now = target


class MemoryStore:
    """
    In-memory ConfigStore. Set fail = True to make every write raise, and
    slow = True to make every write yield to the event loop first, the way a
    write handed to an executor does.
    """

    def __init__(self):
        self.settings = None
        self.sessions = []
        self.time_rules = []
        self.rules = None
        self.fail = False
        self.saves = 0
        self.slow = False

    async def _write(self):
        if self.slow:
            await asyncio.sleep(0)
        if self.fail:
            raise StoreError("disk full")
        self.saves += 1

    async def load(self):
        return self.settings.copy() if self.settings else None

    async def save(self, settings):
        await self._write()
        self.settings = settings.copy()

    async def load_schedules(self):
        return list(self.sessions), list(self.time_rules)

    async def save_schedules(self, sessions, time_rules):
        await self._write()
        self.sessions, self.time_rules = list(sessions), list(time_rules)

    async def load_rules(self):
        return list(self.rules) if self.rules is not None else None

    async def save_rules(self, rules):
        await self._write()
        self.rules = list(rules)


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def engine():
    return RuleEngine()


@pytest.fixture()
def app(tmp_path, monkeypatch):
    """Fresh app per test with its data directory redirected to tmp_path."""
    monkeypatch.setattr(config, "data_dir", tmp_path)
    return create_app()


@pytest_asyncio.fixture()
async def client(app):
    """Async HTTP client wired directly to the ASGI app (no server needed)."""
    async with app.router.lifespan_context(app):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
