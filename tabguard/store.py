"""
Configuration store — focus settings, schedules and user rules persisted as
JSON files under config.data_dir.

The engine only talks to the ConfigStore protocol; JsonConfigStore is the
local implementation. Disk access runs in the default executor so the event
loop is never blocked.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol, Tuple, TypeVar

from .focus.models import (
    FocusModeSettings,
    ScheduledFocusSession,
    TimeBasedRuleSchedule,
    session_from_dict,
    session_to_dict,
    settings_from_dict,
    settings_to_dict,
    time_rule_from_dict,
    time_rule_to_dict,
)
from .rules.models import Rule, rule_from_dict, rule_to_dict

T = TypeVar("T")

SETTINGS_FILE = "focus_settings.json"
SCHEDULES_FILE = "schedules.json"
RULES_FILE = "rules.json"


class StoreError(Exception):
    """A read or write against the configuration store failed."""


class ConfigStore(Protocol):
    async def load(self) -> Optional[FocusModeSettings]: ...

    async def save(self, settings: FocusModeSettings) -> None: ...

    async def load_schedules(
        self,
    ) -> Tuple[List[ScheduledFocusSession], List[TimeBasedRuleSchedule]]: ...

    async def save_schedules(
        self,
        sessions: List[ScheduledFocusSession],
        time_rules: List[TimeBasedRuleSchedule],
    ) -> None: ...

    async def load_rules(self) -> Optional[List[Rule]]: ...

    async def save_rules(self, rules: List[Rule]) -> None: ...


class JsonConfigStore:

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    # ------------------------------------------------------------------
    # Focus settings
    # ------------------------------------------------------------------

    async def load(self) -> Optional[FocusModeSettings]:
        data = await self._read(SETTINGS_FILE)
        if data is None:
            return None
        return self._decode(SETTINGS_FILE, lambda: settings_from_dict(data))

    async def save(self, settings: FocusModeSettings) -> None:
        await self._write(SETTINGS_FILE, settings_to_dict(settings))

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    async def load_schedules(
        self,
    ) -> Tuple[List[ScheduledFocusSession], List[TimeBasedRuleSchedule]]:
        data = await self._read(SCHEDULES_FILE)
        if not data:
            return [], []

        def decode():
            sessions = [session_from_dict(s) for s in data.get("sessions", [])]
            time_rules = [time_rule_from_dict(t) for t in data.get("time_rules", [])]
            return sessions, time_rules

        return self._decode(SCHEDULES_FILE, decode)

    async def save_schedules(
        self,
        sessions: List[ScheduledFocusSession],
        time_rules: List[TimeBasedRuleSchedule],
    ) -> None:
        await self._write(SCHEDULES_FILE, {
            "sessions": [session_to_dict(s) for s in sessions],
            "time_rules": [time_rule_to_dict(t) for t in time_rules],
        })

    # ------------------------------------------------------------------
    # User rules
    # ------------------------------------------------------------------

    async def load_rules(self) -> Optional[List[Rule]]:
        data = await self._read(RULES_FILE)
        if data is None:
            return None
        return self._decode(RULES_FILE, lambda: [rule_from_dict(r) for r in data])

    async def save_rules(self, rules: List[Rule]) -> None:
        await self._write(RULES_FILE, [rule_to_dict(r) for r in rules])

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _read(self, name: str) -> Any:
        path = self.data_dir / name

        def read():
            if not path.exists():
                return None
            return json.loads(path.read_text())

        try:
            return await asyncio.get_running_loop().run_in_executor(None, read)
        except (OSError, ValueError) as exc:
            raise StoreError(f"could not read {path}: {exc}") from exc

    async def _write(self, name: str, payload: Any) -> None:
        path = self.data_dir / name

        def write():
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(payload, indent=2))
            tmp.replace(path)

        try:
            await asyncio.get_running_loop().run_in_executor(None, write)
        except (OSError, TypeError, ValueError) as exc:
            raise StoreError(f"could not write {path}: {exc}") from exc

    @staticmethod
    def _decode(name: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise StoreError(f"malformed {name}: {exc}") from exc
