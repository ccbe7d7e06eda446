"""
Schedule Checker — a one-minute tick that starts/stops scheduled focus
sessions and flips rule `enabled` flags according to time-based schedules.

Windows are "HH:MM"–"HH:MM" local times gated by day of week
(0 = Sunday … 6 = Saturday). A window whose start is later than its end wraps
through midnight.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, List, Mapping, Optional, Set

from ..clock import Scheduler
from ..rules.engine import RuleEngine
from ..store import ConfigStore, StoreError
from .focus_mode import FocusSessionController
from .models import FocusModeSettings, ScheduledFocusSession, TimeBasedRuleSchedule

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
STOP_TOLERANCE_MINUTES = 1

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


# ---------------------------------------------------------------------------
# Time-window helpers
# ---------------------------------------------------------------------------

def parse_hhmm(value: str) -> int:
    """Parse "HH:MM" into minutes since midnight; raises ValueError otherwise."""
    match = _HHMM.match(value or "")
    if match is None:
        raise ValueError(f"invalid time {value!r}, expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def is_time_in_range(now_minutes: int, start: str, end: str) -> bool:
    start_m, end_m = parse_hhmm(start), parse_hhmm(end)
    if start_m <= end_m:
        return start_m <= now_minutes <= end_m
    return now_minutes >= start_m or now_minutes <= end_m


def window_duration(start: str, end: str) -> int:
    """Span of a window in minutes; wrapping windows run into the next day."""
    start_m, end_m = parse_hhmm(start), parse_hhmm(end)
    if end_m < start_m:
        end_m += MINUTES_PER_DAY
    return end_m - start_m


def minutes_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def day_of_week(moment: datetime) -> int:
    return moment.isoweekday() % 7


def _validate_window(start: str, end: str, days: List[int]) -> None:
    parse_hhmm(start)
    parse_hhmm(end)
    for d in days:
        if isinstance(d, bool) or not isinstance(d, int) or not 0 <= d <= 6:
            raise ValueError(f"invalid day of week {d!r}, expected 0-6")


# ---------------------------------------------------------------------------
# Checker
# ---------------------------------------------------------------------------

class ScheduleChecker:

    def __init__(
        self,
        engine: RuleEngine,
        focus: FocusSessionController,
        scheduler: Scheduler,
        store: Optional[ConfigStore] = None,
        interval_seconds: float = 60,
    ):
        self._engine = engine
        self._focus = focus
        self._scheduler = scheduler
        self._store = store
        self.interval_seconds = interval_seconds
        self._sessions: List[ScheduledFocusSession] = []
        self._time_rules: List[TimeBasedRuleSchedule] = []
        self._handle: Any = None
        self._running = False
        # taken before the focus controller's own lock, never the reverse
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Periodic tick
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._arm()
        logger.info("Schedule checker started (every %ss)", self.interval_seconds)

    def cancel(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._handle is not None:
            self._scheduler.cancel(self._handle)
            self._handle = None
        logger.info("Schedule checker stopped")

    @property
    def running(self) -> bool:
        return self._running

    def _arm(self) -> None:
        self._handle = self._scheduler.after(self.interval_seconds, self._on_tick)

    async def _on_tick(self) -> None:
        self._handle = None
        try:
            await self.tick()
        except Exception:
            logger.exception("Schedule tick failed")
        # re-armed only once the body has finished, so ticks never overlap
        if self._running:
            self._arm()

    async def tick(self, now: Optional[datetime] = None) -> None:
        """Run one check; a tick requested while another runs waits for it."""
        async with self._lock:
            now = now or self._scheduler.now()
            today = day_of_week(now)
            now_m = minutes_of_day(now)

            await self._check_focus_sessions(today, now_m)
            self._check_time_rules(today, now_m)

    async def _check_focus_sessions(self, today: int, now_m: int) -> None:
        for session in list(self._sessions):
            if not session.enabled or today not in session.days_of_week:
                continue

            if is_time_in_range(now_m, session.start_time, session.end_time):
                if not self._focus.is_active:
                    duration = window_duration(session.start_time, session.end_time)
                    if await self._focus.start(duration, session.settings):
                        logger.info("Scheduled focus session started: %s", session.name)
            elif self._focus.is_active:
                past_end = (now_m - parse_hhmm(session.end_time)) % MINUTES_PER_DAY
                if 0 < past_end <= STOP_TOLERANCE_MINUTES:
                    if await self._focus.stop():
                        logger.info("Scheduled focus session ended: %s", session.name)

    def _check_time_rules(self, today: int, now_m: int) -> None:
        to_enable: Set[str] = set()
        to_disable: Set[str] = set()

        for schedule in self._time_rules:
            if not schedule.enabled or today not in schedule.days_of_week:
                continue
            inside = is_time_in_range(now_m, schedule.start_time, schedule.end_time)
            (to_enable if inside else to_disable).update(schedule.rule_ids)

        if not to_enable and not to_disable:
            return

        focus_ids = {r.id for r in self._focus.focus_rules}
        changed = False
        updated = []
        for rule in self._engine.get_rules():
            if rule.id in focus_ids:
                continue  # re-prepended by the focus controller
            if self._focus.is_focus_rule(rule.id):
                updated.append(rule)
            elif rule.id in to_enable and not rule.enabled:
                updated.append(replace(rule, enabled=True))
                changed = True
            elif rule.id in to_disable and rule.id not in to_enable and rule.enabled:
                updated.append(replace(rule, enabled=False))
                changed = True
            else:
                updated.append(rule)

        if changed:
            # keeps the focus snapshot in step; one set_rules call either way
            self._focus.replace_user_rules(updated)
            logger.info("Updated rule states from time schedules")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        if self._store is None:
            return
        try:
            sessions, time_rules = await self._store.load_schedules()
        except StoreError as exc:
            logger.warning("Could not load schedules: %s", exc)
            return
        self._sessions = [s for s in sessions if _loadable(s)]
        self._time_rules = [t for t in time_rules if _loadable(t)]
        logger.info("Loaded %d focus session schedules, %d time-based rule schedules",
                    len(self._sessions), len(self._time_rules))

    async def _commit(
        self,
        sessions: List[ScheduledFocusSession],
        time_rules: List[TimeBasedRuleSchedule],
    ) -> bool:
        # caller holds self._lock
        if self._store is not None:
            try:
                await self._store.save_schedules(sessions, time_rules)
            except StoreError as exc:
                logger.warning("Could not save schedules: %s", exc)
                return False
        self._sessions, self._time_rules = sessions, time_rules
        return True

    # ------------------------------------------------------------------
    # Scheduled focus sessions
    # ------------------------------------------------------------------

    def list_sessions(self) -> List[ScheduledFocusSession]:
        return list(self._sessions)

    async def add_session(
        self,
        name: str,
        start_time: str,
        end_time: str,
        days_of_week: List[int],
        enabled: bool = True,
        settings: Optional[FocusModeSettings] = None,
    ) -> Optional[str]:
        try:
            _validate_window(start_time, end_time, days_of_week)
        except ValueError as exc:
            logger.warning("Rejected focus session %r: %s", name, exc)
            return None

        session = ScheduledFocusSession(
            id=f"focus_session_{uuid.uuid4().hex[:12]}",
            name=name,
            start_time=start_time,
            end_time=end_time,
            days_of_week=sorted(set(days_of_week)),
            enabled=enabled,
            settings=(settings or FocusModeSettings()).copy(),
        )
        async with self._lock:
            if not await self._commit([*self._sessions, session], self._time_rules):
                return None
        logger.info("Added scheduled focus session %s (%s)", session.id, name)
        return session.id

    async def update_session(self, session_id: str, updates: Mapping[str, Any]) -> bool:
        async with self._lock:
            return await self._update_session(session_id, updates)

    async def _update_session(self, session_id: str, updates: Mapping[str, Any]) -> bool:
        index = _find(self._sessions, session_id)
        if index is None:
            return False
        current = self._sessions[index]
        fields = {k: v for k, v in updates.items()
                  if k in ("name", "start_time", "end_time", "days_of_week", "enabled", "settings")}
        if isinstance(fields.get("settings"), Mapping):
            fields["settings"] = current.settings.merged(fields["settings"])
        updated = replace(current, **fields)
        try:
            _validate_window(updated.start_time, updated.end_time, updated.days_of_week)
        except ValueError as exc:
            logger.warning("Rejected update of focus session %s: %s", session_id, exc)
            return False

        sessions = list(self._sessions)
        sessions[index] = updated
        return await self._commit(sessions, self._time_rules)

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            sessions = [s for s in self._sessions if s.id != session_id]
            if len(sessions) == len(self._sessions):
                return False
            return await self._commit(sessions, self._time_rules)

    # ------------------------------------------------------------------
    # Time-based rule schedules
    # ------------------------------------------------------------------

    def list_time_rules(self) -> List[TimeBasedRuleSchedule]:
        return list(self._time_rules)

    async def add_time_rule(
        self,
        name: str,
        rule_ids: List[str],
        start_time: str,
        end_time: str,
        days_of_week: List[int],
        enabled: bool = True,
    ) -> Optional[str]:
        try:
            _validate_window(start_time, end_time, days_of_week)
        except ValueError as exc:
            logger.warning("Rejected time-based rule schedule %r: %s", name, exc)
            return None

        schedule = TimeBasedRuleSchedule(
            id=f"time_rule_{uuid.uuid4().hex[:12]}",
            name=name,
            rule_ids=list(rule_ids),
            start_time=start_time,
            end_time=end_time,
            days_of_week=sorted(set(days_of_week)),
            enabled=enabled,
        )
        async with self._lock:
            if not await self._commit(self._sessions, [*self._time_rules, schedule]):
                return None
        logger.info("Added time-based rule schedule %s (%s)", schedule.id, name)
        return schedule.id

    async def update_time_rule(self, schedule_id: str, updates: Mapping[str, Any]) -> bool:
        async with self._lock:
            return await self._update_time_rule(schedule_id, updates)

    async def _update_time_rule(self, schedule_id: str, updates: Mapping[str, Any]) -> bool:
        index = _find(self._time_rules, schedule_id)
        if index is None:
            return False
        fields = {k: v for k, v in updates.items()
                  if k in ("name", "rule_ids", "start_time", "end_time", "days_of_week", "enabled")}
        updated = replace(self._time_rules[index], **fields)
        try:
            _validate_window(updated.start_time, updated.end_time, updated.days_of_week)
        except ValueError as exc:
            logger.warning("Rejected update of time-based rule schedule %s: %s", schedule_id, exc)
            return False

        time_rules = list(self._time_rules)
        time_rules[index] = updated
        return await self._commit(self._sessions, time_rules)

    async def delete_time_rule(self, schedule_id: str) -> bool:
        async with self._lock:
            time_rules = [t for t in self._time_rules if t.id != schedule_id]
            if len(time_rules) == len(self._time_rules):
                return False
            return await self._commit(self._sessions, time_rules)


def _loadable(schedule: Any) -> bool:
    try:
        _validate_window(schedule.start_time, schedule.end_time, schedule.days_of_week)
    except ValueError as exc:
        logger.warning("Skipping stored schedule %s: %s", schedule.id, exc)
        return False
    return True


def _find(items: List[Any], item_id: str) -> Optional[int]:
    for i, item in enumerate(items):
        if item.id == item_id:
            return i
    return None


