"""Tests for time-window helpers and the schedule checker."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from tabguard.focus.focus_mode import FocusSessionController
from tabguard.focus.models import FocusModeSettings, ScheduledFocusSession, TimeBasedRuleSchedule
from tabguard.focus.schedule import (
    ScheduleChecker,
    day_of_week,
    is_time_in_range,
    parse_hhmm,
    window_duration,
)
from tabguard.rules.models import Action, Rule, SimpleCondition

from conftest import MONDAY_9AM

MONDAY = 1
WEEKDAYS = [1, 2, 3, 4, 5]

USER_RULES = [
    Rule("social_limit", "Social limit", SimpleCondition("category", "equals", "social"),
         Action("limit_tabs", 3), priority=5, enabled=False),
    Rule("work_limit", "Work limit", SimpleCondition("category", "equals", "work"),
         Action("limit_tabs", 12), priority=6),
]


def _at(hour, minute=0, day=8):
    return datetime(2024, 1, day, hour, minute)


@pytest.fixture()
def focus(engine, scheduler, store):
    engine.set_rules(USER_RULES)
    return FocusSessionController(engine, scheduler, store)


@pytest.fixture()
def checker(engine, focus, scheduler, store):
    return ScheduleChecker(engine, focus, scheduler, store)


def _enabled(engine):
    return {r.id: r.enabled for r in engine.get_rules()}


class TestWindowHelpers:
    def test_parse(self):
        assert parse_hhmm("00:00") == 0
        assert parse_hhmm("23:59") == 23 * 60 + 59

    @pytest.mark.parametrize("bad", ["24:00", "9:00", "12:60", "noon", ""])
    def test_parse_rejects(self, bad):
        with pytest.raises(ValueError):
            parse_hhmm(bad)

    def test_plain_window_is_inclusive(self):
        assert is_time_in_range(parse_hhmm("09:00"), "09:00", "17:00")
        assert is_time_in_range(parse_hhmm("17:00"), "09:00", "17:00")
        assert not is_time_in_range(parse_hhmm("17:01"), "09:00", "17:00")

    def test_window_wraps_midnight(self):
        assert is_time_in_range(parse_hhmm("23:30"), "22:00", "06:00")
        assert is_time_in_range(parse_hhmm("02:00"), "22:00", "06:00")
        assert not is_time_in_range(parse_hhmm("12:00"), "22:00", "06:00")

    def test_window_duration(self):
        assert window_duration("09:00", "10:30") == 90
        assert window_duration("22:00", "06:00") == 480

    def test_day_of_week_sunday_is_zero(self):
        assert day_of_week(datetime(2024, 1, 7)) == 0
        assert day_of_week(MONDAY_9AM) == MONDAY


class TestScheduledSessions:
    async def test_starts_inside_window(self, checker, focus):
        await checker.add_session("Morning", "08:30", "10:00", WEEKDAYS)
        await checker.tick(_at(9))
        assert focus.is_active
        assert focus.settings.duration == 90

    async def test_uses_session_settings(self, checker, focus):
        await checker.add_session("Deep work", "08:30", "10:00", WEEKDAYS,
                                  settings=FocusModeSettings(tab_limit=2))
        await checker.tick(_at(9))
        assert focus.settings.tab_limit == 2

    async def test_ignores_other_days_and_disabled(self, checker, focus):
        await checker.add_session("Weekend", "08:00", "12:00", [0, 6])
        await checker.add_session("Off", "08:00", "12:00", WEEKDAYS, enabled=False)
        await checker.tick(_at(9))
        assert not focus.is_active

    async def test_stops_just_after_end(self, checker, focus):
        await checker.add_session("Morning", "08:30", "10:00", WEEKDAYS)
        await checker.tick(_at(9))
        await checker.tick(_at(10))
        assert focus.is_active
        await checker.tick(_at(10, 1))
        assert not focus.is_active

    async def test_does_not_stop_long_after_end(self, checker, focus):
        await checker.add_session("Morning", "08:30", "10:00", WEEKDAYS)
        await focus.start(0)
        await checker.tick(_at(10, 5))
        assert focus.is_active

    async def test_midnight_window(self, checker, focus):
        await checker.add_session("Night owl", "22:00", "06:00", [MONDAY])
        await checker.tick(_at(21, 59))
        assert not focus.is_active
        await checker.tick(_at(23, 30))
        assert focus.is_active
        assert focus.settings.duration == 480

    async def test_stop_tolerance_wraps_midnight(self, checker, focus):
        await checker.add_session("Late", "22:00", "23:59", [MONDAY, 2])
        await focus.start(0)
        await checker.tick(_at(0, 0, day=9))
        assert not focus.is_active

    async def test_active_session_not_restarted(self, checker, focus, store):
        await checker.add_session("Morning", "08:30", "10:00", WEEKDAYS)
        await checker.tick(_at(9))
        saves = store.saves
        started = focus.settings.start_time
        await checker.tick(_at(9, 1))
        assert focus.settings.start_time == started
        assert store.saves == saves


class TestTimeRules:
    async def test_enables_inside_and_disables_outside(self, checker, engine):
        await checker.add_time_rule("Office", ["social_limit", "work_limit"], "09:00", "17:00", WEEKDAYS)
        await checker.tick(_at(10))
        assert _enabled(engine) == {"social_limit": True, "work_limit": True}
        await checker.tick(_at(18))
        assert _enabled(engine) == {"social_limit": False, "work_limit": False}

    async def test_enable_wins_over_disable(self, checker, engine):
        await checker.add_time_rule("Morning", ["work_limit"], "08:00", "12:00", WEEKDAYS)
        await checker.add_time_rule("Evening", ["work_limit"], "18:00", "22:00", WEEKDAYS)
        await checker.tick(_at(10))
        assert _enabled(engine)["work_limit"]

    async def test_unchanged_tick_does_not_touch_engine(self, checker, engine, monkeypatch):
        await checker.add_time_rule("Office", ["social_limit"], "09:00", "17:00", WEEKDAYS)
        calls = []
        original = engine.set_rules
        monkeypatch.setattr(engine, "set_rules", lambda rules: (calls.append(1), original(rules)))

        await checker.tick(_at(10))
        await checker.tick(_at(10, 1))
        assert len(calls) == 1

    async def test_no_schedules_no_changes(self, checker, engine):
        before = engine.get_rules()
        await checker.tick(_at(10))
        assert engine.get_rules() == before

    async def test_toggle_during_focus_survives_stop(self, checker, engine, focus):
        await focus.start(0)
        await checker.add_time_rule("Evenings off", ["work_limit"], "06:00", "08:00", WEEKDAYS)
        await checker.tick(_at(10))

        rules = engine.get_rules()
        assert rules[0].id == "focus_tab_limit"
        assert _enabled(engine)["work_limit"] is False

        await focus.stop()
        assert _enabled(engine) == {"social_limit": False, "work_limit": False}
        assert not any(focus.is_focus_rule(r.id) for r in engine.get_rules())


class TestPeriodicTick:
    async def test_ticks_every_interval(self, checker, scheduler, focus):
        await checker.add_session("Now", "09:00", "11:00", WEEKDAYS)
        checker.start()
        assert checker.running
        assert scheduler.pending == 1

        await scheduler.advance(seconds=60)
        assert focus.is_active
        # re-armed for the next tick alongside the focus auto-stop timer
        assert scheduler.pending == 2

    async def test_start_is_idempotent(self, checker, scheduler):
        checker.start()
        checker.start()
        assert scheduler.pending == 1

    async def test_cancel(self, checker, scheduler):
        checker.start()
        checker.cancel()
        checker.cancel()
        assert not checker.running
        assert scheduler.pending == 0

    async def test_failing_tick_keeps_schedule_running(self, checker, scheduler, monkeypatch):
        async def boom(now=None):
            raise RuntimeError("tick failed")

        monkeypatch.setattr(checker, "tick", boom)
        checker.start()
        await scheduler.advance(seconds=60)
        assert checker.running
        assert scheduler.pending == 1


class TestCrud:
    async def test_add_session_persists(self, checker, store):
        session_id = await checker.add_session("Morning", "08:30", "10:00", WEEKDAYS)
        assert session_id.startswith("focus_session_")
        assert [s.id for s in store.sessions] == [session_id]
        assert [s.id for s in checker.list_sessions()] == [session_id]

    @pytest.mark.parametrize("start,end,days", [
        ("8:30", "10:00", WEEKDAYS),
        ("08:30", "25:00", WEEKDAYS),
        ("08:30", "10:00", [7]),
        ("08:30", "10:00", [-1]),
        ("08:30", "10:00", [True]),
    ])
    async def test_add_session_rejects_invalid(self, checker, start, end, days):
        assert await checker.add_session("Bad", start, end, days) is None
        assert checker.list_sessions() == []

    async def test_update_session_merges_settings(self, checker):
        session_id = await checker.add_session("Morning", "08:30", "10:00", WEEKDAYS)
        assert await checker.update_session(session_id, {
            "end_time": "11:00",
            "settings": {"tab_limit": 2},
        })
        [session] = checker.list_sessions()
        assert session.end_time == "11:00"
        assert session.settings.tab_limit == 2
        assert session.settings.blocked_categories == ["social", "entertainment"]

    async def test_update_session_rejects_invalid(self, checker):
        session_id = await checker.add_session("Morning", "08:30", "10:00", WEEKDAYS)
        assert not await checker.update_session(session_id, {"start_time": "99:99"})
        assert checker.list_sessions()[0].start_time == "08:30"

    async def test_update_unknown_session(self, checker):
        assert not await checker.update_session("focus_session_missing", {"name": "x"})

    async def test_delete_session(self, checker, store):
        session_id = await checker.add_session("Morning", "08:30", "10:00", WEEKDAYS)
        assert await checker.delete_session(session_id)
        assert not await checker.delete_session(session_id)
        assert store.sessions == []

    async def test_time_rule_crud(self, checker, store):
        schedule_id = await checker.add_time_rule("Office", ["work_limit"], "09:00", "17:00", WEEKDAYS)
        assert schedule_id.startswith("time_rule_")
        assert await checker.update_time_rule(schedule_id, {"rule_ids": ["social_limit"]})
        assert checker.list_time_rules()[0].rule_ids == ["social_limit"]
        assert store.time_rules[0].rule_ids == ["social_limit"]
        assert await checker.delete_time_rule(schedule_id)
        assert checker.list_time_rules() == []

    async def test_store_failure_leaves_schedules_unchanged(self, checker, store):
        store.fail = True
        assert await checker.add_session("Morning", "08:30", "10:00", WEEKDAYS) is None
        assert await checker.add_time_rule("Office", ["work_limit"], "09:00", "17:00", WEEKDAYS) is None
        assert checker.list_sessions() == []
        assert checker.list_time_rules() == []

    async def test_load_skips_invalid_entries(self, checker, store):
        store.sessions = [
            ScheduledFocusSession("focus_session_ok", "Ok", "09:00", "10:00", WEEKDAYS),
            ScheduledFocusSession("focus_session_bad", "Bad", "9am", "10:00", WEEKDAYS),
        ]
        store.time_rules = [
            TimeBasedRuleSchedule("time_rule_bad", "Bad", ["work_limit"], "09:00", "17:00", [8]),
        ]
        await checker.load()
        assert [s.id for s in checker.list_sessions()] == ["focus_session_ok"]
        assert checker.list_time_rules() == []


class TestOverlappingCalls:
    """CRUD and ticks issued while a store write is still in flight."""

    @pytest.fixture()
    def slow_store(self, store):
        store.slow = True
        return store

    async def test_concurrent_adds_keep_both_sessions(self, checker, slow_store):
        ids = await asyncio.gather(
            checker.add_session("A", "08:30", "10:00", WEEKDAYS),
            checker.add_session("B", "13:00", "15:00", WEEKDAYS),
        )
        assert None not in ids
        assert [s.id for s in checker.list_sessions()] == ids
        assert [s.id for s in slow_store.sessions] == ids

    async def test_session_and_time_rule_adds_do_not_clobber(self, checker, slow_store):
        session_id, schedule_id = await asyncio.gather(
            checker.add_session("Morning", "08:30", "10:00", WEEKDAYS),
            checker.add_time_rule("Office", ["work_limit"], "09:00", "17:00", WEEKDAYS),
        )
        assert [s.id for s in slow_store.sessions] == [session_id]
        assert [t.id for t in slow_store.time_rules] == [schedule_id]

    async def test_overlapping_ticks_start_focus_once(self, checker, focus, slow_store):
        await checker.add_session("Morning", "08:30", "10:00", WEEKDAYS)
        saves = slow_store.saves

        await asyncio.gather(checker.tick(_at(9)), checker.tick(_at(9)))

        assert focus.is_active
        assert slow_store.saves == saves + 1
        assert [r.id for r in focus.focus_rules].count("focus_tab_limit") == 1
        assert focus.user_rules() == USER_RULES
