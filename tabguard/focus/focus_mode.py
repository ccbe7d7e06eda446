"""
Focus Mode — a two-state (inactive / active) session controller.

While active it prepends high-priority focus rules (stricter tab limit,
distraction blocking) to the caller's rule set and restores that rule set
exactly when the session ends. Timed sessions stop themselves through the
injected Scheduler.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from functools import partial
from typing import Any, Iterable, List, Mapping, Optional, Union

from ..clock import Scheduler
from ..rules.engine import RuleEngine
from ..rules.models import (
    Action,
    ActionType,
    CompositeCondition,
    ConditionType,
    EvaluationContext,
    LogicalOperator,
    Operator,
    Rule,
    SimpleCondition,
)
from ..store import ConfigStore, StoreError
from .models import FocusModeSettings
from .notifications import LogNotifier, NotificationSink
from .temporary_access import TemporaryAccessRegistry

logger = logging.getLogger(__name__)

FOCUS_RULE_PREFIX = "focus_"
FOCUS_PRIORITY = 0
STOP_RETRY_SECONDS = 60

_FOCUS_ON = SimpleCondition(ConditionType.FOCUS_MODE.value, Operator.EQUALS.value, True)

Overrides = Union[Mapping[str, Any], FocusModeSettings, None]


class FocusSessionController:

    def __init__(
        self,
        engine: RuleEngine,
        scheduler: Scheduler,
        store: Optional[ConfigStore] = None,
        notifier: Optional[NotificationSink] = None,
    ):
        self._engine = engine
        self._scheduler = scheduler
        self._store = store
        self._notifier = notifier or LogNotifier()
        self._settings = FocusModeSettings()
        self._original_rules: List[Rule] = []
        self._focus_rules: List[Rule] = []
        self._timer: Any = None
        self._timer_generation = 0
        self._lock = asyncio.Lock()
        self.temporary_access = TemporaryAccessRegistry(scheduler.now)

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._settings.active

    @property
    def settings(self) -> FocusModeSettings:
        return self._settings.copy()

    @property
    def focus_rules(self) -> List[Rule]:
        return list(self._focus_rules)

    @staticmethod
    def is_focus_rule(rule_id: str) -> bool:
        return rule_id.startswith(FOCUS_RULE_PREFIX)

    def context_for_tab(
        self,
        url: str,
        tab_id: int,
        window_id: int,
        tab_count: int,
        category: Optional[str] = None,
        is_active: bool = False,
    ) -> EvaluationContext:
        """Evaluation context stamped with the scheduler clock and the focus flag."""
        return EvaluationContext.from_tab(
            url=url,
            tab_id=tab_id,
            window_id=window_id,
            tab_count=tab_count,
            classifier=self._engine.classifier,
            current_time=self._scheduler.now(),
            category=category,
            is_active=is_active,
            focus_mode_active=self.is_active,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Restore persisted settings. A session whose end time passed while the
        process was down is closed; one still running gets its rules and
        auto-stop timer back.
        """
        if self._store is None:
            return
        try:
            saved = await self._store.load()
        except StoreError as exc:
            logger.warning("Could not load focus settings, using defaults: %s", exc)
            return
        if saved is None:
            return

        async with self._lock:
            if not saved.active:
                self._settings = saved
                return

            now = self._scheduler.now()
            if saved.end_time is not None and now >= saved.end_time:
                expired_at = saved.end_time
                closed = saved.copy()
                closed.active = False
                closed.start_time = None
                closed.end_time = None
                self._settings = closed
                logger.info("Focus session ended at %s while offline; now inactive",
                            expired_at.isoformat())
                await self._persist(closed)
                return

            self._settings = saved
            self._original_rules = self._engine.get_rules()
            self._apply_focus_rules()
            if saved.end_time is not None:
                self._arm_timer((saved.end_time - now).total_seconds())
            logger.info("Resumed focus session (ends %s)",
                        saved.end_time.isoformat() if saved.end_time else "never")

    async def start(self, duration: Optional[int] = None, overrides: Overrides = None) -> bool:
        async with self._lock:
            return await self._start(duration, overrides)

    async def stop(self) -> bool:
        async with self._lock:
            return await self._stop()

    async def update_settings(self, partial: Overrides) -> bool:
        async with self._lock:
            candidate = self._settings.merged(partial)
            if not await self._persist(candidate):
                return False

            self._settings = candidate
            if self.is_active:
                self._apply_focus_rules()
            logger.info("Focus mode settings updated")
            return True

    def close(self) -> None:
        """Release the auto-stop timer without ending the session."""
        self._cancel_timer()

    async def _start(self, duration: Optional[int], overrides: Overrides) -> bool:
        # caller holds self._lock
        if self.is_active and not await self._stop():
            return False

        candidate = self._settings.merged(overrides)
        if duration is not None:
            candidate.duration = int(duration)

        now = self._scheduler.now()
        candidate.active = True
        candidate.start_time = now
        candidate.end_time = (
            now + timedelta(minutes=candidate.duration) if candidate.duration > 0 else None
        )

        if not await self._persist(candidate):
            return False

        self._settings = candidate
        self._original_rules = self._engine.get_rules()
        self._apply_focus_rules()

        self._cancel_timer()
        if candidate.duration > 0:
            self._arm_timer(candidate.duration * 60)

        self._notify(starting=True)
        logger.info("Focus mode started: tab limit %d, %s", candidate.tab_limit,
                    f"{candidate.duration} min" if candidate.duration > 0 else "indefinite")
        return True

    async def _stop(self) -> bool:
        # caller holds self._lock
        if not self.is_active:
            return False

        candidate = self._settings.copy()
        candidate.active = False
        candidate.start_time = None
        candidate.end_time = None

        if not await self._persist(candidate):
            return False

        self._cancel_timer()
        self._engine.set_rules(self._original_rules)
        self._original_rules = []
        self._focus_rules = []
        self._settings = candidate
        self.temporary_access.clear()

        self._notify(starting=False)
        logger.info("Focus mode stopped")
        return True

    # ------------------------------------------------------------------
    # Rules owned by the caller
    # ------------------------------------------------------------------

    def user_rules(self) -> List[Rule]:
        if self.is_active:
            return list(self._original_rules)
        return self._engine.get_rules()

    def replace_user_rules(self, rules: Iterable[Rule]) -> None:
        """Swap the caller's rules; while active the focus rules stay on top."""
        rules = list(rules)
        if self.is_active:
            self._original_rules = rules
            self._apply_focus_rules()
        else:
            self._engine.set_rules(rules)

    # ------------------------------------------------------------------
    # Blocking
    # ------------------------------------------------------------------

    def is_domain_blocked(self, domain: str) -> bool:
        s = self._settings
        if not s.active or not s.block_distractions:
            return False

        if self.temporary_access.has_access(domain):
            return False

        domain = domain.lower()
        for blocked in s.blocked_domains:
            blocked = blocked.lower()
            if domain == blocked or domain.endswith("." + blocked):
                return True

        return self._engine.categorize_website(domain) in s.blocked_categories

    def grant_temporary_access(self, domain: str) -> bool:
        s = self._settings
        if not s.active or not s.allow_temporary_access:
            return False
        expires_at = self.temporary_access.grant(domain, s.temporary_access_duration)
        logger.info("Temporary access granted for %s until %s", domain, expires_at.isoformat())
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _build_focus_rules(self) -> List[Rule]:
        s = self._settings
        rules = [
            Rule(
                id=f"{FOCUS_RULE_PREFIX}tab_limit",
                name="Focus Mode Tab Limit",
                condition=_FOCUS_ON,
                action=Action(ActionType.LIMIT_TABS.value, s.tab_limit),
                priority=FOCUS_PRIORITY,
            )
        ]
        if not s.block_distractions:
            return rules

        for category in s.blocked_categories:
            rules.append(Rule(
                id=f"{FOCUS_RULE_PREFIX}block_{category}",
                name=f"Focus Mode Block {category}",
                condition=CompositeCondition(LogicalOperator.AND.value, (
                    _FOCUS_ON,
                    SimpleCondition(ConditionType.CATEGORY.value, Operator.EQUALS.value, category),
                )),
                action=Action(ActionType.BLOCK_NEW_TABS.value, 0),
                priority=FOCUS_PRIORITY,
            ))
        for domain in s.blocked_domains:
            rules.append(Rule(
                id=f"{FOCUS_RULE_PREFIX}block_domain_{domain}",
                name=f"Focus Mode Block {domain}",
                condition=CompositeCondition(LogicalOperator.AND.value, (
                    _FOCUS_ON,
                    SimpleCondition(ConditionType.DOMAIN.value, Operator.CONTAINS.value, domain),
                )),
                action=Action(ActionType.BLOCK_NEW_TABS.value, 0),
                priority=FOCUS_PRIORITY,
            ))
        return rules

    def _apply_focus_rules(self) -> None:
        self._focus_rules = self._build_focus_rules()
        self._engine.set_rules([*self._focus_rules, *self._original_rules])

    def _arm_timer(self, seconds: float) -> None:
        self._cancel_timer()
        self._timer = self._scheduler.after(
            seconds, partial(self._on_timer_expired, self._timer_generation))

    def _cancel_timer(self) -> None:
        # a callback already waiting on the lock sees the bump and does nothing
        self._timer_generation += 1
        if self._timer is not None:
            self._scheduler.cancel(self._timer)
            self._timer = None

    async def _on_timer_expired(self, generation: int) -> None:
        async with self._lock:
            if generation != self._timer_generation:
                return
            self._timer = None
            if not self.is_active:
                return
            if await self._stop():
                return
            logger.warning("Auto-stop failed; retrying in %ds", STOP_RETRY_SECONDS)
            self._arm_timer(STOP_RETRY_SECONDS)

    async def _persist(self, settings: FocusModeSettings) -> bool:
        if self._store is None:
            return True
        try:
            await self._store.save(settings)
            return True
        except StoreError as exc:
            logger.warning("Could not save focus settings: %s", exc)
            return False

    def _notify(self, starting: bool) -> None:
        s = self._settings
        if starting:
            title = "Focus Mode Started"
            message = f"Focus mode active with a tab limit of {s.tab_limit}."
            if s.duration > 0:
                message += f" Session will end in {s.duration} minutes."
        else:
            title = "Focus Mode Ended"
            message = "Focus mode has ended. Regular tab limits restored."
        try:
            self._notifier.notify(title, message)
        except Exception:
            logger.warning("Notification sink failed", exc_info=True)
