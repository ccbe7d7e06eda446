"""
Rule model — declarative policy definitions.

Each rule maps a Condition (simple test or and/or tree of tests) to a single
Action. Conditions are a tagged union of two frozen dataclasses; the
interpreter lives in conditions.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse

from .categories import CategoryClassifier


class ConditionType(str, Enum):
    DOMAIN = "domain"
    CATEGORY = "category"
    TIME = "time"
    TAB_COUNT = "tab_count"
    DAY_OF_WEEK = "day_of_week"
    FOCUS_MODE = "focus_mode"


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN_RANGE = "in_range"


class LogicalOperator(str, Enum):
    AND = "and"
    OR = "or"


class ActionType(str, Enum):
    LIMIT_TABS = "limit_tabs"
    BLOCK_NEW_TABS = "block_new_tabs"
    CLOSE_TABS = "close_tabs"


ACTION_TYPES = frozenset(a.value for a in ActionType)


@dataclass(frozen=True)
class SimpleCondition:
    type: str                        # ConditionType value
    operator: str                    # Operator value
    value: Any = None                # str | number | [low, high]


@dataclass(frozen=True)
class CompositeCondition:
    operator: str                    # LogicalOperator value
    conditions: Tuple["Condition", ...] = ()


Condition = Union[SimpleCondition, CompositeCondition]


@dataclass(frozen=True)
class Action:
    type: str                        # ActionType value
    value: Optional[float] = None    # limit / threshold / minutes


@dataclass(frozen=True)
class Rule:
    id: str
    name: str
    condition: Condition
    action: Action
    priority: int = 10               # 0 (highest) → larger = lower precedence
    enabled: bool = True


@dataclass(frozen=True)
class EvaluationContext:
    """Immutable browsing snapshot a rule set is evaluated against."""
    url: str
    domain: str
    tab_id: int
    window_id: int
    tab_count: int
    current_time: datetime
    category: Optional[str] = None
    is_active: bool = False
    focus_mode_active: bool = False

    @classmethod
    def from_tab(
        cls,
        url: str,
        tab_id: int,
        window_id: int,
        tab_count: int,
        classifier: CategoryClassifier,
        current_time: Optional[datetime] = None,
        category: Optional[str] = None,
        is_active: bool = False,
        focus_mode_active: bool = False,
    ) -> "EvaluationContext":
        """
        Build a context from a raw tab snapshot. A pre-computed category from
        the tab data source is used as-is; otherwise it is derived from the
        hostname.
        """
        domain = ""
        if url and url.startswith("http"):
            try:
                domain = urlparse(url).hostname or ""
            except ValueError:
                domain = ""
        if category is None:
            category = classifier.categorize(domain)
        return cls(
            url=url or "",
            domain=domain,
            tab_id=tab_id,
            window_id=window_id,
            tab_count=tab_count,
            current_time=current_time or datetime.now(),
            category=category,
            is_active=is_active,
            focus_mode_active=focus_mode_active,
        )


@dataclass
class EvaluationResult:
    rule: Rule
    matched: bool
    action: Optional[Action]
    priority: int


@dataclass
class Conflict:
    """Two or more matched rules competing for the same action type."""
    rules: List[Rule]
    action_type: str
    resolution: Rule


@dataclass(frozen=True)
class CloseDecision:
    should_close: bool
    after_minutes: float = 0


# ---------------------------------------------------------------------------
# Plain-dict codec for the JSON store and the API layer
# ---------------------------------------------------------------------------

def condition_to_dict(condition: Condition) -> Dict[str, Any]:
    if isinstance(condition, CompositeCondition):
        return {
            "operator": _raw(condition.operator),
            "conditions": [condition_to_dict(c) for c in condition.conditions],
        }
    value = condition.value
    if isinstance(value, tuple):
        value = list(value)
    return {
        "type": _raw(condition.type),
        "operator": _raw(condition.operator),
        "value": value,
    }


def condition_from_dict(data: Dict[str, Any]) -> Condition:
    """A dict carrying a "conditions" list is composite; anything else is simple."""
    if data.get("conditions") is not None:
        return CompositeCondition(
            operator=str(data.get("operator", "")),
            conditions=tuple(condition_from_dict(c) for c in data["conditions"]),
        )
    return SimpleCondition(
        type=str(data.get("type", "")),
        operator=str(data.get("operator", "")),
        value=data.get("value"),
    )


def rule_to_dict(rule: Rule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "condition": condition_to_dict(rule.condition),
        "action": {"type": _raw(rule.action.type), "value": rule.action.value},
        "priority": rule.priority,
        "enabled": rule.enabled,
    }


def rule_from_dict(data: Dict[str, Any]) -> Rule:
    action = data["action"]
    return Rule(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        condition=condition_from_dict(data["condition"]),
        action=Action(type=str(action["type"]), value=action.get("value")),
        priority=int(data.get("priority", 10)),
        enabled=bool(data.get("enabled", True)),
    )


def _raw(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value
