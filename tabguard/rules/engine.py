"""
Rule Engine — evaluates the prioritized rule set against a browsing context
and resolves conflicts between rules that produce the same action type.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse

from .categories import CategoryClassifier
from .conditions import evaluate_condition, wildcard_to_regex
from .models import (
    ACTION_TYPES,
    Action,
    ActionType,
    CloseDecision,
    ConditionType,
    Conflict,
    EvaluationContext,
    EvaluationResult,
    Operator,
    Rule,
    SimpleCondition,
)

logger = logging.getLogger(__name__)


class RuleEngine:
    """
    Owns the working rule list. set_rules() is the only way to change it and
    always swaps in a new, priority-sorted list.
    """

    def __init__(self, classifier: Optional[CategoryClassifier] = None):
        self._classifier = classifier or CategoryClassifier()
        self._rules: List[Rule] = []
        self._conflicts: List[Conflict] = []

    @property
    def classifier(self) -> CategoryClassifier:
        return self._classifier

    # ------------------------------------------------------------------
    # Rule set
    # ------------------------------------------------------------------

    def set_rules(self, rules: Iterable[Rule]) -> None:
        # sorted() is stable: equal priorities keep their submitted order
        self._rules = sorted(rules, key=lambda r: r.priority)
        self._conflicts = []

    def get_rules(self) -> List[Rule]:
        return list(self._rules)

    def get_conflicts(self) -> List[Conflict]:
        """Conflicts recorded by the most recent resolve_conflicts() call."""
        return list(self._conflicts)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate_rules(self, context: EvaluationContext) -> List[EvaluationResult]:
        results: List[EvaluationResult] = []
        for rule in self._rules:
            matched = rule.enabled and evaluate_condition(rule.condition, context)
            results.append(EvaluationResult(
                rule=rule,
                matched=matched,
                action=rule.action if matched else None,
                priority=rule.priority,
            ))
        return results

    def resolve_conflicts(self, results: List[EvaluationResult]) -> List[Action]:
        """
        One action per action type. When several matched rules share a type,
        the lowest priority number wins outright; values are never merged.
        """
        groups: Dict[str, List[EvaluationResult]] = {}
        for result in results:
            if not result.matched or result.action is None:
                continue
            action_type = _type_value(result.action.type)
            if action_type not in ACTION_TYPES:
                logger.warning("Rule %s has unknown action type %r, ignored",
                               result.rule.id, action_type)
                continue
            groups.setdefault(action_type, []).append(result)

        resolved: List[Action] = []
        conflicts: List[Conflict] = []

        for action_type, group in groups.items():
            if len(group) == 1:
                resolved.append(group[0].action)  # type: ignore[arg-type]
                continue
            group = sorted(group, key=lambda r: r.priority)
            winner = group[0]
            resolved.append(winner.action)  # type: ignore[arg-type]
            conflicts.append(Conflict(
                rules=[r.rule for r in group],
                action_type=action_type,
                resolution=winner.rule,
            ))

        self._conflicts = conflicts
        return resolved

    def get_matching_rule_for_action(
        self, context: EvaluationContext, action_type: str
    ) -> Optional[Rule]:
        matches = [
            r for r in self.evaluate_rules(context)
            if r.matched and r.action is not None and r.action.type == action_type
        ]
        if not matches:
            return None
        return min(matches, key=lambda r: r.priority).rule

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def get_tab_limit_for_context(self, context: EvaluationContext, default_limit: int) -> int:
        rule = self.get_matching_rule_for_action(context, ActionType.LIMIT_TABS)
        if rule is not None and _is_number(rule.action.value):
            return int(rule.action.value)  # type: ignore[arg-type]
        return default_limit

    def should_block_new_tabs(self, context: EvaluationContext) -> bool:
        rule = self.get_matching_rule_for_action(context, ActionType.BLOCK_NEW_TABS)
        if rule is None:
            return False
        if _is_number(rule.action.value):
            return context.tab_count >= rule.action.value  # type: ignore[operator]
        return True

    def should_close_tabs(self, context: EvaluationContext) -> CloseDecision:
        rule = self.get_matching_rule_for_action(context, ActionType.CLOSE_TABS)
        if rule is not None and _is_number(rule.action.value):
            return CloseDecision(should_close=True, after_minutes=rule.action.value)  # type: ignore[arg-type]
        return CloseDecision(should_close=False, after_minutes=0)

    def get_category_tab_limits(self, default_limit: int) -> Dict[str, int]:
        """Per-category limits from enabled `category equals X` limit rules."""
        limits = {c: default_limit for c in CategoryClassifier.categories()}
        for rule in self._rules:
            if not rule.enabled or rule.action.type != ActionType.LIMIT_TABS:
                continue
            cond = rule.condition
            if (
                isinstance(cond, SimpleCondition)
                and cond.type == ConditionType.CATEGORY
                and cond.operator == Operator.EQUALS
                and cond.value in limits
                and _is_number(rule.action.value)
            ):
                limits[cond.value] = int(rule.action.value)  # type: ignore[arg-type]
        return limits

    # ------------------------------------------------------------------
    # Categorization
    # ------------------------------------------------------------------

    def categorize_website(self, domain: str) -> str:
        return self._classifier.categorize(domain)

    @staticmethod
    def url_matches_domain(url: str, patterns: Iterable[str]) -> bool:
        """True when the URL's hostname matches any exact, subdomain or wildcard pattern."""
        if not url or not url.startswith("http"):
            return False
        try:
            domain = urlparse(url).hostname or ""
        except ValueError:
            return False

        for pattern in patterns:
            if pattern == "*":
                return True
            if "*" in pattern:
                if wildcard_to_regex(pattern).match(domain):
                    return True
            elif domain == pattern or domain.endswith("." + pattern):
                return True
        return False


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _type_value(action_type) -> str:
    # str-Enum members hash by name, so group on the plain value
    return action_type.value if isinstance(action_type, ActionType) else action_type
