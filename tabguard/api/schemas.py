"""
Pydantic schemas for the FastAPI local API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, model_validator

from ..focus.models import FocusModeSettings, ScheduledFocusSession, TimeBasedRuleSchedule
from ..rules.models import Rule, rule_from_dict, rule_to_dict

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

Number = Union[int, float]
DayOfWeek = int  # 0 = Sunday … 6 = Saturday


# ── Rules ──────────────────────────────────────────────────────────────────

class ConditionIn(BaseModel):
    """Simple condition (type/operator/value) or and/or node (operator/conditions)."""
    type: Optional[str] = None
    operator: str
    value: Any = None
    conditions: Optional[List[ConditionIn]] = None

    @model_validator(mode="after")
    def _simple_or_composite(self):
        if self.conditions is None and self.type is None:
            raise ValueError("a condition needs either a type or a conditions list")
        return self


class ActionIn(BaseModel):
    type: str = Field(..., description="limit_tabs | block_new_tabs | close_tabs")
    value: Optional[Number] = None


class RuleIn(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    condition: ConditionIn
    action: ActionIn
    priority: int = Field(10, ge=0)
    enabled: bool = True

    def to_rule(self) -> Rule:
        return rule_from_dict(self.model_dump())


class RuleOut(BaseModel):
    id: str
    name: str
    condition: Dict[str, Any]
    action: Dict[str, Any]
    priority: int
    enabled: bool

    @classmethod
    def from_rule(cls, rule: Rule) -> "RuleOut":
        return cls(**rule_to_dict(rule))


class RuleListOut(BaseModel):
    rules: List[RuleOut]


# ── Evaluation ─────────────────────────────────────────────────────────────

class TabSnapshotIn(BaseModel):
    url: str = ""
    tab_id: int = -1
    window_id: int = -1
    tab_count: int = Field(..., ge=0)
    category: Optional[str] = Field(None, description="Pre-computed category, if known")
    is_active: bool = False


class ActionOut(BaseModel):
    type: str
    value: Optional[Number] = None


class EvaluationResultOut(BaseModel):
    rule_id: str
    matched: bool
    action: Optional[ActionOut] = None
    priority: int


class ConflictOut(BaseModel):
    action_type: str
    rule_ids: List[str]
    resolution: str


class EvaluationOut(BaseModel):
    domain: str
    category: Optional[str]
    focus_mode_active: bool
    results: List[EvaluationResultOut]
    actions: List[ActionOut]
    conflicts: List[ConflictOut]


class DecisionsOut(BaseModel):
    domain: str
    category: Optional[str]
    tab_limit: int
    block_new_tabs: bool
    close_tabs: bool
    close_after_minutes: float
    domain_blocked: bool


class CategoryOut(BaseModel):
    domain: str
    category: str


# ── Focus Mode ─────────────────────────────────────────────────────────────

class FocusSettingsPatch(BaseModel):
    tab_limit: Optional[int] = Field(None, ge=1, le=100)
    duration: Optional[int] = Field(None, ge=0, le=24 * 60)
    block_distractions: Optional[bool] = None
    blocked_categories: Optional[List[str]] = None
    blocked_domains: Optional[List[str]] = None
    allow_temporary_access: Optional[bool] = None
    temporary_access_duration: Optional[int] = Field(None, ge=1, le=120)

    def changes(self) -> Dict[str, Any]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class FocusStartRequest(BaseModel):
    duration: Optional[int] = Field(None, ge=0, le=24 * 60, description="Minutes, 0 = indefinite")
    settings: Optional[FocusSettingsPatch] = None


class FocusSettingsOut(BaseModel):
    active: bool
    tab_limit: int
    duration: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    block_distractions: bool
    blocked_categories: List[str]
    blocked_domains: List[str]
    allow_temporary_access: bool
    temporary_access_duration: int

    @classmethod
    def from_settings(cls, s: FocusModeSettings) -> "FocusSettingsOut":
        return cls(**s.__dict__)


class FocusActionOut(BaseModel):
    success: bool
    settings: FocusSettingsOut


class DomainBlockedOut(BaseModel):
    domain: str
    blocked: bool


class TemporaryAccessIn(BaseModel):
    domain: str = Field(..., min_length=1)


class TemporaryAccessOut(BaseModel):
    domain: str
    granted: bool
    expires_at: Optional[datetime] = None


# ── Schedules ──────────────────────────────────────────────────────────────

class ScheduledSessionIn(BaseModel):
    name: str
    start_time: str = Field(..., pattern=HHMM_PATTERN)
    end_time: str = Field(..., pattern=HHMM_PATTERN)
    days_of_week: List[DayOfWeek] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    enabled: bool = True
    settings: Optional[FocusSettingsPatch] = None


class ScheduledSessionPatch(BaseModel):
    name: Optional[str] = None
    start_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    end_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    days_of_week: Optional[List[DayOfWeek]] = None
    enabled: Optional[bool] = None
    settings: Optional[FocusSettingsPatch] = None

    def changes(self) -> Dict[str, Any]:
        data = {k: v for k, v in self.model_dump(exclude={"settings"}).items() if v is not None}
        if self.settings is not None:
            data["settings"] = self.settings.changes()
        return data


class ScheduledSessionOut(BaseModel):
    id: str
    name: str
    start_time: str
    end_time: str
    days_of_week: List[int]
    enabled: bool
    settings: FocusSettingsOut

    @classmethod
    def from_session(cls, s: ScheduledFocusSession) -> "ScheduledSessionOut":
        return cls(
            id=s.id,
            name=s.name,
            start_time=s.start_time,
            end_time=s.end_time,
            days_of_week=list(s.days_of_week),
            enabled=s.enabled,
            settings=FocusSettingsOut.from_settings(s.settings),
        )


class TimeRuleIn(BaseModel):
    name: str
    rule_ids: List[str] = Field(..., min_length=1)
    start_time: str = Field(..., pattern=HHMM_PATTERN)
    end_time: str = Field(..., pattern=HHMM_PATTERN)
    days_of_week: List[DayOfWeek] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    enabled: bool = True


class TimeRulePatch(BaseModel):
    name: Optional[str] = None
    rule_ids: Optional[List[str]] = None
    start_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    end_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    days_of_week: Optional[List[DayOfWeek]] = None
    enabled: Optional[bool] = None

    def changes(self) -> Dict[str, Any]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class TimeRuleOut(BaseModel):
    id: str
    name: str
    rule_ids: List[str]
    start_time: str
    end_time: str
    days_of_week: List[int]
    enabled: bool

    @classmethod
    def from_schedule(cls, t: TimeBasedRuleSchedule) -> "TimeRuleOut":
        return cls(**t.__dict__)


class CreatedOut(BaseModel):
    id: str
