"""
Focus and schedule data model, plus the plain-dict codec the store uses.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

# Runtime fields owned by the controller; never taken from caller overrides.
RUNTIME_FIELDS = frozenset({"active", "start_time", "end_time"})


@dataclass
class FocusModeSettings:
    active: bool = False
    tab_limit: int = 5
    duration: int = 25                   # minutes, 0 = indefinite
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    block_distractions: bool = True
    blocked_categories: List[str] = field(default_factory=lambda: ["social", "entertainment"])
    blocked_domains: List[str] = field(default_factory=list)
    allow_temporary_access: bool = True
    temporary_access_duration: int = 5   # minutes

    def copy(self) -> "FocusModeSettings":
        return replace(
            self,
            blocked_categories=list(self.blocked_categories),
            blocked_domains=list(self.blocked_domains),
        )

    def merged(self, overrides: "Mapping[str, Any] | FocusModeSettings | None") -> "FocusModeSettings":
        """
        Return a copy with *overrides* applied. Unknown keys and the runtime
        fields (active, start/end time) are ignored.
        """
        result = self.copy()
        if overrides is None:
            return result
        if isinstance(overrides, FocusModeSettings):
            overrides = {f.name: getattr(overrides, f.name) for f in fields(overrides)}
        known = {f.name for f in fields(self)} - RUNTIME_FIELDS
        for k, v in overrides.items():
            if k in known:
                setattr(result, k, list(v) if isinstance(v, (list, tuple)) else v)
        return result


@dataclass
class ScheduledFocusSession:
    id: str
    name: str
    start_time: str                      # "HH:MM"
    end_time: str                        # "HH:MM"
    days_of_week: List[int]              # 0 = Sunday … 6 = Saturday
    enabled: bool = True
    settings: FocusModeSettings = field(default_factory=FocusModeSettings)


@dataclass
class TimeBasedRuleSchedule:
    id: str
    name: str
    rule_ids: List[str]
    start_time: str
    end_time: str
    days_of_week: List[int]
    enabled: bool = True


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

def settings_to_dict(s: FocusModeSettings) -> Dict[str, Any]:
    return {
        "active": s.active,
        "tab_limit": s.tab_limit,
        "duration": s.duration,
        "start_time": s.start_time.isoformat() if s.start_time else None,
        "end_time": s.end_time.isoformat() if s.end_time else None,
        "block_distractions": s.block_distractions,
        "blocked_categories": list(s.blocked_categories),
        "blocked_domains": list(s.blocked_domains),
        "allow_temporary_access": s.allow_temporary_access,
        "temporary_access_duration": s.temporary_access_duration,
    }


def settings_from_dict(data: Mapping[str, Any]) -> FocusModeSettings:
    defaults = FocusModeSettings()
    return FocusModeSettings(
        active=bool(data.get("active", defaults.active)),
        tab_limit=int(data.get("tab_limit", defaults.tab_limit)),
        duration=int(data.get("duration", defaults.duration)),
        start_time=_parse_dt(data.get("start_time")),
        end_time=_parse_dt(data.get("end_time")),
        block_distractions=bool(data.get("block_distractions", defaults.block_distractions)),
        blocked_categories=list(data.get("blocked_categories", defaults.blocked_categories)),
        blocked_domains=list(data.get("blocked_domains", defaults.blocked_domains)),
        allow_temporary_access=bool(data.get("allow_temporary_access", defaults.allow_temporary_access)),
        temporary_access_duration=int(
            data.get("temporary_access_duration", defaults.temporary_access_duration)
        ),
    )


def session_to_dict(s: ScheduledFocusSession) -> Dict[str, Any]:
    return {
        "id": s.id,
        "name": s.name,
        "start_time": s.start_time,
        "end_time": s.end_time,
        "days_of_week": list(s.days_of_week),
        "enabled": s.enabled,
        "settings": settings_to_dict(s.settings),
    }


def session_from_dict(data: Mapping[str, Any]) -> ScheduledFocusSession:
    return ScheduledFocusSession(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        start_time=str(data["start_time"]),
        end_time=str(data["end_time"]),
        days_of_week=[int(d) for d in data.get("days_of_week", [])],
        enabled=bool(data.get("enabled", True)),
        settings=settings_from_dict(data.get("settings") or {}),
    )


def time_rule_to_dict(t: TimeBasedRuleSchedule) -> Dict[str, Any]:
    return {
        "id": t.id,
        "name": t.name,
        "rule_ids": list(t.rule_ids),
        "start_time": t.start_time,
        "end_time": t.end_time,
        "days_of_week": list(t.days_of_week),
        "enabled": t.enabled,
    }


def time_rule_from_dict(data: Mapping[str, Any]) -> TimeBasedRuleSchedule:
    return TimeBasedRuleSchedule(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        rule_ids=[str(r) for r in data.get("rule_ids", [])],
        start_time=str(data["start_time"]),
        end_time=str(data["end_time"]),
        days_of_week=[int(d) for d in data.get("days_of_week", [])],
        enabled=bool(data.get("enabled", True)),
    )


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
