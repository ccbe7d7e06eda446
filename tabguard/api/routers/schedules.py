"""
/schedules — CRUD for scheduled focus sessions and time-based rule schedules.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from ...api.schemas import (
    CreatedOut,
    ScheduledSessionIn,
    ScheduledSessionOut,
    ScheduledSessionPatch,
    TimeRuleIn,
    TimeRuleOut,
    TimeRulePatch,
)
from ...focus.models import FocusModeSettings

router = APIRouter(prefix="/schedules", tags=["schedules"])


def _get_services(request: Request):
    return request.app.state.services


def _ids(items):
    return {item.id for item in items}


# ── Scheduled focus sessions ────────────────────────────────────────────────

@router.get("/sessions")
def list_sessions(services=Depends(_get_services)):
    return {"sessions": [ScheduledSessionOut.from_session(s)
                         for s in services["schedules"].list_sessions()]}


@router.post("/sessions", status_code=201, response_model=CreatedOut)
async def add_session(body: ScheduledSessionIn, services=Depends(_get_services)):
    settings = FocusModeSettings().merged(body.settings.changes() if body.settings else None)
    session_id = await services["schedules"].add_session(
        name=body.name,
        start_time=body.start_time,
        end_time=body.end_time,
        days_of_week=body.days_of_week,
        enabled=body.enabled,
        settings=settings,
    )
    if session_id is None:
        raise HTTPException(status_code=400, detail="Could not add focus session")
    return CreatedOut(id=session_id)


@router.put("/sessions/{session_id}", response_model=ScheduledSessionOut)
async def update_session(session_id: str, patch: ScheduledSessionPatch, services=Depends(_get_services)):
    checker = services["schedules"]
    if session_id not in _ids(checker.list_sessions()):
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    if not await checker.update_session(session_id, patch.changes()):
        raise HTTPException(status_code=400, detail="Could not update focus session")
    session = next(s for s in checker.list_sessions() if s.id == session_id)
    return ScheduledSessionOut.from_session(session)


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, services=Depends(_get_services)):
    checker = services["schedules"]
    if session_id not in _ids(checker.list_sessions()):
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    if not await checker.delete_session(session_id):
        raise HTTPException(status_code=503, detail="Could not persist schedules")
    return {"deleted": session_id}


# ── Time-based rule schedules ───────────────────────────────────────────────

@router.get("/time-rules")
def list_time_rules(services=Depends(_get_services)):
    return {"time_rules": [TimeRuleOut.from_schedule(t)
                           for t in services["schedules"].list_time_rules()]}


@router.post("/time-rules", status_code=201, response_model=CreatedOut)
async def add_time_rule(body: TimeRuleIn, services=Depends(_get_services)):
    schedule_id = await services["schedules"].add_time_rule(
        name=body.name,
        rule_ids=body.rule_ids,
        start_time=body.start_time,
        end_time=body.end_time,
        days_of_week=body.days_of_week,
        enabled=body.enabled,
    )
    if schedule_id is None:
        raise HTTPException(status_code=400, detail="Could not add time-based rule schedule")
    return CreatedOut(id=schedule_id)


@router.put("/time-rules/{schedule_id}", response_model=TimeRuleOut)
async def update_time_rule(schedule_id: str, patch: TimeRulePatch, services=Depends(_get_services)):
    checker = services["schedules"]
    if schedule_id not in _ids(checker.list_time_rules()):
        raise HTTPException(status_code=404, detail=f"Time rule '{schedule_id}' not found")
    if not await checker.update_time_rule(schedule_id, patch.changes()):
        raise HTTPException(status_code=400, detail="Could not update time-based rule schedule")
    schedule = next(t for t in checker.list_time_rules() if t.id == schedule_id)
    return TimeRuleOut.from_schedule(schedule)


@router.delete("/time-rules/{schedule_id}")
async def delete_time_rule(schedule_id: str, services=Depends(_get_services)):
    checker = services["schedules"]
    if schedule_id not in _ids(checker.list_time_rules()):
        raise HTTPException(status_code=404, detail=f"Time rule '{schedule_id}' not found")
    if not await checker.delete_time_rule(schedule_id):
        raise HTTPException(status_code=503, detail="Could not persist schedules")
    return {"deleted": schedule_id}


@router.post("/check")
async def run_check(services=Depends(_get_services)):
    """Run one schedule tick immediately."""
    checker = services["schedules"]
    await checker.tick()
    return {"focus_active": services["focus"].is_active}
