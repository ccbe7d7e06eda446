"""
/focus — start, stop and configure focus mode; domain blocking checks.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ...api.schemas import (
    DomainBlockedOut,
    FocusActionOut,
    FocusSettingsOut,
    FocusSettingsPatch,
    FocusStartRequest,
    TemporaryAccessIn,
    TemporaryAccessOut,
)

router = APIRouter(prefix="/focus", tags=["focus"])


def _get_services(request: Request):
    return request.app.state.services


def _result(focus, success: bool) -> FocusActionOut:
    return FocusActionOut(success=success, settings=FocusSettingsOut.from_settings(focus.settings))


@router.get("", response_model=FocusSettingsOut)
def get_focus(services=Depends(_get_services)):
    return FocusSettingsOut.from_settings(services["focus"].settings)


@router.post("/start", response_model=FocusActionOut)
async def start_focus(req: Optional[FocusStartRequest] = None, services=Depends(_get_services)):
    """Start a session; an active session is stopped first."""
    focus = services["focus"]
    req = req or FocusStartRequest()
    overrides = req.settings.changes() if req.settings else None
    ok = await focus.start(req.duration, overrides)
    if not ok:
        raise HTTPException(status_code=503, detail="Could not persist focus settings")
    return _result(focus, ok)


@router.post("/stop", response_model=FocusActionOut)
async def stop_focus(services=Depends(_get_services)):
    """Stop the session. success is false when none was active."""
    focus = services["focus"]
    was_active = focus.is_active
    ok = await focus.stop()
    if was_active and not ok:
        raise HTTPException(status_code=503, detail="Could not persist focus settings")
    return _result(focus, ok)


@router.put("/settings", response_model=FocusActionOut)
async def update_settings(patch: FocusSettingsPatch, services=Depends(_get_services)):
    focus = services["focus"]
    ok = await focus.update_settings(patch.changes())
    if not ok:
        raise HTTPException(status_code=503, detail="Could not persist focus settings")
    return _result(focus, ok)


@router.get("/blocked", response_model=DomainBlockedOut)
def domain_blocked(domain: str = Query(..., min_length=1), services=Depends(_get_services)):
    return DomainBlockedOut(domain=domain, blocked=services["focus"].is_domain_blocked(domain))


@router.post("/temporary-access", response_model=TemporaryAccessOut)
def temporary_access(body: TemporaryAccessIn, services=Depends(_get_services)):
    focus = services["focus"]
    granted = focus.grant_temporary_access(body.domain)
    return TemporaryAccessOut(
        domain=body.domain,
        granted=granted,
        expires_at=focus.temporary_access.expires_at(body.domain) if granted else None,
    )
