"""
/rules — manage the user rule set and evaluate it against tab snapshots.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ...api.schemas import (
    ActionOut,
    CategoryOut,
    ConflictOut,
    DecisionsOut,
    EvaluationOut,
    EvaluationResultOut,
    RuleIn,
    RuleListOut,
    RuleOut,
    TabSnapshotIn,
)
from ...config import config
from ...store import StoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rules", tags=["rules"])


def _get_services(request: Request):
    return request.app.state.services


def _context(services, tab: TabSnapshotIn):
    return services["focus"].context_for_tab(
        url=tab.url,
        tab_id=tab.tab_id,
        window_id=tab.window_id,
        tab_count=tab.tab_count,
        category=tab.category,
        is_active=tab.is_active,
    )


def _action_out(action) -> ActionOut:
    return ActionOut(type=action.type, value=action.value)


# ── Rule set ────────────────────────────────────────────────────────────────

@router.get("", response_model=RuleListOut)
def list_rules(
    include_focus: bool = Query(True, description="Include synthesized focus rules"),
    services=Depends(_get_services),
):
    """Rules in evaluation order."""
    if include_focus:
        rules = services["engine"].get_rules()
    else:
        rules = services["focus"].user_rules()
    return RuleListOut(rules=[RuleOut.from_rule(r) for r in rules])


@router.put("", response_model=RuleListOut)
async def replace_rules(body: List[RuleIn], services=Depends(_get_services)):
    """Replace the user rule set. Persisted before it takes effect."""
    ids = [r.id for r in body]
    if len(ids) != len(set(ids)):
        raise HTTPException(status_code=400, detail="Rule ids must be unique")
    focus = services["focus"]
    clashing = [i for i in ids if focus.is_focus_rule(i)]
    if clashing:
        raise HTTPException(status_code=400, detail=f"Reserved rule id prefix: {clashing[0]}")

    rules = [r.to_rule() for r in body]
    try:
        await services["store"].save_rules(rules)
    except StoreError as exc:
        logger.warning("Could not save rules: %s", exc)
        raise HTTPException(status_code=503, detail="Could not persist rules")

    focus.replace_user_rules(rules)
    logger.info("Replaced user rule set (%d rules)", len(rules))
    return RuleListOut(rules=[RuleOut.from_rule(r) for r in focus.user_rules()])


# ── Evaluation ──────────────────────────────────────────────────────────────

@router.post("/evaluate", response_model=EvaluationOut)
def evaluate(tab: TabSnapshotIn, services=Depends(_get_services)):
    """Per-rule results, the winning action per type, and any conflicts."""
    engine = services["engine"]
    ctx = _context(services, tab)
    results = engine.evaluate_rules(ctx)
    actions = engine.resolve_conflicts(results)

    return EvaluationOut(
        domain=ctx.domain,
        category=ctx.category,
        focus_mode_active=ctx.focus_mode_active,
        results=[
            EvaluationResultOut(
                rule_id=r.rule.id,
                matched=r.matched,
                action=_action_out(r.action) if r.action else None,
                priority=r.priority,
            )
            for r in results
        ],
        actions=[_action_out(a) for a in actions],
        conflicts=[
            ConflictOut(
                action_type=c.action_type,
                rule_ids=[r.id for r in c.rules],
                resolution=c.resolution.id,
            )
            for c in engine.get_conflicts()
        ],
    )


@router.post("/decisions", response_model=DecisionsOut)
def decisions(tab: TabSnapshotIn, services=Depends(_get_services)):
    """The three answers the extension needs for a tab event."""
    engine = services["engine"]
    ctx = _context(services, tab)
    close = engine.should_close_tabs(ctx)
    return DecisionsOut(
        domain=ctx.domain,
        category=ctx.category,
        tab_limit=engine.get_tab_limit_for_context(ctx, config.default_tab_limit),
        block_new_tabs=engine.should_block_new_tabs(ctx),
        close_tabs=close.should_close,
        close_after_minutes=close.after_minutes,
        domain_blocked=services["focus"].is_domain_blocked(ctx.domain),
    )


# ── Categories ──────────────────────────────────────────────────────────────

@router.get("/categorize", response_model=CategoryOut)
def categorize(domain: str = Query(..., min_length=1), services=Depends(_get_services)):
    return CategoryOut(domain=domain, category=services["engine"].categorize_website(domain))


@router.get("/category-limits")
def category_limits(
    default_limit: Optional[int] = Query(None, ge=1),
    services=Depends(_get_services),
):
    """Effective tab limit per category, ignoring time and tab-count conditions."""
    limit = default_limit if default_limit is not None else config.default_tab_limit
    return {"limits": services["engine"].get_category_tab_limits(limit)}
