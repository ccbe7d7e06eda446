"""
FastAPI application — local TabGuard policy API for the browser extension.
Runs on http://127.0.0.1:8765 by default.

The rule engine, focus controller and schedule checker live on app.state so
that each call to create_app() produces a fully independent instance with no
shared module-level globals.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ..clock import AsyncioScheduler
from ..config import config
from ..focus.focus_mode import FocusSessionController
from ..focus.notifications import DesktopNotifier, LogNotifier
from ..focus.schedule import ScheduleChecker
from ..rules.categories import CategoryClassifier
from ..rules.engine import RuleEngine
from ..store import JsonConfigStore, StoreError

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Lifespan: builds and tears down all per-app state
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    store = JsonConfigStore(config.data_dir)
    engine = RuleEngine(CategoryClassifier())
    try:
        rules = await store.load_rules() or []
    except StoreError as exc:
        logger.warning("Could not load rules, starting with none: %s", exc)
        rules = []
    engine.set_rules(rules)

    scheduler = AsyncioScheduler()
    notifier = DesktopNotifier() if config.notifier == "desktop" else LogNotifier()
    focus = FocusSessionController(engine, scheduler, store, notifier)
    await focus.initialize()

    checker = ScheduleChecker(
        engine, focus, scheduler, store,
        interval_seconds=config.schedule_check_interval_s,
    )
    await checker.load()
    checker.start()

    app.state.services = {
        "engine": engine,
        "focus": focus,
        "schedules": checker,
        "store": store,
    }
    logger.info("TabGuard ready with %d rules (data in %s)", len(rules), config.data_dir)

    yield

    checker.cancel()
    focus.close()
    await scheduler.close()


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app() -> FastAPI:
    app = FastAPI(
        title="TabGuard",
        description="Local rule engine and focus sessions for browser tab management",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000", "null"],
        allow_origin_regex=r"^(chrome|moz)-extension://.*$",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from .routers import focus, rules, schedules

    app.include_router(rules.router)
    app.include_router(focus.router)
    app.include_router(schedules.router)

    @app.get("/health")
    def health(request: Request):
        services = getattr(request.app.state, "services", None)
        if services is None:
            return {"status": "starting", "version": VERSION}
        return {
            "status": "ok",
            "version": VERSION,
            "rules": len(services["engine"].get_rules()),
            "focus_active": services["focus"].is_active,
            "schedule_checker": services["schedules"].running,
        }

    return app


app = create_app()
