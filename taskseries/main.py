from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import Depends, FastAPI

from .config import get_settings
from .crud import reconcile_series
from .db import SessionLocal, init_db
from .logging_setup import apply_log_level, setup_logging
from .rate_limit import enforce_rate_limit
from .routers import api_auth, api_goals, api_series, api_tags, api_tasks
from .version import APP_VERSION


settings = get_settings()

setup_logging(level=settings.logging.level, log_dir=settings.logging.dir)
logger = logging.getLogger("taskseries")


app = FastAPI(title=settings.app.name, version=APP_VERSION)

# Routers
rate_limited = [Depends(enforce_rate_limit)]
app.include_router(api_auth.router, prefix="/api/auth", tags=["auth"], dependencies=rate_limited)
app.include_router(api_tasks.router, prefix="/api/tasks", tags=["tasks"], dependencies=rate_limited)
app.include_router(api_series.router, prefix="/api/series", tags=["series"], dependencies=rate_limited)
app.include_router(api_goals.router, prefix="/api/goals", tags=["goals"], dependencies=rate_limited)
app.include_router(api_tags.router, prefix="/api/tags", tags=["tags"], dependencies=rate_limited)


scheduler: BackgroundScheduler | None = None


def _reconcile_job() -> None:
    dbx = SessionLocal()
    try:
        reconcile_series(dbx)
    except Exception:
        logger.exception("Error while reconciling series")
    finally:
        dbx.close()


def _configure_reconcile_job(sched: BackgroundScheduler) -> bool:
    """Schedule the empty-series sweep. Returns False when it is disabled."""
    minutes = int(settings.reconcile.interval_minutes)
    if minutes <= 0:
        logger.info("Series reconciliation disabled")
        return False

    sched.add_job(
        _reconcile_job,
        "interval",
        minutes=minutes,
        id="reconcile_series",
        replace_existing=True,
    )
    logger.info("Series reconciliation every %s minute(s)", minutes)
    return True


@app.on_event("startup")
def on_startup() -> None:
    global scheduler

    init_db()
    apply_log_level(settings.logging.level)

    sched = BackgroundScheduler()
    if _configure_reconcile_job(sched):
        sched.start()
        scheduler = sched

    logger.info("%s %s started", settings.app.name, APP_VERSION)


@app.on_event("shutdown")
def on_shutdown() -> None:
    global scheduler
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None


@app.get("/healthz")
def healthz():
    return {"status": "ok", "version": APP_VERSION}
