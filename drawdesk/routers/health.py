"""Health check endpoint."""
from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import APIRouter
from sqlalchemy import text

from drawdesk.config import AppInfo, get_settings
from drawdesk.core.runtime_state import is_scheduler_active, last_reconcile_run
from drawdesk.db import get_engine
from drawdesk.services.ai_flags import ai_enabled
from drawdesk.services.ai_selection import get_ai_stats
from drawdesk.services.scheduler_lock import describe_scheduler_lock

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"


def _db_status() -> str:
    """Return 'ok' if the DB is reachable, 'error' otherwise."""

    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok"
    except Exception:  # noqa: BLE001
        logger.exception("DB health check failed")
        return "error"


def _expected_migration_head() -> str | None:
    try:
        script = ScriptDirectory.from_config(Config(str(ALEMBIC_INI)))
        return script.get_current_head()
    except Exception:  # noqa: BLE001
        logger.exception("Failed to load Alembic head revision")
        return None


def _migrations_status() -> tuple[bool, str]:
    expected_head = _expected_migration_head()
    try:
        with get_engine().connect() as conn:
            current = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
        if expected_head is None:
            return False, "unknown"
        if current == expected_head:
            return True, "up_to_date"
        return False, "out_of_date"
    except Exception:  # noqa: BLE001
        logger.exception("Migration check failed")
        return False, "unknown"


@router.get("", summary="Health check")
def healthcheck() -> dict[str, object]:
    """Return DB, migration and scheduler state with AI disambiguation telemetry."""

    settings = get_settings()
    db_status = _db_status()
    db_ok = db_status == "ok"
    if db_ok:
        migration_ok, migration_status = _migrations_status()
    else:
        migration_ok, migration_status = False, "unknown"
    last_run = last_reconcile_run()
    return {
        "status": "ok" if db_ok and migration_ok else "degraded",
        "version": AppInfo().version,
        "db_ok": db_ok,
        "db_status": db_status,
        "migrations_ok": migration_ok,
        "migrations_status": migration_status,
        "ai_disambiguation_enabled": ai_enabled(),
        "ai_stats": get_ai_stats(),
        "extraction_callback_secured": bool(settings.extraction_callback_secret),
        "scheduler_config_enabled": bool(settings.SCHEDULER_ENABLED),
        "scheduler_running": is_scheduler_active(),
        "scheduler_lock": describe_scheduler_lock(),
        "last_spend_reconcile_at": last_run.isoformat() if last_run else None,
    }
