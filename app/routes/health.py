"""
Health endpoint.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from sqlalchemy import text

import core.config as config
from core.db import DB, _get_schema_revisions


router = APIRouter()


def _check_db_health() -> dict:
    if DB.engine is None:
        return {"ok": False, "error": "db_not_initialized"}

    try:
        with DB.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        return {"ok": False, "error": str(exc)}

    current_rev, head_rev = _get_schema_revisions(DB.engine)
    schema_ok = head_rev is None or current_rev == head_rev
    return {
        "ok": schema_ok,
        "schema_revision": current_rev,
        "schema_expected": head_rev,
        "schema_up_to_date": schema_ok,
    }


def _presence_status(request: Request) -> dict:
    presence = getattr(request.app.state, "presence", None)
    if presence is None:
        return {"status": "not_initialized", "online": 0}
    return {"status": "ok", "online": len(presence.online_identities())}


@router.get("/health")
async def health(request: Request):
    """Health check endpoint."""
    db_health = _check_db_health()
    presence_status = _presence_status(request)
    if not db_health.get("ok"):
        raise HTTPException(
            status_code=503,
            detail={"database": db_health, "presence": presence_status},
        )

    return {
        "status": "healthy",
        "service": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "instance_id": config.INSTANCE_ID,
        "database": db_health,
        "presence": presence_status,
        "media_provider": config.MEDIA_PROVIDER,
    }
