from __future__ import annotations

import os
import time
from typing import Any

import redis
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from streamverse.deps import get_db, get_redis, get_storage
from streamverse.storage.client import ChunkStorage

router = APIRouter(tags=["health"])
START_TIME = time.time()


def _ok(v: object) -> bool:
    return (isinstance(v, dict) and bool(v.get("ok"))) or v == "ok"


def _parse_required(env_val: str | None) -> list[str]:
    if not env_val:
        return ["db", "redis"]
    items = [x.strip() for x in env_val.split(",") if x.strip()]
    return items or ["db", "redis"]


def get_health_checks(db: Session, rds: redis.Redis, storage: ChunkStorage) -> dict[str, Any]:
    checks: dict[str, Any] = {}

    # db
    try:
        db.execute(text("SELECT 1"))
        checks["db"] = "ok"
    except Exception as e:
        checks["db"] = {"error": str(e)}

    # redis (replay guard lives here)
    try:
        rds.ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = {"error": str(e)}

    # storage
    ping = getattr(storage, "ping", None)
    if ping is None:
        checks["storage"] = {"ok": True, "backend": type(storage).__name__}
    else:
        try:
            checks["storage"] = {"ok": bool(ping()), "backend": type(storage).__name__}
        except Exception as e:
            checks["storage"] = {"error": str(e)}

    return checks


@router.get("/health", status_code=status.HTTP_200_OK)
def health(
    db: Session = Depends(get_db),
    rds: redis.Redis = Depends(get_redis),
    storage: ChunkStorage = Depends(get_storage),
) -> dict[str, Any]:
    checks = get_health_checks(db, rds, storage)
    is_healthy = all(_ok(v) for v in checks.values())
    return {
        "status": "healthy" if is_healthy else "degraded",
        "version": os.getenv("GIT_SHA") or "dev",
        "uptime": time.time() - START_TIME,
        "checks": checks,
    }


@router.get("/live", status_code=status.HTTP_200_OK)
def live() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/ready")
def ready(
    response: Response,
    db: Session = Depends(get_db),
    rds: redis.Redis = Depends(get_redis),
    storage: ChunkStorage = Depends(get_storage),
) -> dict[str, Any]:
    checks = get_health_checks(db, rds, storage)
    required = _parse_required(os.getenv("READINESS_REQUIRED"))  # default: ["db", "redis"]
    if all(_ok(checks.get(k)) for k in required):
        return {"status": "ready", "required": required}
    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "not_ready", "required": required, "checks": checks}
