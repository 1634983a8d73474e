"""Liveness and readiness probes."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from aquacrew.api.deps import get_container
from aquacrew.core.container import AppContainer
from aquacrew.core.database import check_connection

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"status": "ok", "computed_at": datetime.now(timezone.utc).isoformat()}


@router.get("/readyz")
def readyz(container: AppContainer = Depends(get_container)):
    checks = {"document_store": container.settings.DOCUMENT_STORE}
    if container.settings.DATABASE_URL and not check_connection():
        return JSONResponse(status_code=503, content={"status": "error", "detail": "local database unavailable", "checks": checks})
    return {"status": "ok", "checks": checks}
