from __future__ import annotations

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from aquacrew.api.deps import get_container
from aquacrew.core.container import AppContainer
from aquacrew.core.errors import PermissionError
from aquacrew.workers.migrate_streak_fields import migrate_streak_fields

router = APIRouter(prefix="/v1/admin", tags=["admin"])


def require_admin(
    x_admin_key: Optional[str] = Header(None),
    container: AppContainer = Depends(get_container),
) -> None:
    """Check X-Admin-Key. Without a configured ADMIN_KEY the check is open, except in production."""
    expected = container.settings.ADMIN_KEY
    if not expected:
        if container.settings.ENV.lower() == "production":
            raise PermissionError("ADMIN_KEY is not configured")
        return
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise PermissionError("Admin key required")


@router.post("/migrations/streak-fields", dependencies=[Depends(require_admin)])
def run_streak_migration(dry_run: bool = Query(True), container: AppContainer = Depends(get_container)):
    """Report-only unless called with dry_run=false, matching the CLI default."""
    return migrate_streak_fields(container.store, dry_run=dry_run)
