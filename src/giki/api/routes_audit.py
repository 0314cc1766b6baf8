from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from giki.api.deps import require_auth
from giki.auth.models import Claims, Role
from giki.ops import audit

router = APIRouter(tags=["audit"])


@router.get("/admin/audit")
async def audit_recent(
    limit: int = Query(50, ge=1, le=500),
    _: Claims = Depends(require_auth(Role.admin)),
) -> dict[str, Any]:
    return {"success": True, "items": audit.read_recent(limit=limit)}
