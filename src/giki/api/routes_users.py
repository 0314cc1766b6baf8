from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from giki.api.deps import get_users, read_json_body, require_auth
from giki.api.middleware import audit_event
from giki.auth.errors import InvalidRequest, UserNotFound
from giki.auth.models import Claims, Role

router = APIRouter(prefix="/users", tags=["users"])


def _opt_field(body: dict[str, Any], key: str) -> str | None:
    v = body.get(key)
    if v is None:
        return None
    if not isinstance(v, str):
        raise InvalidRequest(f"{key} must be a string")
    return v


@router.get("")
async def list_users(
    request: Request,
    role: Role | None = None,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _: Claims = Depends(require_auth(Role.admin)),
) -> dict[str, Any]:
    users, total = get_users(request).list_users(role=role, limit=limit, offset=offset)
    return {
        "success": True,
        "users": [u.to_public() for u in users],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/profile")
async def get_profile(
    request: Request, claims: Claims = Depends(require_auth())
) -> dict[str, Any]:
    user = get_users(request).get(claims.sub)
    if user is None:
        raise UserNotFound()
    return {"success": True, "user": user.to_public()}


@router.patch("/profile")
async def update_profile(
    request: Request, claims: Claims = Depends(require_auth())
) -> dict[str, Any]:
    body = await read_json_body(request)
    user = get_users(request).update_profile(
        claims.sub,
        name=_opt_field(body, "name"),
        email=_opt_field(body, "email"),
        preferences=body.get("preferences"),
    )
    return {"success": True, "user": user.to_public()}


@router.get("/{user_id}")
async def get_user(
    request: Request, user_id: str, _: Claims = Depends(require_auth(Role.admin))
) -> dict[str, Any]:
    user = get_users(request).get(user_id)
    if user is None:
        raise UserNotFound()
    return {"success": True, "user": user.to_public()}


@router.patch("/{user_id}/role")
async def set_role(
    request: Request, user_id: str, admin: Claims = Depends(require_auth(Role.admin))
) -> dict[str, Any]:
    body = await read_json_body(request)
    try:
        role = Role(str(body.get("role") or ""))
    except ValueError:
        raise InvalidRequest("Invalid role", status_code=422) from None
    users = get_users(request)
    before = users.get(user_id)
    if before is None:
        raise UserNotFound()
    # Takes effect on the user's next login; issued tokens keep their role claim.
    user = users.set_role(user_id, role)
    audit_event(
        "users.role_changed",
        request=request,
        user_id=admin.sub,
        meta={"target_user_id": user.id, "from": before.role.value, "to": user.role.value},
    )
    return {"success": True, "user": user.to_public()}
