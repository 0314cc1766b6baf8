from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from giki.api.deps import (
    _client_ip,
    _ua,
    carry_cookies,
    cookie_jar,
    enforce_rate_limit,
    error_response,
    get_flow,
    read_json_body,
)
from giki.api.middleware import audit_event
from giki.auth.errors import AuthError, InvalidRequest, MissingCredentials, PersistenceFailure
from giki.auth.flow import safe_redirect_target
from giki.auth.gate import permissions_for_role
from giki.auth.wallet import build_sign_in_message, is_wallet_address
from giki.config import get_settings
from giki.utils.crypto import new_jti
from giki.utils.log import logger

router = APIRouter(prefix="/auth", tags=["auth"])


def _opt_str(v: Any) -> str | None:
    if v is None:
        return None
    if not isinstance(v, str):
        raise InvalidRequest("signature and message must be strings")
    return v or None


@router.get("/nonce")
async def nonce(address: str | None = None) -> dict[str, Any]:
    if address and not is_wallet_address(address):
        raise InvalidRequest("A valid wallet address is required")
    n = new_jti()
    return {"success": True, "nonce": n, "message": build_sign_in_message(address, n)}


@router.post("/login")
async def login(request: Request, response: Response) -> dict[str, Any]:
    s = get_settings()
    enforce_rate_limit(
        request, "login", limit=s.login_rate_limit, per_seconds=s.login_rate_window_seconds
    )
    body = await read_json_body(request)
    address = str(body.get("address") or "").strip()
    signature = _opt_str(body.get("signature"))
    message = _opt_str(body.get("message"))

    flow = get_flow(request)
    try:
        user = flow.login(
            cookie_jar(request, response),
            address=address,
            signature=signature,
            message=message,
            user_agent=_ua(request),
            ip_address=_client_ip(request),
        )
    except AuthError as ex:
        audit_event(
            "auth.login_failed", request=request, meta={"address": address, "code": ex.code}
        )
        raise
    audit_event(
        "auth.login_ok",
        request=request,
        user_id=user.id,
        meta={"role": user.role.value, "signed": bool(signature)},
    )
    return {"success": True, "user": user.to_public()}


@router.post("/refresh")
async def refresh(request: Request) -> Response:
    s = get_settings()
    enforce_rate_limit(
        request, "refresh", limit=s.refresh_rate_limit, per_seconds=s.login_rate_window_seconds
    )
    resp = JSONResponse({"success": True})
    try:
        subject = get_flow(request).refresh(cookie_jar(request, resp))
    except AuthError as ex:
        audit_event("auth.refresh_failed", request=request, meta={"code": ex.code})
        return error_response(ex.descriptor(), carry=resp)
    audit_event("auth.refresh_ok", request=request, user_id=subject.sub)
    return resp


@router.get("/refresh")
async def refresh_redirect(request: Request, redirect: str | None = None) -> Response:
    """
    Browser-navigation refresh: bounce back to `redirect` (same-origin paths only).
    """
    s = get_settings()
    enforce_rate_limit(
        request, "refresh", limit=s.refresh_rate_limit, per_seconds=s.login_rate_window_seconds
    )
    target = safe_redirect_target(redirect) or "/"
    scratch = Response()
    try:
        subject = get_flow(request).refresh(cookie_jar(request, scratch))
    except MissingCredentials as ex:
        audit_event("auth.refresh_failed", request=request, meta={"code": ex.code})
        return carry_cookies(scratch, RedirectResponse("/?login=required", status_code=307))
    except PersistenceFailure as ex:
        audit_event("auth.refresh_failed", request=request, meta={"code": ex.code})
        return carry_cookies(scratch, RedirectResponse("/?error=refresh_failed", status_code=307))
    except AuthError as ex:
        audit_event("auth.refresh_failed", request=request, meta={"code": ex.code})
        return carry_cookies(scratch, RedirectResponse("/?login=expired", status_code=307))
    audit_event("auth.refresh_ok", request=request, user_id=subject.sub)
    return carry_cookies(scratch, RedirectResponse(target, status_code=307))


@router.post("/logout")
async def logout(request: Request, response: Response) -> dict[str, Any]:
    uid = get_flow(request).logout(cookie_jar(request, response))
    try:
        audit_event("auth.logout", request=request, user_id=uid)
    except OSError as ex:
        # logout never fails on audit I/O
        logger.warning("audit_write_failed", audit_event="auth.logout", error=str(ex))
    return {"success": True}


@router.post("/logout-all")
async def logout_all(request: Request) -> Response:
    resp = JSONResponse({"success": True})
    try:
        uid = get_flow(request).logout_all(cookie_jar(request, resp))
    except AuthError as ex:
        audit_event(
            "auth.logout_all", request=request, outcome="failure", meta={"code": ex.code}
        )
        return error_response(ex.descriptor(), carry=resp)
    audit_event("auth.logout_all", request=request, user_id=uid)
    return resp


@router.get("/me")
async def me(request: Request, response: Response) -> dict[str, Any]:
    user = get_flow(request).whoami(cookie_jar(request, response))
    return {
        "success": True,
        "user": user.to_public(),
        "permissions": permissions_for_role(user.role),
    }


@router.get("/session")
async def list_sessions(request: Request, response: Response) -> dict[str, Any]:
    sessions = get_flow(request).list_sessions(cookie_jar(request, response))
    return {"success": True, "sessions": sessions}


@router.delete("/session")
async def revoke_session(request: Request, response: Response) -> dict[str, Any]:
    body = await read_json_body(request)
    session_id = str(body.get("sessionId") or body.get("session_id") or "").strip()
    if not session_id:
        raise InvalidRequest("sessionId is required")
    sess = get_flow(request).revoke_session(cookie_jar(request, response), session_id)
    audit_event(
        "auth.session_revoked",
        request=request,
        user_id=sess.user_id,
        meta={"session_id": sess.id},
    )
    return {"success": True}
