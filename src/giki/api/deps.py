from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse

from giki.auth.cookies import RequestCookieJar
from giki.auth.errors import ErrorDescriptor, InvalidRequest, MissingCredentials, RateLimited
from giki.auth.flow import AuthFlow
from giki.auth.gate import authenticate_request
from giki.auth.models import Claims, Role
from giki.auth.users import UserStore
from giki.utils.ratelimit import RateLimiter


class AuthDenied(HTTPException):
    """HTTPException carrying the gate's error descriptor."""

    def __init__(self, descriptor: ErrorDescriptor) -> None:
        super().__init__(status_code=descriptor.status, detail=descriptor.message)
        self.descriptor = descriptor


def carry_cookies(src: Response, dst: Response) -> Response:
    for v in src.headers.getlist("set-cookie"):
        dst.headers.append("set-cookie", v)
    return dst


def error_response(descriptor: ErrorDescriptor, *, carry: Response | None = None) -> JSONResponse:
    out = JSONResponse(descriptor.to_body(), status_code=descriptor.status)
    if carry is not None:
        # keep cookie deletions queued on the abandoned success response
        carry_cookies(carry, out)
    return out


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _ua(request: Request) -> str:
    return str(request.headers.get("user-agent") or "")[:256]


def get_flow(request: Request) -> AuthFlow:
    flow = getattr(request.app.state, "auth_flow", None)
    if flow is None:
        raise HTTPException(status_code=500, detail="Auth flow not initialized")
    return flow


def get_users(request: Request) -> UserStore:
    users = getattr(request.app.state, "users", None)
    if users is None:
        raise HTTPException(status_code=500, detail="User store not initialized")
    return users


def get_limiter(request: Request) -> RateLimiter:
    rl = getattr(request.app.state, "rate_limiter", None)
    if rl is None:
        rl = RateLimiter()
        request.app.state.rate_limiter = rl
    return rl


def cookie_jar(request: Request, response: Response) -> RequestCookieJar:
    return RequestCookieJar(request, response, secure=get_flow(request).cookie_secure)


def enforce_rate_limit(request: Request, scope: str, *, limit: int, per_seconds: int) -> None:
    rl = get_limiter(request)
    if not rl.allow(f"auth:{scope}:ip:{_client_ip(request)}", limit=limit, per_seconds=per_seconds):
        raise RateLimited()


async def read_json_body(request: Request) -> dict[str, Any]:
    try:
        raw = await request.json()
    except ValueError:
        raise InvalidRequest("Invalid JSON") from None
    if not isinstance(raw, dict):
        raise InvalidRequest("Invalid JSON")
    return raw


def require_auth(required_role: Role | None = None):
    """
    Route dependency over the authorization gate; yields the caller's claims.
    """

    def dep(request: Request) -> Claims:
        result = authenticate_request(request, required_role)
        if result.error is not None or result.user is None:
            raise AuthDenied(result.error or MissingCredentials().descriptor())
        return result.user

    return dep
