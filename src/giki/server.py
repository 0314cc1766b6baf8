from __future__ import annotations

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from giki import __version__
from giki.api.deps import AuthDenied, error_response
from giki.api.middleware import request_context_middleware
from giki.api.routes_audit import router as audit_router
from giki.api.routes_auth import router as auth_router
from giki.api.routes_users import router as users_router
from giki.auth.errors import AuthError
from giki.auth.flow import AuthFlow
from giki.auth.sessions import SessionStore
from giki.auth.tokens import TokenService
from giki.auth.users import UserStore
from giki.config import get_settings
from giki.store.db import Database
from giki.utils.log import logger
from giki.utils.ratelimit import RateLimiter


@asynccontextmanager
async def lifespan(app: FastAPI):
    s = get_settings()
    db = Database(s.public.auth_db_path())
    users = UserStore(db)
    sessions = SessionStore(db)
    tokens = TokenService.from_settings(s)
    app.state.db = db
    app.state.users = users
    app.state.sessions = sessions
    app.state.tokens = tokens
    app.state.auth_flow = AuthFlow.from_settings(s, tokens=tokens, users=users, sessions=sessions)
    app.state.rate_limiter = RateLimiter()

    expired = sessions.expire_stale()
    logger.info(
        "server_ready",
        env=str(s.app_env),
        db=str(db.db_path),
        cookie_secure=s.public.effective_cookie_secure(),
        allow_unsigned_login=bool(s.allow_unsigned_login),
        expired_sessions=expired,
    )
    if s.public.is_production() and bool(s.allow_unsigned_login):
        logger.warning("unsigned_login_enabled_in_production")
    yield
    logger.info("server_stopped")


async def _auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=str(exc))
    return error_response(exc.descriptor())


async def _auth_denied_handler(request: Request, exc: AuthDenied) -> JSONResponse:
    return error_response(exc.descriptor)


def create_app() -> FastAPI:
    app = FastAPI(title="giki auth", version=__version__, lifespan=lifespan)

    # Strict CORS: only configured origins, credentials on for cookies
    s = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=s.cors_origin_list(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    app.add_exception_handler(AuthError, _auth_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(AuthDenied, _auth_denied_handler)  # type: ignore[arg-type]

    app.include_router(auth_router, prefix="/api")
    app.include_router(users_router, prefix="/api")
    app.include_router(audit_router, prefix="/api")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        t0 = time.perf_counter()
        ip = request.client.host if request.client else "unknown"
        path = request.url.path
        response = None
        try:
            response = await call_next(request)
        finally:
            dt_ms = (time.perf_counter() - t0) * 1000.0
            logger.info(
                "http_done",
                ip=ip,
                method=request.method,
                path=path,
                status=getattr(response, "status_code", 0),
                duration_ms=dt_ms,
            )
        return response

    # Must be outermost so request_id is present for all logs (including log_requests).
    app.middleware("http")(request_context_middleware)

    @app.get("/api/health")
    async def health():
        return {"ok": True, "version": __version__}

    return app


app = create_app()
