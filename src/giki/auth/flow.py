from __future__ import annotations

from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit

from giki.auth.cookies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    CookieJar,
    secure_cookie_options,
)
from giki.auth.errors import (
    AuthError,
    InvalidRequest,
    InvalidSignature,
    MissingCredentials,
    PersistenceFailure,
    SessionInactive,
    SessionNotFound,
    UserNotFound,
)
from giki.auth.gate import require_access_claims
from giki.auth.models import (
    Claims,
    RefreshStatus,
    Session,
    TokenSubject,
    TokenType,
    User,
    now_ts,
)
from giki.auth.sessions import SessionStore
from giki.auth.tokens import TokenService, expect_type
from giki.auth.users import UserStore
from giki.auth.wallet import is_wallet_address, verify_wallet_signature
from giki.config import Settings
from giki.utils.log import logger

SignatureVerifier = Callable[[str, str, str], bool]


def safe_redirect_target(raw: str | None) -> str | None:
    """
    Accept only same-origin relative paths ("/wiki/page?x=1"); anything else is None.
    """
    target = str(raw or "").strip()
    if not target.startswith("/") or target.startswith("//"):
        return None
    if "\\" in target or any(ord(c) < 0x20 for c in target):
        return None
    parts = urlsplit(target)
    if parts.scheme or parts.netloc:
        return None
    return target


class AuthFlow:
    """
    Login / refresh / logout orchestration over a CookieJar.

    Access-token routes go through the gate; session management and refresh
    are authorized by the refresh-token cookie instead.
    """

    def __init__(
        self,
        *,
        tokens: TokenService,
        users: UserStore,
        sessions: SessionStore,
        cookie_secure: bool = False,
        allow_unsigned_login: bool = True,
        verifier: SignatureVerifier = verify_wallet_signature,
    ) -> None:
        self.tokens = tokens
        self.users = users
        self.sessions = sessions
        self.cookie_secure = bool(cookie_secure)
        self.allow_unsigned_login = bool(allow_unsigned_login)
        self.verifier = verifier

    @classmethod
    def from_settings(
        cls, s: Settings, *, tokens: TokenService, users: UserStore, sessions: SessionStore
    ) -> AuthFlow:
        return cls(
            tokens=tokens,
            users=users,
            sessions=sessions,
            cookie_secure=s.public.effective_cookie_secure(),
            allow_unsigned_login=bool(s.allow_unsigned_login),
        )

    # --- cookies ---
    def _set_auth_cookies(self, jar: CookieJar, access: str, refresh: str | None) -> None:
        jar.set(
            ACCESS_TOKEN_COOKIE,
            access,
            secure_cookie_options(self.tokens.access_ttl_seconds, secure=self.cookie_secure),
        )
        if refresh is not None:
            jar.set(
                REFRESH_TOKEN_COOKIE,
                refresh,
                secure_cookie_options(self.tokens.refresh_ttl_seconds, secure=self.cookie_secure),
            )

    @staticmethod
    def _clear_auth_cookies(jar: CookieJar) -> None:
        jar.delete(ACCESS_TOKEN_COOKIE)
        jar.delete(REFRESH_TOKEN_COOKIE)

    def _refresh_claims(self, token: str | None) -> Claims:
        if not token:
            raise MissingCredentials("Refresh token required")
        return expect_type(self.tokens.verify(token), TokenType.refresh)

    # --- login ---
    def _check_proof(self, address: str, signature: str | None, message: str | None) -> None:
        has_sig = bool(signature)
        has_msg = bool(message)
        if has_sig != has_msg:
            raise InvalidRequest("signature and message must be provided together")
        if has_sig:
            if not self.verifier(address, str(signature), str(message)):
                raise InvalidSignature()
            return
        if not self.allow_unsigned_login:
            raise InvalidSignature("A wallet signature is required")
        logger.warning("login_unsigned", address=address)

    def login(
        self,
        jar: CookieJar,
        *,
        address: str,
        signature: str | None = None,
        message: str | None = None,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> User:
        addr = str(address or "").strip()
        if not addr:
            raise InvalidRequest("Wallet address is required")
        if not self.allow_unsigned_login and not is_wallet_address(addr):
            raise InvalidRequest("A valid wallet address is required")
        self._check_proof(addr, signature, message)

        # User lookup/creation is on the critical path: PersistenceFailure propagates.
        user, created = self.users.get_or_create_for_login(addr)
        subject = TokenSubject(sub=user.id, address=user.address, role=user.role)
        access = self.tokens.issue_access_token(subject)
        refresh = self.tokens.issue_refresh_token(subject)
        try:
            self.sessions.create(
                user.id,
                refresh,
                expires_at=now_ts() + self.tokens.refresh_ttl_seconds,
                user_agent=user_agent,
                ip_address=ip_address,
            )
        except PersistenceFailure as ex:
            # Login still succeeds; this login just cannot be refreshed.
            logger.warning("login_session_create_failed", user_id=user.id, error=str(ex))
        self._set_auth_cookies(jar, access, refresh)
        logger.info("login_ok", user_id=user.id, role=user.role.value, created=created)
        return user

    # --- refresh ---
    def refresh(self, jar: CookieJar) -> TokenSubject:
        """
        Mint a new access token from the refresh cookie. The refresh token is
        not rotated. A rejected token or session clears both cookies before
        re-raising; a storage failure leaves them for the next attempt.
        """
        token = jar.get(REFRESH_TOKEN_COOKIE)
        try:
            claims = self._refresh_claims(token)
            check = self.sessions.check_refresh(str(token))
            if check.status == RefreshStatus.not_found:
                raise SessionNotFound()
            if check.status != RefreshStatus.valid:
                raise SessionInactive()
        except PersistenceFailure as ex:
            logger.warning("refresh_store_failed", error=str(ex))
            raise
        except AuthError as ex:
            logger.info("refresh_rejected", code=ex.code)
            self._clear_auth_cookies(jar)
            raise

        subject = claims.subject
        self._set_auth_cookies(jar, self.tokens.issue_access_token(subject), None)
        if check.session is not None:
            try:
                self.sessions.touch(check.session.id)
            except PersistenceFailure as ex:
                logger.warning("session_touch_failed", session_id=check.session.id, error=str(ex))
        logger.info("refresh_ok", user_id=subject.sub)
        return subject

    # --- logout ---
    def logout(self, jar: CookieJar) -> str | None:
        """
        Never raises. Returns the owner of the deactivated session, if any.
        """
        token = jar.get(REFRESH_TOKEN_COOKIE)
        self._clear_auth_cookies(jar)
        if not token:
            return None
        try:
            sess = self.sessions.get_by_token(token)
            if sess is None:
                return None
            self.sessions.deactivate(sess.id)
            return sess.user_id
        except PersistenceFailure as ex:
            logger.warning("logout_deactivate_failed", error=str(ex))
            return None

    def logout_all(self, jar: CookieJar) -> str:
        token = jar.get(REFRESH_TOKEN_COOKIE)
        try:
            claims = self._refresh_claims(token)
            self.sessions.deactivate_all(claims.sub)
        finally:
            self._clear_auth_cookies(jar)
        logger.info("logout_all", user_id=claims.sub)
        return claims.sub

    # --- identity ---
    def whoami(self, jar: CookieJar) -> User:
        claims = require_access_claims(self.tokens, jar.get(ACCESS_TOKEN_COOKIE))
        user = self.users.get(claims.sub)
        if user is None:
            raise UserNotFound()
        return user

    # --- session management ---
    def list_sessions(self, jar: CookieJar) -> list[dict[str, Any]]:
        token = jar.get(REFRESH_TOKEN_COOKIE)
        claims = self._refresh_claims(token)
        return [
            s.to_public(current=(s.refresh_token == token))
            for s in self.sessions.list_active(claims.sub)
        ]

    def revoke_session(self, jar: CookieJar, session_id: str) -> Session:
        token = jar.get(REFRESH_TOKEN_COOKIE)
        claims = self._refresh_claims(token)
        sess = self.sessions.get(str(session_id or ""))
        if sess is None or sess.user_id != claims.sub:
            raise SessionNotFound(status_code=404)
        self.sessions.deactivate(sess.id)
        if sess.refresh_token == token:
            # The caller revoked its own session; its cookies are now useless.
            self._clear_auth_cookies(jar)
        logger.info("session_revoked", session_id=sess.id, user_id=claims.sub)
        return sess
