from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import jwt

from giki.auth.errors import InvalidToken, TokenExpired, WrongTokenType
from giki.auth.models import Claims, Role, TokenSubject, TokenType
from giki.config import Settings
from giki.utils.crypto import new_jti
from giki.utils.log import logger

MIN_LEEWAY_SECONDS = 60


class TokenService:
    """
    Issues and verifies HS256-signed access/refresh tokens.

    `verify` only answers "is this cryptographically valid and unexpired";
    whether it is the right *kind* of token is checked by `expect_type`.
    """

    def __init__(
        self,
        *,
        secret: str,
        algorithm: str = "HS256",
        access_ttl_seconds: int = 15 * 60,
        refresh_ttl_seconds: int = 7 * 86400,
        leeway_seconds: int = 120,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm
        self.access_ttl_seconds = int(access_ttl_seconds)
        self.refresh_ttl_seconds = int(refresh_ttl_seconds)
        self.leeway_seconds = max(MIN_LEEWAY_SECONDS, int(leeway_seconds))
        self._clock = clock

    @classmethod
    def from_settings(cls, s: Settings) -> TokenService:
        return cls(
            secret=s.secret.jwt_secret.get_secret_value(),
            algorithm=str(s.jwt_alg),
            access_ttl_seconds=int(s.access_token_minutes) * 60,
            refresh_ttl_seconds=int(s.refresh_token_days) * 86400,
            leeway_seconds=int(s.token_leeway_seconds),
        )

    def _issue(self, subject: TokenSubject, typ: TokenType, ttl: int, jti: str | None) -> str:
        now = int(self._clock())
        payload: dict[str, Any] = {
            "sub": subject.sub,
            "address": subject.address,
            "role": Role(subject.role).value,
            "type": typ.value,
            "iat": now,
            "exp": now + int(ttl),
        }
        if jti:
            payload["jti"] = jti
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def issue_access_token(self, subject: TokenSubject) -> str:
        return self._issue(subject, TokenType.access, self.access_ttl_seconds, None)

    def issue_refresh_token(self, subject: TokenSubject) -> str:
        return self._issue(subject, TokenType.refresh, self.refresh_ttl_seconds, new_jti())

    def verify(self, token: str) -> Claims:
        if not token:
            raise InvalidToken()
        try:
            data = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                leeway=self.leeway_seconds,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            logger.info("token_expired")
            raise TokenExpired() from None
        except jwt.InvalidTokenError as ex:
            logger.info("token_invalid", error=type(ex).__name__)
            raise InvalidToken() from None
        try:
            return Claims(
                sub=str(data["sub"]),
                address=str(data.get("address") or ""),
                role=Role(str(data.get("role") or "")),
                type=TokenType(str(data.get("type") or "")),
                iat=int(data["iat"]),
                exp=int(data["exp"]),
                jti=(str(data["jti"]) if data.get("jti") else None),
            )
        except (KeyError, TypeError, ValueError):
            logger.info("token_claims_malformed")
            raise InvalidToken() from None


def expect_type(claims: Claims, expected: TokenType) -> Claims:
    if claims.type != expected:
        raise WrongTokenType()
    return claims
