from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from giki.auth.cookies import ACCESS_TOKEN_COOKIE
from giki.auth.errors import (
    AuthError,
    ErrorDescriptor,
    InsufficientPermissions,
    MissingCredentials,
)
from giki.auth.models import Claims, Role, TokenType
from giki.auth.tokens import TokenService, expect_type
from giki.utils.log import logger, set_user_id

# required role -> roles that satisfy it.
# admin satisfies everything; editor and viewer are NOT ordered relative to each other.
ROLE_SATISFIED_BY: dict[Role, frozenset[Role]] = {
    Role.viewer: frozenset({Role.viewer, Role.admin}),
    Role.editor: frozenset({Role.editor, Role.admin}),
    Role.admin: frozenset({Role.admin}),
}


PERMISSIONS = ("can_view", "can_edit", "can_delete", "can_manage_users")

# role -> capability flags clients use to show or hide actions.
ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.viewer: frozenset({"can_view"}),
    Role.editor: frozenset({"can_view", "can_edit"}),
    Role.admin: frozenset(PERMISSIONS),
}


def role_satisfies(role: Role, required: Role) -> bool:
    return Role(role) in ROLE_SATISFIED_BY[Role(required)]


def permissions_for_role(role: Role) -> dict[str, Any]:
    granted = ROLE_PERMISSIONS[Role(role)]
    return {"role": Role(role).value, **{p: (p in granted) for p in PERMISSIONS}}


def has_permission(role: Role, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS[Role(role)]


@dataclass(frozen=True, slots=True)
class AuthResult:
    authenticated: bool
    user: Claims | None = None
    error: ErrorDescriptor | None = None

    @classmethod
    def ok(cls, claims: Claims) -> AuthResult:
        return cls(authenticated=True, user=claims)

    @classmethod
    def fail(cls, err: AuthError) -> AuthResult:
        return cls(authenticated=False, error=err.descriptor())


def require_access_claims(
    tokens: TokenService, token: str | None, required_role: Role | None = None
) -> Claims:
    """
    Resolve an access token into claims and apply the role rule; raises AuthError.

    Never attempts recovery (refresh is the caller's job) and never touches
    the session store.
    """
    if not token:
        raise MissingCredentials()
    claims = expect_type(tokens.verify(token), TokenType.access)
    if required_role is not None and not role_satisfies(claims.role, required_role):
        raise InsufficientPermissions()
    return claims


def authenticate_token(
    tokens: TokenService, token: str | None, required_role: Role | None = None
) -> AuthResult:
    try:
        claims = require_access_claims(tokens, token, required_role)
    except AuthError as ex:
        logger.info("auth_gate_denied", code=ex.code, status=ex.status_code)
        return AuthResult.fail(ex)
    set_user_id(claims.sub)
    return AuthResult.ok(claims)


def authenticate_request(
    request: Any, required_role: Role | None = None, *, tokens: TokenService | None = None
) -> AuthResult:
    """
    Entry point for every privileged route: reads the access-token cookie.
    """
    if tokens is None:
        tokens = request.app.state.tokens
    return authenticate_token(tokens, request.cookies.get(ACCESS_TOKEN_COOKIE), required_role)
