from __future__ import annotations

import time
from types import SimpleNamespace

import pytest

from giki.auth.gate import (
    ROLE_PERMISSIONS,
    ROLE_SATISFIED_BY,
    authenticate_request,
    has_permission,
    permissions_for_role,
    role_satisfies,
)
from giki.auth.models import Role, TokenSubject
from giki.auth.tokens import TokenService
from tests._helpers.auth import TEST_JWT_SECRET


def _request(tokens: TokenService, cookies: dict[str, str]) -> SimpleNamespace:
    state = SimpleNamespace(tokens=tokens)
    return SimpleNamespace(cookies=cookies, app=SimpleNamespace(state=state))


def _access(tokens: TokenService, role: Role) -> str:
    return tokens.issue_access_token(TokenSubject(sub="u_1", address="0x" + "ab" * 20, role=role))


def test_no_cookie_is_auth_required(tokens: TokenService) -> None:
    res = authenticate_request(_request(tokens, {}))
    assert res.authenticated is False
    assert res.user is None
    assert res.error is not None
    assert (res.error.status, res.error.code) == (401, "AUTH_REQUIRED")
    assert res.error.message == "Authentication required"


def test_valid_access_token(tokens: TokenService) -> None:
    res = authenticate_request(_request(tokens, {"access_token": _access(tokens, Role.viewer)}))
    assert res.authenticated is True
    assert res.error is None
    assert res.user is not None and res.user.sub == "u_1"


def test_invalid_and_expired_tokens(tokens: TokenService) -> None:
    res = authenticate_request(_request(tokens, {"access_token": "garbage"}))
    assert res.error is not None
    assert (res.error.status, res.error.code) == (401, "INVALID_TOKEN")
    assert res.error.message == "Invalid or expired token"

    old = TokenService(secret=TEST_JWT_SECRET, clock=lambda: time.time() - 3600)
    res = authenticate_request(_request(tokens, {"access_token": _access(old, Role.admin)}))
    assert res.error is not None
    assert (res.error.status, res.error.code) == (401, "TOKEN_EXPIRED")


def test_refresh_token_is_not_a_bearer_credential(tokens: TokenService) -> None:
    subject = TokenSubject(sub="u_1", address="0x" + "ab" * 20, role=Role.admin)
    rt = tokens.issue_refresh_token(subject)
    res = authenticate_request(_request(tokens, {"access_token": rt}), Role.viewer)
    assert res.error is not None
    assert (res.error.status, res.error.code) == (401, "INVALID_TOKEN_TYPE")


@pytest.mark.parametrize(
    ("role", "required", "allowed"),
    [
        (Role.admin, Role.admin, True),
        (Role.editor, Role.admin, False),
        (Role.viewer, Role.admin, False),
        (Role.admin, Role.editor, True),
        (Role.editor, Role.editor, True),
        (Role.viewer, Role.editor, False),
        (Role.admin, Role.viewer, True),
        (Role.viewer, Role.viewer, True),
        # not a hierarchy: editor does not satisfy viewer
        (Role.editor, Role.viewer, False),
    ],
)
def test_role_rule_table(tokens: TokenService, role: Role, required: Role, allowed: bool) -> None:
    assert role_satisfies(role, required) is allowed
    res = authenticate_request(_request(tokens, {"access_token": _access(tokens, role)}), required)
    assert res.authenticated is allowed
    if not allowed:
        assert res.error is not None
        assert (res.error.status, res.error.code) == (403, "INSUFFICIENT_PERMISSIONS")


def test_no_required_role_accepts_any_role(tokens: TokenService) -> None:
    for role in Role:
        res = authenticate_request(_request(tokens, {"access_token": _access(tokens, role)}))
        assert res.authenticated is True


def test_rule_table_covers_every_role() -> None:
    assert set(ROLE_SATISFIED_BY) == set(Role)
    assert all(Role.admin in v for v in ROLE_SATISFIED_BY.values())


def test_explicit_token_service_overrides_app_state(tokens: TokenService) -> None:
    req = SimpleNamespace(cookies={"access_token": _access(tokens, Role.viewer)})
    assert authenticate_request(req, tokens=tokens).authenticated is True


def test_permission_flags_per_role() -> None:
    assert set(ROLE_PERMISSIONS) == set(Role)
    assert permissions_for_role(Role.viewer) == {
        "role": "viewer",
        "can_view": True,
        "can_edit": False,
        "can_delete": False,
        "can_manage_users": False,
    }
    assert has_permission(Role.editor, "can_edit")
    assert not has_permission(Role.editor, "can_delete")
    assert has_permission(Role.admin, "can_manage_users")
    assert not has_permission(Role.admin, "can_fly")
