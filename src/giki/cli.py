from __future__ import annotations

import json
import os

import click

from giki.auth.errors import AuthError
from giki.auth.models import Role
from giki.auth.sessions import SessionStore
from giki.auth.users import UserStore
from giki.config import get_safe_config_report, get_settings
from giki.store.db import Database
from giki.utils.log import set_log_level


def _db() -> Database:
    return Database(get_settings().public.auth_db_path())


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this run.")
def cli(log_level: str | None) -> None:
    """Giki auth service."""
    if log_level:
        set_log_level(log_level)


@cli.command(name="serve")
@click.option(
    "--host",
    default=lambda: os.environ.get("HOST", "127.0.0.1"),
    show_default="HOST or 127.0.0.1",
)
@click.option(
    "--port",
    type=int,
    default=lambda: int(os.environ.get("PORT", "8000")),
    show_default="PORT or 8000",
)
@click.option("--reload", is_flag=True, default=False)
def serve(host: str, port: int, reload: bool) -> None:
    """
    Run the HTTP API under uvicorn.
    """
    import uvicorn

    uvicorn.run("giki.server:app", host=host, port=port, reload=reload)


@cli.group(name="users")
def users_group() -> None:
    """User administration."""


@users_group.command(name="list")
@click.option("--role", type=click.Choice([r.value for r in Role]), default=None)
@click.option("--limit", type=int, default=50, show_default=True)
@click.option("--offset", type=int, default=0, show_default=True)
def users_list(role: str | None, limit: int, offset: int) -> None:
    users, total = UserStore(_db()).list_users(
        role=(Role(role) if role else None), limit=limit, offset=offset
    )
    for u in users:
        click.echo(f"{u.id}\t{u.address}\t{u.role.value}\t{u.name or ''}")
    click.echo(f"total={total}")


@users_group.command(name="set-role")
@click.argument("address")
@click.argument("role", type=click.Choice([r.value for r in Role]))
def users_set_role(address: str, role: str) -> None:
    """
    Change a user's role by wallet address (applies from their next login).
    """
    store = UserStore(_db())
    user = store.get_by_address(address)
    if user is None:
        raise click.ClickException(f"no user with address {address}")
    try:
        user = store.set_role(user.id, Role(role))
    except AuthError as ex:
        raise click.ClickException(ex.message) from ex
    click.echo(f"{user.address} -> {user.role.value}")


@cli.group(name="sessions")
def sessions_group() -> None:
    """Session maintenance."""


@sessions_group.command(name="expire")
def sessions_expire() -> None:
    """
    Mark expired-but-active sessions inactive.
    """
    n = SessionStore(_db()).expire_stale()
    click.echo(f"expired={n}")


@cli.group(name="config")
def config_group() -> None:
    """Configuration."""


@config_group.command(name="report")
def config_report() -> None:
    click.echo(json.dumps(get_safe_config_report(), indent=2, sort_keys=True, default=str))


if __name__ == "__main__":  # pragma: no cover
    cli()
