"""
Operator CLI for the portal collections.

Why:
    Some changes have no HTTP endpoint (unblocking a client, resetting a
    forgotten password) and fresh installs need their data seeded before the
    first request. This tool runs the same services as the web app against the
    configured backend.

Usage:
    portal-admin init
    portal-admin set-role alice employee
    portal-admin --data-dir ./data blacklist-remove 203.0.113.7

Notes:
    Locks are per process. Avoid running mutating commands against a file
    backend while the web app is writing to it.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Optional

import click

from backend.identity_access.errors import PortalError
from backend.identity_access.stores import SessionStore
from backend.storage.bootstrap import build_backend, build_collection_store
from backend.storage.ports import StorageError
from backend.web.wiring import PortalServices, build_services


def _run(coro: Awaitable[Any]) -> Any:
    try:
        return asyncio.run(coro)
    except PortalError as exc:
        raise click.ClickException(f"{exc.kind}: {exc.detail or exc.kind}") from exc
    except StorageError as exc:
        raise click.ClickException(str(exc)) from exc


def _services(ctx: click.Context) -> PortalServices:
    return ctx.obj["services"]


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--backend",
    type=click.Choice(["file", "memory", "db"]),
    default=None,
    help="Collection backend (defaults to PORTAL_COLLECTIONS_BACKEND).",
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Data root for the file backend (defaults to PORTAL_DATA_DIR).",
)
@click.pass_context
def cli(ctx: click.Context, backend: Optional[str], data_dir: Optional[Path]) -> None:
    store = build_collection_store(build_backend(backend, data_dir=data_dir))
    ctx.obj = {"services": build_services(store=store, sessions=SessionStore())}


@cli.command("init")
@click.pass_context
def init_cmd(ctx: click.Context) -> None:
    """Write the default of every collection that does not exist yet."""
    created = _run(_services(ctx).store.ensure_initialized())
    if created:
        click.echo("Initialized: " + ", ".join(created))
    else:
        click.echo("All collections already exist; nothing to do.")


@cli.command("list-users")
@click.pass_context
def list_users_cmd(ctx: click.Context) -> None:
    users = _run(_services(ctx).directory.list())
    for name in sorted(users):
        user = users[name]
        tags = ",".join(sorted(user.tags)) or "-"
        click.echo(f"{name}\t{user.role or '?'}\t{tags}")


@cli.command("set-role")
@click.argument("username")
@click.argument("role")
@click.pass_context
def set_role_cmd(ctx: click.Context, username: str, role: str) -> None:
    user = _run(_services(ctx).directory.set_role(username, role))
    click.echo(f"{user.username} is now {user.role}")


@cli.command("add-tag")
@click.argument("username")
@click.argument("tag")
@click.pass_context
def add_tag_cmd(ctx: click.Context, username: str, tag: str) -> None:
    user = _run(_services(ctx).directory.add_tag(username, tag))
    click.echo(f"{user.username} tags: {', '.join(sorted(user.tags))}")


@cli.command("create-tag")
@click.argument("name")
@click.pass_context
def create_tag_cmd(ctx: click.Context, name: str) -> None:
    tag = _run(_services(ctx).tags.create(name))
    click.echo(f"Created tag {tag}")


@cli.command("reset-password")
@click.argument("username")
@click.password_option(prompt="New password")
@click.pass_context
def reset_password_cmd(ctx: click.Context, username: str, password: str) -> None:
    """Set a new password without knowing the current one."""
    _run(_services(ctx).directory.set_password(username, password))
    click.echo(f"Password for {username} updated")


@cli.command("blacklist-list")
@click.pass_context
def blacklist_list_cmd(ctx: click.Context) -> None:
    entries = _run(_services(ctx).blacklist.list())
    if not entries:
        click.echo("Blacklist is empty.")
    for ident in entries:
        click.echo(ident)


@cli.command("blacklist-add")
@click.argument("identifier")
@click.pass_context
def blacklist_add_cmd(ctx: click.Context, identifier: str) -> None:
    ident = _run(_services(ctx).blacklist.add(identifier))
    click.echo(f"Blocked {ident}")


@cli.command("blacklist-remove")
@click.argument("identifier")
@click.pass_context
def blacklist_remove_cmd(ctx: click.Context, identifier: str) -> None:
    removed = _run(_services(ctx).blacklist.remove(identifier))
    if not removed:
        raise click.ClickException(f"{identifier} is not blacklisted")
    click.echo(f"Unblocked {identifier}")


if __name__ == "__main__":  # pragma: no cover
    cli()
