"""Operator CLI for firm administration.

Why:
    Advisors are invited with a system-level credential, never from a regular
    session. Operators run this CLI (service-role DSN + Supabase Service Role
    key) instead of calling the admin HTTP endpoint by hand.

Commands:
    - `invite-advisor`: invite an advisor; creates the firm on first use and
      the first advisor becomes its owner.
    - `show-firm`: list the owner/advisors of a firm and their client counts.
"""
from __future__ import annotations

import os

import click

from advisory.errors import AdvisoryError
from web.wiring import Services, build_services


def _make_services(db_dsn: str | None) -> Services:
    """Build services against Postgres and Supabase (replaced in tests)."""
    from advisory.repo_db import DBAdvisoryRepo
    from identity_access.provider import SupabaseIdentityProvider

    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        click.echo("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required.", err=True)
        raise click.Abort()
    from supabase import create_client  # type: ignore

    provider = SupabaseIdentityProvider(create_client(url, key))
    redirect = (os.getenv("INVITE_REDIRECT_URL") or "").strip() or None
    return build_services(DBAdvisoryRepo(db_dsn), provider, redirect_to=redirect)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--db-dsn", envvar="ADVISORY_DATABASE_URL", required=False, help="Service-role DSN for the portal database.")
@click.pass_context
def cli(ctx: click.Context, db_dsn: str | None) -> None:
    """Firm administration commands (service role required)."""
    ctx.ensure_object(dict)
    ctx.obj["db_dsn"] = db_dsn


@cli.command("invite-advisor")
@click.option("--email", required=True)
@click.option("--first-name", required=True)
@click.option("--last-name", required=True)
@click.option("--firm", "firm_name", required=True, help="Firm name; created when it does not exist yet.")
@click.pass_context
def invite_advisor(ctx: click.Context, email: str, first_name: str, last_name: str, firm_name: str) -> None:
    """Invite an advisor to a firm (the first advisor of a new firm becomes owner)."""
    svc = _make_services(ctx.obj.get("db_dsn"))
    try:
        result = svc.invitations.invite_advisor(
            email, first_name, last_name, firm_name, actor=svc.guard.system_actor()
        )
    except AdvisoryError as exc:
        click.echo(f"Invitation failed ({exc.kind}): {exc.message}", err=True)
        raise click.Abort() from exc
    if result.firm_created:
        click.echo(f"Created firm {firm_name!r} ({result.firm_id})")
    click.echo(f"{result.message} [user={result.user_id} role={result.role}]")


@cli.command("show-firm")
@click.option("--firm", "firm_name", required=True)
@click.pass_context
def show_firm(ctx: click.Context, firm_name: str) -> None:
    """List the firm's owner and advisors with the number of clients each can see."""
    svc = _make_services(ctx.obj.get("db_dsn"))
    try:
        firm = svc.directory.find_firm(firm_name)
        if firm is None:
            click.echo(f"Firm {firm_name!r} not found.", err=True)
            raise click.Abort()
        lines = []
        for m in svc.directory.list_members(firm.id):
            profile = svc.directory.get_profile(m.user_id)
            name = profile.display_name if profile else m.user_id
            clients = len(svc.ledger.list_for_advisor(m.user_id))
            lines.append(f"{m.role:8} {name} clients={clients}")
    except AdvisoryError as exc:
        click.echo(f"Lookup failed ({exc.kind}): {exc.message}", err=True)
        raise click.Abort() from exc
    if not lines:
        click.echo("No advisors.")
        return
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    cli()
