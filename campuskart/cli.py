"""CampusKart CLI: operator console for listings, strikes and admin claims."""

import logging

import click
from rich.console import Console
from rich.table import Table

from campuskart import __version__

console = Console()


def _app(ctx: click.Context):
    from campuskart.app import build_app
    from campuskart.config import load_config

    if "app" not in ctx.obj:
        ctx.obj["app"] = build_app(ctx.obj["home"], load_config(ctx.obj["config"]))
    return ctx.obj["app"]


def _listing_table(title: str, listings) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Owner")
    table.add_column("Visible", justify="center")
    table.add_column("Flag reason")
    for listing in listings:
        visible = "[green]Y[/]" if listing.visible else "[red]N[/]"
        table.add_row(listing.id, listing.title[:40], listing.owner_id, visible, listing.flag_reason or "")
    return table


@click.group()
@click.version_option(version=__version__)
@click.option("--home", envvar="CAMPUSKART_HOME", default=None, help="Data directory (default ~/.campuskart)")
@click.option("--config", "config_path", envvar="CAMPUSKART_CONFIG", default=None, help="YAML config file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx: click.Context, home: str | None, config_path: str | None, verbose: bool):
    """CampusKart trust & moderation console."""
    from campuskart.log import configure_logging

    configure_logging(logging.DEBUG if verbose else logging.INFO)
    ctx.ensure_object(dict)
    ctx.obj["home"] = home
    ctx.obj["config"] = config_path


# ── Users ────────────────────────────────────────────────────────────


@main.group()
def user():
    """Inspect and register user trust records."""


@user.command()
@click.argument("user_id")
@click.option("--name", default="", help="Display name")
@click.pass_context
def register(ctx: click.Context, user_id: str, name: str):
    """Create the trust record for a new account."""
    record = _app(ctx).ledger.register(user_id, display_name=name)
    console.print(f"  Registered [cyan]{record.user_id}[/] with {record.points} points")


@user.command()
@click.argument("user_id")
@click.pass_context
def status(ctx: click.Context, user_id: str):
    """Show strikes, ban state and points for a user."""
    from campuskart.storage import DocumentNotFound

    app = _app(ctx)
    try:
        record = app.ledger.status(user_id)
    except DocumentNotFound:
        console.print(f"[yellow]No trust record for {user_id}.[/]")
        return

    banned = "[red]BANNED[/]" if record.banned else "[green]active[/]"
    console.print(f"\n[bold]{record.user_id}[/] {banned}")
    console.print(f"  Strikes: {record.strike_count}/{app.ledger.threshold}")
    console.print(f"  Points:  {record.points}")
    console.print(f"  Admin:   {'yes' if record.is_admin else 'no'} (claim: {'yes' if app.claims.is_admin(user_id) else 'no'})")


# ── Listings ─────────────────────────────────────────────────────────


@main.group()
def listing():
    """Submit and browse listings."""


@listing.command()
@click.argument("owner_id")
@click.argument("title")
@click.option("--description", "-d", default="", help="Listing description")
@click.option("--price", type=float, default=0.0)
@click.option("--category", default="")
@click.option("--quantity", type=int, default=1)
@click.pass_context
def submit(ctx: click.Context, owner_id: str, title: str, description: str, price: float, category: str, quantity: int):
    """Post a listing; it is moderated immediately."""
    from campuskart.marketplace.listings import ListingRejected

    try:
        result = _app(ctx).listings.submit(owner_id, title, description, price, category, quantity)
    except ListingRejected as e:
        console.print(f"[red]Rejected:[/] {e}")
        raise SystemExit(1)

    if result.visible:
        console.print(f"  [green]Live[/] {result.id}")
    else:
        console.print(f"  [red]Flagged[/] {result.id} ({result.flag_reason or 'pending'})")


@listing.command()
@click.argument("listing_id")
@click.pass_context
def show(ctx: click.Context, listing_id: str):
    """Show one listing and its moderation state."""
    from campuskart.storage import DocumentNotFound

    try:
        item = _app(ctx).listings.get(listing_id)
    except DocumentNotFound:
        console.print(f"[red]Listing not found:[/] {listing_id}")
        raise SystemExit(1)

    console.print(f"\n[bold]{item.title}[/] ({item.id})")
    console.print(f"  Owner:    {item.owner_id}")
    console.print(f"  Status:   {item.status}, {'visible' if item.visible else 'hidden'}")
    if item.flagged:
        console.print(f"  Flagged:  [red]{item.flag_reason}[/]")
    if item.moderated_by:
        console.print(f"  Moderated by {item.moderated_by} at {item.moderated_at}")


@listing.command()
@click.argument("owner_id")
@click.argument("listing_id")
@click.pass_context
def withdraw(ctx: click.Context, owner_id: str, listing_id: str):
    """Take your own listing off the marketplace."""
    from campuskart.marketplace.listings import ListingRejected

    try:
        _app(ctx).listings.withdraw(owner_id, listing_id)
    except ListingRejected as e:
        console.print(f"[red]Rejected:[/] {e}")
        raise SystemExit(1)
    console.print(f"  Removed {listing_id}")


@listing.command()
@click.pass_context
def browse(ctx: click.Context):
    """List what buyers currently see."""
    listings = _app(ctx).listings.browse()
    if not listings:
        console.print("[yellow]No visible listings.[/]")
        return
    console.print(_listing_table(f"Marketplace ({len(listings)} listings)", listings))


@listing.command()
@click.argument("user_id")
@click.argument("listing_id")
@click.pass_context
def boost(ctx: click.Context, user_id: str, listing_id: str):
    """Spend points to pin a listing to the top."""
    from campuskart.marketplace.listings import ListingRejected

    try:
        _app(ctx).listings.boost(user_id, listing_id)
    except ListingRejected as e:
        console.print(f"[red]Rejected:[/] {e}")
        raise SystemExit(1)
    console.print(f"  [green]Boosted[/] {listing_id}")


# ── Admin ────────────────────────────────────────────────────────────


@main.group()
@click.option("--as", "actor_id", required=True, envvar="CAMPUSKART_ADMIN", help="Acting admin user id")
@click.pass_context
def admin(ctx: click.Context, actor_id: str):
    """Administrator actions (require the admin claim)."""
    ctx.obj["actor"] = actor_id


def _run_admin(ctx: click.Context, label: str, fn, *args, **kwargs):
    try:
        result = fn(ctx.obj["actor"], *args, **kwargs)
    except Exception as e:
        console.print(f"[red]{label} failed:[/] {e}")
        raise SystemExit(1)
    console.print(f"  [green]{label}[/]")
    return result


@admin.command()
@click.argument("user_id")
@click.option("--deactivate-listings", is_flag=True, help="Also hide the user's active listings")
@click.pass_context
def ban(ctx: click.Context, user_id: str, deactivate_listings: bool):
    """Ban a user."""
    _run_admin(ctx, f"Banned {user_id}", _app(ctx).console.ban, user_id, deactivate_listings=deactivate_listings)


@admin.command()
@click.argument("user_id")
@click.pass_context
def unban(ctx: click.Context, user_id: str):
    """Unban a user and clear their strikes."""
    _run_admin(ctx, f"Unbanned {user_id}", _app(ctx).console.unban, user_id)


@admin.command(name="set-admin")
@click.argument("user_id")
@click.option("--revoke", is_flag=True, help="Remove admin instead of granting it")
@click.pass_context
def set_admin(ctx: click.Context, user_id: str, revoke: bool):
    """Grant or revoke the admin flag."""
    label = f"{'Revoked' if revoke else 'Granted'} admin for {user_id}"
    _run_admin(ctx, label, _app(ctx).console.set_admin_flag, user_id, not revoke)


@admin.command()
@click.argument("listing_id")
@click.pass_context
def approve(ctx: click.Context, listing_id: str):
    """Approve (unflag) a listing."""
    _run_admin(ctx, f"Approved {listing_id}", _app(ctx).console.approve_listing, listing_id)


@admin.command()
@click.argument("listing_id")
@click.pass_context
def reject(ctx: click.Context, listing_id: str):
    """Reject (deactivate) a listing."""
    _run_admin(ctx, f"Rejected {listing_id}", _app(ctx).console.reject_listing, listing_id)


@admin.command()
@click.argument("listing_id")
@click.pass_context
def deactivate(ctx: click.Context, listing_id: str):
    """Hide a live listing and move it to the flagged queue."""
    _run_admin(ctx, f"Deactivated {listing_id}", _app(ctx).console.deactivate_listing, listing_id)


@admin.command()
@click.argument("listing_id")
@click.confirmation_option(prompt="Permanently delete this listing?")
@click.pass_context
def delete(ctx: click.Context, listing_id: str):
    """Permanently delete a listing."""
    _run_admin(ctx, f"Deleted {listing_id}", _app(ctx).console.delete_listing, listing_id)


@admin.command()
@click.pass_context
def pending(ctx: click.Context):
    """Show listings awaiting a decision."""
    console.print(_listing_table("Pending", _app(ctx).console.pending_listings()))


@admin.command()
@click.pass_context
def flagged(ctx: click.Context):
    """Show flagged listings."""
    console.print(_listing_table("Flagged", _app(ctx).console.flagged_listings()))


@admin.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show dashboard counts."""
    s = _app(ctx).console.stats()
    table = Table(title="CampusKart")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    for label, value in (
        ("Users", s.total_users),
        ("Banned users", s.banned_users),
        ("Admins", s.admin_users),
        ("Live listings", s.active_listings),
        ("Flagged listings", s.flagged_listings),
        ("Pending listings", s.pending_listings),
    ):
        table.add_row(label, str(value))
    console.print(table)


@admin.command()
@click.pass_context
def bootstrap(ctx: click.Context):
    """Make the acting user an admin (first-time setup)."""
    _run_admin(ctx, f"Admin bootstrap for {ctx.obj['actor']}", _app(ctx).admin_sync.self_grant_admin)


# ── Maintenance ──────────────────────────────────────────────────────


@main.command()
@click.argument("listing_id")
@click.argument("seller_id")
@click.argument("buyer_id")
@click.option("--price", type=float, default=None)
@click.pass_context
def sale(ctx: click.Context, listing_id: str, seller_id: str, buyer_id: str, price: float | None):
    """Record a completed sale and award points."""
    receipt = _app(ctx).sales.process_sale(listing_id, seller_id, buyer_id, price)
    if receipt is None:
        console.print(f"[yellow]Listing {listing_id} not found.[/]")
        return
    state = "sold" if receipt.fully_sold else "one unit sold"
    console.print(f"  [green]{state}[/], +{receipt.points_awarded} points each")


@main.command()
@click.pass_context
def sweep(ctx: click.Context):
    """Purge sold/removed listings past the retention window."""
    deleted = _app(ctx).sweeper.sweep()
    console.print(f"  Deleted {len(deleted)} listing(s)")


@main.command()
@click.option("--actor", default=None)
@click.option("--action", default=None)
@click.option("--format", "fmt", default="json", type=click.Choice(["json", "csv"]))
@click.pass_context
def audit(ctx: click.Context, actor: str | None, action: str | None, fmt: str):
    """Export the moderation audit trail."""
    click.echo(_app(ctx).audit.export_events(fmt, actor=actor, action=action))


if __name__ == "__main__":
    main()
