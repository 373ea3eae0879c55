# Overview: Flask CLI command groups for bootstrap, ledger inspection and shift history.

# backend/boutique/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed [--actor "Admin"]
#   Load a small sample catalog with opening stock (skips existing articles).
#
# Ledger inspection:
# - python -m flask ledger verify
#   Replay every variant's movement log and compare with live balances.
# - python -m flask ledger movements --article NM-W2-001 --channel Shopify --limit 20
#   List recent stock movements with optional filters.
#
# Shift inspection:
# - python -m flask shifts open
#   List live shift sessions.
# - python -m flask shifts history --cashier "Sara" --limit 20
#   List end-of-shift settlement records.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Article
from .services import catalog_service
from .services import shift_service
from .services.movement_service import MovementRecorder
from .time_utils import parse_iso_date


SAMPLE_ARTICLES = [
    {
        "id": "NM-W2-001",
        "name": "Linen Wrap Dress",
        "category": "Summer Edit",
        "brand": "Nour Maison",
        "price_cents": 6500,
        "color": "Sand",
        "material_type": "Linen",
        "variants": [
            {"size_label": "S", "size_internal": "1", "store_qty": 6, "warehouse_qty": 24},
            {"size_label": "M", "size_internal": "2", "store_qty": 10, "warehouse_qty": 40},
            {"size_label": "L", "size_internal": "3", "store_qty": 4, "warehouse_qty": 18},
        ],
    },
    {
        "id": "NM-T1-014",
        "name": "Silk Camisole",
        "category": "Essentials",
        "brand": "Nour Maison",
        "price_cents": 3200,
        "discount_percent": 10,
        "color": "Ivory",
        "material_type": "Silk",
        "variants": [
            {"size_label": "S", "size_internal": "1", "store_qty": 8, "warehouse_qty": 30},
            {"size_label": "M", "size_internal": "2", "store_qty": 8, "warehouse_qty": 30, "barcode": "6291041500213"},
        ],
    },
    {
        "id": "NM-A3-007",
        "name": "Woven Tote",
        "category": "Accessories",
        "brand": "Nour Maison",
        "price_cents": 4800,
        "variants": [
            {"size_label": "One Size", "size_internal": "OS", "store_qty": 3, "warehouse_qty": 12},
        ],
    },
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create every table that does not exist yet."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    click.echo("PASS Schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, the movement history included!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' for sample data.")


@system_group.command('seed')
@click.option('--actor', default='Admin', help='Operator name recorded on the opening movements')
@with_appcontext
def seed(actor):
    """
    Load the sample catalog.

    Opening quantities go through the catalog service, so every unit is backed
    by an Inward movement and `ledger verify` passes straight after seeding.
    """
    created = 0
    for payload in SAMPLE_ARTICLES:
        if db.session.get(Article, payload["id"]) is not None:
            click.echo(f"SKIP {payload['id']} already exists")
            continue
        article = catalog_service.create_article(payload, actor=actor)
        created += 1
        click.echo(f"PASS Created {article.id} {article.name} ({len(article.variants)} sizes)")
    click.echo(f"DONE {created} article(s) created")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger():
    """Replay movements per variant and report drift from live balances."""
    discrepancies = MovementRecorder().verify_all()
    if not discrepancies:
        click.echo("PASS Every variant matches its movement log.")
        return

    for d in discrepancies:
        click.echo(
            f"FAIL {d.article_id}-{d.size_internal}: "
            f"replay store={d.replay_store} warehouse={d.replay_warehouse}, "
            f"live store={d.live_store} warehouse={d.live_warehouse}"
        )
    raise click.ClickException(f"{len(discrepancies)} variant(s) drifted from their movement log")


@ledger_group.command('movements')
@click.option('--article', 'article_id', default=None, help='Article id')
@click.option('--size', 'size_internal', default=None, help='Internal size code')
@click.option('--kind', default=None, help='Sale, Inward, Outward, Transfer, Adjustment, Return')
@click.option('--channel', default=None, help='Sale, Shopify, PreOrder, PR, FnF, Transfer')
@click.option('--search', default=None, help='Match article, note or reference')
@click.option('--limit', default=50, show_default=True, type=int)
@with_appcontext
def list_movements(article_id, size_internal, kind, channel, search, limit):
    """List recent stock movements, newest first."""
    try:
        movements = MovementRecorder().list_movements(
            article_id=article_id,
            size_internal=size_internal,
            kind=kind,
            channel=channel,
            search=search,
            limit=limit,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    if not movements:
        click.echo("No movements found.")
        return

    for m in movements:
        click.echo(
            f"{m.id:>6}  {m.occurred_at:%Y-%m-%d %H:%M:%S}  {m.kind:<10} {m.article_id}-{m.size_internal:<6} "
            f"store {m.store_delta:+d} -> {m.post_store_qty:<5} warehouse {m.warehouse_delta:+d} -> {m.post_warehouse_qty:<5} "
            f"{m.channel or '-':<9} {m.reference or ''}  {m.actor}"
        )


@click.group('shifts')
def shifts_group():
    """Shift session and settlement inspection."""


@shifts_group.command('open')
@with_appcontext
def list_open_shifts():
    """List live shift sessions."""
    sessions = shift_service.list_open_sessions()
    if not sessions:
        click.echo("No open shifts.")
        return
    for s in sessions:
        click.echo(f"{s.cashier_name:<20} {s.shift:<8} {s.business_date.isoformat()}  since {s.started_at:%Y-%m-%d %H:%M}")


@shifts_group.command('history')
@click.option('--cashier', default=None, help='Cashier name')
@click.option('--date', 'business_date', default=None, help='Business date (YYYY-MM-DD)')
@click.option('--limit', default=20, show_default=True, type=int)
@with_appcontext
def shift_history(cashier, business_date, limit):
    """List end-of-shift settlement records."""
    try:
        bdate = parse_iso_date(business_date)
    except ValueError:
        raise click.BadParameter("date must be YYYY-MM-DD")

    records = shift_service.list_shift_records(cashier_name=cashier, business_date=bdate, limit=limit)
    if not records:
        click.echo("No shift records found.")
        return

    for r in records:
        click.echo(
            f"{r.id:>5}  {r.business_date.isoformat()} {r.shift:<8} {r.cashier_name:<20} "
            f"total {r.total_sales_cents:>9}  cash {r.cash_sales_cents:>9}  card {r.card_sales_cents:>9}  "
            f"({r.transaction_count} tx)"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(shifts_group)
