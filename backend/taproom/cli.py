# Overview: Flask CLI command groups for bootstrap, keg intake, and clock-state repair.

# backend/taproom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system seed-demo
#   Idempotently add demo staff, a bottled product, a keg product and a draught service.
#
# Shift repair:
# - python -m flask shifts heal --user-id 3
#   Reset a user stuck CLOCKED_IN with no ongoing time log.
# - python -m flask shifts heal-all
#   Run the check for every user currently CLOCKED_IN.
#
# Kegs:
# - python -m flask kegs add --product-id 2 --count 4 --actor-id 1
#   Receive full kegs of a keg product.
# - python -m flask kegs list [--status TAPPED]
#   List keg instances with volume.

import click
from flask.cli import with_appcontext

from .errors import CoreError
from .extensions import db
from .models import Product, User
from .models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER, ROLE_SERVER
from .models.catalog import PRODUCT_KEG, PRODUCT_SERVICE, PRODUCT_STOCKED
from .services import healing_service, keg_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


DEMO_USERS = [
    ("Admin", "admin@taproom.local", ROLE_ADMIN),
    ("Manager", "manager@taproom.local", ROLE_MANAGER),
    ("Cashier", "cashier@taproom.local", ROLE_CASHIER),
    ("Server", "server@taproom.local", ROLE_SERVER),
]


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Add demo staff and products. Safe to run repeatedly."""
    for name, email, role in DEMO_USERS:
        if db.session.query(User).filter_by(email=email).first() is None:
            db.session.add(User(name=name, email=email, role=role))
            click.echo(f"  + user {email} ({role})")

    if db.session.query(Product).filter_by(name="Tusker Lager 500ml").first() is None:
        db.session.add(Product(
            name="Tusker Lager 500ml", category="Beer", price_cents=25000,
            product_type=PRODUCT_STOCKED, stock=48, low_stock_threshold=12,
        ))
        click.echo("  + product Tusker Lager 500ml")

    keg = db.session.query(Product).filter_by(name="Draught Lager Keg 50L").first()
    if keg is None:
        keg = Product(
            name="Draught Lager Keg 50L", category="Kegs", price_cents=0,
            product_type=PRODUCT_KEG, stock=0, keg_capacity=50, keg_capacity_unit="L",
        )
        db.session.add(keg)
        db.session.flush()
        click.echo("  + product Draught Lager Keg 50L")

    if db.session.query(Product).filter_by(name="Draught Lager Pint").first() is None:
        db.session.add(Product(
            name="Draught Lager Pint", category="Beer", price_cents=30000,
            product_type=PRODUCT_SERVICE, linked_keg_product_id=keg.id,
            serving_size=500, serving_size_unit="ml",
        ))
        click.echo("  + product Draught Lager Pint")

    db.session.commit()
    click.echo("PASS Demo data ready.")


@click.group('shifts')
def shifts_group():
    """Shift clock-state repair commands."""


@shifts_group.command('heal')
@click.option('--user-id', type=int, required=True, help='User to check')
@click.option('--actor-id', type=int, default=None, help='User recorded as performing the repair')
@with_appcontext
def heal_user(user_id, actor_id):
    """Reset a user marked CLOCKED_IN who has no ongoing time log."""
    try:
        healed = healing_service.heal_user(user_id, actor_id=actor_id)
    except CoreError as e:
        raise click.ClickException(e.message)

    if healed:
        click.echo(f"PASS User {user_id} reset to CLOCKED_OUT.")
    else:
        click.echo(f"User {user_id} is consistent; nothing to do.")


@shifts_group.command('heal-all')
@with_appcontext
def heal_all():
    """Check every CLOCKED_IN user and heal the stuck ones."""
    try:
        healed = healing_service.heal_all_users()
    except CoreError as e:
        raise click.ClickException(e.message)

    if not healed:
        click.echo("No stuck users found.")
        return
    for user_id in healed:
        click.echo(f"  healed user {user_id}")
    click.echo(f"PASS {len(healed)} user(s) reset to CLOCKED_OUT.")


@click.group('kegs')
def kegs_group():
    """Keg intake and inspection commands."""


@kegs_group.command('add')
@click.option('--product-id', type=int, required=True, help='Keg product id')
@click.option('--count', type=int, required=True, help='Number of full kegs received')
@click.option('--actor-id', type=int, required=True, help='User receiving the kegs')
@with_appcontext
def add_kegs(product_id, count, actor_id):
    """Receive full kegs of a keg product."""
    try:
        kegs = keg_service.add_keg_instances(product_id, count, actor_id)
    except CoreError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Added {len(kegs)} keg(s): {', '.join(str(k.id) for k in kegs)}")


@kegs_group.command('list')
@click.option('--product-id', type=int, default=None)
@click.option('--status', type=click.Choice(['FULL', 'TAPPED', 'EMPTY'], case_sensitive=False), default=None)
@with_appcontext
def list_kegs(product_id, status):
    """List keg instances with their remaining volume."""
    kegs = keg_service.list_keg_instances(product_id=product_id, status=status.upper() if status else None)

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'PRODUCT':<30} {'STATUS':<8} {'VOLUME':>18}")
    click.echo("="*80)
    for keg in kegs:
        click.echo(f"{keg.id:<6} {keg.product_name:<30} {keg.status:<8} {keg.current_volume:>8}/{keg.capacity:<9}")
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(kegs_group)
