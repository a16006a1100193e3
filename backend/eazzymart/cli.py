# Overview: Flask CLI command groups for bootstrap, catalog seeding, and maintenance.

# backend/eazzymart/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin/cashier accounts.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username storeadmin --email admin@eazzymart.local --password "Password123" --role admin
#   Create a user (prompts if options are omitted).
#
# Catalog:
# - python -m flask catalog seed
#   Insert a small demo grocery catalog (skips products that already exist).
#
# Maintenance:
# - python -m flask maintenance sweep-deliveries [--hours 24]
#   Mark Delivery orders Out for Delivery longer than the window as Delivered.

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Product, StockEntry, User
from .models.auth import ROLE_ADMIN, ROLE_CASHIER, VALID_ROLES
from .services.auth_service import create_user
from .services import maintenance_service
from .time_utils import utcnow


DEFAULT_PASSWORD = "Password123"

DEMO_PRODUCTS = [
    # (name, category, price_cents, stock)
    ("Jasmine Rice 5kg", "Grains", 28950, 40),
    ("Whole Milk 1L", "Dairy", 9875, 60),
    ("Brown Eggs (12)", "Dairy", 11500, 35),
    ("Corned Beef 150g", "Canned Goods", 4225, 80),
    ("Instant Noodles (Pack of 6)", "Noodles", 7800, 100),
    ("Cooking Oil 1L", "Pantry", 12000, 25),
    ("White Sugar 1kg", "Pantry", 8500, 30),
    ("Bananas (1kg)", "Produce", 9000, 20),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default=DEFAULT_PASSWORD, show_default=True, help='Password for the default accounts')
@with_appcontext
def init_system(password):
    """
    Initialize EazzyMart: tables plus default staff accounts.

    Creates:
    - All tables (db.create_all; use `flask db upgrade` for managed schemas)
    - Users: storeadmin (admin), storecashier (cashier)

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing EazzyMart...")
    db.create_all()
    click.echo("PASS Tables ready")

    for username, email, role in (
        ("storeadmin", "admin@eazzymart.local", ROLE_ADMIN),
        ("storecashier", "cashier@eazzymart.local", ROLE_CASHIER),
    ):
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"SKIP User {username} already exists")
            continue
        create_user(username, password, email=email, role=role, is_verified=True)
        click.echo(f"PASS Created {role} user: {username} ({email})")

    click.echo("\nDONE System initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username (6-50 characters)')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """Create a user with a bcrypt-hashed password."""
    try:
        user = create_user(username, password, email=email or None, role=role, is_verified=True)
    except DomainError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created {user.role} user: {user.username} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<10} {'Active':<8}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {(user.email or '-'):<30} {user.role:<10} {active_str:<8}")

    click.echo("="*90 + "\n")


@click.group('catalog')
def catalog_group():
    """Catalog commands."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Insert demo products; existing names are left untouched."""
    created = 0
    now = utcnow()
    for name, category, price_cents, stock in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(name=name).first():
            continue
        product = Product(
            name=name,
            category=category,
            price_cents=price_cents,
            stock=stock,
            created_at=now,
            updated_at=now,
        )
        db.session.add(product)
        db.session.flush()
        db.session.add(StockEntry(
            product_id=product.id,
            quantity_added=stock,
            note="Initial stock",
            created_at=now,
        ))
        created += 1
    db.session.commit()
    click.echo(f"PASS Seeded {created} product(s).")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('sweep-deliveries')
@click.option('--hours', type=int, default=None, help='Override DELIVERY_AUTO_COMPLETE_HOURS')
@with_appcontext
def sweep_deliveries_cli(hours):
    """
    Auto-complete stale deliveries.

    Orders Out for Delivery longer than the window become Delivered.
    """
    completed = maintenance_service.auto_complete_deliveries(max_age_hours=hours)
    click.echo(f"Auto-completed {len(completed)} order(s).")
    for order_id in completed:
        click.echo(f"  {order_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(maintenance_group)
