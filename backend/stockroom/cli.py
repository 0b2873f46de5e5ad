# Overview: Flask CLI command groups for bootstrap, accounts, and sample catalogue data.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables and the first admin from ADMIN_USERNAME / ADMIN_PASSWORD.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all staff accounts.
# - python -m flask users create --username anna --password "secret1" --role manager
#   Create a user (prompts if options are omitted).
#
# Catalogue:
# - python -m flask catalog seed
#   Load sample products with single and wholesale variants (skips existing refs).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, ProductVariant, User
from .services.auth_service import create_user, ensure_bootstrap_admin
from .validation import ConflictError, ValidationError


SINGLE_SIZES = ("36", "38", "40", "42", "44", "46", "48", "50")
WHOLESALE_SIZES = ("S", "L")

SAMPLE_PRODUCTS = [
    {
        "name": "Fluid Satin Blouse", "ref": "HNQ-TOP-001", "category": "tops",
        "price": 195.0, "wholesale_price": 125.0, "season": "SS", "status": "good",
        "colors": ("BLACK", "IVORY"),
    },
    {
        "name": "Pleated Midi Skirt", "ref": "HNQ-SKT-002", "category": "skirts",
        "price": 165.0, "wholesale_price": 105.0, "season": "SS", "status": "good",
        "colors": ("NAVY", "SAND"),
    },
    {
        "name": "Tailored Wool Blazer", "ref": "HNQ-JKT-003", "category": "jackets",
        "price": 345.0, "wholesale_price": 220.0, "season": "FW", "status": "good",
        "colors": ("BLACK", "CAMEL"),
    },
    {
        "name": "Wide Leg Trousers", "ref": "HNQ-PNT-004", "category": "pants",
        "price": 185.0, "wholesale_price": 118.0, "season": "FW", "status": "new",
        "colors": ("GREY", "BLACK"),
    },
    {
        "name": "Wrap Jersey Dress", "ref": "HNQ-DRS-005", "category": "dresses",
        "price": 235.0, "wholesale_price": 150.0, "season": "SS", "status": "new",
        "colors": ("RED", "EMERALD"),
    },
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create all tables and, when no account exists yet, the first admin.

    The admin credentials come from ADMIN_USERNAME / ADMIN_PASSWORD.
    Safe to run repeatedly.
    """
    click.echo("START Initializing database...")
    db.create_all()
    click.echo("PASS Tables created")

    try:
        admin = ensure_bootstrap_admin(
            current_app.config.get("ADMIN_USERNAME"),
            current_app.config.get("ADMIN_PASSWORD"),
        )
    except ValidationError as e:
        click.echo(f"FAIL Could not create admin: {e}")
        return

    if admin is not None:
        click.echo(f"PASS Created admin user: {admin.username}")
    elif db.session.query(User.id).first() is None:
        click.echo("WARN No users exist. Set ADMIN_USERNAME and ADMIN_PASSWORD and rerun.")
    else:
        click.echo("PASS Users already exist, skipping admin bootstrap")


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

    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*60)
    click.echo(f"{'ID':<5} {'Username':<25} {'Role':<10} {'Created'}")
    click.echo("="*60)
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<25} {user.role:<10} {user.created_at:%Y-%m-%d}")
    click.echo("")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'manager']), default='manager', help='Role')
@with_appcontext
def create_user_command(username, password, role):
    """Create a staff account."""
    try:
        user = create_user(username, password, role=role)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


@click.group('catalog')
def catalog_group():
    """Sample catalogue data."""


def _sample_variants(colors) -> list[ProductVariant]:
    variants = []
    for color in colors:
        for size in SINGLE_SIZES:
            variants.append(ProductVariant(color=color, size=size, channel="single", stock=6))
        for size in WHOLESALE_SIZES:
            variants.append(ProductVariant(color=color, size=size, channel="wholesale", stock=24))
    return variants


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Load sample products with single and wholesale variants."""
    created = 0
    for sample in SAMPLE_PRODUCTS:
        if db.session.query(Product.id).filter_by(ref=sample["ref"]).first():
            click.echo(f"WARN  Product '{sample['ref']}' already exists, skipping...")
            continue

        fields = {k: v for k, v in sample.items() if k != "colors"}
        product = Product(**fields)
        product.variants = _sample_variants(sample["colors"])
        db.session.add(product)
        created += 1
        click.echo(f"PASS Created product: {sample['ref']} ({len(product.variants)} variants)")

    db.session.commit()
    click.echo(f"\nDONE Seeded {created} products")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
