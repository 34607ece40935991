# Overview: Flask CLI command groups for bootstrap, catalog upkeep, and payment follow-up.

# backend/branchpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (development; use `flask db upgrade` elsewhere).
#
# Users:
# - python -m flask users create-admin --email admin@example.com --password "Password123"
#   Create an ADMIN (signup only ever creates CUSTOMER accounts).
#
# Catalog:
# - python -m flask catalog add-branch --name "Nairobi HQ" --location Nairobi --hq
# - python -m flask catalog add-product --name Coke --price-cents 8000 --description "500ml"
#
# Payments:
# - python -m flask pos await-payment ws_CO_123 [--attempts 60] [--interval 1.0]
#   Poll a pending payment until CONFIRMED, FAILED or TIMED_OUT.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Product, ROLE_ADMIN
from .services.auth_service import create_user
from .services import pos_service
from .validation import ConflictError, NotFoundError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--first-name', default=None, help='First name')
@click.option('--last-name', default=None, help='Last name')
@with_appcontext
def create_admin_cli(email, password, first_name, last_name):
    """
    Create an ADMIN user.

    Password must be at least 8 characters with a letter and a digit.
    """
    try:
        user = create_user(email, password, first_name=first_name, last_name=last_name, role=ROLE_ADMIN)
        db.session.commit()
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")


@click.group('catalog')
def catalog_group():
    """Branch and product maintenance."""


@catalog_group.command('add-branch')
@click.option('--name', required=True, help='Branch name (unique)')
@click.option('--location', default=None, help='Town or address')
@click.option('--hq', is_flag=True, default=False, help='Mark as the distribution HQ')
@with_appcontext
def add_branch_cli(name, location, hq):
    """Create a branch."""
    if db.session.query(Branch).filter_by(name=name).first():
        click.echo(f"FAIL Branch '{name}' already exists")
        raise SystemExit(1)

    if hq:
        existing_hq = db.session.query(Branch).filter_by(is_hq=True).first()
        if existing_hq:
            click.echo(f"WARN  '{existing_hq.name}' is already HQ; restocks keep using it")

    branch = Branch(name=name, location=location, is_hq=hq)
    db.session.add(branch)
    db.session.commit()
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}, HQ: {branch.is_hq})")


@catalog_group.command('add-product')
@click.option('--name', required=True, help='Product name (unique)')
@click.option('--price-cents', type=click.IntRange(min=0), required=True, help='Unit price in cents')
@click.option('--description', default=None, help='Description')
@with_appcontext
def add_product_cli(name, price_cents, description):
    """Create a product."""
    if db.session.query(Product).filter_by(name=name).first():
        click.echo(f"FAIL Product '{name}' already exists")
        raise SystemExit(1)

    product = Product(name=name, price_cents=price_cents, description=description)
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, price_cents: {product.price_cents})")


@click.group('pos')
def pos_group():
    """Point-of-sale follow-up commands."""


@pos_group.command('await-payment')
@click.argument('checkout_id')
@click.option('--attempts', type=click.IntRange(min=1), default=None, help='Poll attempts (default POS_POLL_ATTEMPTS)')
@click.option('--interval', type=float, default=None, help='Seconds between polls (default POS_POLL_INTERVAL_SECONDS)')
@with_appcontext
def await_payment_cli(checkout_id, attempts, interval):
    """Poll a payment until it is confirmed, failed or timed out."""
    try:
        attempt = pos_service.poll_payment_confirmation(checkout_id, attempts=attempts, interval=interval)
    except (ValidationError, NotFoundError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    if attempt.status == pos_service.ATTEMPT_CONFIRMED:
        click.echo(f"PASS {attempt.status}: sale {attempt.sale_id}, receipt {attempt.mpesa_receipt_number or '-'}")
    else:
        click.echo(f"FAIL {attempt.status}: {attempt.result_desc or '-'}")
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(pos_group)
