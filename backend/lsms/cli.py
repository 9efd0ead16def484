# Overview: Flask CLI command groups for bootstrap, demo data and user inspection.

# backend/lsms/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--owner-email owner@lsms.local --owner-name "Shop Owner"]
#   Idempotent bootstrap: tables, product/expense categories, settings and the first Owner.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Demo sellers and a stocked product catalogue. Requires `system init` first.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --name "Mary" --email mary@lsms.local --password "Seller123!" --role SELLER
#   Create a user (prompts if options are omitted).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, ExpenseCategory, Product, User
from .services.auth_service import create_user, PasswordValidationError
from .services import settings_service
from .services.products_service import create_product
from .validation import ConflictError, ValidationError


DEFAULT_CATEGORIES = [
    ("Whiskey", "Whiskey and bourbon"),
    ("Vodka", "Vodka spirits"),
    ("Rum", "Rum and spiced rum"),
    ("Gin", "Gin spirits"),
    ("Beer", "Beer and lagers"),
    ("Wine", "Red and white wines"),
    ("Liqueur", "Liqueurs and spirits"),
    ("Brandy", "Brandy and cognac"),
]

DEFAULT_EXPENSE_CATEGORIES = [
    ("Rent", "Shop rent"),
    ("Utilities", "Electricity, water"),
    ("Salaries", "Employee salaries"),
    ("Supplies", "Shop supplies"),
    ("Maintenance", "Equipment maintenance"),
    ("Marketing", "Advertising"),
    ("Transport", "Delivery costs"),
]

# (sku, barcode, name, category, cost_cents, selling_cents, stock, reorder_level)
DEMO_PRODUCTS = [
    ("JWB-750", "5000267123456", "Johnnie Walker Black 750ml", "Whiskey", 250000, 320000, 24, 10),
    ("JWR-750", "5000267123457", "Johnnie Walker Red 750ml", "Whiskey", 150000, 200000, 36, 15),
    ("CHV-750", "3057840001234", "Chivas Regal 12yr 750ml", "Whiskey", 350000, 450000, 18, 8),
    ("ABS-750", "8228680123456", "Absolut Vodka 750ml", "Vodka", 180000, 240000, 30, 12),
    ("SMI-750", "5000307123456", "Smirnoff Vodka 750ml", "Vodka", 120000, 160000, 48, 20),
    ("CAP-750", "8501110080439", "Captain Morgan Spiced 750ml", "Rum", 130000, 180000, 20, 10),
    ("GIL-750", "5000289020701", "Gilbey's Gin 750ml", "Gin", 90000, 130000, 40, 15),
    ("TUS-500", "6161101600012", "Tusker Lager 500ml", "Beer", 18000, 25000, 120, 48),
    ("FRT-750", "6001108020413", "Four Cousins Red 750ml", "Wine", 70000, 100000, 4, 6),
    ("BAI-750", "5011013100613", "Baileys Original 750ml", "Liqueur", 220000, 290000, 10, 5),
    ("HEN-700", "3245990255017", "Hennessy VS 700ml", "Brandy", 420000, 550000, 8, 4),
]

DEMO_SELLERS = [
    ("Mary Wanjiku", "seller@lsms.local"),
    ("Peter Ochieng", "seller2@lsms.local"),
]

DEMO_PASSWORD = "Seller123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


def _ensure_named(model, rows) -> int:
    added = 0
    for name, description in rows:
        if db.session.query(model.id).filter_by(name=name).first():
            continue
        db.session.add(model(name=name, description=description))
        added += 1
    db.session.commit()
    return added


@system_group.command('init')
@click.option('--owner-name', default='Shop Owner', help='Name of the first Owner')
@click.option('--owner-email', default='owner@lsms.local', help='Email of the first Owner')
@click.option('--owner-password', default=None, help='Password of the first Owner (prompted if omitted)')
@with_appcontext
def init_system(owner_name, owner_email, owner_password):
    """
    Initialize the store: schema, categories, settings and the first Owner.

    Safe to run repeatedly; existing rows are left untouched.

    SECURITY: The Owner password must meet the strength rules
    (8+ chars, uppercase, lowercase, digit, special char).
    """
    click.echo("START Initializing LSMS...")

    db.create_all()
    click.echo("PASS Tables ready")

    added = _ensure_named(Category, DEFAULT_CATEGORIES)
    click.echo(f"PASS Product categories: {added} created")

    added = _ensure_named(ExpenseCategory, DEFAULT_EXPENSE_CATEGORIES)
    click.echo(f"PASS Expense categories: {added} created")

    added = settings_service.ensure_defaults()
    click.echo(f"PASS Settings: {added} defaults stored")

    if db.session.query(User.id).filter_by(role="OWNER").first():
        click.echo("WARN  An Owner already exists, skipping Owner creation")
        return

    if not owner_password:
        owner_password = click.prompt("Owner password", hide_input=True, confirmation_prompt=True)

    try:
        owner = create_user(name=owner_name, email=owner_email, password=owner_password, role="OWNER")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create Owner: {str(e)}")
        return

    click.echo(f"PASS Created Owner: {owner.name} ({owner.email})")
    click.echo("\nDONE LSMS initialized")


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


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Demo sellers and products with opening stock (booked as PURCHASE movements)."""
    owner = db.session.query(User).filter_by(role="OWNER", is_active=True).first()
    if not owner:
        click.echo("FAIL No active Owner found. Run 'python -m flask system init' first.")
        return

    for name, email in DEMO_SELLERS:
        try:
            create_user(name=name, email=email, password=DEMO_PASSWORD, role="SELLER", actor_id=owner.id)
            click.echo(f"PASS Created seller: {name} ({email})")
        except ConflictError:
            click.echo(f"WARN  User '{email}' already exists, skipping...")

    categories = {c.name: c.id for c in db.session.query(Category).all()}
    created = 0
    for sku, barcode, name, category, cost, price, stock, reorder in DEMO_PRODUCTS:
        if db.session.query(Product.id).filter_by(sku=sku).first():
            continue
        create_product(
            patch={
                "sku": sku,
                "barcode": barcode,
                "name": name,
                "category_id": categories.get(category),
                "cost_price_cents": cost,
                "selling_price_cents": price,
                "reorder_level": reorder,
                "current_stock": stock,
            },
            actor_id=owner.id,
        )
        created += 1

    click.echo(f"PASS Created {created} demo products")
    click.echo(f"\nDemo seller password: {DEMO_PASSWORD}")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['OWNER', 'SELLER']), prompt=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """Create a new user interactively."""
    try:
        user = create_user(name=name, email=email, password=password, role=role)
        click.echo(f"PASS Created user: {user.name} ({user.email}) with role '{user.role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<24} {'Email':<30} {'Role':<8} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<24} {user.email:<30} {user.role:<8} {active_str}")

    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
