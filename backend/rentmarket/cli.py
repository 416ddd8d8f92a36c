# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/rentmarket/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables and store default settings (idempotent).
# - python -m flask system seed
#   Demo data: admin/vendor/customer accounts, rental periods, products, WELCOME10 coupon.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role VENDOR]
#   List all users with role and active status.
# - python -m flask users create-admin --email admin@example.com --password "Password123!"
#   Create an admin account (prompts if options are omitted).
#
# Rental expiry reminders:
# - python -m flask notifications check-expiring
#   Run one reminder pass for rentals ending in the next 5-10 minutes.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import Coupon, Inventory, Product, ProductPricing, RentalPeriod, User
from .models.users import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_VENDOR, VALID_ROLES
from .services.auth_service import create_user, PasswordValidationError
from .services import notification_service, settings_service
from .validation import ConflictError, ValidationError
from .time_utils import utcnow


DEFAULT_PASSWORD = "Password123!"

SEED_PERIODS = [
    ("Hourly", "HOUR", 1),
    ("Daily", "DAY", 1),
    ("Weekly", "WEEK", 1),
    ("Monthly", "DAY", 30),
]

# (name, description, product_type, is_rentable, {period name: price cents}, quantity)
SEED_PRODUCTS = [
    (
        "Professional Camera",
        "High-quality DSLR camera perfect for events and photography",
        "GOODS",
        True,
        {"Hourly": 2500, "Daily": 15000, "Weekly": 90000},
        5,
    ),
    (
        "Party Tent",
        "20x20 ft party tent for outdoor events",
        "GOODS",
        True,
        {"Daily": 20000, "Weekly": 120000},
        3,
    ),
    (
        "Delivery Service",
        "Product delivery and setup service",
        "SERVICE",
        False,
        {"Daily": 5000},
        0,
    ),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables and insert default settings."""
    db.create_all()
    created = settings_service.seed_default_settings()
    click.echo(f"PASS Schema ready, {created} default setting(s) stored")


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
    settings_service.clear_settings_cache()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' to load demo data.")


def _seed_user(email, first_name, last_name, role, **profile):
    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        click.echo(f"WARN  User '{email}' already exists, skipping...")
        return existing
    user = create_user(
        email=email,
        password=DEFAULT_PASSWORD,
        first_name=first_name,
        last_name=last_name,
        role=role,
        email_verified=True,
        **profile,
    )
    click.echo(f"PASS Created {role.lower()}: {email}")
    return user


@system_group.command('seed')
@with_appcontext
def seed():
    """
    Load demo data (idempotent).

    Creates:
    - Users: admin@rental.com, vendor@rental.com (Premium Rentals Co.), customer@rental.com
    - Rental periods: Hourly, Daily, Weekly, Monthly
    - Three products for the vendor and the WELCOME10 coupon
    - All passwords default to: "Password123!"

    SECURITY: Never run against a production database.
    """
    click.echo("START Seeding RentMarket demo data...")
    settings_service.seed_default_settings()

    try:
        _seed_user("admin@rental.com", "Admin", "User", ROLE_ADMIN)
        vendor = _seed_user(
            "vendor@rental.com", "John", "Vendor", ROLE_VENDOR,
            company_name="Premium Rentals Co.",
            gstin="29ABCDE1234F1Z5",
            address="123 Business Street, City, State 12345",
        )
        _seed_user(
            "customer@rental.com", "Jane", "Customer", ROLE_CUSTOMER,
            phone="+1234567890",
            address="456 Customer Lane, City, State 67890",
        )
    except (PasswordValidationError, ValidationError, ConflictError) as e:
        db.session.rollback()
        raise click.ClickException(f"Failed to create demo users: {e}")
    db.session.commit()

    periods = {}
    for name, unit, duration in SEED_PERIODS:
        period = db.session.query(RentalPeriod).filter_by(name=name).first()
        if period is None:
            period = RentalPeriod(name=name, unit=unit, duration=duration)
            db.session.add(period)
        periods[name] = period
    db.session.flush()

    vendor_profile = vendor.vendor_profile
    for name, description, product_type, rentable, prices, quantity in SEED_PRODUCTS:
        if db.session.query(Product.id).filter_by(vendor_id=vendor_profile.id, name=name).first():
            click.echo(f"WARN  Product '{name}' already exists, skipping...")
            continue
        product = Product(
            vendor_id=vendor_profile.id,
            name=name,
            description=description,
            product_type=product_type,
            is_rentable=rentable,
            published=True,
        )
        for period_name, cents in prices.items():
            product.pricing.append(ProductPricing(rental_period=periods[period_name], price_cents=cents))
        if quantity:
            product.inventory = Inventory(quantity_on_hand=quantity)
        db.session.add(product)
        click.echo(f"PASS Created product: {name}")

    if not db.session.query(Coupon.id).filter_by(code="WELCOME10").first():
        now = utcnow()
        db.session.add(Coupon(
            code="WELCOME10",
            discount_type="PERCENTAGE",
            percent_bps=1000,
            valid_from=now,
            valid_to=now + timedelta(days=365),
            used_count=0,
            is_active=True,
        ))
        click.echo("PASS Created coupon: WELCOME10 (10% off)")

    db.session.commit()

    click.echo("\n" + "="*60)
    click.echo("DONE Demo data ready")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   admin    -> admin@rental.com    / {DEFAULT_PASSWORD}")
    click.echo(f"   vendor   -> vendor@rental.com   / {DEFAULT_PASSWORD}")
    click.echo(f"   customer -> customer@rental.com / {DEFAULT_PASSWORD}")
    click.echo("")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(sorted(VALID_ROLES), case_sensitive=False), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their role."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role.upper())
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Role':<10} {'Active'}")
    click.echo("="*90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.full_name:<25} {user.role:<10} {active_str}")
    click.echo("="*90 + "\n")


@users_group.command('create-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--first-name', default='Admin', help='First name')
@click.option('--last-name', default='User', help='Last name')
@with_appcontext
def create_admin_cli(email, password, first_name, last_name):
    """
    Create an admin account.

    Password must meet the configured strength requirements
    (password_min_length, require_strong_password).
    """
    try:
        user = create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=ROLE_ADMIN,
            email_verified=True,
        )
        db.session.commit()
    except PasswordValidationError as e:
        db.session.rollback()
        raise click.ClickException(f"Password validation failed: {e}")
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")


# =============================================================================
# NOTIFICATION COMMANDS
# =============================================================================

@click.group('notifications')
def notifications_group():
    """Rental expiry reminder commands."""


@notifications_group.command('check-expiring')
@with_appcontext
def check_expiring():
    """Run one rental expiry reminder pass."""
    summary = notification_service.check_and_notify_expiring_rentals()
    if not summary["enabled"]:
        click.echo("WARN  Email notifications are disabled in settings")
        return
    click.echo(
        f"PASS Checked {summary['checked']} order(s): {summary['sent']} sent, {summary['failed']} failed"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(notifications_group)
