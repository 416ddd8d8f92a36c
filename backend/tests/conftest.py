"""
Pytest fixtures for RentMarket backend tests.

Provides test database setup, marketplace accounts, a small catalog and
test client.
"""

from datetime import timedelta

import pytest
from rentmarket import create_app
from rentmarket.config import Config
from rentmarket.extensions import db
from rentmarket.models import Inventory, Product, ProductPricing, RentalPeriod
from rentmarket.models.users import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_VENDOR
from rentmarket.services import order_service, session_service, settings_service
from rentmarket.services.auth_service import create_user
from rentmarket.time_utils import utcnow


PASSWORD = "Password123!"


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_ROUNDS = 4
    SMTP_HOST = None
    AUTO_START_SCHEDULER = False


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        settings_service.clear_settings_cache()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        settings_service.clear_settings_cache()


@pytest.fixture(scope='function')
def admin_user(db_session):
    user = create_user(
        email="admin@rental.com",
        password=PASSWORD,
        first_name="Admin",
        last_name="User",
        role=ROLE_ADMIN,
        email_verified=True,
    )
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def vendor_user(db_session):
    user = create_user(
        email="vendor@rental.com",
        password=PASSWORD,
        first_name="John",
        last_name="Vendor",
        role=ROLE_VENDOR,
        company_name="Premium Rentals Co.",
        gstin="29ABCDE1234F1Z5",
        email_verified=True,
    )
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_vendor_user(db_session):
    user = create_user(
        email="other-vendor@rental.com",
        password=PASSWORD,
        first_name="Olga",
        last_name="Vendor",
        role=ROLE_VENDOR,
        company_name="Budget Gear Ltd.",
        email_verified=True,
    )
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer_user(db_session):
    user = create_user(
        email="customer@rental.com",
        password=PASSWORD,
        first_name="Jane",
        last_name="Customer",
        role=ROLE_CUSTOMER,
        phone="+1234567890",
        email_verified=True,
    )
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_customer_user(db_session):
    user = create_user(
        email="second-customer@rental.com",
        password=PASSWORD,
        first_name="Sam",
        last_name="Customer",
        role=ROLE_CUSTOMER,
        email_verified=True,
    )
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def periods(db_session):
    """Hourly, Daily and Weekly rental periods keyed by name."""
    rows = {
        "Hourly": RentalPeriod(name="Hourly", unit="HOUR", duration=1),
        "Daily": RentalPeriod(name="Daily", unit="DAY", duration=1),
        "Weekly": RentalPeriod(name="Weekly", unit="WEEK", duration=1),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


def make_product(db_session, vendor_user, periods, *, name="Professional Camera", quantity=5, prices=None):
    """Published rentable product with per-period prices in cents."""
    prices = prices or {"Hourly": 2500, "Daily": 15000, "Weekly": 90000}
    product = Product(
        vendor_id=vendor_user.vendor_profile.id,
        name=name,
        product_type="GOODS",
        is_rentable=True,
        published=True,
    )
    for period_name, cents in prices.items():
        product.pricing.append(ProductPricing(rental_period=periods[period_name], price_cents=cents))
    product.inventory = Inventory(quantity_on_hand=quantity)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def camera(db_session, vendor_user, periods):
    return make_product(db_session, vendor_user, periods)


@pytest.fixture(scope='function')
def tent(db_session, vendor_user, periods):
    return make_product(
        db_session, vendor_user, periods,
        name="Party Tent", quantity=3, prices={"Daily": 20000, "Weekly": 120000},
    )


def rental_window(days=3, *, start_in=timedelta(hours=1)):
    """A [start, end) window starting shortly in the future."""
    start = utcnow().replace(microsecond=0) + start_in
    return start, start + timedelta(days=days)


def place_order(customer_user, vendor_user, lines, *, start=None, end=None, coupon_code=None):
    """Create a QUOTATION through the service layer."""
    if start is None or end is None:
        start, end = rental_window()
    return order_service.create_order(
        customer=customer_user.customer_profile,
        vendor_id=vendor_user.vendor_profile.id,
        start_date=start,
        end_date=end,
        lines=lines,
        coupon_code=coupon_code,
        user_id=customer_user.id,
    )


def confirmed_order(customer_user, vendor_user, lines, **kwargs):
    """QUOTATION -> SENT -> CONFIRMED."""
    order = place_order(customer_user, vendor_user, lines, **kwargs)
    order_service.send_order(order.id, user=vendor_user)
    return order_service.confirm_order(order.id, user=vendor_user)


def get_auth_token(user) -> str:
    """Helper to get a bearer token for a user without going through login."""
    _, token = session_service.create_session(user_id=user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
