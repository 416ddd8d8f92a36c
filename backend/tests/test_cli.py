"""
CLI command tests.

Runs the flask commands through the test runner against the in-memory
database used by the rest of the suite.
"""

import pytest
from rentmarket.extensions import db
from rentmarket.models import Coupon, Product, RentalPeriod, User
from rentmarket.services import settings_service


@pytest.fixture
def runner(app, db_session):
    return app.test_cli_runner()


class TestSeed:
    def test_seed_creates_demo_data(self, runner):
        result = runner.invoke(args=["system", "seed"])

        assert result.exit_code == 0, result.output
        assert "PASS Created admin: admin@rental.com" in result.output
        assert "PASS Created coupon: WELCOME10 (10% off)" in result.output
        assert "DONE Demo data ready" in result.output

        assert db.session.query(User).count() == 3
        assert db.session.query(Product).count() == 3
        assert db.session.query(RentalPeriod).filter_by(name="Daily").count() == 1
        coupon = db.session.query(Coupon).filter_by(code="WELCOME10").one()
        assert coupon.percent_bps == 1000

    def test_seed_is_idempotent(self, runner):
        runner.invoke(args=["system", "seed"])
        result = runner.invoke(args=["system", "seed"])

        assert result.exit_code == 0, result.output
        assert "WARN  User 'admin@rental.com' already exists, skipping..." in result.output
        assert "already exists, skipping" in result.output
        assert "Created coupon" not in result.output
        assert db.session.query(User).count() == 3
        assert db.session.query(Product).count() == 3

    def test_seeded_vendor_owns_catalog(self, runner):
        runner.invoke(args=["system", "seed"])

        vendor = db.session.query(User).filter_by(email="vendor@rental.com").one()
        assert vendor.vendor_profile.company_name == "Premium Rentals Co."
        names = {p.name for p in vendor.vendor_profile.products}
        assert names == {"Professional Camera", "Party Tent", "Delivery Service"}


class TestUsersCommands:
    def test_list_users_empty(self, runner):
        result = runner.invoke(args=["users", "list"])
        assert result.exit_code == 0
        assert "No users found." in result.output

    def test_list_users_filters_by_role(self, runner, vendor_user, customer_user):
        result = runner.invoke(args=["users", "list", "--role", "vendor"])

        assert result.exit_code == 0, result.output
        assert vendor_user.email in result.output
        assert customer_user.email not in result.output

    def test_create_admin(self, runner):
        result = runner.invoke(args=[
            "users", "create-admin",
            "--email", "ops@rental.com",
            "--password", "Password123!",
            "--first-name", "Ops",
        ])

        assert result.exit_code == 0, result.output
        assert "PASS Created admin: ops@rental.com" in result.output
        user = db.session.query(User).filter_by(email="ops@rental.com").one()
        assert user.role == "ADMIN"
        assert user.first_name == "Ops"

    def test_create_admin_rejects_weak_password(self, runner):
        result = runner.invoke(args=[
            "users", "create-admin",
            "--email", "weak@rental.com",
            "--password", "short",
        ])

        assert result.exit_code != 0
        assert "Password validation failed" in result.output
        assert db.session.query(User).filter_by(email="weak@rental.com").first() is None

    def test_create_admin_rejects_duplicate(self, runner, admin_user):
        result = runner.invoke(args=[
            "users", "create-admin",
            "--email", admin_user.email,
            "--password", "Password123!",
        ])

        assert result.exit_code != 0
        assert db.session.query(User).filter_by(email=admin_user.email).count() == 1


class TestNotificationCommands:
    def test_check_expiring_with_nothing_due(self, runner):
        result = runner.invoke(args=["notifications", "check-expiring"])

        assert result.exit_code == 0, result.output
        assert "PASS Checked 0 order(s): 0 sent, 0 failed" in result.output

    def test_check_expiring_when_disabled(self, runner):
        settings_service.update_settings({"email_notifications": False})

        result = runner.invoke(args=["notifications", "check-expiring"])

        assert result.exit_code == 0
        assert "Email notifications are disabled" in result.output


def test_init_db_reports_schema(runner):
    result = runner.invoke(args=["system", "init-db"])
    assert result.exit_code == 0, result.output
    assert "PASS Schema ready" in result.output
