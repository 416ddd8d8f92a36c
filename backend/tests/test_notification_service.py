# Overview: Pytest coverage for the rental expiry notifier.

"""
Expiry notifier tests.

Verifies:
- Only PICKED_UP orders ending 5-10 minutes from now are reminded
- One reminder per order, listing every product
- A failed send is recorded and retried on the next pass
- The email_notifications setting disables the pass
"""

from datetime import timedelta

import pytest

from conftest import auth_headers, confirmed_order, get_auth_token, rental_window
from rentmarket.models import RentalNotification
from rentmarket.services import email_service, notification_service, order_service, settings_service
from rentmarket.services.email_service import EmailResult


@pytest.fixture
def picked_up_order(db_session, camera, tent, customer_user, vendor_user):
    start, end = rental_window(days=2)
    order = confirmed_order(
        customer_user, vendor_user,
        [{"product_id": camera.id, "quantity": 1}, {"product_id": tent.id, "quantity": 1}],
        start=start, end=end,
    )
    return order_service.pickup_order(order.id, user=vendor_user)


class TestFindExpiring:

    @pytest.mark.parametrize("minutes_before_end,expected", [
        (4, False),
        (5, True),
        (7, True),
        (10, True),
        (11, False),
    ])
    def test_window_bounds(self, db_session, picked_up_order, minutes_before_end, expected):
        now = picked_up_order.end_date - timedelta(minutes=minutes_before_end)
        found = notification_service.find_expiring_orders(now)
        assert (picked_up_order in found) is expected

    def test_confirmed_orders_are_ignored(self, db_session, camera, customer_user, vendor_user):
        order = confirmed_order(customer_user, vendor_user, [{"product_id": camera.id, "quantity": 1}])
        now = order.end_date - timedelta(minutes=7)
        assert notification_service.find_expiring_orders(now) == []


class TestNotifierPass:

    def test_sends_one_reminder_per_order(self, db_session, picked_up_order, customer_user):
        now = picked_up_order.end_date - timedelta(minutes=7)
        summary = notification_service.check_and_notify_expiring_rentals(now)

        assert summary["checked"] == 1
        assert summary["sent"] == 1
        assert summary["failed"] == 0
        notification = summary["notifications"][0]
        assert notification["email"] == customer_user.email
        assert notification["product_names"] == ["Professional Camera", "Party Tent"]
        assert notification["status"] == "SENT"
        assert notification["transport"] == "console"
        assert picked_up_order.expiry_notified_at is not None

        again = notification_service.check_and_notify_expiring_rentals(now + timedelta(minutes=1))
        assert again["checked"] == 0
        assert db_session.query(RentalNotification).count() == 1

    def test_failed_send_is_recorded_and_retried(self, db_session, picked_up_order, monkeypatch):
        monkeypatch.setattr(
            email_service, "send_rental_expiry_email",
            lambda user, order, names: EmailResult(ok=False, transport="smtp", error="connection refused"),
        )
        now = picked_up_order.end_date - timedelta(minutes=9)
        summary = notification_service.check_and_notify_expiring_rentals(now)
        assert summary["failed"] == 1
        assert summary["notifications"][0]["error"] == "connection refused"
        assert picked_up_order.expiry_notified_at is None

        monkeypatch.undo()
        retry = notification_service.check_and_notify_expiring_rentals(now + timedelta(minutes=2))
        assert retry["sent"] == 1
        statuses = [s for (s,) in db_session.query(RentalNotification.status).order_by(RentalNotification.id)]
        assert statuses == ["FAILED", "SENT"]

    def test_disabled_setting_skips_pass(self, db_session, picked_up_order):
        settings_service.update_settings({"email_notifications": False})
        now = picked_up_order.end_date - timedelta(minutes=7)
        summary = notification_service.check_and_notify_expiring_rentals(now)
        assert summary["enabled"] is False
        assert summary["checked"] == 0
        assert db_session.query(RentalNotification).count() == 0

    def test_expiry_email_content(self, app, db_session, picked_up_order, customer_user, monkeypatch):
        captured = {}

        def fake_send(*, to, subject, html, text=None):
            captured.update(to=to, subject=subject, html=html, text=text)
            return EmailResult(ok=True, transport="smtp")

        monkeypatch.setattr(email_service, "send_email", fake_send)
        email_service.send_rental_expiry_email(customer_user, picked_up_order, ["Professional Camera", "Party Tent"])

        assert captured["to"] == customer_user.email
        assert captured["subject"] == f"Rental Ending Soon: Order {picked_up_order.order_number}"
        assert "Professional Camera, Party Tent" in captured["text"]
        assert picked_up_order.order_number in captured["html"]


class TestNotificationsApi:

    def test_listing_scoped_to_customer(self, client, db_session, picked_up_order, customer_user, other_customer_user):
        notification_service.check_and_notify_expiring_rentals(picked_up_order.end_date - timedelta(minutes=7))

        mine = client.get("/api/notifications", headers=auth_headers(get_auth_token(customer_user))).get_json()
        theirs = client.get("/api/notifications", headers=auth_headers(get_auth_token(other_customer_user))).get_json()
        assert len(mine["items"]) == 1
        assert theirs["items"] == []

    def test_manual_check_requires_admin(self, client, db_session, admin_user, customer_user):
        response = client.post("/api/notifications/check-expiring", headers=auth_headers(get_auth_token(customer_user)))
        assert response.status_code == 403

        response = client.post("/api/notifications/check-expiring", headers=auth_headers(get_auth_token(admin_user)))
        assert response.status_code == 200
        assert response.get_json()["checked"] == 0
