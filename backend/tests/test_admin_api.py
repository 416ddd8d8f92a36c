# Overview: Pytest coverage for admin user management, settings, scheduler control, reports and the audit log.

import pytest

from conftest import auth_headers, confirmed_order, get_auth_token
from rentmarket.models import AuditLog
from rentmarket.services import invoice_service, payment_service
from rentmarket.services.scheduler import RentalExpiryScheduler


@pytest.fixture
def admin_headers(db_session, admin_user):
    return auth_headers(get_auth_token(admin_user))


class TestUserManagement:

    def test_list_and_filter(self, client, admin_headers, vendor_user, customer_user):
        body = client.get("/api/admin/users", headers=admin_headers).get_json()
        assert body["count"] == 3

        vendors = client.get("/api/admin/users?role=vendor", headers=admin_headers).get_json()
        assert [u["email"] for u in vendors["items"]] == ["vendor@rental.com"]

        found = client.get("/api/admin/users?q=jane", headers=admin_headers).get_json()
        assert [u["email"] for u in found["items"]] == ["customer@rental.com"]

        assert client.get("/api/admin/users?role=ROOT", headers=admin_headers).status_code == 400

    def test_get_user(self, client, admin_headers, vendor_user):
        body = client.get(f"/api/admin/users/{vendor_user.id}", headers=admin_headers).get_json()
        assert body["user"]["vendor_profile"]["company_name"] == "Premium Rentals Co."
        assert client.get("/api/admin/users/9999", headers=admin_headers).status_code == 404

    def test_deactivate_revokes_sessions_and_audits(self, client, db_session, admin_headers, customer_user):
        customer_token = get_auth_token(customer_user)

        response = client.patch(
            f"/api/admin/users/{customer_user.id}/status", json={"is_active": False}, headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["user"]["is_active"] is False
        assert client.get("/api/auth/me", headers=auth_headers(customer_token)).status_code == 401
        assert db_session.query(AuditLog).filter_by(action="USER_DEACTIVATED").count() == 1

        response = client.patch(
            f"/api/admin/users/{customer_user.id}/status", json={"is_active": True}, headers=admin_headers,
        )
        assert response.get_json()["user"]["is_active"] is True

    def test_cannot_deactivate_self(self, client, admin_headers, admin_user):
        response = client.patch(f"/api/admin/users/{admin_user.id}/status", json={"is_active": False}, headers=admin_headers)
        assert response.status_code == 400

    def test_status_must_be_boolean(self, client, admin_headers, customer_user):
        response = client.patch(f"/api/admin/users/{customer_user.id}/status", json={"is_active": "no"}, headers=admin_headers)
        assert response.status_code == 400


class TestSettingsApi:

    def test_read_and_update(self, client, admin_headers, periods):
        body = client.get("/api/admin/settings", headers=admin_headers).get_json()
        assert body["settings"]["gst_percentage"] == 18
        assert [p["name"] for p in body["rental_periods"]] == ["Hourly", "Daily", "Weekly"]

        response = client.put(
            "/api/admin/settings",
            json={"settings": {"gst_percentage": 12, "email_notifications": False}},
            headers=admin_headers,
        )
        assert response.status_code == 200
        settings = response.get_json()["settings"]
        assert settings["gst_percentage"] == 12
        assert settings["email_notifications"] is False

        public = client.get("/api/settings/public").get_json()
        assert public["settings"]["gst_percentage"] == 12

    def test_replace_rental_periods(self, client, admin_headers, periods):
        response = client.put(
            "/api/admin/settings",
            json={"rental_periods": [
                {"id": periods["Daily"].id, "name": "Daily", "unit": "DAY", "duration": 1},
                {"name": "Monthly", "unit": "MONTH", "duration": 1},
            ]},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert [p["name"] for p in response.get_json()["rental_periods"]] == ["Daily", "Monthly"]
        assert [p["name"] for p in client.get("/api/rental-periods").get_json()["items"]] == ["Daily", "Monthly"]

    @pytest.mark.parametrize("body", [
        {},
        {"settings": {"gst_percentage": -5}},
        {"settings": {"platform_fee": "lots"}},
        {"rental_periods": [{"name": "Decade", "unit": "DECADE"}]},
    ])
    def test_invalid_updates(self, client, admin_headers, body):
        response = client.put("/api/admin/settings", json=body, headers=admin_headers)
        assert response.status_code == 400

    def test_company_info_is_public(self, client, db_session):
        body = client.get("/api/settings/company").get_json()
        assert body["company"]["gstin"] == "29PLATFORM1234F1Z5"


class TestSchedulerControl:

    @pytest.fixture
    def fake_scheduler(self, app, monkeypatch):
        scheduler = RentalExpiryScheduler(app, job=lambda: {"checked": 0, "sent": 0, "failed": 0})
        monkeypatch.setitem(app.extensions, "rental_expiry_scheduler", scheduler)
        yield scheduler
        scheduler.stop()

    def test_start_stop_run(self, client, db_session, admin_headers, fake_scheduler):
        response = client.post("/api/admin/scheduler", json={"action": "start", "interval_minutes": 30}, headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()["message"] == "Scheduler started"
        assert response.get_json()["scheduler"]["running"] is True

        again = client.post("/api/admin/scheduler", json={"action": "start"}, headers=admin_headers)
        assert again.get_json()["message"] == "Scheduler already running"

        status = client.get("/api/admin/scheduler", headers=admin_headers).get_json()["scheduler"]
        assert status["interval_minutes"] == 30

        stopped = client.post("/api/admin/scheduler", json={"action": "stop"}, headers=admin_headers)
        assert stopped.get_json()["message"] == "Scheduler stopped"

        ran = client.post("/api/admin/scheduler", json={"action": "run"}, headers=admin_headers)
        assert ran.get_json()["message"] == "Expiry check executed"
        assert ran.get_json()["scheduler"]["last_result"] == {"checked": 0, "sent": 0, "failed": 0}

        actions = [a for (a,) in db_session.query(AuditLog.action).filter_by(entity="Scheduler").order_by(AuditLog.id)]
        assert actions == ["SCHEDULER_START", "SCHEDULER_START", "SCHEDULER_STOP", "SCHEDULER_RUN"]

    @pytest.mark.parametrize("body", [{"action": "pause"}, {"action": "start", "interval_minutes": 0}, {}])
    def test_bad_requests(self, client, db_session, admin_headers, fake_scheduler, body):
        response = client.post("/api/admin/scheduler", json=body, headers=admin_headers)
        assert response.status_code == 400
        assert fake_scheduler.is_running() is False


class TestReportsApi:

    def _billed_order(self, camera, customer_user, vendor_user, periods):
        order = confirmed_order(
            customer_user, vendor_user,
            [{"product_id": camera.id, "quantity": 1, "rental_period_id": periods["Daily"].id}],
        )
        invoice = invoice_service.generate_from_order(order.id, user=vendor_user)
        invoice_service.post_invoice(invoice.id, user=vendor_user)
        payment = payment_service.initiate_payment(invoice.id, user=customer_user, amount_cents=10000)
        payment_service.confirm_payment(user=customer_user, payment_id=payment.id, transaction_ref="TXN")
        return order

    def test_admin_report(self, client, admin_headers, camera, customer_user, vendor_user, periods):
        self._billed_order(camera, customer_user, vendor_user, periods)
        body = client.get("/api/reports/admin", headers=admin_headers).get_json()

        assert body["users_by_role"] == {"ADMIN": 1, "VENDOR": 1, "CUSTOMER": 1}
        assert body["orders_by_status"]["CONFIRMED"] == 1
        assert body["revenue"]["invoiced_cents"] == 45000
        assert body["revenue"]["collected_cents"] == 10000
        assert body["revenue"]["platform_fees_cents"] == 2250
        assert body["currency"] == "INR"

    def test_vendor_report(self, client, db_session, camera, customer_user, vendor_user, periods):
        self._billed_order(camera, customer_user, vendor_user, periods)
        body = client.get("/api/reports/vendor", headers=auth_headers(get_auth_token(vendor_user))).get_json()

        assert body["vendor_id"] == vendor_user.vendor_profile.id
        assert body["earnings"]["net_earnings_cents"] == 45000 - 2250
        assert body["top_products"] == [
            {"product_id": camera.id, "name": "Professional Camera", "units": 1, "revenue_cents": 45000}
        ]

    def test_vendor_sees_only_own_numbers(self, client, db_session, camera, customer_user, vendor_user, other_vendor_user, periods):
        self._billed_order(camera, customer_user, vendor_user, periods)
        body = client.get("/api/reports/vendor", headers=auth_headers(get_auth_token(other_vendor_user))).get_json()
        assert body["earnings"]["invoiced_cents"] == 0
        assert body["top_products"] == []

    def test_admin_must_name_vendor(self, client, admin_headers, vendor_user):
        assert client.get("/api/reports/vendor", headers=admin_headers).status_code == 400
        response = client.get(f"/api/reports/vendor?vendor_id={vendor_user.vendor_profile.id}", headers=admin_headers)
        assert response.status_code == 200

    def test_pdf_not_implemented(self, client, admin_headers):
        response = client.get("/api/reports/admin?format=pdf", headers=admin_headers)
        assert response.status_code == 501

    @pytest.mark.parametrize("query", ["start=yesterday", "start=2030-02-01T00:00:00Z&end=2030-01-01T00:00:00Z"])
    def test_bad_range(self, client, admin_headers, query):
        assert client.get(f"/api/reports/admin?{query}", headers=admin_headers).status_code == 400


class TestAuditLogApi:

    def test_filters_by_entity(self, client, admin_headers, camera, customer_user, vendor_user):
        order = confirmed_order(customer_user, vendor_user, [{"product_id": camera.id, "quantity": 1}])

        body = client.get(f"/api/admin/audit-log?entity=SaleOrder&entity_id={order.id}", headers=admin_headers).get_json()
        assert [e["action"] for e in body["items"]] == ["ORDER_CONFIRMED", "ORDER_SENT", "ORDER_CREATED"]

        limited = client.get("/api/admin/audit-log?limit=1", headers=admin_headers).get_json()
        assert len(limited["items"]) == 1
        assert client.get("/api/admin/audit-log?limit=zero", headers=admin_headers).status_code == 400

    def test_admin_order_overview(self, client, admin_headers, camera, customer_user, vendor_user):
        confirmed_order(customer_user, vendor_user, [{"product_id": camera.id, "quantity": 1}])
        body = client.get("/api/admin/orders", headers=admin_headers).get_json()
        assert body["count"] == 1
        assert body["by_status"]["CONFIRMED"] == 1
