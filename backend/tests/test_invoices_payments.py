# Overview: Pytest coverage for invoice generation, posting, visibility and payments.

"""
Invoice and payment tests.

Verifies:
- Tax-inclusive GST split with CGST/SGST halves
- Per-month invoice numbering and the 7-day due date
- Only vendors/admins generate and post; customers never see drafts
- Partial and full payments update the invoice payment status
"""

from datetime import timedelta

import pytest

from conftest import auth_headers, confirmed_order, get_auth_token, rental_window
from rentmarket.services import invoice_service, order_service, payment_service
from rentmarket.services.invoice_service import InvoiceError, split_inclusive_tax
from rentmarket.services.order_service import OrderAccessError
from rentmarket.services.payment_service import PaymentError
from rentmarket.time_utils import utcnow
from rentmarket.validation import NotFoundError, ValidationError


@pytest.fixture
def daily_order(db_session, camera, customer_user, vendor_user, periods):
    """Confirmed order: 1 camera, 3 days at the Daily rate (45000)."""
    start, end = rental_window(days=3)
    return confirmed_order(
        customer_user, vendor_user,
        [{"product_id": camera.id, "quantity": 1, "rental_period_id": periods["Daily"].id}],
        start=start, end=end,
    )


@pytest.fixture
def posted_invoice(daily_order, vendor_user):
    invoice = invoice_service.generate_from_order(daily_order.id, user=vendor_user)
    return invoice_service.post_invoice(invoice.id, user=vendor_user)


class TestTaxSplit:

    @pytest.mark.parametrize("gross,rate,expected", [
        (11800, 18, (10000, 1800)),
        (54000, 18, (45763, 8237)),
        (10000, 0, (10000, 0)),
        (0, 18, (0, 0)),
    ])
    def test_split_inclusive_tax(self, gross, rate, expected):
        assert split_inclusive_tax(gross, rate) == expected


class TestGenerateInvoice:

    def test_draft_mirrors_order(self, db_session, daily_order, vendor_user):
        invoice = invoice_service.generate_from_order(daily_order.id, user=vendor_user)

        assert invoice.status == "DRAFT"
        assert invoice.kind == "RENTAL"
        assert invoice.invoice_number == f"INV-{utcnow():%Y%m}-00001"
        assert invoice.due_date - invoice.invoice_date == timedelta(days=7)
        assert invoice.total_cents == 45000
        assert invoice.subtotal_cents + invoice.tax_cents == 45000
        assert invoice.lines[0].description == "Professional Camera x 3 Daily"
        assert invoice.payment_status == "UNPAID"

    def test_breakdown_puts_odd_cent_on_sgst(self, db_session, daily_order, vendor_user):
        invoice = invoice_service.generate_from_order(daily_order.id, user=vendor_user)
        invoice.tax_cents = 8237
        assert invoice_service.gst_breakdown(invoice) == {"cgst": 4118, "sgst": 4119, "total": 8237}

    def test_numbering_continues_and_honours_prefix(self, db_session, camera, customer_user, vendor_user, daily_order):
        from rentmarket.services import settings_service

        invoice_service.generate_from_order(daily_order.id, user=vendor_user)
        second_order = confirmed_order(customer_user, vendor_user, [{"product_id": camera.id, "quantity": 1}])
        second = invoice_service.generate_from_order(second_order.id, user=vendor_user)
        assert second.invoice_number.endswith("-00002")

        settings_service.update_settings({"invoice_prefix": "RM"})
        third_order = confirmed_order(customer_user, vendor_user, [{"product_id": camera.id, "quantity": 1}])
        third = invoice_service.generate_from_order(third_order.id, user=vendor_user)
        assert third.invoice_number == f"RM-{utcnow():%Y%m}-00001"

    def test_coupon_discount_becomes_negative_line(self, db_session, camera, customer_user, vendor_user, periods):
        from rentmarket.models import Coupon

        now = utcnow()
        db_session.add(Coupon(
            code="FLAT50", discount_type="FLAT", amount_off_cents=5000,
            valid_from=now - timedelta(days=1), valid_to=now + timedelta(days=1),
            used_count=0, is_active=True,
        ))
        db_session.commit()
        order = confirmed_order(
            customer_user, vendor_user,
            [{"product_id": camera.id, "quantity": 1, "rental_period_id": periods["Daily"].id}],
            coupon_code="FLAT50",
        )
        invoice = invoice_service.generate_from_order(order.id, user=vendor_user)
        assert invoice.discount_cents == 5000
        assert min(line.amount_cents for line in invoice.lines) == -5000
        assert invoice.total_cents == order.total_amount_cents

    def test_only_one_rental_invoice(self, db_session, daily_order, vendor_user):
        invoice_service.generate_from_order(daily_order.id, user=vendor_user)
        with pytest.raises(InvoiceError):
            invoice_service.generate_from_order(daily_order.id, user=vendor_user)

    def test_quotation_not_invoiceable(self, db_session, camera, customer_user, vendor_user):
        from conftest import place_order

        order = place_order(customer_user, vendor_user, [{"product_id": camera.id, "quantity": 1}])
        with pytest.raises(InvoiceError):
            invoice_service.generate_from_order(order.id, user=vendor_user)

    def test_other_vendor_and_customer_cannot_invoice(self, db_session, daily_order, other_vendor_user, customer_user):
        with pytest.raises(OrderAccessError):
            invoice_service.generate_from_order(daily_order.id, user=other_vendor_user)
        with pytest.raises(OrderAccessError):
            invoice_service.generate_from_order(daily_order.id, user=customer_user)

    def test_unknown_order(self, db_session, vendor_user):
        with pytest.raises(NotFoundError):
            invoice_service.generate_from_order(999, user=vendor_user)


class TestPostInvoice:

    def test_post_stamps_and_locks(self, db_session, posted_invoice, vendor_user):
        assert posted_invoice.status == "POSTED"
        assert posted_invoice.posted_at is not None
        with pytest.raises(InvoiceError, match="must be 'DRAFT'"):
            invoice_service.post_invoice(posted_invoice.id, user=vendor_user)

    def test_posting_returned_order_marks_invoiced(self, db_session, daily_order, vendor_user):
        invoice = invoice_service.generate_from_order(daily_order.id, user=vendor_user)
        order_service.pickup_order(daily_order.id, user=vendor_user)
        order = order_service.return_order(daily_order.id, user=vendor_user, return_date=daily_order.end_date)
        assert order.status == "RETURNED"

        invoice_service.post_invoice(invoice.id, user=vendor_user)
        assert order.status == "INVOICED"

    def test_customer_sees_posted_only(self, db_session, daily_order, vendor_user, customer_user, other_customer_user):
        invoice = invoice_service.generate_from_order(daily_order.id, user=vendor_user)
        assert invoice_service.list_invoices(customer_user) == []
        assert len(invoice_service.list_invoices(vendor_user)) == 1

        invoice_service.post_invoice(invoice.id, user=vendor_user)
        assert [i.id for i in invoice_service.list_invoices(customer_user)] == [invoice.id]
        assert invoice_service.list_invoices(other_customer_user) == []


class TestPayments:

    def test_partial_then_full_payment(self, db_session, posted_invoice, customer_user):
        first = payment_service.initiate_payment(posted_invoice.id, user=customer_user, amount_cents=20000, method="upi")
        assert first.status == "PENDING"
        assert first.method == "UPI"
        assert first.gateway_order_id.startswith("pay_")

        payment_service.confirm_payment(user=customer_user, payment_id=first.id, transaction_ref="TXN-1")
        assert posted_invoice.amount_paid_cents == 20000
        assert posted_invoice.payment_status == "PARTIAL"
        assert posted_invoice.balance_due_cents == 25000

        rest = payment_service.initiate_payment(posted_invoice.id, user=customer_user)
        assert rest.amount_cents == 25000
        payment_service.confirm_payment(user=customer_user, gateway_order_id=rest.gateway_order_id, transaction_ref="TXN-2")
        assert posted_invoice.payment_status == "PAID"

        with pytest.raises(PaymentError, match="already fully paid"):
            payment_service.initiate_payment(posted_invoice.id, user=customer_user)

    def test_failed_payment_leaves_invoice_unpaid(self, db_session, posted_invoice, customer_user):
        payment = payment_service.initiate_payment(posted_invoice.id, user=customer_user)
        payment = payment_service.confirm_payment(user=customer_user, payment_id=payment.id, success=False)
        assert payment.status == "FAILED"
        assert posted_invoice.amount_paid_cents == 0
        assert posted_invoice.payment_status == "UNPAID"

        with pytest.raises(PaymentError, match="already FAILED"):
            payment_service.confirm_payment(user=customer_user, payment_id=payment.id, transaction_ref="late")

    def test_draft_invoice_cannot_be_paid(self, db_session, daily_order, vendor_user, customer_user):
        invoice = invoice_service.generate_from_order(daily_order.id, user=vendor_user)
        with pytest.raises(PaymentError):
            payment_service.initiate_payment(invoice.id, user=customer_user)

    def test_amount_and_method_validation(self, db_session, posted_invoice, customer_user):
        with pytest.raises(PaymentError):
            payment_service.initiate_payment(posted_invoice.id, user=customer_user, amount_cents=45001)
        with pytest.raises(PaymentError):
            payment_service.initiate_payment(posted_invoice.id, user=customer_user, method="BITCOIN")
        with pytest.raises(ValidationError):
            payment_service.initiate_payment(posted_invoice.id, user=customer_user, amount_cents=0)

    def test_transaction_ref_required(self, db_session, posted_invoice, customer_user):
        payment = payment_service.initiate_payment(posted_invoice.id, user=customer_user)
        with pytest.raises(PaymentError):
            payment_service.confirm_payment(user=customer_user, payment_id=payment.id, transaction_ref="  ")

    def test_other_customer_cannot_pay(self, db_session, posted_invoice, other_customer_user, vendor_user):
        with pytest.raises(NotFoundError):
            payment_service.initiate_payment(posted_invoice.id, user=other_customer_user)
        with pytest.raises(NotFoundError):
            payment_service.initiate_payment(posted_invoice.id, user=vendor_user)


class TestInvoiceApi:

    def test_generate_and_post_over_http(self, client, db_session, daily_order, vendor_user):
        headers = auth_headers(get_auth_token(vendor_user))

        response = client.post(f"/api/invoices/from-order/{daily_order.id}", headers=headers)
        assert response.status_code == 201
        invoice = response.get_json()["invoice"]
        assert invoice["status"] == "DRAFT"
        assert invoice["gst_breakdown"]["total"] == invoice["tax_cents"]
        assert invoice["company"]["gstin"]
        assert invoice["total_formatted"] == "₹ 450.00"

        response = client.post(f"/api/invoices/{invoice['id']}/post", headers=headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["invoice"]["status"] == "POSTED"
        assert body["order_status"] == "CONFIRMED"

    def test_customer_cannot_generate(self, client, db_session, daily_order, customer_user):
        response = client.post(
            f"/api/invoices/from-order/{daily_order.id}",
            headers=auth_headers(get_auth_token(customer_user)),
        )
        assert response.status_code == 403

    def test_other_vendor_gets_403(self, client, db_session, daily_order, other_vendor_user):
        response = client.post(
            f"/api/invoices/from-order/{daily_order.id}",
            headers=auth_headers(get_auth_token(other_vendor_user)),
        )
        assert response.status_code == 403

    def test_customer_draft_detail_is_404(self, client, db_session, daily_order, vendor_user, customer_user):
        invoice = invoice_service.generate_from_order(daily_order.id, user=vendor_user)
        headers = auth_headers(get_auth_token(customer_user))

        assert client.get(f"/api/invoices/{invoice.id}", headers=headers).status_code == 404
        assert client.get("/api/invoices", headers=headers).get_json()["count"] == 0

        invoice_service.post_invoice(invoice.id, user=vendor_user)
        assert client.get(f"/api/invoices/{invoice.id}", headers=headers).status_code == 200

    def test_payment_flow_over_http(self, client, db_session, posted_invoice, customer_user):
        headers = auth_headers(get_auth_token(customer_user))

        response = client.post("/api/payments/initiate", json={"invoice_id": posted_invoice.id, "method": "CARD"}, headers=headers)
        assert response.status_code == 201
        payment = response.get_json()["payment"]

        response = client.post(
            "/api/payments/confirm",
            json={"gateway_order_id": payment["gateway_order_id"], "transaction_ref": "TXN-9", "success": True},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.get_json()["invoice"]["payment_status"] == "PAID"
        assert response.get_json()["invoice"]["balance_due_cents"] == 0

        listed = client.get(f"/api/payments/invoice/{posted_invoice.id}", headers=headers).get_json()["items"]
        assert [p["status"] for p in listed] == ["COMPLETED"]

    def test_confirm_requires_identifier(self, client, db_session, customer_user):
        response = client.post("/api/payments/confirm", json={"transaction_ref": "x"}, headers=auth_headers(get_auth_token(customer_user)))
        assert response.status_code == 400
