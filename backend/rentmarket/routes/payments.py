# backend/rentmarket/routes/payments.py
"""
Payment API Routes

- POST /api/payments/initiate              - Start paying a posted invoice
- POST /api/payments/confirm               - Settle a pending payment (gateway callback)
- GET  /api/payments/invoice/:invoice_id   - Payments recorded against an invoice

Request/response examples:

POST /api/payments/initiate
{
    "invoice_id": 1,
    "amount_cents": 15000,     // optional, defaults to balance due
    "method": "UPI"            // optional, defaults to ONLINE
}

POST /api/payments/confirm
{
    "gateway_order_id": "pay_3f2a...",
    "transaction_ref": "TXN-123",
    "success": true
}
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import payment_service
from ..services.payment_service import PaymentError
from ..validation import NotFoundError, ValidationError, parse_positive_int, require_fields
from ..decorators import require_auth


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/initiate")
@require_auth
def initiate_payment_route():
    try:
        data = require_fields(request.get_json(silent=True), "invoice_id")
        payment = payment_service.initiate_payment(
            parse_positive_int(data["invoice_id"], "invoice_id"),
            user=g.current_user,
            amount_cents=data.get("amount_cents"),
            method=data.get("method") or "ONLINE",
        )
        return jsonify({"payment": payment.to_dict()}), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, PaymentError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to initiate payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/confirm")
@require_auth
def confirm_payment_route():
    data = request.get_json(silent=True) or {}
    try:
        payment_id = data.get("payment_id")
        payment = payment_service.confirm_payment(
            user=g.current_user,
            payment_id=parse_positive_int(payment_id, "payment_id") if payment_id is not None else None,
            gateway_order_id=data.get("gateway_order_id"),
            transaction_ref=data.get("transaction_ref"),
            success=bool(data.get("success", True)),
        )
        invoice = payment.invoice
        return jsonify({
            "payment": payment.to_dict(),
            "invoice": {
                "id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "amount_paid_cents": invoice.amount_paid_cents,
                "balance_due_cents": invoice.balance_due_cents,
                "payment_status": invoice.payment_status,
            },
        }), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, PaymentError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to confirm payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/invoice/<int:invoice_id>")
@require_auth
def list_invoice_payments_route(invoice_id: int):
    try:
        payments = payment_service.list_payments_for_invoice(invoice_id, user=g.current_user)
        return jsonify({"items": [p.to_dict() for p in payments]}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500
