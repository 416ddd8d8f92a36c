# backend/rentmarket/routes/invoices.py
"""
Invoice API Routes

- GET  /api/invoices                          - Invoices visible to the caller (optional ?status=)
- GET  /api/invoices/:id                      - Invoice detail with GST breakdown and company block
- POST /api/invoices/from-order/:order_id     - Generate the DRAFT rental invoice (vendor/admin)
- POST /api/invoices/:id/post                 - DRAFT -> POSTED (vendor/admin)

Customers only ever see POSTED invoices.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import invoice_service
from ..services.invoice_service import InvoiceError
from ..services.order_service import OrderAccessError
from ..models.users import ROLE_ADMIN, ROLE_VENDOR
from ..validation import NotFoundError
from ..decorators import require_auth, require_role


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    try:
        invoices = invoice_service.list_invoices(g.current_user, status=request.args.get("status"))
        return jsonify({"items": [inv.to_dict() for inv in invoices], "count": len(invoices)}), 200
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice_for_user(invoice_id, g.current_user)
        # Drafts stay internal to the vendor and admins
        if invoice.status != invoice_service.INVOICE_POSTED and g.current_user.role not in (ROLE_ADMIN, ROLE_VENDOR):
            return jsonify({"error": f"Invoice {invoice_id} not found"}), 404
        return jsonify({"invoice": invoice_service.invoice_payload(invoice)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/from-order/<int:order_id>")
@require_auth
@require_role(ROLE_VENDOR, ROLE_ADMIN)
def generate_invoice_route(order_id: int):
    try:
        invoice = invoice_service.generate_from_order(order_id, user=g.current_user)
        return jsonify({"invoice": invoice_service.invoice_payload(invoice)}), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except OrderAccessError as e:
        return jsonify({"error": str(e)}), 403
    except InvoiceError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to generate invoice for order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/post")
@require_auth
@require_role(ROLE_VENDOR, ROLE_ADMIN)
def post_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.post_invoice(invoice_id, user=g.current_user)
        return jsonify({
            "invoice": invoice_service.invoice_payload(invoice),
            "order_status": invoice.order.status,
        }), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except OrderAccessError as e:
        return jsonify({"error": str(e)}), 403
    except InvoiceError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to post invoice %s", invoice_id)
        return jsonify({"error": "Internal server error"}), 500
