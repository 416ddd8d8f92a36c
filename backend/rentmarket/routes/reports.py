# backend/rentmarket/routes/reports.py
"""
Report Routes

- GET /api/reports/admin    - Platform summary (admin)
- GET /api/reports/vendor   - Earnings for the calling vendor (admins pass ?vendor_id=)

Query params: start, end (ISO-8601, optional), format (json only; pdf -> 501).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import report_service
from ..services.report_service import ReportError, ReportFormatNotSupported
from ..models.users import ROLE_ADMIN, ROLE_VENDOR
from ..validation import ValidationError, parse_positive_int
from ..decorators import require_auth, require_role, current_vendor_id


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _report_response(build):
    try:
        return jsonify(build()), 200
    except ReportFormatNotSupported as e:
        return jsonify({"error": str(e)}), 501
    except (ReportError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to build report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/admin")
@require_auth
@require_role(ROLE_ADMIN)
def admin_report_route():
    args = request.args
    return _report_response(
        lambda: report_service.admin_report(start=args.get("start"), end=args.get("end"), fmt=args.get("format"))
    )


@reports_bp.get("/vendor")
@require_auth
@require_role(ROLE_VENDOR, ROLE_ADMIN)
def vendor_report_route():
    args = request.args
    if g.current_user.role == ROLE_ADMIN:
        if not args.get("vendor_id"):
            return jsonify({"error": "vendor_id is required"}), 400
        try:
            vendor_id = parse_positive_int(args["vendor_id"], "vendor_id")
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400
    else:
        vendor_id = current_vendor_id()
        if vendor_id is None:
            return jsonify({"error": "Vendor profile not found"}), 400
    return _report_response(
        lambda: report_service.vendor_report(
            vendor_id, start=args.get("start"), end=args.get("end"), fmt=args.get("format")
        )
    )
