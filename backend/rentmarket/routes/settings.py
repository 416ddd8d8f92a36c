# backend/rentmarket/routes/settings.py
"""
Public Settings Routes (no auth)

- GET /api/settings/public    - Display settings for the storefront
- GET /api/settings/company   - Company block printed on invoices
- GET /api/rental-periods     - Rental periods, shortest first
"""

from flask import Blueprint, jsonify

from ..services import settings_service


settings_bp = Blueprint("settings", __name__, url_prefix="/api")


@settings_bp.get("/settings/public")
def public_settings_route():
    return jsonify({"settings": settings_service.get_public_settings()}), 200


@settings_bp.get("/settings/company")
def company_info_route():
    return jsonify({"company": settings_service.get_company_info()}), 200


@settings_bp.get("/rental-periods")
def rental_periods_route():
    return jsonify({"items": [p.to_dict() for p in settings_service.get_rental_periods()]}), 200
