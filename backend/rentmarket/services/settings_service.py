# Overview: Service-layer operations for platform settings; encapsulates business logic and database work.

"""
Admin Settings Store

WHY: Fees, GST, late-fee policy and company details change at runtime and are
read on nearly every order and invoice. Values live in system_settings as
text, are typed on read, merged over DEFAULT_SETTINGS and cached in process
memory for CACHE_TTL.

RULES:
- "true"/"false" parse to bool, numeric strings to int/float, anything else
  stays a string.
- Stored values win over defaults.
- Every write clears the cache.
"""

from __future__ import annotations

import threading
import time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from ..extensions import db
from ..models import SystemSetting, RentalPeriod, ProductPricing
from ..models.catalog import PERIOD_UNIT_LENGTHS
from . import audit_service


CACHE_TTL_SECONDS = 5 * 60

DEFAULT_SETTINGS: dict[str, Any] = {
    # General
    "site_name": "RentMarket Platform",
    "site_description": "Your trusted marketplace for renting everything you need",
    "maintenance_mode": False,
    "allow_registration": True,
    "invoice_prefix": "INV",
    "currency": "INR",
    # Company details (printed on invoices)
    "company_name": "RentMarket Platform",
    "company_address": "123 Platform Street, Tech City, CA 94000",
    "company_gstin": "29PLATFORM1234F1Z5",
    "company_phone": "+1-800-RENTALS",
    "company_email": "support@rentmarket.com",
    # Payment & fees
    "platform_fee": 5,
    "gst_percentage": 18,
    "payment_gateway": "razorpay",
    "auto_payouts": True,
    "minimum_payout": 500,
    "security_deposit_percentage": 20,
    "late_fee_rate": 0.1,
    "late_fee_grace_period_hours": 24,
    # Security
    "two_factor_auth": False,
    "session_timeout": 30,
    "password_min_length": 8,
    "require_strong_password": True,
    # Notifications
    "email_notifications": True,
    "sms_notifications": False,
    "admin_alerts": True,
}

# Keys that must hold a non-negative number, with an optional upper bound
NUMERIC_RULES: dict[str, float | None] = {
    "platform_fee": 100,
    "gst_percentage": 100,
    "minimum_payout": None,
    "security_deposit_percentage": 100,
    "late_fee_rate": None,
    "late_fee_grace_period_hours": None,
    "session_timeout": None,
    "password_min_length": 128,
}

PUBLIC_KEYS = (
    "site_name",
    "site_description",
    "maintenance_mode",
    "allow_registration",
    "currency",
    "platform_fee",
    "gst_percentage",
    "security_deposit_percentage",
    "late_fee_rate",
    "late_fee_grace_period_hours",
    "password_min_length",
)

CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


class SettingsError(ValueError):
    pass


class SettingsValidationError(SettingsError):
    pass


_cache_lock = threading.Lock()
_cache: dict[str, Any] = {"data": None, "loaded_at": 0.0}


def parse_setting_value(value: str | None) -> Any:
    """Type a stored text value: bool, int, float, or the original string."""
    if value is None:
        return None
    if value in ("true", "false"):
        return value == "true"
    stripped = value.strip()
    if stripped == "":
        return value
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        return float(stripped)
    except ValueError:
        return value


def serialize_setting_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def get_system_settings() -> dict[str, Any]:
    """Defaults merged with stored rows, served from the in-memory cache when fresh."""
    now = time.monotonic()
    with _cache_lock:
        cached = _cache["data"]
        if cached is not None and (now - _cache["loaded_at"]) < CACHE_TTL_SECONDS:
            return dict(cached)

    stored = {
        row.key: parse_setting_value(row.value)
        for row in db.session.query(SystemSetting).all()
    }
    merged = {**DEFAULT_SETTINGS, **stored}

    with _cache_lock:
        _cache["data"] = merged
        _cache["loaded_at"] = now
    return dict(merged)


def get_setting(key: str) -> Any:
    return get_system_settings().get(key)


def clear_settings_cache() -> None:
    with _cache_lock:
        _cache["data"] = None
        _cache["loaded_at"] = 0.0


def get_public_settings() -> dict[str, Any]:
    settings = get_system_settings()
    return {key: settings.get(key) for key in PUBLIC_KEYS}


def _validate_value(key: str, value: Any) -> str:
    if key in NUMERIC_RULES:
        if isinstance(value, bool):
            raise SettingsValidationError(f"{key} must be a number")
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            raise SettingsValidationError(f"{key} must be a number")
        if not number.is_finite() or number < 0:
            raise SettingsValidationError(f"{key} must be a non-negative number")
        upper = NUMERIC_RULES[key]
        if upper is not None and number > Decimal(str(upper)):
            raise SettingsValidationError(f"{key} must be at most {upper}")
        return str(value).strip()
    if key in DEFAULT_SETTINGS and isinstance(DEFAULT_SETTINGS[key], bool):
        if isinstance(value, bool):
            return serialize_setting_value(value)
        text = str(value).strip().lower()
        if text not in ("true", "false"):
            raise SettingsValidationError(f"{key} must be true or false")
        return text
    if isinstance(value, (dict, list)):
        raise SettingsValidationError(f"{key} must be a scalar value")
    return serialize_setting_value(value)


def update_settings(values: dict[str, Any], *, user_id: int | None = None) -> dict[str, Any]:
    """
    Upsert settings rows from a key/value mapping.

    All values are validated before anything is written. Returns the fresh
    merged settings.

    Raises:
        SettingsValidationError: on an empty payload or an invalid value
    """
    if not isinstance(values, dict) or not values:
        raise SettingsValidationError("Settings payload must be a non-empty object")

    cleaned = {}
    for key, raw in values.items():
        if not isinstance(key, str) or not key.strip():
            raise SettingsValidationError("Setting keys must be non-empty strings")
        cleaned[key.strip()] = _validate_value(key.strip(), raw)

    existing = {
        row.key: row
        for row in db.session.query(SystemSetting).filter(SystemSetting.key.in_(cleaned.keys())).all()
    }
    changed = {}
    for key, text in cleaned.items():
        row = existing.get(key)
        if row is None:
            db.session.add(SystemSetting(key=key, value=text, updated_by_user_id=user_id))
            changed[key] = {"old": None, "new": text}
        elif row.value != text:
            changed[key] = {"old": row.value, "new": text}
            row.value = text
            row.updated_by_user_id = user_id

    if changed:
        audit_service.record(
            user_id=user_id,
            action="SETTINGS_UPDATED",
            entity="SystemSetting",
            entity_id=None,
            metadata={"changes": changed},
        )
    db.session.commit()
    clear_settings_cache()
    return get_system_settings()


def seed_default_settings() -> int:
    """Insert rows for any default key not yet stored. Returns the number created."""
    stored = {key for (key,) in db.session.query(SystemSetting.key).all()}
    created = 0
    for key, value in DEFAULT_SETTINGS.items():
        if key in stored:
            continue
        db.session.add(SystemSetting(key=key, value=serialize_setting_value(value)))
        created += 1
    db.session.commit()
    clear_settings_cache()
    return created


# ---------------------------------------------------------------------------
# Rental periods
# ---------------------------------------------------------------------------

def get_rental_periods() -> list[RentalPeriod]:
    periods = db.session.query(RentalPeriod).all()
    return sorted(periods, key=lambda p: (p.length, p.id))


def replace_rental_periods(periods: list[dict], *, user_id: int | None = None) -> list[RentalPeriod]:
    """
    Make the stored rental periods match `periods`.

    Entries are matched by id, then by name. Periods missing from the list
    are deleted unless a product price still uses them.
    """
    if not isinstance(periods, list):
        raise SettingsValidationError("rental_periods must be a list")

    current = {p.id: p for p in db.session.query(RentalPeriod).all()}
    by_name = {p.name.lower(): p for p in current.values()}
    keep_ids: set[int] = set()
    seen_names: set[str] = set()

    for item in periods:
        if not isinstance(item, dict):
            raise SettingsValidationError("Each rental period must be an object")
        name = str(item.get("name") or "").strip()
        unit = str(item.get("unit") or "").strip().upper()
        duration = item.get("duration", 1)
        if not name:
            raise SettingsValidationError("Rental period name is required")
        if name.lower() in seen_names:
            raise SettingsValidationError(f"Duplicate rental period name: {name}")
        seen_names.add(name.lower())
        if unit not in PERIOD_UNIT_LENGTHS:
            raise SettingsValidationError(
                f"Invalid rental period unit '{unit}'. Must be one of: {', '.join(PERIOD_UNIT_LENGTHS)}"
            )
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise SettingsValidationError("Rental period duration must be a positive integer")

        period = None
        if item.get("id") is not None:
            period = current.get(item.get("id"))
        if period is None:
            period = by_name.get(name.lower())
        if period is None:
            period = RentalPeriod(name=name, unit=unit, duration=duration)
            db.session.add(period)
            db.session.flush()
        else:
            period.name = name
            period.unit = unit
            period.duration = duration
        keep_ids.add(period.id)

    for period_id, period in current.items():
        if period_id in keep_ids:
            continue
        in_use = db.session.query(ProductPricing.id).filter_by(rental_period_id=period_id).first()
        if in_use:
            raise SettingsValidationError(
                f"Rental period '{period.name}' is used by product pricing and cannot be removed"
            )
        db.session.delete(period)

    audit_service.record(
        user_id=user_id,
        action="RENTAL_PERIODS_REPLACED",
        entity="RentalPeriod",
        entity_id=None,
        metadata={"count": len(keep_ids)},
    )
    db.session.commit()
    return get_rental_periods()


# ---------------------------------------------------------------------------
# Derived helpers (amounts in cents)
# ---------------------------------------------------------------------------

def _percent_of(amount_cents: int, percent: Any) -> int:
    value = Decimal(amount_cents) * Decimal(str(percent)) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_platform_fee(amount_cents: int) -> int:
    return _percent_of(amount_cents, get_setting("platform_fee"))


def calculate_gst(amount_cents: int) -> int:
    return _percent_of(amount_cents, get_setting("gst_percentage"))


def calculate_security_deposit(amount_cents: int) -> int:
    return _percent_of(amount_cents, get_setting("security_deposit_percentage"))


def get_gst_breakdown(amount_cents: int) -> dict[str, int]:
    """GST on `amount_cents` split into CGST and SGST halves (SGST absorbs the odd cent)."""
    total = calculate_gst(amount_cents)
    cgst = total // 2
    return {"cgst": cgst, "sgst": total - cgst, "total": total}


def get_company_info() -> dict[str, Any]:
    settings = get_system_settings()
    return {
        "name": settings["company_name"],
        "address": settings["company_address"],
        "phone": settings["company_phone"],
        "email": settings["company_email"],
        "gstin": settings["company_gstin"],
        "website": "www.rentmarket.com",
    }


def _group_indian(digits: str) -> str:
    # en-IN grouping: last three digits, then pairs
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(amount_cents: int, currency: str | None = None) -> str:
    """Render cents as e.g. '₹ 1,23,456.78' using the configured currency."""
    currency = currency or get_setting("currency")
    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    sign = "-" if amount_cents < 0 else ""
    whole, cents = divmod(abs(int(amount_cents)), 100)
    return f"{symbol} {sign}{_group_indian(str(whole))}.{cents:02d}"
