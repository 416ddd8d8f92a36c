# Overview: Service-layer operations for rental expiry reminders; encapsulates business logic and database work.

"""
Rental Expiry Notifier

WHY: Customers get one reminder shortly before a rental they hold ends, so
late fees are a surprise to nobody.

RULES:
- Candidates: orders PICKED_UP whose end_date lies in [now + 5 min,
  now + 10 min] and that have not been notified yet.
- One email per order, listing every product on it.
- Each attempt is recorded as a RentalNotification (SENT or FAILED).
- expiry_notified_at is stamped only on success, so a failed send is
  retried on the next pass while the order is still in the window.
- The email_notifications setting switches the whole pass off.

Runs outside requests (scheduler thread, CLI), so it logs through the
module logger rather than current_app.logger.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..extensions import db
from ..models import SaleOrder, RentalNotification, User
from ..models.users import ROLE_ADMIN, ROLE_VENDOR
from rentmarket.time_utils import utcnow
from .concurrency import lock_for_update
from . import email_service, settings_service

logger = logging.getLogger(__name__)

LOOKAHEAD_START = timedelta(minutes=5)
LOOKAHEAD_END = timedelta(minutes=10)

NOTIFICATION_SENT = "SENT"
NOTIFICATION_FAILED = "FAILED"
KIND_RENTAL_EXPIRY = "RENTAL_EXPIRY"


def expiry_window(now: datetime) -> tuple[datetime, datetime]:
    return now + LOOKAHEAD_START, now + LOOKAHEAD_END


def find_expiring_orders(now: datetime | None = None) -> list[SaleOrder]:
    now = now or utcnow()
    window_start, window_end = expiry_window(now)
    return (
        db.session.query(SaleOrder)
        .filter(
            SaleOrder.status == "PICKED_UP",
            SaleOrder.end_date >= window_start,
            SaleOrder.end_date <= window_end,
            SaleOrder.expiry_notified_at.is_(None),
        )
        .order_by(SaleOrder.end_date.asc(), SaleOrder.id.asc())
        .all()
    )


def _product_names(order: SaleOrder) -> list[str]:
    names: list[str] = []
    for line in order.lines:
        name = line.product.name if line.product else f"Product {line.product_id}"
        if name not in names:
            names.append(name)
    return names


def _notify_order(order_id: int, now: datetime) -> RentalNotification | None:
    order = lock_for_update(db.session.query(SaleOrder).filter_by(id=order_id)).first()
    # Another pass may have handled it between the scan and the lock
    if order is None or order.expiry_notified_at is not None or order.status != "PICKED_UP":
        db.session.rollback()
        return None

    user = order.customer.user
    names = _product_names(order)
    result = email_service.send_rental_expiry_email(user, order, names)

    notification = RentalNotification(
        order_id=order.id,
        user_id=user.id,
        kind=KIND_RENTAL_EXPIRY,
        email=user.email,
        product_names=names,
        expiry_time=order.end_date,
        status=NOTIFICATION_SENT if result.ok else NOTIFICATION_FAILED,
        transport=result.transport,
        error=result.error,
        created_at=now,
    )
    db.session.add(notification)
    if result.ok:
        order.expiry_notified_at = now
    db.session.commit()
    return notification


def check_and_notify_expiring_rentals(now: datetime | None = None) -> dict:
    """
    One notifier pass. Returns {"checked", "sent", "failed", "notifications"}.
    """
    now = now or utcnow()
    if not settings_service.get_setting("email_notifications"):
        logger.info("Email notifications disabled; skipping expiry check")
        return {"checked": 0, "sent": 0, "failed": 0, "notifications": [], "enabled": False}

    window_start, window_end = expiry_window(now)
    orders = find_expiring_orders(now)
    logger.info(
        "Expiry check: %d order(s) ending between %s and %s",
        len(orders), window_start.isoformat(), window_end.isoformat(),
    )

    sent = failed = 0
    notifications = []
    for order_id in [o.id for o in orders]:
        notification = _notify_order(order_id, now)
        if notification is None:
            continue
        if notification.status == NOTIFICATION_SENT:
            sent += 1
        else:
            failed += 1
            logger.warning("Expiry reminder for order %s failed: %s", notification.order_id, notification.error)
        notifications.append(notification.to_dict())

    return {
        "checked": len(orders),
        "sent": sent,
        "failed": failed,
        "notifications": notifications,
        "enabled": True,
    }


def list_notifications(user: User, *, limit: int = 100) -> list[RentalNotification]:
    query = db.session.query(RentalNotification)
    if user.role == ROLE_VENDOR:
        if user.vendor_profile is None:
            return []
        query = query.join(SaleOrder, RentalNotification.order_id == SaleOrder.id).filter(
            SaleOrder.vendor_id == user.vendor_profile.id
        )
    elif user.role != ROLE_ADMIN:
        query = query.filter(RentalNotification.user_id == user.id)
    return query.order_by(RentalNotification.created_at.desc(), RentalNotification.id.desc()).limit(limit).all()
