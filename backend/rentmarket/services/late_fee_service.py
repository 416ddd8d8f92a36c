# Overview: Service-layer operations for late fees; pure calculation over settings.

"""
Late-Fee Calculator

fee = ceil(chargeable_days) * late_fee_rate * order_amount

where chargeable time is the delay past the planned end date minus the
grace period. Returns within the grace period (or early) cost nothing.
Amounts are integer cents, rounded half-up.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from rentmarket.time_utils import whole_days_over
from . import settings_service


@dataclass(frozen=True)
class LateFeeConfig:
    rate: float
    grace_period_hours: float

    def to_dict(self) -> dict:
        return {"rate": self.rate, "grace_period_hours": self.grace_period_hours}


def get_late_fee_config() -> LateFeeConfig:
    return LateFeeConfig(
        rate=float(settings_service.get_setting("late_fee_rate") or 0),
        grace_period_hours=float(settings_service.get_setting("late_fee_grace_period_hours") or 0),
    )


def chargeable_days(planned_end: datetime, actual_return: datetime, grace_period_hours: float) -> int:
    """Whole days billed for a return, 0 when on time or within grace."""
    grace = timedelta(hours=max(grace_period_hours, 0))
    return whole_days_over(actual_return - planned_end, grace)


def calculate_late_fee(
    planned_end: datetime,
    actual_return: datetime,
    order_amount_cents: int,
    *,
    config: LateFeeConfig | None = None,
) -> int:
    config = config or get_late_fee_config()
    days = chargeable_days(planned_end, actual_return, config.grace_period_hours)
    if days == 0 or order_amount_cents <= 0:
        return 0
    fee = Decimal(order_amount_cents) * Decimal(str(config.rate)) * days
    return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
