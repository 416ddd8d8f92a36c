# Overview: Pytest coverage for late-fee calculation.

from datetime import datetime, timedelta

import pytest

from rentmarket.services import late_fee_service, settings_service
from rentmarket.services.late_fee_service import LateFeeConfig, calculate_late_fee, chargeable_days


END = datetime(2026, 3, 18, 10, 0, 0)
CONFIG = LateFeeConfig(rate=0.1, grace_period_hours=24)


@pytest.mark.parametrize(
    "returned_at,expected_days",
    [
        (END - timedelta(hours=5), 0),                      # early
        (END, 0),                                           # on time
        (END + timedelta(hours=24), 0),                     # last minute of grace
        (END + timedelta(hours=24, minutes=1), 1),          # first minute past grace
        (END + timedelta(hours=48), 1),
        (END + timedelta(hours=48, seconds=1), 2),
        (END + timedelta(days=5), 4),
    ],
)
def test_chargeable_days(returned_at, expected_days):
    assert chargeable_days(END, returned_at, 24) == expected_days


def test_fee_is_rate_times_days_times_order_amount():
    # 3 days late, 24h grace -> 2 chargeable days * 10% * 450.00
    fee = calculate_late_fee(END, END + timedelta(days=3), 45000, config=CONFIG)
    assert fee == 9000


def test_fee_within_grace_is_zero():
    assert calculate_late_fee(END, END + timedelta(hours=23), 45000, config=CONFIG) == 0


def test_fee_rounds_half_up_to_cents():
    config = LateFeeConfig(rate=0.05, grace_period_hours=0)
    # 1 day * 5% * 1.01 = 0.0505 -> 5 cents
    assert calculate_late_fee(END, END + timedelta(hours=1), 101, config=config) == 5
    # 1 day * 5% * 0.11 = 0.0055 -> 1 cent
    assert calculate_late_fee(END, END + timedelta(hours=1), 11, config=config) == 1


def test_zero_grace_charges_from_first_second():
    config = LateFeeConfig(rate=0.1, grace_period_hours=0)
    assert calculate_late_fee(END, END + timedelta(seconds=1), 10000, config=config) == 1000


def test_config_comes_from_settings(db_session):
    settings_service.update_settings({"late_fee_rate": 0.2, "late_fee_grace_period_hours": 2})
    config = late_fee_service.get_late_fee_config()
    assert config.to_dict() == {"rate": 0.2, "grace_period_hours": 2.0}
    # 5h late, 2h grace -> 1 day * 20% * 100.00
    assert calculate_late_fee(END, END + timedelta(hours=5), 10000) == 2000
