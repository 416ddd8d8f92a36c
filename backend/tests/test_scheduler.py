# Overview: Pytest coverage for the background expiry scheduler.

import logging
import threading

import pytest

from rentmarket.services.scheduler import RentalExpiryScheduler, get_scheduler


class TestRunOnce:

    def test_records_result(self, app):
        scheduler = RentalExpiryScheduler(app, job=lambda: {"checked": 2, "sent": 2, "failed": 0})
        assert scheduler.run_once() == {"checked": 2, "sent": 2, "failed": 0}

        status = scheduler.status()
        assert status["runs"] == 1
        assert status["last_error"] is None
        assert status["last_run_at"].endswith("Z")
        assert status["running"] is False

    def test_failing_iteration_is_logged_not_raised(self, app, caplog):
        def boom():
            raise RuntimeError("smtp exploded")

        scheduler = RentalExpiryScheduler(app, job=boom)
        with caplog.at_level(logging.ERROR, logger="rentmarket.services.scheduler"):
            assert scheduler.run_once() is None

        assert scheduler.last_error == "smtp exploded"
        assert scheduler.runs == 1
        assert "Rental expiry check failed" in caplog.text

    def test_unexpected_error_is_logged_not_raised(self, app, caplog):
        def broken():
            raise KeyError("customer")

        scheduler = RentalExpiryScheduler(app, job=broken)
        with caplog.at_level(logging.ERROR, logger="rentmarket.services.scheduler"):
            assert scheduler.run_once() is None

        assert scheduler.last_error == "KeyError: 'customer'"
        assert scheduler.runs == 1
        assert "unexpected error" in caplog.text

    def test_default_job_runs_notifier(self, app, db_session):
        scheduler = RentalExpiryScheduler(app)
        result = scheduler.run_once()
        assert result["checked"] == 0
        assert result["enabled"] is True


class TestTimer:

    def test_start_runs_immediately_and_stops(self, app):
        ran = threading.Event()

        def job():
            ran.set()
            return {"checked": 0}

        scheduler = RentalExpiryScheduler(app, job=job)
        assert scheduler.start(interval_minutes=60) is True
        try:
            assert ran.wait(timeout=5)
            assert scheduler.is_running()
            assert scheduler.start(interval_minutes=60) is False
            assert scheduler.status()["interval_minutes"] == 60
        finally:
            assert scheduler.stop() is True
        assert scheduler.is_running() is False
        assert scheduler.stop() is False

    @pytest.mark.parametrize("error", [
        ValueError("first pass fails"),
        KeyError("customer"),
        AttributeError("NoneType has no attribute user"),
        TypeError("unsupported operand"),
    ])
    def test_keeps_ticking_after_failure(self, app, error):
        calls = []
        done = threading.Event()

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise error
            done.set()
            return {"checked": 0}

        scheduler = RentalExpiryScheduler(app, job=flaky)
        scheduler.start(interval_minutes=0.001)
        try:
            assert done.wait(timeout=5)
            assert scheduler.is_running()
        finally:
            scheduler.stop()
        assert len(calls) >= 2

    def test_rejects_non_positive_interval(self, app):
        scheduler = RentalExpiryScheduler(app, job=dict)
        with pytest.raises(ValueError):
            scheduler.start(interval_minutes=0)


def test_get_scheduler_is_per_app_singleton(app):
    assert get_scheduler(app) is get_scheduler(app)
    assert isinstance(get_scheduler(app), RentalExpiryScheduler)
