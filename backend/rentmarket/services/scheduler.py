# Overview: Background interval timer that runs the rental expiry notifier.

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from rentmarket.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)

_ITERATION_EXCEPTIONS = (SQLAlchemyError, OSError, RuntimeError, ValueError)


class RentalExpiryScheduler:
    """
    Runs `job` once immediately, then every `interval_minutes`, on a daemon
    thread inside an application context. A failing iteration is logged and
    the timer keeps going.
    """

    def __init__(self, app: Flask, job: Optional[Callable[[], dict]] = None):
        self._app = app
        self._job = job
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._interval_seconds = 0.0
        self.last_run_at = None
        self.last_result: Optional[dict] = None
        self.last_error: Optional[str] = None
        self.runs = 0

    def _default_job(self) -> dict:
        from .notification_service import check_and_notify_expiring_rentals
        return check_and_notify_expiring_rentals()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, interval_minutes: float = 5) -> bool:
        """Start the timer. Returns False if it was already running."""
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        with self._lock:
            if self.is_running():
                return False
            self._interval_seconds = float(interval_minutes) * 60
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name="rental-expiry-scheduler",
                daemon=True,
            )
            self._thread.start()
        logger.info("Rental expiry scheduler started (every %s minute(s)).", interval_minutes)
        return True

    def stop(self, timeout: float = 5.0) -> bool:
        """Stop the timer. Returns False if it was not running."""
        with self._lock:
            thread = self._thread
            if thread is None:
                return False
            self._stop_event.set()
            self._thread = None
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.info("Rental expiry scheduler stopped.")
        return True

    def run_once(self) -> Optional[dict]:
        with self._app.app_context():
            try:
                result = (self._job or self._default_job)()
            except _ITERATION_EXCEPTIONS as exc:
                db.session.rollback()
                self.last_error = str(exc)
                logger.exception("Rental expiry check failed")
                result = None
            except Exception as exc:
                # The timer thread must outlive any single bad iteration
                db.session.rollback()
                self.last_error = f"{type(exc).__name__}: {exc}"
                logger.exception("Rental expiry check failed with unexpected error")
                result = None
            else:
                self.last_error = None
            finally:
                self.last_run_at = utcnow()
                self.runs += 1
        self.last_result = result
        return result

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.run_once()
            if self._stop_event.wait(self._interval_seconds):
                break

    def status(self) -> dict:
        return {
            "running": self.is_running(),
            "interval_minutes": self._interval_seconds / 60 if self._interval_seconds else None,
            "last_run_at": to_utc_z(self.last_run_at),
            "last_result": self.last_result,
            "last_error": self.last_error,
            "runs": self.runs,
        }


def get_scheduler(app: Flask) -> RentalExpiryScheduler:
    """The app's single scheduler instance, created on first use."""
    scheduler = app.extensions.get("rental_expiry_scheduler")
    if scheduler is None:
        scheduler = RentalExpiryScheduler(app)
        app.extensions["rental_expiry_scheduler"] = scheduler
    return scheduler
