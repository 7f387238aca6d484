import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime

from cafe_engine.application.session_service import complete_session
from cafe_engine.domain.session_clock import remaining, utc_now
from cafe_engine.infrastructure.db.session import get_db_session
from cafe_engine.infrastructure.repositories.booking_repository import BookingRepository

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0


@dataclass
class SweepResult:
    completed: list[str] = field(default_factory=list)
    released_terminals: int = 0


class ExpirySweeper:
    """
    Completes Active sessions whose time has run out and frees their terminals.

    sweep() can be called on demand (before availability reads, or from the
    auto-complete endpoint) and also runs periodically on a daemon thread
    between start() and stop().
    """

    def __init__(self, session_factory=None, interval_seconds: float | None = None):
        self.session_factory = session_factory
        if interval_seconds is None:
            interval_seconds = float(
                os.getenv("SWEEP_INTERVAL_SECONDS", DEFAULT_SWEEP_INTERVAL_SECONDS)
            )
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def sweep(self, now: datetime | None = None, cafe_id: str | None = None) -> SweepResult:
        now = now or utc_now()

        with get_db_session(self.session_factory) as db:
            candidates = [
                (booking.id, booking.extended_time)
                for booking in BookingRepository(db).list_active(cafe_id)
                if booking.session_start_time is not None
                and remaining(booking.session_start_time, booking.total_hours, now).expired
            ]

        result = SweepResult()
        for booking_id, observed_extended_time in candidates:
            try:
                with get_db_session(self.session_factory) as db:
                    released = complete_session(db, booking_id, observed_extended_time)
            except Exception:
                logger.exception("Failed to complete expired booking. booking_id=%s", booking_id)
                continue
            if released is not None:
                result.completed.append(booking_id)
                result.released_terminals += released

        if result.completed:
            logger.info(
                "Expiry sweep completed %s booking(s), released %s terminal(s).",
                len(result.completed),
                result.released_terminals,
            )
        return result

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="expiry-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.info("Expiry sweeper started. interval=%.1fs", self.interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Expiry sweeper stopped.")

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Expiry sweep failed.")
