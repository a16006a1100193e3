# Overview: Service-layer operations for maintenance; auto-completion of stale deliveries and the background sweeper.

from __future__ import annotations

import threading
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import DeliveryOrder, OrderStatus
from ..time_utils import utcnow
from .concurrency import begin_write, lock_for_update, order_locks, run_with_retry
from .lifecycle_service import apply_transition


DEFAULT_AUTO_COMPLETE_HOURS = 24


def _complete_one(order_id: str, cutoff: datetime, now: datetime) -> bool:
    """Re-check one candidate under its lock; a concurrent mark-received wins."""

    def _op():
        begin_write()
        order = lock_for_update(
            db.session.query(DeliveryOrder).filter_by(order_id=order_id)
        ).first()
        if (
            order is None
            or order.status != OrderStatus.OUT_FOR_DELIVERY
            or order.out_for_delivery_at is None
            or order.out_for_delivery_at >= cutoff
        ):
            db.session.rollback()
            return False
        apply_transition(order, OrderStatus.DELIVERED, now=now)
        db.session.commit()
        return True

    with order_locks.hold(order_id):
        return run_with_retry(_op)


def auto_complete_deliveries(now: datetime | None = None, max_age_hours: int | None = None) -> list[str]:
    """
    Move Delivery orders that have been Out for Delivery longer than
    max_age_hours (DELIVERY_AUTO_COMPLETE_HOURS) to Delivered.

    Returns the ids that were completed. Idempotent: a second run with the
    same clock completes nothing.
    """
    now = now or utcnow()
    if max_age_hours is None:
        max_age_hours = current_app.config.get("DELIVERY_AUTO_COMPLETE_HOURS", DEFAULT_AUTO_COMPLETE_HOURS)
    cutoff = now - timedelta(hours=max_age_hours)

    candidates = [
        order_id for (order_id,) in db.session.query(DeliveryOrder.order_id).filter(
            DeliveryOrder.status == OrderStatus.OUT_FOR_DELIVERY,
            DeliveryOrder.out_for_delivery_at.isnot(None),
            DeliveryOrder.out_for_delivery_at < cutoff,
        ).order_by(DeliveryOrder.out_for_delivery_at.asc()).all()
    ]
    db.session.rollback()

    completed = []
    for order_id in candidates:
        try:
            if _complete_one(order_id, cutoff, now):
                completed.append(order_id)
        except Exception:
            current_app.logger.exception("Auto-complete failed for order %s", order_id)

    if completed:
        current_app.logger.info("Auto-completed %s delivery order(s): %s", len(completed), ", ".join(completed))
    return completed


class DeliverySweeper:
    """
    Daemon thread running auto_complete_deliveries() every interval seconds.

    A failing pass is logged and the next pass runs on schedule.
    """

    def __init__(self, app, interval: float | None = None):
        self.app = app
        self.interval = interval if interval is not None else app.config["DELIVERY_SWEEP_INTERVAL_SECONDS"]
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> list[str]:
        with self.app.app_context():
            try:
                return auto_complete_deliveries()
            except Exception:
                self.app.logger.exception("Delivery sweep failed")
                return []
            finally:
                db.session.remove()

    def _run(self, run_immediately: bool) -> None:
        if run_immediately:
            self.tick()
        while not self._stop.wait(self.interval):
            self.tick()

    def start(self, *, run_immediately: bool = True) -> None:
        """Start the loop; by default the first pass runs right away on the sweeper thread."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, args=(run_immediately,), name="delivery-sweeper", daemon=True
        )
        self._thread.start()
        self.app.logger.info("Delivery sweeper started (every %ss)", self.interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
