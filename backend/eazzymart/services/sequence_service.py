# Overview: Service-layer operations for order numbering; date-prefixed, per-day sequential ids.

from __future__ import annotations

import time
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError
from ..extensions import db
from ..models import Order, OrderSequence
from ..time_utils import date_stamp, utcnow


ORDER_ID_PREFIX = "ORD"

# Candidates probed against existing orders before falling back to a
# timestamp suffix.
MAX_SEQUENCE_PROBES = 100


def format_order_id(stamp: str, number: int) -> str:
    return f"{ORDER_ID_PREFIX}-{stamp}-{number:04d}"


def _now_millis() -> int:
    return int(time.time() * 1000)


def fallback_order_id(stamp: str, millis: int | None = None) -> str:
    if millis is None:
        millis = _now_millis()
    suffix = str(millis)[-8:]
    return f"{ORDER_ID_PREFIX}-{stamp}-{suffix}"


def _highest_existing_number(stamp: str) -> int:
    """Largest NNNN already used for the day (rows created before the sequence row existed)."""
    prefix = f"{ORDER_ID_PREFIX}-{stamp}-"
    ids = (
        db.session.query(Order.order_id)
        .filter(Order.order_id.like(f"{prefix}%"))
        .all()
    )
    highest = 0
    for (order_id,) in ids:
        tail = order_id[len(prefix):]
        if len(tail) == 4 and tail.isdigit():
            highest = max(highest, int(tail))
    return highest


def _allocate_number(stamp: str) -> int:
    """
    Atomically allocate the next number for the day.

    The UPDATE both reads and bumps next_number, so two transactions can
    never receive the same value. The first allocation of the day inserts
    the row inside a savepoint; losing that insert race falls back to the
    UPDATE path.
    """
    stmt = (
        update(OrderSequence)
        .where(OrderSequence.sequence_date == stamp)
        .values(next_number=OrderSequence.next_number + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        start = _highest_existing_number(stamp) + 1
        try:
            with db.session.begin_nested():
                db.session.add(OrderSequence(sequence_date=stamp, next_number=start + 1))
            return start
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(OrderSequence.next_number)
        .filter_by(sequence_date=stamp)
        .scalar()
    )
    return current - 1


def next_order_id(now: datetime | None = None) -> str:
    """
    Allocate ORD-YYYYMMDD-NNNN for the current UTC day.

    Must run inside the caller's write transaction so the allocation commits
    or rolls back with the order row. If the allocated id is somehow already
    taken (e.g. imported rows), further numbers are probed; after
    MAX_SEQUENCE_PROBES collisions an ORD-YYYYMMDD-<8 digit epoch> id is used,
    stepping the millisecond suffix past ids that are also taken.

    Raises:
        ConflictError: every fallback candidate is taken as well
    """
    stamp = date_stamp(now)
    for _ in range(MAX_SEQUENCE_PROBES):
        candidate = format_order_id(stamp, _allocate_number(stamp))
        if db.session.get(Order, candidate) is None:
            return candidate
    millis = _now_millis()
    for offset in range(MAX_SEQUENCE_PROBES):
        candidate = fallback_order_id(stamp, millis + offset)
        if db.session.get(Order, candidate) is None:
            return candidate
    raise ConflictError(f"Could not allocate an order id for {stamp}")
