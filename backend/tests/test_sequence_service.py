"""
Order numbering tests.

Verifies:
- ORD-YYYYMMDD-NNNN format, sequential per UTC day
- Numbering resumes after the highest id already stored for the day
- Ids taken out of band are skipped
"""

import re
from datetime import datetime

import pytest

from eazzymart.errors import ConflictError
from eazzymart.extensions import db
from eazzymart.models import OrderSequence, OrderStatus, PickupOrder
from eazzymart.services import sequence_service
from eazzymart.services.sequence_service import fallback_order_id, format_order_id, next_order_id


DAY = datetime(2026, 1, 5, 8, 30)


def insert_order(order_id):
    db.session.add(PickupOrder(
        order_id=order_id,
        status=OrderStatus.PENDING,
        payment_method="Cash On Delivery",
        shipping_address="Store Pickup",
        total_amount_cents=0,
        created_at=DAY,
        updated_at=DAY,
    ))
    db.session.commit()


def test_format():
    assert format_order_id("20260105", 7) == "ORD-20260105-0007"
    assert format_order_id("20260105", 12345) == "ORD-20260105-12345"
    assert re.fullmatch(r"ORD-20260105-\d{8}", fallback_order_id("20260105"))


def test_sequential_per_day(db_session):
    first = next_order_id(DAY)
    second = next_order_id(DAY)
    other_day = next_order_id(datetime(2026, 1, 6))
    db.session.commit()

    assert first == "ORD-20260105-0001"
    assert second == "ORD-20260105-0002"
    assert other_day == "ORD-20260106-0001"
    assert db.session.get(OrderSequence, "20260105").next_number == 3


def test_resumes_after_existing_orders(db_session):
    insert_order("ORD-20260105-0007")
    insert_order("ORD-20260105-LEGACY")

    assert next_order_id(DAY) == "ORD-20260105-0008"


def test_skips_taken_ids(db_session):
    assert next_order_id(DAY) == "ORD-20260105-0001"
    db.session.commit()
    insert_order("ORD-20260105-0002")

    assert next_order_id(DAY) == "ORD-20260105-0003"


def test_rolled_back_allocation_is_reused(db_session):
    assert next_order_id(DAY) == "ORD-20260105-0001"
    db.session.rollback()
    assert next_order_id(DAY) == "ORD-20260105-0001"


def test_fallback_skips_taken_suffixes(db_session, monkeypatch):
    monkeypatch.setattr(sequence_service, "MAX_SEQUENCE_PROBES", 1)
    monkeypatch.setattr(sequence_service, "_allocate_number", lambda stamp: 1)
    monkeypatch.setattr(sequence_service, "_now_millis", lambda: 1767600000123)
    insert_order("ORD-20260105-0001")
    insert_order("ORD-20260105-00000123")

    assert next_order_id(DAY) == "ORD-20260105-00000124"


def test_fallback_exhausted_raises(db_session, monkeypatch):
    monkeypatch.setattr(sequence_service, "MAX_SEQUENCE_PROBES", 1)
    monkeypatch.setattr(sequence_service, "_allocate_number", lambda stamp: 1)
    monkeypatch.setattr(sequence_service, "_now_millis", lambda: 1767600000123)
    insert_order("ORD-20260105-0001")
    insert_order("ORD-20260105-00000123")

    with pytest.raises(ConflictError):
        next_order_id(DAY)
