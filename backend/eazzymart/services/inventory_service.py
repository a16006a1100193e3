# Overview: Service-layer operations for inventory; the stock ledger and restocking audit trail.

"""
Inventory invariants (authoritative)

- Product.stock is a running total and is never negative at rest.
- Every change goes through adjust_stock(): a single conditional UPDATE
  (stock = stock + delta WHERE stock + delta >= 0), so the check and the
  write are one atomic statement. A debit that would overdraw raises
  InsufficientStockError and leaves the row untouched.
- adjust_stock() never commits. The caller owns the transaction so that a
  debit/credit and the order transition it belongs to commit or roll back
  together.
- Restocking appends a StockEntry row in the same transaction as the credit.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy import select, update

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockEntry
from ..time_utils import utcnow
from .concurrency import begin_write, run_with_retry


def adjust_stock(product_id: int, delta: int) -> int:
    """
    Apply stock := stock + delta and return the new stock.

    Raises:
        ValidationError: delta is zero or not an integer
        NotFoundError: unknown product
        InsufficientStockError: stock + delta would be negative
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("Stock delta must be a non-zero integer")

    stmt = update(Product).where(Product.id == product_id)
    if delta < 0:
        stmt = stmt.where(Product.stock + delta >= 0)
    stmt = (
        stmt.values(stock=Product.stock + delta, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    product = db.session.get(Product, product_id, populate_existing=True)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")

    if result.rowcount == 0:
        raise InsufficientStockError(product_id, requested=-delta, available=product.stock)

    return product.stock


def get_stock(product_id: int) -> int:
    stock = db.session.execute(
        select(Product.stock).where(Product.id == product_id)
    ).scalar_one_or_none()
    if stock is None:
        raise NotFoundError(f"Product {product_id} not found")
    return stock


def add_stock_entry(
    product_id: int,
    quantity: int,
    *,
    user_id: int | None = None,
    note: str | None = None,
) -> StockEntry:
    """Restock a product: credit stock and append the audit row atomically."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    def _op():
        begin_write()
        adjust_stock(product_id, quantity)
        entry = StockEntry(
            product_id=product_id,
            quantity_added=quantity,
            note=(note or "").strip() or None,
            created_by_user_id=user_id,
            created_at=utcnow(),
        )
        db.session.add(entry)
        db.session.commit()
        return entry

    return run_with_retry(_op)


def stock_report(day: date | None = None) -> dict:
    """Stock entries recorded on the given UTC day (today by default)."""
    if day is None:
        day = utcnow().date()
    start = datetime.combine(day, time.min)
    end = start + timedelta(days=1)

    entries = (
        db.session.query(StockEntry)
        .filter(StockEntry.created_at >= start, StockEntry.created_at < end)
        .order_by(StockEntry.created_at.asc(), StockEntry.id.asc())
        .all()
    )

    return {
        "date": day.isoformat(),
        "entries": [e.to_dict() for e in entries],
        "total_quantity_added": sum(e.quantity_added for e in entries),
    }


def list_low_stock(threshold: int = 5) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock <= threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )
