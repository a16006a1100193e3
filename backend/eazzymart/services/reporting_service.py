# Overview: Service-layer operations for reporting; sales summaries and the legacy flat sales view.

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderStatus
from ..models.catalog import cents_to_amount
from ..time_utils import to_utc_z


# Orders whose money was never kept
REVENUE_EXCLUDED_STATUSES = (OrderStatus.CANCELLED, OrderStatus.REJECTED, OrderStatus.RETURNED)


def _range_bounds(start: date | None, end: date | None) -> tuple[datetime | None, datetime | None]:
    start_dt = datetime.combine(start, time.min) if start else None
    # end is inclusive of the whole day
    end_dt = datetime.combine(end, time.min) + timedelta(days=1) if end else None
    return start_dt, end_dt


def _apply_range(query, start_dt, end_dt):
    if start_dt is not None:
        query = query.filter(Order.created_at >= start_dt)
    if end_dt is not None:
        query = query.filter(Order.created_at < end_dt)
    return query


def sales_summary(*, start: date | None = None, end: date | None = None) -> dict:
    """Order counts by status plus revenue (excluding cancelled/rejected/returned orders)."""
    start_dt, end_dt = _range_bounds(start, end)

    status_rows = _apply_range(
        db.session.query(Order.status, func.count(Order.order_id)),
        start_dt, end_dt,
    ).group_by(Order.status).all()

    payment_rows = _apply_range(
        db.session.query(
            Order.payment_method,
            func.count(Order.order_id),
            func.coalesce(func.sum(Order.total_amount_cents), 0),
        ).filter(Order.status.notin_(REVENUE_EXCLUDED_STATUSES)),
        start_dt, end_dt,
    ).group_by(Order.payment_method).all()

    revenue_cents = sum(int(row[2] or 0) for row in payment_rows)

    return {
        "start": start.isoformat() if start else None,
        "end": end.isoformat() if end else None,
        "total_orders": sum(int(count) for _, count in status_rows),
        "by_status": {status: int(count) for status, count in status_rows},
        "revenue_cents": revenue_cents,
        "revenue": cents_to_amount(revenue_cents),
        "by_payment_method": [
            {
                "payment_method": method,
                "orders": int(count),
                "revenue_cents": int(total or 0),
                "revenue": cents_to_amount(int(total or 0)),
            }
            for method, count, total in payment_rows
        ],
    }


def legacy_sale_row(order: Order) -> dict:
    """Flat shape consumed by the pre-normalization admin screens."""
    user = order.user
    return {
        "id": order.order_id,
        "order_id": order.order_id,
        "customer": user.display_name if user else "Guest",
        "address": order.shipping_address,
        "payment": order.payment_method,
        "status": order.status,
        "total": order.total_amount,
        "type": order.order_type,
        "trnumber": order.transaction_number,
        "items": [
            {
                "id": item.product_id,
                "name": item.product_name,
                "price": cents_to_amount(item.unit_price_cents),
                "qty": item.quantity,
                "total": cents_to_amount(item.line_total_cents),
            }
            for item in order.items
        ],
        "contact": order.contact_number,
        "createdbyuser": user.username if user else None,
        "reason": order.cancellation_reason,
        "created_at": to_utc_z(order.created_at),
    }


def legacy_sales_view(*, status: str | None = None) -> list[dict]:
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    orders = query.order_by(Order.created_at.desc(), Order.order_id.desc()).all()
    return [legacy_sale_row(o) for o in orders]
