"""
Order Service - checkout, fulfilment and cancellation

WHY: An order is the unit that reserves stock. Creation debits stock for
every line, cancellation credits it back, and every other transition only
moves the order along its state graph (see lifecycle_service).

TRANSACTION RULES:
- Each public operation is one database transaction: stock debits/credits
  and the status change commit together or not at all
- Each operation on an existing order holds that order's in-process lock
  and reads the row with lock_for_update(), so concurrent accept/cancel or
  the delivery sweeper racing mark-received cannot lose updates
- Notifications and the GCash auto-refund run after the commit and are
  best-effort; their failure is logged and never undoes the transition
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, OrderItem, OrderStatus, ORDER_CLASSES, Product, ReturnRefundRequest, User
from ..models.orders import (
    ORDER_TYPE_DELIVERY,
    ORDER_TYPE_PICKUP,
    PAYMENT_GCASH,
    PICKUP_ADDRESS_PLACEHOLDER,
    VALID_PAYMENT_METHODS,
)
from ..time_utils import utcnow
from .concurrency import RETRYABLE_ERRORS, begin_write, lock_for_update, order_locks, run_with_retry
from .inventory_service import adjust_stock
from .lifecycle_service import apply_transition, validate_order_status
from .notification_service import notify_order_accepted
from .return_service import open_refund_for_cancelled_order
from .sequence_service import next_order_id


MIN_CUSTOMER_REASON_LENGTH = 5

CREATE_LOCK_KEY = "orders:create"

_ORDER_TYPE_ALIASES = {
    "delivery": ORDER_TYPE_DELIVERY,
    "pickup": ORDER_TYPE_PICKUP,
}


@dataclass
class CancellationResult:
    order: Order
    refund_request: ReturnRefundRequest | None = None


# =============================================================================
# INPUT NORMALIZATION
# =============================================================================

def normalize_order_type(value: str | None) -> str:
    key = (value or "").strip().lower().replace(" ", "").replace("-", "")
    try:
        return _ORDER_TYPE_ALIASES[key]
    except KeyError:
        raise ValidationError(
            f"order_type must be one of: {ORDER_TYPE_DELIVERY}, {ORDER_TYPE_PICKUP}"
        ) from None


def _as_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


def parse_cart(items) -> list[tuple[int, int]]:
    """
    Turn cart lines into (product_id, quantity) pairs.

    Accepts product_id or id, quantity or qty. Client-side names and prices
    are ignored: the order snapshots them from the product rows.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("Cart is empty")

    lines: list[tuple[int, int]] = []
    for index, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Cart line {index} is invalid")
        product_id = raw.get("product_id", raw.get("id"))
        quantity = raw.get("quantity", raw.get("qty"))
        if product_id is None or quantity is None:
            raise ValidationError(f"Cart line {index} requires product_id and quantity")
        product_id = _as_int(product_id, "product_id")
        quantity = _as_int(quantity, "quantity")
        if quantity <= 0:
            raise ValidationError(f"Cart line {index}: quantity must be greater than 0")
        lines.append((product_id, quantity))
    return lines


def _ensure_owner(order: Order, user: User | None) -> None:
    if user is None or user.is_staff:
        return
    if order.user_id is None or order.user_id != user.id:
        raise ForbiddenError("Order does not belong to this account")


def _locked_order(order_id: str) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(order_id=order_id)).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def _restore_stock(order: Order) -> None:
    for item in order.items:
        adjust_stock(item.product_id, item.quantity)
        current_app.logger.info(
            "Restored %s units of product %s from order %s", item.quantity, item.product_id, order.order_id
        )


# =============================================================================
# CREATE
# =============================================================================

def create_order(
    items,
    *,
    order_type: str,
    payment_method: str,
    shipping_address: str | None = None,
    contact_number: str | None = None,
    transaction_number: str | None = None,
    user_id: int | None = None,
) -> Order:
    """
    Place an order and debit stock for every line, atomically.

    If any line fails (unknown product, inactive product, insufficient
    stock) nothing is persisted and no stock moves.
    """
    order_type = normalize_order_type(order_type)
    order_cls = ORDER_CLASSES[order_type]
    lines = parse_cart(items)

    if payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(VALID_PAYMENT_METHODS)}")

    transaction_number = (transaction_number or "").strip() or None
    if payment_method == PAYMENT_GCASH and not transaction_number:
        raise ValidationError("transaction_number is required for GCash payments")

    if order_type == ORDER_TYPE_DELIVERY:
        shipping_address = (shipping_address or "").strip()
        if not shipping_address:
            raise ValidationError("shipping_address is required for Delivery orders")
    else:
        shipping_address = PICKUP_ADDRESS_PLACEHOLDER

    contact_number = (contact_number or "").strip() or None

    def _op():
        begin_write()
        now = utcnow()
        order = order_cls(
            order_id=next_order_id(now),
            user_id=user_id,
            status=OrderStatus.PENDING,
            payment_method=payment_method,
            shipping_address=shipping_address,
            contact_number=contact_number,
            transaction_number=transaction_number,
            total_amount_cents=0,
            created_at=now,
            updated_at=now,
        )

        total = 0
        for product_id, quantity in lines:
            product = db.session.get(Product, product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            if not product.is_active:
                raise ValidationError(f"Product {product.name} is no longer available")

            adjust_stock(product_id, -quantity)

            line_total = product.price_cents * quantity
            order.items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price_cents=product.price_cents,
                line_total_cents=line_total,
            ))
            total += line_total

        order.total_amount_cents = total
        db.session.add(order)
        db.session.commit()
        return order

    with order_locks.hold(CREATE_LOCK_KEY):
        order = run_with_retry(_op, retry_on=RETRYABLE_ERRORS + (IntegrityError,))

    current_app.logger.info("Order %s placed (%s, %s lines)", order.order_id, order.order_type, len(lines))
    return order


# =============================================================================
# READ
# =============================================================================

def get_order(order_id: str, *, user: User | None = None) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    _ensure_owner(order, user)
    return order


def list_orders(
    *,
    status: str | None = None,
    order_type: str | None = None,
    user_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
) -> list[Order]:
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if order_type:
        query = query.filter(Order.order_type == normalize_order_type(order_type))
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    if start is not None:
        query = query.filter(Order.created_at >= start)
    if end is not None:
        query = query.filter(Order.created_at < end)
    query = query.order_by(Order.created_at.desc(), Order.order_id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


# =============================================================================
# TRANSITIONS
# =============================================================================

def accept_order(order_id: str) -> Order:
    """Pending -> In Process, then notify the customer (best-effort)."""

    def _op():
        begin_write()
        order = _locked_order(order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidTransitionError(
                order.status,
                OrderStatus.IN_PROCESS,
                order.allowed_next(order.status),
                message=f"Order cannot be accepted. Current status: {order.status}",
            )
        apply_transition(order, OrderStatus.IN_PROCESS)
        db.session.commit()
        return order

    with order_locks.hold(order_id):
        order = run_with_retry(_op)

    try:
        notify_order_accepted(order)
    except Exception:
        current_app.logger.warning("Could not queue acceptance email for %s", order_id, exc_info=True)

    return order


def cancel_order(
    order_id: str,
    *,
    reason: str | None = None,
    status: str | None = None,
) -> Order:
    """
    Staff cancellation or rejection of a Pending order.

    Stock for every line is restored before the status flips, inside the
    same transaction.
    """
    target = status or OrderStatus.CANCELLED
    if target not in (OrderStatus.CANCELLED, OrderStatus.REJECTED):
        raise ValidationError(f"status must be {OrderStatus.CANCELLED} or {OrderStatus.REJECTED}")

    def _op():
        begin_write()
        order = _locked_order(order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidTransitionError(
                order.status,
                target,
                (),
                message=(
                    f"Order cannot be cancelled/rejected. Current status: {order.status}. "
                    "Only pending orders can be cancelled or rejected."
                ),
            )
        _restore_stock(order)
        order.cancellation_reason = (reason or "").strip() or None
        apply_transition(order, target)
        db.session.commit()
        return order

    with order_locks.hold(order_id):
        return run_with_retry(_op)


def cancel_order_by_customer(order_id: str, reason: str, *, user: User | None = None) -> CancellationResult:
    """
    Customer cancellation of their own Pending order.

    GCash orders were paid up front, so a Pending Refund request is opened
    afterwards. That request is best-effort: if it cannot be created the
    cancellation still stands.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Cancellation reason is required")
    if len(reason) < MIN_CUSTOMER_REASON_LENGTH:
        raise ValidationError(
            f"Cancellation reason must be at least {MIN_CUSTOMER_REASON_LENGTH} characters"
        )

    def _op():
        begin_write()
        order = _locked_order(order_id)
        _ensure_owner(order, user)
        if order.status != OrderStatus.PENDING:
            raise InvalidTransitionError(
                order.status,
                OrderStatus.CANCELLED,
                (),
                message=(
                    f"Order cannot be cancelled. Current status: {order.status}. "
                    "Only pending orders can be cancelled by customers."
                ),
            )
        _restore_stock(order)
        order.cancellation_reason = reason
        apply_transition(order, OrderStatus.CANCELLED)
        db.session.commit()
        return order

    with order_locks.hold(order_id):
        order = run_with_retry(_op)

    result = CancellationResult(order=order)
    if order.payment_method == PAYMENT_GCASH:
        try:
            result.refund_request = open_refund_for_cancelled_order(order, reason)
            current_app.logger.info("Auto-created refund request for GCash order %s", order_id)
        except Exception:
            db.session.rollback()
            current_app.logger.warning("Could not create refund request for %s", order_id, exc_info=True)
    return result


def advance_status(
    order_id: str,
    new_status: str,
    *,
    estimated_delivery: datetime | None = None,
) -> Order:
    """
    Staff-driven move along the order's state graph.

    Re-sending Out for Delivery with a new estimate while already Out for
    Delivery only updates the estimate (out_for_delivery_at is kept).
    Moving to Cancelled restores stock like any other cancellation.
    """

    def _op():
        begin_write()
        order = _locked_order(order_id)
        validate_order_status(order, new_status)

        if estimated_delivery is not None and new_status != OrderStatus.OUT_FOR_DELIVERY:
            raise ValidationError("estimated_delivery only applies when moving to Out for Delivery")

        if (
            new_status == OrderStatus.OUT_FOR_DELIVERY
            and order.status == OrderStatus.OUT_FOR_DELIVERY
            and estimated_delivery is not None
        ):
            order.estimated_delivery_at = estimated_delivery
            order.touch()
            db.session.commit()
            return order

        allowed = [s for s in order.allowed_next(order.status) if s != OrderStatus.REJECTED]
        if new_status not in allowed:
            raise InvalidTransitionError(order.status, new_status, allowed)

        if new_status == OrderStatus.CANCELLED:
            _restore_stock(order)

        apply_transition(order, new_status, estimated_delivery=estimated_delivery)
        db.session.commit()
        return order

    with order_locks.hold(order_id):
        return run_with_retry(_op)


def mark_received(order_id: str, *, user: User | None = None) -> Order:
    """Customer confirms delivery: Out for Delivery -> Delivered."""

    def _op():
        begin_write()
        order = _locked_order(order_id)
        _ensure_owner(order, user)
        if order.status != OrderStatus.OUT_FOR_DELIVERY:
            raise InvalidTransitionError(
                order.status,
                OrderStatus.DELIVERED,
                order.allowed_next(order.status),
                message=f"Order cannot be marked as received. Current status: {order.status}",
            )
        apply_transition(order, OrderStatus.DELIVERED)
        db.session.commit()
        return order

    with order_locks.hold(order_id):
        return run_with_retry(_op)
