# Overview: Service-layer operations for lifecycle; the order and return/refund state graphs.

"""
Order and Return/Refund lifecycles

================================================================================
ORDER STATE MACHINE (per order type, see DeliveryOrder / PickupOrder)
================================================================================

    Delivery:  Pending -> In Process -> Out for Delivery -> Delivered
    Pickup:    Pending -> In Process -> Ready for Pick up -> Completed

    Pending and In Process may also move to Cancelled.
    Rejected is reachable from Pending only, through an admin cancellation.
    Returned is forced by the return workflow, never by a direct transition.

RULES:
1. Cannot skip states (Pending -> Delivered is forbidden)
2. Cannot reverse states (terminal states have no successors)
3. Re-applying a transition that already happened is rejected, not repeated
4. apply_transition() only mutates the order in memory; the caller owns the
   transaction and any stock effect that belongs to the transition

================================================================================
RETURN/REFUND STATE MACHINE
================================================================================

    Pending -> Approved | Rejected
    Approved -> Returned   (request_type Return)
    Approved -> Refunded   (request_type Refund)

An admin override may jump to any known status (see return_service).
================================================================================
"""

from __future__ import annotations

from datetime import datetime

from ..errors import InvalidTransitionError, ValidationError
from ..models import Order, OrderStatus, ReturnRefundRequest, ReturnStatus
from ..models.orders import ALL_ORDER_STATUSES
from ..models.returns import REQUEST_TYPE_REFUND, VALID_RETURN_STATUSES
from ..time_utils import utcnow


# Statuses that an order can be moved into via advance_status(); Rejected
# and Returned have dedicated entry points.
def advanceable_statuses(order: Order) -> list[str]:
    return [
        status for status in order.TRANSITIONS
        if status not in (OrderStatus.REJECTED, OrderStatus.RETURNED)
    ]


def validate_order_status(order: Order, status: str) -> None:
    """
    Reject strings that are not order statuses at all.

    A known status that this order's type cannot reach is a transition
    error, reported by the caller with the allowed successors.
    """
    if status not in ALL_ORDER_STATUSES:
        valid = advanceable_statuses(order)
        raise ValidationError(
            f"Invalid status for {order.order_type} order. Must be one of: {', '.join(valid)}",
            details={"valid_statuses": valid},
        )


def can_transition(order: Order, to_status: str) -> bool:
    return to_status in order.allowed_next(order.status)


def assert_transition(order: Order, to_status: str, *, message: str | None = None) -> None:
    if not can_transition(order, to_status):
        raise InvalidTransitionError(
            order.status,
            to_status,
            order.allowed_next(order.status),
            message=message,
        )


def apply_transition(
    order: Order,
    to_status: str,
    *,
    now: datetime | None = None,
    estimated_delivery: datetime | None = None,
) -> Order:
    """
    Move an order along its state graph and stamp transition timestamps.

    This is the single primitive behind accept, advance, mark-received,
    cancellation and the delivery sweeper.
    """
    assert_transition(order, to_status)
    now = now or utcnow()

    if to_status == OrderStatus.OUT_FOR_DELIVERY:
        order.out_for_delivery_at = now
        if estimated_delivery is not None:
            order.estimated_delivery_at = estimated_delivery

    order.status = to_status
    order.updated_at = now
    return order


def force_status(order: Order, to_status: str, *, now: datetime | None = None) -> Order:
    """Set a status outside the graph (used only for Returned)."""
    order.status = to_status
    order.updated_at = now or utcnow()
    return order


# =============================================================================
# RETURN / REFUND
# =============================================================================

def return_allowed_next(request: ReturnRefundRequest) -> tuple[str, ...]:
    if request.status == ReturnStatus.PENDING:
        return (ReturnStatus.APPROVED, ReturnStatus.REJECTED)
    if request.status == ReturnStatus.APPROVED:
        if request.request_type == REQUEST_TYPE_REFUND:
            return (ReturnStatus.REFUNDED,)
        return (ReturnStatus.RETURNED,)
    return ()


def validate_return_status(status: str) -> None:
    if status not in VALID_RETURN_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(VALID_RETURN_STATUSES)}",
            details={"valid_statuses": list(VALID_RETURN_STATUSES)},
        )


def assert_return_transition(request: ReturnRefundRequest, to_status: str) -> None:
    allowed = return_allowed_next(request)
    if to_status not in allowed:
        raise InvalidTransitionError(request.status, to_status, allowed)
