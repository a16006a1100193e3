# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

# backend/eazzymart/routes/orders.py
"""
Order API Routes

WHY: Checkout and fulfilment for the storefront and the staff back office.

DESIGN:
- Checkout is open to guests; a valid bearer token binds the order to the user
- Staff (admin/cashier) accept, advance, cancel and reject orders
- Customers cancel their own Pending orders and confirm delivery
- Every state change goes through order_service, which enforces the state
  graph and keeps stock consistent
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_role, optional_auth, current_user
from ..errors import DomainError, ForbiddenError, ValidationError
from ..models.auth import STAFF_ROLES
from ..responses import ok, domain_error, server_error
from ..services import order_service
from ..time_utils import parse_iso_datetime


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _json() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


# =============================================================================
# CHECKOUT
# =============================================================================

@orders_bp.post("")
@optional_auth
def create_order_route():
    """
    Place an order (status: Pending). Stock is debited immediately.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2}, ...],
        "order_type": "Delivery" | "Pickup",
        "payment_method": "Cash On Delivery" | "GCash",
        "shipping_address": "...",       (Delivery only)
        "contact_number": "...",
        "transaction_number": "..."      (required for GCash)
    }

    Returns:
        201: Order created
        400: Invalid input / empty cart
        404: Unknown product
        409: Insufficient stock
    """
    try:
        data = _json()
        user = current_user()
        order = order_service.create_order(
            data.get("items"),
            order_type=data.get("order_type") or data.get("type"),
            payment_method=data.get("payment_method") or data.get("payment"),
            shipping_address=data.get("shipping_address") or data.get("address"),
            contact_number=data.get("contact_number") or data.get("contact"),
            transaction_number=data.get("transaction_number") or data.get("trnumber"),
            user_id=user.id if user is not None else None,
        )
        return ok("Order placed successfully", 201, order_id=order.order_id, order=order.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to create order")


# =============================================================================
# QUERIES
# =============================================================================

@orders_bp.get("")
@require_auth
@require_role(*STAFF_ROLES)
def list_orders_route():
    """All orders, newest first. Query params: status, type."""
    try:
        orders = order_service.list_orders(
            status=request.args.get("status"),
            order_type=request.args.get("type") or request.args.get("order_type"),
            limit=request.args.get("limit", type=int),
        )
        return ok("OK", orders=[o.to_dict() for o in orders], count=len(orders))
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to list orders")


@orders_bp.get("/mine")
@require_auth
def my_orders_route():
    try:
        orders = order_service.list_orders(user_id=g.current_user.id, status=request.args.get("status"))
        return ok("OK", orders=[o.to_dict() for o in orders], count=len(orders))
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to list orders")


@orders_bp.get("/<order_id>")
@require_auth
def get_order_route(order_id: str):
    try:
        order = order_service.get_order(order_id, user=g.current_user)
        return ok("OK", order=order.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to load order")


# =============================================================================
# STAFF TRANSITIONS
# =============================================================================

@orders_bp.put("/<order_id>/accept")
@require_auth
@require_role(*STAFF_ROLES)
def accept_order_route(order_id: str):
    """Pending -> In Process. The customer is emailed after commit."""
    try:
        order = order_service.accept_order(order_id)
        return ok("Order accepted", order=order.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to accept order")


@orders_bp.put("/<order_id>/cancel")
@require_auth
@require_role(*STAFF_ROLES)
def cancel_order_route(order_id: str):
    """
    Cancel or reject a Pending order and restore its stock.

    Request body:
    {
        "status": "Cancelled" | "Rejected",   (default Cancelled)
        "reason": "..."                       (optional)
    }
    """
    try:
        data = _json()
        order = order_service.cancel_order(
            order_id,
            reason=data.get("reason") or data.get("cancellation_reason"),
            status=data.get("status"),
        )
        return ok(f"Order {order.status.lower()}", order=order.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to cancel order")


@orders_bp.put("/<order_id>/status")
@require_auth
@require_role(*STAFF_ROLES)
def update_status_route(order_id: str):
    """
    Move an order along its state graph.

    Request body:
    {
        "status": "Out for Delivery",
        "estimated_delivery": "2025-01-31T10:00:00Z"   (optional, Out for Delivery only)
    }

    Returns:
        200: Updated order
        400: Not an order status
        409: Transition not allowed (details list the allowed next statuses)
    """
    try:
        data = _json()
        status = data.get("status")
        if not status:
            raise ValidationError("status is required")

        raw_estimate = data.get("estimated_delivery") or data.get("estimated_delivery_date")
        try:
            estimated = parse_iso_datetime(raw_estimate) if raw_estimate else None
        except ValueError:
            raise ValidationError("estimated_delivery must be an ISO-8601 datetime") from None

        order = order_service.advance_status(order_id, status, estimated_delivery=estimated)
        return ok("Order status updated", order=order.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to update order status")


# =============================================================================
# CUSTOMER TRANSITIONS
# =============================================================================

@orders_bp.put("/<order_id>/cancel-customer")
@require_auth
def cancel_by_customer_route(order_id: str):
    """
    Customer cancels their own Pending order.

    GCash orders also get a Pending refund request, returned as refund_request.
    """
    try:
        data = _json()
        user = g.current_user
        if user.is_staff:
            raise ForbiddenError("Staff must use the staff cancellation endpoint")

        result = order_service.cancel_order_by_customer(
            order_id,
            data.get("reason") or data.get("cancellation_reason"),
            user=user,
        )
        refund = result.refund_request
        return ok(
            "Order cancelled successfully",
            order=result.order.to_dict(),
            refund_request=refund.to_dict() if refund is not None else None,
        )
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to cancel order")


@orders_bp.put("/<order_id>/received")
@require_auth
def mark_received_route(order_id: str):
    """Customer confirms delivery: Out for Delivery -> Delivered."""
    try:
        order = order_service.mark_received(order_id, user=g.current_user)
        return ok("Order marked as received", order=order.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to mark order as received")
