"""
Return / Refund Workflow

WHY: Customers may ask to return goods or get their money back once an
order has been delivered (or picked up). Cancelled GCash orders also need a
manual refund, so customer cancellation opens a Refund request here.

DESIGN PRINCIPLES:
- A request always references its order; only Completed/Delivered orders
  are eligible for customer submissions
- Requests start Pending; admins approve/reject, then mark Returned or
  Refunded depending on request_type
- The natural graph is enforced unless the admin passes override=True,
  which allows any of the five statuses (the historical behaviour)
- Marking a request Returned forces the parent order to Returned
- Evidence images are stored under UPLOAD_FOLDER and referenced by path
"""

from __future__ import annotations

import os

from flask import current_app
from werkzeug.utils import secure_filename

from ..errors import ForbiddenError, NotFoundError, OrderNotEligibleError, ValidationError
from ..extensions import db
from ..models import Order, OrderStatus, ReturnRefundRequest, ReturnStatus, User
from ..models.returns import REQUEST_TYPE_REFUND, REQUEST_TYPE_RETURN, VALID_REQUEST_TYPES
from ..time_utils import utcnow
from .concurrency import begin_write, lock_for_update, order_locks, run_with_retry
from .lifecycle_service import assert_return_transition, force_status, validate_return_status


ELIGIBLE_ORDER_STATUSES = (OrderStatus.COMPLETED, OrderStatus.DELIVERED)
ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}


def _get_request(request_id: int, *, for_update: bool = False) -> ReturnRefundRequest:
    query = db.session.query(ReturnRefundRequest).filter_by(id=request_id)
    if for_update:
        query = lock_for_update(query)
    request = query.first()
    if request is None:
        raise NotFoundError("Return/Refund request not found")
    return request


def save_evidence_image(file_storage, order_id: str) -> str | None:
    """
    Persist an uploaded image and return its path relative to UPLOAD_FOLDER's parent.

    The path is opaque to the rest of the workflow.
    """
    if file_storage is None or not file_storage.filename:
        return None

    ext = os.path.splitext(secure_filename(file_storage.filename))[1].lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValidationError(
            f"Unsupported image type. Allowed: {', '.join(sorted(ALLOWED_IMAGE_EXTENSIONS))}"
        )

    upload_root = current_app.config["UPLOAD_FOLDER"]
    target_dir = os.path.join(upload_root, "return-refund")
    os.makedirs(target_dir, exist_ok=True)

    stamp = int(utcnow().timestamp() * 1000)
    filename = secure_filename(f"return-{order_id}-{stamp}{ext}")
    file_storage.save(os.path.join(target_dir, filename))
    return os.path.join(os.path.basename(os.path.normpath(upload_root)), "return-refund", filename)


def submit_request(
    order_id: str,
    reason: str,
    request_type: str = REQUEST_TYPE_RETURN,
    *,
    user: User | None = None,
    image=None,
) -> ReturnRefundRequest:
    """
    Create a Pending return/refund request for a completed order.

    Raises:
        ValidationError: missing reason or unknown request_type
        ForbiddenError: customer submitting for a guest order or somebody else's
        ForbiddenError: customer submitting for somebody else's order
        OrderNotEligibleError: order is not Completed/Delivered
    """
    reason = (reason or "").strip()
    if not order_id or not reason:
        raise ValidationError("Order ID and reason are required")

    request_type = request_type or REQUEST_TYPE_RETURN
    if request_type not in VALID_REQUEST_TYPES:
        raise ValidationError(f"request_type must be one of: {', '.join(VALID_REQUEST_TYPES)}")

    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")

    if user is not None and not user.is_staff and (order.user_id is None or order.user_id != user.id):
        raise ForbiddenError("You can only request returns for your own orders")

    if order.status not in ELIGIBLE_ORDER_STATUSES:
        raise OrderNotEligibleError(
            f"Return/Refund can only be requested for completed orders. Current status: {order.status}",
            details={"order_status": order.status},
        )

    image_path = save_evidence_image(image, order.order_id)

    now = utcnow()
    request = ReturnRefundRequest(
        order_id=order.order_id,
        user_id=order.user_id,
        reason=reason,
        image_path=image_path,
        request_type=request_type,
        status=ReturnStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
    db.session.add(request)
    db.session.commit()
    return request


def open_refund_for_cancelled_order(order: Order, reason: str) -> ReturnRefundRequest:
    """
    Open a Pending Refund request for a cancelled prepaid order.

    Bypasses the Completed/Delivered eligibility rule on purpose: the money
    was collected up front and the goods never shipped.
    """
    now = utcnow()
    request = ReturnRefundRequest(
        order_id=order.order_id,
        user_id=order.user_id,
        reason=f"Order cancelled - {reason.strip()}",
        request_type=REQUEST_TYPE_REFUND,
        status=ReturnStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
    db.session.add(request)
    db.session.commit()
    return request


def set_status(
    request_id: int,
    status: str,
    *,
    admin_notes: str | None = None,
    override: bool = False,
) -> ReturnRefundRequest:
    """
    Move a request to a new status.

    Without override the natural graph applies. When the new status is
    Returned the parent order is forced to Returned in the same transaction.
    """
    validate_return_status(status)

    def _op():
        begin_write()
        request = _get_request(request_id, for_update=True)
        if not override:
            assert_return_transition(request, status)

        now = utcnow()
        request.status = status
        if admin_notes is not None:
            request.admin_notes = admin_notes.strip() or None
        request.updated_at = now

        if status == ReturnStatus.RETURNED:
            order = lock_for_update(db.session.query(Order).filter_by(order_id=request.order_id)).first()
            if order is not None:
                force_status(order, OrderStatus.RETURNED, now=now)

        db.session.commit()
        return request

    request = _get_request(request_id)
    with order_locks.hold(request.order_id):
        return run_with_retry(_op)


def get_request(request_id: int) -> ReturnRefundRequest:
    return _get_request(request_id)


def list_requests(*, user_id: int | None = None, status: str | None = None) -> list[ReturnRefundRequest]:
    """All requests (staff) or those tied to one customer, newest first."""
    query = db.session.query(ReturnRefundRequest)
    if user_id is not None:
        query = query.outerjoin(Order, Order.order_id == ReturnRefundRequest.order_id).filter(
            db.or_(ReturnRefundRequest.user_id == user_id, Order.user_id == user_id)
        )
    if status:
        query = query.filter(ReturnRefundRequest.status == status)
    return query.order_by(ReturnRefundRequest.created_at.desc(), ReturnRefundRequest.id.desc()).all()
