# Overview: Flask API routes for return/refund operations; parses input and returns JSON responses.

# backend/eazzymart/routes/returns.py
"""
Return / Refund API Routes

DESIGN:
- Customers submit a request for their own Completed/Delivered order,
  optionally with an evidence image (multipart field "image")
- Staff see every request; customers see only theirs
- Admins move requests along Pending -> Approved|Rejected -> Returned|Refunded;
  "override": true allows any status
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_role
from ..errors import DomainError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..responses import ok, domain_error, server_error
from ..services import return_service


returns_bp = Blueprint("returns", __name__, url_prefix="/api/return-refunds")


@returns_bp.post("")
@require_auth
def submit_request_route():
    """
    Create a Pending return/refund request.

    Request body (JSON or multipart form):
    {
        "order_id": "ORD-20250101-0001",
        "reason": "Damaged packaging",
        "request_type": "Return" | "Refund"   (default Return)
    }

    Returns:
        201: Request created
        400: Missing order id / reason
        404: Unknown order
        409: Order is not Completed/Delivered
    """
    try:
        if request.files or request.form:
            data = request.form
            image = request.files.get("image")
        else:
            data = request.get_json(silent=True) or {}
            image = None

        req = return_service.submit_request(
            data.get("order_id"),
            data.get("reason"),
            data.get("request_type") or "Return",
            user=g.current_user,
            image=image,
        )
        return ok("Return/Refund request submitted successfully", 201, request=req.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to submit return/refund request")


@returns_bp.get("")
@require_auth
def list_requests_route():
    try:
        user = g.current_user
        requests = return_service.list_requests(
            user_id=None if user.is_staff else user.id,
            status=request.args.get("status"),
        )
        return ok("OK", requests=[r.to_dict() for r in requests], count=len(requests))
    except Exception:
        return server_error("Failed to list return/refund requests")


@returns_bp.put("/<int:request_id>/status")
@require_auth
@require_role(ROLE_ADMIN)
def set_status_route(request_id: int):
    """
    Request body:
    {
        "status": "Approved",
        "admin_notes": "...",      (optional)
        "override": false          (optional, skip the status graph)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            raise ValidationError("status is required")
        override = data.get("override", False)
        if not isinstance(override, bool):
            raise ValidationError("override must be true or false")

        req = return_service.set_status(
            request_id,
            status,
            admin_notes=data.get("admin_notes"),
            override=override,
        )
        return ok("Return/Refund status updated", request=req.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to update return/refund status")
