# Overview: Domain error hierarchy shared by services and routes.

"""
Every recoverable business failure raised by a service derives from
DomainError. Routes translate it into the JSON envelope

    {"success": false, "message": "...", **details}

using the class-level status_code. Anything that is not a DomainError is an
unexpected failure: routes log it and answer a generic 500.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for request-recoverable failures."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DomainError, ValueError):
    """400-level input problem."""
    status_code = 400


class AuthError(DomainError):
    """Missing or invalid credentials."""
    status_code = 401


class ForbiddenError(DomainError):
    status_code = 403


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError, ValueError):
    """409-level business rule conflict (e.g., duplicate username)."""
    status_code = 409


class InvalidTransitionError(ConflictError):
    """
    Raised when a status change violates the state graph.

    details carries current_status, target_status and allowed_statuses so
    the caller can render the legal next steps.
    """

    def __init__(self, current_status: str, target_status: str, allowed: list[str] | tuple[str, ...], *, message: str | None = None):
        allowed = list(allowed)
        if message is None:
            nxt = ", ".join(allowed) if allowed else "none (final state)"
            message = (
                f'Cannot change status from "{current_status}" to "{target_status}". '
                f"Valid next statuses: {nxt}"
            )
        super().__init__(message, details={
            "current_status": current_status,
            "target_status": target_status,
            "allowed_statuses": allowed,
        })
        self.current_status = current_status
        self.target_status = target_status
        self.allowed_statuses = allowed


class InsufficientStockError(ConflictError):
    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: requested {requested}, available {available}",
            details={"product_id": product_id, "requested": requested, "available": available},
        )


class OrderNotEligibleError(ConflictError):
    """Return/refund submitted against an order that is not completed."""
