from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class ReturnStatus:
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    RETURNED = "Returned"
    REFUNDED = "Refunded"


REQUEST_TYPE_RETURN = "Return"
REQUEST_TYPE_REFUND = "Refund"
VALID_REQUEST_TYPES = (REQUEST_TYPE_RETURN, REQUEST_TYPE_REFUND)

VALID_RETURN_STATUSES = (
    ReturnStatus.PENDING,
    ReturnStatus.APPROVED,
    ReturnStatus.RETURNED,
    ReturnStatus.REFUNDED,
    ReturnStatus.REJECTED,
)


class ReturnRefundRequest(db.Model):
    """
    Return or refund request attached to a completed order.

    PENDING -> APPROVED | REJECTED
    APPROVED -> RETURNED (request_type Return) | REFUNDED (request_type Refund)
    """
    __tablename__ = "return_refund_requests"
    __table_args__ = (
        db.Index("ix_return_refund_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.order_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    request_type = db.Column(db.String(16), nullable=False, default=REQUEST_TYPE_RETURN)
    status = db.Column(db.String(16), nullable=False, default=ReturnStatus.PENDING, index=True)
    reason = db.Column(db.Text, nullable=False)
    image_path = db.Column(db.String(512), nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", backref=db.backref("return_requests", lazy=True))
    user = db.relationship("User")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        order = self.order
        return {
            "id": self.id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "customer_name": self.user.display_name if self.user else None,
            "request_type": self.request_type,
            "status": self.status,
            "reason": self.reason,
            "image_path": self.image_path,
            "admin_notes": self.admin_notes,
            "order_status": order.status if order else None,
            "payment_method": order.payment_method if order else None,
            "total_amount": order.total_amount if order else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
