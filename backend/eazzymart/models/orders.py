from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .catalog import cents_to_amount


class OrderStatus:
    """Status strings are part of the API surface; the storefront matches on them verbatim."""
    PENDING = "Pending"
    IN_PROCESS = "In Process"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    READY_FOR_PICKUP = "Ready for Pick up"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"
    # Only reachable through the return workflow
    RETURNED = "Returned"


ALL_ORDER_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.IN_PROCESS,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
    OrderStatus.REJECTED,
    OrderStatus.RETURNED,
)


ORDER_TYPE_DELIVERY = "Delivery"
ORDER_TYPE_PICKUP = "Pickup"

PAYMENT_COD = "Cash On Delivery"
PAYMENT_GCASH = "GCash"
VALID_PAYMENT_METHODS = (PAYMENT_COD, PAYMENT_GCASH)

PICKUP_ADDRESS_PLACEHOLDER = "Store Pickup"

_TERMINAL = {
    OrderStatus.CANCELLED: (),
    OrderStatus.REJECTED: (),
    OrderStatus.RETURNED: (),
}


class Order(db.Model):
    """
    Order header. Never deleted: cancellation is a status.

    Single-table polymorphism on order_type selects the state graph
    (DeliveryOrder / PickupOrder). Each subclass carries its own
    TRANSITIONS table and per-variant field requirements.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
    )

    TRANSITIONS: dict[str, tuple[str, ...]] = {}
    COMPLETED_STATUS: str = ""

    # ORD-YYYYMMDD-NNNN (or ORD-YYYYMMDD-<8 digit epoch suffix> fallback)
    order_id = db.Column(db.String(32), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    order_type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(32), nullable=False, default=OrderStatus.PENDING, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    shipping_address = db.Column(db.String(512), nullable=False)
    contact_number = db.Column(db.String(32), nullable=True)
    transaction_number = db.Column(db.String(64), nullable=True)
    cancellation_reason = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    out_for_delivery_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    estimated_delivery_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        lazy=True,
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {
        "polymorphic_on": order_type,
        "version_id_col": version_id,
    }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.order_id} status={self.status!r}>"

    @classmethod
    def allowed_next(cls, status: str) -> tuple[str, ...]:
        return cls.TRANSITIONS.get(status, ())

    @property
    def is_terminal(self) -> bool:
        return not self.allowed_next(self.status)

    @property
    def total_amount(self) -> float | None:
        return cents_to_amount(self.total_amount_cents)

    def touch(self) -> None:
        self.updated_at = utcnow()

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "order_id": self.order_id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "order_type": self.order_type,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "total_amount": self.total_amount,
            "payment_method": self.payment_method,
            "shipping_address": self.shipping_address,
            "contact_number": self.contact_number,
            "transaction_number": self.transaction_number,
            "cancellation_reason": self.cancellation_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "out_for_delivery_at": to_utc_z(self.out_for_delivery_at),
            "estimated_delivery_at": to_utc_z(self.estimated_delivery_at),
            "allowed_next_statuses": list(self.allowed_next(self.status)),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class DeliveryOrder(Order):
    TRANSITIONS = {
        OrderStatus.PENDING: (OrderStatus.IN_PROCESS, OrderStatus.CANCELLED, OrderStatus.REJECTED),
        OrderStatus.IN_PROCESS: (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED),
        OrderStatus.OUT_FOR_DELIVERY: (OrderStatus.DELIVERED,),
        OrderStatus.DELIVERED: (),
        **_TERMINAL,
    }
    COMPLETED_STATUS = OrderStatus.DELIVERED

    __mapper_args__ = {"polymorphic_identity": ORDER_TYPE_DELIVERY}


class PickupOrder(Order):
    TRANSITIONS = {
        OrderStatus.PENDING: (OrderStatus.IN_PROCESS, OrderStatus.CANCELLED, OrderStatus.REJECTED),
        OrderStatus.IN_PROCESS: (OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELLED),
        OrderStatus.READY_FOR_PICKUP: (OrderStatus.COMPLETED,),
        OrderStatus.COMPLETED: (),
        **_TERMINAL,
    }
    COMPLETED_STATUS = OrderStatus.COMPLETED

    __mapper_args__ = {"polymorphic_identity": ORDER_TYPE_PICKUP}


ORDER_CLASSES: dict[str, type[Order]] = {
    ORDER_TYPE_DELIVERY: DeliveryOrder,
    ORDER_TYPE_PICKUP: PickupOrder,
}


class OrderItem(db.Model):
    """
    Order line with a snapshot of the product at purchase time.

    Later product edits (rename, price change) never alter historical lines.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.order_id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_price": cents_to_amount(self.unit_price_cents),
            "line_total_cents": self.line_total_cents,
            "line_total": cents_to_amount(self.line_total_cents),
        }


class OrderSequence(db.Model):
    """
    Atomic per-day order number allocation.

    One row per UTC date (YYYYMMDD); next_number is bumped with a single
    UPDATE so concurrent checkouts never read the same value.
    """
    __tablename__ = "order_sequences"

    sequence_date = db.Column(db.String(8), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
