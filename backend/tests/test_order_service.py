"""
Order lifecycle tests.

Verifies:
- Checkout snapshots prices, debits stock and is all-or-nothing
- Each order type follows its own state graph
- Every cancellation path restores exactly the ordered quantities
- Customer cancellation of GCash orders opens a refund request
"""

import re
from datetime import datetime

import pytest

from eazzymart.errors import (
    ForbiddenError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from eazzymart.extensions import db
from eazzymart.models import DeliveryOrder, Order, OrderItem, OrderStatus, PickupOrder, Product, ReturnRefundRequest
from eazzymart.services import order_service
from eazzymart.services.order_service import normalize_order_type, parse_cart

from conftest import stock_of, wait_for


def place(products, lines=None, **kwargs):
    params = {
        "order_type": "Delivery",
        "payment_method": "Cash On Delivery",
        "shipping_address": "12 Mabini St, Quezon City",
        "contact_number": "09171234567",
    }
    params.update(kwargs)
    if lines is None:
        lines = [{"product_id": products["rice"], "quantity": 2}]
    return order_service.create_order(lines, **params)


def walk(order_id, *statuses):
    for status in statuses:
        order_service.advance_status(order_id, status)


# =============================================================================
# INPUT PARSING
# =============================================================================


class TestInputParsing:

    @pytest.mark.parametrize("raw,expected", [
        ("Delivery", "Delivery"),
        ("delivery", "Delivery"),
        ("Pickup", "Pickup"),
        ("Pick up", "Pickup"),
        ("pick-up", "Pickup"),
    ])
    def test_order_type_aliases(self, raw, expected):
        assert normalize_order_type(raw) == expected

    def test_unknown_order_type(self):
        with pytest.raises(ValidationError):
            normalize_order_type("Drone")

    def test_cart_accepts_legacy_keys(self):
        assert parse_cart([{"id": 3, "qty": "2"}, {"product_id": 4, "quantity": 1}]) == [(3, 2), (4, 1)]

    @pytest.mark.parametrize("items", [None, [], "rice", [{"product_id": 1}], [{"product_id": 1, "quantity": 0}],
                                       [{"product_id": 1, "quantity": 1.5}], [{"product_id": 1, "quantity": True}]])
    def test_invalid_carts(self, items):
        with pytest.raises(ValidationError):
            parse_cart(items)


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCreateOrder:

    def test_delivery_cod_checkout(self, products, customer):
        order = place(products, user_id=customer.id)

        assert re.fullmatch(r"ORD-\d{8}-0001", order.order_id)
        assert isinstance(order, DeliveryOrder)
        assert order.status == OrderStatus.PENDING
        assert order.total_amount_cents == 10000
        assert order.total_amount == 100.0
        assert len(order.items) == 1
        assert order.items[0].quantity == 2
        assert order.items[0].unit_price_cents == 5000
        assert order.items[0].product_name == "Jasmine Rice 5kg"
        assert stock_of(products["rice"]) == 8

    def test_milk_scenario_total(self, db_session):
        milk = Product(name="Milk", price_cents=8000, stock=10)
        db_session.add(milk)
        db_session.commit()

        order = order_service.create_order(
            [{"product_id": milk.id, "quantity": 2, "price": 1}],
            order_type="Delivery",
            payment_method="Cash On Delivery",
            shipping_address="Somewhere",
        )
        assert order.total_amount == 160.0
        assert order.status == OrderStatus.PENDING
        assert stock_of(milk.id) == 8

    def test_sequential_ids_for_the_day(self, products):
        first = place(products)
        second = place(products)
        assert first.order_id[:-4] == second.order_id[:-4]
        assert int(second.order_id[-4:]) == int(first.order_id[-4:]) + 1

    def test_pickup_uses_placeholder_address(self, products):
        order = place(products, order_type="Pickup", shipping_address=None)
        assert isinstance(order, PickupOrder)
        assert order.shipping_address == "Store Pickup"

    def test_delivery_requires_address(self, products):
        with pytest.raises(ValidationError):
            place(products, shipping_address="  ")

    def test_gcash_requires_transaction_number(self, products):
        with pytest.raises(ValidationError):
            place(products, payment_method="GCash")
        order = place(products, payment_method="GCash", transaction_number="GC-123")
        assert order.transaction_number == "GC-123"

    def test_unknown_payment_method(self, products):
        with pytest.raises(ValidationError):
            place(products, payment_method="Bitcoin")

    def test_all_or_nothing_on_insufficient_stock(self, products):
        lines = [
            {"product_id": products["rice"], "quantity": 3},
            {"product_id": products["milk"], "quantity": 6},
        ]
        with pytest.raises(InsufficientStockError):
            place(products, lines)

        assert stock_of(products["rice"]) == 10
        assert stock_of(products["milk"]) == 5
        assert db.session.query(Order).count() == 0
        assert db.session.query(OrderItem).count() == 0

    def test_unknown_product_rolls_back(self, products):
        lines = [{"product_id": products["rice"], "quantity": 1}, {"product_id": 9999, "quantity": 1}]
        with pytest.raises(NotFoundError):
            place(products, lines)
        assert stock_of(products["rice"]) == 10
        assert db.session.query(Order).count() == 0

    def test_inactive_product_rejected(self, products):
        db.session.get(Product, products["milk"]).is_active = False
        db.session.commit()
        with pytest.raises(ValidationError):
            place(products, [{"product_id": products["milk"], "quantity": 1}])

    def test_guest_order(self, products):
        order = place(products)
        assert order.user_id is None


# =============================================================================
# STATE GRAPH
# =============================================================================


class TestTransitions:

    def test_delivery_happy_path(self, products):
        order = place(products)
        order_service.accept_order(order.order_id)
        eta = datetime(2030, 1, 1, 10, 0)
        order = order_service.advance_status(order.order_id, OrderStatus.OUT_FOR_DELIVERY, estimated_delivery=eta)
        assert order.out_for_delivery_at is not None
        assert order.estimated_delivery_at == eta
        order = order_service.advance_status(order.order_id, OrderStatus.DELIVERED)
        assert order.status == OrderStatus.DELIVERED
        assert order.is_terminal

    def test_pickup_happy_path(self, products):
        order = place(products, order_type="Pickup")
        walk(order.order_id, OrderStatus.IN_PROCESS, OrderStatus.READY_FOR_PICKUP, OrderStatus.COMPLETED)
        assert order_service.get_order(order.order_id).status == OrderStatus.COMPLETED

    def test_cannot_skip_states(self, products):
        order = place(products)
        with pytest.raises(InvalidTransitionError) as exc:
            order_service.advance_status(order.order_id, OrderStatus.DELIVERED)
        assert exc.value.details["current_status"] == OrderStatus.PENDING
        assert exc.value.details["allowed_statuses"] == [OrderStatus.IN_PROCESS, OrderStatus.CANCELLED]
        assert order_service.get_order(order.order_id).status == OrderStatus.PENDING

    def test_status_from_other_order_type_is_a_transition_error(self, products):
        order = place(products, order_type="Pickup")
        order_service.accept_order(order.order_id)
        with pytest.raises(InvalidTransitionError) as exc:
            order_service.advance_status(order.order_id, OrderStatus.OUT_FOR_DELIVERY)
        assert exc.value.details["current_status"] == OrderStatus.IN_PROCESS
        assert exc.value.details["allowed_statuses"] == [OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELLED]

    def test_unknown_status_is_a_validation_error(self, products):
        order = place(products)
        with pytest.raises(ValidationError):
            order_service.advance_status(order.order_id, "Lost")

    def test_terminal_states_have_no_successors(self, products):
        order = place(products)
        walk(order.order_id, OrderStatus.IN_PROCESS, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED)
        with pytest.raises(InvalidTransitionError):
            order_service.advance_status(order.order_id, OrderStatus.CANCELLED)

    def test_accept_twice_is_rejected(self, products):
        order = place(products)
        order_service.accept_order(order.order_id)
        with pytest.raises(InvalidTransitionError) as exc:
            order_service.accept_order(order.order_id)
        assert exc.value.message == "Order cannot be accepted. Current status: In Process"

    def test_update_estimate_while_out_for_delivery(self, products):
        order = place(products)
        walk(order.order_id, OrderStatus.IN_PROCESS, OrderStatus.OUT_FOR_DELIVERY)
        first = order_service.get_order(order.order_id)
        left_at = first.out_for_delivery_at

        eta = datetime(2030, 2, 2, 8, 30)
        updated = order_service.advance_status(order.order_id, OrderStatus.OUT_FOR_DELIVERY, estimated_delivery=eta)
        assert updated.status == OrderStatus.OUT_FOR_DELIVERY
        assert updated.estimated_delivery_at == eta
        assert updated.out_for_delivery_at == left_at

    def test_estimate_only_for_out_for_delivery(self, products):
        order = place(products)
        with pytest.raises(ValidationError):
            order_service.advance_status(order.order_id, OrderStatus.IN_PROCESS, estimated_delivery=datetime(2030, 1, 1))

    def test_accept_emails_customer(self, products, customer, outbox):
        order = place(products, user_id=customer.id)
        order_service.accept_order(order.order_id)
        assert wait_for(lambda: outbox.sent)
        assert any(m["to"] == "customer1@example.com" for m in outbox.sent)

    def test_accept_survives_mail_failure(self, products, customer, outbox):
        outbox.fail = True
        order = place(products, user_id=customer.id)
        accepted = order_service.accept_order(order.order_id)
        assert accepted.status == OrderStatus.IN_PROCESS


# =============================================================================
# CANCELLATION
# =============================================================================


class TestCancellation:

    def test_admin_cancel_restores_stock(self, products):
        lines = [
            {"product_id": products["rice"], "quantity": 4},
            {"product_id": products["milk"], "quantity": 2},
        ]
        order = place(products, lines)
        assert stock_of(products["rice"]) == 6
        assert stock_of(products["milk"]) == 3

        cancelled = order_service.cancel_order(order.order_id, reason="out of stock")
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancellation_reason == "out of stock"
        assert stock_of(products["rice"]) == 10
        assert stock_of(products["milk"]) == 5

        with pytest.raises(InvalidTransitionError):
            order_service.cancel_order(order.order_id, reason="again")
        assert stock_of(products["rice"]) == 10

    def test_reject_pending_order(self, products):
        order = place(products)
        rejected = order_service.cancel_order(order.order_id, status=OrderStatus.REJECTED)
        assert rejected.status == OrderStatus.REJECTED
        assert stock_of(products["rice"]) == 10

    def test_reject_only_from_pending(self, products):
        order = place(products)
        order_service.accept_order(order.order_id)
        with pytest.raises(InvalidTransitionError):
            order_service.cancel_order(order.order_id, status=OrderStatus.REJECTED)
        assert stock_of(products["rice"]) == 8

    def test_cancel_status_must_be_cancel_or_reject(self, products):
        order = place(products)
        with pytest.raises(ValidationError):
            order_service.cancel_order(order.order_id, status=OrderStatus.DELIVERED)

    def test_cancel_in_process_via_status_restores_stock(self, products):
        order = place(products)
        walk(order.order_id, OrderStatus.IN_PROCESS, OrderStatus.CANCELLED)
        assert order_service.get_order(order.order_id).status == OrderStatus.CANCELLED
        assert stock_of(products["rice"]) == 10

    def test_rejected_not_reachable_through_advance(self, products):
        order = place(products)
        for status in (OrderStatus.REJECTED, OrderStatus.RETURNED):
            with pytest.raises(InvalidTransitionError):
                order_service.advance_status(order.order_id, status)
        assert order_service.get_order(order.order_id).status == OrderStatus.PENDING

    def test_customer_cancel(self, products, customer):
        order = place(products, user_id=customer.id)
        result = order_service.cancel_order_by_customer(order.order_id, "Changed my mind", user=customer)
        assert result.order.status == OrderStatus.CANCELLED
        assert result.order.cancellation_reason == "Changed my mind"
        assert result.refund_request is None
        assert stock_of(products["rice"]) == 10

    @pytest.mark.parametrize("reason", ["", "   ", "no"])
    def test_customer_cancel_requires_reason(self, products, customer, reason):
        order = place(products, user_id=customer.id)
        with pytest.raises(ValidationError):
            order_service.cancel_order_by_customer(order.order_id, reason, user=customer)
        assert order_service.get_order(order.order_id).status == OrderStatus.PENDING

    def test_customer_cannot_cancel_someone_elses_order(self, products, customer, other_customer):
        order = place(products, user_id=customer.id)
        with pytest.raises(ForbiddenError):
            order_service.cancel_order_by_customer(order.order_id, "Not mine though", user=other_customer)
        assert stock_of(products["rice"]) == 8

    def test_customer_cancel_only_pending(self, products, customer):
        order = place(products, user_id=customer.id)
        order_service.accept_order(order.order_id)
        with pytest.raises(InvalidTransitionError):
            order_service.cancel_order_by_customer(order.order_id, "Too slow", user=customer)

    def test_gcash_cancel_opens_refund_request(self, products, customer):
        order = place(products, user_id=customer.id, payment_method="GCash", transaction_number="GC-999")
        result = order_service.cancel_order_by_customer(order.order_id, "Wrong address", user=customer)

        refund = result.refund_request
        assert refund is not None
        assert refund.order_id == order.order_id
        assert refund.request_type == "Refund"
        assert refund.status == "Pending"
        assert refund.reason == "Order cancelled - Wrong address"
        assert db.session.query(ReturnRefundRequest).count() == 1

    def test_gcash_refund_failure_keeps_cancellation(self, products, customer, monkeypatch):
        def boom(order, reason):
            raise RuntimeError("refund store down")

        monkeypatch.setattr(order_service, "open_refund_for_cancelled_order", boom)
        order = place(products, user_id=customer.id, payment_method="GCash", transaction_number="GC-1")
        result = order_service.cancel_order_by_customer(order.order_id, "Wrong address", user=customer)
        assert result.refund_request is None
        assert order_service.get_order(order.order_id).status == OrderStatus.CANCELLED


# =============================================================================
# MARK RECEIVED / QUERIES
# =============================================================================


class TestReceivedAndQueries:

    def test_mark_received(self, products, customer):
        order = place(products, user_id=customer.id)
        walk(order.order_id, OrderStatus.IN_PROCESS, OrderStatus.OUT_FOR_DELIVERY)
        received = order_service.mark_received(order.order_id, user=customer)
        assert received.status == OrderStatus.DELIVERED

    def test_mark_received_requires_out_for_delivery(self, products, customer):
        order = place(products, user_id=customer.id)
        with pytest.raises(InvalidTransitionError) as exc:
            order_service.mark_received(order.order_id, user=customer)
        assert exc.value.message == "Order cannot be marked as received. Current status: Pending"

    def test_get_order_ownership(self, products, customer, other_customer, admin):
        order = place(products, user_id=customer.id)
        assert order_service.get_order(order.order_id, user=customer).order_id == order.order_id
        assert order_service.get_order(order.order_id, user=admin).order_id == order.order_id
        with pytest.raises(ForbiddenError):
            order_service.get_order(order.order_id, user=other_customer)
        with pytest.raises(NotFoundError):
            order_service.get_order("ORD-19990101-0001")

    def test_list_orders_filters(self, products, customer):
        place(products, user_id=customer.id)
        pickup = place(products, order_type="Pickup")
        order_service.accept_order(pickup.order_id)

        assert len(order_service.list_orders()) == 2
        assert [o.order_id for o in order_service.list_orders(order_type="pickup")] == [pickup.order_id]
        assert len(order_service.list_orders(status=OrderStatus.IN_PROCESS)) == 1
        assert len(order_service.list_orders(user_id=customer.id)) == 1

    def test_reachable_statuses_from_pending(self, products):
        order = place(products)
        assert set(order.allowed_next(OrderStatus.PENDING)) == {
            OrderStatus.IN_PROCESS, OrderStatus.CANCELLED, OrderStatus.REJECTED,
        }
        assert order.to_dict()["allowed_next_statuses"] == [
            OrderStatus.IN_PROCESS, OrderStatus.CANCELLED, OrderStatus.REJECTED,
        ]
