from .catalog import Product, StockEntry
from .orders import (
    Order,
    DeliveryOrder,
    PickupOrder,
    OrderItem,
    OrderSequence,
    OrderStatus,
    ORDER_CLASSES,
)
from .returns import ReturnRefundRequest, ReturnStatus
from .auth import User, SessionToken

__all__ = [
    'Product', 'StockEntry',
    'Order', 'DeliveryOrder', 'PickupOrder', 'OrderItem', 'OrderSequence',
    'OrderStatus', 'ORDER_CLASSES',
    'ReturnRefundRequest', 'ReturnStatus',
    'User', 'SessionToken',
]
