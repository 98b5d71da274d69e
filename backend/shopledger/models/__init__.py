from .inventory import Product, ProductHistory
from .orders import Order, OrderItem, ORDER_STATUSES, STATUS_PENDING, STATUS_CANCELLED

__all__ = [
    'Product', 'ProductHistory',
    'Order', 'OrderItem', 'ORDER_STATUSES', 'STATUS_PENDING', 'STATUS_CANCELLED',
]
