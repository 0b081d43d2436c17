from enum import Enum


class OrderStatus(str, Enum):
    ORDER_RECEIVED = "Order Received"
    PREPARING = "Preparing"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


# single forward successor of each active status
NEXT_STATUS = {
    OrderStatus.ORDER_RECEIVED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.OUT_FOR_DELIVERY: OrderStatus.DELIVERED,
}

ACTIVE_STATUSES = tuple(NEXT_STATUS)

TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)
