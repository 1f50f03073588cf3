"""
Order Data Module
"""
from .models import (
    ORDER_SCHEMA,
    CustomerSegment,
    Order,
    OrderPriority,
    ShipMode,
    orders_to_frame,
)
from .generators import OrderGenerator

__all__ = [
    "ORDER_SCHEMA",
    "CustomerSegment",
    "Order",
    "OrderPriority",
    "ShipMode",
    "orders_to_frame",
    "OrderGenerator",
]
