"""
Order Record Model

Row model and columnar schema for the KMS order table.

The model deliberately accepts rows that break the business invariants
(negative sales, missing profit, a ship date before the order date). Those
are reported as data-quality findings by ``kms_analytics.quality``; they are
never construction errors.
"""

from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import polars as pl
from pydantic import BaseModel, ConfigDict, Field


class OrderPriority(str, Enum):
    """Order priority levels"""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ShipMode(str, Enum):
    """Shipping methods"""
    EXPRESS_AIR = "Express Air"
    DELIVERY_TRUCK = "Delivery Truck"
    REGULAR_AIR = "Regular Air"


class CustomerSegment(str, Enum):
    """Customer segments"""
    CONSUMER = "Consumer"
    CORPORATE = "Corporate"
    SMALL_BUSINESS = "Small Business"
    HOME_OFFICE = "Home Office"


ORDER_SCHEMA: Dict[str, pl.DataType] = {
    "row_id": pl.Int64,
    "order_id": pl.Int64,
    "order_date": pl.Date,
    "order_priority": pl.Utf8,
    "order_quantity": pl.Int64,
    "sales": pl.Float64,
    "discount": pl.Float64,
    "ship_mode": pl.Utf8,
    "profit": pl.Float64,
    "unit_price": pl.Float64,
    "shipping_cost": pl.Float64,
    "customer_name": pl.Utf8,
    "province": pl.Utf8,
    "region": pl.Utf8,
    "customer_segment": pl.Utf8,
    "product_category": pl.Utf8,
    "product_sub_category": pl.Utf8,
    "product_name": pl.Utf8,
    "product_container": pl.Utf8,
    "product_base_margin": pl.Float64,
    "ship_date": pl.Date,
}


class Order(BaseModel):
    """One row of the order table.

    Attributes:
        row_id: Unique row identifier.
        order_id: Order identifier; one order may span several rows.
        order_date: Date the order was placed.
        order_priority: Critical, High, Medium or Low.
        order_quantity: Units on this row.
        sales: Sales amount; expected non-negative.
        discount: Discount fraction applied to the row.
        ship_mode: Express Air, Delivery Truck or Regular Air.
        profit: Profit amount; negative for losses and returns.
        unit_price: Price per unit.
        shipping_cost: Shipping cost; expected non-negative.
        customer_name: Customer display name.
        province: Customer province.
        region: Sales region.
        customer_segment: Consumer, Corporate, Small Business or Home Office.
        product_category: Top-level product category.
        product_sub_category: Product sub-category.
        product_name: Product display name.
        product_container: Packaging container.
        product_base_margin: Base margin of the product.
        ship_date: Date the order shipped.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    row_id: int
    order_id: int
    order_date: date
    order_priority: str
    order_quantity: int = Field(default=0)
    sales: Optional[float] = None
    discount: Optional[float] = None
    ship_mode: str
    profit: Optional[float] = None
    unit_price: Optional[float] = None
    shipping_cost: Optional[float] = None
    customer_name: str
    province: Optional[str] = None
    region: str
    customer_segment: str
    product_category: str
    product_sub_category: str
    product_name: Optional[str] = None
    product_container: Optional[str] = None
    product_base_margin: Optional[float] = None
    ship_date: date


OrderLike = Union[Order, Mapping[str, Any]]


def orders_to_frame(orders: Iterable[OrderLike]) -> pl.DataFrame:
    """
    Build a DataFrame with exactly ``ORDER_SCHEMA`` from order rows.

    Args:
        orders: ``Order`` models or mappings validated through ``Order``

    Returns:
        DataFrame with one row per order, columns in schema order
    """
    records: List[Dict[str, Any]] = []
    for order in orders:
        if not isinstance(order, Order):
            order = Order.model_validate(order)
        records.append(order.model_dump())

    if not records:
        return pl.DataFrame(schema=ORDER_SCHEMA)

    return pl.from_dicts(records, schema=ORDER_SCHEMA)
