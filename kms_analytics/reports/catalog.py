"""
Report Query Catalog

Query specifications behind the KMS business questions. Each function
returns a ``Query``; composition (top/bottom, chains, summary facts) lives in
``kms_analytics.reports.runner``.

Case scenario I:
- Q1 sales by product category
- Q2 top and bottom regions by sales
- Q3 appliance sales in Ontario
- Q4 bottom customers and their purchase patterns
- Q5 shipping cost by ship mode

Case scenario II:
- Q6 most valuable customers
- Q7 small business leaders
- Q8 corporate customers by order count
- Q9 most profitable consumer customers
- Q10 customers with losses (returns)
- Q11 shipping mode against order priority

Plus summary facts and data-quality validation queries.
"""

from typing import Optional

import polars as pl

from kms_analytics.data.models import CustomerSegment, OrderPriority, ShipMode
from kms_analytics.engine import Aggregate, Query, SortKey, ratio

SALES_DESC = SortKey("total_sales", descending=True)

CUSTOMER_KEYS = ("customer_name", "customer_segment")

ORDER_YEAR = {"order_year": pl.col("order_date").dt.year()}


def _segment(segment: CustomerSegment) -> pl.Expr:
    return pl.col("customer_segment") == segment.value


def _customer_sales_rank(name: str, descending: bool, limit: int, filter: Optional[pl.Expr] = None) -> Query:
    """Customers ranked by total sales; used as phase one of customer chains"""
    return Query(
        name=name,
        group_by=("customer_name",),
        filter=filter,
        aggregates={"total_sales": Aggregate.sum("sales")},
        order_by=(SortKey("total_sales", descending=descending),),
        limit=limit,
    )


# =============================================================================
# CASE SCENARIO I
# =============================================================================

def category_sales() -> Query:
    """Q1: Sales by product category, highest first"""
    return Query(
        name="category_sales",
        group_by=("product_category",),
        aggregates={
            "total_sales": Aggregate.sum("sales"),
            "order_count": Aggregate.count(),
            "avg_order_value": Aggregate.avg("sales"),
        },
        order_by=(SALES_DESC,),
        rounded=("total_sales", "avg_order_value"),
        description="Which product category had the highest sales?",
    )


def region_sales() -> Query:
    """Q2: Sales per region, ranked by ``engine.top_bottom``"""
    return Query(
        name="region_top_bottom",
        group_by=("region",),
        aggregates={
            "total_sales": Aggregate.sum("sales"),
            "total_orders": Aggregate.count_distinct("order_id"),
            "unique_customers": Aggregate.count_distinct("customer_name"),
        },
        rounded=("total_sales",),
        description="Top and bottom regions in terms of sales",
    )


ONTARIO_APPLIANCES = (pl.col("region") == "Ontario") & (pl.col("product_sub_category") == "Appliances")


def ontario_appliances() -> Query:
    """Q3: Total appliance sales in Ontario"""
    return Query(
        name="ontario_appliances",
        group_by=("region", "product_sub_category"),
        filter=ONTARIO_APPLIANCES,
        aggregates={
            "total_sales": Aggregate.sum("sales"),
            "order_count": Aggregate.count(),
            "avg_order_value": Aggregate.avg("sales"),
            "unique_customers": Aggregate.count_distinct("customer_name"),
        },
        rounded=("total_sales", "avg_order_value"),
        description="Total sales of appliances in Ontario",
    )


def ontario_top_appliances(limit: int) -> Query:
    """Q3: Best-selling appliances in Ontario"""
    return Query(
        name="ontario_top_appliances",
        group_by=("product_name",),
        filter=ONTARIO_APPLIANCES,
        aggregates={
            "total_sales": Aggregate.sum("sales"),
            "order_count": Aggregate.count(),
            "avg_order_value": Aggregate.avg("sales"),
        },
        order_by=(SALES_DESC,),
        limit=limit,
        rounded=("total_sales", "avg_order_value"),
    )


CUSTOMER_STATUS = (
    pl.when(pl.col("total_profit") < 0).then(pl.lit("Loss-making customer"))
    .when(pl.col("order_count") == 1).then(pl.lit("One-time buyer"))
    .when(pl.col("avg_order_value") < 100).then(pl.lit("Low-value orders"))
    .otherwise(pl.lit("Growth opportunity"))
)


def bottom_customers(limit: int) -> Query:
    """Q4: Lowest-selling customers with a status recommendation"""
    return Query(
        name="bottom_customers",
        group_by=CUSTOMER_KEYS,
        aggregates={
            "total_sales": Aggregate.sum("sales"),
            "total_profit": Aggregate.sum("profit"),
            "order_count": Aggregate.count_distinct("order_id"),
            "total_quantity": Aggregate.sum("order_quantity"),
            "avg_order_value": Aggregate.avg("sales"),
        },
        derived={"customer_status": CUSTOMER_STATUS},
        order_by=(SortKey("total_sales"),),
        limit=limit,
        rounded=("total_sales", "total_profit", "avg_order_value"),
        description="Bottom customers by sales and what to do about them",
    )


def bottom_customer_keys(limit: int) -> Query:
    """Q4 phase one: the lowest-selling customers"""
    return _customer_sales_rank("bottom_customer_keys", descending=False, limit=limit)


def bottom_customer_patterns() -> Query:
    """Q4 phase two: segment and category mix of the bottom customers"""
    return Query(
        name="bottom_customer_patterns",
        group_by=("customer_segment", "product_category"),
        aggregates={
            "order_count": Aggregate.count(),
            "total_sales": Aggregate.sum("sales"),
            "avg_order_value": Aggregate.avg("sales"),
        },
        order_by=(SALES_DESC,),
        rounded=("total_sales", "avg_order_value"),
    )


def shipping_cost_by_mode() -> Query:
    """Q5: Shipping cost per ship mode, most expensive first"""
    return Query(
        name="shipping_cost_by_mode",
        group_by=("ship_mode",),
        aggregates={
            "total_shipping_cost": Aggregate.sum("shipping_cost"),
            "avg_shipping_cost": Aggregate.avg("shipping_cost"),
            "order_count": Aggregate.count(),
            "total_sales": Aggregate.sum("sales"),
        },
        derived={"shipping_cost_percentage": ratio("total_shipping_cost", "total_sales", 100)},
        order_by=(SortKey("total_shipping_cost", descending=True),),
        rounded=("total_shipping_cost", "avg_shipping_cost", "total_sales", "shipping_cost_percentage"),
        description="Which shipping method cost the most?",
    )


def shipping_cost_efficiency() -> Query:
    """Q5: Cost per order for each ship mode"""
    return Query(
        name="shipping_cost_efficiency",
        group_by=("ship_mode",),
        aggregates={
            "total_cost": Aggregate.sum("shipping_cost"),
            "orders": Aggregate.count(),
            "avg_cost_per_order": Aggregate.avg("shipping_cost"),
        },
        derived={"cost_efficiency_ratio": ratio("total_cost", "orders")},
        order_by=(SortKey("total_cost", descending=True),),
        rounded=("total_cost", "avg_cost_per_order", "cost_efficiency_ratio"),
    )


# =============================================================================
# CASE SCENARIO II
# =============================================================================

def top_customers(limit: int) -> Query:
    """Q6: Most valuable customers by sales"""
    return Query(
        name="top_customers",
        group_by=CUSTOMER_KEYS,
        aggregates={
            "total_sales": Aggregate.sum("sales"),
            "total_profit": Aggregate.sum("profit"),
            "order_count": Aggregate.count_distinct("order_id"),
            "total_quantity": Aggregate.sum("order_quantity"),
            "avg_order_value": Aggregate.avg("sales"),
            "first_order": Aggregate.min("order_date"),
            "last_order": Aggregate.max("order_date"),
        },
        derived={
            "profit_margin": ratio("total_profit", "total_sales", 100),
            "customer_lifespan_days": (pl.col("last_order") - pl.col("first_order")).dt.total_days(),
        },
        order_by=(SALES_DESC,),
        limit=limit,
        rounded=("total_sales", "total_profit", "avg_order_value", "profit_margin"),
        description="Most valuable customers and their purchase patterns",
    )


def top_customer_keys(limit: int) -> Query:
    """Q6 phase one: the highest-selling customers"""
    return _customer_sales_rank("top_customer_keys", descending=True, limit=limit)


def top_customer_patterns() -> Query:
    """Q6 phase two: category mix of the top customers"""
    return Query(
        name="top_customer_patterns",
        group_by=("product_category",),
        aggregates={
            "order_count": Aggregate.count(),
            "total_sales": Aggregate.sum("sales"),
            "avg_order_value": Aggregate.avg("sales"),
            "customer_count": Aggregate.count_distinct("customer_name"),
        },
        order_by=(SALES_DESC,),
        rounded=("total_sales", "avg_order_value"),
    )


def small_business_leaders(limit: int) -> Query:
    """Q7: Small business customers by sales"""
    return Query(
        name="small_business_leaders",
        group_by=("customer_name",),
        filter=_segment(CustomerSegment.SMALL_BUSINESS),
        aggregates={
            "total_sales": Aggregate.sum("sales"),
            "total_profit": Aggregate.sum("profit"),
            "order_count": Aggregate.count_distinct("order_id"),
            "avg_order_value": Aggregate.avg("sales"),
        },
        derived={"profit_margin": ratio("total_profit", "total_sales", 100)},
        order_by=(SALES_DESC,),
        limit=limit,
        rounded=("total_sales", "total_profit", "avg_order_value", "profit_margin"),
        description="Small business customers with the highest sales",
    )


def small_business_keys() -> Query:
    """Q7 phase one: the top small business customer"""
    return _customer_sales_rank(
        "small_business_keys",
        descending=True,
        limit=1,
        filter=_segment(CustomerSegment.SMALL_BUSINESS),
    )


def category_breakdown(name: str) -> Query:
    """Per-category purchases of a chained customer set"""
    return Query(
        name=name,
        group_by=("product_category",),
        aggregates={
            "category_sales": Aggregate.sum("sales"),
            "order_count": Aggregate.count(),
            "avg_order_value": Aggregate.avg("sales"),
        },
        order_by=(SortKey("category_sales", descending=True),),
        rounded=("category_sales", "avg_order_value"),
    )


def corporate_leaders(limit: int, year_start: int, year_end: int) -> Query:
    """Q8: Corporate customers by distinct orders within a year range"""
    return Query(
        name="corporate_leaders",
        group_by=("customer_name",),
        columns=ORDER_YEAR,
        filter=_segment(CustomerSegment.CORPORATE) & pl.col("order_year").is_between(year_start, year_end),
        aggregates={
            "total_orders": Aggregate.count_distinct("order_id"),
            "total_sales": Aggregate.sum("sales"),
            "total_profit": Aggregate.sum("profit"),
            "first_year": Aggregate.min("order_year"),
            "last_year": Aggregate.max("order_year"),
        },
        order_by=(SortKey("total_orders", descending=True),),
        limit=limit,
        rounded=("total_sales", "total_profit"),
        description="Corporate customers that placed the most orders",
    )


def corporate_keys() -> Query:
    """Q8 phase one: the corporate customer with the most orders, all years"""
    return Query(
        name="corporate_keys",
        group_by=("customer_name",),
        filter=_segment(CustomerSegment.CORPORATE),
        aggregates={"total_orders": Aggregate.count_distinct("order_id")},
        order_by=(SortKey("total_orders", descending=True),),
        limit=1,
    )


def yearly_breakdown() -> Query:
    """Q8 phase two: orders and sales per year"""
    return Query(
        name="corporate_yearly_breakdown",
        group_by=("order_year",),
        columns=ORDER_YEAR,
        aggregates={
            "orders_per_year": Aggregate.count_distinct("order_id"),
            "sales_per_year": Aggregate.sum("sales"),
        },
        order_by=(SortKey("order_year"),),
        rounded=("sales_per_year",),
    )


def consumer_leaders(limit: int) -> Query:
    """Q9: Consumer customers by profit"""
    return Query(
        name="consumer_leaders",
        group_by=("customer_name",),
        filter=_segment(CustomerSegment.CONSUMER),
        aggregates={
            "total_profit": Aggregate.sum("profit"),
            "total_sales": Aggregate.sum("sales"),
            "order_count": Aggregate.count_distinct("order_id"),
            "avg_order_value": Aggregate.avg("sales"),
        },
        derived={"profit_margin": ratio("total_profit", "total_sales", 100)},
        order_by=(SortKey("total_profit", descending=True),),
        limit=limit,
        rounded=("total_profit", "total_sales", "avg_order_value", "profit_margin"),
        description="Most profitable consumer customers",
    )


LOSS = pl.col("profit") < 0


def loss_customers(limit: int) -> Query:
    """Q10: Customers with the largest losses"""
    return Query(
        name="loss_customers",
        group_by=CUSTOMER_KEYS,
        filter=LOSS,
        aggregates={
            "negative_transactions": Aggregate.count(),
            "total_loss": Aggregate.sum("profit"),
            "sales_amount": Aggregate.sum("sales"),
            "avg_loss_per_transaction": Aggregate.avg("profit"),
        },
        order_by=(SortKey("total_loss"),),
        limit=limit,
        rounded=("total_loss", "sales_amount", "avg_loss_per_transaction"),
        description="Customers who returned items (negative profit)",
    )


def loss_by_segment() -> Query:
    """Q10: Losses per customer segment"""
    return Query(
        name="loss_by_segment",
        group_by=("customer_segment",),
        filter=LOSS,
        aggregates={
            "loss_transactions": Aggregate.count(),
            "customers_affected": Aggregate.count_distinct("customer_name"),
            "total_loss": Aggregate.sum("profit"),
            "avg_loss_per_transaction": Aggregate.avg("profit"),
            "sales_with_losses": Aggregate.sum("sales"),
        },
        order_by=(SortKey("total_loss"),),
        rounded=("total_loss", "avg_loss_per_transaction", "sales_with_losses"),
    )


def loss_summary(total_rows: int) -> Query:
    """Q10: Overall losses; ``total_rows`` is the unfiltered row count"""
    return Query(
        name="loss_summary",
        filter=LOSS,
        aggregates={
            "total_loss_transactions": Aggregate.count(),
            "customers_with_losses": Aggregate.count_distinct("customer_name"),
            "total_loss_amount": Aggregate.sum("profit"),
            "sales_amount_with_losses": Aggregate.sum("sales"),
        },
        derived={
            "all_transactions": pl.lit(total_rows, dtype=pl.Int64),
            "loss_transaction_percentage": ratio("total_loss_transactions", "all_transactions", 100),
        },
        rounded=("total_loss_amount", "sales_amount_with_losses", "loss_transaction_percentage"),
    )


PRIORITY_SHIP_KEYS = ("order_priority", "ship_mode")


def priority_shipping() -> Query:
    """Q11: Ship mode usage and cost per order priority"""
    return Query(
        name="priority_shipping",
        group_by=PRIORITY_SHIP_KEYS,
        aggregates={
            "order_count": Aggregate.count(),
            "avg_shipping_cost": Aggregate.avg("shipping_cost"),
            "total_shipping_cost": Aggregate.sum("shipping_cost"),
            "total_sales": Aggregate.sum("sales"),
        },
        derived={"shipping_cost_percentage": ratio("total_shipping_cost", "total_sales", 100)},
        order_by=(SortKey("order_priority"), SortKey("total_shipping_cost", descending=True)),
        rounded=("avg_shipping_cost", "total_shipping_cost", "total_sales", "shipping_cost_percentage"),
        description="Shipping cost efficiency against order priority",
    )


URGENT = pl.col("order_priority").is_in([OrderPriority.CRITICAL.value, OrderPriority.HIGH.value])
LOW = pl.col("order_priority") == OrderPriority.LOW.value
EXPRESS = pl.col("ship_mode") == ShipMode.EXPRESS_AIR.value
TRUCK = pl.col("ship_mode") == ShipMode.DELIVERY_TRUCK.value

EFFICIENCY_ASSESSMENT = (
    pl.when(URGENT & EXPRESS).then(pl.lit("Appropriate"))
    .when(LOW & TRUCK).then(pl.lit("Cost-effective"))
    .when(URGENT & TRUCK).then(pl.lit("Too slow for priority"))
    .when(LOW & EXPRESS).then(pl.lit("Unnecessarily expensive"))
    .otherwise(pl.lit("Standard"))
)


def priority_shipping_efficiency() -> Query:
    """Q11: Share of each priority's orders per ship mode, with an assessment"""
    return Query(
        name="priority_shipping_efficiency",
        group_by=PRIORITY_SHIP_KEYS,
        aggregates={
            "orders": Aggregate.count(),
            "avg_cost": Aggregate.avg("shipping_cost"),
        },
        derived={
            "total_orders": pl.col("orders").sum().over("order_priority"),
            "percentage_of_priority_orders": ratio("orders", "total_orders", 100),
            "efficiency_assessment": EFFICIENCY_ASSESSMENT,
        },
        order_by=(SortKey("order_priority"), SortKey("orders", descending=True)),
        rounded=("avg_cost", "percentage_of_priority_orders"),
    )


def share_of_rows(name: str, population: pl.Expr, subset: pl.Expr) -> Query:
    """Percentage of ``population`` rows that also match ``subset``"""
    return Query(
        name=name,
        filter=population,
        columns={"in_subset": subset.cast(pl.Int64)},
        aggregates={
            "population": Aggregate.count(),
            "matching": Aggregate.sum("in_subset"),
        },
        derived={"current_percentage": ratio("matching", "population", 100)},
        rounded=("current_percentage",),
    )


def urgent_by_express() -> Query:
    """Q11: Share of Critical/High orders shipped by Express Air"""
    return share_of_rows("urgent_by_express", URGENT, EXPRESS)


def low_by_truck() -> Query:
    """Q11: Share of Low orders shipped by Delivery Truck"""
    return share_of_rows("low_by_truck", LOW, TRUCK)


# =============================================================================
# SUMMARY
# =============================================================================

def overall_metrics() -> Query:
    """Headline business metrics over the whole table"""
    return Query(
        name="overall_metrics",
        aggregates={
            "total_orders": Aggregate.count_distinct("order_id"),
            "unique_customers": Aggregate.count_distinct("customer_name"),
            "total_sales": Aggregate.sum("sales"),
            "total_profit": Aggregate.sum("profit"),
            "avg_order_value": Aggregate.avg("sales"),
            "total_shipping_cost": Aggregate.sum("shipping_cost"),
            "earliest_order": Aggregate.min("order_date"),
            "latest_order": Aggregate.max("order_date"),
        },
        derived={"overall_profit_margin": ratio("total_profit", "total_sales", 100)},
        rounded=("total_sales", "total_profit", "avg_order_value", "total_shipping_cost", "overall_profit_margin"),
    )


def segment_performance() -> Query:
    """Sales and profit per customer segment"""
    return Query(
        name="segment_performance",
        group_by=("customer_segment",),
        aggregates={
            "customer_count": Aggregate.count_distinct("customer_name"),
            "order_count": Aggregate.count_distinct("order_id"),
            "total_sales": Aggregate.sum("sales"),
            "total_profit": Aggregate.sum("profit"),
            "avg_order_value": Aggregate.avg("sales"),
        },
        derived={"profit_margin": ratio("total_profit", "total_sales", 100)},
        order_by=(SALES_DESC,),
        rounded=("total_sales", "total_profit", "avg_order_value", "profit_margin"),
    )


def regional_performance() -> Query:
    """Sales and profit per region"""
    return Query(
        name="regional_performance",
        group_by=("region",),
        aggregates={
            "customer_count": Aggregate.count_distinct("customer_name"),
            "order_count": Aggregate.count_distinct("order_id"),
            "total_sales": Aggregate.sum("sales"),
            "total_profit": Aggregate.sum("profit"),
        },
        derived={"profit_margin": ratio("total_profit", "total_sales", 100)},
        order_by=(SALES_DESC,),
        rounded=("total_sales", "total_profit", "profit_margin"),
    )


# =============================================================================
# DATA QUALITY
# =============================================================================

DATA_QUALITY_METRICS = [
    ("Total Records", None),
    ("Records with NULL sales", pl.col("sales").is_null()),
    ("Records with negative sales", pl.col("sales") < 0),
    ("Records with NULL profit", pl.col("profit").is_null()),
    ("Records with negative profit (potential returns)", pl.col("profit") < 0),
]


def row_count(name: str, filter: Optional[pl.Expr] = None) -> Query:
    """Number of rows matching ``filter``"""
    return Query(name=name, filter=filter, aggregates={"value": Aggregate.count()})


def date_range_validation() -> Query:
    """Order date coverage of the table"""
    return Query(
        name="date_range_validation",
        columns=ORDER_YEAR,
        aggregates={
            "earliest_date": Aggregate.min("order_date"),
            "latest_date": Aggregate.max("order_date"),
            "years_covered": Aggregate.count_distinct("order_year"),
        },
        derived={"days_span": (pl.col("latest_date") - pl.col("earliest_date")).dt.total_days()},
    )
