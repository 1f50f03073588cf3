"""
Test Suite Configuration
"""
from datetime import date
from typing import Any, Dict, List

import pytest
import polars as pl

from kms_analytics.config import Settings
from kms_analytics.data import OrderGenerator, orders_to_frame
from kms_analytics.engine import AggregationEngine


def make_order(row_id: int, **overrides: Any) -> Dict[str, Any]:
    """Order row with sensible defaults"""
    row = {
        "row_id": row_id,
        "order_id": row_id,
        "order_date": date(2010, 1, 1),
        "order_priority": "Medium",
        "order_quantity": 1,
        "sales": 100.0,
        "discount": 0.0,
        "ship_mode": "Regular Air",
        "profit": 10.0,
        "unit_price": 100.0,
        "shipping_cost": 5.0,
        "customer_name": "Alice",
        "province": "Ontario",
        "region": "Ontario",
        "customer_segment": "Consumer",
        "product_category": "Furniture",
        "product_sub_category": "Chairs & Chairmats",
        "product_name": "Chair",
        "product_container": "Large Box",
        "product_base_margin": 0.5,
        "ship_date": date(2010, 1, 3),
    }
    row.update(overrides)
    return row


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(app_env="testing")


@pytest.fixture
def order_factory():
    """Build order rows with defaults: ``order_factory(row_id, **overrides)``"""
    return make_order


@pytest.fixture
def sample_orders() -> List[Dict[str, Any]]:
    """Small handcrafted order table"""
    return [
        make_order(1, order_id=10, customer_name="Alice", sales=100.0, profit=20.0,
                   product_category="Furniture", region="Ontario"),
        make_order(2, order_id=10, customer_name="Alice", sales=50.0, profit=-5.0,
                   product_category="Technology", region="Ontario",
                   product_sub_category="Office Machines"),
        make_order(3, order_id=11, customer_name="Bob", sales=300.0, profit=30.0,
                   product_category="Technology", region="West",
                   customer_segment="Corporate", ship_mode="Express Air",
                   order_priority="Critical", shipping_cost=12.0,
                   product_sub_category="Office Machines"),
        make_order(4, order_id=12, customer_name="Carol", sales=20.0, profit=-15.0,
                   product_category="Office Supplies", region="Quebec",
                   customer_segment="Small Business", ship_mode="Delivery Truck",
                   order_priority="Low", shipping_cost=40.0,
                   product_sub_category="Appliances"),
        make_order(5, order_id=13, customer_name="Dave", sales=80.0, profit=8.0,
                   product_category="Office Supplies", region="Ontario",
                   customer_segment="Home Office", product_sub_category="Appliances",
                   order_date=date(2011, 6, 1), ship_date=date(2011, 6, 2)),
    ]


@pytest.fixture
def sample_orders_df(sample_orders) -> pl.DataFrame:
    """Sample orders as a DataFrame"""
    return orders_to_frame(sample_orders)


@pytest.fixture
def engine(sample_orders_df) -> AggregationEngine:
    """Engine over the handcrafted orders"""
    return AggregationEngine(sample_orders_df)


@pytest.fixture(scope="session")
def generated_orders_df() -> pl.DataFrame:
    """Seeded synthetic order table"""
    return OrderGenerator(seed=7).generate(n_rows=1500, n_customers=120)


@pytest.fixture(scope="session")
def generated_engine(generated_orders_df) -> AggregationEngine:
    """Engine over the synthetic orders"""
    return AggregationEngine(generated_orders_df)
