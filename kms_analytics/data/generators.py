"""
Synthetic Data Generator

Generates a realistic KMS order table for development, demos and tests.
Includes:
- Customers with a fixed segment, province and region
- A product catalog across the three KMS categories
- Multi-line orders dated 2009-2012 with losses and returns
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import polars as pl
import structlog
from faker import Faker

from kms_analytics.config import get_settings
from .models import ORDER_SCHEMA, CustomerSegment, OrderPriority, ShipMode

logger = structlog.get_logger(__name__)
settings = get_settings()


# =============================================================================
# CONFIGURATION
# =============================================================================

REGIONS = {
    "Ontario": ["Ontario"],
    "West": ["British Columbia", "Alberta"],
    "Prarie": ["Manitoba", "Saskachewan"],
    "Quebec": ["Quebec"],
    "Atlantic": ["Nova Scotia", "New Brunswick", "Newfoundland", "Prince Edward Island"],
    "Yukon": ["Yukon"],
    "Northwest Territories": ["Northwest Territories"],
    "Nunavut": ["Nunavut"],
}

CATEGORIES = [
    ("Office Supplies", [
        "Appliances", "Binders and Binder Accessories", "Paper", "Pens & Art Supplies",
        "Storage & Organization", "Labels", "Rubber Bands", "Envelopes",
        "Scissors, Rulers and Trimmers",
    ]),
    ("Technology", [
        "Telephones and Communication", "Computer Peripherals", "Office Machines",
        "Copiers and Fax",
    ]),
    ("Furniture", ["Chairs & Chairmats", "Office Furnishings", "Tables", "Bookcases"]),
]

CONTAINERS = ["Small Box", "Medium Box", "Large Box", "Wrap Bag", "Small Pack", "Jumbo Box", "Jumbo Drum"]

PRICE_RANGES = {
    "Office Supplies": (1.0, 150.0),
    "Technology": (20.0, 1500.0),
    "Furniture": (50.0, 800.0),
}

SHIPPING_COST_BASE = {
    ShipMode.EXPRESS_AIR.value: 8.0,
    ShipMode.REGULAR_AIR.value: 6.0,
    ShipMode.DELIVERY_TRUCK.value: 45.0,
}

SEGMENT_WEIGHTS = {
    CustomerSegment.CORPORATE.value: 0.38,
    CustomerSegment.HOME_OFFICE.value: 0.24,
    CustomerSegment.CONSUMER.value: 0.19,
    CustomerSegment.SMALL_BUSINESS.value: 0.19,
}

PRIORITIES = [p.value for p in OrderPriority]
SHIP_MODES = [m.value for m in ShipMode]
SHIP_MODE_WEIGHTS = [0.14, 0.14, 0.72]

START_DATE = date(2009, 1, 1)
DAYS_COVERED = 4 * 365 + 1


# =============================================================================
# GENERATOR
# =============================================================================

class OrderGenerator:
    """
    Generate a KMS-shaped order table.

    Every instance owns its own random state, so two generators built with
    the same seed produce identical frames.

    Example:
        orders_df = OrderGenerator(seed=42).generate(n_rows=8399)
    """

    def __init__(self, seed: Optional[int] = None, n_products: int = 1200):
        self.seed = settings.data.seed if seed is None else seed
        self.rng = np.random.default_rng(self.seed)
        self.fake = Faker()
        self.fake.seed_instance(self.seed)
        self.products = self._build_products(n_products)

    def _build_products(self, n: int) -> List[Dict[str, Any]]:
        """Build the product catalog"""
        products = []
        for _ in range(n):
            category, subcategories = CATEGORIES[int(self.rng.integers(len(CATEGORIES)))]
            sub_category = subcategories[int(self.rng.integers(len(subcategories)))]
            low, high = PRICE_RANGES[category]

            products.append({
                "product_category": category,
                "product_sub_category": sub_category,
                "product_name": f"{self.fake.last_name()} {self.fake.word().title()} {sub_category}",
                "product_container": CONTAINERS[int(self.rng.integers(len(CONTAINERS)))],
                "unit_price": round(float(self.rng.uniform(low, high)), 2),
                # Some products ship without a known base margin
                "product_base_margin": (
                    round(float(self.rng.uniform(0.35, 0.85)), 2)
                    if self.rng.random() > 0.01 else None
                ),
            })
        return products

    def _build_customers(self, n: int) -> List[Tuple[str, str, str, str]]:
        """Build (name, segment, province, region) tuples with unique names"""
        segments = list(SEGMENT_WEIGHTS.keys())
        weights = list(SEGMENT_WEIGHTS.values())
        regions = list(REGIONS.keys())

        customers = []
        names = set()
        while len(customers) < n:
            name = self.fake.name()
            if name in names:
                continue
            names.add(name)

            region = regions[int(self.rng.integers(len(regions)))]
            provinces = REGIONS[region]
            province = provinces[int(self.rng.integers(len(provinces)))]
            segment = segments[int(self.rng.choice(len(segments), p=weights))]
            customers.append((name, segment, province, region))

        return customers

    def generate(
        self,
        n_rows: Optional[int] = None,
        n_customers: Optional[int] = None,
    ) -> pl.DataFrame:
        """
        Generate an order table.

        Args:
            n_rows: Number of rows (defaults to settings)
            n_customers: Number of distinct customers (defaults to settings)

        Returns:
            DataFrame with ``ORDER_SCHEMA``
        """
        n_rows = settings.data.sample_rows if n_rows is None else n_rows
        n_customers = settings.data.sample_customers if n_customers is None else n_customers
        customers = self._build_customers(max(1, min(n_customers, max(n_rows, 1))))

        rows: List[Dict[str, Any]] = []
        order_id = 0

        while len(rows) < n_rows:
            order_id += int(self.rng.integers(1, 40))
            name, segment, province, region = customers[int(self.rng.integers(len(customers)))]
            order_date = START_DATE + timedelta(days=int(self.rng.integers(DAYS_COVERED)))
            priority = PRIORITIES[int(self.rng.integers(len(PRIORITIES)))]

            # Most orders have a single line
            n_lines = int(self.rng.choice([1, 2, 3], p=[0.75, 0.18, 0.07]))

            for _ in range(min(n_lines, n_rows - len(rows))):
                product = self.products[int(self.rng.integers(len(self.products)))]
                ship_mode = SHIP_MODES[int(self.rng.choice(len(SHIP_MODES), p=SHIP_MODE_WEIGHTS))]

                quantity = int(self.rng.integers(1, 51))
                discount = round(float(self.rng.choice([0.0, 0.01, 0.02, 0.03, 0.04, 0.05, 0.06, 0.08, 0.1])), 2)
                sales = round(quantity * product["unit_price"] * (1 - discount), 2)
                profit = round(sales * float(self.rng.normal(0.04, 0.3)), 2)
                shipping_cost = round(SHIPPING_COST_BASE[ship_mode] * float(self.rng.uniform(0.2, 1.8)), 2)

                rows.append({
                    "row_id": len(rows) + 1,
                    "order_id": order_id,
                    "order_date": order_date,
                    "order_priority": priority,
                    "order_quantity": quantity,
                    "sales": sales,
                    "discount": discount,
                    "ship_mode": ship_mode,
                    "profit": profit,
                    "unit_price": product["unit_price"],
                    "shipping_cost": shipping_cost,
                    "customer_name": name,
                    "province": province,
                    "region": region,
                    "customer_segment": segment,
                    "product_category": product["product_category"],
                    "product_sub_category": product["product_sub_category"],
                    "product_name": product["product_name"],
                    "product_container": product["product_container"],
                    "product_base_margin": product["product_base_margin"],
                    "ship_date": order_date + timedelta(days=int(self.rng.integers(0, 5))),
                })

        logger.info(f"Generated {len(rows)} order rows", customers=len(customers), seed=self.seed)

        if not rows:
            return pl.DataFrame(schema=ORDER_SCHEMA)
        return pl.from_dicts(rows, schema=ORDER_SCHEMA)
