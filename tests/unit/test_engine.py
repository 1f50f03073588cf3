"""
Unit Tests - Aggregation Engine
"""
from datetime import date
from decimal import Decimal

import pytest
import polars as pl

from kms_analytics.engine import (
    Aggregate,
    AggregationEngine,
    ConfigurationError,
    Query,
    QueryTimeoutError,
    RankWindow,
    SortKey,
    ratio,
    sort_keys,
    sum_then_round,
)
from kms_analytics.reports import catalog


def sales_by(column: str, **options) -> Query:
    return Query(
        name=f"sales_by_{column}",
        group_by=(column,),
        aggregates={
            "total_sales": Aggregate.sum("sales"),
            "order_count": Aggregate.count(),
        },
        rounded=("total_sales",),
        **options,
    )


class TestExecute:
    """Tests for AggregationEngine.execute"""

    def test_category_sales(self, engine):
        """Test grouping, ordering and rounding of category sales"""
        result = engine.execute(catalog.category_sales())

        assert result.column("product_category") == ["Technology", "Furniture", "Office Supplies"]
        rows = result.rows()
        assert rows[0]["total_sales"] == Decimal("350.00")
        assert rows[0]["order_count"] == 2
        assert rows[2]["avg_order_value"] == Decimal("50.00")

    def test_ties_break_on_group_key(self, engine):
        """Equal totals are ordered by the group key ascending"""
        result = engine.execute(sales_by("product_category", order_by=(SortKey("total_sales", descending=True),)))

        # Furniture and Office Supplies both sold 100
        assert result.column("product_category")[1:] == ["Furniture", "Office Supplies"]

    def test_groups_partition_rows(self, generated_engine):
        """Every row falls in exactly one group"""
        result = generated_engine.execute(sales_by("region"))

        assert sum(result.column("order_count")) == len(generated_engine)
        assert result.total("total_sales") == sum_then_round(generated_engine.frame["sales"].to_list())

    def test_groups_partition_filtered_rows(self, generated_engine):
        """Groups cover exactly the rows that pass the filter"""
        losses = pl.col("profit") < 0

        result = generated_engine.execute(sales_by("customer_segment", filter=losses))

        assert sum(result.column("order_count")) == generated_engine.frame.filter(losses).height
        assert 0 < sum(result.column("order_count")) < len(generated_engine)

    def test_loss_by_segment(self, order_factory):
        """Only loss rows are grouped, so one loss gives one segment"""
        engine = AggregationEngine([
            order_factory(1, customer_name="A", sales=100.0, profit=-10.0),
            order_factory(2, customer_name="B", sales=200.0, profit=30.0),
        ])

        result = engine.execute(catalog.loss_by_segment())

        assert len(result) == 1
        row = result.first()
        assert row["customer_segment"] == "Consumer"
        assert row["loss_transactions"] == 1
        assert row["total_loss"] == Decimal("-10.00")
        assert row["sales_with_losses"] == Decimal("100.00")

    def test_execution_is_idempotent(self, generated_engine):
        """Same query twice gives identical results"""
        query = catalog.top_customers(10)

        first = generated_engine.execute(query)
        second = generated_engine.execute(query)

        assert first.frame.equals(second.frame)

    def test_base_table_unchanged(self, engine, sample_orders_df):
        """Queries never modify the base table"""
        engine.execute(catalog.corporate_leaders(5, 2009, 2012))

        assert engine.frame.equals(sample_orders_df)
        assert "order_year" not in engine.frame.columns

    def test_limit(self, engine):
        """Test limit truncates after ordering"""
        result = engine.execute(sales_by("customer_name", order_by=sort_keys(("total_sales", True)), limit=2))

        assert result.column("customer_name") == ["Bob", "Alice"]

    def test_limit_zero(self, engine):
        """Test zero limit returns no rows"""
        result = engine.execute(sales_by("customer_name", limit=0))

        assert len(result) == 0

    def test_having(self, engine):
        """Test post-aggregate filtering"""
        result = engine.execute(sales_by("customer_name", having=pl.col("total_sales") > 90))

        assert set(result.column("customer_name")) == {"Alice", "Bob"}

    def test_count_distinct_ignores_nulls(self, order_factory):
        """Test distinct count skips nulls"""
        engine = AggregationEngine([
            order_factory(1, product_name="A"),
            order_factory(2, product_name=None),
            order_factory(3, product_name="A"),
            order_factory(4, product_name="B"),
        ])
        query = Query(name="products", aggregates={"products": Aggregate.count_distinct("product_name")})

        result = engine.execute(query)

        assert result.first()["products"] == 2

    def test_min_max_dates(self, engine):
        """Test min/max over a date attribute"""
        result = engine.execute(catalog.date_range_validation())

        row = result.first()
        assert row["earliest_date"] == date(2010, 1, 1)
        assert row["latest_date"] == date(2011, 6, 1)
        assert row["years_covered"] == 2
        assert row["days_span"] == 516

    def test_losses(self, order_factory):
        """Negative profit rows sum to the customer's loss"""
        engine = AggregationEngine([
            order_factory(1, customer_name="Eve", profit=-4.0),
            order_factory(2, customer_name="Eve", profit=-6.0),
            order_factory(3, customer_name="Eve", profit=25.0),
        ])

        result = engine.execute(catalog.loss_customers(10))

        row = result.first()
        assert row["customer_name"] == "Eve"
        assert row["negative_transactions"] == 2
        assert row["total_loss"] == Decimal("-10.00")
        assert row["avg_loss_per_transaction"] == Decimal("-5.00")

    def test_zero_denominator_is_undefined(self, order_factory):
        """A ratio over zero sales is null"""
        engine = AggregationEngine([
            order_factory(1, ship_mode="Delivery Truck", sales=0.0, shipping_cost=10.0),
            order_factory(2, ship_mode="Regular Air", sales=50.0, shipping_cost=5.0),
        ])

        result = engine.execute(catalog.shipping_cost_by_mode())

        rows = {row["ship_mode"]: row for row in result.rows()}
        assert rows["Delivery Truck"]["shipping_cost_percentage"] is None
        assert rows["Regular Air"]["shipping_cost_percentage"] == Decimal("10.00")

    def test_empty_table(self):
        """Ungrouped queries over no rows give one row of zero/undefined values"""
        engine = AggregationEngine([])

        result = engine.execute(catalog.overall_metrics())

        row = result.first()
        assert row["total_orders"] == 0
        assert row["total_sales"] == Decimal("0.00")
        assert row["avg_order_value"] is None
        assert row["overall_profit_margin"] is None

    def test_empty_table_grouped(self):
        """Grouped queries over no rows give no rows"""
        result = AggregationEngine([]).execute(catalog.category_sales())

        assert len(result) == 0
        assert result.columns == ["product_category", "total_sales", "order_count", "avg_order_value"]

    def test_timeout(self, engine):
        """A zero deadline always expires"""
        with pytest.raises(QueryTimeoutError) as exc_info:
            engine.execute(catalog.category_sales(), timeout=0)

        assert exc_info.value.query == "category_sales"

    def test_to_frame_rounds(self, order_factory):
        """Test rounded frame output"""
        engine = AggregationEngine([
            order_factory(1, sales=0.125),
        ])
        query = Query(name="total", aggregates={"total_sales": Aggregate.sum("sales")}, rounded=("total_sales",))

        result = engine.execute(query)

        assert result.column("total_sales") == [0.125]
        assert result.to_frame()["total_sales"].to_list() == [0.13]


class TestValidation:
    """Tests for query validation"""

    @pytest.mark.parametrize("query", [
        Query(name="no_aggregates", aggregates={}),
        Query(name="unknown_key", group_by=("colour",), aggregates={"n": Aggregate.count()}),
        Query(name="unknown_source", aggregates={"total": Aggregate.sum("revenue")}),
        Query(name="text_sum", aggregates={"total": Aggregate.sum("customer_name")}),
        Query(name="text_avg", aggregates={"avg": Aggregate.avg("region")}),
        Query(name="text_max", aggregates={"last": Aggregate.max("region")}),
        Query(
            name="unknown_filter",
            filter=pl.col("colour") == "red",
            aggregates={"n": Aggregate.count()},
        ),
        Query(
            name="unknown_derived",
            aggregates={"n": Aggregate.count()},
            derived={"share": ratio("n", "total")},
        ),
        Query(
            name="unknown_order",
            group_by=("region",),
            aggregates={"n": Aggregate.count()},
            order_by=(SortKey("total_sales"),),
        ),
        Query(
            name="duplicate_output",
            group_by=("region",),
            aggregates={"region": Aggregate.count()},
        ),
        Query(
            name="partition_not_key",
            group_by=("region",),
            aggregates={"n": Aggregate.count()},
            rank_window=RankWindow(order_by="n", partition_by=("province",)),
        ),
        Query(name="negative_limit", aggregates={"n": Aggregate.count()}, limit=-1),
        Query(
            name="text_compared_to_number",
            filter=pl.col("customer_name") > 5,
            aggregates={"n": Aggregate.count()},
        ),
        Query(
            name="divide_by_text",
            group_by=("region",),
            aggregates={"s": Aggregate.sum("sales")},
            derived={"x": pl.col("s") / pl.col("region")},
        ),
        Query(
            name="having_text_compared_to_number",
            group_by=("region",),
            aggregates={"n": Aggregate.count()},
            having=pl.col("region") > 1,
        ),
    ], ids=lambda q: q.name)
    def test_invalid_query(self, engine, query):
        """Invalid queries fail before execution"""
        with pytest.raises(ConfigurationError) as exc_info:
            engine.execute(query)

        assert exc_info.value.query == query.name

    def test_derived_may_use_earlier_derived(self, engine):
        """Derived columns see the ones defined before them"""
        query = Query(
            name="derived_chain",
            aggregates={"sales": Aggregate.sum("sales"), "profit": Aggregate.sum("profit")},
            derived={
                "margin": ratio("profit", "sales", 100),
                "margin_label": pl.when(pl.col("margin") > 0).then(pl.lit("profit")).otherwise(pl.lit("loss")),
            },
        )

        assert engine.execute(query).first()["margin_label"] == "profit"

    def test_max_over_dates_allowed(self, engine):
        """Min/max accept date attributes"""
        engine.validate(Query(name="dates", aggregates={"last": Aggregate.max("ship_date")}))


class TestRanking:
    """Tests for rank windows and top/bottom selection"""

    def test_ranks_are_a_permutation(self, generated_engine):
        """Each direction assigns 1..N once and they mirror each other"""
        query = sales_by("customer_name", rank_window=RankWindow(order_by="total_sales"))

        frame = generated_engine.execute(query).frame
        n = frame.height

        assert sorted(frame["rank_asc"].to_list()) == list(range(1, n + 1))
        assert sorted(frame["rank_desc"].to_list()) == list(range(1, n + 1))
        assert (frame["rank_asc"] + frame["rank_desc"]).to_list() == [n + 1] * n

    def test_rank_ties(self, engine):
        """Tied values get distinct ranks, smaller key first"""
        query = sales_by("product_category", rank_window=RankWindow(order_by="total_sales"))

        frame = engine.execute(query).frame
        ranks = dict(zip(frame["product_category"], frame["rank_desc"]))

        assert ranks == {"Technology": 1, "Furniture": 2, "Office Supplies": 3}

    def test_partitioned_ranks(self, engine):
        """Ranks restart within each partition"""
        query = Query(
            name="customer_rank_per_region",
            group_by=("region", "customer_name"),
            aggregates={"total_sales": Aggregate.sum("sales")},
            rank_window=RankWindow(order_by="total_sales", partition_by=("region",)),
        )

        frame = engine.execute(query).frame.filter(pl.col("region") == "Ontario")
        ranks = dict(zip(frame["customer_name"], frame["rank_desc"]))

        assert ranks == {"Alice": 1, "Dave": 2}

    def test_top_bottom(self, engine):
        """Test top and bottom regions"""
        result = engine.top_bottom(catalog.region_sales(), 1, order_by="total_sales")

        assert result.column("category") == ["TOP 1", "BOTTOM 1"]
        assert result.column("region") == ["West", "Quebec"]

    def test_top_bottom_overlap(self, engine):
        """Groups land in both halves when there are fewer than 2N"""
        result = engine.top_bottom(catalog.region_sales(), 2, order_by="total_sales")

        assert result.column("region") == ["West", "Ontario", "Ontario", "Quebec"]

    def test_top_bottom_disjoint(self, generated_engine):
        """With at least 2N groups the halves do not overlap"""
        result = generated_engine.top_bottom(catalog.region_sales(), 3, order_by="total_sales")
        frame = result.frame

        top = set(frame.filter(pl.col("category") == "TOP 3")["region"])
        bottom = set(frame.filter(pl.col("category") == "BOTTOM 3")["region"])

        assert len(top) == 3
        assert len(bottom) == 3
        assert top.isdisjoint(bottom)

        sales = frame["total_sales"].to_list()
        assert sales[:3] == sorted(sales[:3], reverse=True)
        assert min(sales[:3]) >= max(sales[3:])


class TestHelpers:
    """Tests for argmax, key sets and chains"""

    def test_argmax(self, engine):
        """Test argmax over category sales"""
        assert engine.argmax("product_category", Aggregate.sum("sales")) == "Technology"
        assert engine.argmax("customer_name", Aggregate.sum("shipping_cost")) == "Carol"

    def test_argmax_no_rows(self, engine):
        """Argmax over no matching rows is None"""
        assert engine.argmax("region", Aggregate.sum("sales"), filter=pl.col("sales") < 0) is None

    def test_key_set_requires_group_key(self, engine):
        """Key sets come from group keys only"""
        with pytest.raises(ConfigurationError):
            engine.key_set(sales_by("region"), "customer_name")

    def test_key_set_size(self, generated_engine):
        """A limited phase one yields that many distinct keys"""
        keys = generated_engine.key_set(catalog.bottom_customer_keys(10), "customer_name")

        assert keys.len() == 10
        assert keys.n_unique() == 10

    def test_key_set_smaller_than_limit(self, engine):
        """A table with fewer customers yields all of them"""
        keys = engine.key_set(catalog.bottom_customer_keys(10), "customer_name")

        assert sorted(keys.to_list()) == ["Alice", "Bob", "Carol", "Dave"]

    def test_chain_rows_belong_to_key_set(self, generated_engine):
        """Every phase-two group comes from a phase-one key"""
        first = catalog.top_customer_keys(10)
        keys = set(generated_engine.key_set(first, "customer_name").to_list())

        result = generated_engine.chain(first, "customer_name", sales_by("customer_name"))

        assert set(result.column("customer_name")) == keys
        expected = generated_engine.frame.filter(pl.col("customer_name").is_in(list(keys))).height
        assert sum(result.column("order_count")) == expected

    def test_chain(self, engine):
        """Phase two sees only rows of phase-one keys"""
        result = engine.chain(
            catalog.top_customer_keys(1),
            "customer_name",
            catalog.category_breakdown("top_customer_breakdown"),
        )

        assert result.column("product_category") == ["Technology"]
        assert result.first()["category_sales"] == Decimal("300.00")

    def test_chain_matches_restricted_query(self, generated_engine):
        """A chain equals phase two filtered to the phase-one keys"""
        first = catalog.bottom_customer_keys(10)
        second = catalog.bottom_customer_patterns()

        chained = generated_engine.chain(first, "customer_name", second)
        keys = generated_engine.key_set(first, "customer_name")
        direct = generated_engine.execute(second.with_options(filter=pl.col("customer_name").is_in(keys)))

        assert chained.frame.equals(direct.frame)

    def test_chain_empty_keys(self, engine):
        """An empty key set gives an empty phase two"""
        result = engine.chain(
            catalog.top_customer_keys(0),
            "customer_name",
            catalog.top_customer_patterns(),
        )

        assert len(result) == 0
