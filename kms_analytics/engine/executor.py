"""
Aggregation Engine

Executes declarative ``Query`` specifications against an in-memory order
table held as a polars DataFrame.

Pipeline per query:
1. Validate the query against the table schema (before any row is scanned)
2. Add computed row columns and apply the pre-aggregate filter
3. Group and aggregate
4. Compute derived columns and apply ``having``
5. Rank (optional), sort with a group-key tie-break, truncate

Helpers built on ``execute``:
- ``top_bottom``: top N and bottom N in one ranked pass
- ``argmax``: the group key with the largest aggregate
- ``key_set`` / ``chain``: two-phase queries
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

import polars as pl
import structlog

from kms_analytics.config import get_settings
from kms_analytics.data.models import OrderLike, orders_to_frame
from .errors import ConfigurationError, QueryTimeoutError
from .query import NUMERIC_FUNCS, ORDERED_FUNCS, Aggregate, AggFunc, Query, RankWindow, SortKey
from .rounding import round_money, sum_then_round

logger = structlog.get_logger(__name__)


@dataclass
class QueryResult:
    """Ordered result rows of one query.

    ``frame`` keeps unrounded values. Rounding happens only when rows are
    read through ``rows``, ``to_frame`` or ``total``.
    """
    name: str
    frame: pl.DataFrame
    rounded: Tuple[str, ...] = ()
    started_at: datetime = field(default_factory=datetime.utcnow)
    duration_seconds: float = 0.0

    def __len__(self) -> int:
        return self.frame.height

    @property
    def columns(self) -> List[str]:
        return self.frame.columns

    def column(self, name: str) -> List[Any]:
        """Unrounded values of one column"""
        return self.frame[name].to_list()

    def rows(self, rounded: bool = True) -> List[Dict[str, Any]]:
        """Result rows as dicts; rounded columns become ``Decimal``"""
        rows = self.frame.to_dicts()
        if rounded:
            to_round = [c for c in self.rounded if c in self.frame.columns]
            for row in rows:
                for name in to_round:
                    row[name] = round_money(row[name])
        return rows

    def first(self, rounded: bool = True) -> Optional[Dict[str, Any]]:
        """First row, or None for an empty result"""
        rows = self.rows(rounded=rounded)
        return rows[0] if rows else None

    def to_frame(self, rounded: bool = True) -> pl.DataFrame:
        """Result as a DataFrame with rounded columns as 2-decimal floats"""
        if not rounded:
            return self.frame
        replacements = []
        for name in self.rounded:
            if name not in self.frame.columns:
                continue
            values = []
            for value in self.frame[name].to_list():
                cents = round_money(value)
                values.append(None if cents is None else float(cents))
            replacements.append(pl.Series(name, values, dtype=pl.Float64))
        return self.frame.with_columns(replacements) if replacements else self.frame

    def total(self, name: str) -> Decimal:
        """Grand total of a column, summed unrounded and rounded once"""
        return sum_then_round(self.frame[name].to_list())


class AggregationEngine:
    """
    Grouped-aggregation and ranking engine over the order table.

    The base table is never modified; every query recomputes from it.

    Example:
        engine = AggregationEngine(orders_df)
        result = engine.execute(category_sales_query)
        for row in result.rows():
            print(row["product_category"], row["total_sales"])
    """

    def __init__(
        self,
        orders: Union[pl.DataFrame, Iterable[OrderLike]],
        query_timeout_seconds: Optional[float] = None,
    ):
        if isinstance(orders, pl.DataFrame):
            self._frame = orders
        else:
            self._frame = orders_to_frame(orders)

        if query_timeout_seconds is None:
            query_timeout_seconds = get_settings().engine.query_timeout_seconds
        self.query_timeout_seconds = query_timeout_seconds

    @property
    def frame(self) -> pl.DataFrame:
        return self._frame

    @property
    def schema(self) -> Dict[str, pl.DataType]:
        return dict(self._frame.schema)

    def __len__(self) -> int:
        return self._frame.height

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    @staticmethod
    def _referenced(expr: pl.Expr) -> Set[str]:
        return set(expr.meta.root_names())

    def _row_schema(self, query: Query) -> Dict[str, pl.DataType]:
        """Base schema plus the query's computed row columns"""
        schema = self.schema
        for name, expr in query.columns.items():
            unknown = self._referenced(expr) - set(schema)
            if unknown:
                raise ConfigurationError(
                    f"Computed column '{name}' references unknown attributes: {sorted(unknown)}",
                    query=query.name,
                )
            try:
                resolved = pl.DataFrame(schema=schema).lazy().with_columns(expr.alias(name)).collect_schema()
            except pl.exceptions.PolarsError as e:
                raise ConfigurationError(f"Computed column '{name}' is invalid: {e}", query=query.name) from e
            schema[name] = resolved[name]
        return schema

    def _validate_aggregate(
        self,
        query: Query,
        name: str,
        spec: Aggregate,
        schema: Dict[str, pl.DataType],
    ) -> None:
        if spec.func == AggFunc.COUNT:
            return
        if spec.column is None:
            raise ConfigurationError(f"Aggregate '{name}' needs a source attribute", query=query.name)
        if spec.column not in schema:
            raise ConfigurationError(
                f"Aggregate '{name}' references unknown attribute '{spec.column}'",
                query=query.name,
            )

        dtype = schema[spec.column]
        if spec.func in NUMERIC_FUNCS and not dtype.is_numeric():
            raise ConfigurationError(
                f"Aggregate '{name}': {spec.func.value} needs a numeric attribute, "
                f"'{spec.column}' is {dtype}",
                query=query.name,
            )
        if spec.func in ORDERED_FUNCS and not (dtype.is_numeric() or dtype.is_temporal()):
            raise ConfigurationError(
                f"Aggregate '{name}': {spec.func.value} needs a numeric or date attribute, "
                f"'{spec.column}' is {dtype}",
                query=query.name,
            )

    def validate(self, query: Query) -> None:
        """
        Check a query against the table schema.

        Raises:
            ConfigurationError: unknown attribute or column, an aggregate over
                an attribute of the wrong type, a filter, derived or having
                expression that does not type-check, or a bad limit
        """
        if not query.aggregates:
            raise ConfigurationError("Query defines no aggregates", query=query.name)

        schema = self._row_schema(query)

        if query.filter is not None:
            unknown = self._referenced(query.filter) - set(schema)
            if unknown:
                raise ConfigurationError(f"Filter references unknown attributes: {sorted(unknown)}", query=query.name)

        unknown = set(query.group_by) - set(schema)
        if unknown:
            raise ConfigurationError(f"Group-by references unknown attributes: {sorted(unknown)}", query=query.name)

        available = set(query.group_by)
        for name, spec in query.aggregates.items():
            if name in available:
                raise ConfigurationError(f"Duplicate output column '{name}'", query=query.name)
            self._validate_aggregate(query, name, spec, schema)
            available.add(name)

        for name, expr in query.derived.items():
            unknown = self._referenced(expr) - available
            if unknown:
                raise ConfigurationError(
                    f"Derived column '{name}' references unknown columns: {sorted(unknown)}",
                    query=query.name,
                )
            available.add(name)

        if query.having is not None:
            unknown = self._referenced(query.having) - available
            if unknown:
                raise ConfigurationError(f"Having references unknown columns: {sorted(unknown)}", query=query.name)

        window = query.rank_window
        if window is not None:
            if window.order_by not in available:
                raise ConfigurationError(f"Rank window orders by unknown column '{window.order_by}'", query=query.name)
            unknown = set(window.partition_by) - set(query.group_by)
            if unknown:
                raise ConfigurationError(
                    f"Rank window partitions by non-key columns: {sorted(unknown)}",
                    query=query.name,
                )
            available.update([window.asc_column, window.desc_column])

        for key in query.order_by:
            if key.column not in available:
                raise ConfigurationError(f"Order-by references unknown column '{key.column}'", query=query.name)

        if query.limit is not None and query.limit < 0:
            raise ConfigurationError(f"Limit must be non-negative, got {query.limit}", query=query.name)

        # Dry run over an empty table with the same schema surfaces type errors
        try:
            self._aggregated(pl.DataFrame(schema=self.schema).lazy(), query).collect()
        except pl.exceptions.PolarsError as e:
            raise ConfigurationError(f"Query does not type-check: {e}", query=query.name) from e

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    @staticmethod
    def _aggregated(lf: pl.LazyFrame, query: Query) -> pl.LazyFrame:
        """Row columns, filter, grouping, derived columns and having"""
        if query.columns:
            lf = lf.with_columns(**query.columns)
        if query.filter is not None:
            lf = lf.filter(query.filter)

        aggs = [spec.to_expr(name) for name, spec in query.aggregates.items()]
        if query.group_by:
            lf = lf.group_by(list(query.group_by)).agg(aggs)
        else:
            # Single implicit group, one row even for an empty table
            lf = lf.select(aggs)

        # Derived columns may reference earlier derived columns
        for name, expr in query.derived.items():
            lf = lf.with_columns(expr.alias(name))

        if query.having is not None:
            lf = lf.filter(query.having)
        return lf

    @staticmethod
    def _rank(lf: pl.LazyFrame, window: RankWindow, group_by: Sequence[str]) -> pl.LazyFrame:
        """Add both-direction ranks; ties are broken by the group keys ascending"""
        keys = [k for k in group_by if k != window.order_by]
        position = pl.int_range(1, pl.len() + 1, dtype=pl.Int64)
        if window.partition_by:
            position = position.over(list(window.partition_by))

        for column, descending in ((window.asc_column, False), (window.desc_column, True)):
            lf = lf.sort(
                [window.order_by] + keys,
                descending=[descending] + [False] * len(keys),
                nulls_last=True,
            ).with_columns(position.alias(column))
        return lf

    @staticmethod
    def _sort(lf: pl.LazyFrame, order_by: Sequence[SortKey], group_by: Sequence[str]) -> pl.LazyFrame:
        """Sort by the requested keys, then by group keys ascending"""
        columns = [k.column for k in order_by]
        descending = [k.descending for k in order_by]
        for key in group_by:
            if key not in columns:
                columns.append(key)
                descending.append(False)

        if not columns:
            return lf
        return lf.sort(columns, descending=descending, nulls_last=True, maintain_order=True)

    def _check_deadline(self, query_name: str, started: float, timeout: Optional[float]) -> None:
        if timeout is None:
            return
        elapsed = time.monotonic() - started
        if elapsed >= timeout:
            logger.error("Query deadline exceeded", query=query_name, elapsed=elapsed, timeout=timeout)
            raise QueryTimeoutError(elapsed, timeout, query=query_name)

    def execute(self, query: Query, timeout: Optional[float] = None) -> QueryResult:
        """
        Run a query against the base table.

        Args:
            query: Query specification
            timeout: Deadline in seconds; defaults to the engine's deadline

        Returns:
            QueryResult with unrounded values in result order

        Raises:
            ConfigurationError: the query is invalid (nothing was scanned)
            QueryTimeoutError: the query ran past its deadline
        """
        self.validate(query)

        timeout = self.query_timeout_seconds if timeout is None else timeout
        started_at = datetime.utcnow()
        started = time.monotonic()

        lf = self._aggregated(self._frame.lazy(), query)

        if query.rank_window is not None:
            lf = self._rank(lf, query.rank_window, query.group_by)

        lf = self._sort(lf, query.order_by, query.group_by)

        if query.limit is not None:
            lf = lf.head(query.limit)

        frame = lf.collect()
        self._check_deadline(query.name, started, timeout)

        for name in query.derived:
            undefined = frame[name].null_count()
            if undefined:
                logger.warning(
                    "Derived column undefined",
                    query=query.name,
                    column=name,
                    cells=undefined,
                )

        duration = time.monotonic() - started
        logger.debug(
            "Query executed",
            query=query.name,
            rows=frame.height,
            duration_ms=round(duration * 1000, 2),
        )

        return QueryResult(
            name=query.name,
            frame=frame,
            rounded=tuple(query.rounded),
            started_at=started_at,
            duration_seconds=duration,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def top_bottom(
        self,
        query: Query,
        n: int,
        order_by: str,
        label_column: str = "category",
    ) -> QueryResult:
        """
        Top ``n`` and bottom ``n`` groups by ``order_by`` from one ranked pass.

        Rows are labelled ``TOP n`` / ``BOTTOM n``; a group lands in both
        halves when there are fewer than ``2n`` groups. Output order is the
        top half then the bottom half, each by ``order_by`` descending.
        """
        if n < 0:
            raise ConfigurationError(f"n must be non-negative, got {n}", query=query.name)

        window = RankWindow(order_by=order_by)
        ranked = self.execute(query.with_options(rank_window=window, order_by=(), limit=None))
        frame = ranked.frame

        top = frame.filter(pl.col(window.desc_column) <= n).sort(window.desc_column)
        bottom = frame.filter(pl.col(window.asc_column) <= n).sort(window.desc_column)

        combined = pl.concat([
            top.with_columns(pl.lit(f"TOP {n}").alias(label_column)),
            bottom.with_columns(pl.lit(f"BOTTOM {n}").alias(label_column)),
        ])

        return QueryResult(
            name=query.name,
            frame=combined,
            rounded=ranked.rounded,
            started_at=ranked.started_at,
            duration_seconds=ranked.duration_seconds,
        )

    def argmax(
        self,
        column: str,
        aggregate: Aggregate,
        filter: Optional[pl.Expr] = None,
    ) -> Optional[Any]:
        """
        Value of ``column`` whose group has the largest ``aggregate``.

        Ties go to the smallest key. Returns None when no rows match.
        """
        query = Query(
            name=f"argmax_{column}_{aggregate.func.value}_{aggregate.column or 'rows'}",
            group_by=(column,),
            filter=filter,
            aggregates={"_value": aggregate},
            order_by=(SortKey("_value", descending=True),),
            limit=1,
        )
        result = self.execute(query)
        if len(result) == 0:
            return None
        return result.frame[column][0]

    def key_set(self, query: Query, column: str) -> pl.Series:
        """Values of ``column`` produced by ``query``, in result order"""
        if column not in query.group_by:
            raise ConfigurationError(f"Key column '{column}' is not a group key", query=query.name)
        return self.execute(query).frame[column]

    def chain(self, first: Query, column: str, second: Query) -> QueryResult:
        """
        Two-phase query.

        ``first`` yields a key set on ``column``; ``second`` then runs over
        base rows whose ``column`` is in that set.
        """
        started = time.monotonic()
        keys = self.key_set(first, column)
        self._check_deadline(first.name, started, self.query_timeout_seconds)

        logger.debug("Chained key set", phase_one=first.name, phase_two=second.name, keys=keys.len())
        return self.execute(second.restrict_to(column, keys))
