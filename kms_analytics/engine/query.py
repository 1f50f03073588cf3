"""
Query Specification

Declarative description of one report query: a pre-aggregate filter, group
keys, aggregate columns, derived columns, ranking, ordering and a limit.
Queries are plain values; ``AggregationEngine`` validates and executes them.

Example:
    query = Query(
        name="category_sales",
        group_by=("product_category",),
        aggregates={
            "total_sales": Aggregate.sum("sales"),
            "order_count": Aggregate.count(),
        },
        order_by=(SortKey("total_sales", descending=True),),
        rounded=("total_sales",),
    )
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

import polars as pl


class AggFunc(str, Enum):
    """Supported aggregate functions"""
    SUM = "sum"
    AVG = "avg"
    COUNT = "count"
    COUNT_DISTINCT = "count_distinct"
    MIN = "min"
    MAX = "max"


# Functions whose source column must be numeric / numeric or temporal
NUMERIC_FUNCS = {AggFunc.SUM, AggFunc.AVG}
ORDERED_FUNCS = {AggFunc.MIN, AggFunc.MAX}


@dataclass(frozen=True)
class Aggregate:
    """One aggregate column: a function folded over a source attribute"""
    func: AggFunc
    column: Optional[str] = None

    @classmethod
    def sum(cls, column: str) -> "Aggregate":
        return cls(AggFunc.SUM, column)

    @classmethod
    def avg(cls, column: str) -> "Aggregate":
        return cls(AggFunc.AVG, column)

    @classmethod
    def count(cls) -> "Aggregate":
        """Count of all rows in the group"""
        return cls(AggFunc.COUNT)

    @classmethod
    def count_distinct(cls, column: str) -> "Aggregate":
        """Count of distinct non-null values in the group"""
        return cls(AggFunc.COUNT_DISTINCT, column)

    @classmethod
    def min(cls, column: str) -> "Aggregate":
        return cls(AggFunc.MIN, column)

    @classmethod
    def max(cls, column: str) -> "Aggregate":
        return cls(AggFunc.MAX, column)

    def to_expr(self, name: str) -> pl.Expr:
        """Polars aggregation expression aliased to ``name``"""
        if self.func == AggFunc.COUNT:
            return pl.len().cast(pl.Int64).alias(name)

        col = pl.col(self.column)
        if self.func == AggFunc.SUM:
            expr = col.sum()
        elif self.func == AggFunc.AVG:
            expr = col.mean()
        elif self.func == AggFunc.COUNT_DISTINCT:
            expr = col.drop_nulls().n_unique().cast(pl.Int64)
        elif self.func == AggFunc.MIN:
            expr = col.min()
        else:
            expr = col.max()
        return expr.alias(name)


@dataclass(frozen=True)
class SortKey:
    """Output column and direction"""
    column: str
    descending: bool = False


@dataclass(frozen=True)
class RankWindow:
    """
    Ascending and descending ranks of ``order_by`` within each partition.

    Ties are broken by the group key ascending, so each direction assigns
    1..N exactly once per partition.
    """
    order_by: str
    partition_by: Tuple[str, ...] = ()
    asc_column: str = "rank_asc"
    desc_column: str = "rank_desc"


@dataclass(frozen=True, eq=False)
class Query:
    """A grouped aggregation over the order table"""
    name: str
    aggregates: Dict[str, Aggregate]
    group_by: Tuple[str, ...] = ()
    filter: Optional[pl.Expr] = None
    columns: Dict[str, pl.Expr] = field(default_factory=dict)
    derived: Dict[str, pl.Expr] = field(default_factory=dict)
    having: Optional[pl.Expr] = None
    rank_window: Optional[RankWindow] = None
    order_by: Tuple[SortKey, ...] = ()
    limit: Optional[int] = None
    rounded: Tuple[str, ...] = ()
    description: str = ""

    @property
    def output_columns(self) -> Tuple[str, ...]:
        """Columns of the result, in order"""
        names = list(self.group_by) + list(self.aggregates) + list(self.derived)
        if self.rank_window is not None:
            names += [self.rank_window.asc_column, self.rank_window.desc_column]
        return tuple(names)

    def restrict_to(self, column: str, keys: pl.Series) -> "Query":
        """Copy of this query that only sees rows whose ``column`` is in ``keys``"""
        membership = pl.col(column).is_in(keys)
        combined = membership if self.filter is None else self.filter & membership
        return replace(self, filter=combined)

    def with_options(self, **changes) -> "Query":
        """Copy of this query with fields replaced"""
        return replace(self, **changes)


def ratio(numerator: str, denominator: str, scale: float = 1.0) -> pl.Expr:
    """
    ``numerator / denominator * scale``, null when the denominator is zero or null.
    """
    den = pl.col(denominator)
    return (
        pl.when(den.is_null() | (den == 0))
        .then(pl.lit(None, dtype=pl.Float64))
        .otherwise(pl.col(numerator) / den * scale)
    )


def sort_keys(*keys: Sequence) -> Tuple[SortKey, ...]:
    """Build sort keys from ``"col"`` or ``("col", descending)`` items"""
    result = []
    for key in keys:
        if isinstance(key, SortKey):
            result.append(key)
        elif isinstance(key, str):
            result.append(SortKey(key))
        else:
            result.append(SortKey(key[0], bool(key[1])))
    return tuple(result)
