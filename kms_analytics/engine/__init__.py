"""
Aggregation Engine Module
"""
from .errors import ConfigurationError, EngineError, QueryTimeoutError
from .executor import AggregationEngine, QueryResult
from .query import Aggregate, AggFunc, Query, RankWindow, SortKey, ratio, sort_keys
from .rounding import round_money, sum_then_round

__all__ = [
    "ConfigurationError",
    "EngineError",
    "QueryTimeoutError",
    "AggregationEngine",
    "QueryResult",
    "Aggregate",
    "AggFunc",
    "Query",
    "RankWindow",
    "SortKey",
    "ratio",
    "sort_keys",
    "round_money",
    "sum_then_round",
]
