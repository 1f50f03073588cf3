"""
KMS Sales Analytics

Business-intelligence reports over the Kultra Mega Stores order table,
computed by an in-memory grouped-aggregation and ranking engine built on
polars.
"""

__version__ = "1.0.0"
