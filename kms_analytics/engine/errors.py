"""
Engine Errors
"""

from typing import Optional


class EngineError(Exception):
    """Base class for aggregation engine errors"""

    def __init__(self, message: str, query: Optional[str] = None):
        self.query = query
        super().__init__(f"[{query}] {message}" if query else message)


class ConfigurationError(EngineError):
    """Query specification is invalid; raised before any row is scanned"""


class QueryTimeoutError(EngineError):
    """Query ran past its deadline; no partial result is returned"""

    def __init__(self, elapsed: float, timeout: float, query: Optional[str] = None):
        self.elapsed = elapsed
        self.timeout = timeout
        super().__init__(f"exceeded deadline of {timeout:.3f}s (took {elapsed:.3f}s)", query=query)
