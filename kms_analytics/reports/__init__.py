"""
Report Catalog Module
"""
from .runner import ReportBatchResult, ReportRunner

__all__ = [
    "ReportBatchResult",
    "ReportRunner",
]
