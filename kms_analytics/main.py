"""
Report Run Entry Point

Generates a KMS-shaped sample table, validates it, runs the report catalog
and writes each report to disk.

Usage:
    kms-reports
    kms-reports --rows 2000 --seed 7 --report category_sales --report key_findings
    python -m kms_analytics --format parquet --output-dir ./out
"""

import argparse
import sys
from typing import List, Optional

import polars as pl
import structlog

from kms_analytics.config import get_settings
from kms_analytics.config.logging import configure_logging
from kms_analytics.data import OrderGenerator
from kms_analytics.engine import AggregationEngine, QueryResult
from kms_analytics.quality import ValidationStatus, create_kms_orders_validator
from kms_analytics.reports import ReportRunner

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser"""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="kms-reports",
        description="KMS sales analytics report run",
    )
    parser.add_argument(
        "--rows",
        type=int,
        default=settings.data.sample_rows,
        help=f"Rows in the generated table (default: {settings.data.sample_rows})",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=settings.data.seed,
        help=f"Random seed for the generated table (default: {settings.data.seed})",
    )
    parser.add_argument(
        "--report",
        action="append",
        dest="reports",
        default=None,
        help="Report to run; repeat for several (default: all)",
    )
    parser.add_argument(
        "--output-dir",
        default=settings.reports.output_dir,
        help=f"Directory for report files (default: {settings.reports.output_dir})",
    )
    parser.add_argument(
        "--format",
        choices=["csv", "parquet"],
        default=settings.reports.output_format,
        help="Report file format",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.engine.query_timeout_seconds,
        help="Per-query deadline in seconds",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Override log format",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List report names and exit",
    )
    return parser


def validate_orders(orders_df: pl.DataFrame) -> QueryResult:
    """Run the order-table checks; failed checks come back as a report"""
    validation = create_kms_orders_validator().validate(orders_df)
    findings = validation.findings()
    if validation.status != ValidationStatus.PASSED:
        logger.warning(
            "Data-quality findings",
            status=validation.status.value,
            findings=findings.to_dicts(),
        )
    return QueryResult(name="data_quality_findings", frame=findings)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the report batch; returns the process exit code"""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    if args.list:
        for name in ReportRunner(AggregationEngine([])).report_names:
            print(name)
        return 0

    orders_df = OrderGenerator(seed=args.seed).generate(n_rows=args.rows)

    findings = validate_orders(orders_df)

    engine = AggregationEngine(orders_df, query_timeout_seconds=args.timeout)
    runner = ReportRunner(engine)

    unknown = sorted(set(args.reports or []) - set(runner.report_names))
    if unknown:
        logger.error("Unknown reports requested", reports=unknown)
        return 2

    batch = runner.run_all(args.reports)
    batch.results[findings.name] = findings
    batch.write(args.output_dir, args.format)

    return 1 if batch.errors else 0


if __name__ == "__main__":
    sys.exit(main())
