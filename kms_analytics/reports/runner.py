"""
Report Runner

Runs the KMS report catalog against an ``AggregationEngine`` and collects the
results into one batch.

Every report is isolated: a failing report is logged and recorded in the
batch errors, and the remaining reports still run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import polars as pl
import structlog

from kms_analytics.config import get_settings
from kms_analytics.config.settings import ReportSettings
from kms_analytics.engine import Aggregate, AggregationEngine, QueryResult
from . import catalog

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass
class ReportBatchResult:
    """Result of a batch report run"""
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    results: Dict[str, QueryResult] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def write(self, output_dir: Optional[str] = None, file_format: Optional[str] = None) -> List[Path]:
        """Write every result, rounded, to ``output_dir``; returns the written paths"""
        out = Path(output_dir or settings.reports.output_dir)
        fmt = (file_format or settings.reports.output_format).lower()
        out.mkdir(parents=True, exist_ok=True)

        paths = []
        for name, result in self.results.items():
            path = out / f"{name}.{fmt}"
            frame = result.to_frame()
            if fmt == "parquet":
                frame.write_parquet(path)
            else:
                frame.write_csv(path)
            paths.append(path)

        logger.info(f"Written {len(paths)} reports to {out}", format=fmt)
        return paths


class ReportRunner:
    """
    KMS report catalog orchestrator.

    Each public report method returns a ``QueryResult``; ``run_all`` runs
    them in catalog order.

    Example:
        runner = ReportRunner(AggregationEngine(orders_df))
        batch = runner.run_all()
        batch.results["category_sales"].rows()
    """

    def __init__(self, engine: AggregationEngine, config: Optional[ReportSettings] = None):
        self.engine = engine
        self.config = config or settings.reports
        self._reports: Dict[str, Callable[[], QueryResult]] = {
            # Case scenario I
            "category_sales": self.category_sales,
            "top_category": self.top_category,
            "region_top_bottom": self.region_top_bottom,
            "ontario_appliances": self.ontario_appliances,
            "ontario_top_appliances": self.ontario_top_appliances,
            "bottom_customers": self.bottom_customers,
            "bottom_customer_patterns": self.bottom_customer_patterns,
            "shipping_cost_by_mode": self.shipping_cost_by_mode,
            "shipping_cost_efficiency": self.shipping_cost_efficiency,
            # Case scenario II
            "top_customers": self.top_customers,
            "top_customer_patterns": self.top_customer_patterns,
            "top_small_business_customer": self.top_small_business_customer,
            "small_business_leaders": self.small_business_leaders,
            "small_business_breakdown": self.small_business_breakdown,
            "top_corporate_customer": self.top_corporate_customer,
            "corporate_leaders": self.corporate_leaders,
            "corporate_yearly_breakdown": self.corporate_yearly_breakdown,
            "top_consumer_customer": self.top_consumer_customer,
            "consumer_leaders": self.consumer_leaders,
            "loss_customers": self.loss_customers,
            "loss_by_segment": self.loss_by_segment,
            "loss_summary": self.loss_summary,
            "priority_shipping": self.priority_shipping,
            "priority_shipping_efficiency": self.priority_shipping_efficiency,
            "shipping_recommendations": self.shipping_recommendations,
            # Summary
            "overall_metrics": self.overall_metrics,
            "key_findings": self.key_findings,
            "segment_performance": self.segment_performance,
            "regional_performance": self.regional_performance,
            # Data quality
            "data_quality_checks": self.data_quality_checks,
            "date_range_validation": self.date_range_validation,
        }

    @property
    def report_names(self) -> List[str]:
        return list(self._reports)

    def run(self, name: str) -> QueryResult:
        """Run one report by name"""
        if name not in self._reports:
            raise KeyError(f"Unknown report: {name}")
        return self._reports[name]()

    def run_all(self, names: Optional[Sequence[str]] = None) -> ReportBatchResult:
        """
        Run reports in catalog order.

        Args:
            names: Subset of report names to run (default: all)

        Returns:
            ReportBatchResult with one entry per report in results or errors
        """
        started_at = datetime.utcnow()
        selected = list(names) if names else self.report_names
        results: Dict[str, QueryResult] = {}
        errors: Dict[str, str] = {}

        logger.info(f"Starting report batch with {len(selected)} reports", rows=len(self.engine))

        for name in selected:
            try:
                result = self.run(name)
            except Exception as e:
                logger.error(f"Report {name} failed: {e}")
                errors[name] = str(e)
                continue

            results[name] = result
            logger.info(f"Report {name} complete", rows=len(result))

        completed_at = datetime.utcnow()
        batch = ReportBatchResult(
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
            results=results,
            errors=errors,
        )

        logger.info(
            f"Report batch complete: {batch.succeeded} succeeded, {batch.failed} failed, "
            f"duration: {batch.duration_seconds:.2f}s"
        )
        return batch

    @staticmethod
    def _single_row(name: str, data: Dict[str, list], rounded: Sequence[str] = ()) -> QueryResult:
        return QueryResult(name=name, frame=pl.DataFrame(data), rounded=tuple(rounded))

    @staticmethod
    def _renamed(result: QueryResult, name: str) -> QueryResult:
        return QueryResult(
            name=name,
            frame=result.frame,
            rounded=result.rounded,
            started_at=result.started_at,
            duration_seconds=result.duration_seconds,
        )

    # =========================================================================
    # CASE SCENARIO I
    # =========================================================================

    def category_sales(self) -> QueryResult:
        return self.engine.execute(catalog.category_sales())

    def top_category(self) -> QueryResult:
        """Q1 answer: the category with the highest sales"""
        top = self.engine.argmax("product_category", Aggregate.sum("sales"))
        return self._single_row("top_category", {"product_category": pl.Series([top], dtype=pl.Utf8)})

    def region_top_bottom(self) -> QueryResult:
        return self.engine.top_bottom(catalog.region_sales(), self.config.region_top_n, order_by="total_sales")

    def ontario_appliances(self) -> QueryResult:
        return self.engine.execute(catalog.ontario_appliances())

    def ontario_top_appliances(self) -> QueryResult:
        return self.engine.execute(catalog.ontario_top_appliances(self.config.leaderboard_limit))

    def bottom_customers(self) -> QueryResult:
        return self.engine.execute(catalog.bottom_customers(self.config.customer_limit))

    def bottom_customer_patterns(self) -> QueryResult:
        return self.engine.chain(
            catalog.bottom_customer_keys(self.config.customer_limit),
            "customer_name",
            catalog.bottom_customer_patterns(),
        )

    def shipping_cost_by_mode(self) -> QueryResult:
        return self.engine.execute(catalog.shipping_cost_by_mode())

    def shipping_cost_efficiency(self) -> QueryResult:
        return self.engine.execute(catalog.shipping_cost_efficiency())

    # =========================================================================
    # CASE SCENARIO II
    # =========================================================================

    def top_customers(self) -> QueryResult:
        return self.engine.execute(catalog.top_customers(self.config.customer_limit))

    def top_customer_patterns(self) -> QueryResult:
        return self.engine.chain(
            catalog.top_customer_keys(self.config.customer_limit),
            "customer_name",
            catalog.top_customer_patterns(),
        )

    def top_small_business_customer(self) -> QueryResult:
        return self._renamed(
            self.engine.execute(catalog.small_business_leaders(1)),
            "top_small_business_customer",
        )

    def small_business_leaders(self) -> QueryResult:
        return self.engine.execute(catalog.small_business_leaders(self.config.leaderboard_limit))

    def small_business_breakdown(self) -> QueryResult:
        return self.engine.chain(
            catalog.small_business_keys(),
            "customer_name",
            catalog.category_breakdown("small_business_breakdown"),
        )

    def _corporate_leaders(self, limit: int) -> QueryResult:
        return self.engine.execute(
            catalog.corporate_leaders(limit, self.config.corporate_year_start, self.config.corporate_year_end)
        )

    def top_corporate_customer(self) -> QueryResult:
        return self._renamed(self._corporate_leaders(1), "top_corporate_customer")

    def corporate_leaders(self) -> QueryResult:
        return self._corporate_leaders(self.config.leaderboard_limit)

    def corporate_yearly_breakdown(self) -> QueryResult:
        return self.engine.chain(catalog.corporate_keys(), "customer_name", catalog.yearly_breakdown())

    def top_consumer_customer(self) -> QueryResult:
        return self._renamed(self.engine.execute(catalog.consumer_leaders(1)), "top_consumer_customer")

    def consumer_leaders(self) -> QueryResult:
        return self.engine.execute(catalog.consumer_leaders(self.config.leaderboard_limit))

    def loss_customers(self) -> QueryResult:
        return self.engine.execute(catalog.loss_customers(self.config.customer_limit))

    def loss_by_segment(self) -> QueryResult:
        return self.engine.execute(catalog.loss_by_segment())

    def loss_summary(self) -> QueryResult:
        total_rows = self.engine.execute(catalog.row_count("all_rows")).frame["value"][0]
        return self.engine.execute(catalog.loss_summary(total_rows))

    def priority_shipping(self) -> QueryResult:
        return self.engine.execute(catalog.priority_shipping())

    def priority_shipping_efficiency(self) -> QueryResult:
        return self.engine.execute(catalog.priority_shipping_efficiency())

    def shipping_recommendations(self) -> QueryResult:
        """Q11: How often urgent orders fly and low-priority orders go by truck"""
        urgent = self.engine.execute(catalog.urgent_by_express()).frame["current_percentage"][0]
        low = self.engine.execute(catalog.low_by_truck()).frame["current_percentage"][0]
        return self._single_row(
            "shipping_recommendations",
            {
                "metric": [
                    "Critical/High Priority using Express Air",
                    "Low Priority using Delivery Truck",
                ],
                "current_percentage": pl.Series([urgent, low], dtype=pl.Float64),
                "recommendation": ["Should be >50%", "Should be >30%"],
            },
            rounded=("current_percentage",),
        )

    # =========================================================================
    # SUMMARY
    # =========================================================================

    def overall_metrics(self) -> QueryResult:
        return self.engine.execute(catalog.overall_metrics())

    def key_findings(self) -> QueryResult:
        """One-row summary of the leading category, region, segment, ship mode and customer"""
        sales = Aggregate.sum("sales")
        findings = {
            "top_product_category": self.engine.argmax("product_category", sales),
            "top_region": self.engine.argmax("region", sales),
            "top_customer_segment": self.engine.argmax("customer_segment", sales),
            "most_expensive_shipping": self.engine.argmax("ship_mode", Aggregate.sum("shipping_cost")),
            "top_customer": self.engine.argmax("customer_name", sales),
        }
        return self._single_row(
            "key_findings",
            {name: pl.Series([value], dtype=pl.Utf8) for name, value in findings.items()},
        )

    def segment_performance(self) -> QueryResult:
        return self.engine.execute(catalog.segment_performance())

    def regional_performance(self) -> QueryResult:
        return self.engine.execute(catalog.regional_performance())

    # =========================================================================
    # DATA QUALITY
    # =========================================================================

    def data_quality_checks(self) -> QueryResult:
        """Counts of rows violating the sales and profit expectations"""
        metrics = []
        values = []
        for metric, condition in catalog.DATA_QUALITY_METRICS:
            query = catalog.row_count("data_quality_checks", condition)
            metrics.append(metric)
            values.append(self.engine.execute(query).frame["value"][0])

        return self._single_row(
            "data_quality_checks",
            {"metric": metrics, "value": pl.Series(values, dtype=pl.Int64)},
        )

    def date_range_validation(self) -> QueryResult:
        return self.engine.execute(catalog.date_range_validation())
