"""
Data Validation Module

Rule-based data quality checks over the order table.

Failed checks are findings, not exceptions: a report run keeps going and the
findings are available as a DataFrame next to the reports.

Features:
- Null checks
- Uniqueness checks
- Range/boundary checks
- Allowed-value checks
- Date ordering checks
- Custom business rules
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import polars as pl
import structlog

from kms_analytics.data.models import CustomerSegment, OrderPriority, ShipMode

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Table is unusable for reporting
    WARNING = "warning"  # Data-quality finding, reports still run
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    def findings(self) -> pl.DataFrame:
        """Failed checks as a DataFrame (check, severity, failed_rows, total_rows, message)"""
        failed = [c for c in self.checks if not c.passed]
        return pl.DataFrame(
            {
                "check": [c.name for c in failed],
                "severity": [c.severity.value for c in failed],
                "failed_rows": [c.failed_rows for c in failed],
                "total_rows": [c.total_rows for c in failed],
                "message": [c.message for c in failed],
            },
            schema={
                "check": pl.Utf8,
                "severity": pl.Utf8,
                "failed_rows": pl.Int64,
                "total_rows": pl.Int64,
                "message": pl.Utf8,
            },
        )


class DataValidator:
    """
    Data validator with a fluent check suite.

    Example:
        validator = DataValidator()
        validator.add_not_null_check("sales")
        validator.add_range_check("shipping_cost", min_value=0)
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def reset(self) -> None:
        """Reset validator state"""
        self._checks = []

    @staticmethod
    def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
        return ValidationCheck(
            name=name,
            passed=False,
            severity=severity,
            message=f"Column '{column}' not found",
        )

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return self._missing_column(f"not_null_{column}", column, severity)

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=f"not_null_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of column values"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return self._missing_column(f"unique_{column}", column, severity)

            total = len(df)
            unique_count = df[column].n_unique()
            duplicate_count = total - unique_count
            passed = duplicate_count == 0

            return ValidationCheck(
                name=f"unique_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {duplicate_count} duplicate values" if not passed else f"Column '{column}' values are unique",
                details={"unique_count": unique_count, "duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
        name: Optional[str] = None,
    ) -> "DataValidator":
        """Add check for values within specified range (nulls are not counted)"""
        check_name = name or f"range_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return self._missing_column(check_name, column, severity)

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=check_name,
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            # Combine conditions with OR
            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined).height
            total = len(df)
            passed = out_of_range == 0

            return ValidationCheck(
                name=check_name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_positive_check(
        self,
        column: str,
        allow_zero: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for non-negative (or strictly positive) values"""
        min_val = 0 if allow_zero else 0.0001
        return self.add_range_check(column, min_value=min_val, severity=severity, name=f"positive_{column}")

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values in allowed set"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return self._missing_column(f"enum_{column}", column, severity)

            invalid = df.filter(
                ~pl.col(column).is_in(allowed_values) & pl.col(column).is_not_null()
            ).height
            total = len(df)
            passed = invalid == 0

            return ValidationCheck(
                name=f"enum_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {invalid} invalid values" if not passed else "All values are valid",
                details={"allowed_values": allowed_values, "invalid_count": invalid},
                failed_rows=invalid,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_date_order_check(
        self,
        earlier: str,
        later: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that ``earlier`` is not after ``later`` on every row"""
        check_name = f"date_order_{earlier}_{later}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            for column in (earlier, later):
                if column not in df.columns:
                    return self._missing_column(check_name, column, severity)

            inverted = df.filter(pl.col(earlier) > pl.col(later)).height
            total = len(df)
            passed = inverted == 0

            return ValidationCheck(
                name=check_name,
                passed=passed,
                severity=severity,
                message=f"{inverted} rows have '{earlier}' after '{later}'" if not passed else "Dates are ordered",
                details={"inverted_count": inverted},
                failed_rows=inverted,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add custom validation check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
            except Exception as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {str(e)}",
                )
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        logger.info(f"Running {len(self._checks)} validation checks on {len(df)} rows")

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    message=result.message,
                    severity=result.severity.value,
                )

        completed_at = datetime.utcnow()

        # Calculate summary
        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        # Determine overall status
        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        validation_result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info(
            f"Validation complete: {status.value}",
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return validation_result


def create_kms_orders_validator() -> DataValidator:
    """Create pre-configured validator for the KMS order table"""
    warning = ValidationSeverity.WARNING
    return (
        DataValidator()
        .add_not_null_check("row_id")
        .add_unique_check("row_id")
        .add_not_null_check("order_date")
        .add_not_null_check("sales", severity=warning)
        .add_positive_check("sales", severity=warning)
        .add_not_null_check("profit", severity=warning)
        .add_not_null_check("shipping_cost", severity=warning)
        .add_positive_check("shipping_cost", severity=warning)
        .add_range_check("order_quantity", min_value=0, severity=warning)
        .add_date_order_check("order_date", "ship_date", severity=warning)
        .add_enum_check("order_priority", [p.value for p in OrderPriority], severity=warning)
        .add_enum_check("ship_mode", [m.value for m in ShipMode], severity=warning)
        .add_enum_check("customer_segment", [s.value for s in CustomerSegment], severity=warning)
    )
