"""
Unit Tests - Data Quality
"""
from datetime import date

import pytest
import polars as pl

from kms_analytics.data import orders_to_frame
from kms_analytics.quality.validators import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    create_kms_orders_validator,
)


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        """Test not null check with valid data"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        """Test not null check with null values"""
        df = pl.DataFrame({"id": [1, None, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1

    def test_unique_check_fails(self):
        """Test unique check with duplicates"""
        df = pl.DataFrame({"id": [1, 2, 1]})

        validator = DataValidator()
        validator.add_unique_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_range_check(self):
        """Test range check"""
        df = pl.DataFrame({"price": [10.0, 50.0, -5.0, 200.0]})

        validator = DataValidator()
        validator.add_range_check("price", min_value=0, max_value=100)

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        # Two values outside range: -5 and 200
        check = result.checks[0]
        assert check.failed_rows == 2

    def test_positive_check_ignores_nulls(self):
        """Nulls are not counted as negative"""
        df = pl.DataFrame({"sales": [1.0, None, 0.0]})

        result = DataValidator().add_positive_check("sales").validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.checks[0].name == "positive_sales"

    def test_enum_check(self):
        """Test enum/allowed values check"""
        df = pl.DataFrame({"ship_mode": ["Express Air", "Regular Air", "Pigeon"]})

        validator = DataValidator()
        validator.add_enum_check("ship_mode", ["Express Air", "Regular Air", "Delivery Truck"])

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED

    def test_date_order_check(self):
        """Test ship date before order date is flagged"""
        df = pl.DataFrame({
            "order_date": [date(2010, 1, 1), date(2010, 1, 5)],
            "ship_date": [date(2010, 1, 2), date(2010, 1, 4)],
        })

        result = DataValidator().add_date_order_check("order_date", "ship_date").validate(df)

        assert result.checks[0].failed_rows == 1

    def test_missing_column(self):
        """Test checks against a missing column fail"""
        df = pl.DataFrame({"id": [1]})

        result = DataValidator().add_not_null_check("sales").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert "not found" in result.checks[0].message

    def test_custom_check(self):
        """Test custom validation check"""
        df = pl.DataFrame({"total": [100, 200, 300]})

        validator = DataValidator()
        validator.add_custom_check(
            name="total_sum",
            check_func=lambda df: df["total"].sum() < 1000,
            message_on_fail="Sum exceeds 1000",
        )

        result = validator.validate(df)

        # Sum is 600, which is < 1000
        assert result.status == ValidationStatus.PASSED

    def test_warnings_are_partial(self):
        """Warning-level failures give a partial status"""
        df = pl.DataFrame({"sales": [-1.0]})

        result = DataValidator().add_positive_check("sales", severity=ValidationSeverity.WARNING).validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1

    def test_strict_mode(self):
        """Strict mode fails on warnings"""
        df = pl.DataFrame({"sales": [-1.0]})

        validator = DataValidator(strict_mode=True)
        validator.add_positive_check("sales", severity=ValidationSeverity.WARNING)

        assert validator.validate(df).status == ValidationStatus.FAILED


class TestKmsOrdersValidator:
    """Tests for the KMS order table validator"""

    def test_clean_table(self, sample_orders_df):
        """Test handcrafted orders pass every check"""
        result = create_kms_orders_validator().validate(sample_orders_df)

        assert result.status == ValidationStatus.PASSED
        assert result.success_rate == 100.0
        assert result.findings().height == 0

    def test_findings(self, sample_orders, order_factory):
        """Invariant violations become warning findings"""
        rows = sample_orders + [
            order_factory(6, sales=-10.0),
            order_factory(7, profit=None),
            order_factory(8, ship_mode="Pigeon"),
            order_factory(9, order_date=date(2010, 2, 1), ship_date=date(2010, 1, 1)),
        ]

        result = create_kms_orders_validator().validate(orders_to_frame(rows))
        findings = result.findings()

        assert result.status == ValidationStatus.PARTIAL
        assert set(findings["check"]) == {
            "positive_sales",
            "not_null_profit",
            "enum_ship_mode",
            "date_order_order_date_ship_date",
        }
        assert set(findings["severity"]) == {"warning"}
        assert findings["failed_rows"].to_list() == [1, 1, 1, 1]

    def test_duplicate_row_id_is_error(self, sample_orders, order_factory):
        """Duplicate row ids make the table unusable"""
        rows = sample_orders + [order_factory(1)]

        result = create_kms_orders_validator().validate(orders_to_frame(rows))

        assert result.status == ValidationStatus.FAILED
        assert "unique_row_id" in result.findings()["check"].to_list()

    def test_generated_table(self, generated_orders_df):
        """Test generated table has no error-level findings"""
        result = create_kms_orders_validator().validate(generated_orders_df)

        assert result.failed_checks == 0
