"""
Unit Tests - Configuration
"""
import io
import json
import logging

import pytest
import structlog
from pydantic import ValidationError

from kms_analytics.config import Settings
from kms_analytics.config.logging import configure_logging
from kms_analytics.config.settings import EngineSettings, ReportSettings


class TestSettings:
    """Tests for Settings"""

    def test_defaults(self, test_settings):
        """Test default report parameters"""
        assert test_settings.app_env == "testing"
        assert test_settings.reports.region_top_n == 3
        assert test_settings.reports.customer_limit == 10
        assert test_settings.engine.query_timeout_seconds is None

    def test_invalid_environment(self):
        """Test unknown environments are rejected"""
        with pytest.raises(ValidationError):
            Settings(app_env="moon")

    def test_output_format_normalized(self):
        """Test output format is lower-cased"""
        assert ReportSettings(output_format="PARQUET").output_format == "parquet"

        with pytest.raises(ValidationError):
            ReportSettings(output_format="xlsx")

    def test_env_override(self, monkeypatch):
        """Test section settings read their prefixed variables"""
        monkeypatch.setenv("REPORT_CUSTOMER_LIMIT", "25")
        monkeypatch.setenv("ENGINE_QUERY_TIMEOUT_SECONDS", "1.5")

        assert ReportSettings().customer_limit == 25
        assert EngineSettings().query_timeout_seconds == 1.5

    def test_negative_timeout_rejected(self):
        """Test negative deadlines are invalid"""
        with pytest.raises(ValidationError):
            EngineSettings(query_timeout_seconds=-1)


@pytest.fixture
def root_logger():
    """Root logger restored after the test"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


class TestLogging:
    """Tests for configure_logging"""

    def test_single_handler(self, root_logger):
        """Repeated configuration keeps one handler at the requested level"""
        configure_logging("debug", "text", stream=io.StringIO())
        configure_logging("warning", "text", stream=io.StringIO())

        assert len(root_logger.handlers) == 1
        assert root_logger.level == logging.WARNING
        assert root_logger.handlers[0].level == logging.WARNING

    def test_json_lines(self, root_logger):
        """JSON format writes one object per event"""
        stream = io.StringIO()
        configure_logging("INFO", "json", stream=stream)

        structlog.get_logger("kms_analytics.tests").warning("Report failed", report="category_sales")

        events = [json.loads(line) for line in stream.getvalue().splitlines()]
        assert events[0]["event"] == "Logging configured"
        assert events[-1]["event"] == "Report failed"
        assert events[-1]["report"] == "category_sales"
        assert events[-1]["level"] == "warning"

    def test_level_filters(self, root_logger):
        """Events below the level are dropped"""
        stream = io.StringIO()
        configure_logging("ERROR", "json", stream=stream)

        structlog.get_logger("kms_analytics.tests").info("Query executed")

        assert stream.getvalue() == ""
