"""
Unit tests for logging and stage metrics.
"""

import json
import logging

import pytest

from cesdata.config import LoggingConfig
from cesdata.logging import CESLogger, FetchMetrics, StructuredLogFormatter


class TestFetchMetrics:
    """Tests for stage metrics collection."""

    def test_duration(self):
        metrics = FetchMetrics()
        assert metrics.duration >= 0

    def test_add_error(self):
        metrics = FetchMetrics()
        metrics.add_error("Test error", {"year": "2019"})

        assert len(metrics.errors) == 1
        assert metrics.errors[0]['message'] == "Test error"
        assert metrics.errors[0]['context'] == {"year": "2019"}

    def test_to_dict(self):
        metrics = FetchMetrics()
        metrics.rows = 100
        metrics.columns = 5
        metrics.finish()

        data = metrics.to_dict()

        assert data['rows'] == 100
        assert data['columns'] == 5
        assert 'duration_seconds' in data


class TestCESLogger:
    """Tests for the component logger."""

    def test_logger_creation(self):
        logger = CESLogger(name='cesdata.tests.creation')

        assert logger.name == 'cesdata.tests.creation'
        assert logger.logger is not None

    def test_stage_context_manager(self):
        logger = CESLogger(name='cesdata.tests.stage')

        with logger.stage('retrieve') as metrics:
            metrics.bytes_downloaded = 50

        assert logger.get_stage_metrics('retrieve').bytes_downloaded == 50
        assert logger.get_stage_metrics('retrieve').end_time is not None

    def test_stage_records_exception(self):
        logger = CESLogger(name='cesdata.tests.stage_error')

        with pytest.raises(RuntimeError):
            with logger.stage('parse'):
                raise RuntimeError("bad file")

        assert logger.metrics['parse'].errors[0]['message'] == "bad file"

    def test_warning_counted_in_current_stage(self):
        logger = CESLogger(name='cesdata.tests.warnings')

        with logger.stage('cache_store'):
            logger.warning("disk full", year="2019")

        assert logger.get_all_metrics()['cache_store']['warning_count'] == 1

    def test_current_metrics_only_inside_stage(self):
        logger = CESLogger(name='cesdata.tests.current')

        assert logger.current_metrics() is None
        with logger.stage('retrieve') as metrics:
            assert logger.current_metrics() is metrics
        assert logger.current_metrics() is None

    def test_warning_outside_stage_not_counted(self):
        logger = CESLogger(name='cesdata.tests.no_stage')
        with logger.stage('validate'):
            pass

        logger.warning("late warning")

        assert logger.get_all_metrics()['validate']['warning_count'] == 0

    def test_reset_metrics(self):
        logger = CESLogger(name='cesdata.tests.reset')
        with logger.stage('validate'):
            pass

        logger.reset_metrics()

        assert logger.get_all_metrics() == {}

    def test_quiet_when_not_verbose(self):
        logger = CESLogger.from_config('cesdata.tests.quiet', LoggingConfig(level='INFO'), verbose=False)
        assert logger.logger.level == logging.WARNING

    def test_extra_fields_reach_records(self, caplog):
        logger = CESLogger(name='cesdata.tests.extra')

        with caplog.at_level(logging.INFO, logger='cesdata.tests.extra'):
            logger.info("fetching", year="2019", variant="web")

        record = caplog.records[-1]
        assert record.year == "2019"
        assert record.variant == "web"


class TestStructuredLogFormatter:
    """Tests for JSON log output."""

    def test_format_includes_extras(self):
        record = logging.LogRecord(
            'cesdata', logging.INFO, __file__, 10, "Downloading", None, None,
        )
        record.year = "2021"
        record.url = "https://example.org"

        data = json.loads(StructuredLogFormatter().format(record))

        assert data['message'] == "Downloading"
        assert data['level'] == 'INFO'
        assert data['year'] == "2021"
        assert data['url'] == "https://example.org"
        assert 'variant' not in data
