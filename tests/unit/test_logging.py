"""Tests for structured logging module."""

import json

import pytest

from tinyagent.logging import bind_context, clear_context, configure_logging, get_logger


@pytest.fixture
def json_log_file(tmp_path):
    """Route logs to a JSON file for the duration of a test."""
    path = tmp_path / "tinyagent.log"
    configure_logging(log_level="DEBUG", log_format="json", log_file=str(path))
    yield path
    clear_context()
    configure_logging()


def read_events(path):
    return [json.loads(line) for line in path.read_text().splitlines() if line.startswith("{")]


class TestConfigureLogging:
    """Tests for logging configuration."""

    def test_json_output(self, json_log_file):
        """Test JSON lines carry the event, level, app and bound context."""
        logger = get_logger("tests.logging.json", component="executor")
        logger.info("workflow_started", workflow="research")

        events = read_events(json_log_file)
        assert len(events) == 1
        event = events[0]
        assert event["event"] == "workflow_started"
        assert event["level"] == "info"
        assert event["app"] == "tinyagent"
        assert event["component"] == "executor"
        assert event["workflow"] == "research"
        assert "timestamp" in event

    def test_context_binding(self, json_log_file):
        """Test run-scoped context is merged into every line."""
        bind_context(run_id="run-1")
        get_logger("tests.logging.context").info("node_started", node="plan")

        events = read_events(json_log_file)
        assert events[0]["run_id"] == "run-1"
        assert events[0]["node"] == "plan"

    def test_level_filtering(self, tmp_path):
        """Test records below the configured level are dropped."""
        path = tmp_path / "warn.log"
        configure_logging(log_level="WARNING", log_format="json", log_file=str(path))
        try:
            logger = get_logger("tests.logging.level")
            logger.info("quiet")
            logger.warning("loud")
        finally:
            configure_logging()

        assert [e["event"] for e in read_events(path)] == ["loud"]
