"""Pytest configuration and fixtures for tinyagent tests.

This file contains global fixtures (sample tools, metrics isolation) and
pytest configuration. Test doubles live in tests/helpers.py.
"""

import os
from typing import Any

import pytest
from prometheus_client import REGISTRY
from pydantic import BaseModel

from tinyagent.tools.base import define_tool


class WeatherInput(BaseModel):
    city: str


class AddInput(BaseModel):
    a: int
    b: int


@pytest.fixture
def weather_tool():
    """Tool answering with a canned forecast."""

    @define_tool(input_model=WeatherInput)
    async def get_weather(input: WeatherInput) -> dict:
        """Current weather for a city."""
        return {"city": input.city, "temp_c": 21}

    return get_weather


@pytest.fixture
def add_tool():
    """Synchronous arithmetic tool."""

    @define_tool(name="add", description="Add two integers", input_model=AddInput)
    def add(input: AddInput) -> int:
        return input.a + input.b

    return add


@pytest.fixture
def failing_tool():
    """Tool whose body always raises."""

    @define_tool(name="explode", description="Always fails")
    def explode(input: Any) -> None:
        raise RuntimeError("boom")

    return explode


@pytest.fixture
def isolated_metrics_collector():
    """Provide a fresh MetricsCollector with its own Prometheus collectors.

    Unregisters every tinyagent_ collector and resets the singleton so the
    test reads only the metrics it produces.
    """
    from tinyagent import metrics as metrics_module
    from tinyagent.metrics import MetricsCollector

    for collector in list(REGISTRY._collector_to_names.keys()):
        names = REGISTRY._collector_to_names.get(collector, set())
        if any(name.startswith("tinyagent_") for name in names):
            try:
                REGISTRY.unregister(collector)
            except KeyError:
                pass

    MetricsCollector._instance = None
    collector = MetricsCollector()
    metrics_module._global_metrics = collector
    yield collector


# Pytest configuration hooks


def pytest_configure(config):
    """Configure pytest environment."""
    os.environ["TINYAGENT_ENV"] = "test"

    config.addinivalue_line("markers", "unit: unit tests that don't require external services")
    config.addinivalue_line("markers", "slow: tests that take a long time to run")


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on path."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
