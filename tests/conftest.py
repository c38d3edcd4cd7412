"""
Pytest Configuration for Pump Copilot Tests

Circuit breakers are process-wide; each test starts with a clean registry.
"""

import pytest

from pump_copilot.circuit_breaker import reset_circuit_breakers

# Import all fixtures
from tests.fixtures.alert_fixtures import *  # noqa
from tests.fixtures.sample_fixtures import *  # noqa


@pytest.fixture(autouse=True)
def clean_circuit_breakers():
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()
