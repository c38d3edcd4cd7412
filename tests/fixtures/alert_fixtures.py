"""
Alerting fixtures for testing
"""

from concurrent.futures import Executor, Future

import pytest

from pump_copilot.models.alert_models import (
    AlertLevel,
    AlertRule,
    NotificationMethod,
    RuleType,
)
from pump_copilot.repositories import (
    InMemoryAlertStore,
    InMemoryNotificationStore,
    InMemoryRuleStore,
)
from pump_copilot.services.alert_manager import AlertManager
from pump_copilot.services.notification_dispatcher import NotificationDispatcher
from pump_copilot.services.rule_engine import AlertRuleEngine
from pump_copilot.settings import AlertSettings, NotificationSettings


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread"""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class RecordingTransport:
    """Transport that records every send; outcomes are consumed in order"""

    def __init__(self, outcomes=None, default=True):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.sent = []

    def send(self, channel, recipient, subject, body):
        self.sent.append((channel, recipient, subject, body))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_rule(**overrides):
    values = dict(
        rule_id="vib-high",
        name="High vibration",
        rule_type=RuleType.THRESHOLD,
        severity=AlertLevel.CRITICAL,
        conditions={"metric": "max_vibration", "operator": ">", "threshold": 7.0},
        notification_methods=(NotificationMethod.EMAIL,),
    )
    values.update(overrides)
    return AlertRule(**values)


@pytest.fixture
def notification_settings():
    return NotificationSettings(
        max_retries=3,
        retry_delay_minutes=5,
        retry_sweep_interval_seconds=300,
        worker_count=1,
        admin_recipients=["admin@example.com"],
        maintenance_recipients=["maintenance@example.com"],
        monitoring_recipients=["monitoring@example.com"],
        breaker_failure_threshold=100,
        breaker_timeout_seconds=60.0,
    )


@pytest.fixture
def alert_settings():
    return AlertSettings(
        duplicate_window_minutes=60,
        duplicate_tolerance=0.05,
        retention_days=90,
        rule_check_interval_seconds=60,
        worker_count=2,
        analysis_window_hours=24,
        cleanup_interval_hours=24,
    )


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def notification_store():
    return InMemoryNotificationStore()


@pytest.fixture
def alert_store():
    return InMemoryAlertStore()


@pytest.fixture
def rule_store():
    return InMemoryRuleStore()


@pytest.fixture
def dispatcher(notification_store, transport, notification_settings, clock):
    return NotificationDispatcher(
        notification_store,
        transport,
        notification_settings,
        clock=clock,
        executor=InlineExecutor(),
    )


@pytest.fixture
def alert_manager(rule_store, alert_store, dispatcher, alert_settings, clock):
    return AlertManager(
        rule_store,
        alert_store,
        AlertRuleEngine(),
        dispatcher,
        alert_settings,
        clock=clock,
    )
