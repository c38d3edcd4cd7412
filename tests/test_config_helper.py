"""
Tests for settings, rule file loading and engine wiring
"""

import logging
from datetime import timedelta
from unittest.mock import patch

import pytest
import structlog

from pump_copilot.config_helper import (
    create_engine,
    create_repositories,
    create_services,
    load_rule_file,
    parse_rule_config,
)
from pump_copilot.exceptions import ConfigurationError
from pump_copilot.logger_config import (
    correlation_scope,
    setup_logging,
    setup_logging_from_settings,
)
from pump_copilot.models.alert_models import (
    AlertLevel,
    NotificationMethod,
    NotificationStatus,
    RuleType,
)
from pump_copilot.settings import (
    LoggingSettings,
    NotificationSettings,
    Settings,
    reload_settings,
)
from tests.fixtures.alert_fixtures import RecordingTransport
from tests.fixtures.sample_fixtures import make_series

RULES_YAML = """
rules:
  - rule_id: vib-high
    name: High vibration
    rule_type: THRESHOLD
    severity: CRITICAL
    conditions: {metric: max_vibration, operator: ">", threshold: 7.0}
    suppression_minutes: 60
    notification_methods: [EMAIL, WEBSOCKET]
  - rule_id: health
    name: Low health
    rule_type: HEALTH_SCORE
thresholds:
  PUMP-001: {vibration_mm_s: 3.8}
"""


class TestSettings:

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATION_MAX_RETRIES", "5")
        monkeypatch.setenv("ALERT_ADMIN_RECIPIENTS", "a@x.com, b@x.com")

        settings = reload_settings()

        assert settings.notifications.max_retries == 5
        assert settings.notifications.admin_recipients == ["a@x.com", "b@x.com"]

    def test_smtp_configured(self):
        assert not NotificationSettings(smtp_server="", smtp_user="", smtp_password="").smtp_configured
        assert NotificationSettings(
            smtp_server="smtp.example.com", smtp_user="u", smtp_password="p"
        ).smtp_configured

    def test_recipients_by_level(self):
        settings = NotificationSettings(
            admin_recipients=["admin"],
            maintenance_recipients=["maint"],
            monitoring_recipients=["mon"],
        )
        assert settings.recipients_by_level() == {
            "CRITICAL": ["admin", "maint"],
            "WARNING": ["maint"],
            "INFO": ["mon"],
        }


class TestRuleFiles:

    def test_load_rule_file(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(RULES_YAML, encoding="utf-8")

        rules, thresholds = load_rule_file(path)

        assert [r.rule_id for r in rules] == ["vib-high", "health"]
        vib = rules[0]
        assert vib.rule_type == RuleType.THRESHOLD
        assert vib.severity == AlertLevel.CRITICAL
        assert vib.notification_methods == (NotificationMethod.EMAIL, NotificationMethod.WEBSOCKET)
        assert rules[1].severity == AlertLevel.WARNING
        assert thresholds["PUMP-001"].vibration_mm_s == 3.8
        assert thresholds["PUMP-001"].runtime_minutes is None

    def test_empty_document(self):
        assert parse_rule_config(None) == ([], {})

    @pytest.mark.parametrize(
        "data",
        [
            ["not", "a", "mapping"],
            {"rules": [{"rule_id": "x", "name": "x", "rule_type": "THRESHOLD"}]},
            {
                "rules": [
                    {
                        "rule_id": "x",
                        "name": "x",
                        "rule_type": "THRESHOLD",
                        "conditions": {"metric": "m", "operator": "~", "threshold": 1},
                    }
                ]
            },
            {"rules": [{"rule_id": "x", "name": "x", "rule_type": "NOPE"}]},
            {
                "rules": [
                    {"rule_id": "x", "name": "x", "rule_type": "HEALTH_SCORE"},
                    {"rule_id": "x", "name": "y", "rule_type": "HEALTH_SCORE"},
                ]
            },
            {"thresholds": {"PUMP-001": {"vibration_mm_s": -1}}},
        ],
    )
    def test_invalid_configuration(self, data):
        with pytest.raises(ConfigurationError):
            parse_rule_config(data)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_rule_file(tmp_path / "absent.yaml")

    def test_bad_yaml(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("rules: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_rule_file(path)


class TestWiring:

    def test_services_share_repositories(self, clock):
        repos = create_repositories()
        services = create_services(repos, Settings(), RecordingTransport(), clock)

        assert services["alert_manager"].alert_store is repos["alerts"]
        assert services["alert_manager"].rule_engine is services["rule_engine"]
        assert services["dispatcher"].store is repos["notifications"]
        services["dispatcher"].shutdown()

    def test_engine_configures_logging_from_settings(self, clock):
        settings = Settings(logging=LoggingSettings(level="WARNING", json_output=True))

        with patch("pump_copilot.config_helper.setup_logging_from_settings") as setup:
            engine = create_engine(settings, transport=RecordingTransport(), clock=clock)
            engine.shutdown()
            create_engine(
                settings, transport=RecordingTransport(), clock=clock, configure_logging=False
            ).shutdown()

        setup.assert_called_once_with(settings.logging)

    def test_engine_end_to_end(self, tmp_path, clock):
        """Samples with a vibration spike raise a CRITICAL alert and notify"""
        path = tmp_path / "rules.yaml"
        path.write_text(RULES_YAML, encoding="utf-8")
        transport = RecordingTransport()
        engine = create_engine(Settings(), path, transport, clock)
        samples = make_series(40, vibration_mm_s=lambda i: 8.0 if i == 20 else 2.0)
        engine.sample_store.add_many(samples)

        try:
            report = engine.analyzer.analyze(
                "PUMP-001", samples[0].timestamp, samples[-1].timestamp
            )
        finally:
            engine.shutdown()

        assert report.to_context()["max_vibration"] == 8.0
        vibration_alerts = [a for a in engine.alert_store.find() if a.rule_id == "vib-high"]
        assert len(vibration_alerts) == 1
        assert vibration_alerts[0].severity == AlertLevel.CRITICAL

        tasks = engine.notification_store.query(alert_id=vibration_alerts[0].alert_id)
        assert sorted(t.channel.value for t in tasks) == ["EMAIL", "EMAIL", "WEBSOCKET"]
        assert all(t.status == NotificationStatus.SUCCESS for t in tasks)
        assert len(transport.sent) == len(engine.notification_store.query())


class TestLogging:

    def test_setup_logging(self, tmp_path):
        logger = setup_logging(level=logging.DEBUG, log_file=str(tmp_path / "logs" / "app.log"))
        assert logger.name == "pump_copilot"
        assert len(logger.handlers) == 2
        assert (tmp_path / "logs").is_dir()

    def test_setup_logging_from_settings(self, tmp_path):
        settings = LoggingSettings(
            level="debug", json_output=True, log_file=str(tmp_path / "engine.log")
        )

        logger = setup_logging_from_settings(settings)

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        assert (tmp_path / "engine.log").exists()

    def test_correlation_scope(self):
        with correlation_scope("batch-1") as cid:
            assert cid == "batch-1"
            assert structlog.contextvars.get_contextvars()["correlation_id"] == "batch-1"
        assert "correlation_id" not in structlog.contextvars.get_contextvars()

    def test_generated_correlation_id(self):
        with correlation_scope() as cid:
            assert len(cid) == 12
