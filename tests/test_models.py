"""
Tests for the data models
"""

import re
from datetime import datetime

from pump_copilot.models.alert_models import (
    AlertLevel,
    AlertRecord,
    AlertStatus,
    NotificationChannel,
    NotificationMethod,
    NotificationStatus,
    NotificationTask,
    new_alert_id,
)
from pump_copilot.models.pump_models import (
    AnalysisReport,
    AnalysisStatus,
    AnalysisType,
    Finding,
    PerformanceScores,
    RiskLevel,
    Sample,
)
from tests.fixtures.alert_fixtures import make_rule
from tests.fixtures.sample_fixtures import BASE_TIME


class TestSample:

    def test_from_dict_ignores_unknown_keys(self):
        sample = Sample.from_dict(
            {
                "device_id": "PUMP-001",
                "timestamp": "2025-06-01T08:00:00",
                "vibration_mm_s": 2.5,
                "firmware": "1.2.3",
            }
        )
        assert sample.timestamp == BASE_TIME
        assert sample.vibration_mm_s == 2.5
        assert sample.power_kw is None

    def test_fault_code_must_be_non_blank(self):
        assert Sample("P", BASE_TIME, fault_code="E1").has_fault
        assert not Sample("P", BASE_TIME, fault_code="  ").has_fault
        assert not Sample("P", BASE_TIME).has_fault

    def test_to_dict(self):
        assert Sample("P", BASE_TIME).to_dict()["timestamp"] == "2025-06-01T08:00:00"


class TestAnalysisReport:

    def test_context_contains_only_computed_metrics(self):
        report = AnalysisReport("a1", "PUMP-001", BASE_TIME, AnalysisStatus.NO_DATA)
        assert set(report.to_context()) == {"health_score", "confidence_score"}

    def test_context_from_full_report(self):
        report = AnalysisReport(
            "a1",
            "PUMP-001",
            BASE_TIME,
            AnalysisStatus.SUCCESS,
            findings=[
                Finding(AnalysisType.ANOMALY_CLASSIFICATION, 3, 0.8, "x", detected_value=12.5)
            ],
            scores=PerformanceScores(90.0, 60.0, 90.0),
            overall_health_score=75.0,
            risk_level=RiskLevel.HIGH,
        )
        context = report.to_context()
        assert context["anomaly_rate"] == 12.5
        assert context["performance_score"] == 80.0
        assert context["risk_level"] == 3.0
        assert "failure_probability" not in context
        assert report.to_dict()["findings"][0]["analysis_type"] == "anomaly_classification"


class TestAlertModels:

    def test_all_expands_to_person_channels(self):
        assert NotificationMethod.ALL.channels() == [
            NotificationChannel.EMAIL,
            NotificationChannel.SMS,
            NotificationChannel.WEBSOCKET,
        ]

    def test_rule_channels_are_distinct(self):
        rule = make_rule(
            notification_methods=(NotificationMethod.EMAIL, NotificationMethod.ALL)
        )
        assert rule.channels() == [
            NotificationChannel.EMAIL,
            NotificationChannel.SMS,
            NotificationChannel.WEBSOCKET,
        ]

    def test_alert_id_format(self):
        alert_id = new_alert_id(datetime(2025, 6, 1, 8, 0, 0))
        assert re.fullmatch(r"ALERT_\d+_[0-9a-f]{8}", alert_id)

    def test_alert_transitions(self):
        record = AlertRecord("A", "r", "d", AlertLevel.INFO, "t", "b", BASE_TIME)
        assert record.can_transition_to(AlertStatus.ACKNOWLEDGED)
        assert record.can_transition_to(AlertStatus.FALSE_POSITIVE)
        record.status = AlertStatus.RESOLVED
        assert not record.can_transition_to(AlertStatus.ACTIVE)

    def test_notification_transitions(self):
        task = NotificationTask("A", NotificationChannel.SMS, "r", "s", "b", BASE_TIME)
        assert task.can_transition_to(NotificationStatus.SENDING)
        assert not task.can_transition_to(NotificationStatus.SUCCESS)
        task.status = NotificationStatus.SUCCESS
        assert not task.can_transition_to(NotificationStatus.RETRY)
