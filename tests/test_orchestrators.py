"""
Tests for the analyzer, the batch orchestrator and the alert scheduler
"""

import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
import structlog

from pump_copilot.models.pump_models import (
    AnalysisReport,
    AnalysisStatus,
    AnalysisType,
    Finding,
    PerformanceScores,
    Prediction,
    RiskLevel,
)
from pump_copilot.orchestrators import (
    AlertScheduler,
    AnalysisOrchestrator,
    OrchestratorConfig,
    PumpAnalyzer,
)
from pump_copilot.orchestrators.pump_analyzer import (
    overall_confidence,
    overall_health,
    risk_level,
)
from pump_copilot.repositories import InMemorySampleStore
from tests.fixtures.sample_fixtures import BASE_TIME, HEALTHY_THRESHOLDS, make_series

START = BASE_TIME
END = BASE_TIME + timedelta(hours=7)


def finding(severity, confidence=1.0):
    return Finding(AnalysisType.POWER, severity, confidence, "x")


def prediction(probability):
    return Prediction({"motor": probability}, probability, 10, BASE_TIME)


class TestReportScoring:

    def test_overall_health(self):
        assert overall_health([finding(3)], None) == pytest.approx(70.0)
        assert overall_health([finding(3)], PerformanceScores(90, 90, 90)) == pytest.approx(80.0)
        assert overall_health([finding(4)] * 3, None) == 0.0

    def test_risk_level(self):
        assert risk_level([finding(4)], None) == RiskLevel.CRITICAL
        assert risk_level([], prediction(0.85)) == RiskLevel.CRITICAL
        assert risk_level([finding(3)], None) == RiskLevel.HIGH
        assert risk_level([], prediction(0.7)) == RiskLevel.HIGH
        assert risk_level([finding(2)], prediction(0.4)) == RiskLevel.MEDIUM
        assert risk_level([finding(1)], prediction(0.1)) == RiskLevel.LOW

    def test_overall_confidence(self):
        assert overall_confidence([]) == pytest.approx(0.6)
        assert overall_confidence([finding(1, 0.9), finding(1, 0.5)]) == pytest.approx(0.7)


class TestPumpAnalyzer:

    @pytest.fixture
    def store(self):
        return InMemorySampleStore(make_series(40))

    def test_healthy_pump(self, store, clock):
        analyzer = PumpAnalyzer(
            store, thresholds={"PUMP-001": HEALTHY_THRESHOLDS}, clock=clock
        )

        report = analyzer.analyze("PUMP-001", START, END)

        assert report.status == AnalysisStatus.SUCCESS
        assert len(report.findings) == 6
        assert report.overall_health_score == pytest.approx(100.0)
        assert report.risk_level == RiskLevel.LOW
        assert report.prediction.remaining_useful_life_days == 28
        assert report.plan.recommended_time == clock.now + timedelta(days=14)
        assert report.analysis_time == clock.now
        assert report.processing_time_ms >= 0

    def test_default_thresholds_flag_off_target_pump(self, store, clock):
        report = PumpAnalyzer(store, clock=clock).analyze("PUMP-001", START, END)
        assert report.finding(AnalysisType.RUNTIME).severity == 4
        assert report.risk_level == RiskLevel.CRITICAL

    def test_no_data(self, store, clock):
        report = PumpAnalyzer(store, clock=clock).analyze("PUMP-404", START, END)
        assert report.status == AnalysisStatus.NO_DATA
        assert report.findings == []

    def test_failure(self, clock):
        store = MagicMock()
        store.query.side_effect = RuntimeError("database gone")

        report = PumpAnalyzer(store, clock=clock).analyze("PUMP-001", START, END)

        assert report.status == AnalysisStatus.FAILED
        assert report.error == "database gone"

    def test_alerts_raised_from_report(self, store, clock):
        manager = MagicMock()
        manager.evaluate_device.return_value = []
        analyzer = PumpAnalyzer(store, alert_manager=manager, clock=clock)

        report = analyzer.analyze("PUMP-001", START, END)

        manager.evaluate_device.assert_called_once_with("PUMP-001", report.to_context())

    def test_alert_failure_does_not_fail_analysis(self, store, clock):
        manager = MagicMock()
        manager.evaluate_device.side_effect = RuntimeError("rule store offline")

        report = PumpAnalyzer(store, alert_manager=manager, clock=clock).analyze(
            "PUMP-001", START, END
        )

        assert report.status == AnalysisStatus.SUCCESS


class TestAnalysisOrchestrator:

    def test_batch_isolates_failures_and_keeps_order(self, clock):
        seen_ids = []

        def analyze(device_id, start, end):
            seen_ids.append(structlog.contextvars.get_contextvars().get("correlation_id"))
            if device_id == "PUMP-002":
                raise RuntimeError("corrupt samples")
            return AnalysisReport(
                "a", device_id, clock.now, AnalysisStatus.SUCCESS,
                overall_health_score=80.0, risk_level=RiskLevel.LOW,
            )

        analyzer = MagicMock()
        analyzer.analyze.side_effect = analyze
        orchestrator = AnalysisOrchestrator(analyzer, OrchestratorConfig(max_workers=3), clock)

        reports = orchestrator.analyze_batch(
            ["PUMP-003", "PUMP-002", "PUMP-001"], START, END, correlation_id="batch-42"
        )

        assert list(reports) == ["PUMP-003", "PUMP-002", "PUMP-001"]
        assert reports["PUMP-002"].status == AnalysisStatus.FAILED
        assert reports["PUMP-002"].error == "corrupt samples"
        assert reports["PUMP-001"].status == AnalysisStatus.SUCCESS
        assert seen_ids == ["batch-42"] * 3

    def test_empty_batch(self, clock):
        assert AnalysisOrchestrator(MagicMock(), clock=clock).analyze_batch([], START, END) == {}

    def test_summarize(self, clock):
        reports = {
            "A": AnalysisReport("1", "A", clock.now, AnalysisStatus.SUCCESS,
                                overall_health_score=90.0, risk_level=RiskLevel.LOW),
            "B": AnalysisReport("2", "B", clock.now, AnalysisStatus.SUCCESS,
                                overall_health_score=60.0, risk_level=RiskLevel.HIGH),
            "C": AnalysisReport("3", "C", clock.now, AnalysisStatus.NO_DATA),
        }
        summary = AnalysisOrchestrator.summarize(reports)
        assert summary["devices"] == 3
        assert summary["by_status"] == {"SUCCESS": 2, "NO_DATA": 1}
        assert summary["by_risk"] == {"LOW": 1, "HIGH": 1}
        assert summary["average_health"] == 75.0


class TestAlertScheduler:

    @pytest.fixture
    def parts(self):
        orchestrator = MagicMock()
        orchestrator.analyze_batch.return_value = {"PUMP-001": MagicMock()}
        sample_store = MagicMock()
        sample_store.device_ids.return_value = ["PUMP-001"]
        alert_manager = MagicMock()
        alert_manager.cleanup.return_value = 0
        dispatcher = MagicMock()
        dispatcher.retry_failed.return_value = 2
        return orchestrator, sample_store, alert_manager, dispatcher

    @pytest.fixture
    def scheduler(self, parts, alert_settings, notification_settings, clock):
        orchestrator, sample_store, alert_manager, dispatcher = parts
        return AlertScheduler(
            orchestrator,
            sample_store,
            alert_manager,
            dispatcher,
            alert_settings,
            notification_settings,
            clock=clock,
            tick_seconds=0.01,
        )

    def test_jobs_run_on_their_intervals(self, scheduler, parts, clock):
        orchestrator, _, _, _ = parts

        first = scheduler.run_cycle()
        after_30s = scheduler.run_cycle(clock.now + timedelta(seconds=30))
        after_1m = scheduler.run_cycle(clock.now + timedelta(minutes=1))
        after_5m = scheduler.run_cycle(clock.now + timedelta(minutes=5))

        assert first == {"rule_check": 1, "retry_sweep": 2, "cleanup": 0}
        assert after_30s == {}
        assert after_1m == {"rule_check": 1}
        assert after_5m == {"rule_check": 1, "retry_sweep": 2}
        orchestrator.analyze_batch.assert_any_call(
            ["PUMP-001"], clock.now - timedelta(hours=24), clock.now
        )

    def test_failing_job_does_not_stop_others(self, scheduler, parts):
        orchestrator, _, _, _ = parts
        orchestrator.analyze_batch.side_effect = RuntimeError("pool exhausted")

        done = scheduler.run_cycle()

        assert "rule_check" not in done
        assert done["retry_sweep"] == 2

    def test_no_devices(self, scheduler, parts):
        _, sample_store, _, _ = parts
        sample_store.device_ids.return_value = []
        assert scheduler.run_cycle()["rule_check"] == 0

    def test_background_thread(self, scheduler, parts):
        _, _, alert_manager, _ = parts
        ran = threading.Event()
        alert_manager.cleanup.side_effect = lambda now: ran.set() or 0

        scheduler.start()
        try:
            assert ran.wait(timeout=5)
        finally:
            scheduler.stop()
