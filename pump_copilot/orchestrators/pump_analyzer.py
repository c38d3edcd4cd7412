"""
Pump Analyzer

Runs the whole analysis pipeline for one device and time window:

    samples -> detectors   -> findings
            -> predictor   -> prediction
            -> scorer      -> performance scores
    all three -> advisor   -> maintenance plan
    report.to_context()    -> alert manager (optional)

Each stage is independent; a failing detector degrades to a low-confidence
finding, and alert processing problems never fail the analysis itself.
"""

import logging
import time
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pump_copilot.models.pump_models import (
    AnalysisReport,
    AnalysisStatus,
    AnalysisType,
    Finding,
    PerformanceScores,
    Prediction,
    RiskLevel,
    ThresholdConfig,
)
from pump_copilot.repositories.protocols import SampleStore
from pump_copilot.services.alert_manager import AlertManager
from pump_copilot.services.anomaly_detector import AnomalyDetector
from pump_copilot.services.fault_predictor import FaultPredictor
from pump_copilot.services.maintenance_advisor import MaintenanceAdvisor
from pump_copilot.services.performance_scorer import PerformanceScorer

logger = logging.getLogger(__name__)

# Health points lost per severity step above 1, scaled by finding confidence
HEALTH_PENALTY_PER_LEVEL = 15.0
# Confidence attributed to the prediction/scoring stages in the overall score
MODEL_CONFIDENCE = 0.7


def overall_health(findings: List[Finding], scores: Optional[PerformanceScores]) -> float:
    health = 100.0
    for finding in findings:
        health -= (finding.severity - 1) * HEALTH_PENALTY_PER_LEVEL * finding.confidence
    if scores is not None:
        health = (health + scores.overall) / 2
    return max(0.0, min(100.0, health))


def risk_level(findings: List[Finding], prediction: Optional[Prediction]) -> RiskLevel:
    worst = max((f.severity for f in findings), default=0)
    probability = prediction.failure_probability if prediction else 0.0

    if worst >= 4 or probability > 0.8:
        return RiskLevel.CRITICAL
    if worst >= 3 or probability > 0.6:
        return RiskLevel.HIGH
    if probability > 0.3:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def overall_confidence(findings: List[Finding]) -> float:
    if findings:
        finding_confidence = sum(f.confidence for f in findings) / len(findings)
    else:
        finding_confidence = 0.5
    return (finding_confidence + MODEL_CONFIDENCE) / 2


class PumpAnalyzer:
    """
    Per-device analysis pipeline.

    Example Usage:
        analyzer = PumpAnalyzer(sample_store, alert_manager=manager)
        report = analyzer.analyze("PUMP-001", start, end)
        print(report.overall_health_score, report.risk_level)
    """

    def __init__(
        self,
        sample_store: SampleStore,
        detector: Optional[AnomalyDetector] = None,
        predictor: Optional[FaultPredictor] = None,
        scorer: Optional[PerformanceScorer] = None,
        advisor: Optional[MaintenanceAdvisor] = None,
        alert_manager: Optional[AlertManager] = None,
        thresholds: Optional[Dict[str, ThresholdConfig]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.sample_store = sample_store
        self.detector = detector or AnomalyDetector()
        self.predictor = predictor or FaultPredictor(clock=clock)
        self.scorer = scorer or PerformanceScorer()
        self.advisor = advisor or MaintenanceAdvisor(clock=clock)
        self.alert_manager = alert_manager
        self.thresholds = dict(thresholds or {})
        self.clock = clock

    def analyze(
        self,
        device_id: str,
        start: datetime,
        end: datetime,
        analysis_types: Optional[List[AnalysisType]] = None,
        prediction_window_days: Optional[int] = None,
        thresholds: Optional[ThresholdConfig] = None,
    ) -> AnalysisReport:
        started = time.perf_counter()
        report = AnalysisReport(
            analysis_id=uuid.uuid4().hex,
            device_id=device_id,
            analysis_time=self.clock(),
            status=AnalysisStatus.SUCCESS,
        )

        try:
            samples = self.sample_store.query(device_id, start, end)
            if not samples:
                logger.info(f"No samples for {device_id} between {start} and {end}")
                report.status = AnalysisStatus.NO_DATA
                report.error = "No samples in the requested window"
                return report

            device_thresholds = thresholds or self.thresholds.get(device_id)
            report.findings = self.detector.detect_all(
                samples, device_thresholds, analysis_types
            )
            report.prediction = self.predictor.predict(samples, prediction_window_days)
            report.scores = self.scorer.score(samples, start, end)
            report.plan = self.advisor.advise(
                samples, report.findings, report.prediction, report.scores
            )

            report.overall_health_score = overall_health(report.findings, report.scores)
            report.risk_level = risk_level(report.findings, report.prediction)
            report.confidence_score = overall_confidence(report.findings)
        except Exception as e:
            logger.error(f"Analysis failed for {device_id}: {e}", exc_info=True)
            report.status = AnalysisStatus.FAILED
            report.error = str(e)
            return report
        finally:
            report.processing_time_ms = (time.perf_counter() - started) * 1000

        logger.info(
            f"Analyzed {device_id}: health={report.overall_health_score:.1f} "
            f"risk={report.risk_level.value} ({report.processing_time_ms:.0f} ms)"
        )
        self._raise_alerts(report)
        return report

    def _raise_alerts(self, report: AnalysisReport):
        if self.alert_manager is None:
            return
        try:
            created = self.alert_manager.evaluate_device(report.device_id, report.to_context())
        except Exception as e:
            logger.error(f"Alert processing failed for {report.device_id}: {e}")
            return
        if created:
            logger.info(f"{len(created)} alert(s) raised for {report.device_id}")
