"""
Pump Anomaly Detector Service

Per-metric anomaly detection over a device's sample window.

This service handles:
- Startup frequency (starts per hour vs threshold)
- Runtime duration (mean cycle length vs threshold)
- Energy consumption trend (growth rate of the smoothed series)
- Vibration (tiered directly on magnitude)
- Power draw (deviation from the robust median baseline)
- Fault/alarm rate classification

Every detector returns exactly one Finding. Too little data never raises:
the detector answers with a severity-1, low-confidence Finding that says why.
"""

from typing import Callable, Dict, List, Optional

import structlog

from pump_copilot.models.pump_models import (
    AnalysisType,
    Finding,
    Sample,
    ThresholdConfig,
    TrendDirection,
)
from pump_copilot.services import statistics as stats
from pump_copilot.settings import DetectorSettings

logger = structlog.get_logger()


def severity_from_deviation(deviation_pct: float) -> int:
    """
    Shared severity mapping on |deviation|.

    Boundaries belong to the higher tier: 5.0 -> 2, 15.0 -> 3, 30.0 -> 4.
    """
    magnitude = abs(deviation_pct)
    if magnitude < 5:
        return 1
    if magnitude < 15:
        return 2
    if magnitude < 30:
        return 3
    return 4


def vibration_severity(avg: float, peak: float, threshold: float) -> int:
    """Vibration is graded on magnitude rather than percentage deviation"""
    if peak > threshold * 1.5:
        return 4
    if peak > threshold:
        return 3
    if avg > threshold * 0.8:
        return 2
    return 1


def _positive(samples: List[Sample], attr: str) -> List[float]:
    values = []
    for sample in samples:
        value = getattr(sample, attr)
        if value is not None and value > 0:
            values.append(float(value))
    return values


def _insufficient(
    analysis_type: AnalysisType,
    confidence: float,
    description: str,
    expected: Optional[float] = None,
) -> Finding:
    return Finding(
        analysis_type=analysis_type,
        severity=1,
        confidence=confidence,
        description=description,
        expected_value=expected,
        trend_direction=TrendDirection.STABLE,
    )


class AnomalyDetector:
    """
    Runs the per-metric detectors.

    Example Usage:
        detector = AnomalyDetector()
        findings = detector.detect_all(samples, ThresholdConfig(vibration_mm_s=3.8))
        worst = max(findings, key=lambda f: f.severity)
    """

    def __init__(self, defaults: Optional[DetectorSettings] = None):
        self.defaults = defaults or DetectorSettings()
        self._detectors: Dict[AnalysisType, Callable[..., Finding]] = {
            AnalysisType.STARTUP_FREQUENCY: self.detect_startup_frequency,
            AnalysisType.RUNTIME: self.detect_runtime,
            AnalysisType.ENERGY_TREND: self.detect_energy_trend,
            AnalysisType.VIBRATION: self.detect_vibration,
            AnalysisType.POWER: self.detect_power,
        }

    def _threshold(self, thresholds: Optional[ThresholdConfig], name: str) -> float:
        if thresholds is not None:
            override = getattr(thresholds, name)
            if override is not None:
                return float(override)
        return float(getattr(self.defaults, name))

    # ═══════════════════════════════════════════════════════════════════════════
    # BATCH
    # ═══════════════════════════════════════════════════════════════════════════

    def detect_all(
        self,
        samples: List[Sample],
        thresholds: Optional[ThresholdConfig] = None,
        analysis_types: Optional[List[AnalysisType]] = None,
    ) -> List[Finding]:
        """
        Run the requested detectors (all by default), isolating failures.

        A detector that raises contributes a zero-confidence Finding instead
        of aborting the rest.
        """
        requested = analysis_types or list(self._detectors) + [
            AnalysisType.ANOMALY_CLASSIFICATION
        ]
        findings = []
        for analysis_type in requested:
            try:
                if analysis_type == AnalysisType.ANOMALY_CLASSIFICATION:
                    findings.append(self.classify_anomalies(samples))
                else:
                    findings.append(self._detectors[analysis_type](samples, thresholds))
            except Exception as e:
                logger.error(
                    "detector_failed", analysis_type=analysis_type.value, error=str(e)
                )
                findings.append(
                    Finding(
                        analysis_type=analysis_type,
                        severity=1,
                        confidence=0.0,
                        description=f"Analysis failed: {e}",
                    )
                )
        return findings

    # ═══════════════════════════════════════════════════════════════════════════
    # DETECTORS
    # ═══════════════════════════════════════════════════════════════════════════

    def detect_startup_frequency(
        self, samples: List[Sample], thresholds: Optional[ThresholdConfig] = None
    ) -> Finding:
        """Starts per hour over the window spanned by the samples"""
        threshold = self._threshold(thresholds, "startup_frequency")
        start_events = sorted(s.timestamp for s in samples if s.pump_status == 1)

        if len(start_events) < 2:
            return _insufficient(
                AnalysisType.STARTUP_FREQUENCY,
                0.5,
                "Not enough start events to assess startup frequency",
                expected=threshold,
            )

        first = min(s.timestamp for s in samples)
        last = max(s.timestamp for s in samples)
        hours = (last - first).total_seconds() / 3600.0
        if hours <= 0:
            return _insufficient(
                AnalysisType.STARTUP_FREQUENCY,
                0.5,
                "Samples span no time; startup frequency undefined",
                expected=threshold,
            )

        frequency = len(start_events) / hours
        deviation = (frequency - threshold) / threshold * 100
        severity = severity_from_deviation(deviation)

        description = (
            f"Startup frequency {frequency:.2f}/h, threshold {threshold:.2f}/h,"
            f" deviation {deviation:.1f}%"
        )
        if severity > 1:
            description += " - too frequent" if deviation > 0 else " - too rare"

        recommendations = []
        if deviation > 0:
            recommendations.extend([
                "Review pump control settings and start/stop logic",
                "Check for pipe leaks or abnormal pressure",
                "Consider an accumulator to reduce start cycles",
            ])
        else:
            recommendations.extend([
                "Verify that the pump runs normally",
                "Confirm that demand-side consumption is normal",
                "Check control signal transmission",
            ])
        if severity >= 3:
            recommendations.append("Schedule an inspection by a specialist technician")

        return Finding(
            analysis_type=AnalysisType.STARTUP_FREQUENCY,
            severity=severity,
            confidence=min(0.9, 0.6 + len(start_events) * 0.01),
            description=description,
            detected_value=frequency,
            expected_value=threshold,
            deviation_pct=deviation,
            trend_direction=(
                TrendDirection.INCREASING if deviation > 0 else TrendDirection.DECREASING
            ),
            detailed_metrics={
                "total_start_events": len(start_events),
                "time_window_hours": hours,
                "avg_interval_minutes": hours * 60 / len(start_events),
            },
            recommendations=recommendations,
        )

    def detect_runtime(
        self, samples: List[Sample], thresholds: Optional[ThresholdConfig] = None
    ) -> Finding:
        """Mean run length vs threshold, with the trend of run lengths"""
        threshold = self._threshold(thresholds, "runtime_minutes")
        runtimes = _positive(samples, "runtime_minutes")

        if not runtimes:
            return _insufficient(
                AnalysisType.RUNTIME, 0.3, "No runtime data", expected=threshold
            )

        avg = stats.mean(runtimes)
        peak = max(runtimes)
        deviation = (avg - threshold) / threshold * 100
        severity = severity_from_deviation(deviation)
        trend = stats.analyze_trend(runtimes)

        description = (
            f"Average runtime {avg:.1f} min, max {peak:.1f} min,"
            f" threshold {threshold:.1f} min, deviation {deviation:.1f}%"
        )
        if severity > 1:
            description += " - runs too long" if deviation > 0 else " - runs too short"

        recommendations = []
        if deviation > 0:
            recommendations.extend([
                "Check whether the pump is overloaded",
                "Verify pipeline resistance",
                "Check motor temperature and cooling",
            ])
        else:
            recommendations.extend([
                "Check that the pump reaches normal working pressure",
                "Review start/stop condition settings",
            ])
        if trend.direction == TrendDirection.INCREASING and trend.strength > 0.7:
            recommendations.append(
                "Runtime keeps growing; watch the equipment health closely"
            )

        return Finding(
            analysis_type=AnalysisType.RUNTIME,
            severity=severity,
            confidence=min(0.95, 0.7 + len(runtimes) * 0.005),
            description=description,
            detected_value=avg,
            expected_value=threshold,
            deviation_pct=deviation,
            trend_direction=trend.direction,
            detailed_metrics={
                "average_runtime": avg,
                "max_runtime": peak,
                "min_runtime": min(runtimes),
                "standard_deviation": stats.standard_deviation(runtimes),
                "total_cycles": len(runtimes),
            },
            recommendations=recommendations,
        )

    def detect_energy_trend(
        self, samples: List[Sample], thresholds: Optional[ThresholdConfig] = None
    ) -> Finding:
        """Growth rate of the smoothed energy series"""
        threshold = self._threshold(thresholds, "energy_growth_pct")
        energy = _positive(samples, "energy_kwh")

        if len(energy) < 3:
            return _insufficient(
                AnalysisType.ENERGY_TREND,
                0.4,
                "Not enough energy readings for a trend analysis",
            )

        smoothed = stats.moving_average(energy, max(1, min(5, len(energy) // 3)))
        trend = stats.analyze_trend(smoothed)
        smoothed_mean = stats.mean(smoothed)
        growth = trend.slope / smoothed_mean * 100 if smoothed_mean else 0.0
        severity = severity_from_deviation(growth)

        description = (
            f"Energy trend {trend.direction.value}, growth {growth:.2f}%,"
            f" strength {trend.strength:.2f}"
        )
        if abs(growth) > threshold:
            description += (
                " - abnormal increase" if growth > 0 else " - abnormal decrease"
            )

        recommendations = []
        if growth > 0:
            recommendations.extend([
                "Tune operating parameters to improve efficiency",
                "Inspect impeller and casing for wear",
                "Consider replacing with a high-efficiency pump",
            ])
        else:
            recommendations.extend([
                "Verify the power metering equipment",
                "Check that the actual pump output is normal",
            ])
        if abs(growth) > 20:
            recommendations.append("Energy change is abnormal; inspect immediately")

        return Finding(
            analysis_type=AnalysisType.ENERGY_TREND,
            severity=severity,
            confidence=min(0.9, 0.6 + len(smoothed) * 0.01),
            description=description,
            detected_value=growth,
            expected_value=threshold,
            deviation_pct=growth,
            trend_direction=trend.direction,
            detailed_metrics={
                "total_energy_consumption": sum(energy),
                "average_energy_consumption": stats.mean(energy),
                "energy_growth_rate": growth,
                "trend_strength": trend.strength,
            },
            recommendations=recommendations,
        )

    def detect_vibration(
        self, samples: List[Sample], thresholds: Optional[ThresholdConfig] = None
    ) -> Finding:
        """Vibration level graded on mean and peak, with IQR outliers"""
        threshold = self._threshold(thresholds, "vibration_mm_s")
        vibration = _positive(samples, "vibration_mm_s")

        if not vibration:
            return _insufficient(
                AnalysisType.VIBRATION, 0.3, "No vibration data", expected=threshold
            )

        avg = stats.mean(vibration)
        peak = max(vibration)
        outliers = stats.detect_outliers(vibration)
        severity = vibration_severity(avg, peak, threshold)
        deviation = (avg - threshold) / threshold * 100

        description = (
            f"Average vibration {avg:.2f} mm/s, max {peak:.2f} mm/s,"
            f" threshold {threshold:.2f} mm/s, outliers {len(outliers)}"
        )
        if severity > 1:
            description += " - abnormal vibration"

        recommendations = []
        if peak > 7.0:
            recommendations.extend([
                "Vibration far above limit; stop the pump and inspect",
                "Check bearings, impeller and motor alignment",
            ])
        elif avg > 4.5:
            recommendations.extend([
                "Vibration is elevated; schedule an overhaul",
                "Check foundation bolts for looseness",
            ])
        if outliers:
            recommendations.append(
                "Intermittent vibration spikes; review changes in operating conditions"
            )
        if severity >= 3:
            recommendations.append("Run a vibration spectrum analysis")

        return Finding(
            analysis_type=AnalysisType.VIBRATION,
            severity=severity,
            confidence=min(0.95, 0.7 + len(vibration) * 0.005),
            description=description,
            detected_value=avg,
            expected_value=threshold,
            deviation_pct=deviation,
            trend_direction=TrendDirection.STABLE,
            detailed_metrics={
                "average_vibration": avg,
                "max_vibration": peak,
                "standard_deviation": stats.standard_deviation(vibration),
                "outlier_count": len(outliers),
                "outlier_indices": outliers,
                "outlier_percentage": len(outliers) / len(vibration) * 100,
            },
            recommendations=recommendations,
        )

    def detect_power(
        self, samples: List[Sample], thresholds: Optional[ThresholdConfig] = None
    ) -> Finding:
        """Mean power vs the median baseline of the same window"""
        threshold = self._threshold(thresholds, "power_deviation_pct")
        power = _positive(samples, "power_kw")

        if len(power) < 3:
            return _insufficient(AnalysisType.POWER, 0.4, "Not enough power readings")

        avg = stats.mean(power)
        expected = stats.median(power)
        deviation = abs(avg - expected) / expected * 100
        severity = severity_from_deviation(deviation)

        description = (
            f"Average power {avg:.2f} kW, expected {expected:.2f} kW,"
            f" deviation {deviation:.1f}%"
        )
        if severity > 1:
            description += " - power high" if avg > expected else " - power low"

        recommendations = []
        if deviation > 15:
            recommendations.extend([
                "Inspect motor and pump mechanics",
                "Verify supply voltage stability",
                "Check for abnormal load",
            ])
        if severity >= 3:
            recommendations.append("Power deviation is severe; run a full inspection")

        return Finding(
            analysis_type=AnalysisType.POWER,
            severity=severity,
            confidence=min(0.9, 0.6 + len(power) * 0.01),
            description=description,
            detected_value=avg,
            expected_value=expected,
            deviation_pct=deviation,
            trend_direction=(
                TrendDirection.INCREASING if avg > expected else TrendDirection.DECREASING
            ),
            detailed_metrics={
                "average_power": avg,
                "expected_power": expected,
                "max_power": max(power),
                "min_power": min(power),
                "power_variability": stats.standard_deviation(power),
                "deviation_threshold_pct": threshold,
                "exceeds_threshold": deviation > threshold,
            },
            recommendations=recommendations,
        )

    def classify_anomalies(self, samples: List[Sample]) -> Finding:
        """Share of samples carrying a fault code or an alarm above level 1"""
        if not samples:
            return _insufficient(
                AnalysisType.ANOMALY_CLASSIFICATION, 0.3, "No samples to classify"
            )

        fault_count = sum(1 for s in samples if s.has_fault)
        alarm_count = sum(1 for s in samples if s.alarm_level is not None and s.alarm_level > 1)
        rate = (fault_count + alarm_count) / len(samples) * 100

        if rate > 20:
            severity = 4
        elif rate > 10:
            severity = 3
        elif rate > 5:
            severity = 2
        else:
            severity = 1

        recommendations = []
        if rate > 10:
            recommendations.append("High anomaly rate; run a full inspection")
        if fault_count > 0:
            recommendations.append("Fault records present; analyse the fault pattern")

        return Finding(
            analysis_type=AnalysisType.ANOMALY_CLASSIFICATION,
            severity=severity,
            confidence=0.8,
            description=(
                f"Anomaly rate {rate:.1f}%, faults {fault_count}, alarms {alarm_count}"
            ),
            detected_value=rate,
            expected_value=5.0,
            deviation_pct=rate - 5.0,
            trend_direction=TrendDirection.INCREASING if rate > 5 else TrendDirection.STABLE,
            detailed_metrics={
                "total_records": len(samples),
                "fault_count": fault_count,
                "alarm_count": alarm_count,
                "anomaly_rate": rate,
            },
            recommendations=recommendations,
        )
