"""
Performance Scorer Service

Turns a sample window into three 0-100 scores plus descriptive metrics.

Each score starts at 100 and loses the amount of every deduction whose
predicate holds; the three scores are clamped independently. Deductions are
HeuristicRule lists, the same shape the fault predictor uses.
"""

from datetime import datetime
from typing import List, Optional, Tuple

import structlog

from pump_copilot.models.pump_models import (
    PerformanceMetrics,
    PerformanceScores,
    Sample,
    TrendDirection,
)
from pump_copilot.services import statistics as stats
from pump_copilot.services.fault_predictor import HeuristicRule, PumpSignals

logger = structlog.get_logger()


def _power_halves_increase_pct(signals: PumpSignals) -> float:
    powers = signals.powers
    mid = len(powers) // 2
    early = stats.mean(powers[:mid])
    late = stats.mean(powers[mid:])
    if early == 0:
        return 0.0
    return (late - early) / early * 100


def _total_runtime_hours(signals: PumpSignals) -> float:
    return sum(m for m in signals.series("runtime_minutes") if m > 0) / 60.0


EFFICIENCY_DEDUCTIONS: Tuple[HeuristicRule, ...] = (
    HeuristicRule(
        "power_highly_variable",
        lambda s: bool(s.powers) and stats.coefficient_of_variation(s.powers) > 0.2,
        15,
    ),
    HeuristicRule(
        "power_variable",
        lambda s: bool(s.powers) and 0.1 < stats.coefficient_of_variation(s.powers) <= 0.2,
        8,
    ),
    HeuristicRule(
        "pressure_flow_mismatch",
        lambda s: bool(s.pressures)
        and len(s.pressures) == len(s.flows)
        and stats.pearson_correlation(s.pressures, s.flows) < 0.7,
        10,
    ),
    HeuristicRule(
        "energy_rising",
        lambda s: len(s.energies) >= 10
        and stats.analyze_trend(s.energies).direction == TrendDirection.INCREASING
        and stats.analyze_trend(s.energies).strength > 0.6,
        20,
    ),
)

RELIABILITY_DEDUCTIONS: Tuple[HeuristicRule, ...] = (
    HeuristicRule(
        "fault_rate",
        lambda s: any(x.has_fault for x in s.samples),
        lambda s: sum(1 for x in s.samples if x.has_fault) / len(s.samples) * 50,
    ),
    HeuristicRule(
        "alarm_rate",
        lambda s: any((x.alarm_level or 0) > 1 for x in s.samples),
        lambda s: sum(1 for x in s.samples if (x.alarm_level or 0) > 1)
        / len(s.samples)
        * 30,
    ),
    HeuristicRule(
        "vibration_excessive",
        lambda s: bool(s.vibrations) and stats.mean(s.vibrations) > 4.5,
        25,
    ),
    HeuristicRule(
        "vibration_elevated",
        lambda s: bool(s.vibrations) and 3.0 < stats.mean(s.vibrations) <= 4.5,
        10,
    ),
    HeuristicRule(
        "vibration_unstable",
        lambda s: stats.standard_deviation(s.vibrations) > 1.0,
        15,
    ),
)

MAINTENANCE_DEDUCTIONS: Tuple[HeuristicRule, ...] = (
    HeuristicRule(
        "maintenance_flagged",
        lambda s: any(x.maintenance_flag for x in s.samples),
        30,
    ),
    HeuristicRule(
        "runtime_over_year",
        lambda s: _total_runtime_hours(s) > 8760,
        20,
    ),
    HeuristicRule(
        "runtime_over_half_year",
        lambda s: 4380 < _total_runtime_hours(s) <= 8760,
        10,
    ),
    HeuristicRule(
        "power_drift_high",
        lambda s: len(s.powers) >= 20 and _power_halves_increase_pct(s) > 15,
        25,
    ),
    HeuristicRule(
        "power_drift",
        lambda s: len(s.powers) >= 20 and 8 < _power_halves_increase_pct(s) <= 15,
        12,
    ),
)


def _apply(deductions: Tuple[HeuristicRule, ...], signals: PumpSignals) -> float:
    score = 100.0
    for rule in deductions:
        score -= rule.contribution(signals)
    return max(0.0, min(100.0, score))


def performance_grade(score: float) -> str:
    if score >= 90:
        return "excellent"
    if score >= 80:
        return "good"
    if score >= 70:
        return "fair"
    if score >= 60:
        return "pass"
    return "poor"


class PerformanceScorer:
    """
    Scores pump performance over a sample window.

    Example Usage:
        scores = PerformanceScorer().score(samples)
        print(scores.efficiency, scores.reliability, scores.maintenance)
    """

    def __init__(
        self,
        efficiency_deductions: Tuple[HeuristicRule, ...] = EFFICIENCY_DEDUCTIONS,
        reliability_deductions: Tuple[HeuristicRule, ...] = RELIABILITY_DEDUCTIONS,
        maintenance_deductions: Tuple[HeuristicRule, ...] = MAINTENANCE_DEDUCTIONS,
    ):
        self.efficiency_deductions = efficiency_deductions
        self.reliability_deductions = reliability_deductions
        self.maintenance_deductions = maintenance_deductions

    def score(
        self,
        samples: List[Sample],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> PerformanceScores:
        """An empty window scores 0 across the board"""
        if not samples:
            return PerformanceScores(0.0, 0.0, 0.0, PerformanceMetrics())

        signals = PumpSignals(samples)
        scores = PerformanceScores(
            efficiency=_apply(self.efficiency_deductions, signals),
            reliability=_apply(self.reliability_deductions, signals),
            maintenance=_apply(self.maintenance_deductions, signals),
            metrics=self.metrics(samples, start, end),
        )
        logger.debug(
            "performance_scored",
            efficiency=scores.efficiency,
            reliability=scores.reliability,
            maintenance=scores.maintenance,
        )
        return scores

    @staticmethod
    def metrics(
        samples: List[Sample],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> PerformanceMetrics:
        if not samples:
            return PerformanceMetrics()

        start = start or min(s.timestamp for s in samples)
        end = end or max(s.timestamp for s in samples)
        hours = (end - start).total_seconds() / 3600.0
        starts = [s for s in samples if s.pump_status == 1 and start <= s.timestamp <= end]

        def positive(attr: str) -> List[float]:
            return [getattr(s, attr) for s in samples if (getattr(s, attr) or 0) > 0]

        vibrations = positive("vibration_mm_s")
        return PerformanceMetrics(
            startup_frequency=len(starts) / hours if starts and hours > 0 else 0.0,
            total_runtime_hours=sum(positive("runtime_minutes")) / 60.0,
            average_power=stats.mean(positive("power_kw")),
            total_energy=sum(positive("energy_kwh")),
            average_vibration=stats.mean(vibrations),
            max_vibration=max(vibrations, default=0.0),
            average_pressure=stats.mean(positive("water_pressure_kpa")),
            average_flow_rate=stats.mean(positive("flow_rate_m3h")),
        )

    @staticmethod
    def report(scores: PerformanceScores) -> str:
        """Plain-text performance report"""
        m = scores.metrics
        lines = [
            "=== Pump Performance Report ===",
            "",
            "[Operating metrics]",
            f"Startup frequency: {m.startup_frequency:.2f} /h",
            f"Total runtime: {m.total_runtime_hours:.1f} h",
            f"Average power: {m.average_power:.2f} kW",
            f"Total energy: {m.total_energy:.2f} kWh",
            "",
            "[Condition metrics]",
            f"Average vibration: {m.average_vibration:.2f} mm/s",
            f"Max vibration: {m.max_vibration:.2f} mm/s",
            f"Average pressure: {m.average_pressure:.2f} kPa",
            f"Average flow: {m.average_flow_rate:.2f} m3/h",
            "",
            "[Scores]",
            f"Efficiency: {scores.efficiency:.1f}",
            f"Reliability: {scores.reliability:.1f}",
            f"Maintenance: {scores.maintenance:.1f}",
            f"Overall: {scores.overall:.1f} ({performance_grade(scores.overall)})",
        ]
        return "\n".join(lines)
