"""
Fault Predictor Service

Heuristic component failure forecasting for pumps.

This service handles:
- Per-component failure scores (motor, bearing, impeller, seal, control system)
- Aggregate failure probability and remaining useful life (RUL)
- Predicted failure time
- Hydraulic efficiency degradation trend
- One-step-ahead forecasts of key metrics with a fixed +/- band

Scores are additive heuristics, not trained models. Each component is an
ordered list of HeuristicRule(predicate, weight); a component's score is the
sum of the weights whose predicate holds, clamped to [0, 1].
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import cached_property
from typing import Callable, Dict, List, Optional, Tuple, Union

import structlog

from pump_copilot.models.pump_models import (
    Component,
    DegradationTrend,
    Prediction,
    Sample,
    TrendDirection,
)
from pump_copilot.services import statistics as stats
from pump_copilot.settings import PredictionSettings

logger = structlog.get_logger()

# Fault code prefixes attributed to the control system
CONTROL_FAULT_PREFIXES = ("C", "CTRL")

HOURS_PER_YEAR = 8760


class PumpSignals:
    """
    Lazily derived series and statistics for one sample window.

    Shared by every heuristic so each series is extracted and each trend is
    fitted at most once.
    """

    def __init__(self, samples: List[Sample]):
        self.samples = samples

    def series(self, attr: str) -> List[float]:
        return stats.clean([getattr(s, attr) for s in self.samples])

    @cached_property
    def currents(self) -> List[float]:
        return self.series("current_amperage")

    @cached_property
    def powers(self) -> List[float]:
        return self.series("power_kw")

    @cached_property
    def temperatures(self) -> List[float]:
        return self.series("water_temp_c")

    @cached_property
    def vibrations(self) -> List[float]:
        return self.series("vibration_mm_s")

    @cached_property
    def pressures(self) -> List[float]:
        return self.series("water_pressure_kpa")

    @cached_property
    def flows(self) -> List[float]:
        return self.series("flow_rate_m3h")

    @cached_property
    def energies(self) -> List[float]:
        return self.series("energy_kwh")

    @cached_property
    def rated_current(self) -> float:
        """Median current plus 20%, or 10 A without current readings"""
        return stats.median(self.currents) * 1.2 if self.currents else 10.0

    @cached_property
    def power_trend(self) -> stats.TrendResult:
        return stats.analyze_trend(self.powers)

    @cached_property
    def vibration_trend(self) -> stats.TrendResult:
        return stats.analyze_trend(self.vibrations)

    @cached_property
    def pressure_trend(self) -> stats.TrendResult:
        return stats.analyze_trend(self.pressures)

    @cached_property
    def flow_trend(self) -> stats.TrendResult:
        return stats.analyze_trend(self.flows)

    @cached_property
    def runtime_hours(self) -> int:
        """Whole hours from the sum of whole runtime minutes"""
        minutes = sum(int(m) for m in self.series("runtime_minutes"))
        return minutes // 60

    @cached_property
    def start_intervals_minutes(self) -> List[float]:
        starts = sorted(s.timestamp for s in self.samples if s.pump_status == 1)
        return [
            (later - earlier).total_seconds() / 60.0
            for earlier, later in zip(starts, starts[1:])
        ]

    @cached_property
    def fault_codes(self) -> List[str]:
        return [s.fault_code for s in self.samples if s.has_fault]

    @cached_property
    def control_fault_ratio(self) -> float:
        if not self.fault_codes:
            return 0.0
        control = [c for c in self.fault_codes if c.startswith(CONTROL_FAULT_PREFIXES)]
        return len(control) / len(self.fault_codes)

    @cached_property
    def efficiency_series(self) -> List[float]:
        """Pressure per kW over samples carrying both readings"""
        return [
            s.water_pressure_kpa / s.power_kw
            for s in self.samples
            if s.power_kw is not None
            and s.water_pressure_kpa is not None
            and s.power_kw > 0
            and s.water_pressure_kpa > 0
        ]


def _trending(trend: stats.TrendResult, direction: TrendDirection, strength: float) -> bool:
    return trend.direction == direction and trend.strength > strength


@dataclass(frozen=True)
class HeuristicRule:
    """One additive contribution to a component score"""

    name: str
    predicate: Callable[[PumpSignals], bool]
    weight: Union[float, Callable[[PumpSignals], float]]

    def contribution(self, signals: PumpSignals) -> float:
        if not self.predicate(signals):
            return 0.0
        return self.weight(signals) if callable(self.weight) else self.weight


@dataclass(frozen=True)
class ComponentModel:
    """Ordered heuristics for one component, with an optional no-data score"""

    component: Component
    rules: Tuple[HeuristicRule, ...]
    no_data: Optional[Callable[[PumpSignals], bool]] = None
    no_data_score: float = 0.0

    def score(self, signals: PumpSignals) -> Tuple[float, List[str]]:
        if self.no_data is not None and self.no_data(signals):
            return self.no_data_score, []
        total = 0.0
        fired = []
        for rule in self.rules:
            contribution = rule.contribution(signals)
            if contribution:
                total += contribution
                fired.append(rule.name)
        return max(0.0, min(1.0, total)), fired


# ═══════════════════════════════════════════════════════════════════════════════
# COMPONENT HEURISTICS
# ═══════════════════════════════════════════════════════════════════════════════

MOTOR = ComponentModel(
    Component.MOTOR,
    (
        HeuristicRule(
            "current_unstable",
            lambda s: bool(s.currents) and stats.coefficient_of_variation(s.currents) > 0.15,
            0.2,
        ),
        HeuristicRule(
            "current_above_rated",
            lambda s: bool(s.currents) and stats.mean(s.currents) > s.rated_current * 1.1,
            0.3,
        ),
        HeuristicRule(
            "power_rising",
            lambda s: len(s.powers) >= 10
            and _trending(s.power_trend, TrendDirection.INCREASING, 0.6),
            0.25,
        ),
        HeuristicRule(
            "overheating",
            lambda s: bool(s.temperatures) and max(s.temperatures) > 80,
            0.3,
        ),
        HeuristicRule(
            "running_warm",
            lambda s: bool(s.temperatures)
            and max(s.temperatures) <= 80
            and stats.mean(s.temperatures) > 60,
            0.15,
        ),
    ),
)

BEARING = ComponentModel(
    Component.BEARING,
    (
        HeuristicRule("vibration_severe", lambda s: max(s.vibrations) > 7.0, 0.4),
        HeuristicRule(
            "vibration_high",
            lambda s: 4.5 < max(s.vibrations) <= 7.0,
            0.2,
        ),
        HeuristicRule(
            "vibration_unstable",
            lambda s: stats.standard_deviation(s.vibrations) > 1.5,
            0.2,
        ),
        HeuristicRule(
            "vibration_rising",
            lambda s: len(s.vibrations) >= 10
            and _trending(s.vibration_trend, TrendDirection.INCREASING, 0.7),
            0.3,
        ),
        HeuristicRule(
            "vibration_outliers",
            lambda s: len(stats.detect_outliers(s.vibrations)) / len(s.vibrations) > 0.2,
            0.2,
        ),
    ),
    no_data=lambda s: not s.vibrations,
    no_data_score=0.1,
)

IMPELLER = ComponentModel(
    Component.IMPELLER,
    (
        HeuristicRule(
            "pressure_unstable",
            lambda s: len(s.pressures) >= 5
            and stats.coefficient_of_variation(s.pressures) > 0.2,
            0.2,
        ),
        HeuristicRule(
            "pressure_falling",
            lambda s: len(s.pressures) >= 5
            and _trending(s.pressure_trend, TrendDirection.DECREASING, 0.6),
            0.3,
        ),
        HeuristicRule(
            "flow_falling",
            lambda s: len(s.flows) >= 5
            and _trending(s.flow_trend, TrendDirection.DECREASING, 0.5),
            0.25,
        ),
        HeuristicRule(
            "efficiency_loss",
            lambda s: bool(s.powers)
            and len(s.pressures) > 10
            and s.power_trend.direction == TrendDirection.INCREASING
            and s.pressure_trend.direction == TrendDirection.DECREASING,
            0.2,
        ),
    ),
)

SEAL = ComponentModel(
    Component.SEAL,
    (
        HeuristicRule(
            "seal_overheating",
            lambda s: bool(s.temperatures) and max(s.temperatures) > 85,
            0.3,
        ),
        HeuristicRule(
            "seal_running_hot",
            lambda s: bool(s.temperatures)
            and max(s.temperatures) <= 85
            and stats.mean(s.temperatures) > 70,
            0.15,
        ),
        HeuristicRule(
            "pressure_fluctuation",
            lambda s: len(s.pressures) >= 10
            and stats.coefficient_of_variation(s.pressures) > 0.25,
            0.2,
        ),
        HeuristicRule(
            "runtime_wear",
            lambda s: s.runtime_hours > HOURS_PER_YEAR,
            lambda s: 0.1 * (s.runtime_hours // HOURS_PER_YEAR),
        ),
    ),
)

CONTROL_SYSTEM = ComponentModel(
    Component.CONTROL_SYSTEM,
    (
        HeuristicRule(
            "irregular_start_intervals",
            lambda s: len(s.start_intervals_minutes) >= 9
            and stats.coefficient_of_variation(s.start_intervals_minutes) > 0.5,
            0.2,
        ),
        HeuristicRule(
            "control_fault_codes",
            lambda s: s.control_fault_ratio > 0,
            lambda s: 0.3 * s.control_fault_ratio,
        ),
    ),
)

DEFAULT_COMPONENT_MODELS: Tuple[ComponentModel, ...] = (
    MOTOR,
    BEARING,
    IMPELLER,
    SEAL,
    CONTROL_SYSTEM,
)

# Series forecast one step ahead, keyed by output name
FORECAST_METRICS = {
    "power_kw": "powers",
    "vibration_mm_s": "vibrations",
    "energy_kwh": "energies",
}


class FaultPredictor:
    """
    Forecasts component failures from a sample window.

    Example Usage:
        predictor = FaultPredictor()
        prediction = predictor.predict(samples)
        if prediction.failure_probability > 0.6:
            ...
    """

    def __init__(
        self,
        settings: Optional[PredictionSettings] = None,
        component_models: Tuple[ComponentModel, ...] = DEFAULT_COMPONENT_MODELS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings or PredictionSettings()
        self.component_models = component_models
        self.clock = clock

    def predict(
        self, samples: List[Sample], prediction_window_days: Optional[int] = None
    ) -> Prediction:
        """Full prediction; degrades to a low-confidence answer on thin data"""
        base_days = prediction_window_days or self.settings.prediction_window_days

        if len(samples) < self.settings.min_training_samples:
            return self._low_confidence(
                samples,
                base_days,
                f"{len(samples)} samples, {self.settings.min_training_samples} required",
            )

        try:
            return self._predict(samples, base_days)
        except Exception as e:
            logger.error("fault_prediction_failed", error=str(e))
            return self._low_confidence(samples, base_days, f"prediction error: {e}")

    def _predict(self, samples: List[Sample], base_days: int) -> Prediction:
        signals = PumpSignals(samples)
        probabilities, fired = self.score_components(signals)

        max_probability = max(probabilities.values(), default=0.0)
        aggregate = sum(probabilities.values()) / len(probabilities) if probabilities else 0.0

        rul_days = self.remaining_useful_life(max_probability, base_days)
        failure_offset = self.failure_time_offset(aggregate, rul_days)

        forecast = self.forecast_key_metrics(signals)
        band = self.settings.forecast_band_pct / 100.0
        intervals = {
            name: (value - abs(value) * band, value + abs(value) * band)
            for name, value in forecast.items()
        }

        details = {
            "sample_count": len(samples),
            "fired_heuristics": fired,
            "failure_time_offset_days": failure_offset,
            "bucketing_divergence": failure_offset != rul_days,
        }
        if failure_offset != rul_days:
            logger.info(
                "rul_failure_time_divergence",
                rul_days=rul_days,
                failure_offset_days=failure_offset,
                max_component=round(max_probability, 3),
                aggregate=round(aggregate, 3),
            )

        return Prediction(
            component_probabilities=probabilities,
            failure_probability=aggregate,
            remaining_useful_life_days=rul_days,
            predicted_failure_time=self.clock() + timedelta(days=failure_offset),
            degradation_trend=self.degradation_trend(signals),
            key_metric_forecast=forecast,
            confidence_intervals=intervals,
            confidence=(min(1.0, len(samples) / 100.0) + (1.0 - max_probability)) / 2.0,
            details=details,
        )

    def score_components(
        self, signals: PumpSignals
    ) -> Tuple[Dict[str, float], Dict[str, List[str]]]:
        probabilities: Dict[str, float] = {}
        fired: Dict[str, List[str]] = {}
        for model in self.component_models:
            score, names = model.score(signals)
            probabilities[model.component.value] = score
            fired[model.component.value] = names
        return probabilities, fired

    @staticmethod
    def remaining_useful_life(max_probability: float, base_days: int) -> int:
        """RUL bucket driven by the weakest component"""
        if max_probability > 0.8:
            return max(1, base_days // 7)
        if max_probability > 0.6:
            return max(3, base_days // 3)
        if max_probability > 0.4:
            return base_days
        if max_probability > 0.2:
            return base_days * 2
        return base_days * 4

    @staticmethod
    def failure_time_offset(failure_probability: float, rul_days: int) -> int:
        """Days until predicted failure, bucketed on the aggregate probability"""
        if failure_probability > 0.8:
            return max(1, rul_days // 7)
        if failure_probability > 0.6:
            return max(3, rul_days // 3)
        return rul_days

    @staticmethod
    def degradation_trend(signals: PumpSignals) -> DegradationTrend:
        efficiencies = signals.efficiency_series
        if len(efficiencies) < 5:
            return DegradationTrend.INSUFFICIENT_DATA

        trend = stats.analyze_trend(efficiencies)
        if trend.direction == TrendDirection.DECREASING:
            if trend.strength > 0.8:
                return DegradationTrend.RAPID
            if trend.strength > 0.5:
                return DegradationTrend.MODERATE
            return DegradationTrend.SLOW
        if trend.direction == TrendDirection.INCREASING:
            return DegradationTrend.IMPROVING
        return DegradationTrend.STABLE

    def forecast_key_metrics(self, signals: PumpSignals) -> Dict[str, float]:
        forecast = {}
        for name, attr in FORECAST_METRICS.items():
            series = getattr(signals, attr)
            if series:
                forecast[name] = self.predict_next_value(series)
        return forecast

    def predict_next_value(self, series: List[float]) -> float:
        """Linear extrapolation of the most recent points to the next index"""
        if len(series) < 3:
            return stats.mean(series)
        recent = series[-min(self.settings.forecast_points, len(series)) :]
        fit = stats.linear_regression(list(range(len(recent))), recent)
        return fit.predict(len(recent))

    def _low_confidence(
        self, samples: List[Sample], base_days: int, reason: str
    ) -> Prediction:
        logger.info("low_confidence_prediction", reason=reason)
        return Prediction(
            component_probabilities={m.component.value: 0.1 for m in self.component_models},
            failure_probability=0.1,
            remaining_useful_life_days=base_days,
            predicted_failure_time=self.clock() + timedelta(days=base_days),
            degradation_trend=DegradationTrend.UNKNOWN,
            confidence=min(1.0, len(samples) / 100.0) / 2.0,
            details={"sample_count": len(samples), "reason": reason},
        )
