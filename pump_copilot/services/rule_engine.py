"""
Alert Rule Engine

Evaluates one AlertRule against a flat metric context (see
AnalysisReport.to_context) and returns an EvaluationResult.

Evaluation never raises:
- a metric missing from the context gives a not-triggered result
- malformed conditions or unexpected errors give a failure result with
  `error` set, and are logged
- unknown rule types give a not-triggered result
"""

import math
from typing import Any, Callable, Dict, List, Optional

import structlog

from pump_copilot.exceptions import ConfigurationError, MissingMetricError
from pump_copilot.models.alert_models import (
    AlertLevel,
    AlertRule,
    EvaluationResult,
    RuleType,
)

logger = structlog.get_logger()

EQUALITY_TOLERANCE = 1e-4

OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    "gt": lambda a, b: a > b,
    ">": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
    ">=": lambda a, b: a >= b,
    "lt": lambda a, b: a < b,
    "<": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
    "<=": lambda a, b: a <= b,
    "eq": lambda a, b: abs(a - b) < EQUALITY_TOLERANCE,
    "==": lambda a, b: abs(a - b) < EQUALITY_TOLERANCE,
    "ne": lambda a, b: abs(a - b) >= EQUALITY_TOLERANCE,
    "!=": lambda a, b: abs(a - b) >= EQUALITY_TOLERANCE,
}

OPERATOR_SYMBOLS = {"gt": ">", "gte": ">=", "lt": "<", "lte": "<=", "eq": "=", "ne": "!="}

PERFORMANCE_RECOMMENDATIONS = {
    "average_power": "Check motor load and power supply, tune operating parameters",
    "average_vibration": "Check mounting foundation and rotor balance",
    "efficiency_score": "Service the pump and check pipeline resistance",
}
DEFAULT_PERFORMANCE_RECOMMENDATION = "Watch the pump closely and service it if needed"


def compare(value: float, operator: str, threshold: float) -> bool:
    """Apply a comparison operator; equality uses a 1e-4 tolerance"""
    try:
        return OPERATORS[operator.lower()](value, threshold)
    except KeyError:
        raise ConfigurationError(f"Unsupported operator '{operator}'") from None


def _number(value: Any, name: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Condition '{name}' is not a number: {value!r}")
    if math.isnan(result):
        raise ConfigurationError(f"Condition '{name}' is NaN")
    return result


def _metric(context: Dict[str, float], name: str) -> float:
    value = context.get(name)
    if value is None:
        raise MissingMetricError(name)
    return float(value)


class AlertRuleEngine:
    """
    Rule evaluator dispatching on RuleType.

    Example Usage:
        engine = AlertRuleEngine()
        result = engine.evaluate(rule, report.to_context())
        if result.triggered:
            print(result.alert_title(report.device_id, rule.name))
    """

    CONFIDENCE = {
        RuleType.THRESHOLD: 0.9,
        RuleType.PERFORMANCE_DEGRADATION: 0.8,
        RuleType.FAULT_PREDICTION: 0.7,
        RuleType.HEALTH_SCORE: 0.85,
        RuleType.CUSTOM: 0.75,
    }

    DEFAULT_ANOMALY_RATE_THRESHOLD = 20.0
    DEFAULT_DEGRADATION_THRESHOLD = 20.0
    DEFAULT_FAILURE_PROBABILITY_THRESHOLD = 0.7
    DEFAULT_HEALTH_SCORE_THRESHOLD = 60.0

    def __init__(self):
        self._handlers = {
            RuleType.THRESHOLD: self._threshold,
            RuleType.ANOMALY_DETECTION: self._anomaly,
            RuleType.PERFORMANCE_DEGRADATION: self._performance,
            RuleType.FAULT_PREDICTION: self._fault_prediction,
            RuleType.HEALTH_SCORE: self._health_score,
            RuleType.CUSTOM: self._custom,
        }

    def evaluate(self, rule: AlertRule, context: Dict[str, float]) -> EvaluationResult:
        handler = self._handlers.get(rule.rule_type)
        if handler is None:
            return EvaluationResult.not_triggered(f"Unknown rule type: {rule.rule_type}")

        try:
            result = handler(rule, context)
        except MissingMetricError as e:
            return EvaluationResult.not_triggered(f"Metric not available: {e.metric}")
        except ConfigurationError as e:
            logger.warning("rule_misconfigured", rule_id=rule.rule_id, error=str(e))
            return EvaluationResult.failure(str(e))
        except Exception as e:
            logger.error("rule_evaluation_failed", rule_id=rule.rule_id, error=str(e))
            return EvaluationResult.failure(f"Rule evaluation error: {e}")

        result.evaluated_metrics = dict(context)
        logger.debug(
            "rule_evaluated", rule_id=rule.rule_id, triggered=result.triggered
        )
        return result

    # ═══════════════════════════════════════════════════════════════════════════
    # RULE TYPES
    # ═══════════════════════════════════════════════════════════════════════════

    def _threshold(self, rule: AlertRule, context: Dict[str, float]) -> EvaluationResult:
        conditions = rule.conditions
        metric = conditions.get("metric")
        operator = conditions.get("operator")
        if not metric or not operator or conditions.get("threshold") is None:
            raise ConfigurationError("Threshold rule needs metric, operator and threshold")

        threshold = _number(conditions["threshold"], "threshold")
        value = _metric(context, metric)
        if not compare(value, str(operator), threshold):
            return EvaluationResult.not_triggered("Metric within limits")

        symbol = OPERATOR_SYMBOLS.get(str(operator).lower(), str(operator))
        return EvaluationResult(
            triggered=True,
            message=f"Metric {metric} is {value:.2f}, {symbol} threshold {threshold:.2f}",
            severity=rule.severity,
            triggered_value=value,
            threshold_value=threshold,
            confidence=self.CONFIDENCE[RuleType.THRESHOLD],
        )

    def _anomaly(self, rule: AlertRule, context: Dict[str, float]) -> EvaluationResult:
        rate_threshold = _number(
            rule.conditions.get("anomaly_rate_threshold", self.DEFAULT_ANOMALY_RATE_THRESHOLD),
            "anomaly_rate_threshold",
        )
        anomaly_rate = context.get("anomaly_rate")
        confidence_score = context.get("confidence_score")
        if anomaly_rate is None and confidence_score is None:
            raise MissingMetricError("anomaly_rate")

        anomalous = (anomaly_rate is not None and anomaly_rate > rate_threshold) or (
            confidence_score is not None and confidence_score < 0.5
        )
        if not anomalous:
            return EvaluationResult.not_triggered("No anomaly detected")

        return EvaluationResult(
            triggered=True,
            message=(
                f"Anomaly detected: rate {anomaly_rate or 0.0:.1f}%,"
                f" confidence {(confidence_score or 0.0) * 100:.1f}%"
            ),
            severity=rule.severity,
            triggered_value=anomaly_rate,
            threshold_value=rate_threshold,
            confidence=confidence_score if confidence_score is not None else 0.5,
            recommendation="Inspect the pump and review the telemetry in detail",
        )

    def _performance(self, rule: AlertRule, context: Dict[str, float]) -> EvaluationResult:
        metric = rule.conditions.get("metric", "performance_score")
        degradation = _number(
            rule.conditions.get("degradation_threshold", self.DEFAULT_DEGRADATION_THRESHOLD),
            "degradation_threshold",
        )
        floor = 100.0 - degradation
        value = _metric(context, metric)
        if value >= floor:
            return EvaluationResult.not_triggered("Performance normal")

        return EvaluationResult(
            triggered=True,
            message=f"Performance dropped to {value:.2f}%, below {floor:.2f}%",
            severity=rule.severity,
            triggered_value=value,
            threshold_value=floor,
            confidence=self.CONFIDENCE[RuleType.PERFORMANCE_DEGRADATION],
            recommendation=PERFORMANCE_RECOMMENDATIONS.get(
                metric, DEFAULT_PERFORMANCE_RECOMMENDATION
            ),
        )

    def _fault_prediction(
        self, rule: AlertRule, context: Dict[str, float]
    ) -> EvaluationResult:
        threshold = _number(
            rule.conditions.get(
                "failure_probability_threshold", self.DEFAULT_FAILURE_PROBABILITY_THRESHOLD
            ),
            "failure_probability_threshold",
        )
        probability = _metric(context, "failure_probability")
        if probability < threshold:
            return EvaluationResult.not_triggered("Failure probability within range")

        return EvaluationResult(
            triggered=True,
            message=(
                f"Failure probability {probability * 100:.2f}%"
                f" exceeds {threshold * 100:.2f}%"
            ),
            severity=rule.severity,
            triggered_value=probability,
            threshold_value=threshold,
            confidence=self.CONFIDENCE[RuleType.FAULT_PREDICTION],
        )

    def _health_score(self, rule: AlertRule, context: Dict[str, float]) -> EvaluationResult:
        threshold = _number(
            rule.conditions.get("health_score_threshold", self.DEFAULT_HEALTH_SCORE_THRESHOLD),
            "health_score_threshold",
        )
        score = _metric(context, "health_score")
        if score >= threshold:
            return EvaluationResult.not_triggered("Health score normal")

        causes = self.health_root_causes(context)
        return EvaluationResult(
            triggered=True,
            message=f"Health score {score:.2f} below {threshold:.2f}",
            severity=self.health_severity(score),
            triggered_value=score,
            threshold_value=threshold,
            confidence=self.CONFIDENCE[RuleType.HEALTH_SCORE],
            recommendation=self.health_recommendation(score, causes),
        )

    def _custom(self, rule: AlertRule, context: Dict[str, float]) -> EvaluationResult:
        expectations = {
            key[len("metric_"):]: _number(value, key)
            for key, value in rule.conditions.items()
            if key.startswith("metric_")
        }
        if not expectations:
            raise ConfigurationError("Custom rule has no metric_* conditions")

        unmet = []
        for metric, expected in expectations.items():
            actual = _metric(context, metric)
            if actual < expected:
                unmet.append(f"{metric} (expected >= {expected:.2f}, actual {actual:.2f})")

        if unmet:
            return EvaluationResult.not_triggered(
                "Custom conditions not met: " + "; ".join(unmet)
            )
        return EvaluationResult(
            triggered=True,
            message="All custom conditions met",
            severity=rule.severity,
            confidence=self.CONFIDENCE[RuleType.CUSTOM],
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # HEALTH HELPERS
    # ═══════════════════════════════════════════════════════════════════════════

    @staticmethod
    def health_severity(score: float) -> AlertLevel:
        if score < 30:
            return AlertLevel.CRITICAL
        if score < 50:
            return AlertLevel.WARNING
        return AlertLevel.INFO

    @staticmethod
    def health_root_causes(context: Dict[str, float]) -> List[str]:
        causes = []
        checks = (
            ("efficiency_score", "low efficiency"),
            ("reliability_score", "insufficient reliability"),
            ("maintenance_score", "poor maintenance condition"),
        )
        for metric, cause in checks:
            value: Optional[float] = context.get(metric)
            if value is not None and value < 70:
                causes.append(cause)

        probability = context.get("failure_probability")
        if probability is not None and probability > 0.5:
            causes.append("high failure probability")

        return causes or ["overall decline of performance metrics"]

    @staticmethod
    def health_recommendation(score: float, causes: List[str]) -> str:
        if score < 30:
            text = "Stop the pump and carry out a full inspection."
        elif score < 50:
            text = "Schedule a repair soon to keep the fault from spreading."
        else:
            text = "Increase monitoring and plan preventive maintenance."
        return f"{text} Main causes: {', '.join(causes)}"
