"""
Pump Analysis Data Models
==========================

Dataclasses and enums shared by the detectors, the fault predictor, the
performance scorer and the maintenance advisor.

Samples and findings are immutable once built. Everything exposes to_dict()
for JSON serialization.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════════════


class TrendDirection(str, Enum):
    """Direction of a fitted trend"""
    INCREASING = "INCREASING"
    DECREASING = "DECREASING"
    STABLE = "STABLE"
    FLUCTUATING = "FLUCTUATING"


class AnalysisType(str, Enum):
    """Per-metric analyses run over a sample window"""
    STARTUP_FREQUENCY = "startup_frequency"
    RUNTIME = "runtime"
    ENERGY_TREND = "energy_trend"
    VIBRATION = "vibration"
    POWER = "power"
    ANOMALY_CLASSIFICATION = "anomaly_classification"


class Component(str, Enum):
    """Pump components scored by the fault predictor"""
    MOTOR = "motor"
    BEARING = "bearing"
    IMPELLER = "impeller"
    SEAL = "seal"
    CONTROL_SYSTEM = "control_system"


class DegradationTrend(str, Enum):
    """Hydraulic efficiency trend (pressure per kW)"""
    RAPID = "RAPID"
    MODERATE = "MODERATE"
    SLOW = "SLOW"
    IMPROVING = "IMPROVING"
    STABLE = "STABLE"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    UNKNOWN = "UNKNOWN"


class RiskLevel(str, Enum):
    """Overall device risk"""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNKNOWN = "UNKNOWN"

    @property
    def rank(self) -> int:
        return {"CRITICAL": 4, "HIGH": 3, "MEDIUM": 2, "LOW": 1}.get(self.value, 0)


class AnalysisStatus(str, Enum):
    SUCCESS = "SUCCESS"
    NO_DATA = "NO_DATA"
    FAILED = "FAILED"


# ══════════════════════════════════════════════════════════════════════════════
# TELEMETRY
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Sample:
    """
    One telemetry reading from a pump.

    Numeric fields that the device did not report stay None. Nothing in the
    engine treats None as zero.
    """
    device_id: str
    timestamp: datetime

    pump_status: Optional[int] = None  # 1 = running, 0 = stopped
    runtime_minutes: Optional[float] = None
    current_amperage: Optional[float] = None
    voltage: Optional[float] = None
    power_kw: Optional[float] = None
    energy_kwh: Optional[float] = None
    water_pressure_kpa: Optional[float] = None
    flow_rate_m3h: Optional[float] = None
    water_temp_c: Optional[float] = None
    vibration_mm_s: Optional[float] = None
    noise_db: Optional[float] = None

    fault_code: Optional[str] = None
    alarm_level: Optional[int] = None  # 0..3
    maintenance_flag: bool = False

    @property
    def has_fault(self) -> bool:
        return bool(self.fault_code and self.fault_code.strip())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sample":
        """Build a sample from a loosely typed record, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        ts = values.get("timestamp")
        if isinstance(ts, str):
            values["timestamp"] = datetime.fromisoformat(ts)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        result = {f.name: getattr(self, f.name) for f in fields(self)}
        result["timestamp"] = self.timestamp.isoformat()
        return result


@dataclass(frozen=True)
class ThresholdConfig:
    """
    Per-device threshold overrides for the detectors.

    A None field falls back to the detector default from DetectorSettings.
    """
    startup_frequency: Optional[float] = None
    runtime_minutes: Optional[float] = None
    power_deviation_pct: Optional[float] = None
    vibration_mm_s: Optional[float] = None
    energy_growth_pct: Optional[float] = None


# ══════════════════════════════════════════════════════════════════════════════
# ANALYSIS RESULTS
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Finding:
    """Result of one per-metric anomaly analysis"""
    analysis_type: AnalysisType
    severity: int  # 1 info .. 4 critical
    confidence: float  # 0..1
    description: str
    detected_value: Optional[float] = None
    expected_value: Optional[float] = None
    deviation_pct: Optional[float] = None
    trend_direction: TrendDirection = TrendDirection.STABLE
    detailed_metrics: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis_type": self.analysis_type.value,
            "severity": self.severity,
            "confidence": round(self.confidence, 3),
            "description": self.description,
            "detected_value": self.detected_value,
            "expected_value": self.expected_value,
            "deviation_pct": (
                round(self.deviation_pct, 2) if self.deviation_pct is not None else None
            ),
            "trend_direction": self.trend_direction.value,
            "detailed_metrics": dict(self.detailed_metrics),
            "recommendations": list(self.recommendations),
        }


@dataclass
class Prediction:
    """Component failure forecast for one device"""
    component_probabilities: Dict[str, float]
    failure_probability: float
    remaining_useful_life_days: int
    predicted_failure_time: datetime
    degradation_trend: DegradationTrend = DegradationTrend.UNKNOWN
    key_metric_forecast: Dict[str, float] = field(default_factory=dict)
    confidence_intervals: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    confidence: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def max_component_probability(self) -> float:
        return max(self.component_probabilities.values(), default=0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component_probabilities": {
                k: round(v, 3) for k, v in self.component_probabilities.items()
            },
            "failure_probability": round(self.failure_probability, 3),
            "remaining_useful_life_days": self.remaining_useful_life_days,
            "predicted_failure_time": self.predicted_failure_time.isoformat(),
            "degradation_trend": self.degradation_trend.value,
            "key_metric_forecast": self.key_metric_forecast,
            "confidence_intervals": {
                k: [low, high] for k, (low, high) in self.confidence_intervals.items()
            },
            "confidence": round(self.confidence, 3),
            "details": self.details,
        }


@dataclass
class PerformanceMetrics:
    """Descriptive operating metrics for a sample window"""
    startup_frequency: float = 0.0  # starts per hour
    total_runtime_hours: float = 0.0
    average_power: float = 0.0
    total_energy: float = 0.0
    average_vibration: float = 0.0
    max_vibration: float = 0.0
    average_pressure: float = 0.0
    average_flow_rate: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {f.name: round(getattr(self, f.name), 3) for f in fields(self)}


@dataclass
class PerformanceScores:
    """Efficiency, reliability and maintenance scores, each in 0..100"""
    efficiency: float = 100.0
    reliability: float = 100.0
    maintenance: float = 100.0
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)

    @property
    def overall(self) -> float:
        return (self.efficiency + self.reliability + self.maintenance) / 3.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "efficiency": round(self.efficiency, 1),
            "reliability": round(self.reliability, 1),
            "maintenance": round(self.maintenance, 1),
            "overall": round(self.overall, 1),
            "metrics": self.metrics.to_dict(),
        }


@dataclass
class MaintenancePlan:
    """Bucketed maintenance actions with cost and timing"""
    urgent_actions: List[str] = field(default_factory=list)
    scheduled_actions: List[str] = field(default_factory=list)
    preventive_actions: List[str] = field(default_factory=list)
    monitoring_recommendations: List[str] = field(default_factory=list)
    estimated_cost: float = 0.0
    recommended_time: Optional[datetime] = None
    summary: str = ""

    @property
    def total_actions(self) -> int:
        return (
            len(self.urgent_actions)
            + len(self.scheduled_actions)
            + len(self.preventive_actions)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "urgent_actions": list(self.urgent_actions),
            "scheduled_actions": list(self.scheduled_actions),
            "preventive_actions": list(self.preventive_actions),
            "monitoring_recommendations": list(self.monitoring_recommendations),
            "estimated_cost": self.estimated_cost,
            "recommended_time": (
                self.recommended_time.isoformat() if self.recommended_time else None
            ),
            "summary": self.summary,
        }


@dataclass
class AnalysisReport:
    """Full analysis of one device over one time window"""
    analysis_id: str
    device_id: str
    analysis_time: datetime
    status: AnalysisStatus
    findings: List[Finding] = field(default_factory=list)
    prediction: Optional[Prediction] = None
    scores: Optional[PerformanceScores] = None
    plan: Optional[MaintenancePlan] = None
    overall_health_score: float = 0.0
    risk_level: RiskLevel = RiskLevel.UNKNOWN
    confidence_score: float = 0.0
    processing_time_ms: float = 0.0
    error: Optional[str] = None

    def finding(self, analysis_type: AnalysisType) -> Optional[Finding]:
        for item in self.findings:
            if item.analysis_type == analysis_type:
                return item
        return None

    def to_context(self) -> Dict[str, float]:
        """
        Flatten the report into named metrics for rule evaluation.

        Only metrics that were actually computed are present, so rules that
        depend on a missing one evaluate as not triggered.
        """
        context: Dict[str, float] = {
            "health_score": self.overall_health_score,
            "confidence_score": self.confidence_score,
        }
        if self.risk_level != RiskLevel.UNKNOWN:
            context["risk_level"] = float(self.risk_level.rank)

        if self.scores is not None:
            context["efficiency_score"] = self.scores.efficiency
            context["reliability_score"] = self.scores.reliability
            context["maintenance_score"] = self.scores.maintenance
            context["performance_score"] = self.scores.overall
            context["average_power"] = self.scores.metrics.average_power
            context["average_vibration"] = self.scores.metrics.average_vibration
            context["max_vibration"] = self.scores.metrics.max_vibration

        if self.prediction is not None:
            context["failure_probability"] = self.prediction.failure_probability
            context["remaining_useful_life"] = float(
                self.prediction.remaining_useful_life_days
            )

        classification = self.finding(AnalysisType.ANOMALY_CLASSIFICATION)
        if classification is not None and classification.detected_value is not None:
            context["anomaly_rate"] = classification.detected_value

        return context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis_id": self.analysis_id,
            "device_id": self.device_id,
            "analysis_time": self.analysis_time.isoformat(),
            "status": self.status.value,
            "findings": [f.to_dict() for f in self.findings],
            "prediction": self.prediction.to_dict() if self.prediction else None,
            "scores": self.scores.to_dict() if self.scores else None,
            "plan": self.plan.to_dict() if self.plan else None,
            "overall_health_score": round(self.overall_health_score, 1),
            "risk_level": self.risk_level.value,
            "confidence_score": round(self.confidence_score, 3),
            "processing_time_ms": round(self.processing_time_ms, 1),
            "error": self.error,
        }
