"""Data models for pump analytics and alerting."""

from .alert_models import (
    AlertLevel,
    AlertRecord,
    AlertRule,
    AlertStatus,
    EvaluationResult,
    NotificationChannel,
    NotificationMethod,
    NotificationStatus,
    NotificationTask,
    RuleType,
)
from .pump_models import (
    AnalysisReport,
    AnalysisStatus,
    AnalysisType,
    Component,
    DegradationTrend,
    Finding,
    MaintenancePlan,
    PerformanceMetrics,
    PerformanceScores,
    Prediction,
    RiskLevel,
    Sample,
    ThresholdConfig,
    TrendDirection,
)

__all__ = [
    "AlertLevel",
    "AlertRecord",
    "AlertRule",
    "AlertStatus",
    "AnalysisReport",
    "AnalysisStatus",
    "AnalysisType",
    "Component",
    "DegradationTrend",
    "EvaluationResult",
    "Finding",
    "MaintenancePlan",
    "NotificationChannel",
    "NotificationMethod",
    "NotificationStatus",
    "NotificationTask",
    "PerformanceMetrics",
    "PerformanceScores",
    "Prediction",
    "RiskLevel",
    "RuleType",
    "Sample",
    "ThresholdConfig",
    "TrendDirection",
]
