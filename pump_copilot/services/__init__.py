"""Service layer: analytics and alerting logic."""

from .alert_manager import AlertManager
from .anomaly_detector import AnomalyDetector
from .fault_predictor import FaultPredictor
from .maintenance_advisor import MaintenanceAdvisor
from .notification_dispatcher import NotificationDispatcher
from .performance_scorer import PerformanceScorer
from .rule_engine import AlertRuleEngine
from .transports import ChannelRouter, EmailTransport, LoggingTransport

__all__ = [
    "AlertManager",
    "AlertRuleEngine",
    "AnomalyDetector",
    "ChannelRouter",
    "EmailTransport",
    "FaultPredictor",
    "LoggingTransport",
    "MaintenanceAdvisor",
    "NotificationDispatcher",
    "PerformanceScorer",
]
