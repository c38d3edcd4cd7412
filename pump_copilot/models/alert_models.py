"""
Alert Data Models
==================

Rules, alert records, rule evaluation results and notification tasks.

AlertRule is read-only configuration. AlertRecord and NotificationTask are
the stateful parts: their allowed status moves are listed in
ALERT_TRANSITIONS and NOTIFICATION_TRANSITIONS.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════════════


class RuleType(str, Enum):
    """Supported rule evaluation strategies"""
    THRESHOLD = "THRESHOLD"
    ANOMALY_DETECTION = "ANOMALY_DETECTION"
    PERFORMANCE_DEGRADATION = "PERFORMANCE_DEGRADATION"
    FAULT_PREDICTION = "FAULT_PREDICTION"
    HEALTH_SCORE = "HEALTH_SCORE"
    CUSTOM = "CUSTOM"


class AlertLevel(str, Enum):
    """Alert severity"""
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        return {"CRITICAL": 3, "WARNING": 2, "INFO": 1}[self.value]


class AlertStatus(str, Enum):
    """Alert lifecycle states"""
    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    SUPPRESSED = "SUPPRESSED"
    FALSE_POSITIVE = "FALSE_POSITIVE"


class NotificationChannel(str, Enum):
    """Delivery channels"""
    EMAIL = "EMAIL"
    WEBSOCKET = "WEBSOCKET"
    SMS = "SMS"
    SYSTEM = "SYSTEM"


class NotificationMethod(str, Enum):
    """Channels a rule asks for; ALL expands to every person-facing channel"""
    EMAIL = "EMAIL"
    WEBSOCKET = "WEBSOCKET"
    SMS = "SMS"
    SYSTEM = "SYSTEM"
    ALL = "ALL"

    def channels(self) -> List[NotificationChannel]:
        if self == NotificationMethod.ALL:
            return [
                NotificationChannel.EMAIL,
                NotificationChannel.SMS,
                NotificationChannel.WEBSOCKET,
            ]
        return [NotificationChannel(self.value)]


class NotificationStatus(str, Enum):
    """Per-task delivery state"""
    PENDING = "PENDING"
    SENDING = "SENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    RETRY = "RETRY"
    SKIPPED = "SKIPPED"


ALERT_TRANSITIONS: Dict[AlertStatus, FrozenSet[AlertStatus]] = {
    AlertStatus.ACTIVE: frozenset(
        {AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED, AlertStatus.FALSE_POSITIVE}
    ),
    AlertStatus.ACKNOWLEDGED: frozenset(
        {AlertStatus.RESOLVED, AlertStatus.FALSE_POSITIVE}
    ),
    AlertStatus.RESOLVED: frozenset(),
    AlertStatus.SUPPRESSED: frozenset(),
    AlertStatus.FALSE_POSITIVE: frozenset(),
}

NOTIFICATION_TRANSITIONS: Dict[NotificationStatus, FrozenSet[NotificationStatus]] = {
    NotificationStatus.PENDING: frozenset(
        {NotificationStatus.SENDING, NotificationStatus.SKIPPED}
    ),
    NotificationStatus.SENDING: frozenset(
        {NotificationStatus.SUCCESS, NotificationStatus.FAILED}
    ),
    NotificationStatus.FAILED: frozenset({NotificationStatus.RETRY}),
    NotificationStatus.RETRY: frozenset({NotificationStatus.SENDING}),
    NotificationStatus.SUCCESS: frozenset(),
    NotificationStatus.SKIPPED: frozenset(),
}

# Tasks in these states still hold their (channel, recipient) slot
IN_FLIGHT_STATUSES = frozenset(
    {NotificationStatus.PENDING, NotificationStatus.SENDING, NotificationStatus.RETRY}
)


# ══════════════════════════════════════════════════════════════════════════════
# RULES
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class AlertRule:
    """
    Configured alert rule.

    conditions holds the type-specific parameters, e.g. for THRESHOLD:
    {"metric": "max_vibration", "operator": ">", "threshold": 7.0}
    """
    rule_id: str
    name: str
    rule_type: RuleType
    severity: AlertLevel = AlertLevel.WARNING
    conditions: Dict[str, Any] = field(default_factory=dict)
    device_id: Optional[str] = None  # None = applies to every device
    check_interval_minutes: int = 5
    consecutive_trigger_count: int = 1
    suppression_minutes: int = 0
    notification_methods: Tuple[NotificationMethod, ...] = (NotificationMethod.SYSTEM,)
    active: bool = True

    def applies_to(self, device_id: str) -> bool:
        return self.active and (self.device_id is None or self.device_id == device_id)

    def channels(self) -> List[NotificationChannel]:
        """Distinct delivery channels in configured order"""
        result: List[NotificationChannel] = []
        for method in self.notification_methods:
            for channel in method.channels():
                if channel not in result:
                    result.append(channel)
        return result


@dataclass
class EvaluationResult:
    """Outcome of evaluating one rule against one metric context"""
    triggered: bool
    message: str
    severity: Optional[AlertLevel] = None
    triggered_value: Optional[float] = None
    threshold_value: Optional[float] = None
    confidence: float = 0.0
    recommendation: Optional[str] = None
    error: Optional[str] = None
    evaluated_metrics: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def not_triggered(cls, message: str, confidence: float = 0.0) -> "EvaluationResult":
        return cls(triggered=False, message=message, confidence=confidence)

    @classmethod
    def failure(cls, error: str) -> "EvaluationResult":
        return cls(triggered=False, message="Evaluation failed", error=error)

    @property
    def is_valid(self) -> bool:
        return not self.error

    @property
    def requires_immediate_action(self) -> bool:
        return self.triggered and self.severity == AlertLevel.CRITICAL

    def alert_title(self, device_id: Optional[str], rule_name: str) -> str:
        level = self.severity.value if self.severity else "INFO"
        device = f"Device {device_id} " if device_id else ""
        return f"[{level}] {device}{rule_name}"

    def alert_body(self) -> str:
        body = self.message
        if self.triggered_value is not None and self.threshold_value is not None:
            body += (
                f" (current: {self.triggered_value:.2f},"
                f" threshold: {self.threshold_value:.2f})"
            )
        body += f" [confidence: {self.confidence * 100:.1f}%]"
        if self.recommendation:
            body += f"\nRecommended action: {self.recommendation}"
        return body


# ══════════════════════════════════════════════════════════════════════════════
# ALERTS
# ══════════════════════════════════════════════════════════════════════════════


def new_alert_id(now: datetime) -> str:
    """ALERT_<epoch millis>_<8 hex chars>"""
    return f"ALERT_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"


@dataclass
class AlertRecord:
    """A materialized alert with its lifecycle state"""
    alert_id: str
    rule_id: str
    device_id: str
    severity: AlertLevel
    title: str
    body: str
    alert_time: datetime
    triggered_value: Optional[float] = None
    threshold_value: Optional[float] = None
    confidence: float = 0.0
    status: AlertStatus = AlertStatus.ACTIVE

    confirmed: bool = False
    confirmed_by: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_note: Optional[str] = None

    def can_transition_to(self, target: AlertStatus) -> bool:
        return target in ALERT_TRANSITIONS[self.status]

    @property
    def is_open(self) -> bool:
        return self.status in (AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "rule_id": self.rule_id,
            "device_id": self.device_id,
            "severity": self.severity.value,
            "title": self.title,
            "body": self.body,
            "alert_time": self.alert_time.isoformat(),
            "triggered_value": self.triggered_value,
            "threshold_value": self.threshold_value,
            "confidence": round(self.confidence, 3),
            "status": self.status.value,
            "confirmed": self.confirmed,
            "confirmed_by": self.confirmed_by,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolution_note": self.resolution_note,
        }


# ══════════════════════════════════════════════════════════════════════════════
# NOTIFICATIONS
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class NotificationTask:
    """Delivery of one alert to one recipient over one channel"""
    alert_id: str
    channel: NotificationChannel
    recipient: str
    subject: str
    body: str
    created_at: datetime
    task_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: NotificationStatus = NotificationStatus.PENDING
    retry_count: int = 0
    next_retry_time: Optional[datetime] = None
    last_retry_time: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def slot(self) -> Tuple[str, NotificationChannel, str]:
        return (self.alert_id, self.channel, self.recipient)

    def can_transition_to(self, target: NotificationStatus) -> bool:
        return target in NOTIFICATION_TRANSITIONS[self.status]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "alert_id": self.alert_id,
            "channel": self.channel.value,
            "recipient": self.recipient,
            "subject": self.subject,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "next_retry_time": (
                self.next_retry_time.isoformat() if self.next_retry_time else None
            ),
            "last_retry_time": (
                self.last_retry_time.isoformat() if self.last_retry_time else None
            ),
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "error_message": self.error_message,
        }
