"""
Alert Manager Service

Turns rule evaluations into alert records and owns the alert lifecycle.

For every triggered rule on a device, in order:
1. suppression: no new alert while one exists within suppression_minutes
2. duplicate: no new alert if one in the last hour carries a triggered value
   within 5% of the current one
3. consecutive triggers: the rule must fire on consecutive_trigger_count
   consecutive evaluations before a record is created

Steps 1-3 and the save run under a lock per (device_id, rule_id), so two
concurrent checks of the same rule on the same device cannot both create a
record. Notification dispatch happens after the lock is released.
"""

import threading
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from pump_copilot.exceptions import AlertNotFoundError, InvalidTransitionError
from pump_copilot.models.alert_models import (
    AlertRecord,
    AlertRule,
    AlertStatus,
    EvaluationResult,
    new_alert_id,
)
from pump_copilot.repositories.protocols import AlertStore, RuleStore
from pump_copilot.services.notification_dispatcher import NotificationDispatcher
from pump_copilot.services.rule_engine import AlertRuleEngine
from pump_copilot.settings import AlertSettings

logger = structlog.get_logger()

StreakKey = Tuple[str, str]


def values_match(current: Optional[float], previous: Optional[float], tolerance: float) -> bool:
    """
    True when `current` lies strictly within `tolerance` of `previous`,
    relative to `previous`. A missing or zero value never matches.
    """
    if current is None or previous is None or previous == 0:
        return False
    return abs(current - previous) / abs(previous) < tolerance


class AlertManager:
    """
    Example Usage:
        manager = AlertManager(rule_store, alert_store, AlertRuleEngine(), dispatcher)
        created = manager.evaluate_device("PUMP-001", report.to_context())
        manager.acknowledge(created[0].alert_id, "operator-7")
    """

    def __init__(
        self,
        rule_store: RuleStore,
        alert_store: AlertStore,
        rule_engine: Optional[AlertRuleEngine] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[AlertSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.rule_store = rule_store
        self.alert_store = alert_store
        self.rule_engine = rule_engine or AlertRuleEngine()
        self.dispatcher = dispatcher
        self.settings = settings or AlertSettings()
        self.clock = clock

        self._locks: Dict[StreakKey, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        # Timestamps of held-back triggers per (device_id, rule_id)
        self._streaks: Dict[StreakKey, List[datetime]] = {}

    def _lock_for(self, key: StreakKey) -> threading.Lock:
        with self._locks_guard:
            return self._locks[key]

    # ═══════════════════════════════════════════════════════════════════════════
    # RULE CHECKS
    # ═══════════════════════════════════════════════════════════════════════════

    def evaluate_device(
        self,
        device_id: str,
        context: Dict[str, float],
        now: Optional[datetime] = None,
    ) -> List[AlertRecord]:
        """Evaluate every applicable rule; returns the records created"""
        now = now or self.clock()
        created = []
        for rule in self.rule_store.applicable_rules(device_id):
            try:
                record = self.process_rule(device_id, rule, context, now)
            except Exception as e:
                logger.error(
                    "alert_rule_processing_failed",
                    device_id=device_id,
                    rule_id=rule.rule_id,
                    error=str(e),
                )
                continue
            if record is not None:
                created.append(record)
        return created

    def process_rule(
        self,
        device_id: str,
        rule: AlertRule,
        context: Dict[str, float],
        now: Optional[datetime] = None,
    ) -> Optional[AlertRecord]:
        now = now or self.clock()
        result = self.rule_engine.evaluate(rule, context)
        key = (device_id, rule.rule_id)

        with self._lock_for(key):
            if not result.triggered:
                self._streaks.pop(key, None)
                return None
            if self._is_suppressed(device_id, rule, now):
                logger.debug("alert_suppressed", device_id=device_id, rule_id=rule.rule_id)
                return None
            if self._is_duplicate(device_id, rule, result, now):
                logger.debug("alert_duplicate", device_id=device_id, rule_id=rule.rule_id)
                return None
            if not self._streak_complete(key, rule, now):
                logger.debug(
                    "alert_held_back",
                    device_id=device_id,
                    rule_id=rule.rule_id,
                    streak=len(self._streaks.get(key, [])),
                    required=rule.consecutive_trigger_count,
                )
                return None

            record = self.alert_store.save(self._build_record(device_id, rule, result, now))

        logger.info(
            "alert_created",
            alert_id=record.alert_id,
            device_id=device_id,
            rule_id=rule.rule_id,
            severity=record.severity.value,
        )
        self._notify(record, rule)
        return record

    def _is_suppressed(self, device_id: str, rule: AlertRule, now: datetime) -> bool:
        if rule.suppression_minutes <= 0:
            return False
        since = now - timedelta(minutes=rule.suppression_minutes)
        return bool(self.alert_store.recent_alerts(device_id, rule.rule_id, since))

    def _is_duplicate(
        self, device_id: str, rule: AlertRule, result: EvaluationResult, now: datetime
    ) -> bool:
        since = now - timedelta(minutes=self.settings.duplicate_window_minutes)
        for previous in self.alert_store.recent_alerts(device_id, rule.rule_id, since):
            if previous.status == AlertStatus.FALSE_POSITIVE:
                continue
            if values_match(
                result.triggered_value, previous.triggered_value, self.settings.duplicate_tolerance
            ):
                return True
        return False

    def _streak_complete(self, key: StreakKey, rule: AlertRule, now: datetime) -> bool:
        required = rule.consecutive_trigger_count
        if required <= 1:
            return True

        window = timedelta(minutes=rule.check_interval_minutes * required)
        streak = [t for t in self._streaks.get(key, []) if t >= now - window]
        if len(streak) >= required - 1:
            self._streaks.pop(key, None)
            return True

        streak.append(now)
        self._streaks[key] = streak
        return False

    @staticmethod
    def _build_record(
        device_id: str, rule: AlertRule, result: EvaluationResult, now: datetime
    ) -> AlertRecord:
        return AlertRecord(
            alert_id=new_alert_id(now),
            rule_id=rule.rule_id,
            device_id=device_id,
            severity=result.severity or rule.severity,
            title=result.alert_title(device_id, rule.name),
            body=result.alert_body(),
            alert_time=now,
            triggered_value=result.triggered_value,
            threshold_value=result.threshold_value,
            confidence=result.confidence,
        )

    def _notify(self, record: AlertRecord, rule: AlertRule):
        if self.dispatcher is None:
            return
        try:
            self.dispatcher.dispatch(record, rule.channels())
        except Exception as e:
            logger.error("alert_dispatch_failed", alert_id=record.alert_id, error=str(e))

    # ═══════════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════════

    def _transition(
        self,
        alert_id: str,
        target: AlertStatus,
        who: Optional[str],
        note: Optional[str] = None,
    ) -> AlertRecord:
        with self._lifecycle_lock:
            record = self.alert_store.get(alert_id)
            if record is None:
                raise AlertNotFoundError(f"Alert {alert_id} not found")
            if not record.can_transition_to(target):
                raise InvalidTransitionError(alert_id, record.status.value, target.value)
            updated = self.alert_store.update_status(
                alert_id, target, who=who, note=note, at=self.clock()
            )

        logger.info("alert_status_changed", alert_id=alert_id, status=target.value, by=who)
        return updated

    def acknowledge(self, alert_id: str, who: str) -> AlertRecord:
        return self._transition(alert_id, AlertStatus.ACKNOWLEDGED, who)

    def resolve(self, alert_id: str, who: str, note: Optional[str] = None) -> AlertRecord:
        return self._transition(alert_id, AlertStatus.RESOLVED, who, note)

    def mark_false_positive(
        self, alert_id: str, who: str, note: Optional[str] = None
    ) -> AlertRecord:
        return self._transition(alert_id, AlertStatus.FALSE_POSITIVE, who, note)

    # ═══════════════════════════════════════════════════════════════════════════
    # QUERIES / HOUSEKEEPING
    # ═══════════════════════════════════════════════════════════════════════════

    def get_active_alerts(
        self, device_id: Optional[str] = None, include_acknowledged: bool = False
    ) -> List[AlertRecord]:
        statuses = [AlertStatus.ACTIVE]
        if include_acknowledged:
            statuses.append(AlertStatus.ACKNOWLEDGED)
        return self.alert_store.find(status=statuses, device_id=device_id)

    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Delete alerts older than the retention period"""
        now = now or self.clock()
        cutoff = now - timedelta(days=self.settings.retention_days)
        deleted = self.alert_store.delete_older_than(cutoff)
        if deleted:
            logger.info("alerts_cleaned_up", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted

    def statistics(self) -> Dict[str, Any]:
        alerts = self.alert_store.find()
        by_status = Counter(a.status.value for a in alerts)
        by_severity = Counter(a.severity.value for a in alerts)
        confirmed = sum(1 for a in alerts if a.confirmed)
        return {
            "total": len(alerts),
            "active": by_status[AlertStatus.ACTIVE.value],
            "by_status": dict(by_status),
            "by_severity": dict(by_severity),
            "acknowledgement_rate": confirmed / len(alerts) if alerts else 0.0,
        }
