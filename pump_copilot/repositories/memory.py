"""
In-memory repositories.

Thread-safe implementations of the storage protocols. Each store guards its
state with one lock; records are returned by reference and must only be
changed through the store's update methods.
"""

import bisect
import logging
import threading
from collections import defaultdict
from dataclasses import fields
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pump_copilot.exceptions import AlertNotFoundError
from pump_copilot.models.alert_models import (
    AlertRecord,
    AlertRule,
    AlertStatus,
    NotificationChannel,
    NotificationStatus,
    NotificationTask,
)
from pump_copilot.models.pump_models import Sample

logger = logging.getLogger(__name__)


class InMemorySampleStore:
    """Samples kept sorted by timestamp per device"""

    def __init__(self, samples: Optional[Iterable[Sample]] = None):
        self._lock = threading.Lock()
        self._samples: Dict[str, List[Sample]] = defaultdict(list)
        self._timestamps: Dict[str, List[datetime]] = defaultdict(list)
        if samples:
            self.add_many(samples)

    def add(self, sample: Sample):
        with self._lock:
            index = bisect.bisect_right(self._timestamps[sample.device_id], sample.timestamp)
            self._timestamps[sample.device_id].insert(index, sample.timestamp)
            self._samples[sample.device_id].insert(index, sample)

    def add_many(self, samples: Iterable[Sample]):
        for sample in samples:
            self.add(sample)

    def query(self, device_id: str, start: datetime, end: datetime) -> List[Sample]:
        with self._lock:
            stamps = self._timestamps.get(device_id, [])
            lo = bisect.bisect_left(stamps, start)
            hi = bisect.bisect_right(stamps, end)
            return list(self._samples[device_id][lo:hi]) if stamps else []

    def device_ids(self) -> List[str]:
        with self._lock:
            return sorted(d for d, s in self._samples.items() if s)


class InMemoryRuleStore:
    """Rule registry keyed by rule_id"""

    def __init__(self, rules: Optional[Iterable[AlertRule]] = None):
        self._lock = threading.Lock()
        self._rules: Dict[str, AlertRule] = {}
        for rule in rules or ():
            self._rules[rule.rule_id] = rule

    def add(self, rule: AlertRule):
        with self._lock:
            self._rules[rule.rule_id] = rule

    def remove(self, rule_id: str) -> bool:
        with self._lock:
            return self._rules.pop(rule_id, None) is not None

    def get(self, rule_id: str) -> Optional[AlertRule]:
        with self._lock:
            return self._rules.get(rule_id)

    def all_rules(self) -> List[AlertRule]:
        with self._lock:
            return list(self._rules.values())

    def applicable_rules(self, device_id: str) -> List[AlertRule]:
        with self._lock:
            return [r for r in self._rules.values() if r.applies_to(device_id)]


class InMemoryAlertStore:
    """Alert records keyed by alert_id"""

    def __init__(self):
        self._lock = threading.Lock()
        self._alerts: Dict[str, AlertRecord] = {}

    def save(self, record: AlertRecord) -> AlertRecord:
        with self._lock:
            self._alerts[record.alert_id] = record
        return record

    def get(self, alert_id: str) -> Optional[AlertRecord]:
        with self._lock:
            return self._alerts.get(alert_id)

    def recent_alerts(
        self, device_id: str, rule_id: str, since: datetime
    ) -> List[AlertRecord]:
        with self._lock:
            matches = [
                a
                for a in self._alerts.values()
                if a.device_id == device_id and a.rule_id == rule_id and a.alert_time >= since
            ]
        return sorted(matches, key=lambda a: a.alert_time, reverse=True)

    def update_status(
        self,
        alert_id: str,
        status: AlertStatus,
        who: Optional[str] = None,
        note: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> AlertRecord:
        with self._lock:
            record = self._alerts.get(alert_id)
            if record is None:
                raise AlertNotFoundError(f"Alert {alert_id} not found")

            record.status = status
            if status == AlertStatus.ACKNOWLEDGED:
                record.confirmed = True
                record.confirmed_by = who
                record.confirmed_at = at
            elif status in (AlertStatus.RESOLVED, AlertStatus.FALSE_POSITIVE):
                record.resolved_by = who
                record.resolved_at = at
                record.resolution_note = note
            return record

    def find(
        self,
        status: Optional[Iterable[AlertStatus]] = None,
        device_id: Optional[str] = None,
    ) -> List[AlertRecord]:
        wanted = set(status) if status is not None else None
        with self._lock:
            matches = [
                a
                for a in self._alerts.values()
                if (wanted is None or a.status in wanted)
                and (device_id is None or a.device_id == device_id)
            ]
        return sorted(matches, key=lambda a: a.alert_time, reverse=True)

    def delete_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [k for k, a in self._alerts.items() if a.alert_time < cutoff]
            for key in stale:
                del self._alerts[key]
        if stale:
            logger.info(f"Deleted {len(stale)} alerts older than {cutoff.isoformat()}")
        return len(stale)


class InMemoryNotificationStore:
    """Notification tasks keyed by task_id"""

    _FIELDS = {f.name for f in fields(NotificationTask)}

    def __init__(self):
        self._lock = threading.Lock()
        self._tasks: Dict[str, NotificationTask] = {}

    def save(self, task: NotificationTask) -> NotificationTask:
        with self._lock:
            self._tasks[task.task_id] = task
        return task

    def get(self, task_id: str) -> Optional[NotificationTask]:
        with self._lock:
            return self._tasks.get(task_id)

    def query(
        self,
        alert_id: Optional[str] = None,
        status: Optional[Iterable[NotificationStatus]] = None,
        channel: Optional[NotificationChannel] = None,
    ) -> List[NotificationTask]:
        wanted = set(status) if status is not None else None
        with self._lock:
            return [
                t
                for t in self._tasks.values()
                if (alert_id is None or t.alert_id == alert_id)
                and (wanted is None or t.status in wanted)
                and (channel is None or t.channel == channel)
            ]

    def update_status(
        self, task_id: str, status: NotificationStatus, **changes
    ) -> NotificationTask:
        unknown = set(changes) - self._FIELDS
        if unknown:
            raise ValueError(f"Unknown notification task fields: {sorted(unknown)}")

        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise KeyError(task_id)
            task.status = status
            for name, value in changes.items():
                setattr(task, name, value)
            return task
