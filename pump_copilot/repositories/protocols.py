"""
Storage and delivery contracts.

Durable persistence and real transports live outside the engine; anything
that satisfies these protocols can be passed to the services. The memory
module provides thread-safe implementations used by default and in tests.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Protocol

from pump_copilot.models.alert_models import (
    AlertRecord,
    AlertRule,
    AlertStatus,
    NotificationChannel,
    NotificationStatus,
    NotificationTask,
)
from pump_copilot.models.pump_models import Sample


class SampleStore(Protocol):
    def query(self, device_id: str, start: datetime, end: datetime) -> List[Sample]:
        """Samples for a device with start <= timestamp <= end, oldest first"""
        ...

    def device_ids(self) -> List[str]:
        ...


class RuleStore(Protocol):
    def applicable_rules(self, device_id: str) -> List[AlertRule]:
        """Active rules bound to the device plus active global rules"""
        ...


class AlertStore(Protocol):
    def save(self, record: AlertRecord) -> AlertRecord:
        ...

    def get(self, alert_id: str) -> Optional[AlertRecord]:
        ...

    def recent_alerts(
        self, device_id: str, rule_id: str, since: datetime
    ) -> List[AlertRecord]:
        """Alerts for (device, rule) with alert_time >= since, newest first"""
        ...

    def update_status(
        self,
        alert_id: str,
        status: AlertStatus,
        who: Optional[str] = None,
        note: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> AlertRecord:
        ...

    def find(
        self,
        status: Optional[Iterable[AlertStatus]] = None,
        device_id: Optional[str] = None,
    ) -> List[AlertRecord]:
        ...

    def delete_older_than(self, cutoff: datetime) -> int:
        ...


class NotificationTransport(Protocol):
    def send(
        self, channel: NotificationChannel, recipient: str, subject: str, body: str
    ) -> bool:
        """True when delivered; False or an exception means failure"""
        ...


class NotificationStore(Protocol):
    def save(self, task: NotificationTask) -> NotificationTask:
        ...

    def get(self, task_id: str) -> Optional[NotificationTask]:
        ...

    def query(
        self,
        alert_id: Optional[str] = None,
        status: Optional[Iterable[NotificationStatus]] = None,
        channel: Optional[NotificationChannel] = None,
    ) -> List[NotificationTask]:
        ...

    def update_status(
        self, task_id: str, status: NotificationStatus, **changes
    ) -> NotificationTask:
        ...
