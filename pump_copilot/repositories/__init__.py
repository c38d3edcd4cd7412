"""Repository layer: storage contracts and in-memory implementations."""

from .memory import (
    InMemoryAlertStore,
    InMemoryNotificationStore,
    InMemoryRuleStore,
    InMemorySampleStore,
)
from .protocols import (
    AlertStore,
    NotificationStore,
    NotificationTransport,
    RuleStore,
    SampleStore,
)

__all__ = [
    "AlertStore",
    "InMemoryAlertStore",
    "InMemoryNotificationStore",
    "InMemoryRuleStore",
    "InMemorySampleStore",
    "NotificationStore",
    "NotificationTransport",
    "RuleStore",
    "SampleStore",
]
