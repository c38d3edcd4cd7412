"""
Tests for the in-memory repositories
"""

from datetime import timedelta

import pytest

from pump_copilot.exceptions import AlertNotFoundError
from pump_copilot.models.alert_models import (
    AlertLevel,
    AlertRecord,
    AlertStatus,
    NotificationChannel,
    NotificationStatus,
    NotificationTask,
)
from pump_copilot.repositories import (
    InMemoryAlertStore,
    InMemoryNotificationStore,
    InMemoryRuleStore,
    InMemorySampleStore,
)
from tests.fixtures.alert_fixtures import make_rule
from tests.fixtures.sample_fixtures import BASE_TIME, make_sample, make_series


def make_record(alert_id, minutes=0, device_id="PUMP-001", rule_id="vib-high"):
    return AlertRecord(
        alert_id=alert_id,
        rule_id=rule_id,
        device_id=device_id,
        severity=AlertLevel.WARNING,
        title="t",
        body="b",
        alert_time=BASE_TIME + timedelta(minutes=minutes),
    )


class TestSampleStore:

    def test_query_is_inclusive_and_sorted(self):
        samples = make_series(6)
        store = InMemorySampleStore(reversed(samples))

        result = store.query(
            "PUMP-001", BASE_TIME + timedelta(minutes=10), BASE_TIME + timedelta(minutes=30)
        )

        assert [s.timestamp for s in result] == [s.timestamp for s in samples[1:4]]

    def test_unknown_device(self):
        assert InMemorySampleStore().query("PUMP-404", BASE_TIME, BASE_TIME) == []

    def test_device_ids(self):
        store = InMemorySampleStore()
        store.add(make_sample(0, device_id="PUMP-002"))
        store.add(make_sample(0, device_id="PUMP-001"))
        assert store.device_ids() == ["PUMP-001", "PUMP-002"]


class TestRuleStore:

    def test_applicable_rules(self):
        store = InMemoryRuleStore(
            [
                make_rule(rule_id="global"),
                make_rule(rule_id="mine", device_id="PUMP-001"),
                make_rule(rule_id="other", device_id="PUMP-002"),
                make_rule(rule_id="off", active=False),
            ]
        )
        assert [r.rule_id for r in store.applicable_rules("PUMP-001")] == ["global", "mine"]

    def test_add_and_remove(self):
        store = InMemoryRuleStore()
        store.add(make_rule())
        assert store.get("vib-high") is not None
        assert store.remove("vib-high") is True
        assert store.remove("vib-high") is False
        assert store.all_rules() == []


class TestAlertStore:

    def test_recent_alerts_newest_first(self):
        store = InMemoryAlertStore()
        for i, minutes in enumerate((0, 20, 10)):
            store.save(make_record(f"A{i}", minutes))
        store.save(make_record("other", 15, rule_id="temp-high"))

        recent = store.recent_alerts("PUMP-001", "vib-high", BASE_TIME + timedelta(minutes=5))

        assert [a.alert_id for a in recent] == ["A1", "A2"]

    def test_update_status_sets_audit_fields(self):
        store = InMemoryAlertStore()
        store.save(make_record("A1"))
        at = BASE_TIME + timedelta(hours=1)

        store.update_status("A1", AlertStatus.ACKNOWLEDGED, who="op", at=at)
        record = store.update_status("A1", AlertStatus.RESOLVED, who="tech", note="done", at=at)

        assert record.confirmed_by == "op"
        assert record.resolved_by == "tech"
        assert record.resolution_note == "done"
        assert record.resolved_at == at

    def test_update_unknown(self):
        with pytest.raises(AlertNotFoundError):
            InMemoryAlertStore().update_status("nope", AlertStatus.RESOLVED)

    def test_find_and_delete(self):
        store = InMemoryAlertStore()
        store.save(make_record("old", 0))
        store.save(make_record("new", 60, device_id="PUMP-002"))

        assert [a.alert_id for a in store.find(device_id="PUMP-002")] == ["new"]
        assert [a.alert_id for a in store.find(status=[AlertStatus.ACTIVE])] == ["new", "old"]
        assert store.delete_older_than(BASE_TIME + timedelta(minutes=30)) == 1
        assert store.get("old") is None


class TestNotificationStore:

    def make_task(self, status=NotificationStatus.PENDING):
        return NotificationTask(
            alert_id="A1",
            channel=NotificationChannel.EMAIL,
            recipient="ops@example.com",
            subject="s",
            body="b",
            created_at=BASE_TIME,
            status=status,
        )

    def test_query_filters(self):
        store = InMemoryNotificationStore()
        pending = store.save(self.make_task())
        store.save(self.make_task(NotificationStatus.SUCCESS))

        assert store.query(status=[NotificationStatus.PENDING]) == [pending]
        assert len(store.query(alert_id="A1", channel=NotificationChannel.EMAIL)) == 2
        assert store.query(channel=NotificationChannel.SMS) == []

    def test_update_status(self):
        store = InMemoryNotificationStore()
        task = store.save(self.make_task())

        updated = store.update_status(
            task.task_id, NotificationStatus.FAILED, error_message="timeout"
        )

        assert updated.status == NotificationStatus.FAILED
        assert updated.error_message == "timeout"

    def test_update_rejects_unknown_fields(self):
        store = InMemoryNotificationStore()
        task = store.save(self.make_task())
        with pytest.raises(ValueError):
            store.update_status(task.task_id, NotificationStatus.FAILED, colour="red")
        with pytest.raises(KeyError):
            store.update_status("missing", NotificationStatus.FAILED)
