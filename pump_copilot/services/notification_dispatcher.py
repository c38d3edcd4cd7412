"""
Notification Dispatcher

Fans an alert out into one NotificationTask per (channel, recipient) and
delivers the tasks on a worker pool.

Task lifecycle:
    PENDING -> SENDING -> SUCCESS
                       -> FAILED -> RETRY -> SENDING ...   (retry_count < max)

A (channel, recipient) pair that still has a PENDING, SENDING or RETRY task
for the same alert is not given a second one. Each channel's transport sits
behind its own circuit breaker; a send rejected by an open circuit is a
failed attempt like any other. SUCCESS tasks are never sent again.
"""

import threading
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog

from pump_copilot.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpenError,
    get_circuit_breaker,
)
from pump_copilot.exceptions import TransportFailureError
from pump_copilot.models.alert_models import (
    IN_FLIGHT_STATUSES,
    AlertRecord,
    NotificationChannel,
    NotificationStatus,
    NotificationTask,
)
from pump_copilot.repositories.protocols import NotificationStore, NotificationTransport
from pump_copilot.settings import NotificationSettings

logger = structlog.get_logger()

# Channels that address the system itself rather than people
SYSTEM_RECIPIENT = "SYSTEM"
SYSTEM_CHANNELS = frozenset({NotificationChannel.WEBSOCKET, NotificationChannel.SYSTEM})


class NotificationDispatcher:
    """
    Creates, delivers and retries notification tasks.

    Example Usage:
        dispatcher = NotificationDispatcher(store, transport, settings)
        dispatcher.dispatch(alert, [NotificationChannel.EMAIL])
        ...
        dispatcher.retry_failed()   # from the scheduler
    """

    def __init__(
        self,
        store: NotificationStore,
        transport: NotificationTransport,
        settings: Optional[NotificationSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.store = store
        self.transport = transport
        self.settings = settings or NotificationSettings()
        self.clock = clock

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.settings.worker_count, thread_name_prefix="notify"
        )
        # Guards slot checks and status claims
        self._lock = threading.Lock()
        self._sweep_lock = threading.Lock()

        breaker_config = CircuitBreakerConfig(
            failure_threshold=self.settings.breaker_failure_threshold,
            timeout_seconds=self.settings.breaker_timeout_seconds,
        )
        self.breakers: Dict[NotificationChannel, CircuitBreaker] = {
            channel: get_circuit_breaker(f"notify.{channel.value}", breaker_config, clock)
            for channel in NotificationChannel
        }

    # ═══════════════════════════════════════════════════════════════════════════
    # TASK CREATION
    # ═══════════════════════════════════════════════════════════════════════════

    def recipients_for(self, channel: NotificationChannel, alert: AlertRecord) -> List[str]:
        if channel in SYSTEM_CHANNELS:
            return [SYSTEM_RECIPIENT]
        recipients = self.settings.recipients_by_level().get(alert.severity.value, [])
        return list(dict.fromkeys(recipients))

    @staticmethod
    def compose(alert: AlertRecord) -> str:
        return (
            f"{alert.body}\n\n"
            f"Device: {alert.device_id}\n"
            f"Alert time: {alert.alert_time.strftime('%Y-%m-%d %H:%M:%S')}\n"
            f"Alert id: {alert.alert_id}"
        )

    def create_tasks(
        self, alert: AlertRecord, channels: Iterable[NotificationChannel]
    ) -> List[NotificationTask]:
        """PENDING tasks for every free (channel, recipient) slot of the alert"""
        now = self.clock()
        body = self.compose(alert)
        created = []

        with self._lock:
            taken = {
                t.slot
                for t in self.store.query(alert_id=alert.alert_id, status=IN_FLIGHT_STATUSES)
            }
            for channel in channels:
                for recipient in self.recipients_for(channel, alert):
                    task = NotificationTask(
                        alert_id=alert.alert_id,
                        channel=channel,
                        recipient=recipient,
                        subject=alert.title,
                        body=body,
                        created_at=now,
                    )
                    if task.slot in taken:
                        logger.debug(
                            "notification_slot_busy",
                            alert_id=alert.alert_id,
                            channel=channel.value,
                            recipient=recipient,
                        )
                        continue
                    taken.add(task.slot)
                    created.append(self.store.save(task))

        return created

    def dispatch(
        self, alert: AlertRecord, channels: Iterable[NotificationChannel]
    ) -> List[Future]:
        """Create tasks and hand them to the worker pool; returns the futures"""
        tasks = self.create_tasks(alert, channels)
        logger.info("notifications_queued", alert_id=alert.alert_id, tasks=len(tasks))
        return [self._executor.submit(self.deliver, task.task_id) for task in tasks]

    # ═══════════════════════════════════════════════════════════════════════════
    # DELIVERY
    # ═══════════════════════════════════════════════════════════════════════════

    def _claim(
        self, task_id: str, expected: Iterable[NotificationStatus], target: NotificationStatus, **changes
    ) -> Optional[NotificationTask]:
        with self._lock:
            task = self.store.get(task_id)
            if task is None or task.status not in set(expected):
                return None
            if not task.can_transition_to(target):
                return None
            return self.store.update_status(task_id, target, **changes)

    def deliver(self, task_id: str) -> Optional[NotificationTask]:
        """
        Send one PENDING or RETRY task.

        Returns the task in its final SUCCESS/FAILED state, or None when the
        task was not in a sendable state.
        """
        task = self._claim(
            task_id,
            (NotificationStatus.PENDING, NotificationStatus.RETRY),
            NotificationStatus.SENDING,
        )
        if task is None:
            return None

        breaker = self.breakers[task.channel]
        error: Optional[str] = None
        try:
            breaker.execute(self._send, task)
        except CircuitBreakerOpenError as e:
            error = str(e)
        except TransportFailureError as e:
            error = e.reason or str(e)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"

        now = self.clock()
        if error is None:
            logger.info(
                "notification_sent",
                task_id=task.task_id,
                channel=task.channel.value,
                recipient=task.recipient,
            )
            return self.store.update_status(
                task.task_id, NotificationStatus.SUCCESS, sent_at=now, error_message=None
            )

        exhausted = task.retry_count >= self.settings.max_retries
        logger.warning(
            "notification_failed",
            task_id=task.task_id,
            channel=task.channel.value,
            recipient=task.recipient,
            retry_count=task.retry_count,
            exhausted=exhausted,
            error=error,
        )
        return self.store.update_status(
            task.task_id,
            NotificationStatus.FAILED,
            error_message=error,
            next_retry_time=(
                None if exhausted else now + timedelta(minutes=self.settings.retry_delay_minutes)
            ),
        )

    def _send(self, task: NotificationTask) -> bool:
        delivered = self.transport.send(task.channel, task.recipient, task.subject, task.body)
        if not delivered:
            raise TransportFailureError(
                task.channel.value, task.recipient, "transport reported failure"
            )
        return True

    # ═══════════════════════════════════════════════════════════════════════════
    # RETRIES
    # ═══════════════════════════════════════════════════════════════════════════

    def retryable_tasks(self, now: datetime) -> List[NotificationTask]:
        return [
            t
            for t in self.store.query(status=[NotificationStatus.FAILED])
            if t.retry_count < self.settings.max_retries
            and t.next_retry_time is not None
            and t.next_retry_time <= now
        ]

    def retry_failed(self, now: Optional[datetime] = None) -> int:
        """
        Re-attempt due FAILED tasks (FAILED -> RETRY -> SENDING).

        Claimed tasks are sent on the worker pool, so a slow transport never
        holds up the other channels or the caller. Safe to call concurrently:
        a sweep already in progress makes the second call return 0. Returns
        the number of tasks re-attempted.
        """
        if not self._sweep_lock.acquire(blocking=False):
            return 0
        try:
            now = now or self.clock()
            attempted = 0
            for task in self.retryable_tasks(now):
                claimed = self._claim(
                    task.task_id,
                    (NotificationStatus.FAILED,),
                    NotificationStatus.RETRY,
                    retry_count=task.retry_count + 1,
                    last_retry_time=now,
                )
                if claimed is None:
                    continue
                attempted += 1
                self._executor.submit(self.deliver, claimed.task_id)
        finally:
            self._sweep_lock.release()

        if attempted:
            logger.info("notification_retry_sweep", attempted=attempted)
        return attempted

    # ═══════════════════════════════════════════════════════════════════════════
    # REPORTING / LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════════

    def statistics(self) -> Dict[str, Any]:
        tasks = self.store.query()
        by_status = Counter(t.status.value for t in tasks)
        by_channel = Counter(t.channel.value for t in tasks)
        finished = by_status[NotificationStatus.SUCCESS.value] + by_status[
            NotificationStatus.FAILED.value
        ]
        return {
            "total": len(tasks),
            "by_status": dict(by_status),
            "by_channel": dict(by_channel),
            "success_rate": (
                by_status[NotificationStatus.SUCCESS.value] / finished if finished else 0.0
            ),
            "circuits": {c.value: b.state.value for c, b in self.breakers.items()},
        }

    def shutdown(self, wait: bool = True):
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
