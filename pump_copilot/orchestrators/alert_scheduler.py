"""
Alert Scheduler

Periodic housekeeping for the alerting side:
- rule check: analyze every known device over the recent window, which
  raises alerts through the analyzer's alert manager
- retry sweep: re-attempt due failed notifications
- cleanup: delete alerts past the retention period

run_cycle(now) does whatever is due at `now` and is what tests drive; start()
runs it on a background thread.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from pump_copilot.orchestrators.analysis_orchestrator import AnalysisOrchestrator
from pump_copilot.repositories.protocols import SampleStore
from pump_copilot.services.alert_manager import AlertManager
from pump_copilot.services.notification_dispatcher import NotificationDispatcher
from pump_copilot.settings import AlertSettings, NotificationSettings

logger = logging.getLogger(__name__)


class AlertScheduler:
    """
    Example Usage:
        scheduler = AlertScheduler(orchestrator, sample_store, manager, dispatcher)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        sample_store: SampleStore,
        alert_manager: AlertManager,
        dispatcher: Optional[NotificationDispatcher] = None,
        alert_settings: Optional[AlertSettings] = None,
        notification_settings: Optional[NotificationSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
        tick_seconds: float = 1.0,
    ):
        self.orchestrator = orchestrator
        self.sample_store = sample_store
        self.alert_manager = alert_manager
        self.dispatcher = dispatcher
        self.alert_settings = alert_settings or AlertSettings()
        self.notification_settings = notification_settings or NotificationSettings()
        self.clock = clock
        self.tick_seconds = tick_seconds

        self._last_run: Dict[str, datetime] = {}
        self._cycle_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def intervals(self) -> Dict[str, timedelta]:
        return {
            "rule_check": timedelta(seconds=self.alert_settings.rule_check_interval_seconds),
            "retry_sweep": timedelta(
                seconds=self.notification_settings.retry_sweep_interval_seconds
            ),
            "cleanup": timedelta(hours=self.alert_settings.cleanup_interval_hours),
        }

    def _due(self, job: str, now: datetime) -> bool:
        last = self._last_run.get(job)
        return last is None or now - last >= self.intervals[job]

    def run_cycle(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Run every job that is due at `now`.

        Returns the work done per job: devices checked, notifications
        retried, alerts deleted. Jobs that were not due are absent.
        """
        now = now or self.clock()
        done: Dict[str, int] = {}
        jobs = (
            ("rule_check", self.check_rules),
            ("retry_sweep", self.sweep_retries),
            ("cleanup", self.alert_manager.cleanup),
        )

        with self._cycle_lock:
            for name, job in jobs:
                if not self._due(name, now):
                    continue
                self._last_run[name] = now
                try:
                    done[name] = job(now)
                except Exception as e:
                    logger.error(f"Scheduled job {name} failed: {e}", exc_info=True)
        return done

    def check_rules(self, now: datetime) -> int:
        devices = self.sample_store.device_ids()
        if not devices:
            return 0
        start = now - timedelta(hours=self.alert_settings.analysis_window_hours)
        reports = self.orchestrator.analyze_batch(devices, start, now)
        return len(reports)

    def sweep_retries(self, now: datetime) -> int:
        if self.dispatcher is None:
            return 0
        return self.dispatcher.retry_failed(now)

    # ═══════════════════════════════════════════════════════════════════════════
    # BACKGROUND THREAD
    # ═══════════════════════════════════════════════════════════════════════════

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="alert-scheduler", daemon=True
        )
        self._thread.start()
        logger.info("Alert scheduler started")

    def _loop(self):
        while not self._stop.is_set():
            self.run_cycle()
            self._stop.wait(self.tick_seconds)

    def stop(self, timeout: float = 5.0):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Alert scheduler stopped")
