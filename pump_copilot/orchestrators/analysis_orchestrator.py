"""
Analysis Orchestrator

Fleet-level entry point: fans per-device analyses out over a thread pool
and joins the results. Device analyses share no state, so they run fully in
parallel; every batch runs under one correlation id.
"""

import contextvars
import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional

from pump_copilot.logger_config import correlation_scope
from pump_copilot.models.pump_models import AnalysisReport, AnalysisStatus
from pump_copilot.orchestrators.pump_analyzer import PumpAnalyzer

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Configuration for AnalysisOrchestrator."""

    max_workers: int = 4


class AnalysisOrchestrator:
    """
    Example Usage:
        orchestrator = AnalysisOrchestrator(analyzer)
        reports = orchestrator.analyze_batch(["PUMP-001", "PUMP-002"], start, end)
    """

    def __init__(
        self,
        analyzer: PumpAnalyzer,
        config: Optional[OrchestratorConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.analyzer = analyzer
        self.config = config or OrchestratorConfig()
        self.clock = clock

    def analyze_device(
        self, device_id: str, start: datetime, end: datetime, **options
    ) -> AnalysisReport:
        return self.analyzer.analyze(device_id, start, end, **options)

    def analyze_batch(
        self,
        device_ids: Iterable[str],
        start: datetime,
        end: datetime,
        correlation_id: Optional[str] = None,
    ) -> Dict[str, AnalysisReport]:
        """Analyze every device; a device that blows up gets a FAILED report"""
        devices = list(dict.fromkeys(device_ids))
        if not devices:
            return {}

        reports: Dict[str, AnalysisReport] = {}
        with correlation_scope(correlation_id) as batch_id:
            logger.info(f"Batch {batch_id}: analyzing {len(devices)} devices")

            workers = max(1, min(self.config.max_workers, len(devices)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="analyze") as pool:
                futures = {
                    pool.submit(
                        contextvars.copy_context().run,
                        self.analyzer.analyze,
                        device_id,
                        start,
                        end,
                    ): device_id
                    for device_id in devices
                }
                for future in as_completed(futures):
                    device_id = futures[future]
                    try:
                        reports[device_id] = future.result()
                    except Exception as e:
                        logger.error(f"Batch {batch_id}: {device_id} failed: {e}")
                        reports[device_id] = AnalysisReport(
                            analysis_id=f"{batch_id}-{device_id}",
                            device_id=device_id,
                            analysis_time=self.clock(),
                            status=AnalysisStatus.FAILED,
                            error=str(e),
                        )

            logger.info(f"Batch {batch_id}: done, {self.summarize(reports)}")

        return {device_id: reports[device_id] for device_id in devices}

    @staticmethod
    def summarize(reports: Dict[str, AnalysisReport]) -> Dict[str, Any]:
        """Counts by status and risk plus mean health of successful analyses"""
        by_status = Counter(r.status.value for r in reports.values())
        ok = [r for r in reports.values() if r.status == AnalysisStatus.SUCCESS]
        return {
            "devices": len(reports),
            "by_status": dict(by_status),
            "by_risk": dict(Counter(r.risk_level.value for r in ok)),
            "average_health": (
                round(sum(r.overall_health_score for r in ok) / len(ok), 1) if ok else 0.0
            ),
        }
