"""Orchestration layer: per-device pipeline, batch analysis, scheduling."""

from .alert_scheduler import AlertScheduler
from .analysis_orchestrator import AnalysisOrchestrator, OrchestratorConfig
from .pump_analyzer import PumpAnalyzer

__all__ = [
    "AlertScheduler",
    "AnalysisOrchestrator",
    "OrchestratorConfig",
    "PumpAnalyzer",
]
