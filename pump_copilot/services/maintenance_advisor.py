"""
Maintenance Advisor Service

Combines findings, the failure prediction and the performance scores into a
bucketed maintenance plan:

- urgent: act now (stop the pump, call a technician)
- scheduled: book within one to two weeks
- preventive: fold into routine maintenance
- monitoring: instrumentation and record keeping

Cost is a flat per-action estimate. The recommended time is deterministic:
the midpoint of the booking window for the most urgent bucket.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import structlog

from pump_copilot.models.pump_models import (
    AnalysisType,
    DegradationTrend,
    Finding,
    MaintenancePlan,
    PerformanceScores,
    Prediction,
    Sample,
)

logger = structlog.get_logger()


class _PlanBuilder:
    """Ordered, de-duplicated action buckets"""

    def __init__(self):
        self.urgent: List[str] = []
        self.scheduled: List[str] = []
        self.preventive: List[str] = []
        self.monitoring: List[str] = []

    @staticmethod
    def _add(bucket: List[str], *actions: str) -> None:
        for action in actions:
            if action and action not in bucket:
                bucket.append(action)

    def urgent_action(self, *actions: str) -> None:
        self._add(self.urgent, *actions)

    def scheduled_action(self, *actions: str) -> None:
        self._add(self.scheduled, *actions)

    def preventive_action(self, *actions: str) -> None:
        self._add(self.preventive, *actions)

    def monitor(self, *actions: str) -> None:
        self._add(self.monitoring, *actions)


class MaintenanceAdvisor:
    """
    Builds maintenance plans.

    Example Usage:
        advisor = MaintenanceAdvisor()
        plan = advisor.advise(samples, findings, prediction, scores)
        print(plan.summary)
    """

    # Flat cost per action, by bucket
    COST_PER_ACTION = {"urgent": 5000.0, "scheduled": 2000.0, "preventive": 500.0}

    # Booking windows in days; recommended time is the midpoint
    SCHEDULED_WINDOW_DAYS = (7, 14)
    PREVENTIVE_WINDOW_DAYS = (15, 30)

    SCHEDULED_BY_TYPE = {
        AnalysisType.VIBRATION: (
            "Schedule vibration analysis and dynamic balancing",
            "Check bearing lubrication",
        ),
        AnalysisType.RUNTIME: (
            "Review pump operating parameters",
            "Analyze the cause of load changes",
        ),
        AnalysisType.ENERGY_TREND: (
            "Carry out an energy audit and optimisation",
            "Check impeller and casing efficiency",
        ),
    }
    SCHEDULED_DEFAULT = ("Schedule a detailed inspection and assessment",)

    PREVENTIVE_BY_TYPE = {
        AnalysisType.ENERGY_TREND: (
            "Monitor the energy consumption trend",
            "Prepare an energy saving plan",
        ),
    }
    PREVENTIVE_DEFAULT = ("Increase routine monitoring and record keeping",)

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock

    def advise(
        self,
        samples: List[Sample],
        findings: List[Finding],
        prediction: Optional[Prediction],
        scores: Optional[PerformanceScores],
    ) -> MaintenancePlan:
        builder = _PlanBuilder()

        self._from_findings(findings, builder)
        if prediction is not None:
            self._from_prediction(prediction, builder)
        if scores is not None:
            self._from_performance(scores, builder)
        self._from_history(samples, builder)

        plan = MaintenancePlan(
            urgent_actions=builder.urgent,
            scheduled_actions=builder.scheduled,
            preventive_actions=builder.preventive,
            monitoring_recommendations=builder.monitoring,
        )
        plan.estimated_cost = self.estimate_cost(plan)
        plan.recommended_time = self.recommended_time(plan, prediction)
        plan.summary = self.summary(plan)

        logger.debug(
            "maintenance_plan_built",
            urgent=len(plan.urgent_actions),
            scheduled=len(plan.scheduled_actions),
            preventive=len(plan.preventive_actions),
            estimated_cost=plan.estimated_cost,
        )
        return plan

    # ═══════════════════════════════════════════════════════════════════════════
    # RULE SOURCES
    # ═══════════════════════════════════════════════════════════════════════════

    def _from_findings(self, findings: List[Finding], builder: _PlanBuilder) -> None:
        for finding in findings:
            if finding.severity >= 4:
                builder.urgent_action(*self.urgent_actions_for(finding))
            elif finding.severity >= 3:
                builder.scheduled_action(
                    *self.SCHEDULED_BY_TYPE.get(finding.analysis_type, self.SCHEDULED_DEFAULT)
                )
            elif finding.severity >= 2:
                builder.preventive_action(
                    *self.PREVENTIVE_BY_TYPE.get(finding.analysis_type, self.PREVENTIVE_DEFAULT)
                )

            if finding.severity >= 3:
                builder.scheduled_action(*finding.recommendations)
            elif finding.severity >= 2:
                builder.preventive_action(*finding.recommendations)

    @staticmethod
    def urgent_actions_for(finding: Finding) -> List[str]:
        """Immediate actions for a severity-4 finding"""
        deviation = abs(finding.deviation_pct) if finding.deviation_pct is not None else 0.0

        if finding.analysis_type == AnalysisType.VIBRATION:
            if (finding.detected_value or 0) > 7.0:
                return [
                    "Stop the pump immediately: vibration far above limit",
                    "Inspect bearings, impeller and foundation bolts",
                    "Call a qualified maintenance technician",
                ]
            return []
        if finding.analysis_type == AnalysisType.STARTUP_FREQUENCY:
            if deviation > 50:
                return [
                    "Abnormal start frequency: check the control system now",
                    "Check piping and pressure set points",
                ]
            return []
        if finding.analysis_type == AnalysisType.POWER:
            if deviation > 30:
                return [
                    "Severe power anomaly: check motor and load",
                    "Check supply voltage and current",
                ]
            return []
        return ["Critical anomaly: perform a full inspection immediately"]

    @staticmethod
    def _from_prediction(prediction: Prediction, builder: _PlanBuilder) -> None:
        probability = prediction.failure_probability
        if probability > 0.8:
            builder.urgent_action(
                "Failure probability very high: shut down for repair",
                "Have specialists carry out a full inspection",
            )
        elif probability > 0.6:
            builder.scheduled_action(
                "Failure probability high: schedule a detailed inspection",
                "Prepare required spare parts",
            )

        rul = prediction.remaining_useful_life_days
        if rul < 7:
            builder.urgent_action("Remaining life under 7 days: replace or overhaul now")
        elif rul < 30:
            builder.scheduled_action("Remaining life under 30 days: plan replacement")

        if prediction.degradation_trend == DegradationTrend.RAPID:
            builder.scheduled_action(
                "Rapid performance degradation: perform an in-depth inspection",
                "Analyze degradation causes and plan targeted maintenance",
            )
        elif prediction.degradation_trend == DegradationTrend.MODERATE:
            builder.preventive_action(
                "Moderate performance degradation: increase monitoring frequency",
                "Prepare a preventive maintenance plan",
            )

    @staticmethod
    def _from_performance(scores: PerformanceScores, builder: _PlanBuilder) -> None:
        if scores.efficiency < 60:
            builder.preventive_action(
                "Low efficiency score: optimise energy use",
                "Check impeller and casing wear",
                "Tune operating parameters",
            )
        elif scores.efficiency < 80:
            builder.preventive_action("Fair efficiency score: watch energy consumption")

        if scores.reliability < 60:
            builder.scheduled_action(
                "Low reliability score: schedule a full inspection",
                "Check the state of key components",
            )
        elif scores.reliability < 80:
            builder.preventive_action("Fair reliability score: increase monitoring")

        if scores.maintenance < 50:
            builder.scheduled_action("High maintenance need: schedule preventive maintenance")

        metrics = scores.metrics
        if metrics.max_vibration > 4.5:
            builder.urgent_action("Vibration over limit: check bearings and alignment now")
        elif metrics.average_vibration > 3.0:
            builder.monitor(
                "Vibration elevated: install a vibration monitor",
                "Run periodic vibration analysis",
            )

        if metrics.average_power > 0:
            builder.monitor("Track the power trend", "Establish an energy baseline")

        builder.monitor(
            "Keep an equipment health record",
            "Record operating parameters regularly",
            "Configure anomaly alarm thresholds",
        )

    @staticmethod
    def _from_history(samples: List[Sample], builder: _PlanBuilder) -> None:
        if not samples:
            return

        runtime_hours = sum(s.runtime_minutes for s in samples if s.runtime_minutes) / 60.0
        days = (samples[-1].timestamp - samples[0].timestamp).days
        if days > 0:
            daily = runtime_hours / days
            if daily > 20:
                builder.preventive_action("Heavy duty cycle: increase maintenance frequency")
            elif daily < 2:
                builder.preventive_action("Rarely used: run the pump periodically")

        if any(s.maintenance_flag for s in samples):
            builder.scheduled_action("Maintenance flag raised: follow up")
        if any(s.has_fault for s in samples):
            builder.scheduled_action("Review fault history and plan targeted maintenance")

        months: Dict[int, int] = defaultdict(int)
        for s in samples:
            if s.power_kw is not None:
                months[s.timestamp.month] += 1
        if len(months) >= 6:
            builder.preventive_action(
                "Create a seasonal maintenance plan",
                "Adjust operating parameters with the seasons",
            )

    # ═══════════════════════════════════════════════════════════════════════════
    # COST, TIMING, SUMMARY
    # ═══════════════════════════════════════════════════════════════════════════

    def estimate_cost(self, plan: MaintenancePlan) -> float:
        return (
            len(plan.urgent_actions) * self.COST_PER_ACTION["urgent"]
            + len(plan.scheduled_actions) * self.COST_PER_ACTION["scheduled"]
            + len(plan.preventive_actions) * self.COST_PER_ACTION["preventive"]
        )

    def recommended_time(
        self, plan: MaintenancePlan, prediction: Optional[Prediction]
    ) -> datetime:
        now = self.clock()
        if plan.urgent_actions:
            return now

        if prediction is not None and prediction.remaining_useful_life_days < 30:
            return now + timedelta(days=prediction.remaining_useful_life_days // 2)

        low, high = (
            self.SCHEDULED_WINDOW_DAYS if plan.scheduled_actions else self.PREVENTIVE_WINDOW_DAYS
        )
        return now + timedelta(days=(low + high) / 2)

    @staticmethod
    def summary(plan: MaintenancePlan) -> str:
        sections = [
            ("Urgent actions", plan.urgent_actions),
            ("Scheduled actions", plan.scheduled_actions),
            ("Preventive maintenance", plan.preventive_actions),
            ("Monitoring", plan.monitoring_recommendations),
        ]
        lines = ["=== Maintenance Recommendations ===", ""]
        for title, actions in sections:
            if not actions:
                continue
            lines.append(f"[{title}]")
            lines.extend(f"{i}. {action}" for i, action in enumerate(actions, 1))
            lines.append("")

        lines.append("[Estimated cost]")
        lines.append(f"{plan.estimated_cost:.2f}")
        if plan.recommended_time is not None:
            lines.append("")
            lines.append("[Recommended maintenance time]")
            lines.append(plan.recommended_time.strftime("%Y-%m-%d %H:%M"))
        return "\n".join(lines)
