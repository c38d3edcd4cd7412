"""
Pump Copilot exception hierarchy.

Analytic conditions (too few samples, degenerate fits, missing metrics) are
normally absorbed into low-confidence results. The exceptions exist so the
inner helpers can signal them and the outer layers decide how to degrade.
"""


class PumpCopilotError(Exception):
    """Base class for all engine errors"""


class InsufficientDataError(PumpCopilotError):
    """Too few samples for a meaningful analysis"""

    def __init__(self, metric: str, required: int, available: int):
        self.metric = metric
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient {metric} data: {available} points, {required} required"
        )


class DegenerateFitError(PumpCopilotError):
    """Regression denominator is numerically zero"""


class MissingMetricError(PumpCopilotError):
    """A rule references a metric that the evaluation context lacks"""

    def __init__(self, metric: str):
        self.metric = metric
        super().__init__(f"Metric '{metric}' not present in evaluation context")


class ConfigurationError(PumpCopilotError):
    """Rule or threshold configuration is malformed"""


class TransportFailureError(PumpCopilotError):
    """A notification transport failed to deliver"""

    def __init__(self, channel: str, recipient: str, reason: str = ""):
        self.channel = channel
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"Delivery via {channel} to {recipient} failed: {reason}")


class AlertNotFoundError(PumpCopilotError):
    """Alert id is unknown to the alert store"""


class InvalidTransitionError(PumpCopilotError):
    """Alert status change not allowed by the lifecycle"""

    def __init__(self, alert_id: str, current: str, target: str):
        self.alert_id = alert_id
        self.current = current
        self.target = target
        super().__init__(f"Alert {alert_id}: cannot move from {current} to {target}")
