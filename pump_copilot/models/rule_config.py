"""
╔═══════════════════════════════════════════════════════════════════════════════╗
║                    PYDANTIC VALIDATION MODELS                                  ║
║                    Alert rule and threshold configuration                      ║
╚═══════════════════════════════════════════════════════════════════════════════╝

Validates rule definitions and per-device threshold overrides loaded from
YAML before they become AlertRule / ThresholdConfig values.

Example rules.yaml:

    rules:
      - rule_id: vib-high
        name: High vibration
        rule_type: THRESHOLD
        severity: CRITICAL
        conditions: {metric: max_vibration, operator: ">", threshold: 7.0}
        suppression_minutes: 60
        notification_methods: [EMAIL, WEBSOCKET]
    thresholds:
      PUMP-001: {vibration_mm_s: 3.8}
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from pump_copilot.models.alert_models import (
    AlertLevel,
    AlertRule,
    NotificationMethod,
    RuleType,
)
from pump_copilot.models.pump_models import ThresholdConfig

VALID_OPERATORS = {"gt", ">", "gte", ">=", "lt", "<", "lte", "<=", "eq", "==", "ne", "!="}


# ═══════════════════════════════════════════════════════════════════════════════
# RULES
# ═══════════════════════════════════════════════════════════════════════════════


class AlertRuleModel(BaseModel):
    """Validated alert rule definition"""

    rule_id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=200)
    rule_type: RuleType
    severity: AlertLevel = AlertLevel.WARNING
    conditions: Dict[str, Any] = Field(default_factory=dict)
    device_id: Optional[str] = None
    check_interval_minutes: int = Field(default=5, ge=1, le=1440)
    consecutive_trigger_count: int = Field(default=1, ge=1, le=100)
    suppression_minutes: int = Field(default=0, ge=0)
    notification_methods: List[NotificationMethod] = Field(
        default_factory=lambda: [NotificationMethod.SYSTEM]
    )
    active: bool = True

    @field_validator("notification_methods")
    @classmethod
    def methods_not_empty(cls, v):
        if not v:
            raise ValueError("at least one notification method is required")
        return v

    @model_validator(mode="after")
    def threshold_rule_is_complete(self):
        if self.rule_type == RuleType.THRESHOLD:
            missing = [
                key for key in ("metric", "operator", "threshold")
                if key not in self.conditions
            ]
            if missing:
                raise ValueError(f"THRESHOLD rule missing conditions: {missing}")
            if str(self.conditions["operator"]).lower() not in VALID_OPERATORS:
                raise ValueError(
                    f"unsupported operator '{self.conditions['operator']}'"
                )
        return self

    def to_rule(self) -> AlertRule:
        return AlertRule(
            rule_id=self.rule_id,
            name=self.name,
            rule_type=self.rule_type,
            severity=self.severity,
            conditions=dict(self.conditions),
            device_id=self.device_id,
            check_interval_minutes=self.check_interval_minutes,
            consecutive_trigger_count=self.consecutive_trigger_count,
            suppression_minutes=self.suppression_minutes,
            notification_methods=tuple(self.notification_methods),
            active=self.active,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# THRESHOLDS
# ═══════════════════════════════════════════════════════════════════════════════


class ThresholdOverrideModel(BaseModel):
    """Validated per-device detector thresholds"""

    startup_frequency: Optional[float] = Field(default=None, gt=0)
    runtime_minutes: Optional[float] = Field(default=None, gt=0)
    power_deviation_pct: Optional[float] = Field(default=None, gt=0)
    vibration_mm_s: Optional[float] = Field(default=None, gt=0)
    energy_growth_pct: Optional[float] = Field(default=None, gt=0)

    def to_config(self) -> ThresholdConfig:
        return ThresholdConfig(**self.model_dump())


class RuleFileModel(BaseModel):
    """Top-level layout of a rules YAML file"""

    rules: List[AlertRuleModel] = Field(default_factory=list)
    thresholds: Dict[str, ThresholdOverrideModel] = Field(default_factory=dict)

    @model_validator(mode="after")
    def rule_ids_unique(self):
        seen = set()
        for rule in self.rules:
            if rule.rule_id in seen:
                raise ValueError(f"duplicate rule_id '{rule.rule_id}'")
            seen.add(rule.rule_id)
        return self
