"""
Configuration helper for the service layer

Loads rule files and wires repositories, services and orchestrators
together from Settings.

Usage:
    from pump_copilot.config_helper import create_engine

    engine = create_engine(rules_file="rules.yaml")
    engine.scheduler.start()
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from pump_copilot.exceptions import ConfigurationError
from pump_copilot.logger_config import setup_logging_from_settings
from pump_copilot.models.alert_models import AlertRule
from pump_copilot.models.pump_models import ThresholdConfig
from pump_copilot.models.rule_config import RuleFileModel
from pump_copilot.orchestrators import (
    AlertScheduler,
    AnalysisOrchestrator,
    OrchestratorConfig,
    PumpAnalyzer,
)
from pump_copilot.repositories import (
    InMemoryAlertStore,
    InMemoryNotificationStore,
    InMemoryRuleStore,
    InMemorySampleStore,
)
from pump_copilot.repositories.protocols import NotificationTransport
from pump_copilot.services import (
    AlertManager,
    AlertRuleEngine,
    AnomalyDetector,
    FaultPredictor,
    MaintenanceAdvisor,
    NotificationDispatcher,
    PerformanceScorer,
)
from pump_copilot.services.transports import build_transport
from pump_copilot.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def parse_rule_config(data: Any) -> Tuple[List[AlertRule], Dict[str, ThresholdConfig]]:
    """Validate an already-parsed rules document"""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("Rule file must contain a mapping at the top level")
    try:
        model = RuleFileModel.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid rule configuration: {e}") from e

    rules = [r.to_rule() for r in model.rules]
    thresholds = {device: t.to_config() for device, t in model.thresholds.items()}
    return rules, thresholds


def load_rule_file(
    path: Union[str, Path]
) -> Tuple[List[AlertRule], Dict[str, ThresholdConfig]]:
    """
    Load alert rules and per-device threshold overrides from YAML.

    Raises:
        ConfigurationError: unreadable file, bad YAML, or failed validation
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as e:
        raise ConfigurationError(f"Cannot read rule file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Rule file {path} is not valid YAML: {e}") from e

    rules, thresholds = parse_rule_config(data)
    logger.info(f"Loaded {len(rules)} rules and {len(thresholds)} threshold overrides from {path}")
    return rules, thresholds


def create_repositories(rules: Optional[List[AlertRule]] = None) -> Dict[str, Any]:
    """
    Returns:
        Dict with repository instances:
        {
            'samples': InMemorySampleStore,
            'rules': InMemoryRuleStore,
            'alerts': InMemoryAlertStore,
            'notifications': InMemoryNotificationStore,
        }
    """
    return {
        "samples": InMemorySampleStore(),
        "rules": InMemoryRuleStore(rules),
        "alerts": InMemoryAlertStore(),
        "notifications": InMemoryNotificationStore(),
    }


def create_services(
    repositories: Dict[str, Any],
    settings: Optional[Settings] = None,
    transport: Optional[NotificationTransport] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> Dict[str, Any]:
    """Create all service instances with injected repositories"""
    settings = settings or get_settings()

    dispatcher = NotificationDispatcher(
        repositories["notifications"],
        transport or build_transport(settings.notifications),
        settings.notifications,
        clock=clock,
    )
    rule_engine = AlertRuleEngine()
    return {
        "detector": AnomalyDetector(settings.detectors),
        "predictor": FaultPredictor(settings.prediction, clock=clock),
        "scorer": PerformanceScorer(),
        "advisor": MaintenanceAdvisor(clock=clock),
        "rule_engine": rule_engine,
        "dispatcher": dispatcher,
        "alert_manager": AlertManager(
            repositories["rules"],
            repositories["alerts"],
            rule_engine,
            dispatcher,
            settings.alerts,
            clock=clock,
        ),
    }


@dataclass
class Engine:
    """Fully wired analytics and alerting engine"""

    settings: Settings
    sample_store: InMemorySampleStore
    rule_store: InMemoryRuleStore
    alert_store: InMemoryAlertStore
    notification_store: InMemoryNotificationStore
    alert_manager: AlertManager
    dispatcher: NotificationDispatcher
    analyzer: PumpAnalyzer
    orchestrator: AnalysisOrchestrator
    scheduler: AlertScheduler

    def shutdown(self):
        self.scheduler.stop()
        self.dispatcher.shutdown()


def create_engine(
    settings: Optional[Settings] = None,
    rules_file: Optional[Union[str, Path]] = None,
    transport: Optional[NotificationTransport] = None,
    clock: Callable[[], datetime] = datetime.now,
    configure_logging: bool = True,
) -> Engine:
    """
    Build the whole engine from settings and an optional rules file.

    Logging is configured from settings.logging unless configure_logging is
    False, for hosts that set up logging themselves.
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging_from_settings(settings.logging)
    rules_file = rules_file or settings.alerts.rules_file

    rules: List[AlertRule] = []
    thresholds: Dict[str, ThresholdConfig] = {}
    if rules_file:
        rules, thresholds = load_rule_file(rules_file)

    repos = create_repositories(rules)
    services = create_services(repos, settings, transport, clock)

    analyzer = PumpAnalyzer(
        repos["samples"],
        detector=services["detector"],
        predictor=services["predictor"],
        scorer=services["scorer"],
        advisor=services["advisor"],
        alert_manager=services["alert_manager"],
        thresholds=thresholds,
        clock=clock,
    )
    orchestrator = AnalysisOrchestrator(
        analyzer, OrchestratorConfig(max_workers=settings.alerts.worker_count), clock=clock
    )
    scheduler = AlertScheduler(
        orchestrator,
        repos["samples"],
        services["alert_manager"],
        services["dispatcher"],
        settings.alerts,
        settings.notifications,
        clock=clock,
    )

    return Engine(
        settings=settings,
        sample_store=repos["samples"],
        rule_store=repos["rules"],
        alert_store=repos["alerts"],
        notification_store=repos["notifications"],
        alert_manager=services["alert_manager"],
        dispatcher=services["dispatcher"],
        analyzer=analyzer,
        orchestrator=orchestrator,
        scheduler=scheduler,
    )
