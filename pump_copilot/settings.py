"""
Pump Copilot Settings
Centralized configuration from environment variables

Every tunable threshold of the analytics and alerting engine lives here.
Values come from the environment (or a local .env file) with sane defaults,
so the engine runs unconfigured in tests and development.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _get_env(key: str, default: str = "", required: bool = False) -> str:
    """Get environment variable with optional requirement enforcement."""
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable {key} is not set!")
    return value


def _get_env_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    return int(os.getenv(key, str(default)))


def _get_env_float(key: str, default: float) -> float:
    """Get float environment variable."""
    return float(os.getenv(key, str(default)))


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    return os.getenv(key, str(default)).lower() in ("true", "1", "yes")


def _get_env_list(key: str, default: str = "", separator: str = ",") -> List[str]:
    """Get list from comma-separated environment variable."""
    value = os.getenv(key, default)
    return [item.strip() for item in value.split(separator) if item.strip()]


# =============================================================================
# DETECTOR SETTINGS
# =============================================================================
@dataclass
class DetectorSettings:
    """Default thresholds for the per-metric anomaly detectors."""

    # Starts per hour
    startup_frequency: float = field(
        default_factory=lambda: _get_env_float("PUMP_STARTUP_THRESHOLD", 10.0)
    )
    # Minutes per run
    runtime_minutes: float = field(
        default_factory=lambda: _get_env_float("PUMP_RUNTIME_THRESHOLD", 480.0)
    )
    # Percent deviation from the median power draw
    power_deviation_pct: float = field(
        default_factory=lambda: _get_env_float("PUMP_POWER_THRESHOLD", 20.0)
    )
    # mm/s
    vibration_mm_s: float = field(
        default_factory=lambda: _get_env_float("PUMP_VIBRATION_THRESHOLD", 4.5)
    )
    # Percent growth of the smoothed energy series
    energy_growth_pct: float = field(
        default_factory=lambda: _get_env_float("PUMP_ENERGY_THRESHOLD", 15.0)
    )


# =============================================================================
# PREDICTION SETTINGS
# =============================================================================
@dataclass
class PredictionSettings:
    """Fault predictor configuration."""

    prediction_window_days: int = field(
        default_factory=lambda: _get_env_int("PREDICTION_WINDOW_DAYS", 7)
    )
    min_training_samples: int = field(
        default_factory=lambda: _get_env_int("PREDICTION_MIN_SAMPLES", 30)
    )
    forecast_points: int = field(
        default_factory=lambda: _get_env_int("PREDICTION_FORECAST_POINTS", 10)
    )
    forecast_band_pct: float = field(
        default_factory=lambda: _get_env_float("PREDICTION_FORECAST_BAND_PCT", 10.0)
    )


# =============================================================================
# ALERT SETTINGS
# =============================================================================
@dataclass
class AlertSettings:
    """Alert lifecycle and deduplication configuration."""

    duplicate_window_minutes: int = field(
        default_factory=lambda: _get_env_int("ALERT_DUPLICATE_WINDOW_MINUTES", 60)
    )
    duplicate_tolerance: float = field(
        default_factory=lambda: _get_env_float("ALERT_DUPLICATE_TOLERANCE", 0.05)
    )
    retention_days: int = field(
        default_factory=lambda: _get_env_int("ALERT_RETENTION_DAYS", 90)
    )
    rule_check_interval_seconds: int = field(
        default_factory=lambda: _get_env_int("ALERT_CHECK_INTERVAL_SECONDS", 60)
    )
    worker_count: int = field(
        default_factory=lambda: _get_env_int("ALERT_WORKERS", 4)
    )
    # Sample window analyzed by each scheduled rule check
    analysis_window_hours: int = field(
        default_factory=lambda: _get_env_int("ALERT_ANALYSIS_WINDOW_HOURS", 24)
    )
    cleanup_interval_hours: int = field(
        default_factory=lambda: _get_env_int("ALERT_CLEANUP_INTERVAL_HOURS", 24)
    )
    rules_file: Optional[str] = field(
        default_factory=lambda: _get_env("ALERT_RULES_FILE") or None
    )


# =============================================================================
# NOTIFICATION SETTINGS
# =============================================================================
@dataclass
class NotificationSettings:
    """Notification dispatch, retry and transport configuration."""

    max_retries: int = field(
        default_factory=lambda: _get_env_int("NOTIFICATION_MAX_RETRIES", 3)
    )
    retry_delay_minutes: int = field(
        default_factory=lambda: _get_env_int("NOTIFICATION_RETRY_DELAY_MINUTES", 5)
    )
    retry_sweep_interval_seconds: int = field(
        default_factory=lambda: _get_env_int("NOTIFICATION_SWEEP_SECONDS", 300)
    )
    worker_count: int = field(
        default_factory=lambda: _get_env_int("NOTIFICATION_WORKERS", 4)
    )

    # Default recipients per alert level
    admin_recipients: List[str] = field(
        default_factory=lambda: _get_env_list("ALERT_ADMIN_RECIPIENTS", "admin")
    )
    maintenance_recipients: List[str] = field(
        default_factory=lambda: _get_env_list(
            "ALERT_MAINTENANCE_RECIPIENTS", "maintenance"
        )
    )
    monitoring_recipients: List[str] = field(
        default_factory=lambda: _get_env_list(
            "ALERT_MONITORING_RECIPIENTS", "monitoring"
        )
    )

    # SMTP Email
    smtp_server: str = field(default_factory=lambda: _get_env("SMTP_SERVER", ""))
    smtp_port: int = field(default_factory=lambda: _get_env_int("SMTP_PORT", 587))
    smtp_user: str = field(default_factory=lambda: _get_env("SMTP_USER", ""))
    smtp_password: str = field(default_factory=lambda: _get_env("SMTP_PASSWORD", ""))

    # Circuit breaker per channel
    breaker_failure_threshold: int = field(
        default_factory=lambda: _get_env_int("NOTIFICATION_BREAKER_FAILURES", 5)
    )
    breaker_timeout_seconds: float = field(
        default_factory=lambda: _get_env_float("NOTIFICATION_BREAKER_TIMEOUT", 60.0)
    )

    @property
    def smtp_configured(self) -> bool:
        """Check if SMTP is properly configured."""
        return bool(self.smtp_server and self.smtp_user and self.smtp_password)

    def recipients_by_level(self) -> Dict[str, List[str]]:
        """Default recipient groups keyed by alert level value."""
        return {
            "CRITICAL": self.admin_recipients + self.maintenance_recipients,
            "WARNING": list(self.maintenance_recipients),
            "INFO": list(self.monitoring_recipients),
        }


# =============================================================================
# LOGGING SETTINGS
# =============================================================================
@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = field(default_factory=lambda: _get_env("LOG_LEVEL", "INFO"))
    json_output: bool = field(default_factory=lambda: _get_env_bool("LOG_JSON", False))
    log_file: Optional[str] = field(default_factory=lambda: _get_env("LOG_FILE") or None)

    @property
    def level_number(self) -> int:
        return getattr(logging, self.level.upper(), logging.INFO)


# =============================================================================
# MAIN SETTINGS CLASS
# =============================================================================
@dataclass
class Settings:
    """Main settings container."""

    detectors: DetectorSettings = field(default_factory=DetectorSettings)
    prediction: PredictionSettings = field(default_factory=PredictionSettings)
    alerts: AlertSettings = field(default_factory=AlertSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    app_name: str = "Pump Copilot"
    environment: str = field(
        default_factory=lambda: _get_env("ENVIRONMENT", "development")
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Rebuild settings from the current environment."""
    global _settings
    _settings = Settings()
    return _settings
