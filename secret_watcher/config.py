"""
Configuration management for Secret Watcher
"""

import os
from typing import Optional
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

NAIVE_TIMEZONES = ("utc", "local")
LOG_FORMATS = ("json", "console")


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


@dataclass
class Config:
    """Configuration class for Secret Watcher"""

    # Annotations
    expiry_annotation_key: str = "secret-watcher.expiry"
    restart_annotation_key: str = "kubectl.kubernetes.io/restartedAt"

    # Scanning
    namespace_scope: Optional[str] = None
    poll_interval_seconds: int = 600
    watch_events: bool = False
    naive_timezone: str = "utc"

    # Kubernetes configuration
    kube_config_path: Optional[str] = None
    in_cluster: bool = True
    request_timeout_seconds: int = 30

    # Restart retry budget
    restart_max_attempts: int = 5
    restart_backoff_seconds: float = 0.01
    restart_backoff_factor: float = 2.0

    # Execution control
    mock_mode: bool = False
    test_mode: bool = False
    dry_run: bool = False

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"

    # Prometheus
    pushgateway_url: Optional[str] = None
    prometheus_job_name: str = "secret_watcher"
    cluster_name: str = "Unknown"
    metrics_port: int = 0

    def __post_init__(self):
        """Override with environment variables if present and validate"""
        self.expiry_annotation_key = os.getenv("EXPIRY_ANNOTATION_KEY", self.expiry_annotation_key)
        self.restart_annotation_key = os.getenv("RESTART_ANNOTATION_KEY", self.restart_annotation_key)
        self.namespace_scope = os.getenv("NAMESPACE_SCOPE", self.namespace_scope) or None
        self.poll_interval_seconds = int(os.getenv("POLL_INTERVAL_SECONDS", self.poll_interval_seconds))
        self.watch_events = _env_bool("WATCH_EVENTS", self.watch_events)
        self.naive_timezone = os.getenv("NAIVE_TIMEZONE", self.naive_timezone).lower()

        self.kube_config_path = os.getenv("KUBECONFIG", self.kube_config_path)
        self.in_cluster = _env_bool("IN_CLUSTER", self.in_cluster)
        self.request_timeout_seconds = int(os.getenv("REQUEST_TIMEOUT_SECONDS", self.request_timeout_seconds))

        self.restart_max_attempts = int(os.getenv("RESTART_MAX_ATTEMPTS", self.restart_max_attempts))
        self.restart_backoff_seconds = float(os.getenv("RESTART_BACKOFF_SECONDS", self.restart_backoff_seconds))
        self.restart_backoff_factor = float(os.getenv("RESTART_BACKOFF_FACTOR", self.restart_backoff_factor))

        self.mock_mode = _env_bool("MOCK_MODE", self.mock_mode)
        self.test_mode = _env_bool("TEST_MODE", self.test_mode)
        self.dry_run = _env_bool("DRY_RUN", self.dry_run)

        self.log_level = os.getenv("LOG_LEVEL", self.log_level)
        self.log_format = os.getenv("LOG_FORMAT", self.log_format).lower()

        self.pushgateway_url = os.getenv("PROMETHEUS_PUSHGATEWAY_URL", self.pushgateway_url) or None
        self.prometheus_job_name = os.getenv("PROMETHEUS_JOB_NAME", self.prometheus_job_name)
        self.cluster_name = os.getenv("CLUSTER_NAME", self.cluster_name)
        self.metrics_port = int(os.getenv("METRICS_PORT", self.metrics_port))

        self.validate()

    def validate(self) -> None:
        if not self.expiry_annotation_key:
            raise ValueError("expiry_annotation_key must not be empty")
        if self.naive_timezone not in NAIVE_TIMEZONES:
            raise ValueError(f"naive_timezone must be one of {NAIVE_TIMEZONES}, got {self.naive_timezone!r}")
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {self.log_format!r}")
        if self.restart_max_attempts < 1:
            raise ValueError("restart_max_attempts must be at least 1")
        if self.restart_backoff_seconds < 0 or self.restart_backoff_factor < 1:
            raise ValueError("restart backoff must be non-negative with a factor of at least 1")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")

    def to_dict(self):
        """Startup summary, safe to log"""
        return {
            "expiry_annotation_key": self.expiry_annotation_key,
            "namespace_scope": self.namespace_scope or "*",
            "poll_interval_seconds": self.poll_interval_seconds,
            "watch_events": self.watch_events,
            "naive_timezone": self.naive_timezone,
            "restart_max_attempts": self.restart_max_attempts,
            "mock_mode": self.mock_mode,
            "test_mode": self.test_mode,
            "dry_run": self.dry_run,
        }


# Global configuration instance
config = Config()
