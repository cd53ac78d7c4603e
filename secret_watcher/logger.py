"""
Logging configuration for Secret Watcher
"""

import logging
import sys
from typing import Any, Dict, Optional
import structlog
from colorama import init as colorama_init

# Initialize colorama for cross-platform colored output
colorama_init()


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Setup structured logging for the application"""

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if log_format == "json"
            else structlog.dev.ConsoleRenderer(colors=True)
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # Suppress verbose kubernetes client logs
    logging.getLogger('kubernetes').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance"""
    return structlog.get_logger(name)


class SecretWatcherLogger:
    """Specialized logger for the per-cycle secret report"""

    def __init__(self):
        self.logger = get_logger("secret-watcher")

    def log_startup(self, config_dict: Dict[str, Any], version: str) -> None:
        """Log application startup"""
        self.logger.info(
            "Secret Watcher starting up",
            version=version,
            config=config_dict
        )

    def log_cycle_start(self, cycle_id: str, now: str) -> None:
        self.logger.info(
            "Starting secret scan cycle",
            cycle_id=cycle_id,
            now=now
        )

    def log_cycle_end(self, cycle_id: str, summary: Dict[str, int], duration_seconds: float) -> None:
        self.logger.info(
            "Secret scan cycle completed",
            cycle_id=cycle_id,
            duration_seconds=round(duration_seconds, 3),
            **summary
        )

    def log_secret_outcome(self, outcome: Dict[str, Any]) -> None:
        """One line per evaluated secret; errors and expiries at a louder level"""
        if outcome.get("status") == "error":
            self.logger.error("Secret check failed", **outcome)
        elif outcome.get("status") == "format_error":
            self.logger.warning("Secret expiry annotation invalid", **outcome)
        elif outcome.get("status") == "expired":
            self.logger.info("Secret expired", **outcome)
        else:
            self.logger.debug("Secret checked", **outcome)

    def log_restart_failed(self, namespace: str, deployment: str, secret_name: str, error: Exception) -> None:
        self.logger.error(
            "Deployment restart failed",
            namespace=namespace,
            deployment=deployment,
            secret=secret_name,
            error=str(error),
            error_type=type(error).__name__
        )

    def log_error(self, error: Exception, context: Optional[str] = None) -> None:
        """Log errors with context"""
        self.logger.error(
            "Error occurred",
            error=str(error),
            error_type=type(error).__name__,
            context=context,
            exc_info=True
        )
