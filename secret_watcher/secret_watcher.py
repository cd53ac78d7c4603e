import time
import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Optional, Tuple

from secret_watcher.config import Config
from secret_watcher.consumer_resolver import ConsumerResolver
from secret_watcher.expiry import evaluate_credential
from secret_watcher.logger import SecretWatcherLogger
from secret_watcher.models import Credential, ImplicatedWorkloads
from secret_watcher.notifications import NotificationManager
from secret_watcher.restart import RestartError, RestartOrchestrator

logger = logging.getLogger(__name__)

STATUS_NOT_EXPIRED = "not_expired"
STATUS_EXPIRED = "expired"
STATUS_FORMAT_ERROR = "format_error"
STATUS_ALREADY_HANDLED = "already_handled"
STATUS_ERROR = "error"

RESTART_OK = "restarted"
RESTART_DRY_RUN = "would_restart"


def _identity(secret):
    meta = getattr(secret, "metadata", None)
    return getattr(meta, "namespace", "?"), getattr(meta, "name", "?")


@dataclass
class SecretOutcome:
    namespace: str
    name: str
    raw_value: str
    status: str
    expires_at: Optional[datetime] = None
    error: Optional[str] = None
    implicated: Optional[ImplicatedWorkloads] = None
    restarts: Dict[str, str] = field(default_factory=dict)

    @property
    def failed_restarts(self):
        return [name for name, result in self.restarts.items() if result not in (RESTART_OK, RESTART_DRY_RUN)]

    def to_dict(self):
        data = {
            "namespace": self.namespace,
            "secret": self.name,
            "raw_expiry": self.raw_value,
            "status": self.status,
            "expired": self.status in (STATUS_EXPIRED, STATUS_ALREADY_HANDLED),
        }
        if self.expires_at is not None:
            data["expires_at"] = self.expires_at.isoformat()
        if self.error:
            data["error"] = self.error
        if self.implicated is not None:
            data["implicated"] = self.implicated.to_dict()
        if self.restarts:
            data["restarts"] = dict(self.restarts)
        return data


@dataclass
class CycleReport:
    cycle_id: str
    now: datetime
    outcomes: List[SecretOutcome] = field(default_factory=list)
    error: Optional[str] = None

    def by_status(self, status):
        return [o for o in self.outcomes if o.status == status]

    def summary(self):
        counts = {"secrets_evaluated": len(self.outcomes)}
        for status in (STATUS_EXPIRED, STATUS_NOT_EXPIRED, STATUS_FORMAT_ERROR,
                       STATUS_ALREADY_HANDLED, STATUS_ERROR):
            counts[status] = len(self.by_status(status))
        counts["restarts_attempted"] = sum(len(o.restarts) for o in self.outcomes)
        counts["restarts_failed"] = sum(len(o.failed_restarts) for o in self.outcomes)
        return counts

    def to_dict(self):
        return {
            "cycle_id": self.cycle_id,
            "now": self.now.isoformat(),
            "error": self.error,
            "summary": self.summary(),
            "secrets": [o.to_dict() for o in self.outcomes],
        }


class SecretWatcher:
    """Runs scan cycles: evaluate expiry, resolve consumers, restart deployments.

    Cycles never overlap. ``handled_expiries`` remembers, per secret, the
    annotation value whose expiry has already been remediated so the same
    expiry does not restart deployments again on every following cycle. An
    entry is dropped when the annotation changes or the secret goes away.
    """

    def __init__(self, k8s_client, cfg=None, resolver=None, restarter=None,
                 notification_manager=None, report_logger=None):
        self.config = cfg or Config()
        self.k8s_client = k8s_client
        self.resolver = resolver or ConsumerResolver(k8s_client)
        self.restarter = restarter or RestartOrchestrator.from_config(k8s_client, self.config)
        self.notification_manager = notification_manager or NotificationManager.from_config(self.config)
        self.report_logger = report_logger or SecretWatcherLogger()

        self.handled_expiries: Dict[Tuple[str, str], str] = {}
        self.lock = Lock()
        self.is_running = False

    def run_scan(self, now=None):
        """Run one scan cycle; returns None if a previous cycle is still running"""
        with self.lock:
            if self.is_running:
                logger.info("Previous scan still in progress, skipping...")
                return None
            self.is_running = True

        try:
            return self._scan(now or datetime.now(timezone.utc))
        finally:
            with self.lock:
                self.is_running = False

    def _scan(self, now):
        report = CycleReport(cycle_id=uuid.uuid4().hex[:12], now=now)
        start_time = time.time()
        self.report_logger.log_cycle_start(report.cycle_id, now.isoformat())

        try:
            secrets = self.k8s_client.list_secrets(self.config.namespace_scope)
        except Exception as e:
            scope = self.config.namespace_scope or "all namespaces"
            self.report_logger.log_error(e, context=f"listing secrets in {scope}")
            report.error = str(e)
            self.report_logger.log_cycle_end(report.cycle_id, report.summary(), time.time() - start_time)
            return report

        seen = set()
        for secret in secrets:
            seen.add(_identity(secret))
            outcome = self._evaluate_secret(secret, now)
            if outcome is not None:
                report.outcomes.append(outcome)

        for key in [key for key in self.handled_expiries if key not in seen]:
            del self.handled_expiries[key]

        self.report_logger.log_cycle_end(report.cycle_id, report.summary(), time.time() - start_time)
        return report

    def handle_secret_event(self, event_type, secret, now=None):
        """React to one secret watch event between scans.

        ADDED and MODIFIED secrets are evaluated like in a scan, DELETED ones
        drop their handled state. Returns the outcome, or None when nothing
        was evaluated (including while a scan is running, which covers the
        secret anyway).
        """
        if event_type == "DELETED":
            self.handled_expiries.pop(_identity(secret), None)
            return None
        if event_type not in ("ADDED", "MODIFIED"):
            return None

        with self.lock:
            if self.is_running:
                logger.debug("Scan in progress, leaving secret event to it")
                return None
            self.is_running = True

        try:
            return self._evaluate_secret(secret, now or datetime.now(timezone.utc))
        finally:
            with self.lock:
                self.is_running = False

    def _evaluate_secret(self, secret, now):
        try:
            outcome = self._process(Credential.from_secret(secret), now)
        except Exception as e:
            namespace, name = _identity(secret)
            self.report_logger.log_error(e, context=f"processing secret {namespace}/{name}")
            outcome = SecretOutcome(namespace, name, "", STATUS_ERROR, error=str(e))

        if outcome is not None:
            self.report_logger.log_secret_outcome(outcome.to_dict())
        return outcome

    def _process(self, credential, now):
        key = credential.identity()
        record = evaluate_credential(
            credential, self.config.expiry_annotation_key, now, self.config.naive_timezone
        )
        handled_value = self.handled_expiries.get(key)
        if handled_value is not None and (record is None or record.raw_value != handled_value):
            logger.info(f"Expiry of secret {credential.namespace}/{credential.name} changed, clearing handled state")
            del self.handled_expiries[key]
            handled_value = None

        if record is None:
            return None

        outcome = SecretOutcome(record.namespace, record.name, record.raw_value, STATUS_NOT_EXPIRED,
                                expires_at=record.expires_at)
        if record.error is not None:
            outcome.status = STATUS_FORMAT_ERROR
            outcome.error = str(record.error)
            self.notification_manager.record_format_error(record.namespace)
            return outcome

        if not record.expired:
            return outcome

        if handled_value is not None:
            outcome.status = STATUS_ALREADY_HANDLED
            return outcome

        outcome.status = STATUS_EXPIRED
        self.notification_manager.record_expired(record.namespace)
        logger.info(f"Secret {record.namespace}/{record.name} expired at {record.expires_at.isoformat()}")

        outcome.implicated = self.resolver.resolve(record.namespace, record.name)
        for deployment in sorted(outcome.implicated.deployments):
            outcome.restarts[deployment] = self._restart(record.namespace, deployment, record.name)

        if not outcome.failed_restarts and not outcome.implicated.errors and not self.config.dry_run:
            self.handled_expiries[key] = record.raw_value
        return outcome

    def _restart(self, namespace, deployment, secret_name):
        if self.config.dry_run:
            logger.info(f"Dry run - would restart deployment {namespace}/{deployment}")
            return RESTART_DRY_RUN

        try:
            self.restarter.restart(namespace, deployment)
        except RestartError as e:
            self.report_logger.log_restart_failed(namespace, deployment, secret_name, e)
            self.notification_manager.notify_restart_failure(
                namespace, deployment, secret_name, str(e), e.attempts
            )
            return f"failed: {e}"

        self.notification_manager.record_restart(namespace, deployment)
        return RESTART_OK
