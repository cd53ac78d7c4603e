"""
Notification system for secret expiry and restart failures - Prometheus only
"""

import logging
from datetime import datetime, timedelta, timezone

import requests
from prometheus_client import Counter

logger = logging.getLogger(__name__)

EXPIRED_SECRETS = Counter(
    'secret_watcher_expired_secrets_total',
    'Number of expired secrets detected',
    ['namespace']
)
FORMAT_ERRORS = Counter(
    'secret_watcher_format_errors_total',
    'Number of secrets skipped because of an unparseable expiry annotation',
    ['namespace']
)
DEPLOYMENT_RESTARTS = Counter(
    'secret_watcher_deployment_restarts_total',
    'Number of successful deployment rollout restarts',
    ['namespace', 'deployment']
)
RESTART_FAILURES = Counter(
    'secret_watcher_restart_failures_total',
    'Number of deployment restarts that failed',
    ['namespace', 'deployment']
)


class NotificationManager:
    def __init__(self, pushgateway_url=None, job_name='secret_watcher', cluster_name='Unknown',
                 cooldown=timedelta(minutes=30)):
        self.pushgateway_url = pushgateway_url
        self.job_name = job_name
        self.cluster_name = cluster_name
        self.sent_notifications = {}
        self.notification_cooldown = cooldown

    @classmethod
    def from_config(cls, cfg):
        return cls(
            pushgateway_url=cfg.pushgateway_url,
            job_name=cfg.prometheus_job_name,
            cluster_name=cfg.cluster_name,
        )

    def record_expired(self, namespace):
        EXPIRED_SECRETS.labels(namespace=namespace).inc()

    def record_format_error(self, namespace):
        FORMAT_ERRORS.labels(namespace=namespace).inc()

    def record_restart(self, namespace, deployment):
        DEPLOYMENT_RESTARTS.labels(namespace=namespace, deployment=deployment).inc()

    def notify_restart_failure(self, namespace, deployment, secret_name, error_details, attempts=1):
        """Count a failed restart and alert Prometheus, once per cooldown window"""
        RESTART_FAILURES.labels(namespace=namespace, deployment=deployment).inc()

        key = f"{namespace}/{deployment}"
        last_notification = self.sent_notifications.get(key)
        if last_notification and datetime.now() - last_notification < self.notification_cooldown:
            logger.debug(f"Notification for {key} is in cooldown")
            return False

        try:
            if self.pushgateway_url:
                self._push_to_pushgateway(namespace, deployment, secret_name, attempts)
            else:
                self._send_log_notification(namespace, deployment, secret_name, error_details, attempts)
        except Exception as e:
            logger.error(f"Failed to push restart failure for {key}: {e}")
            self._send_log_notification(namespace, deployment, secret_name, error_details, attempts)

        self.sent_notifications[key] = datetime.now()
        return True

    def _send_log_notification(self, namespace, deployment, secret_name, error_details, attempts):
        """Log-based notification (fallback)"""
        logger.error(
            f"DEPLOYMENT RESTART FAILED - {namespace}/{deployment}\n"
            f"   Expired secret: {secret_name}\n"
            f"   Error: {error_details}\n"
            f"   Attempts: {attempts}\n"
            f"   Timestamp: {datetime.now(timezone.utc).isoformat()}"
        )

    def _push_to_pushgateway(self, namespace, deployment, secret_name, attempts):
        """Push metrics to Prometheus Pushgateway"""
        labels = f'namespace="{namespace}",deployment="{deployment}",secret="{secret_name}"'
        metrics_data = f"""# HELP secret_watcher_restart_failure Deployment restart failure event
# TYPE secret_watcher_restart_failure gauge
secret_watcher_restart_failure{{{labels},cluster="{self.cluster_name}"}} 1

# HELP secret_watcher_restart_attempts Write attempts made before giving up
# TYPE secret_watcher_restart_attempts gauge
secret_watcher_restart_attempts{{{labels}}} {attempts}

# HELP secret_watcher_last_failure_timestamp Timestamp of last restart failure
# TYPE secret_watcher_last_failure_timestamp gauge
secret_watcher_last_failure_timestamp{{{labels}}} {datetime.now(timezone.utc).timestamp()}
"""

        url = f"{self.pushgateway_url}/metrics/job/{self.job_name}"
        response = requests.put(url, data=metrics_data, timeout=10)
        response.raise_for_status()

        logger.debug(f"Successfully pushed metrics to Pushgateway for {namespace}/{deployment}")
