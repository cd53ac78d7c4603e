import time
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from kubernetes import client
from kubernetes.client.rest import ApiException

logger = logging.getLogger(__name__)

HTTP_CONFLICT = 409


class RestartError(Exception):
    """A deployment could not be restarted"""

    def __init__(self, namespace, name, message, attempts=1):
        self.namespace = namespace
        self.name = name
        self.attempts = attempts
        super().__init__(f"restart of deployment {namespace}/{name} failed: {message}")


class RestartConflictExhausted(RestartError):
    """Every write attempt was rejected with a version conflict"""


@dataclass(frozen=True)
class RestartOutcome:
    namespace: str
    name: str
    restarted_at: str
    attempts: int


def utc_now_rfc3339():
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class RestartOrchestrator:
    """Rollout-restarts deployments by stamping their pod template.

    The read-modify-write cycle relies on the resourceVersion carried by the
    read object: the API server rejects a stale write with 409, in which case
    the deployment is re-read and the annotation re-applied, with increasing
    backoff, up to ``max_attempts`` writes.
    """

    def __init__(self, k8s_client, annotation_key="kubectl.kubernetes.io/restartedAt",
                 max_attempts=5, backoff_seconds=0.01, backoff_factor=2.0,
                 now_fn=utc_now_rfc3339, sleep_fn=time.sleep):
        self.k8s_client = k8s_client
        self.annotation_key = annotation_key
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.backoff_factor = backoff_factor
        self.now_fn = now_fn
        self.sleep_fn = sleep_fn

    @classmethod
    def from_config(cls, k8s_client, cfg, **kwargs):
        return cls(
            k8s_client,
            annotation_key=cfg.restart_annotation_key,
            max_attempts=cfg.restart_max_attempts,
            backoff_seconds=cfg.restart_backoff_seconds,
            backoff_factor=cfg.restart_backoff_factor,
            **kwargs
        )

    def restart(self, namespace, name):
        for attempt in range(1, self.max_attempts + 1):
            try:
                deployment = self.k8s_client.read_deployment(name, namespace)
                stamp = self._stamp(deployment)
                self.k8s_client.replace_deployment(name, namespace, deployment)
            except ApiException as e:
                if e.status != HTTP_CONFLICT:
                    raise RestartError(namespace, name, f"{e.status} {e.reason}", attempt) from e
                if attempt == self.max_attempts:
                    break
                delay = self.backoff_seconds * (self.backoff_factor ** (attempt - 1))
                logger.warning(
                    f"Conflict restarting deployment {namespace}/{name} "
                    f"(attempt {attempt}/{self.max_attempts}), retrying in {delay:.3f}s"
                )
                self.sleep_fn(delay)
                continue
            except Exception as e:
                raise RestartError(namespace, name, str(e), attempt) from e

            logger.info(f"✅ Restarted deployment {namespace}/{name} ({self.annotation_key}={stamp})")
            return RestartOutcome(namespace, name, stamp, attempt)

        raise RestartConflictExhausted(
            namespace, name,
            f"still conflicting after {self.max_attempts} attempts",
            self.max_attempts,
        )

    def _stamp(self, deployment):
        template = deployment.spec.template
        if template.metadata is None:
            template.metadata = client.V1ObjectMeta()
        if template.metadata.annotations is None:
            template.metadata.annotations = {}
        stamp = self.now_fn()
        template.metadata.annotations[self.annotation_key] = stamp
        return stamp
