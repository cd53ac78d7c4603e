import logging

from secret_watcher.models import ImplicatedWorkloads, Pod, Workload, WorkloadKind

logger = logging.getLogger(__name__)


class DiscoveryListError(Exception):
    """A list call for one resource kind failed while resolving consumers"""

    def __init__(self, kind, namespace, cause):
        self.kind = kind
        self.namespace = namespace
        self.cause = cause
        super().__init__(f"failed to list {kind} in {namespace}: {cause}")


def derive_deployment_name(replica_set_name):
    """Strip the pod-template-hash suffix from a ReplicaSet name.

    ``myapp-7d8f9c9c79`` gives ``myapp``. A name without a hyphen gives ``""``
    (no match) rather than a guess.
    """
    segments = (replica_set_name or "").split("-")
    if len(segments) < 2:
        return ""
    return "-".join(segments[:-1])


class ConsumerResolver:
    """Finds the workloads that mount a given secret as a volume.

    Two sources are merged: live pods (walking their owner references) and the
    pod templates of ReplicaSets and DaemonSets, which also covers workloads
    scaled to zero. Each list call fails independently; a failure is logged,
    recorded on the result and only drops what that call would have added.
    """

    def __init__(self, k8s_client):
        self.k8s_client = k8s_client

    def resolve(self, namespace, secret_name):
        result = ImplicatedWorkloads()

        replica_sets = self._list(result, WorkloadKind.REPLICA_SET, namespace,
                                  self.k8s_client.list_replica_sets, Workload.from_replica_set)
        daemon_sets = self._list(result, WorkloadKind.DAEMON_SET, namespace,
                                 self.k8s_client.list_daemon_sets, Workload.from_daemon_set)
        pods = self._list(result, "Pod", namespace, self.k8s_client.list_pods, Pod.from_k8s)

        rs_index = {rs.name: rs for rs in replica_sets or []}

        if pods is not None:
            self._resolve_from_pods(result, namespace, secret_name, pods, rs_index)

        for workload in (replica_sets or []) + (daemon_sets or []):
            if workload.namespace != namespace or secret_name not in workload.pod_template_volumes():
                continue
            result.add(workload.kind, workload.name)
            if workload.kind == WorkloadKind.REPLICA_SET:
                result.add(WorkloadKind.DEPLOYMENT, self._deployment_for(workload.name, rs_index))

        logger.debug(
            f"Secret {namespace}/{secret_name} consumers: "
            f"deployments={sorted(result.deployments)} "
            f"replicasets={sorted(result.replica_sets)} "
            f"daemonsets={sorted(result.daemon_sets)}"
        )
        return result

    def _list(self, result, kind, namespace, list_fn, adapt):
        """Run one list call; None means the call failed"""
        try:
            return [adapt(obj) for obj in list_fn(namespace)]
        except Exception as e:
            error = DiscoveryListError(getattr(kind, "value", kind), namespace, e)
            logger.error(str(error))
            result.errors.append(error)
            return None

    def _resolve_from_pods(self, result, namespace, secret_name, pods, rs_index):
        for pod in pods:
            if pod.namespace != namespace or not pod.mounts(secret_name):
                continue
            for owner in pod.owners:
                if owner.kind == WorkloadKind.REPLICA_SET.value and owner.controller:
                    result.add(WorkloadKind.REPLICA_SET, owner.name)
                    result.add(WorkloadKind.DEPLOYMENT, self._deployment_for(owner.name, rs_index))
                elif owner.kind == WorkloadKind.DAEMON_SET.value:
                    result.add(WorkloadKind.DAEMON_SET, owner.name)

    def _deployment_for(self, replica_set_name, rs_index):
        # Prefer the ReplicaSet's own controller reference; the name
        # heuristic is only a fallback for ReplicaSets we could not list.
        rs = rs_index.get(replica_set_name)
        if rs is None:
            return derive_deployment_name(replica_set_name)
        owner = rs.owner_ref()
        if owner is not None and owner.kind == WorkloadKind.DEPLOYMENT.value:
            return owner.name
        # standalone, or controlled by something other than a Deployment
        return ""
