"""
Read-only snapshots of the Kubernetes objects the watcher inspects.

The kubernetes client returns generated model classes (V1Secret, V1Pod, ...)
whose nested fields are frequently None. The adapters below flatten them into
small frozen dataclasses so the resolution logic only ever sees the three
things it cares about: identity, controller owner and mounted secrets.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set, Tuple


class WorkloadKind(str, Enum):
    DEPLOYMENT = "Deployment"
    REPLICA_SET = "ReplicaSet"
    DAEMON_SET = "DaemonSet"


@dataclass(frozen=True)
class OwnerRef:
    kind: str
    name: str
    controller: bool = False

    @classmethod
    def from_k8s(cls, ref) -> "OwnerRef":
        return cls(kind=ref.kind, name=ref.name, controller=bool(ref.controller))


@dataclass(frozen=True)
class Credential:
    namespace: str
    name: str
    annotations: Dict[str, str] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def from_secret(cls, secret) -> "Credential":
        meta = secret.metadata
        return cls(
            namespace=meta.namespace,
            name=meta.name,
            annotations=dict(meta.annotations or {}),
            created_at=meta.creation_timestamp,
        )

    def identity(self) -> Tuple[str, str]:
        return (self.namespace, self.name)


def mounted_secret_names(pod_spec) -> FrozenSet[str]:
    """Names of secrets mounted as volumes by a pod spec.

    Covers plain ``secret`` volumes and ``projected`` volumes with secret
    sources. Environment variable references are deliberately not included.
    """
    names: Set[str] = set()
    if pod_spec is None:
        return frozenset()

    for volume in pod_spec.volumes or []:
        if volume.secret is not None and volume.secret.secret_name:
            names.add(volume.secret.secret_name)
        if volume.projected is not None:
            for source in volume.projected.sources or []:
                if source.secret is not None and source.secret.name:
                    names.add(source.secret.name)
    return frozenset(names)


def _owner_refs(meta) -> Tuple[OwnerRef, ...]:
    return tuple(OwnerRef.from_k8s(ref) for ref in (meta.owner_references or []))


@dataclass(frozen=True)
class Pod:
    namespace: str
    name: str
    secret_volumes: FrozenSet[str] = frozenset()
    owners: Tuple[OwnerRef, ...] = ()

    @classmethod
    def from_k8s(cls, pod) -> "Pod":
        return cls(
            namespace=pod.metadata.namespace,
            name=pod.metadata.name,
            secret_volumes=mounted_secret_names(pod.spec),
            owners=_owner_refs(pod.metadata),
        )

    def mounts(self, secret_name: str) -> bool:
        return secret_name in self.secret_volumes


@dataclass(frozen=True)
class Workload:
    """A Deployment, ReplicaSet or DaemonSet reduced to what resolution needs"""

    kind: WorkloadKind
    namespace: str
    name: str
    owners: Tuple[OwnerRef, ...] = ()
    template_secrets: FrozenSet[str] = frozenset()

    @classmethod
    def _from_k8s(cls, kind: WorkloadKind, obj) -> "Workload":
        template = obj.spec.template if obj.spec is not None else None
        return cls(
            kind=kind,
            namespace=obj.metadata.namespace,
            name=obj.metadata.name,
            owners=_owner_refs(obj.metadata),
            template_secrets=mounted_secret_names(template.spec if template is not None else None),
        )

    @classmethod
    def from_replica_set(cls, rs) -> "Workload":
        return cls._from_k8s(WorkloadKind.REPLICA_SET, rs)

    @classmethod
    def from_daemon_set(cls, ds) -> "Workload":
        return cls._from_k8s(WorkloadKind.DAEMON_SET, ds)

    def identity(self) -> Tuple[str, str]:
        return (self.namespace, self.name)

    def owner_ref(self) -> Optional[OwnerRef]:
        """The controlling owner, if any"""
        for ref in self.owners:
            if ref.controller:
                return ref
        return None

    def pod_template_volumes(self) -> FrozenSet[str]:
        return self.template_secrets


@dataclass
class ImplicatedWorkloads:
    """Workloads depending on one secret, deduplicated per kind"""

    deployments: Set[str] = field(default_factory=set)
    replica_sets: Set[str] = field(default_factory=set)
    daemon_sets: Set[str] = field(default_factory=set)
    errors: List[Exception] = field(default_factory=list)

    def add(self, kind: WorkloadKind, name: str) -> None:
        if not name:
            return
        if kind == WorkloadKind.DEPLOYMENT:
            self.deployments.add(name)
        elif kind == WorkloadKind.REPLICA_SET:
            self.replica_sets.add(name)
        elif kind == WorkloadKind.DAEMON_SET:
            self.daemon_sets.add(name)

    def to_dict(self):
        return {
            "deployments": sorted(self.deployments),
            "replica_sets": sorted(self.replica_sets),
            "daemon_sets": sorted(self.daemon_sets),
            "errors": [str(e) for e in self.errors],
        }
