"""
In-memory stand-in for KubernetesClient, built on the real kubernetes models
"""

from datetime import datetime, timezone

from kubernetes import client
from kubernetes.client.rest import ApiException

CREATED_AT = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


def _pod_spec(secrets=(), projected=(), env_secrets=()):
    volumes = [
        client.V1Volume(name=f"vol-{name}", secret=client.V1SecretVolumeSource(secret_name=name))
        for name in secrets
    ]
    for name in projected:
        volumes.append(client.V1Volume(
            name=f"projected-{name}",
            projected=client.V1ProjectedVolumeSource(
                sources=[client.V1VolumeProjection(secret=client.V1SecretProjection(name=name))]
            ),
        ))
    env = [
        client.V1EnvVar(
            name=f"ENV_{i}",
            value_from=client.V1EnvVarSource(secret_key_ref=client.V1SecretKeySelector(name=name, key="token")),
        )
        for i, name in enumerate(env_secrets)
    ]
    container = client.V1Container(name="app", image="app:latest", env=env or None)
    return client.V1PodSpec(containers=[container], volumes=volumes or None)


def _owner(kind, name, controller=True):
    return client.V1OwnerReference(api_version="apps/v1", kind=kind, name=name,
                                   uid=f"uid-{name}", controller=controller)


def make_secret(namespace, name, annotations=None, created_at=CREATED_AT):
    return client.V1Secret(metadata=client.V1ObjectMeta(
        namespace=namespace, name=name, annotations=annotations, creation_timestamp=created_at
    ))


def make_pod(namespace, name, secrets=(), owners=(), projected=(), env_secrets=()):
    return client.V1Pod(
        metadata=client.V1ObjectMeta(
            namespace=namespace, name=name,
            owner_references=[_owner(*owner) for owner in owners] or None,
        ),
        spec=_pod_spec(secrets, projected, env_secrets),
    )


def _template(secrets, projected=()):
    return client.V1PodTemplateSpec(
        metadata=client.V1ObjectMeta(labels={"app": "test"}),
        spec=_pod_spec(secrets, projected),
    )


def make_replica_set(namespace, name, secrets=(), deployment=None):
    owners = [_owner("Deployment", deployment)] if deployment else None
    return client.V1ReplicaSet(
        metadata=client.V1ObjectMeta(namespace=namespace, name=name, owner_references=owners),
        spec=client.V1ReplicaSetSpec(
            selector=client.V1LabelSelector(match_labels={"app": "test"}),
            template=_template(secrets),
        ),
    )


def make_daemon_set(namespace, name, secrets=()):
    return client.V1DaemonSet(
        metadata=client.V1ObjectMeta(namespace=namespace, name=name),
        spec=client.V1DaemonSetSpec(
            selector=client.V1LabelSelector(match_labels={"app": "test"}),
            template=_template(secrets),
        ),
    )


def conflict():
    return ApiException(status=409, reason="Conflict")


class FakeCluster:
    """Implements the KubernetesClient surface against in-memory objects.

    Deployments are stored as (resource_version, template annotations) and a
    fresh V1Deployment is built on every read, so writes behave like the API
    server: a stale resource_version is rejected with 409.
    """

    def __init__(self):
        self.secrets = []
        self.pods = []
        self.replica_sets = []
        self.daemon_sets = []
        self.deployments = {}
        self.failures = {}
        self.injected_conflicts = {}
        self.writes = []
        self.calls = []

    def add_deployment(self, namespace, name, annotations=None):
        self.deployments[(namespace, name)] = {"resource_version": 1, "annotations": annotations}

    def template_annotations(self, namespace, name):
        return self.deployments[(namespace, name)]["annotations"]

    def _call(self, method, *args):
        self.calls.append((method,) + args)
        if method in self.failures:
            raise self.failures[method]

    def list_secrets(self, namespace=None):
        self._call("list_secrets", namespace)
        return [s for s in self.secrets if namespace is None or s.metadata.namespace == namespace]

    def list_pods(self, namespace):
        self._call("list_pods", namespace)
        return [p for p in self.pods if p.metadata.namespace == namespace]

    def list_replica_sets(self, namespace):
        self._call("list_replica_sets", namespace)
        return [rs for rs in self.replica_sets if rs.metadata.namespace == namespace]

    def list_daemon_sets(self, namespace):
        self._call("list_daemon_sets", namespace)
        return [ds for ds in self.daemon_sets if ds.metadata.namespace == namespace]

    def read_deployment(self, name, namespace):
        self._call("read_deployment", name, namespace)
        stored = self.deployments.get((namespace, name))
        if stored is None:
            raise ApiException(status=404, reason="Not Found")
        annotations = dict(stored["annotations"]) if stored["annotations"] is not None else None
        return client.V1Deployment(
            metadata=client.V1ObjectMeta(namespace=namespace, name=name,
                                         resource_version=str(stored["resource_version"])),
            spec=client.V1DeploymentSpec(
                selector=client.V1LabelSelector(match_labels={"app": name}),
                template=client.V1PodTemplateSpec(
                    metadata=client.V1ObjectMeta(annotations=annotations) if annotations is not None else None,
                    spec=_pod_spec(),
                ),
            ),
        )

    def replace_deployment(self, name, namespace, body):
        self._call("replace_deployment", name, namespace)
        stored = self.deployments[(namespace, name)]

        # another writer got in between our read and our write
        if self.injected_conflicts.get((namespace, name), 0) > 0:
            self.injected_conflicts[(namespace, name)] -= 1
            stored["resource_version"] += 1
            raise conflict()

        if body.metadata.resource_version != str(stored["resource_version"]):
            raise conflict()

        stored["resource_version"] += 1
        stored["annotations"] = dict(body.spec.template.metadata.annotations or {})
        self.writes.append((namespace, name, dict(stored["annotations"])))
        return body
