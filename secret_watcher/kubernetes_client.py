import os
import logging
from kubernetes import client, config, watch
from kubernetes.config.config_exception import ConfigException

logger = logging.getLogger(__name__)


class ClientBootstrapError(Exception):
    """Raised when no Kubernetes configuration can be loaded"""


class KubernetesClient:
    """Thin wrapper over the CoreV1 and AppsV1 APIs used by the watcher.

    Read and write calls let ApiException (and urllib3 timeouts) propagate so
    callers can tell a failed list from an empty one. In mock mode no
    connection is made and every list returns nothing.
    """

    def __init__(self, use_mock=False, kubeconfig_path=None, in_cluster=True, request_timeout=30):
        self.v1 = None
        self.apps_v1 = None
        self.request_timeout = request_timeout
        # resourceVersion of the last secret listing, where a watch resumes
        self.secrets_resource_version = None

        if use_mock:
            logger.info("Using mock mode - no real Kubernetes connection")
            return

        try:
            self._load_configuration(kubeconfig_path or os.getenv('KUBECONFIG'), in_cluster)
        except ClientBootstrapError:
            raise
        except Exception as e:
            logger.error(f"Failed to initialize Kubernetes client: {e}")
            raise ClientBootstrapError(str(e)) from e

        self.v1 = client.CoreV1Api()
        self.apps_v1 = client.AppsV1Api()

    def _load_configuration(self, kubeconfig_path, in_cluster):
        if kubeconfig_path and os.path.exists(kubeconfig_path):
            logger.info(f"Loading kubeconfig from KUBECONFIG environment: {kubeconfig_path}")
            config.load_kube_config(config_file=kubeconfig_path)
            return

        if in_cluster:
            try:
                config.load_incluster_config()
                logger.info("Loaded in-cluster Kubernetes configuration")
                return
            except ConfigException:
                pass

        try:
            config.load_kube_config()
            logger.info("Loaded kubeconfig from default location")
            return
        except ConfigException:
            pass

        possible_paths = [
            os.path.expanduser("~/.kube/config"),
            "/etc/kubernetes/admin.conf",
            "/etc/rancher/k3s/k3s.yaml"
        ]
        for kube_path in possible_paths:
            if os.path.exists(kube_path):
                logger.info(f"Loading kubeconfig from: {kube_path}")
                config.load_kube_config(config_file=kube_path)
                return

        raise ClientBootstrapError(
            "Could not load Kubernetes configuration. "
            "Please ensure you have:\n"
            "1. A running Kubernetes cluster\n"
            "2. kubectl configured properly\n"
            "3. Or set KUBECONFIG environment variable\n"
            "4. Or run with MOCK_MODE=true for testing"
        )

    def list_secrets(self, namespace=None):
        """List secrets in one namespace, or in all namespaces"""
        if not self.v1:
            logger.warning("Mock mode - returning empty secret list")
            return []
        if namespace:
            result = self.v1.list_namespaced_secret(namespace, _request_timeout=self.request_timeout)
        else:
            result = self.v1.list_secret_for_all_namespaces(watch=False, _request_timeout=self.request_timeout)
        self.secrets_resource_version = getattr(result.metadata, "resource_version", None)
        return result.items

    def watch_secrets(self, namespace=None, timeout_seconds=600):
        """Yield (event_type, secret) until the server ends the watch.

        Starts from the last listing so secrets already seen by a scan are not
        replayed. A stale resourceVersion surfaces as ApiException 410.
        """
        if not self.v1:
            return
        kwargs = {"timeout_seconds": timeout_seconds}
        if self.secrets_resource_version:
            kwargs["resource_version"] = self.secrets_resource_version

        watcher = watch.Watch()
        if namespace:
            stream = watcher.stream(self.v1.list_namespaced_secret, namespace, **kwargs)
        else:
            stream = watcher.stream(self.v1.list_secret_for_all_namespaces, **kwargs)
        for event in stream:
            secret = event.get("object")
            if secret is None:
                continue
            yield event.get("type", ""), secret

    def list_pods(self, namespace):
        if not self.v1:
            return []
        return self.v1.list_namespaced_pod(namespace, _request_timeout=self.request_timeout).items

    def list_replica_sets(self, namespace):
        if not self.apps_v1:
            return []
        return self.apps_v1.list_namespaced_replica_set(namespace, _request_timeout=self.request_timeout).items

    def list_daemon_sets(self, namespace):
        if not self.apps_v1:
            return []
        return self.apps_v1.list_namespaced_daemon_set(namespace, _request_timeout=self.request_timeout).items

    def read_deployment(self, name, namespace):
        if not self.apps_v1:
            raise RuntimeError(f"Mock mode - cannot read deployment {namespace}/{name}")
        return self.apps_v1.read_namespaced_deployment(name, namespace, _request_timeout=self.request_timeout)

    def replace_deployment(self, name, namespace, body):
        """Write a deployment back; rejected with 409 if its resourceVersion is stale"""
        if not self.apps_v1:
            raise RuntimeError(f"Mock mode - cannot write deployment {namespace}/{name}")
        return self.apps_v1.replace_namespaced_deployment(
            name, namespace, body, _request_timeout=self.request_timeout
        )

    def test_connection(self):
        """Test Kubernetes connection"""
        if not self.v1:
            return False
        try:
            self.v1.get_api_resources(_request_timeout=self.request_timeout)
            return True
        except Exception as e:
            logger.warning(f"Kubernetes connection test failed: {e}")
            return False
