import logging
from typing import Any, Callable

from kubernetes import client as k8s
from kubernetes import config as k8s_config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError, MaxRetryError
from urllib3.exceptions import TimeoutError as Urllib3TimeoutError

from tenantops.cluster.errors import (
    ClusterError,
    ClusterRequestError,
    ClusterTimeoutError,
    ClusterTransportError,
    ResourceAlreadyExistsError,
    ResourceConflictError,
    ResourceNotFoundError,
)
from tenantops.core.config import Settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {0, 408, 429, 500, 502, 503, 504}


def translate_api_error(exc: Exception, action: str) -> ClusterError:
    if isinstance(exc, ApiException):
        status = exc.status or 0
        detail = f"{action}: {exc.reason or 'error'} ({status})"
        if status == 409:
            if action.startswith("create"):
                return ResourceAlreadyExistsError(detail, status=status)
            return ResourceConflictError(detail, status=status)
        if status == 404:
            return ResourceNotFoundError(detail, status=status)
        if status in RETRYABLE_STATUSES:
            return ClusterTransportError(detail, status=status)
        return ClusterRequestError(detail, status=status)

    if isinstance(exc, Urllib3TimeoutError):
        return ClusterTimeoutError(f"{action}: timed out")
    if isinstance(exc, MaxRetryError) and isinstance(exc.reason, Urllib3TimeoutError):
        return ClusterTimeoutError(f"{action}: timed out")
    return ClusterTransportError(f"{action}: {exc}")


def build_api_client(settings: Settings) -> k8s.ApiClient:
    configuration = k8s.Configuration()
    try:
        k8s_config.load_incluster_config(client_configuration=configuration)
        logger.info("Loaded in-cluster Kubernetes configuration")
    except ConfigException:
        k8s_config.load_kube_config(
            config_file=settings.KUBECONFIG_PATH,
            client_configuration=configuration,
        )
        logger.info("Loaded kubeconfig (%s)", settings.KUBECONFIG_PATH or "default location")
    return k8s.ApiClient(configuration)


class KubernetesClusterClient:
    """
    Thin adapter over the Kubernetes API.

    Every call carries the configured request timeout and every failure is
    translated into the cluster error taxonomy so callers never see
    transport-library exceptions.
    """

    def __init__(self, api_client: k8s.ApiClient, *, timeout_seconds: float):
        self.api_client = api_client
        self.timeout_seconds = timeout_seconds
        self.core = k8s.CoreV1Api(api_client)
        self.networking = k8s.NetworkingV1Api(api_client)
        self.rbac = k8s.RbacAuthorizationV1Api(api_client)
        self.apps = k8s.AppsV1Api(api_client)

    @classmethod
    def from_settings(cls, settings: Settings) -> "KubernetesClusterClient":
        return cls(build_api_client(settings), timeout_seconds=settings.CLUSTER_CALL_TIMEOUT_SECONDS)

    def _call(self, action: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            return fn(*args, _request_timeout=self.timeout_seconds, **kwargs)
        except (ApiException, HTTPError) as exc:
            raise translate_api_error(exc, action) from exc

    def _items(self, result: Any) -> list[dict]:
        data = self.api_client.sanitize_for_serialization(result) or {}
        return list(data.get("items") or [])

    # Creation

    def create_namespace(self, spec: dict) -> None:
        self._call("create namespace", self.core.create_namespace, body=spec)

    def create_resource_quota(self, namespace: str, spec: dict) -> None:
        self._call(
            "create resource quota",
            self.core.create_namespaced_resource_quota,
            namespace=namespace,
            body=spec,
        )

    def create_network_policy(self, namespace: str, spec: dict) -> None:
        self._call(
            "create network policy",
            self.networking.create_namespaced_network_policy,
            namespace=namespace,
            body=spec,
        )

    def create_role(self, namespace: str, spec: dict) -> None:
        self._call("create role", self.rbac.create_namespaced_role, namespace=namespace, body=spec)

    def create_persistent_volume_claim(self, namespace: str, spec: dict) -> None:
        self._call(
            "create persistent volume claim",
            self.core.create_namespaced_persistent_volume_claim,
            namespace=namespace,
            body=spec,
        )

    def create_deployment(self, namespace: str, spec: dict) -> None:
        self._call(
            "create deployment",
            self.apps.create_namespaced_deployment,
            namespace=namespace,
            body=spec,
        )

    def create_service(self, namespace: str, spec: dict) -> None:
        self._call("create service", self.core.create_namespaced_service, namespace=namespace, body=spec)

    # Teardown and reads

    def delete_namespace(self, namespace: str) -> None:
        self._call("delete namespace", self.core.delete_namespace, name=namespace)

    def namespace_exists(self, namespace: str) -> bool:
        try:
            self._call("read namespace", self.core.read_namespace, name=namespace)
        except ResourceNotFoundError:
            return False
        return True

    def list_pods(self, namespace: str) -> list[dict]:
        return self._items(self._call("list pods", self.core.list_namespaced_pod, namespace=namespace))

    def list_persistent_volume_claims(self, namespace: str) -> list[dict]:
        return self._items(
            self._call(
                "list persistent volume claims",
                self.core.list_namespaced_persistent_volume_claim,
                namespace=namespace,
            )
        )

    def list_services(self, namespace: str) -> list[dict]:
        return self._items(
            self._call("list services", self.core.list_namespaced_service, namespace=namespace)
        )
