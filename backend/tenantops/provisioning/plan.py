from dataclasses import dataclass
from functools import partial
from typing import Callable

from tenantops.cluster import manifests
from tenantops.cluster.client import KubernetesClusterClient
from tenantops.core.config import Settings
from tenantops.tenants.models import Tenant

STEP_ORDER = (
    "namespace",
    "resource-quota",
    "network-policies",
    "roles",
    "storage",
    "deployment",
    "service",
)


@dataclass(frozen=True)
class ResourceAction:
    kind: str
    name: str
    create: Callable[[], None]


@dataclass(frozen=True)
class ProvisioningStep:
    name: str
    actions: tuple[ResourceAction, ...]


def _action(kind: str, spec: dict, create: Callable[..., None], *args) -> ResourceAction:
    return ResourceAction(kind=kind, name=spec["metadata"]["name"], create=partial(create, *args, spec))


def build_plan(tenant: Tenant, cluster: KubernetesClusterClient, settings: Settings) -> list[ProvisioningStep]:
    """
    The fixed bundle, in dependency order: nothing namespaced before the
    namespace, and quota plus isolation rules before any workload can run.
    """
    ns = tenant.namespace
    steps = [
        ProvisioningStep(
            "namespace",
            (_action("Namespace", manifests.namespace_manifest(tenant, settings), cluster.create_namespace),),
        ),
        ProvisioningStep(
            "resource-quota",
            (
                _action(
                    "ResourceQuota",
                    manifests.resource_quota_manifest(tenant),
                    cluster.create_resource_quota,
                    ns,
                ),
            ),
        ),
        ProvisioningStep(
            "network-policies",
            tuple(
                _action("NetworkPolicy", spec, cluster.create_network_policy, ns)
                for spec in manifests.network_policy_manifests(tenant, settings)
            ),
        ),
        ProvisioningStep(
            "roles",
            tuple(_action("Role", spec, cluster.create_role, ns) for spec in manifests.role_manifests(tenant)),
        ),
        ProvisioningStep(
            "storage",
            (
                _action(
                    "PersistentVolumeClaim",
                    manifests.storage_claim_manifest(tenant, settings),
                    cluster.create_persistent_volume_claim,
                    ns,
                ),
            ),
        ),
        ProvisioningStep(
            "deployment",
            (
                _action(
                    "Deployment",
                    manifests.deployment_manifest(tenant, settings),
                    cluster.create_deployment,
                    ns,
                ),
            ),
        ),
        ProvisioningStep(
            "service",
            (_action("Service", manifests.service_manifest(tenant), cluster.create_service, ns),),
        ),
    ]
    return steps
