import logging
import threading
from typing import Callable

from tenantops.billing.usage import namespace_metrics
from tenantops.cluster.client import KubernetesClusterClient
from tenantops.cluster.errors import ClusterError
from tenantops.cluster.manifests import ensure_quota_fits_bundle
from tenantops.core.config import Settings
from tenantops.identity.namespace import derive_namespace, next_suffix
from tenantops.provisioning.errors import TenantStatusConflict, TenantValidationError
from tenantops.provisioning.orchestrator import ProvisioningOrchestrator, ProvisioningReport
from tenantops.system.metrics import record_active_tenants
from tenantops.tenants.models import TENANT_TIERS, Tenant
from tenantops.tenants.quotas import QuotaAllocation, default_quota_for_tier
from tenantops.tenants.store import NamespaceTaken, TenantStore

logger = logging.getLogger(__name__)

QUOTA_FIELDS = ("cpu_cores", "memory_bytes", "storage_bytes", "max_participants")


def refresh_active_tenants(store: TenantStore) -> None:
    record_active_tenants(store.count(status="active"))


class TeardownIncomplete(Exception):
    def __init__(self, tenant_id: str, namespace: str):
        super().__init__(f"namespace {namespace} of tenant {tenant_id} was not confirmed removed")
        self.tenant_id = tenant_id
        self.namespace = namespace


def register_tenant(
    store: TenantStore,
    settings: Settings,
    *,
    name: str,
    email: str,
    tier: str = "basic",
    quota: QuotaAllocation | None = None,
    created_by: str | None = None,
    suffix_factory: Callable[[], str] = next_suffix,
) -> Tenant:
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name or not email:
        raise TenantValidationError("name and email are required")
    if tier not in TENANT_TIERS:
        raise TenantValidationError(f"unknown tier: {tier}")
    quota = ensure_quota_fits_bundle((quota or default_quota_for_tier(tier, settings)).validate(), settings)

    namespace = ""
    for attempt in range(1, settings.NAMESPACE_MAX_ATTEMPTS + 1):
        namespace = derive_namespace(name, suffix=suffix_factory(), prefix=settings.NAMESPACE_PREFIX)
        try:
            tenant = store.create(
                name=name,
                namespace=namespace,
                email=email,
                tier=tier,
                quota=quota,
                created_by=created_by,
            )
        except NamespaceTaken:
            logger.warning("Namespace %s already taken (attempt %s), deriving another", namespace, attempt)
            continue
        logger.info("Tenant registered id=%s namespace=%s", tenant.id, tenant.namespace)
        return tenant

    raise NamespaceTaken(namespace)


def create_and_provision(
    store: TenantStore,
    orchestrator: ProvisioningOrchestrator,
    settings: Settings,
    **fields,
) -> tuple[Tenant, ProvisioningReport]:
    tenant = register_tenant(store, settings, **fields)
    report = orchestrator.provision(tenant)
    refresh_active_tenants(store)
    return store.get(tenant.id), report


def retry_provisioning(
    store: TenantStore,
    orchestrator: ProvisioningOrchestrator,
    tenant_id: str,
    *,
    cancel_event: threading.Event | None = None,
) -> tuple[Tenant, ProvisioningReport]:
    tenant = store.get(tenant_id)
    report = orchestrator.provision(tenant, cancel_event=cancel_event)
    refresh_active_tenants(store)
    return store.get(tenant_id), report


def _transition(store: TenantStore, tenant_id: str, *, expected: str, status: str) -> Tenant:
    if not store.update_status(tenant_id, status, expected=expected):
        current = store.get(tenant_id)
        raise TenantStatusConflict(tenant_id, expected=expected, actual=current.status)
    logger.info("Tenant %s moved %s -> %s", tenant_id, expected, status)
    refresh_active_tenants(store)
    return store.get(tenant_id)


def suspend_tenant(store: TenantStore, tenant_id: str) -> Tenant:
    return _transition(store, tenant_id, expected="active", status="suspended")


def resume_tenant(store: TenantStore, tenant_id: str) -> Tenant:
    return _transition(store, tenant_id, expected="suspended", status="active")


def update_tenant(store: TenantStore, app_settings: Settings, tenant_id: str, **fields) -> Tenant:
    if "tier" in fields and fields["tier"] not in TENANT_TIERS:
        raise TenantValidationError(f"unknown tier: {fields['tier']}")
    if any(key in fields for key in QUOTA_FIELDS):
        current = QuotaAllocation.from_tenant(store.get(tenant_id))
        merged = {k: fields.get(k, getattr(current, k)) for k in QUOTA_FIELDS}
        ensure_quota_fits_bundle(QuotaAllocation(**merged).validate(), app_settings)
    if "name" in fields and not (fields["name"] or "").strip():
        raise TenantValidationError("name cannot be empty")

    tenant = store.update(tenant_id, **fields)
    logger.info("Tenant updated: %s", tenant_id)
    return tenant


def teardown_tenant(store: TenantStore, orchestrator: ProvisioningOrchestrator, tenant_id: str) -> None:
    tenant = store.get(tenant_id)
    namespace = tenant.namespace

    orchestrator.deprovision(namespace)
    if not orchestrator.wait_until_removed(namespace):
        raise TeardownIncomplete(tenant_id, namespace)

    store.delete(tenant_id)
    refresh_active_tenants(store)
    logger.info("Tenant deleted: %s", tenant_id)


def tenant_metrics(store: TenantStore, cluster: KubernetesClusterClient, tenant_id: str) -> dict:
    tenant = store.get(tenant_id)
    try:
        kubernetes = namespace_metrics(cluster, tenant.namespace)
    except ClusterError:
        logger.exception("Failed to get metrics for namespace %s", tenant.namespace)
        kubernetes = None

    return {
        "tenant_id": tenant.id,
        "namespace": tenant.namespace,
        "status": tenant.status,
        "quota": QuotaAllocation.from_tenant(tenant).as_dict(),
        "kubernetes": kubernetes,
    }
