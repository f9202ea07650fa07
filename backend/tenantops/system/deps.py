from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from tenantops.billing.cost import Pricing
from tenantops.cluster.client import KubernetesClusterClient
from tenantops.core.config import Settings, settings
from tenantops.db.session import get_db
from tenantops.provisioning.orchestrator import ProvisioningOrchestrator
from tenantops.tenants.store import TenantStore


def get_settings() -> Settings:
    return settings


@lru_cache(maxsize=1)
def get_cluster_client() -> KubernetesClusterClient:
    return KubernetesClusterClient.from_settings(settings)


def get_pricing(app_settings: Settings = Depends(get_settings)) -> Pricing:
    return Pricing.from_settings(app_settings)


def get_tenant_store(db: Session = Depends(get_db)) -> TenantStore:
    return TenantStore(db)


def get_orchestrator(
    cluster: KubernetesClusterClient = Depends(get_cluster_client),
    store: TenantStore = Depends(get_tenant_store),
    app_settings: Settings = Depends(get_settings),
) -> ProvisioningOrchestrator:
    return ProvisioningOrchestrator(cluster, store, app_settings)
