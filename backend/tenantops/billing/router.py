import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from tenantops.auth.deps import SUPER_ADMIN, TENANT_ADMIN, Principal, require_roles
from tenantops.billing.cost import InvalidBillingPeriod, Pricing, build_cost_report, summarize_fleet
from tenantops.billing.schemas import CostReportResponse, FleetSummaryResponse
from tenantops.cluster.client import KubernetesClusterClient
from tenantops.cluster.errors import ClusterError
from tenantops.core.config import Settings
from tenantops.system.deps import get_cluster_client, get_pricing, get_settings, get_tenant_store
from tenantops.tenants.store import TenantNotFound, TenantStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/report", response_model=CostReportResponse)
def cost_report(
    tenant_id: str | None = Query(default=None, min_length=3, max_length=64),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    store: TenantStore = Depends(get_tenant_store),
    cluster: KubernetesClusterClient = Depends(get_cluster_client),
    pricing: Pricing = Depends(get_pricing),
    principal: Principal = Depends(require_roles(SUPER_ADMIN, TENANT_ADMIN)),
):
    effective_tenant_id = tenant_id if principal.is_super_admin else principal.tenant_id
    if not effective_tenant_id:
        raise HTTPException(status_code=400, detail="Tenant ID is required")

    try:
        return build_cost_report(
            store,
            cluster,
            pricing,
            effective_tenant_id,
            start=start_date,
            end=end_date,
        )
    except TenantNotFound:
        raise HTTPException(status_code=404, detail="Tenant not found")
    except InvalidBillingPeriod as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ClusterError as exc:
        logger.error("Error generating cost report for tenant %s: %s", effective_tenant_id, exc)
        raise HTTPException(status_code=502, detail="Failed to generate cost report") from exc


@router.get("/summary", response_model=FleetSummaryResponse)
def cost_summary(
    store: TenantStore = Depends(get_tenant_store),
    cluster: KubernetesClusterClient = Depends(get_cluster_client),
    pricing: Pricing = Depends(get_pricing),
    app_settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_roles(SUPER_ADMIN)),
):
    tenants = store.find_all(status="active")
    summary = summarize_fleet(tenants, cluster, pricing, max_workers=app_settings.FLEET_MAX_WORKERS)
    return {
        "summary": [
            {
                "tenant_id": e.tenant_id,
                "tenant_name": e.tenant_name,
                "namespace": e.namespace,
                "tier": e.tier,
                "costs": e.costs.as_dict(),
                "error": e.error,
            }
            for e in summary.entries
        ],
        "total_cost": summary.total_cost,
        "total_tenants": summary.total_tenants,
        "failed_tenants": summary.failed_tenants,
        "generated_at": summary.generated_at,
    }
