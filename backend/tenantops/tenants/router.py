import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from tenantops.auth.deps import (
    SUPER_ADMIN,
    TENANT_ADMIN,
    Principal,
    ensure_tenant_access,
    get_current_principal,
    require_roles,
)
from tenantops.cluster.client import KubernetesClusterClient
from tenantops.cluster.errors import ClusterError
from tenantops.core.config import Settings
from tenantops.provisioning.errors import (
    ProvisioningCancelled,
    ProvisioningError,
    TenantStatusConflict,
    TenantValidationError,
)
from tenantops.provisioning.orchestrator import ProvisioningOrchestrator, ProvisioningReport
from tenantops.system.deps import get_cluster_client, get_orchestrator, get_settings, get_tenant_store
from tenantops.tenants import service
from tenantops.tenants.models import Tenant
from tenantops.tenants.quotas import QuotaAllocation
from tenantops.tenants.schemas import (
    ProvisionResponse,
    TenantCreate,
    TenantListResponse,
    TenantMetricsResponse,
    TenantOut,
    TenantUpdate,
)
from tenantops.tenants.store import NamespaceTaken, TenantNotFound, TenantStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_tenant_out(row: Tenant) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "namespace": row.namespace,
        "email": row.email,
        "status": row.status,
        "tier": row.tier,
        "quotas": QuotaAllocation.from_tenant(row).as_dict(),
        "settings": row.settings or {},
        "provisioning_error": row.provisioning_error,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


def _to_provision_out(row: Tenant, report: ProvisioningReport) -> dict:
    return {
        "tenant": _to_tenant_out(row),
        "steps": [
            {
                "step": s.step,
                "resources": [{"kind": r.kind, "name": r.name, "state": r.state} for r in s.resources],
            }
            for s in report.steps
        ],
    }


def _provisioning_failed(exc: ProvisioningError) -> HTTPException:
    return HTTPException(
        status_code=502,
        detail={
            "error": "Failed to provision tenant",
            "tenant_id": exc.tenant_id,
            "step": exc.step,
            "cause": str(exc.cause),
            "completed_steps": exc.completed_steps,
        },
    )


def _get_or_404(store: TenantStore, tenant_id: str) -> Tenant:
    try:
        return store.get(tenant_id)
    except TenantNotFound:
        raise HTTPException(status_code=404, detail="Tenant not found")


@router.post("", response_model=ProvisionResponse, status_code=201)
def create_tenant(
    payload: TenantCreate,
    store: TenantStore = Depends(get_tenant_store),
    orchestrator: ProvisioningOrchestrator = Depends(get_orchestrator),
    app_settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_roles(SUPER_ADMIN)),
):
    quota = QuotaAllocation(**payload.quotas.model_dump()) if payload.quotas else None
    try:
        tenant, report = service.create_and_provision(
            store,
            orchestrator,
            app_settings,
            name=payload.name,
            email=str(payload.email),
            tier=payload.tier,
            quota=quota,
            created_by=principal.user_id,
        )
    except TenantValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except NamespaceTaken as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except (TenantStatusConflict, ProvisioningCancelled) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ProvisioningError as exc:
        raise _provisioning_failed(exc) from exc

    logger.info("Tenant created: %s, namespace: %s", tenant.id, tenant.namespace)
    return _to_provision_out(tenant, report)


@router.get("", response_model=TenantListResponse)
def list_tenants(
    status: str | None = Query(default=None, pattern="^(pending|active|suspended)$"),
    tier: str | None = Query(default=None, pattern="^(basic|pro|enterprise)$"),
    store: TenantStore = Depends(get_tenant_store),
    principal: Principal = Depends(require_roles(SUPER_ADMIN)),
):
    rows = store.find_all(status=status, tier=tier)
    return {"tenants": [_to_tenant_out(r) for r in rows], "total": len(rows)}


@router.get("/{tenant_id}", response_model=TenantOut)
def get_tenant(
    tenant_id: str,
    store: TenantStore = Depends(get_tenant_store),
    principal: Principal = Depends(get_current_principal),
):
    ensure_tenant_access(principal, tenant_id)
    return _to_tenant_out(_get_or_404(store, tenant_id))


@router.put("/{tenant_id}", response_model=TenantOut)
def update_tenant(
    tenant_id: str,
    payload: TenantUpdate,
    store: TenantStore = Depends(get_tenant_store),
    app_settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_roles(SUPER_ADMIN, TENANT_ADMIN)),
):
    ensure_tenant_access(principal, tenant_id)
    _get_or_404(store, tenant_id)

    fields = payload.model_dump(exclude_unset=True, exclude={"quotas"})
    if "email" in fields and fields["email"] is not None:
        fields["email"] = str(fields["email"]).lower()
    if payload.quotas is not None:
        fields.update(payload.quotas.model_dump())
    fields = {k: v for k, v in fields.items() if v is not None}

    try:
        tenant = service.update_tenant(store, app_settings, tenant_id, **fields)
    except TenantValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _to_tenant_out(tenant)


@router.post("/{tenant_id}/provision", response_model=ProvisionResponse)
def provision_tenant(
    tenant_id: str,
    store: TenantStore = Depends(get_tenant_store),
    orchestrator: ProvisioningOrchestrator = Depends(get_orchestrator),
    principal: Principal = Depends(require_roles(SUPER_ADMIN)),
):
    _get_or_404(store, tenant_id)
    try:
        tenant, report = service.retry_provisioning(store, orchestrator, tenant_id)
    except TenantValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except TenantStatusConflict as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ProvisioningCancelled as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ProvisioningError as exc:
        raise _provisioning_failed(exc) from exc
    return _to_provision_out(tenant, report)


@router.post("/{tenant_id}/suspend", response_model=TenantOut)
def suspend_tenant(
    tenant_id: str,
    store: TenantStore = Depends(get_tenant_store),
    principal: Principal = Depends(require_roles(SUPER_ADMIN)),
):
    _get_or_404(store, tenant_id)
    try:
        return _to_tenant_out(service.suspend_tenant(store, tenant_id))
    except TenantStatusConflict as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.post("/{tenant_id}/resume", response_model=TenantOut)
def resume_tenant(
    tenant_id: str,
    store: TenantStore = Depends(get_tenant_store),
    principal: Principal = Depends(require_roles(SUPER_ADMIN)),
):
    _get_or_404(store, tenant_id)
    try:
        return _to_tenant_out(service.resume_tenant(store, tenant_id))
    except TenantStatusConflict as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.delete("/{tenant_id}", status_code=204)
def delete_tenant(
    tenant_id: str,
    store: TenantStore = Depends(get_tenant_store),
    orchestrator: ProvisioningOrchestrator = Depends(get_orchestrator),
    principal: Principal = Depends(require_roles(SUPER_ADMIN)),
):
    _get_or_404(store, tenant_id)
    try:
        service.teardown_tenant(store, orchestrator, tenant_id)
    except service.TeardownIncomplete as exc:
        raise HTTPException(status_code=504, detail=str(exc)) from exc
    except ClusterError as exc:
        logger.error("Error deleting tenant %s: %s", tenant_id, exc)
        raise HTTPException(status_code=502, detail="Failed to deprovision tenant namespace") from exc
    return Response(status_code=204)


@router.get("/{tenant_id}/metrics", response_model=TenantMetricsResponse)
def get_tenant_metrics(
    tenant_id: str,
    store: TenantStore = Depends(get_tenant_store),
    cluster: KubernetesClusterClient = Depends(get_cluster_client),
    principal: Principal = Depends(get_current_principal),
):
    ensure_tenant_access(principal, tenant_id)
    _get_or_404(store, tenant_id)
    return service.tenant_metrics(store, cluster, tenant_id)
