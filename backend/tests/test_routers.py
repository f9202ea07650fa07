from datetime import datetime

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from tenantops.auth.deps import SUPER_ADMIN, TENANT_ADMIN, Principal, get_current_principal, require_roles
from tenantops.auth.security import create_access_token
from tenantops.billing import router as costs
from tenantops.billing.cost import Pricing
from tenantops.billing.schemas import CostReportResponse, FleetSummaryResponse
from tenantops.cluster.errors import ClusterTransportError
from tenantops.tenants import router as tenants
from tenantops.tenants.schemas import ProvisionResponse, TenantCreate, TenantOut

ROOT = Principal(user_id="u_root", role=SUPER_ADMIN)
PRICING = Pricing(cpu_per_core_hour=0.05, memory_per_gib_hour=0.01, storage_per_gib_month=0.10)


def _admin_of(tenant_id):
    return Principal(user_id="u_admin", role=TENANT_ADMIN, tenant_id=tenant_id)


def _create(store, orchestrator, app_settings, name="Acme Youth"):
    return tenants.create_tenant(
        TenantCreate(name=name, email="ops@acme.org", tier="basic"),
        store=store,
        orchestrator=orchestrator,
        app_settings=app_settings,
        principal=ROOT,
    )


def test_create_tenant_provisions_and_reports_steps(store, orchestrator, app_settings):
    body = _create(store, orchestrator, app_settings)

    response = ProvisionResponse.model_validate(body)
    assert response.tenant.status == "active"
    assert response.tenant.namespace.startswith("tenant-acme-youth-")
    assert [s.step for s in response.steps][0] == "namespace"
    assert len(response.steps) == 7
    assert store.get(response.tenant.id).created_by == "u_root"


def test_create_tenant_failure_names_the_step(store, orchestrator, cluster, app_settings):
    cluster.fail_on("create_role", ClusterTransportError("apiserver unavailable", status=503))

    with pytest.raises(HTTPException) as exc_info:
        _create(store, orchestrator, app_settings)

    assert exc_info.value.status_code == 502
    detail = exc_info.value.detail
    assert detail["step"] == "roles"
    assert detail["completed_steps"] == ["namespace", "resource-quota", "network-policies"]
    assert store.get(detail["tenant_id"]).status == "pending"


def test_create_tenant_suspended_mid_run_is_409(store, orchestrator, cluster, app_settings):
    cluster.hooks["create_service"] = lambda ns: store.update_status(store.find_by_namespace(ns).id, "suspended")

    with pytest.raises(HTTPException) as exc_info:
        _create(store, orchestrator, app_settings)

    assert exc_info.value.status_code == 409
    assert store.find_all()[0].status == "suspended"


def test_tenant_admin_is_confined_to_own_tenant(store, make_tenant):
    own = make_tenant()
    other = make_tenant()

    body = tenants.get_tenant(own.id, store=store, principal=_admin_of(own.id))
    assert TenantOut.model_validate(body).id == own.id

    with pytest.raises(HTTPException) as exc_info:
        tenants.get_tenant(other.id, store=store, principal=_admin_of(own.id))
    assert exc_info.value.status_code == 403


def test_unknown_tenant_is_404(store):
    with pytest.raises(HTTPException) as exc_info:
        tenants.get_tenant("t_missing", store=store, principal=ROOT)
    assert exc_info.value.status_code == 404


def test_list_tenants_filters_by_status(store, make_tenant):
    make_tenant()
    active = make_tenant(status="active")

    body = tenants.list_tenants(status="active", tier=None, store=store, principal=ROOT)

    assert body["total"] == 1
    assert body["tenants"][0]["id"] == active.id


def test_provision_of_active_tenant_is_rejected(store, orchestrator, make_tenant):
    tenant = make_tenant(status="active")
    with pytest.raises(HTTPException) as exc_info:
        tenants.provision_tenant(tenant.id, store=store, orchestrator=orchestrator, principal=ROOT)
    assert exc_info.value.status_code == 422


def test_retry_provision_route(store, orchestrator, make_tenant):
    tenant = make_tenant()
    body = tenants.provision_tenant(tenant.id, store=store, orchestrator=orchestrator, principal=ROOT)
    assert body["tenant"]["status"] == "active"


def test_suspend_conflict_is_409(store, make_tenant):
    tenant = make_tenant(status="active")
    assert tenants.suspend_tenant(tenant.id, store=store, principal=ROOT)["status"] == "suspended"

    with pytest.raises(HTTPException) as exc_info:
        tenants.suspend_tenant(tenant.id, store=store, principal=ROOT)
    assert exc_info.value.status_code == 409


def test_delete_tenant(store, orchestrator, cluster, make_tenant):
    tenant = make_tenant()
    orchestrator.provision(tenant)
    tenant_id = tenant.id

    response = tenants.delete_tenant(tenant_id, store=store, orchestrator=orchestrator, principal=ROOT)

    assert response.status_code == 204
    assert store.find_by_id(tenant_id) is None


def test_delete_tenant_unconfirmed_removal_is_504(store, orchestrator, cluster, make_tenant):
    tenant = make_tenant()
    orchestrator.provision(tenant)
    cluster.terminating.add(tenant.namespace)

    with pytest.raises(HTTPException) as exc_info:
        tenants.delete_tenant(tenant.id, store=store, orchestrator=orchestrator, principal=ROOT)
    assert exc_info.value.status_code == 504


def test_cost_report_pins_tenant_admin_to_own_tenant(store, cluster, make_tenant):
    own = make_tenant(status="active")
    other = make_tenant(status="active")

    body = costs.cost_report(
        tenant_id=other.id,
        start_date=None,
        end_date=None,
        store=store,
        cluster=cluster,
        pricing=PRICING,
        principal=_admin_of(own.id),
    )

    assert CostReportResponse.model_validate(body).tenant_id == own.id


@pytest.mark.parametrize(
    "kwargs,status",
    [
        ({"tenant_id": None}, 400),
        ({"tenant_id": "t_missing"}, 404),
        ({"tenant_id": "SEED", "start_date": datetime(2024, 2, 1), "end_date": datetime(2024, 1, 1)}, 422),
    ],
)
def test_cost_report_errors(store, cluster, make_tenant, kwargs, status):
    tenant = make_tenant(status="active")
    params = {"start_date": None, "end_date": None, **kwargs}
    if params["tenant_id"] == "SEED":
        params["tenant_id"] = tenant.id

    with pytest.raises(HTTPException) as exc_info:
        costs.cost_report(**params, store=store, cluster=cluster, pricing=PRICING, principal=ROOT)
    assert exc_info.value.status_code == status


def test_cost_report_cluster_failure_is_502(store, cluster, make_tenant):
    tenant = make_tenant(status="active")
    cluster.fail_on("list_pods", ClusterTransportError("connection refused"))

    with pytest.raises(HTTPException) as exc_info:
        costs.cost_report(
            tenant_id=tenant.id,
            start_date=None,
            end_date=None,
            store=store,
            cluster=cluster,
            pricing=PRICING,
            principal=ROOT,
        )
    assert exc_info.value.status_code == 502


def test_cost_summary_reports_failures_inline(store, cluster, make_tenant, app_settings):
    ok = make_tenant(status="active")
    broken = make_tenant(status="active")
    cluster.fail_on("list_pods", ClusterTransportError("boom"), namespace=broken.namespace)

    body = costs.cost_summary(
        store=store, cluster=cluster, pricing=PRICING, app_settings=app_settings, principal=ROOT
    )

    summary = FleetSummaryResponse.model_validate(body)
    assert summary.total_tenants == 2
    assert summary.failed_tenants == 1
    errors = {e.tenant_id: e.error for e in summary.summary}
    assert errors[ok.id] is None
    assert errors[broken.id] == "Unable to fetch costs"


def test_bearer_token_resolves_principal():
    token = create_access_token({"sub": "u1", "role": TENANT_ADMIN, "tenant_id": "t_1"})

    principal = get_current_principal(HTTPAuthorizationCredentials(scheme="Bearer", credentials=token))

    assert principal == Principal(user_id="u1", role=TENANT_ADMIN, tenant_id="t_1")


def test_missing_or_bad_token_is_401():
    with pytest.raises(HTTPException) as exc_info:
        get_current_principal(None)
    assert exc_info.value.status_code == 401

    with pytest.raises(HTTPException) as exc_info:
        get_current_principal(HTTPAuthorizationCredentials(scheme="Bearer", credentials="not-a-jwt"))
    assert exc_info.value.status_code == 401


def test_role_guard():
    guard = require_roles(SUPER_ADMIN)
    assert guard(principal=ROOT) is ROOT
    with pytest.raises(HTTPException) as exc_info:
        guard(principal=_admin_of("t_1"))
    assert exc_info.value.status_code == 403
