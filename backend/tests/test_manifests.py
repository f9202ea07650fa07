from types import SimpleNamespace

import pytest

from tenantops.cluster import manifests
from tenantops.provisioning.errors import TenantValidationError
from tenantops.tenants.quotas import QuotaAllocation, bytes_quantity, cpu_quantity

GIB = 1024 ** 3


def _tenant(**overrides):
    values = dict(
        id="t_abc",
        name="Acme Youth",
        namespace="tenant-acme-youth-1",
        email="ops@acme.test",
        tier="pro",
        cpu_cores=0.5,
        memory_bytes=8 * GIB,
        storage_bytes=50 * GIB,
        max_participants=500,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_namespace_is_labelled_for_ownership_and_cost(app_settings):
    spec = manifests.namespace_manifest(_tenant(), app_settings)

    labels = spec["metadata"]["labels"]
    assert spec["metadata"]["name"] == "tenant-acme-youth-1"
    assert labels["app.kubernetes.io/managed-by"] == app_settings.MANAGED_BY_LABEL
    assert labels["tenant-id"] == "t_abc"
    assert labels["cost-center"] == "t_abc"
    assert labels["tenant-tier"] == "pro"


def test_quota_mirrors_tenant_allocation():
    hard = manifests.resource_quota_manifest(_tenant())["spec"]["hard"]
    assert hard["requests.cpu"] == "500m"
    assert hard["requests.memory"] == "8Gi"
    assert hard["requests.storage"] == "50Gi"


def test_network_policies_deny_by_default(app_settings):
    deny, internal, monitoring = manifests.network_policy_manifests(_tenant(), app_settings)

    assert deny["metadata"]["name"] == manifests.DENY_ALL_POLICY
    assert "ingress" not in deny["spec"]
    assert internal["spec"]["ingress"] == [{"from": [{"podSelector": {}}]}]
    selector = monitoring["spec"]["ingress"][0]["from"][0]["namespaceSelector"]
    assert selector == {"matchLabels": {"name": app_settings.MONITORING_NAMESPACE_LABEL}}


def test_readonly_role_cannot_write():
    admin, readonly = manifests.role_manifests(_tenant())
    assert admin["rules"][0]["verbs"] == ["*"]
    assert readonly["rules"][0]["verbs"] == ["get", "list", "watch"]


def test_deployment_mounts_the_claim(app_settings):
    spec = manifests.deployment_manifest(_tenant(), app_settings)
    volumes = spec["spec"]["template"]["spec"]["volumes"]
    assert volumes[0]["persistentVolumeClaim"]["claimName"] == manifests.DB_CLAIM


def test_quantity_rendering():
    assert cpu_quantity(2.0) == "2"
    assert cpu_quantity(0.25) == "250m"
    assert bytes_quantity(4 * GIB) == "4Gi"
    assert bytes_quantity(256 * 1024 ** 2) == "256Mi"
    assert bytes_quantity(1000) == "1000"


def test_deployment_reads_password_from_configured_secret(app_settings):
    app_settings.TENANT_DB_SECRET_NAME = "acme-db-credentials"
    container = manifests.deployment_manifest(_tenant(), app_settings)["spec"]["template"]["spec"]["containers"][0]
    password = next(e for e in container["env"] if e["name"] == "POSTGRES_PASSWORD")
    assert password["valueFrom"]["secretKeyRef"]["name"] == "acme-db-credentials"


def test_quota_that_fits_the_bundle(app_settings):
    quota = QuotaAllocation(cpu_cores=0.1, memory_bytes=256 * 1024 ** 2, storage_bytes=5 * GIB, max_participants=1)
    assert manifests.ensure_quota_fits_bundle(quota, app_settings) is quota


@pytest.mark.parametrize(
    "overrides,field_name",
    [
        ({"cpu_cores": 0.05}, "cpu_cores"),
        ({"memory_bytes": 128 * 1024 ** 2}, "memory_bytes"),
        ({"storage_bytes": 1 * GIB}, "storage_bytes"),
    ],
)
def test_quota_smaller_than_bundle_is_rejected(app_settings, overrides, field_name):
    values = dict(cpu_cores=2.0, memory_bytes=4 * GIB, storage_bytes=10 * GIB, max_participants=10)
    values.update(overrides)

    with pytest.raises(TenantValidationError) as exc_info:
        manifests.ensure_quota_fits_bundle(QuotaAllocation(**values), app_settings)

    assert field_name in str(exc_info.value)


def test_sub_millicore_cpu_is_rejected():
    quota = QuotaAllocation(cpu_cores=0.0001, memory_bytes=4 * GIB, storage_bytes=10 * GIB, max_participants=10)
    with pytest.raises(TenantValidationError):
        quota.validate()
