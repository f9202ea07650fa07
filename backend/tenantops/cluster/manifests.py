"""
Manifests for the fixed per-tenant bundle.

Every builder is pure: it takes the tenant record (plus settings where an
operator-tunable value is involved) and returns a plain dict that the
cluster API accepts as a request body. Roles are namespaced objects, so
whatever they grant can never reach outside the tenant's namespace.
"""

from tenantops.billing.quantities import parse_cpu, parse_gib
from tenantops.core.config import GIB, Settings
from tenantops.provisioning.errors import TenantValidationError
from tenantops.tenants.models import Tenant
from tenantops.tenants.quotas import QuotaAllocation, bytes_quantity, cpu_quantity

QUOTA_NAME = "tenant-quota"
DENY_ALL_POLICY = "deny-all-ingress"
ALLOW_INTERNAL_POLICY = "allow-internal"
ALLOW_MONITORING_POLICY = "allow-monitoring"
ADMIN_ROLE = "tenant-admin"
READONLY_ROLE = "tenant-user"
DB_CLAIM = "postgres-pvc"
DB_NAME = "postgres"
DB_PORT = 5432
DB_CPU_REQUEST = "100m"
DB_MEMORY_REQUEST = "256Mi"

READONLY_VERBS = ["get", "list", "watch"]
READONLY_RESOURCES = ["pods", "services", "deployments"]


def namespace_manifest(tenant: Tenant, settings: Settings) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {
            "name": tenant.namespace,
            "labels": {
                "app.kubernetes.io/managed-by": settings.MANAGED_BY_LABEL,
                "tenant-id": tenant.id,
                "tenant-tier": tenant.tier,
                "cost-center": tenant.id,
            },
            "annotations": {
                "tenant-name": tenant.name,
                "tenant-email": tenant.email,
            },
        },
    }


def resource_quota_manifest(tenant: Tenant) -> dict:
    quota = QuotaAllocation.from_tenant(tenant)
    return {
        "apiVersion": "v1",
        "kind": "ResourceQuota",
        "metadata": {"name": QUOTA_NAME, "namespace": tenant.namespace},
        "spec": {
            "hard": {
                "requests.cpu": cpu_quantity(quota.cpu_cores),
                "requests.memory": bytes_quantity(quota.memory_bytes),
                "requests.storage": bytes_quantity(quota.storage_bytes),
                "persistentvolumeclaims": "5",
                "pods": "20",
                "services": "10",
            }
        },
    }


def network_policy_manifests(tenant: Tenant, settings: Settings) -> list[dict]:
    def _policy(name: str, ingress: list | None) -> dict:
        spec = {"podSelector": {}, "policyTypes": ["Ingress"]}
        if ingress is not None:
            spec["ingress"] = ingress
        return {
            "apiVersion": "networking.k8s.io/v1",
            "kind": "NetworkPolicy",
            "metadata": {"name": name, "namespace": tenant.namespace},
            "spec": spec,
        }

    return [
        _policy(DENY_ALL_POLICY, None),
        _policy(ALLOW_INTERNAL_POLICY, [{"from": [{"podSelector": {}}]}]),
        _policy(
            ALLOW_MONITORING_POLICY,
            [
                {
                    "from": [
                        {
                            "namespaceSelector": {
                                "matchLabels": {"name": settings.MONITORING_NAMESPACE_LABEL}
                            }
                        }
                    ]
                }
            ],
        ),
    ]


def role_manifests(tenant: Tenant) -> list[dict]:
    def _role(name: str, rules: list[dict]) -> dict:
        return {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "Role",
            "metadata": {"name": name, "namespace": tenant.namespace},
            "rules": rules,
        }

    return [
        _role(ADMIN_ROLE, [{"apiGroups": ["", "apps", "batch"], "resources": ["*"], "verbs": ["*"]}]),
        _role(
            READONLY_ROLE,
            [{"apiGroups": ["", "apps"], "resources": list(READONLY_RESOURCES), "verbs": list(READONLY_VERBS)}],
        ),
    ]


def storage_claim_manifest(tenant: Tenant, settings: Settings) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {
            "name": DB_CLAIM,
            "namespace": tenant.namespace,
            "labels": {"app": DB_NAME, "tenant-id": tenant.id},
        },
        "spec": {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": settings.TENANT_DB_STORAGE}},
        },
    }


def deployment_manifest(tenant: Tenant, settings: Settings) -> dict:
    container = {
        "name": DB_NAME,
        "image": settings.TENANT_DB_IMAGE,
        "env": [
            {"name": "POSTGRES_DB", "value": settings.TENANT_DB_NAME},
            {"name": "POSTGRES_USER", "value": settings.TENANT_DB_USER},
            {
                "name": "POSTGRES_PASSWORD",
                "valueFrom": {"secretKeyRef": {"name": settings.TENANT_DB_SECRET_NAME, "key": "password"}},
            },
        ],
        "ports": [{"containerPort": DB_PORT, "name": DB_NAME}],
        "volumeMounts": [
            {
                "name": "postgres-storage",
                "mountPath": "/var/lib/postgresql/data",
                "subPath": DB_NAME,
            }
        ],
        "resources": {
            "requests": {"cpu": DB_CPU_REQUEST, "memory": DB_MEMORY_REQUEST},
            "limits": {"cpu": "500m", "memory": "512Mi"},
        },
    }
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": DB_NAME,
            "namespace": tenant.namespace,
            "labels": {"app": DB_NAME, "tenant-id": tenant.id},
        },
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {"app": DB_NAME}},
            "template": {
                "metadata": {"labels": {"app": DB_NAME}},
                "spec": {
                    "securityContext": {"runAsNonRoot": True, "runAsUser": 999, "fsGroup": 999},
                    "containers": [container],
                    "volumes": [
                        {
                            "name": "postgres-storage",
                            "persistentVolumeClaim": {"claimName": DB_CLAIM},
                        }
                    ],
                },
            },
        },
    }


def service_manifest(tenant: Tenant) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": DB_NAME, "namespace": tenant.namespace},
        "spec": {
            "selector": {"app": DB_NAME},
            "ports": [{"port": DB_PORT, "targetPort": DB_PORT}],
        },
    }


def ensure_quota_fits_bundle(quota: QuotaAllocation, settings: Settings) -> QuotaAllocation:
    """Reject a quota too small for the bundle's own database workload and claim."""
    cpu_millis = round(quota.cpu_cores * 1000)
    needed_millis = round(parse_cpu(DB_CPU_REQUEST) * 1000)
    if cpu_millis < needed_millis:
        raise TenantValidationError(
            f"quota cpu_cores {quota.cpu_cores} is below the database request of {DB_CPU_REQUEST}"
        )
    if quota.memory_bytes < parse_gib(DB_MEMORY_REQUEST) * GIB:
        raise TenantValidationError(
            f"quota memory_bytes {quota.memory_bytes} is below the database request of {DB_MEMORY_REQUEST}"
        )
    if quota.storage_bytes < parse_gib(settings.TENANT_DB_STORAGE) * GIB:
        raise TenantValidationError(
            f"quota storage_bytes {quota.storage_bytes} is below the database claim of {settings.TENANT_DB_STORAGE}"
        )
    return quota
