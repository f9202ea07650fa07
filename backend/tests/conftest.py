import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import tenantops.db.models  # noqa: F401
from tenantops.cluster.errors import ResourceAlreadyExistsError, ResourceConflictError, ResourceNotFoundError
from tenantops.core.config import Settings
from tenantops.db.base import Base
from tenantops.provisioning.orchestrator import ProvisioningOrchestrator
from tenantops.tenants.quotas import QuotaAllocation
from tenantops.tenants.store import TenantStore

GIB = 1024 ** 3


class FakeCluster:
    """In-memory control plane with per-method failure injection."""

    def __init__(self):
        self.resources: dict[tuple[str, str, str], dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.pods: dict[str, list[dict]] = {}
        self.claims: dict[str, list[dict]] = {}
        self.services: dict[str, list[dict]] = {}
        self.terminating: set[str] = set()
        self.hooks: dict[str, callable] = {}
        self._failures: list[dict] = []

    def fail_on(self, method: str, exc: Exception, *, namespace: str | None = None, times: int | None = None):
        self._failures.append({"method": method, "exc": exc, "namespace": namespace, "times": times})

    def clear_failures(self):
        self._failures.clear()

    def _check(self, method: str, namespace: str):
        self.calls.append((method, namespace))
        hook = self.hooks.get(method)
        if hook:
            hook(namespace)
        for rule in self._failures:
            if rule["method"] != method:
                continue
            if rule["namespace"] is not None and rule["namespace"] != namespace:
                continue
            if rule["times"] is not None:
                if rule["times"] <= 0:
                    continue
                rule["times"] -= 1
            raise rule["exc"]

    def _create(self, method: str, kind: str, namespace: str, spec: dict):
        self._check(method, namespace)
        if kind != "Namespace" and ("Namespace", namespace, namespace) not in self.resources:
            raise ResourceNotFoundError(f"namespace {namespace} not found", status=404)
        key = (kind, namespace, spec["metadata"]["name"])
        if key in self.resources:
            raise ResourceAlreadyExistsError(f"{kind} {key[2]} already exists", status=409)
        self.resources[key] = spec

    def create_namespace(self, spec):
        name = spec["metadata"]["name"]
        self._create("create_namespace", "Namespace", name, spec)

    def create_resource_quota(self, namespace, spec):
        self._create("create_resource_quota", "ResourceQuota", namespace, spec)

    def create_network_policy(self, namespace, spec):
        self._create("create_network_policy", "NetworkPolicy", namespace, spec)

    def create_role(self, namespace, spec):
        self._create("create_role", "Role", namespace, spec)

    def create_persistent_volume_claim(self, namespace, spec):
        self._create("create_persistent_volume_claim", "PersistentVolumeClaim", namespace, spec)

    def create_deployment(self, namespace, spec):
        self._create("create_deployment", "Deployment", namespace, spec)

    def create_service(self, namespace, spec):
        self._create("create_service", "Service", namespace, spec)

    def delete_namespace(self, namespace):
        self._check("delete_namespace", namespace)
        if namespace in self.terminating:
            raise ResourceConflictError(f"namespace {namespace} is terminating", status=409)
        if ("Namespace", namespace, namespace) not in self.resources:
            raise ResourceNotFoundError(f"namespace {namespace} not found", status=404)
        for key in [k for k in self.resources if k[1] == namespace]:
            del self.resources[key]

    def namespace_exists(self, namespace):
        self._check("namespace_exists", namespace)
        return namespace in self.terminating or ("Namespace", namespace, namespace) in self.resources

    def list_pods(self, namespace):
        self._check("list_pods", namespace)
        return list(self.pods.get(namespace, []))

    def list_persistent_volume_claims(self, namespace):
        self._check("list_persistent_volume_claims", namespace)
        return list(self.claims.get(namespace, []))

    def list_services(self, namespace):
        self._check("list_services", namespace)
        return list(self.services.get(namespace, []))

    def resources_in(self, namespace: str) -> list[tuple[str, str]]:
        return sorted((k[0], k[2]) for k in self.resources if k[1] == namespace)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def store(db_session):
    return TenantStore(db_session)


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def app_settings():
    return Settings(
        _env_file=None,
        NAMESPACE_DELETE_POLL_SECONDS=0.01,
        NAMESPACE_DELETE_TIMEOUT_SECONDS=0.05,
    )


@pytest.fixture
def orchestrator(cluster, store, app_settings):
    return ProvisioningOrchestrator(cluster, store, app_settings)


@pytest.fixture
def basic_quota():
    return QuotaAllocation(cpu_cores=2.0, memory_bytes=4 * GIB, storage_bytes=10 * GIB, max_participants=100)


@pytest.fixture
def make_tenant(store, basic_quota):
    counter = {"n": 0}

    def _make(name="Acme Youth Corp", status="pending", tier="basic", namespace=None):
        counter["n"] += 1
        tenant = store.create(
            name=name,
            namespace=namespace or f"tenant-test-{counter['n']}",
            email=f"ops{counter['n']}@acme.test",
            tier=tier,
            quota=basic_quota,
        )
        if status != "pending":
            store.update_status(tenant.id, status)
        return store.get(tenant.id)

    return _make
