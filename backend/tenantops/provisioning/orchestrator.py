import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from tenantops.cluster.client import KubernetesClusterClient
from tenantops.cluster.manifests import ensure_quota_fits_bundle
from tenantops.cluster.errors import (
    ClusterError,
    ResourceAlreadyExistsError,
    ResourceConflictError,
    ResourceNotFoundError,
)
from tenantops.core.config import Settings
from tenantops.identity.namespace import is_valid_namespace
from tenantops.provisioning.errors import (
    ProvisioningCancelled,
    ProvisioningError,
    TenantStatusConflict,
    TenantValidationError,
)
from tenantops.provisioning.plan import ProvisioningStep, build_plan
from tenantops.tenants.models import Tenant
from tenantops.tenants.quotas import QuotaAllocation
from tenantops.tenants.store import TenantStore

logger = logging.getLogger(__name__)


@dataclass
class ResourceOutcome:
    kind: str
    name: str
    state: str  # created | existing


@dataclass
class StepOutcome:
    step: str
    resources: list[ResourceOutcome] = field(default_factory=list)


@dataclass
class ProvisioningReport:
    tenant_id: str
    namespace: str
    steps: list[StepOutcome] = field(default_factory=list)
    status: str = "active"


class ProvisioningOrchestrator:
    """
    Drives one tenant through the plan, one step at a time.

    Creating something that already exists counts as success, so a run that
    failed halfway can simply be provisioned again. The pending -> active
    write is the last thing a successful run does.
    """

    def __init__(self, cluster: KubernetesClusterClient, store: TenantStore, settings: Settings):
        self.cluster = cluster
        self.store = store
        self.settings = settings

    def provision(self, tenant: Tenant, *, cancel_event: threading.Event | None = None) -> ProvisioningReport:
        self._validate(tenant)
        plan = build_plan(tenant, self.cluster, self.settings)
        report = ProvisioningReport(tenant_id=tenant.id, namespace=tenant.namespace, status="pending")

        logger.info("Provisioning tenant=%s namespace=%s", tenant.id, tenant.namespace)
        for step in plan:
            completed = [s.step for s in report.steps]
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Provisioning cancelled tenant=%s before step=%s", tenant.id, step.name)
                self.store.record_provisioning_error(tenant.id, f"cancelled before step '{step.name}'")
                raise ProvisioningCancelled(tenant.id, step.name, completed)

            try:
                report.steps.append(self._run_step(tenant, step))
            except ClusterError as exc:
                logger.error("Provisioning step failed tenant=%s step=%s cause=%s", tenant.id, step.name, exc)
                error = ProvisioningError(tenant.id, step.name, exc, completed)
                self.store.record_provisioning_error(tenant.id, str(error))
                raise error from exc

        self._activate(tenant)
        report.status = "active"
        logger.info("Tenant provisioned tenant=%s namespace=%s", tenant.id, tenant.namespace)
        return report

    def _validate(self, tenant: Tenant) -> None:
        if tenant.status != "pending":
            raise TenantValidationError(
                f"tenant {tenant.id} is {tenant.status}; only pending tenants can be provisioned"
            )
        if not is_valid_namespace(tenant.namespace):
            raise TenantValidationError(f"invalid namespace name: {tenant.namespace!r}")
        ensure_quota_fits_bundle(QuotaAllocation.from_tenant(tenant).validate(), self.settings)

    def _run_step(self, tenant: Tenant, step: ProvisioningStep) -> StepOutcome:
        outcome = StepOutcome(step=step.name)
        logger.info("Step start tenant=%s step=%s", tenant.id, step.name)
        for action in step.actions:
            try:
                action.create()
                state = "created"
            except ResourceAlreadyExistsError:
                logger.info("%s %s already exists in %s, reusing", action.kind, action.name, tenant.namespace)
                state = "existing"
            outcome.resources.append(ResourceOutcome(kind=action.kind, name=action.name, state=state))
        logger.info("Step done tenant=%s step=%s", tenant.id, step.name)
        return outcome

    def _activate(self, tenant: Tenant) -> None:
        if self.store.update_status(tenant.id, "active", expected="pending"):
            return

        current = self.store.find_by_id(tenant.id)
        actual = current.status if current is not None else None
        if actual == "active":
            logger.info("Tenant %s was activated by a concurrent run", tenant.id)
            return
        raise TenantStatusConflict(tenant.id, expected="pending", actual=actual)

    def deprovision(self, namespace: str) -> None:
        """Delete the namespace; the cluster cascades to everything inside it."""
        if not is_valid_namespace(namespace):
            raise TenantValidationError(f"invalid namespace name: {namespace!r}")

        logger.info("Deprovisioning namespace=%s", namespace)
        try:
            self.cluster.delete_namespace(namespace)
        except ResourceNotFoundError:
            logger.info("Namespace %s already absent", namespace)
            return
        except ResourceConflictError:
            logger.info("Namespace %s is already terminating", namespace)
            return
        logger.info("Namespace deletion requested namespace=%s", namespace)

    def wait_until_removed(
        self,
        namespace: str,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> bool:
        deadline = clock() + self.settings.NAMESPACE_DELETE_TIMEOUT_SECONDS
        while True:
            if not self.cluster.namespace_exists(namespace):
                return True
            if clock() >= deadline:
                logger.warning("Namespace %s still present after %.0fs", namespace,
                               self.settings.NAMESPACE_DELETE_TIMEOUT_SECONDS)
                return False
            sleep(self.settings.NAMESPACE_DELETE_POLL_SECONDS)
