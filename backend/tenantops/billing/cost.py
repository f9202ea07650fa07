import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone

from tenantops.billing.usage import UsageSnapshot, take_snapshot
from tenantops.cluster.client import KubernetesClusterClient
from tenantops.core.config import Settings
from tenantops.tenants.models import Tenant
from tenantops.tenants.quotas import QuotaAllocation
from tenantops.tenants.store import TenantStore

logger = logging.getLogger(__name__)

# Hourly rates are billed over a fixed 30-day month regardless of the
# requested period; the period is reported alongside, not prorated.
HOURS_PER_BILLING_MONTH = 24 * 30
DEFAULT_PERIOD_DAYS = 30
FLEET_ERROR_MESSAGE = "Unable to fetch costs"


class InvalidBillingPeriod(ValueError):
    pass


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class Pricing:
    cpu_per_core_hour: float
    memory_per_gib_hour: float
    storage_per_gib_month: float

    @classmethod
    def from_settings(cls, settings: Settings) -> "Pricing":
        return cls(
            cpu_per_core_hour=settings.COST_CPU_PER_CORE_HOUR,
            memory_per_gib_hour=settings.COST_MEMORY_PER_GIB_HOUR,
            storage_per_gib_month=settings.COST_STORAGE_PER_GIB_MONTH,
        )


@dataclass(frozen=True)
class BillingPeriod:
    start: datetime
    end: datetime

    @classmethod
    def resolve(
        cls,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        now: datetime | None = None,
    ) -> "BillingPeriod":
        end = _naive_utc(end) or _naive_utc(now) or datetime.utcnow()
        start = _naive_utc(start) or end - timedelta(days=DEFAULT_PERIOD_DAYS)
        if start > end:
            raise InvalidBillingPeriod("period start must not be after its end")
        return cls(start=start, end=end)

    def as_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(frozen=True)
class CostEstimate:
    cpu: float
    memory: float
    storage: float
    total: float

    @classmethod
    def zero(cls) -> "CostEstimate":
        return cls(cpu=0.0, memory=0.0, storage=0.0, total=0.0)

    def as_dict(self) -> dict:
        return asdict(self)


def _unrounded_costs(snapshot: UsageSnapshot, pricing: Pricing) -> tuple[float, float, float]:
    cpu = snapshot.cpu_cores * pricing.cpu_per_core_hour * HOURS_PER_BILLING_MONTH
    memory = snapshot.memory_gib * pricing.memory_per_gib_hour * HOURS_PER_BILLING_MONTH
    storage = snapshot.storage_gib * pricing.storage_per_gib_month
    return cpu, memory, storage


def estimate_cost(snapshot: UsageSnapshot, period: BillingPeriod, pricing: Pricing) -> CostEstimate:
    cpu, memory, storage = _unrounded_costs(snapshot, pricing)
    total = cpu + memory + storage
    return CostEstimate(
        cpu=round(cpu, 2),
        memory=round(memory, 2),
        storage=round(storage, 2),
        total=round(total, 2),
    )


def build_cost_report(
    store: TenantStore,
    cluster: KubernetesClusterClient,
    pricing: Pricing,
    tenant_id: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    tenant = store.get(tenant_id)
    period = BillingPeriod.resolve(start, end)

    logger.info("Generating cost report tenant=%s namespace=%s", tenant.id, tenant.namespace)
    snapshot = take_snapshot(cluster, tenant.namespace)
    costs = estimate_cost(snapshot, period, pricing)

    return {
        "tenant_id": tenant.id,
        "tenant_name": tenant.name,
        "namespace": tenant.namespace,
        "tier": tenant.tier,
        "period": period.as_dict(),
        "usage": snapshot.as_dict(),
        "costs": costs.as_dict(),
        "quotas": QuotaAllocation.from_tenant(tenant).as_dict(),
    }


@dataclass
class FleetEntry:
    tenant_id: str
    tenant_name: str
    namespace: str
    tier: str
    costs: CostEstimate
    error: str | None = None
    unrounded_total: float = 0.0

    @property
    def errored(self) -> bool:
        return self.error is not None


@dataclass
class FleetSummary:
    entries: list[FleetEntry] = field(default_factory=list)
    total_cost: float = 0.0
    total_tenants: int = 0
    failed_tenants: int = 0
    generated_at: datetime = field(default_factory=datetime.utcnow)


def _namespace_cost(
    cluster: KubernetesClusterClient, namespace: str, period: BillingPeriod, pricing: Pricing
) -> tuple[CostEstimate, float]:
    snapshot = take_snapshot(cluster, namespace)
    return estimate_cost(snapshot, period, pricing), sum(_unrounded_costs(snapshot, pricing))


def summarize_fleet(
    tenants: list[Tenant],
    cluster: KubernetesClusterClient,
    pricing: Pricing,
    *,
    max_workers: int,
    period: BillingPeriod | None = None,
) -> FleetSummary:
    """
    Cost every active tenant in parallel. A tenant whose lookup fails is
    reported with zero cost and an error instead of failing the summary.
    """
    period = period or BillingPeriod.resolve()
    # Plain values only: ORM instances stay on the calling thread.
    active = [
        (t.id, t.name, t.namespace, t.tier)
        for t in tenants
        if t.status == "active"
    ]
    summary = FleetSummary(total_tenants=len(active))
    if not active:
        return summary

    with ThreadPoolExecutor(
        max_workers=min(len(active), max_workers),
        thread_name_prefix="fleet-cost",
    ) as pool:
        futures = [pool.submit(_namespace_cost, cluster, ns, period, pricing) for _, _, ns, _ in active]

        for (tenant_id, name, namespace, tier), future in zip(active, futures):
            try:
                costs, unrounded_total = future.result()
                error = None
            except Exception:
                logger.exception("Error getting costs for tenant %s", tenant_id)
                costs, unrounded_total = CostEstimate.zero(), 0.0
                error = FLEET_ERROR_MESSAGE
            summary.entries.append(
                FleetEntry(
                    tenant_id=tenant_id,
                    tenant_name=name,
                    namespace=namespace,
                    tier=tier,
                    costs=costs,
                    error=error,
                    unrounded_total=unrounded_total,
                )
            )

    summary.failed_tenants = sum(1 for e in summary.entries if e.errored)
    summary.total_cost = round(sum(e.unrounded_total for e in summary.entries), 2)
    return summary
