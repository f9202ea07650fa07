from dataclasses import asdict, dataclass

from tenantops.core.config import GIB, Settings
from tenantops.provisioning.errors import TenantValidationError
from tenantops.tenants.models import TENANT_TIERS, Tenant


@dataclass(frozen=True)
class QuotaAllocation:
    cpu_cores: float
    memory_bytes: int
    storage_bytes: int
    max_participants: int

    def validate(self) -> "QuotaAllocation":
        cpu = self.cpu_cores
        if isinstance(cpu, bool) or not isinstance(cpu, (int, float)) or cpu <= 0:
            raise TenantValidationError("quota cpu_cores must be positive")
        if round(cpu * 1000) < 1:
            raise TenantValidationError("quota cpu_cores must be at least one millicore")
        for field_name in ("memory_bytes", "storage_bytes", "max_participants"):
            value = getattr(self, field_name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise TenantValidationError(f"quota {field_name} must be a positive integer")
        return self

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> "QuotaAllocation":
        return cls(
            cpu_cores=tenant.cpu_cores,
            memory_bytes=tenant.memory_bytes,
            storage_bytes=tenant.storage_bytes,
            max_participants=tenant.max_participants,
        )

    def as_dict(self) -> dict:
        return asdict(self)


def cpu_quantity(cores: float) -> str:
    """Render cores the way the cluster expects: whole cores plain, fractions in millicores."""
    millis = round(cores * 1000)
    if millis % 1000 == 0:
        return str(millis // 1000)
    return f"{millis}m"


def bytes_quantity(value: int) -> str:
    if value % GIB == 0:
        return f"{value // GIB}Gi"
    if value % (1024 ** 2) == 0:
        return f"{value // (1024 ** 2)}Mi"
    return str(value)


def default_quota_for_tier(tier: str, settings: Settings) -> QuotaAllocation:
    if tier not in TENANT_TIERS:
        raise TenantValidationError(f"unknown tier: {tier}")
    raw = settings.TIER_DEFAULT_QUOTAS.get(tier)
    if not raw:
        raise TenantValidationError(f"no default quota configured for tier {tier}")
    try:
        quota = QuotaAllocation(
            cpu_cores=float(raw["cpu_cores"]),
            memory_bytes=int(raw["memory_bytes"]),
            storage_bytes=int(raw["storage_bytes"]),
            max_participants=int(raw["max_participants"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise TenantValidationError(f"malformed default quota for tier {tier}") from exc
    return quota.validate()
