from datetime import datetime

from pydantic import BaseModel

from tenantops.tenants.schemas import QuotaOut


class CostsOut(BaseModel):
    cpu: float
    memory: float
    storage: float
    total: float


class PeriodOut(BaseModel):
    start: datetime
    end: datetime


class UsageOut(BaseModel):
    namespace: str
    cpu_cores: float
    memory_gib: float
    storage_gib: float
    pods: int
    pvcs: int


class CostReportResponse(BaseModel):
    tenant_id: str
    tenant_name: str
    namespace: str
    tier: str
    period: PeriodOut
    usage: UsageOut
    costs: CostsOut
    quotas: QuotaOut


class FleetEntryOut(BaseModel):
    tenant_id: str
    tenant_name: str
    namespace: str
    tier: str
    costs: CostsOut
    error: str | None = None


class FleetSummaryResponse(BaseModel):
    summary: list[FleetEntryOut]
    total_cost: float
    total_tenants: int
    failed_tenants: int
    generated_at: datetime
