from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, EmailStr, Field

Tier = Literal["basic", "pro", "enterprise"]


class QuotaIn(BaseModel):
    cpu_cores: float = Field(gt=0, le=1024)
    memory_bytes: int = Field(ge=1)
    storage_bytes: int = Field(ge=1)
    max_participants: int = Field(ge=1)


class QuotaOut(BaseModel):
    cpu_cores: float
    memory_bytes: int
    storage_bytes: int
    max_participants: int


class TenantCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    email: EmailStr
    tier: Tier = "basic"
    quotas: QuotaIn | None = None


class TenantUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    email: EmailStr | None = None
    tier: Tier | None = None
    quotas: QuotaIn | None = None
    settings: dict[str, Any] | None = None


class TenantOut(BaseModel):
    id: str
    name: str
    namespace: str
    email: str
    status: str
    tier: str
    quotas: QuotaOut
    settings: dict[str, Any]
    provisioning_error: str | None = None
    created_at: datetime
    updated_at: datetime


class TenantListResponse(BaseModel):
    tenants: list[TenantOut]
    total: int


class ResourceOutcomeOut(BaseModel):
    kind: str
    name: str
    state: str


class StepOutcomeOut(BaseModel):
    step: str
    resources: list[ResourceOutcomeOut]


class ProvisionResponse(BaseModel):
    tenant: TenantOut
    steps: list[StepOutcomeOut]


class NamespaceMetricsOut(BaseModel):
    pods: dict[str, int]
    services: int
    pvcs: int


class TenantMetricsResponse(BaseModel):
    tenant_id: str
    namespace: str
    status: str
    quota: QuotaOut
    kubernetes: NamespaceMetricsOut | None = None
