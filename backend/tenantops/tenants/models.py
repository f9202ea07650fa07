from datetime import datetime

from sqlalchemy import JSON, BigInteger, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tenantops.db.base import Base

TENANT_STATUSES = ("pending", "active", "suspended")
TENANT_TIERS = ("basic", "pro", "enterprise")


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # e.g. t_3f9a...
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    namespace: Mapped[str] = mapped_column(String(63), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", index=True)
    tier: Mapped[str] = mapped_column(String(16), nullable=False, default="basic")

    cpu_cores: Mapped[float] = mapped_column(Float, nullable=False)
    memory_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    storage_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)

    settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    provisioning_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
