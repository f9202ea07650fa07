import logging
import secrets
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tenantops.tenants.models import TENANT_STATUSES, Tenant
from tenantops.tenants.quotas import QuotaAllocation

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "name",
    "email",
    "tier",
    "cpu_cores",
    "memory_bytes",
    "storage_bytes",
    "max_participants",
    "settings",
}


class TenantNotFound(LookupError):
    pass


class NamespaceTaken(Exception):
    def __init__(self, namespace: str):
        super().__init__(f"namespace already assigned: {namespace}")
        self.namespace = namespace


class TenantStore:
    """Durable tenant records. The unique index on namespace is the collision guard."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        name: str,
        namespace: str,
        email: str,
        tier: str,
        quota: QuotaAllocation,
        created_by: str | None = None,
        settings: dict | None = None,
    ) -> Tenant:
        now = datetime.utcnow()
        tenant = Tenant(
            id=f"t_{secrets.token_hex(12)}",
            name=name,
            namespace=namespace,
            email=email,
            status="pending",
            tier=tier,
            cpu_cores=quota.cpu_cores,
            memory_bytes=quota.memory_bytes,
            storage_bytes=quota.storage_bytes,
            max_participants=quota.max_participants,
            settings=dict(settings or {}),
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self.db.add(tenant)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if self.find_by_namespace(namespace) is not None:
                raise NamespaceTaken(namespace) from exc
            raise
        self.db.refresh(tenant)
        return tenant

    def find_by_id(self, tenant_id: str) -> Tenant | None:
        return self.db.get(Tenant, tenant_id)

    def get(self, tenant_id: str) -> Tenant:
        tenant = self.find_by_id(tenant_id)
        if tenant is None:
            raise TenantNotFound(tenant_id)
        return tenant

    def find_by_namespace(self, namespace: str) -> Tenant | None:
        return self.db.execute(
            select(Tenant).where(Tenant.namespace == namespace)
        ).scalar_one_or_none()

    def find_all(self, *, status: str | None = None, tier: str | None = None) -> list[Tenant]:
        stmt = select(Tenant)
        if status:
            stmt = stmt.where(Tenant.status == status)
        if tier:
            stmt = stmt.where(Tenant.tier == tier)
        return list(self.db.execute(stmt.order_by(Tenant.created_at)).scalars().all())

    def count(self, *, status: str | None = None) -> int:
        stmt = select(func.count()).select_from(Tenant)
        if status:
            stmt = stmt.where(Tenant.status == status)
        return self.db.execute(stmt).scalar_one()

    def update_status(self, tenant_id: str, status: str, *, expected: str | None = None) -> bool:
        if status not in TENANT_STATUSES:
            raise ValueError(f"unknown status: {status}")

        stmt = update(Tenant).where(Tenant.id == tenant_id)
        if expected is not None:
            stmt = stmt.where(Tenant.status == expected)
        values = {"status": status, "updated_at": datetime.utcnow()}
        if status == "active":
            values["provisioning_error"] = None

        result = self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        self.db.commit()
        changed = result.rowcount == 1
        if not changed:
            logger.info("Conditional status update skipped tenant=%s expected=%s", tenant_id, expected)
        return changed

    def update(self, tenant_id: str, **fields) -> Tenant:
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"fields are not editable: {sorted(unknown)}")

        tenant = self.get(tenant_id)
        for key, value in fields.items():
            setattr(tenant, key, value)
        tenant.updated_at = datetime.utcnow()
        self.db.add(tenant)
        self.db.commit()
        self.db.refresh(tenant)
        return tenant

    def record_provisioning_error(self, tenant_id: str, message: str | None) -> None:
        self.db.execute(
            update(Tenant)
            .where(Tenant.id == tenant_id)
            .values(provisioning_error=message, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def delete(self, tenant_id: str) -> None:
        self.db.execute(delete(Tenant).where(Tenant.id == tenant_id))
        self.db.commit()

