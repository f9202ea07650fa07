from tenantops.tenants.models import Tenant  # noqa: F401
