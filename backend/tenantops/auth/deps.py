import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tenantops.auth.security import JWTError, decode_token

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)

SUPER_ADMIN = "super-admin"
TENANT_ADMIN = "tenant-admin"


@dataclass
class Principal:
    user_id: str
    role: str
    tenant_id: str | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN


def get_current_principal(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> Principal:
    if not creds:
        raise HTTPException(status_code=401, detail="Missing token")

    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    token_type = payload.get("typ")
    if token_type and token_type != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or not role:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    return Principal(user_id=user_id, role=role, tenant_id=payload.get("tenant_id"))


def require_roles(*allowed_roles: str):
    def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return checker


def ensure_tenant_access(principal: Principal, tenant_id: str) -> None:
    if principal.is_super_admin:
        return
    if tenant_id != principal.tenant_id:
        logger.warning(
            "Unauthorized tenant access attempt: user %s tried to access tenant %s",
            principal.user_id,
            tenant_id,
        )
        raise HTTPException(status_code=403, detail="Access to this tenant is not allowed")
