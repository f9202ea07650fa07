import logging

from fastapi import Depends, FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError

from tenantops.billing.router import router as costs_router
from tenantops.core.config import settings
from tenantops.db.init_db import init_db
from tenantops.db.session import engine
from tenantops.system.deps import get_tenant_store
from tenantops.system.metrics import render_latest, track_requests
from tenantops.tenants.router import router as tenants_router
from tenantops.tenants.service import refresh_active_tenants
from tenantops.tenants.store import TenantStore

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Tenant Environment Provisioning",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
app.middleware("http")(track_requests)


@app.on_event("startup")
def on_startup() -> None:
    db_url = make_url(settings.DATABASE_URL)
    logger.info(
        "Config sanity: env=%s db_host=%s call_timeout_s=%s pricing=(%s/core-h, %s/GiB-h, %s/GiB-mo)",
        settings.ENV,
        db_url.host or "local",
        settings.CLUSTER_CALL_TIMEOUT_SECONDS,
        settings.COST_CPU_PER_CORE_HOUR,
        settings.COST_MEMORY_PER_GIB_HOUR,
        settings.COST_STORAGE_PER_GIB_MONTH,
    )
    init_db()


# --- Routers ---
app.include_router(tenants_router, prefix="/api/v1/tenants", tags=["tenants"])
app.include_router(costs_router, prefix="/api/v1/costs", tags=["costs"])


# --- System ---
@app.get("/health", tags=["system"])
def health():
    return {"status": "ok"}


@app.get("/ready", tags=["system"])
def readiness():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        raise HTTPException(status_code=503, detail="Database not ready")
    return {"status": "ready"}


@app.get("/metrics", tags=["system"], include_in_schema=False)
def metrics(store: TenantStore = Depends(get_tenant_store)):
    try:
        refresh_active_tenants(store)
    except SQLAlchemyError:
        logger.warning("Could not refresh active tenant count; serving last value")
    body, content_type = render_latest()
    return Response(content=body, media_type=content_type)
