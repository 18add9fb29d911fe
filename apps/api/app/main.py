"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.core.config import settings
from app.core.structured_logging import build_log_context
from app.db.session import engine

logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # chat transcripts stay out of Sentry
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from app.core.rate_limit import limiter


# ============================================================================
# FastAPI App
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_SCHEMA:
        from app.db import models  # noqa: F401  (registers tables)
        from app.db.base import Base

        Base.metadata.create_all(bind=engine)
        logger.info("Database schema ensured")
    yield


app = FastAPI(
    title="BriefDesk API",
    description="Multi-tenant client briefing, AI intake chat and agency billing API",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "Stripe-Signature"],
    expose_headers=["Content-Disposition"],
)


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report the first invalid field as a 400 in the API's error shape."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid value")
        detail = f"{field}: {message}" if field else message
    else:
        detail = "Invalid request"
    return JSONResponse(status_code=400, content={"detail": detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error",
        extra=build_log_context(route=request.url.path, method=request.method),
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ============================================================================
# Routers
# ============================================================================

from app.routers import (
    auth,
    billing,
    catalog,
    client,
    files,
    jobs,
    master_admin,
    organization,
    products,
    providers,
    tasks,
)

# Auth router (always mounted)
app.include_router(auth.router, prefix="/auth", tags=["auth"])

# Briefing workflow
app.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
app.include_router(files.router, prefix="/files", tags=["files"])
app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])

# Agencies, client links and catalog
app.include_router(organization.router, prefix="/organization", tags=["organization"])
app.include_router(providers.router, prefix="/providers", tags=["providers"])
app.include_router(catalog.router, prefix="/catalog", tags=["catalog"])
app.include_router(products.router, prefix="/products", tags=["products"])

# Stripe checkout and webhook
app.include_router(billing.router, prefix="/billing", tags=["billing"])

# Dashboards
app.include_router(client.router, prefix="/client", tags=["client"])
app.include_router(master_admin.router, prefix="/master-admin", tags=["master-admin"])


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
