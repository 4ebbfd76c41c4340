"""
PMC Licensing Review — FastAPI Application Entry Point

Aggregates all routers, configures middleware and error handlers,
and initializes logging and the database on startup.
"""
import logging
import time
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from licensing.config import get_settings
from licensing.database import SessionLocal, init_db
from licensing.exceptions import LicensingError
from licensing.logging_config import setup_logging
from licensing.routes import (
    auth_router, applications_router, workflow_router,
    download_router, admin_router, payment_router,
)

settings = get_settings()
logger = logging.getLogger("licensing")

# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "API for the multi-stage licence review of architects, engineers and supervisors. "
        "Covers OTP-signed officer approvals (Assistant, Executive and City Engineer, Clerk, "
        "Stage-2 signatures), certificate issuance and OTP-gated applicant downloads."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


@app.on_event("startup")
def on_startup():
    """Initialize logging and database tables, and log boot info."""
    setup_logging()
    init_db()

    logger.info(
        "%s v%s started at %s | env=%s | database=%s | debug=%s",
        settings.APP_NAME, settings.APP_VERSION, datetime.now().isoformat(),
        settings.ENVIRONMENT, settings.DATABASE_URL, settings.DEBUG,
    )
    if settings.EXPOSE_OTP_IN_RESPONSE and not settings.is_production:
        logger.warning("EXPOSE_OTP_IN_RESPONSE is on: OTP codes are returned in API responses")


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with timing."""
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)

    if request.url.path.startswith("/api"):
        logger.info("%s %s -> %s (%sms)", request.method, request.url.path, response.status_code, duration)

    return response


# ─── Error Handlers ──────────────────────────────────────────────────
@app.exception_handler(LicensingError)
def handle_licensing_error(request: Request, exc: LicensingError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
def handle_database_error(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "An internal error occurred. Please try again.", "code": "INTERNAL_ERROR"},
    )


# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(auth_router)
app.include_router(applications_router)
app.include_router(workflow_router)
app.include_router(download_router)
app.include_router(admin_router)
app.include_router(payment_router)


@app.get("/health", tags=["Health"])
def deep_health():
    """Detailed health check including database status."""
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        logger.exception("Health check database probe failed")
    finally:
        db.close()

    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
        "version": settings.APP_VERSION,
    }
