from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from propdesk.config import settings
from propdesk.database import init_db, close_db, get_db
from propdesk.exceptions import PropDeskError
from propdesk.logging_config import setup_logging
from propdesk.middleware.correlation import CorrelationIdMiddleware
from propdesk.services.momo_client import close_momo_client

# Import models so they are registered with Base.metadata
import propdesk.models  # noqa: F401

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        "starting_propdesk",
        env=settings.ENVIRONMENT,
        momo_configured=settings.momo_configured,
    )
    await init_db()
    yield
    await close_momo_client()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers: every error leaves as
# {"error": {"code": "...", "message": "..."}}
# ---------------------------------------------------------------------------

@app.exception_handler(PropDeskError)
async def propdesk_exception_handler(request: Request, exc: PropDeskError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content={"error": {"code": exc.code, "message": exc.message}},
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("database_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "DATABASE_ERROR", "message": "Database operation failed"}},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, str):
        detail = {"error": {"code": "HTTP_ERROR", "message": detail}}
    elif isinstance(detail, dict) and "error" not in detail:
        detail = {"error": detail}
    return JSONResponse(status_code=exc.status_code, content=detail)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": [
                    {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                    for e in exc.errors()
                ],
            }
        },
    )


app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
)


@app.get("/health", tags=["System"])
async def health(response: Response, db: AsyncSession = Depends(get_db)):
    health_status = {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "checks": {"momo": "configured" if settings.momo_configured else "missing_credentials"},
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["db"] = "ok"
    except Exception as e:
        logger.error("health_check_db_failed", error=str(e))
        health_status["checks"]["db"] = "error"
        health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return health_status


# --- Routers ---
from propdesk.routes.properties import router as properties_router  # noqa: E402
from propdesk.routes.tenants import router as tenants_router  # noqa: E402
from propdesk.routes.payments import router as payments_router  # noqa: E402
from propdesk.routes.momo import router as momo_router  # noqa: E402
from propdesk.routes.dashboard import router as dashboard_router  # noqa: E402
from propdesk.routes.webhooks import router as webhooks_router  # noqa: E402
from propdesk.jobs.scheduled import router as jobs_router  # noqa: E402

app.include_router(properties_router, prefix="/api/v1/properties", tags=["Properties"])
app.include_router(tenants_router, prefix="/api/v1/tenants", tags=["Tenants"])
app.include_router(payments_router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(momo_router, prefix="/api/v1/momo", tags=["MTN MoMo"])
app.include_router(dashboard_router, prefix="/api/v1/dashboard", tags=["Dashboard"])
app.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(jobs_router, prefix="/internal/jobs", tags=["Internal Jobs"])
