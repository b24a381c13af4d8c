"""
Roof Finder API - Main Application

Wires the roof-lead router behind GZip + CORS and makes every failure,
including framework-level ones (422 request validation, 401 bearer auth,
unhandled exceptions), come back as a ServiceResult envelope.
"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import time
import traceback
from datetime import datetime, timezone

from roof_finder.api.routes import roof_leads_router
from roof_finder.core.config import settings, get_cors_origins
from roof_finder.core.exceptions import HTTP_STATUS_BY_CODE, RoofFinderError, ValidationError
from roof_finder.database import test_connection, init_db, close_db_connection
from roof_finder.schemas.common import ErrorInfo, ServiceResult


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

ROOF_LEADS_PREFIX = f"{settings.API_PREFIX}/roof-leads"
QUIET_PATHS = {"/health", "/status"}


def envelope(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    body = ServiceResult(success=False, error=ErrorInfo(code=code, message=message))
    return JSONResponse(status_code=status_code, content={**body.model_dump(mode="json"), **extra})


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.PROJECT_DESCRIPTION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# ==================== MIDDLEWARE ====================

app.add_middleware(GZipMiddleware, minimum_size=1000)

cors_origins = {settings.FRONTEND_URL, *get_cors_origins()}
if settings.DEBUG:
    # Map tile dev servers
    cors_origins.update({"http://localhost:8000", "http://localhost:8080"})

app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(cors_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request except the health checks"""
    if request.url.path in QUIET_PATHS:
        return await call_next(request)

    started = time.perf_counter()
    logger.info(f">> {request.method} {request.url.path}")
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"[ERROR] {request.method} {request.url.path} - {e} ({time.perf_counter() - started:.2f}s)")
        raise
    logger.info(f"<< {request.method} {request.url.path} - {response.status_code} ({time.perf_counter() - started:.2f}s)")
    return response


app.include_router(roof_leads_router, prefix=ROOF_LEADS_PREFIX, tags=["Roof Leads"])


# ==================== ERROR HANDLERS ====================

@app.exception_handler(RoofFinderError)
async def roof_finder_error_handler(request: Request, exc: RoofFinderError):
    """Domain errors that escaped a service boundary"""
    logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
    return envelope(HTTP_STATUS_BY_CODE.get(exc.code, 500), exc.code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query params; reported like service-level validation"""
    errors = exc.errors()
    logger.warning(f"Validation error on {request.url.path}: {len(errors)} issue(s)")
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or None
    error = ValidationError(first.get("msg", "Invalid request"), field=field)
    return envelope(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        error.code,
        error.message,
        errors=[{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors],
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    response = envelope(exc.status_code, "HTTPError", str(exc.detail))
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}\n{traceback.format_exc()}")
    message = str(exc) if settings.DEBUG else "Internal server error"
    return envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "InternalError", message)


# ==================== SYSTEM ENDPOINTS ====================

@app.get("/", tags=["System"])
async def root():
    return {
        "success": True,
        "data": {
            "app_name": settings.PROJECT_NAME,
            "api_version": settings.VERSION,
            "docs": "/api/docs",
            "roof_leads": ROOF_LEADS_PREFIX,
        },
    }


@app.get("/health", tags=["System"])
async def health_check():
    """Liveness plus a database ping"""
    connection_ok = test_connection()
    return {
        "success": True,
        "status": "healthy" if connection_ok else "degraded",
        "database": "connected" if connection_ok else "disconnected",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/status", tags=["System"])
async def status_check():
    """Effective runtime limits the map client should respect"""
    return {
        "success": True,
        "data": {
            "environment": "development" if settings.DEBUG else "production",
            "image_storage": settings.STORAGE_BACKEND,
            "image_bucket": settings.IMAGE_BUCKET,
            "max_image_size_mb": settings.MAX_IMAGE_SIZE_MB,
            "signed_url_expiry_seconds": settings.SIGNED_URL_EXPIRY_SECONDS,
            "search_debounce_ms": settings.SEARCH_DEBOUNCE_MS,
            "page_size": {"default": settings.DEFAULT_PAGE_SIZE, "max": settings.MAX_PAGE_SIZE},
            "polygon_snap_tolerance": settings.POLYGON_SNAP_TOLERANCE,
        },
    }


# ==================== STARTUP & SHUTDOWN ====================

@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION} "
                f"(storage={settings.STORAGE_BACKEND}, bucket={settings.IMAGE_BUCKET})")

    if not test_connection():
        logger.warning("[WARN] Database unreachable - roof lead routes will fail until it is back")
    elif settings.TESTING:
        logger.info("Testing mode: schema is created by the test fixtures")
    elif init_db():
        logger.info("[OK] Roof Finder tables ready")
    else:
        logger.warning("[WARN] Could not create Roof Finder tables - run the alembic migrations")


@app.on_event("shutdown")
async def shutdown_event():
    close_db_connection()
    logger.info(f"{settings.PROJECT_NAME} stopped")
