"""
Lab Inventory Import Service: Main Application

Hosts the /api/imports pipeline: upload, mapping, enrichment,
reconciliation, commit and image persistence.
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import structlog
from datetime import datetime

from config import settings, check_connection

logging.basicConfig(level=settings.log_level.upper(), format="%(message)s")

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.is_production
            else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log pipeline settings and probe the items table on startup."""
    logger.info(
        "import_service_starting",
        environment=settings.environment,
        items_table=settings.items_table,
        lookup_function=settings.lookup_function_name,
        existence_chunk_size=settings.existence_chunk_size,
        commit_chunk_size=settings.commit_chunk_size,
        enrichment_wave_size=settings.enrichment_wave_size,
    )

    db_status = check_connection()
    if db_status["status"] == "healthy":
        logger.info("items_table_reachable", items=db_status["items_count"])
    else:
        # Uploads and mapping still work; reconcile and commit will fail
        logger.error("items_table_unreachable", error=db_status.get("error"))

    yield

    logger.info("import_service_shutting_down")


app = FastAPI(
    title="Lab Inventory Import Service",
    description="Bulk spreadsheet import for lab inventory items",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:8080",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===================
# ROUTES
# ===================

@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Database state plus the number of open import sessions
    """
    from services.import_session_service import get_import_service

    db_status = check_connection()

    return {
        "status": "healthy" if db_status["status"] == "healthy" else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
        "database": db_status,
        "open_import_sessions": len(get_import_service().sessions),
    }


@app.get("/")
async def root():
    """API information and the import workflow endpoints."""
    return {
        "name": "Lab Inventory Import API",
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "Disabled in production",
        "health": "/health",
        "endpoints": {
            "template": "GET /api/imports/template",
            "upload": "POST /api/imports",
            "mapping": "PUT /api/imports/{id}/mapping",
            "enrich": "POST /api/imports/{id}/enrich",
            "reconcile": "POST /api/imports/{id}/reconcile",
            "commit": "POST /api/imports/{id}/commit",
            "persist_images": "POST /api/imports/{id}/images/persist",
        }
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies use the same envelope as AppError."""
    logger.warning(
        "request_validation_failed",
        path=request.url.path,
        errors=len(exc.errors()),
    )

    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "REQUEST_VALIDATION_ERROR",
                "message": "Request body or parameters are invalid",
                "details": {"errors": jsonable_encoder(exc.errors())},
                "timestamp": datetime.utcnow().isoformat()
            }
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler.

    Catches unhandled exceptions and returns standard error format.
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.utcnow().isoformat()
            }
        }
    )


# ===================
# INCLUDE ROUTERS
# ===================
from routes.imports import router as imports_router

app.include_router(imports_router)  # Prefix already in router


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
