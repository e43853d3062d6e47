"""
PDF Vault - Versioned PDF files with page annotations
FastAPI with multiple storage backends: SQLite, JSON files and Google Sheets

Install dependencies:
pip install fastapi uvicorn sqlalchemy pydantic pydantic-settings python-multipart cachetools tenacity gspread google-auth httpx

Run server:
uvicorn main:app --host 0.0.0.0 --port 8000
"""
import contextvars
import logging
import os
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adapters.base import StorageAdapter
from core.annotations import AnnotationStore
from core.blob_store import BlobStore
from core.errors import VaultError, http_status_for
from core.promotion import PromotionBridge, StorageTaskService
from core.versions import VersionStore
from settings import Settings, get_settings

# ========== Request Context for Tracing ==========
request_id_var = contextvars.ContextVar('request_id', default=None)
request_start_time_var = contextvars.ContextVar('request_start_time', default=None)

# ========== Metrics Storage ==========
request_metrics = {
    "total_requests": defaultdict(int),  # by endpoint
    "total_latency": defaultdict(float),  # by endpoint
    "status_codes": defaultdict(int),  # by status code
}

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

startup_time = time.time()

API_VERSION = "1.0"

# ============================================================================
# BACKEND CONFIGURATION
# ============================================================================


@dataclass
class Services:
    """Everything a request handler needs, wired to one storage backend."""
    backend: str
    storage: StorageAdapter
    blobs: BlobStore
    versions: VersionStore
    annotations: AnnotationStore
    tasks: StorageTaskService
    promotion: PromotionBridge
    settings: Settings


def build_storage_adapter(settings: Settings) -> StorageAdapter:
    backend = settings.storage_backend.lower()

    if backend == "sheets":
        from adapters.sheets import SheetsAdapter

        sa_json = settings.resolved_google_sa_json()
        if not sa_json or not settings.sheets_spreadsheet_id:
            raise ValueError("Google Sheets requires GOOGLE_SA_JSON and SHEETS_SPREADSHEET_ID")

        logger.info("Initializing Google Sheets adapter...")
        try:
            adapter = SheetsAdapter(
                google_sa_json=sa_json,
                spreadsheet_id=settings.sheets_spreadsheet_id,
            )
        except Exception as e:
            logger.error(f"✗ Failed to initialize Google Sheets: {e}")
            raise
        logger.info("✓ Google Sheets adapter initialized")
        return adapter

    if backend == "sqlite":
        from adapters.sqlite import SqliteAdapter
        return SqliteAdapter.from_url(settings.db_url)

    if backend == "json":
        from adapters.json import JsonAdapter
        return JsonAdapter(data_dir=settings.json_data_dir)

    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.storage_backend}")


def build_services(settings: Settings, storage: Optional[StorageAdapter] = None) -> Services:
    storage = storage or build_storage_adapter(settings)
    blobs = BlobStore(settings.blob_dir)
    annotations = AnnotationStore(storage, cache_ttl=settings.annotation_cache_ttl)
    tasks = StorageTaskService(storage)
    return Services(
        backend=settings.storage_backend.lower(),
        storage=storage,
        blobs=blobs,
        versions=VersionStore(storage, blobs),
        annotations=annotations,
        tasks=tasks,
        promotion=PromotionBridge(annotations, tasks),
        settings=settings,
    )


services: Optional[Services] = None


def init_services(settings: Optional[Settings] = None, storage: Optional[StorageAdapter] = None) -> Services:
    """(Re)wire the app; tests call this with their own settings."""
    global services
    settings = settings or get_settings()
    services = build_services(settings, storage)
    logger.info(f"🔧 Storage Backend: {services.backend.upper()}")
    return services


# ---- DI helpers (used by routers/*) ----
def get_services() -> Services:
    if services is None:
        init_services()
    return services


# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="PDF Vault API",
    description="Versioned PDF files with page annotations and task promotion",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)


# ========== Request Tracing Middleware ==========
@app.middleware("http")
async def request_tracing_middleware(request, call_next):
    """Add request_id and timing to all requests."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
    request_id_var.set(request_id)
    request_start_time_var.set(time.time())

    response = await call_next(request)

    latency = time.time() - request_start_time_var.get()

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code}",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": round(latency * 1000, 2),
        }
    )

    # Update metrics
    endpoint = f"{request.method} {request.url.path}"
    request_metrics["total_requests"][endpoint] += 1
    request_metrics["total_latency"][endpoint] += latency
    request_metrics["status_codes"][response.status_code] += 1

    response.headers["X-Request-ID"] = request_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().get_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VaultError)
async def vault_exception_handler(request, exc):
    code = http_status_for(exc)
    if code >= 500:
        logger.error(f"Domain error on {request.url.path}: {exc}")
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


# ============================================================================
# ENDPOINTS
# ============================================================================
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    svc = get_services()
    try:
        svc.storage.ping()
        return {
            "status": "healthy",
            "backend": svc.backend,
            "version": API_VERSION,
        }
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "backend": svc.backend, "error": str(e)}
        )


@app.get("/healthz")
async def healthz():
    """
    Liveness probe.
    Returns 200 if the application is running.
    """
    return {
        "status": "ok",
        "timestamp": time.time(),
        "version": API_VERSION,
    }


@app.get("/readyz")
async def readyz():
    """
    Readiness probe.
    Checks the storage backend is reachable. Returns 200 if ready, 503 if not.
    """
    svc = get_services()
    try:
        svc.storage.ping()
        return {
            "status": "ready",
            "backend": svc.backend,
            "cache_size": svc.annotations.cache_size,
            "timestamp": time.time(),
        }
    except Exception as e:
        logger.error(f"Readiness check failed: {str(e)}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "backend": svc.backend,
                "error": str(e),
                "timestamp": time.time(),
            }
        )


@app.get("/metrics")
async def get_metrics():
    """
    Get application metrics.
    Returns request counts, latencies and annotation cache stats.
    """
    svc = get_services()

    avg_latencies = {}
    for endpoint, total_latency in request_metrics["total_latency"].items():
        count = request_metrics["total_requests"][endpoint]
        avg_latencies[endpoint] = round((total_latency / count) * 1000, 2) if count > 0 else 0

    hits = svc.annotations.cache_hits
    misses = svc.annotations.cache_misses
    cache_total = hits + misses
    cache_hit_rate = round((hits / cache_total * 100), 2) if cache_total > 0 else 0

    total_requests = sum(request_metrics["total_requests"].values())
    return {
        "timestamp": time.time(),
        "uptime_seconds": round(time.time() - startup_time, 2),
        "backend": svc.backend,
        "requests": {
            "by_endpoint": dict(request_metrics["total_requests"]),
            "by_status": dict(request_metrics["status_codes"]),
            "total": total_requests,
        },
        "latency": {
            "by_endpoint_ms": avg_latencies,
            "average_ms": round(
                sum(request_metrics["total_latency"].values()) / total_requests * 1000, 2
            ) if total_requests > 0 else 0,
        },
        "cache": {
            "hits": hits,
            "misses": misses,
            "hit_rate_percent": cache_hit_rate,
            "size": svc.annotations.cache_size,
        },
    }


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "message": "PDF Vault API",
        "version": API_VERSION,
        "backend": get_services().backend,
        "status": "running",
        "docs": "/docs"
    }


from routers import files as files_router
app.include_router(files_router.router)

from routers import versions as versions_router
app.include_router(versions_router.router)

from routers import annotations as annotations_router
app.include_router(annotations_router.router)

from routers import tasks as tasks_router
app.include_router(tasks_router.router)


@app.on_event("startup")
async def startup_event():
    global startup_time
    startup_time = time.time()
    svc = get_services()
    logger.info("PDF Vault API starting up...")
    logger.info(f"Storage Backend: {svc.backend.upper()}")
    if svc.backend == "sqlite":
        logger.info(f"Database: {svc.settings.db_url.split('://')[0]}")
    elif svc.backend == "sheets":
        logger.info(f"Spreadsheet ID: {svc.settings.sheets_spreadsheet_id}")
    logger.info(f"Blob dir: {svc.settings.blob_dir}")
    logger.info(f"Allowed origins: {svc.settings.get_origins_list()}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("PDF Vault API shutting down...")
    if services is not None and hasattr(services.storage, "engine"):
        services.storage.engine.dispose()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
