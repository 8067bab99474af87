from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
import logging
import sys
import os
import io
import asyncio
from contextlib import asynccontextmanager, suppress
from datetime import datetime

from app.core.config import settings
from app.api.routes import router
from app.models.scheme import ErrorResponse
from app.services.brokerage_db_service import brokerage_db_service
from app.services.import_session_store import start_cleanup_task


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

class UTF8StreamHandler(logging.StreamHandler):
    """Custom handler with UTF-8 encoding for Windows compatibility."""
    def __init__(self):
        if sys.platform == 'win32':
            sys.stdout = io.TextIOWrapper(
                sys.stdout.buffer,
                encoding='utf-8',
                errors='replace',
                line_buffering=True
            )
        super().__init__(sys.stdout)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        UTF8StreamHandler(),
        logging.FileHandler('app.log', encoding='utf-8')
    ]
)

logger = logging.getLogger(__name__)

# Committed policy documents are served from here
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)


# ============================================================================
# STARTUP/SHUTDOWN LIFECYCLE
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle manager.
    Handles startup and shutdown tasks.
    """
    # Startup
    logger.info("")
    logger.info("=" * 80)
    logger.info(f"  {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info("=" * 80)
    logger.info(f"  AI Model: {settings.AI_MODEL}")
    logger.info(f"  AI Gateway: {settings.AI_GATEWAY_URL}")
    logger.info(f"  Upload Directory: {settings.UPLOAD_DIR}")
    logger.info(f"  Batch: {settings.OCR_BATCH_SIZE} files / {settings.OCR_BATCH_DELAY_SECONDS:.0f}s delay")
    logger.info("=" * 80)

    if not settings.AI_GATEWAY_API_KEY:
        logger.warning("  ⚠️  AI_GATEWAY_API_KEY not set - extraction calls will fail")
    if not settings.OCR_SPACE_API_KEY:
        logger.warning("  ⚠️  OCR_SPACE_API_KEY not set - scanned documents cannot be read")

    # Initialize MongoDB connection
    try:
        await brokerage_db_service.connect()
        logger.info(f"  ✅ MongoDB connected: {settings.MONGODB_DATABASE}")
    except Exception as e:
        logger.error(f"  ❌ MongoDB connection failed: {e}")
        logger.warning("  ⚠️  Application will continue without MongoDB")

    # Start import session cleanup task
    cleanup_task = asyncio.create_task(start_cleanup_task())
    logger.info("  ✅ Import session cleanup task started")

    logger.info("")
    logger.info("  📡 AVAILABLE ENDPOINTS:")
    logger.info("       POST   /api/ocr-bulk-analyze                         OCR + AI on a batch")
    logger.info("       POST   /api/policy-import/sessions                   New import session")
    logger.info("       POST   /api/policy-import/sessions/{id}/files        Upload documents")
    logger.info("       POST   /api/policy-import/sessions/{id}/process      Extract + reconcile")
    logger.info("       PATCH  /api/policy-import/sessions/{id}/items/{item} Review edits")
    logger.info("       POST   /api/policy-import/sessions/{id}/commit       Create policies")
    logger.info("       POST   /api/appointments/create-next                 RRULE successor")
    logger.info("       POST   /api/appointments/process-completion          Fixed-rule successor")
    logger.info("       GET    /api/health                                   System health")
    logger.info("")
    logger.info("=" * 80)
    logger.info("  ✅ Application started successfully!")
    logger.info(f"  📚 API Docs: http://localhost:{os.getenv('PORT', '8000')}/docs")
    logger.info("=" * 80)
    logger.info("")

    yield

    # Shutdown
    logger.info("")
    logger.info("=" * 80)
    logger.info("  🛑 Shutting down application...")

    cleanup_task.cancel()
    with suppress(asyncio.CancelledError):
        await cleanup_task

    try:
        await brokerage_db_service.disconnect()
        logger.info("  ✅ MongoDB connection closed")
    except Exception as e:
        logger.warning(f"  ⚠️  MongoDB disconnect: {str(e)}")

    logger.info("  ✅ Application stopped successfully")
    logger.info("=" * 80)
    logger.info("")


# ============================================================================
# APPLICATION INITIALIZATION
# ============================================================================

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=f"""{settings.APP_DESCRIPTION}

## 📖 Documentation

- **Interactive API Docs**: `/docs` (Swagger UI)
- **Alternative Docs**: `/redoc` (ReDoc)
- **Health Check**: `/api/health`
""",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests with timing."""
    start_time = datetime.now()

    logger.info(f"📥 {request.method} {request.url.path}")

    try:
        response = await call_next(request)

        duration = (datetime.now() - start_time).total_seconds()
        logger.info(f"📤 {request.method} {request.url.path} - {response.status_code} - {duration:.2f}s")

        return response
    except Exception as e:
        duration = (datetime.now() - start_time).total_seconds()
        logger.error(f"❌ {request.method} {request.url.path} - Error: {str(e)} - {duration:.2f}s")
        raise


# ============================================================================
# ROUTE INCLUSION
# ============================================================================

app.include_router(router)
app.mount("/files", StaticFiles(directory=settings.UPLOAD_DIR), name="files")


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """Handle 404 errors."""
    detail = getattr(exc, "detail", None)
    return JSONResponse(
        status_code=404,
        content={
            "error": "Not Found",
            "detail": detail or f"Resource not found: {request.url.path}",
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler."""
    logger.error(f"Unhandled exception on {request.url.path}: {str(exc)}", exc_info=True)

    detail = str(exc) if settings.DEBUG else "An error occurred"

    content = ErrorResponse(error="Internal server error", detail=detail).model_dump(mode="json")
    content["type"] = type(exc).__name__
    content["path"] = str(request.url.path)

    return JSONResponse(status_code=500, content=content)


# ============================================================================
# ROOT ENDPOINTS
# ============================================================================

@app.get("/")
async def read_root():
    """Root endpoint - API welcome and overview."""
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "operational",
        "documentation": "/docs",
        "timestamp": datetime.now().isoformat(),
        "workflow": {
            "step_1": "POST /api/policy-import/sessions",
            "step_2": "POST /api/policy-import/sessions/{id}/files (PDF or images)",
            "step_3": "POST /api/policy-import/sessions/{id}/process (bulk-ocr or standard)",
            "step_4": "Review: PATCH items, batch producer / commission",
            "step_5": "POST /api/policy-import/sessions/{id}/commit",
        },
        "limitations": {
            "max_files": settings.MAX_FILES_PER_IMPORT,
            "max_file_size_mb": settings.MAX_FILE_SIZE_MB,
            "max_ocr_file_size_kb": settings.OCR_MAX_FILE_SIZE_KB,
            "formats": settings.ALLOWED_EXTENSIONS,
        },
    }


# ============================================================================
# DEVELOPMENT SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))

    logger.info(f"\n🚀 Starting development server on port {port}...")
    logger.info(f"📚 API Docs: http://localhost:{port}/docs")

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        log_level="info",
        access_log=True,
        reload_dirs=["app"],
        reload_excludes=["*.log", "uploads/*", "logs/*"]
    )
