"""
Main FastAPI application for the LawMint backend.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lawmint.config import settings
from lawmint.database import close_db, init_db, session_scope
from lawmint.routers import ai, auth, collaboration, documents, export, files, health, templates
from lawmint.services.llm_client import LLMClient
from lawmint.services.storage import BlobStorage
from lawmint.services.templates import seed_global_templates
from lawmint.utils.helpers import utcnow

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> bool:
    """Initialise DB tables and verify the connection.  Returns True on success."""
    try:
        await init_db()
        logger.info("✓ Database connection OK")
        return True
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


async def _check_llm() -> str:
    """
    Report whether the LLM provider is usable.  Never raises; firms can still
    bring their own API key when none is configured globally.
    """
    llm_status = await LLMClient().check_health()
    if llm_status == "ok":
        logger.info("✓ LLM provider reachable (model '%s')", settings.LLM_MODEL)
    elif llm_status == "unconfigured":
        logger.warning(
            "⚠ LLM_API_KEY is not set; AI features need a firm-level API key"
        )
    else:
        logger.warning("⚠ LLM provider at %s is not responding", settings.LLM_BASE_URL)
    return llm_status


async def _seed_templates() -> None:
    """Import GLOBAL_TEMPLATES_DIR as global templates.  Failures are logged."""
    if not settings.GLOBAL_TEMPLATES_DIR:
        return
    try:
        async with session_scope() as session:
            created = await seed_global_templates(
                session, BlobStorage(), settings.GLOBAL_TEMPLATES_DIR
            )
        logger.info("✓ Global templates: %d new", len(created))
    except Exception as exc:
        logger.error("✗ Global template seeding failed: %s", exc, exc_info=True)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting LawMint backend …")
    logger.info("=" * 60)

    # 1 — Database (required; raises on failure)
    await _check_database()

    # 2 — LLM provider (optional; logs warnings but continues)
    await _check_llm()

    # 3 — Blob storage directory
    os.makedirs(settings.STORAGE_DIR, exist_ok=True)
    logger.info("✓ Storage directory: %s", os.path.abspath(settings.STORAGE_DIR))

    # 4 — Global templates
    await _seed_templates()

    logger.info("=" * 60)
    logger.info("  LawMint backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down LawMint backend …")
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="LawMint API",
    description=(
        "**LawMint** — demand letter drafting for law firms.\n\n"
        "Upload templates and source documents (PDF/DOCX), generate drafts "
        "with an LLM, edit them together in real time, and export to DOCX.\n\n"
        "Key endpoints:\n"
        "- `POST /api/auth/signup` — create an account\n"
        "- `POST /api/auth/firms` — create a firm and get its invite code\n"
        "- `POST /api/templates/upload` — upload a firm template\n"
        "- `POST /api/documents/generate` — upload sources and generate a draft\n"
        "- `POST /api/ai/refine` — refine a draft\n"
        "- `POST /api/export/docx` — download as DOCX\n"
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health", "/api/health/", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Global exception handler
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": utcnow().isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,        prefix="/api/health",        tags=["Health"])
app.include_router(auth.router,          prefix="/api/auth",          tags=["Auth"])
app.include_router(templates.router,     prefix="/api/templates",     tags=["Templates"])
app.include_router(documents.router,     prefix="/api/documents",     tags=["Documents"])
app.include_router(ai.router,            prefix="/api/ai",            tags=["AI"])
app.include_router(export.router,        prefix="/api/export",        tags=["Export"])
app.include_router(collaboration.router, prefix="/api/collaboration", tags=["Collaboration"])
app.include_router(files.router,         prefix="/api/files",         tags=["Files"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "LawMint API",
        "version": "1.0.0",
        "description": "Demand letter generation and collaboration backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "auth": "/api/auth",
            "templates": "/api/templates",
            "documents": "/api/documents",
            "ai": "/api/ai",
            "export": "/api/export",
            "collaboration": "/api/collaboration",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lawmint.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
