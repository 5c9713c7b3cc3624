"""
CarePulse API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups,
and manages the MongoDB connection lifecycle.

Run locally:
    uvicorn carepulse.main:app --reload

Extension points:
  - Add new route groups with app.include_router() below
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carepulse.core.config import settings
from carepulse.core.database import close_mongo_connection, connect_to_mongo
from carepulse.core.rate_limit import limiter
from carepulse.core.stores import ReferenceDataError
from carepulse.routes.cron import router as cron_router
from carepulse.routes.dashboard import router as dashboard_router
from carepulse.routes.health import API_VERSION
from carepulse.routes.health import router as health_router
from carepulse.routes.processing import router as processing_router

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the MongoDB connection on startup, close it on shutdown."""
    logger.info("Starting CarePulse API (env: %s)", settings.environment)
    await connect_to_mongo()
    yield
    logger.info("Shutting down CarePulse API")
    await close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="CarePulse API",
    description=(
        "Customer-feedback signal processing: sentiment, topic classification, "
        "deduplication, happiness index and early warning for rising issues."
    ),
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Routes opt in with @limiter.limit("N/minute") + a request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ─── Errors ────────────────────────────────────────────────────────────────────
@app.exception_handler(ReferenceDataError)
async def reference_data_error_handler(request: Request, exc: ReferenceDataError):
    logger.error("Reference data missing: %s", exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# ─── Middleware ────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(processing_router)
app.include_router(cron_router)
app.include_router(dashboard_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "CarePulse API",
        "version": API_VERSION,
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
