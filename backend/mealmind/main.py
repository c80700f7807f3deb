import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from mealmind.api.errors import register_error_handlers
from mealmind.api.routes import auth, meals
from mealmind.core.config import settings
from mealmind.core.database import Base, engine
from mealmind.core.logging import configure_logging
from mealmind.storage.object_storage import build_storage

# Imported so their tables are registered on Base.metadata
from mealmind.models import meal, nutrition, photo, user  # noqa: F401

API_PREFIX = "/api/v1"

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: build the shared storage client and create missing tables.
    Production schemas are managed with migrations; create_all only fills
    gaps on a fresh database.
    """
    # Built once per process; an unreachable MinIO or bad bucket aborts startup here
    app.state.storage = build_storage(settings)
    Base.metadata.create_all(bind=engine)
    logger.info("MealMind API started with %s storage", settings.STORAGE_BACKEND)
    yield
    engine.dispose()
    logger.info("MealMind API stopped")


app = FastAPI(
    title="MealMind API",
    description="Meal tracking with photo uploads",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: expose Location so browser clients can follow newly created meals
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Location"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and latency for every request"""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    level = logging.ERROR if response.status_code >= 500 else logging.INFO
    logger.log(level, "%s %s -> %d (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


# Domain errors, validation errors and anything unhandled become JSON responses
register_error_handlers(app)

# All API routes are versioned under /api/v1
app.include_router(auth.router, prefix=API_PREFIX)
app.include_router(auth.me_router, prefix=API_PREFIX)
app.include_router(meals.router, prefix=API_PREFIX)


@app.get(f"{API_PREFIX}/health", response_class=PlainTextResponse)
@app.get("/health", response_class=PlainTextResponse, include_in_schema=False)
async def health():
    """Health check endpoint - used by monitoring/deployment tools"""
    return "ok"
