"""
HaemoFlow FastAPI Application
Main application entry point
"""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime
from contextlib import asynccontextmanager
import logging
import time

from haemo_core.exceptions import HaemoFlowError

from .config import get_settings
from .database import get_agent_context
from .routes import health, agents, donor, alerts, logs

# Get settings
settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


# ============================================
# Lifespan Events (Startup/Shutdown)
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}, storage: {settings.storage_backend}")
    logger.info("API Documentation: http://localhost:8000/docs")

    ctx = get_agent_context()
    ctx.tasks.start()

    yield

    # Shutdown
    ctx.tasks.stop()
    logger.info(f"Shutting down {settings.app_name}")


# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Multi-agent blood shortage fulfillment API",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ============================================
# CORS Configuration
# ============================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Request Logging Middleware
# ============================================

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log all requests with timing information
    """
    start_time = time.time()

    # Process request
    response = await call_next(request)

    # Calculate duration
    duration = time.time() - start_time

    logger.info(
        f"{request.method} {request.url.path} "
        f"- {response.status_code} "
        f"- {duration:.2f}s"
    )

    return response


# ============================================
# Exception Handlers
# ============================================

@app.exception_handler(HaemoFlowError)
async def haemoflow_exception_handler(request: Request, exc: HaemoFlowError):
    """
    Domain errors carry their own status code and error code
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.message,
            "error_code": exc.error_code,
            "details": exc.details,
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch all unhandled exceptions and return structured error response
    """
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "message": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.now().isoformat()
        }
    )


# ============================================
# Include Routers
# ============================================

# Health check and donor response links (no API key)
app.include_router(health.router)
app.include_router(donor.router)

# API routes (auth required)
app.include_router(agents.router)
app.include_router(alerts.router)
app.include_router(logs.router)


# ============================================
# Root Endpoint
# ============================================

@app.get("/")
async def root():
    """
    Root endpoint - API information
    """
    return {
        "message": f"{settings.app_name} v{settings.app_version}",
        "docs": "/docs",
        "health": "/health",
        "timestamp": datetime.now().isoformat()
    }
