"""Main FastAPI application entry point.

Provides CORS, health endpoints, SCORM package upload/merge/download,
background description generation and the progress WebSocket.
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import asyncio
import logging
import os
from datetime import datetime

from app.config import get_settings
from app.routers import descriptions, health, packages, ws
from app.services.upload_cleanup import run_cleanup_loop
from app.utils.feature_flags import is_feature_enabled

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Application metadata
APP_NAME = "SCORM Merge API"
VERSION = "1.0.0"
DESCRIPTION = """
SCORM Merge Backend API

## Features

* **Upload**: Validate and parse SCORM packages
* **Merge**: Combine ordered packages into one package with a course menu
* **Descriptions**: Generate package descriptions in the background
* **Progress**: Live progress over WebSocket (`/ws`)
"""

settings = get_settings()

# Initialize FastAPI app
app = FastAPI(
    title=APP_NAME,
    description=DESCRIPTION,
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Global exception handler


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Handle HTTP exceptions with consistent error format"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "detail": exc.detail,
            "timestamp": datetime.utcnow().isoformat(),
            "path": str(request.url)
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle general exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "timestamp": datetime.utcnow().isoformat(),
            "path": str(request.url)
        }
    )

# Include routers
app.include_router(health.router, prefix="/api/v1", tags=["Health"])
app.include_router(packages.router, prefix="/api/v1", tags=["Packages"])
app.include_router(descriptions.router, prefix="/api/v1", tags=["Descriptions"])
app.include_router(ws.router, tags=["WebSocket"])


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information"""
    return {
        "name": APP_NAME,
        "version": VERSION,
        "status": "running",
        "environment": get_settings().environment,
        "timestamp": datetime.utcnow().isoformat(),
        "docs": "/docs",
        "health": "/api/v1/health"
    }

_cleanup_task = None


@app.on_event("startup")
async def startup_event():
    """Application startup tasks"""
    global _cleanup_task
    current = get_settings()
    logger.info(f"Starting {APP_NAME} v{VERSION}")
    logger.info(f"Environment: {current.environment}")
    logger.info(f"CORS Origins: {current.cors_origins}")

    current.ensure_directories()
    logger.info(f"Storage directories: {current.upload_dir}, {current.temp_dir}")

    if is_feature_enabled("upload_cleanup"):
        _cleanup_task = asyncio.create_task(run_cleanup_loop())


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown tasks"""
    global _cleanup_task
    if _cleanup_task is not None:
        _cleanup_task.cancel()
        _cleanup_task = None
    logger.info(f"Shutting down {APP_NAME}")

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")

    uvicorn.run(
        "app.main:app",
        host=host,
        port=port,
        reload=True,
        log_level="info"
    )
