# main.py

"""
FastAPI Panel Job API - Main Entry Point
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from server.core.config import settings
from server.routers import job_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Stop run loops and write pending job snapshots
    logger.info("Shutting down, flushing job state")
    await job_router.job_service.shutdown()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(job_router.router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "endpoints": {
            "start_job": "/api/jobs",
            "list_jobs": "/api/jobs",
            "job_status": "/api/jobs/{job_id}",
            "control": "/api/jobs/{job_id}/control",
            "lint_report": "/api/jobs/{job_id}/lint",
            "topics": "/api/jobs/{job_id}/topics",
            "health": "/health",
            "docs": "/docs"
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": settings.app_version,
        "generation_mode": settings.generation_mode,
        "active_jobs": job_router.job_service.get_active_jobs_count()
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
