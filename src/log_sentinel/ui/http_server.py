"""
Main HTTP server for Log Sentinel.

Serves rule management, alert and log browsing endpoints.
"""

import logging
import os
from typing import Dict

import uvicorn
from fastapi import Depends, FastAPI

from .. import __version__
from ..core.config import get_config
from ..store.sqlite_store import LogStore
from .alerts_api import router as alerts_router
from .dependencies import get_store
from .logs_api import router as logs_router
from .rules_api import router as rules_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Log Sentinel API",
    description="Alert rule management and log/alert browsing API",
    version=__version__,
)

# Include routers
app.include_router(rules_router)
app.include_router(alerts_router)
app.include_router(logs_router)


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Log Sentinel API",
        "version": __version__,
        "endpoints": {
            "rules": "/rules",
            "alerts": "/alerts",
            "logs": "/logs",
            "stats": "/stats",
            "docs": "/docs",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/stats")
def stats(store: LogStore = Depends(get_store)) -> Dict[str, int]:
    """Counts of stored logs, rules and alerts."""
    return store.get_stats()


def main():
    """Main entry point for HTTP server."""
    config = get_config()
    host = config.api.host
    port = config.api.port

    logger.info("=" * 60)
    logger.info("Log Sentinel - API Server")
    logger.info("=" * 60)
    logger.info(f"Host: {host}")
    logger.info(f"Port: {port}")
    logger.info(f"Database: {config.store.db_path}")
    logger.info("=" * 60)
    logger.info(f"API Documentation: http://{host}:{port}/docs")
    logger.info("=" * 60)

    uvicorn.run(
        "log_sentinel.ui.http_server:app",
        host=host,
        port=port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
