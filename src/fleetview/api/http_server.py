"""
Main HTTP server for the FleetView device gateway.

Serves device, event and cache endpoints.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from fleetview import __version__
from fleetview.core.config import get_config
from fleetview.core.errors import FleetViewError

from .cache_api import router as cache_router
from .dependencies import Services, build_services
from .device_api import router as device_router
from .events_api import router as events_router
from .middleware import identifier_classification
from .responses import fresh_json

logger = logging.getLogger(__name__)


async def handle_fleetview_error(request: Request, exc: FleetViewError):
    """Map FleetView errors to their HTTP status and error body."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return fresh_json(exc.to_dict(), status_code=exc.status_code)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Prebuilt services (tests inject one wired to a fake backend);
            built from the environment on startup when omitted

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services()
        current = app.state.services
        if not current.gateway.configured:
            logger.warning("API_BASE_URL is not set; backend calls will fail")
        yield
        await current.close()

    app = FastAPI(
        title="FleetView Device Gateway",
        description="Device resolution, module aggregation and name lookup API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Data-Source", "X-Device-Resolution-Needed", "X-Device-Identifier-Type"],
    )
    app.middleware("http")(identifier_classification)
    app.add_exception_handler(FleetViewError, handle_fleetview_error)

    # Include routers
    app.include_router(device_router)
    app.include_router(events_router)
    app.include_router(cache_router)

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "FleetView Device Gateway",
            "version": __version__,
            "endpoints": {
                "devices": "/devices/{identifier}",
                "resolve": "/devices/resolve/{identifier}",
                "names": "/devices?names=",
                "events": "/events",
                "cache": "/cache",
                "docs": "/docs",
            },
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        current: Services = request.app.state.services
        return {
            "status": "healthy",
            "version": __version__,
            "backendConfigured": current.gateway.configured,
        }

    return app


app = create_app()


def main():
    """Main entry point for HTTP server."""
    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    host = config.server.host
    port = config.server.port

    logger.info("=" * 60)
    logger.info("FleetView - Device Gateway")
    logger.info("=" * 60)
    logger.info(f"Host: {host}")
    logger.info(f"Port: {port}")
    logger.info(f"Backend: {config.backend.base_url or '(not configured)'}")
    logger.info("=" * 60)
    logger.info(f"API Documentation: http://{host}:{port}/docs")
    logger.info("=" * 60)

    uvicorn.run(
        "fleetview.api.http_server:app",
        host=host,
        port=port,
        reload=config.server.reload,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
