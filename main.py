"""Main FastAPI application for the shared model service.

The web process stays lean: the model lives in a single manager process and
every request handler reaches it through a proxy.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from modelshare.api.routers import predict
from modelshare.service import build_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events (startup and shutdown)."""
    app.state.service = None

    try:
        # Startup
        logger.info("Starting up application...")
        app.state.service = await asyncio.to_thread(build_service)
        logger.info("Startup complete")

        yield  # Application runs here

    finally:
        # Shutdown
        logger.info("Shutting down application...")
        service = getattr(app.state, "service", None)
        app.state.service = None
        if service is not None:
            try:
                service.close()
                logger.info("Model manager shut down")
            except Exception as e:
                logger.warning(f"Error shutting down model manager: {e}")
        logger.info("Shutdown complete")


# Create FastAPI app with lifespan handler
app = FastAPI(
    title="Shared Model Service API",
    description="Image classification served from a single shared model process",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

app.include_router(predict.router)


@app.get("/api")
async def root():
    """Root API endpoint with service information."""
    return {
        "name": "Shared Model Service API",
        "version": "0.1.0",
        "status": "running",
        "endpoints": {
            "predict": "/api/predict",
            "docs": "/api/docs",
            "health": "/api/health",
            "ready": "/api/ready",
        },
    }


@app.get("/api/health")
async def health():
    """Health check endpoint with manager and model status."""
    service = getattr(app.state, "service", None)
    if service is None:
        return {"status": "starting", "manager": None, "model": None}

    status = await service.status()
    healthy = status["manager"]["alive"] and status["model"] is not None
    return {"status": "healthy" if healthy else "degraded", **status}


@app.get("/api/ready")
async def ready():
    """Readiness check endpoint."""
    service = getattr(app.state, "service", None)
    if service is None or not await service.is_ready():
        return JSONResponse(status_code=503, content={"status": "not_ready"})
    return {"status": "ready"}


if __name__ == "__main__":
    import uvicorn

    from modelshare.config import get_setting, get_setting_int

    uvicorn.run(
        app,
        host=get_setting("host", "0.0.0.0"),
        port=get_setting_int("port", 12310),
    )
