"""FastAPI application main module.

This module defines the FastAPI application for the SVD++ scoring service:
health, status and metrics endpoints, error handlers and the scoring routes.
"""

import os
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src import __version__
from src.api.exceptions import SVDppApiException
from src.api.logging_config import RequestLoggingMiddleware, setup_logging
from src.api.metrics import metrics_service
from src.api.routes import score

setup_logging(os.environ.get("LOG_LEVEL", "INFO"))

# Create FastAPI application instance
app = FastAPI(
    title="SVD++ Scoring API",
    description="Rating prediction service backed by an SVD++ latent factor model",
    version=__version__,
)

app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(score.router)


@app.exception_handler(SVDppApiException)
async def handle_api_exception(request: Request, exc: SVDppApiException) -> JSONResponse:
    """Render API exceptions as a consistent JSON error body."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": exc.details,
        },
    )


@app.get("/ping")
def ping() -> Dict[str, str]:
    """Health check endpoint.

    Returns:
        Dictionary with status key set to "ok".
    """
    return {"status": "ok"}


@app.get("/status")
def model_status() -> Dict[str, Any]:
    """Report whether a model is loaded and its dimensions."""
    return score.get_cache_status()


@app.get("/metrics")
def metrics() -> Dict[str, Any]:
    """Scoring call counts and latency."""
    return metrics_service.get_metrics()


if __name__ == "__main__":
    import sys
    from pathlib import Path

    import uvicorn

    # Add project root to Python path for imports
    project_root = Path(__file__).parent.parent.parent
    sys.path.insert(0, str(project_root))

    uvicorn.run(
        "src.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
