# src/feedsync/main.py
"""Reference gateway server for the feedsync engine."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from feedsync.api.v1 import (
    changes_router,
    edges_router,
    feed_router,
    posts_router,
    users_router,
)
from feedsync.api.v1.dependencies import get_change_feed
from feedsync.core.settings import settings
from feedsync.db.session import create_tables
from feedsync.services.gateway import GatewayError, GatewayUnavailableError, NotFoundError

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="feedsync gateway",
    description="Feed queries, batch relations and change feed for the feedsync engine",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(feed_router, prefix="/api/v1")
app.include_router(posts_router, prefix="/api/v1")
app.include_router(edges_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(changes_router, prefix="/api/v1")


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(GatewayUnavailableError)
async def unavailable_handler(request: Request, exc: GatewayUnavailableError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)}
    )


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    logger.error("Unhandled gateway error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)}
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    get_change_feed().disconnect_all()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("feedsync.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
