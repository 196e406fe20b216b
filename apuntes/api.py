"""HTTP surface for browsing and counting notes in the bucket."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .browse import BrowseService
from .config import Settings
from .errors import ApuntesError, InvalidPrefix, OperationCancelled
from .schemas import (
    BrowseResponse,
    CountResponse,
    ErrorResponse,
    HealthResponse,
    ListResponse,
)

logger = logging.getLogger(__name__)

DISCONNECT_POLL_INTERVAL = 0.5
CLIENT_CLOSED_REQUEST = 499

router = APIRouter()


def get_service(request: Request) -> BrowseService:
    return request.app.state.service


@asynccontextmanager
async def cancel_on_disconnect(request: Request) -> AsyncIterator[asyncio.Event]:
    """Yield an event that is set once the client goes away."""

    cancel = asyncio.Event()

    async def watch() -> None:
        while not cancel.is_set():
            if await request.is_disconnected():
                logger.info("Client disconnected from %s, cancelling", request.url.path)
                cancel.set()
                return
            await asyncio.sleep(DISCONNECT_POLL_INTERVAL)

    watcher = asyncio.create_task(watch())
    try:
        yield cancel
    finally:
        watcher.cancel()


@router.get(
    "/list",
    response_model=ListResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def list_prefix(
    request: Request,
    prefix: str = "",
    service: BrowseService = Depends(get_service),
):
    """Immediate folders and files under ``prefix``."""
    async with cancel_on_disconnect(request) as cancel:
        listing = await service.list(prefix, cancel=cancel)
    logger.info("API: list %r -> %d entries", listing.prefix, len(listing.entries))
    return ListResponse.from_listing(listing)


@router.get(
    "/count",
    response_model=CountResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def count_prefix(
    request: Request,
    prefix: str = "",
    service: BrowseService = Depends(get_service),
):
    """Total files anywhere below ``prefix``."""
    async with cancel_on_disconnect(request) as cancel:
        result = await service.count(prefix, cancel=cancel)
    logger.info("API: count %r -> %d files", result.prefix, result.total_files)
    return CountResponse(prefix=result.prefix, totalFiles=result.total_files)


@router.get(
    "/counts",
    response_model=BrowseResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def browse_prefix(
    request: Request,
    prefix: str = "",
    service: BrowseService = Depends(get_service),
):
    """Listing of ``prefix`` plus a recursive file count for each child folder."""
    async with cancel_on_disconnect(request) as cancel:
        listing = await service.browse(prefix, cancel=cancel)
    return BrowseResponse.from_listing(listing)


@router.get(
    "/search",
    response_model=ListResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def search_prefix(
    request: Request,
    prefix: str = "",
    q: str = "",
    service: BrowseService = Depends(get_service),
):
    async with cancel_on_disconnect(request) as cancel:
        listing = await service.search(prefix, q, cancel=cancel)
    return ListResponse.from_listing(listing)


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    settings: Settings = request.app.state.settings
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc),
        environment=settings.app_env,
    )


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


def register_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(InvalidPrefix)
    async def invalid_prefix_handler(request: Request, exc: InvalidPrefix):
        logger.warning("Rejected prefix on %s: %s", request.url.path, exc)
        return _error(400, exc.kind.value, exc.message)

    @app.exception_handler(OperationCancelled)
    async def cancelled_handler(request: Request, exc: OperationCancelled):
        return _error(CLIENT_CLOSED_REQUEST, exc.kind.value, exc.message)

    @app.exception_handler(ApuntesError)
    async def store_error_handler(request: Request, exc: ApuntesError):
        logger.error("Error on %s (%s): %s", request.url.path, exc.kind.value, exc)
        return _error(500, exc.kind.value, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error(404, "Not Found", "The requested endpoint does not exist")
        return _error(exc.status_code, "HTTP Error", str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        message = str(exc) if settings.is_development else "Something went wrong"
        return _error(500, "Internal Server Error", message)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[BrowseService] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if service is None:
        service = BrowseService.from_settings(settings)

    app = FastAPI(title="apuntes-drive")
    app.state.settings = settings
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["Content-Type", "Authorization"],
    )
    register_error_handlers(app, settings)
    app.include_router(router)
    return app
