"""
REST API for Resumable Uploads

Design Decision: API Framework
==============================

Options Considered:
1. FastAPI - Modern, fast, auto-docs, async support
2. Flask - Simple, widely used, but sync-focused
3. aiohttp - Async, but less features
4. Starlette - Lightweight, FastAPI is built on it

Decision: FastAPI
- Native async support (chunk bodies are streamed, not buffered)
- Automatic OpenAPI documentation
- Pydantic integration for responses
- CORS middleware out of the box

API Design:
- POST /upload             Create a transfer (Upload-Length, Upload-Metadata)
- PATCH /upload?patch=ID   Send a chunk (Upload-Offset, Upload-Length, Upload-Name)
- HEAD /upload?patch=ID    Get the offset to resume from
- GET /health              Liveness check
- Offsets travel in the Upload-Offset response header
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel
from starlette.requests import ClientDisconnect

from ..config import Config
from ..service import TransferService
from ..transfer import (
    InvalidArgument, NotFound, OffsetConflict, StorageUnavailable,
    TransferError, TransferFinalized,
)

logger = logging.getLogger(__name__)

CORS_METHODS = ["POST", "GET", "OPTIONS", "PUT", "DELETE", "PATCH", "HEAD"]
CORS_HEADERS = [
    "Accept", "Content-Type", "Content-Length", "Accept-Encoding",
    "X-CSRF-Token", "Authorization",
    "Upload-Length", "Upload-Offset", "Upload-Metadata", "Upload-Name",
]
CORS_EXPOSE_HEADERS = ["Upload-Offset", "Location"]


# === Pydantic Models ===

class HealthStatus(BaseModel):
    """Health check response."""
    status: str


class TransferStatus(BaseModel):
    """Information about a transfer."""
    transfer_id: str
    declared_length: int
    offset: int
    client_metadata: str
    created_at: float
    final_name: Optional[str] = None
    finalized_at: Optional[float] = None
    is_complete: bool
    is_finalized: bool


# === Helpers ===

def to_http_error(error: TransferError) -> HTTPException:
    """Map a transfer failure to the status code clients expect."""
    if isinstance(error, NotFound):
        return HTTPException(status_code=404, detail="Transfer not found")
    if isinstance(error, (OffsetConflict, TransferFinalized)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, InvalidArgument):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, StorageUnavailable):
        logger.error(f"Storage error: {error}")
        return HTTPException(status_code=500, detail="Failed to access transfer storage")
    return HTTPException(status_code=500, detail=str(error))


async def request_body(request: Request) -> AsyncIterator[bytes]:
    """Stream the request body, reporting a client hang-up as ConnectionError."""
    try:
        async for piece in request.stream():
            yield piece
    except ClientDisconnect as e:
        raise ConnectionError("Client disconnected mid-chunk") from e


# === API Creation ===

def create_app(service: TransferService = None, config: Config = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: TransferService to expose (built from config if not provided)
        config: Configuration used when no service is given

    Returns:
        FastAPI application
    """
    if service is None:
        service = TransferService(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown."""
        logger.info(f"API server starting, uploads in {service.store.upload_dir}")
        yield
        logger.info("API server stopping...")

    app = FastAPI(
        title="Resumable Upload API",
        description="Chunked, resumable file uploads over HTTP",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=service.config.cors_origins,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        expose_headers=CORS_EXPOSE_HEADERS,
    )

    # === Upload Protocol ===

    @app.post("/upload", response_class=PlainTextResponse, tags=["Upload"])
    async def create_transfer(
        upload_length: Optional[str] = Header(None),
        upload_metadata: Optional[str] = Header(None),
    ):
        """Create a transfer; the body of the response is its id."""
        if upload_length is None:
            raise HTTPException(status_code=400, detail="Upload-Length header required")

        try:
            transfer_id = await service.create_transfer(upload_length, upload_metadata)
        except TransferError as e:
            raise to_http_error(e)

        return PlainTextResponse(transfer_id)

    @app.patch("/upload", status_code=204, tags=["Upload"])
    async def apply_chunk(
        request: Request,
        patch: Optional[str] = None,
        upload_offset: Optional[str] = Header(None),
        upload_length: Optional[str] = Header(None),
        upload_name: Optional[str] = Header(None),
    ):
        """Write the request body at Upload-Offset."""
        if not patch:
            raise HTTPException(status_code=400, detail="Missing patch ID")

        if upload_offset is None or upload_length is None:
            raise HTTPException(
                status_code=400,
                detail="Upload-Offset and Upload-Length headers required",
            )

        try:
            new_offset = await service.apply_chunk(
                patch,
                upload_offset,
                request_body(request),
                total_length=upload_length,
                file_name=upload_name,
            )
        except TransferError as e:
            raise to_http_error(e)
        except Exception as e:
            logger.error(f"Error applying chunk to {patch}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to write chunk")

        return Response(status_code=204, headers={"Upload-Offset": str(new_offset)})

    @app.head("/upload", tags=["Upload"])
    async def current_offset(patch: Optional[str] = None):
        """Report how many bytes of a transfer have been received."""
        if not patch:
            raise HTTPException(status_code=400, detail="Missing patch ID")

        try:
            offset = await service.current_offset(patch)
        except TransferError as e:
            raise to_http_error(e)

        return Response(status_code=200, headers={"Upload-Offset": str(offset)})

    @app.options("/upload", tags=["Upload"])
    @app.options("/health", tags=["General"])
    async def preflight():
        """Answer OPTIONS requests that the CORS middleware let through."""
        return Response(status_code=200)

    # === Status ===

    @app.get("/health", response_model=HealthStatus, tags=["General"])
    async def health():
        """Liveness check."""
        return HealthStatus(status="ok")

    @app.get("/stats", tags=["General"])
    async def get_stats():
        """Get service statistics."""
        try:
            return await service.get_stats()
        except TransferError as e:
            raise to_http_error(e)

    @app.get("/transfers", response_model=List[TransferStatus], tags=["Transfers"])
    async def list_transfers():
        """List all transfers on disk."""
        try:
            transfers = await service.list_transfers()
        except TransferError as e:
            raise to_http_error(e)

        return [TransferStatus(**t.to_dict()) for t in transfers]

    @app.get("/transfers/{transfer_id}", response_model=TransferStatus, tags=["Transfers"])
    async def get_transfer(transfer_id: str):
        """Get information about a specific transfer."""
        try:
            info = await service.get_transfer_info(transfer_id)
        except TransferError as e:
            raise to_http_error(e)

        return TransferStatus(**info.to_dict())

    return app


async def run_api_server(service: TransferService, host: str = "0.0.0.0",
                         port: int = 8090, log_level: str = "info"):
    """
    Run the API server.

    Args:
        service: TransferService instance
        host: Host to bind to
        port: Port to listen on
        log_level: uvicorn log level
    """
    import uvicorn

    app = create_app(service)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level=log_level,
    )
    server = uvicorn.Server(config)
    await server.serve()
