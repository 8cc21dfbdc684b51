"""
HTTP admin API for the announcement store.

This module provides a REST API over AnnouncementService for operators:
- Publishing, listing and hiding announcements
- Deleting everything / rotating the version
- Health checks

Invariants:
    - Endpoints have the same semantics as the service methods
    - Errors are returned as {"error", "error_code", "details"}
    - Validation failures never reach the store

How to change safely:
    - Add endpoints, don't change existing response shapes
    - Keep the error kind -> status mapping in one place
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import HttpConfig
from ..errors import AnnouncementError, ErrorKind
from ..service import AnnouncementService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Announcements"])

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INDEX_TYPE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NEGATIVE_INDEX: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_ATTACHMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_TEXT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INDEX_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CAPACITY_EXCEEDED: status.HTTP_409_CONFLICT,
    ErrorKind.STORE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# --- Request/Response Models ---


class AnnouncementCreateRequest(BaseModel):
    """Request to publish an announcement."""

    title: str = Field(..., description="Announcement title")
    content: str = Field(..., description="Announcement text")
    attach: Any = Field(None, description="Optional JSON attachment (rewards, links, ...)")


class AnnouncementCreateResponse(BaseModel):
    """Published announcement."""

    id: str
    version: str


class AnnouncementItem(BaseModel):
    """One announcement."""

    index: int
    id: str
    title: str
    content: str
    attach: Any = None
    hidden: bool


class AnnouncementListResponse(BaseModel):
    """Announcements of the current version."""

    announcements: list[AnnouncementItem]
    version: str | None
    expire_at: int


class HideResponse(BaseModel):
    """Result of hiding an announcement."""

    outcome: str
    version: str


class VersionResponse(BaseModel):
    """Current version information."""

    version: str | None
    expire_at: int = 0


# --- Dependencies ---


def get_service(request: Request) -> AnnouncementService:
    """Get the announcement service from app state."""
    return request.app.state.announcement_service


# --- Routes ---


@router.get("/announcements", response_model=AnnouncementListResponse)
async def list_announcements(
    request: Request,
    visible_only: bool = Query(False, description="Drop hidden announcements"),
) -> AnnouncementListResponse:
    """List the current version's announcements (hidden ones included by default)."""
    snapshot = await get_service(request).get_announcement()
    items = [
        AnnouncementItem(index=i, **a.to_dict())
        for i, a in enumerate(snapshot.announcements)
        if not (visible_only and a.hidden)
    ]
    return AnnouncementListResponse(
        announcements=items,
        version=snapshot.version,
        expire_at=snapshot.expire_at,
    )


@router.post(
    "/announcements",
    response_model=AnnouncementCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_announcement(
    request: Request,
    body: AnnouncementCreateRequest,
) -> AnnouncementCreateResponse:
    """Publish an announcement to every player."""
    announcement, entry = await get_service(request).publish(body.title, body.content, body.attach)
    return AnnouncementCreateResponse(id=announcement.id, version=entry.version)


@router.post("/announcements/{index}/hide", response_model=HideResponse)
async def hide_announcement(request: Request, index: str) -> HideResponse:
    """Hide one announcement; hiding the last visible one starts a new version."""
    result = await get_service(request).hide_announcement(index)
    return HideResponse(outcome=result.outcome.value, version=result.entry.version)


@router.delete("/announcements", response_model=VersionResponse)
async def delete_all_announcements(request: Request) -> VersionResponse:
    """Destroy every announcement by starting a new version."""
    service = get_service(request)
    version = await service.delete_all()
    return VersionResponse(version=version, expire_at=await service.get_expire_time())


@router.get("/version", response_model=VersionResponse)
async def get_version(request: Request) -> VersionResponse:
    """Current version id and expiry."""
    entry = await get_service(request).registry.get()
    if entry is None:
        return VersionResponse(version=None, expire_at=0)
    return VersionResponse(version=entry.version, expire_at=entry.expire_at)


@router.post("/version/rotate", response_model=VersionResponse)
async def rotate_version(request: Request) -> VersionResponse:
    """Start a new, empty version."""
    service = get_service(request)
    version = await service.change_version()
    return VersionResponse(version=version, expire_at=await service.get_expire_time())


def create_http_app(
    service: AnnouncementService,
    config: HttpConfig | None = None,
) -> FastAPI:
    """Create the HTTP application for an announcement service.

    The service lifecycle (start/stop) is owned by the caller.

    Args:
        service: AnnouncementService instance
        config: HTTP configuration

    Returns:
        FastAPI application
    """
    config = config or HttpConfig()

    app = FastAPI(
        title="Bulletin",
        description="Server-wide versioned announcements",
        version="1.0.0",
    )
    app.state.announcement_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(AnnouncementError)
    async def announcement_error_handler(request: Request, exc: AnnouncementError) -> JSONResponse:
        status_code = ERROR_STATUS.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
        if status_code >= 500:
            logger.error(f"HTTP handler error: {exc}", exc_info=exc)
        return JSONResponse(exc.to_dict(), status_code=status_code)

    @app.get("/v1/health")
    async def health() -> JSONResponse:
        connected = service.store.is_connected
        return JSONResponse(
            {"status": "healthy" if connected else "unhealthy", "store_connected": connected},
            status_code=status.HTTP_200_OK if connected else status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    app.include_router(router, prefix="/v1")

    return app
