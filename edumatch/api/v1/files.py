"""
Files API Routes
Authorized streaming and presigned links for stored documents and images
"""

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from edumatch.api.dependencies import (
    get_current_actor,
    get_document_access_service,
    get_optional_actor,
)
from edumatch.core.exceptions import PermissionException, ValidationException
from edumatch.core.identity import Actor
from edumatch.core.logging import get_logger
from edumatch.models.common import ErrorResponse
from edumatch.services.access.models import AccessMode, FetchResult, PresignedUrl
from edumatch.services.access.service import DocumentAccessService

logger = get_logger(__name__)
router = APIRouter(
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    }
)

NO_CACHE_HEADERS = {
    "Cache-Control": "private, no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# Characters encodeURIComponent leaves unescaped
URI_COMPONENT_SAFE = "!~*'()"


def _require_locator(url: Optional[str]) -> str:
    if not url or not url.strip():
        raise ValidationException(message="File URL is required")
    return url


def _content_disposition(disposition: str, filename: str) -> str:
    return f'{disposition}; filename="{quote(filename, safe=URI_COMPONENT_SAFE)}"'


def _stream_response(result: FetchResult, headers: dict) -> StreamingResponse:
    if result.content_length is not None:
        headers["Content-Length"] = str(result.content_length)
    return StreamingResponse(
        result.stream,
        media_type=result.content_type or "application/octet-stream",
        headers=headers,
    )


@router.get("/document")
async def get_document(
    url: Optional[str] = Query(None, description="File URL or storage key"),
    disposition: str = Query("attachment", pattern="^(inline|attachment)$"),
    actor: Actor = Depends(get_current_actor),
    service: DocumentAccessService = Depends(get_document_access_service),
):
    """
    Stream an application document

    Only the applicant who uploaded it and institutions that received it
    through an application can read it.

    - **url**: File URL, s3:// URI or storage key
    - **disposition**: inline or attachment
    """
    result = await service.authorize_and_fetch(
        actor, _require_locator(url), AccessMode.STRICT_DOCUMENT
    )
    if not result.allowed:
        raise PermissionException(
            message="You do not have permission to access this document",
            reason=result.reason,
        )

    headers = dict(NO_CACHE_HEADERS)
    headers["Content-Disposition"] = _content_disposition(disposition, result.filename)
    return _stream_response(result, headers)


@router.get("/protected-image")
async def get_protected_image(
    url: Optional[str] = Query(None, description="Image URL or storage key"),
    actor: Actor = Depends(get_optional_actor),
    service: DocumentAccessService = Depends(get_document_access_service),
):
    """Stream a profile image or message attachment"""
    result = await service.authorize_and_fetch(
        actor, _require_locator(url), AccessMode.GENERAL_IMAGE
    )
    if not result.allowed:
        raise PermissionException(
            message="You do not have permission to access this file",
            reason=result.reason,
        )

    headers = {"Cache-Control": "private, max-age=300"}
    return _stream_response(result, headers)


@router.get("/protected-image/url", response_model=PresignedUrl)
async def get_protected_image_url(
    url: Optional[str] = Query(None, description="Image URL or storage key"),
    expires_in: Optional[int] = Query(None, alias="expiresIn", description="Lifetime in seconds"),
    actor: Actor = Depends(get_optional_actor),
    service: DocumentAccessService = Depends(get_document_access_service),
):
    """
    Issue a presigned URL for a profile image or message attachment

    Lifetime defaults to one hour and is clamped to seven days; document-like
    keys are capped at one hour.
    """
    return await service.presign(actor, _require_locator(url), expires_in)
