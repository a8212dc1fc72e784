"""
Lyceum Backend — Media Routes
===============================

What:  Media library listing, single media reads with signed URLs, and the
       dynamic upload endpoint.
Why:   Media records need more than the generic CRUD surface: uploads go
       through the storage pipeline, and video URLs must be signed before a
       browser can play them.
How:   These routes are registered ahead of the generic media CRUD router,
       so they win for GET "", GET /{id} and POST "".

Dynamic upload (POST /api/v1/media):
    multipart with a file in <fieldName> (default "file")
        → stage, store (GridFS / cloud storage with fallback), upsert record → 201
    form (multipart or urlencoded) with no file but a `url` field
        → upsert the record for that url → 201
    JSON body, or a form with neither
        → generic create of a media document
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, Request
from starlette.datastructures import UploadFile

from app.exceptions import ValidationError
from app.schemas.api import MediaListResponse, UploadResponse
from app.services.collections import media_crud_service
from app.services.file_service import file_service
from app.services.media_service import media_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/media", tags=["Media"])

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def current_user_id(request: Request) -> Optional[str]:
    """
    Id of the user resolved by an upstream auth layer, if any.

    The user may be attached to request.state as an object or a dict.
    """
    user = getattr(request.state, "user", None)
    if user is None:
        return None
    user_id = user.get("id") if isinstance(user, dict) else getattr(user, "id", None)
    return str(user_id) if user_id else None


@router.get(
    "",
    response_model=MediaListResponse,
    summary="Media library listing",
    description=(
        "Media sorted by file name, optionally filtered by media type and a "
        "case-insensitive search over file name and alt text. Each item carries "
        "a signedUrl that a browser can load directly."
    ),
)
async def list_media(
    media_type: Optional[str] = Query(default=None, alias="mediaType"),
    search_query: Optional[str] = Query(default=None, alias="searchQuery"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=500),
):
    return await media_service.list_media(
        media_type=media_type,
        search_query=search_query,
        page=page,
        limit=limit,
    )


@router.get("/{media_id}", summary="Get one media record with a signed URL")
async def get_media(media_id: str):
    return await media_service.get_media(media_id)


@router.post(
    "",
    status_code=201,
    summary="Upload a file or create a media record",
    responses={201: {"model": UploadResponse}},
)
async def upload_media(request: Request):
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(FORM_CONTENT_TYPES):
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            raise ValidationError(message="Request body must be valid JSON")
        if not isinstance(payload, dict):
            raise ValidationError(message="Request body must be a JSON object")
        return await media_crud_service.create_item(payload)

    form = await request.form()
    try:
        fields: Dict[str, Any] = {k: v for k, v in form.items() if isinstance(v, str)}
        upload = form.get(fields.get("fieldName") or "file")

        if isinstance(upload, UploadFile) and upload.filename:
            owner = current_user_id(request)
            staged = await file_service.stage_upload(upload, owner)
            try:
                media = await media_service.process_file_upload(staged, fields, owner)
            finally:
                await file_service.cleanup_file(staged.path)
            return {"message": "File uploaded successfully", "media": media}

        if fields.get("url"):
            media = await media_service.create_or_update_media(fields)
            return {"message": "File data updated successfully", "media": media.to_json()}

        fields.pop("fieldName", None)
        return await media_crud_service.create_item(fields)
    finally:
        await form.close()
