"""
Lyceum Backend — GridFS File Serving
======================================

What:  Streams files stored in GridFS to browsers.
Why:   Media records point at `/uploads/<mediaType>/<filename>`; these routes
       resolve those URLs (and two shorter aliases) to the stored bytes.
How:   Look up the newest GridFS revision by filename and stream its chunks.
       Content-Type is the primary MIME type of the URL's media type.

Routes:
    GET /{mediaType}/{filename}            inline
    GET /uploads/{mediaType}/{filename}    inline (URL stored in media records)
    GET /download/{mediaType}/{filename}   attachment

This router is mounted last: its two-segment pattern would otherwise
shadow fixed paths.
"""

import logging
from pathlib import PurePosixPath
from urllib.parse import quote

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from app.exceptions import NotFoundError
from app.services.gridfs_storage import gridfs_storage
from app.services.media_types import MEDIA_TYPES, get_mime_type

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Files"])


async def stream_file(media_type: str, filename: str, download: bool = False) -> StreamingResponse:
    """
    Build a streaming response for a GridFS file.

    Raises:
        NotFoundError: Unknown media type or no file with that name.
    """
    if media_type not in MEDIA_TYPES:
        raise NotFoundError(resource="File", resource_id=filename)

    grid_out = await gridfs_storage.open_download(filename)

    headers = {"Cache-Control": "public, max-age=86400"}
    if download:
        basename = PurePosixPath(filename).name
        headers["Content-Disposition"] = f'attachment; filename="{quote(basename)}"'

    return StreamingResponse(
        gridfs_storage.iter_chunks(grid_out),
        media_type=get_mime_type(media_type),
        headers=headers,
    )


@router.get("/download/{media_type}/{filename}", summary="Download a stored file")
async def download_file(media_type: str, filename: str):
    return await stream_file(media_type, filename, download=True)


@router.get("/uploads/{media_type}/{filename}", summary="Serve a stored file")
async def serve_upload(media_type: str, filename: str):
    return await stream_file(media_type, filename)


@router.get("/{media_type}/{filename}", summary="Serve a stored file (short URL)")
async def serve_file(media_type: str, filename: str):
    return await stream_file(media_type, filename)
