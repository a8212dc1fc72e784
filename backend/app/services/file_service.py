"""
Lyceum Backend — Upload Staging Service
=========================================

What:  Validates incoming uploads and spools them to a local staging directory.
Why:   Both destinations (GridFS and cloud storage) read from a file on disk,
       and a file is only worth pushing anywhere once its type and size have
       been checked.
How:   The extension selects the media type; the upload is streamed to disk
       in chunks with async file I/O, aborting as soon as the type's size
       limit is exceeded.
Who:   Called by the media upload route; staged files are consumed by
       MediaService and removed afterwards.

Staging layout:
    uploads/
    └── <owner id or "default">/
        └── <epoch ms>-<sanitized original name>

Security Model:
    - Only extensions from the media type table are accepted
    - The size limit is enforced while streaming, so oversized uploads never
      fully land on disk
    - Original names are sanitized to [A-Za-z0-9._-]; the owner directory and
      timestamp prefix keep concurrent uploads apart
"""

import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles
from starlette.datastructures import UploadFile

from app.config import settings
from app.exceptions import FileStorageError, ValidationError
from app.services.media_types import (
    UNKNOWN,
    get_file_size_limit,
    get_mime_type,
    get_mime_types,
    media_type_for_filename,
)

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass
class StagedFile:
    """An accepted upload waiting on local disk."""

    path: Path
    original_name: str
    media_type: str
    content_type: str
    size: int


class FileService:
    """
    Validates and stages uploaded files.

    Lifecycle of an upload:
        1. validate_extension() → media type (400 "Invalid file type.")
        2. stage_upload() streams to disk, enforcing the size limit
        3. MediaService pushes the staged file to GridFS / cloud storage
        4. cleanup_file() removes the staged copy
    """

    def __init__(self, upload_root: Optional[str] = None):
        """
        Args:
            upload_root: Override the staging directory (used in tests).
        """
        self.upload_root = Path(upload_root or settings.upload_root).resolve()
        self.upload_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with upload_root=%s", self.upload_root)

    def validate_extension(self, filename: str) -> str:
        """
        Resolve the media type from the file extension.

        Returns: The media type name.
        Raises:  ValidationError for extensions outside the media type table.
        """
        media_type = media_type_for_filename(filename)
        if media_type == UNKNOWN:
            raise ValidationError(
                message="Invalid file type.",
                field="file",
                context={"extension": Path(filename).suffix.lower()},
            )
        return media_type

    def validate_size(self, media_type: str, size: int) -> None:
        if size > get_file_size_limit(media_type):
            raise ValidationError(
                message=f"File size exceeds the limit for {media_type}.",
                field="file",
                context={"limit": get_file_size_limit(media_type)},
            )

    @staticmethod
    def sanitize_filename(filename: str) -> str:
        """Keeps only the basename, replacing characters outside [A-Za-z0-9._-] with '_'."""
        name = Path(filename.replace("\\", "/")).name
        return _UNSAFE_CHARS.sub("_", name) or "upload"

    @staticmethod
    def content_type_for(declared: Optional[str], media_type: str) -> str:
        """The client's declared MIME type when it fits the media type, else the default."""
        if declared and declared in get_mime_types(media_type):
            return declared
        return get_mime_type(media_type)

    def _generate_staging_path(self, owner: Optional[str], filename: str) -> Path:
        directory = self.upload_root / (owner or "default")
        timestamp = int(time.time() * 1000)
        return directory / f"{timestamp}-{self.sanitize_filename(filename)}"

    async def stage_upload(self, upload: UploadFile, owner: Optional[str] = None) -> StagedFile:
        """
        Validate an upload and stream it to the staging directory.

        Args:
            upload: The multipart file.
            owner:  Id of the uploading user, or None.

        Raises:
            ValidationError:  Unsupported extension or size limit exceeded.
            FileStorageError: The staging directory is not writable.
        """
        original_name = upload.filename or ""
        media_type = self.validate_extension(original_name)
        limit = get_file_size_limit(media_type)
        path = self._generate_staging_path(owner, original_name)

        size = 0
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                while True:
                    chunk = await upload.read(settings.upload_chunk_size)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > limit:
                        break
                    await f.write(chunk)
        except OSError as e:
            logger.error("Failed to stage upload at %s: %s", path, e)
            await self.cleanup_file(path)
            raise FileStorageError(
                message="Failed to save uploaded file. Please try again.",
                context={"path": str(path), "os_error": str(e)},
            )

        if size > limit:
            await self.cleanup_file(path)
            self.validate_size(media_type, size)

        logger.info("Upload staged: %s (%s, %d bytes)", path.name, media_type, size)
        return StagedFile(
            path=path,
            original_name=original_name,
            media_type=media_type,
            content_type=self.content_type_for(upload.content_type, media_type),
            size=size,
        )

    async def cleanup_file(self, file_path) -> None:
        """
        Remove a staged file if it exists.

        Best-effort: a failed delete is logged, never raised, because the
        upload itself has already succeeded or failed by the time this runs.
        """
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.debug("Cleaned up staged file: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, e)


file_service = FileService()
