"""
Lyceum Backend — GridFS Storage
=================================

What:  Stores staged uploads in the MongoDB GridFS bucket and streams them back.
Why:   Images, audio and documents live next to their metadata in the
       application database; no external service is needed to serve them.
How:   Files are written through AsyncIOMotorGridFSBucket upload streams,
       chunk by chunk, and looked up by filename (newest revision wins).

Files are addressed by their original filename, which is what the public
URL `/uploads/<mediaType>/<filename>` carries.
"""

import logging
from pathlib import Path
from typing import AsyncIterator, Optional
from urllib.parse import quote

import aiofiles
from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorGridFSBucket, AsyncIOMotorGridOut

from app.config import settings
from app.database import get_bucket
from app.exceptions import FileStorageError, NotFoundError

logger = logging.getLogger(__name__)


def gridfs_url(media_type: str, filename: str) -> str:
    """Public URL served by routes/files.py for a GridFS file."""
    return f"/uploads/{media_type}/{quote(filename)}"


class GridFSStorage:
    """
    Upload and download helpers around the shared GridFS bucket.

    Args:
        bucket: Explicit bucket (used in tests); defaults to database.get_bucket().
    """

    def __init__(self, bucket: Optional[AsyncIOMotorGridFSBucket] = None):
        self._bucket = bucket

    @property
    def bucket(self) -> AsyncIOMotorGridFSBucket:
        return self._bucket or get_bucket()

    async def upload(
        self,
        path: Path,
        filename: str,
        content_type: str,
        media_type: str,
    ) -> str:
        """
        Copy a staged file into GridFS.

        Returns:  The public URL of the stored file.
        Raises:   FileStorageError when reading or writing fails; the partial
                  GridFS file is aborted.
        """
        grid_in = self.bucket.open_upload_stream(
            filename,
            metadata={"contentType": content_type, "mediaType": media_type},
        )
        try:
            async with aiofiles.open(path, "rb") as f:
                while True:
                    chunk = await f.read(settings.upload_chunk_size)
                    if not chunk:
                        break
                    await grid_in.write(chunk)
            await grid_in.close()
        except Exception as e:
            await grid_in.abort()
            logger.error("GridFS upload failed for %s: %s", filename, e)
            raise FileStorageError(
                message="Failed to store file in GridFS",
                context={"filename": filename, "error_type": type(e).__name__},
            )

        logger.info("Stored %s in GridFS as %s", path.name, filename)
        return gridfs_url(media_type, filename)

    async def open_download(self, filename: str) -> AsyncIOMotorGridOut:
        """
        Open the newest revision of `filename`.

        Raises: NotFoundError when no file by that name exists.
        """
        try:
            return await self.bucket.open_download_stream_by_name(filename)
        except NoFile:
            raise NotFoundError(resource="File", resource_id=filename)

    @staticmethod
    async def iter_chunks(grid_out: AsyncIOMotorGridOut) -> AsyncIterator[bytes]:
        """Yields the file's stored chunks in order."""
        while True:
            chunk = await grid_out.readchunk()
            if not chunk:
                break
            yield chunk


gridfs_storage = GridFSStorage()
