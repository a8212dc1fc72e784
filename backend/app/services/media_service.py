"""
Lyceum Backend — Media Service (Upload Orchestrator)
======================================================

What:  Pushes staged uploads to their storage destination and records the
       media metadata document.
Why:   Keeps the primary/fallback storage decision and the metadata upsert
       out of the route handlers.
How:   Composes GridFSStorage, CloudStorage and the Media document model.

Upload Flow:
    ┌──────────┐    ┌─────────────────────┐    ┌──────────────────┐
    │  Staged  │───▶│ Primary destination │───▶│ Media upsert     │
    │   file   │    │ video → GCS         │    │ (match on url)   │
    └──────────┘    │ other → GridFS      │    └──────────────────┘
                    └─────────┬───────────┘
                              │ on error
                              ▼
                    ┌─────────────────────┐
                    │ Fallback: GCS       │──▶ on error: UploadFailedError
                    └─────────────────────┘
"""

import logging
import math
import random
import time
from typing import Any, Dict, Mapping, Optional

from beanie import PydanticObjectId
from pydantic import ValidationError as PydanticValidationError

from app.crud.query_builder import parse_object_id, regex_condition
from app.exceptions import LyceumError, NotFoundError, UploadFailedError, ValidationError
from app.models.media import Media
from app.services.cloud_storage import CloudStorage, cloud_storage
from app.services.file_service import StagedFile
from app.services.gridfs_storage import GridFSStorage, gridfs_storage

logger = logging.getLogger(__name__)

# Stored keys a client may set on a media record
MEDIA_KEYS = ("fileName", "altText", "slug", "url", "owner", "mediaType")


def generate_slug(media_type: str) -> str:
    """'<type>-<epoch ms>-<0..9999>'"""
    return f"{media_type}-{int(time.time() * 1000)}-{random.randint(0, 9999)}"


def _validate_media(data: Mapping[str, Any]) -> Media:
    try:
        return Media.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            message="Invalid Media data",
            context={"errors": [
                {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                for err in e.errors()
            ]},
        )


class MediaService:
    """
    Upload orchestration and media-specific reads.

    Args:
        gridfs: GridFS destination (injectable for tests).
        cloud:  Cloud storage destination (injectable for tests).
    """

    def __init__(
        self,
        gridfs: Optional[GridFSStorage] = None,
        cloud: Optional[CloudStorage] = None,
    ):
        self.gridfs = gridfs or gridfs_storage
        self.cloud = cloud or cloud_storage

    # ══════════════════════════════════════════════════════════════════════
    # Upload
    # ══════════════════════════════════════════════════════════════════════

    async def _store_primary(self, staged: StagedFile) -> str:
        if staged.media_type == "video":
            return await self.cloud.upload(staged.path, staged.original_name, staged.content_type)
        return await self.gridfs.upload(
            staged.path,
            staged.original_name,
            staged.content_type,
            staged.media_type,
        )

    async def store_file(self, staged: StagedFile) -> str:
        """
        Store a staged file, falling back to cloud storage when the primary
        destination fails.

        Returns:  The public URL of the stored file.
        Raises:   UploadFailedError when the fallback fails too.
        """
        try:
            return await self._store_primary(staged)
        except LyceumError as primary_error:
            logger.error(
                "Primary storage failed for %s (%s): %s; falling back to cloud storage",
                staged.original_name,
                staged.media_type,
                primary_error.message,
            )

        try:
            return await self.cloud.upload(staged.path, staged.original_name, staged.content_type)
        except LyceumError as fallback_error:
            logger.error(
                "Fallback cloud upload failed for %s: %s",
                staged.original_name,
                fallback_error.message,
            )
            raise UploadFailedError(
                context={"filename": staged.original_name, "media_type": staged.media_type}
            )

    async def process_file_upload(
        self,
        staged: StagedFile,
        form: Mapping[str, Any],
        owner: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Store a staged upload and upsert its media record.

        Args:
            staged: The validated upload on local disk.
            form:   Remaining form fields (fileName, altText).
            owner:  Id of the uploading user, or None.

        Returns:
            The media document as returned by the API.
        """
        url = await self.store_file(staged)
        media_data = {
            "fileName": form.get("fileName") or staged.original_name,
            "altText": form.get("altText") or "",
            "slug": generate_slug(staged.media_type),
            "url": url,
            "owner": PydanticObjectId(owner) if owner and PydanticObjectId.is_valid(owner) else None,
            "mediaType": staged.media_type,
        }
        media = await self.create_or_update_media(media_data)
        logger.info("Media %s recorded for %s", media.id, url)
        return media.to_json()

    async def create_or_update_media(self, media_data: Mapping[str, Any]) -> Media:
        """
        Upsert a media record keyed on `url`.

        An existing record keeps its id and creation time; given fields
        overwrite the stored ones.
        """
        media_data = {k: v for k, v in media_data.items() if k in MEDIA_KEYS and v not in (None, "")}
        url = media_data.get("url")
        if not url:
            raise ValidationError(message="Media url is required", field="url")

        existing = await Media.find_one({"url": url})
        if existing is not None:
            merged = existing.model_dump(by_alias=True, exclude={"revision_id"})
            merged.update(media_data)
            updated = _validate_media(merged)
            updated.id = existing.id
            await updated.replace()
            return updated

        data = dict(media_data)
        data.setdefault("slug", generate_slug(data.get("mediaType", "unknown")))
        data.setdefault("fileName", url.rsplit("/", 1)[-1])
        data.setdefault("mediaType", "unknown")
        media = _validate_media(data)
        await media.insert()
        return media

    # ══════════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════════

    async def signed_url_for(self, media: Mapping[str, Any]) -> str:
        """
        Playable URL for a media record: a signed cloud URL for videos stored
        in the bucket, the stored URL otherwise.
        """
        url = media.get("url") or ""
        if media.get("mediaType") == "video":
            object_name = self.cloud.object_name_from_url(url)
            if object_name:
                return await self.cloud.generate_signed_url(object_name)
        return url

    async def with_signed_url(self, media: Media) -> Dict[str, Any]:
        data = media.to_json()
        data["signedUrl"] = await self.signed_url_for(data)
        return data

    async def get_media(self, media_id: str) -> Dict[str, Any]:
        media = await Media.get(parse_object_id(media_id, "_id"))
        if media is None:
            raise NotFoundError(resource="Media", resource_id=media_id)
        return await self.with_signed_url(media)

    async def list_media(
        self,
        media_type: Optional[str] = None,
        search_query: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        """
        Media library listing sorted by file name.

        Returns:
            {"items", "total", "page", "pages"} where each item has `signedUrl`.
        """
        query: Dict[str, Any] = {}
        if media_type:
            query["mediaType"] = media_type
        if search_query:
            query["$or"] = [
                {"fileName": regex_condition(search_query)},
                {"altText": regex_condition(search_query)},
            ]

        documents = (
            await Media.find(query)
            .sort([("fileName", 1)])
            .skip((page - 1) * limit)
            .limit(limit)
            .to_list()
        )
        total = await Media.find(query).count()

        return {
            "items": [await self.with_signed_url(doc) for doc in documents],
            "total": total,
            "page": page,
            "pages": math.ceil(total / limit) if limit else 0,
        }


media_service = MediaService()
