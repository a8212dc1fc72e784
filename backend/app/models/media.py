"""
Media metadata records.

The bytes live in GridFS or Google Cloud Storage; this document only keeps
where to find them (`url`) plus display metadata. `url` is the upsert key
used by the upload pipeline.
"""

from typing import Literal, Optional

from beanie import PydanticObjectId
from pymongo import ASCENDING, IndexModel

from app.models.base import LyceumDocument

MediaKind = Literal["image", "video", "audio", "file", "unknown"]


class Media(LyceumDocument):
    file_name: str
    alt_text: str = ""
    slug: str
    url: str
    owner: Optional[PydanticObjectId] = None
    media_type: MediaKind

    class Settings:
        name = "media"
        indexes = [
            IndexModel([("url", ASCENDING)]),
            IndexModel([("slug", ASCENDING)]),
            IndexModel([("mediaType", ASCENDING), ("fileName", ASCENDING)]),
        ]
