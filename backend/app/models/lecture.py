"""Lecture documents, addressable by ObjectId or by slug."""

from typing import Optional

from beanie import PydanticObjectId
from pymongo import ASCENDING, IndexModel

from app.models.base import LyceumDocument


class Lecture(LyceumDocument):
    title: str
    description: str
    language: Optional[str] = None
    media: Optional[PydanticObjectId] = None
    slug: str
    image_url: Optional[str] = None
    content: Optional[str] = None
    owner: Optional[PydanticObjectId] = None
    lecture_type: str
    published: bool = False

    class Settings:
        name = "lectures"
        indexes = [IndexModel([("slug", ASCENDING)])]
