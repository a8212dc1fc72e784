"""
Lyceum Backend — Base Document Model
======================================

What:  Shared Beanie document base for every collection.
Why:   All collections share the same storage conventions: camelCase field
       names in MongoDB, `_id` first in API output, and createdAt/updatedAt
       timestamps maintained on every write.
How:   A pydantic alias generator maps snake_case attributes to the stored
       camelCase names (and `id` to `_id`); Beanie event hooks stamp the
       timestamps; to_json() produces the ordered API representation.

Output ordering (to_json):
    _id, <declared fields...>, contactDetails, bio, createdAt, updatedAt

    Hidden fields (e.g. a password hash) never appear in the output.
"""

from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, Optional, Tuple

from beanie import Document, Insert, PydanticObjectId, Replace, SaveChanges, before_event
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def to_storage_alias(name: str) -> str:
    """snake_case attribute → stored camelCase key; `id` is Mongo's `_id`."""
    if name == "id":
        return "_id"
    return to_camel(name)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# Keys moved to the end of every serialized document
TRAILING_KEYS: Tuple[str, ...] = ("contactDetails", "bio", "createdAt", "updatedAt")


class EmbeddedModel(BaseModel):
    """Sub-document stored inline; uses the same camelCase naming."""

    model_config = ConfigDict(alias_generator=to_storage_alias, populate_by_name=True)


class EmbeddedItem(EmbeddedModel):
    """Array element that carries its own ObjectId, like a Mongoose subdocument."""

    id: PydanticObjectId = Field(default_factory=PydanticObjectId)


class LyceumDocument(Document):
    """
    Base class for all persisted collections.

    Subclasses declare their fields as snake_case attributes and a nested
    `Settings` class with the collection name and indexes.
    """

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_storage_alias, populate_by_name=True)

    # Attribute names never returned by the API
    hidden_fields: ClassVar[FrozenSet[str]] = frozenset()

    # ── Timestamps ────────────────────────────────────────────────────────
    @before_event(Insert)
    def stamp_created(self) -> None:
        now = utc_now()
        self.created_at = self.created_at or now
        self.updated_at = now

    @before_event(Replace, SaveChanges)
    def stamp_updated(self) -> None:
        self.updated_at = utc_now()

    # ── Serialization ─────────────────────────────────────────────────────
    @classmethod
    def hidden_aliases(cls) -> FrozenSet[str]:
        return frozenset(
            cls.model_fields[name].alias or name
            for name in cls.hidden_fields
            if name in cls.model_fields
        )

    def to_json(self, exclude: Iterable[str] = ()) -> Dict[str, Any]:
        """
        JSON-ready dict with stored key names, `_id` first and timestamps last.

        Args:
            exclude: Additional stored keys to drop (e.g. per-service excluded fields).
        """
        data = self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"revision_id", *self.hidden_fields},
        )
        dropped = set(exclude)

        ordered: Dict[str, Any] = {"_id": data.pop("_id", None)}
        trailing = {key: data.pop(key) for key in TRAILING_KEYS if key in data}
        for key, value in data.items():
            if key not in dropped:
                ordered[key] = value
        for key, value in trailing.items():
            if key not in dropped:
                ordered[key] = value
        return ordered
