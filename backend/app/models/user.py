"""
User document: profile data for lecturers and administrators.

Passwords are stored as bcrypt hashes and never serialized. Admin accounts
can only be created or promoted while the service runs in development.
"""

from typing import ClassVar, FrozenSet, List, Literal, Optional

import bcrypt
from beanie import Insert, PydanticObjectId, Replace, SaveChanges, before_event
from pydantic import Field
from pymongo import ASCENDING, IndexModel

from app.config import settings
from app.exceptions import ValidationError
from app.models.base import EmbeddedItem, EmbeddedModel, LyceumDocument

BCRYPT_ROUNDS = 10

Role = Literal["guest", "user", "admin"]


class BioSection(EmbeddedModel):
    about: Optional[str] = None
    description: Optional[str] = None
    vision: Optional[str] = None


class Bio(EmbeddedModel):
    by: Optional[PydanticObjectId] = None
    section: BioSection = Field(default_factory=BioSection)


class Degree(EmbeddedItem):
    title: Optional[str] = None
    institute: Optional[str] = None
    year: Optional[int] = None


class Award(EmbeddedItem):
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    link: Optional[str] = None


class SocialMedia(EmbeddedModel):
    facebook: Optional[str] = None
    twitter: Optional[str] = None
    instagram: Optional[str] = None
    linked_in: Optional[str] = None
    whatsapp: Optional[str] = None


class ContactDetails(EmbeddedModel):
    phone_number: Optional[str] = None
    social_media: SocialMedia = Field(default_factory=SocialMedia)


def _is_bcrypt_hash(value: str) -> bool:
    return value.startswith(("$2a$", "$2b$", "$2y$")) and len(value) == 60


class User(LyceumDocument):
    user_name: str
    email: str = Field(pattern=r".+@.+\..+")
    roles: List[Role] = Field(default_factory=lambda: ["user"])
    password: str
    is_admin: bool = False
    profile_picture: Optional[PydanticObjectId] = None
    bio: Bio = Field(default_factory=Bio)
    degrees: List[Degree] = Field(default_factory=list)
    awards: List[Award] = Field(default_factory=list)
    contact_details: ContactDetails = Field(default_factory=ContactDetails)

    hidden_fields: ClassVar[FrozenSet[str]] = frozenset({"password"})

    class Settings:
        name = "users"
        indexes = [IndexModel([("email", ASCENDING)], unique=True)]

    @before_event(Insert, Replace, SaveChanges)
    def enforce_admin_rule(self) -> None:
        if self.is_admin and not settings.is_development:
            raise ValidationError(
                message="Admin accounts can only be created in development",
                field="isAdmin",
            )

    @before_event(Insert, Replace, SaveChanges)
    def hash_password(self) -> None:
        # Already-hashed values come back unchanged from merged updates
        if not _is_bcrypt_hash(self.password):
            self.password = bcrypt.hashpw(
                self.password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
            ).decode("utf-8")

    def verify_password(self, candidate: str) -> bool:
        return bcrypt.checkpw(candidate.encode("utf-8"), self.password.encode("utf-8"))
