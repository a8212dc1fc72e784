"""
Schema introspection tests: type names per annotation and the flattened
path maps of the real document models.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from beanie import PydanticObjectId
from bson import Int64

from app.crud.schema_paths import instance_of, is_path_or_parent, schema_paths
from app.models import Appointment, Lecture, Media, User


class Colour(str, Enum):
    RED = "red"


class TestInstanceOf:

    def test_scalars(self):
        assert instance_of(str) == "String"
        assert instance_of(int) == "Number"
        assert instance_of(float) == "Number"
        assert instance_of(bool) == "Boolean"
        assert instance_of(datetime) == "Date"

    def test_bson_types_win_over_builtins(self):
        assert instance_of(Int64) == "Int64"
        assert instance_of(Decimal) == "Decimal128"
        assert instance_of(PydanticObjectId) == "ObjectId"

    def test_optional_unwraps(self):
        assert instance_of(Optional[int]) == "Number"

    def test_union_of_types_is_mixed(self):
        assert instance_of(Optional[int | str]) == "Mixed"

    def test_containers(self):
        assert instance_of(List[str]) == "Array"
        assert instance_of(Dict[str, Any]) == "Mixed"
        assert instance_of(Any) == "Mixed"

    def test_literals_and_enums(self):
        assert instance_of(Literal["a", "b"]) == "String"
        assert instance_of(Literal[1, 2]) == "Number"
        assert instance_of(Colour) == "String"


class TestModelPaths:

    def test_lecture_paths(self):
        paths = schema_paths(Lecture)
        assert paths["_id"] == "ObjectId"
        assert paths["title"] == "String"
        assert paths["lectureType"] == "String"
        assert paths["published"] == "Boolean"
        assert paths["owner"] == "ObjectId"
        assert paths["createdAt"] == "Date"
        assert "revisionId" not in paths
        assert "revision_id" not in paths

    def test_nested_user_paths_are_dotted(self):
        paths = schema_paths(User)
        assert paths["bio.section.about"] == "String"
        assert paths["bio.by"] == "ObjectId"
        assert paths["contactDetails.socialMedia.linkedIn"] == "String"
        assert paths["degrees"] == "Array"
        assert paths["roles"] == "Array"
        assert "bio" not in paths

    def test_appointment_paths(self):
        paths = schema_paths(Appointment)
        assert paths["appointmentDate"] == "Date"
        assert paths["estimatedAttendees"] == "Number"
        assert paths["status"] == "String"

    def test_media_paths(self):
        paths = schema_paths(Media)
        assert paths["mediaType"] == "String"
        assert paths["fileName"] == "String"

    def test_is_path_or_parent(self):
        paths = schema_paths(User)
        assert is_path_or_parent(paths, "bio")
        assert is_path_or_parent(paths, "bio.section")
        assert is_path_or_parent(paths, "email")
        assert not is_path_or_parent(paths, "bi")
        assert not is_path_or_parent(paths, "nothing")
