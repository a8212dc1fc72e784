"""
Lyceum Backend — Document Model Tests
=======================================

What:  Serialization order, timestamp hooks, password hashing and the admin rule.
How:   Documents are constructed directly (conftest fakes the Motor collection)
       and the Beanie hooks are called as plain methods.
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.exceptions import ValidationError
from app.models import Lecture, User


def make_user(**overrides):
    data = {"userName": "ada", "email": "ada@example.com", "password": "s3cret!"}
    data.update(overrides)
    return User(**data)


class TestToJson:

    def test_id_first_and_timestamps_last(self):
        lecture = Lecture(title="Intro", description="d", slug="intro", lectureType="talk")
        lecture.stamp_created()
        keys = list(lecture.to_json().keys())
        assert keys[0] == "_id"
        assert keys[-2:] == ["createdAt", "updatedAt"]

    def test_contact_details_and_bio_trail(self):
        keys = list(make_user().to_json().keys())
        assert keys[-4:] == ["contactDetails", "bio", "createdAt", "updatedAt"]

    def test_camel_case_keys(self):
        data = Lecture(title="t", description="d", slug="s", lectureType="talk", imageUrl="x").to_json()
        assert data["lectureType"] == "talk"
        assert data["imageUrl"] == "x"
        assert "lecture_type" not in data

    def test_password_never_serialized(self):
        assert "password" not in make_user().to_json()

    def test_revision_id_not_serialized(self):
        data = Lecture(title="t", description="d", slug="s", lectureType="talk").to_json()
        assert "revisionId" not in data
        assert "revision_id" not in data

    def test_extra_exclusions(self):
        data = Lecture(title="t", description="d", slug="s", lectureType="talk").to_json(exclude=["content"])
        assert "content" not in data

    def test_snake_case_population(self):
        lecture = Lecture(title="t", description="d", slug="s", lecture_type="talk")
        assert lecture.lecture_type == "talk"


class TestTimestamps:

    def test_insert_sets_both(self):
        lecture = Lecture(title="t", description="d", slug="s", lectureType="talk")
        lecture.stamp_created()
        assert lecture.created_at is not None
        assert lecture.updated_at == lecture.created_at

    def test_insert_keeps_existing_created_at(self):
        earlier = datetime(2020, 1, 1, tzinfo=timezone.utc)
        lecture = Lecture(title="t", description="d", slug="s", lectureType="talk", createdAt=earlier)
        lecture.stamp_created()
        assert lecture.created_at == earlier
        assert lecture.updated_at > earlier

    def test_update_moves_updated_at_only(self):
        earlier = datetime(2020, 1, 1, tzinfo=timezone.utc)
        lecture = Lecture(
            title="t", description="d", slug="s", lectureType="talk",
            createdAt=earlier, updatedAt=earlier,
        )
        lecture.stamp_updated()
        assert lecture.created_at == earlier
        assert lecture.updated_at > earlier


class TestUserRules:

    def test_password_hashed_with_cost_10(self):
        user = make_user()
        user.hash_password()
        assert user.password.startswith("$2b$10$")
        assert user.verify_password("s3cret!")
        assert not user.verify_password("wrong")

    def test_existing_hash_not_rehashed(self):
        user = make_user()
        user.hash_password()
        hashed = user.password
        user.hash_password()
        assert user.password == hashed

    def test_admin_rejected_outside_development(self):
        user = make_user(isAdmin=True)
        with patch("app.models.user.settings") as mock_settings:
            mock_settings.is_development = False
            with pytest.raises(ValidationError, match="development"):
                user.enforce_admin_rule()

    def test_admin_allowed_in_development(self):
        user = make_user(isAdmin=True)
        with patch("app.models.user.settings") as mock_settings:
            mock_settings.is_development = True
            user.enforce_admin_rule()

    def test_regular_user_always_allowed(self):
        make_user().enforce_admin_rule()

    def test_default_role(self):
        assert make_user().roles == ["user"]

    def test_invalid_email_rejected(self):
        with pytest.raises(PydanticValidationError):
            make_user(email="not-an-email")

    def test_embedded_items_get_ids(self):
        user = make_user(degrees=[{"title": "BSc"}])
        assert user.to_json()["degrees"][0]["_id"]
