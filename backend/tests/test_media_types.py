"""Media type table lookups."""

from app.services.media_types import (
    DEFAULT_MIME_TYPE,
    GB,
    MB,
    get_file_size_limit,
    get_media_type,
    get_mime_type,
    get_mime_types,
    media_type_for_filename,
)


class TestMediaTypes:

    def test_extension_lookup(self):
        assert get_media_type(".jpg") == "image"
        assert get_media_type(".mp4") == "video"
        assert get_media_type(".flac") == "audio"
        assert get_media_type(".pdf") == "file"

    def test_extension_lookup_is_case_insensitive(self):
        assert get_media_type(".PNG") == "image"

    def test_extension_without_dot(self):
        assert get_media_type("webm") == "video"

    def test_unknown_extension(self):
        assert get_media_type(".exe") == "unknown"
        assert get_media_type("") == "unknown"

    def test_filename_lookup(self):
        assert media_type_for_filename("Lecture Notes.DOCX") == "file"
        assert media_type_for_filename("noextension") == "unknown"

    def test_size_limits(self):
        assert get_file_size_limit("image") == 50 * MB
        assert get_file_size_limit("video") == 2 * GB
        assert get_file_size_limit("audio") == 12 * MB
        assert get_file_size_limit("file") == 150 * MB
        assert get_file_size_limit("unknown") == 0

    def test_mime_types(self):
        assert get_mime_type("image") == "image/jpeg"
        assert get_mime_type("video") == "video/mp4"
        assert "audio/flac" in get_mime_types("audio")
        assert get_mime_types("unknown") == []
        assert get_mime_type("unknown") == DEFAULT_MIME_TYPE
