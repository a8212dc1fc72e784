"""
Cloud storage wrapper tests: object naming, URL mapping, credential
decoding and error translation. The google-cloud-storage client is mocked.
"""

import base64
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gexc

from app.exceptions import CloudStorageError
from app.services.cloud_storage import CloudStorage, load_credentials


def make_storage():
    client = MagicMock()
    blob = client.bucket.return_value.blob.return_value
    return CloudStorage(client=client, bucket_name="lectures"), client, blob


class TestNaming:

    def test_object_name_is_prefixed_and_encoded(self):
        name = CloudStorage.object_name_for("my talk.mp4")
        assert name.startswith("media/")
        assert name.endswith("-my%20talk.mp4")

    def test_public_url(self):
        storage, _, _ = make_storage()
        assert storage.public_url("media/1-a.mp4") == "https://storage.googleapis.com/lectures/media/1-a.mp4"

    def test_object_name_from_url(self):
        storage, _, _ = make_storage()
        url = "https://storage.googleapis.com/lectures/media/1-a.mp4"
        assert storage.object_name_from_url(url) == "media/1-a.mp4"

    def test_object_name_from_foreign_url(self):
        storage, _, _ = make_storage()
        assert storage.object_name_from_url("/uploads/video/a.mp4") is None
        assert storage.object_name_from_url("https://storage.googleapis.com/other/a.mp4") is None


class TestCredentials:

    def test_malformed_credentials(self):
        with pytest.raises(CloudStorageError, match="malformed"):
            load_credentials(base64.b64encode(b"not json").decode())

    def test_unconfigured_client(self):
        with pytest.raises(CloudStorageError, match="not configured"):
            CloudStorage().client


class TestUpload:

    @pytest.mark.asyncio
    async def test_upload_returns_public_url(self, tmp_path):
        storage, client, blob = make_storage()
        staged = tmp_path / "talk.mp4"
        staged.write_bytes(b"video")

        url = await storage.upload(staged, "talk.mp4", "video/mp4")

        assert url.startswith("https://storage.googleapis.com/lectures/media/")
        assert url.endswith("-talk.mp4")
        blob.upload_from_filename.assert_called_once_with(str(staged), content_type="video/mp4")

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self):
        storage, _, blob = make_storage()
        blob.upload_from_filename.side_effect = gexc.Forbidden("no access")

        with pytest.raises(CloudStorageError, match="Failed to upload file to cloud storage"):
            await storage.upload(Path("/tmp/x.mp4"), "x.mp4", "video/mp4")
        assert blob.upload_from_filename.call_count == 1

    @pytest.mark.asyncio
    async def test_signed_url(self):
        storage, _, blob = make_storage()
        blob.generate_signed_url.return_value = "https://signed"

        assert await storage.generate_signed_url("media/1-a.mp4") == "https://signed"
        kwargs = blob.generate_signed_url.call_args.kwargs
        assert kwargs["version"] == "v4"
        assert kwargs["method"] == "GET"

    @pytest.mark.asyncio
    async def test_signed_url_failure(self):
        storage, _, blob = make_storage()
        blob.generate_signed_url.side_effect = gexc.NotFound("gone")
        with pytest.raises(CloudStorageError, match="signed URL"):
            await storage.generate_signed_url("media/missing.mp4")
