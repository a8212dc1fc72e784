"""
Lyceum Backend — API Route Tests
==================================

What:  HTTP-level tests for the CRUD, media, file-serving and health routes.
Why:   Checks routing precedence, query parsing, status codes and the error
       body shape that clients rely on.
How:   HTTPX AsyncClient over ASGITransport; the services behind each route
       are patched, so no database or bucket is touched.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

from app.config import settings
from app.exceptions import DatabaseError, NotFoundError, UploadFailedError
from app.main import create_app
from app.middleware.rate_limit import RateLimitMiddleware
from app.models import User
from app.services.collections import lecture_service, media_crud_service

LIST_RESULT = {"items": [], "total": 7, "page": 2, "limit": 24, "offset": 0}


class TestCrudRoutes:

    @pytest.mark.asyncio
    async def test_list_splits_reserved_params_from_filters(self, test_client):
        with patch.object(lecture_service, "read_items", new=AsyncMock(return_value=LIST_RESULT)) as mock_read:
            response = await test_client.get(
                "/api/v1/lectures",
                params={"page": "2", "sortField": "title", "published": "true"},
            )

        assert response.status_code == 200
        assert response.headers["X-Total-Count"] == "7"
        assert response.json()["total"] == 7
        params, filters = mock_read.call_args[0]
        assert params.page == 2
        assert params.sort_field == "title"
        assert filters == {"published": "true"}

    @pytest.mark.asyncio
    async def test_list_invalid_page(self, test_client):
        response = await test_client.get("/api/v1/lectures", params={"page": "0"})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert "page" in body["message"]

    @pytest.mark.asyncio
    async def test_get_by_id(self, test_client):
        oid = str(ObjectId())
        with patch.object(lecture_service, "read_item", new=AsyncMock(return_value={"_id": oid})) as mock_read:
            response = await test_client.get(f"/api/v1/lectures/{oid}")
        assert response.status_code == 200
        mock_read.assert_awaited_once_with(oid)

    @pytest.mark.asyncio
    async def test_not_found_body(self, test_client):
        with patch.object(
            lecture_service, "read_item", new=AsyncMock(side_effect=NotFoundError(resource="Lecture"))
        ):
            response = await test_client.get(f"/api/v1/lectures/{ObjectId()}")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert body["message"] == "Lecture not found"
        assert "request_id" in body

    @pytest.mark.asyncio
    async def test_slug_lookup(self, test_client):
        with patch.object(lecture_service, "read_item_by_slug", new=AsyncMock(return_value={"slug": "intro"})) as mock_slug:
            response = await test_client.get("/api/v1/lectures/slug/intro")
        assert response.status_code == 200
        mock_slug.assert_awaited_once_with("intro")

    @pytest.mark.asyncio
    async def test_field_of_document(self, test_client):
        oid = str(ObjectId())
        with patch.object(lecture_service, "read_field_by_id", new=AsyncMock(return_value={"title": "x"})) as mock_field:
            response = await test_client.get(f"/api/v1/lectures/{oid}/title")
        assert response.json() == {"title": "x"}
        mock_field.assert_awaited_once_with(oid, "title")

    @pytest.mark.asyncio
    async def test_field_lookup_options(self, test_client):
        with patch.object(lecture_service, "read_item_by_field", new=AsyncMock(return_value={"lectureType": "talk"})) as mock_by_field:
            response = await test_client.get(
                "/api/v1/lectures/lectureType/talk",
                params={"single": "true", "sort": "-createdAt"},
            )
        assert response.status_code == 200
        kwargs = mock_by_field.call_args.kwargs
        assert mock_by_field.call_args[0] == ("lectureType", "talk")
        assert kwargs["single"] is True
        assert kwargs["sort"] == "-createdAt"
        assert kwargs["limit"] is None

    @pytest.mark.asyncio
    async def test_operator_key_rejected(self, test_client):
        with patch.object(User, "find") as mock_find:
            response = await test_client.get("/api/v1/users/$where/this.password.startsWith('$2b')")
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["message"] == "Invalid field '$where'"
        mock_find.assert_not_called()

    @pytest.mark.asyncio
    async def test_hidden_subpath_key_rejected(self, test_client):
        with patch.object(User, "find") as mock_find:
            response = await test_client.get("/api/v1/users/password.x/y")
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid field 'password.x'"
        mock_find.assert_not_called()

    @pytest.mark.asyncio
    async def test_create(self, test_client):
        with patch.object(lecture_service, "create_item", new=AsyncMock(return_value={"title": "t"})) as mock_create:
            response = await test_client.post("/api/v1/lectures", json={"title": "t"})
        assert response.status_code == 201
        mock_create.assert_awaited_once_with({"title": "t"})

    @pytest.mark.asyncio
    async def test_bulk_routes_are_not_ids(self, test_client):
        ids = [str(ObjectId())]
        with patch.object(lecture_service, "update_many", new=AsyncMock(return_value=[])) as mock_update, \
             patch.object(lecture_service, "delete_many", new=AsyncMock(return_value={"deletedCount": 1})) as mock_delete:
            update = await test_client.patch("/api/v1/lectures/bulk", json={"ids": ids, "update": {"published": True}})
            delete = await test_client.request("DELETE", "/api/v1/lectures/bulk", json={"ids": ids})

        assert update.status_code == 200
        mock_update.assert_awaited_once_with(ids, {"published": True})
        assert delete.json() == {"deletedCount": 1}
        mock_delete.assert_awaited_once_with(ids)

    @pytest.mark.asyncio
    async def test_update_and_delete_one(self, test_client):
        oid = str(ObjectId())
        with patch.object(lecture_service, "update_item", new=AsyncMock(return_value={"_id": oid})) as mock_update, \
             patch.object(
                 lecture_service,
                 "delete_item",
                 new=AsyncMock(return_value={"message": "Lecture deleted successfully", "_id": oid}),
             ):
            put = await test_client.put(f"/api/v1/lectures/{oid}", json={"title": "x"})
            delete = await test_client.delete(f"/api/v1/lectures/{oid}")

        assert put.status_code == 200
        mock_update.assert_awaited_once_with(oid, {"title": "x"})
        assert delete.json() == {"message": "Lecture deleted successfully", "_id": oid}

    @pytest.mark.asyncio
    async def test_database_error(self, test_client):
        with patch.object(
            lecture_service,
            "read_items",
            new=AsyncMock(side_effect=DatabaseError(message="Error fetching Lectures")),
        ):
            response = await test_client.get("/api/v1/lectures")
        assert response.status_code == 500
        assert response.json()["message"] == "Error fetching Lectures"


class TestMediaRoutes:

    @pytest.mark.asyncio
    async def test_upload_file(self, test_client, sample_image_bytes):
        with patch("app.routes.media.media_service") as mock_media:
            mock_media.process_file_upload = AsyncMock(return_value={"url": "/uploads/image/cover.jpg"})
            response = await test_client.post(
                "/api/v1/media",
                files={"file": ("cover.jpg", sample_image_bytes, "image/jpeg")},
                data={"altText": "Cover"},
            )

        assert response.status_code == 201
        assert response.json() == {
            "message": "File uploaded successfully",
            "media": {"url": "/uploads/image/cover.jpg"},
        }
        staged, form, owner = mock_media.process_file_upload.call_args[0]
        assert staged.media_type == "image"
        assert form["altText"] == "Cover"
        assert owner is None
        assert not staged.path.exists()

    @pytest.mark.asyncio
    async def test_upload_custom_field_name(self, test_client):
        with patch("app.routes.media.media_service") as mock_media:
            mock_media.process_file_upload = AsyncMock(return_value={})
            response = await test_client.post(
                "/api/v1/media",
                files={"attachment": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
                data={"fieldName": "attachment"},
            )
        assert response.status_code == 201
        assert mock_media.process_file_upload.call_args[0][0].media_type == "file"

    @pytest.mark.asyncio
    async def test_upload_unsupported_type(self, test_client):
        with patch("app.routes.media.media_service") as mock_media:
            response = await test_client.post(
                "/api/v1/media",
                files={"file": ("tool.exe", b"MZ", "application/octet-stream")},
            )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid file type."
        mock_media.process_file_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_both_destinations_failed(self, test_client, sample_image_bytes):
        with patch("app.routes.media.media_service") as mock_media:
            mock_media.process_file_upload = AsyncMock(side_effect=UploadFailedError())
            response = await test_client.post(
                "/api/v1/media",
                files={"file": ("cover.jpg", sample_image_bytes, "image/jpeg")},
            )
        assert response.status_code == 500
        assert response.json()["message"] == (
            "Failed to upload media to both MongoDB and Google Cloud Storage."
        )

    @pytest.mark.asyncio
    async def test_url_only_upserts(self, test_client):
        record = MagicMock()
        record.to_json.return_value = {"url": "https://cdn.example.com/a.png"}
        with patch("app.routes.media.media_service") as mock_media:
            mock_media.create_or_update_media = AsyncMock(return_value=record)
            response = await test_client.post(
                "/api/v1/media",
                data={"url": "https://cdn.example.com/a.png", "altText": "A"},
            )
        assert response.status_code == 201
        assert response.json()["message"] == "File data updated successfully"
        fields = mock_media.create_or_update_media.call_args[0][0]
        assert fields["altText"] == "A"

    @pytest.mark.asyncio
    async def test_json_body_is_generic_create(self, test_client):
        with patch.object(media_crud_service, "create_item", new=AsyncMock(return_value={"slug": "s"})) as mock_create:
            response = await test_client.post("/api/v1/media", json={"slug": "s"})
        assert response.status_code == 201
        mock_create.assert_awaited_once_with({"slug": "s"})

    @pytest.mark.asyncio
    async def test_list_media(self, test_client):
        with patch("app.routes.media.media_service") as mock_media:
            mock_media.list_media = AsyncMock(return_value={"items": [], "total": 0, "page": 1, "pages": 0})
            response = await test_client.get(
                "/api/v1/media", params={"mediaType": "video", "searchQuery": "talk"}
            )
        assert response.status_code == 200
        mock_media.list_media.assert_awaited_once_with(
            media_type="video", search_query="talk", page=1, limit=10
        )

    @pytest.mark.asyncio
    async def test_get_media_has_signed_url(self, test_client):
        oid = str(ObjectId())
        with patch("app.routes.media.media_service") as mock_media:
            mock_media.get_media = AsyncMock(return_value={"_id": oid, "signedUrl": "https://signed"})
            response = await test_client.get(f"/api/v1/media/{oid}")
        assert response.json()["signedUrl"] == "https://signed"

    @pytest.mark.asyncio
    async def test_media_field_lookup_uses_generic_router(self, test_client):
        with patch.object(media_crud_service, "read_item_by_field", new=AsyncMock(return_value=[])) as mock_by_field:
            response = await test_client.get("/api/v1/media/mediaType/image")
        assert response.status_code == 200
        mock_by_field.assert_awaited_once()


async def _chunks(grid_out):
    yield b"abc"
    yield b"def"


class TestFileRoutes:

    @pytest.mark.asyncio
    async def test_serve_upload(self, test_client):
        with patch("app.routes.files.gridfs_storage") as mock_gridfs:
            mock_gridfs.open_download = AsyncMock(return_value=MagicMock())
            mock_gridfs.iter_chunks = _chunks
            response = await test_client.get("/uploads/image/cover.png")

        assert response.status_code == 200
        assert response.content == b"abcdef"
        assert response.headers["content-type"].startswith("image/jpeg")
        mock_gridfs.open_download.assert_awaited_once_with("cover.png")

    @pytest.mark.asyncio
    async def test_short_url(self, test_client):
        with patch("app.routes.files.gridfs_storage") as mock_gridfs:
            mock_gridfs.open_download = AsyncMock(return_value=MagicMock())
            mock_gridfs.iter_chunks = _chunks
            response = await test_client.get("/audio/theme.mp3")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("audio/mpeg")

    @pytest.mark.asyncio
    async def test_download_sets_attachment(self, test_client):
        with patch("app.routes.files.gridfs_storage") as mock_gridfs:
            mock_gridfs.open_download = AsyncMock(return_value=MagicMock())
            mock_gridfs.iter_chunks = _chunks
            response = await test_client.get("/download/file/lecture%20notes.pdf")
        assert response.headers["content-disposition"] == 'attachment; filename="lecture%20notes.pdf"'

    @pytest.mark.asyncio
    async def test_missing_file(self, test_client):
        with patch("app.routes.files.gridfs_storage") as mock_gridfs:
            mock_gridfs.open_download = AsyncMock(side_effect=NotFoundError(resource="File"))
            response = await test_client.get("/uploads/image/missing.png")
        assert response.status_code == 404
        assert response.json()["message"] == "File not found"

    @pytest.mark.asyncio
    async def test_unknown_media_type(self, test_client):
        response = await test_client.get("/hologram/a.png")
        assert response.status_code == 404


class TestServiceRoutes:

    @pytest.mark.asyncio
    async def test_root(self, test_client):
        response = await test_client.get("/")
        assert response.status_code == 200
        assert response.text == "<h1>Hello World</h1>"

    @pytest.mark.asyncio
    async def test_health_degraded_without_cloud_storage(self, test_client):
        with patch("app.routes.health.ping_database", new=AsyncMock(return_value=True)):
            response = await test_client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["database"] == "connected"
        assert body["cloud_storage"] == "unconfigured"
        assert body["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_health_unhealthy_without_database(self, test_client):
        with patch("app.routes.health.ping_database", new=AsyncMock(return_value=False)):
            response = await test_client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    @pytest.mark.asyncio
    async def test_malformed_request_id_replaced(self, test_client):
        response = await test_client.get("/", headers={"X-Request-ID": "not valid!"})
        assert response.headers["X-Request-ID"] != "not valid!"
        assert len(response.headers["X-Request-ID"]) == 8


class TestRateLimit:
    """Per-client limit, 429 body, and exempt paths; each test gets a fresh app."""

    @pytest_asyncio.fixture
    async def limited_client(self):
        with patch.object(settings, "rate_limit_requests", 3):
            transport = ASGITransport(app=create_app())
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client

    @pytest.mark.asyncio
    async def test_limit_exceeded(self, limited_client):
        statuses = [(await limited_client.get("/api/v1/missing")).status_code for _ in range(4)]
        assert statuses == [404, 404, 404, 429]

        response = await limited_client.get("/api/v1/missing")
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0
        body = response.json()
        assert body["error"] == "rate_limit_exceeded"
        assert body["message"].startswith("Rate limit exceeded")
        assert body["details"]["retry_after"] == int(response.headers["Retry-After"])
        assert "request_id" in body

    @pytest.mark.asyncio
    async def test_forwarded_for_ignored_by_default(self, limited_client):
        statuses = [
            (await limited_client.get("/api/v1/missing", headers={"X-Forwarded-For": f"10.0.0.{i}"})).status_code
            for i in range(4)
        ]
        assert statuses[-1] == 429

    @pytest.mark.asyncio
    async def test_forwarded_for_honored_when_trusted(self, limited_client):
        with patch.object(settings, "trust_forwarded_for", True):
            statuses = [
                (await limited_client.get("/api/v1/missing", headers={"X-Forwarded-For": f"10.0.0.{i}"})).status_code
                for i in range(4)
            ]
        assert 429 not in statuses

    @pytest.mark.asyncio
    async def test_health_is_exempt(self, limited_client):
        with patch("app.routes.health.ping_database", new=AsyncMock(return_value=True)):
            statuses = [(await limited_client.get("/health")).status_code for _ in range(5)]
        assert 429 not in statuses

    @pytest.mark.asyncio
    async def test_preflight_is_exempt(self, limited_client):
        headers = {"Origin": "http://localhost:4200", "Access-Control-Request-Method": "GET"}
        statuses = [
            (await limited_client.options("/api/v1/lectures", headers=headers)).status_code
            for _ in range(5)
        ]
        assert 429 not in statuses

    def test_file_routes_are_exempt(self):
        middleware = RateLimitMiddleware(app=MagicMock())
        assert middleware.is_exempt("/uploads/image/a.png")
        assert middleware.is_exempt("/download/video/talk.mp4")
        assert middleware.is_exempt("/image/a.png")
        assert not middleware.is_exempt("/api/v1/lectures")
        assert not middleware.is_exempt("/hologram/a.png")
