"""
Memory Lane Backend — API Endpoint Tests
==========================================

What:  End-to-end requests through the FastAPI app with HTTPX, backed by a
       real SQLite database.
How:   `test_client` uses the database image store; `filesystem_client`
       uses the filesystem store and its /uploads mount.

What we test:
    ✅ JSON and multipart create, including the tags string forms
    ✅ 404 for unknown and malformed ids, 400 for bad uploads
    ✅ A rejected upload writes nothing
    ✅ PUT image rules (replace, deleteImage, keep)
    ✅ DELETE confirmation, image endpoint, health check
    ✅ Error bodies carry the request id
"""

import json
import logging
import uuid
from unittest.mock import AsyncMock, patch

import pytest

from memorylane.exceptions import DatabaseError
from memorylane.middleware.logging import memory_id_from_path

EXAMPLE = {
    "title": "Trip",
    "content": "Beach day",
    "date": "2024-05-01T00:00:00Z",
    "mood": "happy",
    "tags": "fun,sun",
}


class TestCreateEndpoint:
    @pytest.mark.asyncio
    async def test_create_json(self, test_client):
        response = await test_client.post("/api/memories", json=EXAMPLE)

        assert response.status_code == 201
        body = response.json()
        assert body["tags"] == ["fun", "sun"]
        assert body["title"] == "Trip"
        assert body["mood"] == "happy"
        assert body["has_image"] is False
        assert body["image_url"] is None
        uuid.UUID(body["id"])

    @pytest.mark.asyncio
    async def test_create_form_with_image(self, test_client, sample_image_bytes):
        response = await test_client.post(
            "/api/memories",
            data={"title": "Trip", "content": "Beach day", "tags": '["fun", "sun"]'},
            files={"image": ("beach.jpg", sample_image_bytes, "image/jpeg")},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["has_image"] is True
        assert body["tags"] == ["fun", "sun"]

        image = await test_client.get(body["image_url"])
        assert image.status_code == 200
        assert image.content == sample_image_bytes
        assert image.headers["content-type"] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_repeated_tag_fields(self, test_client):
        response = await test_client.post(
            "/api/memories",
            data={"title": "Trip", "content": "", "tags": ["fun", "sun"]},
        )
        assert response.status_code == 201
        assert response.json()["tags"] == ["fun", "sun"]

    @pytest.mark.asyncio
    async def test_unsupported_file_type_rejected(self, test_client):
        response = await test_client.post(
            "/api/memories",
            data={"title": "Trip", "content": ""},
            files={"image": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert "not supported" in body["message"]
        assert body["details"]["field"] == "image"

        listing = await test_client.get("/api/memories")
        assert listing.json() == []

    @pytest.mark.asyncio
    async def test_oversized_file_rejected(self, test_client):
        too_big = b"\xff\xd8" + b"\x00" * (5 * 1024 * 1024)
        response = await test_client.post(
            "/api/memories",
            data={"title": "Trip", "content": ""},
            files={"image": ("huge.jpg", too_big, "image/jpeg")},
        )

        assert response.status_code == 400
        assert "too large" in response.json()["message"]
        assert (await test_client.get("/api/memories")).json() == []

    @pytest.mark.asyncio
    async def test_missing_title(self, test_client):
        response = await test_client.post("/api/memories", json={"content": "no title"})
        assert response.status_code == 400
        assert response.json()["message"] == "Title is required"

    @pytest.mark.asyncio
    async def test_invalid_json(self, test_client):
        response = await test_client.post(
            "/api/memories",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_json_array_body_rejected(self, test_client):
        response = await test_client.post(
            "/api/memories",
            content=json.dumps([EXAMPLE]),
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400
        assert "JSON object" in response.json()["message"]


class TestReadEndpoints:
    @pytest.mark.asyncio
    async def test_list_newest_first(self, test_client):
        await test_client.post("/api/memories", json={**EXAMPLE, "title": "Old", "date": "2020-01-01T00:00:00Z"})
        await test_client.post("/api/memories", json={**EXAMPLE, "title": "New", "date": "2025-01-01T00:00:00Z"})

        response = await test_client.get("/api/memories")

        assert response.status_code == 200
        assert [m["title"] for m in response.json()] == ["New", "Old"]

    @pytest.mark.asyncio
    async def test_get_by_id(self, test_client):
        created = (await test_client.post("/api/memories", json=EXAMPLE)).json()

        response = await test_client.get(f"/api/memories/{created['id']}")

        assert response.status_code == 200
        assert response.json() == created

    @pytest.mark.asyncio
    async def test_get_unknown_id(self, test_client):
        response = await test_client.get(f"/api/memories/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_get_malformed_id_is_404(self, test_client):
        response = await test_client.get("/api/memories/not-a-uuid")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_image_endpoint_rejects_malformed_id(self, test_client):
        response = await test_client.get("/api/images/not-a-uuid")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_image_endpoint_rejects_bare_hex_id(self, test_client):
        response = await test_client.get(f"/api/images/{uuid.uuid4().hex}")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_image_endpoint_unknown_id(self, test_client):
        response = await test_client.get(f"/api/images/{uuid.uuid4()}")
        assert response.status_code == 404


class TestUpdateEndpoint:
    async def _create_with_image(self, client, image_bytes):
        response = await client.post(
            "/api/memories",
            data={"title": "Trip", "content": "Beach day"},
            files={"image": ("beach.jpg", image_bytes, "image/jpeg")},
        )
        return response.json()

    @pytest.mark.asyncio
    async def test_put_replaces_fields(self, test_client):
        created = (await test_client.post("/api/memories", json=EXAMPLE)).json()

        response = await test_client.put(f"/api/memories/{created['id']}", json={"title": "Renamed"})

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Renamed"
        assert body["content"] == ""
        assert body["mood"] == "neutral"
        assert body["tags"] == []

    @pytest.mark.asyncio
    async def test_put_keeps_image_by_default(self, test_client, sample_image_bytes):
        created = await self._create_with_image(test_client, sample_image_bytes)

        response = await test_client.put(
            f"/api/memories/{created['id']}", data={"title": "Trip", "content": "Edited"}
        )

        assert response.json()["has_image"] is True

    @pytest.mark.asyncio
    async def test_put_delete_image(self, test_client, sample_image_bytes):
        created = await self._create_with_image(test_client, sample_image_bytes)

        response = await test_client.put(
            f"/api/memories/{created['id']}",
            data={"title": "Trip", "content": "", "deleteImage": "true"},
        )

        assert response.status_code == 200
        assert response.json()["has_image"] is False
        assert (await test_client.get(f"/api/images/{created['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_put_new_image(self, test_client, sample_image_bytes, sample_png_bytes):
        created = await self._create_with_image(test_client, sample_image_bytes)

        await test_client.put(
            f"/api/memories/{created['id']}",
            data={"title": "Trip", "content": ""},
            files={"image": ("sunset.png", sample_png_bytes, "image/png")},
        )

        image = await test_client.get(f"/api/images/{created['id']}")
        assert image.content == sample_png_bytes
        assert image.headers["content-type"] == "image/png"

    @pytest.mark.asyncio
    async def test_put_unknown_id(self, test_client):
        response = await test_client.put(f"/api/memories/{uuid.uuid4()}", json={"title": "x"})
        assert response.status_code == 404


class TestDeleteEndpoint:
    @pytest.mark.asyncio
    async def test_delete(self, test_client):
        created = (await test_client.post("/api/memories", json=EXAMPLE)).json()

        response = await test_client.delete(f"/api/memories/{created['id']}")

        assert response.status_code == 200
        assert response.json() == {"message": "Memory deleted successfully"}
        assert (await test_client.get(f"/api/memories/{created['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_delete_unknown_id(self, test_client):
        response = await test_client.delete(f"/api/memories/{uuid.uuid4()}")
        assert response.status_code == 404


class TestFilesystemStorage:
    @pytest.mark.asyncio
    async def test_image_served_from_uploads_mount(self, filesystem_client, sample_image_bytes):
        created = (await filesystem_client.post(
            "/api/memories",
            data={"title": "Trip", "content": ""},
            files={"image": ("beach.jpeg", sample_image_bytes, "image/jpeg")},
        )).json()

        static = await filesystem_client.get(f"/uploads/{created['id']}.jpg")
        assert static.status_code == 200
        assert static.content == sample_image_bytes

        deleted = await filesystem_client.delete(f"/api/memories/{created['id']}")
        assert deleted.status_code == 200
        assert (await filesystem_client.get(f"/uploads/{created['id']}.jpg")).status_code == 404


class TestErrorsAndHealth:
    @pytest.mark.asyncio
    async def test_storage_error_is_500_without_details(self, test_client):
        failure = DatabaseError(
            message="An error occurred while fetching memories",
            context={"error_type": "OperationalError"},
        )
        with patch(
            "memorylane.services.memory_repository.MemoryRepository.list_memories",
            AsyncMock(side_effect=failure),
        ):
            response = await test_client.get("/api/memories")

        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "An error occurred while fetching memories"
        assert "details" not in body
        assert "traceback" not in body

    @pytest.mark.asyncio
    async def test_error_body_carries_request_id(self, test_client):
        response = await test_client.get(
            f"/api/memories/{uuid.uuid4()}", headers={"X-Request-ID": "trace-123"}
        )
        assert response.headers["X-Request-ID"] == "trace-123"
        assert response.json()["request_id"] == "trace-123"

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["image_storage"] == "database"

    @pytest.mark.asyncio
    async def test_access_log_carries_memory_id(self, test_client, caplog):
        caplog.set_level(logging.INFO, logger="memorylane.access")
        memory_id = str(uuid.uuid4())

        await test_client.get(f"/api/memories/{memory_id}")
        await test_client.get("/api/memories")

        records = [r for r in caplog.records if r.name == "memorylane.access"]
        by_path = {r.path: r for r in records}
        single = by_path[f"/api/memories/{memory_id}"]
        assert single.memory_id == memory_id
        assert f"memory={memory_id}" in single.getMessage()
        assert single.levelno == logging.WARNING
        assert by_path["/api/memories"].memory_id is None


class TestMemoryIdFromPath:
    @pytest.mark.parametrize("path, expected", [
        ("/api/memories/abc", "abc"),
        ("/api/images/abc", "abc"),
        ("/api/memories/abc/", "abc"),
        ("/api/memories", None),
        ("/api/memories/abc/extra", None),
        ("/health", None),
    ])
    def test_extracts_id_segment(self, path, expected):
        assert memory_id_from_path(path) == expected
