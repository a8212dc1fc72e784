"""
Lyceum Backend — Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Tests run without MongoDB or Google Cloud Storage; document classes,
       storage destinations and the API client are all faked here.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Autouse:
    └── beanie_collections: lets document models be instantiated without init_beanie

    Function-scoped:
    ├── temp_storage: Temporary staging directory
    ├── sample_image_bytes: Fake image content for upload tests
    ├── FakeQuery: Stand-in for Beanie's chainable FindMany (import from conftest)
    └── test_client: HTTPX AsyncClient for API endpoint testing (no lifespan)
"""

import os
import tempfile
from typing import Any, List, Optional
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Must run before any app import: settings are read at import time
os.environ["MONGODB_URI"] = "mongodb://localhost:27017"
os.environ["MONGODB_DB_NAME"] = "lyceum_test"
os.environ["UPLOAD_ROOT"] = tempfile.mkdtemp(prefix="lyceum_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["ENVIRONMENT"] = "test"
os.environ["GCS_BUCKET_NAME"] = "lyceum-test-bucket"

from app.models.base import LyceumDocument  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Beanie Without a Database
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def beanie_collections():
    """
    Document.__init__ looks up the Motor collection, which only exists after
    init_beanie. A mock collection is enough for constructing and
    serializing documents; queries are patched per test.
    """
    with patch.object(LyceumDocument, "get_motor_collection", MagicMock()):
        yield


class FakeQuery:
    """
    Chainable stand-in for Beanie's FindMany / AggregationQuery.

    Records sort/skip/limit calls so tests can assert on them.
    """

    def __init__(self, documents: Optional[List[Any]] = None, count: int = 0, deleted: int = 0):
        self.documents = documents or []
        self.count_value = count
        self.deleted = deleted
        self.sorted_by = None
        self.skipped = None
        self.limited = None

    def sort(self, spec):
        self.sorted_by = spec
        return self

    def skip(self, n):
        self.skipped = n
        return self

    def limit(self, n):
        self.limited = n
        return self

    async def to_list(self):
        return list(self.documents)

    async def count(self):
        return self.count_value

    async def delete(self):
        result = MagicMock()
        result.deleted_count = self.deleted
        return result


# ══════════════════════════════════════════════════════════════════════════
# Files
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path):
    """A fresh staging directory for each test."""
    storage_dir = tmp_path / "uploads"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def sample_image_bytes():
    """Smallest valid JPEG: SOI + JFIF header + EOI."""
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


# ══════════════════════════════════════════════════════════════════════════
# API Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client():
    """
    HTTPX AsyncClient bound to the FastAPI app through ASGITransport.

    The lifespan does not run, so no database connection is attempted;
    tests patch the services the routes call.
    """
    from app.main import app
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
