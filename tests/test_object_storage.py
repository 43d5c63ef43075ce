"""
Unit tests for LocalObjectStorage

Tests cover:
- Resource type classification
- Upload with size limit and SHA-256 hash
- Admin deletion with resource type fallback
- Delete tokens
"""

import hashlib
from pathlib import Path

import pytest

from core.error_handler import FileTooLargeError, NotFoundError
from core.object_storage import LocalObjectStorage, classify_resource_type


@pytest.fixture
def storage(tmp_path: Path):
    """Fixture providing a LocalObjectStorage instance"""
    return LocalObjectStorage(tmp_path / "media", base_url="https://cdn.example.com")


@pytest.fixture
def temp_file(tmp_path: Path):
    """Fixture providing a temporary test file"""
    path = tmp_path / "notes.txt"
    path.write_bytes(b"This is test file content for board attachment testing.\n" * 100)
    return path


def stored_files(storage):
    return [p for p in storage.root.rglob("*") if p.is_file()]


class TestClassification:
    """Test MIME type to resource type mapping."""

    @pytest.mark.parametrize("mime_type, expected", [
        ("image/png", "image"),
        ("application/pdf", "image"),
        ("video/mp4", "video"),
        ("audio/mpeg", "video"),
        ("text/plain", "raw"),
        (None, "raw"),
    ])
    def test_classify(self, mime_type, expected):
        assert classify_resource_type(mime_type) == expected


class TestUpload:
    """Test storing objects."""

    @pytest.mark.asyncio
    async def test_upload(self, storage, temp_file):
        result = await storage.upload(temp_file, folder="boards/b1")

        assert result.resource_type == "raw"
        assert result.public_id.startswith("boards/b1/")
        assert result.url == f"https://cdn.example.com/raw/{result.public_id}.txt"
        assert result.file_hash == hashlib.sha256(temp_file.read_bytes()).hexdigest()
        assert result.size == temp_file.stat().st_size
        assert len(stored_files(storage)) == 1

    @pytest.mark.asyncio
    async def test_attachment_record(self, storage, tmp_path):
        pdf = tmp_path / "slides.pdf"
        pdf.write_bytes(b"%PDF-1.4 fake")

        attachment = (await storage.upload(pdf)).to_attachment()

        assert attachment['type'] == "pdf"
        assert attachment['resource_type'] == "image"
        assert attachment['name'] == "slides.pdf"

    @pytest.mark.asyncio
    async def test_missing_file(self, storage, tmp_path):
        with pytest.raises(NotFoundError):
            await storage.upload(tmp_path / "nope.txt")

    @pytest.mark.asyncio
    async def test_file_too_large(self, tmp_path, temp_file):
        storage = LocalObjectStorage(tmp_path / "media", max_file_size=10)

        with pytest.raises(FileTooLargeError):
            await storage.upload(temp_file)


class TestDelete:
    """Test removing objects."""

    @pytest.mark.asyncio
    async def test_admin_delete(self, storage, temp_file):
        result = await storage.upload(temp_file)

        assert await storage.delete(result.public_id, result.resource_type) is True
        assert stored_files(storage) == []

    @pytest.mark.asyncio
    async def test_admin_delete_falls_back_to_raw(self, storage, temp_file):
        """Older documents do not record the resource type."""
        result = await storage.upload(temp_file)

        assert await storage.delete(result.public_id, None) is True
        assert stored_files(storage) == []

    @pytest.mark.asyncio
    async def test_delete_unknown_object(self, storage):
        assert await storage.delete("ghost", "image") is False

    @pytest.mark.asyncio
    async def test_delete_with_token(self, tmp_path, temp_file):
        storage = LocalObjectStorage(tmp_path / "media", admin_delete=False)
        result = await storage.upload(temp_file)

        assert await storage.delete(result.public_id, result.resource_type) is False
        assert await storage.delete(result.public_id, result.resource_type, result.delete_token) is True
        assert stored_files(storage) == []

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, tmp_path, temp_file):
        storage = LocalObjectStorage(tmp_path / "media", admin_delete=False)
        result = await storage.upload(temp_file)
        await storage.delete(result.public_id, delete_token=result.delete_token)

        assert storage.delete_by_token(result.delete_token) is False

    @pytest.mark.asyncio
    async def test_expired_token(self, tmp_path, temp_file):
        storage = LocalObjectStorage(tmp_path / "media", admin_delete=False, delete_token_ttl=-1)
        result = await storage.upload(temp_file)

        assert storage.delete_by_token(result.delete_token) is False
        assert len(stored_files(storage)) == 1
