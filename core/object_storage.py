"""
Object storage for post attachments.

Handles media upload and deletion for the board core:
- Classifying uploads into image / video / raw resource types
- Enforcing the attachment size limit
- Computing SHA-256 hashes for integrity verification
- Issuing short-lived delete tokens for the uploader
- Deleting objects with a resource-type fallback, since documents written by
  older clients do not always record the type the object was stored under
"""

import hashlib
import logging
import mimetypes
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from core.error_handler import FileTooLargeError, NotFoundError, StorageError


logger = logging.getLogger(__name__)


MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MB max file size
DELETE_TOKEN_TTL = 600  # seconds
RESOURCE_TYPES = ("image", "video", "raw")


@dataclass
class UploadResult:
    """What the storage reports back for a stored object."""
    url: str
    public_id: str
    resource_type: str
    delete_token: str
    format: str
    name: str
    size: int
    file_hash: str
    thumbnail_url: str = ""

    def to_attachment(self) -> Dict[str, str]:
        """Attachment record as embedded in a post document."""
        kind = "pdf" if self.format == "pdf" else self.resource_type
        if kind == "video" and (mimetypes.guess_type(self.name)[0] or "").startswith("audio/"):
            kind = "audio"
        return {
            'type': kind,
            'url': self.url,
            'public_id': self.public_id,
            'resource_type': self.resource_type,
            'delete_token': self.delete_token,
            'thumbnail_url': self.thumbnail_url,
            'format': self.format,
            'name': self.name,
        }


def classify_resource_type(mime_type: Optional[str]) -> str:
    """
    Map a MIME type onto a storage resource type.

    PDFs are stored as images (they are paged and previewable), audio is
    stored with video, everything else is raw.
    """
    if not mime_type:
        return "raw"
    if mime_type.startswith("image/") or mime_type == "application/pdf":
        return "image"
    if mime_type.startswith("video/") or mime_type.startswith("audio/"):
        return "video"
    return "raw"


class ObjectStorage:
    """Interface of the external object storage."""

    async def upload(self, file_path: Path, folder: Optional[str] = None) -> UploadResult:
        raise NotImplementedError

    async def delete(self, public_id: Optional[str], resource_type: Optional[str] = None,
                     delete_token: Optional[str] = None) -> bool:
        raise NotImplementedError


class LocalObjectStorage(ObjectStorage):
    """
    Object storage backed by a local media directory.

    Objects live under ``<root>/<resource_type>/<public_id><suffix>``.
    ``admin_delete`` mirrors having API credentials: with it, any object can
    be removed by public id; without it only a still-valid delete token works.
    """

    def __init__(
        self,
        root: Path,
        base_url: Optional[str] = None,
        max_file_size: int = MAX_FILE_SIZE,
        delete_token_ttl: int = DELETE_TOKEN_TTL,
        admin_delete: bool = True
    ):
        """
        Initialize LocalObjectStorage.

        Args:
            root: Media directory
            base_url: Public URL prefix (defaults to the directory's file URI)
            max_file_size: Upload size limit in bytes
            delete_token_ttl: Lifetime of delete tokens in seconds
            admin_delete: Whether deletion by public id is permitted
        """
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = (base_url or self.root.resolve().as_uri()).rstrip('/')
        self.max_file_size = max_file_size
        self.delete_token_ttl = delete_token_ttl
        self.admin_delete = admin_delete

        # delete_token -> (public_id, resource_type, issued_at)
        self._delete_tokens: Dict[str, Tuple[str, str, float]] = {}

    async def upload(self, file_path: Path, folder: Optional[str] = None) -> UploadResult:
        """
        Store a file and return its public record.

        Args:
            file_path: Path to the file to upload
            folder: Optional folder prefix for the public id

        Returns:
            UploadResult for the stored object

        Raises:
            NotFoundError: If the source file does not exist
            FileTooLargeError: If file exceeds maximum size
            StorageError: If the object cannot be written
        """
        if not file_path.exists():
            raise NotFoundError(f"File not found: {file_path}")

        file_size = file_path.stat().st_size
        if file_size > self.max_file_size:
            raise FileTooLargeError(
                f"File size {file_size} bytes exceeds maximum {self.max_file_size} bytes"
            )

        mime_type = mimetypes.guess_type(file_path.name)[0]
        resource_type = classify_resource_type(mime_type)
        suffix = file_path.suffix.lower()
        object_name = uuid.uuid4().hex
        public_id = f"{folder.strip('/')}/{object_name}" if folder else object_name

        target = self.root / resource_type / f"{public_id}{suffix}"
        try:
            data = file_path.read_bytes()
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to store {file_path.name}: {e}")

        delete_token = uuid.uuid4().hex
        self._delete_tokens[delete_token] = (public_id, resource_type, time.monotonic())

        url = f"{self.base_url}/{resource_type}/{public_id}{suffix}"
        result = UploadResult(
            url=url,
            public_id=public_id,
            resource_type=resource_type,
            delete_token=delete_token,
            format=suffix.lstrip('.'),
            name=file_path.name,
            size=file_size,
            file_hash=self._compute_hash(data),
            thumbnail_url=url if resource_type == "image" and suffix != ".pdf" else "",
        )
        logger.info(f"Uploaded {file_path.name} ({file_size} bytes) as {resource_type}/{public_id}")
        return result

    def _compute_hash(self, data: bytes) -> str:
        """
        Compute SHA-256 hash of data.

        Args:
            data: Data to hash

        Returns:
            Hex-encoded SHA-256 hash
        """
        return hashlib.sha256(data).hexdigest()

    def _find_object(self, public_id: str, resource_type: str) -> Optional[Path]:
        directory = (self.root / resource_type / public_id).parent
        if not directory.exists():
            return None
        stem = Path(public_id).name
        for candidate in directory.iterdir():
            if candidate.is_file() and candidate.stem == stem:
                return candidate
        return None

    def _try_delete(self, public_id: str, resource_type: str) -> bool:
        path = self._find_object(public_id, resource_type)
        if path is None:
            logger.debug(f"No {resource_type} object for {public_id}")
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.error(f"Failed to delete {resource_type}/{public_id}: {e}")
            return False
        logger.info(f"Deleted {resource_type}/{public_id}")
        return True

    async def delete(self, public_id: Optional[str], resource_type: Optional[str] = None,
                     delete_token: Optional[str] = None) -> bool:
        """
        Delete an object, preferring admin deletion over the delete token.

        Admin deletion tries the declared resource type first, then ``raw``,
        then ``video``.

        Returns:
            True if an object was removed, False otherwise
        """
        if public_id and self.admin_delete:
            primary = "image" if resource_type in (None, "", "pdf") else resource_type
            attempts = [primary] + [t for t in ("raw", "video") if t != primary]
            for attempt in attempts:
                if self._try_delete(public_id, attempt):
                    self._forget_tokens(public_id)
                    return True

        if not delete_token:
            logger.warning(f"Cannot delete {public_id}: no admin rights and no delete token")
            return False

        return self.delete_by_token(delete_token)

    def delete_by_token(self, delete_token: str) -> bool:
        """Delete the object a still-valid delete token was issued for."""
        entry = self._delete_tokens.pop(delete_token, None)
        if entry is None:
            logger.warning("Unknown or already used delete token")
            return False

        public_id, resource_type, issued_at = entry
        if time.monotonic() - issued_at > self.delete_token_ttl:
            logger.warning(f"Delete token for {public_id} has expired")
            return False

        return self._try_delete(public_id, resource_type)

    def _forget_tokens(self, public_id: str) -> None:
        for token in [t for t, entry in self._delete_tokens.items() if entry[0] == public_id]:
            del self._delete_tokens[token]
