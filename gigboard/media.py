"""Media collaborator: job images, profile pictures and identity documents.

Uploads return a :class:`MediaRef` whose ``handle`` is later used to delete
the object. Deletes never raise; the lifecycle treats them as best effort.
"""

import mimetypes
import threading
import uuid
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from gigboard.logging_config import get_logger

logger = get_logger("gigboard.media")

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
DOCUMENT_EXTENSIONS = IMAGE_EXTENSIONS | {".pdf"}

JOB_IMAGES_FOLDER = "job_images"
PROFILE_PICTURES_FOLDER = "profile_pictures"
AADHAAR_FOLDER = "aadhaar_documents"


class MediaError(Exception):
    """Upload failed upstream."""


@dataclass(frozen=True)
class MediaRef:
    url: str
    handle: str


class MediaStore(Protocol):
    def upload(self, data: bytes, filename: str, folder: str) -> MediaRef:
        """Store ``data`` and return its public URL and delete handle."""
        ...

    def delete(self, handle: str) -> bool:
        """Remove an object. Returns False on failure instead of raising."""
        ...


def _extension(filename: str) -> str:
    dot = filename.rfind(".")
    return filename[dot:].lower() if dot != -1 else ""


def is_image_upload(filename: Optional[str], content_type: Optional[str]) -> bool:
    """Accept only image/* uploads with a known image extension."""
    if not filename or not content_type or not content_type.startswith("image/"):
        return False
    return _extension(filename) in IMAGE_EXTENSIONS


def is_document_upload(filename: Optional[str], content_type: Optional[str]) -> bool:
    """Identity documents may also be PDF scans."""
    if is_image_upload(filename, content_type):
        return True
    return content_type == "application/pdf" and _extension(filename or "") in DOCUMENT_EXTENSIONS


def _object_path(filename: str, folder: str) -> str:
    return f"{folder}/{uuid.uuid4().hex}{_extension(filename)}"


class SupabaseMediaStore:
    """Objects in a Supabase Storage bucket; the handle is the object path."""

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    def upload(self, data: bytes, filename: str, folder: str) -> MediaRef:
        path = _object_path(filename, folder)
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        bucket = self.client.storage.from_(self.bucket)
        try:
            bucket.upload(path, data, file_options={"content-type": content_type})
        except Exception as e:
            logger.error(f"Media upload failed | path={path} | error={e}")
            raise MediaError(str(e)) from e
        return MediaRef(url=bucket.get_public_url(path), handle=path)

    def delete(self, handle: str) -> bool:
        try:
            self.client.storage.from_(self.bucket).remove([handle])
            return True
        except Exception as e:
            logger.warning(f"Media delete failed | handle={handle} | error={e}")
            return False


class InMemoryMediaStore:
    """Process-local media store for tests and local development."""

    def __init__(self, base_url: str = "memory://media"):
        self.base_url = base_url.rstrip("/")
        self.objects: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def upload(self, data: bytes, filename: str, folder: str) -> MediaRef:
        path = _object_path(filename, folder)
        with self._lock:
            self.objects[path] = data
        return MediaRef(url=f"{self.base_url}/{path}", handle=path)

    def delete(self, handle: str) -> bool:
        with self._lock:
            return self.objects.pop(handle, None) is not None
