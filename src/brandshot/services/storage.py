"""Local filesystem asset store."""

import asyncio
import posixpath
from pathlib import Path

from brandshot.services.exceptions import StorageError

_MIME_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "text/plain": ".txt",
}


def extension_for_mime(mime: str) -> str:
    """File extension for a MIME type, or "" when unknown."""
    return _MIME_EXTENSIONS.get((mime or "").split(";")[0].strip().lower(), "")


def is_remote_path(value: str) -> bool:
    return (value or "").strip().lower().startswith(("http://", "https://", "data:"))


def sanitize_key(key: str) -> str:
    """Normalize a storage key and reject keys escaping the storage root.

    Raises:
        StorageError: If the key is empty or resolves outside the root
    """
    key = (key or "").strip()
    if not key:
        raise StorageError("storage: key is required")
    key = key.replace("\\", "/").removeprefix("./").lstrip("/")
    cleaned = posixpath.normpath(key)
    if cleaned in (".", "..") or cleaned.startswith("../"):
        raise StorageError(f"storage: invalid key {key!r}")
    return cleaned


def default_storage_key(job_id: str, mime: str, index: int) -> str:
    """Key for a generated asset that arrived without one.

    Images: generated/images/<job>/image-NN.<ext>
    Videos: generated/videos/<job>/video.<ext> (video-NN.<ext> after the first)
    """
    ext = extension_for_mime(mime) or ".bin"
    index = max(index, 0)
    if (mime or "").lower().startswith("video/"):
        name = "video" if index == 0 else f"video-{index + 1:02d}"
        return f"generated/videos/{job_id}/{name}{ext}"
    return f"generated/images/{job_id}/image-{index + 1:02d}{ext}"


def ensure_extension(key: str, mime: str) -> str:
    """Append the MIME extension to an extensionless key."""
    expected = extension_for_mime(mime)
    if not key or not expected or posixpath.splitext(key)[1]:
        return key
    return key + expected


class FileStore:
    """Persists asset bytes under a base directory.

    Intended for development and single-host deployments; keys are relative
    POSIX paths and can never escape the base directory.
    """

    def __init__(self, base_path: str | Path):
        base = str(base_path).strip()
        if not base:
            raise StorageError("storage: base path is required")
        self.base_path = Path(base)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.base_path / sanitize_key(key)

    async def write(self, key: str, data: bytes) -> str:
        """Write bytes at key and return the canonical key.

        Raises:
            StorageError: Invalid key or filesystem failure
        """
        clean_key = sanitize_key(key)
        path = self.base_path / clean_key

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"storage: write {clean_key}: {e}") from e
        return clean_key

    async def read(self, key: str) -> bytes:
        """Read the bytes stored at key.

        Raises:
            StorageError: Invalid key, missing file or filesystem failure
        """
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StorageError(f"storage: read {key}: {e}") from e
