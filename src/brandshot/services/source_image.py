"""Resolve the conditioning image referenced by an image prompt."""

import posixpath
from typing import Optional
from urllib.parse import urlparse
from uuid import UUID

import httpx
import structlog

from brandshot.services.exceptions import SourceAssetError, StorageError
from brandshot.services.generation.prompt import SourceAssetConfig
from brandshot.services.generation.types import SourceImage
from brandshot.services.storage import FileStore, is_remote_path
from brandshot.uow import UnitOfWork

logger = structlog.get_logger()

SOURCE_DOWNLOAD_TIMEOUT_SECONDS = 20.0


async def fetch_source_bytes(
    http_client: httpx.AsyncClient, url: str, max_bytes: int
) -> tuple[bytes, str]:
    """Download a remote source image, giving up past max_bytes.

    Failures are logged and yield empty bytes; providers then get the URL only.
    """
    url = url.strip()
    if not url.lower().startswith(("http://", "https://")):
        return b"", ""

    try:
        async with http_client.stream(
            "GET", url, timeout=SOURCE_DOWNLOAD_TIMEOUT_SECONDS
        ) as response:
            if response.status_code >= 300:
                logger.warning("source_image.bad_status", url=url, status=response.status_code)
                return b"", ""
            buffer = bytearray()
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > max_bytes:
                    logger.warning("source_image.too_large", url=url, max_bytes=max_bytes)
                    return b"", ""
            return bytes(buffer), response.headers.get("content-type", "").strip()
    except httpx.HTTPError as e:
        logger.warning("source_image.download_failed", url=url, error=str(e))
        return b"", ""


async def resolve_source_image(
    uow: UnitOfWork,
    user_id: UUID,
    config: SourceAssetConfig,
    store: Optional[FileStore],
    http_client: Optional[httpx.AsyncClient],
    max_bytes: int,
) -> Optional[SourceImage]:
    """Build a SourceImage from a prompt's source_asset block.

    Lookup order: the referenced asset row (ownership enforced), then the
    local file store, then an HTTP download of the source URL.

    Returns:
        SourceImage, or None when the prompt references nothing

    Raises:
        SourceAssetError: If the asset id is malformed, unknown or owned by another user
    """
    if config.is_empty:
        return None

    asset_id = config.asset_id.strip()
    storage_key = config.storage_key.strip()
    mime = config.mime.strip()
    filename = config.filename.strip()
    source_url = config.url.strip()
    width = height = 0

    if asset_id:
        try:
            asset = await uow.assets.get_by_id(UUID(asset_id))
        except ValueError as e:
            raise SourceAssetError(f"Invalid source asset id {asset_id!r}") from e
        if asset is None:
            raise SourceAssetError(f"Source asset {asset_id} not found")
        if asset.user_id != user_id:
            raise SourceAssetError(f"Source asset {asset_id} does not belong to user")

        storage_key = storage_key or asset.storage_key
        mime = mime or asset.format
        width, height = asset.width, asset.height
        properties = asset.properties or {}
        if not source_url:
            source_url = properties.get("source_url") or properties.get("url") or ""
        if not filename and isinstance(properties.get("filename"), str):
            filename = properties["filename"].strip()

    data = b""
    if storage_key and not is_remote_path(storage_key) and store is not None:
        try:
            data = await store.read(storage_key)
        except StorageError as e:
            logger.warning("source_image.read_failed", storage_key=storage_key, error=str(e))

    if not filename and storage_key:
        filename = posixpath.basename(storage_key)

    if not data and source_url and http_client is not None:
        data, fetched_mime = await fetch_source_bytes(http_client, source_url, max_bytes)
        mime = mime or fetched_mime

    if not filename and source_url:
        filename = posixpath.basename(urlparse(source_url).path)

    return SourceImage(
        asset_id=asset_id,
        storage_key=storage_key,
        url=source_url,
        mime=mime,
        data=data,
        width=width,
        height=height,
        filename=filename,
    )
