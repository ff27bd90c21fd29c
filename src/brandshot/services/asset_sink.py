"""Asset sink: stores generated bytes and records Asset rows for a job."""

from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from brandshot.models.asset import Asset, AssetKind
from brandshot.models.job import GenerationJob
from brandshot.services.exceptions import PersistenceError, StorageError
from brandshot.services.generation.types import GeneratedAsset, MediaKind
from brandshot.services.storage import (
    FileStore,
    default_storage_key,
    ensure_extension,
    is_remote_path,
)
from brandshot.uow import UnitOfWork

logger = structlog.get_logger()

DEFAULT_IMAGE_BYTES = 1024 * 1024
DEFAULT_VIDEO_BYTES = 5 * 1024 * 1024
VIDEO_WIDTH = 1920
VIDEO_HEIGHT = 1080


class AssetSink:
    """Persists generation results; one failing asset never affects the others."""

    def __init__(self, store: Optional[FileStore] = None):
        self.store = store

    async def persist_all(
        self, uow: UnitOfWork, job: GenerationJob, provider: str, results: list[GeneratedAsset]
    ) -> list[Asset]:
        """Persist every result, logging and skipping the ones that fail.

        Returns:
            Asset rows that were written
        """
        saved = []
        for index, result in enumerate(results):
            try:
                saved.append(await self.persist(uow, job, provider, result, index))
            except PersistenceError as e:
                logger.error(
                    "asset.persist_failed",
                    job_id=str(job.id),
                    provider=provider,
                    index=index,
                    error=str(e),
                )
        return saved

    async def persist(
        self,
        uow: UnitOfWork,
        job: GenerationJob,
        provider: str,
        result: GeneratedAsset,
        index: int,
    ) -> Asset:
        """Store one result's bytes and insert its Asset row.

        The row insert runs in a SAVEPOINT so a failure leaves the enclosing
        transaction usable for the remaining assets and the finalize.

        Raises:
            PersistenceError: If there is nothing to reference or the insert fails
        """
        storage_key, byte_size = await self._store_bytes(job, provider, result, index)
        if not storage_key:
            raise PersistenceError("asset has neither storage key nor url")

        is_video = result.kind == MediaKind.VIDEO
        properties: dict = {"provider": result.provider or provider}
        if result.url and result.url != storage_key:
            properties["source_url"] = result.url
        if is_video:
            properties["length"] = result.length_seconds

        if byte_size == 0:
            byte_size = DEFAULT_VIDEO_BYTES if is_video else DEFAULT_IMAGE_BYTES

        asset = Asset(
            user_id=job.user_id,
            job_id=job.id,
            kind=AssetKind.VIDEO if is_video else AssetKind.IMAGE,
            storage_key=storage_key,
            format=result.format,
            byte_size=byte_size,
            width=VIDEO_WIDTH if is_video else result.width,
            height=VIDEO_HEIGHT if is_video else result.height,
            aspect_ratio=job.aspect_ratio,
            properties=properties,
        )
        try:
            async with uow.session.begin_nested():
                await uow.assets.add(asset)
        except SQLAlchemyError as e:
            raise PersistenceError(f"insert asset: {e}") from e

        logger.debug("asset.persisted", job_id=str(job.id), asset_id=str(asset.id), key=storage_key)
        return asset

    async def _store_bytes(
        self, job: GenerationJob, provider: str, result: GeneratedAsset, index: int
    ) -> tuple[str, int]:
        key = result.storage_key.strip() or result.url.strip()
        size = len(result.data)
        if self.store is None or not result.data:
            return key, size

        target = key
        if not target or is_remote_path(target):
            target = default_storage_key(str(job.id), result.format, index)
        target = ensure_extension(target, result.format)
        try:
            key = await self.store.write(target, result.data)
        except StorageError as e:
            # Row still references the provider URL
            logger.warning(
                "asset.store_failed", job_id=str(job.id), provider=provider, error=str(e)
            )
        return key, size
