from __future__ import annotations

import logging
from dataclasses import dataclass

from anyio import to_thread

from src.domain.entities.image import StoredAsset
from src.infrastructure.storage.supabase_storage import SupabaseStorage

logger = logging.getLogger(__name__)


@dataclass
class DeleteImageUseCase:
    """
    Best-effort removal of stored images.

    A failed delete is logged and reported as False but never raised: the
    owning record drops its reference regardless, so a leaked object is the
    worst case.
    """

    storage: SupabaseStorage

    async def execute(self, url: str) -> bool:
        if not self.storage.is_store_url(url):
            logger.info("Not a storage URL of bucket %s, skipping delete", self.storage.bucket)
            return False
        outcome = await to_thread.run_sync(self.storage.delete, url)
        if not outcome.ok:
            logger.error("Failed to delete image from storage: %s", outcome.error)
            return False
        return bool(outcome.value)

    async def execute_many(self, urls: list[str]) -> bool:
        """Delete every URL; True when at least one object was removed."""
        deleted = 0
        for url in dict.fromkeys(u for u in urls if u):
            if await self.execute(url):
                deleted += 1
        return deleted > 0

    async def delete_asset(self, asset: StoredAsset) -> bool:
        return await self.execute_many([asset.thumbnail_url, asset.full_url])

    async def delete_with_derivatives(self, url: str) -> bool:
        # records often keep only the thumbnail URL; remove its full-size twin too
        return await self.execute_many(self.storage.derivative_urls(url))
