from __future__ import annotations

import logging
from dataclasses import dataclass

from src.application.use_cases.delete_image import DeleteImageUseCase
from src.application.use_cases.upload_image import UploadImageUseCase
from src.domain.entities.image import ImageVariant, RawImageInput, StoredAsset

logger = logging.getLogger(__name__)


@dataclass
class ReplaceImageUseCase:
    upload: UploadImageUseCase
    delete: DeleteImageUseCase

    async def execute(
        self,
        old_url: str | None,
        raw: RawImageInput,
        folder: str = "products",
        variant: ImageVariant = ImageVariant.PRODUCT,
    ) -> StoredAsset:
        """
        Swap a stored image for a new one.

        The new input is validated before anything is touched, so a rejected
        replacement leaves the old image in place. Removing the old objects is
        best-effort.
        """
        self.upload.validate(raw, variant)
        if old_url:
            removed = await self.delete.delete_with_derivatives(old_url)
            if not removed:
                logger.info("Old image was not removed from storage")
        return await self.upload.execute(raw, folder=folder, variant=variant)
