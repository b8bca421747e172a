from __future__ import annotations

import logging
from dataclasses import dataclass, field

from src.application.use_cases.upload_image import UploadImageUseCase
from src.domain.entities.errors import ImageValidationError
from src.domain.entities.image import ImageVariant, RawImageInput, StoredAsset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchItemFailure:
    index: int
    errors: list[str]


@dataclass
class BatchUploadResult:
    assets: list[StoredAsset] = field(default_factory=list)
    failures: list[BatchItemFailure] = field(default_factory=list)
    rejected_count: int = 0  # inputs beyond the remaining slots
    limit_exceeded: bool = False


@dataclass
class BatchUploadImageUseCase:
    """
    Upload several images for one record, e.g. a product gallery.

    Only ``max_count - existing_count`` inputs enter the pipeline; the rest
    are rejected up front and flagged with ``limit_exceeded``. Items run one
    after another. An item failing validation is reported in ``failures``
    and the batch moves on.
    """

    upload: UploadImageUseCase

    async def execute(
        self,
        inputs: list[RawImageInput],
        max_count: int,
        folder: str = "products",
        *,
        existing_count: int = 0,
        variant: ImageVariant = ImageVariant.PRODUCT,
    ) -> BatchUploadResult:
        if max_count < 0 or existing_count < 0:
            raise ValueError("max_count and existing_count must be >= 0")

        remaining = max(0, max_count - existing_count)
        accepted = inputs[:remaining]
        result = BatchUploadResult(rejected_count=len(inputs) - len(accepted))
        result.limit_exceeded = result.rejected_count > 0
        if result.limit_exceeded:
            logger.warning(
                "Maximum %d images allowed, rejecting %d of %d inputs",
                max_count,
                result.rejected_count,
                len(inputs),
            )

        for index, raw in enumerate(accepted):
            logger.info("Processing image %d of %d", index + 1, len(accepted))
            try:
                asset = await self.upload.execute(raw, folder=folder, variant=variant)
            except ImageValidationError as exc:
                logger.info("Image %d rejected: %s", index + 1, exc)
                result.failures.append(BatchItemFailure(index=index, errors=exc.errors))
                continue
            result.assets.append(asset)
        return result
