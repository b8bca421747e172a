from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from anyio import to_thread

from src.domain.entities.errors import DecodeError, ImageValidationError, Outcome, PipelineError
from src.domain.entities.image import (
    AssetMetadata,
    BytesInput,
    DataUriInput,
    ImageDerivative,
    ImageVariant,
    RawImageInput,
    RemoteUrlInput,
    StoredAsset,
)
from src.domain.services.data_uri import encode_data_uri
from src.domain.services.decoding_service import DecodingService
from src.domain.services.transform_service import OUTPUT_EXTENSION, TransformService
from src.domain.services.validation_service import ValidationService, normalize_mime
from src.infrastructure.storage.supabase_storage import SupabaseStorage, extension_for

logger = logging.getLogger(__name__)


class UploadStage(str, Enum):
    VALIDATING = "validating"
    DECODING = "decoding"
    TRANSFORMING = "transforming"
    UPLOADING = "uploading"
    DONE = "done"
    DEGRADED = "degraded"


@dataclass
class UploadImageUseCase:
    """
    Store one image as a thumbnail + full-size JPEG pair.

    Only validation failures are raised (ImageValidationError). Every later
    failure degrades the result instead:

    1. decode / transform / thumbnail upload fails -> original bytes are
       uploaded under a single key (is_optimized=False)
    2. that upload fails too -> the original bytes are returned inline as a
       data URI (is_optimized=False)
    3. only the full-size upload fails -> the thumbnail URL doubles as the
       full-size URL (is_optimized stays True)

    Remote URLs, including ones already in our bucket, are returned unchanged.
    """

    storage: SupabaseStorage
    validation: ValidationService = field(default_factory=ValidationService)
    decoding: DecodingService = field(default_factory=DecodingService)
    transform: TransformService = field(default_factory=TransformService)

    def validate(self, raw: RawImageInput, variant: ImageVariant = ImageVariant.PRODUCT) -> None:
        result = self.validation.validate_input(raw, variant)
        if not result.is_valid:
            raise ImageValidationError(result.errors)

    async def execute(
        self,
        raw: RawImageInput,
        folder: str = "products",
        variant: ImageVariant = ImageVariant.PRODUCT,
    ) -> StoredAsset:
        logger.debug("Upload stage: %s", UploadStage.VALIDATING.value)
        self.validate(raw, variant)

        if isinstance(raw, RemoteUrlInput):
            url = raw.url.strip()
            if self.storage.is_store_url(url):
                logger.info("Image is already stored in bucket %s, returning as-is", self.storage.bucket)
            else:
                logger.info("Image is an external URL, returning as-is")
            return StoredAsset(thumbnail_url=url, full_url=url, is_optimized=False)

        try:
            return await self._process(raw, folder)
        except Exception as exc:
            # callers always get an asset back
            logger.exception("Unexpected failure in image pipeline")
            return self._inline(raw, f"Unexpected pipeline failure: {exc}")

    async def _process(self, raw: BytesInput | DataUriInput, folder: str) -> StoredAsset:
        try:
            original, mime = self.decoding.source_bytes(raw)
        except DecodeError as exc:
            # unreadable data URI: nothing to upload, hand the reference back
            logger.warning("Could not read data URI payload: %s", exc)
            return StoredAsset(raw.data_uri, raw.data_uri, False, error=str(exc))  # type: ignore[union-attr]
        filename = raw.filename if isinstance(raw, BytesInput) else None

        bucket = await to_thread.run_sync(self.storage.ensure_bucket)
        if not bucket.ok:
            logger.warning("Bucket check failed, continuing with upload: %s", bucket.error)

        logger.debug("Upload stage: %s", UploadStage.DECODING.value)
        decoded = await self.decoding.decode(raw)
        if not decoded.ok:
            return await self._degrade(original, mime, filename, folder, decoded.error, UploadStage.DECODING)

        logger.debug("Upload stage: %s", UploadStage.TRANSFORMING.value)
        derived = await to_thread.run_sync(self.transform.transform, decoded.value)
        if not derived.ok:
            return await self._degrade(original, mime, filename, folder, derived.error, UploadStage.TRANSFORMING)
        pair = derived.value

        logger.debug("Upload stage: %s", UploadStage.UPLOADING.value)
        thumb_key, full_key = self.storage.derivative_keys(folder, OUTPUT_EXTENSION)
        thumb = await self._put(thumb_key, pair.thumbnail)
        if not thumb.ok:
            return await self._degrade(original, mime, filename, folder, thumb.error, UploadStage.UPLOADING)

        full = await self._put(full_key, pair.full)
        full_url = full.value
        if not full.ok:
            logger.warning("Full image upload failed, using thumbnail as fallback: %s", full.error)
            full_url = thumb.value

        metadata = AssetMetadata(
            original_size=len(original),
            thumbnail_size=pair.thumbnail.byte_size,
            full_size=pair.full.byte_size,
            compression_ratio=self.transform.compression_ratio(len(original), pair.full.byte_size),
        )
        logger.info(
            "Stored optimized image: thumbnail %.2fKB, full %.2fKB, original %.2fKB",
            metadata.thumbnail_size / 1024,
            metadata.full_size / 1024,
            metadata.original_size / 1024,
        )
        logger.debug("Upload stage: %s", UploadStage.DONE.value)
        return StoredAsset(
            thumbnail_url=thumb.value,
            full_url=full_url,
            is_optimized=True,
            metadata=metadata,
            error=None if full.ok else str(full.error),
        )

    async def _put(self, key: str, derivative: ImageDerivative) -> Outcome[str]:
        return await to_thread.run_sync(self.storage.put, key, derivative.data, derivative.mime_type)

    async def _degrade(
        self,
        original: bytes,
        mime: str,
        filename: str | None,
        folder: str,
        error: PipelineError | None,
        stage: UploadStage,
    ) -> StoredAsset:
        logger.warning(
            "Upload stage: %s after %s failed (%s), uploading original bytes",
            UploadStage.DEGRADED.value,
            stage.value,
            error,
        )
        content_type = normalize_mime(mime) or "application/octet-stream"
        key = self.storage.generate_raw_key(folder, extension_for(content_type, filename))
        stored = await to_thread.run_sync(self.storage.put, key, original, content_type)
        if stored.ok:
            return StoredAsset(stored.value, stored.value, False, error=str(error))

        logger.warning("Raw upload failed too (%s), falling back to inline data URI", stored.error)
        inline = encode_data_uri(original, content_type)
        return StoredAsset(inline, inline, False, error=f"{error}; {stored.error}")

    def _inline(self, raw: BytesInput | DataUriInput, error: str) -> StoredAsset:
        if isinstance(raw, DataUriInput):
            return StoredAsset(raw.data_uri, raw.data_uri, False, error=error)
        content_type = normalize_mime(raw.mime_type) or "application/octet-stream"
        inline = encode_data_uri(raw.data, content_type)
        return StoredAsset(inline, inline, False, error=error)
