from __future__ import annotations

import logging
import os
from io import BytesIO

import numpy as np
from anyio import to_thread
from PIL import Image, ImageOps, UnidentifiedImageError

from src.domain.entities.errors import DecodeError, Outcome
from src.domain.entities.image import BytesInput, DataUriInput, DecodedBitmap, RawImageInput, RemoteUrlInput
from src.domain.services.data_uri import decode_data_uri
from src.domain.services.transform_service import TransformService

logger = logging.getLogger(__name__)

DEFAULT_MAX_PIXELS = 40_000_000


class DecodingService:
    """Turns uploaded bytes or an inline data URI into an RGBA bitmap.

    The byte limit says nothing about pixel count, so images with more than
    ``max_pixels`` pixels (``IMAGE_MAX_PIXELS``) are refused before their
    pixel data is read. With ``draft_bound`` set, JPEG sources are decoded at
    the smallest DCT scale that still covers a ``draft_bound`` square envelope.
    """

    def __init__(self, max_pixels: int | None = None, draft_bound: int | None = None) -> None:
        self.max_pixels = max_pixels or int(os.getenv("IMAGE_MAX_PIXELS", str(DEFAULT_MAX_PIXELS)))
        self.draft_bound = draft_bound

    @staticmethod
    def source_bytes(raw: BytesInput | DataUriInput) -> tuple[bytes, str]:
        """Return (bytes, mime) of an input. Raises DecodeError when a data URI payload is unreadable."""
        if isinstance(raw, BytesInput):
            return raw.data, raw.mime_type
        try:
            mime, data = decode_data_uri(raw.data_uri)
        except ValueError as exc:
            raise DecodeError(str(exc)) from exc
        return data, mime

    def decode_bytes(self, data: bytes) -> DecodedBitmap:
        if not data:
            raise DecodeError("Empty image data")
        try:
            with Image.open(BytesIO(data)) as img:
                img.seek(0)  # animated formats keep only their first frame
                width, height = img.size
                if width * height > self.max_pixels:
                    raise DecodeError(
                        f"Image of {width}x{height} pixels exceeds the limit of {self.max_pixels} pixels"
                    )
                if self.draft_bound:
                    # no-op for anything but JPEG
                    img.draft(
                        None,
                        TransformService.calculate_dimensions(width, height, self.draft_bound, self.draft_bound),
                    )
                img.load()
                fmt = img.format
                oriented = ImageOps.exif_transpose(img)
                rgba = oriented.convert("RGBA")
        except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
            raise DecodeError(f"Unsupported or unsafe image: {exc}") from exc
        except (OSError, ValueError, SyntaxError) as exc:
            raise DecodeError(f"Corrupt image data: {exc}") from exc
        pixels = np.asarray(rgba, dtype=np.uint8)
        if pixels.ndim != 3 or pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise DecodeError("Decoded image has no pixels")
        return DecodedBitmap(pixels=pixels, source_format=fmt)

    def decode_sync(self, raw: RawImageInput) -> DecodedBitmap:
        if isinstance(raw, RemoteUrlInput):
            # remote references are passed through by the orchestrator, never fetched
            raise DecodeError("Remote URLs are not decoded")
        data, _mime = self.source_bytes(raw)
        return self.decode_bytes(data)

    async def decode(self, raw: RawImageInput) -> Outcome[DecodedBitmap]:
        try:
            bitmap = await to_thread.run_sync(self.decode_sync, raw)
        except DecodeError as exc:
            logger.warning("Image decode failed: %s", exc)
            return Outcome.failure(exc)
        logger.debug("Decoded %s image %dx%d", bitmap.source_format, bitmap.width, bitmap.height)
        return Outcome.success(bitmap)
