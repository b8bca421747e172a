from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from io import BytesIO

import numpy as np
from PIL import Image

from src.domain.entities.errors import EncodeError, Outcome
from src.domain.entities.image import DecodedBitmap, DerivativePair, ImageDerivative
from src.domain.services.data_uri import encode_data_uri

logger = logging.getLogger(__name__)

OUTPUT_MIME_TYPE = "image/jpeg"
OUTPUT_EXTENSION = "jpg"
PLACEHOLDER_QUALITY = 0.3


@dataclass(frozen=True)
class Envelope:
    max_width: int
    max_height: int
    quality: float  # 0-1 scale

    def __post_init__(self) -> None:
        if self.max_width <= 0 or self.max_height <= 0:
            raise ValueError("envelope bounds must be positive")
        if not 0.0 < self.quality <= 1.0:
            raise ValueError("quality must be in (0, 1]")


@dataclass(frozen=True)
class TransformConfig:
    thumbnail: Envelope = field(default_factory=lambda: Envelope(400, 400, 0.80))
    full: Envelope = field(default_factory=lambda: Envelope(1200, 1200, 0.85))

    def __post_init__(self) -> None:
        if self.thumbnail.quality > self.full.quality:
            raise ValueError("thumbnail quality must not exceed full image quality")

    @property
    def longest_edge(self) -> int:
        """Largest side any derivative can have."""
        return max(
            self.thumbnail.max_width, self.thumbnail.max_height, self.full.max_width, self.full.max_height
        )

    @classmethod
    def from_env(cls) -> TransformConfig:
        return cls(
            thumbnail=Envelope(
                int(os.getenv("IMAGE_THUMBNAIL_MAX_WIDTH", "400")),
                int(os.getenv("IMAGE_THUMBNAIL_MAX_HEIGHT", "400")),
                float(os.getenv("IMAGE_THUMBNAIL_QUALITY", "0.80")),
            ),
            full=Envelope(
                int(os.getenv("IMAGE_FULL_MAX_WIDTH", "1200")),
                int(os.getenv("IMAGE_FULL_MAX_HEIGHT", "1200")),
                float(os.getenv("IMAGE_FULL_QUALITY", "0.85")),
            ),
        )


class TransformService:
    """Builds the thumbnail/full JPEG derivatives of a decoded bitmap.

    Derivatives keep the source aspect ratio and are never enlarged. Resizing
    uses Lanczos resampling.
    """

    def __init__(self, config: TransformConfig | None = None) -> None:
        self.config = config or TransformConfig()

    # Fit (src_w, src_h) inside (max_w, max_h) without upscaling
    @staticmethod
    def calculate_dimensions(src_w: int, src_h: int, max_w: int, max_h: int) -> tuple[int, int]:
        if src_w <= max_w and src_h <= max_h:
            return src_w, src_h
        ratio = min(max_w / src_w, max_h / src_h)
        # half-up rounding, never collapse a side to zero
        width = max(1, int(src_w * ratio + 0.5))
        height = max(1, int(src_h * ratio + 0.5))
        return width, height

    @staticmethod
    def compression_ratio(original_size: int, full_size: int) -> float:
        if original_size <= 0:
            return 0.0
        return (original_size - full_size) / original_size

    @staticmethod
    def _flatten(pixels: np.ndarray) -> Image.Image:
        # JPEG has no alpha channel: composite onto white
        rgba = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))
        flat = Image.new("RGB", rgba.size, (255, 255, 255))
        flat.paste(rgba, mask=rgba.getchannel("A"))
        return flat

    @staticmethod
    def _encode(img: Image.Image, quality: float) -> bytes:
        buf = BytesIO()
        img.save(buf, format="JPEG", quality=max(1, min(95, round(quality * 100))), optimize=True)
        return buf.getvalue()

    def _derive(
        self, img: Image.Image, size: tuple[int, int], quality: float
    ) -> tuple[Image.Image, ImageDerivative]:
        try:
            if size != img.size:
                img = img.resize(size, Image.Resampling.LANCZOS)
            data = self._encode(img, quality)
        except (OSError, ValueError, MemoryError) as exc:
            raise EncodeError(f"Failed to render {size[0]}x{size[1]} derivative: {exc}") from exc
        return img, ImageDerivative(data=data, width=size[0], height=size[1], quality=quality)

    def transform_sync(self, bitmap: DecodedBitmap) -> DerivativePair:
        full_env, thumb_env = self.config.full, self.config.thumbnail
        full_size = self.calculate_dimensions(bitmap.width, bitmap.height, full_env.max_width, full_env.max_height)
        thumb_size = self.calculate_dimensions(bitmap.width, bitmap.height, thumb_env.max_width, thumb_env.max_height)

        try:
            base = self._flatten(bitmap.pixels)
        except (OSError, ValueError, MemoryError) as exc:
            raise EncodeError(f"Failed to flatten {bitmap.width}x{bitmap.height} bitmap: {exc}") from exc
        full_img, full = self._derive(base, full_size, full_env.quality)

        # resample the thumbnail from the full-size image whenever it is large enough
        fits = thumb_size[0] <= full_size[0] and thumb_size[1] <= full_size[1]
        source = full_img if fits else base
        del base, full_img
        _, thumbnail = self._derive(source, thumb_size, thumb_env.quality)
        logger.debug(
            "Rendered derivatives from %dx%d: thumbnail %dx%d (%d bytes), full %dx%d (%d bytes)",
            bitmap.width,
            bitmap.height,
            thumbnail.width,
            thumbnail.height,
            thumbnail.byte_size,
            full.width,
            full.height,
            full.byte_size,
        )
        return DerivativePair(thumbnail=thumbnail, full=full)

    def transform(self, bitmap: DecodedBitmap) -> Outcome[DerivativePair]:
        try:
            return Outcome.success(self.transform_sync(bitmap))
        except EncodeError as exc:
            logger.warning("Derivative generation failed: %s", exc)
            return Outcome.failure(exc)

    # Grey diagonal gradient shown while the real image loads
    @staticmethod
    def create_placeholder(width: int = 400, height: int = 300) -> bytes:
        if width <= 0 or height <= 0:
            raise ValueError("placeholder size must be positive")
        start = np.array([0xF3, 0xF4, 0xF6], dtype=np.float32)
        end = np.array([0xE5, 0xE7, 0xEB], dtype=np.float32)
        ys, xs = np.indices((height, width), dtype=np.float32)
        t = (xs / max(width - 1, 1) + ys / max(height - 1, 1)) / 2.0
        rgb = start + (end - start) * t[..., None]
        img = Image.fromarray(rgb.round().astype(np.uint8))
        return TransformService._encode(img, PLACEHOLDER_QUALITY)

    @staticmethod
    def create_placeholder_data_uri(width: int = 400, height: int = 300) -> str:
        return encode_data_uri(TransformService.create_placeholder(width, height), OUTPUT_MIME_TYPE)
