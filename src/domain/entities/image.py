from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

import numpy as np


class ImageVariant(str, Enum):
    PRODUCT = "product"
    LOGO = "logo"


@dataclass(frozen=True)
class BytesInput:
    data: bytes
    filename: str
    mime_type: str


@dataclass(frozen=True)
class DataUriInput:
    data_uri: str  # data:{mime};base64,{payload}


@dataclass(frozen=True)
class RemoteUrlInput:
    url: str


RawImageInput = Union[BytesInput, DataUriInput, RemoteUrlInput]


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DecodedBitmap:
    """RGBA raster, shape (height, width, 4), dtype uint8."""

    pixels: np.ndarray
    source_format: str | None = None

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError(f"expected an (H, W, 4) RGBA array, got shape {self.pixels.shape}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError("bitmap must have positive width and height")

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True)
class ImageDerivative:
    data: bytes
    width: int
    height: int
    quality: float
    mime_type: str = "image/jpeg"

    @property
    def byte_size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class DerivativePair:
    thumbnail: ImageDerivative
    full: ImageDerivative


@dataclass(frozen=True)
class AssetMetadata:
    original_size: int
    thumbnail_size: int
    full_size: int
    compression_ratio: float  # (original - full) / original


@dataclass(frozen=True)
class StoredAsset:
    thumbnail_url: str
    full_url: str
    is_optimized: bool
    metadata: AssetMetadata | None = None
    error: str | None = None  # diagnostic for degraded results
