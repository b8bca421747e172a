from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from src.application.use_cases.batch_upload_image import BatchUploadResult
from src.domain.entities.image import ImageVariant, StoredAsset


class AssetMetadataResponse(BaseModel):
    """Size figures of an optimized upload."""
    original_size: int = Field(..., description="Size of the uploaded file in bytes", examples=[4194304], ge=0)
    thumbnail_size: int = Field(..., description="Size of the thumbnail derivative in bytes", examples=[28311], ge=0)
    full_size: int = Field(..., description="Size of the full-size derivative in bytes", examples=[187402], ge=0)
    compression_ratio: float = Field(..., description="(original_size - full_size) / original_size", examples=[0.955])


class StoredAssetResponse(BaseModel):
    """References to a stored image, as kept verbatim by the owning record."""
    thumbnail_url: str = Field(..., description="URL of the thumbnail (max 400x400)")
    full_url: str = Field(..., description="URL of the full-size image (max 1200x1200)")
    is_optimized: bool = Field(..., description="False when a fallback (raw upload or inline data URI) was used")
    metadata: AssetMetadataResponse | None = Field(None, description="Present only for optimized uploads")
    error: str | None = Field(None, description="Why the upload was degraded, if it was")

    @classmethod
    def from_entity(cls, asset: StoredAsset) -> StoredAssetResponse:
        metadata = None
        if asset.metadata is not None:
            metadata = AssetMetadataResponse(
                original_size=asset.metadata.original_size,
                thumbnail_size=asset.metadata.thumbnail_size,
                full_size=asset.metadata.full_size,
                compression_ratio=asset.metadata.compression_ratio,
            )
        return cls(
            thumbnail_url=asset.thumbnail_url,
            full_url=asset.full_url,
            is_optimized=asset.is_optimized,
            metadata=metadata,
            error=asset.error,
        )


class InlineUploadRequest(BaseModel):
    """Upload from a base64 data URI or register a remote image URL."""
    data_uri: str | None = Field(None, description="data:{mime};base64,{payload}")
    url: str | None = Field(None, description="Absolute http(s) URL or site-relative path of an image", examples=["https://cdn.shop.test/p/1.jpg"])
    folder: str = Field("products", description="Folder inside the bucket", examples=["products"])
    variant: ImageVariant = Field(ImageVariant.PRODUCT, description="Validation limits to apply")

    @model_validator(mode="after")
    def _exactly_one_source(self) -> InlineUploadRequest:
        if bool(self.data_uri) == bool(self.url):
            raise ValueError("Provide exactly one of data_uri or url")
        return self


class BatchItemFailureResponse(BaseModel):
    index: int = Field(..., description="Position of the rejected file in the request", ge=0)
    errors: list[str] = Field(..., description="Every violated constraint")


class BatchUploadResponse(BaseModel):
    """Result of uploading several images for one record."""
    assets: list[StoredAssetResponse] = Field(..., description="Stored images, in request order")
    failures: list[BatchItemFailureResponse] = Field(default_factory=list, description="Files rejected by validation")
    rejected_count: int = Field(0, description="Files dropped because the image limit was reached", ge=0)
    limit_exceeded: bool = Field(False, description="True when some files were dropped by the image limit")

    @classmethod
    def from_result(cls, result: BatchUploadResult) -> BatchUploadResponse:
        return cls(
            assets=[StoredAssetResponse.from_entity(a) for a in result.assets],
            failures=[BatchItemFailureResponse(index=f.index, errors=f.errors) for f in result.failures],
            rejected_count=result.rejected_count,
            limit_exceeded=result.limit_exceeded,
        )


class DeleteImageResponse(BaseModel):
    """Outcome of a best-effort delete."""
    ok: bool = Field(..., description="True when at least one stored object was removed")


class PlaceholderResponse(BaseModel):
    """Inline placeholder to embed while the real image loads."""
    data_uri: str = Field(..., description="data:image/jpeg;base64,{payload}")
    width: int = Field(..., description="Width in pixels", examples=[400], ge=1)
    height: int = Field(..., description="Height in pixels", examples=[300], ge=1)
