from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import Response

from src.application.dtos.common_dto import ImageValidationErrorResponse
from src.application.dtos.image_dto import (
    BatchUploadResponse,
    DeleteImageResponse,
    InlineUploadRequest,
    PlaceholderResponse,
    StoredAssetResponse,
)
from src.application.use_cases.batch_upload_image import BatchUploadImageUseCase
from src.application.use_cases.delete_image import DeleteImageUseCase
from src.application.use_cases.replace_image import ReplaceImageUseCase
from src.application.use_cases.upload_image import UploadImageUseCase
from src.domain.entities.errors import ImageValidationError
from src.domain.entities.image import BytesInput, DataUriInput, ImageVariant, RawImageInput, RemoteUrlInput
from src.domain.services.transform_service import OUTPUT_MIME_TYPE, TransformService
from src.infrastructure.api.dependencies import (
    get_batch_upload_use_case,
    get_delete_use_case,
    get_replace_use_case,
    get_upload_use_case,
)

router = APIRouter(
    prefix="/images",
    tags=["Image Storage"],
    responses={
        400: {"model": ImageValidationErrorResponse, "description": "Bad Request - Image violates type/size limits"},
        422: {"description": "Validation Error - Invalid request format"},
    },
)


def _rejected(exc: ImageValidationError) -> HTTPException:
    # 413 only when size is the sole problem
    too_large = bool(exc.errors) and all("exceeds maximum allowed size" in e for e in exc.errors)
    return HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE if too_large else status.HTTP_400_BAD_REQUEST,
        detail={"message": "Invalid image file", "errors": exc.errors},
    )


async def _to_input(file: UploadFile) -> BytesInput:
    data = await file.read()
    return BytesInput(
        data=data,
        filename=file.filename or "uploaded_image",
        mime_type=file.content_type or "",
    )


@router.post(
    "/upload",
    response_model=StoredAssetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Image",
    description="""
    Store an image file as an optimized thumbnail + full-size pair.

    **Product images**: JPEG, PNG, WebP or GIF, up to 5MB
    **Logos**: the same formats plus SVG, up to 2MB

    Storage or processing problems never fail the request: the response then
    carries `is_optimized=false` and URLs of the original file (or an inline
    data URI when storage is unreachable).
    """,
    response_description="References to the stored image",
    responses={413: {"model": ImageValidationErrorResponse, "description": "Payload Too Large - File size exceeds limit"}},
)
async def upload_image(
    file: UploadFile = File(..., description="Image file to upload"),
    folder: str = Form("products", description="Folder inside the bucket"),
    variant: ImageVariant = Form(ImageVariant.PRODUCT, description="Validation limits to apply"),
    uc: UploadImageUseCase = Depends(get_upload_use_case),
):
    """Upload one image file."""
    raw = await _to_input(file)
    try:
        asset = await uc.execute(raw, folder=folder, variant=variant)
    except ImageValidationError as exc:
        raise _rejected(exc) from exc
    return StoredAssetResponse.from_entity(asset)


@router.post(
    "/upload-inline",
    response_model=StoredAssetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Inline Image or URL",
    description="""
    Store an image given as a base64 data URI, or register an external image URL.

    URLs are returned unchanged (`is_optimized=false`) without being fetched.
    """,
    response_description="References to the stored image",
)
async def upload_inline_image(
    body: InlineUploadRequest,
    uc: UploadImageUseCase = Depends(get_upload_use_case),
):
    """Upload a data URI or pass a remote URL through."""
    raw: RawImageInput = DataUriInput(body.data_uri) if body.data_uri else RemoteUrlInput(body.url or "")
    try:
        asset = await uc.execute(raw, folder=body.folder, variant=body.variant)
    except ImageValidationError as exc:
        raise _rejected(exc) from exc
    return StoredAssetResponse.from_entity(asset)


@router.post(
    "/batch",
    response_model=BatchUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Several Images",
    description="""
    Upload the images of one record (e.g. a product gallery).

    Only `max_count - existing_count` files are processed; extra files are
    dropped and reported through `limit_exceeded` / `rejected_count`. Files that
    fail validation are listed in `failures` without stopping the others.
    """,
    response_description="Stored images plus per-file rejections",
)
async def batch_upload_images(
    files: list[UploadFile] = File(..., description="Image files, in display order"),
    max_count: int = Form(5, ge=1, le=50, description="Maximum images the record may hold"),
    existing_count: int = Form(0, ge=0, description="Images the record already holds"),
    folder: str = Form("products", description="Folder inside the bucket"),
    uc: BatchUploadImageUseCase = Depends(get_batch_upload_use_case),
):
    """Upload several image files for one record."""
    inputs: list[RawImageInput] = [await _to_input(f) for f in files]
    result = await uc.execute(inputs, max_count, folder, existing_count=existing_count)
    return BatchUploadResponse.from_result(result)


@router.post(
    "/replace",
    response_model=StoredAssetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Replace Image",
    description="""
    Upload a new image and remove the one it replaces.

    The new file is validated first; if it is rejected the old image is kept.
    Removing the old image is best-effort.
    """,
    response_description="References to the new image",
)
async def replace_image(
    file: UploadFile = File(..., description="Replacement image file"),
    old_url: str = Form("", description="URL of the image being replaced"),
    folder: str = Form("products", description="Folder inside the bucket"),
    variant: ImageVariant = Form(ImageVariant.PRODUCT, description="Validation limits to apply"),
    uc: ReplaceImageUseCase = Depends(get_replace_use_case),
):
    """Replace a stored image with a new file."""
    raw = await _to_input(file)
    try:
        asset = await uc.execute(old_url or None, raw, folder=folder, variant=variant)
    except ImageValidationError as exc:
        raise _rejected(exc) from exc
    return StoredAssetResponse.from_entity(asset)


@router.delete(
    "",
    response_model=DeleteImageResponse,
    summary="Delete Image",
    description="""
    Remove a previously stored image.

    URLs outside this store (external links, inline data URIs) are ignored and
    reported as `ok=false`. Storage failures are reported the same way; the
    caller should drop its reference either way.
    """,
    response_description="Whether anything was removed from storage",
)
async def delete_image(
    url: str = Query(..., description="URL previously returned by an upload"),
    include_derivatives: bool = Query(True, description="Also remove the thumbnail/full sibling"),
    uc: DeleteImageUseCase = Depends(get_delete_use_case),
):
    """Best-effort delete of a stored image."""
    if include_derivatives:
        ok = await uc.delete_with_derivatives(url)
    else:
        ok = await uc.execute(url)
    return DeleteImageResponse(ok=ok)


@router.get(
    "/placeholder",
    summary="Placeholder Image",
    description="Low-quality gradient JPEG to show while an image loads.",
    responses={200: {"content": {OUTPUT_MIME_TYPE: {}}, "description": "Placeholder image"}},
)
async def placeholder_image(
    width: int = Query(400, ge=1, le=2000, description="Width in pixels"),
    height: int = Query(300, ge=1, le=2000, description="Height in pixels"),
):
    """Render a placeholder image."""
    return Response(content=TransformService.create_placeholder(width, height), media_type=OUTPUT_MIME_TYPE)


@router.get(
    "/placeholder/inline",
    response_model=PlaceholderResponse,
    summary="Inline Placeholder Image",
    description="The placeholder gradient as a data URI, ready to embed in a record or an `<img>` tag.",
)
async def placeholder_data_uri(
    width: int = Query(400, ge=1, le=2000, description="Width in pixels"),
    height: int = Query(300, ge=1, le=2000, description="Height in pixels"),
):
    """Render a placeholder image as a data URI."""
    return PlaceholderResponse(
        data_uri=TransformService.create_placeholder_data_uri(width, height),
        width=width,
        height=height,
    )
