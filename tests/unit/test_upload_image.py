"""
Tests for the upload pipeline and its fallback ladder.
"""
from __future__ import annotations

import base64
import io
from itertools import product
from unittest.mock import Mock

import pytest
from PIL import Image

from src.application.use_cases.upload_image import UploadImageUseCase
from src.domain.entities.errors import EncodeError, ImageValidationError, Outcome, StoreError
from src.domain.entities.image import BytesInput, DataUriInput, ImageVariant, RemoteUrlInput
from src.domain.services.decoding_service import DecodingService
from src.domain.services.transform_service import TransformService
from src.domain.services.validation_service import MIB

pytestmark = pytest.mark.anyio

MALFORMED = b"these bytes are not an image at all"


def _fail_puts(storage, monkeypatch, predicate=lambda key: True):
    """Make storage.put fail for keys matching predicate."""
    real_put = storage.put
    attempted: list[str] = []

    def put(key, data, mime_type):
        attempted.append(key)
        if predicate(key):
            return Outcome.failure(StoreError("backend unreachable"))
        return real_put(key, data, mime_type)

    monkeypatch.setattr(storage, "put", put)
    return attempted


def _stored_bytes(storage, url):
    return (storage.local_dir / storage.bucket / storage.key_from_url(url)).read_bytes()


def _size(data):
    with Image.open(io.BytesIO(data)) as img:
        return img.size


class TestSuccessPath:
    async def test_large_jpeg(self, local_storage, gradient_jpeg):
        original = gradient_jpeg(3000, 2000)
        uc = UploadImageUseCase(storage=local_storage)
        asset = await uc.execute(BytesInput(original, "big.jpg", "image/jpeg"), folder="products")

        assert asset.is_optimized
        assert asset.thumbnail_url != asset.full_url
        assert "/products/thumbnails/" in asset.thumbnail_url
        assert "/products/full/" in asset.full_url
        assert _size(_stored_bytes(local_storage, asset.thumbnail_url)) == (400, 267)
        assert _size(_stored_bytes(local_storage, asset.full_url)) == (1200, 800)
        assert asset.metadata.original_size == len(original)
        assert asset.metadata.compression_ratio > 0
        assert asset.error is None

    async def test_small_gif_is_reencoded_not_resized(self, local_storage, image_bytes):
        uc = UploadImageUseCase(storage=local_storage)
        asset = await uc.execute(BytesInput(image_bytes(300, 200, fmt="GIF"), "small.gif", "image/gif"))

        assert asset.is_optimized
        for url in (asset.thumbnail_url, asset.full_url):
            data = _stored_bytes(local_storage, url)
            assert _size(data) == (300, 200)
            assert data[:2] == b"\xff\xd8"  # JPEG SOI

    async def test_data_uri_input(self, local_storage, image_bytes):
        payload = base64.b64encode(image_bytes(50, 40)).decode()
        uc = UploadImageUseCase(storage=local_storage)
        asset = await uc.execute(DataUriInput(f"data:image/png;base64,{payload}"))
        assert asset.is_optimized
        assert _size(_stored_bytes(local_storage, asset.full_url)) == (50, 40)

    async def test_bucket_failure_does_not_stop_upload(self, local_storage, image_bytes, monkeypatch):
        monkeypatch.setattr(local_storage, "ensure_bucket", lambda name=None: Outcome.failure(StoreError("no bucket")))
        uc = UploadImageUseCase(storage=local_storage)
        asset = await uc.execute(BytesInput(image_bytes(20, 20), "a.png", "image/png"))
        assert asset.is_optimized


class TestValidation:
    async def test_oversized_png_rejected_before_decoding(self, local_storage):
        decoding = Mock(spec=DecodingService)
        uc = UploadImageUseCase(storage=local_storage, decoding=decoding)
        raw = BytesInput(b"\x89PNG" + b"\x00" * (6 * MIB), "huge.png", "image/png")

        with pytest.raises(ImageValidationError) as exc_info:
            await uc.execute(raw)

        assert len(exc_info.value.errors) == 1
        assert "exceeds maximum allowed size" in exc_info.value.errors[0]
        decoding.decode.assert_not_called()
        assert not any(local_storage.local_dir.rglob("*.*"))

    async def test_logo_variant_accepts_svg_type(self, local_storage):
        svg = b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"></svg>'
        uc = UploadImageUseCase(storage=local_storage)
        asset = await uc.execute(BytesInput(svg, "logo.svg", "image/svg+xml"), folder="logos", variant=ImageVariant.LOGO)
        # Pillow cannot rasterize SVG: the original file is stored as-is
        assert not asset.is_optimized
        assert asset.full_url.endswith(".svg")
        assert _stored_bytes(local_storage, asset.full_url) == svg

    async def test_invalid_remote_url_rejected(self, local_storage):
        with pytest.raises(ImageValidationError):
            await UploadImageUseCase(storage=local_storage).execute(RemoteUrlInput("javascript:alert(1)"))


class TestPassThrough:
    async def test_external_url_returned_unchanged(self):
        storage = Mock()
        storage.is_store_url.return_value = False
        uc = UploadImageUseCase(storage=storage)
        asset = await uc.execute(RemoteUrlInput("https://cdn.shop.test/a.jpg"))
        assert asset.thumbnail_url == asset.full_url == "https://cdn.shop.test/a.jpg"
        assert not asset.is_optimized
        assert asset.metadata is None
        storage.put.assert_not_called()
        storage.ensure_bucket.assert_not_called()

    @pytest.mark.parametrize("url", ["/images/products/p1.jpg", "https://shop.example.com/p1.jpg"])
    async def test_relative_and_subdomain_urls_pass_through(self, local_storage, url):
        asset = await UploadImageUseCase(storage=local_storage).execute(RemoteUrlInput(url))
        assert asset.thumbnail_url == asset.full_url == url
        assert not asset.is_optimized
        assert not any(local_storage.local_dir.rglob("*.*"))

    async def test_stored_url_returned_unchanged(self, local_storage):
        url = local_storage.resolve_public_url("products/full/abc_1_full.jpg")
        asset = await UploadImageUseCase(storage=local_storage).execute(RemoteUrlInput(url))
        assert asset.thumbnail_url == asset.full_url == url
        assert not asset.is_optimized


class TestFallbackLadder:
    async def test_decode_failure_uploads_original(self, local_storage):
        uc = UploadImageUseCase(storage=local_storage)
        asset = await uc.execute(BytesInput(MALFORMED, "broken.jpg", "image/jpeg"))

        assert not asset.is_optimized
        assert asset.thumbnail_url == asset.full_url
        assert local_storage.is_store_url(asset.full_url)
        assert asset.full_url.endswith(".jpg")
        assert "/thumbnails/" not in asset.full_url
        assert _stored_bytes(local_storage, asset.full_url) == MALFORMED
        assert asset.metadata is None
        assert asset.error

    async def test_raw_upload_extension_follows_declared_type(self, local_storage):
        asset = await UploadImageUseCase(storage=local_storage).execute(BytesInput(MALFORMED, "x.html", "image/jpeg"))
        assert asset.full_url.endswith(".jpg")

    async def test_too_many_pixels_uploads_original(self, local_storage):
        buf = io.BytesIO()
        Image.new("1", (9000, 9000), 1).save(buf, format="PNG")
        original = buf.getvalue()
        assert len(original) < 5 * MIB

        asset = await UploadImageUseCase(storage=local_storage).execute(BytesInput(original, "huge.png", "image/png"))

        assert not asset.is_optimized
        assert asset.thumbnail_url == asset.full_url
        assert asset.full_url.endswith(".png")
        assert _stored_bytes(local_storage, asset.full_url) == original
        assert "exceeds the limit" in asset.error

    async def test_transform_failure_uploads_original(self, local_storage, image_bytes):
        transform = Mock(spec=TransformService)
        transform.transform.return_value = Outcome.failure(EncodeError("encoder crashed"))
        original = image_bytes(30, 30)
        uc = UploadImageUseCase(storage=local_storage, transform=transform)
        asset = await uc.execute(BytesInput(original, "a.png", "image/png"))

        assert not asset.is_optimized
        assert asset.thumbnail_url == asset.full_url
        assert _stored_bytes(local_storage, asset.full_url) == original
        assert "encoder crashed" in asset.error

    async def test_thumbnail_put_failure_uploads_original(self, local_storage, image_bytes, monkeypatch):
        attempted = _fail_puts(local_storage, monkeypatch, lambda key: "/thumbnails/" in key)
        original = image_bytes(30, 30)
        asset = await UploadImageUseCase(storage=local_storage).execute(BytesInput(original, "a.png", "image/png"))

        assert not asset.is_optimized
        assert asset.thumbnail_url == asset.full_url
        assert _stored_bytes(local_storage, asset.full_url) == original
        # full derivative is not attempted once the thumbnail failed
        assert not any("/full/" in key for key in attempted)

    async def test_full_put_failure_reuses_thumbnail(self, local_storage, image_bytes, monkeypatch):
        _fail_puts(local_storage, monkeypatch, lambda key: "/full/" in key)
        asset = await UploadImageUseCase(storage=local_storage).execute(
            BytesInput(image_bytes(30, 30), "a.png", "image/png")
        )

        assert asset.is_optimized
        assert asset.full_url == asset.thumbnail_url
        assert "/thumbnails/" in asset.thumbnail_url
        assert asset.metadata is not None

    async def test_storage_down_falls_back_to_data_uri(self, local_storage, monkeypatch):
        _fail_puts(local_storage, monkeypatch)
        asset = await UploadImageUseCase(storage=local_storage).execute(
            BytesInput(MALFORMED, "broken.jpg", "image/jpeg")
        )

        expected = "data:image/jpeg;base64," + base64.b64encode(MALFORMED).decode()
        assert asset.thumbnail_url == asset.full_url == expected
        assert not asset.is_optimized

    async def test_unreadable_data_uri_payload_returned_as_is(self, local_storage):
        data_uri = "data:image/png;base64," + "!" * 400
        asset = await UploadImageUseCase(storage=local_storage).execute(DataUriInput(data_uri))
        assert asset.thumbnail_url == asset.full_url == data_uri
        assert not asset.is_optimized

    async def test_unexpected_storage_exception_never_escapes(self, local_storage, image_bytes, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("client bug")

        monkeypatch.setattr(local_storage, "put", explode)
        original = image_bytes(10, 10)
        asset = await UploadImageUseCase(storage=local_storage).execute(BytesInput(original, "a.png", "image/png"))
        assert asset.full_url == "data:image/png;base64," + base64.b64encode(original).decode()
        assert not asset.is_optimized

    @pytest.mark.parametrize("decode_fails,encode_fails,store_fails", list(product([False, True], repeat=3)))
    async def test_every_failure_combination_returns_asset(
        self, local_storage, image_bytes, monkeypatch, decode_fails, encode_fails, store_fails
    ):
        transform = TransformService()
        if encode_fails:
            transform = Mock(spec=TransformService)
            transform.transform.return_value = Outcome.failure(EncodeError("boom"))
        if store_fails:
            _fail_puts(local_storage, monkeypatch)
        data = MALFORMED if decode_fails else image_bytes(16, 16)

        uc = UploadImageUseCase(storage=local_storage, transform=transform)
        asset = await uc.execute(BytesInput(data, "a.png", "image/png"))

        assert asset is not None
        assert asset.thumbnail_url and asset.full_url
        assert asset.is_optimized == (not (decode_fails or encode_fails or store_fails))
        if store_fails:
            assert asset.full_url.startswith("data:image/png;base64,")
