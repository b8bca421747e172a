import io
import os
import sys
from pathlib import Path
from unittest.mock import Mock

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Ensure project root is on sys.path so 'src' is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("SUPABASE_DISABLED", "1")
os.environ.setdefault("LOG_LEVEL", "WARNING")

STORE_BASE_URL = "https://proj.supabase.test"
BUCKET = "product_images"


def make_image_bytes(w=4, h=4, fmt="PNG", color=(128, 64, 32), **save_kwargs) -> bytes:
    arr = np.zeros((h, w, 3), dtype=np.uint8)
    arr[:, :] = color
    img = Image.fromarray(arr)
    if fmt == "GIF":
        img = img.convert("P")
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


def make_gradient_jpeg(w, h, quality=95) -> bytes:
    xs = np.linspace(0, 255, w, dtype=np.float32)
    ys = np.linspace(0, 255, h, dtype=np.float32)
    arr = np.zeros((h, w, 3), dtype=np.uint8)
    arr[..., 0] = xs[None, :].astype(np.uint8)
    arr[..., 1] = ys[:, None].astype(np.uint8)
    arr[..., 2] = 128
    buf = io.BytesIO()
    Image.fromarray(arr).save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def local_storage(tmp_path):
    from src.infrastructure.storage.supabase_storage import SupabaseStorage

    storage = SupabaseStorage(None, bucket=BUCKET, base_url=STORE_BASE_URL)
    storage.local_dir = tmp_path
    return storage


@pytest.fixture
def remote_storage(monkeypatch):
    """Storage wired to a mocked Supabase client."""
    from src.infrastructure.storage.supabase_storage import SupabaseStorage

    monkeypatch.setenv("SUPABASE_DISABLED", "0")
    client = Mock()
    client.storage.list_buckets.return_value = [{"id": BUCKET, "name": BUCKET}]
    return SupabaseStorage(client, bucket=BUCKET, base_url=STORE_BASE_URL)


@pytest.fixture
def client(local_storage) -> TestClient:
    # lazy import after env configured
    from src.infrastructure.api.dependencies import get_storage
    from src.main import create_app

    app = create_app()
    app.dependency_overrides[get_storage] = lambda: local_storage
    return TestClient(app)


@pytest.fixture
def image_bytes():
    return make_image_bytes


@pytest.fixture
def gradient_jpeg():
    return make_gradient_jpeg
