from __future__ import annotations

import logging
import os
import re
import time
import uuid
from pathlib import Path
from urllib.parse import quote, unquote, urlsplit

from supabase import Client

from src.domain.entities.errors import DeleteError, Outcome, StoreError
from src.domain.services.validation_service import LOGO_MIME_TYPES

logger = logging.getLogger(__name__)

PUBLIC_OBJECT_PATH = "/storage/v1/object/public"
DEFAULT_BUCKET = "product_images"
DEFAULT_FILE_SIZE_LIMIT = 10 * 1024 * 1024

_DERIVATIVE_KEY_RE = re.compile(
    r"^(?P<prefix>.+)/(?:thumbnails/(?P<t>[^/]+)_thumb|full/(?P<f>[^/]+)_full)\.(?P<ext>\w+)$"
)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/svg+xml": "svg",
}


def extension_for(mime_type: str | None, filename: str | None = None) -> str:
    """Object key extension: from the declared type, else the client filename."""
    known = _EXTENSIONS.get((mime_type or "").split(";")[0].strip().lower())
    if known:
        return known
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[-1].lower()
        if ext.isalnum() and len(ext) <= 5:
            return ext
    return "bin"


def _bucket_name(bucket: object) -> str | None:
    if isinstance(bucket, dict):
        return bucket.get("name") or bucket.get("id")
    return getattr(bucket, "name", None) or getattr(bucket, "id", None)


def _is_already_exists(exc: Exception) -> bool:
    status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
    if str(status) == "409":
        return True
    text = str(exc).lower()
    return "already exists" in text or "duplicate" in text


class SupabaseStorage:
    """Supabase Storage adapter with a local directory fallback.

    Objects are public and addressed by generated keys:

        {folder}/thumbnails/{token}_{timestamp}_thumb.jpg
        {folder}/full/{token}_{timestamp}_full.jpg
        {folder}/{token}_{timestamp}.{ext}          (raw uploads)

    Public URLs follow ``{base_url}/storage/v1/object/public/{bucket}/{key}``
    in both modes, so a key can always be recovered from its URL.
    """

    def __init__(
        self,
        client: Client | None,
        bucket: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self.client = client
        self.bucket = bucket or os.getenv("SUPABASE_STORAGE_BUCKET", DEFAULT_BUCKET)
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.base_url = (base_url or os.getenv("SUPABASE_URL") or "http://localhost:54321").rstrip("/")
        self.local_dir = Path(os.getenv("SUPABASE_STORAGE_LOCAL_DIR", ".local_storage"))
        self.file_size_limit = int(
            os.getenv("SUPABASE_BUCKET_FILE_SIZE_LIMIT", str(DEFAULT_FILE_SIZE_LIMIT))
        )
        self.allowed_mime_types = list(LOGO_MIME_TYPES)

    @property
    def is_local(self) -> bool:
        return self.disabled or self.client is None

    # --------- keys & urls ---------
    @staticmethod
    def _clean_folder(folder: str) -> str:
        parts = [p for p in (folder or "").strip().split("/") if p and p not in (".", "..")]
        return "/".join(parts) or "uploads"

    @staticmethod
    def _token() -> str:
        return f"{uuid.uuid4().hex[:16]}_{int(time.time() * 1000)}"

    def generate_key(
        self, folder: str, tier: str, suffix: str, ext: str = "jpg", token: str | None = None
    ) -> str:
        return f"{self._clean_folder(folder)}/{tier}/{token or self._token()}_{suffix}.{ext}"

    def derivative_keys(self, folder: str, ext: str = "jpg") -> tuple[str, str]:
        """(thumbnail_key, full_key) sharing one token."""
        token = self._token()
        return (
            self.generate_key(folder, "thumbnails", "thumb", ext, token=token),
            self.generate_key(folder, "full", "full", ext, token=token),
        )

    def generate_raw_key(self, folder: str, ext: str) -> str:
        return f"{self._clean_folder(folder)}/{self._token()}.{ext}"

    def resolve_public_url(self, key: str) -> str:
        return f"{self.base_url}{PUBLIC_OBJECT_PATH}/{self.bucket}/{quote(key, safe='/')}"

    def key_from_url(self, url: str | None) -> str | None:
        """Reverse of resolve_public_url; None for anything not stored in this bucket."""
        if not url or not isinstance(url, str):
            return None
        parts = urlsplit(url.strip())
        if parts.scheme not in ("http", "https"):
            return None
        if parts.netloc.lower() != urlsplit(self.base_url).netloc.lower():
            return None
        prefix = f"{PUBLIC_OBJECT_PATH}/{self.bucket}/"
        if not parts.path.startswith(prefix):
            return None
        key = unquote(parts.path[len(prefix) :])
        if not key or any(seg in ("", ".", "..") for seg in key.split("/")):
            return None
        return key

    def is_store_url(self, url: str | None) -> bool:
        return self.key_from_url(url) is not None

    def derivative_urls(self, url: str) -> list[str]:
        """The URL plus its thumbnail/full sibling when it names a derivative."""
        key = self.key_from_url(url)
        if key is None:
            return [url]
        match = _DERIVATIVE_KEY_RE.match(key)
        if match is None:
            return [url]
        prefix, ext = match.group("prefix"), match.group("ext")
        token = match.group("t") or match.group("f")
        thumb = f"{prefix}/thumbnails/{token}_thumb.{ext}"
        full = f"{prefix}/full/{token}_full.{ext}"
        return [self.resolve_public_url(thumb), self.resolve_public_url(full)]

    def _local_path(self, key: str, bucket: str | None = None) -> Path:
        return self.local_dir / (bucket or self.bucket) / key

    # --------- operations ---------
    def ensure_bucket(self, name: str | None = None) -> Outcome[None]:
        name = name or self.bucket
        if self.is_local:
            (self.local_dir / name).mkdir(parents=True, exist_ok=True)
            return Outcome.success()
        try:
            buckets = self.client.storage.list_buckets()  # type: ignore[union-attr]
        except Exception as exc:
            logger.error("Error listing buckets: %s", exc)
            return Outcome.failure(StoreError(f"Could not list buckets: {exc}"))
        if any(_bucket_name(b) == name for b in buckets or []):
            logger.debug("Bucket %s already exists", name)
            return Outcome.success()
        try:
            self.client.storage.create_bucket(  # type: ignore[union-attr]
                name,
                options={
                    "public": True,
                    "file_size_limit": self.file_size_limit,
                    "allowed_mime_types": self.allowed_mime_types,
                },
            )
        except Exception as exc:
            if _is_already_exists(exc):
                # lost a creation race with another caller
                logger.info("Bucket %s was created concurrently", name)
                return Outcome.success()
            logger.error("Error creating bucket %s: %s", name, exc)
            return Outcome.failure(StoreError(f"Could not create bucket {name}: {exc}"))
        logger.info("Bucket %s created", name)
        return Outcome.success()

    def put(self, key: str, data: bytes, mime_type: str) -> Outcome[str]:
        if self.is_local:
            path = self._local_path(key)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("xb") as fh:
                    fh.write(data)
            except FileExistsError:
                return Outcome.failure(StoreError(f"Object {key} already exists"))
            except OSError as exc:
                return Outcome.failure(StoreError(f"Local storage write failed: {exc}"))
            return Outcome.success(self.resolve_public_url(key))
        try:
            self.client.storage.from_(self.bucket).upload(  # type: ignore[union-attr]
                path=key,
                file=data,
                file_options={"content-type": mime_type, "cache-control": "3600", "upsert": "false"},
            )
        except Exception as exc:
            logger.error("Storage upload of %s failed: %s", key, exc)
            return Outcome.failure(StoreError(f"Storage upload failed: {exc}"))
        return Outcome.success(self.resolve_public_url(key))

    def delete(self, url: str) -> Outcome[bool]:
        key = self.key_from_url(url)
        if key is None:
            logger.debug("Not a URL of bucket %s, skipping delete", self.bucket)
            return Outcome.success(False)
        if self.is_local:
            path = self._local_path(key)
            try:
                existed = path.exists()
                path.unlink(missing_ok=True)
            except OSError as exc:
                return Outcome.failure(DeleteError(f"Local storage delete failed: {exc}"))
            return Outcome.success(existed)
        try:
            removed = self.client.storage.from_(self.bucket).remove([key])  # type: ignore[union-attr]
        except Exception as exc:
            logger.error("Error deleting %s: %s", key, exc)
            return Outcome.failure(DeleteError(f"Storage delete failed: {exc}"))
        logger.info("Deleted %s from bucket %s", key, self.bucket)
        return Outcome.success(bool(removed) if isinstance(removed, list) else True)
