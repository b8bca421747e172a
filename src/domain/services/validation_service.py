from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from src.domain.entities.image import (
    BytesInput,
    DataUriInput,
    ImageVariant,
    RawImageInput,
    RemoteUrlInput,
    ValidationResult,
)
from src.domain.services.data_uri import estimate_payload_size, split_data_uri

MIB = 1024 * 1024

PRODUCT_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
LOGO_MIME_TYPES = PRODUCT_MIME_TYPES + ("image/svg+xml",)

# Browsers still report this non-standard alias for JPEG
_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}

MIN_URL_LENGTH = 10

# Stock placeholder images that sample data and old records point at
_PLACEHOLDER_URLS = frozenset(
    {
        "https://via.placeholder.com/150",
        "https://via.placeholder.com/300",
        "https://via.placeholder.com/400",
        "https://placeholder.com/150",
        "https://placeholder.com/300",
        "https://example.com/image.jpg",
        "https://example.com/placeholder.jpg",
    }
)
_PLACEHOLDER_PATTERNS = (
    re.compile(r"^https?://.*placeholder.*150.*150", re.I),
    re.compile(r"^https?://(?:www\.)?example\.com/.*\.(?:jpg|png|gif|webp)", re.I),
)


@dataclass(frozen=True)
class ValidationPolicy:
    max_bytes: int
    allowed_mime_types: tuple[str, ...]
    min_bytes: int = 8


POLICIES: dict[ImageVariant, ValidationPolicy] = {
    ImageVariant.PRODUCT: ValidationPolicy(max_bytes=5 * MIB, allowed_mime_types=PRODUCT_MIME_TYPES),
    ImageVariant.LOGO: ValidationPolicy(max_bytes=2 * MIB, allowed_mime_types=LOGO_MIME_TYPES),
}


def normalize_mime(mime_type: str | None) -> str:
    mime = (mime_type or "").split(";")[0].strip().lower()
    return _MIME_ALIASES.get(mime, mime)


class ValidationService:
    """Size/type checks run before any decoding work. Never raises."""

    def __init__(self, policies: dict[ImageVariant, ValidationPolicy] | None = None) -> None:
        self.policies = dict(POLICIES if policies is None else policies)

    def policy_for(self, variant: ImageVariant) -> ValidationPolicy:
        return self.policies[variant]

    def validate(
        self, size_bytes: int, mime_type: str | None, variant: ImageVariant = ImageVariant.PRODUCT
    ) -> ValidationResult:
        policy = self.policy_for(variant)
        errors: list[str] = []

        if size_bytes < policy.min_bytes:
            errors.append(
                f"File size ({size_bytes} bytes) is below the minimum of {policy.min_bytes} bytes"
            )
        if size_bytes > policy.max_bytes:
            errors.append(
                f"File size ({size_bytes / MIB:.2f}MB) exceeds maximum allowed size "
                f"({policy.max_bytes / MIB:g}MB)"
            )

        mime = normalize_mime(mime_type)
        if mime not in policy.allowed_mime_types:
            errors.append(
                f"File type {mime or 'unknown'} is not supported. "
                f"Allowed types: {', '.join(policy.allowed_mime_types)}"
            )

        return ValidationResult(is_valid=not errors, errors=errors)

    def validate_input(
        self, raw: RawImageInput, variant: ImageVariant = ImageVariant.PRODUCT
    ) -> ValidationResult:
        if isinstance(raw, RemoteUrlInput):
            return self.validate_remote_url(raw.url)
        size, mime = self.declared_metadata(raw)
        return self.validate(size, mime, variant)

    @staticmethod
    def declared_metadata(raw: BytesInput | DataUriInput) -> tuple[int, str]:
        """Declared (size, mime) of an input, read without decoding pixels."""
        if isinstance(raw, BytesInput):
            return len(raw.data), raw.mime_type
        try:
            mime, payload = split_data_uri(raw.data_uri)
        except ValueError:
            return 0, ""
        return estimate_payload_size(payload), mime

    @staticmethod
    def validate_remote_url(url: str) -> ValidationResult:
        """
        Accept absolute http(s) URLs and site-relative paths (``/…`` or ``./…``).

        Known stock placeholder images are refused so they never end up as a
        product's stored image.
        """
        errors: list[str] = []
        candidate = (url or "").strip()
        if len(candidate) < MIN_URL_LENGTH:
            errors.append(f"Image URL is too short ({len(candidate)} characters)")
            return ValidationResult(is_valid=False, errors=errors)

        parts = urlsplit(candidate)
        if parts.scheme:
            if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
                errors.append(f"Image URL must use http or https, got {candidate[:80]!r}")
        elif not candidate.startswith(("/", "./")):
            errors.append(f"Image URL must be absolute or start with '/' or './', got {candidate[:80]!r}")

        if not errors and (
            candidate in _PLACEHOLDER_URLS or any(p.match(candidate) for p in _PLACEHOLDER_PATTERNS)
        ):
            errors.append(f"Image URL points at a placeholder image ({candidate[:80]})")
        return ValidationResult(is_valid=not errors, errors=errors)
