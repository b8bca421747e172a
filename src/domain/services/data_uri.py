from __future__ import annotations

import base64
import binascii
import re

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^;,]*)*?);base64,(?P<payload>.*)$", re.S)


def split_data_uri(data_uri: str) -> tuple[str, str]:
    """Return (mime_type, base64_payload). Raises ValueError on anything but a base64 data URI."""
    match = _DATA_URI_RE.match(data_uri.strip())
    if match is None:
        raise ValueError("Not a base64 data URI")
    return (match.group("mime") or "").lower(), match.group("payload")


def decode_data_uri(data_uri: str) -> tuple[str, bytes]:
    mime, payload = split_data_uri(data_uri)
    try:
        data = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Invalid base64 payload: {exc}") from exc
    return mime, data


def encode_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def estimate_payload_size(payload: str) -> int:
    # base64 carries 3 bytes per 4 characters
    return round(len(payload) * 0.75)
