"""
media_encoder.py — turn an uploaded file into inline data for Gemini.

Accepts raw bytes, a filesystem path, a binary file-like object or a
``data:`` URI and returns an EncodedMedia (base64 text + MIME type).
The payload never carries a data-URI prefix.

Any failure to read the source raises EncodingError. Nothing is retried and
the source is never modified (file-likes are read but not closed).
"""
from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import os
import re
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote_to_bytes

from errors import EncodingError
from models import EncodedMedia

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_DATA_URI_RE = re.compile(r"^data:(?P<type>[^;,]*)(?P<params>(;[^;,]*)*),(?P<data>.*)$", re.DOTALL)


def sniff_content_type(data: bytes) -> Optional[str]:
    """Best-effort MIME detection from magic bytes."""
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:4] == b"GIF8":
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "audio/wav"
    if data[:4] == b"%PDF":
        return "application/pdf"
    if data[:4] == b"OggS":
        return "audio/ogg"
    if data[:3] == b"ID3" or data[:2] == b"\xff\xfb":
        return "audio/mpeg"
    return None


def _guess_from_name(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    guessed, _ = mimetypes.guess_type(name)
    return guessed


def _decode_data_uri(uri: str) -> tuple[bytes, Optional[str]]:
    match = _DATA_URI_RE.match(uri)
    if not match:
        raise EncodingError("Malformed data URI")
    content_type = match.group("type") or None
    raw = match.group("data")
    if ";base64" in match.group("params"):
        try:
            return base64.b64decode(raw, validate=True), content_type
        except (binascii.Error, ValueError) as exc:
            raise EncodingError(f"Invalid base64 in data URI: {exc}") from exc
    return unquote_to_bytes(raw), content_type


def _read_source(source: Any) -> tuple[bytes, Optional[str], Optional[str]]:
    """Return (data, content_type_hint, name_hint)."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source), None, None

    if isinstance(source, str) and source.startswith("data:"):
        data, content_type = _decode_data_uri(source)
        return data, content_type, None

    if isinstance(source, (str, os.PathLike)):
        path = Path(source)
        try:
            return path.read_bytes(), None, path.name
        except OSError as exc:
            raise EncodingError(f"Could not read {path.name}: {exc}") from exc

    read = getattr(source, "read", None)
    if callable(read):
        try:
            data = read()
        except Exception as exc:
            raise EncodingError(f"Could not read media: {exc}") from exc
        if isinstance(data, (bytearray, memoryview)):
            data = bytes(data)
        if not isinstance(data, bytes):
            raise EncodingError("Media must be opened in binary mode")
        name = getattr(source, "name", None)
        return data, None, name if isinstance(name, str) else None

    raise EncodingError(f"Unsupported media source: {type(source).__name__}")


def encode_media(
    source: Any,
    content_type: Optional[str] = None,
    filename: Optional[str] = None,
) -> EncodedMedia:
    """
    Encode `source` for inline transport.

    Content type priority: explicit argument → data-URI type → file name
    extension → magic bytes → application/octet-stream.
    """
    data, type_hint, name_hint = _read_source(source)

    resolved = (
        content_type
        or type_hint
        or _guess_from_name(filename or name_hint)
        or sniff_content_type(data)
        or DEFAULT_CONTENT_TYPE
    )
    payload = base64.b64encode(data).decode("ascii")
    logger.debug("Encoded %d bytes as %s", len(data), resolved)
    return EncodedMedia(payload=payload, content_type=resolved)
