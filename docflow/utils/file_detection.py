"""Content-type detection for inbound attachments."""

import mimetypes
from typing import Optional

IMAGE = "image"
PDF = "pdf"

_IMAGE_MAGIC = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)

# Vision models reject these even though they are images
_UNSUPPORTED_IMAGE_TYPES = {"image/heic", "image/heif"}


def sniff_content_type(data: Optional[bytes]) -> Optional[str]:
    """Infer a MIME type from leading magic bytes."""
    if not data:
        return None
    if data.startswith(b"%PDF"):
        return "application/pdf"
    for magic, mime in _IMAGE_MAGIC:
        if data.startswith(magic):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def resolve_content_type(
    declared: Optional[str],
    data: Optional[bytes] = None,
    file_name: Optional[str] = None,
) -> Optional[str]:
    """Pick the best content type: declared header, then magic bytes, then extension."""
    if declared:
        declared = declared.split(";")[0].strip().lower()
        if declared and declared not in ("application/octet-stream", "binary/octet-stream"):
            return declared

    sniffed = sniff_content_type(data)
    if sniffed:
        return sniffed

    if file_name:
        guessed, _ = mimetypes.guess_type(file_name)
        if guessed:
            return guessed.lower()
    return declared or None


def file_kind(content_type: Optional[str]) -> Optional[str]:
    """Map a MIME type to ``"image"``, ``"pdf"`` or None when unsupported."""
    if not content_type:
        return None
    if content_type == "application/pdf":
        return PDF
    if content_type.startswith("image/") and content_type not in _UNSUPPORTED_IMAGE_TYPES:
        return IMAGE
    return None
