"""Turn a user-supplied file into bytes ready for an extraction backend."""

from __future__ import annotations

import base64
import binascii
import io
import mimetypes
import os
import re
from dataclasses import dataclass
from typing import Dict, Optional

from PIL import Image, UnidentifiedImageError

from ..logging import get_logger
from .errors import UnreadableFile, UnsupportedFile

LOG = get_logger("orchestrator-source")

KIND_IMAGE = "image"
KIND_PDF = "pdf"
KIND_DOCUMENT = "document"
KIND_TEXT = "text"

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_EXTENSION_KINDS: Dict[str, str] = {
    ".jpg": KIND_IMAGE,
    ".jpeg": KIND_IMAGE,
    ".jpe": KIND_IMAGE,
    ".jfif": KIND_IMAGE,
    ".png": KIND_IMAGE,
    ".webp": KIND_IMAGE,
    ".gif": KIND_IMAGE,
    ".pdf": KIND_PDF,
    ".docx": KIND_DOCUMENT,
    ".txt": KIND_TEXT,
}

_PIL_FORMAT_MIME: Dict[str, str] = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}

_DATA_URL_PREFIX = re.compile(r"^data:(?P<mime>[\w.+/-]+)?;base64,", re.IGNORECASE)


@dataclass(frozen=True)
class SourceFile:
    filename: str
    media_type: str
    kind: str
    data: bytes

    @property
    def byte_size(self) -> int:
        return len(self.data)

    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.b64()}"


def _guess_kind(filename: str, content_type: Optional[str]) -> Optional[str]:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext in _EXTENSION_KINDS:
        return _EXTENSION_KINDS[ext]
    ct = (content_type or "").split(";")[0].strip().lower()
    if ct.startswith("image/"):
        return KIND_IMAGE
    if ct == "application/pdf":
        return KIND_PDF
    if ct == DOCX_MIME:
        return KIND_DOCUMENT
    if ct == "text/plain":
        return KIND_TEXT
    return None


def _verify_image(filename: str, data: bytes) -> str:
    """Return the image MIME type, or raise UnreadableFile if Pillow cannot decode it."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            fmt = (im.format or "").upper()
            im.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        LOG.error("Image %s could not be decoded: %s", filename, exc)
        raise UnreadableFile(f"Could not read image '{filename}'.") from exc
    mime = _PIL_FORMAT_MIME.get(fmt)
    if not mime:
        raise UnsupportedFile(f"Unsupported image format: {fmt or 'unknown'}")
    return mime


def read_upload(filename: str, data: bytes, content_type: Optional[str] = None) -> SourceFile:
    """Validate an in-memory upload and wrap it as a SourceFile."""
    name = os.path.basename(filename or "") or "upload"
    if not data:
        raise UnreadableFile(f"File '{name}' is empty.")
    kind = _guess_kind(name, content_type)
    if kind is None:
        LOG.error("Unsupported upload %s (content_type=%s)", name, content_type)
        raise UnsupportedFile()

    if kind == KIND_IMAGE:
        media_type = _verify_image(name, data)
    elif kind == KIND_DOCUMENT:
        media_type = DOCX_MIME
    else:
        media_type = mimetypes.guess_type(name)[0] or ("application/pdf" if kind == KIND_PDF else "text/plain")

    LOG.debug("Read %s: kind=%s mime=%s bytes=%d", name, kind, media_type, len(data))
    return SourceFile(filename=name, media_type=media_type, kind=kind, data=data)


def read_source(path: str) -> SourceFile:
    """Read a file from disk to completion and validate it."""
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as exc:
        LOG.error("Failed to read source file %s: %s", path, exc)
        raise UnreadableFile(f"Could not open '{os.path.basename(path)}'.") from exc
    return read_upload(os.path.basename(path), data)


def decode_base64_image(payload: str, *, filename: str = "upload") -> SourceFile:
    """Decode the ``{image: base64}`` body used by camera uploads.

    A leading ``data:image/...;base64,`` prefix is tolerated.
    """
    if not isinstance(payload, str) or not payload.strip():
        raise UnreadableFile("Missing image")
    text = payload.strip()
    match = _DATA_URL_PREFIX.match(text)
    if match:
        text = text[match.end():]
    text = "".join(text.split())
    try:
        data = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise UnreadableFile("Image payload is not valid base64.") from exc
    if not data:
        raise UnreadableFile("Missing image")
    media_type = _verify_image(filename, data)
    ext = mimetypes.guess_extension(media_type) or ".img"
    name = filename if os.path.splitext(filename)[1] else f"{filename}{ext}"
    return SourceFile(filename=name, media_type=media_type, kind=KIND_IMAGE, data=data)
