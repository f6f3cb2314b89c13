from __future__ import annotations

import base64
from pathlib import Path

import pytest

from snap_stock.orchestrator.errors import UnreadableFile, UnsupportedFile
from snap_stock.orchestrator.source import (
    DOCX_MIME,
    KIND_DOCUMENT,
    KIND_IMAGE,
    decode_base64_image,
    read_source,
    read_upload,
)


def test_read_upload_verifies_image_and_encodes_deterministically(png_bytes: bytes) -> None:
    source = read_upload("receipt.png", png_bytes)

    assert source.kind == KIND_IMAGE
    assert source.media_type == "image/png"
    assert source.b64() == base64.b64encode(png_bytes).decode("ascii")
    assert source.b64() == read_upload("receipt.png", png_bytes).b64()
    assert source.data_url().startswith("data:image/png;base64,")


def test_read_upload_rejects_empty_file() -> None:
    with pytest.raises(UnreadableFile):
        read_upload("receipt.jpg", b"")


def test_read_upload_rejects_corrupt_image() -> None:
    with pytest.raises(UnreadableFile):
        read_upload("receipt.jpg", b"definitely not a jpeg")


def test_read_upload_rejects_unsupported_kind() -> None:
    with pytest.raises(UnsupportedFile):
        read_upload("setup.exe", b"MZ\x90\x00")


def test_read_upload_uses_content_type_when_extension_missing(docx_bytes: bytes) -> None:
    source = read_upload("blob", docx_bytes, content_type=DOCX_MIME)
    assert source.kind == KIND_DOCUMENT


def test_read_source_reads_file_to_completion(tmp_path: Path, docx_bytes: bytes) -> None:
    path = tmp_path / "stock.docx"
    path.write_bytes(docx_bytes)

    source = read_source(str(path))

    assert source.filename == "stock.docx"
    assert source.data == docx_bytes


def test_read_source_missing_file_is_unreadable(tmp_path: Path) -> None:
    with pytest.raises(UnreadableFile):
        read_source(str(tmp_path / "missing.png"))


def test_decode_base64_image_accepts_data_url_prefix(png_bytes: bytes) -> None:
    b64 = base64.b64encode(png_bytes).decode("ascii")

    plain = decode_base64_image(b64)
    prefixed = decode_base64_image(f"data:image/png;base64,{b64}")

    assert plain.data == prefixed.data == png_bytes
    assert plain.filename.endswith(".png")


@pytest.mark.parametrize("payload", ["", "   ", "not base64 at all!!", base64.b64encode(b"plain text").decode()])
def test_decode_base64_image_rejects_bad_payloads(payload: str) -> None:
    with pytest.raises(UnreadableFile):
        decode_base64_image(payload)
