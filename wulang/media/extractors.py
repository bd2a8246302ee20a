"""Attachment extraction: PDF text and image metadata via PyMuPDF."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

import pymupdf

from wulang.conversation.models import AttachmentKind
from wulang.errors import ExtractionError, UnsupportedMediaError, ValidationError

logger = logging.getLogger(__name__)

MAX_EXTRACTED_CHARS = 50_000
DEFAULT_MAX_SIZE_MB = 10
EMPTY_PDF_TEXT = "No text content found in PDF"

MediaKind = Literal["pdf", "image", "unsupported"]


@dataclass
class ExtractedAttachment:
    """Normalized result of decoding an attachment."""

    kind: Literal["pdf", "image"]
    text: str
    filename: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def attachment_kind(self) -> AttachmentKind:
        return attachment_kind_for(self.kind)


def classify_media(mime_type: str) -> MediaKind:
    """Classify a declared MIME type as ``pdf``, ``image`` or ``unsupported``."""
    lowered = (mime_type or "").strip().lower()
    if lowered == "application/pdf":
        return "pdf"
    if lowered.startswith("image/"):
        return "image"
    return "unsupported"


def attachment_kind_for(media_kind: str) -> AttachmentKind:
    return AttachmentKind.IMAGE if media_kind == "image" else AttachmentKind.DOCUMENT


def validate_size(data: bytes, max_mb: int = DEFAULT_MAX_SIZE_MB) -> bool:
    return len(data) <= max_mb * 1024 * 1024


def format_size(size_bytes: int) -> str:
    """Format byte count as a human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def _extract_pdf(data: bytes, filename: str) -> ExtractedAttachment:
    doc = pymupdf.open(stream=data, filetype="pdf")
    try:
        pages = []
        for page in doc:
            text = page.get_text()
            if text.strip():
                pages.append(text.strip())
        metadata = {"pages": doc.page_count, "info": dict(doc.metadata or {})}
    finally:
        doc.close()

    text = "\n\n".join(pages) if pages else EMPTY_PDF_TEXT
    if len(text) > MAX_EXTRACTED_CHARS:
        text = text[:MAX_EXTRACTED_CHARS] + "\n\n[truncated: extracted text too large]"
    return ExtractedAttachment(kind="pdf", text=text, filename=filename, metadata=metadata)


def _extract_image(data: bytes, filename: str, mime_type: str) -> ExtractedAttachment:
    pix = pymupdf.Pixmap(data)
    metadata = {
        "width": pix.width,
        "height": pix.height,
        "format": mime_type.split("/", 1)[1].lower(),
        "size": len(data),
    }
    # No captioning here; the backend sees the raw bytes during analysis.
    text = (
        f"Image file: {filename}. "
        f"Dimensions: {metadata['width']}x{metadata['height']}px. "
        f"Format: {metadata['format']}. "
        f"Size: {format_size(len(data))}."
    )
    return ExtractedAttachment(kind="image", text=text, filename=filename, metadata=metadata)


async def extract(
    data: bytes,
    filename: str,
    mime_type: str,
    *,
    max_size_mb: int = DEFAULT_MAX_SIZE_MB,
) -> ExtractedAttachment:
    """Decode an attachment into text plus metadata.

    Raises:
        ValidationError: the payload exceeds *max_size_mb*.
        UnsupportedMediaError: the MIME type is neither PDF nor image.
        ExtractionError: decoding failed; the cause is chained.
    """
    if not validate_size(data, max_size_mb):
        raise ValidationError(
            f"File too large: {format_size(len(data))} (max {max_size_mb} MB)", "attachment"
        )

    kind = classify_media(mime_type)
    if kind == "unsupported":
        raise UnsupportedMediaError(f"Unsupported media type: {mime_type}")

    logger.info("Extracting %s: %s (%s)", kind, filename, format_size(len(data)))
    try:
        if kind == "pdf":
            return await asyncio.to_thread(_extract_pdf, data, filename)
        return await asyncio.to_thread(_extract_image, data, filename, mime_type)
    except Exception as exc:
        logger.exception("Failed to extract %s", filename)
        raise ExtractionError(f"Failed to process {kind} {filename}: {exc}") from exc
