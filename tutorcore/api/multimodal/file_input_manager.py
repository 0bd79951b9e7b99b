"""
Multimodal input preprocessing for the orchestration engine.

Architectural role:
- Reduce one `MultimodalInput` attached to a request to a textual summary that
  detection, domain handlers and aggregation can consume.
- Enforce path/size/extension constraints before extraction.

Processing lifecycle:
1. `text` inputs are passed through (trimmed to `MAX_SUMMARY_CHARS`).
2. `image`/`document` inputs are resolved (`data:` URL, local path, or `file://`
   URL), validated, and extracted by file type (OCR/text parsers).
3. `audio` inputs are acknowledged with a marker; no transcription backend is wired.

Error handling strategy:
- Resolution, validation and extraction failures raise `ValueError` subclasses.
  The engine turns them into request warnings and continues without a summary.

Side effects:
- Writes base64 payloads to temporary files under the allowed upload directory and
  removes them in `finally`, including error paths.

Determinism considerations:
- OCR output and parser behavior may vary across dependency/runtime versions.
"""

import base64
import logging
import os
import tempfile
from typing import Callable, Optional
from urllib.parse import urlparse, unquote

from PIL import Image
import pytesseract
import pdfplumber
import pandas as pd
import docx

from tutorcore.core.routing_types import MultimodalInput


logger = logging.getLogger(__name__)


# ============================================================
# CONFIG
# ============================================================

MAX_FILE_SIZE_BYTES = int(os.getenv("FILE_INPUT_MAX_MB", "10")) * 1024 * 1024
MAX_SUMMARY_CHARS = 4000
CSV_PREVIEW_ROWS = 20
SUPPORTED_TYPES = ("text", "image", "document", "audio")
MIME_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "application/pdf": ".pdf",
    "text/plain": ".txt",
    "text/csv": ".csv",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
}
PROJECT_ROOT = os.path.dirname(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
)
ALLOWED_FILE_BASE_DIR = os.path.realpath(
    os.getenv("FILE_INPUT_BASE_DIR", os.path.join(PROJECT_ROOT, "uploads"))
)


class UnsupportedInput(ValueError):
    """Input type, file type or reference that cannot be summarized."""


# ============================================================
# PUBLIC ENTRYPOINT
# ============================================================

def summarize_input(item: MultimodalInput, max_chars: int = MAX_SUMMARY_CHARS) -> str:
    """Return a textual summary of `item`, truncated to `max_chars`.

    Raises:
        UnsupportedInput: unknown input type or unusable file reference.
        ValueError: file validation failures (size, location).
    """
    kind = (item.type or "").lower()
    if kind not in SUPPORTED_TYPES:
        raise UnsupportedInput(f"Unsupported input type: {item.type!r}")

    if kind == "text":
        return _truncate(item.data.strip(), max_chars)

    if kind == "audio":
        return f"[Audio attachment ({item.mime_type or 'unknown format'}) received; transcription is not available]"

    is_inline = item.data.startswith("data:")
    path = _decode_data_url(item.data, item.mime_type) if is_inline else _local_path(item.data)
    if path is None:
        raise UnsupportedInput("Attachment reference could not be resolved")

    try:
        extractor = _checked_extractor(path)
        text = extractor(path)
        logger.debug("Extracted %d chars from %s attachment", len(text), kind)
        return _truncate(text.strip(), max_chars)
    finally:
        if is_inline:
            _discard(path)


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + " [truncated]"


# ============================================================
# REFERENCE RESOLUTION
# ============================================================

def _local_path(reference: str) -> Optional[str]:
    """Map a plain path or a local `file://` URL to an existing real path."""
    if reference.startswith("file://"):
        parsed = urlparse(reference)
        if parsed.netloc not in ("", "localhost"):
            return None
        reference = unquote(parsed.path or "")

    if not reference:
        return None
    path = os.path.realpath(os.path.expanduser(reference))
    return path if os.path.exists(path) else None


def _decode_data_url(data_url: str, mime_type: Optional[str] = None) -> str:
    """Write the payload of a base64 data URL to a temp file inside the upload dir."""
    header, sep, encoded = data_url.partition(",")
    if not sep:
        raise UnsupportedInput("Malformed data URL")

    # Size is checked on the encoded length so oversized payloads are never decoded.
    decoded_size = (len(encoded) * 3) // 4 - len(encoded) + len(encoded.rstrip("="))
    if decoded_size > MAX_FILE_SIZE_BYTES:
        raise ValueError("File exceeds max size limit")

    declared = header[len("data:"):].split(";", 1)[0] or mime_type
    suffix = MIME_EXTENSIONS.get(declared or "", ".tmp")

    os.makedirs(ALLOWED_FILE_BASE_DIR, exist_ok=True)
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix, dir=ALLOWED_FILE_BASE_DIR) as handle:
        handle.write(base64.b64decode(encoded))
        return handle.name


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Could not remove temporary upload %s", path)


# ============================================================
# VALIDATION
# ============================================================

def _inside_upload_dir(path: str) -> bool:
    try:
        return os.path.commonpath([path, ALLOWED_FILE_BASE_DIR]) == ALLOWED_FILE_BASE_DIR
    except ValueError:
        return False


def _checked_extractor(path: str) -> Callable[[str], str]:
    """Validate `path` and return the extractor for its extension.

    Rejects paths outside `ALLOWED_FILE_BASE_DIR`, files above the size limit and
    extensions without an extractor.
    """
    if not _inside_upload_dir(path):
        raise ValueError("Access denied: path is outside allowed directory")

    if os.path.getsize(path) > MAX_FILE_SIZE_BYTES:
        raise ValueError("File exceeds max size limit")

    extractor = EXTRACTORS.get(os.path.splitext(path)[1].lower())
    if extractor is None:
        raise UnsupportedInput("Unsupported file type")
    return extractor


# ============================================================
# EXTRACTORS
# ============================================================

def _extract_image(path: str) -> str:
    """Image metadata plus best-effort OCR text."""
    with Image.open(path) as img:
        width, height = img.size
        try:
            ocr_text = pytesseract.image_to_string(img)
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as e:
            logger.warning("OCR unavailable for %s: %s", os.path.basename(path), e)
            ocr_text = ""

    return f"[Image {width}x{height}]\nOCR text:\n{ocr_text}"


def _extract_pdf(path: str) -> str:
    with pdfplumber.open(path) as pdf:
        return "\n".join(page.extract_text() or "" for page in pdf.pages)


def _extract_txt(path: str) -> str:
    with open(path, "r", encoding="utf-8", errors="ignore") as f:
        return f.read()


def _extract_csv(path: str) -> str:
    frame = pd.read_csv(path)
    return frame.head(CSV_PREVIEW_ROWS).to_string()


def _extract_docx(path: str) -> str:
    return "\n".join(p.text for p in docx.Document(path).paragraphs)


EXTRACTORS: dict[str, Callable[[str], str]] = {
    ".png": _extract_image,
    ".jpg": _extract_image,
    ".jpeg": _extract_image,
    ".webp": _extract_image,
    ".pdf": _extract_pdf,
    ".txt": _extract_txt,
    ".csv": _extract_csv,
    ".docx": _extract_docx,
}
