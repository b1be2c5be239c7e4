"""
Text-versus-binary classification and text reading for kept paths.
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Optional

from .errors import UnreadableFileError
from .models import FileInput


SAMPLE_SIZE = 8000
MAX_NON_PRINTABLE_RATIO = 0.05

TEXT_MEDIA_HINTS = (
    "json", "xml", "yaml", "javascript", "typescript",
    "html", "css", "csv", "markdown",
)
BINARY_MEDIA_PREFIXES = ("image/", "audio/", "video/", "application/zip", "application/x-")

# Source extensions whose registered media type would misclassify them
# (".ts" is MPEG transport stream, ".sh" and ".tcl" are application/x-*).
_SOURCE_MEDIA_TYPES = {
    ".ts": "application/typescript",
    ".mts": "application/typescript",
    ".cts": "application/typescript",
    ".tsx": "application/typescript",
    ".jsx": "text/javascript",
    ".sh": "text/x-shellscript",
    ".bash": "text/x-shellscript",
    ".zsh": "text/x-shellscript",
    ".tex": "text/x-tex",
    ".latex": "text/x-latex",
    ".texi": "text/x-texinfo",
    ".texinfo": "text/x-texinfo",
    ".csh": "text/x-csh",
    ".shar": "text/x-shellscript",
    ".tcl": "text/x-tcl",
    ".src": "text/plain",
    ".roff": "text/troff",
    ".t": "text/troff",
    ".tr": "text/troff",
    ".man": "text/troff",
    ".me": "text/troff",
    ".ms": "text/troff",
    ".toml": "text/x-toml",
    ".rs": "text/x-rust",
    ".go": "text/x-go",
}

_MIME = mimetypes.MimeTypes()
for _ext, _type in _SOURCE_MEDIA_TYPES.items():
    _MIME.add_type(_type, _ext)


def guess_media_type(path: str) -> Optional[str]:
    """Declared media type for a path, or None when unknown."""
    media_type, _ = _MIME.guess_type(Path(path).name, strict=False)
    return media_type


def _is_printable(byte: int) -> bool:
    # High-bit bytes may be UTF-8 continuation bytes and are allowed
    return byte in (9, 10, 13) or 32 <= byte <= 126 or byte >= 128


def looks_like_text(sample: bytes) -> bool:
    """Byte-sampling heuristic over the first ``SAMPLE_SIZE`` bytes."""
    sample = sample[:SAMPLE_SIZE]
    if not sample:
        return True
    non_printable = sum(1 for byte in sample if not _is_printable(byte))
    return non_printable / len(sample) < MAX_NON_PRINTABLE_RATIO


def is_text(declared_media_type: Optional[str], sample: bytes) -> bool:
    """Decide text-vs-binary: declared media type first, else the byte heuristic."""
    if declared_media_type:
        lower = declared_media_type.lower()
        if lower.startswith("text/") or any(hint in lower for hint in TEXT_MEDIA_HINTS):
            return True
        if lower == "application/pdf" or lower.startswith(BINARY_MEDIA_PREFIXES):
            return False
    return looks_like_text(sample)


def read_text_file(root: Path, rel_path: str) -> Optional[FileInput]:
    """Read one kept path. Returns None for binary files.

    Raises UnreadableFileError when the file cannot be opened or is not
    valid UTF-8.
    """
    try:
        with open(root / rel_path, "rb") as f:
            sample = f.read(SAMPLE_SIZE)
            if not is_text(guess_media_type(rel_path), sample):
                logging.debug(f"Skipping binary file {rel_path}")
                return None
            data = sample + f.read()
    except OSError as e:
        raise UnreadableFileError(rel_path, e.strerror or str(e)) from e

    try:
        content = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise UnreadableFileError(rel_path, f"not valid UTF-8 ({e.reason})") from e
    return FileInput(path=rel_path, content=content)
