"""
File Type Detection
===================

Classifies an upload into a FileKind from its leading bytes, falling back
to the filename extension. Never raises: anything unrecognized is
``FileKind.UNSUPPORTED`` and the orchestrator decides what to do with it.
"""

from pathlib import PurePath
from typing import Final

from setup_assistant.schemas.domain import FileKind
from setup_assistant.utils.logger import get_logger

logger = get_logger(__name__)

# (signature, kind) pairs checked in order against the start of the buffer
MAGIC_SIGNATURES: Final[tuple[tuple[bytes, FileKind], ...]] = (
    (b"PK\x03\x04", FileKind.SPREADSHEET),  # OOXML (zip container)
    (b"\xd0\xcf\x11\xe0", FileKind.SPREADSHEET),  # legacy OLE .xls
    (b"%PDF", FileKind.PDF),
    (b"\x89PNG", FileKind.IMAGE),
    (b"\xff\xd8\xff", FileKind.IMAGE),
    (b"GIF87a", FileKind.IMAGE),
    (b"GIF89a", FileKind.IMAGE),
)

EXTENSION_KINDS: Final[dict[str, FileKind]] = {
    "xlsx": FileKind.SPREADSHEET,
    "xlsm": FileKind.SPREADSHEET,
    "xls": FileKind.SPREADSHEET,
    "csv": FileKind.CSV,
    "pdf": FileKind.PDF,
    "png": FileKind.IMAGE,
    "jpg": FileKind.IMAGE,
    "jpeg": FileKind.IMAGE,
    "gif": FileKind.IMAGE,
    "webp": FileKind.IMAGE,
}

IMAGE_MEDIA_TYPES: Final[dict[str, str]] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
}


def get_extension(filename: str) -> str:
    """Lowercase extension without the dot ("Planilha.XLSX" → "xlsx")."""
    return PurePath(filename or "").suffix.lower().lstrip(".")


class FileTypeDetector:
    """
    Detects the kind of an uploaded file.

    Magic bytes win over the extension, so a renamed PDF is still a PDF.
    An empty buffer carries no signature and is classified by extension;
    the parser rejects it later.

    Example:
        detector = FileTypeDetector()
        detector.detect(b"%PDF-1.7 ...", "scan.bin")   # FileKind.PDF
        detector.detect(b"", "notes.txt")              # FileKind.UNSUPPORTED
    """

    def detect(self, content: bytes, filename: str) -> FileKind:
        kind = self._from_magic(content, get_extension(filename))
        if kind is None:
            kind = EXTENSION_KINDS.get(get_extension(filename), FileKind.UNSUPPORTED)

        logger.debug(
            "file_type_detector.detected",
            filename=filename,
            kind=kind.value,
            size=len(content),
        )
        return kind

    @staticmethod
    def _from_magic(content: bytes, extension: str) -> FileKind | None:
        if not content:
            return None
        for signature, kind in MAGIC_SIGNATURES:
            if content.startswith(signature):
                return kind
        # Bare "PK" (zip variants); a CSV whose first header starts with PK stays a CSV
        if content.startswith(b"PK") and extension != "csv":
            return FileKind.SPREADSHEET
        # WEBP: "RIFF" <size> "WEBP"
        if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
            return FileKind.IMAGE
        return None

    @staticmethod
    def image_media_type(filename: str, content: bytes = b"") -> str:
        """Media type for an image upload, from its signature or extension (default PNG)."""
        if content.startswith(b"\xff\xd8\xff"):
            return "image/jpeg"
        if content.startswith(b"\x89PNG"):
            return "image/png"
        if content.startswith(b"GIF8"):
            return "image/gif"
        if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
            return "image/webp"
        return IMAGE_MEDIA_TYPES.get(get_extension(filename), "image/png")
