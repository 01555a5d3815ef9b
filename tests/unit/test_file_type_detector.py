"""
Unit tests for FileTypeDetector.
"""

import pytest

from setup_assistant.ingest.file_type_detector import FileTypeDetector, get_extension
from setup_assistant.schemas.domain import FileKind


@pytest.fixture
def detector() -> FileTypeDetector:
    return FileTypeDetector()


class TestDetect:
    """Tests for magic-byte and extension detection."""

    def test_pdf_signature_beats_extension(self, detector) -> None:
        """A renamed PDF is still a PDF."""
        assert detector.detect(b"%PDF-1.7\n...", "scan.bin") == FileKind.PDF

    def test_xlsx_zip_container(self, detector) -> None:
        assert detector.detect(b"PK\x03\x04rest-of-zip", "planilha.xlsx") == FileKind.SPREADSHEET

    def test_legacy_xls_container(self, detector) -> None:
        assert detector.detect(b"\xd0\xcf\x11\xe0\xa1\xb1", "antigo.xls") == FileKind.SPREADSHEET

    @pytest.mark.parametrize(
        "content",
        [b"\x89PNG\r\n\x1a\n", b"\xff\xd8\xff\xe0", b"GIF89a....", b"RIFF\x00\x00\x00\x00WEBPVP8 "],
    )
    def test_image_signatures(self, detector, content) -> None:
        assert detector.detect(content, "upload") == FileKind.IMAGE

    def test_csv_by_extension(self, detector) -> None:
        assert detector.detect(b"Cliente;Valor\nACME;10\n", "dados.CSV") == FileKind.CSV

    def test_csv_starting_with_pk_stays_csv(self, detector) -> None:
        assert detector.detect(b"PKG;Valor\nA;1\n", "pacotes.csv") == FileKind.CSV

    def test_text_file_unsupported(self, detector) -> None:
        assert detector.detect(b"hello world", "notes.txt") == FileKind.UNSUPPORTED

    def test_empty_buffer_falls_back_to_extension(self, detector) -> None:
        assert detector.detect(b"", "plan.xlsx") == FileKind.SPREADSHEET
        assert detector.detect(b"", "notes.txt") == FileKind.UNSUPPORTED

    def test_no_filename(self, detector) -> None:
        assert detector.detect(b"random", "") == FileKind.UNSUPPORTED


class TestImageMediaType:
    """Tests for image media types sent to the AI service."""

    def test_from_signature(self) -> None:
        assert FileTypeDetector.image_media_type("foto.jpg", b"\x89PNG\r\n") == "image/png"

    def test_from_extension(self) -> None:
        assert FileTypeDetector.image_media_type("foto.JPEG") == "image/jpeg"
        assert FileTypeDetector.image_media_type("foto.webp") == "image/webp"

    def test_default_png(self) -> None:
        assert FileTypeDetector.image_media_type("upload") == "image/png"


def test_get_extension() -> None:
    assert get_extension("Planilha.XLSX") == "xlsx"
    assert get_extension("sem_extensao") == ""


def test_file_kind_groups() -> None:
    assert FileKind.CSV.is_tabular
    assert FileKind.IMAGE.is_visual
    assert not FileKind.UNSUPPORTED.is_tabular
    assert not FileKind.UNSUPPORTED.is_visual
