"""
Tabular Parser
==============

Decodes spreadsheet and CSV uploads into an in-memory Workbook.

XLSX:
- openpyxl with ``data_only=True`` (cached formula results, no evaluation)
- merged ranges forward-filled with their top-left value
- datetime cells reduced to dates
- trailing blank rows/columns trimmed, interior blank rows kept
- sheets without any content dropped

CSV:
- UTF-8 (BOM tolerant) with Latin-1 fallback
- delimiter sniffed among ``, ; \\t |``
- ragged rows padded to the widest row, blank lines kept

Pure in-memory transform, no I/O beyond the given buffer.
"""

import csv
import io
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import PurePath
from typing import Any

import pandas as pd
from openpyxl import load_workbook
from openpyxl.worksheet.worksheet import Worksheet

from setup_assistant.schemas.domain import CellValue, FileKind, Sheet, Workbook
from setup_assistant.utils.errors import FileDecodeError, ParsingError
from setup_assistant.utils.logger import get_logger

logger = get_logger(__name__)

OLE_SIGNATURE = b"\xd0\xcf\x11\xe0"


class TabularParser:
    """
    Parser for spreadsheet and CSV buffers.

    Example:
        parser = TabularParser()
        workbook = parser.parse(content, FileKind.SPREADSHEET, "Contratos.xlsx")
        for sheet in workbook.sheets:
            print(sheet.name, sheet.row_count)
    """

    CSV_DELIMITERS = ",;\t|"
    SNIFF_SAMPLE_BYTES = 8192

    def parse(self, content: bytes, kind: FileKind, filename: str = "") -> Workbook:
        """
        Decode a tabular upload.

        Args:
            content: Raw file bytes
            kind: FileKind.SPREADSHEET or FileKind.CSV
            filename: Original filename (used for the CSV sheet name and logs)

        Returns:
            Workbook with at least one non-empty sheet

        Raises:
            FileDecodeError: Empty buffer, corrupt container, unreadable text,
                or no cell with content anywhere in the file
        """
        if not content:
            raise FileDecodeError(
                message="File is empty",
                details={"filename": filename},
            )

        if kind == FileKind.SPREADSHEET:
            workbook = self._parse_spreadsheet(content, filename)
        elif kind == FileKind.CSV:
            workbook = self._parse_csv(content, filename)
        else:
            raise ParsingError(
                message=f"Tabular parser cannot handle {kind.value} files",
                details={"filename": filename, "kind": kind.value},
            )

        if not workbook.sheets:
            raise FileDecodeError(
                message="File contains no data",
                details={"filename": filename},
            )

        logger.info(
            "tabular_parser.parsed",
            filename=filename,
            kind=kind.value,
            sheets=workbook.sheet_names(),
            rows=sum(sheet.row_count for sheet in workbook.sheets),
        )
        return workbook

    # ------------------------------------------------------------------
    # XLSX
    # ------------------------------------------------------------------

    def _parse_spreadsheet(self, content: bytes, filename: str) -> Workbook:
        if content.startswith(OLE_SIGNATURE):
            raise FileDecodeError(
                message="Legacy .xls files are not supported. Please save the file as .xlsx and upload again.",
                details={"filename": filename},
            )

        try:
            wb = load_workbook(io.BytesIO(content), data_only=True)
        except Exception as e:
            logger.error("tabular_parser.spreadsheet_failed", filename=filename, error=str(e))
            raise FileDecodeError(
                message=f"Failed to parse spreadsheet file: {e}",
                details={"filename": filename, "error_type": type(e).__name__},
            ) from e

        sheets: list[Sheet] = []
        try:
            for ws in wb.worksheets:
                rows = self._read_worksheet(ws)
                if rows:
                    sheets.append(Sheet(name=ws.title, rows=rows))
                else:
                    logger.debug("tabular_parser.empty_sheet_skipped", sheet=ws.title)
        finally:
            wb.close()

        return Workbook(sheets=sheets)

    def _read_worksheet(self, ws: Worksheet) -> list[list[CellValue]]:
        """Read a worksheet into a trimmed grid with merged ranges forward-filled."""
        grid = [
            [_normalize_cell(value) for value in row]
            for row in ws.iter_rows(values_only=True)
        ]
        if not grid:
            return []

        for merged_range in ws.merged_cells.ranges:
            if merged_range.min_row > len(grid):
                continue
            top_left = grid[merged_range.min_row - 1][merged_range.min_col - 1]
            if top_left is None:
                continue
            for row_idx in range(merged_range.min_row - 1, min(merged_range.max_row, len(grid))):
                row = grid[row_idx]
                for col_idx in range(merged_range.min_col - 1, min(merged_range.max_col, len(row))):
                    row[col_idx] = top_left

        return _trim_grid(grid)

    # ------------------------------------------------------------------
    # CSV
    # ------------------------------------------------------------------

    def _parse_csv(self, content: bytes, filename: str) -> Workbook:
        text = self._decode_text(content, filename)
        delimiter = self._sniff_delimiter(text)

        width = max(
            (len(row) for row in csv.reader(io.StringIO(text), delimiter=delimiter)),
            default=0,
        )
        if width == 0:
            return Workbook(sheets=[])

        try:
            df = pd.read_csv(
                io.StringIO(text),
                sep=delimiter,
                header=None,
                names=list(range(width)),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
                engine="python",
            )
        except (pd.errors.ParserError, csv.Error, ValueError) as e:
            logger.error("tabular_parser.csv_failed", filename=filename, error=str(e))
            raise FileDecodeError(
                message=f"Failed to parse CSV file: {e}",
                details={"filename": filename, "delimiter": delimiter},
            ) from e

        df = df.fillna("")
        grid = [[_normalize_cell(value) for value in row] for row in df.values.tolist()]
        rows = _trim_grid(grid)
        if not rows:
            return Workbook(sheets=[])

        sheet_name = PurePath(filename).stem if filename else "CSV"
        logger.debug(
            "tabular_parser.csv_decoded",
            filename=filename,
            delimiter=delimiter,
            width=width,
        )
        return Workbook(sheets=[Sheet(name=sheet_name or "CSV", rows=rows)])

    @staticmethod
    def _decode_text(content: bytes, filename: str) -> str:
        if b"\x00" in content[:4096]:
            raise FileDecodeError(
                message="Failed to parse CSV file: content is binary, not text",
                details={"filename": filename},
            )
        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError:
            logger.debug("tabular_parser.latin1_fallback", filename=filename)
            return content.decode("latin-1")

    def _sniff_delimiter(self, text: str) -> str:
        sample = text[: self.SNIFF_SAMPLE_BYTES]
        try:
            return csv.Sniffer().sniff(sample, delimiters=self.CSV_DELIMITERS).delimiter
        except csv.Error:
            # Single-column files and other undecidable samples
            counts = {d: sample.count(d) for d in self.CSV_DELIMITERS}
            best = max(counts, key=lambda d: counts[d])
            return best if counts[best] else ","


def _normalize_cell(value: Any) -> CellValue:
    """Map an openpyxl/pandas cell to a CellValue (blank strings become None)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    text = str(value).strip()
    return text or None


def _trim_grid(grid: list[list[CellValue]]) -> list[list[CellValue]]:
    """Drop trailing blank rows and columns; pad rows to a common width."""
    last_row = -1
    last_col = -1
    for row_idx, row in enumerate(grid):
        for col_idx, value in enumerate(row):
            if value is not None:
                last_row = row_idx
                last_col = max(last_col, col_idx)

    if last_row < 0:
        return []

    width = last_col + 1
    trimmed: list[list[CellValue]] = []
    for row in grid[: last_row + 1]:
        cells = list(row[:width])
        cells.extend([None] * (width - len(cells)))
        trimmed.append(cells)
    return trimmed
