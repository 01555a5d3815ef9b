"""
Table Segmenter
===============

Splits a sheet into independent tables ("mixed sheets": e.g. a contracts
block followed by an expenses block in one sheet).

Boundaries:
- a run of ``segment_min_blank_rows`` or more fully blank rows
- a run of blank columns between filled columns (a column is blank when
  its share of empty cells reaches ``segment_blank_column_ratio``)

Regions are the Cartesian product of the row and column partitions.
Inside each region the best header candidate among the first
``header_scan_rows`` non-blank rows is picked by a keyword/text score;
without one, the table is still emitted with positional column names.
"""

import re
from dataclasses import dataclass
from typing import Final

from openpyxl.utils import get_column_letter

from setup_assistant.config.settings import Settings, get_settings
from setup_assistant.schemas.domain import CellValue, DataRow, SegmentedTable, Sheet, Workbook
from setup_assistant.utils.dates import normalize_date
from setup_assistant.utils.logger import get_logger
from setup_assistant.utils.text import cell_text, fold

logger = get_logger(__name__)

# Financial header vocabulary (pt-BR and English), matched on folded text
HEADER_KEYWORDS: Final[tuple[str, ...]] = (
    "nome", "cliente", "projeto", "valor", "data", "vencimento", "status",
    "situacao", "descricao", "categoria", "fornecedor", "parcela", "tipo",
    "observ", "contrato", "pagamento", "recebimento", "nota", "total",
    "name", "client", "project", "value", "amount", "date", "due",
    "description", "category", "vendor", "supplier", "type", "notes",
    "invoice",
)

_NUMERIC_LIKE = re.compile(r"^[\s(+\-]*(?:R\$|US\$|\$|€)?\s*[\d.,]+\s*%?[)\s\-]*$")

MIN_REGION_ROWS = 2
MIN_HEADER_SCORE = 3


@dataclass
class _Region:
    row_start: int
    row_end: int
    col_start: int
    col_end: int


def is_text_cell(value: CellValue) -> bool:
    """A non-empty cell that is neither a number, an amount nor a date."""
    if value is None or not isinstance(value, str):
        return False
    text = value.strip()
    if not text:
        return False
    if _NUMERIC_LIKE.match(text):
        return False
    return normalize_date(text) is None


def score_header_row(cells: list[CellValue]) -> tuple[int, bool]:
    """
    Score a row as a header candidate.

    Returns:
        (score, text_majority): one point per text cell, three per cell
        containing a financial keyword, two more when over 60% of the
        non-empty cells are text.
    """
    filled = [cell for cell in cells if cell is not None and cell_text(cell)]
    if not filled:
        return 0, False

    text_cells = [cell for cell in filled if is_text_cell(cell)]
    score = len(text_cells)
    score += 3 * sum(
        1 for cell in text_cells if any(keyword in fold(str(cell)) for keyword in HEADER_KEYWORDS)
    )
    text_ratio = len(text_cells) / len(filled)
    if text_ratio > 0.6:
        score += 2
    return score, text_ratio > 0.5


class TableSegmenter:
    """
    Detects table regions inside sheets.

    Example:
        segmenter = TableSegmenter()
        for table in segmenter.segment(sheet):
            print(table.name, table.headers, table.row_count)
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def segment_workbook(self, workbook: Workbook) -> list[SegmentedTable]:
        """Segment every sheet, keeping sheet order."""
        tables: list[SegmentedTable] = []
        for sheet in workbook.sheets:
            tables.extend(self.segment(sheet))
        return tables

    def segment(self, sheet: Sheet) -> list[SegmentedTable]:
        """
        Split one sheet into tables.

        A sheet without boundaries is one table spanning the whole sheet
        with confidence 1.0. Regions with fewer than two non-blank rows and
        regions under ``min_table_confidence`` are dropped.
        """
        rows = sheet.rows
        width = sheet.column_count
        if not rows or width == 0:
            return []

        row_cuts = self._blank_row_boundaries(rows)
        col_cuts = self._blank_column_boundaries(rows, width)

        if not row_cuts and not col_cuts:
            table = self._build_table(sheet, _Region(0, len(rows), 0, width), index=1, name=sheet.name)
            if table is None:
                return []
            table.confidence = 1.0
            return [table]

        regions = [
            _Region(row_start, row_end, col_start, col_end)
            for row_start, row_end in _partitions(row_cuts, len(rows))
            for col_start, col_end in _partitions(col_cuts, width)
        ]

        candidates: list[SegmentedTable] = []
        for region in regions:
            table = self._build_table(sheet, region, index=len(candidates) + 1, name="")
            if table is None:
                continue
            if table.confidence < self._settings.min_table_confidence:
                logger.debug(
                    "table_segmenter.low_confidence_dropped",
                    sheet=sheet.name,
                    rows=(region.row_start + 1, region.row_end),
                    confidence=table.confidence,
                )
                continue
            candidates.append(table)

        for position, table in enumerate(candidates, start=1):
            table.table_index = position
            table.name = f"{sheet.name}_table{position}" if len(candidates) > 1 else sheet.name

        if len(candidates) > 1:
            logger.info(
                "table_segmenter.mixed_sheet",
                sheet=sheet.name,
                tables=[
                    {
                        "name": table.name,
                        "rows": f"{table.row_start + 1}-{table.row_end}",
                        "cols": f"{get_column_letter(table.col_start + 1)}-{get_column_letter(table.col_end)}",
                        "confidence": round(table.confidence, 2),
                    }
                    for table in candidates
                ],
            )
        return candidates

    def single_table(self, sheet: Sheet) -> list[SegmentedTable]:
        """Treat the whole sheet as one table (mixed-sheet support disabled)."""
        if not sheet.rows or sheet.column_count == 0:
            return []
        table = self._build_table(
            sheet, _Region(0, sheet.row_count, 0, sheet.column_count), index=1, name=sheet.name
        )
        if table is None:
            return []
        table.confidence = 1.0
        return [table]

    # ------------------------------------------------------------------
    # Boundary detection
    # ------------------------------------------------------------------

    def _blank_row_boundaries(self, rows: list[list[CellValue]]) -> list[tuple[int, int]]:
        """(start, end) spans of blank-row runs long enough to separate tables."""
        spans = _blank_runs([_is_blank_row(row) for row in rows])
        return [
            (start, end) for start, end in spans
            if end - start >= self._settings.segment_min_blank_rows
        ]

    def _blank_column_boundaries(
        self, rows: list[list[CellValue]], width: int
    ) -> list[tuple[int, int]]:
        ratio = self._settings.segment_blank_column_ratio
        flags = []
        for col in range(width):
            empty = sum(1 for row in rows if col >= len(row) or row[col] is None)
            flags.append(empty / len(rows) >= ratio)
        return _blank_runs(flags)

    # ------------------------------------------------------------------
    # Region → table
    # ------------------------------------------------------------------

    def _build_table(
        self, sheet: Sheet, region: _Region, index: int, name: str
    ) -> SegmentedTable | None:
        # (absolute row index, cells) for the non-blank rows of the region
        filled: list[tuple[int, list[CellValue]]] = []
        for row_idx in range(region.row_start, region.row_end):
            cells = _slice(sheet.rows[row_idx], region.col_start, region.col_end)
            if not _is_blank_row(cells):
                filled.append((row_idx, cells))
        if len(filled) < MIN_REGION_ROWS:
            return None

        header_pos = self._detect_header(filled)
        if header_pos is not None:
            header_row_idx, header_cells = filled[header_pos]
            headers = self._header_names(header_cells, region.col_start)
            data = filled[header_pos + 1:]
        else:
            header_row_idx = None
            headers = self._positional_headers(region)
            data = filled

        data_rows = [DataRow(row_number=row_idx + 1, cells=cells) for row_idx, cells in data]
        confidence = self._confidence(filled, header_pos, len(data_rows))

        return SegmentedTable(
            sheet_name=sheet.name,
            name=name,
            table_index=index,
            row_start=filled[0][0],
            row_end=filled[-1][0] + 1,
            col_start=region.col_start,
            col_end=region.col_end,
            headers=headers,
            data_rows=data_rows,
            has_header=header_pos is not None,
            header_row_index=header_row_idx,
            confidence=confidence,
        )

    def _detect_header(self, filled: list[tuple[int, list[CellValue]]]) -> int | None:
        best_score = 0
        best_pos: int | None = None
        for pos, (_, cells) in enumerate(filled[: self._settings.header_scan_rows]):
            score, text_majority = score_header_row(cells)
            if score >= MIN_HEADER_SCORE and text_majority and score > best_score:
                best_score = score
                best_pos = pos
        return best_pos

    @staticmethod
    def _confidence(
        filled: list[tuple[int, list[CellValue]]], header_pos: int | None, data_row_count: int
    ) -> float:
        confidence = 0.3
        if header_pos is not None:
            confidence += 0.3
        if data_row_count >= 3:
            confidence += 0.2
        avg_filled = sum(
            sum(1 for cell in cells if cell is not None) for _, cells in filled
        ) / len(filled)
        if avg_filled >= 3:
            confidence += 0.2
        return min(1.0, round(confidence, 2))

    @staticmethod
    def _header_names(cells: list[CellValue], col_start: int) -> list[str]:
        names: list[str] = []
        seen: dict[str, int] = {}
        for offset, cell in enumerate(cells):
            name = " ".join(cell_text(cell).split()) or f"Column {get_column_letter(col_start + offset + 1)}"
            key = fold(name)
            if key in seen:
                seen[key] += 1
                name = f"{name} ({seen[key]})"
            else:
                seen[key] = 1
            names.append(name)
        return names

    @staticmethod
    def _positional_headers(region: _Region) -> list[str]:
        return [
            f"Column {get_column_letter(col + 1)}"
            for col in range(region.col_start, region.col_end)
        ]


def _is_blank_row(cells: list[CellValue]) -> bool:
    return all(cell is None for cell in cells)


def _slice(row: list[CellValue], start: int, end: int) -> list[CellValue]:
    cells = list(row[start:end])
    cells.extend([None] * (end - start - len(cells)))
    return cells


def _blank_runs(flags: list[bool]) -> list[tuple[int, int]]:
    """Runs of True strictly between two False entries, as (start, end) spans."""
    runs: list[tuple[int, int]] = []
    seen_filled = False
    run_start: int | None = None
    for idx, blank in enumerate(flags):
        if blank:
            if run_start is None and seen_filled:
                run_start = idx
            continue
        if run_start is not None:
            runs.append((run_start, idx))
            run_start = None
        seen_filled = True
    return runs


def _partitions(cuts: list[tuple[int, int]], length: int) -> list[tuple[int, int]]:
    """Spans of [0, length) left over after removing the boundary spans."""
    spans: list[tuple[int, int]] = []
    cursor = 0
    for start, end in cuts:
        if start > cursor:
            spans.append((cursor, start))
        cursor = end
    if cursor < length:
        spans.append((cursor, length))
    return spans
