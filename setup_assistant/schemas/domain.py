"""
Domain Models
=============

Internal types flowing between pipeline stages:

RawUpload → Workbook/Sheet → SegmentedTable → TableClassification → drafts

Grid-shaped types are plain dataclasses (they hold whole sheets);
types that cross the AI boundary are pydantic models so the advisory
classification is validated where it enters the system.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

CellValue = str | int | float | date | None


class FileKind(str, Enum):
    """Handled upload kinds."""

    SPREADSHEET = "spreadsheet"
    CSV = "csv"
    PDF = "pdf"
    IMAGE = "image"
    UNSUPPORTED = "unsupported"

    @property
    def is_tabular(self) -> bool:
        return self in (FileKind.SPREADSHEET, FileKind.CSV)

    @property
    def is_visual(self) -> bool:
        return self in (FileKind.PDF, FileKind.IMAGE)


class EntityKind(str, Enum):
    """Financial entity kinds, named the way the AI service refers to them."""

    CONTRACTS = "contracts"
    RECEIVABLES = "receivables"
    EXPENSES = "expenses"

    @property
    def singular(self) -> str:
        return self.value[:-1]


class TransformType(str, Enum):
    """How a mapped cell is converted before it lands in a draft field."""

    DATE = "date"
    CURRENCY = "currency"
    STATUS = "status"
    NUMBER = "number"
    TEXT = "text"
    ENUM = "enum"


@dataclass(frozen=True)
class RawUpload:
    """One uploaded file. Lives only for the duration of a processing call."""

    content: bytes
    filename: str
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class Sheet:
    """
    A named rectangular cell grid.

    ``rows[i][j]`` is the cell at sheet row ``i + 1`` and column ``j + 1``;
    indices are kept stable so errors can point back into the file.
    """

    name: str
    rows: list[list[CellValue]]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return max((len(row) for row in self.rows), default=0)


@dataclass
class Workbook:
    """Ordered sheets decoded from one spreadsheet or CSV."""

    sheets: list[Sheet] = field(default_factory=list)

    def sheet_names(self) -> list[str]:
        return [sheet.name for sheet in self.sheets]


@dataclass
class DataRow:
    """A data row of a segmented table, remembering its sheet row number (1-based)."""

    row_number: int
    cells: list[CellValue]

    def as_record(self, headers: list[str]) -> dict[str, CellValue]:
        return {header: self.cells[i] if i < len(self.cells) else None for i, header in enumerate(headers)}


@dataclass
class SegmentedTable:
    """
    One logical table inside a sheet.

    Row/column bounds are 0-based, end-exclusive, relative to the sheet grid.
    ``data_rows`` never contains the header row.
    """

    sheet_name: str
    name: str
    table_index: int
    row_start: int
    row_end: int
    col_start: int
    col_end: int
    headers: list[str]
    data_rows: list[DataRow]
    has_header: bool
    header_row_index: int | None = None
    confidence: float = 1.0

    def sample(self, limit: int) -> list[dict[str, CellValue]]:
        """First ``limit`` data rows as header → value records."""
        return [row.as_record(self.headers) for row in self.data_rows[:limit]]

    @property
    def row_count(self) -> int:
        return len(self.data_rows)


class ColumnMapping(BaseModel):
    """
    Where one source column goes.

    Attributes:
        column: Table header the mapping applies to
        entity: Entity kind receiving the value
        field: Target field (snake_case draft field)
        transform: Conversion applied to the raw cell
        enum_values: Allowed values for enum/status transforms
    """

    model_config = ConfigDict(frozen=True)

    column: str
    entity: EntityKind
    field: str
    transform: TransformType = TransformType.TEXT
    enum_values: list[str] = Field(default_factory=list)


class TableClassification(BaseModel):
    """
    Advisory classification of a segmented table.

    ``entity_kinds`` empty means the table should be skipped. With several
    kinds and no discriminator, each row yields one entity per kind (e.g. a
    contract row carrying payment columns); with a discriminator column,
    each row is routed to the kind its value maps to.
    """

    table_name: str
    entity_kinds: list[EntityKind] = Field(default_factory=list)
    column_mappings: list[ColumnMapping] = Field(default_factory=list)
    discriminator_column: str | None = None
    discriminator_values: dict[str, EntityKind] = Field(default_factory=dict)
    reasoning: str | None = None

    @property
    def is_skipped(self) -> bool:
        return not self.entity_kinds

    @property
    def is_mixed(self) -> bool:
        return len(self.entity_kinds) > 1

    def mappings_for(self, kind: EntityKind) -> list[ColumnMapping]:
        return [mapping for mapping in self.column_mappings if mapping.entity == kind]


class ContractSnapshot(BaseModel):
    """
    Read-only view of a contract used for cross-entity linking.

    ``contract_id`` is None for contracts extracted in the current request
    and not yet persisted; they are identified by ``draft_key`` instead.
    """

    model_config = ConfigDict(frozen=True)

    contract_id: UUID | None = None
    client_name: str
    project_name: str
    draft_key: str | None = None
