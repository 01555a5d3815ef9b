"""
Schemas Package
===============

Pipeline types, draft entities and result models.
"""

from setup_assistant.schemas.domain import (
    CellValue,
    ColumnMapping,
    ContractSnapshot,
    DataRow,
    EntityKind,
    FileKind,
    RawUpload,
    SegmentedTable,
    Sheet,
    TableClassification,
    TransformType,
    Workbook,
)
from setup_assistant.schemas.drafts import (
    ContractLink,
    DraftContract,
    DraftEntity,
    DraftExpense,
    DraftReceivable,
    SourceLocation,
    contract_key,
    entity_field_aliases,
    parse_draft,
)
from setup_assistant.schemas.results import (
    BulkCreationResult,
    CombinedSummary,
    MultiFileResult,
    PhaseMetrics,
    ProcessingResult,
    ProgressEvent,
    ProgressSnapshot,
    RowError,
)
from setup_assistant.schemas.responses import ErrorResponse, UploadResponse

__all__ = [
    # Domain
    "CellValue",
    "FileKind",
    "EntityKind",
    "TransformType",
    "RawUpload",
    "Sheet",
    "Workbook",
    "DataRow",
    "SegmentedTable",
    "ColumnMapping",
    "TableClassification",
    "ContractSnapshot",
    # Drafts
    "SourceLocation",
    "ContractLink",
    "DraftContract",
    "DraftReceivable",
    "DraftExpense",
    "DraftEntity",
    "parse_draft",
    "contract_key",
    "entity_field_aliases",
    # Results
    "RowError",
    "PhaseMetrics",
    "BulkCreationResult",
    "ProcessingResult",
    "CombinedSummary",
    "MultiFileResult",
    "ProgressEvent",
    "ProgressSnapshot",
    # Responses
    "UploadResponse",
    "ErrorResponse",
]
