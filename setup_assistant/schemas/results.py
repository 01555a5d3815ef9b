"""
Result Schemas
==============

Outcomes of processing one file or a batch of files, and the progress
events emitted while a batch runs. Serialized with camelCase aliases
(``contractsCreated``, ``totalFiles`` …) for API consumers.
"""

from datetime import datetime, timezone
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from setup_assistant.schemas.domain import EntityKind, FileKind


class CamelModel(BaseModel):
    """Base for models exposed over the API with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RowError(CamelModel):
    """
    A non-fatal, row-scoped problem.

    Attributes:
        sheet_name: Sheet (or virtual table) the row belongs to
        row_number: 1-based row number in the sheet
        entity: Entity kind the row was meant to become
        message: Human-readable description
    """

    sheet_name: str | None = None
    row_number: int | None = None
    entity: EntityKind | None = None
    message: str

    def __str__(self) -> str:
        where = []
        if self.sheet_name:
            where.append(f"Sheet '{self.sheet_name}'")
        if self.row_number is not None:
            where.append(f"row {self.row_number}")
        prefix = " ".join(where)
        label = f" ({self.entity.singular})" if self.entity else ""
        return f"{prefix}{label}: {self.message}" if prefix else f"{self.message}"


class PhaseMetrics(CamelModel):
    """Elapsed milliseconds per pipeline phase."""

    structure_ms: float = 0.0
    analysis_ms: float = 0.0
    extraction_ms: float = 0.0
    persistence_ms: float = 0.0
    total_ms: float = 0.0


class BulkCreationResult(CamelModel):
    """Outcome of persisting one file's drafts."""

    contracts_created: int = 0
    receivables_created: int = 0
    expenses_created: int = 0
    errors: list[str] = Field(default_factory=list)
    errors_by_kind: dict[EntityKind, list[str]] = Field(default_factory=dict)
    created_ids: dict[EntityKind, list[UUID]] = Field(default_factory=dict, exclude=True)

    def add_error(self, kind: EntityKind, message: str) -> None:
        self.errors.append(message)
        self.errors_by_kind.setdefault(kind, []).append(message)

    @property
    def total_created(self) -> int:
        return self.contracts_created + self.receivables_created + self.expenses_created


class ProcessingResult(CamelModel):
    """
    Per-file outcome.

    ``success`` is False only for file-fatal failures (unsupported type,
    decode failure, vision failure, deadline). A file processed with
    row/entity errors still succeeds and reports its counts.
    """

    file_name: str
    file_size: int = 0
    file_kind: FileKind = FileKind.UNSUPPORTED
    success: bool = True
    contracts_created: int = 0
    receivables_created: int = 0
    expenses_created: int = 0
    errors: list[str] = Field(default_factory=list)
    row_errors: list[RowError] = Field(default_factory=list)
    metrics: PhaseMetrics = Field(default_factory=PhaseMetrics)

    @property
    def status(self) -> Literal["success", "error"]:
        return "success" if self.success else "error"

    @property
    def processing_time_ms(self) -> float:
        return self.metrics.total_ms

    @classmethod
    def failed(
        cls,
        file_name: str,
        message: str,
        file_size: int = 0,
        file_kind: FileKind = FileKind.UNSUPPORTED,
        metrics: PhaseMetrics | None = None,
    ) -> "ProcessingResult":
        return cls(
            file_name=file_name,
            file_size=file_size,
            file_kind=file_kind,
            success=False,
            errors=[message],
            metrics=metrics or PhaseMetrics(),
        )


class CombinedSummary(CamelModel):
    """Totals across the files of one batch."""

    total_contracts_created: int = 0
    total_receivables_created: int = 0
    total_expenses_created: int = 0
    total_errors: int = 0


class MultiFileResult(CamelModel):
    """Outcome of a multi-file upload."""

    session_id: str
    total_files: int
    successful_files: int
    failed_files: int
    file_results: list[ProcessingResult] = Field(default_factory=list)
    combined_summary: CombinedSummary = Field(default_factory=CombinedSummary)
    total_processing_time_ms: float = 0.0

    @classmethod
    def from_results(
        cls,
        session_id: str,
        results: list[ProcessingResult],
        total_processing_time_ms: float,
    ) -> "MultiFileResult":
        """
        Aggregate per-file results.

        Created counts of every file are summed, including partially failed
        ones; a file-fatal failure adds one to ``total_errors``.
        """
        summary = CombinedSummary()
        successful = 0
        for result in results:
            summary.total_contracts_created += result.contracts_created
            summary.total_receivables_created += result.receivables_created
            summary.total_expenses_created += result.expenses_created
            if result.success:
                successful += 1
                summary.total_errors += len(result.errors)
            else:
                summary.total_errors += 1

        return cls(
            session_id=session_id,
            total_files=len(results),
            successful_files=successful,
            failed_files=len(results) - successful,
            file_results=results,
            combined_summary=summary,
            total_processing_time_ms=total_processing_time_ms,
        )


class ProgressEvent(CamelModel):
    """Emitted when a file of a batch starts and when it finishes."""

    current_file: int
    total_files: int
    current_file_name: str
    status: Literal["processing", "completed", "failed"]
    estimated_time_remaining: float | None = Field(
        default=None, description="Seconds, from the average time of finished files"
    )
    result: ProcessingResult | None = None


class ProgressSnapshot(CamelModel):
    """What a polling client sees for a session id."""

    session_id: str
    latest: ProgressEvent | None = None
    completed_files: list[ProcessingResult] = Field(default_factory=list)
    done: bool = False
    summary: MultiFileResult | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        """Serialize to JSON string for Redis storage."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str | bytes) -> "ProgressSnapshot":
        """Deserialize from JSON string."""
        return cls.model_validate_json(data)
