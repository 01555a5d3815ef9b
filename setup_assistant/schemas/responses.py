"""
Pydantic Response Models
========================

API response schemas for the setup assistant endpoints.
Field names go out in camelCase.
"""

from typing import Annotated, Any

from pydantic import ConfigDict, Field

from setup_assistant.schemas.results import CamelModel, PhaseMetrics, ProcessingResult, RowError


class UploadResponse(CamelModel):
    """
    Response for POST /setup-assistant/upload.

    Attributes:
        success: False only when the file failed as a whole
        contracts_created: Contracts persisted from the file
        receivables_created: Receivables persisted from the file
        expenses_created: Expenses persisted from the file
        errors: Human-readable problems (rows, tables, entities)
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "contractsCreated": 37,
                "receivablesCreated": 305,
                "expensesCreated": 131,
                "errors": ["Sheet 'Contratos' row 12 (contract): Missing required field(s): totalValue"],
                "fileName": "planilha.xlsx",
                "processingTimeMs": 18250.4,
            }
        }
    )

    success: bool
    contracts_created: int = 0
    receivables_created: int = 0
    expenses_created: int = 0
    errors: list[str] = Field(default_factory=list)
    file_name: str
    processing_time_ms: Annotated[float, Field(description="Wall time of the whole pipeline")] = 0.0
    phase_metrics: PhaseMetrics = Field(default_factory=PhaseMetrics)
    row_errors: list[RowError] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ProcessingResult) -> "UploadResponse":
        return cls(
            success=result.success,
            contracts_created=result.contracts_created,
            receivables_created=result.receivables_created,
            expenses_created=result.expenses_created,
            errors=result.errors,
            file_name=result.file_name,
            processing_time_ms=result.processing_time_ms,
            phase_metrics=result.metrics,
            row_errors=result.row_errors,
        )


class ErrorResponse(CamelModel):
    """Body of 4xx/5xx responses."""

    error: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
