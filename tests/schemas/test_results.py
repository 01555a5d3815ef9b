"""
Unit tests for result schemas.
"""

from setup_assistant.schemas.domain import EntityKind
from setup_assistant.schemas.results import (
    BulkCreationResult,
    MultiFileResult,
    ProcessingResult,
    RowError,
)


class TestRowError:
    """Tests for row error messages."""

    def test_full_location(self) -> None:
        error = RowError(
            sheet_name="Contratos",
            row_number=12,
            entity=EntityKind.CONTRACTS,
            message="Missing required field(s): totalValue",
        )

        assert str(error) == "Sheet 'Contratos' row 12 (contract): Missing required field(s): totalValue"

    def test_message_only(self) -> None:
        assert str(RowError(message="Contract #2: invalid values")) == "Contract #2: invalid values"

    def test_camel_case_serialization(self) -> None:
        data = RowError(sheet_name="S", row_number=1, message="m").model_dump(by_alias=True)

        assert data["sheetName"] == "S"
        assert data["rowNumber"] == 1


class TestMultiFileResult:
    """Tests for batch aggregation."""

    def test_from_results_sums_counts(self) -> None:
        results = [
            ProcessingResult(file_name="a.xlsx", contracts_created=37, receivables_created=305,
                             expenses_created=131, errors=["row 4: bad"]),
            ProcessingResult.failed("b.txt", "Unsupported file type"),
            ProcessingResult(file_name="c.pdf", expenses_created=2),
        ]

        summary = MultiFileResult.from_results("sess", results, 1500.0)

        assert summary.total_files == 3
        assert summary.successful_files == 2
        assert summary.failed_files == 1
        assert summary.combined_summary.total_contracts_created == 37
        assert summary.combined_summary.total_receivables_created == 305
        assert summary.combined_summary.total_expenses_created == 133
        assert summary.combined_summary.total_errors == 2

    def test_serialized_names(self) -> None:
        summary = MultiFileResult.from_results("sess", [], 0.0)

        data = summary.model_dump(by_alias=True)

        assert data["sessionId"] == "sess"
        assert data["combinedSummary"]["totalErrors"] == 0


class TestProcessingResult:
    """Tests for per-file results."""

    def test_failed(self) -> None:
        result = ProcessingResult.failed("x.txt", "Unsupported file type")

        assert result.success is False
        assert result.status == "error"
        assert result.errors == ["Unsupported file type"]


def test_bulk_result_tracks_errors_by_kind() -> None:
    result = BulkCreationResult(contracts_created=1, expenses_created=2)

    result.add_error(EntityKind.EXPENSES, "Expense Luz (100.0): Paid amount cannot exceed total amount")

    assert result.total_created == 3
    assert result.errors_by_kind[EntityKind.EXPENSES] == result.errors
    assert "createdIds" not in result.model_dump(by_alias=True)
