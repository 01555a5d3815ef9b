"""
Setup Assistant Routes Tests
============================

Tests for the upload and progress endpoints with the pipeline and the
progress store replaced by mocks.
"""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from setup_assistant.api.main import create_app
from setup_assistant.schemas.domain import EntityKind
from setup_assistant.schemas.results import MultiFileResult, PhaseMetrics, ProcessingResult, ProgressSnapshot
from setup_assistant.services.progress_service import ProgressService, get_progress_service
from setup_assistant.services.setup_assistant_service import (
    SetupAssistantService,
    get_setup_assistant_service,
)
from setup_assistant.utils.errors import FileSizeError, ValidationError

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture
def mock_service():
    """SetupAssistantService whose pipeline is never run."""
    service = AsyncMock(spec=SetupAssistantService)
    service.process_file = AsyncMock(return_value=ProcessingResult(
        file_name="contratos.xlsx",
        file_size=10,
        contracts_created=2,
        errors=["Sheet 'Contratos' row 4 (contract): Missing required field(s): totalValue"],
        metrics=PhaseMetrics(total_ms=812.5),
    ))
    return service


@pytest.fixture
def mock_progress():
    progress = AsyncMock(spec=ProgressService)
    progress.get = AsyncMock(return_value=None)
    return progress


@pytest.fixture
def client(mock_service, mock_progress):
    """Test client without lifespan, so no database or Redis is touched."""
    app = create_app()
    app.dependency_overrides[get_setup_assistant_service] = lambda: mock_service
    app.dependency_overrides[get_progress_service] = lambda: mock_progress
    return TestClient(app)


@pytest.fixture
def team_headers():
    return {"X-Team-Id": str(uuid4())}


class TestUploadFile:
    """Tests for POST /setup-assistant/upload."""

    def test_upload_returns_counts(self, client, mock_service, team_headers) -> None:
        response = client.post(
            "/setup-assistant/upload",
            files={"file": ("contratos.xlsx", b"PK\x03\x04data", XLSX_TYPE)},
            data={"entity_type": "contracts", "user_guidance": "Valores em reais", "profession": "medicina"},
            headers=team_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["success"] is True
        assert body["contractsCreated"] == 2
        assert body["fileName"] == "contratos.xlsx"
        assert body["processingTimeMs"] == 812.5
        assert len(body["errors"]) == 1

        call = mock_service.process_file.await_args
        upload, team_id = call.args
        assert upload.content == b"PK\x03\x04data"
        assert upload.filename == "contratos.xlsx"
        assert str(team_id) == team_headers["X-Team-Id"]
        assert call.kwargs == {
            "entity_hint": EntityKind.CONTRACTS,
            "guidance": "Valores em reais",
            "profession": "medicina",
        }

    def test_failed_file_still_answers_200(self, client, mock_service, team_headers) -> None:
        mock_service.process_file.return_value = ProcessingResult.failed(
            "notas.txt", "Unsupported file type. Please upload XLSX, CSV, PDF, or image files."
        )

        response = client.post(
            "/setup-assistant/upload",
            files={"file": ("notas.txt", b"hello", "text/plain")},
            headers=team_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success"] is False

    def test_missing_team_header(self, client, mock_service) -> None:
        response = client.post(
            "/setup-assistant/upload",
            files={"file": ("contratos.xlsx", b"PK", XLSX_TYPE)},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        mock_service.process_file.assert_not_awaited()

    def test_team_header_must_be_uuid(self, client) -> None:
        response = client.post(
            "/setup-assistant/upload",
            files={"file": ("contratos.xlsx", b"PK", XLSX_TYPE)},
            headers={"X-Team-Id": "team-42"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "UUID" in response.json()["detail"]

    def test_invalid_entity_type(self, client, team_headers) -> None:
        response = client.post(
            "/setup-assistant/upload",
            files={"file": ("contratos.xlsx", b"PK", XLSX_TYPE)},
            data={"entity_type": "invoices"},
            headers=team_headers,
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_missing_file(self, client, team_headers) -> None:
        response = client.post("/setup-assistant/upload", headers=team_headers)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_application_error_mapped(self, client, mock_service, team_headers) -> None:
        mock_service.process_file.side_effect = FileSizeError("File exceeds the maximum size of 10 MB")

        response = client.post(
            "/setup-assistant/upload",
            files={"file": ("grande.xlsx", b"PK", XLSX_TYPE)},
            headers=team_headers,
        )

        assert response.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
        assert response.json() == {
            "error": "FileSizeError",
            "message": "File exceeds the maximum size of 10 MB",
            "details": {},
        }

    def test_unexpected_error_is_500(self, mock_service, mock_progress, team_headers) -> None:
        mock_service.process_file.side_effect = RuntimeError("boom")
        app = create_app()
        app.dependency_overrides[get_setup_assistant_service] = lambda: mock_service
        app.dependency_overrides[get_progress_service] = lambda: mock_progress

        response = TestClient(app, raise_server_exceptions=False).post(
            "/setup-assistant/upload",
            files={"file": ("contratos.xlsx", b"PK", XLSX_TYPE)},
            headers=team_headers,
        )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "details": {},
        }

    def test_error_body_documented(self, client) -> None:
        schema = client.get("/openapi.json").json()

        assert "ErrorResponse" in schema["components"]["schemas"]
        too_large = schema["paths"]["/setup-assistant/upload"]["post"]["responses"]["413"]
        assert too_large["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")


class TestUploadFiles:
    """Tests for POST /setup-assistant/upload/multi."""

    def test_batch_with_session_id(self, client, mock_service, mock_progress, team_headers) -> None:
        mock_service.process_files = AsyncMock(return_value=MultiFileResult.from_results(
            "sess-1",
            [ProcessingResult(file_name="a.xlsx", contracts_created=1), ProcessingResult.failed("b.txt", "x")],
            1500.0,
        ))

        response = client.post(
            "/setup-assistant/upload/multi",
            files=[
                ("files", ("a.xlsx", b"PK", XLSX_TYPE)),
                ("files", ("b.txt", b"notes", "text/plain")),
            ],
            data={"session_id": "sess-1", "profession": "medicina"},
            headers=team_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["sessionId"] == "sess-1"
        assert body["successfulFiles"] == 1
        assert body["failedFiles"] == 1
        assert body["combinedSummary"]["totalContractsCreated"] == 1

        call = mock_service.process_files.await_args
        assert [u.filename for u in call.args[0]] == ["a.xlsx", "b.txt"]
        assert call.kwargs["session_id"] == "sess-1"
        assert call.kwargs["progress"] is mock_progress
        assert call.kwargs["profession"] == "medicina"

    def test_too_many_files_is_400(self, client, mock_service, team_headers) -> None:
        mock_service.process_files = AsyncMock(
            side_effect=ValidationError("Too many files: at most 10 per upload")
        )

        response = client.post(
            "/setup-assistant/upload/multi",
            files=[("files", ("a.xlsx", b"PK", XLSX_TYPE))],
            headers=team_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["error"] == "ValidationError"
        assert body["message"] == "Too many files: at most 10 per upload"


class TestProgress:
    """Tests for GET /setup-assistant/progress/{session_id}."""

    def test_unknown_session(self, client) -> None:
        response = client.get("/setup-assistant/progress/missing")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_snapshot(self, client, mock_progress) -> None:
        mock_progress.get.return_value = ProgressSnapshot(session_id="sess-1", done=True)

        response = client.get("/setup-assistant/progress/sess-1")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["sessionId"] == "sess-1"
        assert response.json()["done"] is True
        mock_progress.get.assert_awaited_once_with("sess-1")
