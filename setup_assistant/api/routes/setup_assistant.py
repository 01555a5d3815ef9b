"""
Setup Assistant Routes
======================

Upload endpoints of the intake pipeline.

Endpoints:
- POST /setup-assistant/upload - Process one file
- POST /setup-assistant/upload/multi - Process several files sequentially
- GET /setup-assistant/progress/{session_id} - Poll a multi-file upload

The team is resolved upstream by the auth layer and arrives in the
X-Team-Id header. Uploads are processed within the request.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, UploadFile, status

from setup_assistant.schemas.domain import EntityKind, RawUpload
from setup_assistant.schemas.responses import ErrorResponse, UploadResponse
from setup_assistant.schemas.results import MultiFileResult, ProgressSnapshot
from setup_assistant.services.progress_service import ProgressService, get_progress_service
from setup_assistant.services.setup_assistant_service import (
    SetupAssistantService,
    get_setup_assistant_service,
)
from setup_assistant.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_team_id(x_team_id: Annotated[str | None, Header()] = None) -> UUID:
    """Team of the caller, as resolved by the authentication layer."""
    if not x_team_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Team-Id header is required",
        )
    try:
        return UUID(x_team_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Team-Id header must be a UUID",
        ) from e


async def _read_upload(file: UploadFile) -> RawUpload:
    content = await file.read()
    return RawUpload(
        content=content,
        filename=file.filename or "upload",
        content_type=file.content_type,
    )


@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Process one file",
    description=(
        "Extract contracts, receivables and expenses from a spreadsheet, CSV, PDF "
        "or image and persist them for the caller's team. A file that fails as a "
        "whole still answers 200 with success=false and the reason in errors."
    ),
    responses={
        200: {"description": "File processed (see success and errors)"},
        400: {"description": "Missing or invalid X-Team-Id"},
        413: {"model": ErrorResponse, "description": "File too large"},
        422: {"description": "Malformed multipart request"},
        503: {"model": ErrorResponse, "description": "Database unavailable"},
    },
)
async def upload_file(
    file: Annotated[UploadFile, File(description="File to process")],
    team_id: Annotated[UUID, Depends(get_team_id)],
    service: Annotated[SetupAssistantService, Depends(get_setup_assistant_service)],
    entity_type: Annotated[EntityKind | None, Form(description="Expected entity kind")] = None,
    user_guidance: Annotated[str | None, Form(description="Free-text hints")] = None,
    profession: Annotated[
        str | None, Form(description="Profession used when the team has none stored")
    ] = None,
) -> UploadResponse:
    upload = await _read_upload(file)
    logger.info(
        "api.upload_received",
        file_name=upload.filename,
        file_size=upload.size,
        team_id=str(team_id),
        entity_type=entity_type.value if entity_type else None,
        profession=profession,
    )

    result = await service.process_file(
        upload, team_id, entity_hint=entity_type, guidance=user_guidance, profession=profession
    )
    return UploadResponse.from_result(result)


@router.post(
    "/upload/multi",
    response_model=MultiFileResult,
    summary="Process several files",
    description=(
        "Process files one after the other; a failed file does not stop the "
        "others. Progress is published under session_id while the request runs."
    ),
    responses={
        200: {"description": "Batch processed"},
        400: {"model": ErrorResponse, "description": "Missing team, no files or too many files"},
    },
)
async def upload_files(
    files: Annotated[list[UploadFile], File(description="Files to process")],
    team_id: Annotated[UUID, Depends(get_team_id)],
    service: Annotated[SetupAssistantService, Depends(get_setup_assistant_service)],
    progress: Annotated[ProgressService, Depends(get_progress_service)],
    session_id: Annotated[str | None, Form(description="Client-chosen progress key")] = None,
    entity_type: Annotated[EntityKind | None, Form()] = None,
    user_guidance: Annotated[str | None, Form()] = None,
    profession: Annotated[str | None, Form()] = None,
) -> MultiFileResult:
    uploads = [await _read_upload(file) for file in files]
    logger.info(
        "api.multi_upload_received",
        files=len(uploads),
        team_id=str(team_id),
        session_id=session_id,
    )

    return await service.process_files(
        uploads,
        team_id,
        session_id=session_id,
        progress=progress,
        entity_hint=entity_type,
        guidance=user_guidance,
        profession=profession,
    )


@router.get(
    "/progress/{session_id}",
    response_model=ProgressSnapshot,
    summary="Poll upload progress",
    responses={
        200: {"description": "Latest progress snapshot"},
        404: {"description": "Unknown or expired session"},
    },
)
async def get_progress(
    session_id: str,
    progress: Annotated[ProgressService, Depends(get_progress_service)],
) -> ProgressSnapshot:
    snapshot = await progress.get(session_id)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No progress found for session {session_id}",
        )
    return snapshot
