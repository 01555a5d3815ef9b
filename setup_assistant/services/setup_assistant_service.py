"""
Setup Assistant Service
=======================

Orchestrates the intake pipeline for one file and for multi-file batches:

1. detect the file kind (unsupported → file fails, nothing else runs)
2. tabular: parse → segment → classify tables → transform rows
   visual:  one vision extraction call for the whole document
3. link receivables/expenses to the team's contracts and to contracts
   extracted from the same file
4. persist through the bulk creator

Steps 2-3 run under the request deadline. A batch shares one deadline
across its files: files still waiting when it runs out fail with the
deadline error without being read. What was persisted before a deadline
or a failure stays persisted. Files of a batch run sequentially and a
failed file never stops the ones after it.

Prompts carry the business context of the team's profession: the one
stored on the team, else the one sent with the request, else
``Settings.default_profession``.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError

from setup_assistant.config.settings import Settings, get_settings
from setup_assistant.db.repositories import RepositoryFactory, open_entity_repository
from setup_assistant.ingest.file_type_detector import FileTypeDetector
from setup_assistant.ingest.table_segmenter import TableSegmenter
from setup_assistant.ingest.tabular_parser import TabularParser
from setup_assistant.schemas.domain import (
    ContractSnapshot,
    EntityKind,
    FileKind,
    RawUpload,
    SegmentedTable,
    Sheet,
)
from setup_assistant.schemas.results import (
    MultiFileResult,
    PhaseMetrics,
    ProcessingResult,
    ProgressEvent,
    RowError,
)
from setup_assistant.services.ai.client import AIClient, get_ai_client
from setup_assistant.services.ai.retry import RetryPolicy
from setup_assistant.services.bulk_entity_creator import BulkEntityCreator
from setup_assistant.services.contract_matcher import ContractMatcher
from setup_assistant.services.data_transformer import DataTransformer, Draft, TransformResult
from setup_assistant.services.progress_service import ProgressService
from setup_assistant.services.professions import ProfessionProfile, get_profession
from setup_assistant.services.sheet_classifier import SheetClassifier
from setup_assistant.services.vision_extractor import VisionExtractor
from setup_assistant.utils.errors import (
    DatabaseError,
    DeadlineExceededError,
    FileSizeError,
    SetupAssistantError,
    UnsupportedFileTypeError,
    ValidationError,
)
from setup_assistant.utils.logger import bind_upload_context, clear_upload_context, get_logger

logger = get_logger(__name__)


@dataclass
class _Extraction:
    """Drafts of one file plus everything that went wrong on the way."""

    drafts: list[Draft] = field(default_factory=list)
    row_errors: list[RowError] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class SetupAssistantService:
    """
    Entry point of the intake pipeline.

    Usage:
        service = SetupAssistantService()
        result = await service.process_file(RawUpload(content, "plan.xlsx"), team_id)

        batch = await service.process_files(uploads, team_id, progress=get_progress_service())
        print(batch.combined_summary)
    """

    def __init__(
        self,
        ai_client: AIClient | None = None,
        settings: Settings | None = None,
        repository_factory: RepositoryFactory = open_entity_repository,
        bulk_creator: BulkEntityCreator | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        ai_client = ai_client or get_ai_client()
        retry = RetryPolicy.from_settings(self._settings)
        matcher = ContractMatcher(threshold=self._settings.fuzzy_match_threshold)

        self._repository_factory = repository_factory
        self._detector = FileTypeDetector()
        self._parser = TabularParser()
        self._segmenter = TableSegmenter(self._settings)
        self._classifier = SheetClassifier(ai_client, retry, self._settings)
        self._transformer = DataTransformer(matcher)
        self._vision = VisionExtractor(ai_client, retry, self._settings, self._transformer)
        self._creator = bulk_creator or BulkEntityCreator(
            repository_factory, matcher=matcher, settings=self._settings
        )

    # ------------------------------------------------------------------
    # Single file
    # ------------------------------------------------------------------

    async def process_file(
        self,
        upload: RawUpload,
        team_id: UUID,
        entity_hint: EntityKind | None = None,
        guidance: str | None = None,
        user_id: str | None = None,
        profession: str | None = None,
        deadline_at: float | None = None,
    ) -> ProcessingResult:
        """
        Run the whole pipeline for one file.

        Never raises for problems with the file itself: file-fatal
        conditions, including persistence failures, come back as a result
        with ``success=False``.

        Args:
            profession: Profession sent with the request, used when the
                team has none stored
            deadline_at: Event-loop time by which extraction must finish;
                defaults to now plus ``request_deadline_seconds``
        """
        start = time.perf_counter()
        metrics = PhaseMetrics()
        if deadline_at is None:
            deadline_at = asyncio.get_running_loop().time() + self._settings.request_deadline_seconds
        bind_upload_context(team_id=str(team_id), file_name=upload.filename)

        try:
            kind = self._detector.detect(upload.content, upload.filename)
            try:
                if kind == FileKind.UNSUPPORTED:
                    raise UnsupportedFileTypeError(details={"file_name": upload.filename})
                if upload.size > self._settings.max_file_size_bytes:
                    raise FileSizeError(
                        message=f"File exceeds the maximum size of {self._settings.max_file_size_mb} MB",
                        details={"file_size": upload.size},
                    )
                extraction = await self._extract_with_deadline(
                    upload, kind, team_id, metrics, entity_hint, guidance, profession, deadline_at
                )
                result = await self._persist(upload, kind, team_id, extraction, metrics, user_id)
            except SetupAssistantError as e:
                metrics.total_ms = _elapsed_ms(start)
                logger.warning(
                    "setup_assistant.file_failed",
                    error=e.message,
                    error_type=type(e).__name__,
                    file_kind=kind.value,
                )
                return ProcessingResult.failed(upload.filename, e.message, upload.size, kind, metrics)
            except Exception as e:
                metrics.total_ms = _elapsed_ms(start)
                logger.exception("setup_assistant.file_crashed", error=str(e), file_kind=kind.value)
                return ProcessingResult.failed(
                    upload.filename, "Unexpected error while processing file", upload.size, kind, metrics
                )

            metrics.total_ms = _elapsed_ms(start)
            result.metrics = metrics
            logger.info(
                "setup_assistant.file_processed",
                file_kind=kind.value,
                success=result.success,
                contracts=result.contracts_created,
                receivables=result.receivables_created,
                expenses=result.expenses_created,
                errors=len(result.errors),
                structure_ms=metrics.structure_ms,
                analysis_ms=metrics.analysis_ms,
                extraction_ms=metrics.extraction_ms,
                persistence_ms=metrics.persistence_ms,
                duration_ms=metrics.total_ms,
            )
            return result
        finally:
            clear_upload_context("team_id", "file_name")

    async def _extract_with_deadline(
        self,
        upload: RawUpload,
        kind: FileKind,
        team_id: UUID,
        metrics: PhaseMetrics,
        entity_hint: EntityKind | None,
        guidance: str | None,
        profession: str | None,
        deadline_at: float,
    ) -> _Extraction:
        if asyncio.get_running_loop().time() >= deadline_at:
            raise self._deadline_exceeded(upload)
        try:
            async with asyncio.timeout_at(deadline_at):
                profile = await self._resolve_profession(team_id, profession)
                if kind.is_tabular:
                    extraction = await self._extract_tabular(
                        upload, kind, metrics, entity_hint, guidance, profile
                    )
                else:
                    extraction = await self._extract_visual(
                        upload, kind, metrics, entity_hint, guidance, profile
                    )

                link_start = time.perf_counter()
                await self._link(extraction.drafts, team_id)
                metrics.extraction_ms = round(metrics.extraction_ms + _elapsed_ms(link_start), 2)
        except TimeoutError as e:
            raise self._deadline_exceeded(upload) from e
        return extraction

    def _deadline_exceeded(self, upload: RawUpload) -> DeadlineExceededError:
        return DeadlineExceededError(
            message=f"Processing deadline of {self._settings.request_deadline_seconds:g}s exceeded",
            details={"file_name": upload.filename},
        )

    async def _resolve_profession(self, team_id: UUID, requested: str | None) -> ProfessionProfile:
        stored: str | None = None
        try:
            async with self._repository_factory(team_id) as repo:
                stored = await repo.team_profession()
        except (DatabaseError, SQLAlchemyError, OSError) as e:
            message = e.message if isinstance(e, DatabaseError) else str(e)
            logger.warning("setup_assistant.team_unavailable", error=message, error_type=type(e).__name__)
        return get_profession(stored or requested, default=self._settings.default_profession)

    async def _extract_tabular(
        self,
        upload: RawUpload,
        kind: FileKind,
        metrics: PhaseMetrics,
        entity_hint: EntityKind | None,
        guidance: str | None,
        profile: ProfessionProfile,
    ) -> _Extraction:
        phase_start = time.perf_counter()
        workbook = self._parser.parse(upload.content, kind, upload.filename)
        tables = self._tables(workbook.sheets)
        metrics.structure_ms = _elapsed_ms(phase_start)

        extraction = _Extraction()
        if not tables:
            extraction.errors.append("No tables with data were found in the file")
            return extraction

        phase_start = time.perf_counter()
        outcomes = await self._classifier.classify_many(
            tables, upload.filename, entity_hint, guidance, profile
        )
        metrics.analysis_ms = _elapsed_ms(phase_start)

        phase_start = time.perf_counter()
        transformed = TransformResult()
        for outcome in outcomes:
            if not outcome.is_classified:
                extraction.errors.append(f"Table '{outcome.table.name}' was skipped: {outcome.error}")
                continue
            if outcome.classification.is_skipped:
                logger.info("setup_assistant.table_skipped", table=outcome.table.name)
                continue
            transformed.extend(
                self._transformer.transform_table(outcome.table, outcome.classification, upload.filename)
            )
        metrics.extraction_ms = _elapsed_ms(phase_start)

        extraction.drafts = transformed.drafts
        extraction.row_errors = transformed.row_errors
        return extraction

    def _tables(self, sheets: Sequence[Sheet]) -> list[SegmentedTable]:
        tables: list[SegmentedTable] = []
        for sheet in sheets:
            if self._settings.support_mixed_sheets:
                tables.extend(self._segmenter.segment(sheet))
            else:
                tables.extend(self._segmenter.single_table(sheet))
        return tables

    async def _extract_visual(
        self,
        upload: RawUpload,
        kind: FileKind,
        metrics: PhaseMetrics,
        entity_hint: EntityKind | None,
        guidance: str | None,
        profile: ProfessionProfile,
    ) -> _Extraction:
        phase_start = time.perf_counter()
        vision = await self._vision.extract(
            upload.content, kind, upload.filename, entity_hint, guidance, profile
        )
        metrics.analysis_ms = _elapsed_ms(phase_start)

        extraction = _Extraction(drafts=vision.drafts, row_errors=vision.row_errors)
        for entity, count in vision.discarded.items():
            logger.info(
                "setup_assistant.visual_entities_discarded",
                entity=entity.value,
                count=count,
                document_type=vision.document_type.value,
            )
        return extraction

    async def _link(self, drafts: list[Draft], team_id: UUID) -> None:
        if not any(draft.kind != "contract" for draft in drafts):
            return
        persisted = await self._persisted_contracts(team_id)
        snapshots = persisted + self._transformer.contract_snapshots(drafts)
        self._transformer.link_references(drafts, snapshots)

    async def _persisted_contracts(self, team_id: UUID) -> list[ContractSnapshot]:
        try:
            async with self._repository_factory(team_id) as repo:
                return await repo.list_contracts()
        except (DatabaseError, SQLAlchemyError, OSError) as e:
            # The bulk creator links by name again against what it can read
            message = e.message if isinstance(e, DatabaseError) else str(e)
            logger.warning("setup_assistant.contracts_unavailable", error=message)
            return []

    async def _persist(
        self,
        upload: RawUpload,
        kind: FileKind,
        team_id: UUID,
        extraction: _Extraction,
        metrics: PhaseMetrics,
        user_id: str | None,
    ) -> ProcessingResult:
        result = ProcessingResult(
            file_name=upload.filename,
            file_size=upload.size,
            file_kind=kind,
            row_errors=extraction.row_errors,
            errors=[*extraction.errors, *(str(error) for error in extraction.row_errors)],
            metrics=metrics,
        )
        if not extraction.drafts:
            return result

        phase_start = time.perf_counter()
        try:
            created = await self._creator.create(
                extraction.drafts, team_id, source=upload.filename, user_id=user_id
            )
        except DatabaseError as e:
            metrics.persistence_ms = _elapsed_ms(phase_start)
            logger.error("setup_assistant.persistence_failed", error=e.message)
            result.success = False
            result.errors.append(f"Could not save entities: {e.message}")
            return result
        metrics.persistence_ms = _elapsed_ms(phase_start)

        result.contracts_created = created.contracts_created
        result.receivables_created = created.receivables_created
        result.expenses_created = created.expenses_created
        result.errors.extend(created.errors)
        return result

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def iter_files(
        self,
        uploads: Sequence[RawUpload],
        team_id: UUID,
        entity_hint: EntityKind | None = None,
        guidance: str | None = None,
        user_id: str | None = None,
        profession: str | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Process files one after the other, yielding a "processing" event
        before each file and a "completed"/"failed" event (carrying the
        file's result) after it.

        All files share one deadline of ``request_deadline_seconds``,
        counted from the first file.
        """
        total = len(uploads)
        deadline_at = asyncio.get_running_loop().time() + self._settings.request_deadline_seconds
        durations: list[float] = []

        for index, upload in enumerate(uploads, start=1):
            yield ProgressEvent(
                current_file=index,
                total_files=total,
                current_file_name=upload.filename,
                status="processing",
                estimated_time_remaining=_estimate_remaining(durations, total - index + 1),
            )

            result = await self.process_file(
                upload, team_id, entity_hint, guidance, user_id, profession, deadline_at
            )
            durations.append(result.metrics.total_ms / 1000)

            yield ProgressEvent(
                current_file=index,
                total_files=total,
                current_file_name=upload.filename,
                status="completed" if result.success else "failed",
                estimated_time_remaining=_estimate_remaining(durations, total - index),
                result=result,
            )

    async def process_files(
        self,
        uploads: Sequence[RawUpload],
        team_id: UUID,
        session_id: str | None = None,
        progress: ProgressService | None = None,
        entity_hint: EntityKind | None = None,
        guidance: str | None = None,
        user_id: str | None = None,
        profession: str | None = None,
    ) -> MultiFileResult:
        """
        Process a multi-file upload sequentially with continue-on-error.

        Raises:
            ValidationError: No files, or more than ``max_files_per_batch``
        """
        if not uploads:
            raise ValidationError("No files provided")
        if len(uploads) > self._settings.max_files_per_batch:
            raise ValidationError(
                f"Too many files: at most {self._settings.max_files_per_batch} per upload",
                details={"files": len(uploads)},
            )

        session_id = session_id or str(uuid4())
        bind_upload_context(session_id=session_id)
        start = time.perf_counter()
        results: list[ProcessingResult] = []

        try:
            async for event in self.iter_files(
                uploads, team_id, entity_hint, guidance, user_id, profession
            ):
                if progress is not None:
                    await progress.publish(session_id, event)
                if event.result is not None:
                    results.append(event.result)

            summary = MultiFileResult.from_results(session_id, results, _elapsed_ms(start))
            if progress is not None:
                await progress.complete(session_id, summary)
        finally:
            clear_upload_context("session_id")

        logger.info(
            "setup_assistant.batch_processed",
            session_id=session_id,
            total_files=summary.total_files,
            successful_files=summary.successful_files,
            failed_files=summary.failed_files,
            duration_ms=summary.total_processing_time_ms,
        )
        return summary


def _estimate_remaining(durations: list[float], files_left: int) -> float | None:
    """Average seconds per finished file times the files still to go."""
    if not durations:
        return None
    return round(sum(durations) / len(durations) * files_left, 1)


_service: SetupAssistantService | None = None


def get_setup_assistant_service() -> SetupAssistantService:
    """
    Get SetupAssistantService instance.

    Factory function for dependency injection.
    """
    global _service
    if _service is None:
        _service = SetupAssistantService()
    return _service
