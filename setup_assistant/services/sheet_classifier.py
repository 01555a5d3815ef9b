"""
Sheet Classifier
================

Asks the AI service what each segmented table holds and how its columns
map to draft fields. One call per table, sending only the headers and a
sample of rows; calls for the tables of one file run concurrently under a
semaphore. Every call goes through the retry policy; a table whose
classification still fails is reported as unclassified and skipped, the
other tables proceed.

The answer is advisory: headers the table does not have, unknown kinds
and unknown fields are dropped here, and the transformer re-validates
every row.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from setup_assistant.config.settings import Settings, get_settings
from setup_assistant.schemas.domain import (
    ColumnMapping,
    EntityKind,
    SegmentedTable,
    TableClassification,
    TransformType,
)
from setup_assistant.schemas.drafts import entity_field_aliases
from setup_assistant.services.ai.client import AIClient
from setup_assistant.services.ai.response_parser import extract_json_object
from setup_assistant.services.ai.retry import RetryPolicy
from setup_assistant.services.professions import ProfessionProfile
from setup_assistant.services.prompts import SYSTEM_PROMPT, get_table_classification_prompt
from setup_assistant.utils.errors import AIServiceError, ClassificationError, SetupAssistantError
from setup_assistant.utils.logger import get_logger
from setup_assistant.utils.text import fold

logger = get_logger(__name__)

CLASSIFICATION_MAX_TOKENS = 4000
LEGACY_SKIP = "skip"


@dataclass
class ClassificationOutcome:
    """Classification of one table, or the reason it could not be classified."""

    table: SegmentedTable
    classification: TableClassification | None = None
    error: str | None = None

    @property
    def is_classified(self) -> bool:
        return self.classification is not None


class SheetClassifier:
    """
    AI-backed table classifier.

    Example:
        classifier = SheetClassifier(get_ai_client(), RetryPolicy.from_settings(settings))
        outcomes = await classifier.classify_many(tables, file_name="plan.xlsx")
        for outcome in outcomes:
            print(outcome.table.name, outcome.classification or outcome.error)
    """

    def __init__(
        self,
        ai_client: AIClient,
        retry_policy: RetryPolicy | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._ai = ai_client
        self._retry = retry_policy or RetryPolicy.from_settings(self._settings)

    async def classify(
        self,
        table: SegmentedTable,
        file_name: str = "",
        entity_hint: EntityKind | None = None,
        guidance: str | None = None,
        profession: ProfessionProfile | None = None,
    ) -> TableClassification:
        """
        Classify one table.

        Raises:
            ClassificationError: The AI call failed after retries or its
                response held no usable JSON object
        """
        prompt = get_table_classification_prompt(
            file_name=file_name,
            sheet_name=table.sheet_name,
            table_name=table.name,
            headers=table.headers,
            sample_rows=table.sample(self._settings.classifier_sample_rows),
            row_count=table.row_count,
            entity_hint=entity_hint,
            guidance=guidance,
            profession=profession,
        )

        try:
            response = await self._retry.run(
                self._ai.complete,
                prompt,
                system_prompt=SYSTEM_PROMPT,
                model=self._settings.classification_model,
                max_tokens=CLASSIFICATION_MAX_TOKENS,
            )
            data = extract_json_object(response.content)
        except AIServiceError as e:
            raise ClassificationError(
                message=f"Could not classify table '{table.name}': {e.message}",
                details={"table": table.name, "status_code": e.status_code},
            ) from e

        classification = self.parse_classification(data, table)
        logger.info(
            "sheet_classifier.classified",
            table=table.name,
            kinds=[kind.value for kind in classification.entity_kinds],
            mapped_columns=len(classification.column_mappings),
            discriminator=classification.discriminator_column,
        )
        return classification

    async def classify_many(
        self,
        tables: Sequence[SegmentedTable],
        file_name: str = "",
        entity_hint: EntityKind | None = None,
        guidance: str | None = None,
        profession: ProfessionProfile | None = None,
    ) -> list[ClassificationOutcome]:
        """Classify tables concurrently; failures become unclassified outcomes."""
        semaphore = asyncio.Semaphore(self._settings.classifier_concurrency)

        async def run_one(table: SegmentedTable) -> ClassificationOutcome:
            async with semaphore:
                try:
                    classification = await self.classify(table, file_name, entity_hint, guidance, profession)
                except SetupAssistantError as e:
                    logger.warning(
                        "sheet_classifier.unclassified",
                        table=table.name,
                        error=e.message,
                        error_type=type(e).__name__,
                    )
                    return ClassificationOutcome(table=table, error=e.message)
                except Exception as e:
                    # One broken table never costs the file its other tables
                    logger.exception(
                        "sheet_classifier.classification_crashed",
                        table=table.name,
                        error_type=type(e).__name__,
                    )
                    return ClassificationOutcome(
                        table=table, error=f"Unexpected error while classifying table: {type(e).__name__}"
                    )
                return ClassificationOutcome(table=table, classification=classification)

        return list(await asyncio.gather(*(run_one(table) for table in tables)))

    # ------------------------------------------------------------------
    # Response interpretation
    # ------------------------------------------------------------------

    def parse_classification(self, data: dict[str, Any], table: SegmentedTable) -> TableClassification:
        """
        Turn the AI answer into a TableClassification for ``table``.

        Accepts the multi-kind shape (``entityKinds`` + per-column
        ``entity``) and the single-kind shape (``sheetType``).
        """
        declared = self._declared_kinds(data)
        headers = {fold(header): header for header in table.headers}

        mappings: list[ColumnMapping] = []
        raw_mapping = data.get("columnMapping") or {}
        if not isinstance(raw_mapping, dict):
            raw_mapping = {}

        for column, spec in raw_mapping.items():
            # A column shared by several kinds maps to a list of specs
            for item in spec if isinstance(spec, list) else [spec]:
                mapping = self._parse_mapping(str(column), item, declared, headers)
                if mapping is not None:
                    mappings.append(mapping)

        # Keep declared kinds that actually received columns
        mapped_kinds = {mapping.entity for mapping in mappings}
        kinds = [kind for kind in declared if kind in mapped_kinds]

        discriminator_column, discriminator_values = self._parse_discriminator(data, kinds, headers)

        return TableClassification(
            table_name=table.name,
            entity_kinds=kinds,
            column_mappings=[mapping for mapping in mappings if mapping.entity in kinds],
            discriminator_column=discriminator_column,
            discriminator_values=discriminator_values,
            reasoning=data.get("reasoning") if isinstance(data.get("reasoning"), str) else None,
        )

    @staticmethod
    def _declared_kinds(data: dict[str, Any]) -> list[EntityKind]:
        raw = data.get("entityKinds")
        if raw is None and "sheetType" in data:
            raw = [] if data.get("sheetType") == LEGACY_SKIP else [data.get("sheetType")]
        if isinstance(raw, str):
            raw = [raw]

        kinds: list[EntityKind] = []
        for value in raw or []:
            try:
                kind = EntityKind(str(value).strip().lower())
            except ValueError:
                logger.debug("sheet_classifier.unknown_kind_ignored", kind=value)
                continue
            if kind not in kinds:
                kinds.append(kind)
        return kinds

    @staticmethod
    def _parse_mapping(
        column: str,
        spec: Any,
        declared: list[EntityKind],
        headers: dict[str, str],
    ) -> ColumnMapping | None:
        header = headers.get(fold(column))
        if header is None or not isinstance(spec, dict):
            logger.debug("sheet_classifier.mapping_dropped", column=column, reason="unknown header")
            return None

        entity_value = spec.get("entity")
        if entity_value:
            try:
                kind = EntityKind(str(entity_value).strip().lower())
            except ValueError:
                return None
        elif len(declared) == 1:
            kind = declared[0]
        else:
            return None

        aliases = entity_field_aliases(kind)
        raw_field = str(spec.get("field") or "")
        field = aliases.get(raw_field) or (raw_field if raw_field in aliases.values() else None)
        if field is None:
            logger.debug(
                "sheet_classifier.mapping_dropped",
                column=column,
                field=raw_field,
                reason=f"not a {kind.singular} field",
            )
            return None

        try:
            transform = TransformType(str(spec.get("transform") or "text").lower())
        except ValueError:
            transform = TransformType.TEXT

        enum_values = spec.get("enumValues") or []
        if not isinstance(enum_values, list):
            enum_values = []

        return ColumnMapping(
            column=header,
            entity=kind,
            field=field,
            transform=transform,
            enum_values=[str(value) for value in enum_values if value is not None],
        )

    @staticmethod
    def _parse_discriminator(
        data: dict[str, Any],
        kinds: list[EntityKind],
        headers: dict[str, str],
    ) -> tuple[str | None, dict[str, EntityKind]]:
        column = data.get("discriminatorColumn")
        raw_values = data.get("discriminatorValues")
        if not column or not isinstance(raw_values, dict) or len(kinds) < 2:
            return None, {}

        header = headers.get(fold(str(column)))
        if header is None:
            return None, {}

        values: dict[str, EntityKind] = {}
        for label, kind_value in raw_values.items():
            try:
                kind = EntityKind(str(kind_value).strip().lower())
            except ValueError:
                continue
            if kind in kinds:
                values[str(label)] = kind
        return (header, values) if values else (None, {})
