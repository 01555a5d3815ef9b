"""
Vision Extractor
================

Extracts drafts from PDFs and images in a single AI call: the whole
document is attached and the service answers with entity arrays. There is
no segmentation and no partial success at the document level; if the
call fails after retries or no JSON object can be recovered, the file
fails as a unit.

Document-type policy (applied here, not left to the model):
- proposal / quote / contract → the contract, plus receivables only when
  the payment terms are explicit; expenses are discarded
- invoice / receipt → expenses only
- anything else → everything returned
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import pydantic

from setup_assistant.config.settings import Settings, get_settings
from setup_assistant.ingest.file_type_detector import FileTypeDetector
from setup_assistant.schemas.domain import EntityKind, FileKind
from setup_assistant.schemas.drafts import SourceLocation, parse_draft
from setup_assistant.schemas.results import RowError
from setup_assistant.services.ai.client import AIAttachment, AIClient
from setup_assistant.services.ai.response_parser import extract_json_object
from setup_assistant.services.ai.retry import RetryPolicy
from setup_assistant.services.data_transformer import DataTransformer, Draft
from setup_assistant.services.professions import ProfessionProfile
from setup_assistant.services.prompts import SYSTEM_PROMPT, get_vision_extraction_prompt
from setup_assistant.utils.errors import AIServiceError, VisionExtractionError
from setup_assistant.utils.logger import get_logger
from setup_assistant.utils.text import fold

logger = get_logger(__name__)


class DocumentType(str, Enum):
    """What a visual document is, as far as entity policy is concerned."""

    PROPOSAL = "proposal"
    CONTRACT = "contract"
    INVOICE = "invoice"
    RECEIPT = "receipt"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> "DocumentType":
        text = fold(str(value or ""))
        for keyword, doc_type in _DOCUMENT_KEYWORDS:
            if keyword in text:
                return doc_type
        return cls.OTHER


_DOCUMENT_KEYWORDS: tuple[tuple[str, DocumentType], ...] = (
    ("proposal", DocumentType.PROPOSAL),
    ("proposta", DocumentType.PROPOSAL),
    ("quote", DocumentType.PROPOSAL),
    ("orcamento", DocumentType.PROPOSAL),
    ("contract", DocumentType.CONTRACT),
    ("contrato", DocumentType.CONTRACT),
    ("agreement", DocumentType.CONTRACT),
    ("invoice", DocumentType.INVOICE),
    ("fatura", DocumentType.INVOICE),
    ("nota fiscal", DocumentType.INVOICE),
    ("boleto", DocumentType.INVOICE),
    ("bill", DocumentType.INVOICE),
    ("receipt", DocumentType.RECEIPT),
    ("recibo", DocumentType.RECEIPT),
    ("comprovante", DocumentType.RECEIPT),
)

_ARRAY_KEYS: dict[EntityKind, str] = {
    EntityKind.CONTRACTS: "contracts",
    EntityKind.RECEIVABLES: "receivables",
    EntityKind.EXPENSES: "expenses",
}


@dataclass
class VisionExtraction:
    """Drafts extracted from one visual document."""

    document_type: DocumentType
    payment_terms_explicit: bool
    drafts: list[Draft] = field(default_factory=list)
    row_errors: list[RowError] = field(default_factory=list)
    discarded: dict[EntityKind, int] = field(default_factory=dict)


def allowed_kinds(document_type: DocumentType, payment_terms_explicit: bool) -> set[EntityKind]:
    """Entity kinds a document of this type may produce."""
    if document_type in (DocumentType.PROPOSAL, DocumentType.CONTRACT):
        kinds = {EntityKind.CONTRACTS}
        if payment_terms_explicit:
            kinds.add(EntityKind.RECEIVABLES)
        return kinds
    if document_type in (DocumentType.INVOICE, DocumentType.RECEIPT):
        return {EntityKind.EXPENSES}
    return set(EntityKind)


class VisionExtractor:
    """
    PDF/image extractor.

    Example:
        extractor = VisionExtractor(get_ai_client())
        extraction = await extractor.extract(content, FileKind.PDF, "proposta.pdf")
        print(extraction.document_type, len(extraction.drafts))
    """

    def __init__(
        self,
        ai_client: AIClient,
        retry_policy: RetryPolicy | None = None,
        settings: Settings | None = None,
        transformer: DataTransformer | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._ai = ai_client
        self._retry = retry_policy or RetryPolicy.from_settings(self._settings)
        self._transformer = transformer or DataTransformer()

    async def extract(
        self,
        content: bytes,
        kind: FileKind,
        file_name: str,
        entity_hint: EntityKind | None = None,
        guidance: str | None = None,
        profession: ProfessionProfile | None = None,
    ) -> VisionExtraction:
        """
        Extract drafts from a visual document.

        Raises:
            VisionExtractionError: Empty document, AI failure after retries,
                or no JSON object in the response
        """
        label = "pdf" if kind == FileKind.PDF else "image"
        if not content:
            raise VisionExtractionError(
                message=f"Failed to extract data from {label}: file is empty",
                details={"file_name": file_name},
            )

        media_type = (
            "application/pdf" if kind == FileKind.PDF
            else FileTypeDetector.image_media_type(file_name, content)
        )
        prompt = get_vision_extraction_prompt(file_name, entity_hint, guidance, profession)

        try:
            response = await self._retry.run(
                self._ai.complete,
                prompt,
                system_prompt=SYSTEM_PROMPT,
                attachment=AIAttachment(data=content, media_type=media_type),
                model=self._settings.ai_model,
                max_tokens=self._settings.ai_max_tokens,
            )
            data = extract_json_object(response.content)
        except AIServiceError as e:
            logger.error("vision_extractor.failed", file_name=file_name, error=e.message)
            raise VisionExtractionError(
                message=f"Failed to extract data from {label}: {e.message}",
                details={"file_name": file_name, **e.details},
            ) from e

        extraction = self.interpret(data, file_name)
        logger.info(
            "vision_extractor.extracted",
            file_name=file_name,
            document_type=extraction.document_type.value,
            payment_terms_explicit=extraction.payment_terms_explicit,
            drafts=len(extraction.drafts),
            discarded={k.value: v for k, v in extraction.discarded.items()},
            row_errors=len(extraction.row_errors),
        )
        return extraction

    def interpret(self, data: dict[str, Any], file_name: str) -> VisionExtraction:
        """Apply the document-type policy and turn the entity arrays into drafts."""
        document_type = DocumentType.parse(data.get("documentType"))
        explicit = data.get("paymentTermsExplicit") is True
        kinds = allowed_kinds(document_type, explicit)
        extraction = VisionExtraction(document_type=document_type, payment_terms_explicit=explicit)

        for kind, key in _ARRAY_KEYS.items():
            items = data.get(key)
            if not isinstance(items, list):
                continue
            if kind not in kinds:
                if items:
                    extraction.discarded[kind] = len(items)
                continue

            for position, item in enumerate(items, start=1):
                if not isinstance(item, dict):
                    continue
                self._add_item(extraction, kind, item, position, file_name)

        return extraction

    def _add_item(
        self,
        extraction: VisionExtraction,
        kind: EntityKind,
        item: dict[str, Any],
        position: int,
        file_name: str,
    ) -> None:
        source = SourceLocation(file_name=file_name)
        try:
            draft = parse_draft(kind, item, source)
        except pydantic.ValidationError as e:
            extraction.row_errors.append(RowError(
                entity=kind,
                message=f"{kind.singular.capitalize()} #{position}: invalid values ({e.error_count()} error(s))",
            ))
            return

        draft = self._transformer.post_process(draft)
        problems = self._transformer.validate_required(draft)
        if problems:
            extraction.row_errors.append(RowError(
                entity=kind,
                message=f"{kind.singular.capitalize()} #{position} ({draft.describe()}): {'; '.join(problems)}",
            ))
            return
        extraction.drafts.append(draft)
