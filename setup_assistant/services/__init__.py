"""
Services Package
================

Pipeline stages and their orchestration.

Components:
    - SheetClassifier: AI table classification and column mapping
    - DataTransformer: Rule-based rows → drafts conversion
    - ContractMatcher: Fuzzy contract linking
    - VisionExtractor: AI extraction from PDFs and images
    - BulkEntityCreator: Team-scoped validation and batched inserts
    - AuditService: One audit entry per batch
    - ProgressService: Redis progress store for multi-file uploads
    - ProfessionProfile: Business context of a team for the AI prompts
    - SetupAssistantService: Orchestrator
"""

from setup_assistant.services.audit_service import AuditService
from setup_assistant.services.bulk_entity_creator import BulkEntityCreator
from setup_assistant.services.contract_matcher import ContractMatcher
from setup_assistant.services.data_transformer import DataTransformer, TransformResult
from setup_assistant.services.professions import ProfessionProfile, get_profession
from setup_assistant.services.progress_service import ProgressService, get_progress_service
from setup_assistant.services.setup_assistant_service import (
    SetupAssistantService,
    get_setup_assistant_service,
)
from setup_assistant.services.sheet_classifier import ClassificationOutcome, SheetClassifier
from setup_assistant.services.vision_extractor import DocumentType, VisionExtractor

__all__ = [
    "AuditService",
    "BulkEntityCreator",
    "ClassificationOutcome",
    "ContractMatcher",
    "DataTransformer",
    "DocumentType",
    "ProfessionProfile",
    "ProgressService",
    "SetupAssistantService",
    "SheetClassifier",
    "TransformResult",
    "VisionExtractor",
    "get_profession",
    "get_progress_service",
    "get_setup_assistant_service",
]
