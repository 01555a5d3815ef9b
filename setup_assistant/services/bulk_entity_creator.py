"""
Bulk Entity Creator
===================

Persists the drafts of one file for one team.

Flow:
1. partition drafts by kind
2. validate every draft concurrently; failures are collected, never raised
3. insert contracts (one multi-row INSERT)
4. resolve receivable/expense contract links: explicit contract UUID of
   the team → contract created in this batch → fuzzy match → no link
5. insert receivables and expenses concurrently, each kind in its own
   session
6. one audit entry per kind that created rows

A batch INSERT that fails is retried row by row, each row inside its own
savepoint, so one bad entity never takes its siblings down. Every row is
written through a repository bound to the requesting team.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from setup_assistant.config.settings import Settings, get_settings
from setup_assistant.db.repositories import EntityRepository, RepositoryFactory, open_entity_repository
from setup_assistant.schemas.domain import ContractSnapshot, EntityKind
from setup_assistant.schemas.drafts import (
    KIND_OF_DRAFT,
    DraftContract,
    DraftExpense,
    DraftReceivable,
    contract_key,
)
from setup_assistant.schemas.results import BulkCreationResult
from setup_assistant.services.audit_service import AuditService
from setup_assistant.services.contract_matcher import ContractMatcher
from setup_assistant.services.data_transformer import DataTransformer, Draft
from setup_assistant.utils.errors import DatabaseError, ValidationError
from setup_assistant.utils.logger import get_logger
from setup_assistant.utils.text import as_uuid

logger = get_logger(__name__)

# Draft fields written to each table (contract_id is resolved separately)
COLUMNS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.CONTRACTS: (
        "client_name", "project_name", "total_value", "signed_date",
        "status", "description", "category", "notes",
    ),
    EntityKind.RECEIVABLES: (
        "client_name", "expected_date", "amount", "status", "received_date",
        "received_amount", "description", "category", "invoice_number",
    ),
    EntityKind.EXPENSES: (
        "description", "amount", "due_date", "category", "status", "paid_date",
        "paid_amount", "vendor", "invoice_number", "notes",
    ),
}

MONEY_COLUMNS = frozenset({"total_value", "amount", "received_amount", "paid_amount"})


@dataclass
class _BatchContext:
    """What validators and link resolution may look at. Read-only once built."""

    team_id: UUID
    existing: list[ContractSnapshot]
    existing_keys: set[str]
    owned_ids: set[UUID]
    batch_duplicates: set[int] = field(default_factory=set)


class BulkEntityCreator:
    """
    Validates and persists drafts for one team.

    Example:
        creator = BulkEntityCreator()
        result = await creator.create(drafts, team_id, source="plan.xlsx")
        print(result.contracts_created, result.errors)
    """

    def __init__(
        self,
        repository_factory: RepositoryFactory = open_entity_repository,
        audit_service: AuditService | None = None,
        matcher: ContractMatcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._repository_factory = repository_factory
        self._audit = audit_service or AuditService(repository_factory)
        self._matcher = matcher or ContractMatcher(threshold=settings.fuzzy_match_threshold)

    async def create(
        self,
        drafts: Sequence[Draft],
        team_id: UUID,
        source: str | None = None,
        user_id: str | None = None,
    ) -> BulkCreationResult:
        """
        Validate and insert ``drafts`` under ``team_id``.

        Raises:
            DatabaseError: Only when the team's contracts cannot be read
                (including when the database is unreachable);
                insert failures are reported in the result
        """
        result = BulkCreationResult()
        contracts = [d for d in drafts if isinstance(d, DraftContract)]
        receivables = [d for d in drafts if isinstance(d, DraftReceivable)]
        expenses = [d for d in drafts if isinstance(d, DraftExpense)]
        if not drafts:
            return result

        context = await self._load_context(team_id, contracts, receivables + expenses)

        valid_contracts = await self._validate_all(EntityKind.CONTRACTS, contracts, context, result)
        valid_receivables = await self._validate_all(EntityKind.RECEIVABLES, receivables, context, result)
        valid_expenses = await self._validate_all(EntityKind.EXPENSES, expenses, context, result)

        # Contracts first: their ids are needed to link the other kinds
        created_contracts = await self._persist(EntityKind.CONTRACTS, valid_contracts, team_id, result)
        result.contracts_created = len(created_contracts)
        created_keys = {draft.draft_key: entity_id for draft, entity_id in created_contracts}
        candidates = context.existing + [
            ContractSnapshot(
                contract_id=entity_id,
                client_name=draft.client_name or "",
                project_name=draft.project_name or "",
                draft_key=draft.draft_key,
            )
            for draft, entity_id in created_contracts
        ]

        linked = {
            id(draft): self._resolve_contract_id(draft, context, created_keys, candidates)
            for draft in valid_receivables + valid_expenses
        }

        created_receivables, created_expenses = await asyncio.gather(
            self._persist(EntityKind.RECEIVABLES, valid_receivables, team_id, result, linked),
            self._persist(EntityKind.EXPENSES, valid_expenses, team_id, result, linked),
        )
        result.receivables_created = len(created_receivables)
        result.expenses_created = len(created_expenses)

        for kind, created in (
            (EntityKind.CONTRACTS, created_contracts),
            (EntityKind.RECEIVABLES, created_receivables),
            (EntityKind.EXPENSES, created_expenses),
        ):
            ids = [entity_id for _, entity_id in created]
            result.created_ids[kind] = ids
            if ids:
                await self._audit.log_batch(
                    team_id,
                    kind,
                    ids,
                    source=source,
                    error_count=len(result.errors_by_kind.get(kind, [])),
                    user_id=user_id,
                )

        logger.info(
            "bulk_entity_creator.completed",
            team_id=str(team_id),
            contracts=result.contracts_created,
            receivables=result.receivables_created,
            expenses=result.expenses_created,
            linked=sum(1 for contract_id in linked.values() if contract_id is not None),
            errors=len(result.errors),
        )
        return result

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    async def _load_context(
        self,
        team_id: UUID,
        contracts: list[DraftContract],
        linked_drafts: list[DraftReceivable | DraftExpense],
    ) -> _BatchContext:
        explicit_ids: set[UUID] = set()
        for draft in linked_drafts:
            contract_id = as_uuid(draft.contract_reference or "")
            if contract_id is not None:
                explicit_ids.add(contract_id)

        try:
            async with self._repository_factory(team_id) as repo:
                existing = await repo.list_contracts()
                owned = await repo.owned_contract_ids(explicit_ids)
        except (SQLAlchemyError, OSError) as e:
            raise DatabaseError(
                message="Could not load the team's contracts",
                details={"team_id": str(team_id), "error": str(e)},
            ) from e

        # Later copies of the same (client, project) within the batch are duplicates
        duplicates: set[int] = set()
        seen: set[str] = set()
        for draft in contracts:
            if draft.draft_key in seen:
                duplicates.add(id(draft))
            seen.add(draft.draft_key)

        return _BatchContext(
            team_id=team_id,
            existing=existing,
            existing_keys={contract_key(c.client_name, c.project_name) for c in existing},
            owned_ids=owned,
            batch_duplicates=duplicates,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def _validate_all(
        self,
        kind: EntityKind,
        drafts: list[Draft],
        context: _BatchContext,
        result: BulkCreationResult,
    ) -> list[Draft]:
        """Validate concurrently and keep the drafts that passed, in input order."""
        outcomes = await asyncio.gather(
            *(self.validate(draft, context) for draft in drafts),
            return_exceptions=True,
        )
        valid: list[Draft] = []
        for draft, outcome in zip(drafts, outcomes):
            if isinstance(outcome, ValidationError):
                result.add_error(kind, _entity_error(draft, outcome.message))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                valid.append(draft)
        return valid

    async def validate(self, draft: Draft, context: _BatchContext) -> None:
        """
        Apply the business rules for the draft's kind.

        Raises:
            ValidationError: With the first rule the draft breaks
        """
        problems = DataTransformer.validate_required(draft)
        if problems:
            raise ValidationError("; ".join(problems))

        if isinstance(draft, DraftContract):
            if draft.draft_key in context.existing_keys:
                raise ValidationError("A contract with this client and project name already exists")
            if id(draft) in context.batch_duplicates:
                raise ValidationError("Duplicate contract (same client and project) in this upload")
            return

        reference = as_uuid(draft.contract_reference or "")
        if reference is not None and reference not in context.owned_ids:
            raise ValidationError("Contract not found or access denied")

        if isinstance(draft, DraftReceivable):
            if draft.received_amount is not None and draft.received_amount > draft.amount:
                raise ValidationError("Received amount cannot exceed expected amount")
            standalone = not draft.contract_reference and draft.cross_reference is None
            if standalone and not draft.client_name:
                raise ValidationError("Client name is required for standalone receivables")
            return

        if draft.paid_amount is not None and draft.paid_amount > draft.amount:
            raise ValidationError("Paid amount cannot exceed total amount")
        if draft.status == "paid" and (draft.paid_date is None or draft.paid_amount is None):
            raise ValidationError("Paid expenses need a paid date and a paid amount")

    # ------------------------------------------------------------------
    # Linking
    # ------------------------------------------------------------------

    def _resolve_contract_id(
        self,
        draft: DraftReceivable | DraftExpense,
        context: _BatchContext,
        created_keys: dict[str, UUID],
        candidates: list[ContractSnapshot],
    ) -> UUID | None:
        explicit = as_uuid(draft.contract_reference or "")
        if explicit is not None:
            return explicit

        link = draft.cross_reference
        if link is not None:
            if link.contract_id is not None and any(c.contract_id == link.contract_id for c in context.existing):
                return link.contract_id
            if link.draft_key is not None and link.draft_key in created_keys:
                return created_keys[link.draft_key]

        # Contract extracted but not persisted (or never linked): retry by name
        for reference in (draft.contract_reference, link.reference if link else None):
            if not reference:
                continue
            match = self._matcher.find_best(reference, candidates)
            if match is not None:
                return match.contract.contract_id
        return None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist(
        self,
        kind: EntityKind,
        drafts: list[Draft],
        team_id: UUID,
        result: BulkCreationResult,
        contract_ids: dict[int, UUID | None] | None = None,
    ) -> list[tuple[Draft, UUID]]:
        """Insert one kind; returns (draft, id) pairs of the rows that made it."""
        if not drafts:
            return []

        rows = [self.to_row(draft, (contract_ids or {}).get(id(draft))) for draft in drafts]
        created: list[tuple[Draft, UUID]] = []
        try:
            async with self._repository_factory(team_id) as repo:
                try:
                    ids = await repo.insert_many(kind, rows)
                    created = list(zip(drafts, ids))
                except DatabaseError as e:
                    logger.warning(
                        "bulk_entity_creator.batch_failed",
                        kind=kind.value,
                        rows=len(rows),
                        error=e.details.get("error", e.message),
                    )
                    created = await self._persist_one_by_one(repo, kind, drafts, rows, result)
        except (DatabaseError, SQLAlchemyError, OSError) as e:
            # Connection or commit failed: nothing of this kind was kept
            message = e.message if isinstance(e, DatabaseError) else str(e)
            logger.error("bulk_entity_creator.commit_failed", kind=kind.value, error=message)
            for draft in drafts:
                result.add_error(kind, _entity_error(draft, f"Could not be saved: {message}"))
            return []
        return created

    @staticmethod
    async def _persist_one_by_one(
        repo: EntityRepository,
        kind: EntityKind,
        drafts: list[Draft],
        rows: list[dict[str, Any]],
        result: BulkCreationResult,
    ) -> list[tuple[Draft, UUID]]:
        created: list[tuple[Draft, UUID]] = []
        for draft, row in zip(drafts, rows):
            try:
                entity_id = await repo.insert_one(kind, row)
            except DatabaseError as e:
                result.add_error(kind, _entity_error(draft, f"Could not be saved: {e.message}"))
                continue
            created.append((draft, entity_id))
        return created

    @staticmethod
    def to_row(draft: Draft, contract_id: UUID | None = None) -> dict[str, Any]:
        """Column values for a draft (team id is stamped by the repository)."""
        kind = KIND_OF_DRAFT[draft.kind]
        row: dict[str, Any] = {}
        for name in COLUMNS[kind]:
            value = getattr(draft, name)
            if name in MONEY_COLUMNS and value is not None:
                value = Decimal(str(value)).quantize(Decimal("0.01"))
            row[name] = value
        if kind != EntityKind.CONTRACTS:
            row["contract_id"] = contract_id
        return row


def _entity_error(draft: Draft, message: str) -> str:
    """Error line that lets a user find the entity in the source file."""
    label = draft.kind.capitalize()
    return f"{label} {draft.describe()} ({draft.source.describe()}): {message}"
