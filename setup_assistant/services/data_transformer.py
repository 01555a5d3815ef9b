"""
Data Transformer
================

Deterministic, rule-based conversion of classified table rows into draft
entities. No AI, no database, no network: everything it needs (the table,
its classification, a read-only snapshot of contracts) is passed in.

Per data row:
1. pull mapped cells (first non-empty value wins when two columns feed
   the same field)
2. convert them (currency, dates, statuses, numbers, text)
3. infer missing values (default statuses, received/paid fills, name
   fallbacks)
4. check kind-specific required fields; failing rows become RowErrors

Cross-entity linking runs afterwards over all drafts of the file via
``link_references``, against the persisted contracts of the team plus the
contracts extracted in the same request.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Final

import pydantic

from setup_assistant.schemas.domain import (
    CellValue,
    ColumnMapping,
    ContractSnapshot,
    DataRow,
    EntityKind,
    SegmentedTable,
    TableClassification,
    TransformType,
)
from setup_assistant.schemas.drafts import (
    ContractLink,
    DraftContract,
    DraftExpense,
    DraftReceivable,
    KIND_OF_DRAFT,
    SourceLocation,
    parse_draft,
)
from setup_assistant.schemas.results import RowError
from setup_assistant.services.contract_matcher import ContractMatcher
from setup_assistant.utils.currency import parse_currency, parse_number, round_money
from setup_assistant.utils.dates import normalize_date
from setup_assistant.utils.logger import get_logger
from setup_assistant.utils.text import as_uuid, cell_text, fold

logger = get_logger(__name__)

Draft = DraftContract | DraftReceivable | DraftExpense

# Folded source term → canonical status
STATUS_MAP: Final[dict[str, str]] = {
    "ativo": "active",
    "concluido": "completed",
    "completo": "completed",
    "finalizado": "completed",
    "pausado": "paused",
    "cancelado": "cancelled",
    "recebido": "received",
    "pago": "paid",
    "pendente": "pending",
    "a pagar": "pending",
    "a receber": "pending",
    "atrasado": "overdue",
    "vencido": "overdue",
    # Boolean-like answers ("Recebido?" columns)
    "sim": "received",
    "nao": "pending",
    "verdadeiro": "received",
    "falso": "pending",
    "true": "received",
    "false": "pending",
}

ALLOWED_STATUSES: Final[dict[EntityKind, frozenset[str]]] = {
    EntityKind.CONTRACTS: frozenset({"active", "completed", "paused", "cancelled"}),
    EntityKind.RECEIVABLES: frozenset({"pending", "received", "overdue", "cancelled"}),
    EntityKind.EXPENSES: frozenset({"pending", "paid", "overdue", "cancelled"}),
}

# Settled statuses carry over between receivables and expenses
_STATUS_ALIASES: Final[dict[EntityKind, dict[str, str]]] = {
    EntityKind.RECEIVABLES: {"paid": "received"},
    EntityKind.EXPENSES: {"received": "paid"},
}

REQUIRED_FIELDS: Final[dict[EntityKind, tuple[str, ...]]] = {
    EntityKind.CONTRACTS: ("client_name", "project_name", "total_value", "signed_date"),
    EntityKind.RECEIVABLES: ("amount", "expected_date"),
    EntityKind.EXPENSES: ("description", "amount"),
}

# Monetary fields that must be strictly positive when present
POSITIVE_FIELDS: Final[dict[EntityKind, str]] = {
    EntityKind.CONTRACTS: "total_value",
    EntityKind.RECEIVABLES: "amount",
    EntityKind.EXPENSES: "amount",
}

DEFAULT_CLIENT_NAME = "Cliente não especificado"
DEFAULT_EXPENSE_CATEGORY = "Outros"


@dataclass
class TransformResult:
    """Drafts produced from one or more tables, plus the rows that failed."""

    drafts: list[Draft] = field(default_factory=list)
    row_errors: list[RowError] = field(default_factory=list)

    def extend(self, other: "TransformResult") -> None:
        self.drafts.extend(other.drafts)
        self.row_errors.extend(other.row_errors)

    def of_kind(self, kind: type[Draft]) -> list[Draft]:
        return [draft for draft in self.drafts if isinstance(draft, kind)]


def field_label(name: str) -> str:
    """camelCase label used in user-facing messages ("total_value" → "totalValue")."""
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


class DataTransformer:
    """
    Turns classified tables into validated drafts.

    Example:
        transformer = DataTransformer(ContractMatcher(threshold=0.6))
        result = transformer.transform_table(table, classification, file_name="plan.xlsx")
        transformer.link_references(result.drafts, persisted_contracts)
    """

    def __init__(self, matcher: ContractMatcher | None = None, today: date | None = None):
        self.matcher = matcher or ContractMatcher()
        self._today = today

    @property
    def today(self) -> date:
        return self._today or date.today()

    # ------------------------------------------------------------------
    # Value conversion
    # ------------------------------------------------------------------

    def transform_value(
        self,
        value: CellValue,
        transform: TransformType,
        enum_values: Sequence[str] | None = None,
    ) -> Any:
        """
        Convert one raw cell. Empty or unparseable input yields None.

        Examples:
            transform_value("R$ 1.234,56", TransformType.CURRENCY)  → 1234.56
            transform_value("15/09/2024", TransformType.DATE)       → date(2024, 9, 15)
            transform_value("Pago", TransformType.STATUS)           → "paid"
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            return None

        if transform == TransformType.CURRENCY:
            return parse_currency(value)
        if transform == TransformType.DATE:
            return normalize_date(value, today=self.today)
        if transform == TransformType.NUMBER:
            return parse_number(value)
        if transform in (TransformType.STATUS, TransformType.ENUM):
            return self.transform_status(cell_text(value), enum_values)
        return cell_text(value) or None

    @staticmethod
    def transform_status(value: str, enum_values: Sequence[str] | None = None) -> str | None:
        """Map a status term to its canonical value (Portuguese → English)."""
        if not value:
            return None
        key = fold(value)
        if key in STATUS_MAP:
            return STATUS_MAP[key]

        for enum_value in enum_values or ():
            candidate = fold(enum_value)
            if candidate and (candidate in key or key in candidate):
                return enum_value

        return value.strip().lower()

    def extract_entity(
        self,
        record: dict[str, CellValue],
        mappings: Iterable[ColumnMapping],
    ) -> dict[str, Any]:
        """
        Build a field → value payload for one entity from a row record.

        When several columns map to the same field, the first non-empty
        converted value is kept ("Valor RT" = 10285 beats an empty
        "Valor da Parcela").
        """
        payload: dict[str, Any] = {}
        for mapping in mappings:
            converted = self.transform_value(
                record.get(mapping.column), mapping.transform, mapping.enum_values
            )
            if payload.get(mapping.field) is None:
                payload[mapping.field] = converted
        return payload

    # ------------------------------------------------------------------
    # Tables → drafts
    # ------------------------------------------------------------------

    def transform_table(
        self,
        table: SegmentedTable,
        classification: TableClassification,
        file_name: str | None = None,
    ) -> TransformResult:
        """Convert every data row of a classified table."""
        result = TransformResult()
        if classification.is_skipped:
            return result

        for row in table.data_rows:
            record = row.as_record(table.headers)
            kinds = self._kinds_for_row(record, classification)
            if kinds is None:
                result.row_errors.append(RowError(
                    sheet_name=table.sheet_name,
                    row_number=row.row_number,
                    message=(
                        f"Could not determine entity type from column "
                        f"'{classification.discriminator_column}' "
                        f"(value: {cell_text(record.get(classification.discriminator_column or ''))!r})"
                    ),
                ))
                continue

            row_contract: DraftContract | None = None
            for kind in kinds:
                source = SourceLocation(
                    file_name=file_name, sheet_name=table.sheet_name, row_number=row.row_number
                )
                draft = self._build_draft(kind, record, classification, source, row, result)
                if draft is None:
                    continue
                if isinstance(draft, DraftContract):
                    row_contract = draft
                elif row_contract is not None and draft.cross_reference is None:
                    # Payment columns on a contract row belong to that contract
                    self._attach_row_contract(draft, row_contract)
                result.drafts.append(draft)

        logger.info(
            "data_transformer.table_transformed",
            table=table.name,
            kinds=[kind.value for kind in classification.entity_kinds],
            rows=table.row_count,
            drafts=len(result.drafts),
            row_errors=len(result.row_errors),
        )
        return result

    def _kinds_for_row(
        self, record: dict[str, CellValue], classification: TableClassification
    ) -> list[EntityKind] | None:
        column = classification.discriminator_column
        if not column or not classification.discriminator_values:
            # Contracts first so payment columns can link to the row contract
            return sorted(classification.entity_kinds, key=list(EntityKind).index)

        value = fold(cell_text(record.get(column)))
        for label, kind in classification.discriminator_values.items():
            if fold(label) == value:
                return [kind]
        for label, kind in classification.discriminator_values.items():
            folded = fold(label)
            if folded and value and (folded in value or value in folded):
                return [kind]
        return None

    def _build_draft(
        self,
        kind: EntityKind,
        record: dict[str, CellValue],
        classification: TableClassification,
        source: SourceLocation,
        row: DataRow,
        result: TransformResult,
    ) -> Draft | None:
        payload = self.extract_entity(record, classification.mappings_for(kind))
        if all(value is None for value in payload.values()):
            # Nothing mapped for this kind on this row (e.g. contract row without payment columns)
            return None

        try:
            draft = parse_draft(kind, payload, source)
        except pydantic.ValidationError as e:
            result.row_errors.append(RowError(
                sheet_name=source.sheet_name,
                row_number=row.row_number,
                entity=kind,
                message=f"Invalid values: {_summarize_validation_error(e)}",
            ))
            return None

        draft = self.post_process(draft)
        problems = self.validate_required(draft)
        if problems:
            result.row_errors.append(RowError(
                sheet_name=source.sheet_name,
                row_number=row.row_number,
                entity=kind,
                message="; ".join(problems),
            ))
            return None
        return draft

    @staticmethod
    def _attach_row_contract(draft: DraftReceivable | DraftExpense, contract: DraftContract) -> None:
        draft.cross_reference = ContractLink(
            reference=contract.describe(),
            client_name=contract.client_name or "",
            project_name=contract.project_name or "",
            score=1.0,
            draft_key=contract.draft_key,
        )
        if isinstance(draft, DraftReceivable) and (
            not draft.client_name or draft.client_name == DEFAULT_CLIENT_NAME
        ):
            draft.client_name = contract.client_name

    # ------------------------------------------------------------------
    # Inference and validation
    # ------------------------------------------------------------------

    def post_process(self, draft: Draft) -> Draft:
        """Fill inferable fields. Mutates and returns the draft."""
        if isinstance(draft, DraftContract):
            self._post_process_contract(draft)
        elif isinstance(draft, DraftReceivable):
            self._post_process_receivable(draft)
        else:
            self._post_process_expense(draft)
        return draft

    def _post_process_contract(self, draft: DraftContract) -> None:
        if not draft.client_name:
            draft.client_name = draft.project_name
        if not draft.project_name:
            draft.project_name = draft.client_name
        draft.status = self._canonical_status(EntityKind.CONTRACTS, draft.status) or "active"
        draft.total_value = round_money(draft.total_value)

    def _post_process_receivable(self, draft: DraftReceivable) -> None:
        draft.amount = round_money(draft.amount)
        draft.status = self._canonical_status(EntityKind.RECEIVABLES, draft.status)
        if draft.status is None and draft.expected_date is not None:
            draft.status = "pending" if draft.expected_date >= self.today else "received"
        if draft.status == "received":
            if draft.received_date is None:
                draft.received_date = draft.expected_date
            if draft.received_amount is None:
                draft.received_amount = draft.amount
        draft.received_amount = round_money(draft.received_amount)

        if not draft.client_name:
            if draft.contract_reference and as_uuid(draft.contract_reference) is None:
                draft.client_name = draft.contract_reference
            elif draft.description:
                draft.client_name = draft.description
            else:
                draft.client_name = DEFAULT_CLIENT_NAME

    def _post_process_expense(self, draft: DraftExpense) -> None:
        draft.amount = round_money(draft.amount)
        if not draft.category:
            draft.category = DEFAULT_EXPENSE_CATEGORY
        if draft.due_date is None:
            draft.due_date = self.today
        draft.status = self._canonical_status(EntityKind.EXPENSES, draft.status)
        if draft.status is None:
            draft.status = "pending" if draft.due_date >= self.today else "paid"
        if draft.status == "paid":
            if draft.paid_date is None:
                draft.paid_date = draft.due_date
            if draft.paid_amount is None:
                draft.paid_amount = draft.amount
        draft.paid_amount = round_money(draft.paid_amount)

    def _canonical_status(self, kind: EntityKind, status: str | None) -> str | None:
        """Normalize a status for ``kind``; statuses outside its vocabulary become None."""
        if not status:
            return None
        value = self.transform_status(status)
        value = _STATUS_ALIASES.get(kind, {}).get(value, value)
        if value in ALLOWED_STATUSES[kind]:
            return value
        logger.debug("data_transformer.status_discarded", kind=kind.value, status=status)
        return None

    @staticmethod
    def validate_required(draft: Draft) -> list[str]:
        """Problems that keep a draft from being persisted (empty when valid)."""
        kind = KIND_OF_DRAFT[draft.kind]
        missing = [
            field_label(name) for name in REQUIRED_FIELDS[kind]
            if getattr(draft, name) in (None, "")
        ]
        problems: list[str] = []
        if missing:
            problems.append(f"Missing required field(s): {', '.join(missing)}")

        positive = POSITIVE_FIELDS[kind]
        value = getattr(draft, positive)
        if value is not None and value <= 0:
            problems.append(f"{field_label(positive)} must be greater than zero (got {value})")
        return problems

    # ------------------------------------------------------------------
    # Cross-entity linking
    # ------------------------------------------------------------------

    @staticmethod
    def contract_snapshots(drafts: Iterable[Draft]) -> list[ContractSnapshot]:
        """Snapshots of the contracts extracted in this request (no ids yet)."""
        snapshots: list[ContractSnapshot] = []
        seen: set[str] = set()
        for draft in drafts:
            if isinstance(draft, DraftContract) and draft.draft_key not in seen:
                seen.add(draft.draft_key)
                snapshots.append(ContractSnapshot(
                    client_name=draft.client_name or "",
                    project_name=draft.project_name or "",
                    draft_key=draft.draft_key,
                ))
        return snapshots

    def link_references(
        self,
        drafts: Sequence[Draft],
        contracts: Sequence[ContractSnapshot],
    ) -> int:
        """
        Attach a tentative contract link to receivables and expenses.

        Receivables are matched by their contract reference, falling back
        to the client name; expenses only by their contract reference.
        References that are contract UUIDs are left for the bulk creator.
        Drafts already linked are left alone.

        Returns:
            Number of drafts linked
        """
        linked = 0
        if not contracts:
            return linked

        for draft in drafts:
            if isinstance(draft, DraftContract) or draft.cross_reference is not None:
                continue
            if draft.contract_reference and as_uuid(draft.contract_reference) is not None:
                continue

            references = [draft.contract_reference]
            if isinstance(draft, DraftReceivable) and draft.client_name != DEFAULT_CLIENT_NAME:
                references.append(draft.client_name)

            for reference in references:
                if not reference:
                    continue
                link = self.matcher.link(reference, contracts)
                if link is not None:
                    draft.cross_reference = link
                    linked += 1
                    break

        logger.debug("data_transformer.references_linked", linked=linked, contracts=len(contracts))
        return linked


def _summarize_validation_error(error: pydantic.ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(loc) for loc in detail.get("loc", ()) if loc != "kind")
        parts.append(f"{location}: {detail.get('msg')}" if location else str(detail.get("msg")))
    return "; ".join(parts)
