"""
Draft Entity Schemas
====================

Extracted-but-not-persisted contracts, receivables and expenses.

Drafts form a tagged union on ``kind``. Values arriving from the AI
service use camelCase names and loose formats ("R$ 1.234,56",
"15/09/2024"); field types coerce them so every draft holds floats and
dates regardless of the path it came from. Required fields are NOT
enforced here: a draft may be incomplete, and the transformer and the
bulk creator report what is missing.
"""

from datetime import date
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from setup_assistant.schemas.domain import EntityKind
from setup_assistant.utils.currency import parse_currency
from setup_assistant.utils.dates import normalize_date
from setup_assistant.utils.text import fold


def _money(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return parse_currency(value)


def _day(value: Any) -> date | None:
    if value is None or value == "":
        return None
    return normalize_date(value)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


Money = Annotated[float | None, BeforeValidator(_money)]
Day = Annotated[date | None, BeforeValidator(_day)]
Text = Annotated[str | None, BeforeValidator(_text)]


class SourceLocation(BaseModel):
    """Where a draft came from, for error attribution."""

    file_name: str | None = None
    sheet_name: str | None = None
    row_number: int | None = None

    def describe(self) -> str:
        parts = []
        if self.sheet_name:
            parts.append(f"sheet '{self.sheet_name}'")
        if self.row_number is not None:
            parts.append(f"row {self.row_number}")
        if not parts and self.file_name:
            parts.append(self.file_name)
        return ", ".join(parts) or "document"


class ContractLink(BaseModel):
    """
    Tentative link from a receivable/expense to a contract.

    Either ``contract_id`` (already persisted contract of the team) or
    ``draft_key`` (contract extracted in this same request) is set.
    """

    reference: str
    client_name: str
    project_name: str
    score: float = Field(ge=0.0, le=1.0)
    contract_id: UUID | None = None
    draft_key: str | None = None


class _DraftBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )

    source: SourceLocation = Field(default_factory=SourceLocation)


class DraftContract(_DraftBase):
    """Draft engagement with a client."""

    kind: Literal["contract"] = "contract"
    client_name: Text = None
    project_name: Text = None
    total_value: Money = None
    signed_date: Day = None
    status: Text = None
    description: Text = None
    category: Text = None
    notes: Text = None

    @property
    def draft_key(self) -> str:
        """Identity used to link drafts to this contract before it has an id."""
        return contract_key(self.client_name, self.project_name)

    def describe(self) -> str:
        return f"{self.client_name or '?'} - {self.project_name or '?'}"


class DraftReceivable(_DraftBase):
    """Draft amount owed to the team."""

    kind: Literal["receivable"] = "receivable"
    contract_reference: Text = Field(default=None, alias="contractId")
    client_name: Text = None
    expected_date: Day = None
    amount: Money = None
    status: Text = None
    received_date: Day = None
    received_amount: Money = None
    description: Text = None
    category: Text = None
    invoice_number: Text = None
    cross_reference: ContractLink | None = None

    def describe(self) -> str:
        when = self.expected_date.isoformat() if self.expected_date else "no date"
        return f"{self.client_name or self.description or '?'} {self.amount or '?'} ({when})"


class DraftExpense(_DraftBase):
    """Draft cost incurred by the team."""

    kind: Literal["expense"] = "expense"
    description: Text = None
    amount: Money = None
    due_date: Day = None
    category: Text = None
    status: Text = None
    paid_date: Day = None
    paid_amount: Money = None
    vendor: Text = None
    invoice_number: Text = None
    contract_reference: Text = Field(default=None, alias="contractId")
    notes: Text = None
    cross_reference: ContractLink | None = None

    def describe(self) -> str:
        return f"{self.description or '?'} ({self.amount or '?'})"


DraftEntity = Annotated[
    Union[DraftContract, DraftReceivable, DraftExpense],
    Field(discriminator="kind"),
]

_draft_adapter: TypeAdapter[DraftEntity] = TypeAdapter(DraftEntity)

DRAFT_TYPES: dict[EntityKind, type[DraftContract | DraftReceivable | DraftExpense]] = {
    EntityKind.CONTRACTS: DraftContract,
    EntityKind.RECEIVABLES: DraftReceivable,
    EntityKind.EXPENSES: DraftExpense,
}

KIND_OF_DRAFT: dict[str, EntityKind] = {
    "contract": EntityKind.CONTRACTS,
    "receivable": EntityKind.RECEIVABLES,
    "expense": EntityKind.EXPENSES,
}


def parse_draft(
    kind: EntityKind,
    payload: dict[str, Any],
    source: SourceLocation | None = None,
) -> DraftContract | DraftReceivable | DraftExpense:
    """
    Validate a loose payload into the draft type for ``kind``.

    Raises:
        pydantic.ValidationError: when a field cannot be coerced
    """
    data = {**payload, "kind": kind.singular}
    if source is not None:
        data["source"] = source
    return _draft_adapter.validate_python(data)


def contract_key(client_name: str | None, project_name: str | None) -> str:
    """Case/accent-insensitive identity of a contract within one team."""
    return f"{fold(client_name or '')}|{fold(project_name or '')}"


_INTERNAL_FIELDS = frozenset({"kind", "source", "cross_reference"})


def entity_field_aliases(kind: EntityKind) -> dict[str, str]:
    """camelCase name used by the AI service → draft field name, for one kind."""
    model = DRAFT_TYPES[kind]
    return {
        (info.alias or to_camel(name)): name
        for name, info in model.model_fields.items()
        if name not in _INTERNAL_FIELDS
    }
