"""
Test Configuration and Fixtures
================================

Shared pytest fixtures for setup-assistant tests.

Persistence is replaced by an in-memory store that behaves like the
team-scoped EntityRepository (team stamping, batch/row inserts, audit
rows) and can be told to fail batches, single rows, audit writes or the
connection itself.
"""

import io
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncGenerator
from uuid import UUID, uuid4

import openpyxl
import pytest

from setup_assistant.config.settings import Settings
from setup_assistant.schemas.domain import ContractSnapshot, DataRow, EntityKind, SegmentedTable, Sheet
from setup_assistant.services.ai.client import MockAIClient
from setup_assistant.utils.errors import DatabaseError


class FakeEntityRepository:
    """In-memory stand-in for EntityRepository, bound to one team."""

    def __init__(self, store: "FakeEntityStore", team_id: UUID) -> None:
        self._store = store
        self._team_id = team_id

    @property
    def team_id(self) -> UUID:
        return self._team_id

    async def team_profession(self) -> str | None:
        return self._store.professions.get(self._team_id)

    async def list_contracts(self) -> list[ContractSnapshot]:
        if self._store.fail_reads:
            raise DatabaseError("Failed to load contracts")
        return [
            ContractSnapshot(
                contract_id=row["id"],
                client_name=row["client_name"],
                project_name=row["project_name"],
            )
            for row in self._store.rows[EntityKind.CONTRACTS]
            if row["team_id"] == self._team_id
        ]

    async def owned_contract_ids(self, ids) -> set[UUID]:
        owned = {
            row["id"] for row in self._store.rows[EntityKind.CONTRACTS]
            if row["team_id"] == self._team_id
        }
        return set(ids) & owned

    async def insert_many(self, kind: EntityKind, rows: list[dict[str, Any]]) -> list[UUID]:
        self._store.batch_calls.append((kind, len(rows)))
        if kind in self._store.fail_batches or any(self._store.rejects(kind, row) for row in rows):
            raise DatabaseError(
                message=f"Batch insert of {kind.value} failed",
                details={"error": "value rejected"},
            )
        return [self._store.add(kind, row, self._team_id) for row in rows]

    async def insert_one(self, kind: EntityKind, row: dict[str, Any]) -> UUID:
        if self._store.rejects(kind, row):
            raise DatabaseError("value too long for type character varying(255)")
        return self._store.add(kind, row, self._team_id)

    async def add_audit_log(self, action, entity_type, entity_count, source=None, details=None, user_id=None) -> UUID:
        if self._store.fail_audit:
            raise RuntimeError("audit table unavailable")
        entry = {
            "id": uuid4(),
            "team_id": self._team_id,
            "action": action,
            "entity_type": entity_type,
            "entity_count": entity_count,
            "source": source,
            "details": details,
            "user_id": user_id,
        }
        self._store.audit_logs.append(entry)
        return entry["id"]


class FakeEntityStore:
    """
    Shared in-memory tables; calling the store opens a team repository,
    so it can be passed wherever a RepositoryFactory is expected.
    """

    def __init__(self) -> None:
        self.rows: dict[EntityKind, list[dict[str, Any]]] = {kind: [] for kind in EntityKind}
        self.audit_logs: list[dict[str, Any]] = []
        self.batch_calls: list[tuple[EntityKind, int]] = []
        self.fail_batches: set[EntityKind] = set()
        self.reject: Callable[[EntityKind, dict[str, Any]], bool] | None = None
        self.fail_audit = False
        self.fail_reads = False
        self.fail_connect = False
        self.professions: dict[UUID, str] = {}

    def rejects(self, kind: EntityKind, row: dict[str, Any]) -> bool:
        return self.reject is not None and self.reject(kind, row)

    def add(self, kind: EntityKind, row: dict[str, Any], team_id: UUID) -> UUID:
        entity_id = uuid4()
        self.rows[kind].append({**row, "id": entity_id, "team_id": team_id})
        return entity_id

    def seed_contract(self, team_id: UUID, client_name: str, project_name: str) -> UUID:
        return self.add(
            EntityKind.CONTRACTS,
            {"client_name": client_name, "project_name": project_name},
            team_id,
        )

    @asynccontextmanager
    async def __call__(self, team_id: UUID) -> AsyncGenerator[FakeEntityRepository, None]:
        if self.fail_connect:
            raise ConnectionRefusedError(111, "Connect call failed ('127.0.0.1', 5432)")
        yield FakeEntityRepository(self, team_id)


@pytest.fixture
def store() -> FakeEntityStore:
    """Empty in-memory entity store."""
    return FakeEntityStore()


@pytest.fixture
def team_id() -> UUID:
    return uuid4()


@pytest.fixture
def settings() -> Settings:
    """Settings with instant retries and a known deadline."""
    return Settings(
        ai_api_key="test-key",
        ai_backoff_initial_seconds=0.0,
        ai_backoff_max_seconds=0.0,
        request_deadline_seconds=10.0,
        redis_password="test",
    )


@pytest.fixture
def today() -> date:
    """Fixed reference date for status inference."""
    return date(2024, 6, 1)


@pytest.fixture
def mock_ai_client() -> Callable[..., MockAIClient]:
    """Factory for scripted AI clients."""

    def _make(*responses: str | Exception, default: str = "{}") -> MockAIClient:
        return MockAIClient(responses=list(responses), default=default)

    return _make


def build_xlsx(sheets: dict[str, list[list[Any]]]) -> bytes:
    """Build an .xlsx file in memory, one worksheet per entry."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def contracts_sheet_rows() -> list[list[Any]]:
    """A small contracts sheet: two valid rows and one without a total value."""
    return [
        ["Cliente", "Projeto", "Valor", "Data de Assinatura"],
        ["ACME Ltda", "Sede Nova", "R$ 1.234,56", "15/09/2024"],
        ["João Silva", "Casa de Praia", "R$ 50", "01/02/2024"],
        ["Maria Souza", "Reforma Loja", None, "01/03/2024"],
    ]


@pytest.fixture
def contracts_xlsx(contracts_sheet_rows) -> bytes:
    return build_xlsx({"Contratos": contracts_sheet_rows})


CONTRACTS_CLASSIFICATION = (
    '{"entityKinds": ["contracts"], "columnMapping": {'
    '"Cliente": {"field": "clientName", "transform": "text"}, '
    '"Projeto": {"field": "projectName", "transform": "text"}, '
    '"Valor": {"field": "totalValue", "transform": "currency"}, '
    '"Data de Assinatura": {"field": "signedDate", "transform": "date"}}, '
    '"reasoning": "Contract list"}'
)


@pytest.fixture
def contracts_classification_response() -> str:
    """AI answer classifying the contracts sheet."""
    return CONTRACTS_CLASSIFICATION


def make_table(headers: list[str], rows: list[list[Any]], sheet_name: str = "Planilha") -> SegmentedTable:
    """SegmentedTable with a header on sheet row 1 and data from row 2."""
    return SegmentedTable(
        sheet_name=sheet_name,
        name=sheet_name,
        table_index=1,
        row_start=0,
        row_end=len(rows) + 1,
        col_start=0,
        col_end=len(headers),
        headers=headers,
        data_rows=[DataRow(row_number=i + 2, cells=list(row)) for i, row in enumerate(rows)],
        has_header=True,
        header_row_index=0,
    )


def make_sheet(name: str, rows: list[list[Any]]) -> Sheet:
    return Sheet(name=name, rows=[list(row) for row in rows])
