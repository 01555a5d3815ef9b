"""
Unit Tests for BulkEntityCreator
================================

Validation, contract linking, batch/row fallback and team scoping,
against the in-memory entity store from conftest.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from setup_assistant.db.repositories.entity_repository import EntityRepository
from setup_assistant.schemas.domain import EntityKind
from setup_assistant.schemas.drafts import ContractLink, DraftContract, DraftExpense, DraftReceivable
from setup_assistant.services.bulk_entity_creator import BulkEntityCreator
from setup_assistant.utils.errors import DatabaseError


@pytest.fixture
def creator(store, settings) -> BulkEntityCreator:
    return BulkEntityCreator(repository_factory=store, settings=settings)


def _contract(client="ACME", project="Sede", value=1000.0) -> DraftContract:
    return DraftContract(
        client_name=client, project_name=project, total_value=value,
        signed_date=date(2024, 1, 10), status="active",
    )


def _receivable(**overrides) -> DraftReceivable:
    values = {"client_name": "ACME", "amount": 100.0, "expected_date": date(2024, 8, 1), "status": "pending"}
    values.update(overrides)
    return DraftReceivable(**values)


def _expense(**overrides) -> DraftExpense:
    values = {"description": "Energia", "amount": 50.0, "due_date": date(2024, 8, 5), "status": "pending"}
    values.update(overrides)
    return DraftExpense(**values)


class TestCreate:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_large_upload_counts(self, creator, store, team_id) -> None:
        """37 contracts, 305 receivables and 131 expenses from one spreadsheet."""
        drafts = (
            [_contract(client=f"Cliente {i}", project=f"Projeto {i}") for i in range(37)]
            + [_receivable(client_name=f"Cliente {i % 37}") for i in range(305)]
            + [_expense(description=f"Despesa {i}") for i in range(131)]
        )

        result = await creator.create(drafts, team_id, source="planilha.xlsx")

        assert result.contracts_created == 37
        assert result.receivables_created == 305
        assert result.expenses_created == 131
        assert result.errors == []
        assert len(store.rows[EntityKind.RECEIVABLES]) == 305
        # One multi-row insert per kind
        assert sorted(kind.value for kind, _ in store.batch_calls) == ["contracts", "expenses", "receivables"]
        assert {(log["entity_type"], log["entity_count"]) for log in store.audit_logs} == {
            ("contract", 37), ("receivable", 305), ("expense", 131),
        }
        assert all(log["source"] == "planilha.xlsx" for log in store.audit_logs)

    @pytest.mark.asyncio
    async def test_rows_are_stamped_with_team(self, creator, store, team_id) -> None:
        await creator.create([_contract(), _expense()], team_id)

        assert all(row["team_id"] == team_id for kind in EntityKind for row in store.rows[kind])

    @pytest.mark.asyncio
    async def test_empty_input(self, creator, store, team_id) -> None:
        result = await creator.create([], team_id)

        assert result.total_created == 0
        assert store.audit_logs == []

    @pytest.mark.asyncio
    async def test_money_written_as_cents(self, creator, store, team_id) -> None:
        await creator.create([_contract(value=1234.5)], team_id)

        assert store.rows[EntityKind.CONTRACTS][0]["total_value"] == Decimal("1234.50")


class TestValidation:
    """Tests for business rules; failures are collected, never raised."""

    @pytest.mark.asyncio
    async def test_existing_contract_is_duplicate(self, creator, store, team_id) -> None:
        store.seed_contract(team_id, "ACME", "Sede")

        result = await creator.create([_contract(client="acme", project="SEDE")], team_id)

        assert result.contracts_created == 0
        assert "A contract with this client and project name already exists" in result.errors[0]

    @pytest.mark.asyncio
    async def test_other_teams_contracts_do_not_conflict(self, creator, store, team_id) -> None:
        store.seed_contract(uuid4(), "ACME", "Sede")

        result = await creator.create([_contract()], team_id)

        assert result.contracts_created == 1

    @pytest.mark.asyncio
    async def test_duplicate_within_upload(self, creator, team_id) -> None:
        result = await creator.create([_contract(), _contract()], team_id)

        assert result.contracts_created == 1
        assert "Duplicate contract" in result.errors[0]

    @pytest.mark.asyncio
    async def test_foreign_contract_id_rejected(self, creator, store, team_id) -> None:
        foreign_id = store.seed_contract(uuid4(), "Outro", "Time")

        result = await creator.create([_receivable(contract_reference=str(foreign_id))], team_id)

        assert result.receivables_created == 0
        assert "Contract not found or access denied" in result.errors[0]

    @pytest.mark.asyncio
    async def test_received_more_than_expected(self, creator, team_id) -> None:
        result = await creator.create([_receivable(received_amount=150.0)], team_id)

        assert "Received amount cannot exceed expected amount" in result.errors[0]

    @pytest.mark.asyncio
    async def test_paid_expense_without_paid_date(self, creator, team_id) -> None:
        result = await creator.create([_expense(status="paid", paid_amount=50.0)], team_id)

        assert "Paid expenses need a paid date and a paid amount" in result.errors[0]

    @pytest.mark.asyncio
    async def test_error_points_to_source_row(self, creator, team_id) -> None:
        draft = _expense(paid_amount=80.0)
        draft.source.sheet_name = "Despesas"
        draft.source.row_number = 9

        result = await creator.create([draft], team_id)

        assert result.errors == [
            "Expense Energia (50.0) (sheet 'Despesas', row 9): Paid amount cannot exceed total amount"
        ]
        assert result.errors_by_kind[EntityKind.EXPENSES] == result.errors

    @pytest.mark.asyncio
    async def test_invalid_entities_do_not_block_valid_ones(self, creator, team_id) -> None:
        result = await creator.create(
            [_expense(), _expense(amount=None), _receivable(), _receivable(amount=-1.0)],
            team_id,
        )

        assert result.expenses_created == 1
        assert result.receivables_created == 1
        assert len(result.errors) == 2


class TestLinking:
    """Tests for resolving contract ids."""

    @pytest.mark.asyncio
    async def test_explicit_contract_id_of_team(self, creator, store, team_id) -> None:
        contract_id = store.seed_contract(team_id, "ACME", "Sede")

        await creator.create([_expense(contract_reference=str(contract_id))], team_id)

        assert store.rows[EntityKind.EXPENSES][0]["contract_id"] == contract_id

    @pytest.mark.asyncio
    async def test_link_to_contract_created_in_same_upload(self, creator, store, team_id) -> None:
        contract = _contract()
        receivable = _receivable(cross_reference=ContractLink(
            reference="ACME - Sede", client_name="ACME", project_name="Sede",
            score=1.0, draft_key=contract.draft_key,
        ))

        await creator.create([receivable, contract], team_id)

        contract_id = store.rows[EntityKind.CONTRACTS][0]["id"]
        assert store.rows[EntityKind.RECEIVABLES][0]["contract_id"] == contract_id

    @pytest.mark.asyncio
    async def test_fuzzy_match_by_reference(self, creator, store, team_id) -> None:
        contract_id = store.seed_contract(team_id, "João Silva", "Casa de Praia")

        await creator.create([_expense(contract_reference="casa de praia")], team_id)

        assert store.rows[EntityKind.EXPENSES][0]["contract_id"] == contract_id

    @pytest.mark.asyncio
    async def test_unmatched_reference_persists_without_link(self, creator, store, team_id) -> None:
        store.seed_contract(team_id, "ACME", "Sede")

        result = await creator.create([_expense(contract_reference="Zeta Comércio")], team_id)

        assert result.expenses_created == 1
        assert store.rows[EntityKind.EXPENSES][0]["contract_id"] is None


class TestPersistenceFailures:
    """Tests for batch fallback and audit isolation."""

    @pytest.mark.asyncio
    async def test_failed_batch_retried_row_by_row(self, creator, store, team_id) -> None:
        store.reject = lambda kind, row: row.get("description") == "Ruim"

        result = await creator.create(
            [_expense(description="Luz"), _expense(description="Ruim"), _expense(description="Agua")],
            team_id,
        )

        assert result.expenses_created == 2
        assert [row["description"] for row in store.rows[EntityKind.EXPENSES]] == ["Luz", "Agua"]
        assert len(result.errors) == 1
        assert "Could not be saved: value too long" in result.errors[0]

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_batch(self, creator, store, team_id) -> None:
        store.fail_audit = True

        result = await creator.create([_contract()], team_id)

        assert result.contracts_created == 1
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_unreadable_contracts_raise(self, creator, store, team_id) -> None:
        store.fail_reads = True

        with pytest.raises(DatabaseError):
            await creator.create([_contract()], team_id)

    @pytest.mark.asyncio
    async def test_refused_connection_is_database_error(self, creator, store, team_id) -> None:
        store.fail_connect = True

        with pytest.raises(DatabaseError, match="Could not load the team's contracts") as exc_info:
            await creator.create([_contract()], team_id)

        assert isinstance(exc_info.value.__cause__, ConnectionRefusedError)


class TestToRow:
    """Tests for row building."""

    def test_contract_id_only_for_dependents(self) -> None:
        contract_id = uuid4()

        contract_row = BulkEntityCreator.to_row(_contract())
        expense_row = BulkEntityCreator.to_row(_expense(paid_amount=10.0), contract_id)

        assert "contract_id" not in contract_row
        assert expense_row["contract_id"] == contract_id
        assert expense_row["paid_amount"] == Decimal("10.00")
        assert "team_id" not in expense_row


def test_repository_stamps_its_own_team() -> None:
    """Whatever a row says, the bound team wins."""
    team_id = uuid4()
    repo = EntityRepository(MagicMock(), team_id)

    assert repo._stamp({"team_id": uuid4(), "amount": 1})["team_id"] == team_id


class TestEntityRepository:
    """Tests for the team-bound repository that need no database."""

    @pytest.mark.asyncio
    async def test_kind_helpers_delegate_to_insert_many(self) -> None:
        repo = EntityRepository(MagicMock(), uuid4())
        rows = [{"description": "Luz", "amount": Decimal("10.00")}]

        with patch.object(repo, "insert_many", AsyncMock(return_value=[uuid4()])) as insert_many:
            await repo.insert_expenses(rows)

        insert_many.assert_awaited_once_with(EntityKind.EXPENSES, rows)

    @pytest.mark.asyncio
    async def test_empty_batch_skips_the_session(self) -> None:
        session = MagicMock()
        repo = EntityRepository(session, uuid4())

        assert await repo.insert_contracts([]) == []
        session.execute.assert_not_called()
