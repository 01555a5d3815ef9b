"""
Entity Repository
=================

Data access layer for contracts, receivables, expenses and audit_logs,
plus the profession of the team.

The repository is bound to one team when it is created; every read is
filtered by that team and every insert has the team id stamped here,
whatever the row dict says. Callers never pass a team id per call.

Follows Repository Pattern: Abstracts database operations.
"""

from collections.abc import Callable, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, AsyncGenerator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from setup_assistant.db.connection import get_session
from setup_assistant.db.models import AuditLog, Base, Contract, Expense, Receivable, Team
from setup_assistant.schemas.domain import ContractSnapshot, EntityKind
from setup_assistant.utils.errors import DatabaseError
from setup_assistant.utils.logger import get_logger

logger = get_logger(__name__)

MODELS: dict[EntityKind, type[Base]] = {
    EntityKind.CONTRACTS: Contract,
    EntityKind.RECEIVABLES: Receivable,
    EntityKind.EXPENSES: Expense,
}


class EntityRepository:
    """
    Team-scoped repository for the financial entity tables.

    Usage:
        async with get_session() as session:
            repo = EntityRepository(session, team_id)
            ids = await repo.insert_contracts([{"client_name": "ACME", ...}])
    """

    def __init__(self, session: AsyncSession, team_id: UUID) -> None:
        """
        Initialize repository with async session.

        Args:
            session: SQLAlchemy async session
            team_id: Team every read and write is scoped to
        """
        self._session = session
        self._team_id = team_id

    @property
    def team_id(self) -> UUID:
        return self._team_id

    async def list_contracts(self) -> list[ContractSnapshot]:
        """Contracts of the team, oldest first, for linking and duplicate checks."""
        query = (
            select(Contract.id, Contract.client_name, Contract.project_name)
            .where(Contract.team_id == self._team_id)
            .order_by(Contract.created_at)
        )
        try:
            result = await self._session.execute(query)
        except SQLAlchemyError as e:
            raise DatabaseError(
                message="Failed to load contracts",
                details={"team_id": str(self._team_id), "error": str(e)},
            ) from e

        return [
            ContractSnapshot(contract_id=row.id, client_name=row.client_name, project_name=row.project_name)
            for row in result
        ]

    async def owned_contract_ids(self, ids: Iterable[UUID]) -> set[UUID]:
        """Subset of ``ids`` that are contracts of this team."""
        wanted = set(ids)
        if not wanted:
            return set()
        query = select(Contract.id).where(Contract.team_id == self._team_id, Contract.id.in_(wanted))
        try:
            result = await self._session.execute(query)
        except SQLAlchemyError as e:
            raise DatabaseError(
                message="Failed to check contract ownership",
                details={"team_id": str(self._team_id), "error": str(e)},
            ) from e
        return set(result.scalars().all())

    async def team_profession(self) -> str | None:
        """Profession stored on the team, or None (also for an unknown team)."""
        query = select(Team.profession).where(Team.id == self._team_id)
        try:
            result = await self._session.execute(query)
        except SQLAlchemyError as e:
            raise DatabaseError(
                message="Failed to load the team",
                details={"team_id": str(self._team_id), "error": str(e)},
            ) from e
        return result.scalar_one_or_none()

    async def insert_contracts(self, rows: list[dict[str, Any]]) -> list[UUID]:
        return await self.insert_many(EntityKind.CONTRACTS, rows)

    async def insert_receivables(self, rows: list[dict[str, Any]]) -> list[UUID]:
        return await self.insert_many(EntityKind.RECEIVABLES, rows)

    async def insert_expenses(self, rows: list[dict[str, Any]]) -> list[UUID]:
        return await self.insert_many(EntityKind.EXPENSES, rows)

    async def insert_many(self, kind: EntityKind, rows: list[dict[str, Any]]) -> list[UUID]:
        """
        Insert rows of one kind with a single multi-row INSERT … RETURNING id.

        Runs inside a savepoint so a failed batch leaves the session usable
        for per-row retries.

        Returns:
            Created ids, in input order

        Raises:
            DatabaseError: If the statement fails (nothing of the batch is kept)
        """
        if not rows:
            return []

        model = MODELS[kind]
        values = [self._stamp(row) for row in rows]
        query = insert(model).values(values).returning(model.id)

        try:
            async with self._session.begin_nested():
                result = await self._session.execute(query)
                ids = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseError(
                message=f"Batch insert of {kind.value} failed",
                details={"team_id": str(self._team_id), "rows": len(rows), "error": str(e)},
            ) from e

        logger.info("Batch created", kind=kind.value, count=len(ids), team_id=str(self._team_id))
        return ids

    async def insert_one(self, kind: EntityKind, row: dict[str, Any]) -> UUID:
        """
        Insert a single row inside its own savepoint.

        Raises:
            DatabaseError: If the row is rejected (constraint violation, bad value)
        """
        model = MODELS[kind]
        query = insert(model).values(self._stamp(row)).returning(model.id)

        try:
            async with self._session.begin_nested():
                result = await self._session.execute(query)
                entity_id = result.scalar_one()
        except SQLAlchemyError as e:
            raise DatabaseError(
                message=_short_db_error(e),
                details={"team_id": str(self._team_id), "kind": kind.value},
            ) from e

        logger.debug("Entity created", kind=kind.value, entity_id=str(entity_id))
        return entity_id

    async def add_audit_log(
        self,
        action: str,
        entity_type: str,
        entity_count: int,
        source: str | None = None,
        details: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> UUID:
        """Write one audit_logs row for the team."""
        query = (
            insert(AuditLog)
            .values(
                team_id=self._team_id,
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_count=entity_count,
                source=source,
                details=details,
            )
            .returning(AuditLog.id)
        )
        result = await self._session.execute(query)
        return result.scalar_one()

    def _stamp(self, row: dict[str, Any]) -> dict[str, Any]:
        return {**row, "team_id": self._team_id}


def _short_db_error(error: SQLAlchemyError) -> str:
    """First line of the driver message, without SQL and parameters."""
    original = getattr(error, "orig", None)
    message = str(original if original is not None else error)
    return message.strip().splitlines()[0] if message.strip() else type(error).__name__


RepositoryFactory = Callable[[UUID], AbstractAsyncContextManager[EntityRepository]]


@asynccontextmanager
async def open_entity_repository(team_id: UUID) -> AsyncGenerator[EntityRepository, None]:
    """Repository over a fresh session; commits when the block exits normally."""
    async with get_session() as session:
        yield EntityRepository(session, team_id)
