"""
SQLAlchemy ORM Models
=====================

Persisted financial entities, the audit trail and the owning teams.

Every table carries ``team_id``: it is stamped once at insert by the
team-bound repository and never updated by the pipeline. Receivables and
expenses may point at a contract; deleting the contract keeps them with
a null link.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UUIDMixin:
    """Mixin for UUID primary key."""

    id: Mapped["UUID"] = mapped_column(
        primary_key=True,
        server_default=func.gen_random_uuid(),
        nullable=False,
    )


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class TeamScopedMixin:
    """Mixin for the owning team (tenant)."""

    team_id: Mapped[UUID] = mapped_column(nullable=False, index=True)


class Contract(Base, UUIDMixin, TimestampMixin, TeamScopedMixin):
    """
    Engagement closed with a client.

    Attributes:
        client_name: Client the contract is with
        project_name: Project/engagement name
        total_value: Agreed value
        signed_date: Signature date
        status: active, completed, paused or cancelled
    """

    __tablename__ = "contracts"
    __table_args__ = (Index("ix_contracts_team_client_project", "team_id", "client_name", "project_name"),)

    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    total_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    signed_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="active")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Contract(id={self.id}, client={self.client_name}, project={self.project_name})>"


class Receivable(Base, UUIDMixin, TimestampMixin, TeamScopedMixin):
    """Amount owed to the team, optionally tied to a contract."""

    __tablename__ = "receivables"

    contract_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("contracts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    client_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    expected_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="pending")
    received_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    received_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<Receivable(id={self.id}, amount={self.amount}, expected={self.expected_date})>"


class Expense(Base, UUIDMixin, TimestampMixin, TeamScopedMixin):
    """Cost incurred by the team, optionally tied to a contract."""

    __tablename__ = "expenses"

    contract_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("contracts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="pending")
    paid_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    paid_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    vendor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Expense(id={self.id}, description={self.description[:30]!r}, amount={self.amount})>"


class AuditLog(Base, UUIDMixin, TeamScopedMixin):
    """
    One entry per batch operation (never per row).

    Attributes:
        action: What happened (e.g. "bulk_create")
        entity_type: contract, receivable or expense
        entity_count: Rows created by the batch
        source: Where the batch came from (file name)
        details: Created ids and error count
    """

    __tablename__ = "audit_logs"

    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    source: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuditLog(action={self.action}, entity_type={self.entity_type}, count={self.entity_count})>"


class Team(Base, UUIDMixin, TimestampMixin):
    """
    Tenant that owns the financial entities. Read-only for the pipeline.

    Attributes:
        name: Display name
        profession: Trade of the team (``arquitetura``, ``medicina``...)
    """

    __tablename__ = "teams"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    profession: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name={self.name!r}, profession={self.profession})>"
