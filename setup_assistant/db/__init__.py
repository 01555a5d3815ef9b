"""
Database Package
================

Database models, connection management, and repositories.
"""

from setup_assistant.db.connection import (
    DatabaseManager,
    close_database,
    get_session,
    health_check,
    init_database,
)
from setup_assistant.db.models import (
    AuditLog,
    Base,
    Contract,
    Expense,
    Receivable,
    Team,
    TimestampMixin,
    UUIDMixin,
)

__all__ = [
    # Models
    "Base",
    "Contract",
    "Receivable",
    "Expense",
    "AuditLog",
    "Team",
    "UUIDMixin",
    "TimestampMixin",
    # Connection
    "DatabaseManager",
    "init_database",
    "close_database",
    "get_session",
    "health_check",
]
