"""
Database Repositories
=====================

Data access layer following repository pattern.

Components:
    - EntityRepository: team-scoped reads/inserts for contracts,
      receivables, expenses and audit_logs
"""

from setup_assistant.db.repositories.entity_repository import (
    EntityRepository,
    RepositoryFactory,
    open_entity_repository,
)

__all__ = [
    "EntityRepository",
    "RepositoryFactory",
    "open_entity_repository",
]
