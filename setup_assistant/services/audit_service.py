"""
Audit Service
=============

Write-through audit trail: one ``audit_logs`` row per batch operation,
written after the batch is committed and in its own session. A failure
here is logged and swallowed; it never fails or rolls back the batch it
describes.
"""

from typing import Any
from uuid import UUID

from setup_assistant.db.repositories import RepositoryFactory, open_entity_repository
from setup_assistant.schemas.domain import EntityKind
from setup_assistant.utils.logger import get_logger

logger = get_logger(__name__)

BULK_CREATE_ACTION = "bulk_create"


class AuditService:
    """Records batch operations of the intake pipeline."""

    def __init__(self, repository_factory: RepositoryFactory = open_entity_repository) -> None:
        self._repository_factory = repository_factory

    async def log_batch(
        self,
        team_id: UUID,
        kind: EntityKind,
        created_ids: list[UUID],
        source: str | None = None,
        error_count: int = 0,
        user_id: str | None = None,
    ) -> bool:
        """
        Record one batch insert.

        Returns:
            True when the entry was written, False when it was dropped
        """
        details: dict[str, Any] = {
            "ids": [str(entity_id) for entity_id in created_ids],
            "errors": error_count,
            "origin": "setup_assistant",
        }
        try:
            async with self._repository_factory(team_id) as repo:
                await repo.add_audit_log(
                    action=BULK_CREATE_ACTION,
                    entity_type=kind.singular,
                    entity_count=len(created_ids),
                    source=source,
                    details=details,
                    user_id=user_id,
                )
        except Exception as e:
            logger.warning(
                "audit_service.write_failed",
                team_id=str(team_id),
                entity_type=kind.singular,
                count=len(created_ids),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.debug("audit_service.logged", entity_type=kind.singular, count=len(created_ids))
        return True
