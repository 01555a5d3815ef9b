"""
Progress Tracking
=================

Redis-backed progress store for multi-file uploads, keyed by session id.

Each session holds one JSON ``ProgressSnapshot`` (latest event, finished
file results, done flag) written with SETEX, so an abandoned session
disappears after ``progress_ttl_seconds``. Clients poll it while the
upload request is still running.
"""

from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as aioredis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from setup_assistant.config.settings import Settings, get_settings
from setup_assistant.schemas.results import MultiFileResult, ProgressEvent, ProgressSnapshot
from setup_assistant.utils.logger import get_logger

logger = get_logger(__name__)

# =============================================================================
# Redis Key Constants
# =============================================================================

PROGRESS_KEY_PREFIX = "setup-assistant:progress:"


def _get_progress_key(session_id: str) -> str:
    """Get Redis key for a session."""
    return f"{PROGRESS_KEY_PREFIX}{session_id}"


class ProgressService:
    """
    Session progress store.

    Writes are best effort: a Redis outage is logged and the upload goes
    on without progress reporting.

    Example:
        progress = ProgressService(redis_client, ttl_seconds=300)
        await progress.publish(session_id, event)
        snapshot = await progress.get(session_id)
    """

    def __init__(self, redis: aioredis.Redis, ttl_seconds: int = 300) -> None:
        self._redis = redis
        self._ttl = ttl_seconds

    async def publish(self, session_id: str, event: ProgressEvent) -> ProgressSnapshot:
        """Record the latest event; finished files are appended to the snapshot."""
        snapshot = await self.get(session_id) or ProgressSnapshot(session_id=session_id)
        snapshot.latest = event
        if event.result is not None and event.status != "processing":
            snapshot.completed_files.append(event.result)
        snapshot.updated_at = datetime.now(timezone.utc)
        await self._save(snapshot)
        return snapshot

    async def complete(self, session_id: str, result: MultiFileResult) -> ProgressSnapshot:
        """Mark the session done and attach the batch summary."""
        snapshot = await self.get(session_id) or ProgressSnapshot(session_id=session_id)
        snapshot.done = True
        snapshot.summary = result
        snapshot.completed_files = list(result.file_results)
        snapshot.updated_at = datetime.now(timezone.utc)
        await self._save(snapshot)
        logger.info(
            "progress.completed",
            session_id=session_id,
            successful_files=result.successful_files,
            failed_files=result.failed_files,
        )
        return snapshot

    async def get(self, session_id: str) -> Optional[ProgressSnapshot]:
        """Current snapshot, or None when unknown or expired."""
        try:
            raw = await self._redis.get(_get_progress_key(session_id))
        except RedisError as e:
            logger.warning("progress.read_failed", session_id=session_id, error=str(e))
            return None
        if raw is None:
            return None
        try:
            return ProgressSnapshot.from_json(raw)
        except PydanticValidationError as e:
            logger.warning("progress.corrupt_snapshot", session_id=session_id, error=str(e))
            return None

    async def clear(self, session_id: str) -> None:
        try:
            await self._redis.delete(_get_progress_key(session_id))
        except RedisError as e:
            logger.warning("progress.clear_failed", session_id=session_id, error=str(e))

    async def _save(self, snapshot: ProgressSnapshot) -> None:
        try:
            await self._redis.setex(
                _get_progress_key(snapshot.session_id),
                self._ttl,
                snapshot.to_json(),
            )
        except RedisError as e:
            logger.warning("progress.write_failed", session_id=snapshot.session_id, error=str(e))


# =============================================================================
# Client lifecycle
# =============================================================================

_redis_client: Optional[aioredis.Redis] = None
_progress_service: Optional[ProgressService] = None


def get_redis_client(settings: Optional[Settings] = None) -> aioredis.Redis:
    """Shared Redis client (connections are opened lazily by the pool)."""
    global _redis_client
    if _redis_client is None:
        settings = settings or get_settings()
        _redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


def get_progress_service() -> ProgressService:
    """Get or create the global progress service (FastAPI dependency)."""
    global _progress_service
    if _progress_service is None:
        settings = get_settings()
        _progress_service = ProgressService(get_redis_client(settings), settings.progress_ttl_seconds)
    return _progress_service


async def close_redis() -> None:
    """Close the shared Redis client. Called during application shutdown."""
    global _redis_client, _progress_service
    if _redis_client is not None:
        await _redis_client.aclose()
    _redis_client = None
    _progress_service = None
