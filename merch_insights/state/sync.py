"""
Remote State Sync

Pushes the serialized engine state to Redis and restores it on startup.

Features:
- Debounced single-flight pushes: a new request replaces a pending payload
- Bounded retries with exponential backoff
- Failures reported through status and SyncError, never rolled back locally
"""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

import structlog
from pydantic import BaseModel
from redis.asyncio import ConnectionPool, Redis

from merch_insights.config import get_settings
from merch_insights.errors import SyncError
from merch_insights.state.serialization import StateSnapshot, decode_snapshot

logger = structlog.get_logger(__name__)
settings = get_settings()

# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis(url: Optional[str] = None) -> Redis:
    """Initialize Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    _redis_pool = ConnectionPool.from_url(
        url or settings.redis.get_url(),
        max_connections=settings.redis.max_connections,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=True,
    )
    client = Redis(connection_pool=_redis_pool)

    try:
        await client.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error("Redis connection failed", error=str(e))
        await _redis_pool.disconnect()
        _redis_pool = None
        raise

    _redis_client = client
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None

    logger.info("Redis connection closed")


class SyncState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SYNCING = "syncing"
    FAILED = "failed"
    DISABLED = "disabled"


class SyncStatus(BaseModel):
    state: SyncState
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    pushes: int = 0
    failures: int = 0


class RemoteStateSync:
    """
    Debounced writer of the state blob.

    Example:
        sync = RemoteStateSync(redis, key="merch_insights:state")
        sync.request(encode_snapshot(snapshot))
        await sync.flush()
    """

    def __init__(
        self,
        client: Optional[Redis],
        key: str = "merch_insights:state",
        debounce_seconds: float = 2.0,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 1.0,
    ):
        self.client = client
        self.key = key
        self.debounce_seconds = debounce_seconds
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff_seconds = retry_backoff_seconds

        # payloads are (sequence, blob); a push never overwrites a newer one
        self._seq = 0
        self._pushed_seq = 0
        self._pending: Optional[Tuple[int, str]] = None
        self._failed_payload: Optional[Tuple[int, str]] = None
        self._task: Optional[asyncio.Task] = None
        self._push_lock = asyncio.Lock()
        self._status = SyncStatus(state=SyncState.IDLE if client is not None else SyncState.DISABLED)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    @property
    def status(self) -> SyncStatus:
        return self._status.model_copy()

    def _set_state(self, state: SyncState) -> None:
        self._status = self._status.model_copy(update={"state": state})

    def _stamp(self, payload: str) -> Tuple[int, str]:
        self._seq += 1
        return self._seq, payload

    def request(self, payload: str) -> None:
        """Schedule a push; supersedes any payload still waiting"""
        if not self.enabled:
            return
        self._pending = self._stamp(payload)
        self._set_state(SyncState.PENDING)
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while self._pending is not None:
            if self.debounce_seconds > 0:
                await asyncio.sleep(self.debounce_seconds)
            stamped, self._pending = self._pending, None
            if stamped is not None:
                await self._push(stamped)

    async def _push(self, stamped: Tuple[int, str]) -> bool:
        seq, payload = stamped
        async with self._push_lock:
            if seq <= self._pushed_seq:
                logger.debug("Skipping superseded state push", seq=seq, pushed_seq=self._pushed_seq)
                return True
            self._set_state(SyncState.SYNCING)
            for attempt in range(1, self.retry_attempts + 1):
                try:
                    await self.client.set(self.key, payload)
                except Exception as e:
                    self._status = self._status.model_copy(update={
                        "last_error": str(e),
                        "last_error_at": datetime.utcnow(),
                        "failures": self._status.failures + 1,
                    })
                    logger.warning(
                        "State push failed",
                        attempt=attempt,
                        max_attempts=self.retry_attempts,
                        error=str(e),
                    )
                    if attempt < self.retry_attempts:
                        await asyncio.sleep(self.retry_backoff_seconds * 2 ** (attempt - 1))
                    continue

                self._pushed_seq = seq
                self._failed_payload = None
                self._status = self._status.model_copy(update={
                    "state": SyncState.PENDING if self._pending is not None else SyncState.IDLE,
                    "last_success_at": datetime.utcnow(),
                    "last_error": None,
                    "pushes": self._status.pushes + 1,
                })
                logger.info("State pushed", key=self.key, bytes=len(payload))
                return True

            self._failed_payload = stamped
            self._set_state(SyncState.FAILED)
            logger.error("State push gave up", key=self.key, error=self._status.last_error)
            return False

    async def flush(self) -> None:
        """Wait for any scheduled push to finish"""
        if self._task is not None and not self._task.done():
            await self._task

    async def retry(self, payload: Optional[str] = None) -> SyncStatus:
        """
        Push ``payload``, or else the latest pending or failed payload, now.

        Raises:
            SyncError: when the push fails again
        """
        if not self.enabled:
            raise SyncError("Remote sync is not configured")

        if payload is not None:
            stamped = self._stamp(payload)
        else:
            stamped = self._pending or self._failed_payload
        if stamped is None:
            return self.status

        self._pending = None
        if not await self._push(stamped):
            raise SyncError("State push failed", details={"error": self._status.last_error})
        return self.status

    async def restore(self) -> Optional[StateSnapshot]:
        """
        Load the remote state blob.

        Returns None when nothing has been stored yet.

        Raises:
            SyncError: when the remote store is unreachable or the blob is invalid
        """
        if not self.enabled:
            return None
        try:
            raw = await self.client.get(self.key)
        except Exception as e:
            self._status = self._status.model_copy(update={
                "last_error": str(e),
                "last_error_at": datetime.utcnow(),
            })
            logger.error("State restore failed", key=self.key, error=str(e))
            raise SyncError("Could not read remote state", details={"error": str(e)}) from e

        if raw is None:
            logger.info("No remote state to restore", key=self.key)
            return None

        snapshot = decode_snapshot(raw)
        logger.info("Remote state restored", key=self.key, saved_at=snapshot.saved_at)
        return snapshot

    async def close(self) -> None:
        await self.flush()
