"""Progress and completion persistence.

``ProgressStore`` is the only path that writes progress or completion fields.
Two backends:

- CassandraProgressStore: lightweight transactions. A merge reads the row at
  SERIAL consistency, computes the merged values, and writes them with
  ``INSERT ... IF NOT EXISTS`` (first event) or ``UPDATE ... IF version = ?``.
  A not-applied write means another event landed in between; the loop re-reads
  and retries. No write ever overwrites a row it did not read.
- InMemoryProgressStore: per-key asyncio.Lock around read-merge-write. Used
  for local development and tests.
"""

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

import structlog
from cassandra import (
    ConsistencyLevel,
    OperationTimedOut,
    ReadFailure,
    ReadTimeout,
    Unavailable,
    WriteFailure,
    WriteTimeout,
)
from cassandra.cluster import NoHostAvailable

from .errors import StoreUnavailableError
from .merge import merge_progress_values, validate_user_id, validate_video_id
from .models import CompletionRecord, ProgressEvent, ProgressRecord, dump_snapshot


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

# Driver errors that mean "try again later", never "bad request"
TRANSIENT_DRIVER_ERRORS = (
    NoHostAvailable,
    OperationTimedOut,
    Unavailable,
    ReadTimeout,
    WriteTimeout,
    ReadFailure,
    WriteFailure,
)


class ProgressStore(Protocol):
    """Storage contract for progress and completion records."""

    async def merge_progress(
        self, user_id: int, video_id: str, incoming: ProgressEvent
    ) -> ProgressRecord:
        """Atomically merge one event into the (user, video) record."""
        ...

    async def get_progress(self, user_id: int, video_id: str) -> ProgressRecord | None:
        """Get one progress record."""
        ...

    async def get_user_progress(self, user_id: int) -> list[ProgressRecord]:
        """Get all progress records of a user."""
        ...

    async def create_completion(self, record: CompletionRecord) -> bool:
        """Insert a completion; False when the user already has one."""
        ...

    async def get_completion(self, user_id: int) -> CompletionRecord | None:
        """Get the user's completion record."""
        ...

    async def mark_certificate_generated(
        self,
        user_id: int,
        certificate_id: str | None,
        certificate_url: str | None,
    ) -> bool:
        """Flip certificate_generated to True once; False if already set."""
        ...


# ==============================================================================
# Cassandra Backend
# ==============================================================================


class CassandraProgressStore:
    """Progress store backed by Cassandra lightweight transactions."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        max_attempts: int = 8,
        write_timeout: float = 5.0,
    ):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self.max_attempts = max_attempts
        self.write_timeout = write_timeout
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Video progress
        self._get_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.video_progress
            WHERE user_id = ? AND video_id = ?
        """)
        # Linearizable read: sees every applied LWT
        self._get_progress.consistency_level = ConsistencyLevel.LOCAL_SERIAL

        self._get_user_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.video_progress
            WHERE user_id = ?
        """)

        self._insert_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.video_progress
            (user_id, video_id, progress, watched_percentage, completed,
             completed_at, updated_at, is_rewatching, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_progress = self.session.prepare(f"""
            UPDATE {self.keyspace}.video_progress
            SET progress = ?, watched_percentage = ?, completed = ?,
                completed_at = ?, updated_at = ?, is_rewatching = ?, version = ?
            WHERE user_id = ? AND video_id = ?
            IF version = ?
        """)

        # Completions
        self._get_completion = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.microlearning_completions
            WHERE user_id = ?
        """)
        self._get_completion.consistency_level = ConsistencyLevel.LOCAL_SERIAL

        self._insert_completion = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.microlearning_completions
            (user_id, completed_at, video_progress, confirmed,
             certificate_generated, certificate_id, certificate_url,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._mark_certificate = self.session.prepare(f"""
            UPDATE {self.keyspace}.microlearning_completions
            SET certificate_generated = true, certificate_id = ?,
                certificate_url = ?, updated_at = ?
            WHERE user_id = ?
            IF certificate_generated = false
        """)

    # ==========================================================================
    # Progress Operations
    # ==========================================================================

    async def merge_progress(
        self, user_id: int, video_id: str, incoming: ProgressEvent
    ) -> ProgressRecord:
        """Merge one event with a compare-and-set loop.

        Raises:
            InvalidArgumentError: Malformed identifiers (nothing written)
            StoreUnavailableError: Cassandra unavailable, timed out, or the
                key stayed contended for every attempt
        """
        validate_user_id(user_id)
        validate_video_id(video_id)

        try:
            return await asyncio.wait_for(
                self._merge_with_retries(user_id, video_id, incoming),
                timeout=self.write_timeout,
            )
        except TimeoutError as e:
            logger.warning(
                "progress_merge_timeout",
                user_id=user_id,
                video_id=video_id,
                timeout=self.write_timeout,
            )
            raise StoreUnavailableError("Progress write timed out") from e
        except TRANSIENT_DRIVER_ERRORS as e:
            logger.warning(
                "progress_store_unavailable",
                user_id=user_id,
                video_id=video_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreUnavailableError from e

    async def _merge_with_retries(
        self, user_id: int, video_id: str, incoming: ProgressEvent
    ) -> ProgressRecord:
        for attempt in range(1, self.max_attempts + 1):
            current = await self.get_progress(user_id, video_id)
            base = current or ProgressRecord.empty(user_id, video_id)
            merged = merge_progress_values(base, incoming, datetime.now(UTC))

            if current is None:
                applied = await self._try_insert(merged)
            else:
                applied = await self._try_update(merged, expected_version=base.version)

            if applied:
                logger.debug(
                    "progress_merged",
                    user_id=user_id,
                    video_id=video_id,
                    progress=merged.progress,
                    completed=merged.completed,
                    attempt=attempt,
                )
                return merged

            logger.debug(
                "progress_merge_conflict",
                user_id=user_id,
                video_id=video_id,
                attempt=attempt,
            )

        logger.warning(
            "progress_merge_contended",
            user_id=user_id,
            video_id=video_id,
            attempts=self.max_attempts,
        )
        raise StoreUnavailableError("Progress record is busy, retry the request")

    async def _try_insert(self, record: ProgressRecord) -> bool:
        result = await self.session.aexecute(
            self._insert_progress,
            [
                record.user_id,
                record.video_id,
                record.progress,
                record.watched_percentage,
                record.completed,
                record.completed_at,
                record.updated_at,
                record.is_rewatching,
                record.version,
            ],
        )
        return bool(result.was_applied)

    async def _try_update(self, record: ProgressRecord, expected_version: int) -> bool:
        result = await self.session.aexecute(
            self._update_progress,
            [
                record.progress,
                record.watched_percentage,
                record.completed,
                record.completed_at,
                record.updated_at,
                record.is_rewatching,
                record.version,
                record.user_id,
                record.video_id,
                expected_version,
            ],
        )
        return bool(result.was_applied)

    async def get_progress(self, user_id: int, video_id: str) -> ProgressRecord | None:
        """Get one progress record (linearizable read)."""
        try:
            result = await self.session.aexecute(
                self._get_progress, [user_id, video_id]
            )
        except TRANSIENT_DRIVER_ERRORS as e:
            raise StoreUnavailableError from e
        row = result.one()
        return ProgressRecord.from_row(row) if row else None

    async def get_user_progress(self, user_id: int) -> list[ProgressRecord]:
        """Get all progress records of a user."""
        try:
            rows = await self.session.aexecute(self._get_user_progress, [user_id])
        except TRANSIENT_DRIVER_ERRORS as e:
            raise StoreUnavailableError from e
        return [ProgressRecord.from_row(row) for row in rows]

    # ==========================================================================
    # Completion Operations
    # ==========================================================================

    async def create_completion(self, record: CompletionRecord) -> bool:
        """Insert the completion row; the IF NOT EXISTS makes it unique per user."""
        try:
            result = await self.session.aexecute(
                self._insert_completion,
                [
                    record.user_id,
                    record.completed_at,
                    dump_snapshot(record.video_progress),
                    record.confirmed,
                    record.certificate_generated,
                    record.certificate_id,
                    record.certificate_url,
                    record.created_at,
                    record.updated_at,
                ],
            )
        except TRANSIENT_DRIVER_ERRORS as e:
            logger.warning(
                "completion_store_unavailable", user_id=record.user_id, error=str(e)
            )
            raise StoreUnavailableError from e
        return bool(result.was_applied)

    async def get_completion(self, user_id: int) -> CompletionRecord | None:
        """Get the user's completion record."""
        try:
            result = await self.session.aexecute(self._get_completion, [user_id])
        except TRANSIENT_DRIVER_ERRORS as e:
            raise StoreUnavailableError from e
        row = result.one()
        return CompletionRecord.from_row(row) if row else None

    async def mark_certificate_generated(
        self,
        user_id: int,
        certificate_id: str | None,
        certificate_url: str | None,
    ) -> bool:
        """Record the issued certificate once."""
        try:
            result = await self.session.aexecute(
                self._mark_certificate,
                [certificate_id, certificate_url, datetime.now(UTC), user_id],
            )
        except TRANSIENT_DRIVER_ERRORS as e:
            raise StoreUnavailableError from e
        return bool(result.was_applied)


# ==============================================================================
# In-Memory Backend
# ==============================================================================


class InMemoryProgressStore:
    """Process-local progress store.

    Each (user, video) key has its own lock, so events for different keys
    never wait on each other.
    """

    def __init__(self) -> None:
        self._progress: dict[tuple[int, str], ProgressRecord] = {}
        self._completions: dict[int, CompletionRecord] = {}
        self._locks: dict[tuple[int, str], asyncio.Lock] = {}
        self._completion_lock = asyncio.Lock()

    def _lock_for(self, key: tuple[int, str]) -> asyncio.Lock:
        # setdefault is atomic with respect to other coroutines (no await)
        return self._locks.setdefault(key, asyncio.Lock())

    async def merge_progress(
        self, user_id: int, video_id: str, incoming: ProgressEvent
    ) -> ProgressRecord:
        """Merge one event under the key's lock."""
        validate_user_id(user_id)
        validate_video_id(video_id)

        key = (user_id, video_id)
        async with self._lock_for(key):
            base = self._progress.get(key) or ProgressRecord.empty(user_id, video_id)
            merged = merge_progress_values(base, incoming, datetime.now(UTC))
            self._progress[key] = merged

        logger.debug(
            "progress_merged",
            user_id=user_id,
            video_id=video_id,
            progress=merged.progress,
            completed=merged.completed,
        )
        return merged

    async def get_progress(self, user_id: int, video_id: str) -> ProgressRecord | None:
        return self._progress.get((user_id, video_id))

    async def get_user_progress(self, user_id: int) -> list[ProgressRecord]:
        return sorted(
            (r for (uid, _), r in self._progress.items() if uid == user_id),
            key=lambda r: r.video_id,
        )

    async def create_completion(self, record: CompletionRecord) -> bool:
        async with self._completion_lock:
            if record.user_id in self._completions:
                return False
            self._completions[record.user_id] = record
            return True

    async def get_completion(self, user_id: int) -> CompletionRecord | None:
        return self._completions.get(user_id)

    async def mark_certificate_generated(
        self,
        user_id: int,
        certificate_id: str | None,
        certificate_url: str | None,
    ) -> bool:
        async with self._completion_lock:
            record = self._completions.get(user_id)
            if record is None or record.certificate_generated:
                return False
            record.certificate_generated = True
            record.certificate_id = certificate_id
            record.certificate_url = certificate_url
            record.updated_at = datetime.now(UTC)
            return True
