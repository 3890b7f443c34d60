"""Monotonic merge rules for video progress.

Every store backend computes the next state of a record with
``merge_progress_values`` and then persists it with one atomic conditional
write. The rules are commutative and idempotent, so the final record does not
depend on the order in which concurrent events land:

- progress, watched_percentage: max
- completed: logical OR, never downgraded
- completed_at: set by the first completion, then immutable
"""

import math
from datetime import datetime

from .errors import InvalidArgumentError
from .models import ProgressEvent, ProgressRecord, ensure_utc_aware


MIN_PERCENT = 0
MAX_PERCENT = 100


def clamp_percentage(value: float | int | None) -> int:
    """Clamp a client-supplied percentage into [0, 100].

    Out-of-range values are clamped rather than rejected; older clients send
    values slightly above 100 at the end of playback.
    """
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return MIN_PERCENT
    return int(round(max(MIN_PERCENT, min(MAX_PERCENT, value))))


def validate_user_id(user_id: int) -> None:
    """Fail fast on non-positive or non-integer user ids."""
    if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
        raise InvalidArgumentError(f"Invalid user id: {user_id!r}")


def validate_video_id(video_id: str) -> None:
    """Fail fast on empty video ids."""
    if not isinstance(video_id, str) or not video_id.strip():
        raise InvalidArgumentError(f"Invalid video id: {video_id!r}")


def build_event(
    progress: float | int | None,
    watched_percentage: float | int | None,
    completed: bool,
    completed_at: datetime | None = None,
) -> ProgressEvent:
    """Normalize raw client values into a ProgressEvent."""
    return ProgressEvent(
        progress=clamp_percentage(progress),
        watched_percentage=clamp_percentage(watched_percentage),
        completed=bool(completed),
        completed_at=ensure_utc_aware(completed_at) if completed else None,
    )


def _merge_completed_at(
    existing: ProgressRecord,
    incoming: ProgressEvent,
    now: datetime,
) -> datetime | None:
    if existing.completed_at is not None or not incoming.completed:
        return existing.completed_at
    return incoming.completed_at or now


def merge_progress_values(
    existing: ProgressRecord,
    incoming: ProgressEvent,
    now: datetime,
) -> ProgressRecord:
    """Merge one event into the current record.

    Args:
        existing: Stored record, or ProgressRecord.empty() for a first event
        incoming: Clamped client event
        now: Write timestamp

    Returns:
        New record carrying ``existing.version + 1``
    """
    return ProgressRecord(
        user_id=existing.user_id,
        video_id=existing.video_id,
        progress=max(existing.progress, incoming.progress),
        watched_percentage=max(
            existing.watched_percentage, incoming.watched_percentage
        ),
        completed=existing.completed or incoming.completed,
        completed_at=_merge_completed_at(existing, incoming, now),
        updated_at=now,
        is_rewatching=existing.completed,
        version=existing.version + 1,
    )
