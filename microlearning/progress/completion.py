"""Course completion recording."""

from collections.abc import Sequence
from datetime import datetime

import structlog

from .errors import AlreadyCompletedError, IncompleteRequirementsError
from .merge import validate_user_id
from .models import CompletionRecord, VideoCompletionEntry, ensure_utc_aware
from .store import ProgressStore


logger = structlog.get_logger(__name__)


def missing_required_videos(
    required_video_ids: Sequence[str],
    snapshot: Sequence[VideoCompletionEntry],
) -> list[str]:
    """Required ids the snapshot does not mark completed, in required order."""
    completed = {entry.video_id for entry in snapshot if entry.completed}
    return [video_id for video_id in required_video_ids if video_id not in completed]


class CompletionRecorder:
    """Creates the single completion record of a user."""

    def __init__(self, store: ProgressStore):
        self.store = store

    async def attempt_completion(
        self,
        user_id: int,
        required_video_ids: Sequence[str],
        snapshot: Sequence[VideoCompletionEntry],
        completed_at: datetime,
    ) -> CompletionRecord:
        """Record a confirmed completion.

        Args:
            user_id: Completing user
            required_video_ids: Videos that must all be completed
            snapshot: Client snapshot of per-video completion
            completed_at: Completion date reported by the client

        Returns:
            The stored completion record

        Raises:
            IncompleteRequirementsError: Some required video is not completed
                (nothing stored)
            AlreadyCompletedError: The user already has a completion; carries
                the existing record
        """
        validate_user_id(user_id)

        missing = missing_required_videos(required_video_ids, snapshot)
        if missing:
            logger.info(
                "completion_incomplete",
                user_id=user_id,
                missing_count=len(missing),
            )
            raise IncompleteRequirementsError(missing)

        record = CompletionRecord(
            user_id=user_id,
            completed_at=ensure_utc_aware(completed_at),
            video_progress=list(snapshot),
            confirmed=True,
        )

        if not await self.store.create_completion(record):
            existing = await self.store.get_completion(user_id)
            logger.info("completion_already_recorded", user_id=user_id)
            raise AlreadyCompletedError(existing)

        logger.info(
            "completion_recorded",
            user_id=user_id,
            completed_at=record.completed_at.isoformat(),
            videos=len(record.video_progress),
        )
        return record
