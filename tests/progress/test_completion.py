"""Tests for the completion recorder."""

import asyncio
from datetime import UTC, datetime

import pytest

from microlearning.progress.completion import CompletionRecorder, missing_required_videos
from microlearning.progress.errors import (
    AlreadyCompletedError,
    IncompleteRequirementsError,
    InvalidArgumentError,
)
from microlearning.progress.models import VideoCompletionEntry
from microlearning.progress.store import InMemoryProgressStore


REQUIRED = ["a", "b", "c", "d"]
T = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)


def _snapshot(*completed: str, pending: tuple[str, ...] = ()):
    return [VideoCompletionEntry(v, True, 100) for v in completed] + [
        VideoCompletionEntry(v, False, 40) for v in pending
    ]


@pytest.fixture
def store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def recorder(store) -> CompletionRecorder:
    return CompletionRecorder(store)


class TestMissingRequiredVideos:
    """Tests for missing_required_videos."""

    def test_required_order_preserved(self) -> None:
        assert missing_required_videos(REQUIRED, _snapshot("c", pending=("a",))) == [
            "a",
            "b",
            "d",
        ]

    def test_extra_videos_ignored(self) -> None:
        assert missing_required_videos(REQUIRED, _snapshot("a", "b", "c", "d", "x")) == []

    def test_uncompleted_entries_do_not_count(self) -> None:
        assert missing_required_videos(["a"], _snapshot(pending=("a",))) == ["a"]


class TestAttemptCompletion:
    """Tests for CompletionRecorder.attempt_completion."""

    @pytest.mark.asyncio
    async def test_records_confirmed_completion(self, recorder, store) -> None:
        record = await recorder.attempt_completion(
            7, REQUIRED, _snapshot(*REQUIRED), T
        )

        assert record.confirmed is True
        assert record.certificate_generated is False
        assert record.completed_at == T
        assert len(record.video_progress) == 4
        assert await store.get_completion(7) is record

    @pytest.mark.asyncio
    async def test_incomplete_reports_exactly_uncovered_set(
        self, recorder, store
    ) -> None:
        with pytest.raises(IncompleteRequirementsError) as exc_info:
            await recorder.attempt_completion(
                7, REQUIRED, _snapshot("a", "c", pending=("b",)), T
            )

        assert exc_info.value.missing == ["b", "d"]
        assert exc_info.value.code == "incomplete_requirements"
        assert await store.get_completion(7) is None

    @pytest.mark.asyncio
    async def test_double_completion(self, recorder, store) -> None:
        first = await recorder.attempt_completion(7, REQUIRED, _snapshot(*REQUIRED), T)

        with pytest.raises(AlreadyCompletedError) as exc_info:
            await recorder.attempt_completion(
                7, REQUIRED, _snapshot(*REQUIRED), datetime.now(UTC)
            )

        assert exc_info.value.record is first
        assert (await store.get_completion(7)).completed_at == T

    @pytest.mark.asyncio
    async def test_concurrent_completions_store_one_record(self, recorder) -> None:
        results = await asyncio.gather(
            recorder.attempt_completion(7, REQUIRED, _snapshot(*REQUIRED), T),
            recorder.attempt_completion(7, REQUIRED, _snapshot(*REQUIRED), T),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, AlreadyCompletedError)]
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_invalid_user(self, recorder) -> None:
        with pytest.raises(InvalidArgumentError):
            await recorder.attempt_completion(0, REQUIRED, _snapshot(*REQUIRED), T)
