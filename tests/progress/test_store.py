"""Tests for progress stores.

The Cassandra store is tested against a mocked session; aexecute returns
result objects exposing ``was_applied`` and ``one()`` like the driver's
ResultSet.
"""

import asyncio
from datetime import UTC, datetime
from itertools import permutations
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from cassandra import OperationTimedOut, Unavailable, WriteTimeout
from cassandra.cluster import NoHostAvailable, Session

from microlearning.progress.errors import InvalidArgumentError, StoreUnavailableError
from microlearning.progress.models import (
    CompletionRecord,
    ProgressEvent,
    VideoCompletionEntry,
)
from microlearning.progress.store import CassandraProgressStore, InMemoryProgressStore


T = datetime(2026, 2, 28, 9, 30, tzinfo=UTC)


def _result(row=None, applied: bool = True) -> Mock:
    result = Mock()
    result.one.return_value = row
    result.was_applied = applied
    return result


def _progress_row(**overrides) -> SimpleNamespace:
    row = {
        "user_id": 7,
        "video_id": "v1",
        "progress": 50,
        "watched_percentage": 50,
        "completed": False,
        "completed_at": None,
        "updated_at": None,
        "is_rewatching": False,
        "version": 1,
    }
    row.update(overrides)
    return SimpleNamespace(**row)


# ==============================================================================
# In-Memory Store
# ==============================================================================


class TestInMemoryProgressStore:
    """Tests for InMemoryProgressStore."""

    @pytest.mark.asyncio
    async def test_first_event_creates_record(self) -> None:
        store = InMemoryProgressStore()
        record = await store.merge_progress(7, "v1", ProgressEvent(30, 20, False))

        assert record.progress == 30
        assert await store.get_progress(7, "v1") == record

    @pytest.mark.asyncio
    async def test_concurrent_scenario_converges(self) -> None:
        """{40,false} and {10,true,T} racing converge to {40,true,T}."""
        store = InMemoryProgressStore()
        await asyncio.gather(
            store.merge_progress(7, "v1", ProgressEvent(40, 40, False)),
            store.merge_progress(7, "v1", ProgressEvent(10, 10, True, T)),
        )

        record = await store.get_progress(7, "v1")
        assert record.progress == 40
        assert record.completed is True
        assert record.completed_at == T

    @pytest.mark.asyncio
    async def test_many_concurrent_events_keep_max_and_or(self) -> None:
        store = InMemoryProgressStore()
        events = [ProgressEvent(i, 100 - i, i == 13, T) for i in range(0, 60, 1)]

        await asyncio.gather(*(store.merge_progress(7, "v1", e) for e in events))

        record = await store.get_progress(7, "v1")
        assert record.progress == 59
        assert record.watched_percentage == 100
        assert record.completed is True
        assert record.version == len(events)

    @pytest.mark.asyncio
    async def test_orderings_reach_same_state(self) -> None:
        events = [
            ProgressEvent(40, 30, False),
            ProgressEvent(10, 70, True, T),
            ProgressEvent(80, 10, False),
        ]
        states = set()
        for ordering in permutations(events):
            store = InMemoryProgressStore()
            for event in ordering:
                await store.merge_progress(7, "v1", event)
            record = await store.get_progress(7, "v1")
            states.add(
                (
                    record.progress,
                    record.watched_percentage,
                    record.completed,
                    record.completed_at,
                )
            )

        assert states == {(80, 70, True, T)}

    @pytest.mark.asyncio
    async def test_keys_are_independent(self) -> None:
        store = InMemoryProgressStore()
        await store.merge_progress(7, "v1", ProgressEvent(100, 100, True, T))
        await store.merge_progress(7, "v2", ProgressEvent(5, 5, False))
        await store.merge_progress(8, "v1", ProgressEvent(1, 1, False))

        records = await store.get_user_progress(7)
        assert [r.video_id for r in records] == ["v1", "v2"]
        assert (await store.get_progress(8, "v1")).completed is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id,video_id", [(0, "v1"), (-3, "v1"), (7, " ")])
    async def test_invalid_ids_write_nothing(self, user_id: int, video_id: str) -> None:
        store = InMemoryProgressStore()
        with pytest.raises(InvalidArgumentError):
            await store.merge_progress(user_id, video_id, ProgressEvent(1, 1, False))
        assert store._progress == {}

    @pytest.mark.asyncio
    async def test_completion_created_once(self) -> None:
        store = InMemoryProgressStore()
        first = CompletionRecord(user_id=7, completed_at=T)
        second = CompletionRecord(user_id=7, completed_at=datetime.now(UTC))

        assert await store.create_completion(first) is True
        assert await store.create_completion(second) is False
        assert (await store.get_completion(7)).completed_at == T

    @pytest.mark.asyncio
    async def test_certificate_marked_once(self) -> None:
        store = InMemoryProgressStore()
        await store.create_completion(CompletionRecord(user_id=7, completed_at=T))

        assert await store.mark_certificate_generated(7, "c-1", "https://c/1") is True
        assert await store.mark_certificate_generated(7, "c-2", "https://c/2") is False

        record = await store.get_completion(7)
        assert record.certificate_generated is True
        assert record.certificate_id == "c-1"

    @pytest.mark.asyncio
    async def test_mark_certificate_without_completion(self) -> None:
        store = InMemoryProgressStore()
        assert await store.mark_certificate_generated(7, "c-1", None) is False


# ==============================================================================
# Cassandra Store
# ==============================================================================


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    # One distinct prepared statement per query
    session.prepare = Mock(side_effect=lambda query: Mock(query_string=query))
    # Make aexecute awaitable (cassandra-asyncio-driver)
    session.aexecute = AsyncMock()
    return session


@pytest.fixture
def cassandra_store(mock_session) -> CassandraProgressStore:
    """CassandraProgressStore with mocked session."""
    return CassandraProgressStore(
        session=mock_session, keyspace="test_keyspace", max_attempts=3, write_timeout=1.0
    )


class TestCassandraProgressStore:
    """Tests for CassandraProgressStore."""

    def test_statements_use_lightweight_transactions(self, cassandra_store) -> None:
        assert "IF NOT EXISTS" in cassandra_store._insert_progress.query_string
        assert "IF version = ?" in cassandra_store._update_progress.query_string
        assert "IF NOT EXISTS" in cassandra_store._insert_completion.query_string
        assert (
            "IF certificate_generated = false"
            in cassandra_store._mark_certificate.query_string
        )
        assert "test_keyspace.video_progress" in cassandra_store._get_progress.query_string

    @pytest.mark.asyncio
    async def test_first_event_inserts_if_not_exists(
        self, cassandra_store, mock_session
    ) -> None:
        mock_session.aexecute.side_effect = [_result(None), _result(applied=True)]

        record = await cassandra_store.merge_progress(7, "v1", ProgressEvent(30, 20, False))

        assert record.progress == 30
        assert record.version == 1
        statement, params = mock_session.aexecute.await_args_list[1].args
        assert statement is cassandra_store._insert_progress
        assert params[:5] == [7, "v1", 30, 20, False]
        assert params[-1] == 1

    @pytest.mark.asyncio
    async def test_existing_row_updates_with_version_check(
        self, cassandra_store, mock_session
    ) -> None:
        mock_session.aexecute.side_effect = [
            _result(_progress_row(progress=60, version=4)),
            _result(applied=True),
        ]

        record = await cassandra_store.merge_progress(7, "v1", ProgressEvent(10, 70, True, T))

        assert record.progress == 60
        assert record.watched_percentage == 70
        assert record.completed is True
        assert record.completed_at == T
        statement, params = mock_session.aexecute.await_args_list[1].args
        assert statement is cassandra_store._update_progress
        # new version, then key, then expected version
        assert params[6] == 5
        assert params[7:] == [7, "v1", 4]

    @pytest.mark.asyncio
    async def test_not_applied_retries_against_fresh_row(
        self, cassandra_store, mock_session
    ) -> None:
        """A lost race re-reads and merges against the winner's row."""
        mock_session.aexecute.side_effect = [
            _result(None),
            _result(applied=False),
            _result(_progress_row(progress=10, completed=True, completed_at=T)),
            _result(applied=True),
        ]

        record = await cassandra_store.merge_progress(7, "v1", ProgressEvent(40, 40, False))

        assert record.progress == 40
        assert record.completed is True
        assert record.completed_at == T
        assert record.version == 2
        assert mock_session.aexecute.await_count == 4

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_store_unavailable(
        self, cassandra_store, mock_session
    ) -> None:
        mock_session.aexecute.side_effect = [
            _result(_progress_row()),
            _result(applied=False),
        ] * 3

        with pytest.raises(StoreUnavailableError) as exc_info:
            await cassandra_store.merge_progress(7, "v1", ProgressEvent(1, 1, False))

        assert exc_info.value.retryable is True
        assert mock_session.aexecute.await_count == 6

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            NoHostAvailable("no hosts", {}),
            OperationTimedOut(),
            Unavailable("not enough replicas"),
            WriteTimeout("cas timeout"),
        ],
    )
    async def test_driver_errors_map_to_store_unavailable(
        self, cassandra_store, mock_session, error
    ) -> None:
        mock_session.aexecute.side_effect = [_result(None), error]

        with pytest.raises(StoreUnavailableError):
            await cassandra_store.merge_progress(7, "v1", ProgressEvent(1, 1, False))

    @pytest.mark.asyncio
    async def test_slow_write_times_out(self, mock_session) -> None:
        store = CassandraProgressStore(
            session=mock_session, keyspace="ks", max_attempts=3, write_timeout=0.01
        )

        async def _slow(*_args, **_kwargs):
            await asyncio.sleep(1)

        mock_session.aexecute.side_effect = _slow

        with pytest.raises(StoreUnavailableError):
            await store.merge_progress(7, "v1", ProgressEvent(1, 1, False))

    @pytest.mark.asyncio
    async def test_invalid_ids_never_reach_cassandra(
        self, cassandra_store, mock_session
    ) -> None:
        with pytest.raises(InvalidArgumentError):
            await cassandra_store.merge_progress(0, "v1", ProgressEvent(1, 1, False))
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_user_progress(self, cassandra_store, mock_session) -> None:
        mock_session.aexecute.return_value = [
            _progress_row(video_id="v1"),
            _progress_row(video_id="v2", completed=True, completed_at=T),
        ]

        records = await cassandra_store.get_user_progress(7)

        assert [r.video_id for r in records] == ["v1", "v2"]
        assert records[1].completed_at == T

    @pytest.mark.asyncio
    async def test_create_completion_reports_applied(
        self, cassandra_store, mock_session
    ) -> None:
        snapshot = [VideoCompletionEntry("v1", True, 100, T)]
        record = CompletionRecord(user_id=7, completed_at=T, video_progress=snapshot)

        mock_session.aexecute.return_value = _result(applied=True)
        assert await cassandra_store.create_completion(record) is True

        _, params = mock_session.aexecute.await_args.args
        assert params[0] == 7
        assert '"video_id": "v1"' in params[2]

        mock_session.aexecute.return_value = _result(applied=False)
        assert await cassandra_store.create_completion(record) is False

    @pytest.mark.asyncio
    async def test_get_completion_loads_snapshot(
        self, cassandra_store, mock_session
    ) -> None:
        row = SimpleNamespace(
            user_id=7,
            completed_at=T.replace(tzinfo=None),
            video_progress='[{"video_id": "v1", "completed": true, "progress": 100,'
            ' "completed_at": null}]',
            confirmed=True,
            certificate_generated=False,
            certificate_id=None,
            certificate_url=None,
            created_at=T,
            updated_at=T,
        )
        mock_session.aexecute.return_value = _result(row)

        record = await cassandra_store.get_completion(7)

        assert record.completed_at == T
        assert record.video_progress == [VideoCompletionEntry("v1", True, 100, None)]

    @pytest.mark.asyncio
    async def test_mark_certificate_generated(self, cassandra_store, mock_session) -> None:
        mock_session.aexecute.return_value = _result(applied=True)

        assert await cassandra_store.mark_certificate_generated(7, "c-1", "u") is True

        statement, params = mock_session.aexecute.await_args.args
        assert statement is cassandra_store._mark_certificate
        assert params[0] == "c-1"
        assert params[-1] == 7
