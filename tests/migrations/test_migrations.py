"""Tests for the progress versioning migration."""

import importlib
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from cassandra import InvalidRequest
from cassandra.cluster import Session


migration = importlib.import_module("scripts.migrations.001_add_progress_versioning")


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(return_value=Mock())
    session.aexecute = AsyncMock()
    return session


class TestMigrateUp:
    """Tests for migrate_up."""

    @pytest.mark.asyncio
    async def test_existing_column_skipped(self, mock_session) -> None:
        mock_session.aexecute.side_effect = [
            None,
            InvalidRequest(
                "Invalid column name is_rewatching because it conflicts with an existing column"
            ),
        ]

        applied, skipped = await migration.migrate_up(mock_session, "ks")

        assert (applied, skipped) == (1, 1)

    @pytest.mark.asyncio
    async def test_other_errors_raised(self, mock_session) -> None:
        mock_session.aexecute.side_effect = InvalidRequest("unconfigured table video_progress")

        with pytest.raises(InvalidRequest):
            await migration.migrate_up(mock_session, "ks")


class TestBackfillVersions:
    """Tests for backfill_versions."""

    @pytest.mark.asyncio
    async def test_only_unversioned_rows_updated(self, mock_session) -> None:
        mock_session.aexecute.side_effect = [
            [
                SimpleNamespace(user_id=7, video_id="basics", version=None),
                SimpleNamespace(user_id=7, video_id="safety", version=3),
                SimpleNamespace(user_id=8, video_id="basics", version=None),
            ],
            Mock(was_applied=True),
            Mock(was_applied=False),
        ]

        updated = await migration.backfill_versions(mock_session, "ks")

        assert updated == 1
        assert mock_session.aexecute.await_count == 3
