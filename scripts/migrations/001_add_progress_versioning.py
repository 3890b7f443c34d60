"""Migration 001: Add versioning columns to video_progress.

Tables created before compare-and-set writes lack the columns the merge
path depends on:
- version: optimistic concurrency token checked by ``UPDATE ... IF version = ?``
- is_rewatching: set when a completed video receives further events

Existing rows get ``version = 0`` so the conditional update can match them.

Usage:
    uv run python -m scripts.migrations.001_add_progress_versioning
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import structlog
from cassandra import InvalidRequest
from cassandra.auth import PlainTextAuthProvider
from cassandra_asyncio.cluster import Cluster

from microlearning.config.settings import get_settings


logger = structlog.get_logger(__name__)


MIGRATION_STATEMENTS = [
    "ALTER TABLE {keyspace}.video_progress ADD version INT",
    "ALTER TABLE {keyspace}.video_progress ADD is_rewatching BOOLEAN",
]


async def migrate_up(session, keyspace: str) -> tuple[int, int]:
    """Add versioning columns to the video_progress table.

    Args:
        session: Cassandra session with aexecute support
        keyspace: Target keyspace

    Returns:
        Tuple of (applied_count, skipped_count)
    """
    applied = 0
    skipped = 0

    for stmt_template in MIGRATION_STATEMENTS:
        stmt = stmt_template.format(keyspace=keyspace)
        try:
            await session.aexecute(stmt)
            logger.info("migration_applied", statement=stmt)
            applied += 1
        except InvalidRequest as e:
            error_str = str(e).lower()
            # Raised when the column already exists
            if "already exist" in error_str or "conflicts with an existing column" in error_str:
                logger.info("migration_skipped_exists", statement=stmt)
                skipped += 1
            else:
                logger.error("migration_failed", statement=stmt, error=str(e))
                raise

    return applied, skipped


async def backfill_versions(session, keyspace: str) -> int:
    """Set version 0 on rows that have none.

    Returns:
        Number of rows updated
    """
    select = f"SELECT user_id, video_id, version FROM {keyspace}.video_progress"
    update = session.prepare(
        f"""
        UPDATE {keyspace}.video_progress
        SET version = 0, is_rewatching = false
        WHERE user_id = ? AND video_id = ?
        IF version = null
        """
    )

    updated = 0
    rows = await session.aexecute(select)
    for row in rows:
        if row.version is not None:
            continue
        result = await session.aexecute(update, (row.user_id, row.video_id))
        if result.was_applied:
            updated += 1

    return updated


async def run_migration() -> None:
    """Run the migration."""
    settings = get_settings()
    keyspace = settings.cassandra_keyspace

    logger.info(
        "migration_starting",
        migration="001_add_progress_versioning",
        keyspace=keyspace,
        hosts=settings.cassandra_hosts,
    )

    auth_provider = None
    if settings.cassandra_username and settings.cassandra_password:
        auth_provider = PlainTextAuthProvider(
            username=settings.cassandra_username,
            password=settings.cassandra_password,
        )

    cluster = Cluster(
        contact_points=settings.cassandra_hosts,
        port=settings.cassandra_port,
        auth_provider=auth_provider,
        protocol_version=settings.cassandra_protocol_version,
    )

    session = cluster.connect()
    session.set_keyspace(keyspace)

    try:
        applied, skipped = await migrate_up(session, keyspace)
        backfilled = await backfill_versions(session, keyspace)
        logger.info(
            "migration_completed",
            migration="001_add_progress_versioning",
            applied=applied,
            skipped=skipped,
            backfilled=backfilled,
        )
    finally:
        session.shutdown()
        cluster.shutdown()


if __name__ == "__main__":
    asyncio.run(run_migration())
