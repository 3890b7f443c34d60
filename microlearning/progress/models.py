"""Database models for microlearning progress and completion.

Cassandra table definitions for:
- Video progress: per (user, video) merge target, written only through
  lightweight transactions (see store.py)
- Completions: at most one row per user, created with IF NOT EXISTS
- Read-side tables owned by the users and applications services
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Progress per user and video
# Partition key: user_id, so a user's whole progress is one partition read
# version: bumped on every write, compared by the conditional UPDATE
VIDEO_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.video_progress (
    user_id INT,
    video_id TEXT,
    progress INT,
    watched_percentage INT,
    completed BOOLEAN,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    is_rewatching BOOLEAN,
    version INT,
    PRIMARY KEY ((user_id), video_id)
) WITH CLUSTERING ORDER BY (video_id ASC)
"""

MICROLEARNING_COMPLETIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.microlearning_completions (
    user_id INT PRIMARY KEY,
    completed_at TIMESTAMP,
    video_progress TEXT,
    confirmed BOOLEAN,
    certificate_generated BOOLEAN,
    certificate_id TEXT,
    certificate_url TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

MICROLEARNING_TABLES_CQL = [
    VIDEO_PROGRESS_TABLE_CQL,
    MICROLEARNING_COMPLETIONS_TABLE_CQL,
]

# Owned by the users service; read here for certification payloads
USERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id INT PRIMARY KEY,
    username TEXT,
    display_name TEXT,
    email TEXT,
    role TEXT
)
"""

# Owned by the applications service; read here for the approval signal
APPLICATIONS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.applications_by_user (
    user_id INT,
    application_id INT,
    status TEXT,
    updated_at TIMESTAMP,
    PRIMARY KEY ((user_id), application_id)
)
"""

COLLABORATOR_TABLES_CQL = [
    USERS_TABLE_CQL,
    APPLICATIONS_BY_USER_TABLE_CQL,
]


# ==============================================================================
# Value Objects
# ==============================================================================


@dataclass(frozen=True)
class ProgressEvent:
    """One client progress event, already clamped to [0, 100]."""

    progress: int
    watched_percentage: int
    completed: bool
    completed_at: datetime | None = None


@dataclass(frozen=True)
class VideoCompletionEntry:
    """Per-video entry of the snapshot sent with a completion attempt."""

    video_id: str
    completed: bool
    progress: int = 0
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "video_id": self.video_id,
            "completed": self.completed,
            "progress": self.progress,
            "completed_at": self.completed_at.isoformat()
            if self.completed_at
            else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VideoCompletionEntry":
        completed_at = data.get("completed_at")
        return cls(
            video_id=data["video_id"],
            completed=bool(data.get("completed", False)),
            progress=int(data.get("progress") or 0),
            completed_at=ensure_utc_aware(datetime.fromisoformat(completed_at))
            if completed_at
            else None,
        )


def dump_snapshot(snapshot: list[VideoCompletionEntry]) -> str:
    """Serialize a completion snapshot for the TEXT column."""
    return json.dumps([entry.to_dict() for entry in snapshot])


def load_snapshot(raw: str | None) -> list[VideoCompletionEntry]:
    """Deserialize a completion snapshot from the TEXT column."""
    if not raw:
        return []
    return [VideoCompletionEntry.from_dict(item) for item in json.loads(raw)]


# ==============================================================================
# Entity Classes
# ==============================================================================


class ProgressRecord:
    """Progress of one user on one video.

    Attributes:
        user_id: Platform user id (positive int)
        video_id: Video identifier from the catalog
        progress: Playback progress (0-100)
        watched_percentage: Share of the video actually watched (0-100)
        completed: One-way completion flag
        completed_at: Set by the first completion event, then immutable
        updated_at: Last write timestamp
        is_rewatching: True when the last event hit an already completed video
        version: Compare-and-set counter (0 = never stored)
    """

    def __init__(
        self,
        user_id: int,
        video_id: str,
        progress: int = 0,
        watched_percentage: int = 0,
        completed: bool = False,
        completed_at: datetime | None = None,
        updated_at: datetime | None = None,
        is_rewatching: bool = False,
        version: int = 0,
    ):
        self.user_id = user_id
        self.video_id = video_id
        self.progress = progress
        self.watched_percentage = watched_percentage
        self.completed = completed
        self.completed_at = ensure_utc_aware(completed_at)
        self.updated_at = ensure_utc_aware(updated_at)
        self.is_rewatching = is_rewatching
        self.version = version

    @classmethod
    def empty(cls, user_id: int, video_id: str) -> "ProgressRecord":
        """Baseline a first event is merged against."""
        return cls(user_id=user_id, video_id=video_id)

    @classmethod
    def from_row(cls, row: Any) -> "ProgressRecord":
        """Create ProgressRecord instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            video_id=row.video_id,
            progress=row.progress or 0,
            watched_percentage=row.watched_percentage or 0,
            completed=bool(row.completed),
            completed_at=row.completed_at,
            updated_at=row.updated_at,
            is_rewatching=bool(row.is_rewatching),
            version=row.version or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "video_id": self.video_id,
            "progress": self.progress,
            "watched_percentage": self.watched_percentage,
            "completed": self.completed,
            "completed_at": self.completed_at,
            "updated_at": self.updated_at,
            "is_rewatching": self.is_rewatching,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProgressRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (
            f"<ProgressRecord user={self.user_id} video={self.video_id} "
            f"{self.progress}% completed={self.completed}>"
        )


class CompletionRecord:
    """A user's confirmed microlearning completion.

    Attributes:
        user_id: Platform user id
        completed_at: Completion date supplied by the client
        video_progress: Snapshot of per-video progress at completion time
        confirmed: Always True once stored
        certificate_generated: Set once by the certification path
        certificate_id: Certificate id returned by the authority
        certificate_url: Certificate URL returned by the authority
        created_at: Row creation timestamp
        updated_at: Last write timestamp
    """

    def __init__(
        self,
        user_id: int,
        completed_at: datetime,
        video_progress: list[VideoCompletionEntry] | None = None,
        confirmed: bool = True,
        certificate_generated: bool = False,
        certificate_id: str | None = None,
        certificate_url: str | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.completed_at = ensure_utc_aware(completed_at)
        self.video_progress = video_progress or []
        self.confirmed = confirmed
        self.certificate_generated = certificate_generated
        self.certificate_id = certificate_id
        self.certificate_url = certificate_url
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at

    @classmethod
    def from_row(cls, row: Any) -> "CompletionRecord":
        """Create CompletionRecord instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            completed_at=row.completed_at,
            video_progress=load_snapshot(row.video_progress),
            confirmed=bool(row.confirmed),
            certificate_generated=bool(row.certificate_generated),
            certificate_id=row.certificate_id,
            certificate_url=row.certificate_url,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "completed_at": self.completed_at,
            "video_progress": [entry.to_dict() for entry in self.video_progress],
            "confirmed": self.confirmed,
            "certificate_generated": self.certificate_generated,
            "certificate_id": self.certificate_id,
            "certificate_url": self.certificate_url,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<CompletionRecord user={self.user_id} confirmed={self.confirmed} "
            f"certificate={self.certificate_generated}>"
        )
