"""Microlearning progress and completion.

Only the storage models are exported here; core.database imports them at
startup.
"""

from microlearning.progress.models import (
    COLLABORATOR_TABLES_CQL,
    MICROLEARNING_TABLES_CQL,
    CompletionRecord,
    ProgressEvent,
    ProgressRecord,
    VideoCompletionEntry,
)


__all__ = [
    "COLLABORATOR_TABLES_CQL",
    "MICROLEARNING_TABLES_CQL",
    "CompletionRecord",
    "ProgressEvent",
    "ProgressRecord",
    "VideoCompletionEntry",
]
