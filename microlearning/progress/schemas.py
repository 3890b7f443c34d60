"""Microlearning API schemas.

Pydantic models for:
- Progress events and overview
- Completion requests and results
- Certificate and integration responses
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from microlearning.certification.schemas import SubmissionStatus

from .access import AccessLevel
from .models import CompletionRecord, ProgressRecord, VideoCompletionEntry


# ==============================================================================
# Progress Schemas
# ==============================================================================


class ProgressEventRequest(BaseModel):
    """One progress event from the video player.

    Percentages outside [0, 100] are clamped, not rejected.
    """

    user_id: int = Field(..., description="Target user id")
    video_id: str = Field(..., min_length=1, description="Video identifier")
    progress: float = Field(0, description="Playback progress (0-100)")
    watched_percentage: float | None = Field(
        None, description="Share of the video actually watched (0-100)"
    )
    completed: bool = Field(False, description="Video finished")
    completed_at: datetime | None = Field(
        None, description="Client completion timestamp"
    )


class ProgressRecordResponse(BaseModel):
    """Progress of one video."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int
    video_id: str
    progress: int = Field(description="0-100 percentage")
    watched_percentage: int = Field(description="0-100 percentage")
    completed: bool
    completed_at: datetime | None = None
    updated_at: datetime | None = None
    is_rewatching: bool = False

    @classmethod
    def from_entity(cls, entity: ProgressRecord) -> "ProgressRecordResponse":
        """Create response from entity."""
        return cls(**entity.to_dict())


class ProgressOverviewResponse(BaseModel):
    """A user's progress together with completion and access state."""

    user_id: int
    progress: list[ProgressRecordResponse] = Field(default_factory=list)
    completion_confirmed: bool = False
    completed_at: datetime | None = None
    has_approved_application: bool = False
    access_level: AccessLevel
    is_admin: bool = False


# ==============================================================================
# Completion Schemas
# ==============================================================================


class VideoCompletionItem(BaseModel):
    """Per-video entry of the completion snapshot."""

    video_id: str = Field(..., min_length=1)
    completed: bool = False
    progress: float = 0
    completed_at: datetime | None = None

    def to_entry(self) -> VideoCompletionEntry:
        return VideoCompletionEntry(
            video_id=self.video_id,
            completed=self.completed,
            progress=int(round(max(0, min(100, self.progress)))),
            completed_at=self.completed_at,
        )


class CompleteRequest(BaseModel):
    """Completion attempt for the whole course."""

    user_id: int = Field(..., description="Completing user id")
    completion_date: datetime | None = Field(
        None, description="Completion date (defaults to now)"
    )
    video_progress: list[VideoCompletionItem] = Field(
        default_factory=list, description="Per-video completion snapshot"
    )


class CompleteResponse(BaseModel):
    """Completion attempt result."""

    message: str
    completion_confirmed: bool = True
    already_completed: bool = False
    completed_at: datetime
    always_food_safe_integration: SubmissionStatus
    certificate_id: str | None = None
    certificate_url: str | None = None


class CompletionResponse(BaseModel):
    """Stored completion record."""

    user_id: int
    completed_at: datetime
    video_progress: list[dict[str, Any]] = Field(default_factory=list)
    confirmed: bool
    certificate_generated: bool
    certificate_id: str | None = None
    certificate_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: CompletionRecord) -> "CompletionResponse":
        """Create response from entity."""
        return cls(**entity.to_dict())


class CertificateResponse(BaseModel):
    """Certificate info of a confirmed completion."""

    user_id: int
    certificate_url: str
    certificate_id: str | None = None
    completion_date: datetime
    issued_by_authority: bool = False
    message: str = (
        "Certificate for food safety training preparation. "
        "Complete your official certification with the certification provider."
    )


class TrainingModulesResponse(BaseModel):
    """Training modules offered by the certification provider."""

    modules: list[dict[str, Any]] = Field(default_factory=list)
