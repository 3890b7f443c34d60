"""Video access gate.

Admins, users with an approved application, and users who already completed
the course have full access. Everybody else may only watch the free
introductory video.
"""

from enum import Enum

from microlearning.auth.permissions import UserRole

from .errors import UnauthorizedError


class AccessLevel(str, Enum):
    """Access level to the microlearning catalog."""

    FULL = "full"
    LIMITED = "limited"


def resolve_access_level(
    role: UserRole | str | None,
    has_approved_application: bool,
    completion_confirmed: bool,
) -> AccessLevel:
    """Compute the caller's access level."""
    if role == UserRole.ADMIN or has_approved_application or completion_confirmed:
        return AccessLevel.FULL
    return AccessLevel.LIMITED


def can_access_video(
    video_id: str,
    access_level: AccessLevel,
    first_free_video_id: str,
) -> bool:
    """Check whether a video is playable at the given access level."""
    return access_level == AccessLevel.FULL or video_id == first_free_video_id


def ensure_can_access_video(
    video_id: str,
    access_level: AccessLevel,
    first_free_video_id: str,
) -> None:
    """Raise UnauthorizedError when the video is gated."""
    if not can_access_video(video_id, access_level, first_free_video_id):
        raise UnauthorizedError(access_level=access_level.value)
