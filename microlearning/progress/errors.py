"""Microlearning error taxonomy.

Every error carries a stable ``code`` that the HTTP layer maps to a status
(see dependencies.handle_microlearning_error).
"""

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from .models import CompletionRecord


class MicrolearningError(Exception):
    """Base microlearning error."""

    retryable = False

    def __init__(self, message: str, code: str = "microlearning_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidArgumentError(MicrolearningError):
    """Malformed identifier or value supplied by the caller."""

    def __init__(self, message: str = "Invalid argument"):
        super().__init__(message, "invalid_argument")


class UnauthorizedError(MicrolearningError):
    """Access gate denial."""

    def __init__(
        self,
        message: str = "Application approval required to access this video",
        access_level: str = "limited",
        first_video_only: bool = True,
    ):
        self.access_level = access_level
        self.first_video_only = first_video_only
        super().__init__(message, "access_denied")


class IncompleteRequirementsError(MicrolearningError):
    """Required videos are still outstanding."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(
            "All required videos must be completed before certification",
            "incomplete_requirements",
        )


class AlreadyCompletedError(MicrolearningError):
    """The user already has a confirmed completion; safe to ignore."""

    def __init__(self, record: "CompletionRecord | None" = None):
        self.record = record
        super().__init__("Microlearning already completed", "already_completed")


class UserNotFoundError(MicrolearningError):
    """No profile exists for the user."""

    def __init__(self, message: str = "User not found"):
        super().__init__(message, "user_not_found")


class CompletionNotFoundError(MicrolearningError):
    """No (confirmed) completion exists for the user."""

    def __init__(self, message: str = "No completion found"):
        super().__init__(message, "completion_not_found")


class StoreUnavailableError(MicrolearningError):
    """Transient persistence failure; the whole operation may be retried."""

    retryable = True

    def __init__(self, message: str = "Progress store unavailable"):
        super().__init__(message, "store_unavailable")


class CertificationUnavailableError(MicrolearningError):
    """The certification authority failed; never surfaced to callers."""

    def __init__(self, message: str = "Certification authority unavailable"):
        super().__init__(message, "certification_unavailable")
