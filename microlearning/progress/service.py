"""Microlearning service layer.

Business logic for:
- Progress overview with access level
- Progress events behind the access gate
- Course completion and certification
- Completion and certificate queries
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from microlearning.auth.permissions import UserRole, is_admin
from microlearning.certification.schemas import SubmissionResult, SubmissionStatus
from microlearning.certification.service import CertificationSubmitter
from microlearning.config.settings import Settings

from .access import AccessLevel, ensure_can_access_video, resolve_access_level
from .collaborators import (
    ApplicationStatusProvider,
    UserProfile,
    UserProfileProvider,
)
from .completion import CompletionRecorder
from .errors import (
    AlreadyCompletedError,
    CompletionNotFoundError,
    StoreUnavailableError,
    UnauthorizedError,
    UserNotFoundError,
)
from .merge import build_event, validate_user_id, validate_video_id
from .models import CompletionRecord, ProgressRecord, VideoCompletionEntry
from .store import ProgressStore


logger = structlog.get_logger(__name__)


@dataclass
class ProgressOverview:
    """A user's progress together with the derived access level."""

    user_id: int
    records: list[ProgressRecord]
    completion: CompletionRecord | None
    has_approved_application: bool
    access_level: AccessLevel
    is_admin: bool

    @property
    def completion_confirmed(self) -> bool:
        return bool(self.completion and self.completion.confirmed)


@dataclass
class CompletionOutcome:
    """Result of a completion attempt."""

    record: CompletionRecord
    already_completed: bool
    certification: SubmissionResult


@dataclass
class CertificateInfo:
    """Certificate data for a confirmed completion."""

    user_id: int
    certificate_url: str
    certificate_id: str | None
    completed_at: datetime
    issued_by_authority: bool


class MicrolearningService:
    """Service for microlearning progress and completion."""

    def __init__(
        self,
        store: ProgressStore,
        applications: ApplicationStatusProvider,
        profiles: UserProfileProvider,
        submitter: CertificationSubmitter,
        settings: Settings,
    ):
        self.store = store
        self.applications = applications
        self.profiles = profiles
        self.submitter = submitter
        self.settings = settings
        self.recorder = CompletionRecorder(store)
        self._certify_locks: dict[int, asyncio.Lock] = {}

    @property
    def first_free_video_id(self) -> str:
        return self.settings.microlearning_first_free_video_id

    @property
    def required_video_ids(self) -> list[str]:
        return self.settings.microlearning_required_video_ids

    # ==========================================================================
    # Access
    # ==========================================================================

    async def get_access_level(
        self, user_id: int, role: UserRole | str | None
    ) -> tuple[AccessLevel, bool, CompletionRecord | None]:
        """Resolve access from current collaborator state.

        Returns:
            Tuple of (access_level, has_approved_application, completion)
        """
        has_approval = await self.applications.has_approved_application(user_id)
        completion = await self.store.get_completion(user_id)
        access_level = resolve_access_level(
            role,
            has_approved_application=has_approval,
            completion_confirmed=bool(completion and completion.confirmed),
        )
        return access_level, has_approval, completion

    # ==========================================================================
    # Progress
    # ==========================================================================

    async def get_progress_overview(
        self, user_id: int, role: UserRole | str | None
    ) -> ProgressOverview:
        """Get all progress of a user with completion and access state."""
        validate_user_id(user_id)

        records = await self.store.get_user_progress(user_id)
        access_level, has_approval, completion = await self.get_access_level(
            user_id, role
        )

        return ProgressOverview(
            user_id=user_id,
            records=records,
            completion=completion,
            has_approved_application=has_approval,
            access_level=access_level,
            is_admin=is_admin(role),
        )

    async def submit_progress_event(
        self,
        user_id: int,
        role: UserRole | str | None,
        video_id: str,
        progress: float | None,
        watched_percentage: float | None,
        completed: bool,
        completed_at: datetime | None = None,
    ) -> ProgressRecord:
        """Merge one progress event.

        The free introductory video skips the approval lookup; every other
        video is gated before the store is touched.

        Raises:
            InvalidArgumentError: Malformed identifiers
            UnauthorizedError: Video not accessible at the user's level
            StoreUnavailableError: Store failure, retryable
        """
        validate_user_id(user_id)
        validate_video_id(video_id)

        if video_id != self.first_free_video_id:
            access_level, _, _ = await self.get_access_level(user_id, role)
            try:
                ensure_can_access_video(
                    video_id, access_level, self.first_free_video_id
                )
            except UnauthorizedError:
                logger.info(
                    "video_access_denied",
                    user_id=user_id,
                    video_id=video_id,
                    access_level=access_level.value,
                )
                raise

        event = build_event(progress, watched_percentage, completed, completed_at)
        return await self.store.merge_progress(user_id, video_id, event)

    # ==========================================================================
    # Completion
    # ==========================================================================

    async def complete_microlearning(
        self,
        user_id: int,
        role: UserRole | str | None,
        completion_date: datetime | None,
        snapshot: Sequence[VideoCompletionEntry],
    ) -> CompletionOutcome:
        """Record the course completion, then certify it.

        A second completion returns the stored record with
        ``already_completed=True``. Certification runs after the record is
        persisted and its outcome never changes the record's validity.

        Raises:
            InvalidArgumentError: Malformed user id
            UnauthorizedError: Access level is not full
            UserNotFoundError: No profile for the user
            IncompleteRequirementsError: Required videos outstanding
            StoreUnavailableError: Store failure, retryable
        """
        validate_user_id(user_id)

        access_level, _, _ = await self.get_access_level(user_id, role)
        if access_level != AccessLevel.FULL:
            logger.info("completion_access_denied", user_id=user_id)
            raise UnauthorizedError(
                "Application approval required to complete full certification",
                access_level=access_level.value,
                first_video_only=True,
            )

        profile = await self.profiles.get_user_profile(user_id)
        if profile is None:
            raise UserNotFoundError

        completed_at = completion_date or datetime.now(UTC)

        try:
            record = await self.recorder.attempt_completion(
                user_id, self.required_video_ids, snapshot, completed_at
            )
        except AlreadyCompletedError as e:
            if e.record is None:
                raise
            return await self._already_completed(e.record, profile)

        certification = await self._certify(record, profile)
        return CompletionOutcome(
            record=record, already_completed=False, certification=certification
        )

    async def _already_completed(
        self, record: CompletionRecord, profile: UserProfile
    ) -> CompletionOutcome:
        # Retries certification when an earlier attempt failed or was not configured
        certification = await self._certify(record, profile)
        return CompletionOutcome(
            record=record, already_completed=True, certification=certification
        )

    async def _certify(
        self, record: CompletionRecord, profile: UserProfile
    ) -> SubmissionResult:
        """Submit the completion unless a certificate is already recorded.

        Submissions for one user are serialized in-process, so a concurrent
        duplicate completion waits for the in-flight submission and then sees
        its certificate instead of registering the user a second time.
        """
        lock = self._certify_locks.setdefault(record.user_id, asyncio.Lock())
        async with lock:
            await self._refresh_certificate(record)
            if record.certificate_generated:
                return SubmissionResult(
                    status=SubmissionStatus.SUCCESS,
                    certificate_id=record.certificate_id,
                    certificate_url=record.certificate_url,
                    message="Certificate already issued",
                )
            return await self._submit_and_mark(record, profile)

    async def _refresh_certificate(self, record: CompletionRecord) -> None:
        try:
            current = await self.store.get_completion(record.user_id)
        except StoreUnavailableError as e:
            logger.warning(
                "completion_refresh_failed", user_id=record.user_id, error=e.message
            )
            return
        if current is not None and current.certificate_generated:
            record.certificate_generated = True
            record.certificate_id = current.certificate_id
            record.certificate_url = current.certificate_url

    async def _submit_and_mark(
        self, record: CompletionRecord, profile: UserProfile
    ) -> SubmissionResult:
        result = await self.submitter.submit(
            record.user_id, profile, record.completed_at, record.video_progress
        )
        if not result.ok:
            return result

        try:
            marked = await self.store.mark_certificate_generated(
                record.user_id, result.certificate_id, result.certificate_url
            )
        except StoreUnavailableError as e:
            logger.error(
                "certificate_mark_failed",
                user_id=record.user_id,
                certificate_id=result.certificate_id,
                error=e.message,
            )
            return result

        if marked:
            record.certificate_generated = True
            record.certificate_id = result.certificate_id
            record.certificate_url = result.certificate_url
        return result

    async def get_completion(self, user_id: int) -> CompletionRecord:
        """Get the stored completion record.

        Raises:
            CompletionNotFoundError: No completion stored
        """
        validate_user_id(user_id)
        record = await self.store.get_completion(user_id)
        if record is None:
            raise CompletionNotFoundError
        return record

    async def get_certificate(self, user_id: int) -> CertificateInfo:
        """Get certificate data of a confirmed completion.

        Rendering is external: the URL is the one issued by the certification
        authority, or a placeholder path for the PDF renderer.

        Raises:
            CompletionNotFoundError: No confirmed completion
            UserNotFoundError: No profile for the user
        """
        validate_user_id(user_id)
        record = await self.store.get_completion(user_id)
        if record is None or not record.confirmed:
            raise CompletionNotFoundError("No confirmed completion found")

        if await self.profiles.get_user_profile(user_id) is None:
            raise UserNotFoundError

        if record.certificate_url:
            url = record.certificate_url
        else:
            stamp = int(datetime.now(UTC).timestamp() * 1000)
            url = f"/api/certificates/microlearning-{user_id}-{stamp}.pdf"

        return CertificateInfo(
            user_id=user_id,
            certificate_url=url,
            certificate_id=record.certificate_id,
            completed_at=record.completed_at,
            issued_by_authority=bool(record.certificate_url),
        )
