"""Certification submission.

Builds the completion payload, sends it through AlwaysFoodSafeClient and
turns every outcome into a SubmissionResult. Nothing here raises: a failed
certification never invalidates a recorded completion.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError

from microlearning.config.settings import Settings
from microlearning.progress.collaborators import UserProfile
from microlearning.progress.errors import CertificationUnavailableError
from microlearning.progress.models import VideoCompletionEntry

from .client import AlwaysFoodSafeClient
from .schemas import (
    CertificateVerification,
    IntegrationStatus,
    SubmissionResult,
    SubmissionStatus,
)


logger = structlog.get_logger(__name__)


def build_completion_payload(
    profile: UserProfile,
    completed_at: datetime,
    snapshot: Sequence[VideoCompletionEntry],
    provider: str,
    course_modules: Sequence[str],
) -> dict[str, Any]:
    """Build the JSON body of a completion submission."""
    return {
        "user": {
            "id": profile.user_id,
            "name": profile.display_name,
            "email": profile.email_or_username,
        },
        "completion": {
            "date": completed_at.isoformat(),
            "modules": [
                {
                    "id": entry.video_id,
                    "completed": entry.completed,
                    "progress": entry.progress,
                    "completedAt": entry.completed_at.isoformat()
                    if entry.completed_at
                    else None,
                }
                for entry in snapshot
            ],
        },
        "course": {
            "type": "microlearning",
            "provider": provider,
            "modules": list(course_modules),
        },
    }


class CertificationSubmitter:
    """Submits completions to the certification authority."""

    def __init__(self, client: AlwaysFoodSafeClient, settings: Settings):
        self.client = client
        self.settings = settings

    @property
    def is_configured(self) -> bool:
        return self.client.is_configured

    async def submit(
        self,
        user_id: int,
        profile: UserProfile,
        completed_at: datetime,
        snapshot: Sequence[VideoCompletionEntry],
    ) -> SubmissionResult:
        """Submit one completion.

        Returns:
            SubmissionResult with status success, failed or not_configured
        """
        if not self.is_configured:
            logger.info("certification_not_configured", user_id=user_id)
            return SubmissionResult.not_configured()

        payload = build_completion_payload(
            profile,
            completed_at,
            snapshot,
            provider=self.settings.certification_provider_name,
            course_modules=self.settings.microlearning_course_modules,
        )

        try:
            data = await self.client.submit_completion(payload)
        except CertificationUnavailableError as e:
            logger.warning(
                "certification_submission_failed",
                user_id=user_id,
                error=e.message,
            )
            return SubmissionResult.failed(e.message)

        try:
            result = _success_result(data)
        except ValidationError as e:
            logger.warning(
                "certification_response_invalid",
                user_id=user_id,
                error=str(e),
            )
            return SubmissionResult.failed("Certification API returned an invalid body")

        logger.info(
            "certification_submitted",
            user_id=user_id,
            certificate_id=result.certificate_id,
        )
        return result

    async def verify_certificate(self, certificate_id: str) -> CertificateVerification:
        """Verify a certificate; any failure reads as invalid."""
        valid = False
        if self.is_configured:
            try:
                valid = await self.client.verify_certificate(certificate_id)
            except CertificationUnavailableError as e:
                logger.warning(
                    "certificate_verification_failed",
                    certificate_id=certificate_id,
                    error=e.message,
                )
        return CertificateVerification(certificate_id=certificate_id, valid=valid)

    async def get_training_modules(self) -> list[dict[str, Any]]:
        """List provider modules; any failure reads as no modules."""
        if not self.is_configured:
            return []
        try:
            return await self.client.get_training_modules()
        except CertificationUnavailableError as e:
            logger.warning("training_modules_fetch_failed", error=e.message)
            return []

    def integration_status(self) -> IntegrationStatus:
        return IntegrationStatus(
            configured=self.is_configured,
            api_url=self.client.api_url,
            has_api_key=self.client.has_api_key,
        )


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _success_result(data: dict[str, Any]) -> SubmissionResult:
    """Read the certificate out of a 2xx submission response."""
    certificate = data.get("certificate") or {}
    if not isinstance(certificate, dict):
        certificate = {}
    return SubmissionResult(
        status=SubmissionStatus.SUCCESS,
        certificate_id=_optional_str(certificate.get("id")),
        certificate_url=_optional_str(certificate.get("url")),
        message=data.get("message") or "Completion submitted successfully",
    )
