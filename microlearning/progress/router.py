"""Microlearning API endpoints.

Provides routes for:
- Progress queries and progress events (throttled from the player)
- Course completion with certification
- Completion and certificate queries
- Certification integration status (admin)
"""

from fastapi import APIRouter, status

from microlearning.auth.dependencies import AdminUser, CurrentUser, ensure_self_or_admin
from microlearning.certification.schemas import (
    CertificateVerification,
    IntegrationStatus,
)

from .dependencies import MicrolearningServiceDep, handle_microlearning_error
from .errors import MicrolearningError
from .schemas import (
    CertificateResponse,
    CompleteRequest,
    CompleteResponse,
    CompletionResponse,
    ProgressEventRequest,
    ProgressOverviewResponse,
    ProgressRecordResponse,
    TrainingModulesResponse,
)


router = APIRouter(prefix="/v1/microlearning", tags=["microlearning"])


# ==============================================================================
# Progress Endpoints
# ==============================================================================


@router.get(
    "/progress/{user_id}",
    response_model=ProgressOverviewResponse,
    summary="Get microlearning progress",
)
async def get_progress(
    user_id: int,
    service: MicrolearningServiceDep,
    user: CurrentUser,
) -> ProgressOverviewResponse:
    """Get a user's video progress, completion state and access level."""
    ensure_self_or_admin(user, user_id)

    try:
        overview = await service.get_progress_overview(user_id, user.role)
    except MicrolearningError as e:
        raise handle_microlearning_error(e) from e

    return ProgressOverviewResponse(
        user_id=user_id,
        progress=[ProgressRecordResponse.from_entity(r) for r in overview.records],
        completion_confirmed=overview.completion_confirmed,
        completed_at=overview.completion.completed_at if overview.completion else None,
        has_approved_application=overview.has_approved_application,
        access_level=overview.access_level,
        is_admin=overview.is_admin,
    )


@router.post(
    "/progress",
    response_model=ProgressRecordResponse,
    summary="Submit video progress",
)
async def submit_progress(
    data: ProgressEventRequest,
    service: MicrolearningServiceDep,
    user: CurrentUser,
) -> ProgressRecordResponse:
    """Merge one progress event.

    Called from the player while a video plays. Percentages are clamped to
    [0, 100]; completion is never undone by a later event.
    """
    ensure_self_or_admin(user, data.user_id)

    try:
        record = await service.submit_progress_event(
            user_id=data.user_id,
            role=user.role,
            video_id=data.video_id,
            progress=data.progress,
            watched_percentage=data.watched_percentage,
            completed=data.completed,
            completed_at=data.completed_at,
        )
    except MicrolearningError as e:
        raise handle_microlearning_error(e) from e

    return ProgressRecordResponse.from_entity(record)


# ==============================================================================
# Completion Endpoints
# ==============================================================================


@router.post(
    "/complete",
    response_model=CompleteResponse,
    status_code=status.HTTP_200_OK,
    summary="Complete microlearning",
)
async def complete(
    data: CompleteRequest,
    service: MicrolearningServiceDep,
    user: CurrentUser,
) -> CompleteResponse:
    """Record the course completion and submit it for certification.

    Repeating the call is safe: the stored completion is returned with
    ``already_completed`` set.
    """
    ensure_self_or_admin(user, data.user_id)

    try:
        outcome = await service.complete_microlearning(
            user_id=data.user_id,
            role=user.role,
            completion_date=data.completion_date,
            snapshot=[item.to_entry() for item in data.video_progress],
        )
    except MicrolearningError as e:
        raise handle_microlearning_error(e) from e

    return CompleteResponse(
        message="Microlearning already completed"
        if outcome.already_completed
        else "Microlearning completed successfully",
        completion_confirmed=outcome.record.confirmed,
        already_completed=outcome.already_completed,
        completed_at=outcome.record.completed_at,
        always_food_safe_integration=outcome.certification.status,
        certificate_id=outcome.certification.certificate_id,
        certificate_url=outcome.certification.certificate_url,
    )


@router.get(
    "/completion/{user_id}",
    response_model=CompletionResponse,
    summary="Get completion record",
)
async def get_completion(
    user_id: int,
    service: MicrolearningServiceDep,
    user: CurrentUser,
) -> CompletionResponse:
    """Get the stored completion record."""
    ensure_self_or_admin(user, user_id)

    try:
        record = await service.get_completion(user_id)
    except MicrolearningError as e:
        raise handle_microlearning_error(e) from e

    return CompletionResponse.from_entity(record)


@router.get(
    "/certificate/{user_id}",
    response_model=CertificateResponse,
    summary="Get certificate",
)
async def get_certificate(
    user_id: int,
    service: MicrolearningServiceDep,
    user: CurrentUser,
) -> CertificateResponse:
    """Get certificate info for a confirmed completion."""
    ensure_self_or_admin(user, user_id)

    try:
        info = await service.get_certificate(user_id)
    except MicrolearningError as e:
        raise handle_microlearning_error(e) from e

    return CertificateResponse(
        user_id=info.user_id,
        certificate_url=info.certificate_url,
        certificate_id=info.certificate_id,
        completion_date=info.completed_at,
        issued_by_authority=info.issued_by_authority,
    )


# ==============================================================================
# Integration Endpoints (admin)
# ==============================================================================


@router.get(
    "/integration/status",
    response_model=IntegrationStatus,
    summary="Certification integration status",
)
async def integration_status(
    service: MicrolearningServiceDep,
    _admin: AdminUser,
) -> IntegrationStatus:
    """Report whether the certification API is configured."""
    return service.submitter.integration_status()


@router.get(
    "/integration/modules",
    response_model=TrainingModulesResponse,
    summary="Certification provider training modules",
)
async def training_modules(
    service: MicrolearningServiceDep,
    _admin: AdminUser,
) -> TrainingModulesResponse:
    """List the certification provider's training modules."""
    return TrainingModulesResponse(
        modules=await service.submitter.get_training_modules()
    )


@router.get(
    "/integration/certificates/{certificate_id}/verify",
    response_model=CertificateVerification,
    summary="Verify a certificate",
)
async def verify_certificate(
    certificate_id: str,
    service: MicrolearningServiceDep,
    _admin: AdminUser,
) -> CertificateVerification:
    """Verify a certificate with the certification provider."""
    return await service.submitter.verify_certificate(certificate_id)
