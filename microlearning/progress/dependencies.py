"""FastAPI dependencies for microlearning.

Provides dependency injection for:
- Microlearning service
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .errors import IncompleteRequirementsError, MicrolearningError, UnauthorizedError
from .service import MicrolearningService


async def get_microlearning_service(request: Request) -> MicrolearningService:
    """Get microlearning service from app state.

    Args:
        request: FastAPI request

    Returns:
        MicrolearningService instance
    """
    app_state = request.app.state
    service = getattr(app_state, "microlearning_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Microlearning service not available",
        )
    return service


# Type alias for dependency injection
MicrolearningServiceDep = Annotated[
    MicrolearningService, Depends(get_microlearning_service)
]


def handle_microlearning_error(error: MicrolearningError) -> HTTPException:
    """Convert microlearning errors to HTTP exceptions.

    Args:
        error: Microlearning error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "invalid_argument": status.HTTP_400_BAD_REQUEST,
        "access_denied": status.HTTP_403_FORBIDDEN,
        "incomplete_requirements": status.HTTP_400_BAD_REQUEST,
        "already_completed": status.HTTP_409_CONFLICT,
        "user_not_found": status.HTTP_404_NOT_FOUND,
        "completion_not_found": status.HTTP_404_NOT_FOUND,
        "store_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    detail: str | dict = error.message
    headers = None
    if isinstance(error, IncompleteRequirementsError):
        detail = {"message": error.message, "missing_videos": error.missing}
    elif isinstance(error, UnauthorizedError):
        detail = {
            "message": error.message,
            "access_level": error.access_level,
            "first_video_only": error.first_video_only,
        }
    elif error.retryable:
        headers = {"Retry-After": "1"}

    return HTTPException(status_code=status_code, detail=detail, headers=headers)
