"""Authentication schemas."""

from pydantic import BaseModel, Field

from microlearning.auth.permissions import UserRole, is_admin


class AuthenticatedUser(BaseModel):
    """Caller identity extracted from the access token."""

    id: int = Field(..., gt=0, description="Platform user id")
    role: UserRole | None = Field(None, description="Platform role")
    username: str | None = Field(None, description="Username, when present")

    @property
    def is_admin(self) -> bool:
        return is_admin(self.role)
