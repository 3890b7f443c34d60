"""Lookups owned by other platform services.

The applications service decides approval and the users service owns
profiles; this service only reads them, at call time, with no caching.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from .errors import StoreUnavailableError
from .store import TRANSIENT_DRIVER_ERRORS


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

APPROVED_STATUS = "approved"


@dataclass(frozen=True)
class UserProfile:
    """User data needed for certification payloads."""

    user_id: int
    display_name: str
    email_or_username: str
    username: str | None = None


def build_user_profile(
    user_id: int,
    username: str | None,
    display_name: str | None,
    email: str | None,
    email_domain: str,
) -> UserProfile:
    """Build a profile, falling back to ``{username}@{domain}`` without email."""
    name = display_name or username or f"user-{user_id}"
    contact = email or f"{username or f'user-{user_id}'}@{email_domain}"
    return UserProfile(
        user_id=user_id,
        display_name=name,
        email_or_username=contact,
        username=username,
    )


class ApplicationStatusProvider(Protocol):
    """Source of the application-approval signal."""

    async def has_approved_application(self, user_id: int) -> bool: ...


class UserProfileProvider(Protocol):
    """Source of user profiles."""

    async def get_user_profile(self, user_id: int) -> UserProfile | None: ...


# ==============================================================================
# Cassandra Implementations
# ==============================================================================


class CassandraApplicationStatusProvider:
    """Reads application statuses from ``applications_by_user``."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._get_statuses = self.session.prepare(f"""
            SELECT status FROM {keyspace}.applications_by_user
            WHERE user_id = ?
        """)

    async def has_approved_application(self, user_id: int) -> bool:
        """Check for any approved application.

        A failed lookup counts as "not approved": the caller then only gets
        limited access, never a server error.
        """
        try:
            rows = await self.session.aexecute(self._get_statuses, [user_id])
        except TRANSIENT_DRIVER_ERRORS as e:
            logger.warning(
                "application_status_lookup_failed",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return any((row.status or "").lower() == APPROVED_STATUS for row in rows)


class CassandraUserProfileProvider:
    """Reads user profiles from ``users``."""

    def __init__(self, session: "Session", keyspace: str, email_domain: str):
        self.session = session
        self.keyspace = keyspace
        self.email_domain = email_domain
        self._get_user = self.session.prepare(f"""
            SELECT id, username, display_name, email FROM {keyspace}.users
            WHERE id = ?
        """)

    async def get_user_profile(self, user_id: int) -> UserProfile | None:
        try:
            result = await self.session.aexecute(self._get_user, [user_id])
        except TRANSIENT_DRIVER_ERRORS as e:
            raise StoreUnavailableError("User profile lookup failed") from e
        row = result.one()
        if not row:
            return None
        return build_user_profile(
            user_id=row.id,
            username=row.username,
            display_name=row.display_name,
            email=row.email,
            email_domain=self.email_domain,
        )


# ==============================================================================
# In-Memory Implementations
# ==============================================================================


class InMemoryApplicationStatusProvider:
    """Approval flags held in memory (development and tests)."""

    def __init__(self, approved_user_ids: set[int] | None = None):
        self.approved_user_ids = set(approved_user_ids or ())

    def approve(self, user_id: int) -> None:
        self.approved_user_ids.add(user_id)

    async def has_approved_application(self, user_id: int) -> bool:
        return user_id in self.approved_user_ids


class InMemoryUserProfileProvider:
    """Profiles held in memory (development and tests)."""

    def __init__(self, email_domain: str = "localcooks.ca"):
        self.email_domain = email_domain
        self._profiles: dict[int, UserProfile] = {}

    def add_user(self, user_id: int, **fields: Any) -> UserProfile:
        profile = build_user_profile(
            user_id=user_id,
            username=fields.get("username"),
            display_name=fields.get("display_name"),
            email=fields.get("email"),
            email_domain=self.email_domain,
        )
        self._profiles[user_id] = profile
        return profile

    async def get_user_profile(self, user_id: int) -> UserProfile | None:
        return self._profiles.get(user_id)
