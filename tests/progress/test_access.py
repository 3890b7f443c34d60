"""Tests for the video access gate."""

import pytest

from microlearning.auth.permissions import UserRole
from microlearning.progress.access import (
    AccessLevel,
    can_access_video,
    ensure_can_access_video,
    resolve_access_level,
)
from microlearning.progress.errors import UnauthorizedError


FREE_VIDEO = "basics-cross-contamination"


class TestResolveAccessLevel:
    """Truth table of resolve_access_level."""

    @pytest.mark.parametrize("role", [UserRole.ADMIN, "admin"])
    @pytest.mark.parametrize("approved", [True, False])
    @pytest.mark.parametrize("confirmed", [True, False])
    def test_admin_always_full(self, role, approved: bool, confirmed: bool) -> None:
        assert resolve_access_level(role, approved, confirmed) == AccessLevel.FULL

    @pytest.mark.parametrize(
        "role", [UserRole.CHEF, UserRole.DELIVERY_PARTNER, UserRole.MANAGER, None]
    )
    @pytest.mark.parametrize(
        "approved,confirmed,expected",
        [
            (False, False, AccessLevel.LIMITED),
            (True, False, AccessLevel.FULL),
            (False, True, AccessLevel.FULL),
            (True, True, AccessLevel.FULL),
        ],
    )
    def test_non_admin(
        self, role, approved: bool, confirmed: bool, expected: AccessLevel
    ) -> None:
        assert resolve_access_level(role, approved, confirmed) == expected


class TestCanAccessVideo:
    """Tests for can_access_video."""

    def test_limited_only_free_video(self) -> None:
        assert can_access_video(FREE_VIDEO, AccessLevel.LIMITED, FREE_VIDEO)
        assert not can_access_video("basics-fifo", AccessLevel.LIMITED, FREE_VIDEO)

    @pytest.mark.parametrize("video_id", [FREE_VIDEO, "basics-fifo", "howto-sanitizing"])
    def test_full_everything(self, video_id: str) -> None:
        assert can_access_video(video_id, AccessLevel.FULL, FREE_VIDEO)


class TestEnsureCanAccessVideo:
    """Tests for ensure_can_access_video."""

    def test_raises_with_access_details(self) -> None:
        with pytest.raises(UnauthorizedError) as exc_info:
            ensure_can_access_video("basics-fifo", AccessLevel.LIMITED, FREE_VIDEO)

        error = exc_info.value
        assert error.code == "access_denied"
        assert error.access_level == "limited"
        assert error.first_video_only is True

    def test_allows_free_video(self) -> None:
        ensure_can_access_video(FREE_VIDEO, AccessLevel.LIMITED, FREE_VIDEO)
