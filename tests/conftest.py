"""Shared test fixtures."""

import os
import tempfile


# Settings are cached on first import; configure the test environment first
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("PROGRESS_STORE_BACKEND", "memory")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="microlearning-logs-"))
os.environ.setdefault("LOG_REQUESTS", "false")
os.environ.setdefault("AUTH_SECRET_KEY", "test-secret-key-with-enough-length-0123456789")
os.environ.pop("ALWAYS_FOOD_SAFE_API_KEY", None)
os.environ.pop("ALWAYS_FOOD_SAFE_API_URL", None)

from collections.abc import Callable, Iterator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from microlearning.auth.permissions import UserRole  # noqa: E402
from microlearning.auth.security import create_access_token  # noqa: E402
from microlearning.config import Settings, get_settings  # noqa: E402
from microlearning.main import app as fastapi_app  # noqa: E402
from microlearning.main import build_memory_service  # noqa: E402
from microlearning.progress.service import MicrolearningService  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    """Cached test settings."""
    return get_settings()


@pytest.fixture
def memory_service(settings: Settings) -> MicrolearningService:
    """Service wired to in-memory store and collaborators."""
    return build_memory_service(settings)


@pytest.fixture
def client(memory_service: MicrolearningService) -> Iterator[TestClient]:
    """Test client with a fresh in-memory service on app.state."""
    fastapi_app.state.microlearning_service = memory_service
    fastapi_app.state.store_backend = "memory"
    yield TestClient(fastapi_app)
    fastapi_app.state.microlearning_service = None


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Factory of Bearer headers for platform users."""

    def _headers(user_id: int, role: UserRole = UserRole.CHEF) -> dict[str, str]:
        token = create_access_token({"sub": user_id, "role": role.value})
        return {"Authorization": f"Bearer {token}"}

    return _headers
