"""Tests for the certification client and submitter."""

import json
from datetime import UTC, datetime

import httpx
import pytest

from microlearning.certification.client import DEFAULT_API_URL, AlwaysFoodSafeClient
from microlearning.certification.schemas import SubmissionStatus
from microlearning.certification.service import (
    CertificationSubmitter,
    build_completion_payload,
)
from microlearning.config.settings import Settings
from microlearning.progress.collaborators import build_user_profile
from microlearning.progress.errors import CertificationUnavailableError
from microlearning.progress.models import VideoCompletionEntry


T = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)
API_URL = "https://afs.test"


@pytest.fixture
def configured_settings() -> Settings:
    return Settings(
        always_food_safe_api_key="afs-key",
        always_food_safe_api_url=API_URL,
    )


@pytest.fixture
def unconfigured_settings() -> Settings:
    return Settings(always_food_safe_api_key=None, always_food_safe_api_url=None)


@pytest.fixture
def profile():
    return build_user_profile(
        user_id=7,
        username="chef.maria",
        display_name=None,
        email=None,
        email_domain="localcooks.ca",
    )


@pytest.fixture
def snapshot() -> list[VideoCompletionEntry]:
    return [
        VideoCompletionEntry("basics-fifo", True, 100, T),
        VideoCompletionEntry("howto-sanitizing", True, 100, None),
    ]


def _submitter(settings: Settings, handler) -> CertificationSubmitter:
    client = AlwaysFoodSafeClient(settings, transport=httpx.MockTransport(handler))
    return CertificationSubmitter(client, settings)


class TestBuildCompletionPayload:
    """Tests for build_completion_payload."""

    def test_payload_shape(self, profile, snapshot) -> None:
        payload = build_completion_payload(
            profile, T, snapshot, provider="LocalCooks", course_modules=["m1", "m2"]
        )

        assert payload["user"] == {
            "id": 7,
            "name": "chef.maria",
            "email": "chef.maria@localcooks.ca",
        }
        assert payload["completion"]["date"] == T.isoformat()
        assert payload["completion"]["modules"][0] == {
            "id": "basics-fifo",
            "completed": True,
            "progress": 100,
            "completedAt": T.isoformat(),
        }
        assert payload["completion"]["modules"][1]["completedAt"] is None
        assert payload["course"] == {
            "type": "microlearning",
            "provider": "LocalCooks",
            "modules": ["m1", "m2"],
        }


class TestAlwaysFoodSafeClient:
    """Tests for AlwaysFoodSafeClient."""

    def test_configuration_requires_key_and_url(self, unconfigured_settings) -> None:
        client = AlwaysFoodSafeClient(unconfigured_settings)
        assert client.is_configured is False
        assert client.api_url == DEFAULT_API_URL
        assert client.has_api_key is False

        key_only = AlwaysFoodSafeClient(
            Settings(always_food_safe_api_key="k", always_food_safe_api_url=None)
        )
        assert key_only.is_configured is False
        assert key_only.has_api_key is True

    @pytest.mark.asyncio
    async def test_submit_sends_headers_and_body(self, configured_settings) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["agent"] = request.headers["user-agent"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"certificate": {"id": "c-1"}})

        client = AlwaysFoodSafeClient(
            configured_settings, transport=httpx.MockTransport(handler)
        )
        data = await client.submit_completion({"user": {"id": 7}})

        assert data == {"certificate": {"id": "c-1"}}
        assert seen["url"] == f"{API_URL}/api/v1/completions"
        assert seen["auth"] == "Bearer afs-key"
        assert seen["agent"] == "LocalCooks-Platform/1.0"
        assert seen["body"] == {"user": {"id": 7}}

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self, configured_settings) -> None:
        client = AlwaysFoodSafeClient(
            configured_settings,
            transport=httpx.MockTransport(lambda r: httpx.Response(502, text="bad")),
        )
        with pytest.raises(CertificationUnavailableError) as exc_info:
            await client.submit_completion({})
        assert "502" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_invalid_body_raises(self, configured_settings) -> None:
        client = AlwaysFoodSafeClient(
            configured_settings,
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>")),
        )
        with pytest.raises(CertificationUnavailableError):
            await client.submit_completion({})

    @pytest.mark.asyncio
    async def test_verify_certificate(self, configured_settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/certificates/c-1/verify"
            return httpx.Response(200, json={"valid": True})

        client = AlwaysFoodSafeClient(
            configured_settings, transport=httpx.MockTransport(handler)
        )
        assert await client.verify_certificate("c-1") is True

    @pytest.mark.asyncio
    async def test_verify_escapes_certificate_id(self, configured_settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.raw_path == b"/api/v1/certificates/a%2Fb%3Fc/verify"
            return httpx.Response(200, json={"valid": True})

        client = AlwaysFoodSafeClient(
            configured_settings, transport=httpx.MockTransport(handler)
        )
        assert await client.verify_certificate("a/b?c") is True

    @pytest.mark.asyncio
    async def test_invalid_url_raises(self, configured_settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.InvalidURL("Invalid port: 'abc'")

        client = AlwaysFoodSafeClient(
            configured_settings, transport=httpx.MockTransport(handler)
        )
        with pytest.raises(CertificationUnavailableError):
            await client.submit_completion({})


class TestCertificationSubmitter:
    """Tests for CertificationSubmitter."""

    @pytest.mark.asyncio
    async def test_not_configured_makes_no_call(
        self, unconfigured_settings, profile, snapshot
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        submitter = _submitter(unconfigured_settings, handler)
        result = await submitter.submit(7, profile, T, snapshot)

        assert result.status == SubmissionStatus.NOT_CONFIGURED
        assert result.ok is False

    @pytest.mark.asyncio
    async def test_success(self, configured_settings, profile, snapshot) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                201,
                json={
                    "certificate": {"id": "c-9", "url": "https://afs.test/c-9.pdf"},
                    "message": "ok",
                },
            )

        result = await _submitter(configured_settings, handler).submit(
            7, profile, T, snapshot
        )

        assert result.ok is True
        assert result.certificate_id == "c-9"
        assert result.certificate_url == "https://afs.test/c-9.pdf"
        assert result.message == "ok"

    @pytest.mark.asyncio
    async def test_network_error_is_failed_result(
        self, configured_settings, profile, snapshot
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await _submitter(configured_settings, handler).submit(
            7, profile, T, snapshot
        )

        assert result.status == SubmissionStatus.FAILED
        assert result.ok is False
        assert "connection refused" in result.error

    @pytest.mark.asyncio
    async def test_timeout_is_failed_result(
        self, configured_settings, profile, snapshot
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        result = await _submitter(configured_settings, handler).submit(
            7, profile, T, snapshot
        )

        assert result.status == SubmissionStatus.FAILED

    @pytest.mark.asyncio
    async def test_unexpected_body_shape_is_failed_result(
        self, configured_settings, profile, snapshot
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"message": 123, "certificate": {"id": "c1"}}
            )

        result = await _submitter(configured_settings, handler).submit(
            7, profile, T, snapshot
        )

        assert result.status == SubmissionStatus.FAILED
        assert result.certificate_id is None

    @pytest.mark.asyncio
    async def test_verify_failure_reads_invalid(self, configured_settings) -> None:
        submitter = _submitter(
            configured_settings, lambda r: httpx.Response(500, text="boom")
        )
        verification = await submitter.verify_certificate("c-1")
        assert verification.valid is False

    @pytest.mark.asyncio
    async def test_training_modules(self, configured_settings) -> None:
        submitter = _submitter(
            configured_settings,
            lambda r: httpx.Response(200, json={"modules": [{"id": "m1"}]}),
        )
        assert await submitter.get_training_modules() == [{"id": "m1"}]

        failing = _submitter(configured_settings, lambda r: httpx.Response(404))
        assert await failing.get_training_modules() == []

    def test_integration_status(self, configured_settings, unconfigured_settings) -> None:
        status = _submitter(configured_settings, None).integration_status()
        assert status.configured is True
        assert status.api_url == API_URL
        assert status.has_api_key is True

        status = _submitter(unconfigured_settings, None).integration_status()
        assert status.configured is False
        assert status.api_url == DEFAULT_API_URL
