"""HTTP client for the Always Food Safe certification API.

Endpoints used:
- POST /api/v1/completions: register a completed course, returns a certificate
- GET /api/v1/certificates/{id}/verify: check a certificate
- GET /api/v1/modules: list the provider's training modules
"""

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from microlearning.config.settings import Settings
from microlearning.progress.errors import CertificationUnavailableError


logger = structlog.get_logger(__name__)

DEFAULT_API_URL = "https://api.alwaysfoodsafe.com"


class AlwaysFoodSafeClient:
    """Thin async client over the certification REST API.

    Every failure (transport, timeout, non-2xx, malformed body) is raised as
    CertificationUnavailableError; callers decide whether to swallow it.
    """

    COMPLETIONS_PATH = "/api/v1/completions"
    VERIFY_PATH = "/api/v1/certificates/{certificate_id}/verify"
    MODULES_PATH = "/api/v1/modules"

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize client with settings.

        Args:
            settings: Application settings containing certification config.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.settings = settings
        self._api_key = settings.always_food_safe_api_key
        self._api_url = (settings.always_food_safe_api_url or DEFAULT_API_URL).rstrip(
            "/"
        )
        self._timeout = settings.certification_timeout_seconds
        self._user_agent = settings.certification_user_agent
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        """Check if both API key and URL are set."""
        return self.settings.certification_configured

    @property
    def api_url(self) -> str:
        return self._api_url

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key or ''}",
            "Accept": "application/json",
            "User-Agent": self._user_agent,
        }

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not self.is_configured:
            raise CertificationUnavailableError(
                "Certification API is not configured. "
                "Please set ALWAYS_FOOD_SAFE_API_KEY and ALWAYS_FOOD_SAFE_API_URL."
            )

        try:
            async with httpx.AsyncClient(
                base_url=self._api_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method, path, json=payload, headers=self._headers()
                )

                if not response.is_success:
                    logger.error(
                        "certification_api_request_failed",
                        path=path,
                        status_code=response.status_code,
                        response_text=response.text[:500],
                    )
                    raise CertificationUnavailableError(
                        f"Certification API error: {response.status_code} "
                        f"{response.reason_phrase}"
                    )

                data = response.json()

        except httpx.TimeoutException as e:
            logger.error("certification_api_timeout", path=path, error=str(e))
            raise CertificationUnavailableError("Certification API timeout") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("certification_api_request_error", path=path, error=str(e))
            raise CertificationUnavailableError(
                f"Certification API request error: {e}"
            ) from e
        except ValueError as e:
            logger.error("certification_api_invalid_body", path=path, error=str(e))
            raise CertificationUnavailableError(
                "Certification API returned an invalid body"
            ) from e

        if not isinstance(data, dict):
            raise CertificationUnavailableError(
                "Certification API returned an invalid body"
            )
        return data

    async def submit_completion(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a completion payload and return the decoded response."""
        return await self._request("POST", self.COMPLETIONS_PATH, payload)

    async def verify_certificate(self, certificate_id: str) -> bool:
        """Return True only when the authority confirms the certificate."""
        path = self.VERIFY_PATH.format(certificate_id=quote(certificate_id, safe=""))
        data = await self._request("GET", path)
        return data.get("valid") is True

    async def get_training_modules(self) -> list[dict[str, Any]]:
        """List the authority's training modules."""
        data = await self._request("GET", self.MODULES_PATH)
        modules = data.get("modules") or []
        return modules if isinstance(modules, list) else []
