"""Certification schemas."""

from enum import Enum

from pydantic import BaseModel, Field


class SubmissionStatus(str, Enum):
    """Outcome of a certification submission."""

    SUCCESS = "success"
    FAILED = "failed"
    NOT_CONFIGURED = "not_configured"


class SubmissionResult(BaseModel):
    """Result of submitting a completion to the certification authority."""

    status: SubmissionStatus
    certificate_id: str | None = None
    certificate_url: str | None = None
    message: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == SubmissionStatus.SUCCESS

    @classmethod
    def not_configured(cls) -> "SubmissionResult":
        return cls(
            status=SubmissionStatus.NOT_CONFIGURED,
            message="Certification authority not configured",
        )

    @classmethod
    def failed(cls, error: str) -> "SubmissionResult":
        return cls(status=SubmissionStatus.FAILED, error=error)


class IntegrationStatus(BaseModel):
    """Configuration state of the certification integration."""

    configured: bool = Field(..., description="API key and URL both set")
    api_url: str = Field(..., description="Certification API base URL")
    has_api_key: bool = Field(..., description="API key present")


class CertificateVerification(BaseModel):
    """Result of a certificate verification."""

    certificate_id: str
    valid: bool
