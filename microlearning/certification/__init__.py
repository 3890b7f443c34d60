"""Certification authority integration."""

from microlearning.certification.client import AlwaysFoodSafeClient
from microlearning.certification.schemas import SubmissionResult, SubmissionStatus
from microlearning.certification.service import CertificationSubmitter


__all__ = [
    "AlwaysFoodSafeClient",
    "CertificationSubmitter",
    "SubmissionResult",
    "SubmissionStatus",
]
