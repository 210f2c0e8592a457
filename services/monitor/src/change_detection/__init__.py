"""Snapshot diffing and change messages."""

from .detection import detect_certificate_change, detect_provider_change, detect_registration_change
from .types import (
    CertificateChange,
    CertificateSnapshot,
    DetectChangesResult,
    ProviderChange,
    ProviderSnapshot,
    RegistrationChange,
    RegistrationSnapshot,
)

__all__ = [
    "detect_registration_change",
    "detect_provider_change",
    "detect_certificate_change",
    "RegistrationSnapshot",
    "ProviderSnapshot",
    "CertificateSnapshot",
    "RegistrationChange",
    "ProviderChange",
    "CertificateChange",
    "DetectChangesResult",
]
