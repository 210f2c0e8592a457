"""Baseline snapshots and the change events derived from them."""

from datetime import datetime

from pydantic import BaseModel, Field


class RegistrationSnapshot(BaseModel):
    registrar_provider_id: str | None = None
    nameservers: list[str] = Field(default_factory=list)
    transfer_lock: bool | None = None
    statuses: list[str] = Field(default_factory=list)


class ProviderSnapshot(BaseModel):
    dns_provider_id: str | None = None
    hosting_provider_id: str | None = None
    email_provider_id: str | None = None


class CertificateSnapshot(BaseModel):
    ca_provider_id: str | None = None
    issuer: str | None = None
    valid_to: datetime | None = None


class RegistrationChange(BaseModel):
    registrar_changed: bool
    nameservers_changed: bool
    transfer_lock_changed: bool
    statuses_changed: bool
    previous: RegistrationSnapshot
    current: RegistrationSnapshot


class ProviderChange(BaseModel):
    dns_changed: bool
    hosting_changed: bool
    email_changed: bool
    previous: ProviderSnapshot
    current: ProviderSnapshot


class CertificateChange(BaseModel):
    ca_changed: bool
    issuer_changed: bool
    valid_to_changed: bool
    previous: CertificateSnapshot
    current: CertificateSnapshot


class DetectChangesResult(BaseModel):
    registration_changes: bool = False
    provider_changes: bool = False
    certificate_changes: bool = False
    skipped: bool = False
    reason: str | None = None
