"""Typed results of the domain fact fetchers."""

from dataclasses import dataclass
from datetime import datetime
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


@dataclass
class FetchOutcome(Generic[T]):
    """Result of a fetch that may legitimately come back empty.

    Expected failures (no certificate, NXDOMAIN, connection refused) are
    reported through ``error_code`` instead of an exception.
    """

    ok: bool
    data: T | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> "FetchOutcome[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error_code: str) -> "FetchOutcome[T]":
        return cls(ok=False, error_code=error_code)


class MxRecord(BaseModel):
    host: str
    priority: int = 0


class DnsRecords(BaseModel):
    a: list[str] = Field(default_factory=list)
    aaaa: list[str] = Field(default_factory=list)
    mx: list[MxRecord] = Field(default_factory=list)
    ns: list[str] = Field(default_factory=list)
    txt: list[str] = Field(default_factory=list)

    @property
    def mx_hosts(self) -> list[str]:
        return [record.host for record in sorted(self.mx, key=lambda r: r.priority)]


class Header(BaseModel):
    name: str
    value: str


class HeadersResult(BaseModel):
    url: str
    status_code: int
    headers: list[Header] = Field(default_factory=list)


class CertificateInfo(BaseModel):
    subject: str
    issuer: str
    alt_names: list[str] = Field(default_factory=list)
    valid_from: datetime
    valid_to: datetime


class RegistrationRecord(BaseModel):
    """Normalized RDAP / WHOIS answer."""

    domain: str
    is_registered: bool
    registrar_name: str | None = None
    registrar_url: str | None = None
    statuses: list[str] = Field(default_factory=list)
    transfer_lock: bool | None = None
    nameservers: list[str] = Field(default_factory=list)
    creation_date: datetime | None = None
    expiration_date: datetime | None = None
    source: Literal["rdap", "whois"] | None = None
