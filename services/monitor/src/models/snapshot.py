"""Baseline snapshot model used by change detection."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_id


class DomainSnapshot(Base):
    """Last acknowledged facts for a tracked domain.

    ``registration`` and ``certificate`` hold the JSON form of
    ``RegistrationSnapshot`` / ``CertificateSnapshot``; an empty dict means
    "nothing acknowledged yet".
    """

    __tablename__ = "domain_snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tracked_domain_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_tracked_domains.id", ondelete="CASCADE"),
        unique=True,
        index=True,
    )

    registration: Mapped[dict] = mapped_column(JSON, default=dict)
    certificate: Mapped[dict] = mapped_column(JSON, default=dict)

    dns_provider_id: Mapped[str | None] = mapped_column(String(36))
    hosting_provider_id: Mapped[str | None] = mapped_column(String(36))
    email_provider_id: Mapped[str | None] = mapped_column(String(36))

    # Set once the baseline has been filled with observed facts
    initialized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
