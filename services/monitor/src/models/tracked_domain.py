"""Tracked domain model - a user's claim on a domain."""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_id


class VerificationMethod(str, Enum):
    """Ownership proof methods, in the order they are tried."""

    DNS_TXT = "dns_txt"
    HTML_FILE = "html_file"
    META_TAG = "meta_tag"


class VerificationStatus(str, Enum):
    """Re-verification lifecycle."""

    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    FAILING = "failing"  # proof missing, inside the grace period


class TrackedDomain(Base):
    """A domain tracked by one user."""

    __tablename__ = "user_tracked_domains"
    __table_args__ = (UniqueConstraint("user_id", "domain_id", name="uq_tracked_user_domain"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)
    domain_id: Mapped[str] = mapped_column(String(36), ForeignKey("domains.id"), index=True)

    verification_token: Mapped[str] = mapped_column(String(64))
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    verification_method: Mapped[str | None] = mapped_column(String(20))
    verification_status: Mapped[str] = mapped_column(
        String(20), default=VerificationStatus.UNVERIFIED.value
    )
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    verification_failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # {"registration_changes": {"email": false, "in_app": true}, ...}
    notification_overrides: Mapped[dict] = mapped_column(JSON, default=dict)

    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    muted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
