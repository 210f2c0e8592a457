"""Raw fetched facts, persisted on every run regardless of detected changes."""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_id


class ArtifactKind(str, Enum):
    REGISTRATION = "registration"
    DNS = "dns"
    HEADERS = "headers"
    CERTIFICATES = "certificates"
    HOSTING = "hosting"


class DomainArtifact(Base):
    """Latest observation of one kind of fact for a domain."""

    __tablename__ = "domain_artifacts"
    __table_args__ = (UniqueConstraint("domain_id", "kind", name="uq_artifact_domain_kind"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    domain_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("domains.id", ondelete="CASCADE"), index=True
    )
    kind: Mapped[str] = mapped_column(String(20))
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
