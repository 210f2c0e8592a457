"""Provider catalog model."""

from enum import Enum

from sqlalchemy import JSON, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_id


class ProviderCategory(str, Enum):
    REGISTRAR = "registrar"
    DNS = "dns"
    HOSTING = "hosting"
    EMAIL = "email"
    CA = "ca"


class ProviderSource(str, Enum):
    CATALOG = "catalog"  # curated, carries a rule
    DISCOVERED = "discovered"  # created from an unmatched NS/MX host


class Provider(Base):
    """A registrar, DNS, hosting, email or certificate provider."""

    __tablename__ = "providers"
    __table_args__ = (UniqueConstraint("category", "domain", name="uq_provider_category_domain"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    category: Mapped[str] = mapped_column(String(20), index=True)
    name: Mapped[str] = mapped_column(String(255))
    domain: Mapped[str] = mapped_column(String(253))
    rule: Mapped[dict | None] = mapped_column(JSON)
    source: Mapped[str] = mapped_column(String(20), default=ProviderSource.CATALOG.value)
    # Evaluation order inside a category; first match wins
    position: Mapped[int] = mapped_column(Integer, default=0)
