"""Database models package."""

from .artifact import ArtifactKind, DomainArtifact
from .base import Base
from .domain import Domain, User
from .notification import EmailStatus, Notification, NotificationType, UserNotificationPreferences
from .provider import Provider, ProviderCategory, ProviderSource
from .snapshot import DomainSnapshot
from .tracked_domain import TrackedDomain, VerificationMethod, VerificationStatus
from .workflow import RunStatus, WorkflowRun, WorkflowStep

__all__ = [
    "Base",
    "Domain",
    "User",
    "TrackedDomain",
    "VerificationMethod",
    "VerificationStatus",
    "DomainSnapshot",
    "Provider",
    "ProviderCategory",
    "ProviderSource",
    "Notification",
    "NotificationType",
    "EmailStatus",
    "UserNotificationPreferences",
    "DomainArtifact",
    "ArtifactKind",
    "WorkflowRun",
    "WorkflowStep",
    "RunStatus",
]
