"""Channel resolution: per-domain override > global preference > default on."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from src.models.notification import UserNotificationPreferences


class NotificationCategory(str, Enum):
    REGISTRATION_CHANGES = "registration_changes"
    PROVIDER_CHANGES = "provider_changes"
    CERTIFICATE_CHANGES = "certificate_changes"
    VERIFICATION_STATUS = "verification_status"


@dataclass(frozen=True)
class Channels:
    email: bool
    in_app: bool

    @property
    def any(self) -> bool:
        return self.email or self.in_app

    def names(self) -> list[str]:
        return [name for name, enabled in (("email", self.email), ("in_app", self.in_app)) if enabled]


NO_CHANNELS = Channels(email=False, in_app=False)


def resolve_channels(
    category: NotificationCategory,
    preferences: UserNotificationPreferences | None,
    overrides: dict[str, Any] | None,
    muted: bool = False,
) -> Channels:
    if muted:
        return NO_CHANNELS

    email = in_app = True
    if preferences is not None:
        email = bool(getattr(preferences, category.value))
        in_app = bool(getattr(preferences, f"{category.value}_in_app"))

    override = (overrides or {}).get(category.value) or {}
    if override.get("email") is not None:
        email = bool(override["email"])
    if override.get("in_app") is not None:
        in_app = bool(override["in_app"])

    return Channels(email=email, in_app=in_app)
