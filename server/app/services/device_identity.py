"""Recipient identity: an authenticated user or a derived anonymous device id."""
from __future__ import annotations

import hashlib
from dataclasses import dataclass

from app.core.errors import ValidationFailedError
from app.models.user import User

PLATFORMS = ("android", "ios", "web")
DEVICE_ID_LENGTH = 32


def derive_device_id(raw_device_id: str, platform: str, app_version: str | None = "") -> str:
    """Hash the raw client id with its platform and app version.

    The result is the first 32 hex characters of
    ``sha256("{raw}:{platform}:{app_version}")`` and is the only device
    identifier the server stores.
    """

    if not raw_device_id or not platform:
        raise ValidationFailedError("Device ID and platform are required")
    if platform not in PLATFORMS:
        raise ValidationFailedError("Platform must be one of: android, ios, web")
    combined = f"{raw_device_id}:{platform}:{app_version or ''}"
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()[:DEVICE_ID_LENGTH]


@dataclass(frozen=True)
class Recipient:
    user_id: int | None = None
    device_id: str | None = None

    def __post_init__(self) -> None:
        if (self.user_id is None) == (self.device_id is None):
            raise ValueError("A recipient is either a user or a device, never both or neither")

    @property
    def is_user(self) -> bool:
        return self.user_id is not None


def resolve_recipient(
    user: User | None,
    device_id: str | None = None,
    platform: str | None = None,
    app_version: str | None = None,
) -> Recipient:
    """Authenticated callers are always the user; everyone else must identify a device."""

    if user is not None:
        return Recipient(user_id=user.id)
    if not device_id or not platform:
        raise ValidationFailedError("Authentication required or deviceId and platform must be provided")
    return Recipient(device_id=derive_device_id(device_id, platform, app_version))
