from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

Platform = Literal["android", "ios", "web"]


class DeviceIdentity(BaseModel):
    """Raw client device details; the server derives the stored device id from them."""

    device_id: Optional[str] = Field(None, min_length=1, max_length=255)
    platform: Optional[Platform] = None
    app_version: Optional[str] = Field(None, max_length=50)
