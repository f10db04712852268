from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field


class TenantSettingsPatch(BaseModel):
    """Partial update; `ai_api_key` set to null or "" clears the stored key."""

    ai_api_key: str | None = Field(default=None, max_length=512)
    enable_ai: bool | None = None
    enable_payment: bool | None = None
    welcome_message: str | None = Field(default=None, max_length=500)


@dataclass(slots=True)
class TenantSettingsView:
    tenant_id: str
    has_ai_api_key: bool
    ai_api_key_masked: str | None
    enable_ai: bool
    enable_payment: bool
    welcome_message: str | None
    updated_at: datetime | None
