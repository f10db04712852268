from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID


@dataclass(slots=True)
class CheckoutSession:
    id: str
    url: str
    expires_at: str | None = None


@dataclass(slots=True)
class CheckoutResult:
    transaction_id: UUID
    checkout_session_id: str
    checkout_url: str


@dataclass(slots=True)
class WebhookEvent:
    id: str
    type: str
    data: dict[str, Any]
    timestamp: str | None = None


@dataclass(slots=True)
class WebhookAck:
    received: bool = True
    duplicate: bool = False
