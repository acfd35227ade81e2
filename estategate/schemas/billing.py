from __future__ import annotations

from pydantic import BaseModel


class BillingWebhookResponse(BaseModel):
    received: bool
    event_type: str
    organization_id: str | None = None
    status: str | None = None
    updated: bool
