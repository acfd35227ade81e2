from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class RouteDecisionResponse(BaseModel):
    path: str
    allow: bool
    redirect_to: str | None = None
    reason: str


class ObjectActionResponse(BaseModel):
    object_type: str
    action: str
    allowed: bool


class AffordanceResponse(BaseModel):
    kind: Literal["button", "navigation", "feature"]
    key: str
    visible: bool
    enabled: bool
    label: str | None = None
    icon: str | None = None


class NavigationEntryResponse(BaseModel):
    key: str
    name: str
    href: str
    icon: str | None = None
    sort_order: int
    parent_key: str | None = None
    enabled: bool


class SubscriptionStateResponse(BaseModel):
    organization_id: str | None = None
    is_configured: bool
    subscription_status: str | None = None
    has_active_access: bool
    effective_plan_id: str | None = None
    current_period_end: datetime | None = None
    effective_expiration: datetime | None = None
