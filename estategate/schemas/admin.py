from __future__ import annotations

from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, Field, StrictBool, StringConstraints, field_validator

KEY_REGEX = r"^[a-z][a-z0-9_]*(\.[a-z0-9_-]+)*$"
ACTION_REGEX = r"^(create|read|update|edit|delete|view|export|import|print|custom)$"


class OverrideSyncRequest(BaseModel):
    profile_id: UUID | None = None


class SyncFailureResponse(BaseModel):
    kind: str
    profile_id: str
    target_id: str
    error: str


class OverrideSyncResponse(BaseModel):
    profiles: int
    upserted: int
    skipped: int
    failures: list[SyncFailureResponse] = Field(default_factory=list)


class SweepFailureResponse(BaseModel):
    subscription_id: str
    organization_id: str
    stage: str
    error: str


class SweepResponse(BaseModel):
    scanned: int
    transitioned: int
    notified: int
    failures: list[SweepFailureResponse] = Field(default_factory=list)


FeatureKey = Annotated[str, StringConstraints(pattern=KEY_REGEX, max_length=120)]


class FeatureSetting(BaseModel):
    enabled: StrictBool
    limits: dict[str, int] = Field(default_factory=dict)


class PlanFeaturesUpdateRequest(BaseModel):
    features: dict[FeatureKey, StrictBool | FeatureSetting]

    def stored_features(self) -> dict[str, Any]:
        return {
            key: value if isinstance(value, bool) else value.model_dump()
            for key, value in self.features.items()
        }


class PlanFeaturesResponse(BaseModel):
    plan_id: str
    features: dict[str, Any]


class ButtonUpdateRequest(BaseModel):
    key: str | None = Field(default=None, pattern=KEY_REGEX, max_length=120)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    label: str | None = Field(default=None, min_length=1, max_length=255)
    object_type: str | None = Field(default=None, min_length=1, max_length=80)
    action: str | None = Field(default=None, pattern=ACTION_REGEX)
    icon: str | None = Field(default=None, max_length=80)
    feature_key: str | None = Field(default=None, pattern=KEY_REGEX, max_length=120)
    sort_order: int | None = None
    is_active: bool | None = None

    @field_validator("key", "name", "label", "object_type", "action", "sort_order", "is_active")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("field cannot be null")
        return value


class NavigationItemUpdateRequest(BaseModel):
    key: str | None = Field(default=None, pattern=KEY_REGEX, max_length=120)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    href: str | None = Field(default=None, pattern=r"^/", max_length=255)
    icon: str | None = Field(default=None, max_length=80)
    sort_order: int | None = None
    object_type: str | None = Field(default=None, min_length=1, max_length=80)
    action: str | None = Field(default=None, pattern=ACTION_REGEX)
    feature_key: str | None = Field(default=None, pattern=KEY_REGEX, max_length=120)
    parent_key: str | None = Field(default=None, pattern=KEY_REGEX, max_length=120)
    is_active: bool | None = None

    @field_validator("key", "name", "href", "action", "sort_order", "is_active")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("field cannot be null")
        return value


class CatalogEntryResponse(BaseModel):
    id: str
    key: str
    is_system: bool
    is_active: bool
    changed: list[str] = Field(default_factory=list)
