from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any
from uuid import UUID

from estategate.core.context import request_cached
from estategate.core.repositories.billing import PlanRepository

logger = logging.getLogger(__name__)

UNLIMITED = -1


@dataclass(slots=True, frozen=True)
class FeatureEntitlement:
    is_enabled: bool
    limits: Mapping[str, int | None] = field(default_factory=lambda: MappingProxyType({}))

    def limit(self, name: str) -> int | None:
        """Numeric cap for ``name``; ``None`` means no cap."""
        return self.limits.get(name)


DISABLED = FeatureEntitlement(is_enabled=False)


@dataclass(slots=True, frozen=True)
class PlanLimits:
    lots: int | None = None
    users: int | None = None
    extranet_tenants: int | None = None


class UnknownFeatureKeyError(ValueError):
    def __init__(self, keys: Iterable[str]) -> None:
        self.keys = sorted(keys)
        super().__init__(f"Unknown feature keys: {', '.join(self.keys)}")


def normalize_limit(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return None if number == UNLIMITED else number


def parse_entitlement(key: str, raw: Any) -> FeatureEntitlement:
    """Read one plan feature map value: ``true``/``false`` or ``{"enabled", "limits"}``."""
    if isinstance(raw, bool):
        return FeatureEntitlement(is_enabled=raw)
    if isinstance(raw, Mapping):
        if raw.get("enabled") is not True:
            return DISABLED
        raw_limits = raw.get("limits") or {}
        if not isinstance(raw_limits, Mapping):
            raw_limits = {}
        limits = {str(name): normalize_limit(value) for name, value in raw_limits.items()}
        return FeatureEntitlement(is_enabled=True, limits=MappingProxyType(limits))
    logger.warning("Ignoring malformed plan feature value key=%s type=%s", key, type(raw).__name__)
    return DISABLED


def is_limit_exceeded(current_count: int, limit: int | None) -> bool:
    if limit is None or limit == UNLIMITED:
        return False
    return current_count >= limit


def validate_feature_map(features: Iterable[str], registry_keys: Iterable[str]) -> None:
    """Reject feature keys, or the keys of a plan feature map, missing from the registry."""
    unknown = set(features) - set(registry_keys)
    if unknown:
        raise UnknownFeatureKeyError(unknown)


class PlanFeatureResolver:
    def __init__(self, plans: PlanRepository) -> None:
        self.plans = plans

    async def features_for(self, plan_id: UUID | None) -> dict[str, FeatureEntitlement]:
        if plan_id is None:
            return {}
        return await request_cached(("plan_features", plan_id), lambda: self._features_for(plan_id))

    async def _features_for(self, plan_id: UUID) -> dict[str, FeatureEntitlement]:
        plan = await self.plans.get(plan_id)
        if plan is None or not isinstance(plan.features, Mapping):
            return {}
        return {key: parse_entitlement(key, raw) for key, raw in plan.features.items()}

    async def entitlement(self, plan_id: UUID | None, feature_key: str) -> FeatureEntitlement:
        return (await self.features_for(plan_id)).get(feature_key, DISABLED)

    async def limits_for(self, plan_id: UUID | None) -> PlanLimits:
        if plan_id is None:
            return PlanLimits(lots=0, users=0, extranet_tenants=0)
        plan = await self.plans.get(plan_id)
        if plan is None:
            return PlanLimits(lots=0, users=0, extranet_tenants=0)
        return PlanLimits(
            lots=normalize_limit(plan.max_lots),
            users=normalize_limit(plan.max_users),
            extranet_tenants=normalize_limit(plan.max_extranet_tenants),
        )
