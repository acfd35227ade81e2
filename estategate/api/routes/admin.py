from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from estategate.agents.subscription_expiry import SubscriptionExpirySweep
from estategate.core.access.catalog import CatalogRuleError, apply_catalog_update, ensure_deletable
from estategate.core.access.overrides import OverrideSynchronizer
from estategate.core.access.plans import UnknownFeatureKeyError, validate_feature_map
from estategate.core.auth import AuthContext, require_super_admin
from estategate.core.config import settings
from estategate.core.db import AsyncSessionLocal, get_db_session
from estategate.core.repositories.base import Repository
from estategate.core.repositories.billing import FeatureRepository, PlanRepository
from estategate.core.repositories.catalog import ButtonRepository, NavigationItemRepository
from estategate.schemas.admin import (
    ButtonUpdateRequest,
    CatalogEntryResponse,
    NavigationItemUpdateRequest,
    OverrideSyncRequest,
    OverrideSyncResponse,
    PlanFeaturesResponse,
    PlanFeaturesUpdateRequest,
    SweepFailureResponse,
    SweepResponse,
    SyncFailureResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def get_override_synchronizer() -> OverrideSynchronizer:
    return OverrideSynchronizer(AsyncSessionLocal, max_concurrency=settings.sync_max_concurrency)


def get_expiry_sweep() -> SubscriptionExpirySweep:
    return SubscriptionExpirySweep(AsyncSessionLocal)


@router.post("/overrides/sync", response_model=OverrideSyncResponse)
async def synchronize_overrides(
    payload: OverrideSyncRequest,
    auth: AuthContext = Depends(require_super_admin),
    synchronizer: OverrideSynchronizer = Depends(get_override_synchronizer),
) -> OverrideSyncResponse:
    logger.info("Override sync requested by user_id=%s profile_id=%s", auth.user_id, payload.profile_id)
    report = await synchronizer.synchronize(payload.profile_id)
    return OverrideSyncResponse(
        profiles=report.profiles,
        upserted=report.upserted,
        skipped=report.skipped,
        failures=[
            SyncFailureResponse(
                kind=failure.kind,
                profile_id=str(failure.profile_id),
                target_id=str(failure.target_id),
                error=failure.error,
            )
            for failure in report.failures
        ],
    )


@router.post("/subscriptions/update-expired", response_model=SweepResponse)
async def update_expired_subscriptions(
    auth: AuthContext = Depends(require_super_admin),
    sweep: SubscriptionExpirySweep = Depends(get_expiry_sweep),
) -> SweepResponse:
    logger.info("Expiry sweep requested by user_id=%s", auth.user_id)
    report = await sweep.run()
    return SweepResponse(
        scanned=report.scanned,
        transitioned=report.transitioned,
        notified=report.notified,
        failures=[
            SweepFailureResponse(
                subscription_id=str(failure.subscription_id),
                organization_id=str(failure.organization_id),
                stage=failure.stage,
                error=failure.error,
            )
            for failure in report.failures
        ],
    )


@router.put("/plans/{plan_id}/features", response_model=PlanFeaturesResponse)
async def update_plan_features(
    plan_id: UUID,
    payload: PlanFeaturesUpdateRequest,
    _: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
) -> PlanFeaturesResponse:
    plan = await PlanRepository(session).get(plan_id)
    if plan is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Plan not found",
        )

    features = payload.stored_features()
    try:
        validate_feature_map(features, await FeatureRepository(session).active_keys())
    except UnknownFeatureKeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Unknown feature keys", "keys": exc.keys},
        ) from exc

    plan.features = features
    await session.commit()
    return PlanFeaturesResponse(plan_id=str(plan.id), features=features)


async def _update_catalog_entry(
    repository: Repository[Any],
    entry_id: UUID,
    changes: dict[str, Any],
    session: AsyncSession,
) -> CatalogEntryResponse:
    entry = await repository.get(entry_id)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Catalog entry not found",
        )

    feature_key = changes.get("feature_key")
    if feature_key is not None:
        try:
            validate_feature_map([feature_key], await FeatureRepository(session).active_keys())
        except UnknownFeatureKeyError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"message": "Unknown feature keys", "keys": exc.keys},
            ) from exc

    if "key" in changes and changes["key"] != entry.key:
        clash = await repository.get_one_by(key=changes["key"])
        if clash is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Key is already in use",
            )

    try:
        changed = apply_catalog_update(entry, changes)
    except CatalogRuleError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    await session.commit()
    return CatalogEntryResponse(
        id=str(entry.id),
        key=entry.key,
        is_system=entry.is_system,
        is_active=entry.is_active,
        changed=changed,
    )


async def _delete_catalog_entry(
    repository: Repository[Any],
    entry_id: UUID,
    session: AsyncSession,
) -> Response:
    entry = await repository.get(entry_id)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Catalog entry not found",
        )

    try:
        ensure_deletable(entry)
    except CatalogRuleError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    await session.delete(entry)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/buttons/{button_id}", response_model=CatalogEntryResponse)
async def update_button(
    button_id: UUID,
    payload: ButtonUpdateRequest,
    _: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
) -> CatalogEntryResponse:
    return await _update_catalog_entry(
        ButtonRepository(session),
        button_id,
        payload.model_dump(exclude_unset=True),
        session,
    )


@router.delete("/buttons/{button_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_button(
    button_id: UUID,
    _: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
) -> Response:
    return await _delete_catalog_entry(ButtonRepository(session), button_id, session)


@router.patch("/navigation-items/{item_id}", response_model=CatalogEntryResponse)
async def update_navigation_item(
    item_id: UUID,
    payload: NavigationItemUpdateRequest,
    _: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
) -> CatalogEntryResponse:
    return await _update_catalog_entry(
        NavigationItemRepository(session),
        item_id,
        payload.model_dump(exclude_unset=True),
        session,
    )


@router.delete("/navigation-items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_navigation_item(
    item_id: UUID,
    _: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
) -> Response:
    return await _delete_catalog_entry(NavigationItemRepository(session), item_id, session)
