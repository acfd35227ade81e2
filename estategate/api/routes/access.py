from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from estategate.core.access.engine import AccessDecisionEngine
from estategate.core.access.subscriptions import effective_expiration
from estategate.core.auth import (
    AuthContext,
    OptionalAuth,
    get_access_engine,
    require_auth_context,
    resolve_optional_auth,
)
from estategate.core.repositories.base import LookupFailure
from estategate.schemas.access import (
    AffordanceResponse,
    NavigationEntryResponse,
    ObjectActionResponse,
    RouteDecisionResponse,
    SubscriptionStateResponse,
)

router = APIRouter(prefix="/access", tags=["access"])


@router.get("/route", response_model=RouteDecisionResponse)
async def route_decision(
    path: str = Query(min_length=1, max_length=2048),
    caller: OptionalAuth = Depends(resolve_optional_auth),
    engine: AccessDecisionEngine = Depends(get_access_engine),
) -> RouteDecisionResponse:
    if caller.lookup_failed:
        decision = engine.lookup_failure_decision()
    else:
        decision = await engine.can_enter_route(caller.access_subject(), path)
    return RouteDecisionResponse(
        path=path,
        allow=decision.allow,
        redirect_to=decision.redirect_to,
        reason=decision.reason,
    )


@router.get("/objects/{object_type}/{action}", response_model=ObjectActionResponse)
async def object_action(
    object_type: str,
    action: str,
    auth: AuthContext = Depends(require_auth_context),
    engine: AccessDecisionEngine = Depends(get_access_engine),
) -> ObjectActionResponse:
    allowed = await engine.can_perform(auth.access_subject(), object_type, action)
    return ObjectActionResponse(object_type=object_type, action=action, allowed=allowed)


@router.get("/affordances/{kind}/{key}", response_model=AffordanceResponse)
async def affordance(
    kind: Literal["button", "navigation", "feature"],
    key: str,
    auth: AuthContext = Depends(require_auth_context),
    engine: AccessDecisionEngine = Depends(get_access_engine),
) -> AffordanceResponse:
    state = await engine.affordance_state(auth.access_subject(), key, kind)
    return AffordanceResponse(
        kind=kind,
        key=key,
        visible=state.visible,
        enabled=state.enabled,
        label=state.label,
        icon=state.icon,
    )


@router.get("/navigation", response_model=list[NavigationEntryResponse])
async def navigation(
    auth: AuthContext = Depends(require_auth_context),
    engine: AccessDecisionEngine = Depends(get_access_engine),
) -> list[NavigationEntryResponse]:
    entries = await engine.navigation_for(auth.access_subject())
    return [
        NavigationEntryResponse(
            key=entry.key,
            name=entry.name,
            href=entry.href,
            icon=entry.icon,
            sort_order=entry.sort_order,
            parent_key=entry.parent_key,
            enabled=entry.enabled,
        )
        for entry in entries
    ]


@router.get("/subscription", response_model=SubscriptionStateResponse)
async def subscription_state(
    auth: AuthContext = Depends(require_auth_context),
    engine: AccessDecisionEngine = Depends(get_access_engine),
) -> SubscriptionStateResponse:
    try:
        state = await engine.subscription_state(auth.access_subject())
    except LookupFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Subscription state is temporarily unavailable",
        ) from exc

    subscription = state.subscription
    return SubscriptionStateResponse(
        organization_id=str(auth.organization_id) if auth.organization_id else None,
        is_configured=state.is_configured,
        subscription_status=state.subscription_status.value if state.subscription_status else None,
        has_active_access=state.has_active_access,
        effective_plan_id=str(state.effective_plan_id) if state.effective_plan_id else None,
        current_period_end=subscription.current_period_end if subscription else None,
        effective_expiration=effective_expiration(subscription) if subscription else None,
    )
