from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from estategate.core.access.admins import (
    NOT_ADMIN,
    AdminClassification,
    DatabaseAdminRegistry,
    SuperAdminClassifier,
)
from estategate.core.access.overrides import OverrideResolver
from estategate.core.access.paths import (
    DASHBOARD_PATH,
    ORG_SELECTOR_PATH,
    SETUP_PATH,
    SIGN_IN_PATH,
    SUBSCRIPTION_INACTIVE_PATH,
    SUBSCRIPTION_SETTINGS_PATH,
    is_org_selector_path,
    is_org_specific_path,
    is_setup_path,
    is_subscription_inactive_path,
    is_under,
    normalize_path,
    sign_in_redirect,
)
from estategate.core.access.permissions import (
    BILLING_ADMIN_OBJECT_TYPE,
    ObjectPermissionResolver,
    permission_field_for_action,
)
from estategate.core.access.plans import PlanFeatureResolver
from estategate.core.access.subscriptions import SubscriptionState, SubscriptionStateResolver
from estategate.core.config import LookupFailurePolicy, settings
from estategate.core.repositories.base import LookupFailure
from estategate.core.repositories.billing import (
    FeatureRepository,
    PlanRepository,
    SubscriptionRepository,
)
from estategate.core.repositories.catalog import ButtonRepository, NavigationItemRepository
from estategate.core.repositories.organizations import OrganizationRepository, UserRepository
from estategate.core.repositories.profiles import (
    ProfileButtonRepository,
    ProfileNavigationItemRepository,
    ProfileObjectPermissionRepository,
    ProfileRepository,
)
from estategate.models.catalog import NavigationItem

logger = logging.getLogger(__name__)

AffordanceKind = Literal["button", "navigation", "feature"]


@dataclass(slots=True, frozen=True)
class AccessSubject:
    user_id: UUID
    organization_id: UUID | None = None
    profile_id: UUID | None = None
    is_active: bool = True

    @classmethod
    def from_user(cls, user: Any) -> AccessSubject:
        return cls(
            user_id=user.id,
            organization_id=user.organization_id,
            profile_id=user.profile_id,
            is_active=user.is_active is True,
        )


@dataclass(slots=True, frozen=True)
class RouteDecision:
    allow: bool
    redirect_to: str | None = None
    reason: str = "allowed"

    @classmethod
    def allowed(cls, reason: str = "allowed") -> RouteDecision:
        return cls(allow=True, reason=reason)

    @classmethod
    def redirect(cls, target: str, reason: str) -> RouteDecision:
        return cls(allow=False, redirect_to=target, reason=reason)


@dataclass(slots=True, frozen=True)
class AffordanceState:
    visible: bool = False
    enabled: bool = False
    label: str | None = None
    icon: str | None = None


HIDDEN = AffordanceState()


@dataclass(slots=True, frozen=True)
class NavigationEntry:
    key: str
    name: str
    href: str
    icon: str | None
    sort_order: int
    parent_key: str | None
    enabled: bool


class AccessDecisionEngine:
    """Composes admin status, subscription state, permissions, plan features and
    UI overrides into route, object-action and affordance decisions.

    Resolvers raise :class:`LookupFailure` when the store cannot answer; the
    engine is the only place that turns it into a decision.
    """

    def __init__(
        self,
        *,
        classifier: SuperAdminClassifier,
        subscriptions: SubscriptionStateResolver,
        plans: PlanFeatureResolver,
        permissions: ObjectPermissionResolver,
        overrides: OverrideResolver,
        buttons: ButtonRepository,
        navigation_items: NavigationItemRepository,
        features: FeatureRepository,
        lookup_failure_policy: LookupFailurePolicy = "deny",
    ) -> None:
        self.classifier = classifier
        self.subscriptions = subscriptions
        self.plans = plans
        self.permissions = permissions
        self.overrides = overrides
        self.buttons = buttons
        self.navigation_items = navigation_items
        self.features = features
        self.lookup_failure_policy = lookup_failure_policy

    @classmethod
    def for_session(cls, session: AsyncSession) -> AccessDecisionEngine:
        registry = DatabaseAdminRegistry(
            UserRepository(session),
            ProfileRepository(session),
            super_admin_subjects=settings.super_admin_subjects(),
            global_profile_name=settings.global_admin_profile_name,
        )
        return cls(
            classifier=SuperAdminClassifier(registry),
            subscriptions=SubscriptionStateResolver(
                OrganizationRepository(session),
                SubscriptionRepository(session),
            ),
            plans=PlanFeatureResolver(PlanRepository(session)),
            permissions=ObjectPermissionResolver(ProfileObjectPermissionRepository(session)),
            overrides=OverrideResolver(
                ProfileButtonRepository(session),
                ProfileNavigationItemRepository(session),
            ),
            buttons=ButtonRepository(session),
            navigation_items=NavigationItemRepository(session),
            features=FeatureRepository(session),
            lookup_failure_policy=settings.gate_lookup_failure_policy,
        )

    async def classify(self, subject: AccessSubject | None) -> AdminClassification:
        if subject is None or not subject.is_active:
            return NOT_ADMIN
        return await self.classifier.classify(subject.user_id)

    async def subscription_state(self, subject: AccessSubject) -> SubscriptionState:
        return await self.subscriptions.resolve(subject.organization_id)

    # Route gate

    async def can_enter_route(self, subject: AccessSubject | None, pathname: str) -> RouteDecision:
        path = normalize_path(pathname)
        if subject is None or not subject.is_active:
            return RouteDecision.redirect(sign_in_redirect(path), "unauthenticated")

        try:
            return await self._route_decision(subject, path)
        except LookupFailure:
            logger.exception(
                "Route gate lookup failed user_id=%s path=%s policy=%s",
                subject.user_id,
                path,
                self.lookup_failure_policy,
            )
            return self.lookup_failure_decision()

    def lookup_failure_decision(self) -> RouteDecision:
        """Decision for a route whose gate inputs could not be loaded."""
        if self.lookup_failure_policy == "allow":
            return RouteDecision.allowed("lookup_failure")
        return RouteDecision.redirect(SIGN_IN_PATH, "lookup_failure")

    async def _route_decision(self, subject: AccessSubject, path: str) -> RouteDecision:
        admin = await self.classify(subject)
        on_setup = is_setup_path(path)

        if on_setup and admin.is_super_admin:
            return RouteDecision.redirect(ORG_SELECTOR_PATH, "super_admin_setup")

        if is_org_selector_path(path) or is_subscription_inactive_path(path):
            return RouteDecision.allowed("holding_page")

        if on_setup:
            state = await self.subscriptions.resolve(subject.organization_id)
            if state.is_configured:
                return RouteDecision.redirect(DASHBOARD_PATH, "already_configured")
            return RouteDecision.allowed("setup")

        if admin.is_super_admin:
            if subject.organization_id is None and is_org_specific_path(path):
                return RouteDecision.redirect(ORG_SELECTOR_PATH, "organization_required")
            return RouteDecision.allowed("super_admin")

        if subject.organization_id is None:
            return RouteDecision.redirect(SETUP_PATH, "no_organization")

        state = await self.subscriptions.resolve(subject.organization_id)
        if not state.is_configured:
            return RouteDecision.redirect(SETUP_PATH, "not_configured")

        if not state.has_active_access:
            target = (
                SUBSCRIPTION_SETTINGS_PATH
                if await self._is_billing_admin(subject)
                else SUBSCRIPTION_INACTIVE_PATH
            )
            if is_under(path, target):
                return RouteDecision.allowed("subscription_page")
            return RouteDecision.redirect(target, "subscription_inactive")

        return RouteDecision.allowed()

    async def _is_billing_admin(self, subject: AccessSubject) -> bool:
        permission = await self.permissions.permission_for(subject.profile_id, BILLING_ADMIN_OBJECT_TYPE)
        return permission.can_edit

    # Object actions

    async def can_perform(self, subject: AccessSubject | None, object_type: str, action: str) -> bool:
        if subject is None or not subject.is_active:
            return False
        admin = await self.classify(subject)
        if admin.is_super_admin:
            return True
        if subject.profile_id is None:
            return False
        try:
            permission = await self.permissions.permission_for(subject.profile_id, object_type)
        except LookupFailure:
            logger.warning(
                "Permission lookup failed, denying user_id=%s object_type=%s action=%s",
                subject.user_id,
                object_type,
                action,
                exc_info=True,
            )
            return False
        return permission.allows(action)

    # UI affordances

    async def affordance_state(
        self,
        subject: AccessSubject | None,
        key: str,
        kind: AffordanceKind,
    ) -> AffordanceState:
        if subject is None or not subject.is_active:
            return HIDDEN
        try:
            admin = await self.classify(subject)
            if kind == "button":
                return await self._button_state(subject, admin, key)
            if kind == "navigation":
                item = await self.navigation_items.get_active_by_key(key)
                return await self._navigation_state(subject, admin, item)
            if kind == "feature":
                return await self._feature_state(subject, admin, key)
        except LookupFailure:
            logger.warning(
                "Affordance lookup failed, hiding user_id=%s kind=%s key=%s",
                subject.user_id,
                kind,
                key,
                exc_info=True,
            )
            return HIDDEN
        return HIDDEN

    async def navigation_for(self, subject: AccessSubject | None) -> list[NavigationEntry]:
        if subject is None or not subject.is_active:
            return []
        try:
            admin = await self.classify(subject)
            overrides = await self.overrides.overrides_for(subject.profile_id)
            entries: list[NavigationEntry] = []
            for item in await self.navigation_items.list_active():
                state = await self._navigation_state(subject, admin, item)
                if not state.visible:
                    continue
                custom_order = overrides.navigation_item(item.id).custom_sort_order
                entries.append(
                    NavigationEntry(
                        key=item.key,
                        name=state.label or item.name,
                        href=item.href,
                        icon=state.icon,
                        sort_order=custom_order if custom_order is not None else item.sort_order,
                        parent_key=item.parent_key,
                        enabled=state.enabled,
                    )
                )
        except LookupFailure:
            logger.warning("Navigation lookup failed user_id=%s", subject.user_id, exc_info=True)
            return []
        return sorted(entries, key=lambda entry: (entry.sort_order, entry.key))

    async def _feature_enabled(self, subject: AccessSubject, feature_key: str) -> bool:
        state = await self.subscriptions.resolve(subject.organization_id)
        if not state.has_active_access:
            return False
        entitlement = await self.plans.entitlement(state.effective_plan_id, feature_key)
        return entitlement.is_enabled

    async def _permission_floor(self, subject: AccessSubject, object_type: str, action: str) -> bool:
        permission = await self.permissions.permission_for(subject.profile_id, object_type)
        return getattr(permission, permission_field_for_action(action)) is True

    async def _button_state(
        self,
        subject: AccessSubject,
        admin: AdminClassification,
        key: str,
    ) -> AffordanceState:
        button = await self.buttons.get_active_by_key(key)
        if button is None:
            return HIDDEN
        if admin.is_super_admin:
            return AffordanceState(visible=True, enabled=True, label=button.label, icon=button.icon)
        if button.feature_key and not await self._feature_enabled(subject, button.feature_key):
            return HIDDEN

        override = (await self.overrides.overrides_for(subject.profile_id)).button(button.id)
        if not override.is_visible:
            return HIDDEN
        if not await self._permission_floor(subject, button.object_type, button.action):
            return HIDDEN

        return AffordanceState(
            visible=True,
            enabled=override.is_enabled,
            label=override.custom_label or button.label,
            icon=override.custom_icon or button.icon,
        )

    async def _navigation_state(
        self,
        subject: AccessSubject,
        admin: AdminClassification,
        item: NavigationItem | None,
    ) -> AffordanceState:
        if item is None:
            return HIDDEN
        if admin.is_super_admin:
            return AffordanceState(visible=True, enabled=True, label=item.name, icon=item.icon)
        if item.feature_key and not await self._feature_enabled(subject, item.feature_key):
            return HIDDEN

        override = (await self.overrides.overrides_for(subject.profile_id)).navigation_item(item.id)
        if not override.is_visible:
            return HIDDEN
        if item.object_type and not await self._permission_floor(subject, item.object_type, item.action):
            return HIDDEN

        return AffordanceState(visible=True, enabled=override.is_enabled, label=item.name, icon=item.icon)

    async def _feature_state(
        self,
        subject: AccessSubject,
        admin: AdminClassification,
        key: str,
    ) -> AffordanceState:
        feature = await self.features.get_active_by_key(key)
        if feature is None:
            return HIDDEN
        if not admin.is_super_admin and not await self._feature_enabled(subject, key):
            return HIDDEN
        return AffordanceState(visible=True, enabled=True, label=feature.display_name)
