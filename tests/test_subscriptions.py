from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from estategate.core.access.subscriptions import (
    InvalidTransitionError,
    SubscriptionEvent,
    SubscriptionStateResolver,
    SubscriptionStatus,
    effective_expiration,
    is_explicitly_true,
    lapsed_status_for,
    next_status,
)
from estategate.core.context import open_lookup_cache, reset_lookup_cache
from estategate.core.repositories.base import LookupFailure

D1 = datetime(2026, 3, 1, tzinfo=timezone.utc)
D2 = datetime(2026, 4, 1, tzinfo=timezone.utc)


def _subscription(**overrides):  # noqa: ANN003
    values = {
        "id": uuid4(),
        "organization_id": uuid4(),
        "plan_id": uuid4(),
        "status": "active",
        "current_period_end": D1,
        "end_date": None,
        "cancel_at_period_end": False,
        "canceled_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class _Organizations:
    def __init__(self, organization: object | None) -> None:
        self.organization = organization
        self.calls = 0

    async def get(self, _organization_id):  # noqa: ANN001
        self.calls += 1
        return self.organization


class _Subscriptions:
    def __init__(self, subscription: object | None = None, error: Exception | None = None) -> None:
        self.subscription = subscription
        self.error = error

    async def latest_for_organization(self, _organization_id):  # noqa: ANN001
        if self.error is not None:
            raise self.error
        return self.subscription


@pytest.mark.parametrize(
    ("stored", "expected"),
    [(True, True), (False, False), (None, False), ("true", False), (1, False)],
)
def test_is_explicitly_true_only_for_literal_true(stored: object, expected: bool) -> None:
    assert is_explicitly_true(stored) is expected


def test_status_parse_handles_unknown_values() -> None:
    assert SubscriptionStatus.parse("Trialing") is SubscriptionStatus.TRIALING
    assert SubscriptionStatus.parse("incomplete") is None
    assert SubscriptionStatus.parse(None) is None


def test_next_status_follows_billing_events() -> None:
    assert next_status(SubscriptionStatus.TRIALING, SubscriptionEvent.CHARGE_SUCCEEDED) is SubscriptionStatus.ACTIVE
    assert next_status(SubscriptionStatus.ACTIVE, SubscriptionEvent.CHARGE_FAILED) is SubscriptionStatus.PAST_DUE
    assert next_status(SubscriptionStatus.PAST_DUE, SubscriptionEvent.CHARGE_SUCCEEDED) is SubscriptionStatus.ACTIVE
    assert next_status(SubscriptionStatus.UNPAID, SubscriptionEvent.CHARGE_SUCCEEDED) is SubscriptionStatus.ACTIVE
    assert next_status(SubscriptionStatus.TRIALING, SubscriptionEvent.CANCELED) is SubscriptionStatus.CANCELED
    assert next_status(SubscriptionStatus.PAST_DUE, SubscriptionEvent.GRACE_EXPIRED) is SubscriptionStatus.EXPIRED


@pytest.mark.parametrize("terminal", [SubscriptionStatus.CANCELED, SubscriptionStatus.EXPIRED])
@pytest.mark.parametrize("event", list(SubscriptionEvent))
def test_terminal_statuses_reject_every_event(terminal: SubscriptionStatus, event: SubscriptionEvent) -> None:
    with pytest.raises(InvalidTransitionError):
        next_status(terminal, event)


def test_effective_expiration_prefers_period_end_when_canceling_at_period_end() -> None:
    subscription = _subscription(cancel_at_period_end=True, current_period_end=D1, end_date=D2)
    assert effective_expiration(subscription) == D1


def test_effective_expiration_uses_end_date_without_cancel_flag() -> None:
    subscription = _subscription(cancel_at_period_end=False, current_period_end=D1, end_date=D2)
    assert effective_expiration(subscription) == D2


def test_effective_expiration_falls_back_to_period_end() -> None:
    assert effective_expiration(_subscription()) == D1


def test_lapsed_status_for_cancel_intent() -> None:
    assert lapsed_status_for(_subscription(cancel_at_period_end=True)) is SubscriptionStatus.CANCELED
    assert lapsed_status_for(_subscription(canceled_at=D1 - timedelta(days=3))) is SubscriptionStatus.CANCELED
    assert lapsed_status_for(_subscription()) is SubscriptionStatus.EXPIRED


@pytest.mark.asyncio
@pytest.mark.parametrize("stored", [False, None])
async def test_resolve_reports_unconfigured_organization(stored: object) -> None:
    organization = SimpleNamespace(id=uuid4(), is_configured=stored)
    resolver = SubscriptionStateResolver(_Organizations(organization), _Subscriptions(_subscription()))

    state = await resolver.resolve(organization.id)

    assert state.is_configured is False
    # Configuration and subscription status are independent.
    assert state.has_active_access is True


@pytest.mark.asyncio
async def test_resolve_without_subscription_row() -> None:
    organization = SimpleNamespace(id=uuid4(), is_configured=True)
    resolver = SubscriptionStateResolver(_Organizations(organization), _Subscriptions(None))

    state = await resolver.resolve(organization.id)

    assert state.is_configured is True
    assert state.subscription_status is None
    assert state.has_active_access is False
    assert state.effective_plan_id is None


@pytest.mark.asyncio
async def test_resolve_missing_organization_is_restrictive() -> None:
    resolver = SubscriptionStateResolver(_Organizations(None), _Subscriptions(_subscription()))

    state = await resolver.resolve(uuid4())

    assert state.is_configured is False
    assert state.has_active_access is False
    assert state.effective_plan_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_value", "has_access"),
    [
        ("active", True),
        ("trialing", True),
        ("past_due", False),
        ("unpaid", False),
        ("canceled", False),
        ("expired", False),
        ("mystery", False),
    ],
)
async def test_resolve_active_access_by_status(status_value: str, has_access: bool) -> None:
    organization = SimpleNamespace(id=uuid4(), is_configured=True)
    subscription = _subscription(status=status_value)
    resolver = SubscriptionStateResolver(_Organizations(organization), _Subscriptions(subscription))

    state = await resolver.resolve(organization.id)

    assert state.has_active_access is has_access
    assert state.effective_plan_id == subscription.plan_id


@pytest.mark.asyncio
async def test_resolve_propagates_lookup_failure() -> None:
    organization = SimpleNamespace(id=uuid4(), is_configured=True)
    resolver = SubscriptionStateResolver(
        _Organizations(organization),
        _Subscriptions(error=LookupFailure("subscriptions scan failed")),
    )

    with pytest.raises(LookupFailure):
        await resolver.resolve(organization.id)


@pytest.mark.asyncio
async def test_resolve_is_cached_within_request_scope() -> None:
    organization = SimpleNamespace(id=uuid4(), is_configured=True)
    organizations = _Organizations(organization)
    resolver = SubscriptionStateResolver(organizations, _Subscriptions(_subscription()))

    token = open_lookup_cache()
    try:
        await resolver.resolve(organization.id)
        await resolver.resolve(organization.id)
    finally:
        reset_lookup_cache(token)

    assert organizations.calls == 1

    await resolver.resolve(organization.id)
    assert organizations.calls == 2
