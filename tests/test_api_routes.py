from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import requests
from fastapi.testclient import TestClient

from estategate.agents.subscription_expiry import SweepFailure, SweepReport
from estategate.api.main import app
from estategate.api.routes.admin import get_expiry_sweep, get_override_synchronizer
from estategate.core import auth
from estategate.core.access.engine import (
    HIDDEN,
    AccessDecisionEngine,
    AffordanceState,
    NavigationEntry,
    RouteDecision,
)
from estategate.core.access.overrides import SyncFailure, SyncReport
from estategate.core.access.subscriptions import SubscriptionState, SubscriptionStatus
from estategate.core.auth import (
    AuthContext,
    OptionalAuth,
    get_access_engine,
    require_auth_context,
    require_super_admin,
    resolve_optional_auth,
)
from estategate.core.db import get_db_session
from estategate.core.repositories.base import LookupFailure


class _FakeSession:
    def __init__(self) -> None:
        self.committed = False
        self.deleted: list = []

    async def commit(self) -> None:
        self.committed = True

    async def delete(self, entry) -> None:  # noqa: ANN001
        self.deleted.append(entry)


class _FakeEngine:
    lookup_failure_decision = AccessDecisionEngine.lookup_failure_decision

    def __init__(self) -> None:
        self.lookup_failure_policy = "deny"
        self.route_calls: list = []
        self.state_error: Exception | None = None

    async def can_enter_route(self, subject, path):  # noqa: ANN001
        self.route_calls.append((subject, path))
        if subject is None:
            return RouteDecision.redirect("/auth/sign-in?redirect=/units", "unauthenticated")
        return RouteDecision.allowed()

    async def can_perform(self, subject, object_type, action):  # noqa: ANN001
        return object_type == "Property" and action == "read"

    async def affordance_state(self, subject, key, kind):  # noqa: ANN001
        if key == "property.create":
            return AffordanceState(visible=True, enabled=False, label="New property", icon="plus")
        return HIDDEN

    async def navigation_for(self, subject):  # noqa: ANN001
        return [
            NavigationEntry(
                key="properties",
                name="Properties",
                href="/properties",
                icon="building",
                sort_order=1,
                parent_key=None,
                enabled=True,
            )
        ]

    async def subscription_state(self, subject):  # noqa: ANN001
        if self.state_error is not None:
            raise self.state_error
        period_end = datetime(2026, 11, 1, tzinfo=timezone.utc)
        return SubscriptionState(
            is_configured=True,
            subscription_status=SubscriptionStatus.TRIALING,
            has_active_access=True,
            effective_plan_id=None,
            subscription=SimpleNamespace(
                current_period_end=period_end,
                end_date=None,
                cancel_at_period_end=False,
            ),
        )


@pytest.fixture
def auth_context() -> AuthContext:
    return AuthContext(
        user_id=uuid4(),
        subject="auth0|user_123",
        organization_id=uuid4(),
        profile_id=uuid4(),
        claims={"sub": "auth0|user_123"},
    )


@pytest.fixture
def fake_engine() -> _FakeEngine:
    return _FakeEngine()


@pytest.fixture
def fake_session() -> _FakeSession:
    return _FakeSession()


@pytest.fixture
def client(auth_context: AuthContext, fake_engine: _FakeEngine, fake_session: _FakeSession):
    async def _auth_override() -> AuthContext:
        return auth_context

    async def _caller_override() -> OptionalAuth:
        return OptionalAuth(context=auth_context)

    async def _engine_override() -> _FakeEngine:
        return fake_engine

    async def _session_override() -> _FakeSession:
        return fake_session

    app.dependency_overrides[require_auth_context] = _auth_override
    app.dependency_overrides[resolve_optional_auth] = _caller_override
    app.dependency_overrides[require_super_admin] = _auth_override
    app.dependency_overrides[get_access_engine] = _engine_override
    app.dependency_overrides[get_db_session] = _session_override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health_endpoint(client: TestClient) -> None:
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_route_decision_for_authenticated_user(client: TestClient, fake_engine: _FakeEngine) -> None:
    res = client.get("/api/v1/access/route", params={"path": "/fr/units"})
    assert res.status_code == 200
    assert res.json() == {"path": "/fr/units", "allow": True, "redirect_to": None, "reason": "allowed"}
    assert fake_engine.route_calls[0][0] is not None


def test_route_decision_for_anonymous_caller(client: TestClient) -> None:
    async def _anonymous() -> OptionalAuth:
        return OptionalAuth()

    app.dependency_overrides[resolve_optional_auth] = _anonymous
    res = client.get("/api/v1/access/route", params={"path": "/units"})
    assert res.status_code == 200
    body = res.json()
    assert body["allow"] is False
    assert body["redirect_to"] == "/auth/sign-in?redirect=/units"


def _failing_user_lookup(error: Exception):
    class _Users:
        def __init__(self, session) -> None:  # noqa: ANN001
            pass

        async def get_by_subject(self, subject: str):
            raise error

    return _Users


@pytest.mark.parametrize(
    "error",
    [LookupFailure("users unavailable"), ConnectionRefusedError(111, "Connection refused")],
)
def test_route_decision_when_caller_lookup_fails(
    client: TestClient,
    fake_engine: _FakeEngine,
    monkeypatch: pytest.MonkeyPatch,
    error: Exception,
) -> None:
    app.dependency_overrides.pop(resolve_optional_auth)
    monkeypatch.setattr(auth, "_decode_jwt", lambda token: {"sub": "auth0|user_123"})
    if isinstance(error, LookupFailure):
        monkeypatch.setattr(auth, "UserRepository", _failing_user_lookup(error))
    else:
        session = SimpleNamespace(execute=AsyncMock(side_effect=error))
        app.dependency_overrides[get_db_session] = lambda: session

    res = client.get(
        "/api/v1/access/route",
        params={"path": "/properties"},
        headers={"Authorization": "Bearer token"},
    )

    assert res.status_code == 200
    assert res.json() == {
        "path": "/properties",
        "allow": False,
        "redirect_to": "/auth/sign-in",
        "reason": "lookup_failure",
    }
    assert fake_engine.route_calls == []


def test_route_decision_when_signing_keys_unreachable_under_allow_policy(
    client: TestClient,
    fake_engine: _FakeEngine,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _unreachable(token: str) -> dict:
        raise requests.ConnectionError("jwks down")

    app.dependency_overrides.pop(resolve_optional_auth)
    monkeypatch.setattr(auth, "_decode_jwt", _unreachable)
    fake_engine.lookup_failure_policy = "allow"

    res = client.get(
        "/api/v1/access/route",
        params={"path": "/properties"},
        headers={"Authorization": "Bearer token"},
    )

    assert res.status_code == 200
    assert res.json()["allow"] is True
    assert res.json()["reason"] == "lookup_failure"


def test_route_decision_requires_path(client: TestClient) -> None:
    res = client.get("/api/v1/access/route")
    assert res.status_code == 422


def test_object_action(client: TestClient) -> None:
    allowed = client.get("/api/v1/access/objects/Property/read")
    denied = client.get("/api/v1/access/objects/Property/delete")
    assert allowed.json()["allowed"] is True
    assert denied.json() == {"object_type": "Property", "action": "delete", "allowed": False}


def test_affordance(client: TestClient) -> None:
    res = client.get("/api/v1/access/affordances/button/property.create")
    assert res.status_code == 200
    assert res.json() == {
        "kind": "button",
        "key": "property.create",
        "visible": True,
        "enabled": False,
        "label": "New property",
        "icon": "plus",
    }

    hidden = client.get("/api/v1/access/affordances/navigation/unknown")
    assert hidden.json()["visible"] is False


def test_affordance_rejects_unknown_kind(client: TestClient) -> None:
    res = client.get("/api/v1/access/affordances/widget/property.create")
    assert res.status_code == 422


def test_navigation(client: TestClient) -> None:
    res = client.get("/api/v1/access/navigation")
    assert res.status_code == 200
    assert res.json()[0]["key"] == "properties"
    assert res.json()[0]["sort_order"] == 1


def test_subscription_state(client: TestClient, auth_context: AuthContext) -> None:
    res = client.get("/api/v1/access/subscription")
    assert res.status_code == 200
    body = res.json()
    assert body["organization_id"] == str(auth_context.organization_id)
    assert body["subscription_status"] == "trialing"
    assert body["has_active_access"] is True
    assert body["effective_expiration"].startswith("2026-11-01")


def test_subscription_state_lookup_failure(client: TestClient, fake_engine: _FakeEngine) -> None:
    fake_engine.state_error = LookupFailure("store unavailable")
    res = client.get("/api/v1/access/subscription")
    assert res.status_code == 503


def test_override_sync(client: TestClient) -> None:
    profile_id = uuid4()
    target_id = uuid4()
    calls = []

    class _Synchronizer:
        async def synchronize(self, requested_profile_id):  # noqa: ANN001
            calls.append(requested_profile_id)
            return SyncReport(
                profiles=1,
                upserted=3,
                skipped=1,
                failures=[SyncFailure("button", profile_id, target_id, "timeout")],
            )

    app.dependency_overrides[get_override_synchronizer] = lambda: _Synchronizer()
    res = client.post("/api/v1/admin/overrides/sync", json={"profile_id": str(profile_id)})

    assert res.status_code == 200
    assert calls == [profile_id]
    body = res.json()
    assert body["upserted"] == 3
    assert body["failures"] == [
        {"kind": "button", "profile_id": str(profile_id), "target_id": str(target_id), "error": "timeout"}
    ]


def test_update_expired_subscriptions(client: TestClient) -> None:
    report = SweepReport(scanned=4, transitioned=2, notified=1)
    report.failures.append(SweepFailure(uuid4(), uuid4(), "notification", "relay down"))

    class _Sweep:
        async def run(self) -> SweepReport:
            return report

    app.dependency_overrides[get_expiry_sweep] = lambda: _Sweep()
    res = client.post("/api/v1/admin/subscriptions/update-expired")

    assert res.status_code == 200
    body = res.json()
    assert body["transitioned"] == 2
    assert body["failures"][0]["stage"] == "notification"


def _install_plan_repos(monkeypatch: pytest.MonkeyPatch, plan, registry_keys):  # noqa: ANN001
    from estategate.api.routes import admin

    class _Plans:
        def __init__(self, _session) -> None:  # noqa: ANN001
            pass

        async def get(self, _plan_id):  # noqa: ANN001
            return plan

    class _Features:
        def __init__(self, _session) -> None:  # noqa: ANN001
            pass

        async def active_keys(self):
            return set(registry_keys)

    monkeypatch.setattr(admin, "PlanRepository", _Plans)
    monkeypatch.setattr(admin, "FeatureRepository", _Features)


def test_update_plan_features(client: TestClient, monkeypatch: pytest.MonkeyPatch, fake_session: _FakeSession) -> None:
    plan = SimpleNamespace(id=uuid4(), features={})
    _install_plan_repos(monkeypatch, plan, {"tasks.board", "reports.export"})

    res = client.put(
        f"/api/v1/admin/plans/{plan.id}/features",
        json={
            "features": {
                "tasks.board": True,
                "reports.export": {"enabled": True, "limits": {"per_month": 10}},
            }
        },
    )

    assert res.status_code == 200
    assert plan.features == {
        "tasks.board": True,
        "reports.export": {"enabled": True, "limits": {"per_month": 10}},
    }
    assert fake_session.committed is True


def test_update_plan_features_rejects_unknown_keys(
    client: TestClient, monkeypatch: pytest.MonkeyPatch, fake_session: _FakeSession
) -> None:
    plan = SimpleNamespace(id=uuid4(), features={"tasks.board": True})
    _install_plan_repos(monkeypatch, plan, {"tasks.board"})

    res = client.put(
        f"/api/v1/admin/plans/{plan.id}/features",
        json={"features": {"tasks.board": False, "task.bord": True}},
    )

    assert res.status_code == 422
    assert res.json()["detail"]["keys"] == ["task.bord"]
    assert plan.features == {"tasks.board": True}
    assert fake_session.committed is False


def test_update_plan_features_rejects_non_boolean_flags(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    plan = SimpleNamespace(id=uuid4(), features={})
    _install_plan_repos(monkeypatch, plan, {"tasks.board"})

    res = client.put(f"/api/v1/admin/plans/{plan.id}/features", json={"features": {"tasks.board": "yes"}})
    assert res.status_code == 422


def test_update_plan_features_unknown_plan(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _install_plan_repos(monkeypatch, None, {"tasks.board"})
    res = client.put(f"/api/v1/admin/plans/{uuid4()}/features", json={"features": {}})
    assert res.status_code == 404


def _install_button_repo(monkeypatch: pytest.MonkeyPatch, entries: list):
    from estategate.api.routes import admin

    class _Buttons:
        def __init__(self, _session) -> None:  # noqa: ANN001
            pass

        async def get(self, entry_id):  # noqa: ANN001
            return next((entry for entry in entries if entry.id == entry_id), None)

        async def get_one_by(self, **filters):  # noqa: ANN003
            return next((entry for entry in entries if entry.key == filters["key"]), None)

    monkeypatch.setattr(admin, "ButtonRepository", _Buttons)


def _button(**overrides):  # noqa: ANN003
    values = {
        "id": uuid4(),
        "key": "property.create",
        "name": "Create property",
        "label": "New",
        "is_system": False,
        "is_active": True,
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_update_button(client: TestClient, monkeypatch: pytest.MonkeyPatch, fake_session: _FakeSession) -> None:
    button = _button()
    _install_button_repo(monkeypatch, [button])

    res = client.patch(f"/api/v1/admin/buttons/{button.id}", json={"label": "Add building", "name": "Create property"})

    assert res.status_code == 200
    assert res.json()["changed"] == ["label"]
    assert button.label == "Add building"
    assert fake_session.committed is True


def test_update_button_rejects_null_for_required_field(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    button = _button()
    _install_button_repo(monkeypatch, [button])

    res = client.patch(f"/api/v1/admin/buttons/{button.id}", json={"label": None})
    assert res.status_code == 422


def test_update_button_rejects_unregistered_feature_key(
    client: TestClient, monkeypatch: pytest.MonkeyPatch, fake_session: _FakeSession
) -> None:
    button = _button(feature_key="tasks.board")
    _install_button_repo(monkeypatch, [button])
    _install_plan_repos(monkeypatch, None, {"tasks.board"})

    res = client.patch(f"/api/v1/admin/buttons/{button.id}", json={"feature_key": "tasks.bord", "label": "Board"})

    assert res.status_code == 422
    assert res.json()["detail"] == {"message": "Unknown feature keys", "keys": ["tasks.bord"]}
    assert button.feature_key == "tasks.board"
    assert button.label == "New"
    assert fake_session.committed is False

    ok = client.patch(f"/api/v1/admin/buttons/{button.id}", json={"feature_key": "tasks.board", "label": "Board"})
    assert ok.status_code == 200
    assert ok.json()["changed"] == ["label"]

    cleared = client.patch(f"/api/v1/admin/buttons/{button.id}", json={"feature_key": None})
    assert cleared.status_code == 200
    assert button.feature_key is None


def test_update_navigation_item_rejects_unregistered_feature_key(
    client: TestClient, monkeypatch: pytest.MonkeyPatch, fake_session: _FakeSession
) -> None:
    from estategate.api.routes import admin

    item = _button(key="reports", feature_key=None)

    class _Items:
        def __init__(self, _session) -> None:  # noqa: ANN001
            pass

        async def get(self, entry_id):  # noqa: ANN001
            return item if entry_id == item.id else None

    monkeypatch.setattr(admin, "NavigationItemRepository", _Items)
    _install_plan_repos(monkeypatch, None, {"reports.export"})

    res = client.patch(f"/api/v1/admin/navigation-items/{item.id}", json={"feature_key": "reports.exprot"})

    assert res.status_code == 422
    assert res.json()["detail"]["keys"] == ["reports.exprot"]
    assert item.feature_key is None
    assert fake_session.committed is False


def test_system_button_key_is_immutable(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    button = _button(is_system=True)
    _install_button_repo(monkeypatch, [button])

    res = client.patch(f"/api/v1/admin/buttons/{button.id}", json={"key": "property.add"})
    assert res.status_code == 409
    assert button.key == "property.create"

    relabel = client.patch(f"/api/v1/admin/buttons/{button.id}", json={"label": "Add"})
    assert relabel.status_code == 200


def test_button_key_clash(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    button = _button()
    other = _button(key="property.delete")
    _install_button_repo(monkeypatch, [button, other])

    res = client.patch(f"/api/v1/admin/buttons/{button.id}", json={"key": "property.delete"})
    assert res.status_code == 409


def test_delete_button(client: TestClient, monkeypatch: pytest.MonkeyPatch, fake_session: _FakeSession) -> None:
    system_button = _button(is_system=True)
    custom_button = _button(key="property.archive")
    _install_button_repo(monkeypatch, [system_button, custom_button])

    blocked = client.delete(f"/api/v1/admin/buttons/{system_button.id}")
    assert blocked.status_code == 409

    res = client.delete(f"/api/v1/admin/buttons/{custom_button.id}")
    assert res.status_code == 204
    assert fake_session.deleted == [custom_button]

    missing = client.delete(f"/api/v1/admin/buttons/{uuid4()}")
    assert missing.status_code == 404
