from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest

from estategate.core.access.permissions import (
    NO_PERMISSION,
    ObjectPermission,
    ObjectPermissionResolver,
    permission_field_for_action,
)
from estategate.core.access.plans import (
    PlanFeatureResolver,
    PlanLimits,
    UnknownFeatureKeyError,
    is_limit_exceeded,
    parse_entitlement,
    validate_feature_map,
)


class _Plans:
    def __init__(self, plan: object | None) -> None:
        self.plan = plan

    async def get(self, _plan_id):  # noqa: ANN001
        return self.plan


class _PermissionRows:
    def __init__(self, rows: list) -> None:
        self.rows = rows

    async def list_for_profile(self, _profile_id):  # noqa: ANN001
        return self.rows


def _plan(**overrides):  # noqa: ANN003
    values = {
        "id": uuid4(),
        "name": "pro",
        "max_lots": 50,
        "max_users": -1,
        "max_extranet_tenants": None,
        "features": {
            "tasks.board": True,
            "messaging": False,
            "reports.export": {"enabled": True, "limits": {"per_month": 10, "rows": -1}},
            "extranet": {"enabled": False, "limits": {"tenants": 5}},
        },
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_parse_entitlement_shapes() -> None:
    assert parse_entitlement("a", True).is_enabled is True
    assert parse_entitlement("a", False).is_enabled is False
    assert parse_entitlement("a", {"enabled": "yes"}).is_enabled is False
    assert parse_entitlement("a", "on").is_enabled is False

    entitlement = parse_entitlement("a", {"enabled": True, "limits": {"per_month": 3}})
    assert entitlement.is_enabled is True
    assert entitlement.limit("per_month") == 3
    assert entitlement.limit("missing") is None


@pytest.mark.asyncio
async def test_features_for_reads_plan_feature_map() -> None:
    resolver = PlanFeatureResolver(_Plans(_plan()))
    features = await resolver.features_for(uuid4())

    assert features["tasks.board"].is_enabled is True
    assert features["messaging"].is_enabled is False
    assert features["reports.export"].limit("per_month") == 10
    assert features["reports.export"].limit("rows") is None
    assert features["extranet"].is_enabled is False
    assert features["extranet"].limits == {}


@pytest.mark.asyncio
async def test_absent_feature_key_is_disabled() -> None:
    resolver = PlanFeatureResolver(_Plans(_plan()))
    entitlement = await resolver.entitlement(uuid4(), "accounting.ledger")
    assert entitlement.is_enabled is False


@pytest.mark.asyncio
async def test_unknown_or_missing_plan_has_no_features() -> None:
    assert await PlanFeatureResolver(_Plans(None)).features_for(uuid4()) == {}
    assert await PlanFeatureResolver(_Plans(_plan())).features_for(None) == {}


@pytest.mark.asyncio
async def test_limits_for_treats_minus_one_and_null_as_unlimited() -> None:
    limits = await PlanFeatureResolver(_Plans(_plan())).limits_for(uuid4())
    assert limits == PlanLimits(lots=50, users=None, extranet_tenants=None)

    closed = await PlanFeatureResolver(_Plans(None)).limits_for(uuid4())
    assert closed == PlanLimits(lots=0, users=0, extranet_tenants=0)


def test_is_limit_exceeded() -> None:
    assert is_limit_exceeded(5, 5) is True
    assert is_limit_exceeded(4, 5) is False
    assert is_limit_exceeded(1000, None) is False
    assert is_limit_exceeded(1000, -1) is False


def test_validate_feature_map_rejects_unknown_keys() -> None:
    validate_feature_map({"tasks.board": True}, {"tasks.board", "messaging"})

    with pytest.raises(UnknownFeatureKeyError) as exc:
        validate_feature_map({"tasks.bord": True, "messaging": False, "zzz": True}, {"tasks.board", "messaging"})
    assert exc.value.keys == ["tasks.bord", "zzz"]


@pytest.mark.parametrize(
    ("action", "field_name"),
    [
        ("create", "can_create"),
        ("read", "can_read"),
        ("view", "can_read"),
        ("update", "can_edit"),
        ("edit", "can_edit"),
        ("delete", "can_delete"),
        ("export", "can_read"),
        ("import", "can_read"),
        ("print", "can_read"),
        ("custom", "can_read"),
    ],
)
def test_action_to_permission_field(action: str, field_name: str) -> None:
    assert permission_field_for_action(action) == field_name


def test_unknown_action_mapping() -> None:
    assert permission_field_for_action("archive") == "can_read"
    assert permission_field_for_action("archive", strict=True) is None
    assert ObjectPermission(can_read=True).allows("archive") is False


def test_permissions_do_not_imply_each_other() -> None:
    permission = ObjectPermission(can_edit=True)
    assert permission.allows("edit") is True
    assert permission.allows("read") is False
    assert permission.allows("delete") is False


@pytest.mark.asyncio
async def test_permission_for_missing_row_is_all_false() -> None:
    row = SimpleNamespace(object_type="Property", can_create=True, can_read=True, can_edit=False, can_delete=None)
    resolver = ObjectPermissionResolver(_PermissionRows([row]))

    permissions = await resolver.permissions_for(uuid4())
    assert permissions["Property"] == ObjectPermission(can_create=True, can_read=True)

    assert await resolver.permission_for(uuid4(), "Lease") == NO_PERMISSION
    assert await resolver.permission_for(None, "Property") == NO_PERMISSION
