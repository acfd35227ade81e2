from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Protocol

KEY_PATTERN = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z0-9_-]+)*$")

IMMUTABLE_FIELDS = frozenset({"id", "is_system", "created_at", "updated_at"})


class CatalogEntry(Protocol):
    key: str
    is_system: bool


class CatalogRuleError(ValueError):
    pass


def is_valid_key(key: str) -> bool:
    return bool(KEY_PATTERN.match(key or ""))


def apply_catalog_update(entry: Any, changes: Mapping[str, Any]) -> list[str]:
    """Apply ``changes`` to a button or navigation item, returning the changed fields.

    System entries keep their key. Fields outside the model are rejected.
    """
    if "key" in changes and changes["key"] != entry.key:
        if entry.is_system:
            raise CatalogRuleError(f"System entry key is immutable: {entry.key}")
        if not is_valid_key(changes["key"]):
            raise CatalogRuleError(f"Invalid key: {changes['key']}")

    blocked = sorted(set(changes) & IMMUTABLE_FIELDS)
    if blocked:
        raise CatalogRuleError(f"Fields cannot be changed: {', '.join(blocked)}")

    changed: list[str] = []
    for field_name, value in changes.items():
        if not hasattr(entry, field_name):
            raise CatalogRuleError(f"Unknown field: {field_name}")
        if getattr(entry, field_name) != value:
            setattr(entry, field_name, value)
            changed.append(field_name)
    return changed


def ensure_deletable(entry: CatalogEntry) -> None:
    if entry.is_system:
        raise CatalogRuleError(f"System entry cannot be deleted: {entry.key}")
