from __future__ import annotations

from urllib.parse import quote

SIGN_IN_PATH = "/auth/sign-in"
SETUP_PATH = "/setup"
ORG_SELECTOR_PATH = "/admin/select-organization"
SUBSCRIPTION_INACTIVE_PATH = "/subscription-inactive"
SUBSCRIPTION_SETTINGS_PATH = "/settings/subscription"
DASHBOARD_PATH = "/dashboard"

SUPPORTED_LOCALES = ("fr", "en")

ORG_SPECIFIC_PREFIXES = (
    "/dashboard",
    "/properties",
    "/units",
    "/tenants",
    "/leases",
    "/payments",
    "/accounting",
    "/tasks",
    "/owners",
    "/settings",
    "/notifications",
)


def normalize_path(pathname: str) -> str:
    """Strip query string, locale prefix and trailing slash: ``/fr/units/`` -> ``/units``."""
    path = (pathname or "/").split("?", 1)[0].split("#", 1)[0].strip()
    if not path.startswith("/"):
        path = f"/{path}"

    for locale in SUPPORTED_LOCALES:
        prefix = f"/{locale}"
        if path == prefix:
            path = "/"
            break
        if path.startswith(f"{prefix}/"):
            path = path[len(prefix):]
            break

    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def is_under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(f"{prefix}/")


def is_setup_path(path: str) -> bool:
    return is_under(path, SETUP_PATH)


def is_org_selector_path(path: str) -> bool:
    return is_under(path, ORG_SELECTOR_PATH)


def is_subscription_inactive_path(path: str) -> bool:
    return is_under(path, SUBSCRIPTION_INACTIVE_PATH)


def is_org_specific_path(path: str) -> bool:
    return any(is_under(path, prefix) for prefix in ORG_SPECIFIC_PREFIXES)


def sign_in_redirect(path: str) -> str:
    if path == "/" or is_setup_path(path):
        return SIGN_IN_PATH
    return f"{SIGN_IN_PATH}?redirect={quote(path, safe='/')}"
