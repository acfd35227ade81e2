from estategate.api.routes.access import router as access_router
from estategate.api.routes.admin import router as admin_router
from estategate.api.routes.webhooks import router as webhooks_router

__all__ = [
    "access_router",
    "admin_router",
    "webhooks_router",
]
