from fastapi import FastAPI

from estategate.api.middleware import lookup_cache_middleware
from estategate.api.routes.access import router as access_router
from estategate.api.routes.admin import router as admin_router
from estategate.api.routes.webhooks import router as webhooks_router

app = FastAPI(title="Estategate Access Service")
app.middleware("http")(lookup_cache_middleware)
app.include_router(access_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")
app.include_router(webhooks_router, prefix="/api/v1")


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
