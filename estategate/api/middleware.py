from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Request
from starlette.responses import Response

from estategate.core.context import open_lookup_cache, reset_lookup_cache


async def lookup_cache_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    token = open_lookup_cache()
    try:
        return await call_next(request)
    finally:
        reset_lookup_cache(token)
