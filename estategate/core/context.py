from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable
from contextvars import ContextVar
from typing import Final, TypeVar

T = TypeVar("T")

_LOOKUP_CACHE: Final[ContextVar[dict[Hashable, object] | None]] = ContextVar(
    "lookup_cache",
    default=None,
)


def open_lookup_cache() -> object:
    return _LOOKUP_CACHE.set({})


def get_lookup_cache() -> dict[Hashable, object] | None:
    return _LOOKUP_CACHE.get()


def reset_lookup_cache(token: object) -> None:
    _LOOKUP_CACHE.reset(token)


async def request_cached(key: Hashable, loader: Callable[[], Awaitable[T]]) -> T:
    """Memoize ``loader`` for the lifetime of the current request.

    Outside a request scope the loader is always called. Failed loads are not
    cached, so a transient store error is retried by the next caller.
    """
    cache = _LOOKUP_CACHE.get()
    if cache is None:
        return await loader()
    if key in cache:
        return cache[key]  # type: ignore[return-value]
    value = await loader()
    cache[key] = value
    return value
