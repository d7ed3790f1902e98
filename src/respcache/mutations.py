"""Invalidation hooks for mutating operations."""

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar, Union

from .cache.manager import ResponseCache
from .utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# A key (or prefix) is either a literal or computed from the mutation's arguments.
KeySpec = Union[str, Callable[..., Union[str, Iterable[str]]]]


def _expand(specs: Sequence[KeySpec], args: tuple, kwargs: dict) -> List[str]:
    resolved: List[str] = []
    for spec in specs:
        if callable(spec):
            value = spec(*args, **kwargs)
            if isinstance(value, str):
                resolved.append(value)
            else:
                resolved.extend(value)
        else:
            resolved.append(spec)
    return resolved


async def apply_invalidation(cache: ResponseCache, keys: Iterable[str] = (), prefixes: Iterable[str] = ()) -> None:
    """Invalidate exact keys first, then whole prefixes."""
    for key in keys:
        await cache.invalidate(key)
    for prefix in prefixes:
        await cache.invalidate_prefix(prefix)


def invalidates(
    cache: ResponseCache,
    keys: Sequence[KeySpec] = (),
    prefixes: Sequence[KeySpec] = (),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorate an async mutation so it invalidates cache state once it succeeds.

    Invalidation runs before the wrapped call's result is returned, so the
    caller's next fetch cannot observe pre-mutation data. A mutation that
    raises leaves the cache untouched.

        @invalidates(cache, keys=["/items"], prefixes=[lambda item_id, *_: f"/items/{item_id}"])
        async def update_item(item_id, body): ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            result = await func(*args, **kwargs)
            await apply_invalidation(
                cache,
                keys=_expand(keys, args, kwargs),
                prefixes=_expand(prefixes, args, kwargs),
            )
            return result

        return wrapper

    return decorator


class MutationScope:
    """Async context manager that invalidates on clean exit.

        async with MutationScope(cache, keys=["/items"]):
            await api.update_item(5)
    """

    def __init__(self, cache: ResponseCache, keys: Iterable[str] = (), prefixes: Iterable[str] = ()) -> None:
        self.cache = cache
        self.keys = list(keys)
        self.prefixes = list(prefixes)

    def add(self, key: Optional[str] = None, prefix: Optional[str] = None) -> None:
        """Extend the scope from inside the block, e.g. with an id the mutation returned."""
        if key:
            self.keys.append(key)
        if prefix:
            self.prefixes.append(prefix)

    async def __aenter__(self) -> "MutationScope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            logger.debug("mutation_failed_no_invalidation", keys=self.keys, prefixes=self.prefixes)
            return
        await apply_invalidation(self.cache, self.keys, self.prefixes)
