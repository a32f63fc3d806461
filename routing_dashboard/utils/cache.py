"""
TTL caches for slow-changing warehouse lookups (aliases, alias -> node id).

Only positive results are cached: a lookup that failed or found nothing is
retried on the next request, so a node that shows up later is not hidden
for the lifetime of the entry.
"""
import json
from functools import wraps
from typing import Any, Callable, Dict, Optional, Tuple

import structlog
from cachetools import TTLCache

logger = structlog.get_logger(__name__)

# profile name -> (maxsize, ttl seconds)
CACHE_PROFILES: Dict[str, Tuple[int, int]] = {
    "1hour": (2000, 3600),
}

CACHES: Dict[str, TTLCache] = {
    name: TTLCache(maxsize=maxsize, ttl=ttl) for name, (maxsize, ttl) in CACHE_PROFILES.items()
}


def _cache_for(ttl: str) -> TTLCache:
    try:
        return CACHES[ttl]
    except KeyError:
        raise ValueError(f"Unknown cache profile {ttl!r} (expected one of {', '.join(CACHES)})") from None


def build_cache_key(prefix: str, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
    """'<prefix>:<json>' - arguments are short ids and aliases, so keys stay readable."""
    payload = json.dumps([list(args), sorted(kwargs.items())], default=str, separators=(",", ":"))
    return f"{prefix}:{payload}"


def cached(ttl: str = "1hour", key_prefix: Optional[str] = None, method: bool = False) -> Callable:
    """
    Cache the result of an async function in one of the TTL profiles.

    Args:
        ttl: Cache profile name, a key of CACHE_PROFILES
        key_prefix: Key prefix, defaults to the function's qualified name
        method: Leave ``self`` out of the key so all instances share entries

    Usage:
        @cached(ttl="1hour", key_prefix="node_alias", method=True)
        async def _lookup_alias(self, node_id: str):
            ...
    """
    cache = _cache_for(ttl)

    def decorator(func: Callable) -> Callable:
        prefix = key_prefix or func.__qualname__

        @wraps(func)
        async def wrapper(*args, **kwargs):
            key = build_cache_key(prefix, args[1:] if method else args, kwargs)
            hit = cache.get(key)
            if hit is not None:
                return hit

            result = await func(*args, **kwargs)
            if result is not None:
                cache[key] = result
            return result

        return wrapper

    return decorator


def invalidate_cache(prefix: Optional[str] = None, ttl: Optional[str] = None) -> int:
    """
    Drop cached entries and return how many were removed.

    ``prefix`` limits removal to keys of one lookup (e.g. "node_alias");
    ``ttl`` limits it to one profile. With neither, everything is cleared.
    """
    targets = [_cache_for(ttl)] if ttl else list(CACHES.values())
    removed = 0
    for cache in targets:
        if prefix is None:
            removed += len(cache)
            cache.clear()
            continue
        for key in [k for k in list(cache) if k.startswith(f"{prefix}:")]:
            cache.pop(key, None)
            removed += 1

    if removed:
        logger.debug("cache_invalidated", prefix=prefix, ttl=ttl, removed=removed)
    return removed


def get_cache_stats() -> Dict[str, Dict[str, float]]:
    """Size and limits per profile, reported on /health."""
    return {
        name: {"size": len(cache), "maxsize": cache.maxsize, "ttl": cache.ttl}
        for name, cache in CACHES.items()
    }
