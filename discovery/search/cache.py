from __future__ import annotations

import hashlib
import json
import time
from collections import Counter
from typing import Any

from .config import DEFAULT_SEARCH_CONFIG

_cache: dict[str, dict[str, Any]] = {}
_hits: Counter[str] = Counter()
_misses: Counter[str] = Counter()


def _make_key(namespace: str, request_dict: dict) -> str:
    normalized = json.dumps(request_dict, sort_keys=True, default=str)
    digest = hashlib.sha256(normalized.encode()).hexdigest()[:16]
    return f"{namespace}:{digest}"


def cache_get(
    namespace: str,
    request_dict: dict,
    ttl: int = DEFAULT_SEARCH_CONFIG.cache_ttl,
) -> Any | None:
    key = _make_key(namespace, request_dict)
    entry = _cache.get(key)
    if entry and time.time() - entry["created_at"] < ttl:
        _hits[namespace] += 1
        return entry["value"]
    if entry:
        del _cache[key]
    _misses[namespace] += 1
    return None


def _evict_expired(now: float, ttl: int) -> None:
    expired = [k for k, entry in _cache.items() if now - entry["created_at"] >= ttl]
    for key in expired:
        del _cache[key]


def cache_set(
    namespace: str,
    request_dict: dict,
    value: Any,
    ttl: int = DEFAULT_SEARCH_CONFIG.cache_ttl,
) -> None:
    now = time.time()
    _evict_expired(now, ttl)
    _cache[_make_key(namespace, request_dict)] = {"value": value, "created_at": now}


def invalidate(namespace: str) -> int:
    """Drop every entry under ``namespace``; returns how many were removed."""
    prefix = f"{namespace}:"
    stale = [k for k in _cache if k.startswith(prefix)]
    for key in stale:
        del _cache[key]
    return len(stale)


def get_cache_stats() -> dict:
    hits = sum(_hits.values())
    misses = sum(_misses.values())
    total = hits + misses
    return {
        "size": len(_cache),
        "hits": hits,
        "misses": misses,
        "hit_rate": round(hits / total * 100, 1) if total > 0 else 0.0,
        "by_namespace": {
            ns: {"hits": _hits[ns], "misses": _misses[ns]}
            for ns in sorted(set(_hits) | set(_misses))
        },
    }


def clear_cache() -> None:
    _cache.clear()
    _hits.clear()
    _misses.clear()
