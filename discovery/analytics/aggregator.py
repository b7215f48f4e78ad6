from __future__ import annotations

from collections import Counter
from typing import Any

from ..wishlist.store import wishlist_sizes

_SEARCH_TYPES = ("search", "chat_search")


def _rate(count: int, total: int) -> float:
    return round(count / total * 100, 1) if total else 0.0


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    searches = [e for e in events if e["type"] in _SEARCH_TYPES]
    browses = [e for e in events if e["type"] == "marketplace"]
    total = len(searches)

    # Average response time
    times = [s["response_time_ms"] for s in searches if "response_time_ms" in s]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    # Top categories and queries
    category_counter: Counter[str] = Counter()
    query_counter: Counter[str] = Counter()
    for s in searches:
        category_counter[s.get("category") or "all"] += 1
        query = (s.get("query") or "").strip().lower()
        if query:
            query_counter[query] += 1
    top_categories = [{"name": n, "count": c} for n, c in category_counter.most_common(10)]
    top_queries = [{"name": n, "count": c} for n, c in query_counter.most_common(10)]

    # Sort option usage
    sort_usage = dict(Counter(s.get("sort") for s in searches if s.get("sort")))

    # Filter usage rates
    filter_counts = {
        "open_now": 0,
        "distance": 0,
        "rating": 0,
        "price_level": 0,
        "hidden_gem": 0,
        "must_visit": 0,
    }
    for s in searches:
        filters = s.get("filters") or {}
        if filters.get("open_now_only"):
            filter_counts["open_now"] += 1
        if filters.get("max_distance") is not None:
            filter_counts["distance"] += 1
        if filters.get("min_rating", 0) > 0:
            filter_counts["rating"] += 1
        if filters.get("price_level") is not None:
            filter_counts["price_level"] += 1
        if filters.get("hidden_gem_only"):
            filter_counts["hidden_gem"] += 1
        if filters.get("must_visit_only"):
            filter_counts["must_visit"] += 1
    filter_usage = {k: _rate(v, total) for k, v in filter_counts.items()}

    # Cache and backend health
    cache_hits = sum(1 for s in searches if s.get("cache_hit"))
    backend_errors = sum(1 for e in searches + browses if e.get("error"))
    zero_results = sum(1 for s in searches if s.get("results_returned") == 0)

    sizes = wishlist_sizes()

    return {
        "total_searches": total,
        "total_marketplace_browses": len(browses),
        "avg_response_time_ms": avg_time,
        "top_categories": top_categories,
        "top_queries": top_queries,
        "sort_usage": sort_usage,
        "filter_usage": filter_usage,
        "zero_result_rate": _rate(zero_results, total),
        "backend_errors": backend_errors,
        "cache_stats": {
            "hits": cache_hits,
            "misses": total - cache_hits,
            "hit_rate": _rate(cache_hits, total),
        },
        "wishlist_summary": {
            "users": len(sizes),
            "total_items": sum(sizes.values()),
        },
    }
