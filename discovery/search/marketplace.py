from __future__ import annotations

import math
import time
from collections import Counter
from typing import Any

from ..analytics.store import record_event
from .data_store import MARKETPLACE_LISTINGS, SELLER_REVIEWS, RecordStore, get_store
from .distance import annotate_distances
from .filters import filter_marketplace_listings
from .formatter import format_listing, format_records
from .models import Entity, MarketplaceRequest, MarketplaceResponse
from .sorting import sort_entities

LISTING_TEXT_COLUMNS = ["title", "description", "tags"]


def seller_review_counts(store: RecordStore) -> dict[str, int]:
    """Number of reviews per seller id; empty if the reviews table is unavailable."""
    result = store.select(SELLER_REVIEWS)
    counts: Counter[str] = Counter(
        str(r["seller_id"]) for r in result.records if r.get("seller_id")
    )
    return dict(counts)


def _format_with_reviews(
    records: list[dict[str, Any]],
    counts: dict[str, int],
) -> list[Entity]:
    def format_marketplace_listing(raw: dict[str, Any]) -> Entity:
        seller = raw.get("seller_id")
        return format_listing(raw, review_count=counts.get(str(seller), 0) if seller else None)

    return format_records(records, format_marketplace_listing)


def browse_marketplace(
    request: MarketplaceRequest,
    store: RecordStore | None = None,
) -> MarketplaceResponse:
    """Approved listings, newest first from the backend, then filtered, sorted and paged."""
    start_time = time.time()
    store = store or get_store()

    eq: dict[str, Any] = {"approval_status": "approved"}
    if request.category:
        eq["category"] = request.category
    text = request.query.strip()

    result = store.select(
        MARKETPLACE_LISTINGS,
        eq=eq,
        contains=(text, LISTING_TEXT_COLUMNS) if text else None,
        order_by="created_at",
        descending=True,
    )

    listings: list[Entity] = []
    if result.ok:
        entities = annotate_distances(
            _format_with_reviews(result.records, seller_review_counts(store)),
            request.origin,
            request.filters.distance_unit,
        )
        filtered = filter_marketplace_listings(entities, request.filters)
        listings = sort_entities(filtered, request.sort, unit=request.filters.distance_unit)

    total = len(listings)
    total_pages = max(1, math.ceil(total / request.page_size))
    offset = (request.page - 1) * request.page_size
    page = listings[offset: offset + request.page_size]

    elapsed_ms = round((time.time() - start_time) * 1000, 1)
    record_event("marketplace", {
        "query": request.query,
        "category": request.category,
        "sort": request.sort.value,
        "filters": request.filters.model_dump(mode="json"),
        "results_returned": len(page),
        "response_time_ms": elapsed_ms,
        "error": result.error,
    })

    return MarketplaceResponse(
        listings=page,
        total=total,
        page=request.page,
        total_pages=total_pages,
        error=result.error,
    )


def get_user_listings(owner_id: str, store: RecordStore | None = None) -> MarketplaceResponse:
    """Every listing owned by ``owner_id`` regardless of approval, newest first."""
    store = store or get_store()
    result = store.select(
        MARKETPLACE_LISTINGS,
        eq={"seller_id": owner_id},
        order_by="created_at",
        descending=True,
    )
    listings = _format_with_reviews(result.records, seller_review_counts(store))
    return MarketplaceResponse(
        listings=listings,
        total=len(listings),
        page=1,
        total_pages=1,
        error=result.error,
    )


def get_listing(listing_id: str, store: RecordStore | None = None) -> Entity | None:
    """One approved listing with its seller's review count."""
    store = store or get_store()
    result = store.select(
        MARKETPLACE_LISTINGS,
        eq={"id": listing_id, "approval_status": "approved"},
        limit=1,
    )
    if not result.records:
        return None

    raw = result.records[0]
    seller = raw.get("seller_id")
    counts = {str(seller): store.count(SELLER_REVIEWS, eq={"seller_id": seller})} if seller else {}
    listings = _format_with_reviews([raw], counts)
    return listings[0] if listings else None
