from __future__ import annotations

import logging
import time
from datetime import datetime

from ..analytics.store import record_event
from .cache import cache_get, cache_set
from .data_store import (
    EVENTS,
    MARKETPLACE_LISTINGS,
    SERVICE_PROVIDERS,
    QueryResult,
    RecordStore,
    get_store,
)
from .distance import annotate_distances
from .filters import filter_entities
from .formatter import (
    format_event,
    format_listing,
    format_records,
    format_service_provider,
)
from .models import Entity, SearchRequest, SearchResponse
from .sorting import sort_entities

logger = logging.getLogger(__name__)

SERVICE_TEXT_COLUMNS = ["name", "description", "category", "tags", "area", "city"]
EVENT_TEXT_COLUMNS = ["title", "description", "location"]

_APPROVED = {"approval_status": "approved"}


def _db_category(category: str) -> str:
    # Categories are stored capitalised ("Cafes", "Salons").
    return category[:1].upper() + category[1:]


def _record_search(
    request: SearchRequest,
    start_time: float,
    total_candidates: int,
    results_returned: int,
    cache_hit: bool,
    error: str | None = None,
    event_type: str = "search",
) -> None:
    elapsed_ms = round((time.time() - start_time) * 1000, 1)
    record_event(event_type, {
        "query": request.query,
        "category": request.category,
        "sort": request.sort.value,
        "filters": request.filters.model_dump(mode="json"),
        "total_candidates": total_candidates,
        "results_returned": results_returned,
        "response_time_ms": elapsed_ms,
        "cache_hit": cache_hit,
        "error": error,
    })


def _rank_events(raw_events: QueryResult, request: SearchRequest) -> list[Entity]:
    unit = request.filters.distance_unit
    entities = annotate_distances(
        format_records(raw_events.records, format_event), request.origin, unit,
    )
    # Events have dates, not weekly hours.
    options = request.filters.model_copy(update={"open_now_only": False})
    ranked = sort_entities(filter_entities(entities, options), request.sort, unit=unit)
    return ranked[: request.limit]


def search(
    request: SearchRequest,
    store: RecordStore | None = None,
    now: datetime | None = None,
    event_type: str = "search",
) -> SearchResponse:
    """
    Fetch, format, filter and sort service providers and events.

    Backend failures come back as an empty result with ``error`` set.
    Open-now searches depend on the clock and are never cached.
    """
    start_time = time.time()
    request_dict = request.model_dump(mode="json")
    # Only searches against the shared store on the real clock are cached.
    cacheable = store is None and now is None and not request.filters.open_now_only
    store = store or get_store()

    if cacheable:
        cached = cache_get("search", request_dict)
        if cached is not None:
            _record_search(
                request, start_time, cached.total_candidates,
                len(cached.results), cache_hit=True, event_type=event_type,
            )
            return cached

    eq = dict(_APPROVED)
    if request.category and request.category.lower() != "all":
        eq["category"] = _db_category(request.category)
    text = request.query.strip()

    providers = store.select(
        SERVICE_PROVIDERS,
        eq=eq,
        contains=(text, SERVICE_TEXT_COLUMNS) if text else None,
    )
    if not providers.ok:
        _record_search(request, start_time, 0, 0, False, providers.error, event_type)
        return SearchResponse(results=[], events=[], total_candidates=0, error=providers.error)

    unit = request.filters.distance_unit
    entities = annotate_distances(
        format_records(providers.records, format_service_provider), request.origin, unit,
    )
    filtered = filter_entities(entities, request.filters, now=now)
    ordered = sort_entities(filtered, request.sort, unit=unit)

    events: list[Entity] = []
    error: str | None = None
    if request.include_events:
        raw_events = store.select(
            EVENTS,
            eq=dict(_APPROVED),
            contains=(text, EVENT_TEXT_COLUMNS) if text else None,
        )
        if raw_events.ok:
            events = _rank_events(raw_events, request)
        else:
            error = raw_events.error

    response = SearchResponse(
        results=ordered[: request.limit],
        events=events,
        total_candidates=len(filtered),
        error=error,
    )

    if cacheable and error is None:
        cache_set("search", request_dict, response)

    _record_search(
        request, start_time, len(filtered), len(response.results),
        cache_hit=False, error=error, event_type=event_type,
    )
    return response


_LOOKUP_TABLES = (
    (SERVICE_PROVIDERS, format_service_provider),
    (MARKETPLACE_LISTINGS, format_listing),
    (EVENTS, format_event),
)


def get_entity(entity_id: str, store: RecordStore | None = None) -> Entity | None:
    """Find one entity by id in any table."""
    store = store or get_store()
    for table, formatter in _LOOKUP_TABLES:
        result = store.select(table, eq={"id": entity_id}, limit=1)
        entities = format_records(result.records, formatter)
        if entities:
            return entities[0]
    return None


def get_entities(entity_ids: list[str], store: RecordStore | None = None) -> list[Entity]:
    """Resolve ids in order, skipping any that no longer exist."""
    entities: list[Entity] = []
    for entity_id in entity_ids:
        entity = get_entity(entity_id, store=store)
        if entity is None:
            logger.info("Skipping unknown entity %s", entity_id)
            continue
        entities.append(entity)
    return entities
