from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from discovery.analytics.store import clear_events, get_events
from discovery.search.data_store import RecordStore
from discovery.search.models import (
    Coordinates,
    DistanceUnit,
    FilterOptions,
    SearchRequest,
    SearchSort,
)
from discovery.search.retrieval import get_entities, get_entity, search

MONDAY_10AM = datetime(2024, 6, 3, 10, 0)

PROVIDERS = [
    {
        "id": "sp-1", "name": "Craft Coffee House", "category": "Cafes", "rating": 4.5,
        "review_count": 540, "distance": "1 mi", "price_level": "$", "tags": ["coffee"],
        "availability_days": ["Monday"], "availability_start_time": "7:00 AM",
        "availability_end_time": "9:00 PM", "approval_status": "approved",
    },
    {
        "id": "sp-2", "name": "Chic Cuts", "category": "Salons", "rating": 4.7,
        "review_count": 212, "distance": "3 mi", "price_level": "$$", "tags": ["haircut"],
        "availability_days": ["Tuesday"], "availability_start_time": "10:00 AM",
        "availability_end_time": "8:00 PM", "approval_status": "approved",
    },
    {
        "id": "sp-3", "name": "Bean Corner", "category": "Cafes", "rating": 3.8,
        "review_count": 12, "price_level": "$", "is_hidden_gem": True,
        "map_link": "https://maps.google.com/?q=12.9352,77.6245",
        "approval_status": "approved",
    },
    {
        "id": "sp-4", "name": "Pending Coffee", "category": "Cafes", "rating": 5.0,
        "approval_status": "pending",
    },
    {"name": "No Id Cafe", "category": "Cafes", "rating": 4.9, "approval_status": "approved"},
]

EVENTS = [
    {"id": "ev-1", "title": "Coffee Cupping", "description": "Taste coffee", "rating": 4.9,
     "distance": "2 mi", "approval_status": "approved"},
    {"id": "ev-2", "title": "Flea Market", "rating": 4.1, "approval_status": "approved"},
]

LISTINGS = [
    {"id": "ml-1", "title": "Activa", "seller_id": "seller1", "approval_status": "approved"},
]


def _store(tmp_path: Path, include_events: bool = True) -> RecordStore:
    tables = {"service_providers": PROVIDERS, "marketplace_listings": LISTINGS}
    if include_events:
        tables["events"] = EVENTS
    for name, rows in tables.items():
        (tmp_path / f"{name}.json").write_text(json.dumps(rows), encoding="utf-8")
    return RecordStore(tmp_path)


def _ids(entities) -> list[str]:
    return [e.id for e in entities]


def test_default_search_sorts_by_rating(tmp_path: Path):
    response = search(SearchRequest(), store=_store(tmp_path), now=MONDAY_10AM)
    assert response.error is None
    assert _ids(response.results) == ["sp-2", "sp-1", "sp-3"]
    assert response.total_candidates == 3
    assert _ids(response.events) == ["ev-1", "ev-2"]


def test_unapproved_and_unidentified_rows_are_excluded(tmp_path: Path):
    response = search(SearchRequest(query="coffee"), store=_store(tmp_path), now=MONDAY_10AM)
    assert "sp-4" not in _ids(response.results)
    assert _ids(response.results) == ["sp-1"]


def test_category_is_capitalised(tmp_path: Path):
    response = search(SearchRequest(category="cafes"), store=_store(tmp_path), now=MONDAY_10AM)
    assert _ids(response.results) == ["sp-1", "sp-3"]


def test_open_now_filter(tmp_path: Path):
    request = SearchRequest(filters=FilterOptions(open_now_only=True))
    response = search(request, store=_store(tmp_path), now=MONDAY_10AM)
    assert _ids(response.results) == ["sp-1"]


def test_distance_filter_keeps_unknown_distance(tmp_path: Path):
    request = SearchRequest(
        filters=FilterOptions(max_distance=2, distance_unit=DistanceUnit.mi),
        sort=SearchSort.distance,
    )
    response = search(request, store=_store(tmp_path), now=MONDAY_10AM)
    assert _ids(response.results) == ["sp-1", "sp-3"]
    assert _ids(response.events) == ["ev-1", "ev-2"]


def test_origin_fills_distance_from_map_link(tmp_path: Path):
    request = SearchRequest(
        origin=Coordinates(lat=12.9352, lng=77.6245),
        filters=FilterOptions(distance_unit=DistanceUnit.km),
        sort=SearchSort.distance,
    )
    response = search(request, store=_store(tmp_path), now=MONDAY_10AM)
    assert response.results[0].id == "sp-3"
    assert response.results[0].distance == "0.0 km"


def test_limit_truncates_but_counts_all(tmp_path: Path):
    response = search(SearchRequest(limit=1), store=_store(tmp_path), now=MONDAY_10AM)
    assert len(response.results) == 1
    assert response.total_candidates == 3


def test_events_can_be_skipped(tmp_path: Path):
    request = SearchRequest(include_events=False)
    response = search(request, store=_store(tmp_path), now=MONDAY_10AM)
    assert response.events == []


def test_missing_events_table_sets_error_but_keeps_results(tmp_path: Path):
    response = search(SearchRequest(), store=_store(tmp_path, include_events=False), now=MONDAY_10AM)
    assert len(response.results) == 3
    assert response.events == []
    assert response.error is not None


def test_backend_failure_returns_empty_with_error(tmp_path: Path):
    response = search(SearchRequest(), store=RecordStore(tmp_path), now=MONDAY_10AM)
    assert response.results == []
    assert response.total_candidates == 0
    assert "service_providers" in response.error


def test_search_records_analytics_event(tmp_path: Path):
    clear_events()
    search(SearchRequest(query="coffee"), store=_store(tmp_path), now=MONDAY_10AM)
    [event] = get_events("search")
    assert event["query"] == "coffee"
    assert event["results_returned"] == 1
    assert event["cache_hit"] is False


def test_get_entity_looks_in_every_table(tmp_path: Path):
    store = _store(tmp_path)
    assert get_entity("sp-2", store=store).name == "Chic Cuts"
    assert get_entity("ml-1", store=store).name == "Activa"
    assert get_entity("ev-2", store=store).name == "Flea Market"
    assert get_entity("missing", store=store) is None


def test_get_entities_skips_unknown_ids(tmp_path: Path):
    store = _store(tmp_path)
    assert _ids(get_entities(["ev-1", "gone", "sp-1"], store=store)) == ["ev-1", "sp-1"]


def test_infinite_values_in_table_do_not_break_search(tmp_path: Path):
    rows = [
        {"id": "sp-1", "name": "Odd Row", "rating": float("nan"), "review_count": float("inf"),
         "approval_status": "approved"},
        {"id": "sp-2", "name": "Good Row", "rating": 4.2, "review_count": 10,
         "approval_status": "approved"},
    ]
    # json.dumps writes NaN / Infinity literals, which json.load reads back as floats
    (tmp_path / "service_providers.json").write_text(json.dumps(rows), encoding="utf-8")
    response = search(SearchRequest(include_events=False), store=RecordStore(tmp_path), now=MONDAY_10AM)
    assert response.error is None
    assert _ids(response.results) == ["sp-2", "sp-1"]
    assert response.results[1].rating == 0.0
    assert response.results[1].review_count == 0
