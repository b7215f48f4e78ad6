from __future__ import annotations

import logging
import os

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from starlette.middleware.sessions import SessionMiddleware

from .analytics.aggregator import compute_analytics
from .analytics.store import get_events
from .auth.dependencies import require_admin, require_user
from .auth.users import UserExistsError, authenticate, register_user
from .chat.intent import (
    CONFIDENCE_THRESHOLD,
    MAX_CLARIFICATIONS,
    accumulate_intent,
    build_reply,
    extract_intent,
    generate_clarification,
    map_intent_to_request,
    merge_accumulated,
    update_conversation_state,
)
from .chat.models import (
    ChatRequest,
    ChatResponse,
    ChatResponseType,
    ConversationState,
)
from .llm.groq_client import enhance_query
from .maps.config import DEFAULT_MAPS_CONFIG
from .maps.links import extract_coordinates_from_map_link
from .search.cache import get_cache_stats
from .search.data_store import MARKETPLACE_LISTINGS, SERVICE_PROVIDERS, get_store
from .search.marketplace import browse_marketplace, get_listing, get_user_listings
from .search.models import (
    EnhanceRequest,
    EnhanceResponse,
    Entity,
    LoginRequest,
    MarketplaceRequest,
    MarketplaceResponse,
    SearchRequest,
    SearchResponse,
    SignupRequest,
    WishlistRequest,
    WishlistResponse,
)
from .search.retrieval import get_entities, get_entity, search
from .wishlist.store import add_item, get_item_ids, remove_item

logger = logging.getLogger(__name__)

app = FastAPI(title="Local Discovery API", version="1.0.0")
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "discovery-secret-change-in-production"),
)


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metadata")
def metadata() -> dict:
    store = get_store()
    categories: dict[str, list[str]] = {}
    for key, table in (("services", SERVICE_PROVIDERS), ("marketplace", MARKETPLACE_LISTINGS)):
        result = store.select(table, eq={"approval_status": "approved"})
        names = {str(r["category"]) for r in result.records if r.get("category")}
        categories[key] = sorted(names)
    return {"categories": categories}


@app.post("/search", response_model=SearchResponse)
def search_endpoint(body: SearchRequest) -> SearchResponse:
    return search(body)


@app.post("/search/enhance", response_model=EnhanceResponse)
def enhance(body: EnhanceRequest) -> EnhanceResponse:
    return EnhanceResponse(original=body.query, enhanced=enhance_query(body.query, body.context))


@app.post("/marketplace", response_model=MarketplaceResponse)
def marketplace(body: MarketplaceRequest) -> MarketplaceResponse:
    return browse_marketplace(body)


@app.get("/marketplace/{listing_id}", response_model=Entity)
def marketplace_listing(listing_id: str) -> Entity:
    listing = get_listing(listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    return listing


@app.get("/entities/{entity_id}", response_model=Entity)
def entity(entity_id: str) -> Entity:
    found = get_entity(entity_id)
    if found is None:
        raise HTTPException(status_code=404, detail="Entity not found")
    return found


@app.get("/maps/key")
def maps_key() -> dict[str, str]:
    if not DEFAULT_MAPS_CONFIG.google_maps_api_key:
        raise HTTPException(status_code=404, detail="Maps API key not configured")
    return {"key": DEFAULT_MAPS_CONFIG.google_maps_api_key}


@app.get("/maps/coordinates")
def maps_coordinates(link: str = Query(..., min_length=1)) -> dict[str, float]:
    coords = extract_coordinates_from_map_link(link)
    if coords is None:
        raise HTTPException(status_code=404, detail="No coordinates in link")
    return {"lat": coords[0], "lng": coords[1]}


# ── Auth endpoints ───────────────────────────────────────────────────────


@app.post("/auth/login")
def login(body: LoginRequest, request: Request) -> dict:
    user = authenticate(body.username, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    request.session["user"] = user
    return {"status": "ok", "user": user}


@app.post("/auth/signup", status_code=201)
def signup(body: SignupRequest, request: Request) -> dict:
    try:
        user = register_user(body.username, body.password)
    except UserExistsError:
        raise HTTPException(status_code=409, detail="Username already taken")
    request.session["user"] = user
    return {"status": "ok", "user": user}


@app.post("/auth/logout")
def logout(request: Request) -> dict:
    request.session.clear()
    return {"status": "logged_out"}


@app.get("/auth/me")
def auth_me(user: dict = Depends(require_user)) -> dict:
    return user


# ── User endpoints ───────────────────────────────────────────────────────


@app.get("/wishlist", response_model=WishlistResponse)
def wishlist(user: dict = Depends(require_user)) -> WishlistResponse:
    return WishlistResponse(items=get_entities(get_item_ids(user["username"])))


@app.post("/wishlist")
def wishlist_add(body: WishlistRequest, user: dict = Depends(require_user)) -> dict:
    if get_entity(body.entity_id) is None:
        raise HTTPException(status_code=404, detail="Entity not found")
    added = add_item(user["username"], body.entity_id)
    return {"status": "added" if added else "exists", "entity_id": body.entity_id}


@app.delete("/wishlist/{entity_id}")
def wishlist_remove(entity_id: str, user: dict = Depends(require_user)) -> dict:
    if not remove_item(user["username"], entity_id):
        raise HTTPException(status_code=404, detail="Not in wishlist")
    return {"status": "removed", "entity_id": entity_id}


@app.get("/me/listings", response_model=MarketplaceResponse)
def my_listings(user: dict = Depends(require_user)) -> MarketplaceResponse:
    return get_user_listings(user["username"])


# ── Chat endpoint ────────────────────────────────────────────────────────


@app.post("/chat", response_model=ChatResponse)
def chat(
    body: ChatRequest,
    request: Request,
    user: dict = Depends(require_user),
) -> ChatResponse:
    # 1. Load conversation state from session
    raw_state = request.session.get("chat_state")
    try:
        conv_state = ConversationState(**raw_state) if raw_state else ConversationState()
    except ValueError:
        logger.info("Discarding malformed chat state for %s", user["username"])
        conv_state = ConversationState()

    # 2. Extract intent from message
    intent = extract_intent(body.message, conv_state)

    # 3. Accumulate intent across turns
    accumulated = accumulate_intent(dict(conv_state.accumulated_intent), intent)
    conv_state.accumulated_intent = accumulated

    # 4. Clarification path: low confidence, not total failure, under max clarifications
    if (
        0.0 < intent.confidence < CONFIDENCE_THRESHOLD
        and conv_state.clarification_count < MAX_CLARIFICATIONS
    ):
        question = generate_clarification(intent)
        conv_state.clarification_count += 1
        conv_state = update_conversation_state(conv_state, body.message, question, intent)
        request.session["chat_state"] = conv_state.model_dump()

        return ChatResponse(
            type=ChatResponseType.clarification,
            message=question,
            results=None,
            parsed_intent=accumulated,
        )

    # 5. Search with everything learned so far
    merged = merge_accumulated(intent, accumulated)
    response = search(map_intent_to_request(merged), event_type="chat_search")

    # 6. Build conversational reply and save state
    reply = build_reply(merged, len(response.results))
    result_ids = [e.id for e in response.results]
    conv_state = update_conversation_state(conv_state, body.message, reply, intent, result_ids)
    request.session["chat_state"] = conv_state.model_dump()

    return ChatResponse(
        type=ChatResponseType.results,
        message=reply,
        results=response,
        parsed_intent=accumulated,
    )


@app.post("/chat/reset")
def chat_reset(request: Request, user: dict = Depends(require_user)) -> dict:
    request.session.pop("chat_state", None)
    return {"status": "reset"}


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.get("/analytics")
def analytics(user: dict = Depends(require_admin)) -> dict:
    return compute_analytics(get_events())


@app.get("/cache/stats")
def cache_stats(user: dict = Depends(require_admin)) -> dict:
    return get_cache_stats()
