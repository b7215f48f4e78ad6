from __future__ import annotations

import json
import logging
import re
from typing import Any

from groq import Groq

from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..search.models import FilterOptions, SearchRequest
from .models import ConversationState, ConversationTurn, ExtractedIntent

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.6
MAX_CLARIFICATIONS = 1
_MAX_TURNS = 6  # 3 exchanges

# ---------------------------------------------------------------------------
# LLM Prompts
# ---------------------------------------------------------------------------

INTENT_EXTRACTION_PROMPT = """\
You are the search assistant of a local discovery app (shops, salons, cafes, \
services, events). Given a user message (and optionally prior conversation \
context), extract structured search preferences as JSON.

Return ONLY valid JSON with these fields (omit fields you cannot infer):
{
  "query": "what the user is looking for, e.g. 'haircut', 'filter coffee'",
  "category": "Cafes / Salons / Restaurants / Fitness / Events / Services",
  "area": "neighbourhood or city",
  "price_sentiment": "raw price expression e.g. 'under 500', 'cheap', 'premium'",
  "min_rating": 4.0,
  "max_distance": 3,
  "open_now": true,
  "hidden_gem": false,
  "must_visit": false,
  "confidence": 0.7,
  "missing_fields": ["area"]
}

Confidence scoring rules:
- Very vague message with no specifics -> confidence 0.2-0.3, list missing_fields
- Only a category or only an area -> confidence 0.5
- What they want + where -> confidence 0.7-0.8
- What + where + a constraint (price, rating, open now) -> confidence 0.9

Normalize category to Title Case plural. Keep raw price expressions as-is.
Always include confidence and missing_fields in your response."""

CLARIFICATION_PROMPT = """\
You are a friendly local guide. The user is searching for places or services \
nearby but their request is missing some key details.

Based on what we know so far, ask a brief, conversational follow-up question \
(under 40 words) to clarify at most 2 missing details. Ask about what they \
are looking for first, then the area.

Do NOT list options in bullet points. Keep it natural and warm."""


# ---------------------------------------------------------------------------
# Price Mapping
# ---------------------------------------------------------------------------

_PRICE_KEYWORDS: dict[str, int] = {
    "cheap": 1,
    "budget": 1,
    "inexpensive": 1,
    "affordable": 2,
    "moderate": 2,
    "mid-range": 2,
    "mid range": 2,
    "expensive": 3,
    "premium": 3,
    "upscale": 3,
    "luxury": 4,
    "splurge": 4,
}

_AMOUNT_RE = re.compile(
    r"(?:under|below|less than|max|upto|up to)\s*(?:₹|rs\.?|inr)?\s*(\d+)",
    re.IGNORECASE,
)
_PER_PERSON_RE = re.compile(r"per\s*person", re.IGNORECASE)


def _map_price_sentiment_to_level(sentiment: str | None) -> int | None:
    """Map a price expression to the highest acceptable "$" tier."""
    if not sentiment:
        return None

    lower = sentiment.lower().strip()

    for keyword, level in _PRICE_KEYWORDS.items():
        if keyword in lower:
            return level

    # "under 500 per person" or "under 1000" (for two)
    match = _AMOUNT_RE.search(lower)
    if match:
        amount = int(match.group(1))
        if _PER_PERSON_RE.search(lower):
            amount *= 2
        if amount <= 300:
            return 1
        if amount <= 700:
            return 2
        if amount <= 1500:
            return 3
        return 4

    return None


# ---------------------------------------------------------------------------
# Intent → SearchRequest
# ---------------------------------------------------------------------------


def map_intent_to_request(intent: ExtractedIntent) -> SearchRequest:
    terms = [t for t in (intent.query, intent.area) if t and t.strip()]

    filters = FilterOptions(
        min_rating=intent.min_rating or 0.0,
        max_distance=intent.max_distance,
        price_level=_map_price_sentiment_to_level(intent.price_sentiment),
        open_now_only=bool(intent.open_now),
        hidden_gem_only=bool(intent.hidden_gem),
        must_visit_only=bool(intent.must_visit),
    )

    return SearchRequest(
        query=" ".join(terms)[:200],
        category=intent.category or "all",
        filters=filters,
    )


# ---------------------------------------------------------------------------
# Conversation Accumulation
# ---------------------------------------------------------------------------


def accumulate_intent(
    accumulated: dict[str, Any],
    new_intent: ExtractedIntent,
) -> dict[str, Any]:
    new_data = new_intent.model_dump(exclude_none=True, exclude={"confidence", "missing_fields"})

    for key, value in new_data.items():
        if value or value is False:
            accumulated[key] = value

    return accumulated


def merge_accumulated(intent: ExtractedIntent, accumulated: dict[str, Any]) -> ExtractedIntent:
    """Fill fields the latest message left out from earlier turns."""
    merged = {**accumulated, **intent.model_dump(exclude_none=True)}
    return ExtractedIntent(**merged)


def update_conversation_state(
    state: ConversationState,
    user_message: str,
    assistant_message: str,
    new_intent: ExtractedIntent,
    result_ids: list[str] | None = None,
) -> ConversationState:
    turns = list(state.turns)
    turns.append(ConversationTurn(role="user", content=user_message))
    turns.append(ConversationTurn(role="assistant", content=assistant_message))

    if len(turns) > _MAX_TURNS:
        turns = turns[-_MAX_TURNS:]

    accumulated = accumulate_intent(dict(state.accumulated_intent), new_intent)

    return ConversationState(
        turns=turns,
        accumulated_intent=accumulated,
        clarification_count=state.clarification_count,
        last_results_ids=result_ids or state.last_results_ids,
    )


def build_reply(intent: ExtractedIntent, count: int) -> str:
    if count == 0:
        return "I couldn't find anything matching that. Could you try a different area or search?"
    if intent.open_now:
        return f"Found {count} places open right now:"
    if intent.query and intent.area:
        return f"Here are {count} results for {intent.query} in {intent.area}:"
    if intent.area:
        return f"Found {count} places in {intent.area} for you:"
    return f"Here are {count} places you might like:"


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------

_FLAG_PHRASES: dict[str, tuple[str, ...]] = {
    "open_now": ("open now", "open right now", "currently open"),
    "hidden_gem": ("hidden gem",),
    "must_visit": ("must visit", "must-visit"),
}

_STOPWORDS = frozenset(
    "a an the any some me i im i'm we find show looking for want need near nearby "
    "around in at to of is are that which where good best place places please".split()
)


def _fallback_intent(message: str) -> ExtractedIntent:
    lower = message.lower()
    flags = {
        field: True
        for field, phrases in _FLAG_PHRASES.items()
        if any(p in lower for p in phrases)
    }

    stripped = lower
    for phrases in _FLAG_PHRASES.values():
        for phrase in phrases:
            stripped = stripped.replace(phrase, " ")
    price_sentiment = None
    for keyword in _PRICE_KEYWORDS:
        if keyword in stripped:
            price_sentiment = keyword
            stripped = stripped.replace(keyword, " ")
            break

    words = [
        w for w in re.findall(r"[a-z0-9']+", stripped)
        if len(w) > 1 and w not in _STOPWORDS
    ]

    return ExtractedIntent(
        query=" ".join(words) or None,
        price_sentiment=price_sentiment,
        confidence=0.0,
        missing_fields=["area"],
        **flags,
    )


def _fallback_clarification(intent: ExtractedIntent) -> str:
    if not intent.query and not intent.category:
        return "Happy to help! What are you looking for, and in which area?"
    if not intent.area:
        return "Sounds good! Which area or neighbourhood should I look in?"
    return "Got it! Any preference on price, rating, or places that are open right now?"


# ---------------------------------------------------------------------------
# LLM Calls
# ---------------------------------------------------------------------------


def extract_intent(
    message: str,
    conversation_state: ConversationState | None = None,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> ExtractedIntent:
    if not config.enabled or not config.api_key:
        return _fallback_intent(message)

    try:
        messages: list[dict[str, str]] = [
            {"role": "system", "content": INTENT_EXTRACTION_PROMPT},
        ]

        if conversation_state and conversation_state.turns:
            history_parts = []
            for turn in conversation_state.turns[-4:]:  # Last 2 exchanges
                history_parts.append(f"{turn.role}: {turn.content}")
            if conversation_state.accumulated_intent:
                history_parts.append(
                    f"Known preferences so far: {json.dumps(conversation_state.accumulated_intent)}"
                )
            context = "\n".join(history_parts)
            messages.append(
                {"role": "user", "content": f"Conversation context:\n{context}\n\nLatest message: {message}"}
            )
        else:
            messages.append({"role": "user", "content": message})

        client = Groq(api_key=config.api_key, timeout=config.timeout)
        response = client.chat.completions.create(
            model=config.model,
            messages=messages,
            max_tokens=512,
            temperature=0.1,
            response_format={"type": "json_object"},
        )

        content = response.choices[0].message.content or "{}"
        parsed = json.loads(content)
        return ExtractedIntent(**parsed)

    except Exception:
        logger.warning("Intent extraction failed, using fallback", exc_info=True)
        return _fallback_intent(message)


def generate_clarification(
    intent: ExtractedIntent,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> str:
    if not config.enabled or not config.api_key:
        return _fallback_clarification(intent)

    try:
        known = intent.model_dump(exclude_none=True, exclude={"confidence", "missing_fields"})
        missing = intent.missing_fields or []

        user_content = (
            f"Known preferences: {json.dumps(known)}\n"
            f"Missing information: {', '.join(missing) if missing else 'unclear'}\n"
            "Generate a brief follow-up question."
        )

        client = Groq(api_key=config.api_key, timeout=config.timeout)
        response = client.chat.completions.create(
            model=config.model,
            messages=[
                {"role": "system", "content": CLARIFICATION_PROMPT},
                {"role": "user", "content": user_content},
            ],
            max_tokens=128,
            temperature=0.5,
        )

        question = (response.choices[0].message.content or "").strip()
        return question if question else _fallback_clarification(intent)

    except Exception:
        logger.warning("Clarification generation failed, using fallback", exc_info=True)
        return _fallback_clarification(intent)
