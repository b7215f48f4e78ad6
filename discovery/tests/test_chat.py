from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from discovery.app import app
from discovery.chat.intent import (
    _fallback_intent,
    _map_price_sentiment_to_level,
    accumulate_intent,
    build_reply,
    extract_intent,
    generate_clarification,
    map_intent_to_request,
    merge_accumulated,
    update_conversation_state,
)
from discovery.chat.models import ConversationState, ExtractedIntent
from discovery.llm.config import LLMConfig

ENABLED_CONFIG = LLMConfig(api_key="test-key", enabled=True)
DISABLED_CONFIG = LLMConfig(enabled=False)


def _login(c):
    c.post("/auth/login", json={"username": "user", "password": "user123"})


def _mock_completion(content: str) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


# ── Price Mapping ────────────────────────────────────────────────────────


class TestPriceMapping:
    def test_cheap_keyword(self):
        assert _map_price_sentiment_to_level("cheap") == 1

    def test_moderate_keyword(self):
        assert _map_price_sentiment_to_level("something moderate") == 2

    def test_premium_keyword(self):
        assert _map_price_sentiment_to_level("premium") == 3

    def test_per_person_amount(self):
        # 400 per person is 800 for two
        assert _map_price_sentiment_to_level("under 400 per person") == 3

    def test_amount_for_two(self):
        assert _map_price_sentiment_to_level("under ₹300") == 1

    def test_large_amount(self):
        assert _map_price_sentiment_to_level("below 5000") == 4

    def test_none_input(self):
        assert _map_price_sentiment_to_level(None) is None

    def test_unknown_expression(self):
        assert _map_price_sentiment_to_level("somewhere nice") is None


# ── Intent → SearchRequest ───────────────────────────────────────────────


class TestIntentMapping:
    def test_full_intent_mapping(self):
        intent = ExtractedIntent(
            query="haircut",
            category="Salons",
            area="Indiranagar",
            price_sentiment="affordable",
            min_rating=4.0,
            max_distance=3,
            open_now=True,
            confidence=0.9,
        )
        req = map_intent_to_request(intent)
        assert req.query == "haircut Indiranagar"
        assert req.category == "Salons"
        assert req.filters.price_level == 2
        assert req.filters.min_rating == 4.0
        assert req.filters.max_distance == 3
        assert req.filters.open_now_only is True
        assert req.filters.hidden_gem_only is False

    def test_empty_intent_searches_everything(self):
        req = map_intent_to_request(ExtractedIntent())
        assert req.query == ""
        assert req.category == "all"
        assert req.filters.price_level is None


# ── Accumulation ─────────────────────────────────────────────────────────


class TestAccumulation:
    def test_new_fields_added(self):
        result = accumulate_intent({}, ExtractedIntent(area="HSR Layout", query="gym", confidence=0.5))
        assert result == {"area": "HSR Layout", "query": "gym"}

    def test_scalar_overwrite(self):
        old = {"area": "HSR Layout", "query": "gym"}
        result = accumulate_intent(old, ExtractedIntent(area="Koramangala", confidence=0.7))
        assert result["area"] == "Koramangala"
        assert result["query"] == "gym"

    def test_merge_fills_gaps_from_earlier_turns(self):
        merged = merge_accumulated(
            ExtractedIntent(area="Koramangala", confidence=0.8),
            {"query": "coffee", "area": "HSR Layout"},
        )
        assert merged.query == "coffee"
        assert merged.area == "Koramangala"
        assert merged.confidence == 0.8

    def test_state_keeps_last_six_turns(self):
        state = ConversationState()
        for i in range(5):
            state = update_conversation_state(state, f"msg {i}", f"reply {i}", ExtractedIntent())
        assert len(state.turns) == 6
        assert state.turns[0].content == "msg 2"


# ── Fallback parsing ─────────────────────────────────────────────────────


class TestFallbackIntent:
    def test_flags_and_price(self):
        intent = _fallback_intent("Cheap hidden gems open now near me")
        assert intent.open_now is True
        assert intent.hidden_gem is True
        assert intent.must_visit is None
        assert intent.price_sentiment == "cheap"
        assert intent.query is None
        assert intent.confidence == 0.0

    def test_inexpensive_is_not_expensive(self):
        assert _fallback_intent("inexpensive salon").price_sentiment == "inexpensive"

    def test_keeps_search_words(self):
        assert _fallback_intent("find me a filter coffee place").query == "filter coffee"


# ── Intent Extraction ────────────────────────────────────────────────────


class TestIntentExtraction:
    def test_fallback_when_disabled(self):
        intent = extract_intent("coffee", config=DISABLED_CONFIG)
        assert intent.confidence == 0.0
        assert intent.query == "coffee"

    @patch("discovery.chat.intent.Groq")
    def test_successful_extraction(self, mock_groq_cls):
        mock_groq_cls.return_value.chat.completions.create.return_value = _mock_completion(json.dumps({
            "query": "haircut",
            "category": "Salons",
            "area": "Indiranagar",
            "open_now": True,
            "confidence": 0.85,
            "missing_fields": [],
        }))
        intent = extract_intent("haircut in Indiranagar open now", config=ENABLED_CONFIG)
        assert intent.query == "haircut"
        assert intent.category == "Salons"
        assert intent.open_now is True
        assert intent.confidence == 0.85

    @patch("discovery.chat.intent.Groq")
    def test_history_is_sent_as_context(self, mock_groq_cls):
        create = mock_groq_cls.return_value.chat.completions.create
        create.return_value = _mock_completion(json.dumps({"area": "HSR Layout", "confidence": 0.7}))
        state = update_conversation_state(
            ConversationState(), "a gym", "Which area?", ExtractedIntent(query="gym"),
        )
        extract_intent("HSR Layout", state, config=ENABLED_CONFIG)
        user_message = create.call_args.kwargs["messages"][-1]["content"]
        assert "Which area?" in user_message
        assert '"query": "gym"' in user_message

    @patch("discovery.chat.intent.Groq")
    def test_fallback_on_api_error(self, mock_groq_cls):
        mock_groq_cls.return_value.chat.completions.create.side_effect = Exception("API error")
        intent = extract_intent("coffee", config=ENABLED_CONFIG)
        assert intent.confidence == 0.0

    @patch("discovery.chat.intent.Groq")
    def test_fallback_on_bad_json(self, mock_groq_cls):
        mock_groq_cls.return_value.chat.completions.create.return_value = _mock_completion("not json{{")
        intent = extract_intent("coffee", config=ENABLED_CONFIG)
        assert intent.confidence == 0.0


# ── Clarification ────────────────────────────────────────────────────────


class TestClarification:
    def test_fallback_without_query(self):
        question = generate_clarification(ExtractedIntent(confidence=0.3), config=DISABLED_CONFIG)
        assert "looking for" in question.lower()

    def test_fallback_without_area(self):
        intent = ExtractedIntent(query="coffee", confidence=0.4, missing_fields=["area"])
        question = generate_clarification(intent, config=DISABLED_CONFIG)
        assert "area" in question.lower()

    @patch("discovery.chat.intent.Groq")
    def test_empty_completion_uses_fallback(self, mock_groq_cls):
        mock_groq_cls.return_value.chat.completions.create.return_value = _mock_completion("  ")
        intent = ExtractedIntent(query="coffee", confidence=0.4)
        question = generate_clarification(intent, config=ENABLED_CONFIG)
        assert "area" in question.lower()


def test_build_reply():
    assert "couldn't find" in build_reply(ExtractedIntent(), 0)
    assert build_reply(ExtractedIntent(open_now=True), 3) == "Found 3 places open right now:"
    assert build_reply(ExtractedIntent(query="coffee", area="HSR"), 2) == "Here are 2 results for coffee in HSR:"


# ── Chat Endpoint ────────────────────────────────────────────────────────


class TestChatEndpoint:
    def test_requires_login(self):
        c = TestClient(app)
        resp = c.post("/chat", json={"message": "coffee"})
        assert resp.status_code == 401

    @patch("discovery.app.extract_intent")
    def test_returns_results_for_specific_query(self, mock_extract):
        mock_extract.return_value = ExtractedIntent(
            query="coffee", category="Cafes", confidence=0.8,
        )
        c = TestClient(app)
        _login(c)
        resp = c.post("/chat", json={"message": "coffee places"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["type"] == "results"
        assert [r["id"] for r in body["results"]["results"]] == ["sp-002"]
        assert body["parsed_intent"]["category"] == "Cafes"

    @patch("discovery.app.generate_clarification", return_value="Which area should I look in?")
    @patch("discovery.app.extract_intent")
    def test_clarifies_once_then_searches(self, mock_extract, mock_clarify):
        c = TestClient(app)
        _login(c)
        c.post("/chat/reset")

        mock_extract.return_value = ExtractedIntent(query="haircut", confidence=0.4)
        first = c.post("/chat", json={"message": "haircut"}).json()
        assert first["type"] == "clarification"
        assert first["results"] is None
        assert first["message"] == "Which area should I look in?"

        # Second low-confidence turn is answered with results, carrying the earlier query
        mock_extract.return_value = ExtractedIntent(area="Indiranagar", confidence=0.5)
        second = c.post("/chat", json={"message": "Indiranagar"}).json()
        assert second["type"] == "results"
        assert second["parsed_intent"] == {"query": "haircut", "area": "Indiranagar"}
        assert [r["id"] for r in second["results"]["results"]] == ["sp-001"]
        mock_clarify.assert_called_once()

    @patch("discovery.app.extract_intent")
    def test_zero_confidence_skips_clarification(self, mock_extract):
        mock_extract.return_value = ExtractedIntent(confidence=0.0, missing_fields=["area"])
        c = TestClient(app)
        _login(c)
        c.post("/chat/reset")
        resp = c.post("/chat", json={"message": "anything"})
        assert resp.status_code == 200
        assert resp.json()["type"] == "results"

    def test_message_is_validated(self):
        c = TestClient(app)
        _login(c)
        assert c.post("/chat", json={"message": ""}).status_code == 422
