from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from ..search.models import SearchResponse


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)


class ChatResponseType(str, Enum):
    results = "results"
    clarification = "clarification"


class ChatResponse(BaseModel):
    type: ChatResponseType
    message: str
    results: SearchResponse | None = None
    parsed_intent: dict = Field(default_factory=dict)


class ExtractedIntent(BaseModel):
    query: str | None = None
    category: str | None = None
    area: str | None = None
    price_sentiment: str | None = None
    min_rating: float | None = Field(default=None, ge=0.0, le=5.0)
    max_distance: float | None = Field(default=None, ge=0.0)
    open_now: bool | None = None
    hidden_gem: bool | None = None
    must_visit: bool | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    missing_fields: list[str] = Field(default_factory=list)


class ConversationTurn(BaseModel):
    role: str
    content: str


class ConversationState(BaseModel):
    turns: list[ConversationTurn] = Field(default_factory=list)
    accumulated_intent: dict = Field(default_factory=dict)
    clarification_count: int = 0
    last_results_ids: list[str] = Field(default_factory=list)
