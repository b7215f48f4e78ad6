from __future__ import annotations

import logging

from groq import Groq

from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

ENHANCE_SYSTEM_PROMPT = (
    "You are an AI assistant that enhances search queries for a local "
    "business discovery platform. Improve the search query by:\n"
    "1. Identifying intent (restaurants, services, specific locations)\n"
    "2. Expanding abbreviated or incomplete queries\n"
    "3. Normalizing location references\n"
    "4. Adding relevant context that might be missing\n"
    "Return ONLY the enhanced search query. Do not add any explanation "
    "or additional text."
)

_MAX_ENHANCED_LENGTH = 200


def _build_user_message(query: str, context: str | None) -> str:
    message = f'Original search query: "{query}"'
    if context:
        message += f"\nContext: {context}"
    return message


def _clean_completion(content: str) -> str:
    text = content.strip().splitlines()[0].strip() if content.strip() else ""
    return text.strip('"').strip()


def enhance_query(
    query: str,
    context: str | None = None,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> str:
    """
    Ask Groq for an enhanced version of ``query``.

    Returns the original query on any failure (disabled, timeout, API
    error, empty or oversized completion).
    """
    query = query.strip()
    if not query:
        return query

    if not config.enabled or not config.api_key:
        return query

    try:
        client = Groq(api_key=config.api_key, timeout=config.timeout)
        response = client.chat.completions.create(
            model=config.model,
            messages=[
                {"role": "system", "content": ENHANCE_SYSTEM_PROMPT},
                {"role": "user", "content": _build_user_message(query, context)},
            ],
            max_tokens=config.max_tokens,
            temperature=0.3,
        )

        enhanced = _clean_completion(response.choices[0].message.content or "")
        if not enhanced or len(enhanced) > _MAX_ENHANCED_LENGTH:
            return query
        return enhanced

    except Exception:
        logger.warning("Groq query enhancement failed, using original query", exc_info=True)
        return query
