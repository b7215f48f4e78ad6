"""
LLM integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Rewrite free-text search queries into clearer, expanded queries.
- Parse chat messages into structured search intent (see ``chat``).
- Fall back to the caller's input when the LLM is unavailable.
"""
