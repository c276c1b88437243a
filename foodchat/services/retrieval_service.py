"""
Retrieval: validate the question, query the vector index, assemble prompt context.

Responsibility: Turn a question into ranked SearchResult sources and a numbered
context block for the model. Ranking is whatever the index returns.
"""

import logging
from typing import Any

from foodchat.core.config import ALLOWED_MODELS, DEFAULT_MODEL, SEARCH_TOP_K
from foodchat.core.errors import InvalidQuestionError
from foodchat.schemas.chat import SearchResult
from foodchat.services.vector_store import query_index

logger = logging.getLogger(__name__)


def validate_question(question: Any) -> str:
    """Return the stripped question; raise InvalidQuestionError if missing, not a string, or blank."""
    if not question or not isinstance(question, str) or not question.strip():
        raise InvalidQuestionError()
    return question.strip()


def select_model(model: str | None) -> str:
    """Allow-listed model id; anything else falls back to the default fast model."""
    if model in ALLOWED_MODELS:
        return model
    if model:
        logger.info("[retrieval:select_model] unknown model=%r -> %s", model, DEFAULT_MODEL)
    return DEFAULT_MODEL


def search_sources(question: str, top_k: int = SEARCH_TOP_K) -> list[SearchResult]:
    """Send the question verbatim to the index and return the top_k hits in index order."""
    hits = query_index(question, top_k=top_k)
    sources = [SearchResult.model_validate(h) for h in hits]
    for i, s in enumerate(sources):
        logger.info("[retrieval:search_sources] source_%d id=%s score=%.4f category=%s text_preview=%r",
                    i + 1, s.id, s.score, s.metadata.category, s.metadata.text[:120])
    return sources


def build_context(sources: list[SearchResult]) -> str:
    """Numbered context block: '[1] text', '[2] text', ... separated by a blank line."""
    return "\n\n".join(f"[{i}] {s.metadata.text}" for i, s in enumerate(sources, start=1))
