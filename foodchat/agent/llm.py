"""
Agent LLM: Groq chat completions through the OpenAI-compatible API.

Blocking completions retry with linear backoff (more attempts for the large
model); streaming completions open the stream eagerly and never retry.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Iterator

from openai import OpenAI

from foodchat.core.config import (
    ATTEMPTS_DEFAULT,
    ATTEMPTS_LARGE,
    GROQ_API_KEY,
    GROQ_BASE_URL,
    LARGE_MODEL,
    LLM_API_TIMEOUT,
    MAX_TOKENS_DEFAULT,
    MAX_TOKENS_LARGE,
    MAX_TOKENS_LARGE_STREAM,
    RETRY_DELAY_SECONDS,
    SYSTEM_PROMPT,
    TEMPERATURE,
)
from foodchat.core.errors import CompletionError, ServiceUnavailableError

logger = logging.getLogger(__name__)

EMPTY_ANSWER = "No answer generated"


@dataclass
class Completion:
    """Result of a blocking completion."""

    text: str
    tokens_used: int | None = None


def get_client() -> OpenAI:
    """OpenAI SDK client pointed at Groq."""
    if not GROQ_API_KEY:
        raise ServiceUnavailableError("GROQ_API_KEY must be set in .env")
    return OpenAI(api_key=GROQ_API_KEY, base_url=GROQ_BASE_URL, timeout=LLM_API_TIMEOUT)


def is_large_model(model: str) -> bool:
    return model == LARGE_MODEL or "70b" in model


def max_tokens_for(model: str, streaming: bool = False) -> int:
    if not is_large_model(model):
        return MAX_TOKENS_DEFAULT
    return MAX_TOKENS_LARGE_STREAM if streaming else MAX_TOKENS_LARGE


def attempts_for(model: str) -> int:
    return ATTEMPTS_LARGE if is_large_model(model) else ATTEMPTS_DEFAULT


def build_messages(context: str, question: str) -> list[dict[str, str]]:
    """Fixed two-message prompt: system instruction, then context + question."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": f"Context:\n{context}\n\nQuestion: {question}\n\nAnswer based on the context above:",
        },
    ]


def _usage_total(obj: Any) -> int | None:
    """total_tokens from an SDK usage object, or from Groq's x_groq.usage extension."""
    usage = getattr(obj, "usage", None)
    if usage is None:
        x_groq = getattr(obj, "x_groq", None)
        if isinstance(x_groq, dict):
            usage = x_groq.get("usage")
        elif x_groq is not None:
            usage = getattr(x_groq, "usage", None)
    if usage is None:
        return None
    if isinstance(usage, dict):
        return usage.get("total_tokens")
    return getattr(usage, "total_tokens", None)


def complete(messages: list[dict[str, str]], model: str) -> Completion:
    """One blocking chat completion."""
    client = get_client()
    response = client.chat.completions.create(
        model=model,
        messages=messages,
        temperature=TEMPERATURE,
        max_tokens=max_tokens_for(model),
    )
    msg = response.choices[0].message if response.choices else None
    text = ((getattr(msg, "content", None) or "") if msg else "").strip()
    out = Completion(text=text or EMPTY_ANSWER, tokens_used=_usage_total(response))
    logger.info("[llm:complete] OUT model=%s response_len=%d tokens_used=%s", model, len(text), out.tokens_used)
    return out


def complete_with_retry(messages: list[dict[str, str]], model: str) -> Completion:
    """
    Blocking completion with linear backoff: attempt i (1-based) failing waits
    i * RETRY_DELAY_SECONDS before the next. 1 attempt for the default model,
    2 for the large model. Raises CompletionError after the last failure.
    """
    attempts = attempts_for(model)
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return complete(messages, model)
        except Exception as e:
            last_error = e
            logger.warning("[llm:complete_with_retry] attempt %d/%d failed model=%s: %s", attempt, attempts, model, e)
            if attempt < attempts:
                time.sleep(attempt * RETRY_DELAY_SECONDS)
    raise CompletionError(model, attempts, last_error)


class TokenStream:
    """
    Lazy, finite, non-restartable sequence of answer fragments.

    Iterate once; after exhaustion tokens_used holds the provider's total if it
    reported one.
    """

    def __init__(self, stream: Any, model: str) -> None:
        self._stream = stream
        self.model = model
        self.tokens_used: int | None = None
        self._started = False

    def __iter__(self) -> Iterator[str]:
        if self._started:
            raise RuntimeError("token stream can only be consumed once")
        self._started = True
        return self._fragments()

    def _fragments(self) -> Iterator[str]:
        try:
            for chunk in self._stream:
                total = _usage_total(chunk)
                if total is not None:
                    self.tokens_used = total
                if not chunk.choices:
                    continue
                content = getattr(chunk.choices[0].delta, "content", None)
                if content:
                    yield content
        finally:
            self.close()

    def close(self) -> None:
        close = getattr(self._stream, "close", None)
        if callable(close):
            close()


def stream_completion(messages: list[dict[str, str]], model: str) -> TokenStream:
    """Open a streamed completion. Setup errors raise here, before any fragment is read."""
    client = get_client()
    stream = client.chat.completions.create(
        model=model,
        messages=messages,
        temperature=TEMPERATURE,
        max_tokens=max_tokens_for(model, streaming=True),
        stream=True,
        stream_options={"include_usage": True},
    )
    logger.info("[llm:stream_completion] stream opened model=%s", model)
    return TokenStream(stream, model)
