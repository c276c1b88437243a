"""
Client for the streaming chat endpoint.

Opens POST /api/chat, reads sources and timing markers from the response
headers, and exposes the body as a lazy, non-restartable sequence of text
fragments. Model latency is measured directly on this side, from headers
received to end of body.
"""

import codecs
import json
import logging
import time
from typing import Iterable, Iterator, Mapping
from urllib.parse import unquote

import requests

from foodchat.core.config import API_BASE, LLM_API_TIMEOUT
from foodchat.schemas.chat import PerformanceMetrics, SearchResult

logger = logging.getLogger(__name__)


class StreamRequestError(Exception):
    """The endpoint answered with an error status before streaming began."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(message)


def parse_sources_header(value: str | None) -> list[SearchResult]:
    """Decode X-Sources (URL-encoded JSON array). Missing or malformed -> []."""
    if not value:
        return []
    try:
        raw = json.loads(unquote(value))
        return [SearchResult.model_validate(item) for item in raw]
    except (ValueError, TypeError) as e:
        logger.warning("[stream_client] could not decode X-Sources: %s", e)
        return []


def _header_ms(headers: Mapping[str, str], name: str) -> int:
    try:
        return max(0, round(float(headers.get(name, 0) or 0)))
    except ValueError:
        return 0


def _decode(chunks: Iterable[bytes | str]) -> Iterator[str]:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    for chunk in chunks:
        text = chunk if isinstance(chunk, str) else decoder.decode(chunk)
        if text:
            yield text
    tail = decoder.decode(b"", final=True)
    if tail:
        yield tail


class StreamedAnswer:
    """
    One streamed answer. sources and vector_search_time are available as soon
    as the object exists; iterate once to receive the answer fragments.
    """

    def __init__(
        self,
        chunks: Iterable[bytes | str],
        headers: Mapping[str, str],
        request_start: float | None = None,
        on_close=None,
    ) -> None:
        now = time.perf_counter()
        self._chunks = chunks
        self._on_close = on_close
        self._started = False
        self.request_start = request_start if request_start is not None else now
        self.headers_received = now
        self.finished: float | None = None
        self.sources = parse_sources_header(headers.get("X-Sources"))
        self.vector_search_time = _header_ms(headers, "X-Vector-Search-Time")
        self.answer = ""

    def __iter__(self) -> Iterator[str]:
        if self._started:
            raise RuntimeError("answer stream can only be consumed once")
        self._started = True
        return self._read()

    def _read(self) -> Iterator[str]:
        try:
            for text in _decode(self._chunks):
                self.answer += text
                yield text
        finally:
            self.finished = time.perf_counter()
            if self._on_close is not None:
                self._on_close()

    def metrics(self) -> PerformanceMetrics:
        """Metrics once the body has been drained (or abandoned)."""
        end = self.finished if self.finished is not None else time.perf_counter()
        return PerformanceMetrics(
            vector_search_time=self.vector_search_time,
            llm_processing_time=max(0, round((end - self.headers_received) * 1000)),
            total_response_time=max(0, round((end - self.request_start) * 1000)),
        )


def open_answer_stream(
    question: str,
    model: str | None = None,
    api_base: str = API_BASE,
    session: requests.Session | None = None,
) -> StreamedAnswer:
    """POST the question; raise StreamRequestError on 4xx/5xx, else return the open stream."""
    http = session or requests
    start = time.perf_counter()
    payload: dict = {"question": question}
    if model:
        payload["model"] = model
    response = http.post(f"{api_base}/api/chat", json=payload, stream=True, timeout=LLM_API_TIMEOUT)
    if not response.ok:
        try:
            message = response.json().get("error") or response.text[:200]
        except ValueError:
            message = response.text[:200]
        response.close()
        raise StreamRequestError(response.status_code, message)
    logger.info("[stream_client] headers received status=%d", response.status_code)
    return StreamedAnswer(
        response.iter_content(chunk_size=None),
        response.headers,
        request_start=start,
        on_close=response.close,
    )
