"""
LangGraph RAG pipeline: search → generate → END.

Blocking mode runs the compiled graph and packages sources, answer and metrics.
Streaming mode runs the same search step, then opens a token stream; the HTTP
layer sends sources/timings as headers and fragments as the body.
"""

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypedDict

from langgraph.graph import END, StateGraph

from foodchat.agent.llm import TokenStream, build_messages, complete_with_retry, stream_completion
from foodchat.core.errors import RAGQueryError
from foodchat.schemas.chat import PerformanceMetrics, RAGResponse, SearchResult
from foodchat.services.retrieval_service import build_context, search_sources, select_model, validate_question

logger = logging.getLogger(__name__)


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    SEARCHING = "searching"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


StatusCallback = Callable[[RequestStatus], None]


class RAGState(TypedDict):
    question: str
    model: str
    sources: list
    context: str
    answer: str
    tokens_used: int | None
    vector_search_time: float
    llm_processing_time: float


def _search_node(state: RAGState) -> dict:
    """Node 1: query the vector index (top 3) and build the numbered context."""
    question = state["question"]
    logger.info("[graph:search] IN  question=%r", question)
    start = time.perf_counter()
    sources = search_sources(question)
    elapsed = time.perf_counter() - start
    context = build_context(sources)
    logger.info("[graph:search] OUT sources=%d context_len=%d elapsed_ms=%d", len(sources), len(context), round(elapsed * 1000))
    return {"sources": sources, "context": context, "vector_search_time": elapsed}


def _generate_node(state: RAGState) -> dict:
    """Node 2: blocking completion with retry."""
    model = state["model"]
    messages = build_messages(state["context"], state["question"])
    logger.info("[graph:generate] IN  model=%s prompt_len=%d", model, len(messages[1]["content"]))
    start = time.perf_counter()
    completion = complete_with_retry(messages, model)
    elapsed = time.perf_counter() - start
    logger.info("[graph:generate] OUT answer_len=%d tokens_used=%s elapsed_ms=%d",
                len(completion.text), completion.tokens_used, round(elapsed * 1000))
    return {"answer": completion.text, "tokens_used": completion.tokens_used, "llm_processing_time": elapsed}


def build_graph(on_status: StatusCallback | None = None):
    """
    Build and compile the RAG graph: search → generate → END.
    on_status, when given, is told when each node starts.
    """

    def _notify(status: RequestStatus, node):
        def run(state: RAGState) -> dict:
            if on_status is not None:
                on_status(status)
            return node(state)

        return run

    graph = StateGraph(RAGState)
    graph.add_node("search", _notify(RequestStatus.SEARCHING, _search_node))
    graph.add_node("generate", _notify(RequestStatus.GENERATING, _generate_node))
    graph.set_entry_point("search")
    graph.add_edge("search", "generate")
    graph.add_edge("generate", END)
    return graph.compile()


def rag_query(question: str, model: str | None = None, on_status: StatusCallback | None = None) -> RAGResponse:
    """
    Run the blocking pipeline. Returns sources, answer and metrics.
    Raises InvalidQuestionError for a blank question and RAGQueryError for any
    collaborator failure.
    """
    start = time.perf_counter()
    q = validate_question(question)
    selected = select_model(model)
    logger.info("[rag_query] START question=%r model=%s", q, selected)
    if on_status is not None:
        on_status(RequestStatus.PENDING)
    initial: RAGState = {
        "question": q,
        "model": selected,
        "sources": [],
        "context": "",
        "answer": "",
        "tokens_used": None,
        "vector_search_time": 0.0,
        "llm_processing_time": 0.0,
    }
    try:
        final = build_graph(on_status).invoke(initial)
    except Exception as e:
        logger.exception("[rag_query] pipeline failed model=%s", selected)
        if on_status is not None:
            on_status(RequestStatus.FAILED)
        raise RAGQueryError(str(e)) from e

    metrics = PerformanceMetrics.from_seconds(
        final["vector_search_time"],
        final["llm_processing_time"],
        time.perf_counter() - start,
        tokens_used=final.get("tokens_used"),
    )
    if on_status is not None:
        on_status(RequestStatus.COMPLETED)
    logger.info("[rag_query] END sources=%d metrics=%s", len(final["sources"]), metrics.model_dump(by_alias=True))
    return RAGResponse(sources=final["sources"], answer=final["answer"], metrics=metrics)


@dataclass
class RAGStream:
    """Streaming request after setup: sources are known, the answer is still to come."""

    question: str
    model: str
    sources: list[SearchResult]
    tokens: TokenStream
    start_ms: float
    llm_start_ms: float
    vector_search_time: float
    _llm_start: float = field(default=0.0, repr=False)
    _start: float = field(default=0.0, repr=False)

    def fragments(self):
        """Drain the token stream, then log the full metrics record."""
        yield from self.tokens
        now = time.perf_counter()
        metrics = PerformanceMetrics.from_seconds(
            self.vector_search_time,
            now - self._llm_start,
            now - self._start,
            tokens_used=self.tokens.tokens_used,
        )
        logger.info("[rag_stream] END model=%s metrics=%s", self.model, metrics.model_dump(by_alias=True))


def open_rag_stream(question: str, model: str | None = None) -> RAGStream:
    """
    Search, then open the model stream. Any failure here raises before the
    caller has sent a response; there is no retry on this path.
    """
    start = time.perf_counter()
    q = validate_question(question)
    selected = select_model(model)
    logger.info("[rag_stream] START question=%r model=%s", q, selected)

    search_start = time.perf_counter()
    sources = search_sources(q)
    vector_search_time = time.perf_counter() - search_start

    llm_start = time.perf_counter()
    tokens = stream_completion(build_messages(build_context(sources), q), selected)
    return RAGStream(
        question=q,
        model=selected,
        sources=sources,
        tokens=tokens,
        start_ms=start * 1000,
        llm_start_ms=llm_start * 1000,
        vector_search_time=vector_search_time,
        _llm_start=llm_start,
        _start=start,
    )
