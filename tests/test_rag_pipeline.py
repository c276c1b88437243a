"""
Tests for the LangGraph RAG pipeline (blocking) and streaming setup.

Vector search and the Groq client are mocked; no network.
"""

from unittest.mock import MagicMock, patch

import pytest

from foodchat.agent.graph import RequestStatus, open_rag_stream, rag_query
from foodchat.core.errors import InvalidQuestionError, RAGQueryError
from foodchat.schemas.chat import SearchResult
from tests.fakes import MANGO_HIT, make_completion, make_stream_chunks

QUESTION = "What fruits are popular in tropical regions?"


def test_rag_query_returns_sources_answer_metrics(fake_client: MagicMock, mango_source: SearchResult) -> None:
    fake_client.chat.completions.create.return_value = make_completion("Mangoes are popular.", total_tokens=77)
    with patch("foodchat.agent.graph.search_sources", return_value=[mango_source]) as mock_search, \
            patch("foodchat.agent.llm.get_client", return_value=fake_client):
        result = rag_query(QUESTION)

    mock_search.assert_called_once_with(QUESTION)
    assert result.answer == "Mangoes are popular."
    assert result.sources == [mango_source]
    assert result.sources[0].relevance_percent == 92
    user_prompt = fake_client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
    assert "Context:\n[1] Mangoes are grown in...\n\nQuestion: " in user_prompt

    m = result.metrics
    for value in (m.vector_search_time, m.llm_processing_time, m.total_response_time):
        assert isinstance(value, int) and value >= 0
    assert m.tokens_used == 77
    dumped = result.model_dump(by_alias=True)["metrics"]
    assert set(dumped) == {"vectorSearchTime", "llmProcessingTime", "totalResponseTime", "tokensUsed"}


def test_rag_query_reports_status_transitions(fake_client: MagicMock, mango_source: SearchResult) -> None:
    fake_client.chat.completions.create.return_value = make_completion("ok")
    seen: list[RequestStatus] = []
    with patch("foodchat.agent.graph.search_sources", return_value=[mango_source]), \
            patch("foodchat.agent.llm.get_client", return_value=fake_client):
        rag_query(QUESTION, on_status=seen.append)
    assert seen == [
        RequestStatus.PENDING,
        RequestStatus.SEARCHING,
        RequestStatus.GENERATING,
        RequestStatus.COMPLETED,
    ]


def test_rag_query_unknown_model_uses_fast_model(fake_client: MagicMock, mango_source: SearchResult) -> None:
    fake_client.chat.completions.create.return_value = make_completion("ok")
    with patch("foodchat.agent.graph.search_sources", return_value=[mango_source]), \
            patch("foodchat.agent.llm.get_client", return_value=fake_client):
        rag_query(QUESTION, model="not-a-model")
    assert fake_client.chat.completions.create.call_args.kwargs["model"] == "llama-3.1-8b-instant"


def test_rag_query_large_model_failure_after_two_attempts(fake_client: MagicMock, mango_source: SearchResult) -> None:
    fake_client.chat.completions.create.side_effect = RuntimeError("upstream timeout")
    seen: list[RequestStatus] = []
    with patch("foodchat.agent.graph.search_sources", return_value=[mango_source]), \
            patch("foodchat.agent.llm.get_client", return_value=fake_client), \
            patch("foodchat.agent.llm.time.sleep"):
        with pytest.raises(RAGQueryError) as exc_info:
            rag_query(QUESTION, model="llama-3.1-70b-versatile", on_status=seen.append)

    assert fake_client.chat.completions.create.call_count == 2
    message = exc_info.value.message
    assert message.startswith("Failed to process your question: ")
    assert "upstream timeout" in message
    assert "llama-3.1-70b-versatile" in message
    assert "faster 8B model" in message
    assert seen[-1] == RequestStatus.FAILED


def test_rag_query_search_failure_is_not_retried(fake_client: MagicMock) -> None:
    with patch("foodchat.agent.graph.search_sources", side_effect=RuntimeError("index down")) as mock_search, \
            patch("foodchat.agent.llm.get_client", return_value=fake_client):
        with pytest.raises(RAGQueryError, match="index down"):
            rag_query(QUESTION)
    assert mock_search.call_count == 1
    fake_client.chat.completions.create.assert_not_called()


def test_rag_query_blank_question_rejected_before_calls() -> None:
    with patch("foodchat.agent.graph.search_sources") as mock_search:
        with pytest.raises(InvalidQuestionError):
            rag_query("   ")
    mock_search.assert_not_called()


def test_open_rag_stream_searches_then_streams(fake_client: MagicMock) -> None:
    fake_client.chat.completions.create.return_value = iter(make_stream_chunks("Man", "goes", total_tokens=12))
    source = SearchResult.model_validate(MANGO_HIT)
    with patch("foodchat.agent.graph.search_sources", return_value=[source]), \
            patch("foodchat.agent.llm.get_client", return_value=fake_client):
        stream = open_rag_stream(QUESTION, model="llama-3.1-70b-versatile")
        assert stream.sources == [source]
        assert stream.model == "llama-3.1-70b-versatile"
        assert stream.vector_search_time >= 0
        assert stream.llm_start_ms >= stream.start_ms
        assert "".join(stream.fragments()) == "Mangoes"
    assert stream.tokens.tokens_used == 12
