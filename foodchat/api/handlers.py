"""
API handlers: read request bodies, call the RAG pipeline, map results/errors to HTTP.

Responsibility: Bridge HTTP types and services. Marshalling and exception-to-HTTP mapping.
Lives in the API layer so the pipeline stays free of FastAPI/HTTP types.
"""

import json
import logging
from typing import Any
from urllib.parse import quote

from fastapi import Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from foodchat.agent.graph import RAGStream, open_rag_stream, rag_query
from foodchat.core.errors import InvalidQuestionError, RAGQueryError
from foodchat.services.retrieval_service import validate_question

logger = logging.getLogger(__name__)

STREAM_ERROR_MESSAGE = "Failed to process your question. Please try again."


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def read_chat_body(request: Request) -> tuple[str, str | None]:
    """Parse {question, model?}. Raises InvalidQuestionError for bad JSON or a missing/non-string question."""
    try:
        body: Any = await request.json()
    except ValueError as e:
        raise InvalidQuestionError() from e
    if not isinstance(body, dict):
        raise InvalidQuestionError()
    question = validate_question(body.get("question"))
    model = body.get("model")
    return question, model if isinstance(model, str) else None


def stream_headers(stream: RAGStream) -> dict[str, str]:
    """Out-of-band data for the streaming body: sources and timing markers."""
    sources = [s.model_dump(mode="json") for s in stream.sources]
    return {
        "X-Sources": quote(json.dumps(sources, separators=(",", ":")), safe="-_.!~*'()"),
        "X-Vector-Search-Time": str(round(stream.vector_search_time * 1000)),
        "X-LLM-Start-Time": str(stream.llm_start_ms),
        "X-Start-Time": str(stream.start_ms),
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
    }


async def handle_chat_stream(request: Request):
    """
    Streaming path. Setup (search + opening the model stream) completes before
    the response starts, so setup failures become a 500 JSON body.
    """
    try:
        question, model = await read_chat_body(request)
    except InvalidQuestionError as e:
        return error_response(400, e.message)

    try:
        stream = await run_in_threadpool(open_rag_stream, question, model)
    except Exception:
        logger.exception("[api:chat_stream] streaming setup failed")
        return error_response(500, STREAM_ERROR_MESSAGE)

    return StreamingResponse(
        stream.fragments(),
        media_type="text/plain; charset=utf-8",
        headers=stream_headers(stream),
    )


async def handle_query(request: Request):
    """Blocking path: full answer, sources and metrics as one JSON object."""
    try:
        question, model = await read_chat_body(request)
    except InvalidQuestionError as e:
        return error_response(400, e.message)

    try:
        result = await run_in_threadpool(rag_query, question, model)
    except RAGQueryError as e:
        return error_response(500, e.message)
    return JSONResponse(content=result.model_dump(mode="json", by_alias=True))
