"""
API route aggregator: register endpoints; no logic — only delegate to handlers.
"""

import logging

from fastapi import APIRouter, Request

from foodchat.api.handlers import handle_chat_stream, handle_query
from foodchat.schemas.chat import ChatRequest, ErrorResponse, RAGResponse

logger = logging.getLogger(__name__)
router = APIRouter()

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or non-string question."},
    500: {"model": ErrorResponse, "description": "Vector index or model provider failed."},
}


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "Food RAG chat backend running"}


@router.get("/health", tags=["system"])
def health():
    return {"ok": True}


# --- Chat ---

@router.post(
    "/api/chat",
    tags=["chat"],
    summary="Ask a question (streamed answer)",
    description=(
        "Body: {question, model?}. Streams the answer as plain text. Sources and timings are sent "
        "as headers: X-Sources (URL-encoded JSON), X-Vector-Search-Time, X-LLM-Start-Time, X-Start-Time."
    ),
    openapi_extra={"requestBody": {"content": {"application/json": {"schema": ChatRequest.model_json_schema()}}}},
    responses={200: {"content": {"text/plain": {}}}, **_ERROR_RESPONSES},
)
async def post_chat(request: Request):
    logger.info("[api:post_chat] IN")
    return await handle_chat_stream(request)


@router.post(
    "/api/query",
    tags=["chat"],
    summary="Ask a question (blocking)",
    description="Body: {question, model?}. Returns sources, answer and metrics in one JSON object.",
    openapi_extra={"requestBody": {"content": {"application/json": {"schema": ChatRequest.model_json_schema()}}}},
    responses={200: {"model": RAGResponse}, **_ERROR_RESPONSES},
)
async def post_query(request: Request):
    logger.info("[api:post_query] IN")
    return await handle_query(request)
