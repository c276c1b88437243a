"""
Vector index client: Upstash Vector REST (default) or Milvus Cloud + HF query embeddings.

Responsibility: Send query text to the configured index and return the nearest
neighbours as plain dicts {id, score, metadata: {text, category, origin}}.
The index is pre-populated externally; nothing here writes to it.
"""

import logging
from typing import Any

import httpx

from foodchat.core.config import (
    EMBED_API_TIMEOUT,
    HF_API_KEY,
    HF_EMBED_MODEL,
    MILVUS_COLLECTION,
    MILVUS_TOKEN,
    MILVUS_URI,
    SEARCH_TOP_K,
    UPSTASH_VECTOR_REST_TOKEN,
    UPSTASH_VECTOR_REST_URL,
    VECTOR_API_TIMEOUT,
    VECTOR_BACKEND,
)
from foodchat.core.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

METADATA_FIELDS = ["text", "category", "origin"]

HF_API_URL = (
    "https://router.huggingface.co/hf-inference/models/"
    f"{HF_EMBED_MODEL}/pipeline/feature-extraction"
)


def query_upstash(question: str, top_k: int = SEARCH_TOP_K) -> list[dict[str, Any]]:
    """
    Query Upstash Vector by raw text (the index embeds it server-side).
    POST {url}/query-data with includeMetadata; returns the "result" list.
    """
    if not UPSTASH_VECTOR_REST_URL or not UPSTASH_VECTOR_REST_TOKEN:
        raise ServiceUnavailableError(
            "UPSTASH_VECTOR_REST_URL and UPSTASH_VECTOR_REST_TOKEN must be set in .env"
        )
    headers = {
        "Authorization": f"Bearer {UPSTASH_VECTOR_REST_TOKEN}",
        "Content-Type": "application/json",
    }
    payload = {"data": question, "topK": top_k, "includeMetadata": True}
    with httpx.Client(timeout=VECTOR_API_TIMEOUT) as client:
        response = client.post(f"{UPSTASH_VECTOR_REST_URL}/query-data", json=payload, headers=headers)
    if response.status_code != 200:
        raise RuntimeError(f"Upstash Vector error {response.status_code}: {response.text[:200]}")
    data = response.json()
    if isinstance(data, dict) and data.get("error"):
        raise RuntimeError(f"Upstash Vector error: {data['error']}")
    hits = data.get("result") if isinstance(data, dict) else data
    return [
        {"id": h.get("id"), "score": float(h.get("score", 0.0)), "metadata": h.get("metadata") or {}}
        for h in (hits or [])
    ]


def embed_query(text: str) -> list[float]:
    """
    Embed one query with the Hugging Face Inference API (all-MiniLM-L6-v2).
    Returns a normalized vector for cosine search.
    """
    if not HF_API_KEY:
        raise ServiceUnavailableError(
            "HF_API_KEY must be set in .env. Get a token from https://huggingface.co/settings/tokens"
        )
    headers = {
        "Authorization": f"Bearer {HF_API_KEY}",
        "Content-Type": "application/json",
    }
    payload = {"inputs": [text], "options": {"wait_for_model": True}}
    with httpx.Client(timeout=EMBED_API_TIMEOUT) as client:
        response = client.post(HF_API_URL, json=payload, headers=headers)
    if response.status_code == 503:
        raise RuntimeError(f"HF model is loading. Retry later. {response.text[:200]}")
    if response.status_code == 401:
        raise ServiceUnavailableError("Invalid HF API key. Check HF_API_KEY")
    if response.status_code != 200:
        raise RuntimeError(f"HF API error {response.status_code}: {response.text[:200]}")

    result = response.json()
    vec = result[0] if result and isinstance(result[0], list) else result
    norm = sum(x * x for x in vec) ** 0.5 or 1.0
    return [x / norm for x in vec]


def get_milvus_client() -> Any:
    """Connect to Milvus Cloud and return a client. The collection must already exist."""
    if not MILVUS_URI or not MILVUS_TOKEN:
        raise ServiceUnavailableError("MILVUS_URI and MILVUS_TOKEN must be set in .env")

    from pymilvus import MilvusClient

    client = MilvusClient(uri=MILVUS_URI, token=MILVUS_TOKEN)
    logger.info("Milvus connection established")
    return client


def query_milvus(question: str, top_k: int = SEARCH_TOP_K) -> list[dict[str, Any]]:
    """Embed the question and search the Milvus collection (COSINE, higher is better)."""
    query_vec = embed_query(question)
    client = get_milvus_client()
    results = client.search(
        collection_name=MILVUS_COLLECTION,
        data=[query_vec],
        limit=top_k,
        output_fields=METADATA_FIELDS,
    )
    # results: list of list of hits (one list per query vector)
    hits = results[0] if results else []
    out = []
    for h in hits:
        entity = h.get("entity") or {}
        out.append({
            "id": h.get("id", entity.get("id")),
            "score": float(h.get("distance", h.get("score", 0.0))),
            "metadata": {f: entity.get(f, "") for f in METADATA_FIELDS},
        })
    return out


def query_index(question: str, top_k: int = SEARCH_TOP_K) -> list[dict[str, Any]]:
    """Query the configured backend. Errors propagate to the caller; no retry."""
    logger.info("[vector_store:query_index] IN  backend=%s query=%r top_k=%d", VECTOR_BACKEND, question, top_k)
    if VECTOR_BACKEND == "milvus":
        hits = query_milvus(question, top_k)
    else:
        hits = query_upstash(question, top_k)
    logger.info("[vector_store:query_index] OUT hits=%d ids=%s scores=%s",
                len(hits), [h.get("id") for h in hits], [round(h.get("score", 0), 4) for h in hits])
    return hits
