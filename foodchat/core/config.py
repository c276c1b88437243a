"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Upstash Vector (from env). The index embeds query text server-side.
UPSTASH_VECTOR_REST_URL: str = os.getenv("UPSTASH_VECTOR_REST_URL", "").strip().rstrip("/")
UPSTASH_VECTOR_REST_TOKEN: str = os.getenv("UPSTASH_VECTOR_REST_TOKEN", "").strip()

# Vector backend: "upstash" (default) or "milvus"
VECTOR_BACKEND: str = (os.getenv("VECTOR_BACKEND", "upstash").strip().lower() or "upstash")

# Milvus Cloud (alternative backend, from env)
MILVUS_URI: str = os.getenv("MILVUS_URI", "").strip()
MILVUS_TOKEN: str = os.getenv("MILVUS_TOKEN", "").strip()
MILVUS_COLLECTION: str = os.getenv("MILVUS_COLLECTION", "foods").strip() or "foods"

# Hugging Face (query embeddings for the Milvus backend)
HF_API_KEY: str = os.getenv("HF_API_KEY", "").strip()
HF_EMBED_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"

# Groq (OpenAI-compatible chat completions)
GROQ_API_KEY: str = os.getenv("GROQ_API_KEY", "").strip()
GROQ_BASE_URL: str = (
    os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1").strip()
    or "https://api.groq.com/openai/v1"
)

# Models: the first is the default "fast" model
DEFAULT_MODEL: str = "llama-3.1-8b-instant"
LARGE_MODEL: str = "llama-3.1-70b-versatile"
ALLOWED_MODELS: tuple[str, ...] = (DEFAULT_MODEL, LARGE_MODEL)

# Retrieval
SEARCH_TOP_K: int = 3

# Generation
TEMPERATURE: float = 0.7
MAX_TOKENS_DEFAULT: int = 500
MAX_TOKENS_LARGE: int = 800
MAX_TOKENS_LARGE_STREAM: int = 1024
ATTEMPTS_DEFAULT: int = 1
ATTEMPTS_LARGE: int = 2
RETRY_DELAY_SECONDS: float = 1.0

SYSTEM_PROMPT: str = (
    "You are a helpful food knowledge assistant. Answer questions based on the "
    "provided context. Be concise and informative."
)

# API timeouts (seconds)
VECTOR_API_TIMEOUT: float = 30.0
EMBED_API_TIMEOUT: float = 30.0
LLM_API_TIMEOUT: float = 60.0

# Chat client (UI side)
API_BASE: str = os.getenv("API_BASE", "http://localhost:8000").strip() or "http://localhost:8000"
CONVERSATIONS_PATH: str = (
    os.getenv("CONVERSATIONS_PATH", "data/conversations.json").strip() or "data/conversations.json"
)
STORAGE_KEY: str = "foodChatConversations"
NEW_CHAT_TITLE: str = "New Chat"
TITLE_MAX_LENGTH: int = 50
