"""
Schemas for client-side chat history: messages and conversations.

Field names serialise in camelCase so the persisted document keeps the
shape the web client used (isLoading, createdAt, ...).
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from foodchat.core.config import NEW_CHAT_TITLE, STORAGE_KEY, TITLE_MAX_LENGTH
from foodchat.schemas.chat import PerformanceMetrics, SearchResult


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Message(BaseModel):
    """One question/answer exchange. Mutated in place while the answer arrives."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    question: str
    answer: str = ""
    sources: list[SearchResult] = Field(default_factory=list)
    metrics: PerformanceMetrics | None = None
    is_loading: bool = Field(False, alias="isLoading")
    is_streaming: bool = Field(False, alias="isStreaming")
    error: str | None = None
    timestamp: datetime = Field(default_factory=_now)

    @property
    def is_pending(self) -> bool:
        return self.is_loading or self.is_streaming

    @property
    def progress_label(self) -> str | None:
        """Status line to show while nothing of the answer is visible yet."""
        if self.is_loading:
            return "Searching knowledge base..."
        if self.is_streaming and not self.answer:
            return "Generating..."
        return None


class Conversation(BaseModel):
    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    title: str = NEW_CHAT_TITLE
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=_now, alias="updatedAt")

    @property
    def pending_message(self) -> Message | None:
        for message in self.messages:
            if message.is_pending:
                return message
        return None

    def touch(self) -> None:
        self.updated_at = _now()


def make_title(first_question: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """Conversation title from its first question, truncated with '...'."""
    if len(first_question) > max_length:
        return first_question[:max_length] + "..."
    return first_question


INTERRUPTED_ERROR = "The answer was interrupted before it finished. Please ask again."

_conversations_adapter = TypeAdapter(list[Conversation])


def deserialize_conversations(document: Any) -> list[Conversation]:
    """
    Validate a persisted document ({STORAGE_KEY: [...]}) into conversations.

    Absent optional fields take their defaults; timestamps are parsed from ISO
    strings. A message saved mid-request comes back failed with
    INTERRUPTED_ERROR, so no conversation starts busy. Raises ValueError
    (pydantic.ValidationError) on any schema mismatch.
    """
    if not isinstance(document, dict) or STORAGE_KEY not in document:
        raise ValueError(f"expected an object with key {STORAGE_KEY!r}")
    conversations = _conversations_adapter.validate_python(document[STORAGE_KEY])
    for conversation in conversations:
        for message in conversation.messages:
            if message.is_pending:
                mark_interrupted(message)
    return conversations


def mark_interrupted(message: Message) -> None:
    """Settle a message whose request never finished."""
    message.is_loading = False
    message.is_streaming = False
    if message.error is None:
        message.error = INTERRUPTED_ERROR


def serialize_conversations(conversations: list[Conversation]) -> dict[str, Any]:
    """Inverse of deserialize_conversations: a JSON-ready document."""
    return {
        STORAGE_KEY: [c.model_dump(mode="json", by_alias=True) for c in conversations],
    }
