"""
Client-local conversation store: one JSON document on disk holding every conversation.

Constructed once at startup and passed by reference. load() reads once,
mutate() applies a change under a lock and saves on every change.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, TypeVar

from foodchat.schemas.conversation import (
    Conversation,
    deserialize_conversations,
    serialize_conversations,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConversationStore:
    """Ordered list of conversations (most recent first) backed by a JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.conversations: list[Conversation] = []
        self._lock = threading.RLock()

    def load(self) -> list[Conversation]:
        """
        Read the file into memory. A missing file, unreadable JSON, or a schema
        mismatch all yield an empty list (logged), never an exception.
        """
        with self._lock:
            if not self.path.is_file():
                logger.info("[conversation_store:load] no file at %s -> empty", self.path)
                self.conversations = []
                return self.conversations
            try:
                document = json.loads(self.path.read_text(encoding="utf-8"))
                self.conversations = deserialize_conversations(document)
            except (OSError, ValueError) as e:
                logger.warning("[conversation_store:load] failed to load %s, starting empty: %s", self.path, e)
                self.conversations = []
            logger.info("[conversation_store:load] OUT conversations=%d", len(self.conversations))
            return self.conversations

    def save(self) -> None:
        """Write all conversations; replace the file atomically."""
        with self._lock:
            document = serialize_conversations(self.conversations)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".conversations-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, ensure_ascii=False)
                os.replace(tmp, self.path)
            except OSError:
                Path(tmp).unlink(missing_ok=True)
                raise
        logger.debug("[conversation_store:save] wrote conversations=%d path=%s", len(self.conversations), self.path)

    def mutate(self, fn: Callable[[list[Conversation]], T]) -> T:
        """Apply fn to the conversation list in place, then save. Returns fn's result."""
        with self._lock:
            result = fn(self.conversations)
            self.save()
            return result

    def get(self, conversation_id: str) -> Conversation | None:
        with self._lock:
            for conversation in self.conversations:
                if conversation.id == conversation_id:
                    return conversation
        return None
