"""
Chat controller: conversation and message lifecycle on top of ConversationStore.

Responsibility: create/select/delete conversations, submit questions (blocking
or streamed), and record answers or errors on the originating message. One
pending message per conversation; every change is persisted through the store.
"""

import logging
from typing import Callable, Iterator

from foodchat.core.config import NEW_CHAT_TITLE
from foodchat.core.conversation_store import ConversationStore
from foodchat.core.errors import ConversationBusyError, InvalidQuestionError
from foodchat.schemas.chat import RAGResponse
from foodchat.schemas.conversation import Conversation, Message, make_title, mark_interrupted
from foodchat.services.stream_client import StreamedAnswer

logger = logging.getLogger(__name__)

AskFn = Callable[[str, str | None], RAGResponse]
StreamFn = Callable[[str, str | None], StreamedAnswer]


def _error_text(e: Exception) -> str:
    return getattr(e, "message", None) or str(e) or "An error occurred"


class ChatSession:
    """
    Holds the current conversation id and routes questions to the RAG backend.

    ask_fn is the blocking pipeline (rag_query); stream_fn opens a streamed
    answer (open_answer_stream). Either may be omitted if that mode is unused.
    """

    def __init__(
        self,
        store: ConversationStore,
        ask_fn: AskFn | None = None,
        stream_fn: StreamFn | None = None,
    ) -> None:
        self.store = store
        self._ask_fn = ask_fn
        self._stream_fn = stream_fn
        self.current_id: str = ""

    # --- conversations ---

    @property
    def conversations(self) -> list[Conversation]:
        return self.store.conversations

    @property
    def current(self) -> Conversation:
        conversation = self.store.get(self.current_id)
        if conversation is None:
            raise LookupError(f"no current conversation (id={self.current_id!r})")
        return conversation

    @property
    def message_count(self) -> int:
        conversation = self.store.get(self.current_id)
        return len(conversation.messages) if conversation else 0

    def start(self) -> Conversation:
        """Load persisted conversations; the most recent becomes current, or a new one is created."""
        conversations = self.store.load()
        if not conversations:
            return self.new_conversation()
        self.current_id = conversations[0].id
        logger.info("[chat:start] loaded conversations=%d current=%s", len(conversations), self.current_id)
        return conversations[0]

    def new_conversation(self) -> Conversation:
        conversation = Conversation()
        self.store.mutate(lambda convs: convs.insert(0, conversation))
        self.current_id = conversation.id
        logger.info("[chat:new_conversation] id=%s", conversation.id)
        return conversation

    def select(self, conversation_id: str) -> Conversation:
        conversation = self.store.get(conversation_id)
        if conversation is None:
            raise LookupError(f"unknown conversation {conversation_id!r}")
        self.current_id = conversation_id
        return conversation

    def delete(self, conversation_id: str) -> None:
        """Remove a conversation. Deleting the current one switches to the first remaining, or a new chat."""
        def remove(convs: list[Conversation]) -> None:
            convs[:] = [c for c in convs if c.id != conversation_id]

        self.store.mutate(remove)
        logger.info("[chat:delete] id=%s remaining=%d", conversation_id, len(self.conversations))
        if conversation_id != self.current_id:
            return
        if self.conversations:
            self.current_id = self.conversations[0].id
        else:
            self.new_conversation()

    # --- questions ---

    def _begin(self, question: str) -> tuple[Conversation, Message, str]:
        q = (question or "").strip()
        if not q:
            raise InvalidQuestionError()
        conversation = self.current
        if conversation.pending_message is not None:
            raise ConversationBusyError(conversation.id)
        message = Message(question=q, is_loading=True)

        def add(_convs: list[Conversation]) -> None:
            conversation.messages.append(message)
            conversation.touch()

        self.store.mutate(add)
        logger.info("[chat:begin] conversation=%s message=%s question=%r", conversation.id, message.id, q)
        return conversation, message, q

    def _finish(self, conversation: Conversation, message: Message) -> None:
        def settle(_convs: list[Conversation]) -> None:
            message.is_loading = False
            message.is_streaming = False
            if message.error is None and conversation.title == NEW_CHAT_TITLE:
                conversation.title = make_title(conversation.messages[0].question)
            conversation.touch()

        self.store.mutate(settle)

    def _interrupt(self, conversation: Conversation, message: Message) -> None:
        """Settle a message whose request was abandoned before it finished."""
        if not message.is_pending:
            return
        logger.warning("[chat:interrupt] message=%s abandoned before completion", message.id)
        mark_interrupted(message)
        self._finish(conversation, message)

    def ask(self, question: str, model: str | None = None) -> Message:
        """
        Blocking submit. Raises InvalidQuestionError or ConversationBusyError
        before anything is recorded; pipeline failures land in message.error.
        """
        if self._ask_fn is None:
            raise RuntimeError("ChatSession has no blocking ask function")
        conversation, message, q = self._begin(question)
        try:
            try:
                result = self._ask_fn(q, model)
                message.answer = result.answer
                message.sources = list(result.sources)
                message.metrics = result.metrics
            except Exception as e:
                logger.warning("[chat:ask] failed message=%s: %s", message.id, e)
                message.error = _error_text(e)
            self._finish(conversation, message)
        finally:
            self._interrupt(conversation, message)
        return message

    def ask_streaming(self, question: str, model: str | None = None) -> "StreamingReply":
        """
        Streamed submit. Validation and the pending check happen immediately;
        the returned iterator yields the message each time its answer grows.
        Closing it early settles the message as interrupted.
        """
        if self._stream_fn is None:
            raise RuntimeError("ChatSession has no streaming function")
        conversation, message, q = self._begin(question)
        return StreamingReply(self, conversation, message, self._stream_into(conversation, message, q, model))

    def _stream_into(self, conversation: Conversation, message: Message, q: str, model: str | None) -> Iterator[Message]:
        fragments = None
        try:
            try:
                answer = self._stream_fn(q, model)
                message.sources = list(answer.sources)
                message.is_loading = False
                message.is_streaming = True
                self.store.save()
                yield message
                fragments = iter(answer)
                for fragment in fragments:
                    message.answer += fragment
                    self.store.save()
                    yield message
                message.metrics = answer.metrics()
            except Exception as e:
                logger.warning("[chat:ask_streaming] failed message=%s: %s", message.id, e)
                message.error = _error_text(e)
            self._finish(conversation, message)
        finally:
            close = getattr(fragments, "close", None)
            if callable(close):
                close()
            self._interrupt(conversation, message)
        yield message


class StreamingReply:
    """
    Iterator over one streamed answer. close() (or abandoning it mid-stream)
    leaves the message settled, never pending.
    """

    def __init__(self, session: ChatSession, conversation: Conversation, message: Message, updates: Iterator[Message]) -> None:
        self._session = session
        self._conversation = conversation
        self.message = message
        self._updates = updates

    def __iter__(self) -> "StreamingReply":
        return self

    def __next__(self) -> Message:
        return next(self._updates)

    def close(self) -> None:
        self._updates.close()
        self._session._interrupt(self._conversation, self.message)
