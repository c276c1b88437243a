"""
Application errors for clean API error handling.

Use ServiceUnavailableError when a dependency (vector index, LLM) is
misconfigured or unreachable so callers can surface a user-facing message.
"""


class ServiceUnavailableError(Exception):
    """Raised when a required service (e.g. vector index, Groq API) is unavailable or misconfigured."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidQuestionError(ValueError):
    """Raised when the question is missing, not a string, or blank."""

    def __init__(self, message: str = "Question is required") -> None:
        self.message = message
        super().__init__(message)


class CompletionError(Exception):
    """Raised when every completion attempt against the model provider failed."""

    def __init__(self, model: str, attempts: int, cause: Exception) -> None:
        self.model = model
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"{cause!s} (model {model}, {attempts} attempt(s))")


class RAGQueryError(Exception):
    """User-facing failure of a blocking RAG query."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        self.message = (
            f"Failed to process your question: {detail}. "
            "Please try again or use the faster 8B model."
        )
        super().__init__(self.message)


class ConversationBusyError(Exception):
    """Raised when a question is submitted while another is still pending in the conversation."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} already has a pending question")
