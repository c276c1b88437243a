"""
Unit tests for the client-local conversation store and its deserialisation.
"""

import json
from pathlib import Path

import pytest

from foodchat.core.conversation_store import ConversationStore
from foodchat.schemas.conversation import (
    INTERRUPTED_ERROR,
    Conversation,
    Message,
    deserialize_conversations,
    make_title,
)


class TestLoad:
    """Tests for ConversationStore.load()."""

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert ConversationStore(tmp_path / "none.json").load() == []

    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            "[]",
            json.dumps({"foodChatConversations": "nope"}),
            json.dumps({"foodChatConversations": [{"id": "1", "messages": [{"answer": "no question"}]}]}),
            json.dumps({"foodChatConversations": [{"id": "1", "createdAt": "yesterday"}]}),
        ],
    )
    def test_corrupt_data_falls_back_to_empty(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "conversations.json"
        path.write_text(content, encoding="utf-8")
        assert ConversationStore(path).load() == []

    def test_absent_fields_take_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "conversations.json"
        path.write_text(json.dumps({
            "foodChatConversations": [
                {
                    "id": "c1",
                    "title": "Mangoes",
                    "createdAt": "2024-05-01T10:00:00Z",
                    "updatedAt": "2024-05-01T10:05:00Z",
                    "messages": [{"id": "m1", "question": "Mangoes?", "answer": "Yes."}],
                }
            ]
        }), encoding="utf-8")
        [conv] = ConversationStore(path).load()
        assert conv.created_at.year == 2024
        msg = conv.messages[0]
        assert msg.sources == [] and msg.metrics is None and msg.error is None
        assert msg.is_loading is False and msg.is_streaming is False
        assert msg.timestamp is not None

    def test_in_flight_messages_come_back_settled(self, tmp_path: Path) -> None:
        path = tmp_path / "conversations.json"
        path.write_text(json.dumps({
            "foodChatConversations": [
                {
                    "id": "c1",
                    "messages": [
                        {"id": "m1", "question": "Mangoes?", "isLoading": True},
                        {"id": "m2", "question": "Chili?", "answer": "Hot", "isStreaming": True},
                        {"id": "m3", "question": "Rice?", "isLoading": True, "error": "Timed out"},
                    ],
                }
            ]
        }), encoding="utf-8")
        [conv] = ConversationStore(path).load()
        assert conv.pending_message is None
        assert [m.error for m in conv.messages] == [INTERRUPTED_ERROR, INTERRUPTED_ERROR, "Timed out"]
        assert conv.messages[1].answer == "Hot"


def test_mutate_persists_every_change(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "conversations.json"
    store = ConversationStore(path)
    store.load()
    conv = Conversation(title="Spices")
    store.mutate(lambda convs: convs.insert(0, conv))
    store.mutate(lambda convs: conv.messages.append(Message(question="Chili?", answer="Hot.")))

    reloaded = ConversationStore(path).load()
    assert [c.title for c in reloaded] == ["Spices"]
    assert reloaded[0].messages[0].answer == "Hot."
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert set(raw["foodChatConversations"][0]) >= {"id", "title", "messages", "createdAt", "updatedAt"}
    assert "isLoading" in raw["foodChatConversations"][0]["messages"][0]


def test_deserialize_requires_storage_key() -> None:
    with pytest.raises(ValueError):
        deserialize_conversations({"other": []})


def test_make_title_truncates_to_50_chars() -> None:
    assert make_title("Short question") == "Short question"
    long_q = "x" * 60
    assert make_title(long_q) == "x" * 50 + "..."
    assert make_title("y" * 50) == "y" * 50


def test_progress_label_until_first_fragment() -> None:
    msg = Message(question="Mangoes?", is_loading=True)
    assert msg.progress_label == "Searching knowledge base..."
    msg.is_loading = False
    msg.is_streaming = True
    assert msg.progress_label == "Generating..."
    msg.answer = "Man"
    assert msg.progress_label is None
