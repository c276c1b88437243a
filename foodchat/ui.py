# Run from project root: streamlit run foodchat/ui.py
# Streamed answers go through the backend (POST /api/chat); "Full answer" mode calls the pipeline in-process.
# Conversation history is kept client-side in CONVERSATIONS_PATH.

import os
import sys
from contextlib import closing
from pathlib import Path

# Ensure project root is on path (Streamlit may run with cwd != project root)
_root_from_file = Path(__file__).resolve().parent.parent
_cwd = os.getcwd()
for _root in (_root_from_file, _cwd):
    _root = str(_root)
    if _root not in sys.path:
        sys.path.insert(0, _root)

import streamlit as st

from foodchat.agent.graph import rag_query
from foodchat.core.config import ALLOWED_MODELS, API_BASE, CONVERSATIONS_PATH
from foodchat.core.conversation_store import ConversationStore
from foodchat.core.errors import ConversationBusyError
from foodchat.schemas.conversation import Message
from foodchat.services.chat_service import ChatSession
from foodchat.services.stream_client import open_answer_stream

EXAMPLE_QUESTIONS = [
    "What fruits are popular in tropical regions?",
    "Tell me about spicy foods and their origins",
    "What are some healthy vegetable options?",
    "What makes different cuisines unique?",
]

_BAND_ICON = {"high": "🟢", "medium": "🟡", "low": "🟠"}


@st.cache_resource
def get_session() -> ChatSession:
    """One store and one session per server process, built once and reused across reruns."""
    store = ConversationStore(CONVERSATIONS_PATH)
    session = ChatSession(
        store,
        ask_fn=rag_query,
        stream_fn=lambda q, m: open_answer_stream(q, m, api_base=API_BASE),
    )
    session.start()
    return session


def render_sources(message: Message) -> None:
    if not message.sources:
        return
    with st.expander(f"Sources ({len(message.sources)})"):
        for i, source in enumerate(message.sources, start=1):
            meta = source.metadata
            label = " · ".join(x for x in (meta.category, meta.origin) if x)
            st.markdown(
                f"**[{i}]** {_BAND_ICON[source.relevance_band]} {source.relevance_percent}% match"
                + (f" — {label}" if label else "")
            )
            st.caption(meta.text)


def render_metrics(message: Message) -> None:
    m = message.metrics
    if m is None:
        return
    parts = [
        f"search {m.vector_search_time} ms",
        f"model {m.llm_processing_time} ms",
        f"total {m.total_response_time} ms",
    ]
    if m.tokens_used is not None:
        parts.append(f"{m.tokens_used} tokens")
    st.caption(" · ".join(parts))


def render_answer(message: Message) -> None:
    if message.progress_label:
        st.caption(message.progress_label)
    elif message.error:
        st.error(message.error)
    elif message.answer:
        st.markdown(message.answer)
        render_sources(message)
        render_metrics(message)


session = get_session()

st.title("Food RAG Chat")

# --- Sidebar: model, mode, conversation history ---
with st.sidebar:
    model = st.selectbox("Model", ALLOWED_MODELS, index=0, key="model")
    streaming = st.toggle("Stream answers", value=True, key="streaming")
    if st.button("New Chat", key="new_chat"):
        session.new_conversation()
        st.rerun()
    st.subheader("History")
    for conv in list(session.conversations):
        col_title, col_delete = st.columns([5, 1])
        marker = "▸ " if conv.id == session.current_id else ""
        if col_title.button(f"{marker}{conv.title}", key=f"open_{conv.id}", help=conv.updated_at.strftime("%Y-%m-%d")):
            session.select(conv.id)
            st.rerun()
        if col_delete.button("🗑", key=f"delete_{conv.id}", help="Delete conversation"):
            session.delete(conv.id)
            st.rerun()

current = session.current
st.caption(f"{session.message_count} message(s) in this chat")

# Welcome state with example questions
if not current.messages:
    st.subheader("Ask anything about food")
    cols = st.columns(2)
    for i, text in enumerate(EXAMPLE_QUESTIONS):
        if cols[i % 2].button(text, key=f"example_{i}"):
            st.session_state.pending_query = text
            st.rerun()

for msg in current.messages:
    with st.chat_message("user"):
        st.markdown(msg.question)
    with st.chat_message("assistant"):
        render_answer(msg)

# If we just submitted a query, answer it in place
if st.session_state.get("pending_query"):
    prompt = st.session_state.pending_query
    del st.session_state["pending_query"]
    with st.chat_message("user"):
        st.markdown(prompt)
    with st.chat_message("assistant"):
        placeholder = st.empty()
        try:
            if streaming:
                with closing(session.ask_streaming(prompt, model)) as reply:
                    for msg in reply:
                        with placeholder.container():
                            render_answer(msg)
            else:
                placeholder.caption("Searching knowledge base...")
                session.ask(prompt, model)
        except ConversationBusyError:
            placeholder.warning("Please wait for the current answer to finish.")
    st.rerun()

if prompt := st.chat_input("Ask a question about food...", disabled=current.pending_message is not None):
    st.session_state.pending_query = prompt
    st.rerun()
