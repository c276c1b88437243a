"""
Shared fixtures: a stand-in Groq client and a sample source.
"""

from unittest.mock import MagicMock

import pytest

from foodchat.schemas.chat import SearchResult
from tests.fakes import MANGO_HIT


@pytest.fixture
def fake_client() -> MagicMock:
    """Stand-in for openai.OpenAI; configure client.chat.completions.create per test."""
    return MagicMock()


@pytest.fixture
def mango_source() -> SearchResult:
    return SearchResult.model_validate(MANGO_HIT)
