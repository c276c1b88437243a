"""Schemas for the chat endpoints: sources, metrics, request and response bodies."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceMetadata(BaseModel):
    """Metadata bag stored with each passage in the vector index."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    text: str = Field("", description="Passage text used as grounding context.")
    category: str = Field("", description="Food category, e.g. fruit, spice, dish.")
    origin: str = Field("", description="Region or country of origin.")

    @field_validator("text", "category", "origin", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)


class SearchResult(BaseModel):
    """One nearest neighbour returned by the vector index."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Vector id in the index.")
    score: float = Field(..., description="Similarity score, 0-1.")
    metadata: SourceMetadata = Field(default_factory=SourceMetadata)

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> str:
        return str(v)

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_to_empty_metadata(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def relevance_percent(self) -> int:
        """Score rendered as a whole percentage (0.92 -> 92)."""
        return round(self.score * 100)

    @property
    def relevance_band(self) -> Literal["high", "medium", "low"]:
        percent = self.relevance_percent
        if percent >= 80:
            return "high"
        if percent >= 60:
            return "medium"
        return "low"


class PerformanceMetrics(BaseModel):
    """Timing and usage for one request. All times are whole milliseconds."""

    model_config = ConfigDict(populate_by_name=True)

    vector_search_time: int = Field(0, ge=0, alias="vectorSearchTime")
    llm_processing_time: int = Field(0, ge=0, alias="llmProcessingTime")
    total_response_time: int = Field(0, ge=0, alias="totalResponseTime")
    tokens_used: int | None = Field(None, alias="tokensUsed")

    @classmethod
    def from_seconds(
        cls,
        vector_search: float,
        llm_processing: float,
        total: float,
        tokens_used: int | None = None,
    ) -> "PerformanceMetrics":
        """Build from perf_counter spans (seconds), rounding to whole milliseconds."""
        return cls(
            vector_search_time=_to_ms(vector_search),
            llm_processing_time=_to_ms(llm_processing),
            total_response_time=_to_ms(total),
            tokens_used=tokens_used,
        )


def _to_ms(seconds: float) -> int:
    return max(0, round(seconds * 1000))


class ChatRequest(BaseModel):
    """Request body for POST /api/chat and POST /api/query."""

    question: str = Field(..., description="User question about food.")
    model: str | None = Field(None, description="Model id; unknown values fall back to the fast model.")


class RAGResponse(BaseModel):
    """Response for POST /api/query and for direct invocation of rag_query()."""

    sources: list[SearchResult] = Field(default_factory=list)
    answer: str = Field(..., description="Model answer grounded in the sources.")
    metrics: PerformanceMetrics

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "sources": [
                        {
                            "id": "1",
                            "score": 0.92,
                            "metadata": {"text": "Mangoes are grown in...", "category": "fruit", "origin": "Asia"},
                        }
                    ],
                    "answer": "Mangoes are popular in tropical regions.",
                    "metrics": {
                        "vectorSearchTime": 120,
                        "llmProcessingTime": 640,
                        "totalResponseTime": 770,
                        "tokensUsed": 210,
                    },
                }
            ]
        }
    }


class ErrorResponse(BaseModel):
    """Body returned with 400 and 500 responses."""

    error: str
