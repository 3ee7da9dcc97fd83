from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from nexus.config import settings

MAX_ACTIVE_MEMORY_CONTEXTS = 5


# --- Engine types ---


class ResearchRequest(BaseModel):
    """One research run's parameters. Immutable while the run is active."""

    model_config = ConfigDict(frozen=True)

    query: str
    provider: str = settings.default_provider
    model: str = settings.default_model
    depth: str = settings.default_depth
    max_tokens: int = Field(default=settings.default_max_tokens, gt=0)
    temperature: float = Field(default=settings.default_temperature, ge=0, le=2)

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must not be empty")
        return value


class MemoryContext(BaseModel):
    id: str
    query: str
    answer: str
    provider: str = ""
    model: str = ""
    created_at: str | None = None


class ResearchResult(BaseModel):
    id: str
    query: str
    answer: str = Field(min_length=1)
    confidence: int = Field(ge=22, le=97)
    provider: str
    model: str
    depth: str
    timestamp: int  # epoch milliseconds

    @property
    def confidence_level(self) -> str:
        if self.confidence >= 80:
            return "high"
        if self.confidence >= 60:
            return "medium"
        return "low"


# --- Requests ---


class GenerateRequest(BaseModel):
    """Single generation call, field names as sent by the web client."""

    model_config = ConfigDict(populate_by_name=True)

    provider: str
    model: str
    system_prompt: str = Field(alias="systemPrompt")
    user_prompt: str = Field(alias="userPrompt")
    max_tokens: int = Field(default=settings.default_max_tokens, gt=0, alias="maxTokens")
    temperature: float = Field(default=settings.default_temperature, ge=0, le=2)


class RunResearchRequest(BaseModel):
    query: str
    provider: str = settings.default_provider
    model: str = settings.default_model
    depth: str = settings.default_depth
    max_tokens: int = Field(default=settings.default_max_tokens, gt=0)
    temperature: float = Field(default=settings.default_temperature, ge=0, le=2)
    memory_ids: list[str] = Field(default_factory=list, max_length=MAX_ACTIVE_MEMORY_CONTEXTS)
    memory_enabled: bool = False
    user_id: str = settings.default_user_id

    def to_research_request(self) -> ResearchRequest:
        return ResearchRequest(
            query=self.query,
            provider=self.provider,
            model=self.model,
            depth=self.depth,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


class HistoryCreate(BaseModel):
    query: str
    answer: str = Field(min_length=1)
    confidence: int = Field(ge=22, le=97)
    provider: str
    model: str
    depth: str
    timestamp: int
    user_id: str = settings.default_user_id


class MemoryCreate(BaseModel):
    query: str
    answer: str
    provider: str
    model: str
    user_id: str = settings.default_user_id


# --- Responses ---


class GenerateResponse(BaseModel):
    result: str


class HistoryResponse(BaseModel):
    data: list[ResearchResult]


class MemoryResponse(BaseModel):
    data: list[MemoryContext]


class CancelResponse(BaseModel):
    cancelled: bool


class ModelInfo(BaseModel):
    value: str
    label: str


class ProviderInfo(BaseModel):
    id: str
    name: str
    color: str
    configured: bool
    models: list[ModelInfo]


class ProvidersResponse(BaseModel):
    providers: list[ProviderInfo]
