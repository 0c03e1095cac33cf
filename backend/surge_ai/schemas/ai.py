"""
AI Gateway Schemas
Wire contract of the completion and embeddings proxy
"""

from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A message in the conversation"""
    role: Literal["system", "user", "assistant", "function"]
    content: str
    name: Optional[str] = None


class ChatCompletionRequest(BaseModel):
    """Chat completion request as sent by UI collaborators"""
    messages: List[ChatMessage] = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    frequency_penalty: Optional[float] = Field(default=None, ge=-2.0, le=2.0)
    presence_penalty: Optional[float] = Field(default=None, ge=-2.0, le=2.0)
    stream: bool = False
    stop: Optional[List[str]] = None

    # Proxy control fields
    provider: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None

    CONTROL_FIELDS: ClassVar[Tuple[str, ...]] = ("api_key", "provider", "base_url")

    def upstream_payload(self) -> Dict[str, Any]:
        """OpenAI-compatible body, control fields excluded"""
        return self.model_dump(exclude=set(self.CONTROL_FIELDS), exclude_none=True)


class ChatCompletionMessage(BaseModel):
    content: str
    role: str


class ChatCompletionChoice(BaseModel):
    message: ChatCompletionMessage
    finish_reason: Optional[str] = None
    index: int = 0


class CompletionUsage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletionResponse(BaseModel):
    """Non-streaming completion (OpenAI shape)"""
    id: str
    choices: List[ChatCompletionChoice]
    model: str
    object: str = "chat.completion"
    usage: CompletionUsage


class StreamingDelta(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None


class StreamingChoice(BaseModel):
    index: int = 0
    delta: StreamingDelta
    finish_reason: Optional[str] = None


class StreamingChunk(BaseModel):
    """The one chunk shape UI consumers depend on"""
    id: str
    model: str
    object: str = "chat.completion.chunk"
    choices: List[StreamingChoice]

    def to_payload(self) -> Dict[str, Any]:
        """Dump for the wire: empty delta keys dropped, finish_reason kept"""
        return {
            "id": self.id,
            "model": self.model,
            "object": self.object,
            "choices": [
                {
                    "index": choice.index,
                    "delta": choice.delta.model_dump(exclude_none=True),
                    "finish_reason": choice.finish_reason,
                }
                for choice in self.choices
            ],
        }


class EmbeddingsRequest(BaseModel):
    """Embeddings request"""
    input: Union[str, List[str]]
    model: str = Field(..., min_length=1)

    # Proxy control fields
    provider: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None

    CONTROL_FIELDS: ClassVar[Tuple[str, ...]] = ("api_key", "provider", "base_url")

    def upstream_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude=set(self.CONTROL_FIELDS), exclude_none=True)

    @property
    def texts(self) -> List[str]:
        if isinstance(self.input, str):
            return [self.input]
        return list(self.input)


class EmbeddingsUsage(BaseModel):
    prompt_tokens: int
    total_tokens: int


class EmbeddingsResponse(BaseModel):
    embeddings: List[List[float]]
    usage: EmbeddingsUsage


class ErrorResponse(BaseModel):
    error: str


class ModelInfo(BaseModel):
    id: str
    name: str
    provider: str
    hosting: str
    tier: str
    tasks: List[str]
    context_window_tokens: int
    max_output_tokens: int
    cost_per_1k_tokens: float
    input_cost_per_1k_tokens: Optional[float] = None
    output_cost_per_1k_tokens: Optional[float] = None


class ModelCatalogResponse(BaseModel):
    tier: str
    selected: Optional[ModelInfo] = None
    models: List[ModelInfo]


class ModelUsage(BaseModel):
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    requests: int


class UsageSummaryResponse(BaseModel):
    tier: str
    period_start: str
    used_tokens: int
    limit: int
    remaining: int
    exceeded: bool
    by_model: List[ModelUsage]


class ProviderStatus(BaseModel):
    provider: str
    configured: bool
    requires_api_key: bool


class PromptTemplateInfo(BaseModel):
    id: str
    name: str
    description: str
    version: str
    category: str
    variables: List[str]


class PromptFillRequest(BaseModel):
    variables: Dict[str, str] = Field(default_factory=dict)


class PromptFillResponse(BaseModel):
    template_id: str
    messages: List[ChatMessage]
