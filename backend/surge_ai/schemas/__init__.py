"""
Pydantic Schemas for API Request/Response validation
"""

from .ai import (
    ChatMessage,
    ChatCompletionRequest,
    ChatCompletionResponse,
    CompletionUsage,
    StreamingChunk,
    StreamingChoice,
    StreamingDelta,
    EmbeddingsRequest,
    EmbeddingsResponse,
    EmbeddingsUsage,
    ErrorResponse,
    ModelInfo,
    ModelCatalogResponse,
    ModelUsage,
    UsageSummaryResponse,
    ProviderStatus,
    PromptTemplateInfo,
    PromptFillRequest,
    PromptFillResponse,
)

__all__ = [
    "ChatMessage",
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "CompletionUsage",
    "StreamingChunk",
    "StreamingChoice",
    "StreamingDelta",
    "EmbeddingsRequest",
    "EmbeddingsResponse",
    "EmbeddingsUsage",
    "ErrorResponse",
    "ModelInfo",
    "ModelCatalogResponse",
    "ModelUsage",
    "UsageSummaryResponse",
    "ProviderStatus",
    "PromptTemplateInfo",
    "PromptFillRequest",
    "PromptFillResponse",
]
