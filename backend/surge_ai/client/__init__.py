"""
Gateway client and streaming normalizer
"""

from .service import AIClient, AIClientConfig, AIClientError, CompletionOptions
from .streaming import (
    SSEStreamParser,
    StreamError,
    is_ollama_payload,
    normalize_chunk,
    parse_sse_line,
)

__all__ = [
    "AIClient",
    "AIClientConfig",
    "AIClientError",
    "CompletionOptions",
    "SSEStreamParser",
    "StreamError",
    "is_ollama_payload",
    "normalize_chunk",
    "parse_sse_line",
]
