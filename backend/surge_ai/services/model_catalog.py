"""
Model Catalog
Static registry of the models the platform can route to, and the
selection logic that picks one for a task / subscription tier.
"""

import math
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Dict, FrozenSet, List, Optional, Tuple

import tiktoken

from ..models.database import LLMProvider, SubscriptionTier


class TaskType(str, Enum):
    """Functional purpose of a completion"""
    CONTENT_GENERATION = "content_generation"
    KEYWORD_ANALYSIS = "keyword_analysis"
    TECHNICAL_SEO = "technical_seo"
    STRATEGY = "strategy"
    CLASSIFICATION = "classification"
    SUMMARIZATION = "summarization"
    EMBEDDING = "embedding"


class ModelHosting(str, Enum):
    """Where a model runs"""
    CLOUD = "cloud"
    LOCAL = "local"
    CUSTOM = "custom"


TIER_RANK = {
    SubscriptionTier.PREMIUM: 3,
    SubscriptionTier.STANDARD: 2,
    SubscriptionTier.FREE: 1,
}

HOSTING_RANK = {
    ModelHosting.CLOUD: 3,
    ModelHosting.LOCAL: 2,
    ModelHosting.CUSTOM: 1,
}

FALLBACK_MODEL_ID = "mistral-small"


@dataclass(frozen=True)
class ModelDescriptor:
    """Immutable catalog entry"""
    id: str
    name: str
    provider: LLMProvider
    tier: SubscriptionTier  # Minimum subscription required
    supported_tasks: FrozenSet[TaskType]
    context_window_tokens: int
    max_output_tokens: int
    cost_per_1k_tokens: float
    hosting: ModelHosting = ModelHosting.CLOUD
    base_url: Optional[str] = None
    api_key_env: Optional[str] = None
    input_cost_per_1k_tokens: Optional[float] = None
    output_cost_per_1k_tokens: Optional[float] = None

    def supports(self, task: TaskType) -> bool:
        return task in self.supported_tasks

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider.value,
            "hosting": self.hosting.value,
            "tier": self.tier.value,
            "tasks": sorted(task.value for task in self.supported_tasks),
            "context_window_tokens": self.context_window_tokens,
            "max_output_tokens": self.max_output_tokens,
            "cost_per_1k_tokens": self.cost_per_1k_tokens,
            "input_cost_per_1k_tokens": self.input_cost_per_1k_tokens,
            "output_cost_per_1k_tokens": self.output_cost_per_1k_tokens,
        }


_ALL_TEXT_TASKS = frozenset({
    TaskType.CONTENT_GENERATION,
    TaskType.KEYWORD_ANALYSIS,
    TaskType.TECHNICAL_SEO,
    TaskType.STRATEGY,
    TaskType.CLASSIFICATION,
    TaskType.SUMMARIZATION,
})

_ANALYSIS_TASKS = frozenset({
    TaskType.CONTENT_GENERATION,
    TaskType.KEYWORD_ANALYSIS,
    TaskType.TECHNICAL_SEO,
    TaskType.STRATEGY,
})

_LIGHT_TASKS = frozenset({
    TaskType.CONTENT_GENERATION,
    TaskType.CLASSIFICATION,
    TaskType.SUMMARIZATION,
})


AVAILABLE_MODELS: Tuple[ModelDescriptor, ...] = (
    # OpenAI
    ModelDescriptor(
        id="gpt-4o",
        name="GPT-4o",
        provider=LLMProvider.OPENAI,
        api_key_env="OPENAI_API_KEY",
        tier=SubscriptionTier.PREMIUM,
        supported_tasks=_ALL_TEXT_TASKS,
        context_window_tokens=128000,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.01,
        input_cost_per_1k_tokens=0.005,
        output_cost_per_1k_tokens=0.015,
    ),
    ModelDescriptor(
        id="gpt-3.5-turbo",
        name="GPT-3.5 Turbo",
        provider=LLMProvider.OPENAI,
        api_key_env="OPENAI_API_KEY",
        tier=SubscriptionTier.STANDARD,
        supported_tasks=_LIGHT_TASKS,
        context_window_tokens=16385,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.0015,
        input_cost_per_1k_tokens=0.0005,
        output_cost_per_1k_tokens=0.0015,
    ),
    # Anthropic
    ModelDescriptor(
        id="claude-3-opus",
        name="Claude 3 Opus",
        provider=LLMProvider.ANTHROPIC,
        api_key_env="ANTHROPIC_API_KEY",
        tier=SubscriptionTier.PREMIUM,
        supported_tasks=_ANALYSIS_TASKS,
        context_window_tokens=200000,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.015,
        input_cost_per_1k_tokens=0.015,
        output_cost_per_1k_tokens=0.075,
    ),
    ModelDescriptor(
        id="claude-3-sonnet",
        name="Claude 3 Sonnet",
        provider=LLMProvider.ANTHROPIC,
        api_key_env="ANTHROPIC_API_KEY",
        tier=SubscriptionTier.STANDARD,
        supported_tasks=frozenset({
            TaskType.CONTENT_GENERATION,
            TaskType.KEYWORD_ANALYSIS,
            TaskType.SUMMARIZATION,
        }),
        context_window_tokens=200000,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.003,
        input_cost_per_1k_tokens=0.003,
        output_cost_per_1k_tokens=0.015,
    ),
    # Mistral
    ModelDescriptor(
        id="mistral-large",
        name="Mistral Large",
        provider=LLMProvider.MISTRAL,
        api_key_env="MISTRAL_API_KEY",
        tier=SubscriptionTier.STANDARD,
        supported_tasks=_LIGHT_TASKS,
        context_window_tokens=32768,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.0008,
        input_cost_per_1k_tokens=0.0008,
        output_cost_per_1k_tokens=0.0024,
    ),
    ModelDescriptor(
        id="mistral-small",
        name="Mistral Small",
        provider=LLMProvider.MISTRAL,
        api_key_env="MISTRAL_API_KEY",
        tier=SubscriptionTier.FREE,
        supported_tasks=frozenset({TaskType.CLASSIFICATION, TaskType.SUMMARIZATION}),
        context_window_tokens=32768,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.0002,
        input_cost_per_1k_tokens=0.0002,
        output_cost_per_1k_tokens=0.0006,
    ),
    # Together.ai
    ModelDescriptor(
        id="together/llama-3-70b-instruct",
        name="Llama 3 70B (Together.ai)",
        provider=LLMProvider.TOGETHER,
        api_key_env="TOGETHER_API_KEY",
        tier=SubscriptionTier.PREMIUM,
        supported_tasks=_ALL_TEXT_TASKS,
        context_window_tokens=8192,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.0009,
        input_cost_per_1k_tokens=0.0009,
        output_cost_per_1k_tokens=0.0009,
    ),
    ModelDescriptor(
        id="together/deepseek-coder-33b-instruct",
        name="DeepSeek Coder 33B (Together.ai)",
        provider=LLMProvider.TOGETHER,
        api_key_env="TOGETHER_API_KEY",
        tier=SubscriptionTier.STANDARD,
        supported_tasks=_LIGHT_TASKS,
        context_window_tokens=16384,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.0006,
        input_cost_per_1k_tokens=0.0006,
        output_cost_per_1k_tokens=0.0006,
    ),
    # OpenRouter
    ModelDescriptor(
        id="openrouter/anthropic/claude-3-opus",
        name="Claude 3 Opus (OpenRouter)",
        provider=LLMProvider.OPENROUTER,
        api_key_env="OPENROUTER_API_KEY",
        tier=SubscriptionTier.PREMIUM,
        supported_tasks=_ANALYSIS_TASKS,
        context_window_tokens=200000,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.015,
        input_cost_per_1k_tokens=0.015,
        output_cost_per_1k_tokens=0.075,
    ),
    ModelDescriptor(
        id="openrouter/meta-llama/llama-3-70b-instruct",
        name="Llama 3 70B (OpenRouter)",
        provider=LLMProvider.OPENROUTER,
        api_key_env="OPENROUTER_API_KEY",
        tier=SubscriptionTier.STANDARD,
        supported_tasks=_LIGHT_TASKS,
        context_window_tokens=8192,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.0009,
        input_cost_per_1k_tokens=0.0009,
        output_cost_per_1k_tokens=0.0009,
    ),
    # Ollama (local); free to run, no key
    ModelDescriptor(
        id="ollama/llama3",
        name="Llama 3 (Ollama)",
        provider=LLMProvider.OLLAMA,
        hosting=ModelHosting.LOCAL,
        base_url="http://localhost:11434",
        tier=SubscriptionTier.STANDARD,
        supported_tasks=_LIGHT_TASKS,
        context_window_tokens=8192,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.0,
    ),
    ModelDescriptor(
        id="ollama/deepseek-coder",
        name="DeepSeek Coder (Ollama)",
        provider=LLMProvider.OLLAMA,
        hosting=ModelHosting.LOCAL,
        base_url="http://localhost:11434",
        tier=SubscriptionTier.STANDARD,
        supported_tasks=_LIGHT_TASKS,
        context_window_tokens=16384,
        max_output_tokens=4096,
        cost_per_1k_tokens=0.0,
    ),
    # Embeddings
    ModelDescriptor(
        id="text-embedding-3-large",
        name="OpenAI Embeddings Large",
        provider=LLMProvider.OPENAI,
        api_key_env="OPENAI_API_KEY",
        tier=SubscriptionTier.STANDARD,
        supported_tasks=frozenset({TaskType.EMBEDDING}),
        context_window_tokens=8191,
        max_output_tokens=3072,
        cost_per_1k_tokens=0.00013,
    ),
    ModelDescriptor(
        id="text-embedding-3-small",
        name="OpenAI Embeddings Small",
        provider=LLMProvider.OPENAI,
        api_key_env="OPENAI_API_KEY",
        tier=SubscriptionTier.FREE,
        supported_tasks=frozenset({TaskType.EMBEDDING}),
        context_window_tokens=8191,
        max_output_tokens=1536,
        cost_per_1k_tokens=0.00002,
    ),
)

_MODELS_BY_ID: Dict[str, ModelDescriptor] = {model.id: model for model in AVAILABLE_MODELS}


def get_model(model_id: str) -> Optional[ModelDescriptor]:
    """Look up a catalog entry by id"""
    return _MODELS_BY_ID.get(model_id)


def is_model_available(model: ModelDescriptor, tier: SubscriptionTier) -> bool:
    """Whether a subscription tier may use a model"""
    tier = SubscriptionTier(tier)
    if tier == SubscriptionTier.PREMIUM:
        return True
    if tier == SubscriptionTier.STANDARD:
        return model.tier != SubscriptionTier.PREMIUM
    return model.tier == SubscriptionTier.FREE


def list_models(
    task: Optional[TaskType] = None,
    tier: Optional[SubscriptionTier] = None,
) -> List[ModelDescriptor]:
    """Catalog entries, optionally restricted to a task and/or tier"""
    models = list(AVAILABLE_MODELS)
    if task is not None:
        models = [m for m in models if m.supports(TaskType(task))]
    if tier is not None:
        models = [m for m in models if is_model_available(m, tier)]
    return models


def select_model_for_task(
    task: TaskType,
    tier: SubscriptionTier = SubscriptionTier.FREE,
    preferred_hosting: Optional[ModelHosting] = ModelHosting.CLOUD,
    preferred_provider: Optional[LLMProvider] = None,
) -> ModelDescriptor:
    """
    Pick the best model for a task.

    Tier eligibility is a hard filter; hosting and provider preferences only
    narrow the candidates when at least one candidate matches. Among the
    remaining candidates the highest tier wins, then hosting match, then
    provider match, then cloud > local > custom.

    Returns the fallback model when nothing qualifies.
    """
    task = TaskType(task)
    candidates = list_models(task=task, tier=tier)

    if preferred_hosting:
        hosting_matches = [m for m in candidates if m.hosting == preferred_hosting]
        if hosting_matches:
            candidates = hosting_matches

    if preferred_provider:
        provider_matches = [m for m in candidates if m.provider == preferred_provider]
        if provider_matches:
            candidates = provider_matches

    def sort_key(model: ModelDescriptor):
        return (
            -TIER_RANK[model.tier],
            0 if model.hosting == preferred_hosting else 1,
            0 if preferred_provider and model.provider == preferred_provider else 1,
            -HOSTING_RANK[model.hosting],
        )

    # sorted() is stable, so catalog order breaks any remaining ties
    ranked = sorted(candidates, key=sort_key)
    if ranked:
        return ranked[0]
    return _MODELS_BY_ID[FALLBACK_MODEL_ID]


def estimate_tokens(text: Optional[str]) -> int:
    """Rough estimation: 1 token ~ 4 characters of English text"""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


@lru_cache()
def _get_tokenizer():
    """Get tiktoken encoder for token counting"""
    try:
        return tiktoken.encoding_for_model("gpt-4")
    except KeyError:
        return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: Optional[str]) -> int:
    """Count tokens using tiktoken, for responses that arrive without usage"""
    if not text:
        return 0
    return len(_get_tokenizer().encode(text))


def estimate_token_usage(
    input_text: str,
    model: ModelDescriptor,
    estimated_output_tokens: Optional[int] = None,
) -> Dict[str, float]:
    """Estimate token usage and cost of a request before sending it"""
    input_tokens = estimate_tokens(input_text)
    # Default to 25% of the input when the caller has no better guess
    output_tokens = estimated_output_tokens or math.ceil(input_tokens * 0.25)

    if model.input_cost_per_1k_tokens and model.output_cost_per_1k_tokens:
        total_cost = (
            (input_tokens / 1000) * model.input_cost_per_1k_tokens
            + (output_tokens / 1000) * model.output_cost_per_1k_tokens
        )
    else:
        total_cost = ((input_tokens + output_tokens) / 1000) * model.cost_per_1k_tokens

    return {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "total_cost": total_cost,
    }
