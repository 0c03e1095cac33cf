"""
Business Logic Services

The completion proxy is imported from its own module
(`surge_ai.services.completion_service`) since it depends on the adapters,
which in turn read the model catalog from this package.
"""

from .model_catalog import (
    AVAILABLE_MODELS,
    FALLBACK_MODEL_ID,
    ModelDescriptor,
    ModelHosting,
    TaskType,
    count_tokens,
    estimate_token_usage,
    estimate_tokens,
    get_model,
    is_model_available,
    list_models,
    select_model_for_task,
)
from .quota_service import QuotaExceededError, QuotaState, QuotaTracker
from .prompt_templates import (
    PromptTemplate,
    fill_prompt_template,
    get_prompt_template,
    list_prompt_templates,
)

__all__ = [
    "AVAILABLE_MODELS",
    "FALLBACK_MODEL_ID",
    "ModelDescriptor",
    "ModelHosting",
    "TaskType",
    "count_tokens",
    "estimate_token_usage",
    "estimate_tokens",
    "get_model",
    "is_model_available",
    "list_models",
    "select_model_for_task",
    "QuotaExceededError",
    "QuotaState",
    "QuotaTracker",
    "PromptTemplate",
    "fill_prompt_template",
    "get_prompt_template",
    "list_prompt_templates",
]
