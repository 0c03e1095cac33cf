"""
AI Gateway Routes
Completion/embeddings proxy plus the catalog, quota and template lookups
the UI needs to build requests.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from surge_ai.adapters.llm import ADAPTERS, get_adapter
from surge_ai.api.middleware.auth import get_current_user_id, get_current_user_id_optional
from surge_ai.config import get_settings
from surge_ai.models.database import LLMProvider, SubscriptionTier
from surge_ai.schemas.ai import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    EmbeddingsRequest,
    EmbeddingsResponse,
    ErrorResponse,
    ModelCatalogResponse,
    ModelInfo,
    ModelUsage,
    PromptFillRequest,
    PromptFillResponse,
    PromptTemplateInfo,
    ProviderStatus,
    UsageSummaryResponse,
)
from surge_ai.services.completion_service import CompletionProxy
from surge_ai.services.model_catalog import (
    ModelHosting,
    TaskType,
    list_models,
    select_model_for_task,
)
from surge_ai.services.prompt_templates import fill_prompt_template, list_prompt_templates
from surge_ai.services.quota_service import QuotaTracker, month_start

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def get_quota_tracker() -> QuotaTracker:
    return QuotaTracker()


def get_completion_proxy(
    quota: QuotaTracker = Depends(get_quota_tracker),
) -> CompletionProxy:
    return CompletionProxy(quota)


@router.post(
    "/completions",
    responses={200: {"model": ChatCompletionResponse}, **ERROR_RESPONSES},
)
@router.post(
    "/chat",
    responses={200: {"model": ChatCompletionResponse}, **ERROR_RESPONSES},
)
async def create_completion(
    request: ChatCompletionRequest,
    user_id: Optional[str] = Depends(get_current_user_id_optional),
    proxy: CompletionProxy = Depends(get_completion_proxy),
):
    """
    Proxy a chat completion to the resolved provider.
    With `stream: true` the answer is a text/event-stream of OpenAI-shaped
    chunks terminated by `data: [DONE]`.
    """
    if request.stream:
        frames = await proxy.stream(request, user_id)
        return StreamingResponse(
            frames,
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )
    return await proxy.complete(request, user_id)


@router.post("/embeddings", response_model=EmbeddingsResponse, responses=ERROR_RESPONSES)
async def create_embeddings(
    request: EmbeddingsRequest,
    user_id: Optional[str] = Depends(get_current_user_id_optional),
    proxy: CompletionProxy = Depends(get_completion_proxy),
):
    """Proxy an embeddings request"""
    return await proxy.embed(request, user_id)


@router.get("/models", response_model=ModelCatalogResponse)
async def list_available_models(
    task: Optional[TaskType] = Query(None),
    hosting: Optional[ModelHosting] = Query(None),
    provider: Optional[LLMProvider] = Query(None),
    user_id: Optional[str] = Depends(get_current_user_id_optional),
    quota: QuotaTracker = Depends(get_quota_tracker),
):
    """
    Models the caller's tier may use.
    When a task is given, also returns the model the platform would pick.
    """
    tier = await quota.get_tier(user_id) if user_id else SubscriptionTier.FREE

    models = list_models(task=task, tier=tier)
    selected = None
    if task is not None:
        selected = select_model_for_task(
            task,
            tier,
            preferred_hosting=hosting or ModelHosting.CLOUD,
            preferred_provider=provider,
        )

    return ModelCatalogResponse(
        tier=tier.value,
        selected=ModelInfo(**selected.to_dict()) if selected else None,
        models=[ModelInfo(**m.to_dict()) for m in models],
    )


@router.get("/usage", response_model=UsageSummaryResponse)
async def get_usage(
    user_id: str = Depends(get_current_user_id),
    quota: QuotaTracker = Depends(get_quota_tracker),
):
    """Token consumption of the caller for the current month"""
    tier = await quota.get_tier(user_id)
    state = await quota.get_quota_state(user_id, tier)
    by_model = await quota.get_usage_by_model(user_id)

    return UsageSummaryResponse(
        tier=tier.value,
        period_start=month_start().isoformat(),
        used_tokens=state.used_tokens,
        limit=state.limit,
        remaining=state.remaining,
        exceeded=state.exceeded,
        by_model=[ModelUsage(**row) for row in by_model],
    )


@router.get("/providers", response_model=List[ProviderStatus])
async def list_providers():
    """Which providers work with server-side configuration alone"""
    settings = get_settings()
    statuses = []
    for provider in ADAPTERS:
        adapter = get_adapter(provider, settings)
        statuses.append(
            ProviderStatus(
                provider=provider.value,
                configured=adapter.is_configured(),
                requires_api_key=adapter.requires_api_key,
            )
        )
    return statuses


@router.get("/prompts", response_model=List[PromptTemplateInfo])
async def list_prompts(category: Optional[str] = Query(None)):
    """Available SEO prompt templates"""
    return [PromptTemplateInfo(**t.to_dict()) for t in list_prompt_templates(category)]


@router.post("/prompts/{template_id}/fill", response_model=PromptFillResponse)
async def fill_prompt(template_id: str, request: PromptFillRequest):
    """Render a template into the messages of a completion request"""
    messages = fill_prompt_template(template_id, request.variables)
    if messages is None:
        raise HTTPException(status_code=404, detail="Prompt template not found")
    return PromptFillResponse(template_id=template_id, messages=messages)
