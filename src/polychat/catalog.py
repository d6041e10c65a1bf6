"""The static model catalog.

The store reloads this list on every initialization; nothing at runtime
mutates it. Add entries here to offer more models.
"""

from typing import Dict, List, Optional

from .models import ModelDescriptor

AI_MODELS: List[ModelDescriptor] = [
    ModelDescriptor(
        model_id="x-ai/grok-4-fast",
        display_name="Grok-4 Fast",
        provider="xAI",
        description="Fast and capable AI model from xAI",
        provider_model_id="x-ai/grok-4-fast",
    ),
    ModelDescriptor(
        model_id="mistralai/devstral-2512",
        display_name="Mistral Devstral 2512",
        provider="Mistral AI",
        description="Advanced conversational AI model from Mistral",
        provider_model_id="mistralai/devstral-2512:free",
    ),
    ModelDescriptor(
        model_id="meta-llama/llama-3.3-70b-instruct",
        display_name="Llama 3.3 70B Instruct",
        provider="Meta",
        description="Powerful 70B parameter instruction-tuned model from Meta",
        provider_model_id="meta-llama/llama-3.3-70b-instruct",
    ),
]


def load_catalog() -> List[ModelDescriptor]:
    """Return a fresh copy of the catalog."""
    return [model.model_copy() for model in AI_MODELS]


def get_model(model_id: str, models: Optional[List[ModelDescriptor]] = None) -> Optional[ModelDescriptor]:
    for model in models if models is not None else AI_MODELS:
        if model.model_id == model_id:
            return model
    return None


def get_active_models(models: Optional[List[ModelDescriptor]] = None) -> List[ModelDescriptor]:
    return [m for m in (models if models is not None else AI_MODELS) if m.active]


def get_default_model(models: Optional[List[ModelDescriptor]] = None) -> ModelDescriptor:
    models = models if models is not None else AI_MODELS
    active = get_active_models(models)
    return active[0] if active else models[0]


def get_model_config(model_id: str, models: Optional[List[ModelDescriptor]] = None) -> Dict[str, float]:
    """Generation parameters for a model, falling back to the default model's."""
    model = get_model(model_id, models) or get_default_model(models)
    return {
        "max_tokens": model.max_tokens,
        "temperature": model.temperature,
        "top_p": model.top_p,
    }
