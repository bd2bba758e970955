"""
LLM Provider Manager.

Builds pydantic-ai model instances from settings. Every provider is reached
through an OpenAI-compatible endpoint, which is what strict JSON-schema
output needs.
"""

import logging
from typing import List, Tuple

from pydantic_ai.models import Model
from pydantic_ai.models.fallback import FallbackModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

_GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class ProviderManager:
    """Builds the classifier model from the configured providers.

    Priority order:
    1. OpenAI (best strict structured output support)
    2. Groq (OpenAI-compatible endpoint)
    3. Ollama (local fallback)

    With failover disabled (default) only the first configured provider is
    used, so a failed request surfaces to the caller instead of being resent.
    """

    def __init__(self, settings: Settings = None, failover: bool = False):
        self.settings = settings or get_settings()
        self.failover = failover
        self._provider_order: List[str] = []

    def get_provider_names(self) -> List[str]:
        """Get current provider order (set after get_model() call)."""
        return list(self._provider_order)

    def get_model(self) -> Model:
        """Get the structured-output model."""
        available = self._get_available_providers()
        if not available:
            raise RuntimeError("No LLM providers configured (set OPENAI_API_KEY, GROQ_API_KEY or USE_OLLAMA)")

        if len(available) == 1 or not self.failover:
            self._provider_order = [available[0][0]]
            return available[0][1]

        self._provider_order = [name for name, _ in available]
        models = [m for _, m in available]
        return FallbackModel(models[0], *models[1:])

    def _get_available_providers(self) -> List[Tuple[str, Model]]:
        providers = []

        if self.settings.openai_api_key:
            providers.append(("OpenAI", self._build_openai_model()))

        if self.settings.groq_api_key:
            providers.append(("Groq", self._build_groq_model()))

        if self.settings.use_ollama:
            providers.append(("Ollama", self._build_ollama_model()))

        return providers

    # --- Provider constructors ---

    def _build_openai_model(self) -> Model:
        """OpenAI native API."""
        return OpenAIChatModel(
            model_name=self.settings.openai_model,
            provider=OpenAIProvider(
                api_key=self.settings.openai_api_key,
            ),
        )

    def _build_groq_model(self) -> Model:
        """Groq via its OpenAI-compatible endpoint."""
        return OpenAIChatModel(
            model_name=self.settings.groq_model,
            provider=OpenAIProvider(
                base_url=_GROQ_BASE_URL,
                api_key=self.settings.groq_api_key,
            ),
        )

    def _build_ollama_model(self) -> Model:
        """Ollama via OpenAI-compatible endpoint."""
        return OpenAIChatModel(
            model_name=self.settings.ollama_model,
            provider=OpenAIProvider(
                base_url=f"{self.settings.ollama_base_url}/v1",
            ),
        )
