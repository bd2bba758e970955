"""
LLM Service — pydantic-ai backed classifier client.

Implements the ClassifierClient capability: classify(schema, system_prompt,
payload) -> schema instance. Output is forced through the provider's native
JSON-schema mode with strict=True, at the configured temperature (0 by
default). Any failure (transport, timeout, schema mismatch) is raised to the
caller; this service never retries a request.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar, get_origin

from pydantic import BaseModel
from pydantic_ai import Agent, NativeOutput
from pydantic_ai.settings import ModelSettings

from ..config import Settings, get_settings
from .provider_manager import ProviderManager

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


class LLMService:
    """High-level LLM service backed by pydantic-ai.

    Agents are cached by (output_type, system_prompt_hash, provider config)
    so the strict schema is generated once per process and per model.
    """

    _agent_cache: Dict[tuple, Agent] = {}

    def __init__(self, settings: Optional[Settings] = None, mock_mode: bool = False):
        self.settings = settings or get_settings()
        self.mock_mode = mock_mode or self.settings.mock_mode
        self.provider_manager = ProviderManager(
            settings=self.settings,
            failover=self.settings.llm_provider_failover,
        )
        self.last_provider: Optional[str] = None
        if self.mock_mode:
            logger.info("LLM: MOCK mode")
        else:
            logger.info(f"LLM: ONLINE mode (provider={self.settings.get_llm_config()['provider']})")

    def _get_or_create_agent(self, output_type: Type[T], system_prompt: str) -> Agent:
        key = (output_type, hash(system_prompt), self._provider_key())
        if key not in self._agent_cache:
            model = self.provider_manager.get_model()
            self._agent_cache[key] = Agent(
                model,
                output_type=NativeOutput(
                    output_type,
                    name=output_type.__name__,
                    strict=True,
                ),
                system_prompt=system_prompt,
                retries=0,
            )
        return self._agent_cache[key]

    async def classify(self, schema: Type[T], system_prompt: str, payload: str) -> T:
        """Send `payload` under `system_prompt` and return a validated `schema` instance.

        Raises asyncio.TimeoutError when the request exceeds
        CLASSIFIER_TIMEOUT_SECONDS, and whatever pydantic-ai raises for
        transport or output-validation failures.
        """
        if self.mock_mode:
            return self._mock_output(schema)

        agent = self._get_or_create_agent(schema, system_prompt)
        result = await asyncio.wait_for(
            agent.run(
                payload,
                model_settings=ModelSettings(temperature=self.settings.classifier_temperature),
            ),
            timeout=self.settings.classifier_timeout_seconds,
        )
        self.last_provider = self._extract_provider_name(result)
        return result.output

    # ── Internal helpers ─────────────────────────────────────────────

    def _provider_key(self) -> tuple:
        """Identity of the model this service builds from its settings."""
        s = self.settings
        return (
            s.openai_api_key and (s.openai_api_key, s.openai_model),
            s.groq_api_key and (s.groq_api_key, s.groq_model),
            s.use_ollama and (s.ollama_model, s.ollama_base_url),
            s.llm_provider_failover,
        )

    @staticmethod
    def _mock_output(schema: Type[T]) -> T:
        """Empty instance of `schema`: every list field empty."""
        data: Dict[str, Any] = {
            name: []
            for name, field in schema.model_fields.items()
            if get_origin(field.annotation) in (list, List)
        }
        return schema.model_validate(data)

    def _extract_provider_name(self, result) -> str:
        """Try to extract which provider was used from the result."""
        for msg in reversed(result.all_messages()):
            model_name = getattr(msg, 'model_name', None)
            if model_name:
                return model_name
        names = self.provider_manager.get_provider_names()
        return names[0] if names else "unknown"

    @classmethod
    def clear_cache(cls):
        """Clear agent cache. Useful for testing or config changes."""
        cls._agent_cache.clear()
