from __future__ import annotations

import logging

from kestrel.config import Settings, get_settings
from kestrel.errors import ProviderUnavailableError
from kestrel.llm.prompts import COVER_LETTER_PROMPT, FALLBACK_COVER_LETTER, JOB_PERSONA_PROMPT
from kestrel.llm.providers import LLMProvider, ProviderPool

logger = logging.getLogger(__name__)


class LLMRouter:
    """Embedding and generation entry point used by the engine.

    ``embed`` and ``generate`` raise ``ProviderUnavailableError``; the
    drafting helpers never raise and fall back to usable text instead.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.pool = ProviderPool(self.settings)

    async def embed(self, model: str, text: str) -> list[float]:
        # no cross-provider fallback: a vector from another backend would not be comparable
        provider = self.pool.by_name(self.settings.llm_router_embed_provider)
        if not self._is_enabled(provider):
            raise ProviderUnavailableError(f"embedding provider {provider.config.name} is not configured")

        try:
            vector = await provider.embed(model=model, text=text)
        except Exception as exc:
            logger.warning("Embedding call failed provider=%s model=%s error=%s", provider.config.name, model, exc)
            raise ProviderUnavailableError(f"embedding provider {provider.config.name} failed: {exc}") from exc

        if not vector:
            raise ProviderUnavailableError(f"embedding provider {provider.config.name} returned no vector")
        return vector

    async def generate(self, prompt: str, *, temperature: float | None = None) -> str:
        text = await self._call_text(task="writer", prompt=prompt, temperature=temperature)
        if not text.strip():
            raise ProviderUnavailableError("no generation provider produced text")
        return text

    async def draft_cover_letter(self, *, job_description: str, persona: str) -> str:
        prompt = COVER_LETTER_PROMPT.format(profile=persona, job_description=job_description[:20000])
        try:
            text = await self.generate(prompt, temperature=0.7)
        except ProviderUnavailableError:
            logger.warning("Cover letter generation unavailable; using generic message")
            return FALLBACK_COVER_LETTER
        return text.strip()

    async def generate_persona(self, resume_text: str) -> str:
        prompt = JOB_PERSONA_PROMPT.format(resume_text=resume_text[:20000])
        try:
            text = await self.generate(prompt, temperature=0.3)
        except ProviderUnavailableError:
            logger.warning("Persona generation unavailable; embedding the resume text directly")
            return resume_text.strip()
        return text.strip()

    def _providers_for(self, task: str) -> list[LLMProvider]:
        provider_name = {"writer": self.settings.llm_router_writer_provider}.get(task, "local")

        if provider_name == "local":
            return [self.pool.local(), self.pool.openai()]
        return [self.pool.openai(), self.pool.local()]

    def _model_for(self, provider: LLMProvider) -> str:
        if provider.config.name == "local":
            return self.settings.generation_model
        return self.settings.openai_model_writer

    def _is_enabled(self, provider: LLMProvider) -> bool:
        if provider.config.name == "openai":
            return bool(self.settings.openai_api_key)
        return self.settings.local_llm_enabled

    async def _call_text(self, *, task: str, prompt: str, temperature: float | None = None) -> str:
        for provider in self._providers_for(task):
            if not self._is_enabled(provider):
                continue
            try:
                response = await provider.complete_text(
                    model=self._model_for(provider),
                    prompt=prompt,
                    temperature=temperature,
                )
                if response.content.strip():
                    return response.content
            except Exception as exc:
                logger.warning("LLM text call failed provider=%s error=%s", provider.config.name, exc)
        return ""
