from __future__ import annotations

import logging

from kestrel.core.embedding_cache import EmbeddingCache
from kestrel.db.repositories import Repository
from kestrel.errors import ProviderUnavailableError
from kestrel.llm.router import LLMRouter
from kestrel.types import ProfileEmbedding

logger = logging.getLogger(__name__)


async def build_profile_embedding(
    owner_id: str,
    resume_text: str,
    *,
    router: LLMRouter,
    cache: EmbeddingCache,
    model: str,
    persona_text: str | None = None,
) -> ProfileEmbedding:
    """Embed the candidate's persona, synthesizing it from the resume when not given.

    The persona is a job description written from the resume, so that it lives
    in the same region of embedding space as the postings it is compared to.
    """
    if not resume_text.strip() and not (persona_text or "").strip():
        raise ValueError("resume text is empty")

    if persona_text is None or not persona_text.strip():
        persona_text = await router.generate_persona(resume_text)

    vector = await cache.get_or_compute(model, persona_text)
    if not vector:
        raise ProviderUnavailableError(f"no profile embedding for owner {owner_id}")

    logger.info("Built profile embedding owner=%s model=%s dims=%s", owner_id, model, len(vector))
    return ProfileEmbedding(
        owner_id=owner_id,
        model=model,
        persona_text=persona_text,
        vector=tuple(vector),
    )


async def load_profile_embedding(
    repo: Repository,
    owner_id: str,
    *,
    router: LLMRouter,
    cache: EmbeddingCache,
    model: str,
) -> ProfileEmbedding | None:
    profile = repo.get_profile(owner_id)
    if profile is None:
        return None
    return await build_profile_embedding(
        owner_id,
        profile.resume_text,
        router=router,
        cache=cache,
        model=model,
        persona_text=profile.persona_text,
    )


async def replace_resume(repo: Repository, owner_id: str, resume_text: str, *, router: LLMRouter):
    """Store a new resume and regenerate the persona derived from it."""
    if not resume_text.strip():
        raise ValueError("resume text is empty")
    persona_text = await router.generate_persona(resume_text)
    return repo.save_profile(owner_id, resume_text=resume_text.strip(), persona_text=persona_text)
