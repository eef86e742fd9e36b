from __future__ import annotations

import hashlib
import logging
import re
from typing import Protocol

from kestrel.db.repositories import Repository
from kestrel.errors import ProviderUnavailableError

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class EmbeddingProvider(Protocol):
    async def embed(self, model: str, text: str) -> list[float]: ...


def normalize_text(text: str, *, lowercase: bool = True) -> str:
    normalized = _WHITESPACE.sub(" ", text).strip()
    return normalized.lower() if lowercase else normalized


def hash_text(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class EmbeddingCache:
    """Durable ``(model, text hash) -> vector`` cache in front of the embedding provider."""

    def __init__(self, repo: Repository, provider: EmbeddingProvider, *, case_sensitive: bool = False):
        self.repo = repo
        self.provider = provider
        self.case_sensitive = case_sensitive

    def cache_key(self, model: str, text: str) -> tuple[str, str, str]:
        normalized = normalize_text(text, lowercase=not self.case_sensitive)
        return model, hash_text(normalized), normalized

    async def get_or_compute(self, model: str, text: str) -> list[float]:
        model, text_hash, normalized = self.cache_key(model, text)

        cached = self.repo.get_embedding(model, text_hash)
        if cached:
            return list(cached)

        vector = await self.provider.embed(model, normalized)
        if not vector:
            raise ProviderUnavailableError(f"embedding provider returned an empty vector for model {model}")

        vector = [float(value) for value in vector]
        self.repo.upsert_embedding(
            model=model,
            text_hash=text_hash,
            normalized_text=normalized,
            embedding=vector,
        )
        logger.debug("Cached embedding model=%s hash=%s dims=%s", model, text_hash[:12], len(vector))
        return vector
