from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict

from kestrel.core.embedding_cache import EmbeddingCache
from kestrel.core.similarity import cosine_similarity, similarity_to_score
from kestrel.errors import ProviderUnavailableError
from kestrel.types import FAIL_OPEN_SCORE, ProfileEmbedding, RelevanceResult

logger = logging.getLogger(__name__)

DEFAULT_TITLE_THRESHOLD = 0.45
DEFAULT_DESCRIPTION_THRESHOLD = 0.45


class TitleCheckCache:
    """Bounded in-memory cache of Stage-1 results, evicting the oldest entry first."""

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: OrderedDict[tuple[str, str, str], RelevanceResult] = OrderedDict()

    def get(self, key: tuple[str, str, str]) -> RelevanceResult | None:
        return self._entries.get(key)

    def put(self, key: tuple[str, str, str], result: RelevanceResult) -> None:
        if key in self._entries:
            self._entries[key] = result
            return
        while len(self._entries) >= self.capacity:
            self._entries.popitem(last=False)
        self._entries[key] = result

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class RelevanceFilter:
    def __init__(
        self,
        cache: EmbeddingCache,
        profile: ProfileEmbedding,
        *,
        title_threshold: float = DEFAULT_TITLE_THRESHOLD,
        description_threshold: float = DEFAULT_DESCRIPTION_THRESHOLD,
        timeout_sec: float = 60.0,
        title_cache: TitleCheckCache | None = None,
    ):
        self.cache = cache
        self.profile = profile
        self.title_threshold = title_threshold
        self.description_threshold = description_threshold
        self.timeout_sec = timeout_sec
        self.title_cache = title_cache if title_cache is not None else TitleCheckCache()

    async def check_title(self, title: str) -> RelevanceResult:
        model, _, normalized = self.cache.cache_key(self.profile.model, title)
        key = (model, normalized, self.profile.cache_key)
        cached = self.title_cache.get(key)
        if cached is not None:
            return cached

        result = await self._score(title, threshold=self.title_threshold, stage="title")
        if not result.failed_open:
            self.title_cache.put(key, result)
        return result

    async def check_description(self, description: str) -> RelevanceResult:
        return await self._score(description, threshold=self.description_threshold, stage="description")

    async def _score(self, text: str, *, threshold: float, stage: str) -> RelevanceResult:
        try:
            vector = await asyncio.wait_for(
                self.cache.get_or_compute(self.profile.model, text),
                timeout=self.timeout_sec,
            )
        except (ProviderUnavailableError, asyncio.TimeoutError) as exc:
            logger.warning("Embedding unavailable for %s check, treating as relevant: %s", stage, exc)
            return RelevanceResult(relevant=True, score=FAIL_OPEN_SCORE)

        similarity = cosine_similarity(vector, self.profile.vector)
        relevant = similarity >= threshold
        logger.info(
            "%s check similarity=%.4f threshold=%.2f -> %s",
            stage.capitalize(),
            similarity,
            threshold,
            "relevant" if relevant else "skip",
        )
        return RelevanceResult(relevant=relevant, score=similarity_to_score(similarity))
