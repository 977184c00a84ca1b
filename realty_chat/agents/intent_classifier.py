"""
Embedding nearest-neighbour intent classifier.

## Cache

IntentCache owns the embedded example set for the process. It is built
lazily with ONE batch embedding call and replaced atomically: a failed or
malformed batch leaves the previous contents in place. Two requests racing
on an empty cache may both embed; the content is deterministic, so the
last write wins. No lock is held across the embedding call.

## Classification

The message is embedded (single-item call) and compared with every cached
example. The best starts at {"unknown", -1}; the first strictly greater
score wins, so ties resolve to cache order. The example set is small and
static, so a linear scan is enough.

Usage:
    cache = IntentCache(embedder, INTENT_EXAMPLES)
    classifier = IntentClassifier(embedder, cache)
    await cache.ensure_built()
    match = await classifier.classify("Can an agent call me?")
"""

from collections.abc import Sequence

import structlog

from realty_chat.errors import EmbeddingUnavailable
from realty_chat.models.intent import IntentDefinition, IntentExample, IntentMatch
from realty_chat.services.embeddings import EmbeddingProvider
from realty_chat.services.similarity import cosine_similarity

logger = structlog.get_logger(__name__)


class IntentCache:
    """Process-wide, injectable store of embedded intent examples."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        definitions: Sequence[IntentDefinition],
    ) -> None:
        self.embedder = embedder
        self.definitions = list(definitions)
        self._examples: tuple[IntentExample, ...] = ()

    @property
    def examples(self) -> tuple[IntentExample, ...]:
        return self._examples

    def is_empty(self) -> bool:
        return not self._examples

    async def build(self) -> tuple[IntentExample, ...]:
        """Embed every example in one batch and replace the cache.

        Raises:
            EmbeddingUnavailable: the batch call failed or returned the wrong
                number of vectors. The cache is left unchanged.
        """
        pairs = [
            (definition.intent, text)
            for definition in self.definitions
            for text in definition.examples
        ]
        if not pairs:
            self._examples = ()
            return self._examples

        vectors = await self.embedder.embed([text for _, text in pairs])
        if len(vectors) != len(pairs):
            raise EmbeddingUnavailable(
                f"intent batch returned {len(vectors)} vectors for {len(pairs)} examples"
            )

        self._examples = tuple(
            IntentExample(intent=intent, example_text=text, embedding=tuple(vector))
            for (intent, text), vector in zip(pairs, vectors)
        )
        logger.info(
            "intent_cache_built",
            examples=len(self._examples),
            intents=len(self.definitions),
        )
        return self._examples

    async def ensure_built(self) -> tuple[IntentExample, ...]:
        """Build the cache if it is empty; otherwise return it as is."""
        if self.is_empty():
            return await self.build()
        return self._examples

    def invalidate(self) -> None:
        """Drop all cached examples; the next ensure_built() re-embeds."""
        self._examples = ()


def best_match(
    vector: Sequence[float],
    examples: Sequence[IntentExample],
) -> IntentMatch:
    """Return the example intent with the highest cosine score."""
    best = IntentMatch.unknown()
    for example in examples:
        score = cosine_similarity(vector, example.embedding)
        if score > best.score:
            best = IntentMatch(intent=example.intent, score=score)
    return best


class IntentClassifier:
    """Classifies messages against an IntentCache."""

    def __init__(self, embedder: EmbeddingProvider, cache: IntentCache) -> None:
        self.embedder = embedder
        self.cache = cache

    async def classify(self, message: str) -> IntentMatch:
        """
        Embed `message` and return its nearest intent.

        An empty cache yields {"unknown", -1} without an embedding call.

        Raises:
            EmbeddingUnavailable: the message could not be embedded.
        """
        examples = self.cache.examples
        if not examples:
            return IntentMatch.unknown()

        vectors = await self.embedder.embed([message])
        if len(vectors) != 1:
            raise EmbeddingUnavailable(f"expected 1 embedding, got {len(vectors)}")

        match = best_match(vectors[0], examples)
        logger.info("intent_classified", intent=match.intent, score=round(match.score, 4))
        return match
