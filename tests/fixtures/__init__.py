"""
Test fixtures and sample data for Resonance tests.
"""

import hashlib
import re

from resonance.errors import ProviderError
from resonance.store.base import ThingInput
from resonance.store.embeddings import EmbeddingProvider


def embed_text(text: str, dimension: int = 16) -> list[float]:
    """
    Deterministic bag-of-words embedding.

    Identical texts get identical vectors and texts sharing words point in
    similar directions, which is all the store tests need.
    """
    vector = [0.0] * dimension
    for word in re.findall(r"\w+", text.lower()):
        bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % dimension
        vector[bucket] += 1.0
    if not any(vector):
        vector[0] = 1.0
    return vector


class FakeEmbeddingProvider(EmbeddingProvider):
    """Embedding provider that records its calls and never touches the network."""

    def __init__(
        self,
        dimension: int = 16,
        max_input_tokens: int = 8191,
        max_batch_size: int = 64,
        fail: bool = False,
    ):
        self._dimension = dimension
        self._max_input_tokens = max_input_tokens
        self._max_batch_size = max_batch_size
        self.fail = fail
        self.calls: list[list[str]] = []

    @property
    def provider_name(self) -> str:
        return "Fake"

    @property
    def model_name(self) -> str:
        return f"fake-{self._dimension}"

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def max_input_tokens(self) -> int:
        return self._max_input_tokens

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise ProviderError("Fake provider is down")
        return [embed_text(text, self._dimension) for text in texts]


def make_things(*texts: str) -> list[ThingInput]:
    """Create ThingInputs without ids."""
    return [ThingInput(text=text) for text in texts]


SAMPLE_TEXTS = [
    "the quick brown fox jumps over the lazy dog",
    "silver prices climb as supply tightens",
    "a recipe for sourdough bread with a crisp crust",
    "rain expected across the north this weekend",
]
