"""
Store Orchestrator - the public face of the universe store.

This is the high-level interface the HTTP adapter calls into.
It handles:
- Validating universe names, items and reach
- Generating embeddings through the configured provider
- Resolving (and implicitly creating) universe indexes
- Applying id-based upsert, replace and delete semantics
"""

import logging
import math
import re
from functools import wraps
from typing import Any, Awaitable, Callable, Iterator, Optional, Sequence, TypeVar

from ..config import Config, universe_context
from ..config import config as default_config
from ..errors import (
    DimensionMismatchError,
    InternalError,
    NotFoundError,
    ProviderError,
    ResonanceError,
    ValidationError,
)
from .base import IndexDestroyedError, Match, ThingInput, VectorIndex
from .embeddings import EmbeddingProvider, create_embedding_provider
from .registry import UniverseRegistry

logger = logging.getLogger("resonance.store.orchestrator")

UNIVERSE_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

# Rough token estimate used to keep embedding requests under the provider limit
CHARS_PER_TOKEN = 4

# Times an operation follows a universe that is deleted under it
INDEX_ATTEMPTS = 3

T = TypeVar("T")


def validate_universe(universe: Any) -> str:
    """Return the universe name, or raise ValidationError."""
    if universe is None or universe == "":
        raise ValidationError("universe is required")
    if not isinstance(universe, str) or not UNIVERSE_PATTERN.match(universe):
        raise ValidationError(
            f"Invalid universe name {universe!r}: use letters, digits and underscores"
        )
    return universe


def validate_reach(reach: Any) -> int:
    """Return reach as a positive integer, or raise ValidationError."""
    if isinstance(reach, bool) or not isinstance(reach, int) or reach <= 0:
        raise ValidationError(f"reach must be a positive integer, got {reach!r}")
    return reach


def validate_items(items: Any) -> list[ThingInput]:
    """Check an emit item list: non-empty, each with text and an optional id."""
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("at least one thing is required")

    for position, item in enumerate(items):
        if not isinstance(item, ThingInput):
            raise ValidationError(f"thing {position} is not a thing")
        if not isinstance(item.text, str) or not item.text.strip():
            raise ValidationError(f"thing {position} has no text")
        if item.id is not None and (not isinstance(item.id, str) or not item.id):
            raise ValidationError(f"thing {position} has an invalid id: {item.id!r}")

    return list(items)


def estimate_tokens(text: str) -> int:
    return max(1, math.ceil(len(text) / CHARS_PER_TOKEN))


def _operation(func):
    """
    Run an orchestrator operation at the error boundary.

    Store errors pass through unchanged; anything else is logged and
    reported as a generic InternalError. The universe is attached to log
    records for the duration of the call.
    """

    @wraps(func)
    async def wrapper(self, universe, *args, **kwargs):
        token = universe_context.set(universe if isinstance(universe, str) else None)
        try:
            return await func(self, universe, *args, **kwargs)
        except ResonanceError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in {func.__name__}: {e}")
            raise InternalError(f"Internal error during {func.__name__}") from e
        finally:
            universe_context.reset(token)

    return wrapper


class StoreOrchestrator:
    """
    Implements emit, resonate, delete-thing and delete-universe.

    Embedding happens before any index is touched, so a provider failure
    leaves every universe exactly as it was.
    """

    def __init__(
        self,
        registry: UniverseRegistry,
        provider: EmbeddingProvider,
        default_reach: int = 10,
    ):
        self.registry = registry
        self.provider = provider
        self.default_reach = validate_reach(default_reach)
        logger.info(
            f"StoreOrchestrator created: provider={provider.provider_name}, "
            f"model={provider.model_name}"
        )

    def _token_batches(self, texts: list[str]) -> Iterator[list[str]]:
        """Group texts so each request stays within the provider's token limit."""
        budget = self.provider.max_input_tokens
        batch: list[str] = []
        used = 0
        for text in texts:
            tokens = estimate_tokens(text)
            if batch and used + tokens > budget:
                yield batch
                batch, used = [], 0
            batch.append(text)
            used += tokens
        if batch:
            yield batch

    async def _embed(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for batch in self._token_batches(texts):
            vectors.extend(await self.provider.embed(batch))

        if len(vectors) != len(texts):
            raise ProviderError(
                f"{self.provider.provider_name} returned {len(vectors)} embeddings "
                f"for {len(texts)} inputs"
            )
        return vectors

    async def _on_index(
        self,
        name: str,
        work: Callable[[VectorIndex], Awaitable[T]],
    ) -> T:
        """
        Run work against a universe's index.

        If the universe is deleted while the work waits on it, the work is
        run again against the recreated universe.
        """
        for attempt in range(1, INDEX_ATTEMPTS + 1):
            index = await self.registry.resolve(name)
            try:
                return await work(index)
            except IndexDestroyedError:
                if attempt == INDEX_ATTEMPTS:
                    raise
                logger.info(f"Universe '{name}' was deleted mid-operation, retrying")

    @_operation
    async def emit(
        self,
        universe: str,
        items: Sequence[ThingInput],
        replace: Optional[str] = None,
    ) -> list[str]:
        """
        Store things in a universe, creating it on first use.

        Args:
            universe: Universe name
            items: Things to store; an item with an existing id replaces it
            replace: Id to delete once everything has been stored

        Returns:
            The effective ids, in input order
        """
        name = validate_universe(universe)
        things = validate_items(items)
        if replace is not None and (not isinstance(replace, str) or not replace):
            raise ValidationError(f"replace must be a non-empty id, got {replace!r}")

        vectors = await self._embed([thing.text for thing in things])

        dimensions = {len(vector) for vector in vectors}
        if len(dimensions) > 1:
            raise ProviderError(
                f"{self.provider.provider_name} returned mixed dimensions: {sorted(dimensions)}"
            )

        async def store(index: VectorIndex) -> list[str]:
            pinned = index.dimension
            if pinned is not None and dimensions != {pinned}:
                raise DimensionMismatchError(name, pinned, next(iter(dimensions)))

            stored = []
            for thing, vector in zip(things, vectors):
                stored.append(await index.insert(thing.id, vector, {"text": thing.text}))

            if replace is not None:
                await index.delete(replace)
            return stored

        ids = await self._on_index(name, store)

        logger.info(
            f"Emitted {len(ids)} things"
            + (f", replaced {replace}" if replace is not None else "")
        )
        return ids

    @_operation
    async def resonate(
        self,
        universe: str,
        query_text: str,
        k: Optional[int] = None,
    ) -> list[Match]:
        """
        Find the things in a universe that are closest to a text.

        Args:
            universe: Universe name
            query_text: Text to search for
            k: Maximum number of results (defaults to the configured reach)

        Returns:
            Matches ordered by closeness; empty when nothing is stored
        """
        name = validate_universe(universe)
        reach = self.default_reach if k is None else validate_reach(k)
        if not isinstance(query_text, str) or not query_text.strip():
            raise ValidationError("thing text is required")

        vector = (await self._embed([query_text]))[0]
        matches = await self._on_index(name, lambda index: index.query(vector, reach))

        logger.info(f"Resonated with reach {reach}: {len(matches)} matches")
        for match in matches:
            logger.debug(f"  - {match.id}: closeness={match.score:.3f}")
        return matches

    @_operation
    async def delete_thing(self, universe: str, id: str) -> None:
        """Delete a thing. Deleting an absent thing succeeds."""
        name = validate_universe(universe)
        if not isinstance(id, str) or not id:
            raise ValidationError(f"id must be a non-empty string, got {id!r}")

        # Deleting never creates a universe
        if not self.registry.exists(name):
            logger.debug(f"Universe '{name}' does not exist, nothing to delete")
            return

        index = await self.registry.resolve(name)
        try:
            await index.delete(id)
        except IndexDestroyedError:
            # The universe was deleted meanwhile, taking the thing with it
            logger.debug(f"Universe '{name}' was deleted before thing {id}")
            return
        logger.info(f"Deleted thing {id}")

    @_operation
    async def delete_universe(self, universe: str) -> None:
        """Destroy a universe and everything in it."""
        name = validate_universe(universe)
        if not await self.registry.destroy(name):
            raise NotFoundError(f"Universe '{name}' not found")

        logger.info(f"Deleted universe '{name}'")

    async def close(self) -> None:
        """Release the provider's connections."""
        await self.provider.close()
        logger.info("StoreOrchestrator closed")


def create_orchestrator(cfg: Config | None = None) -> StoreOrchestrator:
    """
    Factory function to create a configured StoreOrchestrator.

    Args:
        cfg: Configuration to use (defaults to the global config)

    Returns:
        StoreOrchestrator wired to the configured provider and data root
    """
    if cfg is None:
        cfg = default_config

    provider = create_embedding_provider(
        provider=cfg.embedding.provider,
        api_key=cfg.embedding.api_key,
        model=cfg.embedding.model,
        dimensions=cfg.embedding.dimensions,
        timeout=cfg.embedding.timeout,
    )
    registry = UniverseRegistry(data_root=cfg.store.data_root)

    return StoreOrchestrator(
        registry=registry,
        provider=provider,
        default_reach=cfg.store.default_reach,
    )
