"""
Universe Registry - owns the open index handle of every universe.

A universe's index is built the first time it is resolved and then reused
for the life of the process, so there is never more than one handle (and
one set of file handles) per universe directory.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable

from .base import IndexState, VectorIndex
from .chroma_index import ChromaVectorIndex

logger = logging.getLogger("resonance.store.registry")


class UniverseRegistry:
    """Process-wide map from universe name to its open VectorIndex."""

    def __init__(
        self,
        data_root: str = "./universes",
        index_factory: Callable[[str, str], VectorIndex] | None = None,
    ):
        """
        Args:
            data_root: Directory holding one subdirectory per universe
            index_factory: Builds an unopened index from (name, data_root).
                Defaults to ChromaVectorIndex.
        """
        self.data_root = data_root
        self._index_factory = index_factory or ChromaVectorIndex
        self._indexes: dict[str, VectorIndex] = {}
        self._resolve_locks: dict[str, asyncio.Lock] = {}
        logger.info(f"UniverseRegistry created with data root: {data_root}")

    def _get_resolve_lock(self, name: str) -> asyncio.Lock:
        # No await between lookup and insert, so this cannot race on one loop
        if name not in self._resolve_locks:
            self._resolve_locks[name] = asyncio.Lock()
        return self._resolve_locks[name]

    async def resolve(self, name: str) -> VectorIndex:
        """
        Return the open index for a universe, creating it on first use.

        Concurrent first resolves of the same name build a single handle.
        A handle that fails to open is not cached, and a destroyed one is
        replaced. While the universe is being destroyed, resolves wait and
        then open the recreated universe.
        """
        lock = self._get_resolve_lock(name)
        index = self._indexes.get(name)
        if index is not None and index.state != IndexState.DESTROYED and not lock.locked():
            return index

        async with lock:
            index = self._indexes.get(name)
            if index is not None and index.state != IndexState.DESTROYED:
                return index

            index = self._index_factory(name, self.data_root)
            await index.ensure_open()
            self._indexes[name] = index
            logger.info(f"Universe '{name}' opened ({len(self._indexes)} open)")
            return index

    async def destroy(self, name: str) -> bool:
        """
        Destroy a universe and drop its handle.

        Resolves of the name wait until the directory is gone, so they
        always get a fresh universe afterwards.

        Returns:
            False if the universe had no directory to destroy
        """
        async with self._get_resolve_lock(name):
            if not self.exists(name):
                return False

            index = self._indexes.get(name)
            if index is None or index.state == IndexState.DESTROYED:
                index = self._index_factory(name, self.data_root)
                await index.ensure_open()

            await index.destroy()
            self.evict(name)
            return True

    def evict(self, name: str) -> None:
        """Forget the cached handle so the next resolve builds a fresh one."""
        if self._indexes.pop(name, None) is not None:
            logger.info(f"Universe '{name}' evicted")

    def exists(self, name: str) -> bool:
        """Whether the universe has a directory on disk."""
        return (Path(self.data_root) / name).is_dir()

    def open_names(self) -> list[str]:
        """Names of universes with a cached handle."""
        return sorted(self._indexes)
