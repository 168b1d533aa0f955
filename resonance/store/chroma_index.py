"""
ChromaDB universe index implementation.

Each universe lives in its own directory under the data root, holding a
ChromaDB persistent database with a single cosine-space collection:
- No server required
- Whole-universe deletion is a directory removal
- Good performance for moderate scale (< 1M vectors)
"""

import asyncio
import json
import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import Optional

import chromadb
from chromadb.config import Settings

from ..errors import DimensionMismatchError, IndexCorruptError
from .base import IndexDestroyedError, IndexState, Match, VectorIndex

logger = logging.getLogger("resonance.store.chroma")

COLLECTION_NAME = "things"
SIDECAR_NAME = "universe.json"


class ChromaVectorIndex(VectorIndex):
    """
    ChromaDB implementation of a universe index.

    Calls on one universe are serialized, so a query never sees a half
    destroyed database. The blocking Chroma calls run in worker threads so
    other universes are served in the meantime.
    """

    def __init__(self, name: str, data_root: str = "./universes"):
        self.name = name
        self.persist_directory = Path(data_root) / name
        self.state = IndexState.UNOPENED
        self._client = None
        self._collection = None
        self._dimension: Optional[int] = None
        self._last_seq = 0
        self._lock = asyncio.Lock()
        logger.debug(f"ChromaVectorIndex configured with directory: {self.persist_directory}")

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    async def ensure_open(self) -> None:
        """Open the universe's database, creating it on first use."""
        async with self._lock:
            if self.state == IndexState.OPEN:
                return
            self._ensure_usable()

            self.persist_directory.mkdir(parents=True, exist_ok=True)
            try:
                await asyncio.to_thread(self._open)
            except Exception as e:
                # Chroma surfaces damaged databases as sqlite, rust-binding or
                # its own errors, so anything raised while opening counts
                self.state = IndexState.CORRUPT
                logger.error(f"Failed to open universe '{self.name}': {e}")
                raise IndexCorruptError(
                    f"Universe '{self.name}' could not be opened"
                ) from e

            self.state = IndexState.OPEN

    def _open(self) -> None:
        self._client = chromadb.PersistentClient(
            path=str(self.persist_directory),
            settings=Settings(
                anonymized_telemetry=False,
                allow_reset=True,
            ),
        )
        self._collection = self._client.get_or_create_collection(
            name=COLLECTION_NAME,
            metadata={"hnsw:space": "cosine"},
        )

        self._dimension = self._read_sidecar()
        if self._dimension is None:
            # Written before the sidecar existed: learn it from stored data
            sample = self._collection.get(limit=1, include=["embeddings"])
            if sample["ids"]:
                self._dimension = len(sample["embeddings"][0])
                self._write_sidecar()

        count = self._collection.count()
        logger.info(
            f"Universe '{self.name}' opened with {count} things"
            + (f" ({self._dimension}d)" if self._dimension else "")
        )

    @property
    def _sidecar_path(self) -> Path:
        return self.persist_directory / SIDECAR_NAME

    def _read_sidecar(self) -> Optional[int]:
        """Pinned dimensionality recorded next to the database, if any."""
        if not self._sidecar_path.exists():
            return None
        with open(self._sidecar_path) as f:
            return int(json.load(f)["dimension"])

    def _write_sidecar(self) -> None:
        with open(self._sidecar_path, "w") as f:
            json.dump({"dimension": self._dimension}, f)

    def _ensure_usable(self) -> None:
        if self.state == IndexState.CORRUPT:
            raise IndexCorruptError(f"Universe '{self.name}' is corrupt")
        if self.state == IndexState.DESTROYED:
            raise IndexDestroyedError(f"Universe '{self.name}' has been destroyed")

    def _ensure_open(self) -> None:
        """Ensure the index is open."""
        self._ensure_usable()
        if self.state != IndexState.OPEN:
            raise RuntimeError(
                f"Universe '{self.name}' not open. Call ensure_open() first."
            )

    def _check_dimension(self, vector: list[float]) -> None:
        if self._dimension is not None and len(vector) != self._dimension:
            raise DimensionMismatchError(self.name, self._dimension, len(vector))

    def _next_seq(self) -> int:
        # Wall clock so ordering survives restarts, bumped to stay strictly increasing
        self._last_seq = max(time.time_ns(), self._last_seq + 1)
        return self._last_seq

    async def insert(
        self,
        id: Optional[str],
        vector: list[float],
        payload: dict,
    ) -> str:
        """Store a thing, replacing any live thing with the same id."""
        record_id = id or uuid.uuid4().hex

        async with self._lock:
            self._ensure_open()
            self._check_dimension(vector)

            await asyncio.to_thread(
                self._collection.upsert,
                ids=[record_id],
                embeddings=[vector],
                documents=[payload["text"]],
                metadatas=[{"seq": self._next_seq()}],
            )
            if self._dimension is None:
                # Pinned for the life of the universe, even if it is emptied later
                self._dimension = len(vector)
                await asyncio.to_thread(self._write_sidecar)

        logger.debug(f"Stored thing {record_id} in '{self.name}'")
        return record_id

    async def delete(self, id: str) -> None:
        """Remove a thing if present."""
        async with self._lock:
            self._ensure_open()
            await asyncio.to_thread(self._collection.delete, ids=[id])

        logger.debug(f"Deleted thing {id} from '{self.name}'")

    async def query(self, vector: list[float], k: int) -> list[Match]:
        """Search for the things closest to a vector."""
        async with self._lock:
            self._ensure_open()
            self._check_dimension(vector)

            total = await asyncio.to_thread(self._collection.count)
            if total == 0:
                return []

            # Get extra so ties just past k can still win on insertion order
            n_results = min(k * 2, total)
            while True:
                candidates = await asyncio.to_thread(self._query, vector, n_results)
                candidates.sort(key=lambda m: (-m[0].score, m[1]))
                if n_results >= total or len(candidates) <= k:
                    break
                # Stop once the last candidate scores below the k-th
                if candidates[-1][0].score < candidates[k - 1][0].score:
                    break
                n_results = min(n_results * 2, total)

        return [match for match, _ in candidates[:k]]

    def _query(self, vector: list[float], n_results: int) -> list[tuple[Match, int]]:
        results = self._collection.query(
            query_embeddings=[vector],
            n_results=n_results,
            include=["documents", "metadatas", "distances"],
        )

        candidates = []
        if results["ids"] and results["ids"][0]:
            for i, record_id in enumerate(results["ids"][0]):
                document = results["documents"][0][i]
                metadata = results["metadatas"][0][i] or {}
                if document is None or "seq" not in metadata:
                    raise IndexCorruptError(
                        f"Universe '{self.name}' holds a malformed thing: {record_id}"
                    )
                # Cosine distance: similarity = 1 - distance
                candidates.append((
                    Match(
                        id=record_id,
                        text=document,
                        score=1 - results["distances"][0][i],
                    ),
                    metadata["seq"],
                ))
        return candidates

    async def list_ids(self) -> set[str]:
        """All live thing ids."""
        async with self._lock:
            self._ensure_open()
            results = await asyncio.to_thread(self._collection.get, include=[])
        return set(results["ids"])

    async def count(self) -> int:
        """Number of live things."""
        async with self._lock:
            self._ensure_open()
            return await asyncio.to_thread(self._collection.count)

    async def destroy(self) -> None:
        """Delete the collection and remove the universe directory."""
        async with self._lock:
            if self.state == IndexState.DESTROYED:
                return
            if self.state == IndexState.CORRUPT:
                raise IndexCorruptError(f"Universe '{self.name}' is corrupt")

            await asyncio.to_thread(self._destroy)
            self.state = IndexState.DESTROYED

        logger.info(f"Universe '{self.name}' destroyed")

    def _destroy(self) -> None:
        if self._client is not None:
            self._client.delete_collection(COLLECTION_NAME)
            # Chroma caches one system per path; a recreated universe must not reuse it
            self._client.clear_system_cache()

        if self.persist_directory.exists():
            shutil.rmtree(self.persist_directory)

        self._client = None
        self._collection = None
        self._dimension = None
