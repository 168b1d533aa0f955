"""
Base interfaces and data structures for universe indexes.

Defines the abstract contract that a per-universe vector index must
implement, and the records that flow through it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass
class ThingInput:
    """A thing to emit: text plus an optional caller-chosen id."""
    text: str
    id: Optional[str] = None


@dataclass
class Match:
    """A resonate result from a universe index."""
    id: str
    text: str
    score: float  # cosine similarity, higher is closer

    def to_dict(self) -> dict:
        """Public response shape."""
        return {"closeness": self.score, "thing": self.text, "id": self.id}


class IndexDestroyedError(RuntimeError):
    """Raised when a handle is used after its universe was destroyed."""
    pass


class IndexState(Enum):
    """Lifecycle of a universe index handle."""
    UNOPENED = "unopened"
    OPEN = "open"
    DESTROYED = "destroyed"
    CORRUPT = "corrupt"


class VectorIndex(ABC):
    """
    Abstract interface for a single universe's persistent vector index.

    Implementations: ChromaDB (local directory per universe)
    """

    name: str
    state: IndexState

    @property
    @abstractmethod
    def dimension(self) -> Optional[int]:
        """Pinned vector dimensionality, or None while the universe is empty."""
        pass

    @abstractmethod
    async def ensure_open(self) -> None:
        """Create on-disk structures if absent, otherwise open them. Idempotent."""
        pass

    @abstractmethod
    async def insert(
        self,
        id: Optional[str],
        vector: list[float],
        payload: dict,
    ) -> str:
        """
        Store a vector, replacing any live record with the same id.

        Args:
            id: Record id; a fresh one is generated when None
            vector: The embedding
            payload: {"text": ...}

        Returns:
            The effective id
        """
        pass

    @abstractmethod
    async def delete(self, id: str) -> None:
        """Remove a record. Absent ids are not an error."""
        pass

    @abstractmethod
    async def query(self, vector: list[float], k: int) -> list[Match]:
        """
        Find the records most similar to a vector.

        Args:
            vector: The embedding to search for
            k: Maximum number of results

        Returns:
            Up to k matches, most similar first, ties in insertion order
        """
        pass

    @abstractmethod
    async def list_ids(self) -> set[str]:
        """All live record ids."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of live records."""
        pass

    @abstractmethod
    async def destroy(self) -> None:
        """Irreversibly remove all persisted state for the universe."""
        pass
