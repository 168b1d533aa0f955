"""
Shared pytest fixtures for Resonance tests.

This module provides:
- Temporary data roots for universe directories
- A deterministic fake embedding provider
- Registries and orchestrators wired to both
"""

from pathlib import Path

import pytest

from resonance.store.chroma_index import ChromaVectorIndex
from resonance.store.orchestrator import StoreOrchestrator
from resonance.store.registry import UniverseRegistry
from tests.fixtures import FakeEmbeddingProvider


# =============================================================================
# Core Fixtures
# =============================================================================


@pytest.fixture
def data_root(tmp_path) -> Path:
    """Provide an empty directory to hold universes."""
    root = tmp_path / "universes"
    root.mkdir()
    return root


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    """Provide a 16-dimensional fake embedding provider."""
    return FakeEmbeddingProvider()


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def chroma_index(data_root) -> ChromaVectorIndex:
    """Provide an unopened index for a universe named 'sample'."""
    return ChromaVectorIndex("sample", data_root=str(data_root))


@pytest.fixture
def registry(data_root) -> UniverseRegistry:
    """Provide a registry rooted at the temporary data root."""
    return UniverseRegistry(data_root=str(data_root))


@pytest.fixture
def orchestrator(registry, fake_provider) -> StoreOrchestrator:
    """Provide an orchestrator using the fake provider."""
    return StoreOrchestrator(registry=registry, provider=fake_provider)


# =============================================================================
# Config Fixtures
# =============================================================================


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set mock environment variables for testing."""
    monkeypatch.setenv("OPENAI_API_KEY", "test-openai-key")
    monkeypatch.setenv("VOYAGE_API_KEY", "test-voyage-key")
