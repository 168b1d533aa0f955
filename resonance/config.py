"""
Configuration module for the Resonance universe store.

Loads application settings from config.yaml and secrets from environment variables.
"""

import logging
import os
import contextvars
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Context variable for the universe being served, used in log records
universe_context = contextvars.ContextVar("universe", default=None)


class UniverseLogFilter(logging.Filter):
    """Filter to inject the current universe into log records."""
    def filter(self, record):
        universe = universe_context.get()
        if universe is not None:
            record.universe_info = f" [{universe}]"
        else:
            record.universe_info = ""
        return True


# Default config file path
CONFIG_FILE = Path(__file__).parent.parent / "config.yaml"


def _load_yaml_config() -> dict:
    """Load configuration from YAML file."""
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE) as f:
            return yaml.safe_load(f) or {}
    return {}


# Load YAML config once at module import
_yaml_config = _load_yaml_config()


def _get_yaml(section: str, key: str, default=None):
    """Get a value from the YAML config."""
    return _yaml_config.get(section, {}).get(key, default)


@dataclass
class StoreConfig:
    """Where universes live on disk and how queries behave by default."""
    data_root: str = field(
        default_factory=lambda: _get_yaml("store", "data_root", "./universes")
    )
    default_reach: int = field(
        default_factory=lambda: _get_yaml("store", "default_reach", 10)
    )


@dataclass
class EmbeddingConfig:
    """Embedding provider configuration."""
    provider: Literal["openai", "voyage"] = field(
        default_factory=lambda: _get_yaml("embedding", "provider", "openai")
    )
    # Empty = provider default (text-embedding-3-small / voyage-3)
    model: str = field(
        default_factory=lambda: _get_yaml("embedding", "model", "")
    )
    # Override output dimensions (OpenAI text-embedding-3 models only)
    # None = use model's default dimensions
    dimensions: int | None = field(
        default_factory=lambda: _get_yaml("embedding", "dimensions", None)
    )
    timeout: float = field(
        default_factory=lambda: _get_yaml("embedding", "timeout", 30.0)
    )

    # Secrets from .env
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    voyage_api_key: str = field(default_factory=lambda: os.getenv("VOYAGE_API_KEY", ""))

    @property
    def api_key(self) -> str:
        """API key for the selected provider."""
        if self.provider == "voyage":
            return self.voyage_api_key
        return self.openai_api_key


@dataclass
class AppConfig:
    """Application settings from YAML."""
    log_level: str = field(
        default_factory=lambda: _get_yaml("logging", "level", "INFO")
    )


@dataclass
class Config:
    """Main configuration container."""
    store: StoreConfig = field(default_factory=StoreConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    app: AppConfig = field(default_factory=AppConfig)

    def setup_logging(self) -> logging.Logger:
        """Configure and return the application logger."""
        # Reset existing handlers to ensure clean configuration
        root = logging.getLogger()
        if root.handlers:
            for handler in root.handlers[:]:
                root.removeHandler(handler)

        logging.basicConfig(
            level=getattr(logging, self.app.log_level.upper()),
            format="%(asctime)s - %(name)s - %(levelname)s%(universe_info)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        # Add filter to the handler created by basicConfig
        for handler in logging.getLogger().handlers:
            handler.addFilter(UniverseLogFilter())

        return logging.getLogger("resonance")

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of missing/invalid settings.

        Returns:
            List of validation error messages, empty if all valid.
        """
        errors = []

        if self.embedding.provider not in ("openai", "voyage"):
            errors.append(f"Unknown embedding provider: {self.embedding.provider}")
        elif self.embedding.provider == "openai" and not self.embedding.openai_api_key:
            errors.append("OPENAI_API_KEY is required when using the openai embedding provider")
        elif self.embedding.provider == "voyage" and not self.embedding.voyage_api_key:
            errors.append("VOYAGE_API_KEY is required when using the voyage embedding provider")

        if not self.store.data_root:
            errors.append("store.data_root must not be empty")

        reach = self.store.default_reach
        if isinstance(reach, bool) or not isinstance(reach, int) or reach <= 0:
            errors.append(f"store.default_reach must be a positive integer, got {reach!r}")

        return errors


# Global configuration instance
config = Config()
