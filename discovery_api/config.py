"""
Server Configuration

Loads configuration from environment variables and provides defaults.
A .env file at the project root is loaded with python-dotenv.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from discovery.models import DEFAULT_CONFIG, DiscoveryConfig

root_env = Path(__file__).resolve().parent.parent / ".env"
if root_env.exists():
    load_dotenv(root_env)


@dataclass
class ServerConfig:
    """Server configuration."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # Vector index: Qdrant when set, in-memory otherwise
    qdrant_url: Optional[str] = None
    qdrant_collection: str = "discovery_items"

    # Cache: Redis when set, in-memory otherwise
    redis_url: Optional[str] = None

    # Embeddings
    openai_api_key: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1024

    # Optional JSON file overriding DiscoveryConfig defaults
    discovery_config_path: Optional[Path] = None
    # Optional JSON seed for the in-memory content store
    content_json_path: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        base_dir = Path(__file__).parent.parent

        def _path_env(key: str) -> Optional[Path]:
            v = os.getenv(key)
            if not v:
                return None
            p = Path(v)
            return p if p.is_absolute() else (base_dir / p).resolve()

        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            qdrant_url=os.getenv("QDRANT_URL") or None,
            qdrant_collection=os.getenv("QDRANT_COLLECTION", "discovery_items"),
            redis_url=os.getenv("REDIS_URL") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            embedding_dimensions=int(os.getenv("EMBEDDING_DIMENSIONS", "1024")),
            discovery_config_path=_path_env("DISCOVERY_CONFIG_PATH"),
            content_json_path=_path_env("CONTENT_JSON_PATH"),
        )

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate the configuration.

        Returns:
            (is_valid, list_of_errors)
        """
        errors = []
        if self.discovery_config_path and not self.discovery_config_path.is_file():
            errors.append(f"Discovery config not found: {self.discovery_config_path}")
        if self.content_json_path and not self.content_json_path.is_file():
            errors.append(f"Content seed file not found: {self.content_json_path}")
        if self.embedding_dimensions <= 0:
            errors.append(f"EMBEDDING_DIMENSIONS must be positive, got {self.embedding_dimensions}")
        return len(errors) == 0, errors

    def load_discovery_config(self) -> DiscoveryConfig:
        """DiscoveryConfig from DISCOVERY_CONFIG_PATH, else defaults with the embedding dimension applied."""
        if self.discovery_config_path:
            with open(self.discovery_config_path) as f:
                return DiscoveryConfig.from_dict(json.load(f))
        return DEFAULT_CONFIG.model_copy(update={"embedding_dimensions": self.embedding_dimensions})


# Global config instance
_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def reload_config() -> ServerConfig:
    """Reload configuration from environment."""
    global _config
    _config = None
    return get_config()
