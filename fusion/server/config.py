"""
Server configuration.

Settings come from, in increasing precedence: defaults, a YAML file
(``load_config``), ``FUSION_*`` environment variables, and command-line
flags.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import os

import yaml


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    """Configuration for the Fusion server."""

    # Server settings
    host: str = "127.0.0.1"
    port: int = 8181
    path: str = "/fusion"

    # API settings
    api_prefix: str = "/api/v1"
    docs_enabled: bool = True

    # Database settings
    db: str = "fusion"
    index_build_delay: float = 0.0
    snapshot_path: Optional[str] = None

    # Development mode
    dev_mode: bool = False
    auto_create_collection: bool = False
    auto_create_index: bool = False

    # Security
    api_key: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.path.startswith("/"):
            self.path = "/" + self.path
        # Development mode implies automatic creation
        if self.dev_mode:
            self.auto_create_collection = True
            self.auto_create_index = True

    @classmethod
    def from_env(cls, base: Optional["ServerConfig"] = None) -> "ServerConfig":
        """
        Load configuration from environment variables.

        Args:
            base: Configuration whose values are used for unset variables
        """
        base = base or cls()
        origins = os.getenv("FUSION_CORS_ORIGINS")
        return cls(
            host=os.getenv("FUSION_HOST", base.host),
            port=int(os.getenv("FUSION_PORT", str(base.port))),
            path=os.getenv("FUSION_PATH", base.path),
            api_prefix=os.getenv("FUSION_API_PREFIX", base.api_prefix),
            docs_enabled=_env_bool("FUSION_DOCS_ENABLED", base.docs_enabled),
            db=os.getenv("FUSION_DB", base.db),
            index_build_delay=float(
                os.getenv("FUSION_INDEX_BUILD_DELAY", str(base.index_build_delay))
            ),
            snapshot_path=os.getenv("FUSION_SNAPSHOT_PATH", base.snapshot_path),
            dev_mode=_env_bool("FUSION_DEV_MODE", base.dev_mode),
            auto_create_collection=_env_bool(
                "FUSION_AUTO_CREATE_COLLECTION", base.auto_create_collection
            ),
            auto_create_index=_env_bool("FUSION_AUTO_CREATE_INDEX", base.auto_create_index),
            api_key=os.getenv("FUSION_API_KEY", base.api_key),
            cors_origins=(
                [o.strip() for o in origins.split(",") if o.strip()]
                if origins else list(base.cors_origins)
            ),
            log_level=os.getenv("FUSION_LOG_LEVEL", base.log_level).upper(),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerConfig":
        """
        Build a configuration from a mapping.

        Raises:
            ValueError: On unknown settings
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration settings: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, hiding the API key."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if data["api_key"] is not None:
            data["api_key"] = "***"
        return data


def load_config(path: Union[str, Path]) -> ServerConfig:
    """
    Load configuration from a YAML file.

    Environment variables override values from the file.

    Example file:
        host: 0.0.0.0
        port: 8181
        dev_mode: true
        snapshot_path: ./fusion.snapshot
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return ServerConfig.from_env(base=ServerConfig.from_dict(data))


# Global configuration
_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get server configuration."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def set_config(config: ServerConfig) -> None:
    """Set server configuration."""
    global _config
    _config = config
