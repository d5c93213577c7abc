"""Configuration loading and Pydantic models for DirStore."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    """Server binding and runtime configuration."""

    host: str = "0.0.0.0"
    port: int = 9000
    socket: str = ""
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"
    shutdown_timeout: int = 30


class StorageConfig(BaseModel):
    """Object storage configuration."""

    root_dir: str = "/tmp/dirstore"


class ObservabilityConfig(BaseModel):
    """Metrics configuration."""

    metrics: bool = False


class DirStoreConfig(BaseModel):
    """Top-level DirStore configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {
        "host": data.get("host", "0.0.0.0"),
        "port": data.get("port", 9000),
        "socket": data.get("socket", ""),
        "log_level": data.get("log_level", "INFO"),
        "log_format": data.get("log_format", "text"),
        "shutdown_timeout": data.get("shutdown_timeout", 30),
    }


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section from YAML data."""
    if data is None:
        return {}
    return {"root_dir": data.get("root_dir", "/tmp/dirstore")}


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the observability section from YAML data."""
    if data is None:
        return {}
    return {"metrics": data.get("metrics", False)}


def load_config(path: Path) -> DirStoreConfig:
    """Load a DirStoreConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated DirStoreConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return DirStoreConfig(
        server=ServerConfig(**_parse_server(raw.get("server"))),
        storage=StorageConfig(**_parse_storage(raw.get("storage"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )
