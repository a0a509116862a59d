"""Unified configuration loaded from .clipcraft.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".clipcraft.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "clipcraft" / "config.toml"

MODEL_MAP: dict[str, str] = {
    "sonnet": "claude-sonnet-4-6",
    "haiku": "claude-haiku-4-5-20251001",
    "opus": "claude-opus-4-6",
}

DEFAULT_MODEL = "claude-sonnet-4-6"


def resolve_model(model: str | None) -> str:
    """Resolve a short model name to an API model ID."""
    if not model:
        return DEFAULT_MODEL
    return MODEL_MAP.get(model, model)


class ModelsConfig(BaseModel):
    """[models] section.

    The critic defaults to a smaller model than the generator; that is a
    cost choice, nothing in the pipeline depends on it.
    """

    generator: str = "sonnet"
    critic: str = "haiku"
    refiner: str = "sonnet"
    timeout: int = 120
    max_tokens: int = 4096

    @property
    def generator_id(self) -> str:
        return resolve_model(self.generator)

    @property
    def critic_id(self) -> str:
        return resolve_model(self.critic)

    @property
    def refiner_id(self) -> str:
        return resolve_model(self.refiner)


class PipelineConfig(BaseModel):
    """[pipeline] section."""

    generator_temperature: float = 0.0
    critic_temperature: float = 0.2
    refiner_temperature: float = 0.2
    refine_concurrency: int = Field(default=1, ge=1, le=16)


class AgentConfig(BaseModel):
    """[agent] section."""

    model: str = "sonnet"
    max_steps: int = Field(default=5, ge=1)
    temperature: float = 0.7
    tool_temperature: float = 0.7

    @property
    def model_id(self) -> str:
        return resolve_model(self.model)


class TranscriptsConfig(BaseModel):
    """[transcripts] section."""

    fetch_timeout: int = 30


class ServerConfig(BaseModel):
    """[server] section."""

    host: str = "127.0.0.1"
    port: int = 8000


class ClipcraftConfig(BaseModel):
    """Top-level configuration passed explicitly to every component."""

    api_key: str = ""
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    transcripts: TranscriptsConfig = Field(default_factory=TranscriptsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


def load_config(path: str | Path | None = None) -> ClipcraftConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .clipcraft.toml in CWD
    3. ~/.config/clipcraft/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged ClipcraftConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    config = ClipcraftConfig.model_validate(data) if data else ClipcraftConfig()
    return _apply_env_vars(config)


def merge_cli_overrides(config: ClipcraftConfig, **cli_kwargs: object) -> ClipcraftConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "generator_model": ("models", "generator"),
        "critic_model": ("models", "critic"),
        "refiner_model": ("models", "refiner"),
        "agent_model": ("agent", "model"),
        "refine_concurrency": ("pipeline", "refine_concurrency"),
        "host": ("server", "host"),
        "port": ("server", "port"),
    }

    for key, value in cli_kwargs.items():
        if value is None or key not in mapping:
            continue
        section, field = mapping[key]
        data[section][field] = value

    return ClipcraftConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: ClipcraftConfig) -> ClipcraftConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "GENERATOR_MODEL": ("models", "generator"),
        "CRITIC_MODEL": ("models", "critic"),
        "REFINER_MODEL": ("models", "refiner"),
        "CLIPCRAFT_AGENT_MODEL": ("agent", "model"),
        "CLIPCRAFT_HOST": ("server", "host"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value:
            data[section][field] = value

    port_raw = os.environ.get("CLIPCRAFT_PORT")
    if port_raw:
        data["server"]["port"] = int(port_raw)

    api_key = os.environ.get("ANTHROPIC_API_KEY", "").strip()
    if api_key:
        data["api_key"] = api_key

    return ClipcraftConfig.model_validate(data)
