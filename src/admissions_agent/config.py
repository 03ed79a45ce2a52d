"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    max_retries: int = 3
    timeout: int = 120


class AgentRuntimeConfig(BaseModel):
    default_model: str = "claude-sonnet-4-20250514"
    default_locale: str = "zh"
    max_delegation_depth: int = 3
    max_iterations: int = 8
    tool_timeout_seconds: float = 10
    workflow_tool_timeout_seconds: float = 30
    history_window: int = 20
    use_workflow: bool = True  # streaming path runs plan/execute/solve


class AgentOverride(BaseModel):
    """Per-agent model parameter overrides."""

    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


class FastRouterConfig(BaseModel):
    enabled: bool = True
    confidence_threshold: float = 0.7


class MemoryConfig(BaseModel):
    summarize_after: int = 40
    keep_recent: int = 20
    extract_facts: bool = True
    cache_size: int = Field(default=500, gt=0)


class StorageConfig(BaseModel):
    backend: Literal["sqlite", "memory"] = "memory"
    db_path: str = "./data/admissions_agent.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    environment: Literal["development", "production"] = "development"
    data_dir: str = "./data"
    anthropic: Optional[AnthropicConfig] = None
    agent: AgentRuntimeConfig = Field(default_factory=AgentRuntimeConfig)
    agents: dict[str, AgentOverride] = Field(default_factory=dict)
    fast_router: FastRouterConfig = Field(default_factory=FastRouterConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}
    return AppConfig(**data)
