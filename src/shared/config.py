"""Configuration management for the knowledge-base agent.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached for performance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM provider configuration."""
    provider: str = Field(default="openai", description="LLM provider: azure_openai, openai, mock")
    model: str = Field(default="gpt-4.1", description="Model used for reasoning and tool use")
    summary_model: Optional[str] = Field(default=None, description="Model used for streamed summaries")
    api_key: Optional[str] = Field(default=None, description="API key")
    api_base: Optional[str] = Field(default=None, description="API base URL")
    api_version: Optional[str] = Field(default="2024-02-15-preview", description="API version")
    deployment_name: Optional[str] = Field(default=None, description="Azure deployment name")
    temperature: float = Field(default=1.0, ge=0, le=2)
    max_tokens: int = Field(default=4096, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore"
    )


class SearchSettings(BaseSettings):
    """Remote search and hybrid ranking configuration."""
    exa_api_key: Optional[str] = Field(default=None, description="Exa API key; web search is off without it")
    exa_base_url: str = Field(default="https://api.exa.ai")
    timeout_seconds: float = Field(default=30.0, gt=0)
    num_results: int = Field(default=10, gt=0)
    local_weight: float = Field(default=0.4, ge=0, le=1)
    web_weight: float = Field(default=0.6, ge=0, le=1)
    news_local_weight: float = Field(default=0.2, ge=0, le=1)
    news_web_weight: float = Field(default=0.8, ge=0, le=1)

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_",
        env_file=".env",
        extra="ignore"
    )


class AgentSettings(BaseSettings):
    """Orchestration configuration."""
    max_history_length: int = Field(default=20, ge=2, description="Messages kept in memory per sender")
    max_slice_results: int = Field(default=100, gt=0, description="Search results considered for slices")
    slice_content_chars: int = Field(default=500, gt=0)
    stream_flush_ms: int = Field(default=50, gt=0)
    default_user_id: str = Field(default="default_user")

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_file=".env",
        extra="ignore"
    )


class ServerSettings(BaseSettings):
    """HTTP surface configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Component settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    model_config = SettingsConfigDict(
        env_prefix="KB_AGENT_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls(**load_yaml_config(path))


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("KB_AGENT_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
