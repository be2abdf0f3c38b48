"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (STORYAUTHOR__PROVIDER__MODEL=deepseek-chat)
  2. storyauthor.yaml       (searched in cwd, then the platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from storyauthor.cache import DEFAULT_NAMESPACE

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("storyauthor")
_DEFAULT_DB_PATH = os.path.join(_DEFAULT_DATA_DIR, "cache.db")

PRESET_ENDPOINTS: dict[str, str] = {
    "DeepSeek": "https://api.deepseek.com",
    "OpenRouter": "https://openrouter.ai/api/v1",
    "Ollama": "http://localhost:11434",
    "LM Studio": "http://localhost:1234",
    "OpenAI": "https://api.openai.com/v1",
}


def _find_config_file() -> str | None:
    """Return the path of the first storyauthor.yaml found, or None."""
    candidates = [
        Path("storyauthor.yaml"),
        Path(platformdirs.user_config_dir("storyauthor")) / "storyauthor.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ProviderSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_url: str = PRESET_ENDPOINTS["DeepSeek"]
    model: str = "deepseek-reasoner"
    temperature: float | None = None  # only sent to the provider when set
    stream: bool = True
    # API keys are stored per base URL so switching endpoints keeps each key
    api_keys: dict[str, str] = {}
    api_key: str = ""
    timeout_seconds: float = 300.0

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must use http or https scheme")
        return v

    def api_key_for(self, base_url: str | None = None) -> str:
        url = (base_url or self.base_url).rstrip("/")
        return self.api_keys.get(url) or self.api_key


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    db_path: str = _DEFAULT_DB_PATH
    namespace: str = DEFAULT_NAMESPACE
    ttl_hours: float = 24


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: STORYAUTHOR__CACHE__TTL_HOURS=12
        env_prefix="STORYAUTHOR__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    provider: ProviderSettings = ProviderSettings()
    cache: CacheSettings = CacheSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
        )
