"""Configuration management using Pydantic settings with optional file persistence."""

import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Paths ---

APP_NAME = "kitgen"


def get_config_dir() -> Path:
    """Get the configuration directory (e.g. ~/.config/kitgen)."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / ".config")).expanduser()
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", "~/.config")).expanduser()
    return base / APP_NAME


CONFIG_FILE = get_config_dir() / "config.json"


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    """Load settings from the JSON config file if it exists."""
    path = path or CONFIG_FILE
    if not path.exists():
        return {}

    try:
        text = path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data = json.loads(text)
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config_file(config_data: dict[str, Any], path: Path | None = None) -> Path:
    """Save settings to the JSON config file."""
    path = path or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config_data, indent=2), encoding="utf-8")
    return path


# Well-known environment variables that count as a usable model credential
STANDARD_ENV_VAR_NAMES: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_GENERATIVE_AI_API_KEY",
}

# Providers that don't require an API key
NO_KEY_PROVIDERS = frozenset({"ollama"})

ProviderType = Literal["anthropic", "openai", "openai_compatible", "ollama"]
AIMode = Literal["auto", "api", "command", "stdout", "off"]
CommandMode = Literal["batched", "per-block"]


class AISettings(BaseSettings):
    """AI transport configuration."""

    model_config = SettingsConfigDict(env_prefix="KITGEN_AI_")

    mode: AIMode = Field(default="auto", description="Answer source: auto, api, command, stdout or off")
    provider: Optional[ProviderType] = Field(default=None)
    model: Optional[str] = Field(default=None)
    api_key: Optional[SecretStr] = Field(default=None, description="API key, or $VAR to read it from the environment")
    base_url: Optional[str] = Field(default=None, description="Custom base URL for OpenAI-compatible APIs")

    command: Optional[str] = Field(default=None, description="External command; {prompt} is replaced with the quoted prompt")
    command_mode: CommandMode = Field(default="batched")
    command_timeout: float = Field(default=300.0, description="Seconds before the external command is killed")

    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, gt=0)
    answers_path: str = Field(default="./ai-answers.json", description="Suggested answers file for deferred runs")

    max_total_tokens: Optional[int] = Field(default=None, description="Refuse calls once this many tokens were used")
    max_total_cost_usd: Optional[float] = Field(default=None, description="Refuse calls once this much was spent")
    warn_at_cost_usd: Optional[float] = Field(default=None, description="Log a warning past this spend")

    def get_api_key_for_provider(self) -> Optional[str]:
        """Resolve the API key with priority: explicit > $VAR reference > standard variable.

        Returns:
            The resolved API key or None if not found.
        """
        if self.api_key:
            raw = self.api_key.get_secret_value()
            if raw.startswith("$"):
                return os.environ.get(raw[1:]) or None
            return raw

        if self.provider:
            standard_var = STANDARD_ENV_VAR_NAMES.get(self.provider)
            if standard_var and os.environ.get(standard_var):
                return os.environ[standard_var]
            if self.provider == "openai_compatible" and os.environ.get("OPENAI_API_KEY"):
                return os.environ["OPENAI_API_KEY"]
            return None

        for var_name in STANDARD_ENV_VAR_NAMES.values():
            if os.environ.get(var_name):
                return os.environ[var_name]
        return None

    def requires_api_key(self) -> bool:
        """Check if the current provider requires an API key."""
        return self.provider not in NO_KEY_PROVIDERS

    def has_credential(self) -> bool:
        """True when the provider can be called without further setup."""
        if not self.provider:
            return False
        if not self.requires_api_key():
            return True
        return self.get_api_key_for_provider() is not None


class ResolverSettings(BaseSettings):
    """Recipe lookup configuration."""

    model_config = SettingsConfigDict(env_prefix="KITGEN_RESOLVER_")

    search_dirs: list[str] = Field(default_factory=lambda: [".kitgen/cookbooks", "cookbooks"])
    kit_dirs: list[str] = Field(default_factory=lambda: [".kitgen/kits", "kits"])


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="KITGEN_LOG_")

    level: str = Field(default="WARNING")
    json_output: bool = Field(default=False, description="Render log lines as JSON")


class AppSettings(BaseSettings):
    """Root application settings.

    Priority: Environment Variables > Config File > Defaults
    """

    model_config = SettingsConfigDict(env_prefix="KITGEN_", extra="ignore")

    ai: AISettings = Field(default_factory=AISettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def save(self, path: Path | None = None) -> Path:
        """Save current configuration to file (excluding secrets)."""
        data = self.model_dump(mode="json", exclude_none=True)
        if "ai" in data and "api_key" in data["ai"]:
            del data["ai"]["api_key"]
        return save_config_file(data, path)


def _without_env_overrides(section: type[BaseSettings], data: dict[str, Any]) -> dict[str, Any]:
    """Drop file values that an environment variable already sets."""
    prefix = section.model_config.get("env_prefix", "")
    return {key: value for key, value in data.items() if f"{prefix}{key}".upper() not in os.environ}


def _load_settings() -> AppSettings:
    """Load settings with file config as base, env vars overlay."""
    file_data = load_config_file()
    sections: dict[str, Any] = {}
    for name, section in (("ai", AISettings), ("resolver", ResolverSettings), ("logging", LoggingSettings)):
        data = file_data.get(name)
        sections[name] = section(**_without_env_overrides(section, data if isinstance(data, dict) else {}))
    return AppSettings(**sections)


settings = _load_settings()
