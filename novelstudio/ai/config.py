"""Backend settings: provider, credential, endpoint and model tiers."""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from ..core.exceptions import ConfigurationError


class Provider(Enum):
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    QWEN = "qwen"
    OPENAI = "openai"


class ModelTier(Enum):
    """Abstract model size; each provider maps it to a concrete model name."""
    FAST = "fast"
    DEEP = "deep"


PROVIDER_DEFAULTS = {
    Provider.ANTHROPIC: {
        "base_url": None,
        "models": {ModelTier.FAST: "claude-sonnet-4-20250514", ModelTier.DEEP: "claude-opus-4-20250514"},
        "key_env": "ANTHROPIC_API_KEY",
    },
    Provider.GEMINI: {
        "base_url": None,
        "models": {ModelTier.FAST: "gemini-2.5-flash", ModelTier.DEEP: "gemini-2.5-pro"},
        "key_env": "GEMINI_API_KEY",
    },
    Provider.DEEPSEEK: {
        "base_url": "https://api.deepseek.com",
        "models": {ModelTier.FAST: "deepseek-chat", ModelTier.DEEP: "deepseek-reasoner"},
        "key_env": "DEEPSEEK_API_KEY",
    },
    Provider.QWEN: {
        "base_url": "https://dashscope.aliyuncs.com/compatible-mode/v1",
        "models": {ModelTier.FAST: "qwen-plus", ModelTier.DEEP: "qwen-max"},
        "key_env": "DASHSCOPE_API_KEY",
    },
    Provider.OPENAI: {
        "base_url": "https://api.openai.com/v1",
        "models": {ModelTier.FAST: "gpt-4o-mini", ModelTier.DEEP: "gpt-4o"},
        "key_env": "OPENAI_API_KEY",
    },
}

DEFAULT_TIMEOUT = 60.0
DEFAULT_TEMPERATURE = 0.85
DEFAULT_LANGUAGE = "Simplified Chinese (简体中文)"


@dataclass
class LLMConfig:
    """Explicit backend configuration handed to :class:`LLMClient`."""

    provider: Provider = Provider.ANTHROPIC
    api_key: str = ""
    base_url: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    temperature: float = DEFAULT_TEMPERATURE
    output_language: str = DEFAULT_LANGUAGE
    max_tokens: int = 8192
    models: Dict[ModelTier, str] = field(default_factory=dict)

    def model_for(self, tier: ModelTier) -> str:
        return self.models.get(tier) or PROVIDER_DEFAULTS[self.provider]["models"][tier]

    def resolved_base_url(self) -> Optional[str]:
        """Custom endpoint if set, else the provider default, without a trailing slash."""
        url = (self.base_url or "").strip() or PROVIDER_DEFAULTS[self.provider]["base_url"]
        return url.rstrip("/") if url else None

    def validate(self) -> None:
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError(
                f"No API key configured for provider '{self.provider.value}'. "
                f"Set {PROVIDER_DEFAULTS[self.provider]['key_env']} or NOVELSTUDIO_API_KEY."
            )
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")


def _parse_provider(value: str) -> Provider:
    try:
        return Provider(value.strip().lower())
    except ValueError:
        choices = ", ".join(p.value for p in Provider)
        raise ConfigurationError(f"Unknown provider '{value}' (expected one of: {choices})")


def config_from_dict(data: Mapping, env: Optional[Mapping[str, str]] = None) -> LLMConfig:
    """Build a config from a settings mapping, letting environment variables override it."""
    env = os.environ if env is None else env
    data = dict(data or {})

    provider = _parse_provider(env.get("NOVELSTUDIO_PROVIDER") or data.get("provider") or "anthropic")
    api_key = (
        env.get("NOVELSTUDIO_API_KEY")
        or env.get(PROVIDER_DEFAULTS[provider]["key_env"])
        or data.get("api_key")
        or ""
    )
    models = {}
    for tier in ModelTier:
        name = (data.get("models") or {}).get(tier.value)
        if name:
            models[tier] = name

    return LLMConfig(
        provider=provider,
        api_key=api_key,
        base_url=env.get("NOVELSTUDIO_BASE_URL") or data.get("base_url"),
        timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
        temperature=float(data.get("temperature", DEFAULT_TEMPERATURE)),
        output_language=data.get("output_language") or DEFAULT_LANGUAGE,
        max_tokens=int(data.get("max_tokens", 8192)),
        models=models,
    )


def load_config(path: Optional[Union[str, Path]] = None, env: Optional[Mapping[str, str]] = None) -> LLMConfig:
    """Load settings from an optional YAML file plus environment overrides."""
    from ..io.file_handler import FileHandler

    data = {}
    if path is not None and Path(path).exists():
        data = FileHandler().read_yaml(path) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {path} must contain a mapping")
    return config_from_dict(data, env)
